"""Frontline - activity and notification engine API."""
import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from frontline.config import get_settings
from frontline.errors import EngineError, engine_error_handler

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    from frontline.database import Base, SessionLocal, engine
    from frontline.jobs import CREDENTIAL_SWEEP_JOB_ID, run_credential_sweep
    from frontline.realtime import ChangeFeed, RealtimeDispatcher
    from frontline.services.blob_store import LocalBlobStore
    from frontline.services.engine import ActivityEngine

    # Import all models so they're registered with Base
    from frontline import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    feed = ChangeFeed(queue_size=settings.realtime_queue_size)
    feed.install(SessionLocal)
    dispatcher = RealtimeDispatcher(
        feed,
        initial_backoff=settings.realtime_initial_backoff_seconds,
        max_backoff=settings.realtime_max_backoff_seconds,
        max_retries=settings.realtime_max_retries,
    )
    app.state.change_feed = feed
    app.state.dispatcher = dispatcher
    app.state.engine = ActivityEngine(
        SessionLocal,
        dispatcher=dispatcher,
        notification_limit=settings.notification_list_limit,
    )
    app.state.blob_store = LocalBlobStore(settings.blob_root)

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_credential_sweep,
        "interval",
        minutes=settings.credential_sweep_interval_minutes,
        id=CREDENTIAL_SWEEP_JOB_ID,
    )
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("%s ready; credential sweep every %s min", settings.app_name, settings.credential_sweep_interval_minutes)

    yield

    scheduler.shutdown(wait=False)
    await dispatcher.close("server shutting down")
    feed.uninstall()


app = FastAPI(
    title=settings.app_name,
    description="Conversations, notifications, credential alerts and realtime delivery",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(EngineError, engine_error_handler)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from frontline.api import (  # noqa: E402
    badges,
    connections,
    credentials,
    messages,
    notifications,
    posts,
    realtime,
    reports,
)

app.include_router(messages.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(credentials.router, prefix="/api")
app.include_router(connections.router, prefix="/api")
app.include_router(posts.router, prefix="/api")
app.include_router(reports.router, prefix="/api")
app.include_router(badges.router, prefix="/api")
app.include_router(realtime.router, prefix="/api")
