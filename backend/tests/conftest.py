import os
import sys
import uuid

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from frontline import models  # noqa: E402,F401
from frontline.database import Base, build_engine  # noqa: E402
from frontline.models.user import User  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    # File-backed so threadpool workers and the test share one database
    engine = build_engine(f"sqlite:///{tmp_path / 'frontline-test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(name: str, is_admin: bool = False) -> User:
        user = User(
            id=str(uuid.uuid4()),
            username=name.lower(),
            email=f"{name.lower()}@example.com",
            full_name=name,
            role="Paramedic",
            is_admin=1 if is_admin else 0,
        )
        db.add(user)
        db.commit()
        # Loaded and detached so later attribute reads never reopen a
        # transaction on the fixture session
        db.refresh(user)
        db.expunge(user)
        db.commit()
        return user

    return _make_user
