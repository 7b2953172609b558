"""credential alert generation

Revision ID: 7d2f4b8e1a63
Revises: 3c1e7a5d9b20
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "7d2f4b8e1a63"
down_revision: Union[str, Sequence[str], None] = "3c1e7a5d9b20"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CREDENTIAL_ALERT = sa.text("related_credential_id IS NOT NULL")


def upgrade() -> None:
    """Upgrade schema."""
    with op.batch_alter_table("credentials", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("alert_generation", sa.Integer(), nullable=False, server_default="0")
        )

    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.add_column(sa.Column("related_alert_generation", sa.Integer(), nullable=True))

    op.execute(
        "UPDATE notifications SET related_alert_generation = 0 "
        "WHERE related_credential_id IS NOT NULL"
    )

    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.drop_index("uq_notifications_credential_transition")
        batch_op.create_index(
            "uq_notifications_credential_transition",
            ["related_credential_id", "type", "related_expiration_date", "related_alert_generation"],
            unique=True,
            sqlite_where=CREDENTIAL_ALERT,
            postgresql_where=CREDENTIAL_ALERT,
        )


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.drop_index("uq_notifications_credential_transition")

    # Only the first generation's markers fit the narrower key
    op.execute(
        "DELETE FROM notifications "
        "WHERE related_credential_id IS NOT NULL AND related_alert_generation > 0"
    )

    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.drop_column("related_alert_generation")
        batch_op.create_index(
            "uq_notifications_credential_transition",
            ["related_credential_id", "type", "related_expiration_date"],
            unique=True,
            sqlite_where=CREDENTIAL_ALERT,
            postgresql_where=CREDENTIAL_ALERT,
        )

    with op.batch_alter_table("credentials", schema=None) as batch_op:
        batch_op.drop_column("alert_generation")
