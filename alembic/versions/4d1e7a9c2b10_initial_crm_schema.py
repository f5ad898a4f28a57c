from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "4d1e7a9c2b10"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    insp = sa.inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()

    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False, unique=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("google_id", sa.String(length=100), nullable=True, unique=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "customers"):
        op.create_table(
            "customers",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False, unique=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("total_spent", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("visit_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_visit", sa.TIMESTAMP(), nullable=True),
            sa.Column("registration_date", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("location", sa.String(length=100), nullable=True),
            sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="completed"),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "campaigns"):
        op.create_table(
            "campaigns",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("rules", sa.JSON(), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("audience_size", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
            sa.Column("scheduled_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("completed_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "communication_logs"):
        op.create_table(
            "communication_logs",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("campaign_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("campaigns.id"), nullable=False),
            sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("sent_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("failure_reason", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    insp = sa.inspect(bind)
    indexes = {ix["name"] for ix in insp.get_indexes("communication_logs")}
    if "ix_communication_logs_campaign_id" not in indexes:
        op.create_index("ix_communication_logs_campaign_id", "communication_logs", ["campaign_id"])


def downgrade() -> None:
    bind = op.get_bind()

    if _table_exists(bind, "communication_logs"):
        op.drop_index("ix_communication_logs_campaign_id", table_name="communication_logs")
        op.drop_table("communication_logs")

    for table_name in ("campaigns", "orders", "customers", "users"):
        if _table_exists(bind, table_name):
            op.drop_table(table_name)
