from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "booking_events_outbox",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("booking_id", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_booking_events_outbox_event_id", "booking_events_outbox", ["event_id"], unique=True)
    op.create_index("ix_booking_events_outbox_event_type", "booking_events_outbox", ["event_type"], unique=False)
    op.create_index("ix_booking_events_outbox_booking_id", "booking_events_outbox", ["booking_id"], unique=False)
    op.create_index("ix_booking_events_outbox_status", "booking_events_outbox", ["status"], unique=False)

def downgrade():
    op.drop_index("ix_booking_events_outbox_status", table_name="booking_events_outbox")
    op.drop_index("ix_booking_events_outbox_booking_id", table_name="booking_events_outbox")
    op.drop_index("ix_booking_events_outbox_event_type", table_name="booking_events_outbox")
    op.drop_index("ix_booking_events_outbox_event_id", table_name="booking_events_outbox")
    op.drop_table("booking_events_outbox")
