from alembic import op

revision = "0003"
down_revision = "0002"
branch_labels = None
depends_on = None

# storage-level guard against double booking; PostgreSQL only
def upgrade():
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE bookings
          ADD CONSTRAINT bookings_no_overlap_per_provider
          EXCLUDE USING gist (
            provider_id WITH =,
            tstzrange(start_time, end_time, '[)') WITH &&
          )
          WHERE (status IN ('pending', 'confirmed'))
        """
    )

def downgrade():
    if op.get_bind().dialect.name != "postgresql":
        return
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_overlap_per_provider")
