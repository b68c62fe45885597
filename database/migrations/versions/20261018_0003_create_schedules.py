"""create schedules

Revision ID: 20261018_0003
Revises: 20261018_0002
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261018_0003"
down_revision = "20261018_0002"
branch_labels = None
depends_on = None

OVERLAP_CONSTRAINTS = {
    "ex_schedules_room_overlap": "room_id",
    "ex_schedules_instructor_overlap": "instructor_id",
}


def upgrade() -> None:
    schedule_status = sa.Enum("active", "cancelled", name="schedule_status")

    op.create_table(
        "schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("room_id", sa.String(length=36), sa.ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("course_id", sa.String(length=36), sa.ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("instructor_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", schedule_status, nullable=False, server_default="active"),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("end_time > start_time", name="ck_schedules_time_order"),
    )
    op.create_index("ix_schedules_date", "schedules", ["date"])
    op.create_index("ix_schedules_status", "schedules", ["status"])
    op.create_index("ix_schedules_room_date", "schedules", ["room_id", "date", "start_time", "end_time"])
    op.create_index(
        "ix_schedules_instructor_date", "schedules", ["instructor_id", "date", "start_time", "end_time"]
    )

    # Last line of defence behind the application locks: no two active rows may
    # overlap for the same room or the same instructor.
    if op.get_bind().dialect.name == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        for name, column in OVERLAP_CONSTRAINTS.items():
            op.execute(
                f"ALTER TABLE schedules ADD CONSTRAINT {name} EXCLUDE USING gist ("
                f"{column} WITH =, tsrange(date + start_time, date + end_time, '[)') WITH &&"
                ") WHERE (status = 'active')"
            )


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        for name in OVERLAP_CONSTRAINTS:
            op.execute(f"ALTER TABLE schedules DROP CONSTRAINT IF EXISTS {name}")
    op.drop_index("ix_schedules_instructor_date", table_name="schedules")
    op.drop_index("ix_schedules_room_date", table_name="schedules")
    op.drop_index("ix_schedules_status", table_name="schedules")
    op.drop_index("ix_schedules_date", table_name="schedules")
    op.drop_table("schedules")
    sa.Enum(name="schedule_status").drop(op.get_bind(), checkfirst=True)
