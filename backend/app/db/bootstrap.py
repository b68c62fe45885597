from __future__ import annotations

import logging

from sqlalchemy import inspect, text

from app.db.base import Base
from app.db.session import engine
import app.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "name", "email", "role", "is_active"},
    "rooms": {"id", "code", "capacity"},
    "courses": {"id", "code", "required_capacity"},
    "course_instructors": {"course_id", "instructor_id"},
    "schedules": {
        "id",
        "room_id",
        "course_id",
        "instructor_id",
        "date",
        "start_time",
        "end_time",
        "status",
        "created_by",
    },
}

OVERLAP_CONSTRAINTS: dict[str, str] = {
    "ex_schedules_room_overlap": "room_id",
    "ex_schedules_instructor_overlap": "instructor_id",
}


def overlap_constraint_sql(name: str, column: str) -> str:
    return (
        f"ALTER TABLE schedules ADD CONSTRAINT {name} EXCLUDE USING gist ("
        f"{column} WITH =, tsrange(date + start_time, date + end_time, '[)') WITH &&"
        ") WHERE (status = 'active')"
    )


def _ensure_schedules_created_by_column() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "schedules" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("schedules")}
        if "created_by" in column_names:
            return
        connection.execute(text("ALTER TABLE schedules ADD COLUMN created_by VARCHAR(36)"))


def _ensure_schedule_overlap_constraints() -> None:
    if engine.dialect.name != "postgresql":
        return
    with engine.begin() as connection:
        existing = set(
            connection.execute(
                text("SELECT conname FROM pg_constraint WHERE conrelid = 'schedules'::regclass")
            ).scalars()
        )
        missing = [name for name in OVERLAP_CONSTRAINTS if name not in existing]
        if not missing:
            return
        connection.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
        for name in missing:
            connection.execute(text(overlap_constraint_sql(name, OVERLAP_CONSTRAINTS[name])))
            logger.info("Created schedule overlap constraint %s", name)


def schema_gaps(connection) -> tuple[list[str], dict[str, list[str]]]:
    """Return the required tables that are missing and, per table, the missing columns."""
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
    missing_columns: dict[str, list[str]] = {}
    for table_name, required in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(required - existing)
        if missing:
            missing_columns[table_name] = missing
    return missing_tables, missing_columns


def _assert_required_columns() -> None:
    with engine.begin() as connection:
        missing_tables, missing_columns = schema_gaps(connection)
    if missing_tables:
        raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
    if missing_columns:
        described = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
        raise RuntimeError(f"Missing required columns: {', '.join(described)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=engine)
        _ensure_schedules_created_by_column()
        _ensure_schedule_overlap_constraints()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
