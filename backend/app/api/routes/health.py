from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.db.bootstrap import schema_gaps
from app.db.session import engine

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    """Report whether the schedule store is reachable and carries the required schema."""
    database: dict = {"ok": True, "dialect": engine.dialect.name, "error": None}
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            missing_tables, missing_columns = schema_gaps(connection)
    except SQLAlchemyError as exc:  # pragma: no cover - environment dependent
        database.update(ok=False, error=str(exc))
        missing_tables, missing_columns = [], {}

    database.update(
        schema_ok=not missing_tables and not missing_columns,
        missing_tables=missing_tables,
        missing_columns=missing_columns,
    )
    ready = database["ok"] and database["schema_ok"]
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": database,
        },
    )
