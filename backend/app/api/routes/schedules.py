import datetime as dt
import math

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_schedule_editor
from app.core.config import get_settings
from app.core.exceptions import BadRequestError, ScheduleConflictError
from app.db.transaction import transaction_scope
from app.models.schedule import ScheduleStatus
from app.models.user import User
from app.schemas.conflict import ValidationResultOut, ViolationOut
from app.schemas.schedule import (
    PaginationOut,
    ScheduleBulkOut,
    ScheduleCreate,
    ScheduleListOut,
    ScheduleOut,
    ScheduleUpdate,
)
from app.services.schedule_commit import CommitOutcome, ScheduleCommitter
from app.services.schedule_repository import ScheduleFilters, ScheduleRepository
from app.services.scheduling_types import BatchValidationResult, ValidationResult

router = APIRouter()
settings = get_settings()


def conflict_details(result: ValidationResult) -> dict:
    return {
        "errors": result.messages,
        "violations": [ViolationOut.from_violation(item).model_dump(mode="json") for item in result.violations],
    }


def bulk_conflict_details(batch: BatchValidationResult, payload: list[ScheduleCreate]) -> dict:
    entries = [
        {
            "line": line,
            "schedule": payload[line - 1].model_dump(mode="json"),
            **conflict_details(result),
        }
        for line, result in batch.failed_entries
    ]
    return {"entries": entries, "errors": [message for entry in entries for message in entry["errors"]]}


def raise_if_rejected(outcome: CommitOutcome, message: str) -> None:
    if outcome.committed:
        return
    raise ScheduleConflictError(message, details=conflict_details(outcome.validation))


def load_schedule_out(db: Session, schedule_id: str) -> ScheduleOut:
    with transaction_scope(db, read_only=True):
        schedule = ScheduleRepository(db).get_schedule(schedule_id)
        return ScheduleOut.model_validate(schedule)


@router.get("", response_model=ScheduleListOut)
def list_schedules(
    room_id: str | None = None,
    course_id: str | None = None,
    instructor_id: str | None = None,
    status_filter: ScheduleStatus | None = Query(default=None, alias="status"),
    start_date: dt.date | None = None,
    end_date: dt.date | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ScheduleListOut:
    limit = min(limit, settings.schedule_page_size_max)
    filters = ScheduleFilters(
        room_id=room_id,
        course_id=course_id,
        instructor_id=instructor_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
    )
    with transaction_scope(db, read_only=True):
        rows, total = ScheduleRepository(db).list_schedules(filters, page=page, limit=limit)
        data = [ScheduleOut.model_validate(row) for row in rows]
    return ScheduleListOut(
        data=data,
        pagination=PaginationOut(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.get("/{schedule_id}", response_model=ScheduleOut)
def get_schedule(
    schedule_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    return load_schedule_out(db, schedule_id)


@router.post("/validate", response_model=ValidationResultOut)
def validate_schedule(
    payload: ScheduleCreate,
    exclude_schedule_id: str | None = Query(default=None),
    current_user: User = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
) -> ValidationResultOut:
    result = ScheduleCommitter(db).preview(payload.to_proposal(), exclude_schedule_id)
    return ValidationResultOut.from_result(result)


@router.post("", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleCreate,
    current_user: User = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    actor_id = current_user.id
    outcome = ScheduleCommitter(db).create(payload.to_proposal(), created_by=actor_id)
    raise_if_rejected(outcome, "Schedule validation failed")
    return load_schedule_out(db, outcome.schedule_ids[0])


@router.post("/bulk", response_model=ScheduleBulkOut, status_code=status.HTTP_201_CREATED)
def bulk_create_schedules(
    payload: list[ScheduleCreate] = Body(...),
    current_user: User = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleBulkOut:
    if not payload:
        raise BadRequestError("At least one schedule is required", details={"count": 0})
    if len(payload) > settings.bulk_schedule_max_items:
        raise BadRequestError(
            f"At most {settings.bulk_schedule_max_items} schedules can be created at once",
            details={"count": len(payload), "limit": settings.bulk_schedule_max_items},
        )

    actor_id = current_user.id
    outcome = ScheduleCommitter(db).create_many([item.to_proposal() for item in payload], created_by=actor_id)
    if not outcome.committed:
        details = bulk_conflict_details(outcome.validation, payload)
        raise ScheduleConflictError(
            f"{len(details['entries'])} schedule(s) failed validation. Transaction not executed.",
            details=details,
        )
    return ScheduleBulkOut(created=len(outcome.schedule_ids), ids=list(outcome.schedule_ids))


@router.post("/upsert", response_model=ScheduleOut)
def upsert_schedule(
    payload: ScheduleCreate,
    response: Response,
    current_user: User = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    actor_id = current_user.id
    outcome = ScheduleCommitter(db).upsert(payload.to_proposal(), created_by=actor_id)
    raise_if_rejected(outcome, "Schedule validation failed")
    response.status_code = status.HTTP_201_CREATED if outcome.created else status.HTTP_200_OK
    return load_schedule_out(db, outcome.schedule_ids[0])


@router.put("/{schedule_id}", response_model=ScheduleOut)
def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    current_user: User = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
) -> ScheduleOut:
    actor_id = current_user.id
    changes = payload.model_dump(exclude_unset=True)
    outcome = ScheduleCommitter(db).update(schedule_id, changes, updated_by=actor_id)
    raise_if_rejected(outcome, "Schedule update validation failed")
    return load_schedule_out(db, schedule_id)


@router.delete("/{schedule_id}")
def cancel_schedule(
    schedule_id: str,
    current_user: User = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
) -> dict:
    actor_id = current_user.id
    ScheduleCommitter(db).cancel(schedule_id, cancelled_by=actor_id)
    return {"success": True, "message": "Schedule cancelled successfully"}
