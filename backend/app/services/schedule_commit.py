from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import InfrastructureError, ScheduleStateError
from app.db.transaction import transaction_scope
from app.models.schedule import ScheduleStatus
from app.services.intervals import TimeInterval
from app.services.schedule_repository import (
    MUTABLE_FIELDS,
    ScheduleRepository,
    lock_keys_for,
    proposal_from_schedule,
)
from app.services.schedule_validation import ScheduleValidator
from app.services.scheduling_types import (
    BatchValidationResult,
    ScheduleProposal,
    ValidationResult,
    Violation,
    ViolationKind,
)

logger = logging.getLogger(__name__)

Validation = ValidationResult | BatchValidationResult

LOST_RACE = Violation(
    ViolationKind.concurrency_conflict,
    "Another change to the same room or instructor was committed first; please retry",
)


class CommitState(str, Enum):
    committed = "committed"
    rolled_back = "rolled_back"


@dataclass(frozen=True)
class CommitOutcome:
    state: CommitState
    validation: Validation
    schedule_ids: tuple[str, ...] = ()
    created: bool = False

    @property
    def committed(self) -> bool:
        return self.state == CommitState.committed


class _Rejected(Exception):
    """Unwinds the transaction scope so a rejected attempt rolls back."""

    def __init__(self, outcome: CommitOutcome) -> None:
        super().__init__(outcome.state.value)
        self.outcome = outcome


def _with_lost_race(validation: Validation) -> Validation:
    if isinstance(validation, BatchValidationResult):
        first = validation.items[0] if validation.items else ValidationResult()
        head = ValidationResult(first.violations + (LOST_RACE,))
        return BatchValidationResult((head, *validation.items[1:]))
    return ValidationResult(validation.violations + (LOST_RACE,))


def apply_changes(current: ScheduleProposal, changes: dict) -> ScheduleProposal:
    unknown = set(changes) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported schedule field(s): {', '.join(sorted(unknown))}")
    return ScheduleProposal(
        room_id=changes.get("room_id", current.room_id),
        course_id=changes.get("course_id", current.course_id),
        instructor_id=changes.get("instructor_id", current.instructor_id),
        interval=TimeInterval(
            changes.get("date", current.interval.date),
            changes.get("start_time", current.interval.start),
            changes.get("end_time", current.interval.end),
        ),
    )


class ScheduleCommitter:
    """Validates and writes schedules atomically.

    Each public method is one transaction: lock the (room, date) and
    (instructor, date) keys, validate against what is visible under the lock,
    write, commit. A rejection, an exception or a cancellation rolls the whole
    transaction back, so a batch is never partially applied.
    """

    def __init__(self, db: Session, *, max_retries: int | None = None) -> None:
        self.db = db
        if max_retries is None:
            max_retries = get_settings().schedule_commit_retries
        self.max_retries = max(0, max_retries)

    def _run(
        self,
        operation: Callable[[ScheduleRepository, ScheduleValidator], CommitOutcome],
        revalidate: Callable[[ScheduleValidator], Validation],
    ) -> CommitOutcome:
        retries = 0
        while True:
            try:
                with transaction_scope(self.db):
                    repository = ScheduleRepository(self.db)
                    outcome = operation(repository, ScheduleValidator(repository))
                    if not outcome.committed:
                        raise _Rejected(outcome)
                return outcome
            except _Rejected as rejected:
                return rejected.outcome
            except IntegrityError:
                # A storage constraint caught a write that raced past validation.
                logger.warning("Schedule write rejected by the store; re-validating after rollback")
                return self._rejected_after_lost_race(revalidate)
            except InfrastructureError as exc:
                if not exc.retryable or retries >= self.max_retries:
                    raise
                retries += 1
                logger.warning("Retrying schedule commit after transient failure (attempt %d)", retries + 1)

    def _rejected_after_lost_race(self, revalidate: Callable[[ScheduleValidator], Validation]) -> CommitOutcome:
        with transaction_scope(self.db, read_only=True):
            validation = revalidate(ScheduleValidator(ScheduleRepository(self.db)))
        if validation.accepted:
            validation = _with_lost_race(validation)
        return CommitOutcome(CommitState.rolled_back, validation)

    def preview(self, proposal: ScheduleProposal, exclude_schedule_id: str | None = None) -> ValidationResult:
        """Validate without writing anything."""
        with transaction_scope(self.db, read_only=True):
            validator = ScheduleValidator(ScheduleRepository(self.db))
            return validator.validate(proposal, exclude_schedule_id)

    def create(self, proposal: ScheduleProposal, *, created_by: str | None = None) -> CommitOutcome:
        def operation(repository: ScheduleRepository, validator: ScheduleValidator) -> CommitOutcome:
            repository.lock_keys(lock_keys_for(proposal))
            result = validator.validate(proposal)
            if not result.accepted:
                return CommitOutcome(CommitState.rolled_back, result)
            schedule_id = repository.insert_schedule(proposal, created_by=created_by)
            return CommitOutcome(CommitState.committed, result, (schedule_id,), created=True)

        outcome = self._run(operation, lambda validator: validator.validate(proposal))
        if outcome.committed:
            logger.info("Schedule created: %s by user %s", outcome.schedule_ids[0], created_by)
        return outcome

    def create_many(self, proposals: Sequence[ScheduleProposal], *, created_by: str | None = None) -> CommitOutcome:
        proposals = list(proposals)

        def operation(repository: ScheduleRepository, validator: ScheduleValidator) -> CommitOutcome:
            repository.lock_keys(key for proposal in proposals for key in lock_keys_for(proposal))
            batch = validator.validate_batch(proposals)
            if not batch.accepted:
                return CommitOutcome(CommitState.rolled_back, batch)
            ids = tuple(repository.insert_schedule(proposal, created_by=created_by) for proposal in proposals)
            return CommitOutcome(CommitState.committed, batch, ids, created=True)

        outcome = self._run(operation, lambda validator: validator.validate_batch(proposals))
        if outcome.committed:
            logger.info("Bulk schedules created: %d schedules by user %s", len(outcome.schedule_ids), created_by)
        return outcome

    def update(self, schedule_id: str, changes: dict, *, updated_by: str | None = None) -> CommitOutcome:
        def load(repository: ScheduleRepository, *, for_update: bool) -> ScheduleProposal:
            schedule = repository.get_schedule(schedule_id, for_update=for_update)
            if schedule.status == ScheduleStatus.cancelled:
                raise ScheduleStateError("Cancelled schedules cannot be modified")
            return apply_changes(proposal_from_schedule(schedule), changes)

        def operation(repository: ScheduleRepository, validator: ScheduleValidator) -> CommitOutcome:
            # Key locks before the row lock, the same order upsert and create take them.
            current = proposal_from_schedule(repository.get_schedule(schedule_id))
            keys = {*lock_keys_for(current), *lock_keys_for(apply_changes(current, changes))}
            repository.lock_keys(keys)
            proposal = load(repository, for_update=True)
            moved = set(lock_keys_for(proposal)) - keys
            if moved:
                # The row changed room, instructor or date before its lock was granted.
                repository.lock_keys(moved)
            result = validator.validate(proposal, exclude_schedule_id=schedule_id)
            if not result.accepted:
                return CommitOutcome(CommitState.rolled_back, result)
            if changes:
                repository.update_schedule(schedule_id, changes)
            return CommitOutcome(CommitState.committed, result, (schedule_id,))

        def revalidate(validator: ScheduleValidator) -> ValidationResult:
            proposal = load(validator.repository, for_update=False)
            return validator.validate(proposal, exclude_schedule_id=schedule_id)

        outcome = self._run(operation, revalidate)
        if outcome.committed:
            logger.info("Schedule updated: %s by user %s (%s)", schedule_id, updated_by, ", ".join(sorted(changes)))
        return outcome

    def upsert(self, proposal: ScheduleProposal, *, created_by: str | None = None) -> CommitOutcome:
        """Insert, or update the active schedule with the same room, date and start time.

        Both branches run the same validation; the update branch excludes the
        matched schedule from its own conflict check.
        """

        def operation(repository: ScheduleRepository, validator: ScheduleValidator) -> CommitOutcome:
            repository.lock_keys(lock_keys_for(proposal))
            existing = repository.find_by_natural_key(
                proposal.room_id, proposal.interval.date, proposal.interval.start
            )
            exclude_id = existing.id if existing is not None else None
            result = validator.validate(proposal, exclude_schedule_id=exclude_id)
            if not result.accepted:
                return CommitOutcome(CommitState.rolled_back, result)
            if existing is None:
                schedule_id = repository.insert_schedule(proposal, created_by=created_by)
                return CommitOutcome(CommitState.committed, result, (schedule_id,), created=True)
            repository.update_schedule(
                existing.id,
                {
                    "course_id": proposal.course_id,
                    "instructor_id": proposal.instructor_id,
                    "end_time": proposal.interval.end,
                },
            )
            return CommitOutcome(CommitState.committed, result, (existing.id,))

        def revalidate(validator: ScheduleValidator) -> ValidationResult:
            existing = validator.repository.find_by_natural_key(
                proposal.room_id, proposal.interval.date, proposal.interval.start
            )
            return validator.validate(proposal, exclude_schedule_id=existing.id if existing else None)

        outcome = self._run(operation, revalidate)
        if outcome.committed:
            action = "created" if outcome.created else "updated"
            logger.info("Schedule %s by upsert: %s by user %s", action, outcome.schedule_ids[0], created_by)
        return outcome

    def cancel(self, schedule_id: str, *, cancelled_by: str | None = None) -> CommitOutcome:
        with transaction_scope(self.db):
            repository = ScheduleRepository(self.db)
            schedule = repository.get_schedule(schedule_id, for_update=True)
            if schedule.status != ScheduleStatus.cancelled:
                repository.cancel_schedule(schedule_id)
        logger.info("Schedule cancelled: %s by user %s", schedule_id, cancelled_by)
        return CommitOutcome(CommitState.committed, ValidationResult(), (schedule_id,))
