from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from app.services.intervals import TimeInterval


class ViolationKind(str, Enum):
    invalid_time_range = "InvalidTimeRange"
    room_conflict = "RoomConflict"
    instructor_conflict = "InstructorConflict"
    capacity_violation = "CapacityViolation"
    instructor_not_assigned = "InstructorNotAssigned"
    concurrency_conflict = "ConcurrencyConflict"


@dataclass(frozen=True)
class ScheduleProposal:
    room_id: str
    course_id: str
    instructor_id: str
    interval: TimeInterval


@dataclass(frozen=True)
class ScheduleSnapshot:
    """Read-only view of an occupied slot.

    Either a persisted active schedule (``id`` set) or an earlier proposal of the
    same batch (``entry`` set, 1-based submission line).
    """

    room_id: str
    course_id: str
    instructor_id: str
    interval: TimeInterval
    id: str | None = None
    entry: int | None = None
    room_label: str | None = None
    course_label: str | None = None
    instructor_label: str | None = None

    def describe(self) -> str:
        origin = f"schedule {self.id}" if self.id is not None else f"entry {self.entry}"
        course = self.course_label or self.course_id
        return f"{origin} ({course}, {self.interval.describe()})"


@dataclass(frozen=True)
class RoomInfo:
    id: str
    capacity: int
    label: str | None = None


@dataclass(frozen=True)
class CourseInfo:
    id: str
    required_capacity: int
    instructor_ids: frozenset[str] = frozenset()
    label: str | None = None


@dataclass(frozen=True)
class InstructorInfo:
    id: str
    name: str


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    message: str
    schedule_id: str | None = None
    entry: int | None = None


@dataclass(frozen=True)
class ValidationResult:
    violations: tuple[Violation, ...] = ()

    @property
    def accepted(self) -> bool:
        return not self.violations

    @property
    def kinds(self) -> list[ViolationKind]:
        return [violation.kind for violation in self.violations]

    @property
    def messages(self) -> list[str]:
        return [violation.message for violation in self.violations]


@dataclass(frozen=True)
class BatchValidationResult:
    items: tuple[ValidationResult, ...] = field(default_factory=tuple)

    @property
    def accepted(self) -> bool:
        return all(item.accepted for item in self.items)

    @property
    def violations(self) -> tuple[Violation, ...]:
        return tuple(violation for item in self.items for violation in item.violations)

    @property
    def failed_entries(self) -> list[tuple[int, ValidationResult]]:
        return [(index + 1, item) for index, item in enumerate(self.items) if not item.accepted]
