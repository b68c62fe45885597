"""Pure scheduling rules.

Every rule takes a proposal plus the data it needs and returns zero or more
violations. Nothing here touches the database; callers load the catalog rows
and the active schedules of the proposal's date first.
"""
from __future__ import annotations

from collections.abc import Iterable

from app.services.intervals import overlaps
from app.services.scheduling_types import (
    CourseInfo,
    InstructorInfo,
    RoomInfo,
    ScheduleProposal,
    ScheduleSnapshot,
    ValidationResult,
    Violation,
    ViolationKind,
)


def check_time_range(proposal: ScheduleProposal) -> list[Violation]:
    if proposal.interval.is_valid:
        return []
    return [Violation(ViolationKind.invalid_time_range, "End time must be after start time")]


def _overlapping(
    proposal: ScheduleProposal,
    occupied: Iterable[ScheduleSnapshot],
    exclude_schedule_id: str | None,
) -> Iterable[ScheduleSnapshot]:
    if not proposal.interval.is_valid:
        return
    for other in occupied:
        if exclude_schedule_id is not None and other.id == exclude_schedule_id:
            continue
        if not other.interval.is_valid:
            continue
        if overlaps(proposal.interval, other.interval):
            yield other


def check_room_exclusivity(
    proposal: ScheduleProposal,
    occupied: Iterable[ScheduleSnapshot],
    *,
    room: RoomInfo | None = None,
    exclude_schedule_id: str | None = None,
) -> list[Violation]:
    room_label = (room.label if room else None) or proposal.room_id
    same_room = (other for other in occupied if other.room_id == proposal.room_id)
    return [
        Violation(
            ViolationKind.room_conflict,
            f"Room conflict detected: {room_label} is already booked by {other.describe()}",
            schedule_id=other.id,
            entry=other.entry,
        )
        for other in _overlapping(proposal, same_room, exclude_schedule_id)
    ]


def check_instructor_exclusivity(
    proposal: ScheduleProposal,
    occupied: Iterable[ScheduleSnapshot],
    *,
    instructor: InstructorInfo | None = None,
    exclude_schedule_id: str | None = None,
) -> list[Violation]:
    name = instructor.name if instructor else proposal.instructor_id
    same_instructor = (other for other in occupied if other.instructor_id == proposal.instructor_id)
    violations = []
    for other in _overlapping(proposal, same_instructor, exclude_schedule_id):
        where = other.room_label or other.room_id
        violations.append(
            Violation(
                ViolationKind.instructor_conflict,
                f"Instructor conflict detected: {name} already teaches {other.describe()} in {where}",
                schedule_id=other.id,
                entry=other.entry,
            )
        )
    return violations


def check_capacity(room: RoomInfo, course: CourseInfo) -> list[Violation]:
    if room.capacity >= course.required_capacity:
        return []
    return [
        Violation(
            ViolationKind.capacity_violation,
            f"Room capacity ({room.capacity}) is less than required capacity ({course.required_capacity})",
        )
    ]


def check_assignment(
    proposal: ScheduleProposal,
    course: CourseInfo,
    *,
    instructor: InstructorInfo | None = None,
) -> list[Violation]:
    if proposal.instructor_id in course.instructor_ids:
        return []
    name = instructor.name if instructor else proposal.instructor_id
    return [
        Violation(
            ViolationKind.instructor_not_assigned,
            f"Instructor {name} is not assigned to course {course.label or course.id}",
        )
    ]


def evaluate(
    proposal: ScheduleProposal,
    *,
    room: RoomInfo,
    course: CourseInfo,
    occupied: Iterable[ScheduleSnapshot],
    instructor: InstructorInfo | None = None,
    exclude_schedule_id: str | None = None,
) -> ValidationResult:
    """Run every rule and collect all violations in a fixed order."""
    occupied = list(occupied)
    violations: list[Violation] = []
    violations.extend(check_time_range(proposal))
    violations.extend(
        check_room_exclusivity(proposal, occupied, room=room, exclude_schedule_id=exclude_schedule_id)
    )
    violations.extend(
        check_instructor_exclusivity(
            proposal, occupied, instructor=instructor, exclude_schedule_id=exclude_schedule_id
        )
    )
    violations.extend(check_capacity(room, course))
    violations.extend(check_assignment(proposal, course, instructor=instructor))
    return ValidationResult(tuple(violations))
