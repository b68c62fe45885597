from __future__ import annotations

from collections.abc import Sequence
import logging

from app.core.exceptions import ResourceNotFoundError
from app.services import conflict_rules
from app.services.schedule_repository import ScheduleRepository
from app.services.scheduling_types import (
    BatchValidationResult,
    CourseInfo,
    InstructorInfo,
    RoomInfo,
    ScheduleProposal,
    ScheduleSnapshot,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class ScheduleValidator:
    """Checks proposals against the store and against each other.

    Business-rule failures come back as violations. Missing rooms, courses or
    instructors raise ``ResourceNotFoundError``; store failures propagate.
    """

    def __init__(self, repository: ScheduleRepository) -> None:
        self.repository = repository
        self._rooms: dict[str, RoomInfo] = {}
        self._courses: dict[str, CourseInfo] = {}
        self._instructors: dict[str, InstructorInfo] = {}

    def _load_context(self, proposal: ScheduleProposal) -> tuple[RoomInfo, CourseInfo, InstructorInfo]:
        room = self._rooms.get(proposal.room_id)
        if room is None:
            room = self._rooms[proposal.room_id] = self.repository.get_room(proposal.room_id)
        course = self._courses.get(proposal.course_id)
        if course is None:
            course = self._courses[proposal.course_id] = self.repository.get_course(proposal.course_id)
        instructor = self._instructors.get(proposal.instructor_id)
        if instructor is None:
            instructor = self._instructors[proposal.instructor_id] = self.repository.get_instructor(
                proposal.instructor_id
            )
        return room, course, instructor

    def _persisted_occupants(
        self, proposal: ScheduleProposal, exclude_schedule_id: str | None
    ) -> list[ScheduleSnapshot]:
        if not proposal.interval.is_valid:
            return []
        return self.repository.find_active_schedules(
            proposal.interval.date,
            room_id=proposal.room_id,
            instructor_id=proposal.instructor_id,
            exclude_schedule_id=exclude_schedule_id,
        )

    def validate(self, proposal: ScheduleProposal, exclude_schedule_id: str | None = None) -> ValidationResult:
        room, course, instructor = self._load_context(proposal)
        result = conflict_rules.evaluate(
            proposal,
            room=room,
            course=course,
            instructor=instructor,
            occupied=self._persisted_occupants(proposal, exclude_schedule_id),
            exclude_schedule_id=exclude_schedule_id,
        )
        if not result.accepted:
            logger.info(
                "Schedule proposal rejected for room %s on %s: %s",
                proposal.room_id,
                proposal.interval.date,
                ", ".join(kind.value for kind in result.kinds),
            )
        return result

    def validate_batch(self, proposals: Sequence[ScheduleProposal]) -> BatchValidationResult:
        """Validate every proposal, in order, against the store and all earlier entries.

        An overlap between two entries is reported on the later one only.
        Every entry is evaluated even after a failure so the caller gets the
        complete list.
        """
        results: list[ValidationResult] = []
        earlier: list[ScheduleSnapshot] = []
        for entry, proposal in enumerate(proposals, start=1):
            try:
                room, course, instructor = self._load_context(proposal)
            except ResourceNotFoundError as exc:
                exc.details["entry"] = entry
                raise
            result = conflict_rules.evaluate(
                proposal,
                room=room,
                course=course,
                instructor=instructor,
                occupied=[*self._persisted_occupants(proposal, None), *earlier],
            )
            results.append(result)
            earlier.append(
                ScheduleSnapshot(
                    room_id=proposal.room_id,
                    course_id=proposal.course_id,
                    instructor_id=proposal.instructor_id,
                    interval=proposal.interval,
                    entry=entry,
                    room_label=room.label,
                    course_label=course.label,
                    instructor_label=instructor.name,
                )
            )

        batch = BatchValidationResult(tuple(results))
        if not batch.accepted:
            logger.info(
                "Schedule batch rejected: %d of %d entries failed validation",
                len(batch.failed_entries),
                len(results),
            )
        return batch
