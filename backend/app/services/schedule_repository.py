from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, time
import hashlib
from typing import Literal

from sqlalchemy import func, or_, select, text
from sqlalchemy.orm import Session

from app.core.exceptions import ConfigurationError, ResourceNotFoundError
from app.models.course import Course
from app.models.room import Room
from app.models.schedule import Schedule, ScheduleStatus
from app.models.user import User, UserRole
from app.services.intervals import TimeInterval
from app.services.scheduling_types import (
    CourseInfo,
    InstructorInfo,
    RoomInfo,
    ScheduleProposal,
    ScheduleSnapshot,
)

MUTABLE_FIELDS = ("room_id", "course_id", "instructor_id", "date", "start_time", "end_time")

# Dialects with a write-serialization strategy in ScheduleRepository.lock_keys.
LOCKING_DIALECTS = ("postgresql", "sqlite")


@dataclass(frozen=True, order=True)
class LockKey:
    kind: Literal["instructor", "room"]
    resource_id: str
    date: date

    def advisory_id(self) -> int:
        # Stable across processes, unlike hash(); pg_advisory_xact_lock takes a signed bigint.
        digest = hashlib.blake2b(
            f"schedule:{self.kind}:{self.resource_id}:{self.date.isoformat()}".encode(),
            digest_size=8,
        ).digest()
        return int.from_bytes(digest, "big", signed=True)


def lock_keys_for(proposal: ScheduleProposal) -> list[LockKey]:
    return [
        LockKey("room", proposal.room_id, proposal.interval.date),
        LockKey("instructor", proposal.instructor_id, proposal.interval.date),
    ]


@dataclass(frozen=True)
class ScheduleFilters:
    room_id: str | None = None
    course_id: str | None = None
    instructor_id: str | None = None
    status: ScheduleStatus | None = None
    start_date: date | None = None
    end_date: date | None = None


def proposal_from_schedule(schedule: Schedule) -> ScheduleProposal:
    return ScheduleProposal(
        room_id=schedule.room_id,
        course_id=schedule.course_id,
        instructor_id=schedule.instructor_id,
        interval=TimeInterval(schedule.date, schedule.start_time, schedule.end_time),
    )


class ScheduleRepository:
    """Store access for the scheduling engine.

    Every method runs on the caller's session and therefore inside whatever
    transaction the caller opened; nothing here commits.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_room(self, room_id: str) -> RoomInfo:
        room = self.db.get(Room, room_id)
        if room is None:
            raise ResourceNotFoundError("Room", room_id)
        return RoomInfo(id=room.id, capacity=room.capacity, label=room.code)

    def get_course(self, course_id: str) -> CourseInfo:
        course = self.db.get(Course, course_id)
        if course is None:
            raise ResourceNotFoundError("Course", course_id)
        return CourseInfo(
            id=course.id,
            required_capacity=course.required_capacity or 0,
            instructor_ids=frozenset(course.instructor_ids),
            label=course.code,
        )

    def get_instructor(self, instructor_id: str) -> InstructorInfo:
        user = self.db.get(User, instructor_id)
        if user is None or user.role != UserRole.instructor:
            raise ResourceNotFoundError("Instructor", instructor_id)
        return InstructorInfo(id=user.id, name=user.name)

    def get_schedule(self, schedule_id: str, *, for_update: bool = False) -> Schedule:
        statement = select(Schedule).where(Schedule.id == schedule_id)
        if for_update:
            statement = statement.with_for_update().execution_options(populate_existing=True)
        schedule = self.db.execute(statement).scalar_one_or_none()
        if schedule is None:
            raise ResourceNotFoundError("Schedule", schedule_id)
        return schedule

    def find_active_schedules(
        self,
        on_date: date,
        *,
        room_id: str | None = None,
        instructor_id: str | None = None,
        exclude_schedule_id: str | None = None,
    ) -> list[ScheduleSnapshot]:
        statement = (
            select(Schedule, Room.code, Course.code, User.name)
            .join(Room, Room.id == Schedule.room_id)
            .join(Course, Course.id == Schedule.course_id)
            .join(User, User.id == Schedule.instructor_id)
            .where(Schedule.date == on_date, Schedule.status == ScheduleStatus.active)
        )
        keys = []
        if room_id is not None:
            keys.append(Schedule.room_id == room_id)
        if instructor_id is not None:
            keys.append(Schedule.instructor_id == instructor_id)
        if keys:
            statement = statement.where(or_(*keys))
        if exclude_schedule_id is not None:
            statement = statement.where(Schedule.id != exclude_schedule_id)
        statement = statement.order_by(Schedule.start_time, Schedule.id)

        return [
            ScheduleSnapshot(
                id=schedule.id,
                room_id=schedule.room_id,
                course_id=schedule.course_id,
                instructor_id=schedule.instructor_id,
                interval=TimeInterval(schedule.date, schedule.start_time, schedule.end_time),
                room_label=room_code,
                course_label=course_code,
                instructor_label=instructor_name,
            )
            for schedule, room_code, course_code, instructor_name in self.db.execute(statement).all()
        ]

    def find_by_natural_key(self, room_id: str, on_date: date, start_time: time) -> Schedule | None:
        statement = select(Schedule).where(
            Schedule.room_id == room_id,
            Schedule.date == on_date,
            Schedule.start_time == start_time,
            Schedule.status == ScheduleStatus.active,
        )
        return self.db.execute(statement).scalars().first()

    def lock_keys(self, keys: Iterable[LockKey]) -> None:
        """Serialize writers that touch the same room/date or instructor/date.

        Keys are taken in sorted order so two writers never wait on each other
        in opposite directions.
        """
        ordered = sorted(set(keys))
        if not ordered:
            return
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            for key in ordered:
                self.db.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": key.advisory_id()})
        elif dialect == "sqlite":
            # The session's transaction opens with BEGIN IMMEDIATE; issuing a
            # statement makes sure it has started before anything is read.
            self.db.execute(text("SELECT 1"))
        else:
            raise ConfigurationError(
                f"Schedule writes are not supported on {dialect}; supported dialects: "
                f"{', '.join(LOCKING_DIALECTS)}"
            )

    def insert_schedule(self, proposal: ScheduleProposal, *, created_by: str | None = None) -> str:
        schedule = Schedule(
            room_id=proposal.room_id,
            course_id=proposal.course_id,
            instructor_id=proposal.instructor_id,
            date=proposal.interval.date,
            start_time=proposal.interval.start,
            end_time=proposal.interval.end,
            status=ScheduleStatus.active,
            created_by=created_by,
        )
        self.db.add(schedule)
        self.db.flush()
        return schedule.id

    def update_schedule(self, schedule_id: str, fields: dict) -> Schedule:
        unknown = set(fields) - set(MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported schedule field(s): {', '.join(sorted(unknown))}")
        schedule = self.get_schedule(schedule_id)
        for key, value in fields.items():
            setattr(schedule, key, value)
        self.db.flush()
        return schedule

    def cancel_schedule(self, schedule_id: str) -> Schedule:
        schedule = self.get_schedule(schedule_id)
        schedule.status = ScheduleStatus.cancelled
        self.db.flush()
        return schedule

    def list_schedules(self, filters: ScheduleFilters, *, page: int, limit: int) -> tuple[list[Schedule], int]:
        statement = select(Schedule)
        if filters.room_id is not None:
            statement = statement.where(Schedule.room_id == filters.room_id)
        if filters.course_id is not None:
            statement = statement.where(Schedule.course_id == filters.course_id)
        if filters.instructor_id is not None:
            statement = statement.where(Schedule.instructor_id == filters.instructor_id)
        if filters.status is not None:
            statement = statement.where(Schedule.status == filters.status)
        if filters.start_date is not None:
            statement = statement.where(Schedule.date >= filters.start_date)
        if filters.end_date is not None:
            statement = statement.where(Schedule.date <= filters.end_date)

        total = self.db.execute(select(func.count()).select_from(statement.subquery())).scalar_one()
        rows = self.db.execute(
            statement.order_by(Schedule.date, Schedule.start_time, Schedule.id)
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars()
        return list(rows), total
