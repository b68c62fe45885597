import datetime as dt

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.schedule import ScheduleStatus
from app.services.intervals import TimeInterval
from app.services.scheduling_types import ScheduleProposal


def ensure_naive_time(value: dt.time | None) -> dt.time | None:
    # Stored times are wall-clock times of the schedule date and never carry an offset.
    if value is not None and value.tzinfo is not None:
        raise ValueError("Time must not carry a UTC offset")
    return value


class ScheduleCreate(BaseModel):
    room_id: str = Field(min_length=1, max_length=36)
    course_id: str = Field(min_length=1, max_length=36)
    instructor_id: str = Field(min_length=1, max_length=36)
    date: dt.date
    # Ordering is not checked here: start >= end is reported as an InvalidTimeRange violation.
    start_time: dt.time
    end_time: dt.time

    @field_validator("start_time", "end_time")
    @classmethod
    def reject_utc_offset(cls, value):
        return ensure_naive_time(value)

    def to_proposal(self) -> ScheduleProposal:
        return ScheduleProposal(
            room_id=self.room_id,
            course_id=self.course_id,
            instructor_id=self.instructor_id,
            interval=TimeInterval(self.date, self.start_time, self.end_time),
        )


class ScheduleUpdate(BaseModel):
    room_id: str | None = Field(default=None, min_length=1, max_length=36)
    course_id: str | None = Field(default=None, min_length=1, max_length=36)
    instructor_id: str | None = Field(default=None, min_length=1, max_length=36)
    date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def reject_utc_offset(cls, value):
        return ensure_naive_time(value)

    @model_validator(mode="after")
    def validate_fields(self) -> "ScheduleUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        nulls = sorted(name for name in self.model_fields_set if getattr(self, name) is None)
        if nulls:
            raise ValueError(f"Field(s) cannot be null: {', '.join(nulls)}")
        return self


class ScheduleOut(BaseModel):
    id: str
    room_id: str
    course_id: str
    instructor_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    status: ScheduleStatus
    created_by: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    model_config = {"from_attributes": True}


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ScheduleListOut(BaseModel):
    data: list[ScheduleOut]
    pagination: PaginationOut


class ScheduleBulkOut(BaseModel):
    created: int
    ids: list[str]
