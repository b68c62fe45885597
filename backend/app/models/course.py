import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.user import User

course_instructors = Table(
    "course_instructors",
    Base.metadata,
    Column("course_id", String(36), ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("instructor_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (CheckConstraint("required_capacity >= 0", name="ck_courses_required_capacity"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    required_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    instructors: Mapped[list[User]] = relationship(secondary=course_instructors, lazy="selectin")

    @property
    def instructor_ids(self) -> list[str]:
        return sorted(instructor.id for instructor in self.instructors)
