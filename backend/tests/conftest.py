import os

# The application engine is built at import time; keep it off the real database.
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.db.base import Base
from app.db.session import build_engine
from app.main import app
from app.models.course import Course
from app.models.room import Room, RoomType
from app.models.user import User, UserRole


@dataclass(frozen=True)
class Catalog:
    admin_id: str
    coordinator_id: str
    instructor_id: str
    other_instructor_id: str
    unassigned_instructor_id: str
    room_id: str
    small_room_id: str
    other_room_id: str
    course_id: str
    seminar_course_id: str


def seed_catalog(session_factory) -> Catalog:
    with session_factory() as session:
        admin = User(name="Ada Admin", email="admin@example.com", role=UserRole.admin)
        coordinator = User(name="Cora Coordinator", email="coordinator@example.com", role=UserRole.coordinator)
        instructor = User(name="Ian Instructor", email="ian@example.com", role=UserRole.instructor)
        other_instructor = User(name="Olga Instructor", email="olga@example.com", role=UserRole.instructor)
        unassigned = User(name="Uma Instructor", email="uma@example.com", role=UserRole.instructor)

        room = Room(code="R-101", name="Lecture Hall 101", type=RoomType.classroom, capacity=60)
        small_room = Room(code="R-102", name="Tutorial Room 102", type=RoomType.seminar, capacity=30)
        other_room = Room(code="R-201", name="Lecture Hall 201", type=RoomType.classroom, capacity=80)

        course = Course(code="CS101", name="Intro to Programming", required_capacity=50)
        course.instructors = [instructor, other_instructor]
        seminar = Course(code="CS390", name="Research Seminar", required_capacity=10)
        seminar.instructors = [instructor, other_instructor]

        session.add_all(
            [admin, coordinator, instructor, other_instructor, unassigned, room, small_room, other_room, course, seminar]
        )
        session.commit()
        return Catalog(
            admin_id=admin.id,
            coordinator_id=coordinator.id,
            instructor_id=instructor.id,
            other_instructor_id=other_instructor.id,
            unassigned_instructor_id=unassigned.id,
            room_id=room.id,
            small_room_id=small_room.id,
            other_room_id=other_room.id,
            course_id=course.id,
            seminar_course_id=seminar.id,
        )


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def file_session_factory(tmp_path):
    # A file database lets separate connections contend for the write lock.
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'schedules.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def catalog(session_factory) -> Catalog:
    return seed_catalog(session_factory)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def file_catalog(file_session_factory) -> Catalog:
    return seed_catalog(file_session_factory)
