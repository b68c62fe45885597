from datetime import date, time

from app.services import conflict_rules
from app.services.intervals import TimeInterval
from app.services.scheduling_types import (
    CourseInfo,
    InstructorInfo,
    RoomInfo,
    ScheduleProposal,
    ScheduleSnapshot,
    ViolationKind,
)

DAY = date(2026, 11, 2)
ROOM = RoomInfo(id="room-1", capacity=40, label="R-101")
COURSE = CourseInfo(id="course-1", required_capacity=30, instructor_ids=frozenset({"inst-1", "inst-2"}), label="CS101")
INSTRUCTOR = InstructorInfo(id="inst-1", name="Ian Instructor")


def proposal(start="09:00", end="10:00", *, room_id="room-1", instructor_id="inst-1", on=DAY):
    return ScheduleProposal(
        room_id=room_id,
        course_id="course-1",
        instructor_id=instructor_id,
        interval=TimeInterval(on, time.fromisoformat(start), time.fromisoformat(end)),
    )


def occupant(start, end, *, schedule_id="sched-1", room_id="room-1", instructor_id="inst-9", on=DAY):
    return ScheduleSnapshot(
        id=schedule_id,
        room_id=room_id,
        course_id="course-7",
        instructor_id=instructor_id,
        interval=TimeInterval(on, time.fromisoformat(start), time.fromisoformat(end)),
        room_label="R-101",
        course_label="MA201",
    )


def test_clean_proposal_is_accepted():
    result = conflict_rules.evaluate(proposal(), room=ROOM, course=COURSE, instructor=INSTRUCTOR, occupied=[])
    assert result.accepted
    assert result.violations == ()


def test_room_conflict_names_the_blocking_schedule():
    violations = conflict_rules.check_room_exclusivity(
        proposal("10:00", "11:00"), [occupant("09:30", "10:30")], room=ROOM
    )
    assert [item.kind for item in violations] == [ViolationKind.room_conflict]
    assert violations[0].schedule_id == "sched-1"
    assert "R-101" in violations[0].message
    assert "MA201" in violations[0].message


def test_back_to_back_bookings_are_allowed():
    occupied = [occupant("08:00", "09:00", instructor_id="inst-1"), occupant("10:00", "11:00", instructor_id="inst-1")]
    result = conflict_rules.evaluate(proposal(), room=ROOM, course=COURSE, instructor=INSTRUCTOR, occupied=occupied)
    assert result.accepted


def test_other_rooms_and_dates_are_ignored():
    occupied = [
        occupant("09:00", "10:00", room_id="room-2"),
        occupant("09:00", "10:00", on=date(2026, 11, 3)),
    ]
    assert conflict_rules.check_room_exclusivity(proposal(), occupied) == []


def test_instructor_conflict_in_another_room():
    violations = conflict_rules.check_instructor_exclusivity(
        proposal(), [occupant("09:15", "09:45", room_id="room-2", instructor_id="inst-1")], instructor=INSTRUCTOR
    )
    assert [item.kind for item in violations] == [ViolationKind.instructor_conflict]
    assert "Ian Instructor" in violations[0].message


def test_excluded_schedule_does_not_conflict_with_itself():
    occupied = [occupant("09:00", "10:00", schedule_id="self", instructor_id="inst-1")]
    result = conflict_rules.evaluate(
        proposal(), room=ROOM, course=COURSE, instructor=INSTRUCTOR, occupied=occupied, exclude_schedule_id="self"
    )
    assert result.accepted


def test_capacity_equal_to_requirement_is_enough():
    assert conflict_rules.check_capacity(RoomInfo(id="r", capacity=30), COURSE) == []
    violations = conflict_rules.check_capacity(RoomInfo(id="r", capacity=29), COURSE)
    assert violations[0].kind == ViolationKind.capacity_violation
    assert violations[0].message == "Room capacity (29) is less than required capacity (30)"


def test_unassigned_instructor_is_reported():
    violations = conflict_rules.check_assignment(
        proposal(instructor_id="inst-3"), COURSE, instructor=InstructorInfo(id="inst-3", name="Uma")
    )
    assert [item.kind for item in violations] == [ViolationKind.instructor_not_assigned]
    assert violations[0].message == "Instructor Uma is not assigned to course CS101"


def test_invalid_range_skips_overlap_checks():
    occupied = [occupant("09:00", "12:00", instructor_id="inst-1")]
    result = conflict_rules.evaluate(
        proposal("11:00", "10:00"), room=ROOM, course=COURSE, instructor=INSTRUCTOR, occupied=occupied
    )
    assert result.kinds == [ViolationKind.invalid_time_range]
    assert result.messages == ["End time must be after start time"]


def test_all_violations_are_collected_in_rule_order():
    small_room = RoomInfo(id="room-1", capacity=10, label="R-101")
    occupied = [occupant("09:00", "10:00", instructor_id="inst-3")]
    result = conflict_rules.evaluate(
        proposal(instructor_id="inst-3"),
        room=small_room,
        course=COURSE,
        instructor=InstructorInfo(id="inst-3", name="Uma"),
        occupied=occupied,
    )
    assert result.kinds == [
        ViolationKind.room_conflict,
        ViolationKind.instructor_conflict,
        ViolationKind.capacity_violation,
        ViolationKind.instructor_not_assigned,
    ]
