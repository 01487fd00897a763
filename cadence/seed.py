from datetime import date, datetime, time, timedelta

from sqlalchemy import func, select

from . import db
from .domain import Weekday
from .models import ClassScheduleSlot, Enrollment, Holiday, Room, SchoolClass, Teacher
from .store import ScheduleStore


def seed_data() -> int:
    """Create a small, schedulable school; returns the number of classes created."""

    if db.session.scalar(select(func.count(Teacher.id))):
        return 0

    today = date.today()
    start = today - timedelta(days=today.weekday())

    alice = Teacher(name="Alice Tan", email="alice@example.com")
    bruno = Teacher(name="Bruno Lim", email="bruno@example.com")
    room_a = Room(name="Room A", capacity=12)
    room_b = Room(name="Room B", capacity=8)
    db.session.add_all([alice, bruno, room_a, room_b])
    db.session.add(Holiday(day=date(today.year, 12, 25), name="Christmas Day"))

    classes = [
        SchoolClass(
            name="Piano Basics A",
            level_tag="Beginner",
            phase_number=1,
            room=room_a,
            start_date=start,
            max_students=6,
            phase_count=3,
            sessions_per_phase=8,
            teachers=[alice],
            slots=[
                ClassScheduleSlot(weekday=Weekday.MONDAY, start_time=time(9, 0), end_time=time(10, 0)),
                ClassScheduleSlot(weekday=Weekday.WEDNESDAY, start_time=time(9, 0), end_time=time(10, 0)),
            ],
        ),
        SchoolClass(
            name="Piano Basics B",
            level_tag="Beginner",
            phase_number=1,
            room=room_b,
            start_date=start + timedelta(days=7),
            max_students=4,
            phase_count=3,
            sessions_per_phase=8,
            teachers=[bruno],
            slots=[
                ClassScheduleSlot(weekday=Weekday.TUESDAY, start_time=time(16, 0), end_time=time(17, 30)),
            ],
        ),
        SchoolClass(
            name="Theory Intermediate",
            level_tag="Intermediate",
            phase_number=2,
            room=room_a,
            start_date=start,
            max_students=10,
            phase_count=2,
            sessions_per_phase=10,
            session_duration_minutes=90,
            teachers=[alice, bruno],
            slots=[
                ClassScheduleSlot(weekday=Weekday.SATURDAY, start_time=time(10, 0), end_time=time(11, 30)),
            ],
        ),
    ]
    db.session.add_all(classes)

    now = datetime.utcnow()
    for offset, school_class in enumerate(classes):
        for student in range(3):
            school_class.enrollments.append(
                Enrollment(
                    student_id=100 * (offset + 1) + student,
                    phase_number=school_class.phase_number,
                    enrolled_at=now - timedelta(days=30 - student),
                )
            )
    db.session.commit()

    store = ScheduleStore()
    for school_class in classes:
        store.generate_sessions(school_class.id)
    return len(classes)
