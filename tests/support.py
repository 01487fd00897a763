from __future__ import annotations

import unittest
from datetime import date, datetime, time
from typing import Iterable, Optional

from cadence import create_app, db
from cadence.config import TestConfig
from cadence.domain import Weekday
from cadence.models import ClassScheduleSlot, Enrollment, Room, SchoolClass, Teacher


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.app = create_app(TestConfig)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

    def tearDown(self) -> None:
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def make_teacher(self, name: str) -> Teacher:
        teacher = Teacher(name=name)
        db.session.add(teacher)
        db.session.commit()
        return teacher

    def make_room(self, name: str) -> Room:
        room = Room(name=name)
        db.session.add(room)
        db.session.commit()
        return room

    def make_class(
        self,
        name: str,
        *,
        slots: Iterable[tuple[Weekday, time, time]],
        start_date: Optional[date] = date(2025, 1, 6),
        room: Optional[Room] = None,
        teachers: Iterable[Teacher] = (),
        level_tag: Optional[str] = "Beginner",
        phase_number: Optional[int] = 1,
        phase_count: int = 2,
        sessions_per_phase: int = 4,
        max_students: Optional[int] = None,
        status: str = "Active",
        students: Iterable[tuple[int, datetime]] = (),
    ) -> SchoolClass:
        school_class = SchoolClass(
            name=name,
            level_tag=level_tag,
            phase_number=phase_number,
            status=status,
            room=room,
            start_date=start_date,
            max_students=max_students,
            phase_count=phase_count,
            sessions_per_phase=sessions_per_phase,
            teachers=list(teachers),
            slots=[
                ClassScheduleSlot(weekday=int(weekday), start_time=start, end_time=end)
                for weekday, start, end in slots
            ],
            enrollments=[
                Enrollment(student_id=student_id, phase_number=phase_number, enrolled_at=enrolled_at)
                for student_id, enrolled_at in students
            ],
        )
        db.session.add(school_class)
        db.session.commit()
        return school_class
