"""Recurrence projection, end dates and bulk session generation."""
from __future__ import annotations

from datetime import date, timedelta
from typing import AbstractSet, Iterable, Iterator, Optional, Sequence

from .domain import Curriculum, ScheduleSlot, SessionRecord, SessionStatus, Weekday
from .errors import IndeterminateComputation, ValidationError
from .results import Err, Ok, Result
from .utils import shift_time


def ordered_weekdays(weekdays: Iterable[Weekday | int | str]) -> tuple[Weekday, ...]:
    return tuple(sorted({Weekday.parse(day) for day in weekdays}))


def first_class_day(start_date: date, weekdays: Sequence[Weekday]) -> date:
    """Return the date the recurring cycle starts from.

    ``start_date`` itself when its weekday is enabled, otherwise the nearest
    following date whose weekday is enabled (at most six days ahead).
    """

    start_weekday = Weekday.of(start_date)
    offset = min((day - start_weekday) % 7 for day in weekdays)
    return start_date + timedelta(days=offset)


def project_session_date(
    start_date: date,
    enabled_weekdays: Iterable[Weekday | int | str],
    phase_number: int,
    session_in_phase: int,
    sessions_per_phase: int,
) -> date:
    weekdays = ordered_weekdays(enabled_weekdays)
    if not weekdays:
        raise ValueError("At least one weekday must be enabled")
    if phase_number < 1 or session_in_phase < 1 or sessions_per_phase < 1:
        raise ValueError("Phase and session numbers are 1-based and positive")

    overall_index = (phase_number - 1) * sessions_per_phase + session_in_phase - 1
    cycle_length = len(weekdays)
    cycle_position = overall_index % cycle_length
    week_offset = overall_index // cycle_length

    base = first_class_day(start_date, weekdays)
    position = weekdays.index(Weekday.of(base))
    days_to_add = 0
    for _ in range(cycle_position):
        following = (position + 1) % cycle_length
        days_to_add += (weekdays[following] - weekdays[position]) % 7
        position = following
    return base + timedelta(days=days_to_add + week_offset * 7)


def iter_class_days(
    start_date: date,
    weekdays: Sequence[Weekday],
    holidays: AbstractSet[date] = frozenset(),
) -> Iterator[date]:
    """Yield every enabled, non-holiday day from ``start_date`` onwards."""

    enabled = set(weekdays)
    if not enabled:
        return
    current = start_date
    while True:
        if Weekday.of(current) in enabled and current not in holidays:
            yield current
        current += timedelta(days=1)


def next_class_days(
    after: date,
    weekdays: Sequence[Weekday],
    count: int,
    holidays: AbstractSet[date] = frozenset(),
) -> list[date]:
    if count <= 0 or not weekdays:
        return []
    days: list[date] = []
    for day in iter_class_days(after + timedelta(days=1), weekdays, holidays):
        days.append(day)
        if len(days) == count:
            break
    return days


def compute_end_date(
    start_date: date,
    enabled_weekdays: Iterable[Weekday | int | str],
    total_sessions: int,
    holidays: AbstractSet[date] = frozenset(),
    actual_sessions: Optional[Iterable[SessionRecord]] = None,
) -> Result[date, IndeterminateComputation]:
    if actual_sessions is not None:
        live = [session for session in actual_sessions if not session.is_cancelled]
        if live:
            return Ok(max(session.effective_date for session in live))

    weekdays = ordered_weekdays(enabled_weekdays)
    if not weekdays:
        return Err(IndeterminateComputation("No weekday is enabled for this class"))
    if total_sessions <= 0:
        return Err(IndeterminateComputation("The curriculum has no sessions to schedule"))

    counted = 0
    for day in iter_class_days(start_date, weekdays, holidays):
        counted += 1
        if counted == total_sessions:
            return Ok(day)
    raise AssertionError("unreachable")  # pragma: no cover


def check_slots(slots: Iterable[ScheduleSlot]) -> Result[tuple[ScheduleSlot, ...], ValidationError]:
    ordered = tuple(sorted(slots, key=lambda slot: slot.weekday))
    if not ordered:
        return Err(ValidationError("At least one weekday slot is required", field="slots"))
    seen: set[Weekday] = set()
    for slot in ordered:
        if slot.start_time >= slot.end_time:
            return Err(
                ValidationError(
                    f"{slot.weekday.label}: start time must be before end time",
                    field="slots",
                )
            )
        if slot.weekday in seen:
            return Err(
                ValidationError(f"{slot.weekday.label} is scheduled more than once", field="slots")
            )
        seen.add(slot.weekday)
    return Ok(ordered)


def check_curriculum(curriculum: Curriculum) -> Result[Curriculum, ValidationError]:
    if curriculum.phase_count < 1:
        return Err(ValidationError("A curriculum needs at least one phase", field="phase_count"))
    if curriculum.sessions_per_phase < 1:
        return Err(
            ValidationError(
                "A curriculum needs at least one session per phase",
                field="sessions_per_phase",
            )
        )
    if curriculum.session_duration is not None and curriculum.session_duration <= timedelta(0):
        return Err(ValidationError("Session duration must be positive", field="session_duration"))
    return Ok(curriculum)


def generate_session_plan(
    start_date: date,
    slots: Sequence[ScheduleSlot],
    curriculum: Curriculum,
    holidays: AbstractSet[date] = frozenset(),
    teacher_id: Optional[int] = None,
) -> Result[list[SessionRecord], ValidationError]:
    """Build every session of a class, phase by phase.

    Sessions land on consecutive class days; holidays are skipped without
    consuming a session. A fixed ``session_duration`` on the curriculum
    overrides the end time of every slot.
    """

    checked = check_slots(slots)
    if not checked.is_ok:
        return checked
    checked_curriculum = check_curriculum(curriculum)
    if not checked_curriculum.is_ok:
        return checked_curriculum

    by_weekday = {slot.weekday: slot for slot in checked.value}
    weekdays = tuple(by_weekday)
    days = iter_class_days(start_date, weekdays, holidays)

    sessions: list[SessionRecord] = []
    for phase in range(1, curriculum.phase_count + 1):
        for number in range(1, curriculum.sessions_per_phase + 1):
            day = next(days)
            slot = by_weekday[Weekday.of(day)]
            end_time = slot.end_time
            if curriculum.session_duration is not None:
                end_time = shift_time(slot.start_time, curriculum.session_duration)
            sessions.append(
                SessionRecord(
                    phase_number=phase,
                    phase_session_number=number,
                    scheduled_date=day,
                    start_time=slot.start_time,
                    end_time=end_time,
                    status=SessionStatus.SCHEDULED,
                    assigned_teacher_id=teacher_id,
                )
            )
    return Ok(sessions)
