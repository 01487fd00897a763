from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import AbstractSet, Iterable, Optional, Sequence

from .domain import Curriculum, PhaseSpan, SessionRecord, Weekday
from .errors import ValidationError
from .recurrence import iter_class_days, ordered_weekdays
from .results import Err, Ok, Result


def phase_spans_from_sessions(sessions: Iterable[SessionRecord]) -> list[PhaseSpan]:
    """Date boundaries of every phase that has live (non-cancelled) sessions."""

    dates: dict[int, list[date]] = defaultdict(list)
    for session in sessions:
        if session.is_cancelled:
            continue
        dates[session.phase_number].append(session.effective_date)
    return [
        PhaseSpan(phase, min(values), max(values))
        for phase, values in sorted(dates.items())
    ]


def projected_phase_spans(
    start_date: Optional[date],
    weekdays: Iterable[Weekday | int | str],
    curriculum: Curriculum,
    holidays: AbstractSet[date] = frozenset(),
) -> list[PhaseSpan]:
    enabled = ordered_weekdays(weekdays)
    if start_date is None or not enabled or curriculum.sessions_per_phase < 1:
        return [PhaseSpan(phase, None, None) for phase in range(1, curriculum.phase_count + 1)]

    days = iter_class_days(start_date, enabled, holidays)
    spans: list[PhaseSpan] = []
    for phase in range(1, curriculum.phase_count + 1):
        phase_days = [next(days) for _ in range(curriculum.sessions_per_phase)]
        spans.append(PhaseSpan(phase, phase_days[0], phase_days[-1]))
    return spans


def phase_spans_for(
    curriculum: Curriculum,
    start_date: Optional[date],
    weekdays: Iterable[Weekday | int | str],
    sessions: Iterable[SessionRecord] = (),
    holidays: AbstractSet[date] = frozenset(),
) -> list[PhaseSpan]:
    """Persisted boundaries where sessions exist, projected ones elsewhere."""

    persisted = {span.phase_number: span for span in phase_spans_from_sessions(sessions)}
    projected = projected_phase_spans(start_date, weekdays, curriculum, holidays)
    spans = {span.phase_number: span for span in projected}
    spans.update(persisted)
    return [spans[phase] for phase in sorted(spans)]


def check_phase_spans(spans: Sequence[PhaseSpan]) -> Result[list[PhaseSpan], ValidationError]:
    ordered = sorted(spans, key=lambda span: span.phase_number)
    previous: Optional[PhaseSpan] = None
    for span in ordered:
        if not span.is_resolved:
            continue
        if span.first_session_date > span.last_session_date:
            return Err(
                ValidationError(f"Phase {span.phase_number} ends before it starts", field="phases")
            )
        if previous is not None and span.first_session_date <= previous.last_session_date:
            return Err(
                ValidationError(
                    f"Phase {span.phase_number} overlaps phase {previous.phase_number}",
                    field="phases",
                )
            )
        previous = span
    return Ok(ordered)


def resolve_active_phase(today: date, phases: Sequence[PhaseSpan]) -> int:
    ordered = sorted(
        (span for span in phases if span.is_resolved), key=lambda span: span.phase_number
    )
    if not ordered:
        return 1

    for span in ordered:
        if span.contains(today):
            return span.phase_number

    if today < ordered[0].first_session_date:
        return ordered[0].phase_number

    for index, span in enumerate(ordered):
        if span.last_session_date < today:
            if index + 1 < len(ordered):
                return ordered[index + 1].phase_number
            return span.phase_number
    return 1


def phase_date_range(spans: Iterable[PhaseSpan], phase_number: int) -> Optional[tuple[date, date]]:
    for span in spans:
        if span.phase_number == phase_number and span.is_resolved:
            return span.first_session_date, span.last_session_date
    return None
