"""Suspending sessions and scheduling their makeups.

The workflow walks through ``SelectingSessions -> ChoosingStrategy ->
SchedulingMakeupManually | PreviewingAutoMakeup -> Committed``. Nothing is
written before :meth:`SuspensionWorkflow.commit`; abandoning the object at
any earlier state leaves no trace.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, time, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from .domain import (
    ClassTimetable,
    MakeupStrategy,
    ScheduleSlot,
    SessionRecord,
    SessionStatus,
    SuspensionPlan,
    Weekday,
)
from .errors import ConflictError, ScheduleError, ValidationError
from .phases import phase_date_range, phase_spans_for
from .recurrence import compute_end_date, next_class_days
from .results import Err, Ok, Result
from .utils import shift_time

if TYPE_CHECKING:  # pragma: no cover
    from .store import ScheduleStore


logger = logging.getLogger(__name__)


class SuspensionState(str, Enum):
    SELECTING_SESSIONS = "SelectingSessions"
    CHOOSING_STRATEGY = "ChoosingStrategy"
    SCHEDULING_MAKEUP_MANUALLY = "SchedulingMakeupManually"
    PREVIEWING_AUTO_MAKEUP = "PreviewingAutoMakeup"
    COMMITTED = "Committed"


@dataclass(frozen=True)
class ManualMakeup:
    session_id: int
    makeup_date: date
    start_time: time


@dataclass(frozen=True)
class CommittedSuspension:
    suspension_id: int
    plan: SuspensionPlan
    makeup_session_ids: tuple[int, ...]

    def as_dict(self) -> dict[str, object]:
        payload = self.plan.as_dict()
        payload["suspension_id"] = self.suspension_id
        payload["makeup_session_ids"] = list(self.makeup_session_ids)
        return payload


def sessions_in_period(sessions: Iterable[SessionRecord], start: date, end: date) -> list[SessionRecord]:
    """Scheduled sessions whose effective date falls in ``[start, end]``."""

    return sorted(
        (
            session
            for session in sessions
            if session.status == SessionStatus.SCHEDULED and start <= session.effective_date <= end
        ),
        key=lambda session: (session.effective_date, session.start_time),
    )


class SuspensionWorkflow:
    def __init__(self, timetable: ClassTimetable, reason: str) -> None:
        self.timetable = timetable
        self.reason = (reason or "").strip()
        self.state = SuspensionState.SELECTING_SESSIONS
        self.strategy: Optional[MakeupStrategy] = None
        self._selected_ids: tuple[int, ...] = ()
        self._manual: dict[int, ManualMakeup] = {}

    @property
    def selected(self) -> tuple[SessionRecord, ...]:
        sessions = (self.timetable.session_by_id(session_id) for session_id in self._selected_ids)
        return tuple(session for session in sessions if session is not None)

    def _require(self, *states: SuspensionState) -> Optional[Err]:
        if self.state in states:
            return None
        return Err(
            ValidationError(f"This step is not available while the suspension is {self.state.value}")
        )

    # -- SelectingSessions ---------------------------------------------

    def select_sessions(self, session_ids: Sequence[int]) -> Result[tuple[SessionRecord, ...], ValidationError]:
        blocked = self._require(
            SuspensionState.SELECTING_SESSIONS,
            SuspensionState.CHOOSING_STRATEGY,
            SuspensionState.SCHEDULING_MAKEUP_MANUALLY,
            SuspensionState.PREVIEWING_AUTO_MAKEUP,
        )
        if blocked:
            return blocked
        checked = self._check_selection(self.timetable, session_ids)
        if not checked.is_ok:
            return checked

        self._selected_ids = tuple(session.id for session in checked.value)
        self._manual.clear()
        self.strategy = None
        self.state = SuspensionState.CHOOSING_STRATEGY
        return checked

    def _check_selection(
        self, timetable: ClassTimetable, session_ids: Sequence[int]
    ) -> Result[tuple[SessionRecord, ...], ValidationError]:
        if not self.reason:
            return Err(ValidationError("A suspension needs a reason", field="reason"))
        ids = list(dict.fromkeys(session_ids))
        if not ids:
            return Err(ValidationError("Select at least one session to suspend", field="session_ids"))

        sessions: list[SessionRecord] = []
        for session_id in ids:
            session = timetable.session_by_id(session_id)
            if session is None:
                return Err(
                    ValidationError(
                        f"Session {session_id} does not belong to class {timetable.class_id}",
                        field="session_ids",
                    )
                )
            if session.status != SessionStatus.SCHEDULED:
                return Err(
                    ValidationError(
                        f"Session {session_id} is {session.status.value} and cannot be suspended",
                        field="session_ids",
                    )
                )
            sessions.append(session)

        phases = {session.phase_number for session in sessions}
        if len(phases) > 1:
            return Err(
                ValidationError(
                    "All suspended sessions must belong to the same phase "
                    f"(got phases {', '.join(str(phase) for phase in sorted(phases))})",
                    field="session_ids",
                )
            )
        sessions.sort(key=lambda session: session.identity)
        return Ok(tuple(sessions))

    # -- ChoosingStrategy ----------------------------------------------

    def choose_strategy(self, strategy: MakeupStrategy | str) -> Result[SuspensionState, ValidationError]:
        blocked = self._require(
            SuspensionState.CHOOSING_STRATEGY,
            SuspensionState.SCHEDULING_MAKEUP_MANUALLY,
            SuspensionState.PREVIEWING_AUTO_MAKEUP,
        )
        if blocked:
            return blocked
        try:
            chosen = MakeupStrategy(strategy)
        except ValueError:
            return Err(ValidationError(f"Unknown makeup strategy: {strategy!r}", field="strategy"))

        self.strategy = chosen
        if chosen == MakeupStrategy.ADD_TO_LAST_PHASE:
            self.state = SuspensionState.PREVIEWING_AUTO_MAKEUP
        else:
            self._manual.clear()
            self.state = SuspensionState.SCHEDULING_MAKEUP_MANUALLY
        return Ok(self.state)

    # -- SchedulingMakeupManually --------------------------------------

    def schedule_makeup(
        self, session_id: int, makeup_date: date, start_time: time
    ) -> Result[SessionRecord, ValidationError]:
        blocked = self._require(SuspensionState.SCHEDULING_MAKEUP_MANUALLY)
        if blocked:
            return blocked
        if session_id not in self._selected_ids:
            return Err(
                ValidationError(f"Session {session_id} is not being suspended", field="session_id")
            )
        makeup = ManualMakeup(session_id, makeup_date, start_time)
        built = self._manual_record(self.timetable, makeup, number=0)
        if not built.is_ok:
            return built
        self._manual[session_id] = makeup
        return built

    def _manual_record(
        self, timetable: ClassTimetable, makeup: ManualMakeup, number: int
    ) -> Result[SessionRecord, ValidationError]:
        original = timetable.session_by_id(makeup.session_id)
        if original is None:
            return Err(ValidationError(f"Session {makeup.session_id} no longer exists", field="session_id"))

        spans = phase_spans_for(
            timetable.curriculum,
            timetable.start_date,
            timetable.weekdays,
            timetable.sessions,
            timetable.holidays,
        )
        bounds = phase_date_range(spans, original.phase_number)
        if bounds is None:
            return Err(
                ValidationError(
                    f"Phase {original.phase_number} has no known date range", field="makeup_date"
                )
            )
        if not bounds[0] <= makeup.makeup_date <= bounds[1]:
            return Err(
                ValidationError(
                    f"Makeup date {makeup.makeup_date.isoformat()} is outside phase "
                    f"{original.phase_number} ({bounds[0].isoformat()} to {bounds[1].isoformat()})",
                    field="makeup_date",
                )
            )
        try:
            end_time = shift_time(makeup.start_time, original.duration)
        except ValueError:
            return Err(ValidationError("The makeup session must end on the same day", field="start_time"))

        return Ok(
            SessionRecord(
                phase_number=original.phase_number,
                phase_session_number=number,
                scheduled_date=makeup.makeup_date,
                start_time=makeup.start_time,
                end_time=end_time,
                status=SessionStatus.RESCHEDULED,
                assigned_teacher_id=original.assigned_teacher_id,
                substitute_teacher_id=original.substitute_teacher_id,
                makeup_for_session_id=original.id,
                notes=f"Makeup for session {original.phase_number}.{original.phase_session_number} "
                f"({self.reason})",
            )
        )

    # -- plans ---------------------------------------------------------

    def _remaining_sessions(self, timetable: ClassTimetable) -> list[SessionRecord]:
        suspended = set(self._selected_ids)
        return [
            session
            for session in timetable.sessions
            if session.id not in suspended and not session.is_cancelled
        ]

    def _auto_makeups(self, timetable: ClassTimetable) -> Result[list[SessionRecord], ValidationError]:
        suspended = [timetable.session_by_id(session_id) for session_id in self._selected_ids]
        if not timetable.weekdays:
            return Err(ValidationError("The class has no weekly schedule", field="slots"))

        last_phase = max(
            [timetable.curriculum.phase_count, *(session.phase_number for session in timetable.sessions)]
        )
        numbers = [
            session.phase_session_number
            for session in timetable.sessions
            if session.phase_number == last_phase
        ]
        next_number = max(numbers, default=timetable.curriculum.sessions_per_phase) + 1

        remaining = self._remaining_sessions(timetable)
        if remaining:
            after = max(session.effective_date for session in remaining)
        elif timetable.start_date is not None:
            after = timetable.start_date - timedelta(days=1)
        else:
            return Err(ValidationError("The class has no start date", field="start_date"))

        days = next_class_days(after, timetable.weekdays, len(suspended), timetable.holidays)
        makeups: list[SessionRecord] = []
        for offset, (original, day) in enumerate(zip(suspended, days)):
            slot: ScheduleSlot = timetable.slot_for(Weekday.of(day))
            end_time = slot.end_time
            if timetable.curriculum.session_duration is not None:
                end_time = shift_time(slot.start_time, timetable.curriculum.session_duration)
            makeups.append(
                SessionRecord(
                    phase_number=last_phase,
                    phase_session_number=next_number + offset,
                    scheduled_date=day,
                    start_time=slot.start_time,
                    end_time=end_time,
                    status=SessionStatus.SCHEDULED,
                    assigned_teacher_id=original.assigned_teacher_id,
                    makeup_for_session_id=original.id,
                    notes=f"Makeup for session {original.phase_number}.{original.phase_session_number} "
                    f"({self.reason})",
                )
            )
        return Ok(makeups)

    def _manual_makeups(self, timetable: ClassTimetable) -> Result[list[SessionRecord], ValidationError]:
        missing = [session_id for session_id in self._selected_ids if session_id not in self._manual]
        if missing:
            return Err(
                ValidationError(
                    f"No makeup scheduled for session(s) {', '.join(str(i) for i in missing)}",
                    field="makeups",
                )
            )
        phase = self.selected[0].phase_number
        next_number = max(
            session.phase_session_number for session in timetable.sessions if session.phase_number == phase
        ) + 1
        makeups: list[SessionRecord] = []
        for offset, session_id in enumerate(self._selected_ids):
            built = self._manual_record(timetable, self._manual[session_id], next_number + offset)
            if not built.is_ok:
                return built
            makeups.append(built.value)
        return Ok(makeups)

    def _build_plan(self, timetable: ClassTimetable) -> Result[SuspensionPlan, ValidationError]:
        if self.strategy == MakeupStrategy.ADD_TO_LAST_PHASE:
            built = self._auto_makeups(timetable)
        else:
            built = self._manual_makeups(timetable)
        if not built.is_ok:
            return built
        makeups = built.value

        end_date = timetable.end_date
        if timetable.start_date is not None:
            computed = compute_end_date(
                timetable.start_date,
                timetable.weekdays,
                timetable.curriculum.total_sessions,
                timetable.holidays,
                actual_sessions=[*self._remaining_sessions(timetable), *makeups],
            )
            if computed.is_ok:
                end_date = computed.value

        return Ok(
            SuspensionPlan(
                class_id=timetable.class_id,
                reason=self.reason,
                strategy=self.strategy,
                cancelled_session_ids=self._selected_ids,
                makeup_sessions=tuple(makeups),
                end_date=end_date,
            )
        )

    def preview(self) -> Result[SuspensionPlan, ValidationError]:
        blocked = self._require(
            SuspensionState.SCHEDULING_MAKEUP_MANUALLY, SuspensionState.PREVIEWING_AUTO_MAKEUP
        )
        if blocked:
            return blocked
        return self._build_plan(self.timetable)

    # -- Committed -----------------------------------------------------

    def _makeup_conflicts(self, store: "ScheduleStore", timetable: ClassTimetable, plan: SuspensionPlan):
        conflicts = []
        for makeup in plan.makeup_sessions:
            if makeup.status != SessionStatus.RESCHEDULED:
                continue
            slot = ScheduleSlot(Weekday.of(makeup.scheduled_date), makeup.start_time, makeup.end_time)
            conflicts.extend(
                store.detect_conflicts(
                    [slot],
                    timetable.room_id,
                    timetable.teacher_ids,
                    exclude_class_ids={timetable.class_id},
                    candidate_class_id=timetable.class_id,
                )
            )
        return conflicts

    def commit(self, store: "ScheduleStore") -> Result[CommittedSuspension, ScheduleError]:
        """Re-validate against the current database state and write atomically."""

        blocked = self._require(
            SuspensionState.SCHEDULING_MAKEUP_MANUALLY, SuspensionState.PREVIEWING_AUTO_MAKEUP
        )
        if blocked:
            return blocked
        class_id = self.timetable.class_id
        try:
            with store.transaction():
                timetable = store.load_timetable(class_id)
                self._check_selection(timetable, self._selected_ids).unwrap()
                plan = self._build_plan(timetable).unwrap()
                conflicts = self._makeup_conflicts(store, timetable, plan)
                if conflicts:
                    raise ConflictError(conflicts, "Makeup sessions would double-book a room or teacher")
                suspension = store.commit_suspension(plan)
                suspension_id = suspension.id
                makeup_ids = tuple(suspension.makeup_ids)
        except ScheduleError as exc:
            logger.warning("Suspension of class %s refused: %s", class_id, exc)
            return Err(exc)

        self.timetable = timetable
        self.state = SuspensionState.COMMITTED
        logger.info(
            "Suspended %s session(s) of class %s (%s), %s makeup(s) created",
            len(plan.cancelled_session_ids),
            class_id,
            plan.strategy.value,
            len(makeup_ids),
        )
        makeups = tuple(
            replace(record, id=makeup_id) for record, makeup_id in zip(plan.makeup_sessions, makeup_ids)
        )
        return Ok(CommittedSuspension(suspension_id, replace(plan, makeup_sessions=makeups), makeup_ids))
