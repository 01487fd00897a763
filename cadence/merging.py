"""Merging several classes into one, and undoing a merge."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING, AbstractSet, Iterable, Optional, Sequence

from .domain import (
    ACTIVE_CLASS_STATUS,
    ClassTimetable,
    Conflict,
    EnrollmentRecord,
    MergedMetadata,
    ScheduleSlot,
    SessionRecord,
    SessionStatus,
    Weekday,
)
from .errors import ConflictError, ScheduleError, ValidationError
from .recurrence import check_slots, compute_end_date, next_class_days
from .results import Err, Ok, Result
from .snapshots import snapshot_slots
from .utils import shift_time

if TYPE_CHECKING:  # pragma: no cover
    from .store import ScheduleStore


logger = logging.getLogger(__name__)

NAME_SEPARATOR = " & "


class MergeState(str, Enum):
    SELECTING_TARGETS = "SelectingTargets"
    CONFIGURING_SCHEDULE = "ConfiguringSchedule"
    REVIEWING = "Reviewing"
    COMMITTED = "Committed"
    UNDONE = "Undone"


@dataclass(frozen=True)
class MergeReview:
    metadata: MergedMetadata
    slots: tuple[ScheduleSlot, ...]
    participant_ids: tuple[int, ...]


@dataclass(frozen=True)
class CommittedMerge:
    merged_class_id: int
    merge_history_id: int
    original_class_ids: tuple[int, ...]

    def as_dict(self) -> dict[str, object]:
        return {
            "merged_class_id": self.merged_class_id,
            "merge_history_id": self.merge_history_id,
            "original_class_ids": list(self.original_class_ids),
        }


def is_merge_eligible(source: ClassTimetable, candidate: ClassTimetable) -> bool:
    return (
        candidate.class_id != source.class_id
        and candidate.status == ACTIVE_CLASS_STATUS
        and candidate.phase_number == source.phase_number
        and candidate.level_tag == source.level_tag
    )


def eligible_merge_targets(
    source: ClassTimetable, candidates: Iterable[ClassTimetable]
) -> list[ClassTimetable]:
    return [candidate for candidate in candidates if is_merge_eligible(source, candidate)]


def merge_enrollments(groups: Iterable[Iterable[EnrollmentRecord]]) -> tuple[EnrollmentRecord, ...]:
    """Union of enrollments, one per (student, phase), keeping the earliest."""

    earliest: dict[tuple[int, Optional[int]], EnrollmentRecord] = {}
    for group in groups:
        for record in group:
            key = (record.student_id, record.phase_number)
            kept = earliest.get(key)
            if kept is None or record.enrolled_at < kept.enrolled_at:
                earliest[key] = record
    return tuple(
        sorted(earliest.values(), key=lambda record: (record.enrolled_at, record.student_id))
    )


def preserve_durations(
    source_slots: Sequence[ScheduleSlot],
    edited_slots: Iterable[ScheduleSlot],
    fallback: Optional[timedelta] = None,
) -> Result[tuple[ScheduleSlot, ...], ValidationError]:
    """Recompute end times so each day keeps the source class's duration.

    Days the source never met on use ``fallback`` when given, otherwise
    the edited slot keeps its own end time.
    """

    durations = {slot.weekday: slot.duration for slot in source_slots}
    adjusted: list[ScheduleSlot] = []
    for slot in edited_slots:
        duration = durations.get(slot.weekday, fallback)
        if duration is None:
            adjusted.append(slot)
            continue
        try:
            end_time = shift_time(slot.start_time, duration)
        except ValueError:
            return Err(
                ValidationError(
                    f"{slot.weekday.label}: the session would run past midnight", field="slots"
                )
            )
        adjusted.append(ScheduleSlot(slot.weekday, slot.start_time, end_time))
    return check_slots(adjusted)


def merged_name(names: Sequence[str], requested: Optional[str] = None, max_length: int = 100) -> str:
    name = (requested or "").strip() or NAME_SEPARATOR.join(names)
    return name[:max_length]


def carry_sessions(
    source: ClassTimetable,
    slots: Sequence[ScheduleSlot],
    start_date: date,
    holidays: AbstractSet[date] = frozenset(),
    *,
    reuse_schedule: bool = True,
    teacher_id: Optional[int] = None,
) -> list[SessionRecord]:
    """Sessions of a merged class, built from the source class's own.

    With the source schedule every persisted session moves over unchanged.
    With a new schedule only the sessions already held, cancelled or
    rescheduled keep their dates; the still scheduled ones are dated again
    on the new weekdays after the last kept session. Curriculum sessions
    the source never had are added the same way.
    """

    if reuse_schedule:
        kept = list(source.sessions)
    else:
        kept = [session for session in source.sessions if session.status != SessionStatus.SCHEDULED]
    kept_identities = {session.identity for session in kept}

    curriculum = source.curriculum
    wanted = {
        (phase, number)
        for phase in range(1, curriculum.phase_count + 1)
        for number in range(1, curriculum.sessions_per_phase + 1)
    }
    wanted.update(session.identity for session in source.sessions)
    missing = sorted(wanted - kept_identities)
    if not missing:
        return sorted(kept, key=lambda session: (session.scheduled_date, session.identity))

    by_weekday = {slot.weekday: slot for slot in slots}
    after = max((session.scheduled_date for session in kept), default=start_date - timedelta(days=1))
    days = next_class_days(after, tuple(sorted(by_weekday)), len(missing), holidays)
    for (phase, number), day in zip(missing, days):
        slot = by_weekday[Weekday.of(day)]
        end_time = slot.end_time
        if curriculum.session_duration is not None:
            end_time = shift_time(slot.start_time, curriculum.session_duration)
        kept.append(
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
    return sorted(kept, key=lambda session: (session.scheduled_date, session.identity))


class MergeWorkflow:
    def __init__(self, source: ClassTimetable, *, max_name_length: int = 100) -> None:
        self.source = source
        self.max_name_length = max_name_length
        self.state = MergeState.SELECTING_TARGETS
        self.targets: tuple[ClassTimetable, ...] = ()
        self.slots: tuple[ScheduleSlot, ...] = ()
        self.room_id: Optional[int] = source.room_id
        self.reuses_source_schedule = True
        self._requested_name: Optional[str] = None
        self._requested_teachers: Optional[tuple[int, ...]] = None

    @property
    def participants(self) -> tuple[ClassTimetable, ...]:
        return (self.source, *self.targets)

    @property
    def participant_ids(self) -> tuple[int, ...]:
        return tuple(participant.class_id for participant in self.participants)

    def _require(self, *states: MergeState) -> Optional[Err]:
        if self.state in states:
            return None
        return Err(ValidationError(f"This step is not available while the merge is {self.state.value}"))

    def select_targets(self, targets: Sequence[ClassTimetable]) -> Result[tuple[ClassTimetable, ...], ValidationError]:
        blocked = self._require(
            MergeState.SELECTING_TARGETS, MergeState.CONFIGURING_SCHEDULE, MergeState.REVIEWING
        )
        if blocked:
            return blocked
        checked = self._check_targets(self.source, targets)
        if not checked.is_ok:
            return checked
        self.targets = checked.value
        self.slots = ()
        self.state = MergeState.CONFIGURING_SCHEDULE
        return checked

    @staticmethod
    def _check_targets(
        source: ClassTimetable, targets: Sequence[ClassTimetable]
    ) -> Result[tuple[ClassTimetable, ...], ValidationError]:
        if source.status != ACTIVE_CLASS_STATUS:
            return Err(ValidationError(f"Class {source.name} is not active", field="source_class_id"))
        unique = {target.class_id: target for target in targets}
        if not unique:
            return Err(ValidationError("Select at least one class to merge with", field="target_class_ids"))
        for target in unique.values():
            if not is_merge_eligible(source, target):
                return Err(
                    ValidationError(
                        f"Class {target.name} cannot be merged with {source.name}: "
                        "it must be active and share the phase and level",
                        field="target_class_ids",
                    )
                )
        return Ok(tuple(unique.values()))

    def use_source_schedule(
        self, room_id: Optional[int] = None
    ) -> Result[tuple[ScheduleSlot, ...], ValidationError]:
        blocked = self._require(MergeState.CONFIGURING_SCHEDULE, MergeState.REVIEWING)
        if blocked:
            return blocked
        checked = check_slots(self.source.slots)
        if not checked.is_ok:
            return checked
        self.slots = checked.value
        self.room_id = room_id if room_id is not None else self.source.room_id
        self.reuses_source_schedule = True
        self.state = MergeState.CONFIGURING_SCHEDULE
        return checked

    def use_manual_schedule(
        self, slots: Iterable[ScheduleSlot], room_id: Optional[int] = None
    ) -> Result[tuple[ScheduleSlot, ...], ValidationError]:
        blocked = self._require(MergeState.CONFIGURING_SCHEDULE, MergeState.REVIEWING)
        if blocked:
            return blocked
        fallback = self.source.curriculum.session_duration
        if fallback is None and self.source.slots:
            fallback = self.source.slots[0].duration
        checked = preserve_durations(self.source.slots, slots, fallback)
        if not checked.is_ok:
            return checked
        self.slots = checked.value
        self.room_id = room_id if room_id is not None else self.source.room_id
        self.reuses_source_schedule = False
        self.state = MergeState.CONFIGURING_SCHEDULE
        return checked

    def set_metadata(self, name: Optional[str] = None, teacher_ids: Optional[Iterable[int]] = None) -> None:
        self._requested_name = name
        self._requested_teachers = tuple(dict.fromkeys(teacher_ids)) if teacher_ids is not None else None

    def _metadata(self, store: "ScheduleStore", participants: Sequence[ClassTimetable]) -> MergedMetadata:
        source = participants[0]
        if self._requested_teachers is not None:
            teacher_ids = self._requested_teachers
        else:
            teacher_ids = tuple(
                dict.fromkeys(teacher for participant in participants for teacher in participant.teacher_ids)
            )
        start_dates = [participant.start_date for participant in participants if participant.start_date]
        start_date = min(start_dates) if start_dates else None
        capacities = [participant.max_students for participant in participants if participant.max_students]

        sessions = ()
        end_date = None
        if start_date is not None:
            sessions = tuple(
                carry_sessions(
                    source,
                    self.slots,
                    start_date,
                    store.holidays_from(start_date),
                    reuse_schedule=self.reuses_source_schedule,
                    teacher_id=teacher_ids[0] if teacher_ids else None,
                )
            )
            end_date = compute_end_date(
                start_date,
                [slot.weekday for slot in self.slots],
                source.curriculum.total_sessions,
                actual_sessions=sessions,
            ).unwrap()

        return MergedMetadata(
            name=merged_name(
                [participant.name for participant in participants],
                self._requested_name,
                self.max_name_length,
            ),
            level_tag=source.level_tag,
            phase_number=source.phase_number,
            room_id=self.room_id,
            teacher_ids=teacher_ids,
            start_date=start_date,
            end_date=end_date,
            max_students=max(capacities) if capacities else None,
            curriculum=source.curriculum,
            enrollments=merge_enrollments(participant.enrollments for participant in participants),
            sessions=sessions,
        )

    def _validate(self, store: "ScheduleStore", participants: Sequence[ClassTimetable]) -> MergedMetadata:
        if not self.slots:
            raise ValidationError("Choose a schedule for the merged class", field="slots")
        if self.room_id is not None and store.get_room(self.room_id) is None:
            raise ValidationError(f"Room {self.room_id} does not exist", field="room_id")
        metadata = self._metadata(store, participants)
        missing = set(metadata.teacher_ids) - store.existing_teacher_ids(metadata.teacher_ids)
        if missing:
            raise ValidationError(
                f"Unknown teacher(s): {', '.join(str(i) for i in sorted(missing))}", field="teacher_ids"
            )
        conflicts: list[Conflict] = store.detect_conflicts(
            self.slots,
            self.room_id,
            metadata.teacher_ids,
            exclude_class_ids=[participant.class_id for participant in participants],
        )
        if conflicts:
            raise ConflictError(conflicts, "The merged schedule would double-book a room or teacher")
        return metadata

    def review(self, store: "ScheduleStore") -> Result[MergeReview, ScheduleError]:
        blocked = self._require(MergeState.CONFIGURING_SCHEDULE, MergeState.REVIEWING)
        if blocked:
            return blocked
        try:
            metadata = self._validate(store, self.participants)
        except ScheduleError as exc:
            self.state = MergeState.CONFIGURING_SCHEDULE
            return Err(exc)
        self.state = MergeState.REVIEWING
        return Ok(MergeReview(metadata, self.slots, self.participant_ids))

    def commit(self, store: "ScheduleStore") -> Result[CommittedMerge, ScheduleError]:
        blocked = self._require(MergeState.REVIEWING)
        if blocked:
            return blocked
        participant_ids = self.participant_ids
        try:
            with store.transaction():
                participants = [store.load_timetable(class_id) for class_id in participant_ids]
                self._check_targets(participants[0], participants[1:]).unwrap()
                metadata = self._validate(store, participants)
                merged, history = store.commit_merge(participant_ids, self.slots, metadata)
                result = CommittedMerge(merged.id, history.id, participant_ids)
        except ScheduleError as exc:
            logger.warning("Merge of classes %s refused: %s", list(participant_ids), exc)
            return Err(exc)

        self.state = MergeState.COMMITTED
        logger.info(
            "Merged classes %s into class %s (history %s)",
            list(participant_ids),
            result.merged_class_id,
            result.merge_history_id,
        )
        return Ok(result)


def undo_merge(store: "ScheduleStore", merge_history_id: int) -> Result[list[int], ScheduleError]:
    """Restore the classes of a merge, unless that would double-book anything.

    The restored schedules are checked against every active class except
    the merged class, which disappears with the undo.
    """

    try:
        with store.transaction():
            history = store.get_merge_history(merge_history_id)
            if history.is_undone:
                raise ValidationError(f"Merge {merge_history_id} has already been undone")

            originals = history.original_classes
            for payload in originals:
                room_id = payload.get("room_id")
                if room_id is not None and store.get_room(room_id) is None:
                    raise ValidationError(
                        f"Room {room_id} of class {payload['name']} no longer exists", field="room_id"
                    )

            conflicts: list[Conflict] = []
            for payload in originals:
                if payload.get("status") != ACTIVE_CLASS_STATUS:
                    continue
                conflicts.extend(
                    store.detect_conflicts(
                        snapshot_slots(payload),
                        payload.get("room_id"),
                        payload.get("teacher_ids", []),
                        exclude_class_ids={history.merged_class_id},
                        candidate_class_id=payload["id"],
                    )
                )
            if conflicts:
                raise ConflictError(conflicts, "Restoring the original classes would double-book a room or teacher")

            restored = store.undo_merge(history)
    except ScheduleError as exc:
        logger.warning("Undo of merge %s refused: %s", merge_history_id, exc)
        return Err(exc)

    logger.info("Merge %s undone, restored classes %s", merge_history_id, restored)
    return Ok(restored)
