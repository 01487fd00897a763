import unittest
from datetime import date, time

from cadence.domain import Curriculum, PhaseSpan, SessionRecord, SessionStatus, Weekday
from cadence.phases import (
    check_phase_spans,
    phase_date_range,
    phase_spans_for,
    phase_spans_from_sessions,
    projected_phase_spans,
    resolve_active_phase,
)


JANUARY = PhaseSpan(1, date(2025, 1, 1), date(2025, 1, 31))
FEBRUARY = PhaseSpan(2, date(2025, 2, 1), date(2025, 2, 28))


class ResolveActivePhaseTestCase(unittest.TestCase):
    def test_phase_containing_today(self) -> None:
        self.assertEqual(resolve_active_phase(date(2025, 2, 15), [JANUARY, FEBRUARY]), 2)
        self.assertEqual(resolve_active_phase(date(2025, 1, 31), [JANUARY, FEBRUARY]), 1)

    def test_not_started_returns_first_phase(self) -> None:
        self.assertEqual(resolve_active_phase(date(2024, 12, 1), [FEBRUARY, JANUARY]), 1)

    def test_gap_takes_the_phase_after_the_first_completed_one(self) -> None:
        phases = [
            PhaseSpan(1, date(2025, 1, 1), date(2025, 1, 20)),
            PhaseSpan(2, date(2025, 2, 5), date(2025, 2, 25)),
            PhaseSpan(3, date(2025, 3, 5), date(2025, 3, 25)),
        ]
        self.assertEqual(resolve_active_phase(date(2025, 1, 25), phases), 2)
        self.assertEqual(resolve_active_phase(date(2025, 3, 1), phases), 2)
        self.assertEqual(resolve_active_phase(date(2025, 3, 10), phases), 3)

    def test_single_completed_phase_stays_active(self) -> None:
        self.assertEqual(resolve_active_phase(date(2025, 3, 1), [JANUARY]), 1)

    def test_finished_class_reports_final_phase(self) -> None:
        self.assertEqual(resolve_active_phase(date(2025, 6, 1), [JANUARY, FEBRUARY]), 2)

    def test_unresolved_dates_fall_back_to_phase_one(self) -> None:
        self.assertEqual(resolve_active_phase(date(2025, 2, 15), []), 1)
        self.assertEqual(resolve_active_phase(date(2025, 2, 15), [PhaseSpan(3, None, None)]), 1)


class PhaseSpanTestCase(unittest.TestCase):
    def test_overlapping_phases_are_rejected(self) -> None:
        overlapping = [JANUARY, PhaseSpan(2, date(2025, 1, 30), date(2025, 2, 20))]
        result = check_phase_spans(overlapping)
        self.assertFalse(result.is_ok)
        self.assertIn("overlaps", result.error.message)
        self.assertTrue(check_phase_spans([FEBRUARY, JANUARY]).is_ok)

    def test_inverted_phase_is_rejected(self) -> None:
        inverted = PhaseSpan(1, date(2025, 2, 1), date(2025, 1, 1))
        self.assertFalse(check_phase_spans([inverted]).is_ok)

    def test_spans_from_sessions_ignore_cancelled(self) -> None:
        sessions = [
            SessionRecord(1, 1, date(2025, 1, 6), time(9), time(10)),
            SessionRecord(1, 2, date(2025, 1, 8), time(9), time(10), actual_date=date(2025, 1, 10)),
            SessionRecord(1, 3, date(2025, 1, 20), time(9), time(10), status=SessionStatus.CANCELLED),
            SessionRecord(2, 1, date(2025, 1, 22), time(9), time(10)),
        ]
        self.assertEqual(
            phase_spans_from_sessions(sessions),
            [
                PhaseSpan(1, date(2025, 1, 6), date(2025, 1, 10)),
                PhaseSpan(2, date(2025, 1, 22), date(2025, 1, 22)),
            ],
        )

    def test_projected_spans(self) -> None:
        spans = projected_phase_spans(
            date(2025, 1, 1), [Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY], Curriculum(2, 3)
        )
        self.assertEqual(
            spans,
            [
                PhaseSpan(1, date(2025, 1, 1), date(2025, 1, 6)),
                PhaseSpan(2, date(2025, 1, 8), date(2025, 1, 13)),
            ],
        )
        self.assertEqual(phase_date_range(spans, 2), (date(2025, 1, 8), date(2025, 1, 13)))
        self.assertIsNone(phase_date_range(spans, 3))

    def test_projection_without_start_date_is_unresolved(self) -> None:
        spans = projected_phase_spans(None, [Weekday.MONDAY], Curriculum(2, 3))
        self.assertFalse(any(span.is_resolved for span in spans))

    def test_persisted_spans_override_projection(self) -> None:
        sessions = [SessionRecord(1, 1, date(2025, 1, 3), time(9), time(10))]
        spans = phase_spans_for(Curriculum(2, 1), date(2025, 1, 1), [Weekday.WEDNESDAY], sessions)
        self.assertEqual(
            spans,
            [
                PhaseSpan(1, date(2025, 1, 3), date(2025, 1, 3)),
                PhaseSpan(2, date(2025, 1, 8), date(2025, 1, 8)),
            ],
        )


if __name__ == "__main__":
    unittest.main()
