import unittest
from datetime import date

from cadence.holidays import HolidayCalendar


HOLIDAYS = [date(2025, 1, 1), date(2025, 12, 25), date(2026, 1, 1), date(2028, 1, 1)]


class HolidayCalendarTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.calls = []

        def loader(start: date, end: date):
            self.calls.append((start, end))
            return [day for day in HOLIDAYS if start <= day <= end]

        self.calendar = HolidayCalendar(loader, lookahead_years=2)

    def test_window_is_loaded_once(self) -> None:
        first = self.calendar.holidays_from(date(2025, 3, 1))
        second = self.calendar.holidays_from(date(2025, 6, 1))
        self.assertEqual(first, frozenset({date(2025, 12, 25), date(2026, 1, 1)}))
        self.assertEqual(second, first)
        self.assertEqual(self.calls, [(date(2025, 1, 1), date(2027, 12, 31))])

    def test_range_spanning_windows(self) -> None:
        found = self.calendar.holidays_between(date(2024, 12, 1), date(2028, 6, 1))
        self.assertEqual(found, frozenset(HOLIDAYS))
        self.assertEqual(
            self.calls,
            [(date(2024, 1, 1), date(2026, 12, 31)), (date(2027, 1, 1), date(2029, 12, 31))],
        )

    def test_is_holiday_and_clear(self) -> None:
        self.assertTrue(self.calendar.is_holiday(date(2025, 12, 25)))
        self.assertFalse(self.calendar.is_holiday(date(2025, 12, 24)))
        self.calendar.clear()
        self.calendar.is_holiday(date(2025, 12, 24))
        self.assertEqual(len(self.calls), 2)

    def test_inverted_range_is_empty(self) -> None:
        self.assertEqual(self.calendar.holidays_between(date(2025, 2, 1), date(2025, 1, 1)), frozenset())
        self.assertEqual(self.calls, [])


if __name__ == "__main__":
    unittest.main()
