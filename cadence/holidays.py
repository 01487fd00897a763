"""Holiday lookup cached per start-year window."""
from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Callable, Iterable


logger = logging.getLogger(__name__)

HolidayLoader = Callable[[date, date], Iterable[date]]


class HolidayCalendar:
    """Read-through cache in front of a holiday source.

    Holidays are fetched for whole ``(start_year, start_year + lookahead)``
    windows; once a window is loaded it is shared read-only between callers.
    Loading the same window twice is harmless.
    """

    def __init__(self, loader: HolidayLoader, *, lookahead_years: int = 2) -> None:
        self._loader = loader
        self._lookahead_years = max(lookahead_years, 0)
        self._windows: dict[tuple[int, int], frozenset[date]] = {}
        self._lock = threading.Lock()

    @property
    def cached_windows(self) -> int:
        with self._lock:
            return len(self._windows)

    def window_for(self, start_year: int) -> tuple[int, int]:
        return (start_year, start_year + self._lookahead_years)

    def _load_window(self, window: tuple[int, int]) -> frozenset[date]:
        with self._lock:
            cached = self._windows.get(window)
        if cached is not None:
            return cached
        first_year, last_year = window
        loaded = frozenset(self._loader(date(first_year, 1, 1), date(last_year, 12, 31)))
        logger.debug("Loaded %s holiday(s) for %s-%s", len(loaded), first_year, last_year)
        with self._lock:
            return self._windows.setdefault(window, loaded)

    def holidays_from(self, start: date) -> frozenset[date]:
        """Every holiday of the window starting with ``start``'s year."""

        return frozenset(day for day in self._load_window(self.window_for(start.year)) if day >= start)

    def holidays_between(self, start: date, end: date) -> frozenset[date]:
        if start > end:
            return frozenset()
        days: set[date] = set()
        year = start.year
        while year <= end.year:
            window = self.window_for(year)
            days.update(day for day in self._load_window(window) if start <= day <= end)
            year = window[1] + 1
        return frozenset(days)

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays_between(day, day)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
