"""
===============================================================================
ORBITDYN - Time Span Map
===============================================================================
Container associating values to contiguous, non-overlapping time spans.

The map always covers the whole time line from -inf to +inf: at any date
exactly one value is active. Internally it keeps

    dates  = [d_0 < d_1 < ... < d_{n-1}]      transition dates
    values = [v_0, v_1, ..., v_n]             len(values) == len(dates) + 1

with v_i valid on [d_{i-1}, d_i) (d_{-1} = -inf, d_n = +inf). Adding a
value after (or before) a date either truncates the spans lying beyond the
date or splits the span containing it, depending on the caller's choice.

The attitude sequencer stores its activated laws in one of these maps and
mutates it only from switch callbacks.
===============================================================================
"""

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Any, Generic, Iterator, List, TypeVar

from core.constants import FUTURE_INFINITY, PAST_INFINITY

T = TypeVar('T')


@dataclass(frozen=True)
class Span(Generic[T]):
    """One validity interval [start, end) and its associated value."""

    start: float
    end: float
    data: Any

    def contains(self, date: float) -> bool:
        return self.start <= date < self.end


@dataclass(frozen=True)
class Transition(Generic[T]):
    """Boundary between two consecutive spans."""

    date: float
    before: Any
    after: Any


class TimeSpanMap(Generic[T]):
    """
    Map of values valid over time spans.

    Parameters
    ----------
    entry : T
        Single value, initially valid over the whole time line.
    """

    def __init__(self, entry: T) -> None:
        self._dates: List[float] = []
        self._values: List[T] = [entry]

    # -------------------------------------------------------------------------
    # insertion
    # -------------------------------------------------------------------------

    def add_valid_after(self, entry: T, earliest: float, erases_later: bool = False) -> None:
        """
        Make *entry* valid from *earliest* onwards.

        If *erases_later* is True, every span after *earliest* is dropped and
        *entry* stays valid up to +inf. Otherwise only the span containing
        *earliest* is split: *entry* is valid until the next existing
        transition.
        """
        if erases_later:
            idx = bisect_left(self._dates, earliest)
            self._dates = self._dates[:idx] + [earliest]
            self._values = self._values[:idx + 1] + [entry]
            return

        idx = bisect_right(self._dates, earliest)
        if idx > 0 and self._dates[idx - 1] == earliest:
            # a transition already sits at this date, replace what follows it
            self._values[idx] = entry
        else:
            self._dates.insert(idx, earliest)
            self._values.insert(idx + 1, entry)

    def add_valid_before(self, entry: T, latest: float, erases_earlier: bool = False) -> None:
        """
        Make *entry* valid up to (excluding) *latest*.

        If *erases_earlier* is True, every span before *latest* is dropped and
        *entry* is valid from -inf. Otherwise only the span containing
        *latest* is split.
        """
        if erases_earlier:
            idx = bisect_right(self._dates, latest)
            self._dates = [latest] + self._dates[idx:]
            self._values = [entry] + self._values[idx:]
            return

        idx = bisect_left(self._dates, latest)
        if idx < len(self._dates) and self._dates[idx] == latest:
            self._values[idx] = entry
        else:
            self._dates.insert(idx, latest)
            self._values.insert(idx, entry)

    def add_valid_between(self, entry: T, start: float, end: float) -> None:
        """
        Make *entry* valid on [start, end), erasing spans fully inside it.
        """
        if end < start:
            raise ValueError(f"span end {end} precedes start {start}")
        if start == end:
            return
        # value active right at end must survive after end
        following = self.get(end)
        i0 = bisect_left(self._dates, start)
        i1 = bisect_right(self._dates, end)
        new_dates = self._dates[:i0]
        new_values = self._values[:i0 + 1]
        if start != PAST_INFINITY:
            new_dates.append(start)
            new_values.append(entry)
        else:
            new_values[-1] = entry
        if end != FUTURE_INFINITY:
            new_dates.append(end)
            new_values.append(following)
        tail_dates = [d for d in self._dates[i1:] if d > end]
        new_dates.extend(tail_dates)
        new_values.extend(self._values[len(self._values) - len(tail_dates):])
        self._dates = new_dates
        self._values = new_values

    # -------------------------------------------------------------------------
    # queries
    # -------------------------------------------------------------------------

    def get(self, date: float) -> T:
        """Value active at *date*."""
        return self._values[bisect_right(self._dates, date)]

    def get_span(self, date: float) -> Span:
        """Span containing *date*."""
        idx = bisect_right(self._dates, date)
        return self._span_at(idx)

    def _span_at(self, idx: int) -> Span:
        start = self._dates[idx - 1] if idx > 0 else PAST_INFINITY
        end = self._dates[idx] if idx < len(self._dates) else FUTURE_INFINITY
        return Span(start, end, self._values[idx])

    def spans_number(self) -> int:
        return len(self._values)

    def get_transitions(self) -> List[Transition]:
        return [Transition(d, self._values[i], self._values[i + 1])
                for i, d in enumerate(self._dates)]

    def get_first_span(self) -> Span:
        return self._span_at(0)

    def get_last_span(self) -> Span:
        return self._span_at(len(self._values) - 1)

    def __iter__(self) -> Iterator[Span]:
        for idx in range(len(self._values)):
            yield self._span_at(idx)

    def __len__(self) -> int:
        return len(self._values)

    def extract_range(self, start: float, end: float) -> 'TimeSpanMap[T]':
        """
        Sub-map restricted to the transitions lying in (start, end].

        The first and last retained values are extended to -inf and +inf.
        """
        i0 = bisect_right(self._dates, start)
        i1 = bisect_right(self._dates, end)
        if i1 < i0:
            i1 = i0
        extracted = TimeSpanMap(self._values[i0])
        extracted._dates = self._dates[i0:i1]
        extracted._values = self._values[i0:i1 + 1]
        return extracted

    def __repr__(self) -> str:
        parts = []
        for span in self:
            parts.append(f"[{span.start}, {span.end}): {span.data!r}")
        return "TimeSpanMap(" + ", ".join(parts) + ")"
