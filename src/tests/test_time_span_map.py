"""
===============================================================================
ORBITDYN - Time Span Map Test Suite
===============================================================================
Tests for the time span container: single value coverage, insertion after /
before a date with and without erasing, spans in between, span queries at
boundaries and range extraction.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import math

import pytest

from core.time_span_map import TimeSpanMap


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def three_spans():
    """'a' before 10, 'b' on [10, 20), 'c' after 20."""
    m = TimeSpanMap('a')
    m.add_valid_after('b', 10.0)
    m.add_valid_after('c', 20.0)
    return m


# =============================================================================
# Tests
# =============================================================================

class TestSingleValue:

    @pytest.mark.parametrize("date", [-1.0e12, -1.0, 0.0, 3.5, 1.0e12])
    def test_covers_whole_time_line(self, date):
        m = TimeSpanMap('only')
        assert m.get(date) == 'only'
        assert len(m) == 1

    def test_single_span_is_infinite(self):
        span = TimeSpanMap(1).get_span(0.0)
        assert span.start == -math.inf
        assert span.end == math.inf


class TestAddValidAfter:

    def test_spans_and_boundaries(self, three_spans):
        assert three_spans.get(9.999) == 'a'
        assert three_spans.get(10.0) == 'b'      # spans are [start, end)
        assert three_spans.get(19.999) == 'b'
        assert three_spans.get(20.0) == 'c'
        assert three_spans.spans_number() == 3

    def test_split_without_erase_keeps_later_spans(self, three_spans):
        three_spans.add_valid_after('x', 15.0)
        assert three_spans.get(12.0) == 'b'
        assert three_spans.get(17.0) == 'x'
        assert three_spans.get(25.0) == 'c'

    def test_erase_later(self, three_spans):
        three_spans.add_valid_after('x', 15.0, erases_later=True)
        assert three_spans.get(12.0) == 'b'
        assert three_spans.get(17.0) == 'x'
        assert three_spans.get(1.0e9) == 'x'
        assert len(three_spans) == 3

    def test_same_date_replaces_following_value(self, three_spans):
        three_spans.add_valid_after('y', 10.0)
        assert three_spans.get(10.0) == 'y'
        assert len(three_spans) == 3


class TestAddValidBefore:

    def test_split(self, three_spans):
        three_spans.add_valid_before('x', 5.0)
        assert three_spans.get(4.0) == 'x'
        assert three_spans.get(7.0) == 'a'

    def test_erase_earlier(self, three_spans):
        three_spans.add_valid_before('x', 15.0, erases_earlier=True)
        assert three_spans.get(-1.0e9) == 'x'
        assert three_spans.get(14.9) == 'x'
        assert three_spans.get(15.0) == 'b'
        assert three_spans.get(30.0) == 'c'


class TestAddValidBetween:

    def test_inside_one_span(self):
        m = TimeSpanMap('a')
        m.add_valid_between('x', 10.0, 20.0)
        assert [s.data for s in m] == ['a', 'x', 'a']
        assert m.get_span(15.0).start == 10.0
        assert m.get_span(15.0).end == 20.0

    def test_covering_existing_transitions(self, three_spans):
        three_spans.add_valid_between('x', 5.0, 25.0)
        assert [s.data for s in three_spans] == ['a', 'x', 'c']
        assert three_spans.get(25.0) == 'c'

    def test_rejects_reversed_bounds(self):
        with pytest.raises(ValueError):
            TimeSpanMap('a').add_valid_between('x', 2.0, 1.0)


class TestQueries:

    def test_transitions(self, three_spans):
        transitions = three_spans.get_transitions()
        assert [t.date for t in transitions] == [10.0, 20.0]
        assert (transitions[0].before, transitions[0].after) == ('a', 'b')

    def test_first_and_last_span(self, three_spans):
        assert three_spans.get_first_span().data == 'a'
        assert three_spans.get_first_span().end == 10.0
        assert three_spans.get_last_span().data == 'c'
        assert three_spans.get_last_span().start == 20.0

    def test_exactly_one_span_contains_each_date(self, three_spans):
        for date in (-5.0, 10.0, 15.0, 20.0, 40.0):
            assert sum(1 for s in three_spans if s.contains(date)) == 1


class TestExtractRange:

    def test_keeps_transitions_in_range(self, three_spans):
        sub = three_spans.extract_range(15.0, 30.0)
        assert [s.data for s in sub] == ['b', 'c']
        assert sub.get(-1.0e9) == 'b'

    def test_range_without_transition(self, three_spans):
        sub = three_spans.extract_range(11.0, 19.0)
        assert len(sub) == 1
        assert sub.get(0.0) == 'b'

    def test_upper_bound_included(self, three_spans):
        sub = three_spans.extract_range(0.0, 20.0)
        assert [s.data for s in sub] == ['a', 'b', 'c']
