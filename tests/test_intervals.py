from datetime import datetime, timedelta, timezone

import pytest

from roombook.intervals import TimeRange, apply_buffer, as_utc, format_instant, overlaps

T0 = datetime(2030, 1, 1, tzinfo=timezone.utc)


def rng(start_min, end_min):
    return TimeRange(T0 + timedelta(minutes=start_min), T0 + timedelta(minutes=end_min))


def test_range_overlaps_itself():
    a = rng(0, 10)
    assert overlaps(a, a)


@pytest.mark.parametrize("a,b,expected", [
    ((0, 10), (5, 15), True),
    ((0, 10), (2, 3), True),
    ((0, 10), (10, 20), False),
    ((0, 10), (20, 30), False),
])
def test_overlap_is_symmetric(a, b, expected):
    assert overlaps(rng(*a), rng(*b)) is expected
    assert overlaps(rng(*b), rng(*a)) is expected


def test_empty_or_inverted_range_is_rejected():
    with pytest.raises(ValueError):
        rng(10, 10)
    with pytest.raises(ValueError):
        rng(10, 5)


def test_apply_buffer_expands_outward_exactly():
    buffered = apply_buffer(rng(60, 90), 15, 5)
    assert buffered == rng(45, 95)
    assert apply_buffer(rng(60, 90), 0, 0) == rng(60, 90)


def test_buffer_turns_adjacent_ranges_into_overlapping_ones():
    occupied = rng(0, 10)
    candidate = rng(10, 20)
    assert not overlaps(candidate, occupied)
    assert overlaps(candidate, apply_buffer(occupied, 0, 1))
    # padding before the occupied range does not reach a slot after it
    assert not overlaps(candidate, apply_buffer(occupied, 30, 0))


def test_instants_are_formatted_as_utc_z_with_milliseconds():
    assert format_instant(T0 + timedelta(hours=9, minutes=15)) == "2030-01-01T09:15:00.000Z"
    seoul = timezone(timedelta(hours=9))
    assert format_instant(datetime(2030, 1, 1, 18, 0, tzinfo=seoul)) == "2030-01-01T09:00:00.000Z"


def test_offset_and_naive_instants_are_normalised_to_utc():
    seoul = timezone(timedelta(hours=9))
    assert as_utc(datetime(2030, 1, 1, 18, 0, tzinfo=seoul)) == T0 + timedelta(hours=9)
    assert as_utc(datetime(2030, 1, 1, 9, 0)) == T0 + timedelta(hours=9)
    assert as_utc(datetime(2030, 1, 1, 9, 0)).tzinfo is timezone.utc
