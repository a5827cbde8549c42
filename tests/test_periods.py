import pytest

from config import REGIONS, TERMINAL_YEAR
from periods import (
    Period, period_end, next_cursor, enumerate_periods, list_periods, count_periods,
    current_period, is_finished, align_cursor, snap_period, parse_period_label,
    normalize_period_label, all_combinations, get_granularity,
)


def test_origin_period_is_fifty_years_with_gap():
    assert period_end('Europe', 1500) == 1550
    assert next_cursor('Europe', 1500) == 1551
    assert period_end('Europe', 1551) == 1600


def test_single_year_band_has_no_gap():
    assert period_end('Asia', 1951) == 1952
    assert next_cursor('Asia', 1951) == 1952
    assert period_end('Asia', 1952) == 1953


def test_band_boundaries():
    assert period_end('Africa', 1751) == 1800
    assert next_cursor('Africa', 1751) == 1801
    assert period_end('Africa', 1801) == 1820
    assert period_end('Africa', 1881) == 1900
    assert period_end('Africa', 1901) == 1910
    assert period_end('Africa', 1941) == 1945
    assert period_end('Africa', 1946) == 1950
    assert next_cursor('Africa', 1946) == 1951


def test_antarctica_uses_fixed_granularity():
    periods = list_periods('Antarctica')
    assert [p.label for p in periods] == [
        '1800-1850', '1851-1900', '1901-1950', '1951-2000', '2001-2025',
    ]
    assert get_granularity('Antarctica', 2001) == 50


def test_terminal_cursor_stays_put():
    assert period_end('Europe', 2024) == TERMINAL_YEAR
    assert next_cursor('Europe', 2024) == TERMINAL_YEAR
    assert next_cursor('Antarctica', 2001) == TERMINAL_YEAR
    assert is_finished('Europe', TERMINAL_YEAR)
    assert current_period('Europe', TERMINAL_YEAR) is None


@pytest.mark.parametrize('region', REGIONS)
def test_enumeration_is_finite_increasing_and_terminal(region):
    periods = list_periods(region)
    starts = [p.start for p in periods]
    assert starts == sorted(set(starts))
    assert all(p.end > p.start for p in periods)
    assert all(p.end <= TERMINAL_YEAR for p in periods)
    assert periods[-1].end == TERMINAL_YEAR
    assert len({p.label for p in periods}) == len(periods)


def test_enumeration_is_restartable():
    assert list(enumerate_periods('Oceania')) == list(enumerate_periods('Oceania'))


def test_walk_from_any_cursor_matches_enumeration():
    periods = list_periods('Europe')
    cursor = periods[40].start
    walked = []
    while not is_finished('Europe', cursor):
        walked.append(current_period('Europe', cursor))
        cursor = next_cursor('Europe', cursor)
    assert walked == periods[40:]


def test_period_counts():
    assert count_periods('Europe') == 91
    assert count_periods('Antarctica') == 5
    assert len(all_combinations()) == 6 * 91 + 5


def test_unknown_region_rejected():
    with pytest.raises(ValueError):
        period_end('Atlantis', 1500)


def test_cursor_before_origin_rejected():
    with pytest.raises(ValueError):
        period_end('Antarctica', 1500)


def test_align_cursor_snaps_forward():
    assert align_cursor('Europe', 1600) == 1601
    assert align_cursor('Europe', 1551) == 1551
    assert align_cursor('Antarctica', 1500) == 1800
    assert align_cursor('Europe', 2100) == TERMINAL_YEAR


def test_snap_period_maps_flat_ranges_to_real_buckets():
    assert snap_period('Europe', Period(1550, 1600)) == Period(1551, 1600)
    assert snap_period('Europe', Period(1500, 1550)) == Period(1500, 1550)
    assert snap_period('Europe', Period(1960, 1961)) == Period(1960, 1961)


def test_parse_period_label_accepts_dashes():
    assert parse_period_label('1500-1550') == Period(1500, 1550)
    assert parse_period_label('1500 – 1550') == Period(1500, 1550)
    assert parse_period_label('1550-1500') is None
    assert parse_period_label('soon') is None
    assert normalize_period_label('1500—1550') == '1500-1550'
