from datetime import date, datetime, time, timezone

import pytest

from milestone.utils.time import as_utc, is_late_submission, local_date, local_moment, parse_hhmm


@pytest.mark.parametrize("moment, late", [
    (datetime(2026, 3, 4, 18, 59, 59, tzinfo=timezone.utc), False),
    (datetime(2026, 3, 4, 19, 0, 0, tzinfo=timezone.utc), True),
    (datetime(2026, 3, 4, 23, 30, tzinfo=timezone.utc), True),
])
def test_late_submission_boundary(moment, late):
    assert is_late_submission(moment, cutoff_hour=19, tz_name="UTC") is late


def test_late_submission_uses_local_hour():
    # 17:30 UTC is 19:30 in Berlin summer time
    moment = datetime(2026, 7, 1, 17, 30, tzinfo=timezone.utc)
    assert is_late_submission(moment, cutoff_hour=19, tz_name="Europe/Berlin")
    assert not is_late_submission(moment, cutoff_hour=19, tz_name="UTC")


def test_local_date_crosses_midnight():
    moment = datetime(2026, 3, 4, 23, 30, tzinfo=timezone.utc)
    assert local_date(moment, "UTC") == date(2026, 3, 4)
    assert local_date(moment, "Asia/Tokyo") == date(2026, 3, 5)


def test_naive_datetimes_are_treated_as_utc():
    assert as_utc(datetime(2026, 3, 4, 9, 0)) == datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value, expected", [
    ("18:00", time(18, 0)),
    (" 09:05 ", time(9, 5)),
])
def test_parse_hhmm(value, expected):
    assert parse_hhmm(value) == expected


def test_local_moment_converts_to_utc():
    assert local_moment(date(2026, 1, 15), time(10, 0), "America/New_York") == datetime(
        2026, 1, 15, 15, 0, tzinfo=timezone.utc
    )
