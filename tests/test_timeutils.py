from datetime import datetime, timedelta, timezone

import pytest

from padel_api.core.timeutils import ensure_utc, hours_until, isoformat_z


@pytest.mark.parametrize(
    "raw",
    [
        "2025-06-01T18:00:00",
        "2025-06-01T18:00:00Z",
        "2025-06-01T18:00:00.000Z",
        "2025-06-01T22:00:00+04:00",
        "2025-06-01 18:00:00",
    ],
)
def test_strings_normalise_to_the_same_instant(raw):
    assert ensure_utc(raw) == datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)


def test_naive_datetime_is_utc():
    assert ensure_utc(datetime(2025, 6, 1, 18, 0)).tzinfo is timezone.utc


def test_aware_datetime_is_converted():
    dubai = timezone(timedelta(hours=4))
    assert ensure_utc(datetime(2025, 6, 1, 22, 0, tzinfo=dubai)) == datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)


def test_rejects_other_types():
    with pytest.raises(TypeError):
        ensure_utc(1717264800)


def test_hours_until_is_signed():
    start = datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)
    assert hours_until(start, datetime(2025, 5, 31, 19, 0)) == 23
    assert hours_until(start, "2025-06-01T19:00:00") == -1


def test_isoformat_z():
    assert isoformat_z(datetime(2025, 6, 1, 18, 0)) == "2025-06-01T18:00:00Z"


def test_date_only_string_is_midnight_utc():
    assert ensure_utc("2025-06-01") == datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc)


def test_unparseable_string_is_rejected():
    with pytest.raises(ValueError):
        ensure_utc("next sunday")
