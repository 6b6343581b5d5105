from datetime import date, datetime, timezone

from edumatch.utils.date_utils import (
    calculate_days_left, ensure_utc, format_date_for_database, format_date_for_display,
    format_date_to_ddmmyyyy, format_utc_date_to_local, format_utc_relative_time,
    get_timezone_offset, get_zone, local_to_utc, utc_to_local,
)


def test_display_and_database_formats():
    assert format_date_for_display("2024-03-15") == "15/03/2024"
    assert format_date_for_database("15/03/2024") == "2024-03-15"
    assert format_date_for_database(format_date_for_display("2023-12-01")) == "2023-12-01"
    assert format_date_for_display("0999-05-06") == "06/05/0999"
    assert format_date_for_database(format_date_for_display("0999-05-06")) == "0999-05-06"


def test_display_format_edge_cases():
    assert format_date_for_display("") == "Not provided"
    assert format_date_for_display(None) == "Not provided"
    assert format_date_for_display("15/03/2024") == "15/03/2024"
    assert format_date_for_display("garbage") == "garbage"


def test_database_format_edge_cases():
    assert format_date_for_database("2024-03-15") == "2024-03-15"
    assert format_date_for_database("31/02/2024") == ""
    assert format_date_for_database("15/03") == ""
    assert format_date_for_database(None) == ""


def test_format_date_to_ddmmyyyy():
    assert format_date_to_ddmmyyyy(date(2024, 7, 4)) == "04/07/2024"
    assert format_date_to_ddmmyyyy("2024-07-04T10:00:00Z") == "04/07/2024"
    assert format_date_to_ddmmyyyy("not a date") == ""


def test_days_left():
    today = date(2024, 1, 1)
    assert calculate_days_left("2024-01-11", today=today) == 10
    assert calculate_days_left("11/01/2024", today=today) == 10
    assert calculate_days_left("2023-12-01", today=today) == 0
    assert calculate_days_left("nonsense", today=today) == 0
    assert calculate_days_left(None, today=today) == 0


def test_timezone_conversion():
    local = utc_to_local("2024-01-01T00:00:00Z", "Asia/Ho_Chi_Minh")
    assert local.hour == 7

    back = local_to_utc("2024-01-01T07:00:00", "Asia/Ho_Chi_Minh")
    assert back == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_unknown_zone_falls_back_to_utc():
    assert get_zone("Not/AZone").key == "UTC"
    assert get_timezone_offset("Not/AZone") == 0
    assert get_timezone_offset("Asia/Ho_Chi_Minh") == 420


def test_local_formatting():
    assert format_utc_date_to_local("2024-01-01T20:00:00Z", "Asia/Ho_Chi_Minh") == "02/01/2024"
    assert format_utc_date_to_local("", "UTC") == ""
    assert format_utc_date_to_local("bad", "UTC") == "Invalid date"


def test_relative_time():
    now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
    assert format_utc_relative_time("2024-01-10T11:59:30Z", now=now) == "Just now"
    assert format_utc_relative_time("2024-01-10T11:55:00Z", now=now) == "5m ago"
    assert format_utc_relative_time("2024-01-10T09:00:00Z", now=now) == "3h ago"
    assert format_utc_relative_time("2024-01-08T12:00:00Z", now=now) == "2d ago"
    assert format_utc_relative_time("2023-12-01T12:00:00Z", "UTC", now=now) == "01/12/2023"
    assert format_utc_relative_time(None) == "Unknown time"


def test_ensure_utc():
    assert ensure_utc("2024-01-01T07:00:00+07:00") == "2024-01-01T00:00:00+00:00"
    assert ensure_utc("") is None
    assert ensure_utc("bad") is None
