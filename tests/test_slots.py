from datetime import date, datetime

import pytest
from dateutil import tz

from healthpal.domain.scheduling.service import works_on
from healthpal.domain.scheduling.slots import duration_minutes, generate_time_slots, intervals_overlap
from healthpal.shared.validators import local_today, normalize_time


class TestGenerateTimeSlots:
    def test_clinic_morning_yields_eight_half_hours(self):
        slots = generate_time_slots("08:00", "12:00", 30)
        assert len(slots) == 8
        assert slots[0] == {"startTime": "08:00", "endTime": "08:30"}
        assert slots[-1] == {"startTime": "11:30", "endTime": "12:00"}

    def test_full_day(self):
        assert len(generate_time_slots("07:30", "18:00", 30)) == 21

    def test_trailing_remainder_is_dropped(self):
        slots = generate_time_slots("08:00", "09:45", 30)
        assert [s["startTime"] for s in slots] == ["08:00", "08:30", "09:00"]

    def test_empty_when_window_shorter_than_slot(self):
        assert generate_time_slots("08:00", "08:20", 30) == []

    def test_rejects_non_positive_duration(self):
        with pytest.raises(ValueError):
            generate_time_slots("08:00", "12:00", 0)


class TestOverlap:
    @pytest.mark.parametrize(
        "a,b,expected",
        [
            (("09:00", "09:30"), ("09:15", "09:45"), True),
            (("09:00", "10:00"), ("09:15", "09:45"), True),
            (("09:15", "09:45"), ("09:00", "10:00"), True),
            (("09:00", "09:30"), ("09:30", "10:00"), False),
            (("09:30", "10:00"), ("09:00", "09:30"), False),
            (("08:00", "08:30"), ("11:00", "11:30"), False),
        ],
    )
    def test_half_open_intervals(self, a, b, expected):
        assert intervals_overlap(*a, *b) is expected

    def test_duration(self):
        assert duration_minutes("09:00", "10:15") == 75


class TestTimeHelpers:
    def test_normalize_pads_hour(self):
        assert normalize_time("9:05") == "09:05"

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "9-30"])
    def test_normalize_rejects_bad_values(self, value):
        with pytest.raises(ValueError):
            normalize_time(value)

    def test_empty_working_days_means_every_day(self):
        assert works_on([], date(2030, 1, 6))

    def test_working_days_by_name(self):
        monday = date(2030, 1, 7)
        assert works_on(["MONDAY", "WEDNESDAY"], monday)
        assert not works_on(["TUESDAY"], monday)

    def test_local_today_follows_clinic_timezone(self):
        # 18:30 UTC is already 01:30 the next day in Ho Chi Minh City
        assert local_today(datetime(2030, 1, 6, 18, 30, tzinfo=tz.UTC)) == date(2030, 1, 7)
        assert local_today(datetime(2030, 1, 6, 16, 59, tzinfo=tz.UTC)) == date(2030, 1, 6)
