import math
from datetime import datetime

from sampler import TAU, sample_clock, sample_instant


def test_noon_and_midnight_put_every_hand_at_zero():
    for hour in (0, 12):
        sample = sample_clock(hour, 0, 0)
        assert sample.hour_angle == 0
        assert sample.minute_angle == 0
        assert sample.second_angle == 0


def test_quarter_positions():
    sample = sample_clock(3, 15, 45)
    assert math.isclose(sample.second_angle, 3 * math.pi / 2)
    assert math.isclose(sample.minute_angle, (15 + 45 / 60) / 60 * TAU)
    assert math.isclose(sample.hour_angle, (3 + 15 / 60 + 45 / 3600) / 12 * TAU)


def test_afternoon_hours_share_the_morning_hour_angle():
    assert math.isclose(sample_clock(18, 0, 0).hour_angle, math.pi)
    assert sample_clock(18, 20, 5).hour_angle == sample_clock(6, 20, 5).hour_angle


def test_angles_stay_in_range_for_every_second_of_the_day():
    for hour in range(24):
        for minute in range(60):
            for second in (0, 30, 59):
                sample = sample_clock(hour, minute, second)
                for angle in (sample.hour_angle, sample.minute_angle, sample.second_angle):
                    assert 0 <= angle < TAU


def test_hour_angle_grows_with_minutes():
    for hour in range(12):
        angles = [sample_clock(hour, minute, 0).hour_angle for minute in range(60)]
        assert angles == sorted(angles)


def test_sample_instant_uses_wall_clock_fields():
    sample = sample_instant(datetime(2024, 1, 1, 7, 30, 15))
    assert (sample.hour, sample.minute, sample.second) == (7, 30, 15)
    assert math.isclose(sample.second_angle, math.pi / 2)
