import datetime as dt
import unittest

from session_timer.time_math import (
    add_minutes,
    add_seconds,
    ensure_utc,
    round_down_to,
    seconds_between,
    seconds_to_clock,
    seconds_until,
)

START = dt.datetime(2026, 1, 5, 9, 0, tzinfo=dt.timezone.utc)


class SecondsToClockTests(unittest.TestCase):
    def test_formats_known_values(self) -> None:
        self.assertEqual("00:01:00", seconds_to_clock(60))
        self.assertEqual("00:01:05", seconds_to_clock(65))
        self.assertEqual("01:00:00", seconds_to_clock(3600))
        self.assertEqual("23:59:58", seconds_to_clock(86398))
        self.assertEqual("00:00:29", seconds_to_clock(29))
        self.assertEqual("00:00:00", seconds_to_clock(0))

    def test_hours_are_not_wrapped_at_one_day(self) -> None:
        self.assertEqual("25:00:01", seconds_to_clock(25 * 3600 + 1))

    def test_rejects_negative_input(self) -> None:
        with self.assertRaises(ValueError):
            seconds_to_clock(-1)


class TimestampArithmeticTests(unittest.TestCase):
    def test_add_minutes_and_seconds_do_not_mutate_input(self) -> None:
        later = add_minutes(START, 5)
        earlier = add_seconds(START, -30)

        self.assertEqual(dt.datetime(2026, 1, 5, 9, 5, tzinfo=dt.timezone.utc), later)
        self.assertEqual(dt.datetime(2026, 1, 5, 8, 59, 30, tzinfo=dt.timezone.utc), earlier)
        self.assertEqual(dt.datetime(2026, 1, 5, 9, 0, tzinfo=dt.timezone.utc), START)

    def test_seconds_between_floors_and_keeps_sign(self) -> None:
        self.assertEqual(1, seconds_between(START, START + dt.timedelta(milliseconds=1999)))
        self.assertEqual(0, seconds_between(START, START + dt.timedelta(milliseconds=999)))
        self.assertEqual(-2, seconds_between(START, START - dt.timedelta(milliseconds=1500)))
        self.assertEqual(90, seconds_between(START, add_seconds(START, 90)))

    def test_seconds_until_rounds_up(self) -> None:
        deadline = add_seconds(START, 10)
        self.assertEqual(10, seconds_until(START, deadline))
        self.assertEqual(1, seconds_until(START + dt.timedelta(milliseconds=9200), deadline))
        self.assertEqual(0, seconds_until(deadline, deadline))
        self.assertEqual(-3, seconds_until(add_seconds(deadline, 3), deadline))

    def test_round_down_to_step(self) -> None:
        self.assertEqual(0, round_down_to(14, 15))
        self.assertEqual(15, round_down_to(29, 15))
        self.assertEqual(180, round_down_to(180, 15))
        with self.assertRaises(ValueError):
            round_down_to(10, 0)

    def test_ensure_utc_treats_naive_values_as_utc(self) -> None:
        naive = dt.datetime(2026, 1, 5, 9, 0)
        offset = dt.datetime(2026, 1, 5, 11, 0, tzinfo=dt.timezone(dt.timedelta(hours=2)))

        self.assertEqual(START, ensure_utc(naive))
        self.assertEqual(START, ensure_utc(offset))
        self.assertEqual(dt.timezone.utc, ensure_utc(offset).tzinfo)


if __name__ == "__main__":
    unittest.main()
