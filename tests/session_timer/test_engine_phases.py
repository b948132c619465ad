import datetime as dt
import unittest

from session_store.memory import InMemorySessionStore
from session_timer.engine import TimerEngine, TimerSettings
from session_timer.records import SessionState

START = dt.datetime(2026, 1, 5, 9, 0, tzinfo=dt.timezone.utc)


class _FakeClock:
    def __init__(self, now: dt.datetime = START):
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += dt.timedelta(seconds=seconds)


def _settings(**overrides) -> TimerSettings:
    values = {
        "planned_focus_minutes": 25,
        "break_phase_minutes": 5,
        "break_increment_minutes": 5,
        "break_budget_minutes": 15,
    }
    values.update(overrides)
    return TimerSettings(**values)


class _EngineTestCase(unittest.IsolatedAsyncioTestCase):
    settings = _settings()

    async def asyncSetUp(self) -> None:
        self.clock = _FakeClock()
        self.store = InMemorySessionStore()
        self.engine = TimerEngine(self.store, settings=self.settings, clock=self.clock)
        result = await self.engine.initialize(7)
        self.session_id = result.snapshot.session_id

    def persisted(self):
        return self.store.get(self.session_id)


class BreakBudgetTests(_EngineTestCase):
    settings = _settings(break_budget_minutes=5)

    async def test_single_increment_budget_allows_one_break(self) -> None:
        first = await self.engine.take_break()
        second = await self.engine.take_break()

        self.assertTrue(first.accepted)
        self.assertEqual("break_started", first.reason)
        self.assertEqual(0, first.snapshot.break_minutes_remaining)
        self.assertFalse(second.accepted)
        self.assertEqual("insufficient_break_budget", second.reason)
        self.assertEqual("break", second.snapshot.session_state)
        self.assertEqual(0, self.persisted().break_minutes_remaining)


class TakeBreakTests(_EngineTestCase):
    async def test_take_break_opens_break_window(self) -> None:
        self.clock.advance(60)

        result = await self.engine.take_break()

        self.assertEqual("break", result.snapshot.session_state)
        self.assertEqual(5 * 60, result.snapshot.seconds_remaining)
        self.assertEqual(0, result.snapshot.seconds_elapsed)
        self.assertEqual(10, result.snapshot.break_minutes_remaining)

        record = self.persisted()
        self.assertEqual(SessionState.BREAK, record.session_state)
        self.assertEqual(START + dt.timedelta(minutes=1), record.break_start_time)
        self.assertEqual(START + dt.timedelta(minutes=6), record.break_end_time)
        self.assertEqual(10, record.break_minutes_remaining)

    async def test_extensions_stack_from_current_deadline(self) -> None:
        self.clock.advance(60)
        await self.engine.take_break()
        self.clock.advance(30)

        result = await self.engine.take_break()

        self.assertEqual("break_extended", result.reason)
        record = self.persisted()
        self.assertEqual(
            record.break_start_time + dt.timedelta(minutes=10),
            record.break_end_time,
        )
        self.assertEqual(10 * 60 - 30, result.snapshot.seconds_remaining)
        self.assertEqual(30, result.snapshot.seconds_elapsed)
        self.assertEqual(5, result.snapshot.break_minutes_remaining)

    async def test_break_is_rejected_once_budget_is_spent(self) -> None:
        for _ in range(3):
            self.assertTrue((await self.engine.take_break()).accepted)

        result = await self.engine.take_break()

        self.assertEqual("insufficient_break_budget", result.reason)
        self.assertEqual(0, self.engine.break_minutes_remaining)
        self.assertEqual(
            self.persisted().break_start_time + dt.timedelta(minutes=15),
            self.persisted().break_end_time,
        )

    async def test_store_failure_keeps_budget_and_reports_error(self) -> None:
        self.store.fail_next()

        result = await self.engine.take_break()

        self.assertFalse(result.accepted)
        self.assertEqual("store_unavailable", result.reason)
        self.assertEqual(15, result.snapshot.break_minutes_remaining)
        self.assertEqual("focus", result.snapshot.session_state)
        self.assertIsNotNone(self.engine.last_error)
        self.assertEqual(SessionState.FOCUS, self.persisted().session_state)

    async def test_retry_after_store_failure_starts_one_paid_break(self) -> None:
        self.store.fail_next()

        failed = await self.engine.take_break()
        retried = await self.engine.take_break()

        self.assertEqual("store_unavailable", failed.reason)
        self.assertEqual("break_started", retried.reason)
        self.assertEqual(5 * 60, retried.snapshot.seconds_remaining)
        record = self.persisted()
        self.assertEqual(
            record.break_start_time + dt.timedelta(minutes=5),
            record.break_end_time,
        )
        self.assertEqual(10, record.break_minutes_remaining)


class ReturnToFocusTests(_EngineTestCase):
    async def test_focus_deadline_is_not_extended_by_breaks(self) -> None:
        self.clock.advance(60)
        await self.engine.take_break()
        self.clock.advance(120)

        result = await self.engine.return_to_focus()

        self.assertTrue(result.accepted)
        self.assertEqual("focus", result.snapshot.session_state)
        self.assertEqual(25 * 60 - 180, result.snapshot.seconds_remaining)
        self.assertEqual(180, result.snapshot.seconds_elapsed)
        record = self.persisted()
        self.assertEqual(SessionState.FOCUS, record.session_state)
        self.assertEqual(START + dt.timedelta(minutes=25), record.focus_end_time)
        self.assertEqual(10, record.break_minutes_remaining)

    async def test_return_to_focus_while_focused_is_idempotent(self) -> None:
        self.clock.advance(42)

        result = await self.engine.return_to_focus()

        self.assertTrue(result.accepted)
        self.assertEqual("focus", result.snapshot.session_state)
        self.assertEqual(25 * 60 - 42, result.snapshot.seconds_remaining)

    async def test_store_failure_keeps_break_until_retry_succeeds(self) -> None:
        await self.engine.take_break()
        self.clock.advance(60)
        self.store.fail_next()

        failed = await self.engine.return_to_focus()
        retried = await self.engine.return_to_focus()

        self.assertEqual("store_unavailable", failed.reason)
        self.assertEqual("break", failed.snapshot.session_state)
        self.assertEqual("returned_to_focus", retried.reason)
        self.assertEqual(SessionState.FOCUS, self.persisted().session_state)


class ExpiryTests(_EngineTestCase):
    settings = _settings(planned_focus_minutes=1)

    async def test_focus_expiry_completes_session(self) -> None:
        self.clock.advance(60)

        tick = self.engine.tick()
        await self.engine.wait_for_pending()

        self.assertTrue(tick.transitioned)
        self.assertTrue(tick.snapshot.is_completed)
        self.assertEqual(1, tick.snapshot.total_minutes_done)
        self.assertEqual(0, tick.snapshot.seconds_remaining)
        self.assertEqual(0, tick.snapshot.seconds_elapsed)
        record = self.persisted()
        self.assertEqual(SessionState.COMPLETE, record.session_state)
        self.assertEqual(1, record.total_minutes_done)

    async def test_overflow_is_removed_from_elapsed(self) -> None:
        self.clock.advance(63)

        tick = self.engine.tick()

        self.assertEqual(3, tick.overflow_seconds)
        self.assertEqual(1, tick.snapshot.total_minutes_done)

    async def test_late_detection_does_not_inflate_total(self) -> None:
        self.clock.advance(121)

        tick = self.engine.tick()

        self.assertEqual(61, tick.overflow_seconds)
        self.assertEqual(1, tick.snapshot.total_minutes_done)

    async def test_ticks_after_completion_are_inert(self) -> None:
        self.clock.advance(60)
        self.engine.tick()
        self.clock.advance(60)

        tick = self.engine.tick()

        self.assertFalse(tick.transitioned)
        self.assertEqual(1, tick.snapshot.total_minutes_done)

    async def test_commands_after_completion_are_rejected(self) -> None:
        self.clock.advance(60)
        self.engine.tick()

        self.assertEqual("not_active", (await self.engine.take_break()).reason)
        self.assertEqual("not_active", (await self.engine.return_to_focus()).reason)
        self.assertEqual("not_active", (await self.engine.complete()).reason)

    async def test_persistence_failure_from_tick_is_reported_not_raised(self) -> None:
        self.store.fail_next()
        self.clock.advance(61)

        tick = self.engine.tick()
        await self.engine.wait_for_pending()

        self.assertTrue(tick.snapshot.is_completed)
        self.assertIsNotNone(self.engine.last_error)
        self.assertEqual(SessionState.FOCUS, self.persisted().session_state)


class BreakExpiryTests(_EngineTestCase):
    async def test_expired_break_returns_to_focus(self) -> None:
        self.clock.advance(60)
        await self.engine.take_break()
        self.clock.advance(5 * 60 + 2)

        tick = self.engine.tick()
        await self.engine.wait_for_pending()

        self.assertTrue(tick.transitioned)
        self.assertEqual(2, tick.overflow_seconds)
        self.assertEqual("focus", tick.snapshot.session_state)
        self.assertEqual(25 * 60 - (6 * 60 + 2), tick.snapshot.seconds_remaining)
        self.assertEqual(SessionState.FOCUS, self.persisted().session_state)

    async def test_take_break_after_unnoticed_break_expiry_starts_new_break(self) -> None:
        await self.engine.take_break()
        self.clock.advance(6 * 60)

        result = await self.engine.take_break()

        self.assertEqual("break_started", result.reason)
        record = self.persisted()
        self.assertEqual(START + dt.timedelta(minutes=6), record.break_start_time)
        self.assertEqual(START + dt.timedelta(minutes=11), record.break_end_time)
        self.assertEqual(5, record.break_minutes_remaining)


class CompleteTests(_EngineTestCase):
    async def test_save_records_whole_focus_minutes(self) -> None:
        self.clock.advance(20 * 60 + 30)

        result = await self.engine.complete()

        self.assertTrue(result.accepted)
        self.assertTrue(self.engine.is_completed)
        self.assertEqual(20, result.snapshot.total_minutes_done)
        self.assertEqual(15, result.snapshot.total_minutes_done_rounded)
        self.assertEqual(15, self.engine.total_minutes_done_rounded)
        record = self.persisted()
        self.assertEqual(SessionState.COMPLETE, record.session_state)
        self.assertEqual(20, record.total_minutes_done)

    async def test_save_during_break_counts_wall_time_including_breaks(self) -> None:
        self.clock.advance(10 * 60)
        await self.engine.take_break()
        self.clock.advance(3 * 60)

        result = await self.engine.complete()

        self.assertEqual(13, result.snapshot.total_minutes_done)
        self.assertEqual(0, result.snapshot.total_minutes_done_rounded)

    async def test_store_failure_leaves_session_running(self) -> None:
        self.clock.advance(20 * 60)
        self.store.fail_next()

        failed = await self.engine.complete()
        retried = await self.engine.complete()

        self.assertEqual("store_unavailable", failed.reason)
        self.assertEqual("focus", failed.snapshot.session_state)
        self.assertIsNone(failed.snapshot.total_minutes_done)
        self.assertEqual("completed", retried.reason)
        self.assertEqual(SessionState.COMPLETE, self.persisted().session_state)
        self.assertEqual(20, self.persisted().total_minutes_done)


class SubscriptionTests(_EngineTestCase):
    async def test_listeners_receive_command_and_tick_snapshots(self) -> None:
        seen = []
        unsubscribe = self.engine.subscribe(seen.append)

        await self.engine.take_break()
        self.clock.advance(1)
        self.engine.tick()
        unsubscribe()
        self.engine.tick()

        self.assertEqual(["break", "break"], [snapshot.session_state for snapshot in seen])
        self.assertEqual(5 * 60 - 1, seen[-1].seconds_remaining)


if __name__ == "__main__":
    unittest.main()
