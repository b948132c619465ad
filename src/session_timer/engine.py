"""Focus/break session state machine driven by absolute timestamps."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from .constants import (
    ACTIVE_STATES,
    COMMAND_COMPLETE,
    COMMAND_DISCARD,
    COMMAND_INITIALIZE,
    COMMAND_RETURN_TO_FOCUS,
    COMMAND_TAKE_BREAK,
    DEFAULT_BREAK_BUDGET_MINUTES,
    DEFAULT_BREAK_INCREMENT_MINUTES,
    DEFAULT_BREAK_PHASE_MINUTES,
    DEFAULT_FOCUS_MINUTES,
    REASON_ADOPTED,
    REASON_ALREADY_INITIALIZED,
    REASON_BREAK_EXTENDED,
    REASON_BREAK_STARTED,
    REASON_COMPLETED,
    REASON_CREATED,
    REASON_DISCARDED,
    REASON_ENGINE_FAILED,
    REASON_IN_PROGRESS,
    REASON_INSUFFICIENT_BREAK_BUDGET,
    REASON_NOT_ACTIVE,
    REASON_RETURNED_TO_FOCUS,
    REASON_STORE_UNAVAILABLE,
    STATE_BREAK,
    STATE_COMPLETE,
    STATE_FOCUS,
    STATE_UNINITIALIZED,
    SUMMARY_ROUNDING_MINUTES,
)
from .errors import MissingTimestamp, SessionIntegrityError, StoreUnavailable
from .records import (
    SessionRecord,
    new_focus_record,
    require_single_active,
    validate_record,
)
from .ticker import PeriodicTicker
from .time_math import (
    add_minutes,
    round_down_to,
    seconds_between,
    seconds_to_clock,
    seconds_until,
    utc_now,
)

if TYPE_CHECKING:
    from session_store.contracts import SessionStore

SnapshotListener = Callable[["SessionSnapshot"], None]


@dataclass(frozen=True)
class TimerSettings:
    """Durations and break budget applied to newly created sessions."""
    planned_focus_minutes: int = DEFAULT_FOCUS_MINUTES
    break_phase_minutes: int = DEFAULT_BREAK_PHASE_MINUTES
    break_increment_minutes: int = DEFAULT_BREAK_INCREMENT_MINUTES
    break_budget_minutes: int = DEFAULT_BREAK_BUDGET_MINUTES

    def __post_init__(self) -> None:
        if self.planned_focus_minutes <= 0:
            raise ValueError("planned_focus_minutes must be greater than zero")
        if self.break_phase_minutes <= 0:
            raise ValueError("break_phase_minutes must be greater than zero")
        if self.break_increment_minutes <= 0:
            raise ValueError("break_increment_minutes must be greater than zero")
        if self.break_budget_minutes < 0:
            raise ValueError("break_budget_minutes must not be negative")
        if self.break_budget_minutes % self.break_increment_minutes != 0:
            raise ValueError("break_budget_minutes must be a multiple of break_increment_minutes")


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the engine state exposed to presentation code."""
    session_state: str
    session_id: Optional[int]
    seconds_remaining: int
    seconds_elapsed: int
    break_minutes_remaining: int
    planned_focus_minutes: int
    total_minutes_done: Optional[int] = None
    last_error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.session_state in ACTIVE_STATES

    @property
    def is_completed(self) -> bool:
        return self.session_state == STATE_COMPLETE

    @property
    def total_minutes_done_rounded(self) -> int:
        if self.total_minutes_done is None:
            return 0
        return round_down_to(self.total_minutes_done, SUMMARY_ROUNDING_MINUTES)

    @property
    def clock(self) -> str:
        return seconds_to_clock(max(0, self.seconds_remaining))


@dataclass(frozen=True)
class SessionCommandResult:
    """Result envelope returned after applying an engine command."""
    command: str
    accepted: bool
    reason: str
    snapshot: SessionSnapshot


@dataclass(frozen=True)
class SessionTick:
    """Tick payload produced by each recomputation."""
    snapshot: SessionSnapshot
    transitioned: bool = False
    overflow_seconds: int = 0


class TimerEngine:
    """Single-session focus/break state machine for one user.

    Remaining and elapsed seconds are always derived from the stored phase
    window and the injected clock, never decremented. Commands that touch the
    store are coroutines serialized by one lock; `tick()` is synchronous and
    hands any persistence it triggers to a background task.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        settings: Optional[TimerSettings] = None,
        clock: Callable[[], dt.datetime] = utc_now,
        ticker: Optional[PeriodicTicker] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._store = store
        self._settings = settings or TimerSettings()
        self._clock = clock
        self._ticker = ticker
        self._logger = logger or logging.getLogger("session_timer")

        self._command_lock = asyncio.Lock()
        self._initializing = False
        self._failed = False
        self._pending: set[asyncio.Task[None]] = set()
        self._listeners: list[SnapshotListener] = []
        self._last_error: Optional[str] = None
        self._last_overflow = 0

        self._user_id: Optional[int] = None
        self._reset_session_fields()

    # Observable state

    @property
    def session_state(self) -> str:
        return self._state

    @property
    def seconds_remaining(self) -> int:
        return self._seconds_remaining

    @property
    def seconds_elapsed(self) -> int:
        return self._seconds_elapsed

    @property
    def break_minutes_remaining(self) -> int:
        return self._break_minutes_remaining

    @property
    def planned_focus_minutes(self) -> int:
        return self._planned_minutes

    @property
    def is_completed(self) -> bool:
        return self._state == STATE_COMPLETE

    @property
    def total_minutes_done_rounded(self) -> int:
        return self.snapshot().total_minutes_done_rounded

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_state=self._state,
            session_id=self._session_id,
            seconds_remaining=self._seconds_remaining,
            seconds_elapsed=self._seconds_elapsed,
            break_minutes_remaining=self._break_minutes_remaining,
            planned_focus_minutes=self._planned_minutes,
            total_minutes_done=self._total_minutes_done,
            last_error=self._last_error,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Commands

    async def initialize(self, user_id: int) -> SessionCommandResult:
        if self._initializing:
            self._logger.debug("Initialize for user %s dropped: already in progress", user_id)
            return self._result(COMMAND_INITIALIZE, False, REASON_IN_PROGRESS)
        if self._state != STATE_UNINITIALIZED:
            return self._result(COMMAND_INITIALIZE, False, REASON_ALREADY_INITIALIZED)

        self._initializing = True
        try:
            result = await self._execute(
                COMMAND_INITIALIZE,
                lambda: self._initialize_locked(user_id),
            )
        finally:
            self._initializing = False

        if self._state in ACTIVE_STATES:
            self._start_ticker()
        return result

    async def take_break(self) -> SessionCommandResult:
        return await self._execute(COMMAND_TAKE_BREAK, self._take_break_locked)

    async def return_to_focus(self) -> SessionCommandResult:
        return await self._execute(COMMAND_RETURN_TO_FOCUS, self._return_to_focus_locked)

    async def complete(self) -> SessionCommandResult:
        return await self._execute(COMMAND_COMPLETE, self._complete_locked)

    async def discard_session(self) -> SessionCommandResult:
        return await self._execute(COMMAND_DISCARD, self._discard_locked)

    # Ticks

    def tick(self) -> SessionTick:
        """Recompute remaining/elapsed seconds and apply phase expiry.

        Must run on the event loop; persistence of an expiry transition is
        scheduled as a task and not awaited here.
        """
        if self._failed or self._state not in ACTIVE_STATES:
            return SessionTick(snapshot=self.snapshot())

        before = self._state
        session_id = self._session_id
        self._last_overflow = 0
        try:
            changes = self._refresh(self._clock())
        except SessionIntegrityError as error:
            self._fail("tick", error)
            return SessionTick(snapshot=self.snapshot())

        if changes and session_id is not None:
            self._spawn(self._persist_in_background(session_id, changes))

        snapshot = self.snapshot()
        self._notify(snapshot)
        return SessionTick(
            snapshot=snapshot,
            transitioned=self._state != before,
            overflow_seconds=self._last_overflow,
        )

    async def wait_for_pending(self) -> None:
        """Wait until persistence started by ticks has settled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        """Stop ticking and cancel outstanding background persistence."""
        self._stop_ticker()
        for task in list(self._pending):
            task.cancel()

    # Command bodies, run while holding the command lock

    async def _initialize_locked(self, user_id: int) -> SessionCommandResult:
        record, created = await self._find_or_create(user_id)
        self._adopt(record)

        changes = self._refresh(self._clock())
        if changes:
            await self._persist(record.id, changes)

        self._logger.info(
            "Session %s %s for user %s: state=%s remaining=%ss",
            self._session_id,
            "created" if created else "adopted",
            user_id,
            self._state,
            self._seconds_remaining,
        )
        reason = REASON_CREATED if created else REASON_ADOPTED
        return self._result(COMMAND_INITIALIZE, True, reason)

    async def _take_break_locked(self) -> SessionCommandResult:
        if self._state not in ACTIVE_STATES:
            return self._result(COMMAND_TAKE_BREAK, False, REASON_NOT_ACTIVE)

        now = self._clock()
        changes = self._refresh(now)
        if self._state not in ACTIVE_STATES:
            await self._persist(self._session_id, changes)
            return self._result(COMMAND_TAKE_BREAK, False, REASON_NOT_ACTIVE)

        increment = self._settings.break_increment_minutes
        if self._break_minutes_remaining < increment:
            self._logger.debug(
                "Break rejected: %s minutes left, %s required",
                self._break_minutes_remaining,
                increment,
            )
            if changes:
                await self._persist(self._session_id, changes)
            return self._result(COMMAND_TAKE_BREAK, False, REASON_INSUFFICIENT_BREAK_BUDGET)

        phase_minutes = self._settings.break_phase_minutes
        if self._state == STATE_BREAK:
            if self._break_start is None or self._break_end is None:
                raise MissingTimestamp(
                    f"Session {self._session_id} is on break without break_end_time"
                )
            break_start = self._break_start
            break_end = add_minutes(self._break_end, phase_minutes)
            reason = REASON_BREAK_EXTENDED
        else:
            break_start = now
            break_end = add_minutes(now, phase_minutes)
            reason = REASON_BREAK_STARTED

        remaining_budget = self._break_minutes_remaining - increment
        changes.update(
            {
                "session_state": STATE_BREAK,
                "break_start_time": break_start,
                "break_end_time": break_end,
                "break_minutes_remaining": remaining_budget,
            }
        )
        # Memory only moves once the store has accepted the new window.
        await self._persist(self._session_id, changes)
        self._state = STATE_BREAK
        self._break_start = break_start
        self._break_end = break_end
        self._break_minutes_remaining = remaining_budget
        self._recompute(now)

        self._logger.info(
            "Break %s: session=%s ends=%s budget_left=%smin",
            "extended" if reason == REASON_BREAK_EXTENDED else "started",
            self._session_id,
            self._break_end.isoformat(),
            self._break_minutes_remaining,
        )
        return self._result(COMMAND_TAKE_BREAK, True, reason)

    async def _return_to_focus_locked(self) -> SessionCommandResult:
        if self._state not in ACTIVE_STATES:
            return self._result(COMMAND_RETURN_TO_FOCUS, False, REASON_NOT_ACTIVE)

        now = self._clock()
        changes = self._refresh(now)
        if self._state == STATE_COMPLETE:
            await self._persist(self._session_id, changes)
            return self._result(COMMAND_RETURN_TO_FOCUS, False, REASON_NOT_ACTIVE)

        # The focus deadline stays where it was set at creation.
        if self._state == STATE_BREAK:
            changes["session_state"] = STATE_FOCUS
            await self._persist(self._session_id, changes)
            self._state = STATE_FOCUS
            changes = {}
        changes.update(self._refresh(now))
        await self._persist(self._session_id, changes)

        if self._state == STATE_COMPLETE:
            return self._result(COMMAND_RETURN_TO_FOCUS, False, REASON_NOT_ACTIVE)
        self._logger.info(
            "Returned to focus: session=%s remaining=%ss",
            self._session_id,
            self._seconds_remaining,
        )
        return self._result(COMMAND_RETURN_TO_FOCUS, True, REASON_RETURNED_TO_FOCUS)

    async def _complete_locked(self) -> SessionCommandResult:
        """Save the session now.

        During a break the total is the wall time since the focus window
        opened, breaks included, capped at the planned focus length.
        """
        if self._state not in ACTIVE_STATES:
            return self._result(COMMAND_COMPLETE, False, REASON_NOT_ACTIVE)

        now = self._clock()
        changes = self._refresh(now)
        if self._state == STATE_COMPLETE:
            await self._persist(self._session_id, changes)
            return self._result(COMMAND_COMPLETE, True, REASON_COMPLETED)

        if self._state == STATE_BREAK:
            elapsed = self._focus_seconds_elapsed(now)
        else:
            elapsed = self._seconds_elapsed
        changes.update(
            {
                "session_state": STATE_COMPLETE,
                "total_minutes_done": max(0, elapsed) // 60,
            }
        )
        await self._persist(self._session_id, changes)
        self._seconds_elapsed = elapsed
        self._finish_locally()
        return self._result(COMMAND_COMPLETE, True, REASON_COMPLETED)

    async def _discard_locked(self) -> SessionCommandResult:
        if self._state not in ACTIVE_STATES or self._session_id is None:
            return self._result(COMMAND_DISCARD, False, REASON_NOT_ACTIVE)

        session_id = self._session_id
        await self._store.delete(session_id)
        self._stop_ticker()
        self._reset_session_fields()
        self._logger.info("Session %s discarded", session_id)
        return self._result(COMMAND_DISCARD, True, REASON_DISCARDED)

    # Internals

    async def _execute(
        self,
        command: str,
        operation: Callable[[], Awaitable[SessionCommandResult]],
    ) -> SessionCommandResult:
        async with self._command_lock:
            if self._failed:
                return self._result(command, False, REASON_ENGINE_FAILED)
            self._last_error = None
            try:
                result = await operation()
            except StoreUnavailable as error:
                self._record_store_failure(command, error)
                result = self._result(command, False, REASON_STORE_UNAVAILABLE)
            except SessionIntegrityError as error:
                self._fail(command, error)
                raise

        if not result.accepted:
            self._logger.debug("Command %s rejected: %s", command, result.reason)
        self._notify(result.snapshot)
        return result

    async def _find_or_create(self, user_id: int) -> tuple[SessionRecord, bool]:
        active = require_single_active(await self._store.list_active(user_id))
        if active:
            return active[0], False

        candidate = new_focus_record(
            user_id,
            now=self._clock(),
            planned_minutes=self._settings.planned_focus_minutes,
            break_budget_minutes=self._settings.break_budget_minutes,
        )

        # Another process may have created the session since the first query.
        active = require_single_active(await self._store.list_active(user_id))
        if active:
            self._logger.info(
                "Adopting session %s created concurrently for user %s",
                active[0].id,
                user_id,
            )
            return active[0], False

        created = await self._store.create(candidate)
        if not created:
            raise StoreUnavailable(f"Session store returned no record for user {user_id}")
        record = created[0]
        return record, _same_instant(record.focus_start_time, candidate.focus_start_time)

    def _adopt(self, record: SessionRecord) -> None:
        validate_record(
            record,
            break_increment_minutes=self._settings.break_increment_minutes,
        )
        self._user_id = record.user_id
        self._session_id = record.id
        self._state = record.session_state.value
        self._focus_start = record.focus_start_time
        self._focus_end = record.focus_end_time
        self._break_start = record.break_start_time
        self._break_end = record.break_end_time
        self._break_minutes_remaining = record.break_minutes_remaining
        self._planned_minutes = record.planned_minutes
        self._total_minutes_done = record.total_minutes_done

    def _refresh(self, now: dt.datetime) -> dict[str, Any]:
        """Recompute the current phase and apply expiry; returns fields to persist."""
        changes: dict[str, Any] = {}
        while self._state in ACTIVE_STATES:
            self._recompute(now)
            if self._seconds_remaining > 0:
                break

            overflow = -self._seconds_remaining
            self._last_overflow = overflow
            self._seconds_elapsed -= overflow
            if self._state == STATE_BREAK:
                self._logger.info(
                    "Break expired: session=%s overflow=%ss",
                    self._session_id,
                    overflow,
                )
                self._state = STATE_FOCUS
                changes["session_state"] = STATE_FOCUS
                continue

            self._logger.info(
                "Focus expired: session=%s overflow=%ss",
                self._session_id,
                overflow,
            )
            changes.update(self._finish_locally())
        return changes

    def _recompute(self, now: dt.datetime) -> None:
        start, end = self._phase_window()
        self._seconds_remaining = seconds_until(now, end)
        self._seconds_elapsed = seconds_between(start, now)

    def _phase_window(self) -> tuple[dt.datetime, dt.datetime]:
        if self._state == STATE_BREAK:
            start, end = self._break_start, self._break_end
        else:
            start, end = self._focus_start, self._focus_end
        if start is None or end is None:
            raise MissingTimestamp(
                f"Session {self._session_id} in state {self._state} has no phase window"
            )
        return start, end

    def _focus_seconds_elapsed(self, now: dt.datetime) -> int:
        if self._focus_start is None or self._focus_end is None:
            raise MissingTimestamp(f"Session {self._session_id} has no focus window")
        elapsed = seconds_between(self._focus_start, now)
        return min(elapsed, seconds_between(self._focus_start, self._focus_end))

    def _finish_locally(self) -> dict[str, Any]:
        total = max(0, self._seconds_elapsed) // 60
        self._state = STATE_COMPLETE
        self._total_minutes_done = total
        self._seconds_remaining = 0
        self._seconds_elapsed = 0
        self._stop_ticker()
        self._logger.info(
            "Session %s completed: total_minutes_done=%s",
            self._session_id,
            total,
        )
        return {"session_state": STATE_COMPLETE, "total_minutes_done": total}

    async def _persist(self, session_id: Optional[int], changes: dict[str, Any]) -> None:
        if not changes or session_id is None:
            return
        rows = await self._store.update(session_id, changes)
        if rows is None:
            self._logger.warning("Session %s update matched no record", session_id)

    async def _persist_in_background(self, session_id: int, changes: dict[str, Any]) -> None:
        async with self._command_lock:
            try:
                await self._persist(session_id, changes)
            except StoreUnavailable as error:
                self._record_store_failure("tick", error)
                self._notify(self.snapshot())
            except SessionIntegrityError as error:
                self._fail("tick", error)
                self._notify(self.snapshot())

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _record_store_failure(self, command: str, error: StoreUnavailable) -> None:
        self._last_error = str(error)
        self._logger.error("Session store unavailable during %s: %s", command, error)

    def _fail(self, command: str, error: SessionIntegrityError) -> None:
        self._failed = True
        self._last_error = str(error)
        self._stop_ticker()
        self._logger.error(
            "Session data integrity violation during %s: %s: %s",
            command,
            type(error).__name__,
            error,
        )

    def _notify(self, snapshot: SessionSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self._logger.exception("Session listener failed")

    def _start_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.start(self.tick)

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()

    def _reset_session_fields(self) -> None:
        self._state = STATE_UNINITIALIZED
        self._session_id: Optional[int] = None
        self._focus_start: Optional[dt.datetime] = None
        self._focus_end: Optional[dt.datetime] = None
        self._break_start: Optional[dt.datetime] = None
        self._break_end: Optional[dt.datetime] = None
        self._break_minutes_remaining = self._settings.break_budget_minutes
        self._planned_minutes = self._settings.planned_focus_minutes
        self._total_minutes_done: Optional[int] = None
        self._seconds_remaining = 0
        self._seconds_elapsed = 0

    def _result(self, command: str, accepted: bool, reason: str) -> SessionCommandResult:
        return SessionCommandResult(
            command=command,
            accepted=accepted,
            reason=reason,
            snapshot=self.snapshot(),
        )


def _same_instant(stored: Optional[dt.datetime], expected: Optional[dt.datetime]) -> bool:
    # Backends may truncate sub-second precision on write.
    if stored is None or expected is None:
        return False
    return abs((stored - expected).total_seconds()) < 1
