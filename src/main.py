import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, TextIO

from app_config import (
    AppConfigurationError,
    load_app_config,
    load_secret_config,
    resolve_config_path,
)
from app_config_schema import STORE_BACKEND_SQL, AppConfig, SecretConfig
from runtime import TickDependencies, TickProcessor
from runtime.commands import (
    CONSOLE_HELP,
    CONSOLE_HELP_TEXT,
    CONSOLE_QUIT,
    parse_console_command,
    run_console_command,
)
from runtime.messages import command_feedback
from session_store import InMemorySessionStore, SessionStore, SqlSessionStore
from session_timer import (
    PeriodicTicker,
    SessionIntegrityError,
    TimerEngine,
    TimerSettings,
)
from session_timer.constants import ACTIVE_STATES, COMMAND_DISCARD

DEFAULT_USER_ID = 1


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure logging for the application."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("focus_timer")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a focus/break session timer.")
    parser.add_argument("--config", help="Path to config.toml")
    parser.add_argument("--user-id", type=int, help="Session owner id")
    parser.add_argument(
        "--save-on-exit",
        action="store_true",
        help="Complete the session instead of leaving it active when interrupted or on quit",
    )
    return parser.parse_args(argv)


def build_store(app_config: AppConfig, secrets: SecretConfig) -> SessionStore:
    if app_config.store.backend == STORE_BACKEND_SQL and secrets.database_url:
        store = SqlSessionStore(
            secrets.database_url,
            echo=app_config.store.echo,
            logger=logging.getLogger("session_store"),
        )
        store.create_schema()
        return store
    return InMemorySessionStore(logger=logging.getLogger("session_store"))


def build_settings(app_config: AppConfig) -> TimerSettings:
    timer = app_config.timer
    return TimerSettings(
        planned_focus_minutes=timer.focus_minutes,
        break_phase_minutes=timer.break_phase_minutes,
        break_increment_minutes=timer.break_increment_minutes,
        break_budget_minutes=timer.break_budget_minutes,
    )


async def run_session(
    engine: TimerEngine,
    *,
    user_id: int,
    save_on_exit: bool,
    logger: logging.Logger,
    stdin: Optional[TextIO] = None,
) -> int:
    finished = asyncio.Event()
    processor = TickProcessor(
        TickDependencies(
            logger=logger,
            on_completed=finished.set,
        )
    )
    engine.subscribe(processor.handle_session_update)

    loop = asyncio.get_running_loop()
    handled_signals = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, finished.set)
            handled_signals.append(signum)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            pass

    commands: set[asyncio.Task[None]] = set()

    async def apply_command(command: str) -> None:
        try:
            result = await run_console_command(engine, command)
        except SessionIntegrityError as error:
            logger.error(f"Session data error: {error}")
            finished.set()
            return
        logger.info(command_feedback(result.command, result.reason, result.snapshot))
        if result.accepted and result.command == COMMAND_DISCARD:
            finished.set()

    def on_input() -> None:
        line = stdin.readline()
        if not line:
            loop.remove_reader(stdin)
            return
        command = parse_console_command(line)
        if command is None:
            if line.strip():
                logger.info(CONSOLE_HELP_TEXT)
            return
        if command == CONSOLE_HELP:
            logger.info(CONSOLE_HELP_TEXT)
        elif command == CONSOLE_QUIT:
            finished.set()
        else:
            task = loop.create_task(apply_command(command))
            commands.add(task)
            task.add_done_callback(commands.discard)

    reading = False
    try:
        result = await engine.initialize(user_id)
        logger.info(command_feedback(result.command, result.reason, result.snapshot))
        if not result.accepted:
            return 1

        if stdin is not None and not engine.is_completed:
            try:
                loop.add_reader(stdin, on_input)
                reading = True
                logger.info(CONSOLE_HELP_TEXT)
            except (NotImplementedError, ValueError, OSError):  # pragma: no cover
                logger.debug("Console commands unavailable for this input")
        if not engine.is_completed:
            await finished.wait()
        if commands:
            await asyncio.gather(*list(commands), return_exceptions=True)

        if save_on_exit and engine.session_state in ACTIVE_STATES:
            result = await engine.complete()
            logger.info(command_feedback(result.command, result.reason, result.snapshot))
        await engine.wait_for_pending()
        return 0
    except SessionIntegrityError as error:
        logger.error(f"Session data error: {error}")
        return 1
    finally:
        if reading:
            loop.remove_reader(stdin)
        for signum in handled_signals:
            loop.remove_signal_handler(signum)
        engine.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Run one focus session for the configured user."""
    args = parse_args(argv)
    logger = setup_logging(level=logging.INFO)

    try:
        config_path = resolve_config_path(args.config)
        app_config = load_app_config(str(config_path))
        secret_config = load_secret_config(app_config)
        logger.info("Loaded runtime config: %s", config_path)
    except AppConfigurationError as error:
        logger.error(f"App configuration error: {error}")
        return 1

    logging.getLogger().setLevel(app_config.logging.level)

    store = build_store(app_config, secret_config)
    ticker = PeriodicTicker(
        interval_seconds=app_config.timer.tick_interval_seconds,
        logger=logging.getLogger("ticker"),
    )
    engine = TimerEngine(
        store,
        settings=build_settings(app_config),
        ticker=ticker,
        logger=logging.getLogger("session_timer"),
    )
    user_id = args.user_id or secret_config.user_id or DEFAULT_USER_ID

    try:
        return asyncio.run(
            run_session(
                engine,
                user_id=user_id,
                save_on_exit=args.save_on_exit,
                stdin=sys.stdin if sys.stdin is not None and sys.stdin.isatty() else None,
                logger=logger,
            )
        )
    finally:
        if isinstance(store, SqlSessionStore):
            store.dispose()


if __name__ == "__main__":
    sys.exit(main())
