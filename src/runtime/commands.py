"""Console command parsing and dispatch onto the timer engine."""

from __future__ import annotations

from typing import Optional

from session_timer import SessionCommandResult, TimerEngine
from session_timer.constants import (
    COMMAND_COMPLETE,
    COMMAND_DISCARD,
    COMMAND_RETURN_TO_FOCUS,
    COMMAND_TAKE_BREAK,
)

CONSOLE_QUIT = "quit"
CONSOLE_HELP = "help"

_ALIASES = {
    "b": COMMAND_TAKE_BREAK,
    "break": COMMAND_TAKE_BREAK,
    "f": COMMAND_RETURN_TO_FOCUS,
    "focus": COMMAND_RETURN_TO_FOCUS,
    "s": COMMAND_COMPLETE,
    "save": COMMAND_COMPLETE,
    "d": COMMAND_DISCARD,
    "discard": COMMAND_DISCARD,
    "q": CONSOLE_QUIT,
    "quit": CONSOLE_QUIT,
    "?": CONSOLE_HELP,
    "h": CONSOLE_HELP,
    "help": CONSOLE_HELP,
}

CONSOLE_HELP_TEXT = (
    "Commands: [b]reak, [f]ocus, [s]ave, [d]iscard, [q]uit (leave session running)"
)


def parse_console_command(line: str) -> Optional[str]:
    """Map one input line to a command name; None for unknown input."""
    word = line.strip().lower()
    if not word:
        return None
    return _ALIASES.get(word)


async def run_console_command(engine: TimerEngine, command: str) -> SessionCommandResult:
    if command == COMMAND_TAKE_BREAK:
        return await engine.take_break()
    if command == COMMAND_RETURN_TO_FOCUS:
        return await engine.return_to_focus()
    if command == COMMAND_COMPLETE:
        return await engine.complete()
    if command == COMMAND_DISCARD:
        return await engine.discard_session()
    raise ValueError(f"Not an engine command: {command}")
