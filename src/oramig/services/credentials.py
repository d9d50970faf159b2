"""Interactive secret acquisition for oramig."""

import getpass
import sys
import threading
from typing import Callable, Optional

from oramig.errors import MigrationError
from oramig.errors_catalog import actionable_error


class Secret:
    """Holds a password in memory; its text form is always masked."""

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return "Secret('********')"

    def __str__(self) -> str:
        return "********"


class TerminalState:
    """Snapshot of the controlling terminal's attributes, for undoing a stranded getpass."""

    def __init__(self, stream):
        self.stream = stream

    def save(self):
        if sys.platform == "win32" or not self.stream.isatty():
            return None
        import termios

        try:
            return termios.tcgetattr(self.stream.fileno())
        except (termios.error, OSError, ValueError):
            return None

    def restore(self, saved):
        if saved is None:
            return
        import termios

        termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, saved)


class CredentialService:
    """Prompts the operator for a password, never echoing, logging or storing it."""

    def __init__(
        self,
        logger,
        default_timeout: float = 300.0,
        prompt_func: Optional[Callable[[str], str]] = None,
        stdin=None,
        terminal=None,
    ):
        self.logger = logger
        self.default_timeout = default_timeout
        self.stdin = stdin if stdin is not None else sys.stdin
        self.prompt_func = prompt_func or self._secure_input
        self.terminal = terminal if terminal is not None else TerminalState(self.stdin)

    def _secure_input(self, prompt: str) -> str:
        if self.stdin.isatty():
            return getpass.getpass(prompt)
        return self.stdin.readline().rstrip("\n")

    def acquire(self, label: str, timeout: Optional[float] = None) -> Secret:
        effective_timeout = timeout if timeout is not None else self.default_timeout
        outcome = {}

        def reader():
            try:
                outcome["value"] = self.prompt_func(f"Enter {label}: ")
            except (EOFError, OSError) as exc:
                outcome["error"] = exc

        self.logger.debug("Waiting up to %ss for %s", effective_timeout, label)
        thread = threading.Thread(target=reader, name="oramig-credential", daemon=True)
        saved_terminal = self.terminal.save()
        thread.start()
        thread.join(effective_timeout)

        if thread.is_alive():
            self._restore_terminal(saved_terminal)
            raise MigrationError(
                actionable_error("credential_timeout", label=label, timeout=str(effective_timeout))
            )
        if "error" in outcome:
            raise MigrationError(f"Could not read {label}: {outcome['error']}") from outcome["error"]

        value = outcome.get("value") or ""
        if not value:
            raise MigrationError(f"Empty {label} entered.")

        self.logger.info("%s acquired.", label.capitalize())
        return Secret(value)

    def _restore_terminal(self, saved):
        # getpass is still blocked with echo off
        try:
            self.terminal.restore(saved)
        except Exception as exc:
            self.logger.warning("Could not restore terminal echo: %s", exc)
