import io
import threading

import pytest

from oramig.errors import MigrationError
from oramig.services.credentials import CredentialService, Secret, TerminalState


class DummyLogger:
    def __init__(self):
        self.messages = []

    def _record(self, message, *args, **_kwargs):
        self.messages.append(message % args if args else message)

    info = _record
    debug = _record
    warning = _record


def test_acquire_returns_masked_secret():
    logger = DummyLogger()
    service = CredentialService(logger=logger, prompt_func=lambda _prompt: "s3cr3t")

    secret = service.acquire("SOURCE DB (system) password", timeout=5)

    assert secret.reveal() == "s3cr3t"
    assert "s3cr3t" not in repr(secret)
    assert "s3cr3t" not in str(secret)
    assert all("s3cr3t" not in message for message in logger.messages)


def test_acquire_rejects_empty_value():
    service = CredentialService(logger=DummyLogger(), prompt_func=lambda _prompt: "")

    with pytest.raises(MigrationError, match="Empty SOURCE DB password"):
        service.acquire("SOURCE DB password", timeout=5)


def test_acquire_times_out_when_nobody_answers():
    release = threading.Event()

    def blocking_prompt(_prompt):
        release.wait(5)
        return "late"

    service = CredentialService(logger=DummyLogger(), prompt_func=blocking_prompt)

    try:
        with pytest.raises(MigrationError, match="within 0.1 seconds"):
            service.acquire("SOURCE DB password", timeout=0.1)
    finally:
        release.set()


def test_acquire_reports_closed_input():
    def closed_prompt(_prompt):
        raise EOFError("stdin closed")

    service = CredentialService(logger=DummyLogger(), prompt_func=closed_prompt)

    with pytest.raises(MigrationError, match="Could not read SOURCE DB password"):
        service.acquire("SOURCE DB password", timeout=5)


def test_acquire_reads_piped_stdin_when_not_a_terminal():
    service = CredentialService(logger=DummyLogger(), stdin=io.StringIO("from-pipe\n"))

    assert service.acquire("TARGET DB password", timeout=5).reveal() == "from-pipe"


def test_secret_does_not_accept_new_attributes():
    secret = Secret("value")

    with pytest.raises(AttributeError):
        secret.extra = "leak"


class FakeTerminal:
    def __init__(self, fail_restore=False):
        self.calls = []
        self.fail_restore = fail_restore

    def save(self):
        self.calls.append("save")
        return ["echo-on"]

    def restore(self, saved):
        self.calls.append(("restore", saved))
        if self.fail_restore:
            raise OSError("not a terminal")


def test_acquire_restores_terminal_after_timeout():
    release = threading.Event()
    terminal = FakeTerminal()

    def blocking_prompt(_prompt):
        assert terminal.calls == ["save"]
        release.wait(5)
        return "late"

    service = CredentialService(
        logger=DummyLogger(), prompt_func=blocking_prompt, terminal=terminal
    )

    try:
        with pytest.raises(MigrationError, match="within 0.1 seconds"):
            service.acquire("SOURCE DB password", timeout=0.1)
    finally:
        release.set()

    assert terminal.calls == ["save", ("restore", ["echo-on"])]


def test_acquire_leaves_terminal_alone_when_answered():
    terminal = FakeTerminal()
    service = CredentialService(
        logger=DummyLogger(), prompt_func=lambda _prompt: "s3cr3t", terminal=terminal
    )

    service.acquire("SOURCE DB password", timeout=5)

    assert terminal.calls == ["save"]


def test_failed_terminal_restore_is_logged_and_timeout_still_raised():
    release = threading.Event()
    logger = DummyLogger()
    service = CredentialService(
        logger=logger,
        prompt_func=lambda _prompt: release.wait(5) and "late",
        terminal=FakeTerminal(fail_restore=True),
    )

    try:
        with pytest.raises(MigrationError, match="within 0.1 seconds"):
            service.acquire("SOURCE DB password", timeout=0.1)
    finally:
        release.set()

    assert "Could not restore terminal echo: not a terminal" in logger.messages


def test_terminal_state_skips_streams_that_are_not_terminals():
    state = TerminalState(io.StringIO("x"))

    assert state.save() is None
    state.restore(None)
