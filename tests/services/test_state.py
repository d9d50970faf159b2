import json

import pytest

from oramig.errors import MigrationError
from oramig.services.coordination import MigrationPhase
from oramig.services.state import PhaseStateService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None


def test_phase_state_service_creates_and_advances_state(tmp_path):
    state_file = tmp_path / "run-state_20260101_000000.json"
    service = PhaseStateService(str(state_file), logger=DummyLogger())

    state = service.initialize("20260101_000000", {"source_db": "SRC"})
    assert state_file.exists()
    assert service.current_phase(state) == MigrationPhase.PLANNED

    service.advance(state, MigrationPhase.SOURCE_ANALYZED)
    service.advance(state, MigrationPhase.SCRIPTS_GENERATED)

    loaded = json.loads(state_file.read_text(encoding="utf-8"))
    assert loaded["phase"] == "SCRIPTS_GENERATED"
    assert [entry["phase"] for entry in loaded["history"]] == [
        "PLANNED",
        "SOURCE_ANALYZED",
        "SCRIPTS_GENERATED",
    ]
    assert loaded["metadata"]["source_db"] == "SRC"


def test_phase_state_service_rejects_regression(tmp_path):
    service = PhaseStateService(str(tmp_path / "run-state.json"), logger=DummyLogger())
    state = service.initialize("run-1", {})
    service.advance(state, MigrationPhase.SCRIPTS_GENERATED)

    with pytest.raises(MigrationError, match="back to SOURCE_ANALYZED"):
        service.advance(state, MigrationPhase.SOURCE_ANALYZED)

    assert service.current_phase(state) == MigrationPhase.SCRIPTS_GENERATED


def test_phase_state_service_same_phase_is_noop(tmp_path):
    service = PhaseStateService(str(tmp_path / "run-state.json"), logger=DummyLogger())
    state = service.initialize("run-1", {})
    service.advance(state, MigrationPhase.SOURCE_ANALYZED)
    service.advance(state, MigrationPhase.SOURCE_ANALYZED)

    assert len(state["history"]) == 2


def test_phase_state_service_records_error_and_reloads(tmp_path):
    state_file = tmp_path / "run-state.json"
    service = PhaseStateService(str(state_file), logger=DummyLogger())
    state = service.initialize("run-1", {})

    service.record_error(state, "boom")

    reloaded = PhaseStateService(str(state_file), logger=DummyLogger()).load()
    assert reloaded["last_error"] == "boom"
    assert reloaded["run_id"] == "run-1"


def test_phase_state_service_load_returns_none_when_missing(tmp_path):
    service = PhaseStateService(str(tmp_path / "missing.json"), logger=DummyLogger())

    assert service.load() is None


def test_phase_state_service_rejects_invalid_format(tmp_path):
    state_file = tmp_path / "run-state.json"
    state_file.write_text("[]", encoding="utf-8")
    service = PhaseStateService(str(state_file), logger=DummyLogger())

    with pytest.raises(MigrationError, match="invalid format"):
        service.load()


def test_initialize_refuses_a_state_file_that_already_exists(tmp_path):
    state_file = tmp_path / "run-state_20260101_000000.json"
    first = PhaseStateService(str(state_file), logger=DummyLogger())
    state = first.initialize("20260101_000000", {"source_db": "SRC"})
    first.advance(state, MigrationPhase.SCRIPTS_GENERATED)

    second = PhaseStateService(str(state_file), logger=DummyLogger())
    with pytest.raises(MigrationError, match="already taken"):
        second.initialize("20260101_000000", {"source_db": "OTHER"})

    loaded = json.loads(state_file.read_text(encoding="utf-8"))
    assert loaded["phase"] == "SCRIPTS_GENERATED"
    assert loaded["metadata"]["source_db"] == "SRC"
