"""Planning-phase persistence for the marker protocol."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from oramig.errors import MigrationError
from oramig.errors_catalog import actionable_error
from oramig.services.coordination import MigrationPhase


class PhaseStateService:
    """Persists the forward-only phase history of one run in the shared log dir."""

    SCHEMA_VERSION = 1

    def __init__(self, state_file: str, logger):
        self.state_file = state_file
        self.logger = logger

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.state_file):
            return None

        try:
            with open(self.state_file, "r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise MigrationError(f"Could not read state file '{self.state_file}': {exc}") from exc

        if not isinstance(data, dict):
            raise MigrationError(f"State file '{self.state_file}' has invalid format.")

        return data

    def save(self, state: Dict[str, Any]):
        directory = os.path.dirname(self.state_file) or "."
        os.makedirs(directory, exist_ok=True)
        state["schema_version"] = self.SCHEMA_VERSION
        state["updated_at"] = self._now()

        fd, temp_path = tempfile.mkstemp(prefix="run-state-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(state, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.state_file)
        except OSError as exc:
            raise MigrationError(f"Could not write state file '{self.state_file}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def initialize(self, run_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        self._claim(run_id)
        state = {
            "schema_version": self.SCHEMA_VERSION,
            "run_id": run_id,
            "created_at": self._now(),
            "updated_at": self._now(),
            "phase": MigrationPhase.PLANNED.value,
            "history": [{"phase": MigrationPhase.PLANNED.value, "at": self._now()}],
            "metadata": metadata,
            "last_error": None,
        }
        self.save(state)
        return state

    def _claim(self, run_id: str):
        """Creates the state file exclusively so two runs never share it."""
        directory = os.path.dirname(self.state_file) or "."
        os.makedirs(directory, exist_ok=True)
        try:
            with open(self.state_file, "x", encoding="utf-8"):
                pass
        except FileExistsError as exc:
            raise MigrationError(
                actionable_error("run_id_in_use", run_id=run_id, path=self.state_file)
            ) from exc
        except OSError as exc:
            raise MigrationError(f"Could not create state file '{self.state_file}': {exc}") from exc

    def current_phase(self, state: Dict[str, Any]) -> MigrationPhase:
        try:
            return MigrationPhase(state.get("phase", MigrationPhase.PLANNED.value))
        except ValueError as exc:
            raise MigrationError(f"Unknown phase in state file '{self.state_file}'.") from exc

    def advance(self, state: Dict[str, Any], phase: MigrationPhase):
        current = self.current_phase(state)
        if phase.order < current.order:
            raise MigrationError(
                actionable_error(
                    "phase_regression",
                    run_id=str(state.get("run_id")),
                    current=current.value,
                    requested=phase.value,
                )
            )
        if phase == current:
            return

        state["phase"] = phase.value
        state.setdefault("history", []).append({"phase": phase.value, "at": self._now()})
        self.save(state)
        self.logger.info("Run %s is now %s", state.get("run_id"), phase.value)

    def record_error(self, state: Dict[str, Any], error: str):
        state["last_error"] = error
        self.save(state)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
