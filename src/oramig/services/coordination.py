"""Marker-file protocol shared by the source and target hosts."""

import glob
import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from oramig.errors import MigrationError


class MigrationPhase(str, Enum):
    PLANNED = "PLANNED"
    SOURCE_ANALYZED = "SOURCE_ANALYZED"
    SCRIPTS_GENERATED = "SCRIPTS_GENERATED"
    EXPORT_RUNNING = "EXPORT_RUNNING"
    EXPORT_COMPLETE = "EXPORT_COMPLETE"
    IMPORT_RUNNING = "IMPORT_RUNNING"
    IMPORT_COMPLETE = "IMPORT_COMPLETE"
    RECREATION_AND_VALIDATION_DONE = "RECREATION_AND_VALIDATION_DONE"

    @property
    def order(self) -> int:
        return list(MigrationPhase).index(self)


@dataclass(frozen=True)
class MarkerPaths:
    export_started: str
    export_completed: str
    import_started: str
    import_completed: str
    validation_completed: str

    @classmethod
    def for_run(cls, log_dir: str, run_id: str) -> "MarkerPaths":
        def marker(name: str) -> str:
            return os.path.join(log_dir, f"{name}_{run_id}.marker")

        return cls(
            export_started=marker("export_started"),
            export_completed=marker("export_completion"),
            import_started=marker("import_started"),
            import_completed=marker("import_completion"),
            validation_completed=marker("validation_completion"),
        )

    @classmethod
    def for_context(cls, context) -> "MarkerPaths":
        return cls.for_run(context.workspace.log_dir, context.run_id)

    def as_dict(self) -> Dict[str, str]:
        return {
            "export_started": self.export_started,
            "export_completed": self.export_completed,
            "import_started": self.import_started,
            "import_completed": self.import_completed,
            "validation_completed": self.validation_completed,
        }


@dataclass(frozen=True)
class ImportOutcome:
    completed: bool
    partial: bool
    detail: str


class CoordinationService:
    """Reads markers and dump files to tell how far a run has progressed.

    Markers are advisory. Nothing here locks or polls; each call is a
    one-shot look at the shared directory.
    """

    def __init__(self, logger, log_dir: str, data_dir: str):
        self.logger = logger
        self.log_dir = log_dir
        self.data_dir = data_dir

    def markers(self, run_id: str) -> MarkerPaths:
        return MarkerPaths.for_run(self.log_dir, run_id)

    def dump_files(self, run_id: str) -> List[str]:
        return sorted(glob.glob(os.path.join(self.data_dir, f"full_export_*_{run_id}.dmp")))

    def import_guard(self, run_id: str) -> List[str]:
        dumps = self.dump_files(run_id)
        if not dumps:
            pattern = os.path.join(self.data_dir, f"full_export_*_{run_id}.dmp")
            raise MigrationError(f"No dump files found for import. Expected pattern: {pattern}")
        return dumps

    def detect_phase(
        self, run_id: str, recorded: Optional[MigrationPhase] = None
    ) -> MigrationPhase:
        markers = self.markers(run_id)
        detected = recorded or MigrationPhase.PLANNED

        checks = (
            (markers.validation_completed, MigrationPhase.RECREATION_AND_VALIDATION_DONE),
            (markers.import_completed, MigrationPhase.IMPORT_COMPLETE),
            (markers.import_started, MigrationPhase.IMPORT_RUNNING),
            (markers.export_completed, MigrationPhase.EXPORT_COMPLETE),
            (markers.export_started, MigrationPhase.EXPORT_RUNNING),
        )
        for path, phase in checks:
            if os.path.exists(path):
                if phase.order > detected.order:
                    detected = phase
                break
        else:
            if self.dump_files(run_id) and MigrationPhase.EXPORT_RUNNING.order > detected.order:
                detected = MigrationPhase.EXPORT_RUNNING

        self.logger.debug("Run %s detected at phase %s", run_id, detected.value)
        return detected

    def import_outcome(self, run_id: str) -> Optional[ImportOutcome]:
        path = self.markers(run_id).import_completed
        if not os.path.exists(path):
            return None

        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                detail = file_obj.readline().strip()
        except OSError as exc:
            raise MigrationError(f"Could not read marker '{path}': {exc}") from exc

        return ImportOutcome(
            completed=True,
            partial=detail.startswith("IMPORT_COMPLETED_WITH_ERRORS"),
            detail=detail,
        )
