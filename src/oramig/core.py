import logging
import os
import shutil
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import oracledb
from rich.console import Console

from .errors import MigrationError
from .errors_catalog import actionable_error
from .models import GeneratedArtifacts, RunContext, SourceMetadata, WorkspacePaths
from .services.coordination import MigrationPhase
from .services.credentials import CredentialService, Secret
from .services.filesystem import FileSystemService
from .services.manifest import ManifestService
from .services.metadata import MetadataExtractor, MetadataStore
from .services.plan_writer import DurationEstimates, PlanWriterService
from .services.script_generator import ScriptGeneratorService
from .services.state import PhaseStateService
from .services.workspace import WorkspaceService

console = Console()
logger = logging.getLogger("oramig")


class MigrationPlanner:
    """Runs one planning pass: workspace checks, source harvest, script and plan rendering.

    The generated export/import scripts are never executed here; operators run
    them later on the source and target hosts.
    """

    RUN_ID_FORMAT = "%Y%m%d_%H%M%S"

    def __init__(
        self,
        source_db: str,
        target_db: str,
        nfs_base: str,
        source_user: str = "system",
        target_user: str = "system",
        mount_point: Optional[str] = None,
        require_mount: bool = True,
        parallel_jobs: int = 8,
        dump_file_size: str = "32G",
        compression_algorithm: str = "HIGH",
        expected_transfer_gb: float = 32000.0,
        capacity_factor: float = 1.25,
        assume_yes: bool = False,
        credential_timeout_seconds: float = 300.0,
        estimates: Optional[DurationEstimates] = None,
        from_run: Optional[str] = None,
        run_id: Optional[str] = None,
        oracledb_module=oracledb,
        disk_usage: Callable = shutil.disk_usage,
        confirm: Optional[Callable[[str], bool]] = None,
        prompt_func: Optional[Callable[[str], str]] = None,
    ):
        if parallel_jobs < 1:
            raise MigrationError("parallel_jobs must be a positive integer.")
        if expected_transfer_gb < 0 or capacity_factor <= 0:
            raise MigrationError("expected_transfer_gb and capacity_factor must be positive.")

        self.require_mount = require_mount
        self.expected_transfer_gb = expected_transfer_gb
        self.capacity_factor = capacity_factor
        self.assume_yes = assume_yes
        self.credential_timeout_seconds = credential_timeout_seconds
        self.estimates = estimates or DurationEstimates()
        self.from_run = from_run

        workspace = WorkspacePaths.from_base(nfs_base, mount_point)
        self.run_context = RunContext(
            run_id=run_id or self._fresh_run_id(workspace),
            workspace=workspace,
            source_db=source_db,
            source_user=source_user,
            target_db=target_db,
            target_user=target_user,
            parallel_jobs=parallel_jobs,
            dump_file_size=dump_file_size,
            compression_algorithm=compression_algorithm,
        )
        self.current_step_name: Optional[str] = None
        self.state: Optional[Dict[str, Any]] = None
        self.connection = None
        self.source_secret: Optional[Secret] = None
        self.metadata: Optional[SourceMetadata] = None
        self.artifacts: Optional[GeneratedArtifacts] = None
        self._run_log_handler: Optional[logging.Handler] = None

        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.workspace_service = WorkspaceService(
            logger=logger,
            console=console,
            filesystem_service=self.filesystem_service,
            disk_usage=disk_usage,
            confirm=confirm,
        )
        self.credential_service = CredentialService(
            logger=logger,
            default_timeout=credential_timeout_seconds,
            prompt_func=prompt_func,
        )
        self.metadata_extractor = MetadataExtractor(
            logger=logger,
            console=console,
            filesystem_service=self.filesystem_service,
            oracledb_module=oracledb_module,
        )
        self.metadata_store = MetadataStore(logger=logger)
        self.script_generator = ScriptGeneratorService(
            logger=logger,
            console=console,
            filesystem_service=self.filesystem_service,
        )
        self.plan_writer = PlanWriterService(
            logger=logger,
            console=console,
            filesystem_service=self.filesystem_service,
        )
        self.state_service = PhaseStateService(
            state_file=self._state_file(workspace, self.run_context.run_id),
            logger=logger,
        )
        self.manifest_service = ManifestService(
            manifest_file=self.run_context.log_file("run-manifest", ".json"),
            logger=logger,
        )

    @staticmethod
    def _state_file(workspace: WorkspacePaths, run_id: str) -> str:
        return os.path.join(workspace.log_dir, f"run-state_{run_id}.json")

    def _fresh_run_id(self, workspace: WorkspacePaths) -> str:
        """Timestamp identifier, suffixed with a counter when that second is already taken."""
        base = datetime.now().strftime(self.RUN_ID_FORMAT)
        candidate = base
        counter = 2
        while os.path.exists(self._state_file(workspace, candidate)):
            candidate = f"{base}_{counter}"
            counter += 1
        return candidate

    def _build_manifest_metadata(self) -> Dict[str, Any]:
        context = self.run_context
        return {
            "source_db": context.source_db,
            "source_user": context.source_user,
            "target_db": context.target_db,
            "target_user": context.target_user,
            "nfs_base": context.workspace.base_dir,
            "parallel_jobs": context.parallel_jobs,
            "dump_file_size": context.dump_file_size,
            "compression_algorithm": context.compression_algorithm,
            "from_run": self.from_run,
        }

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.manifest_service.step_started(name)
        self.current_step_name = name

        try:
            result = callback(*args, **kwargs)
        except Exception as exc:
            self.manifest_service.step_finished(name, "failed", error=str(exc))
            raise

        self.manifest_service.step_finished(name, "success")
        self.current_step_name = None
        return result

    def _attach_run_log(self):
        handler = logging.FileHandler(self.run_context.run_log, encoding="utf-8")
        handler.setLevel(logging.DEBUG if logger.isEnabledFor(logging.DEBUG) else logging.INFO)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(handler)
        self._run_log_handler = handler

    def _detach_run_log(self):
        if self._run_log_handler is None:
            return
        logger.removeHandler(self._run_log_handler)
        self._run_log_handler.close()
        self._run_log_handler = None

    def validate_workspace(self):
        paths = self.run_context.workspace
        self.workspace_service.ensure_mounted(paths, require_mount=self.require_mount)
        self.workspace_service.prepare(paths)
        self.workspace_service.check_capacity(
            paths,
            expected_transfer_gb=self.expected_transfer_gb,
            capacity_factor=self.capacity_factor,
            assume_yes=self.assume_yes,
        )

    def acquire_source_credential(self):
        label = f"SOURCE DB ({self.run_context.source_user}) password"
        self.source_secret = self.credential_service.acquire(
            label, timeout=self.credential_timeout_seconds
        )

    def check_source_connectivity(self):
        if self.source_secret is None:
            raise MigrationError("Source credential was not acquired.")
        context = self.run_context
        console.print(f"[blue]Connecting to source database {context.source_db}...[/blue]")
        self.connection = self.metadata_extractor.connect(
            context.source_db, context.source_user, self.source_secret
        )
        self.metadata_extractor.check_connectivity(self.connection, context.source_db)

    def extract_metadata(self) -> SourceMetadata:
        return self.metadata_extractor.extract(self.connection, self.run_context)

    def provision_source_directory(self):
        self.metadata_extractor.provision_directory(
            self.connection, self.run_context.workspace.data_dir, database_label="source"
        )

    def write_source_analysis(self):
        try:
            return self.metadata_extractor.write_source_analysis(self.connection, self.run_context)
        except MigrationError as exc:
            logger.warning("Source analysis report skipped: %s", exc)
            return None

    def load_previous_metadata(self) -> SourceMetadata:
        """Reuses flat files from an earlier run and copies them under this run's identifier."""
        previous = replace(self.run_context, run_id=self.from_run)
        if not os.path.exists(previous.metadata_path("tablespaces")):
            raise MigrationError(
                f"No extracted metadata found for run {self.from_run} in {previous.workspace.log_dir}."
            )
        logger.info("Loading metadata extracted by run %s", self.from_run)
        metadata = self.metadata_store.load(previous)
        self.metadata_extractor.persist(metadata, self.run_context)
        return metadata

    def generate_scripts(self, metadata: SourceMetadata) -> GeneratedArtifacts:
        return self.script_generator.write_all(self.run_context, metadata)

    def write_migration_plan(self, artifacts: GeneratedArtifacts) -> str:
        spatial_indexes = self.metadata.spatial_indexes if self.metadata else ()
        return self.plan_writer.write(self.run_context, artifacts, self.estimates, spatial_indexes)

    def close_connection(self):
        if self.connection is None:
            return
        try:
            self.connection.close()
        except self.metadata_extractor.oracledb.DatabaseError as exc:
            logger.warning("Could not close source connection cleanly: %s", exc)
        self.connection = None

    def print_instructions(self):
        context = self.run_context
        artifacts = self.artifacts
        console.print("[bold green]MIGRATION PLANNING COMPLETE FOR SEPARATE ENVIRONMENTS[/bold green]")
        console.print("[yellow]*** IMPORTANT: MIGRATION STEPS ***[/yellow]")
        console.print(f"1. ON SOURCE host: run {artifacts['source_export']}")
        console.print(f"2. WAIT for export to complete ({self.estimates.export})")
        console.print(f"3. ON TARGET host: run {artifacts['target_import']}")
        console.print(f"4. WAIT for import to complete ({self.estimates.import_})")
        console.print("5. ON TARGET: run the recreation and validation scripts")
        console.print(f"Plan: {artifacts['migration_plan']}")
        console.print(
            f"[yellow]All coordination happens via shared storage: {context.workspace.base_dir}[/yellow]"
        )

    def run(self) -> int:
        if os.path.exists(self.state_service.state_file):
            message = actionable_error(
                "run_id_in_use", run_id=self.run_context.run_id, path=self.state_service.state_file
            )
            console.print(f"[bold red]Error:[/bold red] {message}")
            logger.error(message)
            return 1

        exit_code = 1
        manifest_status = "failed"
        manifest_error: Optional[str] = None
        context = self.run_context

        try:
            logger.info("Starting oramig planning run %s...", context.run_id)
            self.manifest_service.start_run(
                run_id=context.run_id,
                metadata=self._build_manifest_metadata(),
            )

            self._run_step("validate_workspace", self.validate_workspace)
            self._attach_run_log()
            self.state = self.state_service.initialize(
                context.run_id, self._build_manifest_metadata()
            )

            if self.from_run:
                metadata = self._run_step("load_previous_metadata", self.load_previous_metadata)
            else:
                self._run_step("acquire_source_credential", self.acquire_source_credential)
                self._run_step("check_source_connectivity", self.check_source_connectivity)
                metadata = self._run_step("extract_metadata", self.extract_metadata)
                self._run_step("provision_source_directory", self.provision_source_directory)
                self._run_step("write_source_analysis", self.write_source_analysis)
            self.metadata = metadata
            self.state_service.advance(self.state, MigrationPhase.SOURCE_ANALYZED)

            self.artifacts = self._run_step("generate_scripts", self.generate_scripts, metadata)
            self._run_step("write_migration_plan", self.write_migration_plan, self.artifacts)
            self.state_service.advance(self.state, MigrationPhase.SCRIPTS_GENERATED)

            for key, path in self.artifacts.paths.items():
                self.manifest_service.add_artifact(key, path)

            self.print_instructions()
            manifest_status = "success"
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            manifest_status = "aborted"
            manifest_error = "Operation cancelled by user."
            if self.state:
                self.state_service.record_error(self.state, manifest_error)
            return exit_code
        except MigrationError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            manifest_error = str(exc)
            if self.state:
                self.state_service.record_error(self.state, manifest_error)
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            manifest_error = str(exc)
            if self.state:
                self.state_service.record_error(self.state, manifest_error)
            return exit_code
        finally:
            self.close_connection()
            self.source_secret = None
            self.manifest_service.finalize(manifest_status, error=manifest_error)
            self._detach_run_log()
