import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler

from .core import MigrationError, MigrationPlanner
from .models import WorkspacePaths
from .services.config_loader import ConfigLoader
from .services.coordination import CoordinationService, MigrationPhase
from .services.plan_writer import DurationEstimates
from .services.spatial_report import parse_spatial_log
from .services.state import PhaseStateService

DEFAULT_CONFIG_NAME = ".oramig.yml"
DEFAULT_NFS_BASE = "/mnt/shared/oracle_mig"
COMPRESSION_ALGORITHMS = ["BASIC", "LOW", "MEDIUM", "HIGH"]

console = Console()


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _load_config(config):
    try:
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path
        return ConfigLoader().load(resolved_config)
    except MigrationError as exc:
        raise click.ClickException(str(exc)) from exc


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.group()
def main():
    """Plan an Oracle migration between hosts that share only network storage."""


@main.command()
@click.option("--config", required=False, type=click.Path(), help=f"YAML configuration file. Defaults to {DEFAULT_CONFIG_NAME} if present.")
@click.option("--source-db", required=False, help="Source connect identifier (TNS alias or EZConnect).")
@click.option("--source-user", required=False, help="Source database user (default: system).")
@click.option("--target-db", required=False, help="Target connect identifier used by the generated scripts.")
@click.option("--target-user", required=False, help="Target database user (default: system).")
@click.option("--nfs-base", required=False, type=click.Path(), help=f"Shared workspace root (default: {DEFAULT_NFS_BASE}).")
@click.option("--mount-point", required=False, type=click.Path(), help="Mount point that must be mounted (default: parent of --nfs-base).")
@click.option("--no-mount-check", is_flag=True, default=None, help="Skip the mount point check, for local rehearsals.")
@click.option("--parallel-jobs", required=False, type=click.IntRange(min=1), help="Data Pump PARALLEL degree (default: 8).")
@click.option("--dump-file-size", required=False, help="Data Pump FILESIZE per dump chunk (default: 32G).")
@click.option("--compression-algorithm", required=False, type=click.Choice(COMPRESSION_ALGORITHMS), help="Data Pump COMPRESSION_ALGORITHM (default: HIGH).")
@click.option("--expected-transfer-gb", required=False, type=float, help="Expected dump set size in GB (default: 32000).")
@click.option("--capacity-factor", required=False, type=float, help="Free space required as a multiple of the transfer size (default: 1.25).")
@click.option("--assume-yes", is_flag=True, default=None, help="Continue without prompting when free space is low.")
@click.option("--credential-timeout", required=False, type=float, help="Seconds to wait for the password prompt (default: 300).")
@click.option("--from-run", required=False, help="Reuse metadata extracted by an earlier run instead of connecting.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Additional local log file")
def plan(
    config,
    source_db,
    source_user,
    target_db,
    target_user,
    nfs_base,
    mount_point,
    no_mount_check,
    parallel_jobs,
    dump_file_size,
    compression_algorithm,
    expected_transfer_gb,
    capacity_factor,
    assume_yes,
    credential_timeout,
    from_run,
    verbose,
    log_file,
):
    """Analyze the source and generate export, import and follow-up scripts."""
    logger = logging.getLogger("oramig")
    config_values = _load_config(config)

    source_db = _resolve_option(source_db, config_values, "source_db")
    source_user = _resolve_option(source_user, config_values, "source_user", default="system")
    target_db = _resolve_option(target_db, config_values, "target_db")
    target_user = _resolve_option(target_user, config_values, "target_user", default="system")
    nfs_base = _resolve_option(nfs_base, config_values, "nfs_base", default=DEFAULT_NFS_BASE)
    mount_point = _resolve_option(mount_point, config_values, "mount_point")
    require_mount = bool(config_values.get("require_mount", True)) and not no_mount_check
    parallel_jobs = int(_resolve_option(parallel_jobs, config_values, "parallel_jobs", default=8))
    dump_file_size = str(_resolve_option(dump_file_size, config_values, "dump_file_size", default="32G"))
    compression_algorithm = str(
        _resolve_option(compression_algorithm, config_values, "compression_algorithm", default="HIGH")
    ).upper()
    expected_transfer_gb = float(
        _resolve_option(expected_transfer_gb, config_values, "expected_transfer_gb", default=32000.0)
    )
    capacity_factor = float(_resolve_option(capacity_factor, config_values, "capacity_factor", default=1.25))
    assume_yes = bool(_resolve_option(assume_yes, config_values, "assume_yes", default=False))
    credential_timeout = float(
        _resolve_option(credential_timeout, config_values, "credential_timeout_seconds", default=300.0)
    )
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    defaults = DurationEstimates()
    estimates = DurationEstimates(
        export=str(config_values.get("export_duration", defaults.export)),
        import_=str(config_values.get("import_duration", defaults.import_)),
        downtime=str(config_values.get("downtime_estimate", defaults.downtime)),
    )

    if not source_db:
        raise click.ClickException("Missing required option '--source-db' (or provide it in config).")
    if not target_db:
        raise click.ClickException("Missing required option '--target-db' (or provide it in config).")
    if compression_algorithm not in COMPRESSION_ALGORITHMS:
        raise click.ClickException(
            f"Invalid compression_algorithm. Supported values: {', '.join(COMPRESSION_ALGORITHMS)}"
        )

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        planner = MigrationPlanner(
            source_db=source_db,
            source_user=source_user,
            target_db=target_db,
            target_user=target_user,
            nfs_base=nfs_base,
            mount_point=mount_point,
            require_mount=require_mount,
            parallel_jobs=parallel_jobs,
            dump_file_size=dump_file_size,
            compression_algorithm=compression_algorithm,
            expected_transfer_gb=expected_transfer_gb,
            capacity_factor=capacity_factor,
            assume_yes=assume_yes,
            credential_timeout_seconds=credential_timeout,
            estimates=estimates,
            from_run=from_run,
        )
    except MigrationError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(planner.run())


@main.command()
@click.option("--run-id", required=True, help="Run identifier printed by `oramig plan`.")
@click.option("--nfs-base", required=False, type=click.Path(), help=f"Shared workspace root (default: {DEFAULT_NFS_BASE}).")
@click.option("--config", required=False, type=click.Path(), help="YAML configuration file.")
def status(run_id, nfs_base, config):
    """Show how far a run has progressed, judged from markers on shared storage."""
    logger = logging.getLogger("oramig")
    config_values = _load_config(config)
    paths = WorkspacePaths.from_base(
        _resolve_option(nfs_base, config_values, "nfs_base", default=DEFAULT_NFS_BASE)
    )

    state_service = PhaseStateService(
        state_file=os.path.join(paths.log_dir, f"run-state_{run_id}.json"),
        logger=logger,
    )
    coordination = CoordinationService(logger=logger, log_dir=paths.log_dir, data_dir=paths.data_dir)

    try:
        state = state_service.load()
        if state is None:
            raise click.ClickException(f"No planning run {run_id} found in {paths.log_dir}.")
        recorded = state_service.current_phase(state)
        phase = coordination.detect_phase(run_id, recorded=recorded)
        outcome = coordination.import_outcome(run_id)
    except MigrationError as exc:
        raise click.ClickException(str(exc)) from exc

    console.print(f"[bold]Run {run_id}:[/bold] {phase.value}")
    for name, path in coordination.markers(run_id).as_dict().items():
        mark = "[green]present[/green]" if os.path.exists(path) else "[dim]absent[/dim]"
        console.print(f"  {name:<22} {mark}  {path}")
    console.print(f"  dump files             {len(coordination.dump_files(run_id))}")

    if outcome is not None and outcome.partial:
        console.print(f"[yellow]Import finished with errors:[/yellow] {outcome.detail}")
    if phase == MigrationPhase.EXPORT_RUNNING and not os.path.exists(
        coordination.markers(run_id).export_completed
    ):
        console.print("[yellow]Export not complete yet; do not start the import.[/yellow]")


@main.command("spatial-report")
@click.option("--run-id", required=True, help="Run identifier printed by `oramig plan`.")
@click.option("--nfs-base", required=False, type=click.Path(), help=f"Shared workspace root (default: {DEFAULT_NFS_BASE}).")
@click.option("--config", required=False, type=click.Path(), help="YAML configuration file.")
def spatial_report(run_id, nfs_base, config):
    """Summarize per-index results of the spatial index rebuild."""
    config_values = _load_config(config)
    paths = WorkspacePaths.from_base(
        _resolve_option(nfs_base, config_values, "nfs_base", default=DEFAULT_NFS_BASE)
    )
    log_path = os.path.join(paths.log_dir, f"spatial_indexes_{run_id}.log")
    if not os.path.exists(log_path):
        raise click.ClickException(f"Spatial rebuild log not found: {log_path}")

    with open(log_path, "r", encoding="utf-8", errors="replace") as file_obj:
        result = parse_spatial_log(file_obj.read())

    for name in result.succeeded:
        console.print(f"[green]OK[/green]      {name}")
    for name, error in result.failed:
        console.print(f"[red]FAILED[/red]  {name}: {error}")
    console.print(f"{len(result.succeeded)} succeeded, {len(result.failed)} failed")

    if not result.complete:
        console.print("[yellow]Summary line missing; the rebuild may still be running or was interrupted.[/yellow]")
        raise SystemExit(1)
    if result.has_failures:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
