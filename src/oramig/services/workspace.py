"""Shared workspace validation for oramig."""

import os
import shutil
from typing import Callable, Optional

import click

from oramig.constants import DIR_MODE
from oramig.errors import MigrationError
from oramig.errors_catalog import actionable_error
from oramig.models import WorkspacePaths

GIB = 1024 ** 3


class WorkspaceService:
    """Checks that the shared storage is mounted, writable and large enough."""

    def __init__(
        self,
        logger,
        console,
        filesystem_service,
        disk_usage: Callable = shutil.disk_usage,
        ismount: Callable[[str], bool] = os.path.ismount,
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service
        self.disk_usage = disk_usage
        self.ismount = ismount
        self.confirm = confirm or (lambda message: click.confirm(message, default=False))

    def ensure_mounted(self, paths: WorkspacePaths, require_mount: bool = True):
        if not require_mount:
            self.logger.warning("Mount check disabled; %s is treated as shared storage.", paths.base_dir)
            return

        if not self.ismount(paths.mount_point):
            raise MigrationError(actionable_error("share_not_mounted", path=paths.mount_point))
        self.logger.info("Shared storage mounted at %s", paths.mount_point)

    def prepare(self, paths: WorkspacePaths):
        self.console.print("[blue]Preparing shared workspace...[/blue]")
        self.filesystem_service.ensure_dir(paths.base_dir, DIR_MODE)
        for directory in paths.all_dirs():
            self.filesystem_service.ensure_dir(directory, DIR_MODE)
            if not self.filesystem_service.is_writable(directory):
                raise MigrationError(actionable_error("workspace_not_writable", path=directory))
        self.logger.info("Workspace ready under %s", paths.base_dir)

    def available_gb(self, path: str) -> int:
        return int(self.disk_usage(path).free // GIB)

    def check_capacity(
        self,
        paths: WorkspacePaths,
        expected_transfer_gb: float,
        capacity_factor: float,
        assume_yes: bool = False,
    ) -> int:
        required_gb = int(expected_transfer_gb * capacity_factor)
        available_gb = self.available_gb(paths.base_dir)

        if available_gb >= required_gb:
            self.logger.info("Disk space available: %sGB", available_gb)
            return available_gb

        self.logger.warning(
            "Low disk space: %sGB available, recommended %sGB", available_gb, required_gb
        )
        self.console.print(
            f"[yellow]Warning:[/yellow] only {available_gb}GB free on {paths.base_dir}, "
            f"{required_gb}GB recommended."
        )

        if assume_yes:
            self.logger.warning("Continuing with low disk space (--assume-yes).")
            return available_gb

        if not self.confirm("Continue anyway?"):
            raise MigrationError(
                actionable_error(
                    "insufficient_space",
                    available_gb=str(available_gb),
                    required_gb=str(required_gb),
                    path=paths.base_dir,
                )
            )

        self.logger.warning("Operator accepted low disk space.")
        return available_gb
