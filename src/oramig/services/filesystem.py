"""Filesystem helpers for oramig."""

import logging
import os
import sys
import tempfile

from rich.console import Console

from oramig.errors import MigrationError


class FileSystemService:
    """Encapsulates file and directory side effects on the shared workspace."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dir(self, path: str, mode: int):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as exc:
            raise MigrationError(f"Could not create directory '{path}': {exc}") from exc
        self.set_permissions(path, mode)

    def is_writable(self, path: str) -> bool:
        """Checks a directory by creating and removing a file in it."""
        try:
            fd, marker = tempfile.mkstemp(prefix=".oramig-write-check-", dir=path)
        except OSError:
            return False
        os.close(fd)
        try:
            os.remove(marker)
        except OSError as exc:
            self.logger.warning("Could not remove write-check file %s: %s", marker, exc)
        return True

    def write_text_atomic(self, path: str, content: str, mode: int):
        """Writes a complete file or nothing at all."""
        directory = os.path.dirname(path) or "."
        try:
            fd, temp_path = tempfile.mkstemp(prefix=".oramig-", suffix=".tmp", dir=directory)
        except OSError as exc:
            raise MigrationError(f"Could not write '{path}': {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
            os.replace(temp_path, path)
        except OSError as exc:
            raise MigrationError(f"Could not write '{path}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

        self.set_permissions(path, mode)
        self.logger.debug("Wrote %s", path)
