import os
import stat
import sys

import pytest

from oramig.errors import MigrationError
from oramig.services.filesystem import FileSystemService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def test_write_text_atomic_replaces_content_and_leaves_no_temp_files(tmp_path):
    service = FileSystemService(logger=DummyLogger(), console=DummyConsole())
    target = tmp_path / "run_source_export_1.sh"
    target.write_text("old", encoding="utf-8")

    service.write_text_atomic(str(target), "#!/bin/bash\necho new\n", 0o755)

    assert target.read_text(encoding="utf-8") == "#!/bin/bash\necho new\n"
    assert sorted(os.listdir(tmp_path)) == ["run_source_export_1.sh"]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
def test_write_text_atomic_applies_mode(tmp_path):
    service = FileSystemService(logger=DummyLogger(), console=DummyConsole())
    target = tmp_path / "script.sh"

    service.write_text_atomic(str(target), "echo\n", 0o755)

    assert stat.S_IMODE(target.stat().st_mode) == 0o755


def test_write_text_atomic_fails_for_missing_directory(tmp_path):
    service = FileSystemService(logger=DummyLogger(), console=DummyConsole())

    with pytest.raises(MigrationError, match="Could not write"):
        service.write_text_atomic(str(tmp_path / "missing" / "file.txt"), "x", 0o644)


def test_is_writable_checks_directory(tmp_path):
    service = FileSystemService(logger=DummyLogger(), console=DummyConsole())

    assert service.is_writable(str(tmp_path)) is True
    assert service.is_writable(str(tmp_path / "missing")) is False
    assert os.listdir(tmp_path) == []
