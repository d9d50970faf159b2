"""Configuration loader for oramig."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from oramig.errors import MigrationError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "source_db",
        "source_user",
        "target_db",
        "target_user",
        "nfs_base",
        "mount_point",
        "require_mount",
        "parallel_jobs",
        "dump_file_size",
        "compression_algorithm",
        "expected_transfer_gb",
        "capacity_factor",
        "assume_yes",
        "credential_timeout_seconds",
        "export_duration",
        "import_duration",
        "downtime_estimate",
        "verbose",
        "log_file",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise MigrationError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise MigrationError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise MigrationError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise MigrationError(f"Unknown configuration keys: {unknown_list}")

        return parsed
