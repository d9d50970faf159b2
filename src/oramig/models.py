"""Shared domain models for oramig."""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from oramig.constants import FIELD_SEPARATOR, NO_DB_LINK, PUBLIC_OWNER

# artifact key -> (file name prefix, extension)
ARTIFACT_FILES: Dict[str, Tuple[str, str]] = {
    "source_export": ("run_source_export", ".sh"),
    "source_metadata_export": ("run_source_metadata_export", ".sh"),
    "target_import": ("run_target_import", ".sh"),
    "target_spatial_import": ("run_target_spatial_import", ".sh"),
    "dblinks_sql": ("recreate_dblinks", ".sql"),
    "synonyms_sql": ("recreate_synonyms", ".sql"),
    "validation_sql": ("validate_target", ".sql"),
    "migration_plan": ("migration_plan", ".txt"),
}

METADATA_FILES: Dict[str, Tuple[str, str]] = {
    "tablespaces": ("tablespaces", ".lst"),
    "dblinks": ("dblinks", ".lst"),
    "synonyms": ("synonyms", ".lst"),
    "spatial_indexes": ("spatial_indexes", ".lst"),
}


@dataclass(frozen=True)
class WorkspacePaths:
    """Shared directory tree mounted identically on both hosts."""

    base_dir: str
    log_dir: str
    data_dir: str
    backup_dir: str
    mount_point: str

    @classmethod
    def from_base(cls, base_dir: str, mount_point: Optional[str] = None) -> "WorkspacePaths":
        base = os.path.abspath(base_dir)
        return cls(
            base_dir=base,
            log_dir=os.path.join(base, "logs"),
            data_dir=os.path.join(base, "datapump"),
            backup_dir=os.path.join(base, "backups"),
            mount_point=os.path.abspath(mount_point) if mount_point else os.path.dirname(base),
        )

    def all_dirs(self) -> List[str]:
        return [self.log_dir, self.data_dir, self.backup_dir]


@dataclass(frozen=True)
class RunContext:
    """Run-scoped values fixed once per planning invocation."""

    run_id: str
    workspace: WorkspacePaths
    source_db: str
    source_user: str
    target_db: str
    target_user: str
    parallel_jobs: int = 8
    dump_file_size: str = "32G"
    compression_algorithm: str = "HIGH"

    def log_file(self, prefix: str, extension: str) -> str:
        return os.path.join(self.workspace.log_dir, f"{prefix}_{self.run_id}{extension}")

    def artifact_path(self, key: str) -> str:
        prefix, extension = ARTIFACT_FILES[key]
        return self.log_file(prefix, extension)

    def metadata_path(self, key: str) -> str:
        prefix, extension = METADATA_FILES[key]
        return self.log_file(prefix, extension)

    @property
    def run_log(self) -> str:
        return self.log_file("migration", ".log")

    @property
    def dump_pattern(self) -> str:
        return f"full_export_%U_{self.run_id}.dmp"

    @property
    def dump_glob(self) -> str:
        return f"full_export_*_{self.run_id}.dmp"


def _split_fields(line: str, expected: int) -> List[str]:
    parts = [part.strip() for part in line.rstrip("\n").split(FIELD_SEPARATOR, expected - 1)]
    if len(parts) != expected:
        raise ValueError(f"expected {expected} fields, got {len(parts)}")
    return parts


@dataclass(frozen=True)
class DatabaseLink:
    owner: str
    link_name: str
    username: str
    host: str
    created: str

    FIELD_COUNT = 5

    @property
    def is_public(self) -> bool:
        return self.owner.upper() == PUBLIC_OWNER

    @classmethod
    def from_line(cls, line: str) -> "DatabaseLink":
        return cls(*_split_fields(line, cls.FIELD_COUNT))

    def to_line(self) -> str:
        return FIELD_SEPARATOR.join(
            [self.owner, self.link_name, self.username, self.host, self.created]
        )


@dataclass(frozen=True)
class Synonym:
    owner: str
    synonym_name: str
    table_owner: str
    table_name: str
    db_link: str = NO_DB_LINK

    FIELD_COUNT = 5

    @property
    def is_public(self) -> bool:
        return self.owner.upper() == PUBLIC_OWNER

    @property
    def remote(self) -> bool:
        return bool(self.db_link) and self.db_link.upper() != NO_DB_LINK

    @classmethod
    def from_line(cls, line: str) -> "Synonym":
        return cls(*_split_fields(line, cls.FIELD_COUNT))

    def to_line(self) -> str:
        return FIELD_SEPARATOR.join(
            [self.owner, self.synonym_name, self.table_owner, self.table_name, self.db_link]
        )


@dataclass(frozen=True)
class SpatialIndex:
    """Spatial index definition as it existed on the source."""

    owner: str
    index_name: str
    table_owner: str
    table_name: str
    column_name: str
    parameters: str = ""

    FIELD_COUNT = 6

    @property
    def qualified_name(self) -> str:
        return f"{self.owner}.{self.index_name}"

    @classmethod
    def from_line(cls, line: str) -> "SpatialIndex":
        return cls(*_split_fields(line, cls.FIELD_COUNT))

    def to_line(self) -> str:
        return FIELD_SEPARATOR.join(
            [
                self.owner,
                self.index_name,
                self.table_owner,
                self.table_name,
                self.column_name,
                self.parameters,
            ]
        )


@dataclass
class SourceMetadata:
    tablespaces: List[str] = field(default_factory=list)
    db_links: List[DatabaseLink] = field(default_factory=list)
    synonyms: List[Synonym] = field(default_factory=list)
    spatial_indexes: List[SpatialIndex] = field(default_factory=list)


@dataclass
class GeneratedArtifacts:
    """Absolute paths of every file rendered by one run, keyed by artifact name."""

    paths: Dict[str, str] = field(default_factory=dict)

    def add(self, key: str, path: str):
        self.paths[key] = path

    def __getitem__(self, key: str) -> str:
        return self.paths[key]

    def __contains__(self, key: str) -> bool:
        return key in self.paths

    def scripts(self) -> List[str]:
        return [path for path in self.paths.values() if path.endswith(".sh")]
