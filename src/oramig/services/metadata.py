"""Source catalog extraction and flat-file persistence for oramig."""

import os
from datetime import datetime
from typing import Callable, List, Sequence, Type

import oracledb

from oramig.constants import (
    DIRECTORY_OBJECT,
    FILE_MODE,
    NO_DB_LINK,
    SYSTEM_TABLESPACES,
)
from oramig.errors import MigrationError
from oramig.errors_catalog import actionable_error
from oramig.models import DatabaseLink, RunContext, SourceMetadata, SpatialIndex, Synonym


def _in_list(values: Sequence[str]) -> str:
    return ", ".join(f"'{value}'" for value in values)


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value).strip()


def sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class MetadataExtractor:
    """Runs the read-only catalog queries against the source database."""

    CONNECTIVITY_QUERY = "SELECT 'Source DB Connected' FROM DUAL"

    TABLESPACE_QUERY = (
        "SELECT tablespace_name FROM dba_tablespaces "
        "WHERE contents = 'PERMANENT' "
        f"AND tablespace_name NOT IN ({_in_list(SYSTEM_TABLESPACES)}) "
        "ORDER BY tablespace_name"
    )

    DBLINK_QUERY = (
        "SELECT owner, db_link, username, host, created FROM dba_db_links "
        "ORDER BY owner, db_link"
    )

    SYNONYM_QUERY = (
        "SELECT owner, synonym_name, table_owner, table_name, "
        f"NVL(db_link, '{NO_DB_LINK}') FROM dba_synonyms "
        "WHERE owner NOT IN ('SYS', 'SYSTEM') "
        "AND table_owner IS NOT NULL "
        "ORDER BY owner, synonym_name"
    )

    SPATIAL_INDEX_QUERY = (
        "SELECT i.owner, i.index_name, i.table_owner, i.table_name, ic.column_name, i.parameters "
        "FROM dba_indexes i "
        "JOIN dba_ind_columns ic ON (ic.index_owner = i.owner AND ic.index_name = i.index_name) "
        "WHERE i.ityp_name = 'SPATIAL_INDEX' "
        "AND i.owner NOT IN ('SYS', 'MDSYS', 'SYSTEM') "
        "ORDER BY i.owner, i.index_name"
    )

    DIRECTORY_CHECK_QUERY = (
        "SELECT directory_name, directory_path FROM dba_directories "
        "WHERE directory_name = :name"
    )

    ANALYSIS_QUERIES = (
        (
            "SOURCE DATABASE SIZE SUMMARY",
            "SELECT 'Total Data Size: ' || ROUND(SUM(bytes)/1024/1024/1024, 2) || ' GB' "
            "FROM dba_segments",
        ),
        (
            "LARGEST TABLESPACES",
            "SELECT tablespace_name, ROUND(SUM(bytes)/1024/1024/1024, 2) AS size_gb "
            "FROM dba_data_files "
            f"WHERE tablespace_name NOT IN ({_in_list(SYSTEM_TABLESPACES)}) "
            "GROUP BY tablespace_name ORDER BY size_gb DESC",
        ),
        (
            "SPATIAL DATA SUMMARY",
            "SELECT COUNT(*) AS spatial_tables, "
            "ROUND(SUM(s.bytes)/1024/1024/1024, 2) AS total_size_gb "
            "FROM dba_tables t "
            "JOIN dba_segments s ON (t.owner = s.owner AND t.table_name = s.segment_name) "
            "WHERE EXISTS (SELECT 1 FROM dba_tab_columns c "
            "WHERE c.owner = t.owner AND c.table_name = t.table_name "
            "AND c.data_type = 'SDO_GEOMETRY')",
        ),
    )

    def __init__(self, logger, console, filesystem_service, oracledb_module=oracledb):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service
        self.oracledb = oracledb_module

    def connect(self, dsn: str, user: str, secret):
        try:
            return self.oracledb.connect(user=user, password=secret.reveal(), dsn=dsn)
        except self.oracledb.DatabaseError as exc:
            raise MigrationError(
                actionable_error("source_connect_failed", dsn=dsn, detail=str(exc))
            ) from exc

    def check_connectivity(self, connection, dsn: str):
        try:
            rows = self._fetch(connection, self.CONNECTIVITY_QUERY)
        except self.oracledb.DatabaseError as exc:
            raise MigrationError(
                actionable_error("source_connect_failed", dsn=dsn, detail=str(exc))
            ) from exc

        if not rows:
            raise MigrationError(
                actionable_error("source_connect_failed", dsn=dsn, detail="round-trip query returned no rows")
            )
        self.console.print("[green]Source database connection: SUCCESS[/green]")
        self.logger.info("Source database connection: SUCCESS")

    def extract(self, connection, context: RunContext) -> SourceMetadata:
        self.logger.info("Extracting tablespace information...")
        tablespaces = [_text(row[0]) for row in self._query(connection, self.TABLESPACE_QUERY)]

        self.logger.info("Extracting database links...")
        db_links = self._records(connection, self.DBLINK_QUERY, DatabaseLink)

        self.logger.info("Extracting synonyms...")
        synonyms = self._records(connection, self.SYNONYM_QUERY, Synonym)

        self.logger.info("Extracting spatial index definitions...")
        spatial_indexes = self._records(connection, self.SPATIAL_INDEX_QUERY, SpatialIndex)

        metadata = SourceMetadata(
            tablespaces=tablespaces,
            db_links=db_links,
            synonyms=synonyms,
            spatial_indexes=spatial_indexes,
        )
        self.persist(metadata, context)
        self.logger.info(
            "Extracted %s tablespaces, %s database links, %s synonyms, %s spatial indexes.",
            len(tablespaces),
            len(db_links),
            len(synonyms),
            len(spatial_indexes),
        )
        return metadata

    def persist(self, metadata: SourceMetadata, context: RunContext):
        self._write_lines(context.metadata_path("tablespaces"), metadata.tablespaces)
        self._write_lines(
            context.metadata_path("dblinks"), [link.to_line() for link in metadata.db_links]
        )
        self._write_lines(
            context.metadata_path("synonyms"), [syn.to_line() for syn in metadata.synonyms]
        )
        self._write_lines(
            context.metadata_path("spatial_indexes"),
            [index.to_line() for index in metadata.spatial_indexes],
        )

    def provision_directory(self, connection, directory_path: str, database_label: str = "source"):
        """Creates or replaces the Data Pump directory object and grants it to PUBLIC."""
        self.logger.info("Creating Data Pump directory in %s database...", database_label)
        statements = [
            f"CREATE OR REPLACE DIRECTORY {DIRECTORY_OBJECT} AS {sql_literal(directory_path)}",
            f"GRANT READ, WRITE ON DIRECTORY {DIRECTORY_OBJECT} TO PUBLIC",
        ]
        try:
            with connection.cursor() as cursor:
                for statement in statements:
                    self.logger.debug("Executing: %s", statement)
                    cursor.execute(statement)
                cursor.execute(self.DIRECTORY_CHECK_QUERY, name=DIRECTORY_OBJECT)
                rows = cursor.fetchall()
        except self.oracledb.DatabaseError as exc:
            raise MigrationError(
                f"Could not provision directory {DIRECTORY_OBJECT} in {database_label} database: {exc}"
            ) from exc

        if len(rows) != 1:
            raise MigrationError(
                f"Expected exactly one {DIRECTORY_OBJECT} directory object, found {len(rows)}."
            )
        _, path = rows[0]
        if path != directory_path:
            raise MigrationError(
                f"{DIRECTORY_OBJECT} points to '{path}' instead of '{directory_path}'."
            )
        self.logger.info("Directory %s -> %s", DIRECTORY_OBJECT, path)

    def write_source_analysis(self, connection, context: RunContext) -> str:
        report_path = context.log_file("source_analysis", ".log")
        lines: List[str] = []
        for title, query in self.ANALYSIS_QUERIES:
            lines.append(f"=== {title} ===")
            try:
                rows = self._query(connection, query)
            except MigrationError as exc:
                self.logger.warning("Source analysis query '%s' failed: %s", title, exc)
                lines.append(f"(query failed: {exc})")
                lines.append("")
                continue
            for row in rows:
                lines.append("  ".join(_text(value) for value in row))
            lines.append("")

        try:
            with open(report_path, "a", encoding="utf-8") as file_obj:
                file_obj.write("\n".join(lines) + "\n")
        except OSError as exc:
            raise MigrationError(f"Could not write source analysis '{report_path}': {exc}") from exc

        self.logger.info("Source analysis written to %s", report_path)
        return report_path

    def _fetch(self, connection, query: str):
        with connection.cursor() as cursor:
            cursor.execute(query)
            return cursor.fetchall()

    def _query(self, connection, query: str):
        try:
            return self._fetch(connection, query)
        except self.oracledb.DatabaseError as exc:
            raise MigrationError(f"Catalog query failed: {exc}") from exc

    def _records(self, connection, query: str, record_type: Type):
        return [
            record_type(*(_text(value) for value in row))
            for row in self._query(connection, query)
        ]

    def _write_lines(self, path: str, lines: List[str]):
        content = "".join(f"{line}\n" for line in lines)
        self.filesystem_service.write_text_atomic(path, content, FILE_MODE)


class MetadataStore:
    """Reads extracted flat files back into typed records."""

    def __init__(self, logger):
        self.logger = logger

    def load(self, context: RunContext) -> SourceMetadata:
        return SourceMetadata(
            tablespaces=[
                line.strip() for line in self._read(context.metadata_path("tablespaces")) if line.strip()
            ],
            db_links=self._parse(context.metadata_path("dblinks"), DatabaseLink.from_line, DatabaseLink.FIELD_COUNT),
            synonyms=self._parse(context.metadata_path("synonyms"), Synonym.from_line, Synonym.FIELD_COUNT),
            spatial_indexes=self._parse(
                context.metadata_path("spatial_indexes"),
                SpatialIndex.from_line,
                SpatialIndex.FIELD_COUNT,
            ),
        )

    def _read(self, path: str) -> List[str]:
        if not os.path.exists(path):
            self.logger.warning("Metadata file not found, treating as empty: %s", path)
            return []
        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                return file_obj.readlines()
        except OSError as exc:
            raise MigrationError(f"Could not read metadata file '{path}': {exc}") from exc

    def _parse(self, path: str, factory: Callable, expected: int) -> List:
        records = []
        for number, line in enumerate(self._read(path), start=1):
            if not line.strip():
                continue
            try:
                records.append(factory(line))
            except ValueError as exc:
                raise MigrationError(
                    actionable_error(
                        "metadata_malformed", path=path, line=str(number), expected=str(expected)
                    )
                ) from exc
        return records
