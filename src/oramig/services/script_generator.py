"""Rendering of the operator scripts run later on the source and target hosts."""

import shlex
from typing import Dict, List, Sequence

from oramig.constants import DIRECTORY_OBJECT, EXCLUDED_SCHEMAS, FILE_MODE, SCRIPT_MODE
from oramig.models import (
    ARTIFACT_FILES,
    DatabaseLink,
    GeneratedArtifacts,
    RunContext,
    SourceMetadata,
    SpatialIndex,
    Synonym,
)
from oramig.services.coordination import MarkerPaths
from oramig.services.metadata import sql_literal

PASSWORD_PLACEHOLDER = "<PASSWORD>"
SPATIAL_NAME_FALLBACK = "LIKE '%SDO_%'"


def _q(value) -> str:
    return shlex.quote(str(value))


def _identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def spatial_index_names(spatial_indexes: Sequence[SpatialIndex]) -> List[str]:
    """Data Pump INDEX filters match on the bare name, whatever the owner."""
    return sorted({index.index_name for index in spatial_indexes})


class ScriptGeneratorService:
    """Builds shell and SQL scripts from the run context and extracted metadata.

    Builders are pure: the same context and metadata always give the same text.
    Only ``write_all`` touches the filesystem.
    """

    def __init__(self, logger, console, filesystem_service):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service

    def _shell_header(self, context: RunContext, title: str, host: str, tag: str) -> str:
        markers = MarkerPaths.for_context(context)
        return f"""#!/bin/bash
#
# {title} - RUN ON {host} HOST
# Run identifier: {context.run_id}
#

set -u

RUN_ID={_q(context.run_id)}
LOG_DIR={_q(context.workspace.log_dir)}
DATA_DIR={_q(context.workspace.data_dir)}
RUN_LOG={_q(context.run_log)}
EXPORT_STARTED_MARKER={_q(markers.export_started)}
EXPORT_MARKER={_q(markers.export_completed)}
IMPORT_STARTED_MARKER={_q(markers.import_started)}
IMPORT_MARKER={_q(markers.import_completed)}

log() {{
    echo "[$(date '+%Y-%m-%d %H:%M:%S')] [{tag}] $1" | tee -a "$RUN_LOG"
}}
"""

    @staticmethod
    def _password_prompt(variable: str, label: str) -> str:
        return f"""echo -n "Enter {label} password: "
read -r -s {variable}
echo
if [ -z "${variable}" ]; then
    log "ERROR: Empty password entered"
    exit 1
fi
"""

    @staticmethod
    def _dump_guard(context: RunContext) -> str:
        return f"""if ! compgen -G "$DATA_DIR/{context.dump_glob}" > /dev/null; then
    log "ERROR: No dump files found for import!"
    log "Expected pattern: $DATA_DIR/{context.dump_glob}"
    exit 1
fi
"""

    @staticmethod
    def _sqlplus_logon(user: str, database: str) -> str:
        # -L: a single logon attempt, non-zero exit when it fails
        return f"sqlplus -L -s {_q(f'{user}@{database}')}"

    def build_source_export(self, context: RunContext) -> str:
        connect = _q(f"{context.source_user}@{context.source_db}")
        return self._shell_header(context, "Data Pump Export Script", "SOURCE", "export") + f"""
log "=== SOURCE DATABASE EXPORT ==="

if [ ! -w "$DATA_DIR" ]; then
    log "ERROR: Cannot write to DATA_DIR: $DATA_DIR"
    exit 1
fi

{self._password_prompt("SOURCE_PASSWORD", f"source DB ({context.source_user})")}
PARFILE="$LOG_DIR/full_export_$RUN_ID.par"
cat > "$PARFILE" <<'EOPAR'
DIRECTORY={DIRECTORY_OBJECT}
DUMPFILE={context.dump_pattern}
LOGFILE=full_export_{context.run_id}.log
FULL=YES
PARALLEL={context.parallel_jobs}
COMPRESSION=ALL
COMPRESSION_ALGORITHM={context.compression_algorithm}
FILESIZE={context.dump_file_size}
EXCLUDE=STATISTICS
FLASHBACK_TIME=SYSTIMESTAMP
EOPAR

echo "EXPORT_STARTED: $(date)" > "$EXPORT_STARTED_MARKER"
log "Starting Data Pump export (parallel {context.parallel_jobs})..."

export_exit_code=0
printf '%s\\n' "$SOURCE_PASSWORD" | expdp {connect} parfile="$PARFILE" || export_exit_code=$?
unset SOURCE_PASSWORD

if [ "$export_exit_code" -ne 0 ]; then
    log "ERROR: Export failed with exit code: $export_exit_code"
    exit "$export_exit_code"
fi

log "Export completed successfully"
ls -lh "$DATA_DIR"/{context.dump_glob} | tee "$LOG_DIR/exported_files_$RUN_ID.log"
echo "EXPORT_COMPLETED: $(date)" > "$EXPORT_MARKER"
log "Completion marker written: $EXPORT_MARKER"
"""

    def build_source_metadata_export(self, context: RunContext) -> str:
        connect = _q(f"{context.source_user}@{context.source_db}")
        return self._shell_header(
            context, "Data Pump Metadata Export", "SOURCE", "metadata-export"
        ) + f"""
log "=== METADATA EXPORT ==="

if [ ! -w "$DATA_DIR" ]; then
    log "ERROR: Cannot write to DATA_DIR: $DATA_DIR"
    exit 1
fi

{self._password_prompt("SOURCE_PASSWORD", f"source DB ({context.source_user})")}
PARFILE="$LOG_DIR/metadata_export_$RUN_ID.par"
cat > "$PARFILE" <<'EOPAR'
DIRECTORY={DIRECTORY_OBJECT}
DUMPFILE=metadata_only_{context.run_id}.dmp
LOGFILE=metadata_export_{context.run_id}.log
FULL=YES
CONTENT=METADATA_ONLY
EOPAR

metadata_exit_code=0
printf '%s\\n' "$SOURCE_PASSWORD" | expdp {connect} parfile="$PARFILE" || metadata_exit_code=$?
unset SOURCE_PASSWORD

if [ "$metadata_exit_code" -ne 0 ]; then
    log "ERROR: Metadata export failed with exit code: $metadata_exit_code"
    exit "$metadata_exit_code"
fi
log "Metadata export completed"
"""

    def _directory_block(self, context: RunContext) -> str:
        """Logs on to the target and provisions MIG_DIR; any failure here is fatal."""
        return f"""log "Connecting to target database {context.target_db}..."
{{
    printf '%s\\n' "$TARGET_PASSWORD"
    cat <<'EOSQL'
WHENEVER OSERROR EXIT FAILURE
WHENEVER SQLERROR EXIT SQL.SQLCODE
SET DEFINE OFF
CREATE OR REPLACE DIRECTORY {DIRECTORY_OBJECT} AS {sql_literal(context.workspace.data_dir)};
GRANT READ, WRITE ON DIRECTORY {DIRECTORY_OBJECT} TO PUBLIC;
EXIT
EOSQL
}} | {self._sqlplus_logon(context.target_user, context.target_db)} >> "$RUN_LOG" 2>&1
directory_exit_code=$?
if [ "$directory_exit_code" -ne 0 ]; then
    log "ERROR: Target logon or directory {DIRECTORY_OBJECT} creation failed (exit $directory_exit_code)"
    exit "$directory_exit_code"
fi
"""

    def build_target_import(self, context: RunContext) -> str:
        connect = _q(f"{context.target_user}@{context.target_db}")
        excluded = ",".join(f"'{schema}'" for schema in EXCLUDED_SCHEMAS)
        return self._shell_header(context, "Data Pump Import Script", "TARGET", "import") + f"""
log "=== TARGET DATABASE IMPORT ==="

{self._dump_guard(context)}
{self._password_prompt("TARGET_PASSWORD", f"target DB ({context.target_user})")}
{self._directory_block(context)}
PARFILE="$LOG_DIR/full_import_$RUN_ID.par"
cat > "$PARFILE" <<'EOPAR'
DIRECTORY={DIRECTORY_OBJECT}
DUMPFILE={context.dump_pattern}
LOGFILE=full_import_{context.run_id}.log
FULL=YES
PARALLEL={context.parallel_jobs}
TRANSFORM=DISABLE_ARCHIVE_LOGGING:Y
EXCLUDE=SCHEMA:"IN ({excluded})"
TABLE_EXISTS_ACTION=REPLACE
EOPAR

echo "IMPORT_STARTED: $(date)" > "$IMPORT_STARTED_MARKER"
log "Starting Data Pump import (parallel {context.parallel_jobs})..."

import_exit_code=0
printf '%s\\n' "$TARGET_PASSWORD" | impdp {connect} parfile="$PARFILE" || import_exit_code=$?
unset TARGET_PASSWORD

# A non-zero import is advisory: partial loads are kept for operator review.
if [ "$import_exit_code" -eq 0 ]; then
    log "Import completed successfully"
    echo "IMPORT_COMPLETED: $(date)" > "$IMPORT_MARKER"
else
    log "WARNING: Import completed with exit code: $import_exit_code, review full_import_$RUN_ID.log"
    echo "IMPORT_COMPLETED_WITH_ERRORS (exit $import_exit_code): $(date)" > "$IMPORT_MARKER"
fi
log "Completion marker written: $IMPORT_MARKER"
exit 0
"""

    @staticmethod
    def spatial_index_ddl(index: SpatialIndex) -> str:
        ddl = (
            f"CREATE INDEX {_identifier(index.owner)}.{_identifier(index.index_name)} "
            f"ON {_identifier(index.table_owner)}.{_identifier(index.table_name)} "
            f"({_identifier(index.column_name)}) "
            "INDEXTYPE IS MDSYS.SPATIAL_INDEX"
        )
        if index.parameters:
            ddl = f"{ddl} PARAMETERS ({sql_literal(index.parameters)})"
        return ddl

    def _spatial_exclude(self, spatial_indexes: List[SpatialIndex]) -> str:
        if not spatial_indexes:
            return SPATIAL_NAME_FALLBACK
        names = spatial_index_names(spatial_indexes)
        return "IN (" + ",".join(sql_literal(name) for name in names) + ")"

    def _spatial_plsql(self, spatial_indexes: List[SpatialIndex]) -> str:
        names = ",\n        ".join(sql_literal(index.qualified_name) for index in spatial_indexes)
        statements = ",\n        ".join(
            sql_literal(self.spatial_index_ddl(index)) for index in spatial_indexes
        )
        return f"""WHENEVER OSERROR EXIT FAILURE
WHENEVER SQLERROR EXIT SQL.SQLCODE
SET SERVEROUTPUT ON SIZE UNLIMITED
SET DEFINE OFF
DECLARE
    TYPE t_text IS TABLE OF VARCHAR2(4000);
    v_names t_text := t_text(
        {names}
    );
    v_ddl t_text := t_text(
        {statements}
    );
    v_ok PLS_INTEGER := 0;
    v_failed PLS_INTEGER := 0;
BEGIN
    FOR i IN 1 .. v_ddl.COUNT LOOP
        BEGIN
            EXECUTE IMMEDIATE v_ddl(i);
            v_ok := v_ok + 1;
            DBMS_OUTPUT.PUT_LINE('SPATIAL_INDEX_OK ' || v_names(i));
        EXCEPTION
            WHEN OTHERS THEN
                v_failed := v_failed + 1;
                DBMS_OUTPUT.PUT_LINE('SPATIAL_INDEX_FAILED ' || v_names(i) || ': ' || SQLERRM);
        END;
    END LOOP;
    DBMS_OUTPUT.PUT_LINE('SPATIAL_INDEX_SUMMARY ok=' || v_ok || ' failed=' || v_failed);
END;
/
EXIT"""

    def build_target_spatial_import(
        self, context: RunContext, spatial_indexes: List[SpatialIndex]
    ) -> str:
        connect = _q(f"{context.target_user}@{context.target_db}")
        if spatial_indexes:
            rebuild = f"""log "Recreating {len(spatial_indexes)} spatial index(es)..."
{{
    printf '%s\\n' "$TARGET_PASSWORD"
    cat <<'EOSQL'
{self._spatial_plsql(spatial_indexes)}
EOSQL
}} | {self._sqlplus_logon(context.target_user, context.target_db)} > "$SPATIAL_LOG" 2>&1
rebuild_exit_code=$?
grep -E '^SPATIAL_INDEX_(FAILED|SUMMARY)' "$SPATIAL_LOG" | tee -a "$RUN_LOG"
if [ "$rebuild_exit_code" -ne 0 ]; then
    log "ERROR: Spatial index rebuild session failed (exit $rebuild_exit_code), see $SPATIAL_LOG"
    exit "$rebuild_exit_code"
fi
"""
        else:
            rebuild = """log "No spatial indexes were recorded on the source; nothing to rebuild."
echo "SPATIAL_INDEX_SUMMARY ok=0 failed=0" > "$SPATIAL_LOG"
"""

        return self._shell_header(
            context, "Spatial Data Import", "TARGET", "spatial-import"
        ) + f"""
SPATIAL_LOG="$LOG_DIR/spatial_indexes_$RUN_ID.log"

log "=== SPATIAL DATA OPTIMIZATION ==="

{self._dump_guard(context)}
{self._password_prompt("TARGET_PASSWORD", f"target DB ({context.target_user})")}
{self._directory_block(context)}
PARFILE="$LOG_DIR/spatial_import_$RUN_ID.par"
cat > "$PARFILE" <<'EOPAR'
DIRECTORY={DIRECTORY_OBJECT}
DUMPFILE={context.dump_pattern}
LOGFILE=spatial_import_phase1_{context.run_id}.log
FULL=YES
PARALLEL={context.parallel_jobs}
EXCLUDE=INDEX:"{self._spatial_exclude(spatial_indexes)}"
TRANSFORM=DISABLE_ARCHIVE_LOGGING:Y
TABLE_EXISTS_ACTION=REPLACE
EOPAR

spatial_import_exit_code=0
printf '%s\\n' "$TARGET_PASSWORD" | impdp {connect} parfile="$PARFILE" || spatial_import_exit_code=$?
if [ "$spatial_import_exit_code" -ne 0 ]; then
    log "WARNING: Import without spatial indexes ended with exit code: $spatial_import_exit_code"
fi

log "Data imported without spatial indexes, now creating spatial indexes..."
{rebuild}unset TARGET_PASSWORD
log "Spatial optimization completed, per-index results in $SPATIAL_LOG"
"""

    def build_dblinks_sql(self, context: RunContext, db_links: List[DatabaseLink]) -> str:
        lines = [
            "-- Database Links Recreation - RUN ON TARGET DATABASE",
            f"-- Run identifier: {context.run_id}",
            f"-- Passwords must be filled in by hand: replace every {PASSWORD_PLACEHOLDER}.",
            "",
            "SET DEFINE OFF",
            "WHENEVER SQLERROR CONTINUE",
            "PROMPT === RECREATING DATABASE LINKS ===",
            "",
        ]
        for link in db_links:
            lines.append(f"-- DB Link: {link.link_name} (Owner: {link.owner}, created {link.created})")
            if link.is_public:
                lines.append(f"CREATE PUBLIC DATABASE LINK {link.link_name}")
            else:
                lines.append(f"CREATE DATABASE LINK {link.owner}.{link.link_name}")
            if link.username:
                lines.append(
                    f'CONNECT TO {link.username} IDENTIFIED BY "{PASSWORD_PLACEHOLDER}"'
                )
            lines.append(f"USING {sql_literal(link.host)};")
            lines.append("")
        lines.append(f"PROMPT {len(db_links)} database link statement(s) processed")
        return "\n".join(lines) + "\n"

    def build_synonyms_sql(self, context: RunContext, synonyms: List[Synonym]) -> str:
        lines = [
            "-- Synonym Recreation - RUN ON TARGET DATABASE AFTER DATABASE LINKS",
            f"-- Run identifier: {context.run_id}",
            "",
            "SET DEFINE OFF",
            "WHENEVER SQLERROR CONTINUE",
            "PROMPT === RECREATING SYNONYMS ===",
            "",
        ]
        for synonym in synonyms:
            target = f"{_identifier(synonym.table_owner)}.{_identifier(synonym.table_name)}"
            if synonym.remote:
                target = f"{target}@{synonym.db_link}"
            if synonym.is_public:
                lines.append(
                    f"CREATE OR REPLACE PUBLIC SYNONYM {_identifier(synonym.synonym_name)} FOR {target};"
                )
            else:
                lines.append(
                    "CREATE OR REPLACE SYNONYM "
                    f"{_identifier(synonym.owner)}.{_identifier(synonym.synonym_name)} FOR {target};"
                )
        lines.append("")
        lines.append(f"PROMPT {len(synonyms)} synonym statement(s) processed")
        return "\n".join(lines) + "\n"

    def build_validation_sql(
        self,
        context: RunContext,
        tablespaces: List[str],
        spatial_indexes: Sequence[SpatialIndex] = (),
    ) -> str:
        markers = MarkerPaths.for_context(context)
        sections = [
            "-- Validation Script - RUN ON TARGET DATABASE",
            f"-- Run identifier: {context.run_id}",
            "",
            "SET PAGESIZE 1000 LINESIZE 200",
            "SET DEFINE OFF",
            "PROMPT === TARGET DATABASE VALIDATION ===",
            "",
            "PROMPT 1. Database Status",
            "SELECT name, dbid, created, log_mode FROM v$database;",
            "",
            "PROMPT 2. Tablespace Status",
            "SELECT tablespace_name, status, contents FROM dba_tablespaces ORDER BY 1;",
            "",
            "PROMPT 3. Object Counts by Schema",
            "SELECT owner, COUNT(*) FROM dba_objects",
            "WHERE owner NOT IN ('SYS','SYSTEM') GROUP BY owner ORDER BY 2 DESC;",
            "",
            "PROMPT 4. Spatial Data Check",
            "SELECT owner, table_name, column_name FROM all_sdo_geom_metadata ORDER BY 1,2;",
            "",
            "PROMPT 5. Invalid Objects",
            "SELECT owner, object_type, COUNT(*) FROM dba_objects",
            "WHERE status = 'INVALID' GROUP BY owner, object_type ORDER BY 1,2;",
            "",
        ]
        if tablespaces:
            values = ",\n    ".join(sql_literal(name) for name in tablespaces)
            sections.extend(
                [
                    "PROMPT 6. Source Tablespaces Missing On Target",
                    "SELECT column_value AS missing_tablespace",
                    "FROM TABLE(sys.odcivarchar2list(",
                    f"    {values}",
                    "))",
                    "WHERE column_value NOT IN (SELECT tablespace_name FROM dba_tablespaces);",
                    "",
                ]
            )
        names = spatial_index_names(spatial_indexes)
        if names:
            sections.extend(
                [
                    "PROMPT 7. Indexes Sharing A Spatial Index Name",
                    "PROMPT The spatial import excludes these names in every schema; compare with the source.",
                    "SELECT owner, index_name, index_type, status FROM dba_indexes",
                    "WHERE index_name IN (" + ", ".join(sql_literal(name) for name in names) + ")",
                    "ORDER BY index_name, owner;",
                    "",
                ]
            )
        sections.extend(
            [
                "PROMPT === VALIDATION COMPLETE ===",
                f"HOST echo \"VALIDATION_COMPLETED: $(date)\" > {_q(markers.validation_completed)}",
            ]
        )
        return "\n".join(sections) + "\n"

    def render_all(self, context: RunContext, metadata: SourceMetadata) -> Dict[str, str]:
        return {
            "source_export": self.build_source_export(context),
            "source_metadata_export": self.build_source_metadata_export(context),
            "target_import": self.build_target_import(context),
            "target_spatial_import": self.build_target_spatial_import(
                context, metadata.spatial_indexes
            ),
            "dblinks_sql": self.build_dblinks_sql(context, metadata.db_links),
            "synonyms_sql": self.build_synonyms_sql(context, metadata.synonyms),
            "validation_sql": self.build_validation_sql(
                context, metadata.tablespaces, metadata.spatial_indexes
            ),
        }

    def write_all(self, context: RunContext, metadata: SourceMetadata) -> GeneratedArtifacts:
        artifacts = GeneratedArtifacts()
        for key, content in self.render_all(context, metadata).items():
            path = context.artifact_path(key)
            mode = SCRIPT_MODE if ARTIFACT_FILES[key][1] == ".sh" else FILE_MODE
            self.filesystem_service.write_text_atomic(path, content, mode)
            artifacts.add(key, path)
            self.logger.info("Generated %s", path)

        self.console.print(f"[green]Generated {len(artifacts.paths)} scripts.[/green]")
        return artifacts
