import os

import pytest

from oramig.constants import DIRECTORY_OBJECT
from oramig.errors import MigrationError
from oramig.models import DatabaseLink, RunContext, SpatialIndex, Synonym, WorkspacePaths
from oramig.services.credentials import Secret
from oramig.services.filesystem import FileSystemService
from oramig.services.metadata import MetadataExtractor, MetadataStore


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


def build_context(tmp_path, run_id="20260101_000000"):
    workspace = WorkspacePaths.from_base(str(tmp_path / "oracle_mig"))
    for directory in workspace.all_dirs():
        os.makedirs(directory, exist_ok=True)
    return RunContext(
        run_id=run_id,
        workspace=workspace,
        source_db="SRCDB",
        source_user="system",
        target_db="TGTDB",
        target_user="system",
    )


def build_extractor(oracle, logger=None):
    logger = logger or DummyLogger()
    return MetadataExtractor(
        logger=logger,
        console=DummyConsole(),
        filesystem_service=FileSystemService(logger=logger, console=DummyConsole()),
        oracledb_module=oracle,
    )


def test_connect_passes_password_only_as_keyword(fake_oracle):
    extractor = build_extractor(fake_oracle)

    extractor.connect("SRCDB", "system", Secret("s3cr3t"))

    assert fake_oracle.connect_calls == [{"user": "system", "dsn": "SRCDB", "password": "s3cr3t"}]


def test_connect_failure_is_actionable(oracle_factory):
    extractor = build_extractor(oracle_factory(fail_connect=True))

    with pytest.raises(MigrationError, match="Cannot connect to source database SRCDB"):
        extractor.connect("SRCDB", "system", Secret("s3cr3t"))


def test_check_connectivity_fails_when_round_trip_fails(oracle_factory):
    oracle = oracle_factory(failing=["FROM DUAL"])
    extractor = build_extractor(oracle)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))

    with pytest.raises(MigrationError, match="Suggested action"):
        extractor.check_connectivity(connection, "SRCDB")


def test_extract_persists_flat_files(tmp_path, fake_oracle):
    context = build_context(tmp_path)
    extractor = build_extractor(fake_oracle)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))

    metadata = extractor.extract(connection, context)

    assert len(metadata.tablespaces) == 10
    assert metadata.db_links[0] == DatabaseLink(
        "PUBLIC", "REPORTING.EXAMPLE.COM", "", "REPORTDB", "2021-03-04 05:06:07"
    )
    assert metadata.synonyms[2].remote is True
    assert metadata.spatial_indexes == [
        SpatialIndex("GIS", "PARCELS_SIDX", "GIS", "PARCELS", "GEOM", "sdo_indx_dims=2")
    ]

    dblinks_file = tmp_path / "oracle_mig" / "logs" / "dblinks_20260101_000000.lst"
    assert dblinks_file.read_text(encoding="utf-8").splitlines()[1] == (
        "APP|LEGACY_LINK|LEGACY_USER|legacy-host:1521/LEGACY|2021-03-04 05:06:07"
    )
    tablespaces_file = tmp_path / "oracle_mig" / "logs" / "tablespaces_20260101_000000.lst"
    assert len(tablespaces_file.read_text(encoding="utf-8").splitlines()) == 10


def test_extract_query_failure_is_fatal(tmp_path, oracle_factory):
    context = build_context(tmp_path)
    oracle = oracle_factory(failing=["dba_db_links"])
    extractor = build_extractor(oracle)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))

    with pytest.raises(MigrationError, match="Catalog query failed"):
        extractor.extract(connection, context)


def test_provision_directory_twice_leaves_one_directory(fake_oracle):
    extractor = build_extractor(fake_oracle)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))

    extractor.provision_directory(connection, "/mnt/shared/oracle_mig/datapump")
    extractor.provision_directory(connection, "/mnt/shared/oracle_mig/datapump")

    assert fake_oracle.directories == {DIRECTORY_OBJECT: "/mnt/shared/oracle_mig/datapump"}
    grants = [stmt for stmt in fake_oracle.executed if stmt.startswith("GRANT READ, WRITE")]
    assert len(grants) == 2


def test_provision_directory_rejects_mismatched_path(monkeypatch, fake_oracle):
    extractor = build_extractor(fake_oracle)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))
    extractor.provision_directory(connection, "/old/path")

    cursor_type = type(connection.cursor())
    original_execute = cursor_type.execute

    def execute_ignoring_replace(cursor, statement, **binds):
        if statement.startswith("CREATE OR REPLACE DIRECTORY"):
            cursor.rows = []
            return
        original_execute(cursor, statement, **binds)

    monkeypatch.setattr(cursor_type, "execute", execute_ignoring_replace)

    with pytest.raises(MigrationError, match="instead of '/new/path'"):
        extractor.provision_directory(connection, "/new/path")


def test_provision_directory_failure_names_database(oracle_factory):
    oracle = oracle_factory(failing=["GRANT READ"])
    extractor = build_extractor(oracle)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))

    with pytest.raises(MigrationError, match="in source database"):
        extractor.provision_directory(connection, "/mnt/shared/oracle_mig/datapump")


def test_write_source_analysis_tolerates_query_failure(tmp_path, oracle_factory):
    context = build_context(tmp_path)
    logger = DummyLogger()
    oracle = oracle_factory(failing=["dba_tab_columns"])
    extractor = build_extractor(oracle, logger=logger)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))

    report = extractor.write_source_analysis(connection, context)

    content = open(report, encoding="utf-8").read()
    assert "=== SOURCE DATABASE SIZE SUMMARY ===" in content
    assert "(query failed:" in content
    assert any("SPATIAL DATA SUMMARY" in warning for warning in logger.warnings)


def test_metadata_store_round_trips_extracted_records(tmp_path, fake_oracle):
    context = build_context(tmp_path)
    extractor = build_extractor(fake_oracle)
    connection = extractor.connect("SRCDB", "system", Secret("s3cr3t"))
    extracted = extractor.extract(connection, context)

    loaded = MetadataStore(logger=DummyLogger()).load(context)

    assert loaded == extracted


def test_metadata_store_reports_malformed_line(tmp_path):
    context = build_context(tmp_path)
    (tmp_path / "oracle_mig" / "logs" / "synonyms_20260101_000000.lst").write_text(
        "APP|ORDERS_V|APP|ORDERS|NONE\nAPP|BROKEN\n", encoding="utf-8"
    )

    with pytest.raises(MigrationError, match="at line 2: expected 5 fields"):
        MetadataStore(logger=DummyLogger()).load(context)


def test_metadata_store_treats_missing_files_as_empty(tmp_path):
    context = build_context(tmp_path)
    logger = DummyLogger()

    loaded = MetadataStore(logger=logger).load(context)

    assert loaded.tablespaces == []
    assert loaded.synonyms == []
    assert len(logger.warnings) == 4


def test_synonym_record_parses_remote_link():
    synonym = Synonym.from_line("REPORTER|LEGACY_ORDERS|LEGACY|ORDERS|LEGACY_LINK\n")

    assert synonym.remote is True
    assert synonym.is_public is False
