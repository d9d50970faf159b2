import re
from datetime import datetime

import pytest


class FakeDatabaseError(Exception):
    pass


class FakeCursor:
    def __init__(self, database):
        self.database = database
        self.rows = []

    def __enter__(self):
        return self

    def __exit__(self, *_args):
        return False

    def execute(self, statement, **binds):
        normalized = " ".join(statement.split())
        self.database.executed.append(normalized)

        for fragment in self.database.failing:
            if fragment in normalized:
                raise FakeDatabaseError(f"ORA-00942: table or view does not exist ({fragment})")

        match = re.match(r"CREATE OR REPLACE DIRECTORY (\S+) AS '(.*)'$", normalized)
        if match:
            self.database.directories[match.group(1)] = match.group(2).replace("''", "'")
            self.rows = []
            return
        if normalized.startswith("GRANT "):
            self.rows = []
            return
        if "FROM dba_directories" in normalized:
            self.rows = [
                (name, path)
                for name, path in self.database.directories.items()
                if name == binds.get("name")
            ]
            return

        self.rows = []
        for fragment, rows in self.database.results.items():
            if fragment in normalized:
                self.rows = list(rows)
                break

    def fetchall(self):
        return list(self.rows)


class FakeConnection:
    def __init__(self, database):
        self.database = database
        self.closed = False

    def cursor(self):
        return FakeCursor(self.database)

    def close(self):
        self.closed = True


class FakeOracle:
    """Stands in for the oracledb module with a tiny in-memory catalog."""

    DatabaseError = FakeDatabaseError

    def __init__(self, results=None, failing=(), fail_connect=False):
        self.results = results if results is not None else {}
        self.failing = list(failing)
        self.fail_connect = fail_connect
        self.directories = {}
        self.executed = []
        self.connect_calls = []
        self.connections = []

    def connect(self, user, password, dsn):
        self.connect_calls.append({"user": user, "dsn": dsn, "password": password})
        if self.fail_connect:
            raise FakeDatabaseError("ORA-12541: TNS:no listener")
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection


def sample_catalog():
    created = datetime(2021, 3, 4, 5, 6, 7)
    return {
        "FROM DUAL": [("Source DB Connected",)],
        "dba_tablespaces": [(f"APP_DATA_{number:02d}",) for number in range(1, 11)],
        "dba_db_links": [
            ("PUBLIC", "REPORTING.EXAMPLE.COM", None, "REPORTDB", created),
            ("APP", "LEGACY_LINK", "LEGACY_USER", "legacy-host:1521/LEGACY", created),
        ],
        "dba_synonyms": [
            ("PUBLIC", "CUSTOMERS", "APP", "CUSTOMERS", "NONE"),
            ("APP", "ORDERS_V", "APP", "ORDERS", "NONE"),
            ("REPORTER", "LEGACY_ORDERS", "LEGACY", "ORDERS", "LEGACY_LINK"),
        ],
        "dba_indexes": [
            ("GIS", "PARCELS_SIDX", "GIS", "PARCELS", "GEOM", "sdo_indx_dims=2"),
        ],
    }


@pytest.fixture
def oracle_factory():
    def build(**kwargs):
        kwargs.setdefault("results", sample_catalog())
        return FakeOracle(**kwargs)

    return build


@pytest.fixture
def fake_oracle(oracle_factory):
    return oracle_factory()
