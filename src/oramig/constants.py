"""Shared constants for oramig."""

DIR_MODE = 0o755
FILE_MODE = 0o644
SCRIPT_MODE = 0o755

DIRECTORY_OBJECT = "MIG_DIR"
PUBLIC_OWNER = "PUBLIC"
NO_DB_LINK = "NONE"
FIELD_SEPARATOR = "|"

SYSTEM_TABLESPACES = ("SYSTEM", "SYSAUX", "TEMP", "UNDOTBS1")

# Built-in schemas never loaded on the target.
EXCLUDED_SCHEMAS = (
    "ANONYMOUS",
    "APEX_030200",
    "CTXSYS",
    "DBSNMP",
    "DIP",
    "EXFSYS",
    "MDDATA",
    "MDSYS",
    "MGMT_VIEW",
    "OLAPSYS",
    "ORACLE_OCM",
    "ORDDATA",
    "ORDPLUGINS",
    "ORDSYS",
    "OUTLN",
    "SI_INFORMTN_SCHEMA",
    "SYS",
    "SYSMAN",
    "SYSTEM",
    "TSMSYS",
    "WMSYS",
    "XDB",
    "XS$NULL",
)
