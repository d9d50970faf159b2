"""Actionable error catalog for oramig."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "share_not_mounted": {
        "what": "Shared storage is not mounted at {path}.",
        "next": "Mount the NFS share on this host or set `require_mount: false` for a local rehearsal.",
    },
    "workspace_not_writable": {
        "what": "Workspace directory is not writable: {path}",
        "next": "Fix ownership or export options of the share so this host can write to it.",
    },
    "insufficient_space": {
        "what": "Only {available_gb}GB free on {path}, {required_gb}GB recommended.",
        "next": "Free space on the share, lower `expected_transfer_gb`, or confirm the prompt with `--assume-yes`.",
    },
    "source_connect_failed": {
        "what": "Cannot connect to source database {dsn}: {detail}",
        "next": "Check the connect identifier, listener status and credentials, then rerun.",
    },
    "credential_timeout": {
        "what": "No {label} was entered within {timeout} seconds.",
        "next": "Rerun the planner from an interactive terminal.",
    },
    "metadata_malformed": {
        "what": "Malformed record in {path} at line {line}: expected {expected} fields.",
        "next": "Re-extract metadata with a fresh `oramig plan` run.",
    },
    "run_id_in_use": {
        "what": "Run identifier {run_id} is already taken: {path} exists.",
        "next": "Start a new planning run; each run needs its own identifier.",
    },
    "phase_regression": {
        "what": "Cannot move run {run_id} from {current} back to {requested}.",
        "next": "Start a new planning run instead of reusing the run identifier.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
