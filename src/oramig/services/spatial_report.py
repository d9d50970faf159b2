"""Per-index outcome of the spatial index rebuild."""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

OK_PATTERN = re.compile(r"^SPATIAL_INDEX_OK\s+(?P<name>\S+)\s*$")
FAILED_PATTERN = re.compile(r"^SPATIAL_INDEX_FAILED\s+(?P<name>[^:\s]+):\s*(?P<error>.*)$")
SUMMARY_PATTERN = re.compile(r"^SPATIAL_INDEX_SUMMARY\s+ok=(?P<ok>\d+)\s+failed=(?P<failed>\d+)")


@dataclass
class SpatialRebuildResult:
    succeeded: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    summary: Optional[Tuple[int, int]] = None

    @property
    def complete(self) -> bool:
        """True once the rebuild block printed its summary line."""
        return self.summary is not None

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


def parse_spatial_log(text: str) -> SpatialRebuildResult:
    result = SpatialRebuildResult()
    for raw_line in text.splitlines():
        line = raw_line.strip()
        match = OK_PATTERN.match(line)
        if match:
            result.succeeded.append(match.group("name"))
            continue
        match = FAILED_PATTERN.match(line)
        if match:
            result.failed.append((match.group("name"), match.group("error").strip()))
            continue
        match = SUMMARY_PATTERN.match(line)
        if match:
            result.summary = (int(match.group("ok")), int(match.group("failed")))
    return result
