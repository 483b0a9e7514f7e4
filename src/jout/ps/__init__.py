"""Cross-platform process snapshots.

One collector per platform, selected once by get_collector():

- Linux: ProcfsCollector walks /proc
- macOS/BSD: PsCollector parses ps(1) output
- Windows: CimCollector decodes a PowerShell CIM query
"""

import sys

import structlog

from jout.config import Config
from jout.ps.models import (
    CollectionError,
    Collector,
    ProcessIO,
    ProcessNamespaces,
    ProcessRecord,
)

__all__ = [
    "CollectionError",
    "Collector",
    "ProcessIO",
    "ProcessNamespaces",
    "ProcessRecord",
    "collect_processes",
    "filter_by_user",
    "get_collector",
]

log = structlog.get_logger()


def get_collector(config: Config, platform: str | None = None) -> Collector:
    """Return the collector for ``platform`` (defaults to sys.platform).

    Raises:
        CollectionError: If the platform has no process source.
    """
    platform = platform or sys.platform

    if platform.startswith("linux"):
        from jout.ps.linux import ProcfsCollector

        return ProcfsCollector(config)
    if platform == "darwin" or "bsd" in platform:
        from jout.ps.darwin import PsCollector

        return PsCollector(config)
    if platform in ("win32", "cygwin"):
        from jout.ps.windows import CimCollector

        return CimCollector(config)

    raise CollectionError(f"unsupported platform: {platform}")


def collect_processes(config: Config, collector: Collector | None = None) -> list[ProcessRecord]:
    """Take one process snapshot.

    Records with a non-positive pid are dropped and only the first record of
    any repeated pid is kept.

    Raises:
        CollectionError: If the enumeration mechanism itself fails.
    """
    collector = collector or get_collector(config)
    seen: set[int] = set()
    records: list[ProcessRecord] = []
    for record in collector.collect():
        if record.pid <= 0 or record.pid in seen:
            log.debug("record_dropped", pid=record.pid)
            continue
        seen.add(record.pid)
        records.append(record)
    return records


def filter_by_user(records: list[ProcessRecord], user: str) -> list[ProcessRecord]:
    """Keep records whose resolved user name equals ``user`` exactly."""
    return [r for r in records if r.user == user]
