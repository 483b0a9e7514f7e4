"""Process collector for Windows using PowerShell CIM (Win32_Process)."""

import json
import re
import subprocess
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import structlog

from jout.config import Config
from jout.formatting import NS_PER_SECOND, datetime_to_unix_ns, format_rfc3339
from jout.ps.coerce import get_int, get_str, get_uint
from jout.ps.models import CollectionError, ProcessIO, ProcessRecord

log = structlog.get_logger()

# KernelModeTime/UserModeTime are in 100-nanosecond units
TICKS_PER_SECOND = 10_000_000

# Owner lookup fails for protected/system processes; those rows get User = $null.
# CreationDate is converted back to DMTF text so it does not depend on how the
# host PowerShell version serializes DateTime.
CIM_SCRIPT = r"""
$ErrorActionPreference = 'SilentlyContinue'
$procs = Get-CimInstance Win32_Process
$rows = foreach ($p in $procs) {
    $owner = $null
    try { $owner = Invoke-CimMethod -InputObject $p -MethodName GetOwner } catch {}
    $created = $null
    if ($p.CreationDate) {
        $created = [System.Management.ManagementDateTimeConverter]::ToDmtfDateTime($p.CreationDate)
    }
    [pscustomobject]@{
        ProcessId          = $p.ProcessId
        ParentProcessId    = $p.ParentProcessId
        Name               = $p.Name
        CommandLine        = $p.CommandLine
        ExecutablePath     = $p.ExecutablePath
        CreationDate       = $created
        WorkingSetSize     = $p.WorkingSetSize
        VirtualSize        = $p.VirtualSize
        ThreadCount        = $p.ThreadCount
        Priority           = $p.Priority
        KernelModeTime     = $p.KernelModeTime
        UserModeTime       = $p.UserModeTime
        ReadTransferCount  = $p.ReadTransferCount
        WriteTransferCount = $p.WriteTransferCount
        User               = if ($owner -and $owner.User) { if ($owner.Domain) { $owner.Domain + '\' + $owner.User } else { $owner.User } } else { $null }
    }
}
ConvertTo-Json -InputObject @($rows) -Depth 3 -Compress
"""

# yyyyMMddHHmmss[.ffffff][+-UUU]
CIM_DATETIME_RE = re.compile(
    r"^(?P<stamp>\d{14})(?:\.(?P<frac>\d*))?(?:(?P<sign>[+-])(?P<offset>\d{3}))?"
)


def _sanitize(text: str) -> str:
    """Keep only lines that start a JSON value, dropping warnings and noise."""
    useful = []
    for line in text.splitlines():
        line = line.strip().lstrip("\ufeff")
        if line.startswith(("{", "[")):
            useful.append(line)
    return "\n".join(useful)


def _to_rows(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [row for row in value if isinstance(row, dict)]
    return []


def decode_cim_output(raw: bytes | str) -> list[dict[str, Any]]:
    """Decode query output into a list of field maps.

    A strict decode is tried first. If it fails, lines not starting with "{"
    or "[" are dropped and the decode is retried once. A single object becomes
    a one-element list; empty output is an empty list.

    Raises:
        json.JSONDecodeError: The original strict-decode error, when the
            sanitized retry fails as well.
    """
    text = raw.decode("utf-8-sig", errors="replace") if isinstance(raw, bytes) else raw
    text = text.lstrip("\ufeff")
    if not text.strip():
        return []

    try:
        value = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as original:
        try:
            value = json.loads(_sanitize(text), parse_float=Decimal)
        except json.JSONDecodeError:
            raise original from None
    return _to_rows(value)


def parse_cim_datetime(value: str) -> datetime | None:
    """Parse a DMTF datetime (``20240102030405.123456+060``) into an aware UTC datetime.

    The fraction is right-padded or truncated to microseconds. The offset is
    minutes east of UTC. A "T" separator is tolerated. Returns None if the
    value lacks the 14-digit date/time prefix, names an impossible date, or
    falls outside the datetime range once converted to UTC.
    """
    value = value.strip().replace("T", "")
    match = CIM_DATETIME_RE.match(value)
    if not match:
        return None

    stamp = match.group("stamp")
    micros = int((match.group("frac") or "")[:6].ljust(6, "0"))
    offset = 0
    if match.group("offset"):
        offset = int(match.group("offset"))
        if match.group("sign") == "-":
            offset = -offset

    try:
        local = datetime(
            int(stamp[0:4]),
            int(stamp[4:6]),
            int(stamp[6:8]),
            int(stamp[8:10]),
            int(stamp[10:12]),
            int(stamp[12:14]),
            micros,
            tzinfo=timezone(timedelta(minutes=offset)),
        )
        return local.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def row_to_record(row: dict[str, Any], now_ns: int) -> ProcessRecord | None:
    """Map one Win32_Process row to a record, or None for rows without a valid pid."""
    pid = get_int(row, "ProcessId")
    if pid <= 0:
        return None

    start_time = ""
    start_ns = 0
    elapsed: int | None = None
    created = get_str(row, "CreationDate")
    start = parse_cim_datetime(created) if created else None
    if start is not None:
        start_ns = datetime_to_unix_ns(start)
        start_time = format_rfc3339(start_ns)
        elapsed = max(0, (now_ns - start_ns) // NS_PER_SECOND)

    read_bytes = get_uint(row, "ReadTransferCount")
    write_bytes = get_uint(row, "WriteTransferCount")
    io = None
    if read_bytes or write_bytes:
        io = ProcessIO(read_bytes=read_bytes, write_bytes=write_bytes)

    return ProcessRecord(
        pid=pid,
        ppid=get_uint(row, "ParentProcessId"),
        user=get_str(row, "User"),
        comm=get_str(row, "Name"),
        command=get_str(row, "CommandLine"),
        exe=get_str(row, "ExecutablePath"),
        cpu_user_seconds=get_uint(row, "UserModeTime") / TICKS_PER_SECOND,
        cpu_system_seconds=get_uint(row, "KernelModeTime") / TICKS_PER_SECOND,
        mem_rss_bytes=get_int(row, "WorkingSetSize"),
        mem_vms_bytes=get_int(row, "VirtualSize"),
        threads=get_int(row, "ThreadCount"),
        priority=get_int(row, "Priority"),
        start_time=start_time,
        start_time_unix_ns=start_ns,
        elapsed_seconds=elapsed,
        io=io,
    )


class CimCollector:
    """Collects process records with one Win32_Process CIM query per snapshot."""

    def __init__(self, config: Config):
        self.config = config

    @property
    def command(self) -> list[str]:
        return [
            self.config.ps.powershell_command,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            CIM_SCRIPT,
        ]

    def collect(self) -> list[ProcessRecord]:
        """Take one snapshot of every visible process.

        Raises:
            CollectionError: If PowerShell cannot run the query or its output
                cannot be decoded.
        """
        hint = (
            "failed to query processes via PowerShell CIM; ensure PowerShell is "
            "available and ExecutionPolicy allows running inline commands"
        )
        try:
            completed = subprocess.run(
                self.command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
            )
        except OSError as e:
            log.error("cim_query_start_failed", error=str(e))
            raise CollectionError(f"{hint}: {e}") from e

        if completed.returncode != 0:
            log.error("cim_query_failed", returncode=completed.returncode)
            raise CollectionError(
                hint,
                stderr=(completed.stderr or b"").decode("utf-8", errors="replace"),
            )

        try:
            rows = decode_cim_output(completed.stdout)
        except json.JSONDecodeError as e:
            log.error("cim_decode_failed", error=str(e))
            raise CollectionError(f"cannot decode CIM query output: {e}") from e

        now_ns = time.time_ns()
        records: list[ProcessRecord] = []
        for row in rows:
            record = row_to_record(row, now_ns)
            if record is None:
                log.debug("cim_row_skipped", process_id=row.get("ProcessId"))
                continue
            records.append(record)

        log.debug("cim_collected", count=len(records), rows=len(rows))
        return records
