"""Process collector for macOS/BSD using ps(1) with a fixed column layout."""

import subprocess
import time

import structlog

from jout.config import Config
from jout.formatting import NS_PER_SECOND, format_rfc3339
from jout.ps.models import CollectionError, ProcessRecord, normalize_state

log = structlog.get_logger()

# Trailing "=" suppresses the header for each column. Order is fixed:
# everything before "command" is exactly one whitespace-free token.
PS_COLUMNS = [
    "pid=",
    "ppid=",
    "uid=",
    "rgid=",
    "user=",
    "rgroup=",
    "state=",
    "tt=",
    "comm=",
    "time=",
    "rss=",
    "vsz=",
    "nice=",
    "pri=",
    "etime=",
    "command=",
]

FIXED_COLUMNS = len(PS_COLUMNS) - 1

# "U" is macOS's uninterruptible wait
STATE_ALIASES = {"U": "D"}

NO_TTY = ("??", "-")


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_duration(value: str) -> int:
    """Parse a ps duration ``[[DD-]HH:]MM:SS`` into seconds.

    Used for both ``time`` (CPU) and ``etime`` (elapsed). Unparsable
    components count as zero; a wrong number of ``:`` parts yields 0. Never
    raises. Fractional seconds (``01:02.53``) are truncated.

    Examples:
        "01:02" -> 62, "01:02:03" -> 3723, "2-01:02:03" -> 176523
    """
    value = value.strip()
    if not value:
        return 0

    days = 0
    if "-" in value:
        day_part, value = value.split("-", 1)
        days = _to_int(day_part)

    parts = value.split(":")
    if len(parts) == 3:
        hours, minutes, seconds = parts
    elif len(parts) == 2:
        hours = "0"
        minutes, seconds = parts
    else:
        return 0

    return (
        days * 86400
        + _to_int(hours) * 3600
        + _to_int(minutes) * 60
        + _to_int(seconds.split(".", 1)[0])
    )


def parse_ps_line(line: str, now_ns: int) -> ProcessRecord | None:
    """Turn one ps output line into a record, or None if the line is unusable."""
    fields = line.split()
    if len(fields) < FIXED_COLUMNS:
        return None

    pid = _to_int(fields[0])
    if pid <= 0:
        return None

    tty = fields[7]
    if tty in NO_TTY:
        tty = ""

    elapsed = parse_duration(fields[14])
    start_ns = now_ns - elapsed * NS_PER_SECOND

    return ProcessRecord(
        pid=pid,
        ppid=max(0, _to_int(fields[1])),
        uid=max(0, _to_int(fields[2])),
        gid=max(0, _to_int(fields[3])),
        user=fields[4],
        group=fields[5],
        state=normalize_state(fields[6], STATE_ALIASES),
        tty=tty,
        comm=fields[8],
        command=" ".join(fields[FIXED_COLUMNS:]),
        # ps only reports combined CPU time
        cpu_user_seconds=float(parse_duration(fields[9])),
        cpu_system_seconds=0.0,
        mem_rss_bytes=_to_int(fields[10]) * 1024,
        mem_vms_bytes=_to_int(fields[11]) * 1024,
        nice=_to_int(fields[12]),
        priority=_to_int(fields[13]),
        start_time=format_rfc3339(start_ns),
        start_time_unix_ns=start_ns,
        elapsed_seconds=elapsed,
    )


def parse_ps_output(output: str, now_ns: int) -> list[ProcessRecord]:
    """Parse the full ps output, skipping blank and short lines."""
    records: list[ProcessRecord] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        record = parse_ps_line(line, now_ns)
        if record is None:
            log.debug("ps_line_skipped", line=line)
            continue
        records.append(record)
    return records


class PsCollector:
    """Collects process records by running ps(1) once per snapshot."""

    def __init__(self, config: Config):
        self.config = config

    @property
    def command(self) -> list[str]:
        return [self.config.ps.ps_command, "axo", ",".join(PS_COLUMNS)]

    def collect(self) -> list[ProcessRecord]:
        """Take one snapshot of every visible process.

        Raises:
            CollectionError: If ps cannot be started or exits non-zero.
        """
        try:
            completed = subprocess.run(
                self.command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as e:
            log.error("ps_start_failed", error=str(e))
            raise CollectionError(f"failed to run {self.command[0]}: {e}") from e

        if completed.returncode != 0:
            log.error("ps_failed", returncode=completed.returncode)
            raise CollectionError(
                f"{self.command[0]} exited with status {completed.returncode}",
                exit_code=completed.returncode,
                stderr=completed.stderr or "",
            )

        now_ns = time.time_ns()
        records = parse_ps_output(completed.stdout, now_ns)
        log.debug("ps_collected", count=len(records))
        return records
