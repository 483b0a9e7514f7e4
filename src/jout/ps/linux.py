"""Process collector for Linux using the /proc pseudo-filesystem.

The ``tty`` field is taken from the ``fd/0`` link with the ``/dev/`` prefix
stripped. A process whose stdin is ``/dev/null`` has no terminal, so it gets
"" instead of ``null``.
"""

import os
import re
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from jout.boottime import get_boot_time
from jout.config import Config
from jout.formatting import NS_PER_SECOND, format_rfc3339
from jout.identity import lookup_group_name, lookup_user_name
from jout.ps.models import (
    CollectionError,
    ProcessIO,
    ProcessNamespaces,
    ProcessRecord,
    normalize_state,
)
from jout.sysconf import clock_ticks

log = structlog.get_logger()

DEFAULT_CLOCK_TICKS = 100  # USER_HZ on virtually every Linux build

# Fields after the ")" that the stat line must carry (through starttime).
STAT_MIN_FIELDS = 20

# Linux letters with a canonical equivalent. "t" is tracing stop, "X" dead.
STATE_ALIASES = {"t": "T", "X": "Z", "x": "Z"}

NAMESPACES = ("mnt", "pid", "net", "uts", "ipc", "user", "cgroup")

CONTAINER_ID_RE = re.compile(r"[a-f0-9]{12,64}", re.IGNORECASE)


@dataclass
class ProcStat:
    """Fields of /proc/<pid>/stat that feed a record."""

    comm: str
    state: str
    ppid: int
    tty_nr: int
    utime: int  # clock ticks
    stime: int  # clock ticks
    priority: int
    nice: int
    num_threads: int
    starttime: int  # clock ticks after boot


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_stat(text: str) -> ProcStat:
    """Parse the single-line /proc/<pid>/stat format.

    comm sits between the first "(" and the last ")" so names holding spaces
    or parentheses survive. Kernel field N (1-based) is fields[N - 3] here.

    Raises:
        ValueError: If the parentheses are unbalanced or the line is short.
    """
    left = text.find("(")
    right = text.rfind(")")
    if left < 0 or right < 0 or right <= left:
        raise ValueError("malformed stat line")

    fields = text[right + 1 :].split()
    if len(fields) < STAT_MIN_FIELDS:
        raise ValueError(f"short stat line: {len(fields)} fields")

    return ProcStat(
        comm=text[left + 1 : right],
        state=fields[0],  # 3
        ppid=_to_int(fields[1]),  # 4
        tty_nr=_to_int(fields[4]),  # 7
        utime=_to_int(fields[11]),  # 14
        stime=_to_int(fields[12]),  # 15
        priority=_to_int(fields[15]),  # 18
        nice=_to_int(fields[16]),  # 19
        num_threads=_to_int(fields[17]),  # 20
        starttime=_to_int(fields[19]),  # 22
    )


def parse_status(text: str) -> dict[str, str]:
    """Parse /proc/<pid>/status ``Key:\\tvalue`` lines into a mapping."""
    status: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            status[key.strip()] = value.strip()
    return status


def parse_first_uint(value: str) -> int:
    """Return the first whitespace-separated token as an unsigned int (0 if unparsable).

    Uid/Gid lines carry real, effective, saved and filesystem ids; the first
    one is the real id.
    """
    tokens = value.split()
    if not tokens or not tokens[0].isdigit():
        return 0
    return int(tokens[0])


def parse_kb(value: str) -> int:
    """Parse a status memory figure such as ``"12345 kB"`` into bytes."""
    tokens = value.split()
    if not tokens:
        return 0
    return _to_int(tokens[0]) * 1024


def extract_container_id(path: str) -> str:
    """Return the longest hex-like token (12-64 chars) among the path segments.

    Docker, containerd and CRI-O all embed the container id in a cgroup
    segment, e.g. ``/system.slice/docker-<64 hex>.scope``.
    """
    best = ""
    for segment in path.split("/"):
        match = CONTAINER_ID_RE.search(segment)
        if match and len(match.group(0)) > len(best):
            best = match.group(0)
    return best


def parse_cgroups(text: str) -> tuple[str | None, list[str] | None, str | None]:
    """Parse /proc/<pid>/cgroup lines of the form ``id:controllers:path``.

    Returns:
        Tuple of (primary path, all paths, container id). Primary is the first
        non-empty path; container id comes from the first line that has one.
        Without any well-formed line the first two are None.
    """
    paths: list[str] = []
    primary: str | None = None
    container_id: str | None = None

    for line in text.splitlines():
        parts = line.split(":", 2)
        if len(parts) != 3:
            continue
        path = parts[2]
        paths.append(path)
        if primary is None and path:
            primary = path
        if container_id is None:
            found = extract_container_id(path)
            if found:
                container_id = found

    if not paths:
        return None, None, container_id
    return primary, paths, container_id


def parse_io(text: str) -> ProcessIO:
    """Parse the read_bytes/write_bytes lines of /proc/<pid>/io."""
    read_bytes = 0
    write_bytes = 0
    for line in text.splitlines():
        if line.startswith("read_bytes:"):
            read_bytes = _to_int(line.split(":", 1)[1].strip())
        elif line.startswith("write_bytes:"):
            write_bytes = _to_int(line.split(":", 1)[1].strip())
    return ProcessIO(read_bytes=read_bytes, write_bytes=write_bytes)


def parse_cmdline(raw: bytes) -> str:
    """Join the NUL-separated argument vector with single spaces."""
    raw = raw.rstrip(b"\0")
    if not raw:
        return ""
    return " ".join(arg.decode("utf-8", errors="replace") for arg in raw.split(b"\0"))


def _read_link(path: Path) -> str:
    try:
        return os.readlink(path)
    except OSError:
        return ""


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def derive_tty(base: Path) -> str:
    """Best-effort terminal name from where standard input points.

    ``/dev/pts/0`` becomes ``pts/0``; anything outside /dev, and /dev/null,
    yields "".
    """
    target = _read_link(base / "fd" / "0")
    if not target.startswith("/dev/") or target == "/dev/null":
        return ""
    return target[len("/dev/") :]


def read_namespaces(ns_dir: Path) -> ProcessNamespaces | None:
    """Resolve namespace links; None when none of them can be read."""
    ns = ProcessNamespaces(**{name: _read_link(ns_dir / name) for name in NAMESPACES})
    return None if ns.is_empty() else ns


def read_selinux_label(path: Path) -> str | None:
    """Read the security label; "" and the unconfined "kernel" label mean none."""
    text = _read_text(path)
    if text is None:
        return None
    label = text.replace("\0", "").strip()
    if not label or label == "kernel":
        return None
    return label


class ProcfsCollector:
    """Collects process records by walking /proc.

    Clock-tick frequency and boot time are read once per collection. A process
    whose stat file cannot be read or parsed is skipped; every other per-process
    read degrades to an empty value.
    """

    def __init__(self, config: Config):
        self.config = config
        self.proc_root = Path(config.ps.proc_root)

    def collect(self) -> list[ProcessRecord]:
        """Take one snapshot of every visible process.

        Raises:
            CollectionError: If the proc root cannot be listed.
        """
        try:
            entries = os.listdir(self.proc_root)
        except OSError as e:
            raise CollectionError(f"cannot list {self.proc_root}: {e}") from e

        hz = clock_ticks() or DEFAULT_CLOCK_TICKS
        try:
            boot_time: int | None = get_boot_time(self.proc_root)
        except (OSError, RuntimeError) as e:
            log.debug("boot_time_unavailable", error=str(e))
            boot_time = None
        now_ns = time.time_ns()

        records: list[ProcessRecord] = []
        for name in entries:
            if not name.isdigit():
                continue
            pid = int(name)
            if pid <= 0:
                continue

            try:
                record = self._read_process(pid, hz, boot_time, now_ns)
            except (OSError, ValueError) as e:
                # Permission denied or the process exited mid-read
                log.debug("process_skipped", pid=pid, error=str(e))
                continue
            records.append(record)

        log.debug("procfs_collected", count=len(records), hz=hz, boot_time=boot_time)
        return records

    def _read_process(
        self, pid: int, hz: int, boot_time: int | None, now_ns: int
    ) -> ProcessRecord:
        """Build one record. Raises OSError/ValueError if stat is unusable."""
        base = self.proc_root / str(pid)

        st = parse_stat((base / "stat").read_text(encoding="utf-8", errors="replace"))

        status_text = _read_text(base / "status")
        status = parse_status(status_text) if status_text is not None else {}

        uid = parse_first_uint(status.get("Uid", ""))
        gid = parse_first_uint(status.get("Gid", ""))

        try:
            command = parse_cmdline((base / "cmdline").read_bytes())
        except OSError:
            command = ""

        # Start time / elapsed
        if boot_time is not None:
            start_ns = boot_time * NS_PER_SECOND + st.starttime * NS_PER_SECOND // hz
        else:
            start_ns = now_ns
        elapsed = max(0, (now_ns - start_ns) // NS_PER_SECOND)

        cgroup, cgroups, container_id = None, None, None
        cgroup_text = _read_text(base / "cgroup")
        if cgroup_text is not None:
            cgroup, cgroups, container_id = parse_cgroups(cgroup_text)

        io_text = _read_text(base / "io")

        return ProcessRecord(
            pid=pid,
            ppid=st.ppid,
            uid=uid,
            gid=gid,
            user=lookup_user_name(uid),
            group=lookup_group_name(gid),
            state=normalize_state(st.state, STATE_ALIASES),
            tty=derive_tty(base),
            comm=st.comm,
            command=command,
            exe=_read_link(base / "exe"),
            cwd=_read_link(base / "cwd"),
            cpu_user_seconds=st.utime / hz,
            cpu_system_seconds=st.stime / hz,
            mem_rss_bytes=parse_kb(status.get("VmRSS", "")),
            mem_vms_bytes=parse_kb(status.get("VmSize", "")),
            mem_swap_bytes=parse_kb(status.get("VmSwap", "")),
            threads=st.num_threads,
            nice=st.nice,
            priority=st.priority,
            start_time=format_rfc3339(start_ns),
            start_time_unix_ns=start_ns,
            elapsed_seconds=elapsed,
            cgroup=cgroup,
            cgroups=cgroups,
            namespaces=read_namespaces(base / "ns"),
            container_id=container_id,
            selinux_label=read_selinux_label(base / "attr" / "current"),
            io=parse_io(io_text) if io_text is not None else None,
        )
