"""Canonical process record shared by every platform collector."""

from dataclasses import dataclass
from typing import Protocol

# Single-letter states a record may carry. Anything else becomes "".
VALID_STATES = frozenset("RSDTZI")


class CollectionError(Exception):
    """The enumeration mechanism itself failed; no snapshot could be taken.

    Attributes:
        exit_code: Process exit code the CLI should use.
        stderr: Diagnostic output captured from an external command, if any.
    """

    def __init__(self, message: str, exit_code: int = 1, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


@dataclass
class ProcessIO:
    """Cumulative I/O byte counters."""

    read_bytes: int
    write_bytes: int

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {"read_bytes": self.read_bytes, "write_bytes": self.write_bytes}


@dataclass
class ProcessNamespaces:
    """Linux namespace identifiers, e.g. ``"mnt:[4026531840]"``."""

    mnt: str = ""
    pid: str = ""
    net: str = ""
    uts: str = ""
    ipc: str = ""
    user: str = ""
    cgroup: str = ""

    def is_empty(self) -> bool:
        return not any(
            (self.mnt, self.pid, self.net, self.uts, self.ipc, self.user, self.cgroup)
        )

    def to_dict(self) -> dict:
        """Serialize to a dictionary, leaving out unresolved namespaces."""
        d = {
            "mnt": self.mnt,
            "pid": self.pid,
            "net": self.net,
            "uts": self.uts,
            "ipc": self.ipc,
            "user": self.user,
            "cgroup": self.cgroup,
        }
        return {k: v for k, v in d.items() if v}


@dataclass
class ProcessRecord:
    """One process at collection time.

    This is the single output schema of every collector. Fields that a
    platform cannot provide keep their empty default; to_dict() decides
    which of those are written as empty values and which are left out.
    """

    # ─────────────────────────────────────────────────────────────
    # Identity
    # ─────────────────────────────────────────────────────────────
    pid: int
    ppid: int = 0
    uid: int = 0
    gid: int = 0
    user: str = ""
    group: str = ""

    # ─────────────────────────────────────────────────────────────
    # State / terminal
    # ─────────────────────────────────────────────────────────────
    state: str = ""
    tty: str = ""
    comm: str = ""
    command: str = ""

    # ─────────────────────────────────────────────────────────────
    # Paths
    # ─────────────────────────────────────────────────────────────
    exe: str = ""
    cwd: str = ""

    # ─────────────────────────────────────────────────────────────
    # CPU & memory (cumulative since start)
    # ─────────────────────────────────────────────────────────────
    cpu_user_seconds: float = 0.0
    cpu_system_seconds: float = 0.0
    mem_rss_bytes: int = 0
    mem_vms_bytes: int = 0
    mem_swap_bytes: int = 0

    threads: int | None = None
    nice: int | None = None
    priority: int | None = None

    # ─────────────────────────────────────────────────────────────
    # Start / elapsed
    # ─────────────────────────────────────────────────────────────
    start_time: str = ""  # RFC 3339 UTC
    start_time_unix_ns: int = 0
    elapsed_seconds: int | None = None

    # ─────────────────────────────────────────────────────────────
    # Containers / cgroups / namespaces / security (Linux)
    # ─────────────────────────────────────────────────────────────
    cgroup: str | None = None  # Primary cgroup path
    cgroups: list[str] | None = None  # All cgroup paths (v1/v2)
    namespaces: ProcessNamespaces | None = None
    container_id: str | None = None
    selinux_label: str | None = None

    # ─────────────────────────────────────────────────────────────
    # I/O (Linux, Windows)
    # ─────────────────────────────────────────────────────────────
    io: ProcessIO | None = None

    def to_dict(self) -> dict:
        """Serialize to a dictionary with the stable key set.

        Always present: identity, state/terminal, CPU, rss/vms and start time.
        Left out when empty: exe, cwd, mem_swap_bytes, threads, nice, priority,
        elapsed_seconds and every Linux-only block.
        """
        d: dict = {
            # Identity
            "pid": self.pid,
            "ppid": self.ppid,
            "uid": self.uid,
            "gid": self.gid,
            "user": self.user,
            "group": self.group,
            # State / terminal
            "state": self.state,
            "tty": self.tty,
            "comm": self.comm,
            "command": self.command,
        }
        # Paths
        if self.exe:
            d["exe"] = self.exe
        if self.cwd:
            d["cwd"] = self.cwd
        # CPU & memory
        d["cpu_user_seconds"] = self.cpu_user_seconds
        d["cpu_system_seconds"] = self.cpu_system_seconds
        d["mem_rss_bytes"] = self.mem_rss_bytes
        d["mem_vms_bytes"] = self.mem_vms_bytes
        if self.mem_swap_bytes:
            d["mem_swap_bytes"] = self.mem_swap_bytes
        if self.threads is not None:
            d["threads"] = self.threads
        if self.nice is not None:
            d["nice"] = self.nice
        if self.priority is not None:
            d["priority"] = self.priority
        # Start / elapsed
        d["start_time"] = self.start_time
        d["start_time_unix_ns"] = self.start_time_unix_ns
        if self.elapsed_seconds is not None:
            d["elapsed_seconds"] = self.elapsed_seconds
        # Containers / cgroups / namespaces
        if self.cgroup is not None:
            d["cgroup"] = self.cgroup
        if self.cgroups is not None:
            d["cgroups"] = list(self.cgroups)
        if self.namespaces is not None:
            d["namespaces"] = self.namespaces.to_dict()
        if self.container_id is not None:
            d["container_id"] = self.container_id
        # I/O
        if self.io is not None:
            d["io"] = self.io.to_dict()
        # Security
        if self.selinux_label is not None:
            d["selinux_label"] = self.selinux_label
        return d


class Collector(Protocol):
    """A platform strategy that takes one process snapshot."""

    def collect(self) -> list[ProcessRecord]:
        """Return every visible process.

        Raises:
            CollectionError: If the enumeration mechanism itself fails.
        """
        ...


def normalize_state(code: str, aliases: dict[str, str] | None = None) -> str:
    """Reduce a platform state string to one of R,S,D,T,Z,I, or "".

    Only the first character is considered. ``aliases`` maps platform letters
    onto the canonical set before validation.
    """
    code = code.strip()
    if not code:
        return ""
    letter = code[0]
    if aliases:
        letter = aliases.get(letter, letter)
    return letter if letter in VALID_STATES else ""
