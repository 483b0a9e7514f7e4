"""Boot time detection for Linux.

Reads the ``btime`` line of the kernel statistics file (``/proc/stat``).
"""

from pathlib import Path


def get_boot_time(proc_root: str | Path = "/proc") -> int:
    """Return system boot time as Unix timestamp.

    Raises:
        OSError: If the statistics file cannot be read.
        RuntimeError: If no parsable btime line is present.
    """
    with open(Path(proc_root) / "stat", encoding="ascii", errors="replace") as f:
        for line in f:
            if line.startswith("btime "):
                parts = line.split()
                if len(parts) >= 2 and parts[1].isdigit():
                    return int(parts[1])
                break
    raise RuntimeError(f"Failed to parse btime from {proc_root}/stat")
