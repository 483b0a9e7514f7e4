"""Formatting utilities for consistent JSON field values."""

import stat
from datetime import datetime, timezone

NS_PER_SECOND = 1_000_000_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_rfc3339(unix_ns: int) -> str:
    """Format a nanosecond epoch as an RFC 3339 UTC timestamp (second precision).

    Example: 1706000000_000000000 -> "2024-01-23T08:53:20Z"
    """
    dt = datetime.fromtimestamp(unix_ns // NS_PER_SECOND, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def datetime_to_unix_ns(dt: datetime) -> int:
    """Convert an aware datetime to nanoseconds since the epoch without float rounding."""
    delta = dt - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return seconds * NS_PER_SECOND + delta.microseconds * 1000


def format_mode(mode: int) -> str:
    """Return an ls-style permission string such as "-rw-r--r--" or "drwxr-sr-x".

    The first character is the file type (d, l, p, s, c, b or -). setuid,
    setgid and sticky bits show as s/S and t/T over the matching execute slot.
    """
    if stat.S_ISDIR(mode):
        type_ch = "d"
    elif stat.S_ISLNK(mode):
        type_ch = "l"
    elif stat.S_ISFIFO(mode):
        type_ch = "p"
    elif stat.S_ISSOCK(mode):
        type_ch = "s"
    elif stat.S_ISCHR(mode):
        type_ch = "c"
    elif stat.S_ISBLK(mode):
        type_ch = "b"
    else:
        type_ch = "-"

    chars = [
        "r" if mode & stat.S_IRUSR else "-",
        "w" if mode & stat.S_IWUSR else "-",
        "x" if mode & stat.S_IXUSR else "-",
        "r" if mode & stat.S_IRGRP else "-",
        "w" if mode & stat.S_IWGRP else "-",
        "x" if mode & stat.S_IXGRP else "-",
        "r" if mode & stat.S_IROTH else "-",
        "w" if mode & stat.S_IWOTH else "-",
        "x" if mode & stat.S_IXOTH else "-",
    ]

    if mode & stat.S_ISUID:
        chars[2] = "s" if chars[2] == "x" else "S"
    if mode & stat.S_ISGID:
        chars[5] = "s" if chars[5] == "x" else "S"
    if mode & stat.S_ISVTX:
        chars[8] = "t" if chars[8] == "x" else "T"

    return type_ch + "".join(chars)
