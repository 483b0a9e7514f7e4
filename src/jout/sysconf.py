"""Low-level sysconf interface.

Thin wrapper over os.sysconf() that reports failure as None instead of raising.
"""

import os


def sysconf_int(name: str) -> int | None:
    """Read an integer sysconf value by name.

    Args:
        name: sysconf name (e.g., "SC_CLK_TCK")

    Returns:
        Positive integer value on success, None if the name is unknown on this
        platform, the platform has no sysconf, or the value is not positive.
    """
    try:
        value = os.sysconf(name)
    except (AttributeError, ValueError, OSError):
        return None
    return value if value > 0 else None


def clock_ticks() -> int | None:
    """Return the kernel clock-tick frequency (USER_HZ), or None if unavailable."""
    return sysconf_int("SC_CLK_TCK")
