"""Numeric user/group id to name resolution.

Lookups never fail: when the identity database has no entry (or the platform
has no pwd/grp module) the decimal id itself is returned.
"""

import sys

if sys.platform == "win32":  # no passwd/group database
    grp = None
    pwd = None
else:
    import grp
    import pwd


def lookup_user_name(uid: int) -> str:
    """Return the login name for ``uid``, or ``str(uid)`` if it cannot be resolved."""
    if pwd is None:
        return str(uid)
    try:
        return pwd.getpwuid(uid).pw_name
    except (KeyError, OverflowError):
        return str(uid)


def lookup_group_name(gid: int) -> str:
    """Return the group name for ``gid``, or ``str(gid)`` if it cannot be resolved."""
    if grp is None:
        return str(gid)
    try:
        return grp.getgrgid(gid).gr_name
    except (KeyError, OverflowError):
        return str(gid)
