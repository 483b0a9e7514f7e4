"""Directory listing with per-entry metadata."""

import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from jout.formatting import format_mode, format_rfc3339
from jout.identity import lookup_group_name, lookup_user_name

log = structlog.get_logger()


class FollowMode(Enum):
    """How symbolic links are treated."""

    NEVER = "P"  # list the link itself
    ARGUMENTS = "H"  # follow links named on the command line only
    ALL = "L"  # follow links everywhere


@dataclass
class Entry:
    """One listed filesystem object."""

    name: str
    path: str
    type: str  # file | dir | symlink
    is_dir: bool
    size_bytes: int
    mode_str: str
    mode_octal: str
    mtime: str
    link_target: str = ""
    inode: int = 0
    nlink: int = 0
    uid: int = 0
    gid: int = 0
    owner: str = ""
    group: str = ""
    atime: str = ""
    ctime: str = ""

    def to_dict(self) -> dict:
        """Serialize to a dictionary; empty optional fields are left out."""
        d: dict = {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "is_dir": self.is_dir,
        }
        if self.link_target:
            d["link_target"] = self.link_target
        d["size_bytes"] = self.size_bytes
        d["mode_str"] = self.mode_str
        d["mode_octal"] = self.mode_octal
        for key in ("inode", "nlink", "uid", "gid", "owner", "group"):
            value = getattr(self, key)
            if value:
                d[key] = value
        d["mtime"] = self.mtime
        if self.atime:
            d["atime"] = self.atime
        if self.ctime:
            d["ctime"] = self.ctime
        return d


def make_entry(name: str, full_path: str, st: os.stat_result) -> Entry:
    """Build an Entry from a stat (or lstat) result."""
    if stat.S_ISLNK(st.st_mode):
        kind = "symlink"
    elif stat.S_ISDIR(st.st_mode):
        kind = "dir"
    else:
        kind = "file"

    link_target = ""
    if kind == "symlink":
        try:
            link_target = os.readlink(full_path)
        except OSError:
            pass

    # Windows reports no owner; uid/gid are 0 there
    uid = getattr(st, "st_uid", 0)
    gid = getattr(st, "st_gid", 0)

    return Entry(
        name=name,
        path=full_path,
        type=kind,
        is_dir=stat.S_ISDIR(st.st_mode),
        size_bytes=st.st_size,
        mode_str=format_mode(st.st_mode),
        mode_octal=f"{stat.S_IMODE(st.st_mode) & 0o777:04o}",
        mtime=format_rfc3339(st.st_mtime_ns),
        link_target=link_target,
        inode=st.st_ino,
        nlink=st.st_nlink,
        uid=uid,
        gid=gid,
        owner=lookup_user_name(uid) if os.name == "posix" else "",
        group=lookup_group_name(gid) if os.name == "posix" else "",
        atime=format_rfc3339(st.st_atime_ns),
        ctime=format_rfc3339(st.st_ctime_ns),
    )


def _stat_target(path: str, mode: FollowMode) -> os.stat_result:
    if mode is FollowMode.ALL:
        try:
            return os.stat(path)
        except OSError:
            # Broken links are still listed as themselves
            return os.lstat(path)

    st = os.lstat(path)
    if mode is FollowMode.ARGUMENTS and stat.S_ISLNK(st.st_mode):
        try:
            return os.stat(path)
        except OSError:
            return st
    return st


def list_path(path: str, mode: FollowMode = FollowMode.NEVER) -> list[Entry]:
    """List ``path``: one entry for a non-directory, or its children sorted by name.

    Children that cannot be stat'ed are skipped.

    Raises:
        OSError: If ``path`` itself cannot be stat'ed or read.
    """
    st = _stat_target(path, mode)
    if not stat.S_ISDIR(st.st_mode):
        return [make_entry(Path(path).name or path, os.path.abspath(path), st)]

    entries: list[Entry] = []
    with os.scandir(path) as it:
        for child in it:
            try:
                if mode is FollowMode.ALL:
                    try:
                        child_st = child.stat(follow_symlinks=True)
                    except OSError:
                        child_st = child.stat(follow_symlinks=False)
                else:
                    child_st = child.stat(follow_symlinks=False)
            except OSError as e:
                log.debug("entry_skipped", path=child.path, error=str(e))
                continue
            entries.append(make_entry(child.name, os.path.abspath(child.path), child_st))

    entries.sort(key=lambda e: e.name)
    return entries
