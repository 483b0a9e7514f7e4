"""Shared test fixtures for jout."""

import logging
import os
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from jout.config import Config, PsConfig

BOOT_TIME = 1_700_000_000


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo any logging.configure() done by a test."""
    root = logging.getLogger()
    before = set(root.handlers)
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """An empty fake /proc with a kernel stat file."""
    root = tmp_path / "proc"
    root.mkdir()
    (root / "stat").write_text(
        "cpu  4705 356 584 3699 23 23 0 0 0 0\n"
        f"btime {BOOT_TIME}\n"
        "processes 3202\n"
    )
    return root


@pytest.fixture
def proc_config(proc_root: Path) -> Config:
    """Config pointing the Linux collector at the fake /proc."""
    return Config(ps=PsConfig(proc_root=str(proc_root)))


def make_stat_line(
    pid: int,
    comm: str = "bash",
    state: str = "S",
    ppid: int = 1,
    tty_nr: int = 0,
    utime: int = 250,
    stime: int = 100,
    priority: int = 20,
    nice: int = 0,
    num_threads: int = 4,
    starttime: int = 1000,
) -> str:
    """Build a /proc/<pid>/stat line with the kernel field order."""
    fields = [
        state,
        ppid,
        pid,  # pgrp
        pid,  # session
        tty_nr,
        -1,  # tpgid
        4194560,  # flags
        100,  # minflt
        0,  # cminflt
        0,  # majflt
        0,  # cmajflt
        utime,
        stime,
        0,  # cutime
        0,  # cstime
        priority,
        nice,
        num_threads,
        0,  # itrealvalue
        starttime,
        12_345_678,  # vsize
        500,  # rss
    ]
    return f"{pid} ({comm}) " + " ".join(str(f) for f in fields) + "\n"


def add_process(
    proc_root: Path,
    pid: int,
    comm: str = "bash",
    stat: str | None = None,
    status: str | None = "Uid:\t0\t0\t0\t0\nGid:\t0\t0\t0\t0\nVmRSS:\t  2048 kB\nVmSize:\t  8192 kB\n",
    cmdline: bytes | None = b"/bin/bash\0-l\0",
    cgroup: str | None = None,
    io: str | None = None,
    links: dict[str, str] | None = None,
    **stat_fields,
) -> Path:
    """Create /proc/<pid> with the given files; None leaves a file out.

    ``links`` maps paths relative to the process directory (``exe``,
    ``fd/0``, ``ns/net``) to symlink targets, which need not exist.
    """
    base = proc_root / str(pid)
    base.mkdir()
    if stat is None:
        stat = make_stat_line(pid, comm, **stat_fields)
    (base / "stat").write_text(stat)
    if status is not None:
        (base / "status").write_text(status)
    if cmdline is not None:
        (base / "cmdline").write_bytes(cmdline)
    if cgroup is not None:
        (base / "cgroup").write_text(cgroup)
    if io is not None:
        (base / "io").write_text(io)
    for rel, target in (links or {}).items():
        link = base / rel
        link.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(target, link)
    return base
