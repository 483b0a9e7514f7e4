"""Tests for the /proc process collector."""

from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import BOOT_TIME, add_process, make_stat_line

from jout.config import Config, PsConfig
from jout.ps.linux import (
    STATE_ALIASES,
    ProcfsCollector,
    derive_tty,
    extract_container_id,
    parse_cgroups,
    parse_cmdline,
    parse_first_uint,
    parse_io,
    parse_kb,
    parse_stat,
    parse_status,
    read_namespaces,
    read_selinux_label,
)
from jout.ps.models import CollectionError, normalize_state

NS = 1_000_000_000
NOW_NS = (BOOT_TIME + 70) * NS
CONTAINER_ID = "4f3c2a1b0e9d8c7b6a5f4e3d2c1b0a9f8e7d6c5b4a3f2e1d0c9b8a7f6e5d4c3b"


def collect(config: Config):
    """Run the collector with a fixed clock, USER_HZ=100 and stub name lookups."""
    with (
        patch("jout.ps.linux.clock_ticks", return_value=100),
        patch("jout.ps.linux.time") as mock_time,
        patch("jout.ps.linux.lookup_user_name", side_effect=lambda uid: f"user{uid}"),
        patch("jout.ps.linux.lookup_group_name", side_effect=lambda gid: f"group{gid}"),
    ):
        mock_time.time_ns.return_value = NOW_NS
        return ProcfsCollector(config).collect()


class TestParseStat:
    """Tests for the /proc/<pid>/stat parser."""

    def test_fields_by_kernel_position(self) -> None:
        """Each field comes from its documented kernel position."""
        line = make_stat_line(
            42,
            state="R",
            ppid=7,
            tty_nr=34816,
            utime=250,
            stime=100,
            priority=20,
            nice=-5,
            num_threads=9,
            starttime=1234,
        )
        st = parse_stat(line)

        assert st.comm == "bash"
        assert st.state == "R"
        assert st.ppid == 7
        assert st.tty_nr == 34816
        assert st.utime == 250
        assert st.stime == 100
        assert st.priority == 20
        assert st.nice == -5
        assert st.num_threads == 9
        assert st.starttime == 1234

    def test_comm_with_spaces_and_parens(self) -> None:
        """comm spans from the first "(" to the last ")"."""
        st = parse_stat(make_stat_line(42, comm="my (weird) proc", ppid=3))

        assert st.comm == "my (weird) proc"
        assert st.ppid == 3

    def test_short_line_rejected(self) -> None:
        """A line cut off before starttime is an error."""
        with pytest.raises(ValueError):
            parse_stat("42 (bash) S 1 42 42 0")

    def test_missing_parens_rejected(self) -> None:
        """A line without the comm parentheses is an error."""
        with pytest.raises(ValueError):
            parse_stat("42 bash S 1 42 42 0 -1 0 0 0 0 0 1 1 0 0 20 0 1 0 5")


class TestStatusParsing:
    """Tests for status file helpers."""

    def test_parse_status_key_values(self) -> None:
        status = parse_status("Name:\tbash\nUid:\t1000\t1000\t1000\t1000\nVmRSS:\t  12 kB\n")

        assert status["Name"] == "bash"
        assert status["Uid"] == "1000\t1000\t1000\t1000"
        assert status["VmRSS"] == "12 kB"

    def test_first_uint_is_real_id(self) -> None:
        """The first of the four ids is the real id."""
        assert parse_first_uint("1000\t1001\t1002\t1003") == 1000

    def test_first_uint_unparsable(self) -> None:
        assert parse_first_uint("") == 0
        assert parse_first_uint("-1 2") == 0

    def test_kb_to_bytes(self) -> None:
        """Kilobyte figures are multiplied by 1024 exactly."""
        assert parse_kb("12345 kB") == 12_641_280

    def test_kb_empty_or_garbage(self) -> None:
        assert parse_kb("") == 0
        assert parse_kb("lots kB") == 0


class TestStateNormalization:
    """Tests for Linux state letters."""

    @pytest.mark.parametrize(
        "code,expected",
        [("R", "R"), ("S", "S"), ("D", "D"), ("Z", "Z"), ("I", "I"), ("t", "T"), ("X", "Z")],
    )
    def test_known_letters(self, code: str, expected: str) -> None:
        assert normalize_state(code, STATE_ALIASES) == expected

    def test_unknown_letter_is_empty(self) -> None:
        """Letters outside the canonical set (e.g. W) become empty."""
        assert normalize_state("W", STATE_ALIASES) == ""


class TestCgroups:
    """Tests for cgroup and container id parsing."""

    def test_unified_hierarchy(self) -> None:
        text = f"0::/system.slice/docker-{CONTAINER_ID}.scope\n"

        primary, paths, cid = parse_cgroups(text)

        assert primary == f"/system.slice/docker-{CONTAINER_ID}.scope"
        assert paths == [primary]
        assert cid == CONTAINER_ID

    def test_v1_primary_is_first_non_empty(self) -> None:
        text = "12:name=systemd:\n4:cpu,cpuacct:/user.slice\n0::/init.scope\n"

        primary, paths, cid = parse_cgroups(text)

        assert primary == "/user.slice"
        assert paths == ["", "/user.slice", "/init.scope"]
        assert cid is None

    def test_no_well_formed_lines(self) -> None:
        assert parse_cgroups("garbage\n") == (None, None, None)

    def test_container_id_longest_hex_segment(self) -> None:
        path = "/kubepods/besteffort/pod1234/0123456789abcdef0123"
        assert extract_container_id(path) == "0123456789abcdef0123"

    def test_container_id_absent(self) -> None:
        assert extract_container_id("/user.slice/user-1000.slice") == ""


class TestSmallReaders:
    """Tests for the optional per-process readers."""

    def test_parse_io(self) -> None:
        io = parse_io("rchar: 10\nwchar: 20\nread_bytes: 4096\nwrite_bytes: 8192\n")

        assert io.read_bytes == 4096
        assert io.write_bytes == 8192

    def test_parse_cmdline(self) -> None:
        assert parse_cmdline(b"/bin/bash\0-l\0") == "/bin/bash -l"
        assert parse_cmdline(b"") == ""

    def test_tty_from_stdin_link(self, tmp_path: Path) -> None:
        (tmp_path / "fd").mkdir()
        (tmp_path / "fd" / "0").symlink_to("/dev/pts/3")

        assert derive_tty(tmp_path) == "pts/3"

    @pytest.mark.parametrize("target", ["/dev/null", "pipe:[12345]", "socket:[1]"])
    def test_tty_not_a_terminal(self, tmp_path: Path, target: str) -> None:
        (tmp_path / "fd").mkdir()
        (tmp_path / "fd" / "0").symlink_to(target)

        assert derive_tty(tmp_path) == ""

    def test_tty_unreadable(self, tmp_path: Path) -> None:
        assert derive_tty(tmp_path) == ""

    def test_namespaces_partial(self, tmp_path: Path) -> None:
        tmp_path.joinpath("net").symlink_to("net:[4026531840]")

        ns = read_namespaces(tmp_path)

        assert ns is not None
        assert ns.to_dict() == {"net": "net:[4026531840]"}

    def test_namespaces_none_readable(self, tmp_path: Path) -> None:
        assert read_namespaces(tmp_path / "missing") is None

    def test_selinux_label(self, tmp_path: Path) -> None:
        path = tmp_path / "current"
        path.write_text("system_u:system_r:init_t:s0\0")

        assert read_selinux_label(path) == "system_u:system_r:init_t:s0"

    def test_selinux_kernel_label_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "current"
        path.write_text("kernel\0")

        assert read_selinux_label(path) is None


class TestProcfsCollector:
    """Tests for ProcfsCollector.collect()."""

    def test_full_record(self, proc_root: Path, proc_config: Config) -> None:
        """Every /proc source lands in the matching record field."""
        add_process(
            proc_root,
            100,
            comm="bash",
            ppid=1,
            state="S",
            utime=250,
            stime=100,
            nice=0,
            priority=20,
            num_threads=4,
            starttime=1000,
            status="Uid:\t1000\t1000\t1000\t1000\nGid:\t100\t100\t100\t100\n"
            "VmRSS:\t  2048 kB\nVmSize:\t  8192 kB\nVmSwap:\t  4 kB\n",
            cgroup=f"0::/system.slice/docker-{CONTAINER_ID}.scope\n",
            io="read_bytes: 4096\nwrite_bytes: 0\n",
            links={
                "exe": "/usr/bin/bash",
                "cwd": "/home/user",
                "fd/0": "/dev/pts/3",
                "ns/mnt": "mnt:[4026531841]",
                "ns/net": "net:[4026531840]",
            },
        )

        records = collect(proc_config)

        assert len(records) == 1
        r = records[0]
        assert r.pid == 100
        assert r.ppid == 1
        assert (r.uid, r.gid) == (1000, 100)
        assert (r.user, r.group) == ("user1000", "group100")
        assert r.state == "S"
        assert r.tty == "pts/3"
        assert r.comm == "bash"
        assert r.command == "/bin/bash -l"
        assert r.exe == "/usr/bin/bash"
        assert r.cwd == "/home/user"
        assert r.cpu_user_seconds == 2.5
        assert r.cpu_system_seconds == 1.0
        assert r.mem_rss_bytes == 2048 * 1024
        assert r.mem_vms_bytes == 8192 * 1024
        assert r.mem_swap_bytes == 4096
        assert (r.threads, r.nice, r.priority) == (4, 0, 20)
        # starttime 1000 ticks at 100 Hz is 10s after boot
        assert r.start_time_unix_ns == (BOOT_TIME + 10) * NS
        assert r.start_time == "2023-11-14T22:13:30Z"
        assert r.elapsed_seconds == 60
        assert r.container_id == CONTAINER_ID
        assert r.cgroups == [f"/system.slice/docker-{CONTAINER_ID}.scope"]
        assert r.namespaces is not None
        assert r.namespaces.to_dict() == {"mnt": "mnt:[4026531841]", "net": "net:[4026531840]"}
        assert r.io is not None
        assert (r.io.read_bytes, r.io.write_bytes) == (4096, 0)
        assert r.selinux_label is None

    def test_optional_sources_degrade(self, proc_root: Path, proc_config: Config) -> None:
        """Missing status, cmdline and links leave empty values but keep the record."""
        add_process(proc_root, 100, status=None, cmdline=None)

        records = collect(proc_config)

        assert len(records) == 1
        r = records[0]
        assert (r.uid, r.gid) == (0, 0)
        assert r.command == ""
        assert r.exe == ""
        assert r.tty == ""
        assert r.mem_rss_bytes == 0
        assert r.cgroup is None
        assert r.namespaces is None
        assert r.io is None
        d = r.to_dict()
        assert "exe" not in d
        assert "io" not in d

    def test_unreadable_stat_skips_process(self, proc_root: Path, proc_config: Config) -> None:
        """A process without a usable stat file is left out; others survive."""
        add_process(proc_root, 100)
        (add_process(proc_root, 200) / "stat").unlink()
        add_process(proc_root, 300, stat="300 bash S 1\n")

        records = collect(proc_config)

        assert [r.pid for r in records] == [100]

    def test_non_numeric_entries_ignored(self, proc_root: Path, proc_config: Config) -> None:
        (proc_root / "self").mkdir()
        (proc_root / "sys").mkdir()
        add_process(proc_root, 100)

        records = collect(proc_config)

        assert [r.pid for r in records] == [100]

    def test_empty_proc(self, proc_config: Config) -> None:
        """No process directories is an empty snapshot, not an error."""
        assert collect(proc_config) == []

    def test_missing_boot_time(self, proc_root: Path, proc_config: Config) -> None:
        """Without btime the start time falls back to now."""
        (proc_root / "stat").unlink()
        add_process(proc_root, 100)

        records = collect(proc_config)

        assert records[0].start_time_unix_ns == NOW_NS
        assert records[0].elapsed_seconds == 0

    def test_unlistable_root(self, tmp_path: Path) -> None:
        """A proc root that cannot be listed is collection-fatal."""
        config = Config(ps=PsConfig(proc_root=str(tmp_path / "nope")))

        with pytest.raises(CollectionError):
            collect(config)
