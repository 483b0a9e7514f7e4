"""Tests for field formatting helpers."""

import stat
from datetime import datetime, timedelta, timezone

import pytest

from jout.formatting import NS_PER_SECOND, datetime_to_unix_ns, format_mode, format_rfc3339


class TestFormatRfc3339:
    def test_epoch(self) -> None:
        assert format_rfc3339(0) == "1970-01-01T00:00:00Z"

    def test_sub_second_truncated(self) -> None:
        """Nanoseconds are dropped, not rounded."""
        assert format_rfc3339(1_706_000_000 * NS_PER_SECOND + 999_999_999) == "2024-01-23T08:53:20Z"


class TestDatetimeToUnixNs:
    def test_exact_microseconds(self) -> None:
        dt = datetime(2024, 1, 2, 2, 4, 5, 123456, tzinfo=timezone.utc)

        assert datetime_to_unix_ns(dt) == 1_704_161_045_123_456_000

    def test_offset_aware(self) -> None:
        """The same instant in another zone converts to the same value."""
        utc = datetime(2024, 1, 2, 2, 4, 5, tzinfo=timezone.utc)
        local = utc.astimezone(timezone(timedelta(hours=5, minutes=30)))

        assert datetime_to_unix_ns(local) == datetime_to_unix_ns(utc)


class TestFormatMode:
    """Tests for ls-style permission strings."""

    @pytest.mark.parametrize(
        "mode,expected",
        [
            (stat.S_IFREG | 0o644, "-rw-r--r--"),
            (stat.S_IFDIR | 0o755, "drwxr-xr-x"),
            (stat.S_IFLNK | 0o777, "lrwxrwxrwx"),
            (stat.S_IFIFO | 0o600, "prw-------"),
            (stat.S_IFSOCK | 0o755, "srwxr-xr-x"),
            (stat.S_IFCHR | 0o620, "crw--w----"),
            (stat.S_IFBLK | 0o660, "brw-rw----"),
        ],
    )
    def test_types(self, mode: int, expected: str) -> None:
        assert format_mode(mode) == expected

    @pytest.mark.parametrize(
        "mode,expected",
        [
            (stat.S_IFREG | 0o4755, "-rwsr-xr-x"),
            (stat.S_IFREG | 0o4644, "-rwSr--r--"),
            (stat.S_IFDIR | 0o2755, "drwxr-sr-x"),
            (stat.S_IFREG | 0o2644, "-rw-r-Sr--"),
            (stat.S_IFDIR | 0o1777, "drwxrwxrwt"),
            (stat.S_IFDIR | 0o1770, "drwxrwx--T"),
        ],
    )
    def test_special_bits(self, mode: int, expected: str) -> None:
        assert format_mode(mode) == expected
