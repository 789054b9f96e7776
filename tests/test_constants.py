"""Tests for vmctl.constants module."""

from pathlib import Path

from vmctl.constants import (
    ACTIVE_STATUSES,
    DATABASE_PATH,
    DEFAULT_CONFIG_PATH,
    DISK_SIZE_RE,
    HOME_DIR,
    ISO_MIRROR_URL,
    LOCKS_DIR,
    LOGS_DIR,
    STATUS_STOPPED,
    TRUTHY,
    VERSION_RE,
)


class TestConstants:
    def test_paths_live_under_home(self):
        for path in (DATABASE_PATH, DEFAULT_CONFIG_PATH, LOGS_DIR, LOCKS_DIR):
            assert isinstance(path, Path)
            assert path.parent == HOME_DIR

    def test_truthy_values(self):
        assert "1" in TRUTHY
        assert "on" in TRUTHY
        assert "false" not in TRUTHY

    def test_disk_size_regex(self):
        assert DISK_SIZE_RE.match("20G")
        assert DISK_SIZE_RE.match("500M")
        assert not DISK_SIZE_RE.match("20GB")

    def test_version_regex(self):
        assert VERSION_RE.match("6.4.2")
        assert not VERSION_RE.match("6.4")
        assert not VERSION_RE.match("/isos/6.4.2.iso")

    def test_stopped_is_not_active(self):
        assert STATUS_STOPPED not in ACTIVE_STATUSES

    def test_mirror_url_template(self):
        assert ISO_MIRROR_URL.format(version="6.4.2").endswith("dfly-x86_64-6.4.2_REL.iso")
