"""Tests for vmctl.locks module."""

from __future__ import annotations

from vmctl.locks import InstanceLock


class TestInstanceLock:
    def test_second_holder_is_refused(self, tmp_path):
        first = InstanceLock(tmp_path, "abc")
        second = InstanceLock(tmp_path, "abc")
        with first:
            assert first.held
            assert second.acquire(blocking=False) is False
        assert second.acquire(blocking=False) is True
        second.release()

    def test_release_is_idempotent(self, tmp_path):
        lock = InstanceLock(tmp_path / "locks", "abc")
        lock.acquire()
        lock.release()
        lock.release()
        assert not lock.held
        assert (tmp_path / "locks" / "abc.lock").exists()

    def test_distinct_instances_do_not_conflict(self, tmp_path):
        with InstanceLock(tmp_path, "abc"):
            other = InstanceLock(tmp_path, "def")
            assert other.acquire(blocking=False) is True
            other.release()
