"""Tests for the single-instance lock.

Only one daemon may use a credential directory at a time:
1. A second lock on the same file fails while the first is held
2. Release removes the lock file
3. A PID left by a crashed daemon does not block a new one
"""

import os
import stat

import pytest

from wagate.daemon_lock import AlreadyRunningError, InstanceLock

# Well above any real pid_max
DEAD_PID = 999_999_999


class TestAcquire:
    """Tests for acquiring the lock."""

    def test_acquire_when_free(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        lock = InstanceLock(lock_file)

        lock.acquire()

        assert lock.held
        assert lock.owner_pid() == os.getpid()
        assert stat.S_IMODE(os.stat(lock_file).st_mode) == 0o600
        lock.release()

    def test_acquire_fails_when_held(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        first = InstanceLock(lock_file)
        first.acquire()

        second = InstanceLock(lock_file)
        with pytest.raises(AlreadyRunningError) as exc_info:
            second.acquire()

        assert exc_info.value.pid == os.getpid()
        assert "already running" in str(exc_info.value)
        assert not second.held
        first.release()

    def test_acquire_after_release(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        first = InstanceLock(lock_file)
        first.acquire()
        first.release()

        second = InstanceLock(lock_file)
        second.acquire()

        assert second.held
        second.release()

    def test_stale_pid_file_is_taken_over(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        lock_file.write_text(f"{DEAD_PID}\n")

        lock = InstanceLock(lock_file)
        lock.acquire()

        assert lock.owner_pid() == os.getpid()
        lock.release()

    def test_acquire_twice_is_noop(self, tmp_path):
        lock = InstanceLock(tmp_path / "wagate.lock")
        lock.acquire()
        lock.acquire()

        assert lock.held
        lock.release()


class TestRelease:
    """Tests for releasing the lock."""

    def test_release_removes_file(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        lock = InstanceLock(lock_file)
        lock.acquire()

        lock.release()

        assert not lock_file.exists()
        assert not lock.held

    def test_release_is_idempotent(self, tmp_path):
        lock = InstanceLock(tmp_path / "wagate.lock")
        lock.acquire()

        lock.release()
        lock.release()

    def test_context_manager(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"

        with InstanceLock(lock_file) as lock:
            assert lock.held
            assert lock_file.exists()

        assert not lock_file.exists()


class TestOwner:
    """Tests for inspecting the lock owner."""

    def test_no_file(self, tmp_path):
        lock = InstanceLock(tmp_path / "wagate.lock")

        assert lock.owner_pid() is None
        assert not lock.owner_running()

    def test_garbage_file(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        lock_file.write_text("not a pid")

        assert InstanceLock(lock_file).owner_pid() is None

    def test_live_owner(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        lock_file.write_text(f"{os.getpid()}\n")

        assert InstanceLock(lock_file).owner_running()

    def test_dead_owner(self, tmp_path):
        lock_file = tmp_path / "wagate.lock"
        lock_file.write_text(f"{DEAD_PID}\n")

        assert not InstanceLock(lock_file).owner_running()
