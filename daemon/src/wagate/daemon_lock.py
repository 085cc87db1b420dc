"""Single-instance lock for the wagate daemon.

Two processes sharing one credential directory would each open a session
with the same credentials and knock each other off. The lock is a PID file
held under an exclusive fcntl lock for as long as the daemon runs.
"""

import fcntl
import os
from pathlib import Path


class AlreadyRunningError(Exception):
    """Raised when another wagate process holds the lock."""

    def __init__(self, pid: int | None = None):
        self.pid = pid
        if pid:
            super().__init__(f"wagate already running with PID {pid}")
        else:
            super().__init__("wagate already running")


class InstanceLock:
    """PID lock file guarding the credential directory.

    Usage:
        with InstanceLock(Path("~/.config/wagate/wagate.lock")):
            ...  # daemon runs
    """

    def __init__(self, lock_file: Path):
        self._lock_file = Path(lock_file).expanduser()
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock and record our PID.

        Raises:
            AlreadyRunningError: If a live process holds the lock.
        """
        if self._fd is not None:
            return

        self._lock_file.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(str(self._lock_file), os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise AlreadyRunningError() from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            raise AlreadyRunningError(self.owner_pid())

        # A PID left by a crashed process is overwritten here
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        os.fsync(fd)
        os.chmod(self._lock_file, 0o600)

        self._fd = fd

    def release(self) -> None:
        """Drop the lock and remove the file. Safe to call repeatedly."""
        fd, self._fd = self._fd, None
        if fd is None:
            return

        try:
            self._lock_file.unlink()
        except FileNotFoundError:
            pass
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def owner_pid(self) -> int | None:
        """PID recorded in the lock file, if any."""
        try:
            return int(self._lock_file.read_text().strip())
        except (FileNotFoundError, ValueError, OSError):
            return None

    def owner_running(self) -> bool:
        """Whether the recorded PID belongs to a live process."""
        pid = self.owner_pid()
        if pid is None:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
