"""File-backed storage for the transport's credential blob.

The blob is opaque to wagate: it is written and read back byte for byte.

Security features:
- File permissions (600 for the file, 700 for the directory)
- Atomic replace so a crash mid-write never leaves a truncated blob
"""

import logging
import os
from pathlib import Path

from wagate.errors import StorageError

__all__ = [
    "FileCredentialStore",
    "StorageError",
]

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = "credentials.bin"


class FileCredentialStore:
    """Secure file-based credential storage.

    Attributes:
        directory: Storage directory path.
    """

    def __init__(self, directory: Path) -> None:
        """Initialize storage.

        Creates directory if it doesn't exist, with secure permissions.

        Args:
            directory: Path to storage directory.
        """
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        os.chmod(self.directory, 0o700)

    @property
    def path(self) -> Path:
        """Path of the credentials file."""
        return self.directory / CREDENTIALS_FILENAME

    def load(self) -> bytes | None:
        """Load the stored blob.

        Returns:
            Blob bytes, or None if nothing is stored.

        Raises:
            StorageError: If the file exists but cannot be read.
        """
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read credentials: {e}") from e

    def save(self, blob: bytes) -> None:
        """Write the blob with restricted permissions.

        Args:
            blob: Credential bytes from the transport.

        Raises:
            StorageError: If the write fails.
        """
        tmp_path = self.path.with_suffix(".tmp")
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            try:
                os.write(fd, blob)
                os.fsync(fd)
            finally:
                os.close(fd)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write credentials: {e}") from e

        logger.debug(f"Credentials saved ({len(blob)} bytes)")

    def clear(self) -> bool:
        """Delete stored credentials.

        Returns:
            True if deleted, False if nothing was stored.
        """
        if self.path.exists():
            self.path.unlink()
            logger.info("Stored credentials cleared")
            return True
        return False
