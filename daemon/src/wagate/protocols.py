"""Protocols, enums and transport events for wagate."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Union


class ConnectionState(Enum):
    """State of the transport session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    OPEN = "open"
    CLOSING = "closing"


# ============================================================================
# Transport Events
# ============================================================================


@dataclass(frozen=True)
class PairingChallenge:
    """Transport issued a pairing token to be shown to an operator."""

    payload: str


@dataclass(frozen=True)
class ConnectionOpened:
    """Session is authenticated and ready to send."""

    pass


@dataclass(frozen=True)
class ConnectionClosed:
    """Session closed.

    logged_out marks a terminal invalidation of the stored credentials;
    no automatic reconnect follows it.
    """

    reason: str = ""
    logged_out: bool = False


@dataclass(frozen=True)
class CredentialsUpdated:
    """Transport rotated its credential blob."""

    blob: bytes


TransportEvent = Union[
    PairingChallenge, ConnectionOpened, ConnectionClosed, CredentialsUpdated
]


# ============================================================================
# Collaborator Protocols
# ============================================================================


class SessionHandle(Protocol):
    """Protocol for one transport session."""

    def subscribe(self, callback: Callable[[TransportEvent], None]) -> None:
        """Register the event callback. Called once per handle."""
        ...

    async def send_text(self, recipient: str, text: str) -> None:
        """Send a text message. Raises on failure."""
        ...

    async def close(self) -> None:
        """End the session."""
        ...


class Transport(Protocol):
    """Protocol for the messaging transport library."""

    async def connect(self, credentials: bytes | None) -> SessionHandle:
        """Create a new session handle using stored credentials, if any."""
        ...


class CredentialStoreProtocol(Protocol):
    """Protocol for credential persistence."""

    def load(self) -> bytes | None:
        """Return the stored blob, or None if nothing is stored."""
        ...

    def save(self, blob: bytes) -> None:
        """Persist the blob. Raises StorageError on failure."""
        ...

    def clear(self) -> bool:
        """Delete the stored blob. Returns True if something was deleted."""
        ...
