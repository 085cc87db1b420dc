"""Base exceptions for wagate."""


class WagateError(Exception):
    """Base exception for all wagate errors."""

    pass


class TransportError(WagateError):
    """Transport connect or dispatch failed."""

    pass


class StorageError(WagateError):
    """Credential storage operation error."""

    pass


class ConfigError(WagateError):
    """Configuration value is invalid."""

    pass


class StartupError(WagateError):
    """Error during daemon startup."""

    pass
