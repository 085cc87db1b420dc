"""Resolve the configured transport factory.

The transport library is not part of wagate. Config names a callable as
"package.module:attribute"; it is called with the configured options as
keyword arguments and must return an object implementing Transport.
"""

import importlib
import logging
from typing import Any, Callable

from wagate.config import TransportConfig
from wagate.errors import ConfigError
from wagate.protocols import Transport

logger = logging.getLogger(__name__)


def resolve_factory(reference: str) -> Callable[..., Any]:
    """Import the callable named by a "module:attribute" reference.

    Raises:
        ConfigError: If the reference is malformed or cannot be imported.
    """
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigError(
            f"Invalid transport factory {reference!r}: expected 'module:attribute'"
        )

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import transport module {module_name!r}: {e}") from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise ConfigError(
                f"Transport factory {reference!r} not found: no attribute {attr!r}"
            ) from e

    if not callable(target):
        raise ConfigError(f"Transport factory {reference!r} is not callable")
    return target


def load_transport(config: TransportConfig) -> Transport:
    """Build the transport described by config.

    Raises:
        ConfigError: If no factory is configured or it cannot be resolved.
    """
    if not config.factory:
        raise ConfigError("No transport configured (set transport.factory)")

    factory = resolve_factory(config.factory)
    transport = factory(**config.options)
    logger.info(f"Transport loaded from {config.factory}")
    return transport
