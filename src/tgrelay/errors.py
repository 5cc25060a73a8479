"""Error taxonomy for the relay.

- ValidationError: bad input, rejected before any mutation.
- StorageError: the durable queue is unavailable; always surfaced to the caller.
- TransportError: the remote API is unreachable or rejected a call; the
  ingestion loop and drain scheduler recover from it locally.
- ConfigurationError: fatal at startup.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""

    pass


class ValidationError(RelayError):
    """Input rejected before any state was touched."""

    pass


class StorageError(RelayError):
    """The backing store failed."""

    pass


class TransportError(RelayError):
    """The remote chat transport failed."""

    pass


class ConfigurationError(RelayError):
    """Configuration is missing or invalid."""

    pass
