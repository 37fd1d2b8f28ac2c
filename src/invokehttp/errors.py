"""Domain exceptions for the invokehttp pipeline.

This module separates configuration errors, which are fatal to transport
construction, from per-exchange errors (transport and protocol failures),
which are recovered by routing the work item to the Failure relationship.
"""

from enum import Enum


class InvokeHttpError(Exception):
    """Base exception for all invokehttp errors."""


class ConfigurationError(InvokeHttpError):
    """Raised when transport configuration cannot produce a usable client.

    Covers unreadable or malformed key and trust material, and trust material
    that yields no usable trust anchors. Scheduling must not proceed until
    the configuration is corrected.
    """


class TransportErrorClass(str, Enum):
    """Classification of transport failures.

    - NETWORK_TIMEOUT: Connect or read phase timed out
    - CONNECTION_ERROR: Could not establish or keep a connection
    - SSL_ERROR: TLS handshake or certificate failure
    - PROXY_ERROR: Proxy refused or failed the tunnel
    - UNKNOWN: Any other I/O fault
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SSL_ERROR = "SSL_ERROR"
    PROXY_ERROR = "PROXY_ERROR"
    UNKNOWN = "UNKNOWN"


class TransportError(InvokeHttpError):
    """Raised when the exchange fails at the network or TLS layer."""

    def __init__(self, error_class: TransportErrorClass, message: str) -> None:
        """Initialize the transport error.

        Args:
            error_class: Classification of the failure.
            message: Human-readable error message.
        """
        super().__init__(message)
        self.error_class = error_class
        self.message = message


class ProtocolError(InvokeHttpError):
    """Raised when the exchange completed without a usable status code."""

    def __init__(
        self, message: str = "Status code unknown, connection hasn't been attempted."
    ) -> None:
        super().__init__(message)
