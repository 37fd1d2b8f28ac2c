"""invokehttp: attribute-driven HTTP exchanges with deterministic outcome routing."""

from invokehttp.errors import (
    ConfigurationError,
    InvokeHttpError,
    ProtocolError,
    TransportError,
    TransportErrorClass,
)
from invokehttp.models import (
    ExchangeResult,
    Outcome,
    Relationship,
    RequestBody,
    RequestSpec,
    WorkItem,
)
from invokehttp.processor import InvokeHttpProcessor
from invokehttp.router import classify


__all__ = [
    # Errors
    "ConfigurationError",
    "InvokeHttpError",
    "ProtocolError",
    "TransportError",
    "TransportErrorClass",
    # Models
    "ExchangeResult",
    "Outcome",
    "Relationship",
    "RequestBody",
    "RequestSpec",
    "WorkItem",
    # Pipeline
    "InvokeHttpProcessor",
    "classify",
]
