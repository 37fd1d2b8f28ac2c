"""Configuration records, environment secrets and file loading."""

from invokehttp.config.loader import ConfigLoader, ConfigValidationError
from invokehttp.config.schemas import (
    AuthConfig,
    CacheConfig,
    InvokeHttpConfig,
    ProxyConfig,
    RequestConfig,
    TlsConfig,
    TransportConfig,
    parse_data_size,
)
from invokehttp.config.settings import InvokeHttpSettings, get_settings


__all__ = [
    # Loader
    "ConfigLoader",
    "ConfigValidationError",
    # Schemas
    "AuthConfig",
    "CacheConfig",
    "InvokeHttpConfig",
    "ProxyConfig",
    "RequestConfig",
    "TlsConfig",
    "TransportConfig",
    "parse_data_size",
    # Settings
    "InvokeHttpSettings",
    "get_settings",
]
