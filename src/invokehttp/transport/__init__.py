"""Transport construction: TLS, proxy, authentication and response caching."""

from invokehttp.transport.auth import (
    Authenticator,
    BasicAuthenticator,
    CachingDigestAuth,
    DigestAuthCache,
    DigestAuthenticator,
    NoAuthenticator,
    NtlmAuth,
    NtlmAuthenticator,
    basic_authorization_header,
    select_authenticator,
)
from invokehttp.transport.builder import (
    TransportBuilder,
    TransportHandle,
    TransportHolder,
)
from invokehttp.transport.cache import (
    BoundedFileStorage,
    CacheStatistics,
    ETagCacheTransport,
)
from invokehttp.transport.tls import create_ssl_context


__all__ = [
    # Auth
    "Authenticator",
    "BasicAuthenticator",
    "CachingDigestAuth",
    "DigestAuthCache",
    "DigestAuthenticator",
    "NoAuthenticator",
    "NtlmAuth",
    "NtlmAuthenticator",
    "basic_authorization_header",
    "select_authenticator",
    # Builder
    "TransportBuilder",
    "TransportHandle",
    "TransportHolder",
    # Cache
    "BoundedFileStorage",
    "CacheStatistics",
    "ETagCacheTransport",
    # TLS
    "create_ssl_context",
]
