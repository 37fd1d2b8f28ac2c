"""TLS context construction from PEM key and trust material."""

import ssl

import certifi
import structlog

from invokehttp.config.schemas import TlsConfig
from invokehttp.errors import ConfigurationError


logger = structlog.get_logger()


def create_ssl_context(tls: TlsConfig | None) -> ssl.SSLContext:
    """Create an SSL context from configured key and trust material.

    Key material and trust material are loaded independently. Without trust
    material the certifi bundle is used.

    Args:
        tls: TLS configuration, or None for defaults.

    Returns:
        Client-side SSL context with hostname verification enabled.

    Raises:
        ConfigurationError: If material cannot be read or parsed, or if the
            trust material yields no usable certificates.
    """
    log = logger.bind(component="tls")

    if tls is None or not tls.has_truststore:
        ctx = ssl.create_default_context(cafile=certifi.where())
    else:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        try:
            ctx.load_verify_locations(cafile=str(tls.truststore_path))
        except (OSError, ssl.SSLError) as e:
            msg = f"Unable to load truststore {tls.truststore_path}: {e}"
            raise ConfigurationError(msg) from e

        if ctx.cert_store_stats().get("x509", 0) == 0:
            msg = f"Truststore {tls.truststore_path} contains no usable certificates"
            raise ConfigurationError(msg)

    if tls is not None and tls.has_keystore:
        try:
            ctx.load_cert_chain(
                certfile=str(tls.keystore_path),
                keyfile=str(tls.keystore_key_path) if tls.keystore_key_path else None,
                password=tls.keystore_password,
            )
        except (OSError, ssl.SSLError) as e:
            msg = f"Unable to load keystore {tls.keystore_path}: {e}"
            raise ConfigurationError(msg) from e

    log.debug(
        "ssl_context_created",
        has_keystore=tls is not None and tls.has_keystore,
        has_truststore=tls is not None and tls.has_truststore,
    )
    return ctx
