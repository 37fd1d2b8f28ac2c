"""Unit tests for SSL context construction."""

import ssl
from pathlib import Path

import certifi
import pytest

from invokehttp.config.schemas import TlsConfig
from invokehttp.errors import ConfigurationError
from invokehttp.transport.tls import create_ssl_context


class TestCreateSslContext:
    """Tests for key and trust material loading."""

    def test_defaults_verify_peers(self) -> None:
        """Test that the default context verifies certificates and hostnames."""
        ctx = create_ssl_context(None)

        assert ctx.verify_mode == ssl.CERT_REQUIRED
        assert ctx.check_hostname

    def test_truststore_loaded(self) -> None:
        """Test loading a PEM bundle as trust material."""
        ctx = create_ssl_context(TlsConfig(truststore_path=Path(certifi.where())))

        assert ctx.cert_store_stats()["x509"] > 0

    def test_unreadable_keystore(self, tmp_path: Path) -> None:
        """Test that a missing keystore raises ConfigurationError."""
        tls = TlsConfig(keystore_path=tmp_path / "missing.pem")

        with pytest.raises(ConfigurationError, match="keystore"):
            create_ssl_context(tls)

    def test_malformed_keystore(self, tmp_path: Path) -> None:
        """Test that a keystore without key material is rejected."""
        keystore = tmp_path / "client.pem"
        keystore.write_text("not a certificate")

        with pytest.raises(ConfigurationError):
            create_ssl_context(TlsConfig(keystore_path=keystore))

    def test_truststore_without_certificates(self, tmp_path: Path) -> None:
        """Test that trust material with no certificates is rejected."""
        truststore = tmp_path / "trust.pem"
        truststore.write_text("# empty bundle\n")

        with pytest.raises(ConfigurationError, match="[Tt]ruststore"):
            create_ssl_context(TlsConfig(truststore_path=truststore))
