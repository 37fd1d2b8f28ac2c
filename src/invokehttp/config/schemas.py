"""Configuration models for the invokehttp pipeline.

A resolved configuration record is built once per scheduling cycle and is
immutable afterwards. Any change requires a new record and a wholesale
transport rebuild.
"""

import re
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from invokehttp.constants import (
    DEFAULT_CACHE_MAX_SIZE_BYTES,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_CONTENT_TYPE_EXPRESSION,
    DEFAULT_MAX_ATTRIBUTE_LENGTH,
    DEFAULT_READ_TIMEOUT_SECONDS,
    EXCLUDED_HEADERS,
    PROXY_TYPE_HTTP,
    PROXY_TYPE_HTTPS,
)


_DATA_SIZE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?B)?\s*$", re.IGNORECASE)
_DATA_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}


def parse_data_size(value: int | str) -> int:
    """Parse a data size such as ``10MB`` or ``512 KB`` into bytes.

    Args:
        value: Integer byte count or data size string.

    Returns:
        Size in bytes.

    Raises:
        ValueError: If the value is not a recognized data size.
    """
    if isinstance(value, int):
        return value
    match = _DATA_SIZE.match(value)
    if not match:
        msg = f"Invalid data size: {value!r}"
        raise ValueError(msg)
    number, unit = match.groups()
    return int(float(number) * _DATA_UNITS[(unit or "B").upper()])


class ProxyConfig(BaseModel):
    """Proxy server the transport tunnels through."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["http", "https"] = PROXY_TYPE_HTTP
    host: Annotated[str, Field(min_length=1)]
    port: Annotated[int, Field(ge=1, le=65535)]
    username: str | None = None
    password: str | None = None

    @model_validator(mode="after")
    def validate_credentials(self) -> "ProxyConfig":
        """Require proxy username and password together."""
        if bool(self.username) != bool(self.password):
            msg = "If proxy username or proxy password is set, both must be set"
            raise ValueError(msg)
        return self

    @property
    def url(self) -> str:
        """Proxy URL without credentials."""
        return f"{self.type}://{self.host}:{self.port}"

    @property
    def has_credentials(self) -> bool:
        """Check if proxy credentials are configured."""
        return bool(self.username)


class TlsConfig(BaseModel):
    """PEM key and trust material.

    Key material (client certificate chain) and trust material (CA bundle)
    are each optional independently.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    keystore_path: Path | None = None
    keystore_key_path: Path | None = None
    keystore_password: str | None = None
    truststore_path: Path | None = None

    @property
    def has_keystore(self) -> bool:
        """Check if client key material is configured."""
        return self.keystore_path is not None

    @property
    def has_truststore(self) -> bool:
        """Check if trust material is configured."""
        return self.truststore_path is not None


class AuthConfig(BaseModel):
    """Credentials for Basic, Digest or NTLM authentication."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    username: str = ""
    password: str = ""
    ntlm_domain: str = ""
    use_ntlm: bool = False
    use_digest: bool = False

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Reject control characters and ':' in the username."""
        for char in v:
            if ord(char) < 32 or ord(char) == 127 or char == ":":
                msg = "Username cannot include control characters, ':' or DEL"
                raise ValueError(msg)
        return v


class CacheConfig(BaseModel):
    """Opportunistic ETag response cache."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    max_size_bytes: Annotated[int, Field(ge=1)] = DEFAULT_CACHE_MAX_SIZE_BYTES

    @field_validator("max_size_bytes", mode="before")
    @classmethod
    def validate_max_size(cls, v: int | str) -> int:
        """Accept data size strings such as ``10MB``."""
        return parse_data_size(v)


class TransportConfig(BaseModel):
    """Settings consumed by the Transport Builder."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    connect_timeout_seconds: Annotated[float, Field(gt=0.0, le=3600.0)] = (
        DEFAULT_CONNECT_TIMEOUT_SECONDS
    )
    read_timeout_seconds: Annotated[float, Field(gt=0.0, le=3600.0)] = (
        DEFAULT_READ_TIMEOUT_SECONDS
    )
    follow_redirects: bool = True
    proxy: ProxyConfig | None = None
    tls: TlsConfig | None = None
    auth: AuthConfig = Field(default_factory=AuthConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @model_validator(mode="after")
    def validate_https_proxy(self) -> "TransportConfig":
        """An HTTPS proxy needs TLS material."""
        if (
            self.proxy is not None
            and self.proxy.type == PROXY_TYPE_HTTPS
            and self.tls is None
        ):
            msg = "If proxy type is https, TLS configuration must be set"
            raise ValueError(msg)
        return self


class RequestConfig(BaseModel):
    """Per-item request settings, evaluated against each work item."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: Annotated[str, Field(min_length=1)] = "GET"
    url: Annotated[str, Field(min_length=1)]
    content_type: str = DEFAULT_CONTENT_TYPE_EXPRESSION
    send_body: bool = True
    use_chunked_encoding: bool = False
    include_date_header: bool = True
    attributes_to_send: str | None = None
    dynamic_headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("attributes_to_send")
    @classmethod
    def validate_regex(cls, v: str | None) -> str | None:
        """Validate and trim the attributes-to-send pattern."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        try:
            re.compile(v)
        except re.error as e:
            msg = f"Invalid regex pattern: {e}"
            raise ValueError(msg) from e
        return v

    @field_validator("dynamic_headers")
    @classmethod
    def validate_no_excluded_headers(cls, v: dict[str, str]) -> dict[str, str]:
        """Reject header names on the exclusion list."""
        for key in v:
            if key in EXCLUDED_HEADERS:
                msg = f"Header '{key}' matches excluded HTTP header name"
                raise ValueError(msg)
        return v

    @property
    def attributes_pattern(self) -> re.Pattern[str] | None:
        """Compiled attributes-to-send pattern."""
        if self.attributes_to_send is None:
            return None
        return re.compile(self.attributes_to_send)


class InvokeHttpConfig(BaseModel):
    """Resolved configuration record for one scheduling cycle."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    request: RequestConfig
    transport: TransportConfig = Field(default_factory=TransportConfig)
    put_response_body_in_attribute: str | None = None
    max_attribute_length: Annotated[int, Field(ge=1)] = DEFAULT_MAX_ATTRIBUTE_LENGTH
    always_output_response: bool = False
    add_response_headers: bool = False
    penalize_no_retry: bool = False

    @field_validator("put_response_body_in_attribute")
    @classmethod
    def validate_attribute_key(cls, v: str | None) -> str | None:
        """Treat a blank attribute key as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()
