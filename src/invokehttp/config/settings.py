"""Secrets powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class InvokeHttpSettings(BaseSettings):
    """Credentials read from the environment instead of config files."""

    model_config = SettingsConfigDict(
        env_prefix="INVOKEHTTP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    auth_password: str | None = Field(default=None)
    proxy_password: str | None = Field(default=None)
    keystore_password: str | None = Field(default=None)

    def apply(self, data: dict[str, object]) -> dict[str, object]:
        """Fill unset secrets in raw configuration data.

        Values present in the configuration always win over the environment.

        Args:
            data: Raw configuration mapping, as parsed from YAML.

        Returns:
            A new mapping with secrets filled in.
        """
        result = dict(data)
        transport = dict(_section(result, "transport"))

        if self.auth_password:
            auth = dict(_section(transport, "auth"))
            auth.setdefault("password", self.auth_password)
            transport["auth"] = auth

        proxy = _section(transport, "proxy")
        if self.proxy_password and proxy:
            transport["proxy"] = {"password": self.proxy_password, **proxy}

        tls = _section(transport, "tls")
        if self.keystore_password and tls:
            transport["tls"] = {"keystore_password": self.keystore_password, **tls}

        if transport:
            result["transport"] = transport
        return result


def _section(data: dict[str, object], key: str) -> dict[str, object]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def get_settings() -> InvokeHttpSettings:
    """Get a settings instance."""
    return InvokeHttpSettings()
