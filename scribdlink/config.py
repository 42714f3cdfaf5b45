"""Runtime configuration, read from the environment."""

from __future__ import annotations

from typing import Literal, Mapping

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from scribdlink.browserless import DEFAULT_HOST, FUNCTION_TIMEOUT_MS
from scribdlink.errors import ConfigurationError
from scribdlink.interception import NAVIGATION_TIMEOUT_MS

ENV_API_KEY = "BROWSERLESS_API_KEY"
ENV_BLOCK_SCRIPTS = "BLOCK_SCRIPTS"
ENV_HOST = "BROWSERLESS_DOMAIN"
ENV_WAIT_UNTIL = "WAIT_UNTIL"
ENV_SETTLE_MS = "SETTLE_MS"


class ResolverConfig(BaseSettings):
    """Settings for one resolution.

    Environment variables (no prefix):

    - ``BROWSERLESS_API_KEY`` - Browserless token
    - ``BLOCK_SCRIPTS`` - only the literal ``"true"`` enables it
    - ``BROWSERLESS_DOMAIN`` - Browserless host
    - ``WAIT_UNTIL`` - ``domcontentloaded`` or ``networkidle``
    - ``SETTLE_MS`` - delay after the ready signal

    ``api_key`` may be empty for local runs (``--local`` / ``--cdp``); the
    Browserless path rejects an empty key before doing anything else.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    api_key: str = Field(default="", validation_alias=ENV_API_KEY)
    block_scripts: bool = Field(default=False, validation_alias=ENV_BLOCK_SCRIPTS)
    provider_host: str = Field(default=DEFAULT_HOST, validation_alias=ENV_HOST)
    wait_until: Literal["domcontentloaded", "networkidle"] = Field(
        default="domcontentloaded", validation_alias=ENV_WAIT_UNTIL,
    )
    settle_ms: int | None = Field(default=None, ge=0, validation_alias=ENV_SETTLE_MS)
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS
    request_timeout_ms: int = FUNCTION_TIMEOUT_MS

    @field_validator("block_scripts", mode="before")
    @classmethod
    def literal_true(cls, value):
        if isinstance(value, str):
            return value == "true"
        return value

    @field_validator("provider_host", mode="before")
    @classmethod
    def default_host(cls, value):
        return value or DEFAULT_HOST

    @field_validator("wait_until", mode="before")
    @classmethod
    def default_wait(cls, value):
        return value or "domcontentloaded"

    @field_validator("settle_ms", mode="before")
    @classmethod
    def blank_settle(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, require_key: bool = True,
    ) -> "ResolverConfig":
        """Build a config from ``os.environ`` (or *environ*).

        Raises :class:`~scribdlink.errors.ConfigurationError` for invalid
        values, or if ``BROWSERLESS_API_KEY`` is unset and *require_key*
        is true.
        """
        try:
            if environ is None:
                config = cls()
            else:
                config = cls.model_validate(dict(environ))
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigurationError(
                f"Server configuration error: {problems}"
            ) from None

        if require_key and not config.api_key:
            raise ConfigurationError(
                "Server configuration error: Missing API Key."
            )
        return config
