"""End-to-end resolution of a document URL into a direct download link.

``resolve`` owns the whole flow and never raises: every failure is turned
into a :class:`Failure` whose ``kind`` decides the HTTP status a caller
should report.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Union

from scribdlink.browserless import BrowserlessClient
from scribdlink.config import ResolverConfig
from scribdlink.errors import (
    ConfigurationError,
    InvalidReferenceFormat,
    UpstreamError,
    UpstreamTransportError,
)
from scribdlink.interception import (
    INTERCEPT_SCRIPT,
    InterceptionConfig,
    InterceptionError,
)
from scribdlink.providers.base import BaseProvider
from scribdlink.providers.scribd import ScribdProvider

logger = logging.getLogger(__name__)

#: Upstream statuses forwarded to the caller unchanged.
FORWARDED_STATUSES = frozenset({400, 401, 403, 429})

MALFORMED_MESSAGE = (
    "Bad Gateway: Received invalid response format from upstream service."
)

#: Takes the interception input, returns the raw captured value.
Runner = Callable[[InterceptionConfig], Any]


class FailureKind(enum.Enum):
    INVALID_INPUT = "InvalidInput"
    SERVER_MISCONFIGURED = "ServerMisconfigured"
    UPSTREAM_REJECTED = "UpstreamRejected"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    UPSTREAM_MALFORMED = "UpstreamMalformed"
    INTERNAL = "Internal"

    @property
    def default_status(self) -> int:
        return _DEFAULT_STATUS[self]


_DEFAULT_STATUS = {
    FailureKind.INVALID_INPUT: 400,
    FailureKind.SERVER_MISCONFIGURED: 500,
    FailureKind.UPSTREAM_REJECTED: 502,
    FailureKind.UPSTREAM_UNAVAILABLE: 502,
    FailureKind.UPSTREAM_MALFORMED: 502,
    FailureKind.INTERNAL: 500,
}


@dataclass(frozen=True)
class Success:
    download_link: str
    status: int = 200

    def to_json(self) -> dict:
        return {"downloadLink": self.download_link}


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    status: int = 0

    def __post_init__(self) -> None:
        if not self.status:
            object.__setattr__(self, "status", self.kind.default_status)

    def to_json(self) -> dict:
        return {"error": self.message}


ResolutionOutcome = Union[Success, Failure]


def browserless_runner(config: ResolverConfig) -> Runner:
    """Return a runner that executes the interception script on Browserless."""
    if not config.api_key:
        raise ConfigurationError("Server configuration error: Missing API Key.")
    client = BrowserlessClient(
        config.api_key,
        config.provider_host,
        timeout_ms=config.request_timeout_ms,
    )

    def _run(interception: InterceptionConfig) -> Any:
        try:
            payload = client.run_function(
                INTERCEPT_SCRIPT, interception.to_context(),
            )
        except ValueError:
            logger.error("Browserless returned a non-JSON success body")
            return None
        return payload.get("data") if isinstance(payload, dict) else None

    return _run


def _mask(text: str, secret: str) -> str:
    return text.replace(secret, "***") if secret else text


def _is_link(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("http")


def resolve(
    raw_url: Any,
    config: ResolverConfig,
    *,
    runner: Runner | None = None,
    provider: BaseProvider | None = None,
) -> ResolutionOutcome:
    """Resolve *raw_url* into a direct download link.

    *runner* executes the interception program; it defaults to the
    Browserless ``/function`` API addressed by *config*.  *provider*
    defaults to :class:`ScribdProvider`.
    """
    if not raw_url or not isinstance(raw_url, str):
        return Failure(
            FailureKind.INVALID_INPUT,
            "Missing or invalid scribdUrl in request body.",
        )

    logger.info("Request for: %s. Script blocking: %s", raw_url, config.block_scripts)
    provider = provider or ScribdProvider()

    try:
        target_url = provider.target_url(raw_url)
        interception = InterceptionConfig(
            target_url=target_url,
            block_non_essential_resources=True,
            block_scripts=config.block_scripts,
            wait_until=config.wait_until,
            navigation_timeout_ms=config.navigation_timeout_ms,
            settle_ms=config.settle_ms,
        )
        run = runner or browserless_runner(config)
        data = run(interception)
    except InvalidReferenceFormat as exc:
        return Failure(FailureKind.INVALID_INPUT, str(exc))
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return Failure(FailureKind.SERVER_MISCONFIGURED, str(exc))
    except UpstreamError as exc:
        if exc.status in FORWARDED_STATUSES:
            return Failure(FailureKind.UPSTREAM_REJECTED, str(exc), exc.status)
        return Failure(FailureKind.UPSTREAM_UNAVAILABLE, str(exc))
    except UpstreamTransportError as exc:
        return Failure(FailureKind.INTERNAL, str(exc))
    except InterceptionError as exc:
        logger.error("Interception failed: %s", exc)
        return Failure(FailureKind.UPSTREAM_UNAVAILABLE, str(exc))
    except Exception as exc:
        text = str(exc)
        masked = _mask(text, config.api_key)
        message = masked or "An internal server error occurred."
        # Skip the traceback when it would repeat the unmasked key.
        logger.error(
            "Internal error while resolving %s: %s", raw_url, message,
            exc_info=masked == text,
        )
        if "Scribd URL format" in message:
            return Failure(FailureKind.INVALID_INPUT, message)
        return Failure(FailureKind.INTERNAL, message)

    if not _is_link(data):
        logger.error("Invalid data structure or link from upstream: %r", data)
        return Failure(FailureKind.UPSTREAM_MALFORMED, MALFORMED_MESSAGE)

    logger.info("Successfully obtained direct link: %s", data)
    return Success(data)
