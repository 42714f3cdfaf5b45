"""Minimal client for the Browserless ``/function`` API.

Browserless runs a JavaScript module inside a hosted headless Chrome and
returns whatever the module returns.  We treat it as an RPC boundary: the
script travels as an opaque ``code`` string, the ``context`` object is its
typed input, and the response body is its output.
"""

from __future__ import annotations

import json
import logging

import requests

from scribdlink.errors import UpstreamError, UpstreamTransportError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "production-sfo.browserless.io"

#: Ceiling Browserless enforces on the whole function call.  Kept above the
#: in-page navigation timeout so navigation errors surface as script errors.
FUNCTION_TIMEOUT_MS = 60_000

#: Extra seconds we wait for the HTTP response beyond the function timeout.
_READ_MARGIN_S = 5


class BrowserlessClient:
    """Submit scripts to a Browserless instance at *host*."""

    def __init__(
        self,
        api_key: str,
        host: str = DEFAULT_HOST,
        *,
        timeout_ms: int = FUNCTION_TIMEOUT_MS,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.host = host
        self.timeout_ms = timeout_ms
        self._http = session or requests

    def function_url(self, *, masked: bool = False) -> str:
        token = "***" if masked else self.api_key
        return f"https://{self.host}/function?token={token}&timeout={self.timeout_ms}"

    def run_function(self, code: str, context: dict) -> dict:
        """POST *code* with *context* and return the decoded JSON body.

        Raises :class:`~scribdlink.errors.UpstreamError` for any non-2xx
        status, with the body's ``message`` (or the raw text) as detail, and
        :class:`~scribdlink.errors.UpstreamTransportError` when the request
        itself fails.
        Non-JSON success bodies raise ``ValueError``.
        """
        logger.info("Sending request to %s", self.function_url(masked=True))
        try:
            resp = self._http.post(
                self.function_url(),
                json={"code": code, "context": context},
                headers={"Content-Type": "application/json", "Cache-Control": "no-cache"},
                timeout=self.timeout_ms / 1000 + _READ_MARGIN_S,
            )
        except requests.RequestException as exc:
            # The exception text carries the request URL, token included.
            logger.error(
                "Request to %s failed: %s",
                self.function_url(masked=True), type(exc).__name__,
            )
            raise UpstreamTransportError(
                f"Could not reach Browserless at {self.host} ({type(exc).__name__})."
            ) from None
        logger.info("Received response from Browserless. Status: %s", resp.status_code)

        if not resp.ok:
            body = resp.text
            logger.error("Browserless error! Status: %s, Body: %s", resp.status_code, body)
            raise UpstreamError(resp.status_code, _error_detail(body))

        return resp.json()


def _error_detail(body: str) -> str:
    """Prefer the ``message`` field of a JSON error body over the raw text."""
    try:
        payload = json.loads(body)
    except ValueError:
        return body
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return body
