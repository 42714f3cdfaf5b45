"""Shared fixtures."""

import json
from unittest.mock import MagicMock

import pytest

from scribdlink import config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's Browserless settings out of the tests."""
    for name in (
        config.ENV_API_KEY,
        config.ENV_BLOCK_SCRIPTS,
        config.ENV_HOST,
        config.ENV_WAIT_UNTIL,
        config.ENV_SETTLE_MS,
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_response():
    """Factory for ``requests.Response`` stand-ins.

    *body* may be a dict (served as JSON) or a string (served as text that
    fails JSON decoding unless it happens to be valid JSON).
    """

    def _make(status: int, body) -> MagicMock:
        resp = MagicMock()
        resp.status_code = status
        resp.ok = 200 <= status < 400
        if isinstance(body, str):
            resp.text = body
            try:
                resp.json.return_value = json.loads(body)
            except ValueError:
                resp.json.side_effect = ValueError("Expecting value")
        else:
            resp.text = json.dumps(body)
            resp.json.return_value = body
        return resp

    return _make
