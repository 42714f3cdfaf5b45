"""Tests for the resolution flow and its failure mapping."""

import logging
from unittest.mock import MagicMock, patch

import pytest
import requests

from scribdlink.config import ResolverConfig
from scribdlink.errors import ConfigurationError
from scribdlink.interception import (
    INTERCEPT_SCRIPT,
    LinkNotDetected,
    NavigationFailed,
)
from scribdlink.providers.scribd import extract_scribd_info, generate_ilide_link
from scribdlink.resolver import (
    MALFORMED_MESSAGE,
    Failure,
    FailureKind,
    Success,
    browserless_runner,
    resolve,
)

SCRIBD_URL = "https://www.scribd.com/document/456/My-Great-Report"
CONFIG = ResolverConfig(api_key="secret")


@pytest.fixture
def post():
    with patch("requests.post") as mock_post:
        yield mock_post


class TestResolveEndToEnd:
    def test_success(self, post, fake_response):
        post.return_value = fake_response(200, {"data": "https://example.com/file.pdf"})

        outcome = resolve(SCRIBD_URL, CONFIG)

        assert outcome == Success("https://example.com/file.pdf")
        assert outcome.status == 200
        assert outcome.to_json() == {"downloadLink": "https://example.com/file.pdf"}

        body = post.call_args.kwargs["json"]
        assert body["code"] == INTERCEPT_SCRIPT
        assert body["context"]["targetUrl"] == generate_ilide_link(
            extract_scribd_info(SCRIBD_URL)
        )
        assert body["context"]["blockNonEssentialResources"] is True
        assert body["context"]["blockScripts"] is False

    def test_block_scripts_is_forwarded(self, post, fake_response):
        post.return_value = fake_response(200, {"data": "https://example.com/file.pdf"})
        resolve(SCRIBD_URL, ResolverConfig(api_key="secret", block_scripts=True))
        context = post.call_args.kwargs["json"]["context"]
        assert context["blockScripts"] is True
        assert context["settleMs"] == 500

    def test_provider_host(self, post, fake_response):
        post.return_value = fake_response(200, {"data": "https://example.com/file.pdf"})
        resolve(SCRIBD_URL, ResolverConfig(api_key="k", provider_host="b.example.io"))
        assert post.call_args.args[0].startswith("https://b.example.io/function?token=k")

    @pytest.mark.parametrize("status", [400, 401, 403, 429])
    def test_rejected_status_is_forwarded(self, post, fake_response, status):
        post.return_value = fake_response(status, {"message": "bad token"})

        outcome = resolve(SCRIBD_URL, CONFIG)

        assert isinstance(outcome, Failure)
        assert outcome.kind is FailureKind.UPSTREAM_REJECTED
        assert outcome.status == status
        assert "bad token" in outcome.message

    @pytest.mark.parametrize("status", [404, 500, 503])
    def test_other_status_is_bad_gateway(self, post, fake_response, status):
        post.return_value = fake_response(status, "upstream down")

        outcome = resolve(SCRIBD_URL, CONFIG)

        assert outcome.kind is FailureKind.UPSTREAM_UNAVAILABLE
        assert outcome.status == 502
        assert outcome.message == f"Upstream API Error ({status}): upstream down"

    @pytest.mark.parametrize(
        "body",
        [
            {"data": 12345},
            {"data": "ftp://example.com/file.pdf"},
            {"data": ""},
            {"type": "text/plain"},
            ["https://example.com/file.pdf"],
            "not json",
        ],
    )
    def test_malformed_payload(self, post, fake_response, body):
        post.return_value = fake_response(200, body)

        outcome = resolve(SCRIBD_URL, CONFIG)

        assert outcome == Failure(FailureKind.UPSTREAM_MALFORMED, MALFORMED_MESSAGE)
        assert outcome.status == 502

    def test_transport_error_is_internal(self, post, caplog):
        post.side_effect = requests.ConnectionError(
            "Max retries exceeded with url: /function?token=secret&timeout=60000"
        )

        outcome = resolve(SCRIBD_URL, CONFIG)

        assert outcome.kind is FailureKind.INTERNAL
        assert outcome.status == 500
        assert "ConnectionError" in outcome.message
        assert "secret" not in outcome.message
        assert "secret" not in caplog.text


class TestResolveInput:
    @pytest.mark.parametrize("raw_url", ["", None, 42])
    def test_invalid_input(self, raw_url):
        outcome = resolve(raw_url, CONFIG, runner=MagicMock())
        assert outcome.kind is FailureKind.INVALID_INPUT
        assert outcome.status == 400

    def test_unrecognised_url(self):
        runner = MagicMock()
        outcome = resolve("https://example.com/nothing", CONFIG, runner=runner)
        assert outcome.kind is FailureKind.INVALID_INPUT
        assert "Scribd URL format" in outcome.message
        runner.assert_not_called()

    def test_missing_api_key(self, post):
        outcome = resolve(SCRIBD_URL, ResolverConfig())
        assert outcome.kind is FailureKind.SERVER_MISCONFIGURED
        assert outcome.status == 500
        post.assert_not_called()


class TestResolveWithRunner:
    def test_runner_receives_interception_config(self):
        runner = MagicMock(return_value="https://example.com/file.pdf")
        config = ResolverConfig(block_scripts=True, wait_until="networkidle", settle_ms=2000)

        outcome = resolve(SCRIBD_URL, config, runner=runner)

        assert outcome == Success("https://example.com/file.pdf")
        (interception,), _ = runner.call_args
        assert interception.block_non_essential_resources is True
        assert interception.block_scripts is True
        assert interception.wait_until == "networkidle"
        assert interception.settle_delay_ms == 2000

    @pytest.mark.parametrize(
        "error",
        [LinkNotDetected(), NavigationFailed("Browserless execution failed: boom")],
    )
    def test_interception_errors_are_bad_gateway(self, error):
        outcome = resolve(SCRIBD_URL, ResolverConfig(), runner=MagicMock(side_effect=error))
        assert outcome.kind is FailureKind.UPSTREAM_UNAVAILABLE
        assert outcome.status == 502
        assert outcome.message == str(error)

    def test_input_format_message_maps_to_invalid_input(self):
        runner = MagicMock(side_effect=RuntimeError("Invalid or unrecognized Scribd URL format."))
        outcome = resolve(SCRIBD_URL, CONFIG, runner=runner)
        assert outcome.kind is FailureKind.INVALID_INPUT

    def test_unexpected_error_is_internal(self):
        outcome = resolve(SCRIBD_URL, CONFIG, runner=MagicMock(side_effect=KeyError()))
        assert outcome.kind is FailureKind.INTERNAL
        assert outcome.message == "An internal server error occurred."


def test_browserless_runner_requires_key():
    with pytest.raises(ConfigurationError):
        browserless_runner(ResolverConfig())


def test_refused_connection_does_not_expose_api_key(caplog):
    caplog.set_level(logging.INFO, logger="scribdlink")
    config = ResolverConfig(api_key="SUPERSECRET", provider_host="127.0.0.1:1")

    outcome = resolve(SCRIBD_URL, config)

    assert outcome.kind is FailureKind.INTERNAL
    assert outcome.status == 500
    assert "SUPERSECRET" not in outcome.message
    assert "SUPERSECRET" not in caplog.text


def test_unexpected_error_masks_api_key(caplog):
    runner = MagicMock(side_effect=RuntimeError("bad url ?token=SUPERSECRET"))
    config = ResolverConfig(api_key="SUPERSECRET")

    outcome = resolve(SCRIBD_URL, config, runner=runner)

    assert outcome.kind is FailureKind.INTERNAL
    assert outcome.message == "bad url ?token=***"
    assert "SUPERSECRET" not in caplog.text
