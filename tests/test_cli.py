"""Tests for the ``scribdlink`` command line."""

from pathlib import Path
from unittest.mock import patch

import pytest

from scribdlink import cli
from scribdlink.interception import run_local
from scribdlink.resolver import Failure, FailureKind, Success

SCRIBD_URL = "https://www.scribd.com/document/456/My-Great-Report"
LINK = "https://example.com/file.pdf"


@pytest.fixture
def mock_resolve():
    with patch("scribdlink.cli.resolve") as mocked:
        mocked.return_value = Success(LINK)
        yield mocked


def test_prints_link(mock_resolve, capsys, monkeypatch):
    monkeypatch.setenv("BROWSERLESS_API_KEY", "from-env")

    cli.main([SCRIBD_URL])

    captured = capsys.readouterr()
    assert captured.out.strip() == LINK
    url, config = mock_resolve.call_args.args
    assert url == SCRIBD_URL
    assert config.api_key == "from-env"
    assert mock_resolve.call_args.kwargs["runner"] is None


def test_flags_override_environment(mock_resolve, monkeypatch):
    monkeypatch.setenv("BROWSERLESS_API_KEY", "from-env")
    monkeypatch.setenv("BROWSERLESS_DOMAIN", "env.example.io")

    cli.main([
        SCRIBD_URL,
        "--api-key", "from-flag",
        "--host", "flag.example.io",
        "--block-scripts",
        "--wait-until", "networkidle",
        "--settle-ms", "800",
    ])

    config = mock_resolve.call_args.args[1]
    assert config.api_key == "from-flag"
    assert config.provider_host == "flag.example.io"
    assert config.block_scripts is True
    assert config.wait_until == "networkidle"
    assert config.settle_ms == 800


def test_local_mode_uses_playwright_runner(mock_resolve):
    cli.main([SCRIBD_URL, "--local", "--headful"])

    runner = mock_resolve.call_args.kwargs["runner"]
    assert runner.func is run_local
    assert runner.keywords == {"cdp_url": None, "headless": False}


def test_cdp_mode(mock_resolve):
    cli.main([SCRIBD_URL, "--cdp", "http://127.0.0.1:9222"])

    runner = mock_resolve.call_args.kwargs["runner"]
    assert runner.keywords["cdp_url"] == "http://127.0.0.1:9222"


def test_failure_exits_nonzero(mock_resolve, capsys):
    mock_resolve.return_value = Failure(
        FailureKind.SERVER_MISCONFIGURED, "Server configuration error: Missing API Key.",
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main([SCRIBD_URL])

    assert excinfo.value.code == 1
    assert "Missing API Key" in capsys.readouterr().err


def test_unsupported_url(mock_resolve, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["https://example.com/doc"])

    assert excinfo.value.code == 1
    assert "no provider" in capsys.readouterr().err
    mock_resolve.assert_not_called()


def test_output_downloads_file(mock_resolve, tmp_path):
    target = tmp_path / "report.pdf"
    with patch("scribdlink.cli.download_file") as download:
        cli.main([SCRIBD_URL, "-o", str(target)])
    download.assert_called_once_with(LINK, target)


def test_save_names_file_after_title(mock_resolve):
    with patch("scribdlink.cli.download_file") as download:
        cli.main([SCRIBD_URL, "--save"])
    download.assert_called_once_with(LINK, Path("My Great Report.pdf"))


def test_download_failure_exits_nonzero(mock_resolve, tmp_path):
    with patch("scribdlink.cli.download_file", side_effect=RuntimeError("expired")):
        with pytest.raises(SystemExit) as excinfo:
            cli.main([SCRIBD_URL, "-o", str(tmp_path / "x.pdf")])
    assert excinfo.value.code == 1


def test_invalid_environment_config(mock_resolve, capsys, monkeypatch):
    monkeypatch.setenv("WAIT_UNTIL", "load")

    with pytest.raises(SystemExit) as excinfo:
        cli.main([SCRIBD_URL])

    assert excinfo.value.code == 1
    assert "WAIT_UNTIL" in capsys.readouterr().err
    mock_resolve.assert_not_called()


def test_accepts_url_without_scheme(mock_resolve, capsys):
    cli.main(["scribd.com/document/456/My-Great-Report"])

    assert capsys.readouterr().out.strip() == LINK
    assert mock_resolve.call_args.args[0] == "scribd.com/document/456/My-Great-Report"


def test_download_write_error_exits_nonzero(mock_resolve, tmp_path):
    with patch("scribdlink.cli.download_file", side_effect=PermissionError("read-only")):
        with pytest.raises(SystemExit) as excinfo:
            cli.main([SCRIBD_URL, "-o", str(tmp_path / "x.pdf")])
    assert excinfo.value.code == 1
