"""Tests for CLI interface"""

from __future__ import annotations

import io
import logging
from unittest.mock import patch

import click
import pytest
import requests
from click.testing import CliRunner

from httpchain.cli import _die, cli, parse_headers, setup_logging
from httpchain.domain.errors import ConnectError, MaxRetriesExceededError


def _make_response(status_code: int, body: bytes = b"", headers: dict | None = None) -> requests.Response:
    r = requests.Response()
    r.status_code = status_code
    r.reason = "OK" if status_code < 400 else "Error"
    r.url = "http://example.test/"
    r.raw = io.BytesIO(body)
    if headers:
        r.headers.update(headers)
    return r


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Keep config discovery and env overrides out of CLI tests"""
    monkeypatch.chdir(tmp_path)
    for name in ("HTTPCHAIN_USER_AGENT", "HTTPCHAIN_TIMEOUT", "HTTPCHAIN_MAX_ATTEMPTS", "HTTPCHAIN_DNS_SERVERS", "HTTPCHAIN_DUMP_REQUESTS"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestSetupLogging:
    """Tests for setup_logging function"""

    def test_setup_logging_info_level(self):
        """Test that logging is set to INFO level by default"""
        setup_logging(verbose=False)
        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_debug_level(self):
        """Test that logging is set to DEBUG level when verbose"""
        setup_logging(verbose=True)
        assert logging.getLogger().level == logging.DEBUG


class TestDie:
    """Tests for _die function"""

    def test_die_without_exception(self):
        with pytest.raises(click.ClickException, match="Test error"):
            _die("Test error", verbose=False)

    def test_die_with_exception_verbose(self):
        exc = ValueError("Test exception")
        with pytest.raises(click.ClickException, match="Test error"):
            _die("Test error", verbose=True, exc=exc)


class TestParseHeaders:
    """Tests for --header parsing"""

    def test_parse_headers(self):
        assert parse_headers(("Accept: application/json", "X-Id:42")) == {
            "Accept": "application/json",
            "X-Id": "42",
        }

    def test_value_may_contain_colons(self):
        assert parse_headers(("Referer: http://example.test:8080/",)) == {"Referer": "http://example.test:8080/"}

    @pytest.mark.parametrize("raw", ["NoColon", ": value"])
    def test_invalid_header(self, raw):
        with pytest.raises(click.BadParameter):
            parse_headers((raw,))


class TestRequestCommand:
    """Tests for the request command"""

    def test_prints_body(self):
        """Test a successful request prints the response body"""
        runner = CliRunner()
        with patch("httpchain.cli.HttpClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.request.return_value = _make_response(200, b'{"ok": true}')
            result = runner.invoke(cli, ["request", "GET", "http://example.test/"], catch_exceptions=False)

        assert result.exit_code == 0
        assert '{"ok": true}' in result.output
        client.request.assert_called_once_with(
            "GET", "http://example.test/", headers={}, data=None, json=None
        )

    def test_options_reach_client(self):
        """Test headers, JSON body and config overrides are passed through"""
        runner = CliRunner()
        with patch("httpchain.cli.HttpClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.request.return_value = _make_response(201, b"created")
            result = runner.invoke(
                cli,
                [
                    "request",
                    "POST",
                    "http://example.test/items",
                    "-H",
                    "X-Trace: abc",
                    "--json",
                    '{"name": "widget"}',
                    "--dns-server",
                    "1.1.1.1",
                    "--max-attempts",
                    "4",
                    "--timeout",
                    "3",
                ],
                catch_exceptions=False,
            )

        assert result.exit_code == 0
        config = client_cls.call_args.args[0]
        assert config.dns.servers == ["1.1.1.1"]
        assert config.retry.max_attempts == 4
        assert config.timeout == 3.0
        client.request.assert_called_once_with(
            "POST",
            "http://example.test/items",
            headers={"X-Trace": "abc"},
            data=None,
            json={"name": "widget"},
        )

    def test_include_prints_status_and_headers(self):
        runner = CliRunner()
        with patch("httpchain.cli.HttpClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.request.return_value = _make_response(200, b"hi", {"X-Served-By": "test"})
            result = runner.invoke(cli, ["request", "GET", "http://example.test/", "-i"], catch_exceptions=False)

        assert "HTTP 200 OK" in result.output
        assert "X-Served-By: test" in result.output

    def test_error_status_exits_non_zero(self):
        runner = CliRunner()
        with patch("httpchain.cli.HttpClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.request.return_value = _make_response(404, b"missing")
            result = runner.invoke(cli, ["request", "GET", "http://example.test/"])

        assert result.exit_code == 1
        assert "missing" in result.output

    def test_request_failure_reported(self):
        """Test client errors are reported as a ClickException"""
        runner = CliRunner()
        with patch("httpchain.cli.HttpClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.request.side_effect = MaxRetriesExceededError(3, last_error=ConnectError("refused"))
            result = runner.invoke(cli, ["request", "GET", "http://example.test/"])

        assert result.exit_code == 1
        assert "max retries exceeded after 3 attempts" in result.output

    def test_data_and_json_conflict(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["request", "POST", "http://example.test/", "-d", "x", "--json", "{}"])
        assert result.exit_code == 2
        assert "mutually exclusive" in result.output

    def test_invalid_json(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["request", "POST", "http://example.test/", "--json", "{oops"])
        assert result.exit_code == 2
        assert "invalid JSON" in result.output

    def test_invalid_dns_server(self):
        runner = CliRunner()
        with patch("httpchain.cli.HttpClient") as client_cls:
            result = runner.invoke(cli, ["request", "GET", "http://example.test/", "--dns-server", "dns.example.test"])
        assert result.exit_code == 1
        assert "IP address" in result.output
        client_cls.assert_not_called()

    def test_dump_flag_installs_dump_log(self):
        runner = CliRunner()
        with patch("httpchain.cli.HttpClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.request.return_value = _make_response(200)
            runner.invoke(cli, ["request", "GET", "http://example.test/", "--dump"], catch_exceptions=False)

        assert client_cls.call_args.kwargs["dump_log"] is not None
        assert client_cls.call_args.args[0].logging.dump_requests is True


class TestConfigCommand:
    """Tests for the config command"""

    def test_prints_effective_config(self, isolated):
        (isolated / ".httpchain.yml").write_text("retry:\n  max_attempts: 3\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(cli, ["config"], catch_exceptions=False)

        assert result.exit_code == 0
        assert "max_attempts: 3" in result.output
        assert "user_agent: httpchain/0.1" in result.output
        assert "- 429\n  - 500" in result.output or "- 429\n    - 500" in result.output

    def test_invalid_config_file(self, isolated):
        path = isolated / "bad.yml"
        path.write_text("timeout: -5\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(path), "config"])

        assert result.exit_code == 1
        assert "timeout" in result.output

    def test_prints_single_key(self, isolated):
        (isolated / ".httpchain.yml").write_text("retry:\n  max_attempts: 3\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "retry.max_attempts"], catch_exceptions=False)

        assert result.exit_code == 0
        assert "3" in result.output.splitlines()

    def test_unset_key_prints_null(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "timeout"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "null" in result.output

    def test_unknown_key(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "retry.nope"])
        assert result.exit_code == 1
        assert "Unknown configuration key: retry.nope" in result.output
