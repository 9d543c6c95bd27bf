"""End-to-end tests for HttpClient against a local HTTP server."""

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import List
from urllib.parse import parse_qs, urlsplit

import pytest

from httpchain.application.client import HttpClient
from httpchain.domain.config import ClientConfig, DNSConfig, RetryPolicy, TransportOptions, TransportSettings
from httpchain.domain.errors import (
    ConnectError,
    DecodeResponseError,
    HTTPStatusError,
    InvalidRequestError,
    MaxRetriesExceededError,
    RequestCancelledError,
    RequestTimeoutError,
)
from httpchain.domain.models.attempt import Attempt
from httpchain.domain.models.context import RequestContext
from httpchain.infrastructure.dns.dialer import DialOutcome
from httpchain.infrastructure.dns.resolver import Resolver


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def _send(self, status: int, body: bytes, content_type: str = "application/json", headers=None):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        url = urlsplit(self.path)
        query = parse_qs(url.query)
        if url.path == "/json":
            self._send(200, json.dumps({"ok": True}).encode())
        elif url.path == "/headers":
            self._send(200, json.dumps({k.lower(): v for k, v in self.headers.items()}).encode())
        elif url.path == "/query":
            self._send(200, json.dumps({k: v[0] for k, v in query.items()}).encode())
        elif url.path == "/text":
            self._send(200, "héllo".encode("utf-8"), content_type="text/plain; charset=utf-8")
        elif url.path == "/broken-json":
            self._send(200, b"{not json")
        elif url.path == "/missing":
            self._send(404, b"not here", content_type="text/plain")
        elif url.path == "/flaky":
            fail = int(query.get("fail", ["1"])[0])
            count = self.server.hits.get(self.path, 0)
            self.server.hits[self.path] = count + 1
            if count < fail:
                self._send(503, b"try again", content_type="text/plain")
            else:
                self._send(200, json.dumps({"attempt": count + 1}).encode())
        elif url.path == "/slow":
            time.sleep(float(query.get("delay", ["0.5"])[0]))
            self._send(200, b"{}")
        else:
            self._send(404, b"")

    def do_POST(self):
        length = int(self.headers.get("Content-Length", "0"))
        payload = self.rfile.read(length)
        self._send(
            200,
            json.dumps(
                {
                    "body": payload.decode("utf-8"),
                    "content_type": self.headers.get("Content-Type"),
                }
            ).encode(),
        )

    do_PUT = do_POST


@pytest.fixture
def server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.hits = {}
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield httpd
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def base_url(server):
    return f"http://127.0.0.1:{server.server_address[1]}"


def _config(**kwargs) -> ClientConfig:
    kwargs.setdefault("transport", TransportSettings(trust_env=False))
    kwargs.setdefault("retry", RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0))
    return ClientConfig(**kwargs)


class TestRequests:
    """Tests for basic request/response handling."""

    def test_get_json(self, base_url):
        with HttpClient(_config()) as client:
            assert client.get_json(f"{base_url}/json") == {"ok": True}

    def test_default_user_agent(self, base_url):
        """Test the configured User-Agent is sent by default"""
        with HttpClient(_config(user_agent="svc/2.0")) as client:
            headers = client.get_json(f"{base_url}/headers")
        assert headers["user-agent"] == "svc/2.0"

    def test_user_agent_override_is_case_insensitive(self, base_url):
        with HttpClient(_config()) as client:
            headers = client.get_json(f"{base_url}/headers", headers={"user-agent": "custom"})
        assert headers["user-agent"] == "custom"

    def test_query_params(self, base_url):
        with HttpClient(_config()) as client:
            assert client.get_json(f"{base_url}/query", params={"page": 2}) == {"page": "2"}

    def test_post_json(self, base_url):
        """Test JSON payloads are encoded with a JSON content type"""
        with HttpClient(_config()) as client:
            echoed = client.post_json(f"{base_url}/echo", {"name": "widget"})
        assert json.loads(echoed["body"]) == {"name": "widget"}
        assert echoed["content_type"] == "application/json"

    def test_put_json(self, base_url):
        with HttpClient(_config()) as client:
            echoed = client.put_json(f"{base_url}/echo", [1, 2])
        assert json.loads(echoed["body"]) == [1, 2]

    def test_post_raw_data(self, base_url):
        with HttpClient(_config()) as client:
            response = client.post(f"{base_url}/echo", data=b"raw", headers={"Content-Type": "text/plain"})
            echoed = response.json()
        assert echoed == {"body": "raw", "content_type": "text/plain"}

    def test_get_text_and_bytes(self, base_url):
        with HttpClient(_config()) as client:
            assert client.get_text(f"{base_url}/text") == "héllo"
            assert client.get_bytes(f"{base_url}/text") == "héllo".encode("utf-8")

    def test_data_and_json_are_exclusive(self, base_url):
        with HttpClient(_config()) as client:
            with pytest.raises(InvalidRequestError):
                client.post(f"{base_url}/echo", data=b"x", json={"x": 1})

    def test_invalid_url(self):
        with HttpClient(_config()) as client:
            with pytest.raises(InvalidRequestError):
                client.get("not-a-url")


class TestErrors:
    """Tests for client-visible error outcomes."""

    def test_http_status_error(self, base_url):
        """Test status >= 400 raises HTTPStatusError with preview and headers"""
        with HttpClient(_config()) as client:
            with pytest.raises(HTTPStatusError) as exc_info:
                client.get_json(f"{base_url}/missing")

        err = exc_info.value
        assert err.status_code == 404
        assert err.body == b"not here"
        assert err.headers["Content-Type"] == "text/plain"
        assert "not here" in str(err)

    def test_raw_response_keeps_status(self, base_url):
        """Test send/get return non-2xx responses untouched"""
        with HttpClient(_config()) as client:
            response = client.get(f"{base_url}/missing")
            assert response.status_code == 404
            response.close()

    def test_decode_error(self, base_url):
        with HttpClient(_config()) as client:
            with pytest.raises(DecodeResponseError):
                client.get_json(f"{base_url}/broken-json")

    def test_connection_refused_exhausts_retries(self):
        sock = socket.socket()
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        with HttpClient(_config(retry=RetryPolicy(max_attempts=1, base_delay=0.0, max_delay=0.0))) as client:
            with pytest.raises(MaxRetriesExceededError) as exc_info:
                client.get(f"http://127.0.0.1:{port}/")

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_error, ConnectError)

    def test_deadline_reported_as_request_timeout(self, base_url):
        """Test a per-request deadline surfaces as RequestTimeoutError"""
        with HttpClient(_config()) as client:
            with pytest.raises(RequestTimeoutError):
                client.get(f"{base_url}/slow", timeout=0.1)

    def test_client_default_timeout(self, base_url):
        with HttpClient(_config()) as client:
            client.set_timeout(0.1)
            with pytest.raises(RequestTimeoutError):
                client.get(f"{base_url}/slow")

    def test_set_timeout_rejects_non_positive(self):
        with HttpClient(_config()) as client:
            with pytest.raises(ValueError):
                client.set_timeout(0)

    def test_cancelled_context(self, base_url):
        context = RequestContext.background()
        context.cancel()
        with HttpClient(_config()) as client:
            with pytest.raises(RequestCancelledError):
                client.get(f"{base_url}/json", context=context)

    def test_cancel_interrupts_request_in_flight(self, base_url):
        """Test cancel() from another thread aborts a request waiting on a slow server"""
        context = RequestContext.background()
        timer = threading.Timer(0.2, context.cancel)
        timer.start()

        started = time.monotonic()
        with HttpClient(_config()) as client:
            with pytest.raises(RequestCancelledError):
                client.get(f"{base_url}/slow?delay=3", context=context)
        timer.cancel()
        assert time.monotonic() - started < 1.5

    def test_connection_reused_after_cancelled_request(self, base_url):
        """Test a later request is unaffected by an earlier cancelled context"""
        with HttpClient(_config()) as client:
            first = RequestContext.background()
            assert client.get_json(f"{base_url}/json", context=first) == {"ok": True}
            first.cancel()
            assert client.get_json(f"{base_url}/json") == {"ok": True}


class TestRetries:
    """Tests for retry behavior through the full stack."""

    def test_retry_until_success(self, server, base_url):
        attempts: List[Attempt] = []
        with HttpClient(_config(), on_retry=attempts.append) as client:
            assert client.get_json(f"{base_url}/flaky?fail=2") == {"attempt": 3}
        assert [a.status_code for a in attempts] == [503, 503]

    def test_set_retry_policy_disables_retry(self, base_url):
        """Test max_attempts=0 removes the retry layer"""
        with HttpClient(_config()) as client:
            client.set_retry_policy(RetryPolicy(max_attempts=0))
            assert "RetryExecutor" not in client.chain.describe_layers()
            response = client.get(f"{base_url}/flaky?fail=1")
            assert response.status_code == 503
            response.close()

    def test_exhausted_status_carries_response(self, base_url):
        with HttpClient(_config()) as client:
            with pytest.raises(MaxRetriesExceededError) as exc_info:
                client.get(f"{base_url}/flaky?fail=10")
        assert exc_info.value.attempts == 3
        assert exc_info.value.response.content == b"try again"


class TestChainConfiguration:
    """Tests for middleware and dump log wiring."""

    def test_middleware_and_dump_log(self, base_url):
        dumps: List[str] = []
        seen: List[str] = []

        def tag(request, next_handler):
            request.headers["X-Tag"] = "on"
            seen.append(request.url)
            return next_handler.send(request)

        with HttpClient(_config()) as client:
            client.add_middleware(tag)
            client.set_dump_log(lambda ctx, text: dumps.append(text))
            headers = client.get_json(f"{base_url}/headers")

            assert headers["x-tag"] == "on"
            assert len(seen) == 1
            assert "Method     : GET" in dumps[0]
            assert client.chain.describe_layers() == [
                "RetryExecutor",
                "LoggingHandler",
                "FunctionMiddleware",
                "BaseTransport",
            ]

            client.set_dump_log(None)
            client.get_json(f"{base_url}/json")
            assert len(dumps) == 1

    def test_dump_requests_config_uses_dump_logger(self, base_url, caplog):
        config = _config()
        config.logging.dump_requests = True
        with caplog.at_level("INFO", logger="httpchain.dump"):
            with HttpClient(config) as client:
                client.get_json(f"{base_url}/json")
        assert any("[HTTP Request Log]" in r.getMessage() for r in caplog.records)

    def test_transport_options_applied(self):
        client = HttpClient(_config(), transport_options=TransportOptions(dial_timeout=1.5, pool_maxsize=4))
        try:
            assert client.transport.settings.dial_timeout == 1.5
            assert client.transport.settings.pool_maxsize == 4
            assert client.transport.settings.trust_env is False
        finally:
            client.close()


class TestCustomDNS:
    """Tests for custom DNS through the full stack."""

    def test_custom_dns_resolves_host(self, server, monkeypatch):
        """Test hostnames are dialed at the address custom DNS returns"""
        monkeypatch.setattr(Resolver, "resolve", lambda self, host, timeout=None: ["127.0.0.1"])
        outcomes: List[DialOutcome] = []
        port = server.server_address[1]
        config = _config(dns=DNSConfig(servers=["192.0.2.53"]))

        with HttpClient(config, on_dial=outcomes.append) as client:
            headers = client.get_json(f"http://api.internal.test:{port}/headers")

        assert headers["host"] == f"api.internal.test:{port}"
        assert outcomes[0].host == "api.internal.test"
        assert outcomes[0].connected_to == "127.0.0.1"

    def test_unreachable_dns_falls_back(self, server):
        """Test unreachable DNS servers fall back to system resolution"""
        udp = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        udp.bind(("127.0.0.1", 0))
        dns_port = udp.getsockname()[1]
        udp.close()

        outcomes: List[DialOutcome] = []
        port = server.server_address[1]
        config = _config(dns=DNSConfig(servers=[f"127.0.0.1:{dns_port}"], timeout=0.2))

        with HttpClient(config, on_dial=outcomes.append) as client:
            assert client.get_json(f"http://localhost:{port}/json") == {"ok": True}

        assert outcomes[0].fallback is True

    def test_silent_dns_server_respects_request_deadline(self, server):
        """Test a DNS server that never answers cannot stretch a request past its deadline"""
        silent = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        silent.bind(("127.0.0.1", 0))
        dns_port = silent.getsockname()[1]
        port = server.server_address[1]
        config = _config(dns=DNSConfig(servers=[f"127.0.0.1:{dns_port}"], timeout=3.0))

        started = time.monotonic()
        try:
            with HttpClient(config) as client:
                with pytest.raises(RequestTimeoutError):
                    client.get(f"http://localhost:{port}/json", timeout=0.5)
        finally:
            silent.close()
        assert time.monotonic() - started < 1.5
