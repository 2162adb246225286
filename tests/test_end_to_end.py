import asyncio
import base64
import gzip
import json
import socket
import threading
import time
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import pytest

from httpfuture import CookieJar, H11Transport, RequestError, RequestRejected, http


class EchoHandler(BaseHTTPRequestHandler):
    def _reply(self, status, body=b"", headers=None):
        self.send_response(status)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _echo(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length).decode("utf-8") if length else None
        payload = {
            "method": self.command,
            "content_type": self.headers.get("Content-Type"),
            "content_length": self.headers.get("Content-Length"),
            "body": body,
        }
        self._reply(200, json.dumps(payload).encode("utf-8"), {"Content-Type": "application/json"})

    def do_GET(self):
        path = urlparse(self.path).path

        if path == "/json":
            self._reply(200, b'{"hello": "world"}', {"Content-Type": "application/json"})

        elif path == "/empty":
            self.send_response(204)
            self.end_headers()

        elif path == "/gzip":
            self._reply(200, gzip.compress(b"compressed"), {"Content-Encoding": "gzip"})

        elif path == "/charset":
            body = "olá".encode("iso-8859-1")
            self._reply(200, body, {"Content-Type": "text/plain; charset=iso-8859-1"})

        elif path == "/redirect":
            self._reply(302, b"", {"Location": "/json"})

        elif path == "/set-cookie":
            self._reply(200, b"cookie-set", {"Set-Cookie": "token=abc; Path=/"})

        elif path == "/needs-cookie":
            self._reply(200, self.headers.get("Cookie", "").encode("utf-8"))

        elif path == "/auth":
            self._reply(200, self.headers.get("Authorization", "").encode("utf-8"))

        elif path == "/slow":
            time.sleep(0.5)
            try:
                self._reply(200, b"late")
            except OSError:
                pass

        elif path == "/idna":
            self._reply(200, b"hello", {"Content-Type": "text/plain; charset=idna"})

        elif path == "/hangup":
            self.close_connection = True

        elif path == "/truncated":
            self.send_response(200)
            self.send_header("Content-Length", "10")
            self.end_headers()
            self.wfile.write(b"abc")
            self.close_connection = True

        elif path == "/notfound":
            self._reply(404, b"not found")

        else:
            self._reply(404)

    def do_POST(self):
        if urlparse(self.path).path == "/fail":
            self._reply(500, b'{"err":"bad"}')
            return
        self._echo()

    def do_PUT(self):
        self._echo()

    def do_DELETE(self):
        self._echo()

    def log_message(self, format, *args):  # pragma: no cover
        return


@contextmanager
def run_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), EchoHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base_url = f"http://127.0.0.1:{server.server_address[1]}"
    try:
        yield base_url
    finally:
        server.shutdown()
        server.server_close()
        thread.join()


@pytest.fixture
def base_url():
    with run_server() as b:
        yield b


@pytest.mark.asyncio
async def test_get_json(base_url):
    resp = await http(f"{base_url}/json").get()
    assert resp.status == 200
    assert resp.json() == {"hello": "world"}
    assert resp.headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_no_content(base_url):
    resp = await http(f"{base_url}/empty").get()
    assert resp.status == 204
    assert resp.data == ""


@pytest.mark.asyncio
async def test_not_found_rejects(base_url):
    with pytest.raises(RequestRejected) as exc_info:
        await http(f"{base_url}/notfound").get()
    assert exc_info.value.status == 404
    assert exc_info.value.data == "not found"


@pytest.mark.asyncio
async def test_redirect_is_not_followed(base_url):
    outcome = await http(f"{base_url}/redirect").get().outcome()
    assert not outcome.is_ok
    assert outcome.response.status == 302
    assert outcome.response.headers["location"] == "/json"


@pytest.mark.asyncio
async def test_post_sends_json(base_url):
    resp = await http(f"{base_url}/echo").post({"a": 1}, headers={"Content-Type": "text/plain"})
    echoed = resp.json()
    assert echoed["method"] == "POST"
    assert echoed["content_type"] == "application/json"
    assert json.loads(echoed["body"]) == {"a": 1}


@pytest.mark.asyncio
async def test_post_failure_rejects(base_url):
    with pytest.raises(RequestRejected) as exc_info:
        await http(f"{base_url}/fail").post({"a": 1})
    assert exc_info.value.status == 500
    assert exc_info.value.json() == {"err": "bad"}


@pytest.mark.asyncio
async def test_put_and_delete(base_url):
    client = http(f"{base_url}/echo")
    put_resp, delete_resp = await asyncio.gather(client.put([1, 2, 3]), client.delete())
    assert put_resp.json()["body"] == "[1, 2, 3]"
    deleted = delete_resp.json()
    assert deleted["method"] == "DELETE"
    assert deleted["body"] is None
    assert deleted["content_type"] is None


@pytest.mark.asyncio
async def test_gzip_body_is_decoded(base_url):
    resp = await http(f"{base_url}/gzip").get()
    assert resp.data == "compressed"


@pytest.mark.asyncio
async def test_charset_is_honoured(base_url):
    resp = await http(f"{base_url}/charset").get()
    assert resp.data == "olá"


@pytest.mark.asyncio
async def test_abort_in_flight(base_url):
    req = http(f"{base_url}/slow").get()
    await asyncio.sleep(0.05)
    req.abort()
    with pytest.raises(RequestRejected) as exc_info:
        await req
    assert exc_info.value.status == 0
    assert exc_info.value.data == ""


@pytest.mark.asyncio
async def test_connection_refused_rejects():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    with pytest.raises(RequestRejected) as exc_info:
        await http(f"http://127.0.0.1:{port}/").get()
    assert exc_info.value.status == 0


@pytest.mark.asyncio
async def test_cookies_only_with_credentials(base_url):
    jar = CookieJar()
    await http(f"{base_url}/set-cookie", cookies=jar).get()
    assert len(jar) == 0

    await http(f"{base_url}/set-cookie", cookies=jar, with_credentials=True).get()
    assert len(jar) == 1

    without = await http(f"{base_url}/needs-cookie", cookies=jar).get()
    assert without.data == ""
    with_creds = await http(f"{base_url}/needs-cookie", cookies=jar, with_credentials=True).get()
    assert with_creds.data == "token=abc"


@pytest.mark.asyncio
async def test_userinfo_becomes_basic_auth(base_url):
    url = base_url.replace("http://", "http://user:pa%20ss@") + "/auth"
    resp = await http(url, with_credentials=True).get()
    expected = base64.b64encode(b"user:pa ss").decode("ascii")
    assert resp.data == f"Basic {expected}"

    resp = await http(url).get()
    assert resp.data == ""


@pytest.mark.asyncio
async def test_transport_state_errors(base_url):
    transport = H11Transport()
    with pytest.raises(RequestError):
        transport.set_header("X-A", "1")
    transport.open("get", f"{base_url}/json")
    transport.send()
    with pytest.raises(RequestError):
        transport.send()
    transport.abort()
    transport.abort()


@pytest.mark.asyncio
async def test_strict_only_charset_still_loads(base_url):
    outcome = await asyncio.wait_for(http(f"{base_url}/idna").get().outcome(), timeout=2)
    assert outcome.is_ok
    assert outcome.response.data == "hello"


class BrokenJar(CookieJar):
    def add_from_headers(self, url, headers):
        raise ValueError("cannot store cookies")


@pytest.mark.asyncio
async def test_failure_after_response_fires_error(base_url):
    req = http(f"{base_url}/set-cookie", cookies=BrokenJar(), with_credentials=True).get()
    outcome = await asyncio.wait_for(req.outcome(), timeout=2)
    assert not outcome.is_ok
    assert outcome.response.status == 0
    assert outcome.response.data == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/hangup", "/truncated"])
async def test_broken_responses_reject_with_status_zero(base_url, path):
    with pytest.raises(RequestRejected) as exc_info:
        await asyncio.wait_for(http(f"{base_url}{path}").get(), timeout=2)
    assert exc_info.value.status == 0
    assert exc_info.value.data == ""
