import asyncio
import base64
import gzip
import re
import ssl
import zlib
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

import h11

from .cookies import CookieJar
from .errors import RequestError, ResponseError
from .logging import get_logger

# Shared buffer size for network reads
READ_BUFFER_SIZE = 65536

_CHARSET_REGEX = re.compile(r'charset=([^;,\s]+)', re.IGNORECASE)


class TransportEvent(str, Enum):
    LOAD = "load"
    ERROR = "error"
    ABORT = "abort"


class ReadyState(Enum):
    UNSENT = 0
    OPENED = 1
    SENT = 2
    DONE = 4


Listener = Callable[["Transport"], None]


class Transport(ABC):
    """
    One asynchronous request channel.

    A transport is opened, configured and sent once. It reports the end of
    the exchange by firing exactly one terminal event (load, error or abort)
    to the listeners registered with :meth:`on`; listeners receive the
    transport itself and read ``status``, ``response`` and
    ``response_headers`` from it.
    """

    def __init__(self) -> None:
        self.status = 0
        self.response = ""
        self.response_headers: Dict[str, str] = {}
        self.with_credentials = False
        self._listeners: Dict[TransportEvent, List[Listener]] = {event: [] for event in TransportEvent}

    def on(self, event, callback: Listener) -> None:
        self._listeners[TransportEvent(event)].append(callback)

    def _dispatch(self, event: TransportEvent) -> None:
        for callback in list(self._listeners[event]):
            callback(self)

    def _reset_response(self) -> None:
        self.status = 0
        self.response = ""
        self.response_headers = {}

    @abstractmethod
    def open(self, method: str, url: str) -> None:
        ...

    @abstractmethod
    def set_header(self, name: str, value: str) -> None:
        ...

    @abstractmethod
    def send(self, body: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def abort(self) -> None:
        ...


def _decode_gzip(payload: bytes) -> bytes:
    return gzip.decompress(payload)


def _decode_deflate(payload: bytes) -> bytes:
    """Decode deflate payload with automatic zlib/raw fallback."""
    try:
        return zlib.decompress(payload)
    except zlib.error:
        return zlib.decompress(payload, -zlib.MAX_WBITS)


_DECOMPRESS_HANDLERS: Dict[str, Callable[[bytes], bytes]] = {
    "gzip": _decode_gzip,
    "x-gzip": _decode_gzip,
    "deflate": _decode_deflate,
}


def _decode_content(content: bytes, headers: Dict[str, str]) -> bytes:
    encoding = headers.get("content-encoding", "").lower()
    data = content
    for enc in (e.strip() for e in encoding.split(",")):
        handler = _DECOMPRESS_HANDLERS.get(enc)
        if handler is None:
            continue
        try:
            data = handler(data)
        except (OSError, EOFError, zlib.error):
            return content
    return data


def _decode_text(content: bytes, headers: Dict[str, str]) -> str:
    charset = "utf-8"
    match = _CHARSET_REGEX.search(headers.get("content-type", ""))
    if match:
        charset = match.group(1).strip("\"'") or charset
    data = _decode_content(content, headers)
    try:
        return data.decode(charset, errors="replace")
    except (LookupError, ValueError):
        # Unknown charset, or a codec such as idna that only decodes strictly.
        return data.decode("utf-8", errors="replace")


class H11Transport(Transport):
    """
    Transport over asyncio streams and h11.

    Each handle opens its own connection, sends ``Connection: close`` and
    reads the whole response body before firing ``load``. Nothing is pooled
    or retried, and there is no deadline.
    """

    def __init__(
        self,
        cookies: Optional[CookieJar] = None,
        logger=None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        super().__init__()
        self.cookies = cookies if cookies is not None else CookieJar()
        self.logger = logger or get_logger("transport")
        self.ssl_context = ssl_context
        self.state = ReadyState.UNSENT
        self.method: Optional[str] = None
        self.url: Optional[str] = None
        self._parsed = None
        self._headers: Dict[str, str] = {}
        self._task: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    def open(self, method: str, url: str) -> None:
        if self.state is ReadyState.SENT:
            raise RequestError("Transport already has a request in flight")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise RequestError(f"Invalid URL: {url}")
        self.method = method.upper()
        self.url = url
        self._parsed = parsed
        self._headers = {}
        self._reset_response()
        self.state = ReadyState.OPENED

    def set_header(self, name: str, value: str) -> None:
        if self.state is not ReadyState.OPENED:
            raise RequestError("Headers can only be set on an opened, unsent transport")
        self._headers[name] = value

    def send(self, body: Optional[str] = None) -> None:
        if self.state is not ReadyState.OPENED:
            raise RequestError("Transport must be opened before send")
        content = body.encode("utf-8") if body is not None else b""
        try:
            request = h11.Request(
                method=self.method.encode("ascii"),
                target=self._target().encode("ascii"),
                headers=[(k.encode("latin-1"), v.encode("latin-1")) for k, v in self._build_headers(content).items()],
            )
        except (UnicodeError, h11.LocalProtocolError) as exc:
            raise RequestError(f"Failed to build request: {exc}") from exc
        loop = asyncio.get_running_loop()
        self.state = ReadyState.SENT
        self.logger.debug("%s %s sent", self.method, self.url)
        self._task = loop.create_task(self._run(request, content))
        self._task.add_done_callback(self._on_task_done)

    def abort(self) -> None:
        if self.state is ReadyState.OPENED:
            self.state = ReadyState.UNSENT
            return
        if self.state is not ReadyState.SENT:
            return
        self.state = ReadyState.DONE
        if self._task is not None:
            self._task.cancel()
        self._close_writer()
        self._reset_response()
        self.logger.debug("%s %s aborted", self.method, self.url)
        self._dispatch(TransportEvent.ABORT)

    def _target(self) -> str:
        target = self._parsed.path or "/"
        if self._parsed.query:
            target += f"?{self._parsed.query}"
        return target

    def _build_headers(self, content: bytes) -> Dict[str, str]:
        headers = dict(self._headers)
        lower_keys = {k.lower() for k in headers}
        if "host" not in lower_keys:
            headers["Host"] = self._parsed.netloc.rpartition("@")[2]
        if content and "content-length" not in lower_keys:
            headers["Content-Length"] = str(len(content))
        if "connection" not in lower_keys:
            headers["Connection"] = "close"
        if self.with_credentials:
            cookie_hdr = self.cookies.get_cookie_header(self.url)
            if cookie_hdr and "cookie" not in lower_keys:
                headers["Cookie"] = cookie_hdr
            if self._parsed.username is not None and "authorization" not in lower_keys:
                userinfo = f"{unquote(self._parsed.username)}:{unquote(self._parsed.password or '')}"
                token = base64.b64encode(userinfo.encode("utf-8")).decode("ascii")
                headers["Authorization"] = f"Basic {token}"
        return headers

    async def _run(self, request: h11.Request, content: bytes) -> None:
        use_ssl = self._parsed.scheme == "https"
        port = self._parsed.port or (443 if use_ssl else 80)
        ssl_context = (self.ssl_context or ssl.create_default_context()) if use_ssl else None
        reader, self._writer = await asyncio.open_connection(self._parsed.hostname, port, ssl=ssl_context)
        conn = h11.Connection(h11.CLIENT)
        try:
            data = conn.send(request)
            if content:
                data += conn.send(h11.Data(data=content))
            data += conn.send(h11.EndOfMessage())
            self._writer.write(data)
            await self._writer.drain()
            status, raw_headers, body = await self._read_response(conn, reader)
        finally:
            await self._aclose_writer()

        if self.state is not ReadyState.SENT:
            return
        headers: Dict[str, str] = {}
        for name, value in raw_headers:
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        text = _decode_text(body, headers)
        if self.with_credentials:
            self.cookies.add_from_headers(self.url, raw_headers)
        # Stay SENT until here so a failure above still fires ERROR.
        self.state = ReadyState.DONE
        self.status = status
        self.response_headers = headers
        self.response = text
        self.logger.debug("%s %s loaded with status %s", self.method, self.url, status)
        self._dispatch(TransportEvent.LOAD)

    async def _read_response(
        self, conn: h11.Connection, reader: asyncio.StreamReader
    ) -> Tuple[int, List[Tuple[str, str]], bytes]:
        status = 0
        headers: List[Tuple[str, str]] = []
        chunks: List[bytes] = []
        while True:
            event = conn.next_event()
            if event is h11.NEED_DATA:
                # An empty read tells h11 the peer closed the stream.
                conn.receive_data(await reader.read(READ_BUFFER_SIZE))
                continue
            if isinstance(event, h11.Response):
                status = event.status_code
                headers = [(k.decode("latin-1"), v.decode("latin-1")) for k, v in event.headers]
            elif isinstance(event, h11.Data):
                chunks.append(bytes(event.data))
            elif isinstance(event, h11.EndOfMessage):
                break
            elif isinstance(event, h11.ConnectionClosed):
                if not status:
                    raise ResponseError("Connection closed before response")
                break
        return status, headers, b"".join(chunks)

    def _close_writer(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None

    async def _aclose_writer(self) -> None:
        writer = self._writer
        if writer is None:
            return
        self._writer = None
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None or self.state is not ReadyState.SENT:
            return
        self.state = ReadyState.DONE
        self._reset_response()
        if isinstance(exc, (OSError, h11.ProtocolError, ResponseError)):
            self.logger.warning("%s %s failed: %s", self.method, self.url, exc)
        else:
            self.logger.error("%s %s failed unexpectedly", self.method, self.url, exc_info=exc)
        self._dispatch(TransportEvent.ERROR)


__all__ = ["Transport", "TransportEvent", "ReadyState", "H11Transport", "READ_BUFFER_SIZE"]
