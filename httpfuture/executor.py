import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from .cookies import CookieJar
from .errors import RequestRejected
from .logging import get_logger
from .models import Err, Ok, Outcome, RequestConfig, ResponseResult, is_success
from .transport import H11Transport, Transport, TransportEvent

TransportFactory = Callable[[], Transport]

JSON_CONTENT_TYPE = "application/json"


class CancellableRequest:
    """
    A pending request together with the means to abort it.

    Awaiting the object yields the ResponseResult when the request succeeded
    and raises RequestRejected (carrying the same kind of ResponseResult) when
    it did not. ``await request.outcome()`` returns the Ok/Err value instead.
    """

    def __init__(self, config: RequestConfig, future: "asyncio.Future[Outcome]", transport: Transport) -> None:
        self.config = config
        self._future = future
        self._transport = transport

    def abort(self) -> None:
        self._transport.abort()

    def done(self) -> bool:
        return self._future.done()

    def add_done_callback(self, fn: Callable[["CancellableRequest"], Any]) -> None:
        self._future.add_done_callback(lambda _: fn(self))

    async def outcome(self) -> Outcome:
        try:
            return await asyncio.shield(self._future)
        except asyncio.CancelledError:
            # The awaiting task was cancelled, e.g. by an external deadline.
            self.abort()
            raise

    async def _wait(self) -> ResponseResult:
        outcome = await self.outcome()
        if isinstance(outcome, Err):
            raise RequestRejected(outcome.response)
        return outcome.response

    def __await__(self):
        return self._wait().__await__()

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"<CancellableRequest {self.config.method.value} {self.config.url!r} {state}>"


class _PendingRequest:
    """Settlement state of one issued request."""

    def __init__(
        self,
        config: RequestConfig,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger,
    ) -> None:
        self.config = config
        self.loop = loop
        self.logger = logger
        self.future: "asyncio.Future[Outcome]" = loop.create_future()
        self._terminal: Optional[TransportEvent] = None

    def attach(self, transport: Transport) -> None:
        transport.on(TransportEvent.LOAD, self.on_load)
        transport.on(TransportEvent.ERROR, self.on_failure(TransportEvent.ERROR))
        transport.on(TransportEvent.ABORT, self.on_failure(TransportEvent.ABORT))

    def on_load(self, transport: Transport) -> None:
        result = _result_from(transport)
        outcome = Ok(result) if is_success(result.status) else Err(result)
        self._settle(TransportEvent.LOAD, outcome)

    def on_failure(self, event: TransportEvent) -> Callable[[Transport], None]:
        def callback(transport: Transport) -> None:
            self._settle(event, Err(_result_from(transport)))
        return callback

    def _settle(self, event: TransportEvent, outcome: Outcome) -> None:
        if self._terminal is not None:
            self.logger.debug(
                "Dropping %s event for %s %s, already settled by %s",
                event.value, self.config.method.value, self.config.url, self._terminal.value,
            )
            return
        self._terminal = event
        self.logger.debug(
            "%s %s settled by %s with status %s",
            self.config.method.value, self.config.url, event.value, outcome.response.status,
        )
        self.loop.call_soon_threadsafe(self._resolve, outcome)

    def _resolve(self, outcome: Outcome) -> None:
        if not self.future.done():
            self.future.set_result(outcome)


def _result_from(transport: Transport) -> ResponseResult:
    return ResponseResult(
        status=transport.status or 0,
        data=transport.response or "",
        headers=dict(transport.response_headers or {}),
    )


def prepare_payload(config: RequestConfig) -> Tuple[Dict[str, str], Optional[str]]:
    """
    Return the headers and payload the transport should receive for ``config``.

    POST and PUT serialize the body to JSON text and always carry
    ``Content-Type: application/json``; GET and DELETE never carry a body.
    """
    headers = dict(config.headers)
    payload: Optional[str] = None
    if config.method.has_body:
        for key in [k for k in headers if k.lower() == "content-type"]:
            del headers[key]
        headers["Content-Type"] = JSON_CONTENT_TYPE
        if config.body is not None:
            payload = json.dumps(config.body)
    return headers, payload


class RequestExecutor:
    """
    Drives a request from its configuration to a settled outcome.

    ``transport`` is a factory called once per issued request, so no two
    requests share a transport handle or a future.
    """

    def __init__(
        self,
        transport: Optional[TransportFactory] = None,
        logger: Optional[logging.Logger] = None,
        cookies: Optional[CookieJar] = None,
    ) -> None:
        self.logger = logger or get_logger()
        self.cookies = cookies if cookies is not None else CookieJar()
        self.transport_factory = transport or self._default_transport

    def _default_transport(self) -> Transport:
        return H11Transport(cookies=self.cookies, logger=self.logger)

    def issue(self, config: RequestConfig) -> CancellableRequest:
        loop = asyncio.get_running_loop()
        headers, payload = prepare_payload(config)
        pending = _PendingRequest(config, loop, self.logger)
        transport = self.transport_factory()
        pending.attach(transport)

        transport.open(config.method.value, config.url)
        transport.with_credentials = config.with_credentials
        for name, value in headers.items():
            transport.set_header(name, value)
        self.logger.debug("Issuing %s %s", config.method.value, config.url)
        transport.send(payload)
        return CancellableRequest(config, pending.future, transport)


__all__ = ["CancellableRequest", "RequestExecutor", "TransportFactory", "prepare_payload"]
