from typing import List, Optional, Tuple

import pytest

from httpfuture.transport import Transport, TransportEvent


class FakeTransport(Transport):
    """In-memory transport; tests decide when and how it finishes."""

    def __init__(self, respond: Optional[Tuple[int, str]] = None) -> None:
        super().__init__()
        self.respond = respond
        self.opened: Optional[Tuple[str, str]] = None
        self.headers = {}
        self.sent = False
        self.body: Optional[str] = None
        self.abort_calls = 0
        self.finished = False

    def open(self, method, url):
        self.opened = (method, url)

    def set_header(self, name, value):
        self.headers[name] = value

    def send(self, body=None):
        self.sent = True
        self.body = body
        if self.respond is not None:
            self.load(*self.respond)

    def load(self, status, body="", headers=None):
        if self.finished:
            return
        self.finished = True
        self.status = status
        self.response = body
        self.response_headers = dict(headers or {})
        self._dispatch(TransportEvent.LOAD)

    def fail(self):
        if self.finished:
            return
        self.finished = True
        self._reset_response()
        self._dispatch(TransportEvent.ERROR)

    def abort(self):
        self.abort_calls += 1
        if self.finished:
            return
        self.finished = True
        self._reset_response()
        self._dispatch(TransportEvent.ABORT)

    def fire(self, event):
        # Bypasses the single-event guard to exercise the executor's own one.
        self._dispatch(TransportEvent(event))


class FakeFactory:
    def __init__(self) -> None:
        self.respond: Optional[Tuple[int, str]] = None
        self.created: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(self.respond)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def fake():
    return FakeFactory()
