from typing import Any


class HTTPFutureError(Exception):
    """Base exception for the httpfuture package."""


class RequestError(HTTPFutureError):
    """Raised when request building or sending fails."""


class ResponseError(HTTPFutureError):
    """Raised when response reading or decoding fails."""


class ParseError(ResponseError):
    """Raised when a response body is not valid JSON text."""


class RequestRejected(HTTPFutureError):
    """Raised when awaiting a request that settled with an error outcome.

    The rejection carries the ordinary response object, so handlers can branch
    on ``status`` and read ``data`` exactly as they would for a success.
    """

    def __init__(self, response) -> None:
        super().__init__(f"Request rejected with status {response.status}")
        self.response = response

    @property
    def status(self) -> int:
        return self.response.status

    @property
    def data(self) -> str:
        return self.response.data

    def json(self) -> Any:
        return self.response.json()
