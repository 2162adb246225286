"""httpfuture public API surface.

:func:`http` binds a URL and hands back verb helpers; each verb returns a
:class:`CancellableRequest` that can be awaited or aborted.  The module level
:func:`get`, :func:`post`, :func:`put` and :func:`delete` shortcuts build a
throwaway client for one-off requests."""

from typing import Any

from .client import HTTPClient, http
from .cookies import Cookie, CookieJar
from .executor import CancellableRequest, RequestExecutor
from .models import Err, Method, Ok, Outcome, RequestConfig, ResponseResult
from .transport import H11Transport, ReadyState, Transport, TransportEvent
from .errors import (
    HTTPFutureError,
    RequestError,
    ResponseError,
    ParseError,
    RequestRejected,
)


def get(url: str, **kwargs) -> CancellableRequest:
    """Issue a single GET request to ``url``."""
    headers = kwargs.pop("headers", None)
    return http(url, **kwargs).get(headers=headers)


def post(url: str, body: Any = None, **kwargs) -> CancellableRequest:
    """Issue a single POST request with a JSON body."""
    headers = kwargs.pop("headers", None)
    return http(url, **kwargs).post(body, headers=headers)


def put(url: str, body: Any = None, **kwargs) -> CancellableRequest:
    """Issue a single PUT request with a JSON body."""
    headers = kwargs.pop("headers", None)
    return http(url, **kwargs).put(body, headers=headers)


def delete(url: str, **kwargs) -> CancellableRequest:
    """Issue a single DELETE request to ``url``."""
    headers = kwargs.pop("headers", None)
    return http(url, **kwargs).delete(headers=headers)


__all__ = [
    "http",
    "HTTPClient",
    "RequestExecutor",
    "CancellableRequest",
    "RequestConfig",
    "ResponseResult",
    "Method",
    "Ok",
    "Err",
    "Outcome",
    "Transport",
    "TransportEvent",
    "ReadyState",
    "H11Transport",
    "CookieJar",
    "Cookie",
    "HTTPFutureError",
    "RequestError",
    "ResponseError",
    "ParseError",
    "RequestRejected",
    "get",
    "post",
    "put",
    "delete",
]


__version__ = "0.1.0"
