import logging
from typing import Any, Dict, Optional

from .cookies import CookieJar
from .executor import CancellableRequest, RequestExecutor, TransportFactory
from .models import Method, RequestConfig


class HTTPClient:
    """
    Verb helpers bound to a single URL.

    Every call issues an independent request with its own transport handle
    and its own future, so calling several verbs on one client is safe.

    Example:
        client = http("https://api.example.com/items/1")
        try:
            resp = await client.get(headers={"Accept": "application/json"})
            item = resp.json()
        except RequestRejected as exc:
            print(exc.status, exc.data)
    """

    def __init__(
        self,
        url: str,
        *,
        transport: Optional[TransportFactory] = None,
        with_credentials: bool = False,
        cookies: Optional[CookieJar] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url
        self.with_credentials = with_credentials
        self.executor = RequestExecutor(transport=transport, logger=logger, cookies=cookies)

    def request(
        self,
        method: Method,
        *,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        with_credentials: Optional[bool] = None,
    ) -> CancellableRequest:
        config = RequestConfig(
            method=method,
            url=self.url,
            headers=headers or {},
            body=body,
            with_credentials=self.with_credentials if with_credentials is None else with_credentials,
        )
        return self.executor.issue(config)

    def get(self, headers: Optional[Dict[str, str]] = None, **kwargs) -> CancellableRequest:
        return self.request(Method.GET, headers=headers, **kwargs)

    def post(self, body: Any = None, headers: Optional[Dict[str, str]] = None, **kwargs) -> CancellableRequest:
        return self.request(Method.POST, body=body, headers=headers, **kwargs)

    def put(self, body: Any = None, headers: Optional[Dict[str, str]] = None, **kwargs) -> CancellableRequest:
        return self.request(Method.PUT, body=body, headers=headers, **kwargs)

    def delete(self, headers: Optional[Dict[str, str]] = None, **kwargs) -> CancellableRequest:
        return self.request(Method.DELETE, headers=headers, **kwargs)

    @property
    def cookies(self) -> CookieJar:
        return self.executor.cookies

    def __repr__(self) -> str:
        return f"<HTTPClient url={self.url!r}>"


def http(url: str, **kwargs) -> HTTPClient:
    """Return an :class:`HTTPClient` bound to ``url``."""
    return HTTPClient(url, **kwargs)


__all__ = ["HTTPClient", "http"]
