import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ParseError


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    @classmethod
    def coerce(cls, value: Union["Method", str]) -> "Method":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unsupported method: {value!r}") from None

    @property
    def has_body(self) -> bool:
        return self in (Method.POST, Method.PUT)


@dataclass(frozen=True)
class RequestConfig:
    """
    Everything needed to issue one request. Headers are copied on
    construction, so mutating the caller's mapping afterwards has no effect.
    """
    method: Method
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    with_credentials: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url:
            raise ValueError(f"Invalid URL: {self.url!r}")
        object.__setattr__(self, "method", Method.coerce(self.method))
        object.__setattr__(self, "headers", dict(self.headers or {}))
        object.__setattr__(self, "with_credentials", bool(self.with_credentials))


@dataclass(frozen=True)
class ResponseResult:
    """
    Result of a finished request, handed out for both success and failure.
    """
    status: int
    data: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True if status code is in the 200-299 range."""
        return is_success(self.status)

    def json(self) -> Any:
        """
        Parse ``data`` as JSON text. Parsed on every call, never cached.
        Raises ParseError if the body is not valid JSON.
        """
        try:
            return json.loads(self.data)
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Failed to parse JSON: {exc}") from exc

    def __repr__(self) -> str:
        return f"<ResponseResult [{self.status}] data={self.data[:40]!r}>"


@dataclass(frozen=True)
class Ok:
    response: ResponseResult

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    response: ResponseResult

    @property
    def is_ok(self) -> bool:
        return False


Outcome = Union[Ok, Err]


def is_success(status: Optional[int]) -> bool:
    return status is not None and 200 <= status < 300


__all__ = ["Method", "RequestConfig", "ResponseResult", "Ok", "Err", "Outcome", "is_success"]
