import re
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

_MAX_AGE_REGEX = re.compile(r"^-?\d+$")


def _parse_date(date_str: str) -> Optional[float]:
    try:
        dt = parsedate_to_datetime(date_str)
    except (TypeError, ValueError):
        return None
    return dt.timestamp() if dt else None


@dataclass
class Cookie:
    """A single stored cookie."""
    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: Optional[float] = None
    secure: bool = False
    httponly: bool = False
    host_only: bool = True

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires is None:
            return False
        return (now if now is not None else time.time()) >= self.expires

    def matches_domain(self, host: str) -> bool:
        host = host.lower()
        if self.host_only:
            return host == self.domain
        return host == self.domain or host.endswith("." + self.domain)

    def matches_path(self, path: str) -> bool:
        if path == self.path:
            return True
        if not path.startswith(self.path):
            return False
        return self.path.endswith("/") or path[len(self.path)] == "/"

    def matches(self, host: str, path: str, secure: bool) -> bool:
        if self.is_expired():
            return False
        if self.secure and not secure:
            return False
        return self.matches_domain(host) and self.matches_path(path)


class CookieJar:
    """
    Cookie store used when a request is sent with credentials.

    Cookies are keyed by (domain, path, name); a later Set-Cookie for the
    same key replaces the earlier one, and an already-expired one removes it.
    """

    def __init__(self) -> None:
        self._store: Dict[Tuple[str, str, str], Cookie] = {}

    def __len__(self) -> int:
        return len(self._store)

    def __iter__(self):
        return iter(list(self._store.values()))

    def set(
        self,
        name: str,
        value: str,
        domain: str,
        path: str = "/",
        expires: Optional[float] = None,
        secure: bool = False,
        httponly: bool = False,
        host_only: bool = True,
    ) -> None:
        cookie = Cookie(
            name=name,
            value=value,
            domain=domain.lower().lstrip("."),
            path=path or "/",
            expires=expires,
            secure=secure,
            httponly=httponly,
            host_only=host_only,
        )
        key = (cookie.domain, cookie.path, cookie.name)
        if cookie.is_expired():
            self._store.pop(key, None)
            return
        self._store[key] = cookie

    def clear(self) -> None:
        self._store.clear()

    @staticmethod
    def _default_path(path: str) -> str:
        if not path.startswith("/") or path.count("/") <= 1:
            return "/"
        return path[: path.rfind("/")]

    def _parse_set_cookie(self, header_value: str, host: str, request_path: str) -> Optional[Cookie]:
        parts = [p.strip() for p in header_value.split(";")]
        if not parts or "=" not in parts[0]:
            return None
        name, value = parts[0].split("=", 1)
        name = name.strip()
        if not name:
            return None
        cookie = Cookie(
            name=name,
            value=value.strip().strip('"'),
            domain=host,
            path=self._default_path(request_path),
        )
        max_age: Optional[float] = None
        for attr in parts[1:]:
            key, _, val = attr.partition("=")
            key = key.strip().lower()
            val = val.strip()
            if key == "domain" and val:
                domain = val.lower().lstrip(".")
                # Reject cookies for unrelated domains.
                if host != domain and not host.endswith("." + domain):
                    return None
                cookie.domain = domain
                cookie.host_only = False
            elif key == "path" and val.startswith("/"):
                cookie.path = val
            elif key == "expires" and val:
                cookie.expires = _parse_date(val)
            elif key == "max-age" and _MAX_AGE_REGEX.match(val):
                max_age = float(val)
            elif key == "secure":
                cookie.secure = True
            elif key == "httponly":
                cookie.httponly = True
        if max_age is not None:
            cookie.expires = time.time() + max_age
        return cookie

    def add_from_headers(self, url: str, headers: Iterable[Tuple[str, str]]) -> None:
        """Store every Set-Cookie header from a response to ``url``."""
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        for name, value in headers:
            if name.lower() != "set-cookie":
                continue
            cookie = self._parse_set_cookie(value, host, parsed.path or "/")
            if cookie is None:
                continue
            self.set(
                cookie.name,
                cookie.value,
                cookie.domain,
                path=cookie.path,
                expires=cookie.expires,
                secure=cookie.secure,
                httponly=cookie.httponly,
                host_only=cookie.host_only,
            )

    def _match_cookies(self, host: str, path: str, secure: bool) -> List[Cookie]:
        matched = [c for c in self._store.values() if c.matches(host, path, secure)]
        # Longer paths first, as browsers order them.
        matched.sort(key=lambda c: len(c.path), reverse=True)
        return matched

    def get_cookie_header(self, url: str) -> Optional[str]:
        parsed = urlparse(url)
        if not parsed.hostname:
            return None
        matched = self._match_cookies(
            parsed.hostname.lower(),
            parsed.path or "/",
            parsed.scheme == "https",
        )
        if not matched:
            return None
        return "; ".join(f"{c.name}={c.value}" for c in matched)


__all__ = ["Cookie", "CookieJar"]
