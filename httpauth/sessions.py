"""Signed client-side cookie sessions: auth, messages and redirects."""
from __future__ import annotations

import logging
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any, Optional

from itsdangerous import BadData, URLSafeTimedSerializer
from starlette.requests import Request
from starlette.responses import Response

from httpauth.errors import SessionUnavailable

logger = logging.getLogger("httpauth.sessions")

AUTH = "auth"
MESSAGES = "messages"
REDIRECTS = "redirects"

FLASH_KEY = "_flash"
USERNAME_KEY = "username"

# Browsers drop cookies past about 4KB
MAX_MESSAGES = 10

# Attribute on request.state holding the sessions decoded for that request
_STATE_ATTR = "httpauth_sessions"


class CookieSession(MutableMapping):
    """One decoded cookie. Mapping of JSON values plus a flash queue."""

    def __init__(self, name: str, data: Optional[dict] = None, is_new: bool = True):
        self.name = name
        self._data: dict[str, Any] = dict(data or {})
        self.is_new = is_new
        self.modified = False
        self.expired = False
        self.undecodable = False

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.modified = True
        self.expired = False

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.modified = True

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"CookieSession({self.name!r}, {self._data!r}, is_new={self.is_new})"

    def add_flash(self, value: Any, limit: Optional[int] = None) -> None:
        """Queue a value; with ``limit`` only the newest ``limit`` are kept."""
        queue = list(self._data.get(FLASH_KEY, []))
        queue.append(value)
        if limit is not None:
            queue = queue[-limit:]
        self[FLASH_KEY] = queue

    def flashes(self) -> list:
        """Return every queued flash, oldest first, and clear the queue."""
        values = self._data.pop(FLASH_KEY, [])
        if values:
            self.modified = True
        return list(values)

    def expire(self) -> None:
        """Drop the data and tell the client to discard the cookie."""
        self._data.clear()
        self.modified = True
        self.expired = True


def _discard_set_cookie(response: Response, name: str) -> None:
    """Remove any Set-Cookie header already written for ``name``."""
    prefix = f"{name}=".encode("latin-1")
    response.raw_headers[:] = [
        (key, value)
        for key, value in response.raw_headers
        if not (key == b"set-cookie" and value.startswith(prefix))
    ]


class SessionJar:
    """Encodes, decodes and persists the three named cookie sessions.

    Cookie values are HMAC-signed, timestamped JSON. Each cookie name uses its
    own salt, so a value lifted from one cookie does not decode as another.
    Decoded sessions are cached on ``request.state``, so every call made while
    handling one request shares the same handles.
    """

    def __init__(
        self,
        secret_key: str | bytes,
        max_age: int = 86400 * 30,
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "lax",
        path: str = "/",
    ):
        if not secret_key:
            raise ValueError("A cookie signing key is required")
        self._secret_key = secret_key
        self.max_age = max_age
        self.secure = secure
        self.httponly = httponly
        self.samesite = samesite
        self.path = path

    def _serializer(self, name: str) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(self._secret_key, salt=f"httpauth.{name}")

    def _decode(self, name: str, value: Optional[str]) -> CookieSession:
        if value is None:
            return CookieSession(name)
        try:
            data = self._serializer(name).loads(value, max_age=self.max_age)
        except BadData as e:
            logger.warning("Could not decode %s cookie: %s", name, e)
            data = None
        if not isinstance(data, dict):
            session = CookieSession(name)
            session.undecodable = True
            return session
        return CookieSession(name, data, is_new=False)

    def _cache(self, request: Request) -> dict[str, CookieSession]:
        sessions = getattr(request.state, _STATE_ATTR, None)
        if sessions is None:
            sessions = {}
            setattr(request.state, _STATE_ATTR, sessions)
        return sessions

    def get(self, request: Request, name: str, strict: bool = False) -> CookieSession:
        """Return the session ``name`` for this request.

        A missing cookie yields a new empty session. A cookie that fails to
        decode raises SessionUnavailable when ``strict``, otherwise it is
        replaced by a new empty session.
        """
        sessions = self._cache(request)
        session = sessions.get(name)
        if session is None:
            session = self._decode(name, request.cookies.get(name))
            sessions[name] = session
        if strict and session.undecodable and not session.modified:
            raise SessionUnavailable(f"{name} session could not be decoded. Possible restart of server")
        return session

    def save(self, response: Response, session: CookieSession) -> None:
        """Attach exactly one Set-Cookie header for ``session`` to ``response``."""
        _discard_set_cookie(response, session.name)
        if session.expired:
            response.delete_cookie(
                session.name,
                path=self.path,
                secure=self.secure,
                httponly=self.httponly,
                samesite=self.samesite,
            )
        else:
            response.set_cookie(
                session.name,
                self._serializer(session.name).dumps(dict(session)),
                max_age=self.max_age,
                path=self.path,
                secure=self.secure,
                httponly=self.httponly,
                samesite=self.samesite,
            )
        session.modified = False
        session.undecodable = False

    @contextmanager
    def session(self, request: Request, response: Response, name: str, strict: bool = False):
        """Yield a session and persist it on exit if it changed, error or not."""
        session = self.get(request, name, strict=strict)
        try:
            yield session
        finally:
            if session.modified:
                self.save(response, session)

    # auth

    def username(self, request: Request, strict: bool = False) -> Optional[str]:
        return self.get(request, AUTH, strict=strict).get(USERNAME_KEY)

    def set_username(self, request: Request, response: Response, username: str) -> None:
        with self.session(request, response, AUTH) as session:
            session[USERNAME_KEY] = username

    def clear_username(self, request: Request, response: Response) -> None:
        with self.session(request, response, AUTH) as session:
            session.expire()

    # messages

    def push_message(self, request: Request, response: Response, text: str) -> None:
        with self.session(request, response, MESSAGES) as session:
            session.add_flash(text, limit=MAX_MESSAGES)

    def drain_messages(self, request: Request, response: Response) -> list[str]:
        with self.session(request, response, MESSAGES) as session:
            return [str(value) for value in session.flashes()]

    # redirects

    def push_redirect(self, request: Request, response: Response, path: str) -> None:
        """Record ``path`` unless an earlier page is already waiting."""
        with self.session(request, response, REDIRECTS) as session:
            if not session.get(FLASH_KEY):
                session.add_flash(path)

    def pop_oldest_redirect(self, request: Request, response: Response) -> Optional[str]:
        """Return the first path recorded since the last drain, draining the rest."""
        with self.session(request, response, REDIRECTS) as session:
            paths = session.flashes()
        return str(paths[0]) if paths else None
