"""Cookie/session based authentication and role authorization.

The Authorizer holds no per-request state. Everything that changes between
requests lives in three signed cookies (``auth``, ``messages``,
``redirects``) or in the user store. Each operation takes the Starlette
request it is serving and the response that will be sent back, and writes
updated cookies to that response on every path that touched a session,
failures included.

A client is anonymous (no username in the auth cookie), authenticated (the
username still exists in the store) or stale (the user was deleted). The
first check that sees a stale session clears the auth cookie.

Messages for the user (bad credentials, missing privileges, logout) are
queued in the messages cookie and read once via ``messages``. When a check
fails with ``capture_redirect`` set, the requested path is recorded and the
next successful login redirects there instead of its own destination.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from httpauth.backends.base import UserRecord, UserStore
from httpauth.errors import (
    AlreadyAuthenticated,
    InsufficientRole,
    InvalidUserData,
    NotLoggedIn,
    PasswordMismatch,
    SessionUnavailable,
    StoreError,
    UserAlreadyExists,
    UserNotFound,
)
from httpauth.passwords import PasswordHasher
from httpauth.roles import RoleTable
from httpauth.sessions import AUTH, USERNAME_KEY, SessionJar

logger = logging.getLogger("httpauth.authorizer")

MSG_INVALID_CREDENTIALS = "Invalid username or password."
MSG_USERNAME_TAKEN = "Username has been taken."
MSG_LOGIN_REQUIRED = "Log in to do that."
MSG_INSUFFICIENT_ROLE = "You don't have sufficient privileges."
MSG_LOGGED_OUT = "Logged out."
MSG_NO_SUCH_USER = "User doesn't exist."

SEE_OTHER = 303


class Authorizer:
    """Login, logout, registration and authorization over a UserStore.

    One instance is shared by every request. The role table and hasher are
    fixed at construction. Constructing with a default role missing from
    ``roles`` raises UnknownRole.
    """

    def __init__(
        self,
        backend: UserStore,
        secret_key: str | bytes,
        default_role: str,
        roles: Mapping[str, int],
        *,
        hasher: Optional[PasswordHasher] = None,
        jar: Optional[SessionJar] = None,
    ):
        self.backend = backend
        self.roles = RoleTable(roles, default_role)
        self.hasher = hasher or PasswordHasher()
        self.jar = jar or SessionJar(secret_key)

    def _message(self, request: Optional[Request], response: Optional[Response], text: str) -> None:
        if request is None or response is None:
            return
        self.jar.push_message(request, response, text)

    def _go_back(self, request: Request, response: Response, with_message: bool = True) -> None:
        """Remember the requested page for the next login."""
        self.jar.push_redirect(request, response, request.url.path)
        if with_message:
            self.jar.push_message(request, response, MSG_LOGIN_REQUIRED)

    async def register(
        self,
        request: Optional[Request],
        response: Optional[Response],
        record: UserRecord,
        password: str,
    ) -> UserRecord:
        """Save a new user. Does not log them in.

        ``record.role`` may be empty (default role) or a configured role.
        ``request``/``response`` may be None for administrative use, in which
        case no messages are queued.
        """
        if not record.username or not record.email:
            raise InvalidUserData("username and email are required")
        if not password:
            raise InvalidUserData("password is required")
        if record.password_hash:
            raise InvalidUserData("password hash is derived from the password and must be empty")

        try:
            await self.backend.get(record.username)
        except UserNotFound:
            pass
        else:
            self._message(request, response, MSG_USERNAME_TAKEN)
            raise UserAlreadyExists(f"user {record.username!r} already exists")

        role = self.roles.resolve(record.role)
        user = record.copy(
            role=role,
            password_hash=self.hasher.hash(record.username, password),
        )
        try:
            await self.backend.save(user)
        except StoreError as e:
            logger.exception("Saving new user %s failed", record.username)
            self._message(request, response, str(e))
            raise
        logger.info("Registered user %s (role %s)", user.username, role)
        return user.copy(password_hash="")

    async def login(
        self,
        request: Request,
        response: Response,
        username: str,
        password: str,
        destination: str = "/",
    ) -> str:
        """Log a user in and redirect (303) to a recorded page or ``destination``.

        Returns the destination used. An unknown user and a wrong password
        queue the same message and only differ in the exception raised.
        """
        if self.jar.username(request) == username:
            raise AlreadyAuthenticated(f"{username} is already authenticated")

        try:
            user = await self.backend.get(username)
        except UserNotFound:
            self.hasher.dummy_verify()
            self._message(request, response, MSG_INVALID_CREDENTIALS)
            logger.warning("Login failed for %s: user not found", username)
            raise
        if not self.hasher.verify(user.password_hash, username, password):
            self._message(request, response, MSG_INVALID_CREDENTIALS)
            logger.warning("Login failed for %s: password doesn't match", username)
            raise PasswordMismatch(f"password doesn't match for {username!r}")

        self.jar.set_username(request, response, username)
        recorded = self.jar.pop_oldest_redirect(request, response)
        if recorded:
            destination = recorded
        response.status_code = SEE_OTHER
        response.headers["location"] = destination
        logger.info("Logged in %s, redirecting to %s", username, destination)
        return destination

    async def update(
        self,
        request: Optional[Request],
        response: Optional[Response],
        username: str = "",
        password: str = "",
        email: str = "",
    ) -> UserRecord:
        """Change a user's password and/or email. Empty values are left alone.

        With no ``username`` the logged in user is updated. The role is never
        changed here.
        """
        if not username:
            username = self.jar.username(request) if request is not None else None
            if not username:
                raise NotLoggedIn("not logged in")

        try:
            user = await self.backend.get(username)
        except UserNotFound:
            self._message(request, response, MSG_NO_SUCH_USER)
            raise

        updated = user.copy(
            email=email or user.email,
            password_hash=self.hasher.hash(username, password) if password else user.password_hash,
        )
        try:
            await self.backend.save(updated)
        except StoreError as e:
            logger.exception("Saving user %s failed", username)
            self._message(request, response, str(e))
            raise
        logger.info("Updated user %s", username)
        return updated.copy(password_hash="")

    async def authorize(self, request: Request, response: Response, capture_redirect: bool = False) -> str:
        """Return the logged in username or raise.

        SessionUnavailable: the auth cookie didn't decode (key rotated or
        tampered). NotLoggedIn: no username claim. UserNotFound: the claimed
        user is gone; the auth cookie is cleared. With ``capture_redirect``
        the request path is recorded for the next login.
        """
        try:
            auth = self.jar.get(request, AUTH, strict=True)
        except SessionUnavailable:
            if capture_redirect:
                self._go_back(request, response, with_message=False)
            raise

        username = auth.get(USERNAME_KEY)
        if not username:
            if capture_redirect:
                self._go_back(request, response)
            raise NotLoggedIn("user not logged in")

        try:
            await self.backend.get(username)
        except UserNotFound:
            logger.warning("Session names missing user %s, clearing it", username)
            self.jar.clear_username(request, response)
            if capture_redirect:
                self._go_back(request, response)
            raise
        return username

    async def authorize_role(
        self,
        request: Request,
        response: Response,
        role: str,
        capture_redirect: bool = False,
    ) -> UserRecord:
        """Authorize, then require a role at least as privileged as ``role``.

        An unknown ``role`` raises UnknownRole before any cookie is read.
        """
        self.roles.rank(role)
        username = await self.authorize(request, response, capture_redirect)
        user = await self.backend.get(username)
        if user.role not in self.roles:
            logger.warning("User %s has unconfigured role %r", username, user.role)
        if user.role not in self.roles or not self.roles.at_least(user.role, role):
            self._message(request, response, MSG_INSUFFICIENT_ROLE)
            raise InsufficientRole(f"{username} ({user.role or 'no role'}) lacks role {role}")
        return user.copy(password_hash="")

    async def current_user(self, request: Request, response: Response) -> UserRecord:
        """Return the logged in user's record (without its hash)."""
        username = await self.authorize(request, response)
        user = await self.backend.get(username)
        return user.copy(password_hash="")

    async def logout(self, request: Request, response: Response) -> None:
        """Clear the auth cookie and queue a logged out message."""
        username = self.jar.username(request)
        self.jar.clear_username(request, response)
        self.jar.push_message(request, response, MSG_LOGGED_OUT)
        if username:
            logger.info("Logged out %s", username)

    def messages(self, request: Request, response: Response) -> list[str]:
        """Return and clear the queued user messages."""
        return self.jar.drain_messages(request, response)

    async def delete_user(self, username: str) -> None:
        """Delete a user. A missing user raises DeleteOfMissingUser."""
        await self.backend.delete(username)
        logger.info("Deleted user %s", username)

    async def users(self) -> list[UserRecord]:
        return [user.copy(password_hash="") for user in await self.backend.list()]
