"""Errors raised by the authorizer, session jar and user stores."""
from __future__ import annotations


class AuthError(Exception):
    """Base class for every httpauth failure."""


class AlreadyAuthenticated(AuthError):
    """The auth session already carries the username being logged in."""


class UserNotFound(AuthError):
    """No user with the given username exists in the store."""


class DeleteOfMissingUser(UserNotFound):
    """A delete named a user the store does not have.

    Callers that treat a repeated delete as harmless can catch this one alone.
    """


class PasswordMismatch(AuthError):
    """The password does not verify against the stored hash."""


class UserAlreadyExists(AuthError):
    """Registration named a username that is taken."""


class UnknownRole(AuthError):
    """A role name is not in the role table."""


class NotLoggedIn(AuthError):
    """The request carries no username claim."""


class InsufficientRole(AuthError):
    """The user's role ranks below the required role."""


class SessionUnavailable(AuthError):
    """A session cookie failed to decode (bad signature, expired, rotated key)."""


class InvalidUserData(AuthError, ValueError):
    """A user record handed to register is incomplete or carries a hash."""


class HashingError(AuthError):
    """The password hasher failed."""


class StoreError(AuthError):
    """A user store backend failed."""


class MissingBackend(StoreError):
    """The storage file for a backend does not exist."""
