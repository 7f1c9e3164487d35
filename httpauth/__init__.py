"""Cookie/session based authentication and role authorization."""
from httpauth.authorizer import Authorizer
from httpauth.backends import (
    DocumentUserStore,
    FileUserStore,
    KeyValueUserStore,
    SQLUserStore,
    UserRecord,
    UserStore,
    create_backend,
)
from httpauth.errors import (
    AlreadyAuthenticated,
    AuthError,
    DeleteOfMissingUser,
    HashingError,
    InsufficientRole,
    InvalidUserData,
    MissingBackend,
    NotLoggedIn,
    PasswordMismatch,
    SessionUnavailable,
    StoreError,
    UnknownRole,
    UserAlreadyExists,
    UserNotFound,
)
from httpauth.passwords import PasswordHasher
from httpauth.roles import RoleTable
from httpauth.sessions import CookieSession, SessionJar

__version__ = "1.0.0"

__all__ = [
    "AlreadyAuthenticated",
    "AuthError",
    "Authorizer",
    "CookieSession",
    "DeleteOfMissingUser",
    "DocumentUserStore",
    "FileUserStore",
    "HashingError",
    "InsufficientRole",
    "InvalidUserData",
    "KeyValueUserStore",
    "MissingBackend",
    "NotLoggedIn",
    "PasswordHasher",
    "PasswordMismatch",
    "RoleTable",
    "SQLUserStore",
    "SessionJar",
    "SessionUnavailable",
    "StoreError",
    "UnknownRole",
    "UserAlreadyExists",
    "UserNotFound",
    "UserRecord",
    "UserStore",
    "create_backend",
]
