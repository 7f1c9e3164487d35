"""Authorizer shared by the web API: backend, roles and cookies from config."""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import Response

import config
from httpauth import Authorizer, PasswordHasher, SessionJar, UserNotFound, UserRecord, create_backend

logger = logging.getLogger("httpauth.web")

_BACKEND_TARGETS = {
    "file": config.AUTH_FILE,
    "sql": config.DATABASE_URL,
    "keyvalue": config.REDIS_URL,
    "document": config.MONGO_URL,
}

backend = create_backend(config.AUTH_BACKEND, _BACKEND_TARGETS.get(config.AUTH_BACKEND, ""))

authorizer = Authorizer(
    backend,
    config.AUTH_SECRET_KEY,
    config.AUTH_DEFAULT_ROLE,
    config.AUTH_ROLES,
    hasher=PasswordHasher(rounds=config.BCRYPT_ROUNDS),
    jar=SessionJar(
        config.AUTH_SECRET_KEY,
        max_age=config.COOKIE_MAX_AGE,
        secure=config.COOKIE_SECURE,
    ),
)

# Highest ranked role; the admin pages require it
ADMIN_ROLE = authorizer.roles.names()[-1]


def redirect_to(response: Response, url: str) -> None:
    """Turn the pending response into a 303 redirect (cookies already set on it stay)."""
    response.status_code = 303
    response.headers["location"] = url


async def init_auth() -> None:
    """Open the backend and create the initial admin if configured."""
    if config.AUTH_BACKEND == "file":
        Path(config.AUTH_FILE).touch(exist_ok=True)
    await backend.open()
    if not config.INITIAL_ADMIN_PASSWORD:
        return
    try:
        await backend.get(config.INITIAL_ADMIN_USERNAME)
        return
    except UserNotFound:
        pass
    # Bootstrap: store the admin record, then set password and email through update
    await backend.save(UserRecord(username=config.INITIAL_ADMIN_USERNAME, role=ADMIN_ROLE))
    await authorizer.update(
        None,
        None,
        config.INITIAL_ADMIN_USERNAME,
        config.INITIAL_ADMIN_PASSWORD,
        config.INITIAL_ADMIN_EMAIL,
    )
    logger.info("Created initial admin %s", config.INITIAL_ADMIN_USERNAME)
