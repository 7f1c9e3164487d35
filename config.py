"""Configuration for httpauth and the example server."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Cookie signing key. Changing it invalidates every outstanding session.
AUTH_SECRET_KEY = os.getenv("AUTH_SECRET_KEY", "change-me-in-production-use-long-random-string")
COOKIE_MAX_AGE = int(os.getenv("COOKIE_MAX_AGE", str(86400 * 30)))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")


# Roles as comma-separated name:rank pairs, e.g. "user:40,admin:80"
def _parse_roles(value: str) -> dict[str, int]:
    if not value:
        return {}
    result = {}
    for item in value.split(","):
        name, _, rank = item.partition(":")
        name = name.strip().lower()
        if not name:
            continue
        try:
            result[name] = int(rank.strip())
        except ValueError:
            continue
    return result


AUTH_ROLES = _parse_roles(os.getenv("AUTH_ROLES", "user:40,admin:80"))
AUTH_DEFAULT_ROLE = os.getenv("AUTH_DEFAULT_ROLE", "user").strip().lower()

# Password hashing work factor
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Storage backend: file, sql, keyvalue or document
AUTH_BACKEND = os.getenv("AUTH_BACKEND", "file").strip().lower()
AUTH_FILE = os.getenv("AUTH_FILE", str(Path(__file__).parent / "auth.json"))
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'httpauth.db'}",
)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017/httpauth")

# Example server admin bootstrap
INITIAL_ADMIN_USERNAME = os.getenv("INITIAL_ADMIN_USERNAME", "admin")
INITIAL_ADMIN_PASSWORD = os.getenv("INITIAL_ADMIN_PASSWORD", "")  # Set to bootstrap first admin
INITIAL_ADMIN_EMAIL = os.getenv("INITIAL_ADMIN_EMAIL", "admin@localhost")
