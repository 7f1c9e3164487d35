"""Role table: role names mapped to integer ranks."""
from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from httpauth.errors import UnknownRole


class RoleTable:
    """Immutable name -> rank mapping with a default role.

    A higher rank grants everything a lower rank does.
    """

    def __init__(self, roles: Mapping[str, int], default_role: str):
        for name, rank in roles.items():
            if not name:
                raise ValueError("Role names must be non-empty")
            if isinstance(rank, bool) or not isinstance(rank, int) or rank <= 0:
                raise ValueError(f"Role {name!r} needs a positive integer rank, got {rank!r}")
        self._roles = MappingProxyType(dict(roles))
        if default_role not in self._roles:
            raise UnknownRole(f"default role {default_role!r} is not in the role table")
        self.default_role = default_role

    def __contains__(self, name: object) -> bool:
        return name in self._roles

    def __len__(self) -> int:
        return len(self._roles)

    def names(self) -> list[str]:
        """Role names ordered by rank, lowest first."""
        return sorted(self._roles, key=self._roles.__getitem__)

    def rank(self, name: str) -> int:
        try:
            return self._roles[name]
        except KeyError:
            raise UnknownRole(f"unknown role {name!r}") from None

    def at_least(self, role: str, required: str) -> bool:
        """True if ``role`` is at least as privileged as ``required``."""
        return self.rank(role) >= self.rank(required)

    def resolve(self, name: str) -> str:
        """Return ``name`` if configured, the default role if empty."""
        if not name:
            return self.default_role
        self.rank(name)
        return name

    def as_dict(self) -> dict[str, int]:
        return dict(self._roles)
