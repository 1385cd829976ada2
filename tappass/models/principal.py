from __future__ import annotations

from dataclasses import dataclass

READER_ROLE = "reader"
ADMIN_ROLE = "admin"


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated operator identity extracted from a validated JWT.

    Carried through the request via FastAPI's dependency system.  The
    user_id becomes the ``reader_operator_id`` on every audit record the
    operator produces, so endpoints never take it from the request body.
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles
