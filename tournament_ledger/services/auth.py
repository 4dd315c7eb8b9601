"""Administrative authority check.

Caller authentication happens upstream; the ledger only asks whether an
already-identified caller may run administrative operations.
"""

from typing import Iterable, Protocol

from tournament_ledger.config import Settings


class AdminAuthority(Protocol):
    """Collaborator answering whether a caller holds administrative authority."""

    def is_admin(self, caller: str) -> bool: ...


class StaticAdminAuthority:
    """Fixed set of administrator identities."""

    def __init__(self, admin_ids: Iterable[str]):
        self._admins = frozenset(a for a in admin_ids if a)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticAdminAuthority":
        return cls(settings.admin_id_list)

    def is_admin(self, caller: str) -> bool:
        return caller in self._admins

    def __repr__(self) -> str:
        return f"StaticAdminAuthority(admins={len(self._admins)})"
