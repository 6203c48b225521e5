"""
VeriChain Access Control
Explicit role tables and the authorization check shared by all contracts.
"""

from typing import Dict, Iterable, List, Type

from verichain.services.errors import Revert, Unauthorized


class RoleTable:
    """Named, insertion-ordered set of addresses holding a role."""

    def __init__(self, name: str, members: Iterable[str] = ()):
        self.name = name
        self._members: Dict[str, bool] = {}
        for member in members:
            self.grant(member)

    def grant(self, account: str) -> bool:
        """Add an account. Returns False if it already held the role."""
        if account in self._members:
            return False
        self._members[account] = True
        return True

    def revoke(self, account: str) -> bool:
        """Remove an account. Returns False if it did not hold the role."""
        return self._members.pop(account, None) is not None

    def members(self) -> List[str]:
        return list(self._members)

    def __contains__(self, account: object) -> bool:
        return account in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self) -> str:
        return f"RoleTable({self.name!r}, {len(self)} members)"


def authorize(account: str, *tables: RoleTable, error: Type[Revert] = Unauthorized) -> None:
    """Raise ``error`` unless ``account`` holds at least one of the roles."""
    if not any(account in table for table in tables):
        raise error(account)
