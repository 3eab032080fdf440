"""
Access control for TEVA contracts.

Privileged operations receive the authenticated caller identity as an
explicit argument and check it against the owner or a role set held in
the contract's own state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from .vesting_exceptions import AuthorizationError, ConfigurationError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def normalize_address(address: str) -> str:
    """Normalize address to lowercase."""
    return address.strip().lower()


def is_zero_address(address: str | None) -> bool:
    return not address or normalize_address(address) == ZERO_ADDRESS


class Role(Enum):
    """Ledger roles."""
    MINTER = "minter"
    BURNER = "burner"


@dataclass
class Ownable:
    """Single-owner capability."""

    owner: str = ""

    def __post_init__(self) -> None:
        if is_zero_address(self.owner):
            raise ConfigurationError("Ownable: owner is the zero address")
        self.owner = normalize_address(self.owner)

    def is_owner(self, caller: str) -> bool:
        return normalize_address(caller) == self.owner

    def require_owner(self, caller: str) -> None:
        if not self.is_owner(caller):
            raise AuthorizationError(
                "Ownable: caller is not the owner",
                details={"caller": normalize_address(caller)},
            )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.require_owner(caller)
        if is_zero_address(new_owner):
            raise ConfigurationError("Ownable: new owner is the zero address")
        previous = self.owner
        self.owner = normalize_address(new_owner)
        logger.info(
            "Ownership transferred",
            extra={
                "event": "access_control.ownership_transferred",
                "previous_owner": previous[:10],
                "new_owner": self.owner[:10],
            },
        )


@dataclass
class RoleBasedAccessControl(Ownable):
    """
    Owner plus role membership sets.

    Only the owner can grant or revoke roles. Every change is appended to
    ``role_changes`` as an audit trail.
    """

    roles: dict[str, set[str]] = field(default_factory=dict)
    role_changes: list[dict] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__post_init__()
        for role in Role:
            self.roles.setdefault(role.value, set())

    def grant_role(self, caller: str, role: Role, address: str) -> None:
        self.require_owner(caller)
        if is_zero_address(address):
            raise ConfigurationError(f"AccessControl: cannot grant {role.value} to the zero address")
        address_norm = normalize_address(address)
        self.roles[role.value].add(address_norm)
        self._audit("grant", role, address_norm)

    def revoke_role(self, caller: str, role: Role, address: str) -> None:
        self.require_owner(caller)
        address_norm = normalize_address(address)
        self.roles[role.value].discard(address_norm)
        self._audit("revoke", role, address_norm)

    def has_role(self, role: Role, address: str) -> bool:
        return normalize_address(address) in self.roles.get(role.value, set())

    def require_role(self, role: Role, caller: str) -> None:
        if not self.has_role(role, caller):
            raise AuthorizationError(
                f"AccessControl: caller is not a {role.value}",
                details={"caller": normalize_address(caller), "role": role.value},
            )

    def get_role_members(self, role: Role) -> set[str]:
        return set(self.roles.get(role.value, set()))

    def _audit(self, action: str, role: Role, address: str) -> None:
        self.role_changes.append({
            "action": action,
            "role": role.value,
            "address": address,
            "timestamp": time.time(),
        })
        logger.info(
            "Role %s",
            "granted" if action == "grant" else "revoked",
            extra={
                "event": f"rbac.role_{action}",
                "role": role.value,
                "address": address[:10],
            },
        )
