"""
Authorization Gate

Single decision point for every mutating (and tenant-scoped read)
operation. Services call ``require`` server-side; API clients only ever
receive the capability list computed here and never branch on raw roles.

Evaluation order for ``authorize``:
    1. no principal / inactive principal   -> deny(UNAUTHENTICATED)
    2. super admin / can_access_everything -> allow (short-circuits 3-5)
    3. resource tenant != principal tenant -> deny(TENANT_MISMATCH)
    4. role not in required roles          -> deny(WRONG_ROLE)
    5. permission set membership           -> deny(MISSING_PERMISSION)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from restrona.core.errors import AuthorizationError, DenyReason
from restrona.models import Permission, User, UserRole

logger = logging.getLogger(__name__)

RoleSpec = Union[UserRole, Iterable[UserRole], None]
PermissionSpec = Union[str, Permission, Iterable[Union[str, Permission]], None]


class PermissionMatch(str, Enum):
    """How a collection of required permissions is tested."""
    ONE = "one"  # single permission
    ANY = "any"
    ALL = "all"


@dataclass(frozen=True)
class Principal:
    """An authenticated staff member, resolved once per request."""
    user_id: str
    role: UserRole
    restaurant_id: Optional[int] = None
    permissions: frozenset = field(default_factory=frozenset)
    name: str = ""
    is_active: bool = True
    is_super_admin: bool = False
    can_access_everything: bool = False

    @property
    def has_global_access(self) -> bool:
        return (
            self.role == UserRole.SUPER_ADMIN
            or self.is_super_admin
            or self.can_access_everything
        )

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            user_id=user.id,
            role=user.role,
            restaurant_id=user.restaurant_id,
            permissions=frozenset(user.permissions or ()),
            name=user.name,
            is_active=bool(user.is_active),
            is_super_admin=bool(user.is_super_admin),
            can_access_everything=bool(user.can_access_everything),
        )


@dataclass(frozen=True)
class AuthDecision:
    allowed: bool
    reason: Optional[DenyReason] = None
    detail: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = AuthDecision(allowed=True)


def _deny(reason: DenyReason, detail: str) -> AuthDecision:
    return AuthDecision(allowed=False, reason=reason, detail=detail)


def _tags(permissions: PermissionSpec) -> list[str]:
    if permissions is None:
        return []
    if isinstance(permissions, (str, Permission)):
        permissions = [permissions]
    return [p.value if isinstance(p, Permission) else str(p) for p in permissions]


def _roles(roles: RoleSpec) -> set[UserRole]:
    if roles is None:
        return set()
    if isinstance(roles, UserRole):
        return {roles}
    return {UserRole(r) for r in roles}


class AuthorizationGate:
    """Stateless; one instance can be shared by every request."""

    # =========================================================================
    # PERMISSION CHECKS
    # =========================================================================

    def has_permission(self, principal: Optional[Principal], permission: Union[str, Permission]) -> bool:
        if principal is None or not principal.is_active:
            return False
        if principal.has_global_access:
            return True
        return _tags(permission)[0] in principal.permissions

    def has_any_permission(self, principal: Optional[Principal], permissions: PermissionSpec) -> bool:
        if principal is None or not principal.is_active:
            return False
        if principal.has_global_access:
            return True
        return any(tag in principal.permissions for tag in _tags(permissions))

    def has_all_permissions(self, principal: Optional[Principal], permissions: PermissionSpec) -> bool:
        if principal is None or not principal.is_active:
            return False
        if principal.has_global_access:
            return True
        return all(tag in principal.permissions for tag in _tags(permissions))

    def capabilities(self, principal: Optional[Principal]) -> list[str]:
        """Permission tags the principal may exercise, for UI rendering."""
        if principal is None or not principal.is_active:
            return []
        if principal.has_global_access:
            return sorted(p.value for p in Permission)
        known = {p.value for p in Permission}
        return sorted(tag for tag in principal.permissions if tag in known)

    # =========================================================================
    # DECISIONS
    # =========================================================================

    def authorize(
        self,
        principal: Optional[Principal],
        required_role: RoleSpec = None,
        required_permission: PermissionSpec = None,
        resource_restaurant_id: Optional[int] = None,
        match: PermissionMatch = PermissionMatch.ANY,
    ) -> AuthDecision:
        """Decide whether ``principal`` may act on a resource of the given tenant."""
        if principal is None:
            return _deny(DenyReason.UNAUTHENTICATED, "Authentication required")
        if not principal.is_active:
            return _deny(DenyReason.UNAUTHENTICATED, "Account is deactivated")

        if principal.has_global_access:
            return ALLOW

        if resource_restaurant_id is not None and principal.restaurant_id != resource_restaurant_id:
            return _deny(
                DenyReason.TENANT_MISMATCH,
                "Resource belongs to a different restaurant",
            )

        roles = _roles(required_role)
        if roles and principal.role not in roles:
            wanted = ", ".join(sorted(r.value for r in roles))
            return _deny(
                DenyReason.WRONG_ROLE,
                f"Required roles: {wanted}. User role: {principal.role.value}",
            )

        tags = _tags(required_permission)
        if tags:
            if match == PermissionMatch.ALL:
                ok = self.has_all_permissions(principal, tags)
            elif match == PermissionMatch.ONE:
                ok = self.has_permission(principal, tags[0])
            else:
                ok = self.has_any_permission(principal, tags)
            if not ok:
                return _deny(
                    DenyReason.MISSING_PERMISSION,
                    f"Required permissions ({match.value}): {', '.join(tags)}",
                )

        return ALLOW

    def require(
        self,
        principal: Optional[Principal],
        required_role: RoleSpec = None,
        required_permission: PermissionSpec = None,
        resource_restaurant_id: Optional[int] = None,
        match: PermissionMatch = PermissionMatch.ANY,
        action: str = "",
    ) -> Principal:
        """Like ``authorize`` but raises AuthorizationError on deny."""
        decision = self.authorize(
            principal,
            required_role=required_role,
            required_permission=required_permission,
            resource_restaurant_id=resource_restaurant_id,
            match=match,
        )
        if not decision:
            who = principal.user_id if principal else "anonymous"
            logger.warning(
                f"Denied {action or 'action'} for {who}: {decision.reason.value} - {decision.detail}"
            )
            raise AuthorizationError(decision.detail, reason=decision.reason, action=action or None)
        return principal
