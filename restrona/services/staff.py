"""
Staff Account Management

A staff account has two halves: the principal in the identity provider
(credentials) and the ``users`` row (role, tenant, permissions). They are
created and removed together; when the second half fails, the first is
undone.

Who may manage whom:
    - super admins manage everyone
    - restaurant admins with ``staff_management`` manage the waiters of
      their own restaurant
    - anyone may change their own password
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.core.config import get_settings
from restrona.core.errors import (
    AuthorizationError,
    DenyReason,
    NotFoundError,
    PersistenceError,
    RestronaError,
    ValidationError,
)
from restrona.database import commit_or_raise
from restrona.models import DEFAULT_PERMISSIONS, Permission, Restaurant, User, UserRole, utcnow
from restrona.services.authorization import AuthorizationGate, Principal
from restrona.services.identity import BaseIdentityProvider
from restrona.services.identity.base import MIN_PASSWORD_LENGTH
from restrona.services.otp import OtpService, normalize_phone

logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.RESTAURANT_ADMIN, UserRole.WAITER)
UPDATABLE_FIELDS = ("name", "phone", "permissions", "role")


@dataclass
class LoginResult:
    access_token: str
    expires_in: int
    user: User
    capabilities: list[str]
    token_type: str = "bearer"


def _parse_role(role: Union[str, UserRole]) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise ValidationError(f"Invalid role '{role}'. Options: {[r.value for r in STAFF_ROLES]}")


def _clean_permissions(permissions: Iterable[Union[str, Permission]]) -> list[str]:
    known = {p.value for p in Permission}
    tags = []
    for p in permissions:
        tag = p.value if isinstance(p, Permission) else str(p)
        if tag not in known:
            raise ValidationError(f"Unknown permission '{tag}'")
        if tag not in tags:
            tags.append(tag)
    return tags


class StaffService:
    def __init__(
        self,
        db: AsyncSession,
        identity: BaseIdentityProvider,
        gate: Optional[AuthorizationGate] = None,
        otp: Optional[OtpService] = None,
    ):
        self.db = db
        self.identity = identity
        self.gate = gate or AuthorizationGate()
        self.otp = otp
        self.settings = get_settings()

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _get_user(self, user_id: str) -> User:
        user = await self.db.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def _find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    def _require_manage(self, actor: Optional[Principal], target: User, action: str) -> None:
        """Restaurant admins may only manage waiters of their own restaurant."""
        self.gate.require(
            actor,
            required_role=UserRole.RESTAURANT_ADMIN,
            required_permission=Permission.STAFF_MANAGEMENT,
            resource_restaurant_id=target.restaurant_id,
            action=action,
        )
        if not actor.has_global_access and target.role != UserRole.WAITER:
            logger.warning(f"Denied {action} for {actor.user_id}: target {target.id} is {target.role.value}")
            raise AuthorizationError(
                "Only super admins can manage administrator accounts",
                reason=DenyReason.WRONG_ROLE,
                action=action,
            )

    def _check_grantable(self, actor: Principal, permissions: list[str]) -> None:
        if not self.gate.has_all_permissions(actor, permissions):
            raise AuthorizationError(
                "Cannot grant permissions you do not hold",
                reason=DenyReason.MISSING_PERMISSION,
            )

    # =========================================================================
    # ACCOUNT CREATION
    # =========================================================================

    async def create_staff(
        self,
        actor: Optional[Principal],
        email: str,
        password: str,
        name: str,
        role: Union[str, UserRole],
        restaurant_id: Optional[int],
        phone: Optional[str] = None,
        permissions: Optional[Iterable[Union[str, Permission]]] = None,
        otp_code: Optional[str] = None,
    ) -> User:
        role = _parse_role(role)
        if role not in STAFF_ROLES:
            raise ValidationError("Staff role must be restaurant_admin or waiter")

        if role == UserRole.RESTAURANT_ADMIN:
            self.gate.require(actor, required_role=UserRole.SUPER_ADMIN, action="create_restaurant_admin")
        else:
            self.gate.require(
                actor,
                required_role=UserRole.RESTAURANT_ADMIN,
                required_permission=Permission.STAFF_MANAGEMENT,
                resource_restaurant_id=restaurant_id,
                action="create_waiter",
            )

        email = (email or "").strip().lower()
        name = (name or "").strip()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")
        if not name:
            raise ValidationError("Name is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if restaurant_id is None:
            raise ValidationError("Staff accounts must belong to a restaurant")
        if await self.db.get(Restaurant, restaurant_id) is None:
            raise NotFoundError(f"Restaurant #{restaurant_id} not found")

        tags = _clean_permissions(permissions if permissions is not None else DEFAULT_PERMISSIONS[role])
        self._check_grantable(actor, tags)

        if await self._find_by_email(email) is not None:
            raise ValidationError(f"A user with email {email} already exists")

        phone_verified = False
        if phone:
            phone = normalize_phone(phone)
            if otp_code:
                if self.otp is None:
                    raise ValidationError("Phone verification is not available")
                phone_verified = await self.otp.verify_code(phone, otp_code)
            elif self.settings.require_staff_phone_verification:
                raise ValidationError("A verification code for the phone number is required")

        uid = await self.identity.create_principal(email, password, phone=phone, display_name=name)

        user = User(
            id=uid,
            name=name,
            email=email,
            phone=phone or None,
            role=role,
            restaurant_id=restaurant_id,
            permissions=tags,
            phone_verified=phone_verified,
            is_active=True,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to store staff record for {email}: {e}")
            await self._compensate(uid, email)
            raise PersistenceError("Could not create the staff account, please retry")

        logger.info(f"Staff {uid} ({email}) created as {role.value} for restaurant #{restaurant_id}")
        return user

    async def _compensate(self, uid: str, email: str) -> None:
        """Remove a principal whose staff record could not be written."""
        try:
            await self.identity.delete_principal(uid)
            logger.info(f"Compensation: removed principal {uid} ({email})")
        except RestronaError as e:
            logger.critical(
                f"Compensation failed for principal {uid} ({email}): {e.message}. "
                f"Remove it from {self.identity.provider_name} manually."
            )

    async def ensure_super_admin(self, email: str, password: str, name: str = "Super Admin") -> User:
        """
        Create the platform super admin if it does not exist yet. Safe to
        run repeatedly.
        """
        email = (email or "").strip().lower()
        existing = await self._find_by_email(email)

        if existing is not None:
            try:
                await self.identity.authenticate(email, password)
            except AuthorizationError:
                # Record survives but the principal is gone (in-memory store restarted)
                try:
                    await self.identity.create_principal(email, password, display_name=existing.name)
                    logger.info(f"Restored principal for super admin {email}")
                except ValidationError:
                    logger.warning(f"Super admin {email} exists with different credentials")
            if (
                existing.role != UserRole.SUPER_ADMIN
                or not existing.is_super_admin
                or not existing.can_access_everything
            ):
                existing.role = UserRole.SUPER_ADMIN
                existing.is_super_admin = True
                existing.can_access_everything = True
                existing.restaurant_id = None
                existing.permissions = list(DEFAULT_PERMISSIONS[UserRole.SUPER_ADMIN])
                await commit_or_raise(self.db, "promote super admin")
                logger.info(f"User {email} promoted to super admin")
            return existing

        uid = await self.identity.create_principal(email, password, display_name=name)
        user = User(
            id=uid,
            name=name,
            email=email,
            role=UserRole.SUPER_ADMIN,
            restaurant_id=None,
            permissions=list(DEFAULT_PERMISSIONS[UserRole.SUPER_ADMIN]),
            is_active=True,
            is_super_admin=True,
            can_access_everything=True,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to store super admin record for {email}: {e}")
            await self._compensate(uid, email)
            raise PersistenceError("Could not create the super admin, please retry")

        logger.info(f"Super admin {email} ({uid}) created")
        return user

    # =========================================================================
    # ACCOUNT MAINTENANCE
    # =========================================================================

    async def get_user(self, user_id: str, actor: Optional[Principal]) -> User:
        if actor is not None and actor.user_id == user_id:
            self.gate.require(actor, action="get_own_profile")
            return await self._get_user(user_id)

        user = await self._get_user(user_id)
        self.gate.require(
            actor,
            required_permission=(Permission.STAFF_MANAGEMENT, Permission.MANAGE_USERS),
            resource_restaurant_id=user.restaurant_id,
            action="get_user",
        )
        return user

    async def list_staff(
        self,
        actor: Optional[Principal],
        restaurant_id: Optional[int] = None,
    ) -> list[User]:
        """Super admins see everyone (optionally filtered); admins their restaurant."""
        scope = restaurant_id
        if scope is None and actor is not None:
            scope = actor.restaurant_id
        self.gate.require(
            actor,
            required_permission=(Permission.STAFF_MANAGEMENT, Permission.MANAGE_USERS),
            resource_restaurant_id=scope,
            action="list_staff",
        )

        query = select(User).order_by(User.created_at, User.id)
        if not actor.has_global_access:
            query = query.where(User.restaurant_id == actor.restaurant_id)
        elif restaurant_id is not None:
            query = query.where(User.restaurant_id == restaurant_id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_staff(self, user_id: str, actor: Optional[Principal], **changes: Any) -> User:
        user = await self._get_user(user_id)
        self._require_manage(actor, user, "update_staff")

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown user fields: {sorted(unknown)}")

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValidationError("Name cannot be empty")
            user.name = name
        if "phone" in changes:
            phone = normalize_phone(changes["phone"]) if changes["phone"] else None
            if phone != user.phone:
                user.phone = phone
                user.phone_verified = False
        if "role" in changes:
            role = _parse_role(changes["role"])
            if role not in STAFF_ROLES:
                raise ValidationError("Staff role must be restaurant_admin or waiter")
            if role != user.role:
                self.gate.require(actor, required_role=UserRole.SUPER_ADMIN, action="change_role")
                user.role = role
        if "permissions" in changes:
            tags = _clean_permissions(changes["permissions"] or [])
            self._check_grantable(actor, tags)
            user.permissions = tags

        user.updated_at = utcnow()
        await commit_or_raise(self.db, "update staff account")

        logger.info(f"Staff {user_id} updated by {actor.user_id}: {sorted(changes)}")
        return user

    async def set_active(self, user_id: str, is_active: bool, actor: Optional[Principal]) -> User:
        user = await self._get_user(user_id)
        self._require_manage(actor, user, "set_staff_active")
        if actor.user_id == user_id and not is_active:
            raise ValidationError("You cannot deactivate your own account")

        user.is_active = bool(is_active)
        user.updated_at = utcnow()
        await commit_or_raise(self.db, "update staff account")

        logger.info(f"Staff {user_id} {'activated' if is_active else 'deactivated'} by {actor.user_id}")
        return user

    async def update_password(self, user_id: str, new_password: str, actor: Optional[Principal]) -> User:
        """Super admins reset anyone's password; everyone else only their own."""
        if actor is not None and actor.user_id == user_id:
            self.gate.require(actor, action="change_own_password")
        else:
            self.gate.require(actor, required_role=UserRole.SUPER_ADMIN, action="reset_password")

        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        user = await self._get_user(user_id)

        await self.identity.update_password(user_id, new_password)

        user.password_updated_at = utcnow()
        user.password_updated_by = actor.user_id
        await commit_or_raise(self.db, "record password change")

        logger.info(f"Password for {user_id} updated by {actor.user_id}")
        return user

    async def delete_staff(self, user_id: str, actor: Optional[Principal]) -> None:
        """Remove the record and the principal; the record stays if the principal delete fails."""
        user = await self._get_user(user_id)
        self._require_manage(actor, user, "delete_staff")
        if actor.user_id == user_id:
            raise ValidationError("You cannot delete your own account")

        try:
            await self.db.delete(user)
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete staff record {user_id}: {e}")
            raise PersistenceError("Could not delete the staff account, please retry")

        try:
            await self.identity.delete_principal(user_id)
        except RestronaError:
            await self.db.rollback()
            logger.error(f"Principal {user_id} could not be removed; staff record kept")
            raise

        await commit_or_raise(self.db, "delete staff account")
        logger.info(f"Staff {user_id} deleted by {actor.user_id}")

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def authenticate(self, email: str, password: str) -> LoginResult:
        session = await self.identity.authenticate((email or "").strip().lower(), password)

        user = await self.db.get(User, session.uid, populate_existing=True)
        if user is None:
            logger.warning(f"Sign-in for {email} has no staff record")
            raise AuthorizationError("No staff account for these credentials", reason=DenyReason.UNAUTHENTICATED)
        if not user.is_active:
            raise AuthorizationError("Account is deactivated", reason=DenyReason.UNAUTHENTICATED)

        logger.info(f"Staff {user.id} signed in")
        return LoginResult(
            access_token=session.access_token,
            expires_in=session.expires_in,
            token_type=session.token_type,
            user=user,
            capabilities=self.gate.capabilities(Principal.from_user(user)),
        )

    async def resolve_principal(self, token: str) -> Principal:
        """Turn a bearer token into the caller's Principal."""
        if not token:
            raise AuthorizationError("Authentication required", reason=DenyReason.UNAUTHENTICATED)

        claims = await self.identity.verify_token(token)
        user = await self.db.get(User, claims.uid, populate_existing=True)
        if user is None:
            raise AuthorizationError("No staff account for this token", reason=DenyReason.UNAUTHENTICATED)
        if not user.is_active:
            raise AuthorizationError("Account is deactivated", reason=DenyReason.UNAUTHENTICATED)
        return Principal.from_user(user)
