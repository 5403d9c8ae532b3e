"""Role model: one role per profile, and one profile per identity.

Profiles are created inside the same transaction as the identity insert, so
there is never an identity without a profile. On PostgreSQL the reconciler
also installs a ``handle_new_user`` trigger for identities created by the
auth provider; ``on_identity_created`` tolerates the row already existing.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from services.store_service.errors import NotFound
from services.store_service.models import AppRole, Profile
from sqlalchemy import insert, select
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

MANAGE_ALL = "manage_all"

# Roles stay a flat set; richer grants are added here, not as new roles.
ROLE_CAPABILITIES: dict[AppRole, frozenset[str]] = {
    AppRole.ADMIN: frozenset({MANAGE_ALL}),
    AppRole.USER: frozenset(),
    AppRole.MITRA: frozenset(),
}


@dataclass(frozen=True)
class Caller:
    """The identity an operation runs as. Both fields are None when anonymous."""

    identity_id: Optional[uuid.UUID] = None
    role: Optional[AppRole] = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity_id is not None

    @property
    def capabilities(self) -> frozenset[str]:
        if self.role is None:
            return frozenset()
        return ROLE_CAPABILITIES.get(self.role, frozenset())

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    @property
    def is_admin(self) -> bool:
        return self.can(MANAGE_ALL)


ANONYMOUS = Caller()


def parse_role(value: Optional[str]) -> AppRole:
    """Map a requested role to ``AppRole``; anything unknown becomes ``user``."""
    if value is None:
        return AppRole.USER
    try:
        return AppRole(value)
    except ValueError:
        return AppRole.USER


def on_identity_created(
    connection: Connection,
    identity_id: uuid.UUID,
    requested_role: Optional[str] = None,
    full_name: Optional[str] = None,
) -> bool:
    """Create the profile for a new identity.

    Runs on the identity's own connection. Returns False when the profile
    already exists (e.g. the database trigger created it first).
    """
    existing = connection.execute(
        select(Profile.id).where(Profile.id == identity_id)
    ).first()
    if existing is not None:
        return False

    role = parse_role(requested_role)
    connection.execute(
        insert(Profile).values(id=identity_id, full_name=full_name, role=role)
    )
    if requested_role is not None and role.value != requested_role:
        logger.warning(
            "Identity %s requested unknown role %r; assigned %s",
            identity_id,
            requested_role,
            role.value,
        )
    logger.info("Created profile for identity %s (role=%s)", identity_id, role.value)
    return True


async def get_role(db: AsyncSession, identity_id: uuid.UUID) -> AppRole:
    """Return the caller's role, read fresh from the profile row."""
    result = await db.execute(select(Profile.role).where(Profile.id == identity_id))
    role = result.scalar_one_or_none()
    if role is None:
        # Unreachable while profile creation stays tied to identity creation
        logger.critical("Integrity violation: identity %s has no profile", identity_id)
        raise NotFound("profiles", identity_id)
    return role


async def resolve_caller(db: AsyncSession, user: Optional[AuthUser]) -> Caller:
    """Turn an authenticated token (or None) into a ``Caller``."""
    if user is None:
        return ANONYMOUS
    try:
        identity_id = uuid.UUID(user.user_id)
    except ValueError:
        raise NotFound("profiles", user.user_id) from None
    role = await get_role(db, identity_id)
    return Caller(identity_id=identity_id, role=role)
