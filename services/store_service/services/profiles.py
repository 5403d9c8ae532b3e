"""Profile operations and auth-provider session events."""

import enum
import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.store_service.errors import Forbidden, NotFound
from services.store_service.models import IdentityRef, Profile
from services.store_service.policies import Operation, evaluator
from services.store_service.roles import Caller, on_identity_created
from services.store_service.schemas import ProfileUpdate
from services.store_service.services._helpers import commit_or_conflict, get_or_404
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class AuthEvent(str, enum.Enum):
    SIGNED_IN = "SignedIn"
    SIGNED_OUT = "SignedOut"


async def get_profile(db: AsyncSession, caller: Caller, identity_id: uuid.UUID) -> Profile:
    profile = await get_or_404(db, Profile, identity_id)
    await evaluator.authorize(db, caller, Operation.READ, profile)
    return profile


async def update_profile(
    db: AsyncSession, caller: Caller, identity_id: uuid.UUID, data: ProfileUpdate
) -> Profile:
    """Update a profile. Changing ``role`` additionally requires an admin."""
    profile = await get_or_404(db, Profile, identity_id)
    await evaluator.authorize(db, caller, Operation.UPDATE, profile)

    changes = data.model_dump(exclude_unset=True)
    new_role = changes.get("role")
    if new_role is not None and new_role != profile.role:
        if not caller.is_admin:
            logger.warning(
                "Identity %s attempted to change role of %s to %s",
                caller.identity_id,
                identity_id,
                new_role.value,
            )
            raise Forbidden("profiles", "update", "Only admins can change roles")
        logger.info(
            "Role of %s changed %s -> %s by %s",
            identity_id,
            profile.role.value,
            new_role.value,
            caller.identity_id,
        )
    if "role" in changes and changes["role"] is None:
        changes.pop("role")

    for field, value in changes.items():
        setattr(profile, field, value)
    await commit_or_conflict(db, "Profile update violates a constraint")
    return profile


async def delete_profile(db: AsyncSession, caller: Caller, identity_id: uuid.UUID) -> None:
    """Delete a profile. Profiles that still own orders cannot be deleted."""
    profile = await get_or_404(db, Profile, identity_id)
    await evaluator.authorize(db, caller, Operation.DELETE, profile)
    await db.delete(profile)
    await commit_or_conflict(db, "Profile still owns orders")
    logger.info("Profile %s deleted by %s", identity_id, caller.identity_id)


async def on_auth_event(
    db: AsyncSession, event: AuthEvent, identity_id: uuid.UUID
) -> Optional[Profile]:
    """React to an auth-provider session event.

    After ``SignedIn`` the identity's profile exists and is returned; a
    missing profile is recreated from the identity's metadata. ``SignedOut``
    has no store side effects.
    """
    if event is AuthEvent.SIGNED_OUT:
        logger.debug("Identity %s signed out", identity_id)
        return None

    profile = await db.get(Profile, identity_id)
    if profile is not None:
        return profile

    identity = await db.get(IdentityRef, identity_id)
    if identity is None:
        raise NotFound(IdentityRef.__tablename__, identity_id)

    metadata = identity.raw_user_meta_data or {}
    conn = await db.connection()
    await conn.run_sync(
        lambda sync_conn: on_identity_created(
            sync_conn,
            identity_id,
            requested_role=metadata.get("role"),
            full_name=metadata.get("full_name"),
        )
    )
    await commit_or_conflict(db, "Profile could not be created")
    logger.warning("Profile for identity %s was missing and has been recreated", identity_id)
    return await db.get(Profile, identity_id)
