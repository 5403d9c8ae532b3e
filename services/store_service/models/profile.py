"""Profile model: one row per identity, carrying the storefront role."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.store_service.models.enums import AppRole, enum_values
from services.store_service.models.identity import IdentityRef
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Text, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Profile(Base):
    """Public-facing profile for each identity."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey(IdentityRef.__table__.c.id, ondelete="CASCADE"),
        primary_key=True,
    )
    full_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[AppRole] = mapped_column(
        SAEnum(AppRole, values_callable=enum_values, name="app_role"),
        nullable=False,
        default=AppRole.USER,
        server_default=AppRole.USER.value,
    )

    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True
    )

    # Relationships
    orders = relationship("Order", back_populates="profile", passive_deletes=True)
    reviews = relationship("Review", back_populates="profile", passive_deletes=True)

    def __repr__(self):
        return f"<Profile {self.id} role={self.role}>"


@event.listens_for(IdentityRef, "after_insert")
def _create_profile_for_identity(mapper, connection, target: IdentityRef) -> None:
    """Create the profile in the identity's own flush."""
    from services.store_service.roles import on_identity_created

    metadata = target.raw_user_meta_data or {}
    on_identity_created(
        connection,
        target.id,
        requested_role=metadata.get("role"),
        full_name=metadata.get("full_name"),
    )
