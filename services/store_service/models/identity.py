"""Reference to the identity table owned by the authentication provider."""

import uuid
from typing import Optional

from libs.common.config import get_settings
from libs.db.base import Base
from sqlalchemy import JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

settings = get_settings()


class IdentityRef(Base):
    """Identity row (``auth.users`` on Supabase).

    Only the columns this service reads are mapped. The reconciler never
    creates, alters or drops this table.
    """

    __tablename__ = settings.IDENTITY_TABLE
    __table_args__ = {
        "schema": settings.IDENTITY_SCHEMA,
        "info": {"skip_autogenerate": True, "external": True},
    }

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    raw_user_meta_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    def __repr__(self):
        return f"<IdentityRef {self.id}>"
