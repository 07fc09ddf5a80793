"""
AuditPulse - User Profile Model

Profiles link an identity-platform user to the organization whose books
they may audit.
"""

import uuid
from typing import Optional

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class Profile(BaseModel):
    """Identity-platform user profile; id equals the token subject."""

    __tablename__ = "profiles"

    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        index=True,
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
