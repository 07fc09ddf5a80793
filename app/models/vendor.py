"""
AuditPulse - Vendor and Purchase Bill Models
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, OrganizationScopedMixin


class Vendor(BaseModel, OrganizationScopedMixin):
    """Supplier master record."""

    __tablename__ = "vendors"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    gstin: Mapped[Optional[str]] = mapped_column(
        String(15),
        nullable=True,
        comment="15-character GST identification number",
    )
    pan: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class Bill(BaseModel, OrganizationScopedMixin):
    """Inward supply (purchase) bill."""

    __tablename__ = "bills"

    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("vendors.id", ondelete="SET NULL"),
        nullable=True,
    )
    vendor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bill_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
        comment="Input tax credit claimed on this bill",
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(30), default="unpaid", nullable=False)

    vendor: Mapped[Optional["Vendor"]] = relationship("Vendor")
