"""
AuditPulse - Fixed Asset Register Model

Capital assets with their depreciation and disposal state, as inspected
by the fixed-asset compliance checks.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Date, Numeric, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, OrganizationScopedMixin


class AssetStatus(str, Enum):
    """Status of fixed asset."""
    ACTIVE = "active"           # In use
    DISPOSED = "disposed"       # Sold or scrapped
    WRITTEN_OFF = "written_off"
    IDLE = "idle"


class DepreciationMethod(str, Enum):
    """Depreciation calculation method."""
    STRAIGHT_LINE = "straight_line"
    WRITTEN_DOWN_VALUE = "written_down_value"   # Income-tax block method
    NONE = "none"                               # Land, non-depreciable


class Asset(BaseModel, OrganizationScopedMixin):
    """Fixed asset register entry."""

    __tablename__ = "assets"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    asset_tag: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    purchase_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    purchase_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    accumulated_depreciation: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    current_book_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    depreciation_method: Mapped[DepreciationMethod] = mapped_column(
        SQLEnum(DepreciationMethod),
        default=DepreciationMethod.STRAIGHT_LINE,
        nullable=False,
    )
    status: Mapped[AssetStatus] = mapped_column(
        SQLEnum(AssetStatus),
        default=AssetStatus.ACTIVE,
        nullable=False,
    )
    disposal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    disposal_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=True,
        comment="Sale or scrap proceeds; required once disposed",
    )
