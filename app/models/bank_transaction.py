"""
AuditPulse - Bank Transaction Model
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, Numeric, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, OrganizationScopedMixin


class BankTransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class BankTransaction(BaseModel, OrganizationScopedMixin):
    """Imported bank statement line."""

    __tablename__ = "bank_transactions"

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    transaction_type: Mapped[BankTransactionType] = mapped_column(
        SQLEnum(BankTransactionType),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
