"""
AuditPulse - Financial Record Model

Income and expense records captured outside the invoice/bill flow.
Only expense records are pulled into the audit snapshot.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Date, Numeric, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, OrganizationScopedMixin


class RecordType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMode(str, Enum):
    """How the record was settled."""
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    UPI = "upi"
    CARD = "card"


class FinancialRecord(BaseModel, OrganizationScopedMixin):
    __tablename__ = "financial_records"

    type: Mapped[RecordType] = mapped_column(SQLEnum(RecordType), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    record_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    payment_mode: Mapped[Optional[PaymentMode]] = mapped_column(
        SQLEnum(PaymentMode),
        nullable=True,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
