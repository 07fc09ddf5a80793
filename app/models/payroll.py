"""
AuditPulse - Payroll Record Model
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel, OrganizationScopedMixin


class PayrollRecord(BaseModel, OrganizationScopedMixin):
    """One employee's pay for one period."""

    __tablename__ = "payroll_records"

    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    gross_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    tds_deducted: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
        comment="Section 192 TDS withheld",
    )
    net_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
