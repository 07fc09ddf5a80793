"""
AuditPulse - General Ledger Models

Chart of accounts and double-entry journals as read by the audit engine.
Journal lines are always loaded together with their parent entry so
rule checks can see the entry date, status, approver and manual flag.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, OrganizationScopedMixin


class AccountType(str, Enum):
    """Top-level account classification."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class JournalEntryStatus(str, Enum):
    """Posting status of a journal entry."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    POSTED = "posted"
    REVERSED = "reversed"


class GLAccount(BaseModel, OrganizationScopedMixin):
    """General ledger account (chart of accounts)."""

    __tablename__ = "gl_accounts"

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SQLEnum(AccountType),
        nullable=False,
    )
    normal_balance: Mapped[NormalBalance] = mapped_column(
        SQLEnum(NormalBalance),
        default=NormalBalance.DEBIT,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class JournalEntry(BaseModel, OrganizationScopedMixin):
    """Journal entry header."""

    __tablename__ = "journal_entries"

    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    narration: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # invoice, bill, expense, payment, manual, reversal
    source: Mapped[str] = mapped_column(String(50), default="manual", nullable=False)
    status: Mapped[JournalEntryStatus] = mapped_column(
        SQLEnum(JournalEntryStatus),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Checker who approved the posting",
    )

    lines: Mapped[List["JournalLine"]] = relationship(
        "JournalLine",
        back_populates="entry",
        cascade="all, delete-orphan",
    )


class JournalLine(BaseModel):
    """A single debit or credit leg of a journal entry."""

    __tablename__ = "journal_lines"

    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    gl_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("gl_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0"),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    entry: Mapped["JournalEntry"] = relationship("JournalEntry", back_populates="lines")
    account: Mapped["GLAccount"] = relationship("GLAccount")
