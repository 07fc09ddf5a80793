"""
AuditPulse - Fiscal Snapshot Service

Assembles a point-in-time, read-only snapshot of one organization's
accounting data for an Indian fiscal year (1 April to 31 March).

All entity fetches are issued concurrently, each on its own session.
A failed fetch degrades to an empty collection and is recorded in
``FiscalSnapshot.unavailable_sources``; only when every fetch fails is the
storage layer treated as unreachable.
"""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import contains_eager

from app.config import settings
from app.models import (
    Asset,
    AuditLog,
    BankTransaction,
    Bill,
    Customer,
    FinancialRecord,
    GLAccount,
    Invoice,
    JournalEntry,
    JournalLine,
    PayrollRecord,
    RecordType,
    Vendor,
)
from app.utils.error_handling import DataAccessException, InvalidFiscalYearException

logger = logging.getLogger(__name__)


FISCAL_YEAR_PATTERN = re.compile(r"^(\d{4})-(\d{2}|\d{4})$")
FISCAL_YEAR_START_MONTH = 4


@dataclass(frozen=True)
class FiscalYearWindow:
    """Inclusive date range covered by a fiscal-year label."""
    label: str
    start: date
    end: date

    @property
    def final_month(self) -> int:
        return self.end.month


def parse_financial_year(label: str) -> FiscalYearWindow:
    """
    Parse a label such as "2025-26" or "2025-2026".

    Raises:
        InvalidFiscalYearException: label is malformed or the years are
            not consecutive
    """
    match = FISCAL_YEAR_PATTERN.match((label or "").strip())
    if not match:
        raise InvalidFiscalYearException(label)

    start_year = int(match.group(1))
    end_part = match.group(2)
    if len(end_part) == 2:
        if int(end_part) != (start_year + 1) % 100:
            raise InvalidFiscalYearException(label, "Fiscal year must span two consecutive years")
    elif int(end_part) != start_year + 1:
        raise InvalidFiscalYearException(label, "Fiscal year must span two consecutive years")

    return FiscalYearWindow(
        label=label.strip(),
        start=date(start_year, FISCAL_YEAR_START_MONTH, 1),
        end=date(start_year + 1, FISCAL_YEAR_START_MONTH - 1, 31),
    )


def current_financial_year(today: Optional[date] = None) -> str:
    """Label of the fiscal year containing ``today``; April opens a new year."""
    today = today or date.today()
    start_year = today.year if today.month >= FISCAL_YEAR_START_MONTH else today.year - 1
    return f"{start_year}-{(start_year + 1) % 100:02d}"


@dataclass
class FiscalSnapshot:
    """All accounting data the audit engine reads for one run."""
    organization_id: uuid.UUID
    window: FiscalYearWindow
    gl_accounts: List[GLAccount] = field(default_factory=list)
    journal_entries: List[JournalEntry] = field(default_factory=list)
    journal_lines: List[JournalLine] = field(default_factory=list)
    invoices: List[Invoice] = field(default_factory=list)
    bills: List[Bill] = field(default_factory=list)
    expenses: List[FinancialRecord] = field(default_factory=list)
    vendors: List[Vendor] = field(default_factory=list)
    customers: List[Customer] = field(default_factory=list)
    audit_logs: List[AuditLog] = field(default_factory=list)
    assets: List[Asset] = field(default_factory=list)
    payroll_records: List[PayrollRecord] = field(default_factory=list)
    bank_transactions: List[BankTransaction] = field(default_factory=list)
    unavailable_sources: List[str] = field(default_factory=list)

    @property
    def financial_year(self) -> str:
        return self.window.label

    def record_counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in SNAPSHOT_SOURCES}


# Snapshot attribute names, in fetch order
SNAPSHOT_SOURCES = (
    "gl_accounts",
    "journal_entries",
    "journal_lines",
    "invoices",
    "bills",
    "expenses",
    "vendors",
    "customers",
    "audit_logs",
    "assets",
    "payroll_records",
    "bank_transactions",
)

# Failures that mean "this source could not be read"; anything else is a bug
SOURCE_FAILURES = (SQLAlchemyError, OSError, asyncio.TimeoutError)


class SnapshotGatherer:
    """
    Reads a FiscalSnapshot for one organization and fiscal year.

    Each fetch opens its own session from ``session_factory`` because an
    AsyncSession cannot run concurrent statements.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        audit_log_window: Optional[int] = None,
        payroll_record_limit: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.audit_log_window = audit_log_window or settings.audit_log_window
        self.payroll_record_limit = payroll_record_limit or settings.payroll_record_limit

    async def gather(self, organization_id: uuid.UUID, financial_year: str) -> FiscalSnapshot:
        """
        Build the snapshot.

        Raises:
            InvalidFiscalYearException: before any query is issued
            DataAccessException: every source failed
        """
        window = parse_financial_year(financial_year)
        statements = self._build_statements(organization_id, window)

        results = await asyncio.gather(
            *(self._fetch(statements[name]) for name in SNAPSHOT_SOURCES),
            return_exceptions=True,
        )

        snapshot = FiscalSnapshot(organization_id=organization_id, window=window)
        first_error: Optional[BaseException] = None
        for name, result in zip(SNAPSHOT_SOURCES, results):
            if isinstance(result, SOURCE_FAILURES):
                logger.warning(
                    f"Snapshot source '{name}' unavailable for org {organization_id} "
                    f"FY {window.label}: {type(result).__name__}: {result}"
                )
                snapshot.unavailable_sources.append(name)
                first_error = first_error or result
                continue
            if isinstance(result, BaseException):
                raise result
            setattr(snapshot, name, result)

        if len(snapshot.unavailable_sources) == len(SNAPSHOT_SOURCES):
            raise DataAccessException(
                message="Unable to read accounting data for the audit snapshot",
                original_error=first_error if isinstance(first_error, Exception) else None,
                failed_sources=list(snapshot.unavailable_sources),
            )

        logger.info(
            f"Snapshot gathered for org {organization_id} FY {window.label}: "
            f"{snapshot.record_counts()}"
        )
        return snapshot

    async def _fetch(self, statement: Select) -> List[Any]:
        async with self.session_factory() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    def _build_statements(self, organization_id: uuid.UUID, window: FiscalYearWindow) -> Dict[str, Select]:
        start, end = window.start, window.end
        # Timestamps are compared against [start 00:00, end + 1 day 00:00)
        start_ts = datetime.combine(start, time.min)
        end_ts = datetime.combine(end + timedelta(days=1), time.min)

        return {
            "gl_accounts": (
                select(GLAccount)
                .where(GLAccount.organization_id == organization_id, GLAccount.is_active.is_(True))
                .order_by(GLAccount.code, GLAccount.id)
            ),
            "journal_entries": (
                select(JournalEntry)
                .where(
                    JournalEntry.organization_id == organization_id,
                    JournalEntry.entry_date.between(start, end),
                )
                .order_by(JournalEntry.entry_date, JournalEntry.id)
            ),
            "journal_lines": (
                select(JournalLine)
                .join(JournalLine.entry)
                .options(contains_eager(JournalLine.entry))
                .where(
                    JournalEntry.organization_id == organization_id,
                    JournalEntry.entry_date.between(start, end),
                )
                .order_by(JournalEntry.entry_date, JournalLine.journal_entry_id, JournalLine.id)
            ),
            "invoices": (
                select(Invoice)
                .where(Invoice.organization_id == organization_id, Invoice.invoice_date.between(start, end))
                .order_by(Invoice.invoice_date, Invoice.id)
            ),
            "bills": (
                select(Bill)
                .where(Bill.organization_id == organization_id, Bill.bill_date.between(start, end))
                .order_by(Bill.bill_date, Bill.id)
            ),
            "expenses": (
                select(FinancialRecord)
                .where(
                    FinancialRecord.organization_id == organization_id,
                    FinancialRecord.type == RecordType.EXPENSE,
                    FinancialRecord.record_date.between(start, end),
                )
                .order_by(FinancialRecord.record_date, FinancialRecord.id)
            ),
            "vendors": (
                select(Vendor)
                .where(Vendor.organization_id == organization_id)
                .order_by(Vendor.name, Vendor.id)
            ),
            "customers": (
                select(Customer)
                .where(Customer.organization_id == organization_id)
                .order_by(Customer.name, Customer.id)
            ),
            "audit_logs": (
                select(AuditLog)
                .where(
                    AuditLog.organization_id == organization_id,
                    AuditLog.created_at >= start_ts,
                    AuditLog.created_at < end_ts,
                )
                .order_by(AuditLog.created_at.desc(), AuditLog.id)
                .limit(self.audit_log_window)
            ),
            "assets": (
                select(Asset)
                .where(Asset.organization_id == organization_id)
                .order_by(Asset.name, Asset.id)
            ),
            "payroll_records": (
                select(PayrollRecord)
                .where(
                    PayrollRecord.organization_id == organization_id,
                    PayrollRecord.pay_date.between(start, end),
                )
                .order_by(PayrollRecord.pay_date, PayrollRecord.id)
                .limit(self.payroll_record_limit)
            ),
            "bank_transactions": (
                select(BankTransaction)
                .where(
                    BankTransaction.organization_id == organization_id,
                    BankTransaction.transaction_date.between(start, end),
                )
                .order_by(BankTransaction.transaction_date, BankTransaction.id)
            ),
        }
