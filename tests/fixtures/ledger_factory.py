"""
Ledger Factories

Builders for accounting rows used by the audit engine tests. The same
objects serve in-memory FiscalSnapshots and database seeding.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from app.models import (
    AccountType,
    Asset,
    AssetStatus,
    AuditLog,
    Bill,
    Customer,
    DepreciationMethod,
    FinancialRecord,
    GLAccount,
    Invoice,
    InvoiceStatus,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    NormalBalance,
    PaymentMode,
    RecordType,
    Vendor,
)
from app.services.audit_snapshot_service import FiscalSnapshot, parse_financial_year


VALID_GSTIN = "27AAPFU0939F1ZV"
VALID_PAN = "AAPFU0939F"


def money(value) -> Decimal:
    return Decimal(str(value))


def gl_account(org_id: UUID, code: str, name: str, account_type: AccountType) -> GLAccount:
    normal = NormalBalance.CREDIT if account_type in (
        AccountType.REVENUE, AccountType.LIABILITY, AccountType.EQUITY
    ) else NormalBalance.DEBIT
    return GLAccount(
        id=uuid4(),
        organization_id=org_id,
        code=code,
        name=name,
        account_type=account_type,
        normal_balance=normal,
        is_active=True,
    )


def journal_entry(
    org_id: UUID,
    entry_date: date,
    lines: Sequence[Tuple[GLAccount, object, object]],
    is_manual: bool = False,
    status: JournalEntryStatus = JournalEntryStatus.POSTED,
    approved_by: Optional[UUID] = None,
    created_by: Optional[UUID] = None,
    created_at: Optional[datetime] = None,
) -> JournalEntry:
    """Entry with one JournalLine per (account, debit, credit)."""
    entry = JournalEntry(
        id=uuid4(),
        organization_id=org_id,
        entry_date=entry_date,
        source="manual" if is_manual else "invoice",
        status=status,
        is_manual=is_manual,
        created_by=created_by,
        approved_by=approved_by,
        created_at=created_at or datetime.combine(entry_date, datetime.min.time(), tzinfo=timezone.utc),
    )
    for account, debit, credit in lines:
        JournalLine(
            id=uuid4(),
            journal_entry_id=entry.id,
            gl_account_id=account.id,
            debit=money(debit),
            credit=money(credit),
            entry=entry,
        )
    return entry


def vendor(org_id: UUID, name: str, gstin: Optional[str] = VALID_GSTIN, pan: Optional[str] = VALID_PAN) -> Vendor:
    return Vendor(id=uuid4(), organization_id=org_id, name=name, gstin=gstin, pan=pan)


def customer(org_id: UUID, name: str, gstin: Optional[str] = VALID_GSTIN) -> Customer:
    return Customer(id=uuid4(), organization_id=org_id, name=name, gstin=gstin)


def bill(
    org_id: UUID,
    number: str,
    bill_date: date,
    amount,
    tax_amount,
    supplier: Optional[Vendor] = None,
) -> Bill:
    return Bill(
        id=uuid4(),
        organization_id=org_id,
        vendor_id=supplier.id if supplier else None,
        vendor_name=supplier.name if supplier else None,
        bill_number=number,
        bill_date=bill_date,
        amount=money(amount),
        tax_amount=money(tax_amount),
        total_amount=money(amount) + money(tax_amount),
        status="unpaid",
    )


def invoice(
    org_id: UUID,
    number: str,
    invoice_date: date,
    amount,
    tax_amount,
    total_amount=None,
    status: InvoiceStatus = InvoiceStatus.SENT,
    due_date: Optional[date] = None,
) -> Invoice:
    if total_amount is None:
        total_amount = money(amount) + money(tax_amount)
    return Invoice(
        id=uuid4(),
        organization_id=org_id,
        invoice_number=number,
        client_name="Acme Retail Pvt Ltd",
        invoice_date=invoice_date,
        due_date=due_date,
        amount=money(amount),
        tax_amount=money(tax_amount),
        total_amount=money(total_amount),
        status=status,
    )


def expense(
    org_id: UUID,
    record_date: date,
    amount,
    category: str = "Office Supplies",
    payment_mode: Optional[PaymentMode] = PaymentMode.BANK_TRANSFER,
) -> FinancialRecord:
    return FinancialRecord(
        id=uuid4(),
        organization_id=org_id,
        type=RecordType.EXPENSE,
        category=category,
        amount=money(amount),
        record_date=record_date,
        payment_mode=payment_mode,
    )


def asset(
    org_id: UUID,
    name: str,
    purchase_price,
    accumulated_depreciation=0,
    status: AssetStatus = AssetStatus.ACTIVE,
    depreciation_method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE,
    disposal_price=None,
) -> Asset:
    return Asset(
        id=uuid4(),
        organization_id=org_id,
        name=name,
        purchase_price=money(purchase_price),
        accumulated_depreciation=money(accumulated_depreciation),
        current_book_value=money(purchase_price) - money(accumulated_depreciation),
        depreciation_method=depreciation_method,
        status=status,
        disposal_price=money(disposal_price) if disposal_price is not None else None,
    )


def audit_log(org_id: UUID, action: str, actor_id: Optional[UUID] = None, created_at: Optional[datetime] = None) -> AuditLog:
    return AuditLog(
        id=uuid4(),
        organization_id=org_id,
        action=action,
        entity_type="accounting_period",
        actor_id=actor_id,
        actor_name="Finance Admin",
        created_at=created_at or datetime(2025, 9, 1, tzinfo=timezone.utc),
    )


def snapshot(org_id: UUID, financial_year: str = "2025-26", **sources) -> FiscalSnapshot:
    """
    In-memory snapshot. ``journal_entries`` also populates ``journal_lines``
    unless lines are given explicitly.
    """
    entries: Iterable[JournalEntry] = sources.get("journal_entries", [])
    if "journal_lines" not in sources:
        lines: List[JournalLine] = [line for entry in entries for line in entry.lines]
        sources["journal_lines"] = lines
    return FiscalSnapshot(organization_id=org_id, window=parse_financial_year(financial_year), **sources)
