"""
AuditPulse - Deterministic Compliance Rules

Statutory checks evaluated against a FiscalSnapshot:

GST (CGST Act 2017):
- G1/G2: GSTIN format on vendor and customer masters
- G3: Invoice taxable value + tax = total
- G4: Input tax credit at risk on bills without a registered vendor

TDS (Income-tax Act 1961, Chapter XVII-B):
- T1: High-value expenses needing TDS review
- T2: Bills from vendors without PAN (Section 206AA higher rate)

Income tax:
- IT1: Cash expenses above Rs 10,000 (Section 40A(3) disallowance)
- IT2: Round-figure journal lines

Fixed assets:
- FA1: Active assets never depreciated
- FA2: Disposed assets with no disposal value

Data integrity:
- DI1: Journal entries whose debits and credits do not balance

Every rule is independent, pure and total: an empty snapshot yields a
passing finding, never an exception. affected_amount is always the sum
over exactly the records counted in affected_count.
"""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.models import (
    AssetStatus,
    CheckSeverity,
    CheckStatus,
    ComplianceModule,
    DepreciationMethod,
    PaymentMode,
)
from app.services.audit_snapshot_service import FiscalSnapshot


# GSTIN: 2-digit state code, PAN (5 letters, 4 digits, 1 letter), entity
# number, literal Z, checksum character
GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][0-9A-Z]Z[0-9A-Z]$")

# Thresholds
INVOICE_TAX_TOLERANCE = Decimal('1.00')
TDS_REVIEW_THRESHOLD = Decimal('30000')
TDS_REVIEW_ESCALATION_COUNT = 5
CASH_PAYMENT_LIMIT = Decimal('10000')
ROUND_FIGURE_FLOOR = Decimal('10000')
ROUND_FIGURE_UNIT = Decimal('1000')
ROUND_FIGURE_ALERT_COUNT = 20
JOURNAL_BALANCE_EPSILON = Decimal('0.01')

# Evidence limits
MAX_NAMED_RECORDS = 10
MAX_DATA_REFERENCES = 5


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored amount (Decimal, float, int, str, None) to Decimal."""
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def line_amount(line) -> Decimal:
    """A journal line carries either a debit or a credit; never both."""
    debit = to_decimal(line.debit)
    return debit if debit else to_decimal(line.credit)


def is_round_figure(amount: Decimal) -> bool:
    return amount > ROUND_FIGURE_FLOOR and amount % ROUND_FIGURE_UNIT == 0


@dataclass
class ComplianceFinding:
    """Outcome of one compliance rule."""
    module: ComplianceModule
    check_code: str
    check_name: str
    severity: CheckSeverity
    status: CheckStatus
    affected_count: int = 0
    affected_amount: Decimal = Decimal('0')
    recommendation: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    data_references: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASS


class ComplianceRule:
    """
    Base class for compliance rules.

    Subclasses set the class attributes and implement ``evaluate``.
    ``passed`` and ``flagged`` build the two shapes of finding.
    """
    code: str = ""
    module: ComplianceModule
    name: str = ""
    recommendation: Optional[str] = None

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        raise NotImplementedError

    def passed(self, **extra) -> ComplianceFinding:
        return ComplianceFinding(
            module=self.module,
            check_code=self.code,
            check_name=self.name,
            severity=CheckSeverity.INFO,
            status=CheckStatus.PASS,
            **extra,
        )

    def flagged(
        self,
        status: CheckStatus,
        severity: CheckSeverity,
        affected_count: int,
        affected_amount: Decimal = Decimal('0'),
        **extra,
    ) -> ComplianceFinding:
        return ComplianceFinding(
            module=self.module,
            check_code=self.code,
            check_name=self.name,
            severity=severity,
            status=status,
            affected_count=affected_count,
            affected_amount=affected_amount,
            recommendation=self.recommendation,
            **extra,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.code})>"


# ===========================================
# GST
# ===========================================

class _GSTINFormatRule(ComplianceRule):
    module = ComplianceModule.GST
    detail_key = ""

    def parties(self, snapshot: FiscalSnapshot) -> Sequence:
        raise NotImplementedError

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        # Missing GSTINs are an ITC question (G4), not a format one
        invalid = [
            party for party in self.parties(snapshot)
            if party.gstin and not GSTIN_PATTERN.match(party.gstin)
        ]
        names = [party.name for party in invalid[:MAX_NAMED_RECORDS]]
        if not invalid:
            return self.passed(details={self.detail_key: []})
        return self.flagged(
            CheckStatus.FAIL,
            CheckSeverity.WARNING,
            affected_count=len(invalid),
            details={self.detail_key: names},
        )


class VendorGSTINFormatRule(_GSTINFormatRule):
    code = "G1"
    name = "GSTIN Format Validation (Vendors)"
    recommendation = "Correct invalid GSTINs to avoid ITC disallowance."
    detail_key = "invalid_vendors"

    def parties(self, snapshot):
        return snapshot.vendors


class CustomerGSTINFormatRule(_GSTINFormatRule):
    code = "G2"
    name = "GSTIN Format Validation (Customers)"
    recommendation = "Verify customer GSTINs for accurate GSTR-1 filing."
    detail_key = "invalid_customers"

    def parties(self, snapshot):
        return snapshot.customers


class InvoiceTaxConsistencyRule(ComplianceRule):
    code = "G3"
    module = ComplianceModule.GST
    name = "Invoice Tax Amount Consistency"
    recommendation = "Taxable value plus tax does not equal invoice total. Reconcile immediately."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        mismatched = [
            invoice for invoice in snapshot.invoices
            if abs(to_decimal(invoice.amount) + to_decimal(invoice.tax_amount)
                   - to_decimal(invoice.total_amount)) > INVOICE_TAX_TOLERANCE
        ]
        if not mismatched:
            return self.passed()
        return self.flagged(
            CheckStatus.FAIL,
            CheckSeverity.CRITICAL,
            affected_count=len(mismatched),
            affected_amount=sum((to_decimal(i.total_amount) for i in mismatched), Decimal('0')),
            data_references=[i.invoice_number for i in mismatched[:MAX_DATA_REFERENCES]],
        )


class BillsWithoutVendorGSTINRule(ComplianceRule):
    code = "G4"
    module = ComplianceModule.GST
    name = "ITC at Risk - Bills Without Vendor GSTIN"
    recommendation = "Obtain vendor GSTINs to claim Input Tax Credit."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        registered = {vendor.id for vendor in snapshot.vendors if vendor.gstin}
        at_risk = [
            bill for bill in snapshot.bills
            if bill.vendor_id is None or bill.vendor_id not in registered
        ]
        if not at_risk:
            return self.passed()
        return self.flagged(
            CheckStatus.WARNING,
            CheckSeverity.WARNING,
            affected_count=len(at_risk),
            affected_amount=sum((to_decimal(b.tax_amount) for b in at_risk), Decimal('0')),
            data_references=[b.bill_number for b in at_risk[:MAX_DATA_REFERENCES]],
        )


# ===========================================
# TDS
# ===========================================

class HighValueExpenseTDSRule(ComplianceRule):
    code = "T1"
    module = ComplianceModule.TDS
    name = "High-Value Expenses - TDS Review Required"
    recommendation = "Verify TDS deducted on all expenses above threshold per applicable section."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        high_value = [e for e in snapshot.expenses if to_decimal(e.amount) > TDS_REVIEW_THRESHOLD]
        if not high_value:
            return self.passed()
        severity = (
            CheckSeverity.WARNING if len(high_value) > TDS_REVIEW_ESCALATION_COUNT
            else CheckSeverity.INFO
        )
        return self.flagged(
            CheckStatus.WARNING,
            severity,
            affected_count=len(high_value),
            affected_amount=sum((to_decimal(e.amount) for e in high_value), Decimal('0')),
        )


class VendorsWithoutPANRule(ComplianceRule):
    code = "T2"
    module = ComplianceModule.TDS
    name = "Vendors Without PAN (206AA Risk)"
    recommendation = "Collect PANs from all vendors. TDS must be deducted at higher rates without PAN."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        no_pan = {vendor.id: vendor.name for vendor in snapshot.vendors if not vendor.pan}
        exposed_bills = [bill for bill in snapshot.bills if bill.vendor_id in no_pan]
        if not exposed_bills:
            return self.passed()
        vendor_names = list(OrderedDict.fromkeys(no_pan[b.vendor_id] for b in exposed_bills))
        return self.flagged(
            CheckStatus.WARNING,
            CheckSeverity.WARNING,
            affected_count=len(exposed_bills),
            affected_amount=sum((to_decimal(b.total_amount) for b in exposed_bills), Decimal('0')),
            details={"vendors_without_pan": vendor_names[:MAX_NAMED_RECORDS]},
        )


# ===========================================
# INCOME TAX
# ===========================================

def _is_cash(expense) -> bool:
    mode = expense.payment_mode
    if mode is not None and str(getattr(mode, "value", mode)).lower() == PaymentMode.CASH.value:
        return True
    return "cash" in (expense.category or "").lower()


class CashPaymentLimitRule(ComplianceRule):
    code = "IT1"
    module = ComplianceModule.INCOME_TAX
    name = "Cash Payments > Rs 10,000 (Sec 40A(3))"
    recommendation = (
        "Payments exceeding Rs 10,000 in cash are disallowed u/s 40A(3). "
        "Switch to banking channels."
    )

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        cash = [
            e for e in snapshot.expenses
            if to_decimal(e.amount) > CASH_PAYMENT_LIMIT and _is_cash(e)
        ]
        if not cash:
            return self.passed()
        return self.flagged(
            CheckStatus.FAIL,
            CheckSeverity.CRITICAL,
            affected_count=len(cash),
            affected_amount=sum((to_decimal(e.amount) for e in cash), Decimal('0')),
        )


class RoundFigureJournalRule(ComplianceRule):
    code = "IT2"
    module = ComplianceModule.INCOME_TAX
    name = "Round Figure Journal Entries"
    recommendation = "High frequency of round figure entries may indicate estimation or manipulation."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        round_amounts = [
            amount for amount in (line_amount(line) for line in snapshot.journal_lines)
            if is_round_figure(amount)
        ]
        # A handful of round lines is normal; only a high frequency is reported
        if len(round_amounts) <= ROUND_FIGURE_ALERT_COUNT:
            return self.passed(details={"count": len(round_amounts)})
        return self.flagged(
            CheckStatus.WARNING,
            CheckSeverity.WARNING,
            affected_count=len(round_amounts),
            affected_amount=sum(round_amounts, Decimal('0')),
            details={"count": len(round_amounts)},
        )


# ===========================================
# FIXED ASSETS
# ===========================================

class ZeroDepreciationRule(ComplianceRule):
    code = "FA1"
    module = ComplianceModule.FIXED_ASSETS
    name = "Active Assets with Zero Depreciation"
    recommendation = "Run depreciation schedule for assets not yet depreciated."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        undepreciated = [
            asset for asset in snapshot.assets
            if asset.status == AssetStatus.ACTIVE
            and to_decimal(asset.accumulated_depreciation) == 0
            and asset.depreciation_method != DepreciationMethod.NONE
        ]
        if not undepreciated:
            return self.passed()
        return self.flagged(
            CheckStatus.WARNING,
            CheckSeverity.WARNING,
            affected_count=len(undepreciated),
            affected_amount=sum((to_decimal(a.purchase_price) for a in undepreciated), Decimal('0')),
        )


class DisposalValueRule(ComplianceRule):
    code = "FA2"
    module = ComplianceModule.FIXED_ASSETS
    name = "Disposed Assets Without Disposal Value"
    recommendation = "Record disposal price for all disposed assets for gain/loss computation."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        incomplete = [
            asset for asset in snapshot.assets
            if asset.status == AssetStatus.DISPOSED and asset.disposal_price is None
        ]
        if not incomplete:
            return self.passed()
        return self.flagged(
            CheckStatus.FAIL,
            CheckSeverity.WARNING,
            affected_count=len(incomplete),
            affected_amount=sum((to_decimal(a.purchase_price) for a in incomplete), Decimal('0')),
        )


# ===========================================
# DATA INTEGRITY
# ===========================================

class UnbalancedJournalRule(ComplianceRule):
    code = "DI1"
    module = ComplianceModule.DATA_INTEGRITY
    name = "Unbalanced Journal Entries"
    recommendation = "All journal entries must balance. Fix immediately."

    def evaluate(self, snapshot: FiscalSnapshot) -> ComplianceFinding:
        balances: "OrderedDict[Any, List[Decimal]]" = OrderedDict()
        for line in snapshot.journal_lines:
            totals = balances.setdefault(line.journal_entry_id, [Decimal('0'), Decimal('0')])
            totals[0] += to_decimal(line.debit)
            totals[1] += to_decimal(line.credit)

        imbalances = {
            entry_id: abs(debit - credit)
            for entry_id, (debit, credit) in balances.items()
            if abs(debit - credit) > JOURNAL_BALANCE_EPSILON
        }
        if not imbalances:
            return self.passed()
        return self.flagged(
            CheckStatus.FAIL,
            CheckSeverity.CRITICAL,
            affected_count=len(imbalances),
            affected_amount=sum(imbalances.values(), Decimal('0')),
            data_references=[str(entry_id) for entry_id in list(imbalances)[:MAX_DATA_REFERENCES]],
        )


# ===========================================
# REGISTRY
# ===========================================

COMPLIANCE_RULES: List[ComplianceRule] = [
    VendorGSTINFormatRule(),
    CustomerGSTINFormatRule(),
    InvoiceTaxConsistencyRule(),
    BillsWithoutVendorGSTINRule(),
    HighValueExpenseTDSRule(),
    VendorsWithoutPANRule(),
    CashPaymentLimitRule(),
    RoundFigureJournalRule(),
    ZeroDepreciationRule(),
    DisposalValueRule(),
    UnbalancedJournalRule(),
]


def run_compliance_checks(
    snapshot: FiscalSnapshot,
    rules: Optional[Iterable[ComplianceRule]] = None,
) -> List[ComplianceFinding]:
    """Evaluate every rule in registry order."""
    return [rule.evaluate(snapshot) for rule in (COMPLIANCE_RULES if rules is None else rules)]


def summarize_findings(findings: Sequence[ComplianceFinding]) -> Dict[str, int]:
    return {
        "total": len(findings),
        "pass": sum(1 for f in findings if f.status == CheckStatus.PASS),
        "fail": sum(1 for f in findings if f.status == CheckStatus.FAIL),
    }
