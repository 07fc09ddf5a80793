"""
AuditPulse - Compliance Rule Tests

Unit tests for the GST, TDS, income-tax, fixed-asset and data-integrity
rule catalog.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from app.models import (
    AccountType,
    AssetStatus,
    CheckSeverity,
    CheckStatus,
    ComplianceModule,
    DepreciationMethod,
    PaymentMode,
)
from app.services.compliance_rules import (
    COMPLIANCE_RULES,
    BillsWithoutVendorGSTINRule,
    CashPaymentLimitRule,
    CustomerGSTINFormatRule,
    DisposalValueRule,
    HighValueExpenseTDSRule,
    InvoiceTaxConsistencyRule,
    RoundFigureJournalRule,
    UnbalancedJournalRule,
    VendorGSTINFormatRule,
    VendorsWithoutPANRule,
    ZeroDepreciationRule,
    is_round_figure,
    run_compliance_checks,
    summarize_findings,
)
from fixtures import ledger_factory as lf


ORG = uuid4()
DAY = date(2025, 7, 1)


@pytest.fixture
def accounts():
    return {
        "bank": lf.gl_account(ORG, "1100", "Bank", AccountType.ASSET),
        "sales": lf.gl_account(ORG, "4000", "Sales", AccountType.REVENUE),
        "rent": lf.gl_account(ORG, "5100", "Rent", AccountType.EXPENSE),
    }


class TestEmptySnapshot:
    """No data is never an error."""

    def test_every_rule_passes(self):
        findings = run_compliance_checks(lf.snapshot(ORG))

        assert len(findings) == len(COMPLIANCE_RULES)
        for finding in findings:
            assert finding.status == CheckStatus.PASS
            assert finding.affected_count == 0
            assert finding.affected_amount == Decimal("0")
            assert finding.recommendation is None

    def test_registry_order_and_codes(self):
        codes = [f.check_code for f in run_compliance_checks(lf.snapshot(ORG))]

        assert codes == ["G1", "G2", "G3", "G4", "T1", "T2", "IT1", "IT2", "FA1", "FA2", "DI1"]

    def test_custom_rule_subset(self):
        findings = run_compliance_checks(lf.snapshot(ORG), rules=[UnbalancedJournalRule()])

        assert [f.check_code for f in findings] == ["DI1"]


class TestGSTRules:
    """GSTIN format, invoice arithmetic and ITC exposure."""

    def test_valid_gstin_passes(self):
        snap = lf.snapshot(ORG, vendors=[lf.vendor(ORG, "Good Supplier")])

        assert VendorGSTINFormatRule().evaluate(snap).passed

    def test_malformed_vendor_gstin_fails(self):
        snap = lf.snapshot(ORG, vendors=[
            lf.vendor(ORG, "Good Supplier"),
            lf.vendor(ORG, "Typo Traders", gstin="27AAPFU0939F1XV"),
            lf.vendor(ORG, "Short Co", gstin="27AAPFU09"),
        ])

        finding = VendorGSTINFormatRule().evaluate(snap)

        assert finding.status == CheckStatus.FAIL
        assert finding.severity == CheckSeverity.WARNING
        assert finding.affected_count == 2
        assert finding.details["invalid_vendors"] == ["Typo Traders", "Short Co"]

    def test_missing_gstin_is_not_a_format_error(self):
        snap = lf.snapshot(ORG, vendors=[lf.vendor(ORG, "Unregistered", gstin=None)])

        assert VendorGSTINFormatRule().evaluate(snap).passed

    def test_lowercase_customer_gstin_fails(self):
        snap = lf.snapshot(ORG, customers=[lf.customer(ORG, "Retail Buyer", gstin="27aapfu0939f1zv")])

        finding = CustomerGSTINFormatRule().evaluate(snap)

        assert finding.status == CheckStatus.FAIL
        assert finding.details["invalid_customers"] == ["Retail Buyer"]

    def test_invoice_total_mismatch_is_critical(self):
        snap = lf.snapshot(ORG, invoices=[lf.invoice(ORG, "INV-001", DAY, 1000, 180, total_amount=1200)])

        finding = InvoiceTaxConsistencyRule().evaluate(snap)

        assert finding.status == CheckStatus.FAIL
        assert finding.severity == CheckSeverity.CRITICAL
        assert finding.affected_count == 1
        assert finding.affected_amount == Decimal("1200")
        assert finding.data_references == ["INV-001"]

    def test_invoice_within_rupee_tolerance_passes(self):
        snap = lf.snapshot(ORG, invoices=[lf.invoice(ORG, "INV-002", DAY, 1000, 180, total_amount="1180.90")])

        assert InvoiceTaxConsistencyRule().evaluate(snap).passed

    def test_bills_from_unregistered_vendors_put_itc_at_risk(self):
        registered = lf.vendor(ORG, "Registered")
        unregistered = lf.vendor(ORG, "Unregistered", gstin=None)
        snap = lf.snapshot(
            ORG,
            vendors=[registered, unregistered],
            bills=[
                lf.bill(ORG, "B-1", DAY, 10000, 1800, registered),
                lf.bill(ORG, "B-2", DAY, 5000, 900, unregistered),
                lf.bill(ORG, "B-3", DAY, 2000, 360, None),
            ],
        )

        finding = BillsWithoutVendorGSTINRule().evaluate(snap)

        assert finding.status == CheckStatus.WARNING
        assert finding.affected_count == 2
        assert finding.affected_amount == Decimal("1260")
        assert finding.data_references == ["B-2", "B-3"]


class TestTDSRules:
    """High-value expense review and PAN exposure."""

    def test_expenses_above_threshold_need_review(self):
        snap = lf.snapshot(ORG, expenses=[
            lf.expense(ORG, DAY, 30000),
            lf.expense(ORG, DAY, 30001),
            lf.expense(ORG, DAY, 45000),
        ])

        finding = HighValueExpenseTDSRule().evaluate(snap)

        assert finding.status == CheckStatus.WARNING
        assert finding.severity == CheckSeverity.INFO
        assert finding.affected_count == 2
        assert finding.affected_amount == Decimal("75001")

    def test_many_high_value_expenses_escalate_severity(self):
        snap = lf.snapshot(ORG, expenses=[lf.expense(ORG, DAY, 50000) for _ in range(6)])

        assert HighValueExpenseTDSRule().evaluate(snap).severity == CheckSeverity.WARNING

    def test_bills_to_vendors_without_pan(self):
        no_pan = lf.vendor(ORG, "No PAN Works", pan=None)
        with_pan = lf.vendor(ORG, "PAN Holder")
        snap = lf.snapshot(
            ORG,
            vendors=[no_pan, with_pan],
            bills=[
                lf.bill(ORG, "B-1", DAY, 1000, 180, no_pan),
                lf.bill(ORG, "B-2", DAY, 2000, 360, no_pan),
                lf.bill(ORG, "B-3", DAY, 9000, 1620, with_pan),
            ],
        )

        finding = VendorsWithoutPANRule().evaluate(snap)

        assert finding.status == CheckStatus.WARNING
        assert finding.affected_count == 2
        assert finding.affected_amount == Decimal("3540")
        assert finding.details["vendors_without_pan"] == ["No PAN Works"]

    def test_vendor_without_pan_but_no_bills_passes(self):
        snap = lf.snapshot(ORG, vendors=[lf.vendor(ORG, "Dormant", pan=None)])

        assert VendorsWithoutPANRule().evaluate(snap).passed


class TestIncomeTaxRules:
    """Section 40A(3) cash limit and round-figure journals."""

    def test_cash_expense_above_limit_fails(self):
        snap = lf.snapshot(ORG, expenses=[
            lf.expense(ORG, DAY, 10000, payment_mode=PaymentMode.CASH),
            lf.expense(ORG, DAY, 10001, payment_mode=PaymentMode.CASH),
            lf.expense(ORG, DAY, 25000, payment_mode=PaymentMode.UPI),
        ])

        finding = CashPaymentLimitRule().evaluate(snap)

        assert finding.status == CheckStatus.FAIL
        assert finding.severity == CheckSeverity.CRITICAL
        assert finding.affected_count == 1
        assert finding.affected_amount == Decimal("10001")

    def test_cash_category_counts_as_cash(self):
        snap = lf.snapshot(ORG, expenses=[
            lf.expense(ORG, DAY, 12000, category="Petty Cash", payment_mode=None),
        ])

        assert CashPaymentLimitRule().evaluate(snap).affected_count == 1

    @pytest.mark.parametrize("amount,expected", [
        ("10000", False),
        ("11000", True),
        ("11000.50", False),
        ("250000", True),
        ("999", False),
    ])
    def test_round_figure_definition(self, amount, expected):
        assert is_round_figure(Decimal(amount)) is expected

    def test_few_round_figures_pass_with_count(self, accounts):
        entries = [
            lf.journal_entry(ORG, DAY, [(accounts["rent"], 20000, 0), (accounts["bank"], 0, 20000)])
            for _ in range(5)
        ]

        finding = RoundFigureJournalRule().evaluate(lf.snapshot(ORG, journal_entries=entries))

        assert finding.passed
        assert finding.details == {"count": 10}

    def test_frequent_round_figures_warn(self, accounts):
        entries = [
            lf.journal_entry(ORG, DAY, [(accounts["rent"], 20000, 0), (accounts["bank"], 0, 20000)])
            for _ in range(11)
        ]

        finding = RoundFigureJournalRule().evaluate(lf.snapshot(ORG, journal_entries=entries))

        assert finding.status == CheckStatus.WARNING
        assert finding.affected_count == 22
        assert finding.affected_amount == Decimal("440000")


class TestFixedAssetRules:
    """Depreciation and disposal completeness."""

    def test_active_asset_without_depreciation_warns(self):
        snap = lf.snapshot(ORG, assets=[
            lf.asset(ORG, "Server", 250000),
            lf.asset(ORG, "Land", 900000, depreciation_method=DepreciationMethod.NONE),
            lf.asset(ORG, "Van", 600000, accumulated_depreciation=60000),
        ])

        finding = ZeroDepreciationRule().evaluate(snap)

        assert finding.status == CheckStatus.WARNING
        assert finding.affected_count == 1
        assert finding.affected_amount == Decimal("250000")

    def test_disposed_asset_without_price_fails(self):
        snap = lf.snapshot(ORG, assets=[
            lf.asset(ORG, "Old Printer", 30000, status=AssetStatus.DISPOSED),
            lf.asset(ORG, "Old Car", 500000, status=AssetStatus.DISPOSED, disposal_price=120000),
        ])

        finding = DisposalValueRule().evaluate(snap)

        assert finding.status == CheckStatus.FAIL
        assert finding.affected_count == 1
        assert finding.affected_amount == Decimal("30000")

    def test_zero_disposal_price_is_recorded(self):
        snap = lf.snapshot(ORG, assets=[lf.asset(ORG, "Scrapped", 5000, status=AssetStatus.DISPOSED, disposal_price=0)])

        assert DisposalValueRule().evaluate(snap).passed


class TestDataIntegrityRule:
    """Journal entries must balance."""

    def test_balanced_entries_pass(self, accounts):
        entry = lf.journal_entry(ORG, DAY, [
            (accounts["bank"], "1180.00", 0),
            (accounts["sales"], 0, "1000.00"),
            (accounts["sales"], 0, "180.00"),
        ])

        assert UnbalancedJournalRule().evaluate(lf.snapshot(ORG, journal_entries=[entry])).passed

    def test_imbalance_sums_absolute_differences(self, accounts):
        over = lf.journal_entry(ORG, DAY, [(accounts["bank"], 500, 0), (accounts["sales"], 0, 450)])
        under = lf.journal_entry(ORG, DAY, [(accounts["bank"], 100, 0), (accounts["sales"], 0, 130)])
        fine = lf.journal_entry(ORG, DAY, [(accounts["bank"], 70, 0), (accounts["sales"], 0, 70)])

        finding = UnbalancedJournalRule().evaluate(lf.snapshot(ORG, journal_entries=[over, under, fine]))

        assert finding.status == CheckStatus.FAIL
        assert finding.severity == CheckSeverity.CRITICAL
        assert finding.affected_count == 2
        assert finding.affected_amount == Decimal("80")
        assert finding.data_references == [str(over.id), str(under.id)]

    def test_sub_paisa_difference_is_tolerated(self, accounts):
        entry = lf.journal_entry(ORG, DAY, [(accounts["bank"], "100.01", 0), (accounts["sales"], 0, "100.00")])

        assert UnbalancedJournalRule().evaluate(lf.snapshot(ORG, journal_entries=[entry])).passed


class TestSummaries:
    def test_summarize_findings(self, accounts):
        snap = lf.snapshot(ORG, invoices=[lf.invoice(ORG, "INV-9", DAY, 100, 18, total_amount=500)])

        summary = summarize_findings(run_compliance_checks(snap))

        assert summary == {"total": 11, "pass": 10, "fail": 1}

    def test_findings_keep_their_module(self):
        modules = {f.check_code: f.module for f in run_compliance_checks(lf.snapshot(ORG))}

        assert modules["G3"] == ComplianceModule.GST
        assert modules["T2"] == ComplianceModule.TDS
        assert modules["IT1"] == ComplianceModule.INCOME_TAX
        assert modules["FA1"] == ComplianceModule.FIXED_ASSETS
        assert modules["DI1"] == ComplianceModule.DATA_INTEGRITY
