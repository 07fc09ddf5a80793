"""
AuditPulse - Audit Intelligence Service

Delegates higher-order pattern detection to an OpenAI-compatible
chat-completions gateway.

Only a bounded statistical digest of the snapshot leaves the service; no
raw ledger rows are sent. The gateway is forced to answer through a single
function call whose parameters follow the AuditIntelligence contract, and
the answer is validated as a whole on receipt.

Failure mapping:
- HTTP 429, timeout, connection failure -> DelegateUnavailableException
- HTTP 402                              -> DelegateBudgetExhaustedException
- any other non-2xx, missing tool call,
  malformed JSON, contract violation    -> DelegateProtocolException
"""

import json
import logging
from collections import Counter, OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from app.config import settings
from app.models import AccountType, CheckStatus, InvoiceStatus
from app.schemas.audit_intelligence import AuditIntelligence, tool_parameters_schema
from app.services.audit_snapshot_service import FiscalSnapshot
from app.services.compliance_rules import (
    ComplianceFinding,
    is_round_figure,
    line_amount,
    summarize_findings,
    to_decimal,
)
from app.services.ifc_assessment_service import IFCFinding
from app.utils.error_handling import (
    DelegateBudgetExhaustedException,
    DelegateProtocolException,
    DelegateUnavailableException,
)

logger = logging.getLogger(__name__)


TOP_VENDOR_COUNT = 10
UNKNOWN_VENDOR = "Unknown"

SYSTEM_PROMPT = """You are an Indian Chartered Accountant AI Auditor performing a statutory audit risk analysis for FY {financial_year}.

CRITICAL RULES:
- You MUST be explainable. Every flag includes: trigger condition, data reference, % deviation, historical comparison, confidence score.
- No black-box scoring. Every risk score has a deterministic explanation.
- Use Indian CA/audit terminology (Companies Act 2013, CARO 2020, SA standards).
- All Rs values in Indian numbering system.
- Be specific with numbers. Never say "significant" without a number.

You will output structured data using the tool provided."""


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal('0.01')))


def _month_key(value) -> str:
    return value.strftime("%Y-%m")


# ===========================================
# DIGEST
# ===========================================

def build_digest(
    snapshot: FiscalSnapshot,
    findings: Sequence[ComplianceFinding],
    assessments: Sequence[IFCFinding],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Summarize a snapshot into aggregate figures for the gateway.

    Revenue is the credit side of revenue accounts and expenses the debit
    side of expense accounts, bucketed by the entry month.
    """
    today = today or date.today()
    revenue_ids = {a.id for a in snapshot.gl_accounts if a.account_type == AccountType.REVENUE}
    expense_ids = {a.id for a in snapshot.gl_accounts if a.account_type == AccountType.EXPENSE}

    total_revenue = Decimal('0')
    total_expenses = Decimal('0')
    monthly_revenue: Dict[str, Decimal] = OrderedDict()
    monthly_expenses: Dict[str, Decimal] = OrderedDict()
    round_figures = 0

    for line in snapshot.journal_lines:
        month = _month_key(line.entry.entry_date)
        if line.gl_account_id in revenue_ids:
            credit = to_decimal(line.credit)
            total_revenue += credit
            monthly_revenue[month] = monthly_revenue.get(month, Decimal('0')) + credit
        if line.gl_account_id in expense_ids:
            debit = to_decimal(line.debit)
            total_expenses += debit
            monthly_expenses[month] = monthly_expenses.get(month, Decimal('0')) + debit
        if is_round_figure(line_amount(line)):
            round_figures += 1

    manual_entries = [e for e in snapshot.journal_entries if e.is_manual]
    manual_by_month = Counter(_month_key(e.entry_date) for e in manual_entries)

    vendor_spend: Dict[str, Decimal] = {}
    for bill in snapshot.bills:
        name = bill.vendor_name or UNKNOWN_VENDOR
        vendor_spend[name] = vendor_spend.get(name, Decimal('0')) + to_decimal(bill.total_amount)
    top_vendors = sorted(vendor_spend.items(), key=lambda item: (-item[1], item[0]))[:TOP_VENDOR_COUNT]

    overdue = [
        invoice for invoice in snapshot.invoices
        if invoice.status != InvoiceStatus.PAID and invoice.due_date is not None and invoice.due_date < today
    ]

    return {
        "financial_year": snapshot.financial_year,
        "total_revenue": _money(total_revenue),
        "total_expenses": _money(total_expenses),
        "net_income": _money(total_revenue - total_expenses),
        "monthly_revenue": {month: _money(value) for month, value in monthly_revenue.items()},
        "monthly_expenses": {month: _money(value) for month, value in monthly_expenses.items()},
        "total_journal_entries": len(snapshot.journal_entries),
        "manual_entries_count": len(manual_entries),
        "manual_by_month": dict(sorted(manual_by_month.items())),
        "round_figure_entries": round_figures,
        "vendor_concentration": {
            "top_vendors": [{"name": name, "total": _money(total)} for name, total in top_vendors],
            "total_spend": _money(sum(vendor_spend.values(), Decimal('0'))),
        },
        "total_invoices": len(snapshot.invoices),
        "total_bills": len(snapshot.bills),
        "total_assets": len(snapshot.assets),
        "compliance_checks_summary": summarize_findings(findings),
        "ifc_checks_count": len(assessments),
        "ifc_failures": sum(1 for a in assessments if a.status == CheckStatus.FAIL),
        "overdue_invoices": len(overdue),
        "bank_transactions_count": len(snapshot.bank_transactions),
    }


# ===========================================
# GATEWAY CLIENT
# ===========================================

class AuditIntelligenceClient:
    """
    Client for the audit intelligence gateway.

    One request per call; no retries.
    """

    TOOL_NAME = "generate_audit_intelligence"
    TOOL_DESCRIPTION = (
        "Generate complete audit intelligence output including anomalies, "
        "risk themes, sampling, and narratives."
    )

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.audit_ai_api_key
        self.url = (
            f"{base_url.rstrip('/')}/chat/completions" if base_url
            else settings.audit_ai_completions_url
        )
        self.model = model or settings.audit_ai_model
        self.timeout = timeout or settings.audit_ai_timeout_seconds

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, digest: Dict[str, Any], financial_year: str) -> Dict[str, Any]:
        user_message = (
            f"Analyze this organization's financial data for FY {financial_year} "
            f"and generate audit intelligence:\n\n{json.dumps(digest, indent=2)}"
        )
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT.format(financial_year=financial_year)},
                {"role": "user", "content": user_message},
            ],
            "tools": [{
                "type": "function",
                "function": {
                    "name": self.TOOL_NAME,
                    "description": self.TOOL_DESCRIPTION,
                    "parameters": tool_parameters_schema(),
                },
            }],
            "tool_choice": {"type": "function", "function": {"name": self.TOOL_NAME}},
        }

    async def analyze(self, digest: Dict[str, Any], financial_year: str) -> AuditIntelligence:
        """
        Request audit intelligence for a digest.

        Raises:
            DelegateUnavailableException: rate limited, timed out or unreachable
            DelegateBudgetExhaustedException: gateway credits exhausted
            DelegateProtocolException: answer outside the contract
        """
        if not self.api_key:
            raise DelegateUnavailableException("Audit intelligence gateway is not configured")

        payload = self.build_payload(digest, financial_year)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, headers=self._get_headers(), json=payload)
        except httpx.TimeoutException as e:
            logger.warning(f"Audit intelligence gateway timed out after {self.timeout}s")
            raise DelegateUnavailableException(
                "Audit intelligence gateway did not respond in time", original_error=e
            )
        except httpx.RequestError as e:
            logger.warning(f"Audit intelligence gateway unreachable: {e}")
            raise DelegateUnavailableException(
                "Audit intelligence gateway is unreachable", original_error=e
            )

        return self.parse_response(response)

    def parse_response(self, response: httpx.Response) -> AuditIntelligence:
        status_code = response.status_code
        if status_code == 429:
            raise DelegateUnavailableException("AI rate limit exceeded. Try again later.", gateway_status=429)
        if status_code == 402:
            raise DelegateBudgetExhaustedException()
        if not response.is_success:
            logger.error(f"Audit intelligence gateway error {status_code}: {response.text[:500]}")
            raise DelegateProtocolException(
                f"AI gateway error: {status_code}",
                details={"status_code": status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DelegateProtocolException("Invalid JSON response from AI gateway", original_error=e)

        try:
            arguments = data["choices"][0]["message"]["tool_calls"][0]["function"]["arguments"]
        except (KeyError, IndexError, TypeError) as e:
            raise DelegateProtocolException("No tool call in AI response", original_error=e)

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except ValueError as e:
                raise DelegateProtocolException("Tool call arguments are not valid JSON", original_error=e)

        try:
            return AuditIntelligence.model_validate(arguments)
        except ValidationError as e:
            errors = _validation_summary(e)
            logger.error(f"Audit intelligence response violates contract: {errors}")
            raise DelegateProtocolException(
                "AI response does not match the audit intelligence contract",
                original_error=e,
                details={"errors": errors},
            )


def _validation_summary(error: ValidationError, limit: int = 10) -> List[str]:
    return [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()[:limit]
    ]
