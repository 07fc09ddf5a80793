"""
AuditPulse - Auditor Pack Service

Assembles the structured auditor pack for a fiscal year:

    01_Financials           chart of accounts and volumes
    02_Ledgers              journal line volume
    03_GST                  invoices and GST findings
    04_TDS                  TDS findings and vendor PAN/GSTIN register
    05_FixedAssets          asset register and asset findings
    06_IFC                  internal control assessments
    07_ComplianceReports    every compliance finding
    08_AuditLogs            most recent audit-trail entries
    09_AI_RiskInsights      risk themes, anomalies, samples, narratives

The pack never creates a run. Audit sections come from a COMPLETED run of
the caller's organization, read in the order they were produced, so two
packs of the same run carry identical sections. Each generation is logged
in audit_pack_exports.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import AuditPackExport, AuditRunStatus, ComplianceModule
from app.services.audit_run_service import AuditRunService, RunResults
from app.services.audit_snapshot_service import (
    FiscalSnapshot,
    SnapshotGatherer,
    current_financial_year,
    parse_financial_year,
)
from app.utils.error_handling import AuditRunNotCompletedException

logger = logging.getLogger(__name__)


PACK_VENDOR_LIMIT = 20
PACK_AUDIT_LOG_LIMIT = 200


def _check_row(check) -> Dict[str, Any]:
    return {
        "check_code": check.check_code,
        "check_name": check.check_name,
        "module": check.module,
        "severity": check.severity,
        "status": check.status,
        "affected_count": check.affected_count,
        "affected_amount": check.affected_amount,
        "recommendation": check.recommendation,
        "details": check.details,
        "data_references": check.data_references,
    }


def _assessment_row(assessment) -> Dict[str, Any]:
    return {
        "check_code": assessment.check_code,
        "check_type": assessment.check_type,
        "check_name": assessment.check_name,
        "severity": assessment.severity,
        "status": assessment.status,
        "affected_count": assessment.affected_count,
        "affected_user_ids": assessment.affected_user_ids,
        "recommendation": assessment.recommendation,
        "details": assessment.details,
    }


def _columns(row, names) -> Dict[str, Any]:
    return {name: getattr(row, name) for name in names}


class AuditorPackService:
    def __init__(self, db: AsyncSession, gatherer: SnapshotGatherer):
        self.db = db
        self.gatherer = gatherer
        self.runs = AuditRunService(db, gatherer)

    async def generate(
        self,
        organization_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        financial_year: Optional[str],
        run_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """
        Build and log an auditor pack.

        Raises:
            AuditRunNotFoundException: run_id is not a run of this organization
            AuditRunNotCompletedException: the run is RUNNING or FAILED
            InvalidFiscalYearException: malformed financial_year
        """
        results = RunResults()
        if run_id is not None:
            run = await self.runs.get_run(organization_id, run_id)
            if AuditRunStatus(run.status) != AuditRunStatus.COMPLETED:
                raise AuditRunNotCompletedException(run_id, AuditRunStatus(run.status).value)
            financial_year = financial_year or run.financial_year
            results = await self.runs.load_results(run_id)

        window = parse_financial_year(financial_year or current_financial_year())
        snapshot = await self.gatherer.gather(organization_id, window.label)
        sections = self.build_sections(snapshot, results)

        self.db.add(AuditPackExport(
            organization_id=organization_id,
            run_id=run_id,
            financial_year=window.label,
            exported_by=user_id,
            export_type="json",
            status="completed",
            sections_included=list(sections),
        ))
        await self.db.commit()
        logger.info(f"Auditor pack generated for org {organization_id} FY {window.label} run={run_id}")

        return {
            "metadata": {
                "organization_id": str(organization_id),
                "financial_year": window.label,
                "run_id": str(run_id) if run_id else None,
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "generated_by": str(user_id) if user_id else None,
            },
            "sections": sections,
        }

    def build_sections(self, snapshot: FiscalSnapshot, results: RunResults) -> Dict[str, Any]:
        checks = [_check_row(c) for c in results.checks]

        def module_checks(module: ComplianceModule) -> List[Dict[str, Any]]:
            return [row for row in checks if row["module"] == module]

        sections = {
            "01_Financials": {
                "gl_accounts": [
                    _columns(a, ("id", "code", "name", "account_type", "normal_balance"))
                    for a in snapshot.gl_accounts
                ],
                "journal_entries_count": len(snapshot.journal_entries),
                "total_invoices": len(snapshot.invoices),
                "total_bills": len(snapshot.bills),
            },
            "02_Ledgers": {
                "journal_lines_count": len(snapshot.journal_lines),
            },
            "03_GST": {
                "invoices": [
                    {
                        **_columns(i, ("invoice_number", "client_name", "amount", "tax_amount",
                                       "total_amount", "status")),
                        "date": i.invoice_date,
                    }
                    for i in snapshot.invoices
                ],
                "gst_checks": module_checks(ComplianceModule.GST),
            },
            "04_TDS": {
                "tds_checks": module_checks(ComplianceModule.TDS),
                "high_value_vendors": [
                    _columns(v, ("name", "gstin", "pan"))
                    for v in snapshot.vendors[:PACK_VENDOR_LIMIT]
                ],
            },
            "05_FixedAssets": {
                "assets": [
                    _columns(a, ("name", "asset_tag", "category", "purchase_price",
                                 "accumulated_depreciation", "current_book_value", "status",
                                 "depreciation_method"))
                    for a in snapshot.assets
                ],
                "asset_checks": module_checks(ComplianceModule.FIXED_ASSETS),
            },
            "06_IFC": {
                "assessments": [_assessment_row(a) for a in results.assessments],
            },
            "07_ComplianceReports": {
                "all_checks": checks,
            },
            "08_AuditLogs": {
                "recent_logs": [
                    _columns(log, ("action", "entity_type", "actor_name", "created_at"))
                    for log in snapshot.audit_logs[:PACK_AUDIT_LOG_LIMIT]
                ],
            },
            "09_AI_RiskInsights": {
                "risk_themes": [
                    _columns(t, ("theme_name", "risk_score", "confidence_score", "impact_area",
                                 "impacted_value", "transaction_count", "explanation",
                                 "suggested_action", "contributing_flags"))
                    for t in results.risk_themes
                ],
                "anomalies": [
                    _columns(a, ("anomaly_type", "risk_score", "trigger_condition", "deviation_pct",
                                 "current_value", "last_year_value", "confidence_score",
                                 "suggested_audit_action"))
                    for a in results.anomalies
                ],
                "samples": [
                    _columns(s, ("sample_type", "sample_name", "entity_type", "entity_id",
                                 "entity_reference", "risk_weight", "reason_selected", "amount"))
                    for s in results.samples
                ],
                "narratives": [
                    _columns(n, ("narrative_type", "content", "data_points"))
                    for n in results.narratives
                ],
            },
        }
        return jsonable_encoder(sections)
