"""
AuditPulse - Audit Engine Router

POST /audit-engine dispatches on ``action``:
- run_full_audit: rules + IFC + audit intelligence, scored and persisted
- pre_audit_simulation: deterministic checks only
- generate_auditor_pack: structured export of a fiscal year / completed run

Read endpoints expose persisted runs of the caller's organization.
"""

import logging
from typing import Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.dependencies import (
    CallerContext,
    get_audit_run_service,
    get_auditor_pack_service,
    get_caller,
)
from app.schemas.audit import (
    AIAnomalyResponse,
    AINarrativeResponse,
    AISampleResponse,
    AuditAction,
    AuditEngineRequest,
    AuditorPackResponse,
    AuditRunDetailResponse,
    AuditRunListResponse,
    AuditRunSummary,
    ComplianceCheckResponse,
    FullAuditResponse,
    IFCAssessmentResponse,
    RiskThemeResponse,
    SimulationResponse,
)
from app.services.audit_run_service import AuditRunService
from app.services.audit_snapshot_service import current_financial_year
from app.services.auditor_pack_service import AuditorPackService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit-engine", tags=["Audit Engine"])


@router.post(
    "",
    response_model=Union[FullAuditResponse, SimulationResponse, AuditorPackResponse],
    summary="Run an audit engine action",
)
async def audit_engine(
    body: AuditEngineRequest,
    caller: CallerContext = Depends(get_caller),
    runs: AuditRunService = Depends(get_audit_run_service),
    packs: AuditorPackService = Depends(get_auditor_pack_service),
):
    """
    Execute a full audit, a pre-audit simulation or an auditor pack export
    for the caller's organization.
    """
    logger.info(f"Audit engine action {body.action.value} by user {caller.user_id}")

    if body.action == AuditAction.RUN_FULL_AUDIT:
        outcome = await runs.run_full_audit(
            caller.organization_id,
            caller.user_id,
            body.financial_year or current_financial_year(),
        )
        return FullAuditResponse(
            run_id=outcome.run.id,
            compliance_score=outcome.run.compliance_score,
            ai_risk_index=outcome.run.ai_risk_index,
            ifc_rating=outcome.run.ifc_rating,
        )

    if body.action == AuditAction.PRE_AUDIT_SIMULATION:
        outcome = await runs.run_simulation(
            caller.organization_id,
            caller.user_id,
            body.financial_year or current_financial_year(),
        )
        return SimulationResponse(
            run_id=outcome.run.id,
            compliance_score=outcome.run.compliance_score,
            ifc_rating=outcome.run.ifc_rating,
            checks_count=outcome.checks_count,
            ifc_count=outcome.ifc_count,
        )

    pack = await packs.generate(
        caller.organization_id,
        caller.user_id,
        body.financial_year,
        run_id=body.run_id,
    )
    return AuditorPackResponse(**pack)


@router.get("/runs", response_model=AuditRunListResponse)
async def list_runs(
    financial_year: Optional[str] = Query(None, description="Filter by fiscal year label"),
    limit: int = Query(50, ge=1, le=200),
    caller: CallerContext = Depends(get_caller),
    runs: AuditRunService = Depends(get_audit_run_service),
):
    """List audit runs of the caller's organization, newest first."""
    items = await runs.list_runs(caller.organization_id, financial_year, limit=limit)
    return AuditRunListResponse(
        runs=[AuditRunSummary.model_validate(run) for run in items],
        total=len(items),
    )


@router.get("/runs/latest", response_model=AuditRunSummary)
async def get_latest_run(
    financial_year: Optional[str] = Query(None, description="Restrict to a fiscal year label"),
    caller: CallerContext = Depends(get_caller),
    runs: AuditRunService = Depends(get_audit_run_service),
):
    """Most recently completed audit run."""
    run = await runs.get_latest_completed(caller.organization_id, financial_year)
    return AuditRunSummary.model_validate(run)


@router.get("/runs/{run_id}", response_model=AuditRunDetailResponse)
async def get_run(
    run_id: UUID,
    caller: CallerContext = Depends(get_caller),
    runs: AuditRunService = Depends(get_audit_run_service),
):
    """Audit run with its findings, assessments and intelligence output."""
    run = await runs.get_run(caller.organization_id, run_id)
    results = await runs.load_results(run.id)
    return AuditRunDetailResponse(
        run=AuditRunSummary.model_validate(run),
        checks=[ComplianceCheckResponse.model_validate(c) for c in results.checks],
        ifc_assessments=[IFCAssessmentResponse.model_validate(a) for a in results.assessments],
        anomalies=[AIAnomalyResponse.model_validate(a) for a in results.anomalies],
        risk_themes=[RiskThemeResponse.model_validate(t) for t in results.risk_themes],
        samples=[AISampleResponse.model_validate(s) for s in results.samples],
        narratives=[AINarrativeResponse.model_validate(n) for n in results.narratives],
    )
