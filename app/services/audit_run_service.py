"""
AuditPulse - Audit Run Orchestrator

Owns the lifecycle of one audit execution:

    RUNNING --> COMPLETED
        \\----> FAILED

1. Create the run (RUNNING) and commit it so it is visible even if
   anything later fails
2. Gather the fiscal snapshot
3. Run compliance rules and IFC checks
4. Full audits only: send the digest to the audit intelligence gateway
5. Compile scores, persist every finding, move the run to COMPLETED

Any exception after step 1 rolls back the unit of work, marks the run
FAILED and is re-raised to the caller. Terminal runs are never written
again.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    AIAnomaly,
    AINarrative,
    AISample,
    AuditComplianceRun,
    AuditRunStatus,
    AuditRunType,
    ComplianceCheck,
    IFCAssessment,
    RiskTheme,
)
from app.schemas.audit_intelligence import AuditIntelligence
from app.services.audit_intelligence_service import AuditIntelligenceClient, build_digest
from app.services.audit_scoring import (
    compute_ai_risk_index,
    compute_ifc_rating,
    score_breakdown,
)
from app.services.audit_snapshot_service import SnapshotGatherer, parse_financial_year
from app.services.compliance_rules import ComplianceFinding, run_compliance_checks
from app.services.ifc_assessment_service import IFCFinding, run_ifc_assessment
from app.utils.error_handling import AuditRunNotFoundException, InvalidRunTransitionException

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[AuditRunStatus, frozenset] = {
    AuditRunStatus.RUNNING: frozenset({AuditRunStatus.COMPLETED, AuditRunStatus.FAILED}),
    AuditRunStatus.COMPLETED: frozenset(),
    AuditRunStatus.FAILED: frozenset(),
}


def transition(run: AuditComplianceRun, target: AuditRunStatus) -> None:
    """Move a run to ``target`` or raise InvalidRunTransitionException.

    Both terminal states stamp ``completed_at``, so it reads as the time the
    run finished whether or not it succeeded.
    """
    current = AuditRunStatus(run.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidRunTransitionException(run.id, current.value, target.value)
    run.status = target
    run.completed_at = datetime.now(timezone.utc)


def ensure_running(run: AuditComplianceRun) -> None:
    """Child rows may only be attached to a RUNNING run."""
    if AuditRunStatus(run.status) != AuditRunStatus.RUNNING:
        raise InvalidRunTransitionException(run.id, AuditRunStatus(run.status).value, "write")


@dataclass
class AuditOutcome:
    """What a finished run produced, for building API responses."""
    run: AuditComplianceRun
    checks_count: int
    ifc_count: int


@dataclass
class RunResults:
    """Persisted children of a run, each ordered by position."""
    checks: List[ComplianceCheck] = field(default_factory=list)
    assessments: List[IFCAssessment] = field(default_factory=list)
    anomalies: List[AIAnomaly] = field(default_factory=list)
    risk_themes: List[RiskTheme] = field(default_factory=list)
    samples: List[AISample] = field(default_factory=list)
    narratives: List[AINarrative] = field(default_factory=list)


class AuditRunService:
    """Runs and reads audit executions for one organization at a time."""

    def __init__(
        self,
        db: AsyncSession,
        gatherer: SnapshotGatherer,
        intelligence: Optional[AuditIntelligenceClient] = None,
    ):
        self.db = db
        self.gatherer = gatherer
        self.intelligence = intelligence or AuditIntelligenceClient()

    # ===========================================
    # EXECUTION
    # ===========================================

    async def run_full_audit(
        self,
        organization_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        financial_year: str,
    ) -> AuditOutcome:
        return await self._execute(organization_id, user_id, financial_year, AuditRunType.FULL)

    async def run_simulation(
        self,
        organization_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        financial_year: str,
    ) -> AuditOutcome:
        """Deterministic checks only; the intelligence gateway is never called."""
        return await self._execute(organization_id, user_id, financial_year, AuditRunType.SIMULATION)

    async def _execute(
        self,
        organization_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        financial_year: str,
        run_type: AuditRunType,
    ) -> AuditOutcome:
        # Reject a bad label before a run row exists
        window = parse_financial_year(financial_year)

        run = AuditComplianceRun(
            organization_id=organization_id,
            financial_year=window.label,
            run_type=run_type,
            status=AuditRunStatus.RUNNING,
            run_by=user_id,
            started_at=datetime.now(timezone.utc),
        )
        self.db.add(run)
        await self.db.commit()
        run_id = run.id
        logger.info(f"Audit run {run_id} started: {run_type.value} org={organization_id} FY {window.label}")

        try:
            snapshot = await self.gatherer.gather(organization_id, window.label)
            findings = run_compliance_checks(snapshot)
            assessments = run_ifc_assessment(snapshot)

            intelligence: Optional[AuditIntelligence] = None
            if run_type == AuditRunType.FULL:
                digest = build_digest(snapshot, findings, assessments)
                intelligence = await self.intelligence.analyze(digest, window.label)

            self._add_findings(run, findings)
            self._add_assessments(run, assessments)
            if intelligence is not None:
                self._add_intelligence(run, intelligence)

            breakdown = score_breakdown(findings, assessments)
            run.compliance_score = sum(breakdown.values())
            run.score_breakdown = breakdown
            run.ifc_rating = compute_ifc_rating(assessments).value
            if intelligence is not None:
                risk = intelligence.risk_breakdown.model_dump()
                run.risk_breakdown = risk
                run.ai_risk_index = compute_ai_risk_index(risk)
            else:
                run.risk_breakdown = {}

            transition(run, AuditRunStatus.COMPLETED)
            await self.db.commit()
        except Exception:
            logger.exception(f"Audit run {run_id} failed")
            await self.db.rollback()
            await self._mark_failed(run_id)
            raise

        logger.info(
            f"Audit run {run_id} completed: score={run.compliance_score} "
            f"risk_index={run.ai_risk_index} ifc={run.ifc_rating}"
        )
        return AuditOutcome(run=run, checks_count=len(findings), ifc_count=len(assessments))

    async def _mark_failed(self, run_id: uuid.UUID) -> None:
        try:
            run = await self.db.get(AuditComplianceRun, run_id, populate_existing=True)
            if run is None or AuditRunStatus(run.status) != AuditRunStatus.RUNNING:
                return
            transition(run, AuditRunStatus.FAILED)
            await self.db.commit()
        except SQLAlchemyError:
            # The original failure is what the caller needs to see
            logger.exception(f"Could not mark audit run {run_id} as failed")
            await self.db.rollback()

    def _add_findings(self, run: AuditComplianceRun, findings: Sequence[ComplianceFinding]) -> None:
        ensure_running(run)
        for position, finding in enumerate(findings):
            self.db.add(ComplianceCheck(
                run_id=run.id,
                organization_id=run.organization_id,
                position=position,
                module=finding.module,
                check_code=finding.check_code,
                check_name=finding.check_name,
                severity=finding.severity,
                status=finding.status,
                affected_count=finding.affected_count,
                affected_amount=finding.affected_amount.quantize(Decimal('0.01')),
                recommendation=finding.recommendation,
                details=finding.details,
                data_references=finding.data_references,
            ))

    def _add_assessments(self, run: AuditComplianceRun, assessments: Sequence[IFCFinding]) -> None:
        ensure_running(run)
        for position, assessment in enumerate(assessments):
            self.db.add(IFCAssessment(
                run_id=run.id,
                organization_id=run.organization_id,
                position=position,
                check_type=assessment.check_type,
                check_code=assessment.check_code,
                check_name=assessment.check_name,
                severity=assessment.severity,
                status=assessment.status,
                affected_count=assessment.affected_count,
                affected_user_ids=assessment.affected_user_ids,
                recommendation=assessment.recommendation,
                details=assessment.details,
            ))

    def _add_intelligence(self, run: AuditComplianceRun, intelligence: AuditIntelligence) -> None:
        ensure_running(run)
        owner = {"run_id": run.id, "organization_id": run.organization_id}

        for position, anomaly in enumerate(intelligence.anomalies):
            self.db.add(AIAnomaly(position=position, **owner, **anomaly.model_dump()))
        for position, theme in enumerate(intelligence.risk_themes):
            self.db.add(RiskTheme(position=position, **owner, **theme.model_dump()))
        for position, sample in enumerate(intelligence.samples):
            self.db.add(AISample(position=position, **owner, **sample.model_dump()))
        for position, narrative in enumerate(intelligence.narratives):
            self.db.add(AINarrative(
                position=position,
                financial_year=run.financial_year,
                version=run.version,
                **owner,
                **narrative.model_dump(),
            ))

    # ===========================================
    # READS
    # ===========================================

    async def list_runs(
        self,
        organization_id: uuid.UUID,
        financial_year: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuditComplianceRun]:
        """Runs of an organization, newest first."""
        query = select(AuditComplianceRun).where(AuditComplianceRun.organization_id == organization_id)
        if financial_year:
            query = query.where(AuditComplianceRun.financial_year == parse_financial_year(financial_year).label)
        query = query.order_by(AuditComplianceRun.started_at.desc(), AuditComplianceRun.id).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_latest_completed(
        self,
        organization_id: uuid.UUID,
        financial_year: Optional[str] = None,
    ) -> AuditComplianceRun:
        query = select(AuditComplianceRun).where(
            AuditComplianceRun.organization_id == organization_id,
            AuditComplianceRun.status == AuditRunStatus.COMPLETED,
        )
        if financial_year:
            query = query.where(AuditComplianceRun.financial_year == parse_financial_year(financial_year).label)
        query = query.order_by(AuditComplianceRun.completed_at.desc()).limit(1)
        run = (await self.db.execute(query)).scalar_one_or_none()
        if run is None:
            raise AuditRunNotFoundException("latest")
        return run

    async def get_run(self, organization_id: uuid.UUID, run_id: uuid.UUID) -> AuditComplianceRun:
        """A run of the caller's organization; other organizations' runs do not exist."""
        run = await self.db.get(AuditComplianceRun, run_id)
        if run is None or run.organization_id != organization_id:
            raise AuditRunNotFoundException(run_id)
        return run

    async def load_results(self, run_id: uuid.UUID) -> RunResults:
        async def rows(model):
            result = await self.db.execute(
                select(model).where(model.run_id == run_id).order_by(model.position, model.id)
            )
            return list(result.scalars().all())

        return RunResults(
            checks=await rows(ComplianceCheck),
            assessments=await rows(IFCAssessment),
            anomalies=await rows(AIAnomaly),
            risk_themes=await rows(RiskTheme),
            samples=await rows(AISample),
            narratives=await rows(AINarrative),
        )
