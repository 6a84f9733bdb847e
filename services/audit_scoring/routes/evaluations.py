"""
Evaluation Routes
=================

API endpoints for assessing the leaf controls of an audit.

Version: 0.1.0
"""

import math

from fastapi import APIRouter, Depends, Query

from shared.models.audit import ComplianceStatus, Evaluation, EvaluationStatistics, EvaluationSubmit
from shared.models.common import PaginatedResponse
from services.audit_scoring.dependencies import get_scoring_service
from services.audit_scoring.services.scoring import AuditScoringService


router = APIRouter()


@router.put("/{audit_id}/evaluations", response_model=Evaluation)
async def submit_evaluation(
    audit_id: str,
    data: EvaluationSubmit,
    service: AuditScoringService = Depends(get_scoring_service),
) -> Evaluation:
    """
    Create or update the evaluation of a control.

    The score is the obtained level as a percentage of the expected level.
    The section and audit scores are recalculated before returning.
    """
    evaluation = await service.submit_evaluation(audit_id, data)
    return Evaluation.model_validate(evaluation)


@router.get("/{audit_id}/evaluations", response_model=PaginatedResponse[Evaluation])
async def list_evaluations(
    audit_id: str,
    compliance_status: ComplianceStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    service: AuditScoringService = Depends(get_scoring_service),
) -> PaginatedResponse[Evaluation]:
    """List evaluations of an audit, optionally filtered by compliance status."""
    items, total = await service.list_evaluations(
        audit_id,
        compliance_status=compliance_status,
        page=page,
        page_size=page_size,
    )

    return PaginatedResponse[Evaluation](
        items=[Evaluation.model_validate(e) for e in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=max(1, math.ceil(total / page_size)),
    )


@router.get("/{audit_id}/evaluations/statistics", response_model=EvaluationStatistics)
async def get_evaluation_statistics(
    audit_id: str,
    service: AuditScoringService = Depends(get_scoring_service),
) -> EvaluationStatistics:
    """Evaluation counts by compliance status."""
    return await service.get_evaluation_statistics(audit_id)
