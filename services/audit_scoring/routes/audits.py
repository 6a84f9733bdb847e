"""
Audit Routes
============

API endpoints for audits, their workflow and their scoring aggregate.

Version: 0.1.0
"""

import math

from fastapi import APIRouter, Depends, Query, status

from shared.models.audit import (
    Audit,
    AuditCreate,
    AuditStatus,
    AuditTransition,
    AuditUpdate,
    SectionProgress,
)
from shared.models.common import PaginatedResponse
from services.audit_scoring.dependencies import get_scoring_service
from services.audit_scoring.models import AuditModel
from services.audit_scoring.services.scoring import AuditScoringService


router = APIRouter()


def to_audit(audit: AuditModel, pass_threshold: float) -> Audit:
    """Response model for an audit, flagged compliant at or above the pass threshold."""
    response = Audit.model_validate(audit)
    response.is_compliant = audit.meets_pass_threshold(pass_threshold)
    return response


@router.post("", response_model=Audit, status_code=status.HTTP_201_CREATED)
async def create_audit(
    data: AuditCreate,
    service: AuditScoringService = Depends(get_scoring_service),
) -> Audit:
    """
    Create an audit.

    Every top-level section of the template gets an even default weight.
    """
    audit = await service.create_audit(data)
    return to_audit(audit, service.scoring.pass_threshold)


@router.get("", response_model=PaginatedResponse[Audit])
async def list_audits(
    organization_id: str | None = None,
    audit_status: AuditStatus | None = Query(default=None, alias="status"),
    template_id: str | None = None,
    maturity_framework_id: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    service: AuditScoringService = Depends(get_scoring_service),
) -> PaginatedResponse[Audit]:
    """List audits, newest first, optionally filtered."""
    items, total = await service.list_audits(
        organization_id=organization_id,
        status=audit_status,
        template_id=template_id,
        maturity_framework_id=maturity_framework_id,
        page=page,
        page_size=page_size,
    )

    return PaginatedResponse[Audit](
        items=[to_audit(a, service.scoring.pass_threshold) for a in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=max(1, math.ceil(total / page_size)),
    )


@router.get("/{audit_id}", response_model=Audit)
async def get_audit(
    audit_id: str,
    service: AuditScoringService = Depends(get_scoring_service),
) -> Audit:
    """Get an audit with its score, compliance rate and progress."""
    audit = await service.get_audit(audit_id)
    return to_audit(audit, service.scoring.pass_threshold)


@router.put("/{audit_id}", response_model=Audit)
async def update_audit(
    audit_id: str,
    data: AuditUpdate,
    service: AuditScoringService = Depends(get_scoring_service),
) -> Audit:
    """
    Edit an audit's details, observations, conclusions and recommendations.

    Only the fields sent are changed.
    """
    audit = await service.update_audit(audit_id, data)
    return to_audit(audit, service.scoring.pass_threshold)


@router.post("/{audit_id}/transition", response_model=Audit)
async def transition_audit(
    audit_id: str,
    data: AuditTransition,
    service: AuditScoringService = Depends(get_scoring_service),
) -> Audit:
    """
    Move an audit through its workflow.

    draft -> in_progress -> in_review -> completed; any open audit can be
    cancelled and a review can send the audit back to in_progress.
    """
    audit = await service.transition_audit(audit_id, data.status)
    return to_audit(audit, service.scoring.pass_threshold)


@router.post("/{audit_id}/recalculate", response_model=Audit)
async def recalculate_audit(
    audit_id: str,
    service: AuditScoringService = Depends(get_scoring_service),
) -> Audit:
    """
    Recompute all section scores and the audit total.

    Useful after the control hierarchy of the template changed.
    """
    audit = await service.recalculate_audit_scores(audit_id)
    return to_audit(audit, service.scoring.pass_threshold)


@router.get("/{audit_id}/progress", response_model=list[SectionProgress])
async def get_section_progress(
    audit_id: str,
    service: AuditScoringService = Depends(get_scoring_service),
) -> list[SectionProgress]:
    """Per-section weight, score and progress, heaviest section first."""
    return await service.get_section_progress(audit_id)
