"""
Section Weight Routes
=====================

API endpoints for the weights and manual scores of top-level sections.

Version: 0.1.0
"""

from fastapi import APIRouter, Depends

from shared.models.audit import ManualScoreUpdate, StandardWeight, WeightsUpdate, WeightValidation
from services.audit_scoring.dependencies import get_scoring_service
from services.audit_scoring.services.scoring import AuditScoringService


router = APIRouter()


@router.put("/{audit_id}/weights", response_model=list[StandardWeight])
async def set_weights(
    audit_id: str,
    data: WeightsUpdate,
    service: AuditScoringService = Depends(get_scoring_service),
) -> list[StandardWeight]:
    """
    Replace the section weights of an audit.

    Weights must sum to 100. Sections left out lose their weight.
    """
    rows = await service.set_weights(audit_id, data)
    return [StandardWeight.model_validate(row) for row in rows]


@router.get("/{audit_id}/weights", response_model=list[StandardWeight])
async def list_weights(
    audit_id: str,
    service: AuditScoringService = Depends(get_scoring_service),
) -> list[StandardWeight]:
    rows = await service.list_weights(audit_id)
    return [StandardWeight.model_validate(row) for row in rows]


@router.get("/{audit_id}/weights/validate", response_model=WeightValidation)
async def validate_weights(
    audit_id: str,
    service: AuditScoringService = Depends(get_scoring_service),
) -> WeightValidation:
    """Check that the stored weights sum to 100."""
    return await service.validate_weights(audit_id)


@router.put("/{audit_id}/weights/{standard_id}/manual-score", response_model=StandardWeight)
async def set_manual_score(
    audit_id: str,
    standard_id: str,
    data: ManualScoreUpdate,
    service: AuditScoringService = Depends(get_scoring_service),
) -> StandardWeight:
    """
    Override (or clear) the calculated score of a section.

    A manual score needs a justification. Send `manual_score: null` to
    fall back to the calculated score.
    """
    row = await service.set_manual_score(audit_id, standard_id, data)
    return StandardWeight.model_validate(row)
