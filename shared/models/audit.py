"""
Audit Models
============

Pydantic models for audits, control evaluations and section weights.

Version: 0.1.0
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AuditStatus(str, Enum):
    """Audit workflow status."""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AuditType(str, Enum):
    """Reason the audit is being run."""

    INITIAL = "initial"
    FOLLOW_UP = "follow_up"
    RECERTIFICATION = "recertification"
    EXTRAORDINARY = "extraordinary"


class ComplianceStatus(str, Enum):
    """Compliance bucket of a single evaluated control."""

    PENDING = "pending"
    PARTIAL = "partial"
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    NOT_APPLICABLE = "not_applicable"


# =============================================================================
# Audits
# =============================================================================


class AuditCreate(BaseModel):
    """Request model for creating an audit."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    template_id: str = Field(..., description="Control framework template")
    maturity_framework_id: str = Field(..., description="Maturity scale used to evaluate")
    organization_id: str = Field(..., description="Audited organization")
    audit_type: AuditType = AuditType.INITIAL
    start_date: date
    end_date: date
    default_expected_level_id: str | None = None
    default_target_level_id: str | None = None
    observations: str | None = None


class AuditUpdate(BaseModel):
    """
    Request model for editing an audit's details and findings.

    Only the fields sent are changed. Template, organization and status
    cannot be edited here; status moves through the workflow endpoint.
    """

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    audit_type: AuditType | None = None
    start_date: date | None = None
    end_date: date | None = None
    default_expected_level_id: str | None = None
    default_target_level_id: str | None = None
    observations: str | None = None
    conclusions: str | None = None
    recommendations: str | None = None


class AuditTransition(BaseModel):
    """Request model for moving an audit through its workflow."""

    status: AuditStatus


class Audit(BaseModel):
    """Audit with its scoring aggregate."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    template_id: str
    maturity_framework_id: str
    organization_id: str
    audit_type: AuditType
    status: AuditStatus
    start_date: date
    end_date: date
    default_expected_level_id: str | None = None
    default_target_level_id: str | None = None

    # Aggregate
    total_score: float | None = None
    compliance_rate: float | None = None
    total_controls: int = 0
    evaluated_controls: int = 0
    progress: int = 0
    is_complete: bool = False
    is_compliant: bool = False

    observations: str | None = None
    conclusions: str | None = None
    recommendations: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Evaluations
# =============================================================================


class EvaluationSubmit(BaseModel):
    """
    Request model for assessing one leaf control.

    Level ids left out fall back to the audit defaults. Free-text fields
    left out keep their previous value on a re-assessment.
    """

    standard_id: str
    expected_level_id: str | None = None
    obtained_level_id: str | None = None
    target_level_id: str | None = None
    compliance_status: ComplianceStatus | None = Field(
        default=None,
        description="Explicit status; derived from the score when omitted",
    )

    evidence: str | None = None
    observations: str | None = None
    recommendations: str | None = None
    action_plan: str | None = None
    due_date: date | None = None
    evaluated_by: str | None = None


class Evaluation(BaseModel):
    """Stored evaluation with its computed score, gap and status."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    audit_id: str
    standard_id: str
    expected_level_id: str
    obtained_level_id: str | None = None
    target_level_id: str | None = None

    score: float | None = None
    gap: int | None = None
    compliance_status: ComplianceStatus = ComplianceStatus.PENDING

    evidence: str | None = None
    observations: str | None = None
    recommendations: str | None = None
    action_plan: str | None = None
    due_date: date | None = None
    evaluated_by: str | None = None
    evaluated_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


class EvaluationStatistics(BaseModel):
    """Evaluation counts for an audit, by compliance status."""

    total: int = 0
    evaluated: int = 0
    compliant: int = 0
    partial: int = 0
    non_compliant: int = 0
    not_applicable: int = 0
    pending: int = 0


# =============================================================================
# Section weights
# =============================================================================


class WeightEntry(BaseModel):
    """Weight for one top-level section."""

    standard_id: str
    weight: float = Field(..., ge=0, le=100)


class WeightsUpdate(BaseModel):
    """Request model for replacing all section weights of an audit."""

    weights: list[WeightEntry] = Field(..., min_length=1)


class ManualScoreUpdate(BaseModel):
    """Request model for overriding (or clearing) a section score."""

    manual_score: float | None = Field(default=None, ge=0, le=999.99)
    justification: str | None = None


class StandardWeight(BaseModel):
    """Stored section weight with its derived scores."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    audit_id: str
    standard_id: str
    weight: float
    calculated_score: float | None = None
    manual_score: float | None = None
    manual_score_justification: str | None = None
    final_score: float | None = None
    weighted_score: float | None = None
    total_controls: int = 0
    evaluated_controls: int = 0
    progress: int = 0
    is_complete: bool = False


class SectionProgress(BaseModel):
    """Progress summary for one top-level section."""

    standard_id: str
    code: str = ""
    title: str = ""
    weight: float
    final_score: float | None = None
    weighted_score: float | None = None
    evaluated_controls: int = 0
    total_controls: int = 0
    progress_pct: float = 0.0


class WeightValidation(BaseModel):
    """Whether an audit's stored weights sum to 100."""

    is_valid: bool
    total_weight: float
    difference: float
