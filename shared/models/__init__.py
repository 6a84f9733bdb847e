"""
Shared Models
=============

Pydantic models shared across the audit scoring service.

Models:
- Audit models (Audit, AuditCreate, AuditTransition)
- Evaluation models (Evaluation, EvaluationSubmit, EvaluationStatistics)
- Weight models (StandardWeight, WeightsUpdate, ManualScoreUpdate, SectionProgress)
- Common response wrappers
"""

from shared.models.audit import (
    Audit,
    AuditCreate,
    AuditStatus,
    AuditTransition,
    AuditType,
    ComplianceStatus,
    Evaluation,
    EvaluationStatistics,
    EvaluationSubmit,
    ManualScoreUpdate,
    SectionProgress,
    StandardWeight,
    WeightEntry,
    WeightsUpdate,
    WeightValidation,
)
from shared.models.common import (
    ErrorResponse,
    HealthResponse,
    PaginatedResponse,
)

__all__ = [
    # Audit
    "Audit",
    "AuditCreate",
    "AuditStatus",
    "AuditTransition",
    "AuditType",
    # Evaluation
    "ComplianceStatus",
    "Evaluation",
    "EvaluationStatistics",
    "EvaluationSubmit",
    # Weights
    "ManualScoreUpdate",
    "SectionProgress",
    "StandardWeight",
    "WeightEntry",
    "WeightsUpdate",
    "WeightValidation",
    # Common
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
]
