"""
Audit Scoring Database Models
=============================

SQLAlchemy ORM models for audit scoring.

Tables:
- standards: Control hierarchy (read-only)
- maturity_levels: Maturity scale (read-only)
- audits: Audits and their scoring aggregate
- evaluations: Leaf control assessments
- standard_weights: Top-level section weights and scores

Version: 0.1.0
"""

from services.audit_scoring.models.audit import EVALUABLE_STATUSES, AuditModel
from services.audit_scoring.models.evaluation import EvaluationModel
from services.audit_scoring.models.standard import MaturityLevelModel, StandardModel
from services.audit_scoring.models.weight import StandardWeightModel

__all__ = [
    # Catalog
    "StandardModel",
    "MaturityLevelModel",
    # Audit
    "AuditModel",
    "EVALUABLE_STATUSES",
    # Evaluation
    "EvaluationModel",
    # Weight
    "StandardWeightModel",
]
