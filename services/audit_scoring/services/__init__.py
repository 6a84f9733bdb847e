"""
Audit Scoring Services
======================

Business logic for scoring audits.

Services:
- engine: Hierarchical score aggregation (pure)
- evaluation: Score, gap and status of a single control
- locks: Per-audit serialization of recalculations
- AuditScoringService: Transactional orchestration

Version: 0.1.0
"""

from services.audit_scoring.services.engine import (
    ControlHierarchy,
    ControlNode,
    ScoringContext,
    SectionScore,
    calculate_compliance_rate,
    calculate_total_score,
    default_weights,
    score_of,
)
from services.audit_scoring.services.evaluation import (
    CompliancePolicy,
    EvaluationOutcome,
    calculate_gap,
    calculate_score,
    evaluate,
)
from services.audit_scoring.services.locks import AuditLockRegistry
from services.audit_scoring.services.scoring import AUDIT_TRANSITIONS, AuditScoringService


__all__ = [
    # Engine
    "ControlHierarchy",
    "ControlNode",
    "ScoringContext",
    "SectionScore",
    "score_of",
    "calculate_total_score",
    "calculate_compliance_rate",
    "default_weights",
    # Evaluation
    "CompliancePolicy",
    "EvaluationOutcome",
    "calculate_score",
    "calculate_gap",
    "evaluate",
    # Orchestration
    "AuditLockRegistry",
    "AuditScoringService",
    "AUDIT_TRANSITIONS",
]
