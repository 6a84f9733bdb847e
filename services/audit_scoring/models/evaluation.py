"""
Evaluation Database Model
=========================

SQLAlchemy ORM model for the assessment of one leaf control within an audit.

Version: 0.1.0
"""

import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from shared.database.postgres import Base
from shared.models.audit import ComplianceStatus
from services.audit_scoring.models.audit import _enum_values, _utcnow


class EvaluationModel(Base):
    """
    SQLAlchemy model for control evaluations.

    Only auditable (leaf) standards are evaluated; parent sections derive
    their score from these rows. One row per (audit, standard), created on
    the first assessment and rewritten on every re-assessment.
    """

    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("audit_id", "standard_id", name="uq_evaluations_audit_standard"),
        Index("ix_evaluations_audit_status", "audit_id", "compliance_status"),
        Index("ix_evaluations_evaluated_by", "evaluated_by"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    audit_id = Column(String(36), ForeignKey("audits.id", ondelete="CASCADE"), nullable=False)
    standard_id = Column(String(36), ForeignKey("standards.id", ondelete="RESTRICT"), nullable=False)

    # Maturity levels
    expected_level_id = Column(String(36), ForeignKey("maturity_levels.id"), nullable=False)
    obtained_level_id = Column(String(36), ForeignKey("maturity_levels.id"))
    target_level_id = Column(String(36), ForeignKey("maturity_levels.id"))

    # Computed
    score = Column(Numeric(6, 2, asdecimal=False))  # obtained / expected * 100, uncapped
    gap = Column(Integer)  # target - obtained
    compliance_status = Column(
        SQLEnum(ComplianceStatus, values_callable=_enum_values, name="compliance_status"),
        nullable=False,
        default=ComplianceStatus.PENDING,
    )

    # Findings
    evidence = Column(Text)
    observations = Column(Text)
    recommendations = Column(Text)
    action_plan = Column(Text)
    due_date = Column(Date)

    evaluated_by = Column(String(36))
    evaluated_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Evaluation {self.audit_id}/{self.standard_id}: {self.score} ({self.compliance_status.value})>"
