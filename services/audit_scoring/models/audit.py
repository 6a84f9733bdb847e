"""
Audit Database Model
====================

SQLAlchemy ORM model for audits and their scoring aggregate.

Version: 0.1.0
"""

import uuid
from datetime import UTC, datetime

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
)

from shared.database.postgres import Base
from shared.models.audit import AuditStatus, AuditType
from services.audit_scoring.rounding import round_percent


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


# Statuses in which controls may still be evaluated
EVALUABLE_STATUSES = frozenset({AuditStatus.DRAFT, AuditStatus.IN_PROGRESS})


class AuditModel(Base):
    """
    SQLAlchemy model for an audit.

    An audit combines a control template (what is audited), a maturity
    framework (how it is rated) and an organization. The score columns
    are an aggregate owned by the scoring engine and rewritten after
    every evaluation or weight change.
    """

    __tablename__ = "audits"
    __table_args__ = (
        Index("ix_audits_organization_status", "organization_id", "status"),
        Index("ix_audits_template", "template_id"),
        Index("ix_audits_dates", "start_date", "end_date"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    description = Column(Text)

    template_id = Column(String(36), nullable=False)
    maturity_framework_id = Column(String(36), nullable=False)
    organization_id = Column(String(36), nullable=False)

    audit_type = Column(
        SQLEnum(AuditType, values_callable=_enum_values, name="audit_type"),
        nullable=False,
        default=AuditType.INITIAL,
    )
    status = Column(
        SQLEnum(AuditStatus, values_callable=_enum_values, name="audit_status"),
        nullable=False,
        default=AuditStatus.DRAFT,
    )

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    default_expected_level_id = Column(String(36), ForeignKey("maturity_levels.id"))
    default_target_level_id = Column(String(36), ForeignKey("maturity_levels.id"))

    # Aggregate (engine-owned)
    total_score = Column(Numeric(6, 2, asdecimal=False))
    compliance_rate = Column(Numeric(5, 2, asdecimal=False))
    total_controls = Column(Integer, nullable=False, default=0)
    evaluated_controls = Column(Integer, nullable=False, default=0)

    observations = Column(Text)
    conclusions = Column(Text)
    recommendations = Column(Text)

    version_id = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Audit {self.id}: {self.name} ({self.status.value})>"

    @property
    def progress(self) -> int:
        """Evaluated share of all controls, as a whole percentage."""
        return round_percent(self.evaluated_controls or 0, self.total_controls or 0)

    @property
    def is_complete(self) -> bool:
        return self.evaluated_controls == self.total_controls

    @property
    def accepts_evaluations(self) -> bool:
        return self.status in EVALUABLE_STATUSES

    def meets_pass_threshold(self, pass_threshold: float) -> bool:
        """Whether the total score reaches the pass threshold."""
        return self.total_score is not None and self.total_score >= pass_threshold
