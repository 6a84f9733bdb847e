"""
Standard Weight Database Model
==============================

SQLAlchemy ORM model for the weight and derived score of a top-level
section within an audit.

Version: 0.1.0
"""

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from shared.database.postgres import Base
from services.audit_scoring.models.audit import _utcnow
from services.audit_scoring.rounding import round_percent


class StandardWeightModel(Base):
    """
    SQLAlchemy model for section weights.

    Only top-level standards carry a weight. `calculated_score` is
    written by the engine; `manual_score` is an auditor override that
    takes precedence when set.

    Example (ISO 27001 Annex A):
        A.5 weight=10, A.6 weight=15, ... summing to 100.
    """

    __tablename__ = "standard_weights"
    __table_args__ = (
        UniqueConstraint("audit_id", "standard_id", name="uq_standard_weights_audit_standard"),
        CheckConstraint("weight >= 0 AND weight <= 100", name="check_weight_range"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    audit_id = Column(String(36), ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True)
    standard_id = Column(String(36), ForeignKey("standards.id", ondelete="RESTRICT"), nullable=False)

    weight = Column(Numeric(5, 2, asdecimal=False), nullable=False, default=0)

    calculated_score = Column(Numeric(6, 2, asdecimal=False))
    manual_score = Column(Numeric(6, 2, asdecimal=False))
    manual_score_justification = Column(Text)

    # total_controls is fixed when the row is created
    total_controls = Column(Integer, nullable=False, default=0)
    evaluated_controls = Column(Integer, nullable=False, default=0)

    version_id = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StandardWeight {self.audit_id}/{self.standard_id}: w={self.weight} score={self.final_score}>"

    @property
    def final_score(self) -> float | None:
        """Manual override when present, otherwise the calculated score."""
        if self.manual_score is not None:
            return self.manual_score
        return self.calculated_score

    @property
    def weighted_score(self) -> float | None:
        score = self.final_score
        if score is None:
            return None
        return score * self.weight

    @property
    def progress(self) -> int:
        return round_percent(self.evaluated_controls or 0, self.total_controls or 0)

    @property
    def is_complete(self) -> bool:
        return self.evaluated_controls == self.total_controls
