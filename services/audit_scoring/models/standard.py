"""
Control Catalog Database Models
===============================

SQLAlchemy ORM models for the control hierarchy and the maturity scale.

Both tables are owned by the template/maturity administration side of the
platform; the scoring service only reads them.

Version: 0.1.0
"""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
)

from shared.database.postgres import Base


class StandardModel(Base):
    """
    A node of a framework's control hierarchy.

    Top-level nodes (no parent) are the weighted sections; nodes flagged
    `is_auditable` are the leaf controls that get evaluated.
    """

    __tablename__ = "standards"
    __table_args__ = (
        Index("ix_standards_template", "template_id"),
        Index("ix_standards_parent", "parent_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    template_id = Column(String(36), nullable=False)
    parent_id = Column(String(36), ForeignKey("standards.id", ondelete="RESTRICT"))

    code = Column(String(50), nullable=False, default="")  # e.g. A.5.1.1
    title = Column(String(255), nullable=False, default="")
    is_auditable = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False, default=0)

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None

    def __repr__(self) -> str:
        return f"<Standard {self.code or self.id} auditable={self.is_auditable}>"


class MaturityLevelModel(Base):
    """One rank of a maturity framework (e.g. CMMI level 3, "Defined")."""

    __tablename__ = "maturity_levels"
    __table_args__ = (
        Index("ix_maturity_levels_framework", "framework_id"),
        CheckConstraint("level > 0", name="check_maturity_level_positive"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    framework_id = Column(String(36), nullable=False)
    level = Column(Integer, nullable=False)  # ordinal rank
    name = Column(String(100), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<MaturityLevel {self.level} {self.name}>"
