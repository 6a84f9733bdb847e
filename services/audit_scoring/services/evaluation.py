"""
Evaluation Calculator
=====================

Score, gap and compliance status of a single leaf control.

score = obtained.level / expected.level * 100   (two decimals, uncapped)
gap   = target.level - obtained.level           (positive: below target)

Version: 0.1.0
"""

from dataclasses import dataclass

from shared.config import ScoringSettings
from shared.models.audit import ComplianceStatus
from services.audit_scoring.errors import ValidationError
from services.audit_scoring.rounding import round2


@dataclass(frozen=True)
class CompliancePolicy:
    """Score thresholds that map a score to a compliance status."""

    partial_threshold: float = 0.0
    compliant_threshold: float = 100.0

    @classmethod
    def from_settings(cls, scoring: ScoringSettings) -> "CompliancePolicy":
        return cls(
            partial_threshold=scoring.partial_threshold,
            compliant_threshold=scoring.compliant_threshold,
        )

    def status_for(self, score: float | None) -> ComplianceStatus:
        if score is None:
            return ComplianceStatus.PENDING
        if score >= self.compliant_threshold:
            return ComplianceStatus.COMPLIANT
        if score > self.partial_threshold:
            return ComplianceStatus.PARTIAL
        return ComplianceStatus.NON_COMPLIANT


@dataclass(frozen=True)
class EvaluationOutcome:
    """Computed columns of an evaluation."""

    score: float | None
    gap: int | None
    compliance_status: ComplianceStatus


def calculate_score(obtained_level: int, expected_level: int) -> float:
    """
    Score of a control, as a percentage of the expected level.

    Exceeding the expected level yields more than 100 (3 of 2 -> 150).
    """
    if expected_level <= 0:
        raise ValidationError(
            f"Expected maturity level must be positive, got {expected_level}",
            field="expected_level_id",
        )
    return round2(obtained_level / expected_level * 100)


def calculate_gap(target_level: int | None, obtained_level: int | None) -> int | None:
    if target_level is None or obtained_level is None:
        return None
    return target_level - obtained_level


def evaluate(
    expected_level: int,
    obtained_level: int | None,
    target_level: int | None = None,
    status_override: ComplianceStatus | None = None,
    policy: CompliancePolicy | None = None,
) -> EvaluationOutcome:
    """
    Compute score, gap and status from maturity level ordinals.

    Args:
        expected_level: Level the control is expected to reach
        obtained_level: Level observed by the auditor, None if not yet rated
        target_level: Level the organization aims for
        status_override: Explicit status chosen by the auditor
        policy: Thresholds for deriving the status

    Returns:
        EvaluationOutcome. NOT_APPLICABLE always clears score and gap.
    """
    policy = policy or CompliancePolicy()

    if expected_level <= 0:
        raise ValidationError(
            f"Expected maturity level must be positive, got {expected_level}",
            field="expected_level_id",
        )

    if status_override == ComplianceStatus.NOT_APPLICABLE:
        return EvaluationOutcome(
            score=None,
            gap=None,
            compliance_status=ComplianceStatus.NOT_APPLICABLE,
        )

    score = None
    if obtained_level is not None:
        score = calculate_score(obtained_level, expected_level)

    return EvaluationOutcome(
        score=score,
        gap=calculate_gap(target_level, obtained_level),
        compliance_status=status_override or policy.status_for(score),
    )
