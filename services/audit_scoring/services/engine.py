"""
Scoring Engine
==============

Pure aggregation of leaf evaluation scores over a control hierarchy.

Algorithm:
1. Build an in-memory index of the template's standards and the audit's
   evaluation scores (one load per recalculation pass).
2. score_of(node):
   - auditable node  -> its evaluation score, or None when unevaluated
   - branch node     -> mean of its children's non-null scores,
                        None when no child contributed
3. Audit total = sum(final_i * weight_i) / sum(weight_i) over sections
   whose final score is not None.

Unevaluated leaves and branches are excluded from their parent's mean,
not counted as zero, so a partially evaluated section still reports the
score of what has been assessed.

Example:
    A.5 (section)
    ├── A.5.1 (control)      score = 100
    └── A.5.2 (subsection)
        ├── A.5.2.1          score = 50
        └── A.5.2.2          score = 100

    A.5.2 = avg(50, 100)  = 75
    A.5   = avg(100, 75)  = 87.5

Version: 0.1.0
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

from shared.models.audit import ComplianceStatus
from services.audit_scoring.errors import NotFoundError, ValidationError
from services.audit_scoring.rounding import round2


# =============================================================================
# Control Hierarchy Index
# =============================================================================


@dataclass(frozen=True)
class ControlNode:
    """One standard of the hierarchy, detached from the database."""

    id: str
    parent_id: str | None
    is_auditable: bool
    code: str = ""
    title: str = ""

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None


class ControlHierarchy:
    """
    Read-only index over a template's standards.

    Children keep the order in which nodes were supplied, so callers
    should pass standards already sorted by their display order.
    """

    def __init__(self, nodes: Iterable[ControlNode]) -> None:
        self._nodes: dict[str, ControlNode] = {}
        self._children: dict[str, list[str]] = defaultdict(list)
        self._top_level: list[str] = []

        for node in nodes:
            self._nodes[node.id] = node
            if node.parent_id is None:
                self._top_level.append(node.id)
            else:
                self._children[node.parent_id].append(node.id)

    @classmethod
    def from_standards(cls, standards: Iterable[Any]) -> "ControlHierarchy":
        """Build the index from StandardModel rows (or anything shaped like them)."""
        return cls(
            ControlNode(
                id=s.id,
                parent_id=s.parent_id,
                is_auditable=bool(s.is_auditable),
                code=s.code or "",
                title=s.title or "",
            )
            for s in standards
        )

    def __contains__(self, standard_id: object) -> bool:
        return standard_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, standard_id: str) -> ControlNode | None:
        return self._nodes.get(standard_id)

    def node(self, standard_id: str) -> ControlNode:
        """Get a node, raising NotFoundError for unknown ids."""
        found = self._nodes.get(standard_id)
        if found is None:
            raise NotFoundError(f"Standard not found: {standard_id}", field="standard_id")
        return found

    def children_of(self, standard_id: str) -> list[ControlNode]:
        return [self._nodes[child_id] for child_id in self._children.get(standard_id, ())]

    @property
    def top_level_ids(self) -> list[str]:
        return list(self._top_level)

    @property
    def auditable_ids(self) -> list[str]:
        return [node.id for node in self._nodes.values() if node.is_auditable]

    def ancestors(self, standard_id: str) -> list[str]:
        """Ancestor ids from the direct parent up to the top-level section."""
        chain: list[str] = []
        seen = {standard_id}
        current = self.node(standard_id).parent_id

        while current is not None:
            if current in seen:
                raise ValidationError(f"Cycle in control hierarchy at {current}", field="parent_id")
            seen.add(current)
            chain.append(current)
            parent = self._nodes.get(current)
            current = parent.parent_id if parent else None

        return chain

    def top_level_of(self, standard_id: str) -> str:
        """Id of the top-level section a standard belongs to."""
        chain = self.ancestors(standard_id)
        return chain[-1] if chain else standard_id

    def auditable_descendants(self, standard_id: str) -> list[str]:
        """
        All auditable nodes under a standard, recursively.

        An auditable node counts as its own (only) descendant, so a
        top-level control that is itself evaluable is still counted.
        """
        result: list[str] = []
        stack = [standard_id]
        seen: set[str] = set()

        while stack:
            current = stack.pop()
            if current in seen:
                raise ValidationError(f"Cycle in control hierarchy at {current}", field="parent_id")
            seen.add(current)

            node = self.node(current)
            if node.is_auditable:
                result.append(current)
                continue
            # Reverse so that pops follow display order
            stack.extend(reversed(self._children.get(current, ())))

        return result

    def count_auditable_descendants(self, standard_id: str) -> int:
        return len(self.auditable_descendants(standard_id))


# =============================================================================
# Scoring Context
# =============================================================================


class ScoredEvaluation(Protocol):
    """Anything carrying an evaluation result (EvaluationModel rows)."""

    standard_id: str
    score: float | None
    compliance_status: ComplianceStatus


@dataclass
class ScoringContext:
    """
    Everything one recalculation pass needs, held in memory.

    `scores` only contains leaves that have a score. Results of
    score_of() are memoized in `_memo` for the lifetime of the context,
    so build a new context whenever evaluations change.
    """

    hierarchy: ControlHierarchy
    scores: Mapping[str, float]
    _memo: dict[str, float | None] = field(default_factory=dict, repr=False)
    _in_progress: set[str] = field(default_factory=set, repr=False)

    @classmethod
    def build(
        cls,
        hierarchy: ControlHierarchy,
        evaluations: Iterable[ScoredEvaluation],
    ) -> "ScoringContext":
        scores = {
            e.standard_id: float(e.score)
            for e in evaluations
            if e.score is not None and e.standard_id in hierarchy
        }
        return cls(hierarchy=hierarchy, scores=scores)

    @property
    def cached_ids(self) -> frozenset[str]:
        return frozenset(self._memo)

    def is_cached(self, standard_id: str) -> bool:
        return standard_id in self._memo

    def cached(self, standard_id: str) -> float | None:
        return self._memo[standard_id]

    def remember(self, standard_id: str, score: float | None) -> float | None:
        self._memo[standard_id] = score
        return score

    @contextmanager
    def visiting(self, standard_id: str) -> Iterator[None]:
        """Mark a branch as being scored; re-entering it means a cycle."""
        if standard_id in self._in_progress:
            raise ValidationError(f"Cycle in control hierarchy at {standard_id}", field="parent_id")
        self._in_progress.add(standard_id)
        try:
            yield
        finally:
            self._in_progress.discard(standard_id)


def score_of(standard_id: str, context: ScoringContext) -> float | None:
    """
    Score of a standard, derived recursively from its children.

    Args:
        standard_id: Any node of the hierarchy
        context: Pre-loaded index for the current pass

    Returns:
        Mean of the contributing children (two decimals), the evaluation
        score for an auditable node, or None when nothing contributes.
    """
    if context.is_cached(standard_id):
        return context.cached(standard_id)

    node = context.hierarchy.node(standard_id)

    if node.is_auditable:
        result = context.scores.get(standard_id)
    else:
        with context.visiting(standard_id):
            collected = [
                value
                for child in context.hierarchy.children_of(standard_id)
                if (value := score_of(child.id, context)) is not None
            ]

        result = round2(sum(collected) / len(collected)) if collected else None

    return context.remember(standard_id, result)


def evaluated_controls_of(standard_id: str, context: ScoringContext) -> int:
    """Number of auditable descendants that carry a score."""
    return sum(
        1
        for leaf_id in context.hierarchy.auditable_descendants(standard_id)
        if leaf_id in context.scores
    )


@dataclass(frozen=True)
class SectionScore:
    """Engine result for one top-level section."""

    standard_id: str
    calculated_score: float | None
    evaluated_controls: int


def score_sections(context: ScoringContext, section_ids: Iterable[str]) -> dict[str, SectionScore]:
    """Score several sections in one memoized pass."""
    return {
        section_id: SectionScore(
            standard_id=section_id,
            calculated_score=score_of(section_id, context),
            evaluated_controls=evaluated_controls_of(section_id, context),
        )
        for section_id in section_ids
    }


# =============================================================================
# Audit Totals
# =============================================================================


class WeightedSection(Protocol):
    """Anything with a weight and a final score (StandardWeightModel rows)."""

    weight: float

    @property
    def final_score(self) -> float | None: ...


def calculate_total_score(sections: Iterable[WeightedSection]) -> float | None:
    """
    Weighted mean of section final scores.

    Sections without a final score are left out of both the numerator
    and the denominator. Returns None when no section has a score.

    Example:
        A: score=80, weight=60 -> 4800
        B: score=80, weight=40 -> 3200
        total = (4800 + 3200) / 100 = 80
    """
    weighted_sum = 0.0
    total_weight = 0.0

    for section in sections:
        score = section.final_score
        if score is None:
            continue
        weighted_sum += score * section.weight
        total_weight += section.weight

    if total_weight == 0:
        return None

    return round2(weighted_sum / total_weight)


COMPLIANT_STATUSES = frozenset({ComplianceStatus.COMPLIANT, ComplianceStatus.NOT_APPLICABLE})


def counts_toward_rate(evaluation: ScoredEvaluation) -> bool:
    """Scored controls and not-applicable controls make up the rate's denominator."""
    return evaluation.score is not None or evaluation.compliance_status == ComplianceStatus.NOT_APPLICABLE


def calculate_compliance_rate(evaluations: Iterable[ScoredEvaluation]) -> float | None:
    """
    Share of scored controls that are compliant or not applicable.

    The denominator is the scored controls plus the not-applicable ones,
    so a status set without an obtained level does not count. Returns
    None when no control qualifies.

    Example:
        A1: score=100, compliant
        A2: score=60, partial
        A3: no score, not applicable
        rate = 2 / 3 * 100 = 66.67
    """
    counted = [e for e in evaluations if counts_toward_rate(e)]
    if not counted:
        return None

    compliant = sum(1 for e in counted if e.compliance_status in COMPLIANT_STATUSES)
    return round2(compliant / len(counted) * 100)


# =============================================================================
# Weights
# =============================================================================


def default_weights(section_ids: list[str]) -> dict[str, float]:
    """
    Even split of 100 across sections, two decimals.

    The rounding remainder goes to the last section so the weights sum
    to exactly 100 (7 sections -> six of 14.29 and one of 14.26).
    """
    if not section_ids:
        return {}

    share = round2(100 / len(section_ids))
    weights = {section_id: share for section_id in section_ids}
    weights[section_ids[-1]] = round2(100 - share * (len(section_ids) - 1))
    return weights


def weight_sum_is_valid(total: float, tolerance: float) -> bool:
    """Whether a weight sum is 100 within tolerance (float noise ignored)."""
    return abs(100 - total) <= tolerance + 1e-9
