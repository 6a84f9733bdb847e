"""
Audit Scoring Service
=====================

Orchestrates evaluations, section weights and the audit aggregate.

Every mutating operation is one unit of work:
1. Take the audit's in-process lock (AuditLockRegistry)
2. Open a transaction and lock the audit row (SELECT ... FOR UPDATE)
3. Validate, then write
4. Recalculate section scores and the audit aggregate from one load
5. Commit, then release the lock

A writer in another process that slips past the row lock is caught by
the version counters on audits and standard_weights and surfaces as a
ConcurrencyConflictError.

Version: 0.1.0
"""

import uuid
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from shared.config import ScoringSettings, settings
from shared.database.postgres import unit_of_work
from shared.logging import get_logger
from shared.models.audit import (
    AuditCreate,
    AuditStatus,
    AuditUpdate,
    ComplianceStatus,
    EvaluationStatistics,
    EvaluationSubmit,
    ManualScoreUpdate,
    SectionProgress,
    WeightsUpdate,
    WeightValidation,
)
from services.audit_scoring.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
)
from services.audit_scoring.models import (
    AuditModel,
    EvaluationModel,
    MaturityLevelModel,
    StandardModel,
    StandardWeightModel,
)
from services.audit_scoring.rounding import round2
from services.audit_scoring.services.engine import (
    ControlHierarchy,
    ScoringContext,
    calculate_compliance_rate,
    calculate_total_score,
    default_weights,
    score_of,
    score_sections,
    weight_sum_is_valid,
)
from services.audit_scoring.services.evaluation import CompliancePolicy, evaluate
from services.audit_scoring.services.locks import AuditLockRegistry


logger = get_logger(__name__)


# Allowed workflow moves; the scoring engine never changes status itself
AUDIT_TRANSITIONS: dict[AuditStatus, frozenset[AuditStatus]] = {
    AuditStatus.DRAFT: frozenset({AuditStatus.IN_PROGRESS, AuditStatus.CANCELLED}),
    AuditStatus.IN_PROGRESS: frozenset({AuditStatus.IN_REVIEW, AuditStatus.CANCELLED}),
    AuditStatus.IN_REVIEW: frozenset(
        {AuditStatus.IN_PROGRESS, AuditStatus.COMPLETED, AuditStatus.CANCELLED}
    ),
    AuditStatus.COMPLETED: frozenset(),
    AuditStatus.CANCELLED: frozenset(),
}

# Audit columns that an edit may change but never clear
REQUIRED_AUDIT_FIELDS = ("name", "audit_type", "start_date", "end_date")

# Free-text fields that keep their value when left out of a re-assessment
EVALUATION_TEXT_FIELDS = (
    "evidence",
    "observations",
    "recommendations",
    "action_plan",
    "due_date",
    "evaluated_by",
)


class AuditScoringService:
    """
    Service for scoring audits.

    Handles:
    - Audit creation with default section weights, editing and listing
    - Evaluation submission (score, gap, status)
    - Section weights and manual score overrides
    - Section and audit score aggregation
    - Workflow transitions
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scoring: ScoringSettings | None = None,
        locks: AuditLockRegistry | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.scoring = scoring or settings.scoring
        self.policy = CompliancePolicy.from_settings(self.scoring)
        self.locks = locks or AuditLockRegistry(self.scoring.lock_timeout_seconds)

    # =========================================================================
    # Transactions
    # =========================================================================

    @asynccontextmanager
    async def _audit_transaction(self, audit_id: str) -> AsyncIterator[tuple[AsyncSession, AuditModel]]:
        """Lock the audit in-process and in the database for one unit of work."""
        async with self.locks.hold(audit_id):
            try:
                async with unit_of_work(self.session_factory) as session:
                    audit = await self._lock_audit(session, audit_id)
                    yield session, audit
            except (StaleDataError, IntegrityError) as e:
                logger.warning(
                    "audit_concurrent_modification",
                    audit_id=audit_id,
                    error=str(e),
                )
                raise ConcurrencyConflictError(
                    f"Audit {audit_id} was modified concurrently, retry the operation",
                    field="audit_id",
                ) from e

    async def _lock_audit(self, session: AsyncSession, audit_id: str) -> AuditModel:
        result = await session.execute(
            select(AuditModel).where(AuditModel.id == audit_id).with_for_update()
        )
        audit = result.scalar_one_or_none()
        if audit is None:
            raise NotFoundError(f"Audit not found: {audit_id}", field="audit_id")
        return audit

    async def _get_audit(self, session: AsyncSession, audit_id: str) -> AuditModel:
        audit = await session.get(AuditModel, audit_id)
        if audit is None:
            raise NotFoundError(f"Audit not found: {audit_id}", field="audit_id")
        return audit

    # =========================================================================
    # Loading
    # =========================================================================

    async def _load_hierarchy(self, session: AsyncSession, template_id: str) -> ControlHierarchy:
        result = await session.execute(
            select(StandardModel)
            .where(StandardModel.template_id == template_id)
            .order_by(StandardModel.order, StandardModel.code)
        )
        return ControlHierarchy.from_standards(result.scalars().all())

    async def _load_evaluations(self, session: AsyncSession, audit_id: str) -> list[EvaluationModel]:
        result = await session.execute(
            select(EvaluationModel).where(EvaluationModel.audit_id == audit_id)
        )
        return list(result.scalars().all())

    async def _load_weights(self, session: AsyncSession, audit_id: str) -> list[StandardWeightModel]:
        result = await session.execute(
            select(StandardWeightModel).where(StandardWeightModel.audit_id == audit_id)
        )
        return list(result.scalars().all())

    async def _get_level(
        self,
        session: AsyncSession,
        level_id: str | None,
        field: str,
    ) -> MaturityLevelModel | None:
        if level_id is None:
            return None
        level = await session.get(MaturityLevelModel, level_id)
        if level is None:
            raise NotFoundError(f"Maturity level not found: {level_id}", field=field)
        return level

    # =========================================================================
    # Audits
    # =========================================================================

    async def create_audit(self, data: AuditCreate) -> AuditModel:
        """
        Create an audit with an even default weight per top-level section.

        Raises:
            ValidationError: end_date is not after start_date
            NotFoundError: Unknown template or default maturity level
        """
        if data.end_date <= data.start_date:
            raise ValidationError("End date must be after start date", field="end_date")

        async with unit_of_work(self.session_factory) as session:
            hierarchy = await self._load_hierarchy(session, data.template_id)
            if len(hierarchy) == 0:
                raise NotFoundError(f"Template not found: {data.template_id}", field="template_id")

            await self._get_level(session, data.default_expected_level_id, "default_expected_level_id")
            await self._get_level(session, data.default_target_level_id, "default_target_level_id")

            audit = AuditModel(
                id=str(uuid.uuid4()),
                **data.model_dump(),
                status=AuditStatus.DRAFT,
                total_controls=len(hierarchy.auditable_ids),
                evaluated_controls=0,
            )
            session.add(audit)
            # Weight rows reference the audit
            await session.flush()

            for section_id, weight in default_weights(hierarchy.top_level_ids).items():
                session.add(
                    StandardWeightModel(
                        id=str(uuid.uuid4()),
                        audit_id=audit.id,
                        standard_id=section_id,
                        weight=weight,
                        total_controls=hierarchy.count_auditable_descendants(section_id),
                        evaluated_controls=0,
                    )
                )

        logger.info(
            "audit_created",
            audit_id=audit.id,
            template_id=audit.template_id,
            total_controls=audit.total_controls,
            sections=len(hierarchy.top_level_ids),
        )

        return audit

    async def get_audit(self, audit_id: str) -> AuditModel:
        async with self.session_factory() as session:
            return await self._get_audit(session, audit_id)

    async def list_audits(
        self,
        organization_id: str | None = None,
        status: AuditStatus | None = None,
        template_id: str | None = None,
        maturity_framework_id: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[AuditModel], int]:
        """Page through audits, newest first. Returns (items, total)."""
        conditions: list[ColumnElement[bool]] = []
        if organization_id is not None:
            conditions.append(AuditModel.organization_id == organization_id)
        if status is not None:
            conditions.append(AuditModel.status == status)
        if template_id is not None:
            conditions.append(AuditModel.template_id == template_id)
        if maturity_framework_id is not None:
            conditions.append(AuditModel.maturity_framework_id == maturity_framework_id)

        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(AuditModel).where(*conditions)
            )
            result = await session.execute(
                select(AuditModel)
                .where(*conditions)
                .order_by(AuditModel.created_at.desc(), AuditModel.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return list(result.scalars().all()), total or 0

    async def update_audit(self, audit_id: str, data: AuditUpdate) -> AuditModel:
        """
        Edit an audit's details and findings.

        Only fields present in the request change. Stored evaluations
        keep the levels they were scored with.

        Raises:
            NotFoundError: Unknown audit or default maturity level
            ValidationError: A required field is cleared, or end_date
                would not be after start_date
        """
        changes = data.model_dump(exclude_unset=True)

        async with self._audit_transaction(audit_id) as (session, audit):
            for name in REQUIRED_AUDIT_FIELDS:
                if name in changes and changes[name] is None:
                    raise ValidationError(f"Field {name} cannot be cleared", field=name)

            start_date = changes.get("start_date", audit.start_date)
            end_date = changes.get("end_date", audit.end_date)
            if end_date <= start_date:
                raise ValidationError("End date must be after start date", field="end_date")

            for name in ("default_expected_level_id", "default_target_level_id"):
                if name in changes:
                    await self._get_level(session, changes[name], name)

            for name, value in changes.items():
                setattr(audit, name, value)
            await session.flush()

        logger.info(
            "audit_updated",
            audit_id=audit_id,
            fields=sorted(changes),
        )

        return audit

    async def transition_audit(self, audit_id: str, new_status: AuditStatus) -> AuditModel:
        """
        Move an audit through its workflow.

        Raises:
            NotFoundError: Unknown audit
            ValidationError: The move is not allowed from the current status
        """
        async with self._audit_transaction(audit_id) as (session, audit):
            current = audit.status
            if new_status not in AUDIT_TRANSITIONS[current]:
                raise ValidationError(
                    f"Cannot move audit from {current.value} to {new_status.value}",
                    field="status",
                )
            audit.status = new_status
            await session.flush()

        logger.info(
            "audit_transitioned",
            audit_id=audit_id,
            from_status=current.value,
            to_status=new_status.value,
        )

        return audit

    # =========================================================================
    # Evaluations
    # =========================================================================

    async def submit_evaluation(self, audit_id: str, data: EvaluationSubmit) -> EvaluationModel:
        """
        Create or update the evaluation of one leaf control.

        Computes score, gap and compliance status, then refreshes the
        section and audit scores in the same transaction.

        Raises:
            NotFoundError: Unknown audit, standard or maturity level
            ValidationError: Audit closed for evaluation, standard not an
                auditable control of the audit's template, or no expected level
            ConcurrencyConflictError: Lock timeout or concurrent modification
        """
        async with self._audit_transaction(audit_id) as (session, audit):
            if not audit.accepts_evaluations:
                raise ValidationError(
                    f"Audit in status {audit.status.value} does not accept evaluations",
                    field="status",
                )

            standard = await session.get(StandardModel, data.standard_id)
            if standard is None:
                raise NotFoundError(f"Standard not found: {data.standard_id}", field="standard_id")
            if standard.template_id != audit.template_id:
                raise ValidationError(
                    f"Standard {data.standard_id} does not belong to the audit's template",
                    field="standard_id",
                )
            if not standard.is_auditable:
                raise ValidationError(
                    f"Standard {standard.code or standard.id} is not auditable, "
                    "only leaf controls can be evaluated",
                    field="standard_id",
                )

            expected_level_id = data.expected_level_id or audit.default_expected_level_id
            if expected_level_id is None:
                raise ValidationError(
                    "Expected level is required when the audit has no default",
                    field="expected_level_id",
                )
            target_level_id = data.target_level_id or audit.default_target_level_id

            expected = await self._get_level(session, expected_level_id, "expected_level_id")
            obtained = await self._get_level(session, data.obtained_level_id, "obtained_level_id")
            target = await self._get_level(session, target_level_id, "target_level_id")

            outcome = evaluate(
                expected_level=expected.level,
                obtained_level=obtained.level if obtained else None,
                target_level=target.level if target else None,
                status_override=data.compliance_status,
                policy=self.policy,
            )

            result = await session.execute(
                select(EvaluationModel).where(
                    EvaluationModel.audit_id == audit_id,
                    EvaluationModel.standard_id == data.standard_id,
                )
            )
            evaluation = result.scalar_one_or_none()
            created = evaluation is None
            if evaluation is None:
                evaluation = EvaluationModel(
                    id=str(uuid.uuid4()),
                    audit_id=audit_id,
                    standard_id=data.standard_id,
                )
                session.add(evaluation)

            evaluation.expected_level_id = expected_level_id
            evaluation.obtained_level_id = data.obtained_level_id
            evaluation.target_level_id = target_level_id
            evaluation.score = outcome.score
            evaluation.gap = outcome.gap
            evaluation.compliance_status = outcome.compliance_status
            for name in EVALUATION_TEXT_FIELDS:
                if name in data.model_fields_set:
                    setattr(evaluation, name, getattr(data, name))
            evaluation.evaluated_at = datetime.now(UTC)

            await session.flush()
            await self._refresh_aggregate(session, audit, touched_standard_id=standard.id)

        logger.info(
            "evaluation_submitted",
            audit_id=audit_id,
            standard_id=data.standard_id,
            created=created,
            score=outcome.score,
            compliance_status=outcome.compliance_status.value,
        )

        return evaluation

    async def list_evaluations(
        self,
        audit_id: str,
        compliance_status: ComplianceStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[EvaluationModel], int]:
        """Page through an audit's evaluations. Returns (items, total)."""
        async with self.session_factory() as session:
            await self._get_audit(session, audit_id)

            conditions = [EvaluationModel.audit_id == audit_id]
            if compliance_status is not None:
                conditions.append(EvaluationModel.compliance_status == compliance_status)

            total = await session.scalar(
                select(func.count()).select_from(EvaluationModel).where(*conditions)
            )
            result = await session.execute(
                select(EvaluationModel)
                .where(*conditions)
                .order_by(EvaluationModel.created_at, EvaluationModel.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return list(result.scalars().all()), total or 0

    async def get_evaluation_statistics(self, audit_id: str) -> EvaluationStatistics:
        async with self.session_factory() as session:
            await self._get_audit(session, audit_id)
            evaluations = await self._load_evaluations(session, audit_id)

        by_status = Counter(e.compliance_status for e in evaluations)

        return EvaluationStatistics(
            total=len(evaluations),
            evaluated=sum(1 for e in evaluations if e.score is not None),
            compliant=by_status[ComplianceStatus.COMPLIANT],
            partial=by_status[ComplianceStatus.PARTIAL],
            non_compliant=by_status[ComplianceStatus.NON_COMPLIANT],
            not_applicable=by_status[ComplianceStatus.NOT_APPLICABLE],
            pending=by_status[ComplianceStatus.PENDING],
        )

    # =========================================================================
    # Section Weights
    # =========================================================================

    async def set_weights(self, audit_id: str, data: WeightsUpdate) -> list[StandardWeightModel]:
        """
        Replace all section weights of an audit.

        Sections left out of the request lose their weight row. Nothing
        is written unless the whole set is valid.

        Raises:
            ValidationError: Weights do not sum to 100, duplicate or
                non-top-level sections, sections of another template
            NotFoundError: Unknown audit or standard
        """
        async with self._audit_transaction(audit_id) as (session, audit):
            total = sum(entry.weight for entry in data.weights)
            if not weight_sum_is_valid(total, self.scoring.weight_tolerance):
                raise ValidationError(
                    f"Total weight must sum to 100 (current: {round2(total)})",
                    field="weights",
                )

            seen: set[str] = set()
            for entry in data.weights:
                if entry.standard_id in seen:
                    raise ValidationError(
                        f"Duplicate weight for standard {entry.standard_id}",
                        field="weights",
                    )
                if not 0 <= entry.weight <= 100:
                    raise ValidationError(
                        f"Weight for standard {entry.standard_id} must be between 0 and 100",
                        field="weights",
                    )
                seen.add(entry.standard_id)

            hierarchy = await self._load_hierarchy(session, audit.template_id)

            for entry in data.weights:
                node = hierarchy.get(entry.standard_id)
                if node is None:
                    if await session.get(StandardModel, entry.standard_id) is None:
                        raise NotFoundError(f"Standard not found: {entry.standard_id}", field="standard_id")
                    raise ValidationError(
                        f"Standard {entry.standard_id} does not belong to the audit's template",
                        field="standard_id",
                    )
                if not node.is_top_level:
                    raise ValidationError(
                        f"Standard {node.code or node.id} is not a top-level section",
                        field="standard_id",
                    )

            existing = {row.standard_id: row for row in await self._load_weights(session, audit_id)}
            rows: list[StandardWeightModel] = []

            for entry in data.weights:
                row = existing.pop(entry.standard_id, None)
                if row is None:
                    row = StandardWeightModel(
                        id=str(uuid.uuid4()),
                        audit_id=audit_id,
                        standard_id=entry.standard_id,
                        total_controls=hierarchy.count_auditable_descendants(entry.standard_id),
                        evaluated_controls=0,
                    )
                    session.add(row)
                row.weight = entry.weight
                rows.append(row)

            for stale in existing.values():
                await session.delete(stale)

            await session.flush()
            await self._refresh_aggregate(session, audit, hierarchy=hierarchy)

        logger.info(
            "weights_replaced",
            audit_id=audit_id,
            sections=len(rows),
            removed=len(existing),
            total_weight=round2(total),
        )

        return rows

    async def list_weights(self, audit_id: str) -> list[StandardWeightModel]:
        async with self.session_factory() as session:
            await self._get_audit(session, audit_id)
            result = await session.execute(
                select(StandardWeightModel)
                .where(StandardWeightModel.audit_id == audit_id)
                .order_by(StandardWeightModel.weight.desc(), StandardWeightModel.standard_id)
            )
            return list(result.scalars().all())

    async def validate_weights(self, audit_id: str) -> WeightValidation:
        """Check that the stored weights of an audit sum to 100."""
        weights = await self.list_weights(audit_id)
        total = round2(sum(row.weight for row in weights))

        return WeightValidation(
            is_valid=weight_sum_is_valid(total, self.scoring.weight_tolerance),
            total_weight=total,
            difference=round2(abs(100 - total)),
        )

    async def set_manual_score(
        self,
        audit_id: str,
        standard_id: str,
        data: ManualScoreUpdate,
    ) -> StandardWeightModel:
        """
        Set or clear the auditor's override of a section score.

        Raises:
            ValidationError: A score without a justification
            NotFoundError: Unknown audit or section without a weight row
        """
        justification = (data.justification or "").strip()
        if data.manual_score is not None and not justification:
            raise ValidationError(
                "A justification is required when setting a manual score",
                field="justification",
            )

        async with self._audit_transaction(audit_id) as (session, audit):
            result = await session.execute(
                select(StandardWeightModel).where(
                    StandardWeightModel.audit_id == audit_id,
                    StandardWeightModel.standard_id == standard_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise NotFoundError(
                    f"No weight configured for section {standard_id}",
                    field="standard_id",
                )

            row.manual_score = data.manual_score
            row.manual_score_justification = justification if data.manual_score is not None else None

            await session.flush()
            await self._refresh_aggregate(session, audit)

        logger.info(
            "manual_score_set" if data.manual_score is not None else "manual_score_cleared",
            audit_id=audit_id,
            standard_id=standard_id,
            manual_score=data.manual_score,
        )

        return row

    # =========================================================================
    # Aggregation
    # =========================================================================

    async def recalculate_audit_scores(self, audit_id: str) -> AuditModel:
        """Recompute every section score and the audit aggregate."""
        async with self._audit_transaction(audit_id) as (session, audit):
            await self._refresh_aggregate(session, audit)
        return audit

    async def _refresh_aggregate(
        self,
        session: AsyncSession,
        audit: AuditModel,
        touched_standard_id: str | None = None,
        hierarchy: ControlHierarchy | None = None,
    ) -> AuditModel:
        """
        Rewrite section scores and the audit aggregate from one load.

        Must run inside the caller's unit of work, after pending changes
        were flushed.
        """
        if hierarchy is None:
            hierarchy = await self._load_hierarchy(session, audit.template_id)
        evaluations = [
            e for e in await self._load_evaluations(session, audit.id) if e.standard_id in hierarchy
        ]
        context = ScoringContext.build(hierarchy, evaluations)

        if touched_standard_id is not None and touched_standard_id in hierarchy:
            chain = hierarchy.ancestors(touched_standard_id)
            for ancestor_id in chain:
                score_of(ancestor_id, context)
            logger.debug(
                "ancestor_chain_rescored",
                audit_id=audit.id,
                standard_id=touched_standard_id,
                section_id=chain[-1] if chain else touched_standard_id,
                depth=len(chain),
            )

        weights = await self._load_weights(session, audit.id)
        sections = score_sections(context, [row.standard_id for row in weights if row.standard_id in hierarchy])

        for row in weights:
            section = sections.get(row.standard_id)
            if section is None:
                logger.warning(
                    "weighted_section_not_in_template",
                    audit_id=audit.id,
                    standard_id=row.standard_id,
                )
                row.calculated_score = None
                row.evaluated_controls = 0
                continue
            row.calculated_score = section.calculated_score
            row.evaluated_controls = section.evaluated_controls

        audit.total_score = calculate_total_score(weights)
        audit.evaluated_controls = sum(
            1 for e in evaluations if e.score is not None and hierarchy.node(e.standard_id).is_auditable
        )
        audit.compliance_rate = calculate_compliance_rate(evaluations)

        await session.flush()

        logger.info(
            "audit_scores_recalculated",
            audit_id=audit.id,
            total_score=audit.total_score,
            compliance_rate=audit.compliance_rate,
            evaluated_controls=audit.evaluated_controls,
            total_controls=audit.total_controls,
        )

        return audit

    async def get_section_progress(self, audit_id: str) -> list[SectionProgress]:
        """Per-section weight, score and progress, heaviest first."""
        async with self.session_factory() as session:
            await self._get_audit(session, audit_id)
            result = await session.execute(
                select(StandardWeightModel, StandardModel.code, StandardModel.title)
                .outerjoin(StandardModel, StandardModel.id == StandardWeightModel.standard_id)
                .where(StandardWeightModel.audit_id == audit_id)
                .order_by(StandardWeightModel.weight.desc(), StandardModel.code)
            )
            rows = result.all()

        return [
            SectionProgress(
                standard_id=row.standard_id,
                code=code or "",
                title=title or "",
                weight=row.weight,
                final_score=row.final_score,
                weighted_score=row.weighted_score,
                evaluated_controls=row.evaluated_controls,
                total_controls=row.total_controls,
                progress_pct=(
                    round2(row.evaluated_controls / row.total_controls * 100)
                    if row.total_controls
                    else 0.0
                ),
            )
            for row, code, title in rows
        ]
