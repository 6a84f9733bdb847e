"""
Test Configuration
==================

Pytest fixtures for audit scoring tests.

Database tests run against a throwaway SQLite file created from the ORM
metadata, so no PostgreSQL server is needed.
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from shared.config import ScoringSettings  # noqa: E402
from shared.database.postgres import Base, create_session_factory, unit_of_work  # noqa: E402
from shared.logging import setup_logging  # noqa: E402
from shared.models.audit import AuditCreate, EvaluationSubmit  # noqa: E402
from services.audit_scoring.models import (  # noqa: E402
    AuditModel,
    EvaluationModel,
    MaturityLevelModel,
    StandardModel,
)
from services.audit_scoring.services.locks import AuditLockRegistry  # noqa: E402
from services.audit_scoring.services.scoring import AuditScoringService  # noqa: E402


FRAMEWORK_ID = "cmmi"

# (code, children); nodes without children are auditable controls
FLAT_TEMPLATE = [
    ("A", [("A1", []), ("A2", [])]),
    ("B", [("B1", [])]),
]

NESTED_TEMPLATE = [
    ("A", [("A1", []), ("A2", [("A2a", []), ("A2b", [])])]),
    ("B", [("B1", [])]),
]


@dataclass
class Catalog:
    """Seeded template: ids of its standards by code, and maturity level ids by rank."""

    template_id: str
    standards: dict[str, str]
    levels: dict[int, str]

    def __getitem__(self, code: str) -> str:
        return self.standards[code]


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def configure_logging() -> None:
    """Send structlog through stdlib logging at the test log level."""
    setup_logging(log_level=os.environ["LOG_LEVEL"], json_logs=True)


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with the scoring schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'audit_scoring.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def scoring_settings() -> ScoringSettings:
    return ScoringSettings(lock_timeout_seconds=0.2)


@pytest.fixture
def scoring_service(
    session_factory: async_sessionmaker[AsyncSession],
    scoring_settings: ScoringSettings,
) -> AuditScoringService:
    return AuditScoringService(
        session_factory=session_factory,
        scoring=scoring_settings,
        locks=AuditLockRegistry(scoring_settings.lock_timeout_seconds),
    )


# =============================================================================
# Catalog Seeding
# =============================================================================


@pytest_asyncio.fixture
async def levels(session_factory: async_sessionmaker[AsyncSession]) -> dict[int, str]:
    """Maturity levels 1..5, keyed by rank."""
    ids = {rank: f"level-{rank}" for rank in range(1, 6)}
    async with unit_of_work(session_factory) as session:
        for rank, level_id in ids.items():
            session.add(MaturityLevelModel(id=level_id, framework_id=FRAMEWORK_ID, level=rank, name=f"L{rank}"))
    return ids


async def seed_template(
    session_factory: async_sessionmaker[AsyncSession],
    template_id: str,
    nodes: list[tuple[str, list[Any]]],
) -> dict[str, str]:
    """Insert a control tree and return standard ids by code."""
    ids: dict[str, str] = {}

    async with unit_of_work(session_factory) as session:

        def add(children: list[tuple[str, list[Any]]], parent_id: str | None) -> None:
            for order, (code, grandchildren) in enumerate(children):
                standard_id = f"{template_id}-{code}"
                ids[code] = standard_id
                session.add(
                    StandardModel(
                        id=standard_id,
                        template_id=template_id,
                        parent_id=parent_id,
                        code=code,
                        title=f"Control {code}",
                        is_auditable=not grandchildren,
                        order=order,
                    )
                )
                add(grandchildren, standard_id)

        add(nodes, None)

    return ids


@pytest_asyncio.fixture
async def flat_catalog(
    session_factory: async_sessionmaker[AsyncSession],
    levels: dict[int, str],
) -> Catalog:
    """A(A1, A2), B(B1)."""
    standards = await seed_template(session_factory, "flat", FLAT_TEMPLATE)
    return Catalog(template_id="flat", standards=standards, levels=levels)


@pytest_asyncio.fixture
async def nested_catalog(
    session_factory: async_sessionmaker[AsyncSession],
    levels: dict[int, str],
) -> Catalog:
    """A(A1, A2(A2a, A2b)), B(B1)."""
    standards = await seed_template(session_factory, "nested", NESTED_TEMPLATE)
    return Catalog(template_id="nested", standards=standards, levels=levels)


# =============================================================================
# Audits
# =============================================================================


def audit_payload(catalog: Catalog, **overrides: Any) -> dict[str, Any]:
    """Request body for creating an audit on a seeded template."""
    payload: dict[str, Any] = {
        "name": "ISO 27001 Audit 2026",
        "template_id": catalog.template_id,
        "maturity_framework_id": FRAMEWORK_ID,
        "organization_id": "org-1",
        "start_date": date(2026, 1, 1),
        "end_date": date(2026, 3, 31),
        "default_expected_level_id": catalog.levels[5],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_audit(scoring_service: AuditScoringService) -> Callable[..., Awaitable[AuditModel]]:
    """Create an audit whose default expected level is 5."""

    async def _create(catalog: Catalog, **overrides: Any) -> AuditModel:
        return await scoring_service.create_audit(AuditCreate(**audit_payload(catalog, **overrides)))

    return _create


@pytest.fixture
def evaluate_control(scoring_service: AuditScoringService) -> Callable[..., Awaitable[EvaluationModel]]:
    """Submit an evaluation by control code and obtained rank."""

    async def _evaluate(
        audit: AuditModel,
        catalog: Catalog,
        code: str,
        obtained: int | None,
        expected: int | None = None,
        **fields: Any,
    ) -> EvaluationModel:
        data: dict[str, Any] = {"standard_id": catalog[code]}
        if obtained is not None:
            data["obtained_level_id"] = catalog.levels[obtained]
        if expected is not None:
            data["expected_level_id"] = catalog.levels[expected]
        data.update(fields)
        return await scoring_service.submit_evaluation(audit.id, EvaluationSubmit(**data))

    return _evaluate


# =============================================================================
# HTTP
# =============================================================================


@pytest_asyncio.fixture
async def audit_scoring_client(scoring_service: AuditScoringService) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for the Audit Scoring Service."""
    from services.audit_scoring.dependencies import get_scoring_service
    from services.audit_scoring.main import app

    app.dependency_overrides[get_scoring_service] = lambda: scoring_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
