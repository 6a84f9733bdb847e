"""
FastAPI dependencies for the audit scoring routes.
"""

from functools import lru_cache

from shared.config import settings
from shared.database.postgres import PostgresClient
from services.audit_scoring.services.scoring import AuditScoringService


@lru_cache
def get_scoring_service() -> AuditScoringService:
    """
    Process-wide scoring service.

    One instance per process so that every request shares the same
    per-audit lock registry.
    """
    return AuditScoringService(
        session_factory=PostgresClient.get_session_factory(),
        scoring=settings.scoring,
    )
