"""
Database Module
===============

Async SQLAlchemy access for the audit scoring store.

Usage:
    from shared.database import PostgresClient, unit_of_work

    async with unit_of_work(PostgresClient.get_session_factory()) as session:
        ...
"""

from shared.database.postgres import (
    Base,
    PostgresClient,
    create_session_factory,
    unit_of_work,
)


__all__ = [
    "Base",
    "PostgresClient",
    "create_session_factory",
    "unit_of_work",
]
