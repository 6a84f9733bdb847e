#!/usr/bin/env python3
"""
Database Initialization Script
==============================

Create the audit scoring tables and optionally seed a demo template.

Usage:
    python scripts/init_database.py
    python scripts/init_database.py --seed
    python scripts/init_database.py --drop --seed

Version: 0.1.0
"""

import argparse
import asyncio
import sys
import uuid
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.logging import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False, service_name="init-db")
logger = get_logger(__name__)


DEMO_TEMPLATE_ID = "00000000-0000-4000-8000-000000000001"
DEMO_FRAMEWORK_ID = "00000000-0000-4000-8000-000000000002"

# (code, title, children); leaves are auditable controls
DEMO_CONTROLS = [
    ("A.5", "Organizational controls", [
        ("A.5.1", "Policies for information security", []),
        ("A.5.2", "Information security roles and responsibilities", []),
        ("A.5.3", "Segregation of duties", []),
    ]),
    ("A.6", "People controls", [
        ("A.6.1", "Screening", []),
        ("A.6.3", "Information security awareness, education and training", []),
    ]),
    ("A.8", "Technological controls", [
        ("A.8.1", "User endpoint devices", []),
        ("A.8.5", "Secure authentication", [
            ("A.8.5.1", "Multi-factor authentication", []),
            ("A.8.5.2", "Password management", []),
        ]),
    ]),
]

DEMO_LEVELS = [
    (1, "Initial"),
    (2, "Managed"),
    (3, "Defined"),
    (4, "Quantitatively Managed"),
    (5, "Optimizing"),
]


async def create_schema(drop: bool) -> bool:
    """Create (and optionally drop first) all scoring tables."""
    from shared.database.postgres import Base, PostgresClient

    # Register the ORM models on Base.metadata
    import services.audit_scoring.models  # noqa: F401

    logger.info("schema_init_started", drop=drop)

    try:
        engine = PostgresClient.get_engine()
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

        logger.info("schema_init_completed", tables=sorted(Base.metadata.tables))
        return True

    except Exception as e:
        logger.error("schema_init_failed", error=str(e))
        return False


async def seed_data() -> bool:
    """Seed a small ISO 27001 style template and a five-level maturity scale."""
    from sqlalchemy import select

    from shared.database.postgres import PostgresClient, unit_of_work
    from services.audit_scoring.models import MaturityLevelModel, StandardModel

    logger.info("seed_started", template_id=DEMO_TEMPLATE_ID)

    try:
        async with unit_of_work(PostgresClient.get_session_factory()) as session:
            existing = await session.scalar(
                select(StandardModel.id).where(StandardModel.template_id == DEMO_TEMPLATE_ID).limit(1)
            )
            if existing is not None:
                logger.info("seed_skipped", reason="template already present")
                return True

            count = 0

            def add_nodes(nodes: list, parent_id: str | None) -> None:
                nonlocal count
                for order, (code, title, children) in enumerate(nodes):
                    standard = StandardModel(
                        id=str(uuid.uuid4()),
                        template_id=DEMO_TEMPLATE_ID,
                        parent_id=parent_id,
                        code=code,
                        title=title,
                        is_auditable=not children,
                        order=order,
                    )
                    session.add(standard)
                    count += 1
                    add_nodes(children, standard.id)

            add_nodes(DEMO_CONTROLS, None)

            for level, name in DEMO_LEVELS:
                session.add(MaturityLevelModel(framework_id=DEMO_FRAMEWORK_ID, level=level, name=name))

        logger.info("seed_completed", standards=count, maturity_levels=len(DEMO_LEVELS))
        return True

    except Exception as e:
        logger.error("seed_failed", error=str(e))
        return False


async def main(args: argparse.Namespace) -> int:
    """Main initialization function."""
    from shared.database.postgres import PostgresClient

    results = {"Schema": await create_schema(args.drop)}

    if args.seed and results["Schema"]:
        results["Seed Data"] = await seed_data()

    await PostgresClient.close()

    failed = [name for name, success in results.items() if not success]
    for name, success in results.items():
        logger.info("init_step_finished", step=name, success=success)

    if failed:
        logger.error("init_failed", failed=failed)
        return 1

    logger.info("init_succeeded")
    return 0


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Initialize the audit scoring database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing tables first (destroys data)",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed a demo template and maturity scale",
    )

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    exit_code = asyncio.run(main(args))
    sys.exit(exit_code)
