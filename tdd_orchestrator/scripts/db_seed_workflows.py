"""
Database Seeder.

Run this script to write the built-in workflows defined in
data/hardcoded_workflows.py into the configured database (DATABASE_URL).
Existing rows are overwritten, so re-running it resets the definitions
(and their versions) to the shipped ones.

Usage:
    python -m tdd_orchestrator.scripts.db_seed_workflows
"""

import logging

from sqlalchemy.engine import Engine

from tdd_orchestrator.data.hardcoded_workflows import HARDCODED_WORKFLOWS
from tdd_orchestrator.infrastructure.database.connection import engine, init_db
from tdd_orchestrator.repositories.workflow import SqlWorkflowRepository

logger = logging.getLogger(__name__)


def seed_workflows(bind: Engine = engine) -> int:
    logger.info("Initializing database connection...")
    init_db(bind)

    repo = SqlWorkflowRepository(bind)
    logger.info(f"Found {len(HARDCODED_WORKFLOWS)} workflows to seed.")
    for name, definition in HARDCODED_WORKFLOWS.items():
        logger.info(f"Upserting workflow: {name} (v{definition.version})")
        repo.save_workflow(definition)

    logger.info("Workflows seeding complete.")
    return len(HARDCODED_WORKFLOWS)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    seed_workflows()
