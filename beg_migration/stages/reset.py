from __future__ import annotations

import logging

from ..db.tables import RESET_ORDER
from ..models.context import MigrationContext
from ..models.processing_result import StageResult
from .base import StageReport

logger = logging.getLogger(__name__)


def reset_database(ctx: MigrationContext) -> StageResult:
    """Delete every target table, most dependent first, in one transaction."""
    report = StageReport(ctx, "reset")
    with ctx.storage.transaction():
        for table in RESET_ORDER:
            deleted = ctx.storage.delete_all(table)
            logger.debug("reset: deleted %d rows from %s", deleted, table)
    logger.info("Database reset complete")
    return report.result()
