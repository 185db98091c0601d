"""
One-shot cleanup of old price history.
Deletes every observation older than the retention horizon and reports what was removed.

Usage: aze-price-cleanup  (or python -m aze_price.cleanup)
"""

import sys
from typing import Optional

from aze_price.core.config import Settings, settings
from aze_price.core.logging_config import setup_logging, create_logger
from aze_price.database import create_db_engine, create_session_factory, init_db
from aze_price.services.retention import RetentionManager
from aze_price.services.store import PriceHistoryStore

logger = create_logger(__name__)


def cleanup(config: Optional[Settings] = None) -> int:
    """Run one retention pass against the configured database; returns a process exit code."""
    config = config or settings
    engine = create_db_engine(config.database_url, config.database_echo)

    try:
        init_db(engine)
        retention = RetentionManager(PriceHistoryStore(create_session_factory(engine)))

        logger.info("Starting cleanup of old price history", extra={
            "retention_days": retention.horizon.days
        })
        result = retention.run()

        if not result.succeeded:
            logger.error("Cleanup failed", extra={"error": result.error})
            return 1

        logger.info("Cleanup finished", extra={
            "cutoff": result.cutoff.isoformat(),
            "count_before": result.count_before,
            "deleted": result.deleted,
            "count_after": result.count_after,
            "estimated_mb_freed": round(result.estimated_bytes_freed / (1024 * 1024), 2)
        })
        return 0
    finally:
        engine.dispose()


def main() -> None:
    setup_logging()
    sys.exit(cleanup())


if __name__ == "__main__":
    main()
