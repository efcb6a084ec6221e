"""Standalone artifact sweeper.

Run with: python -m app.worker

Use this when the API runs with CLEANUP_ENABLED=false, e.g. several API
processes sharing one storage directory.
"""

import signal

import structlog

from app.config import settings
from app.main import configure_logging
from app.storage.artifacts import LocalArtifactStore
from app.workers.cleanup import CleanupScheduler

logger = structlog.get_logger(__name__)


def main() -> None:
    """Sweep the artifact directory until interrupted."""
    configure_logging()
    store = LocalArtifactStore(settings.storage_base_path)
    scheduler = CleanupScheduler(store)

    def _shutdown(signum, frame):
        logger.info("sweeper_signal", signal=signum)
        scheduler.request_stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    logger.info(
        "sweeper_started",
        path=str(store.root),
        ttl_seconds=store.ttl_seconds,
        interval_seconds=scheduler.interval_seconds,
    )
    scheduler.run_forever()
    scheduler.run_once()
    logger.info("sweeper_stopped", runs=scheduler.runs)


if __name__ == "__main__":
    main()
