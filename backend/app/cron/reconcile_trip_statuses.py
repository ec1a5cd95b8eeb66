"""
Cron entrypoint for trip status reconciliation.

Runs one reconciliation pass and exits. Use this instead of the in-process
worker when RECONCILER_ENABLED is false on the API nodes:

    python -m backend.app.cron.reconcile_trip_statuses
"""

import asyncio
import logging

from backend.app.core.logging_config import configure_logging
from backend.app.db.session import AsyncSessionLocal, engine
from backend.app.db import base  # noqa: F401  (registers every model)
from backend.app.domain.dispatch.status_reconciler import ReconcileResult, TripStatusReconciler

logger = logging.getLogger(__name__)


async def reconcile_trip_statuses() -> ReconcileResult:
    reconciler = TripStatusReconciler(AsyncSessionLocal)
    try:
        return await reconciler.run_once()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    configure_logging()
    result = asyncio.run(reconcile_trip_statuses())
    logger.info("[reconcile_trip_statuses] result: %s", result)
    raise SystemExit(1 if result.errors else 0)
