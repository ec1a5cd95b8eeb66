"""
Time-driven status reconciliation.

Brings persisted trip and invoice state in line with the wall clock:

1. NOT_STARTED trips whose start time passed become IN_PROGRESS.
2. IN_PROGRESS trips past their end time become COMPLETED_LATE and give
   back their driver and vehicle.
3. Invoices stuck in PENDING past the timeout become ERROR so they can be
   retried.

Each pass uses its own session and transaction. A failing pass is logged
and recorded in the result; it never stops the other passes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import update

from backend.app.core.clock import utcnow
from backend.app.core.config import settings
from backend.app.domain.dispatch.resource_registry import ResourceRegistry
from backend.app.domain.dispatch.trip_store import TripStore
from backend.app.models.billing_enums import InvoiceStatus
from backend.app.models.invoice import Invoice
from backend.app.models.trip_enums import TripStatus
from backend.app.services.audit import AuditAction, AuditEntity, AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    started: int = 0
    completed_late: int = 0
    stale_invoices: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.started or self.completed_late or self.stale_invoices)


class TripStatusReconciler:

    def __init__(
        self,
        session_factory,
        clock: Callable[[], datetime] = utcnow,
        pending_timeout: timedelta = timedelta(minutes=settings.invoice_pending_timeout_minutes),
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.pending_timeout = pending_timeout

    async def run_once(self, now: Optional[datetime] = None) -> ReconcileResult:
        """
        Run every reconciliation pass once.

        Args:
            now: Reference time (naive UTC); defaults to the clock

        Returns:
            Counts per pass and the errors of failed passes
        """
        now = now or self.clock()
        result = ReconcileResult()

        passes = (
            ("start_due_trips", self._start_due_trips),
            ("complete_overdue_trips", self._complete_overdue_trips),
            ("fail_stale_invoices", self._fail_stale_invoices),
        )
        for name, run_pass in passes:
            try:
                await run_pass(now, result)
            except Exception as exc:
                logger.exception("Reconciliation pass %s failed", name)
                result.errors.append(f"{name}: {exc}")

        logger.info(
            "Reconciliation at %s: started=%s completed_late=%s stale_invoices=%s errors=%s",
            now.isoformat(), result.started, result.completed_late,
            result.stale_invoices, len(result.errors),
        )
        if result.changed:
            try:
                async with self.session_factory() as db:
                    await AuditLogger(db).record(
                        AuditAction.TRIPS_RECONCILED, AuditEntity.TRIP,
                        metadata={
                            "started": result.started,
                            "completed_late": result.completed_late,
                            "stale_invoices": result.stale_invoices,
                        },
                    )
            except Exception as exc:
                logger.exception("Could not record reconciliation audit entry")
                result.errors.append(f"audit: {exc}")
        return result

    async def _start_due_trips(self, now: datetime, result: ReconcileResult) -> None:
        async with self.session_factory() as db:
            try:
                result.started = await TripStore(db).start_due_trips(now)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    async def _complete_overdue_trips(self, now: datetime, result: ReconcileResult) -> None:
        async with self.session_factory() as db:
            store = TripStore(db)
            registry = ResourceRegistry(db)

            overdue = [
                (trip.id, trip.driver_id, trip.vehicle_id)
                for trip in await store.find_overdue(now)
            ]
            for trip_id, driver_id, vehicle_id in overdue:
                try:
                    # Re-checked at write time: a trip closed manually since the scan is skipped
                    if not await store.transition_if(trip_id, TripStatus.IN_PROGRESS, TripStatus.COMPLETED_LATE):
                        continue
                    await registry.release_driver(driver_id, trip_id)
                    await registry.release_vehicle(vehicle_id, trip_id)
                    await db.commit()
                    result.completed_late += 1
                except Exception as exc:
                    await db.rollback()
                    logger.exception("Failed to complete overdue trip %s", trip_id)
                    result.errors.append(f"complete_overdue_trips[{trip_id}]: {exc}")

    async def _fail_stale_invoices(self, now: datetime, result: ReconcileResult) -> None:
        cutoff = now - self.pending_timeout
        async with self.session_factory() as db:
            try:
                stale = await db.execute(
                    update(Invoice)
                    .where(Invoice.status == InvoiceStatus.PENDING, Invoice.submitted_at < cutoff)
                    .values(
                        status=InvoiceStatus.ERROR,
                        last_error="Stamping did not complete before the pending timeout",
                    )
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            result.stale_invoices = stale.rowcount
            if stale.rowcount:
                logger.warning("Moved %s stale PENDING invoices to ERROR", stale.rowcount)


class TripStatusWorker:
    """
    Background loop running the reconciler on a fixed interval.

    Started and stopped from the application lifespan.
    """

    def __init__(self, reconciler: TripStatusReconciler, interval_seconds: float):
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.warning("Trip status worker already running")
            return

        logger.info("Starting trip status worker (interval=%ss)", self.interval_seconds)
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="trip-status-worker")

    async def stop(self) -> None:
        if not self.running:
            return

        logger.info("Stopping trip status worker")
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=30)
        except asyncio.TimeoutError:
            self._task.cancel()
        self._task = None
        logger.info("Trip status worker stopped")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            # run_once logs and swallows its own failures
            await self.reconciler.run_once()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
