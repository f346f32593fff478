"""The half-hourly reconciliation loop.

Each cycle nudges the provider to catch up, waits for it, then rebuilds the
last lookback window of every tracked resource and writes it as one batch.
Cycles run back to back, aligned to :00 and :30. Any error other than a
failed catch-up ends the loop; restarting the process is the retry.
"""

import logging
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from ..errors import SourceAPIError
from ..models import (
    MEASUREMENT_USAGE,
    PERIOD_TAG,
    CycleResult,
    OutputPoint,
    ReadingPair,
    TrackedResource,
)
from .pairing import fetch_paired_readings
from .points import build_points, snapshot_tariff
from .window import LOOKBACK, resolve_window

logger = logging.getLogger(__name__)

CATCHUP_GRACE_SECONDS = 5 * 60
CATCHUP_JITTER_SECONDS = 2 * 60
JITTER_MIN = 0.7
JITTER_MAX = 1.3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def minutes_until_next_slot(minute: int) -> int:
    """Whole minutes until the next :00 or :30 boundary."""
    if not 0 <= minute <= 59:
        raise ValueError(f"minute must be between 0 and 59, got {minute}")
    if minute < 30:
        return 30 - minute
    return 60 - minute


def jittered(seconds: float, rng=random) -> float:
    """Scale a delay by a random factor in [0.7, 1.3]."""
    return seconds * rng.uniform(JITTER_MIN, JITTER_MAX)


class ReconciliationCycle:
    """Runs reconciliation cycles against injected source and store clients.

    Args:
        source: Meter-data client (GlowmarktClient or a test double)
        store: Time-series store (InfluxStore or a test double)
        resources: Resources to reconcile, processed in order
        lookback: How far back from the latest reading to rewrite
        catchup_grace: Seconds to wait after requesting catch-up
        catchup_jitter: Base seconds of random delay before requesting catch-up
        skip_stored: Only emit usage points newer than the store's latest,
            for stores that do not overwrite duplicates
        clock: Returns the current time
        sleep: Blocks for a number of seconds
        rng: Source of jitter
    """

    def __init__(
        self,
        source,
        store,
        resources: Sequence[TrackedResource],
        *,
        lookback: timedelta = LOOKBACK,
        catchup_grace: float = CATCHUP_GRACE_SECONDS,
        catchup_jitter: float = CATCHUP_JITTER_SECONDS,
        skip_stored: bool = False,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        rng=random,
    ):
        self.source = source
        self.store = store
        self.resources = list(resources)
        self.lookback = lookback
        self.catchup_grace = catchup_grace
        self.catchup_jitter = catchup_jitter
        self.skip_stored = skip_stored
        self.clock = clock
        self.sleep = sleep
        self.rng = rng

    @classmethod
    def from_settings(cls, settings, source, store, resources, **kwargs) -> "ReconciliationCycle":
        return cls(
            source,
            store,
            resources,
            lookback=timedelta(days=settings.lookback_days),
            catchup_grace=settings.catchup_grace_seconds,
            catchup_jitter=settings.catchup_jitter_seconds,
            skip_stored=settings.skip_stored,
            **kwargs,
        )

    def request_catchups(self) -> int:
        """Request catch-up for every resource id. Returns the number that failed."""
        failures = 0
        for resource in self.resources:
            for resource_id in resource.resource_ids:
                error = None
                try:
                    self.source.request_catchup(resource_id)
                except SourceAPIError as e:
                    # This routinely fails and is only a hint to the provider
                    failures += 1
                    error = str(e)
                logger.info(
                    "requested resource catchup",
                    extra={"resource": resource.name, "resource_id": resource_id, "error": error},
                )
        return failures

    def _unstored(self, resource: TrackedResource, pairs: list[ReadingPair]) -> list[ReadingPair]:
        last_stored = self.store.last_stored_time(
            MEASUREMENT_USAGE, {"resource": resource.name, "period": PERIOD_TAG}
        )
        if last_stored is None:
            return pairs
        newer = [p for p in pairs if p.timestamp > last_stored]
        if not newer:
            logger.info(
                "no new readings for resource",
                extra={"resource": resource.name, "last_stored": last_stored},
            )
        return newer

    def collect(self, resource: TrackedResource, now: datetime) -> list[OutputPoint]:
        """Build every point for one resource."""
        window = resolve_window(self.source, resource.quantity_resource_id, self.lookback)
        pairs = fetch_paired_readings(self.source, resource, window)
        if self.skip_stored:
            pairs = self._unstored(resource, pairs)
        tariff = snapshot_tariff(self.source, resource, now)
        points = build_points(resource, pairs, tariff)
        logger.info(
            "built points",
            extra={"resource": resource.name, "count": len(points), "start": window.start, "end": window.end},
        )
        return points

    def reconcile(self, now: datetime | None = None) -> list[OutputPoint]:
        """Collect points for all resources into a single batch."""
        if now is None:
            now = self.clock()
        batch: list[OutputPoint] = []
        for resource in self.resources:
            batch.extend(self.collect(resource, now))
        return batch

    def run_once(self, wait_for_catchup: bool = True, write: bool = True) -> CycleResult:
        """Run one full cycle and write its batch.

        With wait_for_catchup=False the catch-up requests and both waits are
        skipped. With write=False the batch is returned but not stored.
        """
        result = CycleResult(started_at=self.clock())

        if wait_for_catchup:
            self.sleep(jittered(self.catchup_jitter, self.rng))
            result.catchup_failures = self.request_catchups()
            logger.info("waiting for catchup", extra={"wait_seconds": self.catchup_grace})
            self.sleep(self.catchup_grace)

        result.points = self.reconcile()

        if write:
            self.store.write_batch(result.points)

        return result

    def next_wait(self, now: datetime | None = None) -> timedelta:
        """Time to sleep until the next half-hour boundary."""
        if now is None:
            now = self.clock()
        return timedelta(minutes=minutes_until_next_slot(now.minute))

    def run_forever(self, max_cycles: int | None = None) -> None:
        """Run cycles until an error escapes (or max_cycles have completed)."""
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            self.run_once()
            cycles += 1

            now = self.clock()
            wait = self.next_wait(now)
            logger.info(
                "waiting",
                extra={"wait_seconds": wait.total_seconds(), "until": now + wait},
            )
            self.sleep(wait.total_seconds())
