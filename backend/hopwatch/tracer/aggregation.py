"""
In-memory per-minute hop statistics and their periodic flush.

Every traceroute run folds its addressed hops into a bucket keyed by
(target, hop number, hop address, minute). A background job drains the
whole table at a fixed interval and merges each bucket into the
hop_statistics table.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional

from ..config import RuntimeConfig
from ..database import SessionLocal, check_connection
from .gateway import merge_hop_aggregate
from .merge import AggregateSnapshot
from .types import HopObservation, NO_RESPONSE_LABEL

logger = logging.getLogger(__name__)


class BucketKey(NamedTuple):
    target: str
    hop_number: int
    hop_ip: str
    timestamp_minute: datetime


def minute_bucket(moment: datetime) -> datetime:
    """Truncate a timestamp to the start of its wall-clock minute."""
    return moment.replace(second=0, microsecond=0)


@dataclass
class HopBucket:
    """Observations of one hop of one target during one minute."""

    target: str
    hop_number: int
    hop_ip: str
    timestamp_minute: datetime
    hop_hostname: Optional[str] = None
    total_attempts: int = 0
    total_losses: int = 0
    latencies: List[float] = field(default_factory=list)

    @property
    def key(self) -> BucketKey:
        return BucketKey(self.target, self.hop_number, self.hop_ip, self.timestamp_minute)

    def observe(self, hop: HopObservation) -> None:
        self.total_attempts += 1
        if hop.timed_out:
            self.total_losses += 1
        elif hop.latency_ms is not None:
            self.latencies.append(hop.latency_ms)

    def snapshot(self) -> AggregateSnapshot:
        latencies = self.latencies
        return AggregateSnapshot(
            total_attempts=self.total_attempts,
            total_losses=self.total_losses,
            latency_samples=len(latencies),
            avg_latency=sum(latencies) / len(latencies) if latencies else None,
            min_latency=min(latencies) if latencies else None,
            max_latency=max(latencies) if latencies else None,
        )


class HopStatsBuffer:
    """Lock-guarded table of hop buckets.

    record() and drain_all() are the only ways to touch the table. A drain
    swaps in a fresh table, so runs recorded during a flush land in the next
    one instead of racing with it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._buckets: Dict[BucketKey, HopBucket] = {}

    def record(
        self, target: str, hops: Iterable[HopObservation], now: Optional[datetime] = None
    ) -> int:
        """
        Fold the addressed, measured hops of one run into the current minute's buckets.

        Args:
            target: Target the run was made against
            hops: Parsed hops of the run
            now: Observation time (UTC), defaults to the current time

        Returns:
            Number of hops folded in
        """
        minute = minute_bucket(now or datetime.utcnow())
        folded = 0

        with self._lock:
            for hop in hops:
                if not hop.has_address or not hop.has_measurement:
                    continue

                key = BucketKey(target, hop.hop_number, hop.address, minute)
                bucket = self._buckets.get(key)
                if bucket is None:
                    hostname = hop.hostname if hop.hostname != NO_RESPONSE_LABEL else None
                    bucket = HopBucket(
                        target=target,
                        hop_number=hop.hop_number,
                        hop_ip=hop.address,
                        timestamp_minute=minute,
                        hop_hostname=hostname,
                    )
                    self._buckets[key] = bucket

                bucket.observe(hop)
                folded += 1

        return folded

    def drain_all(self) -> List[HopBucket]:
        """Take every bucket out of the buffer, leaving it empty."""
        with self._lock:
            drained, self._buckets = self._buckets, {}
        return list(drained.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)


@dataclass
class FlushSummary:
    drained: int = 0
    merged: int = 0
    failed: int = 0
    expired: int = 0
    discarded: int = 0
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "drained": self.drained,
            "merged": self.merged,
            "failed": self.failed,
            "expired": self.expired,
            "discarded": self.discarded,
            "skipped": self.skipped,
        }


# Held for the whole of a flush; a second flush never waits for it
_flush_lock = threading.Lock()


def flush_hop_statistics(
    buffer: HopStatsBuffer,
    session_factory=None,
    deadline_seconds: Optional[float] = None,
    runtime: Optional[RuntimeConfig] = None,
) -> FlushSummary:
    """
    Drain the buffer and merge every bucket into hop_statistics.

    Each bucket is merged and committed on its own. A bucket whose merge
    fails is logged and discarded, not retried. Buckets still pending when
    the deadline passes are dropped. The buffer is empty afterwards in every
    case.

    Args:
        buffer: Buffer to drain
        session_factory: Callable returning a Session, defaults to SessionLocal
        deadline_seconds: Time budget for the whole flush
        runtime: Runtime configuration carrying the degraded-mode flag

    Returns:
        FlushSummary describing what happened to the drained buckets
    """
    if not _flush_lock.acquire(blocking=False):
        logger.warning("Hop statistics flush already in progress, skipping")
        return FlushSummary(skipped=True)

    try:
        session_factory = session_factory or SessionLocal
        buckets = buffer.drain_all()
        summary = FlushSummary(drained=len(buckets))
        if not buckets:
            return summary

        db = session_factory()
        try:
            if runtime is not None and not runtime.persistence_available:
                if not check_connection(db):
                    summary.discarded = len(buckets)
                    logger.warning(
                        f"Database unavailable, discarded {len(buckets)} hop statistics bucket(s)"
                    )
                    return summary
                runtime.set_persistence_available(True)
                logger.info("Database connectivity restored, persistence re-enabled")

            started = time.monotonic()
            for index, bucket in enumerate(buckets):
                if deadline_seconds is not None and time.monotonic() - started > deadline_seconds:
                    summary.expired = len(buckets) - index
                    logger.warning(
                        f"Flush deadline of {deadline_seconds}s passed, "
                        f"dropped {summary.expired} hop statistics bucket(s)"
                    )
                    break

                try:
                    merge_hop_aggregate(db, bucket)
                    db.commit()
                    summary.merged += 1
                except Exception as e:
                    db.rollback()
                    summary.failed += 1
                    logger.error(f"Failed to merge hop statistics for {bucket.key}: {e}")
        finally:
            db.close()

        logger.info(
            f"Flushed hop statistics for {summary.merged}/{summary.drained} unique hops"
            + (f" ({summary.failed} failed)" if summary.failed else "")
        )
        return summary
    finally:
        _flush_lock.release()


_hop_stats_buffer: Optional[HopStatsBuffer] = None


def get_hop_stats_buffer() -> HopStatsBuffer:
    """Get the process-wide hop statistics buffer.

    Returns:
        HopStatsBuffer instance
    """
    global _hop_stats_buffer
    if _hop_stats_buffer is None:
        _hop_stats_buffer = HopStatsBuffer()
    return _hop_stats_buffer
