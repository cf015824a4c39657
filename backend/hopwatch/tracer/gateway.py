"""
Persistence gateway for anomaly events and hop statistics.

The gateway is the only place where the traceroute pipeline writes to the
database. Callers own the session and the transaction boundaries around
merge_hop_aggregate; record_anomaly_event commits on its own.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import EventHop, HopStatistic, NetworkEvent
from .merge import AggregateSnapshot, merge_aggregates
from .types import AnomalyEvent, NO_RESPONSE_LABEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HopInsertOutcome:
    hop_number: int
    inserted: bool
    reason: Optional[str] = None


@dataclass
class EventWriteSummary:
    """Result of writing one anomaly event and its hop rows."""

    event_id: int
    outcomes: List[HopInsertOutcome] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return sum(1 for o in self.outcomes if o.inserted)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if not o.inserted)


def record_anomaly_event(db: Session, event: AnomalyEvent) -> EventWriteSummary:
    """
    Insert an anomaly event together with its hop path.

    Each hop row is inserted inside its own SAVEPOINT, so a duplicate hop
    number (or any other per-row failure) skips that row only.

    Args:
        db: Database session
        event: Event to persist

    Returns:
        EventWriteSummary with the new event id and per-hop outcomes

    Raises:
        SQLAlchemyError: If the event row itself cannot be written
    """
    try:
        row = NetworkEvent(
            timestamp=event.timestamp,
            target=event.target,
            target_ip=event.target_ip,
            issue_type=event.issue_type,
            total_hops=event.total_hops,
            problematic_hop=event.problematic_hop,
            avg_latency=event.avg_latency,
            packet_loss_pct=event.packet_loss_pct,
        )
        db.add(row)
        db.flush()  # Get row.id
    except SQLAlchemyError:
        db.rollback()
        raise

    summary = EventWriteSummary(event_id=row.id)

    for hop in event.hops:
        hostname = hop.hostname if hop.hostname != NO_RESPONSE_LABEL else None
        try:
            with db.begin_nested():
                db.add(
                    EventHop(
                        event_id=row.id,
                        hop_number=hop.hop_number,
                        ip_address=hop.address or None,
                        hostname=hostname,
                        latency_ms=hop.latency_ms,
                        timeout=hop.timed_out,
                        is_problematic=hop.hop_number == event.problematic_hop,
                    )
                )
            summary.outcomes.append(HopInsertOutcome(hop_number=hop.hop_number, inserted=True))
        except SQLAlchemyError as e:
            logger.warning(f"Skipped hop {hop.hop_number} of event {row.id}: {e.__class__.__name__}")
            summary.outcomes.append(
                HopInsertOutcome(
                    hop_number=hop.hop_number,
                    inserted=False,
                    reason=str(getattr(e, "orig", None) or e),
                )
            )

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    return summary


def merge_hop_aggregate(db: Session, bucket) -> HopStatistic:
    """
    Upsert one drained bucket into hop_statistics.

    The existing row is read with FOR UPDATE so that concurrent writers on
    the same key serialize (SQLite ignores the hint and serializes writes
    anyway). The caller commits.

    Args:
        db: Database session
        bucket: Drained HopBucket

    Returns:
        The created or updated HopStatistic
    """
    drained = bucket.snapshot()

    row = (
        db.query(HopStatistic)
        .filter(
            HopStatistic.target == bucket.target,
            HopStatistic.hop_number == bucket.hop_number,
            HopStatistic.hop_ip == bucket.hop_ip,
            HopStatistic.timestamp_minute == bucket.timestamp_minute,
        )
        .with_for_update()
        .first()
    )

    if row is None:
        row = HopStatistic(
            timestamp_minute=bucket.timestamp_minute,
            target=bucket.target,
            hop_number=bucket.hop_number,
            hop_ip=bucket.hop_ip,
            hop_hostname=bucket.hop_hostname,
        )
        merged = drained
        db.add(row)
    else:
        merged = merge_aggregates(AggregateSnapshot.from_statistic(row), drained)
        if bucket.hop_hostname and not row.hop_hostname:
            row.hop_hostname = bucket.hop_hostname

    row.total_attempts = merged.total_attempts
    row.total_losses = merged.total_losses
    row.latency_samples = merged.latency_samples
    row.avg_latency = merged.avg_latency
    row.min_latency = merged.min_latency
    row.max_latency = merged.max_latency

    db.flush()
    return row
