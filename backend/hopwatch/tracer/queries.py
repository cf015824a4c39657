"""
Read queries over persisted anomaly events and hop statistics.

These helpers back the HTTP API. They only read (apart from the cleanup
helpers) and keep all time bucketing in Python so that they behave the same
on SQLite and PostgreSQL.
"""

import csv
import io
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, distinct, func
from sqlalchemy.orm import Session

from ..models import EventHop, HopStatistic, IssueType, NetworkEvent

logger = logging.getLogger(__name__)

TIMELINE_INTERVALS = ("hour", "day")

CSV_HEADERS = [
    "Timestamp",
    "Target",
    "Issue Type",
    "Problematic Hop",
    "Avg Latency",
    "Packet Loss %",
    "Problem Hop IP",
    "Problem Hop Hostname",
    "Problem Hop Latency",
]


def _since(hours: float) -> datetime:
    return datetime.utcnow() - timedelta(hours=hours)


def _loss_pct(attempts: int, losses: int) -> float:
    return losses / attempts * 100 if attempts else 0.0


def _anomaly_query(db: Session, hours: float, target: Optional[str] = None):
    """Events joined with the hop row of their problematic hop."""
    query = (
        db.query(
            NetworkEvent,
            EventHop.ip_address,
            EventHop.hostname,
            EventHop.latency_ms,
        )
        .outerjoin(
            EventHop,
            and_(
                EventHop.event_id == NetworkEvent.id,
                EventHop.hop_number == NetworkEvent.problematic_hop,
            ),
        )
        .filter(NetworkEvent.timestamp > _since(hours))
    )
    if target:
        query = query.filter(NetworkEvent.target == target)
    return query


def _anomaly_row(event: NetworkEvent, ip: Optional[str], hostname: Optional[str], latency):
    return {
        "id": event.id,
        "timestamp": event.timestamp,
        "target": event.target,
        "target_ip": event.target_ip,
        "issue_type": event.issue_type.value,
        "total_hops": event.total_hops,
        "problematic_hop": event.problematic_hop,
        "avg_latency": event.avg_latency,
        "packet_loss_pct": event.packet_loss_pct,
        "problem_hop_ip": ip,
        "problem_hop_hostname": hostname,
        "problem_hop_latency": latency,
    }


def list_anomalies(
    db: Session,
    target: Optional[str] = None,
    issue_type: Optional[IssueType] = None,
    hours: float = 24,
    limit: int = 100,
    hop: Optional[int] = None,
    min_latency: Optional[float] = None,
    max_latency: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """
    List recent anomaly events, newest first.

    Args:
        db: Database session
        target: Only events for this target
        issue_type: Only events of this issue type
        hours: Look-back window
        limit: Maximum number of events
        hop: Only events whose problematic hop has this number
        min_latency: Problematic hop latency lower bound (inclusive)
        max_latency: Problematic hop latency upper bound (exclusive)

    Returns:
        List of event dictionaries including the problematic hop's details
    """
    query = _anomaly_query(db, hours, target)
    if issue_type:
        query = query.filter(NetworkEvent.issue_type == IssueType(issue_type))
    if hop is not None:
        query = query.filter(NetworkEvent.problematic_hop == hop)
    if min_latency is not None:
        query = query.filter(EventHop.latency_ms >= min_latency)
    if max_latency is not None:
        query = query.filter(EventHop.latency_ms < max_latency)

    rows = query.order_by(NetworkEvent.timestamp.desc()).limit(limit).all()
    return [_anomaly_row(*row) for row in rows]


def get_event_hop_path(db: Session, event_id: int) -> Optional[Dict[str, Any]]:
    """Full hop path of one event, or None if the event does not exist."""
    event = db.query(NetworkEvent).filter(NetworkEvent.id == event_id).first()
    if not event:
        return None

    return {
        "id": event.id,
        "timestamp": event.timestamp,
        "target": event.target,
        "issue_type": event.issue_type.value,
        "problematic_hop": event.problematic_hop,
        "hop_path": [
            {
                "hop": hop.hop_number,
                "ip": hop.ip_address,
                "hostname": hop.hostname,
                "latency": hop.latency_ms,
                "timeout": hop.timeout,
                "problematic": hop.is_problematic,
            }
            for hop in event.hops
        ],
    }


def cross_target_hop_analysis(
    db: Session, hours: float = 24, min_targets: int = 1
) -> List[Dict[str, Any]]:
    """
    Hops shared by several targets, worst packet loss first.

    The average latency is weighted by latency samples, matching how the
    per-minute aggregates are merged.
    """
    since = _since(hours)
    rows = (
        db.query(
            HopStatistic.hop_ip,
            HopStatistic.hop_hostname,
            func.count(distinct(HopStatistic.target)).label("targets_affected"),
            func.sum(HopStatistic.total_attempts).label("total_attempts"),
            func.sum(HopStatistic.total_losses).label("total_losses"),
            func.sum(HopStatistic.avg_latency * HopStatistic.latency_samples).label("weighted"),
            func.sum(HopStatistic.latency_samples).label("samples"),
            func.max(HopStatistic.max_latency).label("max_latency"),
            func.min(HopStatistic.min_latency).label("min_latency"),
            func.min(HopStatistic.timestamp_minute).label("first_seen"),
            func.max(HopStatistic.timestamp_minute).label("last_seen"),
        )
        .filter(HopStatistic.timestamp_minute > since, HopStatistic.hop_ip.isnot(None))
        .group_by(HopStatistic.hop_ip, HopStatistic.hop_hostname)
        .having(func.count(distinct(HopStatistic.target)) >= min_targets)
        .all()
    )

    targets = defaultdict(set)
    for hop_ip, hop_hostname, target in (
        db.query(HopStatistic.hop_ip, HopStatistic.hop_hostname, HopStatistic.target)
        .filter(HopStatistic.timestamp_minute > since, HopStatistic.hop_ip.isnot(None))
        .distinct()
    ):
        targets[(hop_ip, hop_hostname)].add(target)

    results = []
    for row in rows:
        attempts = row.total_attempts or 0
        losses = row.total_losses or 0
        results.append(
            {
                "hop_ip": row.hop_ip,
                "hop_hostname": row.hop_hostname,
                "targets_affected": row.targets_affected,
                "affected_targets": sorted(targets[(row.hop_ip, row.hop_hostname)]),
                "total_attempts": attempts,
                "total_losses": losses,
                "overall_packet_loss_pct": _loss_pct(attempts, losses),
                "avg_latency": row.weighted / row.samples if row.samples else None,
                "max_latency": row.max_latency,
                "min_latency": row.min_latency,
                "first_seen": row.first_seen,
                "last_seen": row.last_seen,
            }
        )

    results.sort(key=lambda r: (r["overall_packet_loss_pct"], r["targets_affected"]), reverse=True)
    return results


def hop_packet_loss(
    db: Session,
    target: Optional[str] = None,
    hours: float = 24,
    hop_number: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Per-hop packet loss over the look-back window, worst first."""
    query = db.query(
        HopStatistic.target,
        HopStatistic.hop_number,
        HopStatistic.hop_ip,
        HopStatistic.hop_hostname,
        func.sum(HopStatistic.total_attempts).label("total_attempts"),
        func.sum(HopStatistic.total_losses).label("total_losses"),
        func.sum(HopStatistic.avg_latency * HopStatistic.latency_samples).label("weighted"),
        func.sum(HopStatistic.latency_samples).label("samples"),
        func.min(HopStatistic.min_latency).label("min_latency"),
        func.max(HopStatistic.max_latency).label("max_latency"),
        func.min(HopStatistic.timestamp_minute).label("first_seen"),
        func.max(HopStatistic.timestamp_minute).label("last_seen"),
    ).filter(HopStatistic.timestamp_minute > _since(hours))

    if target:
        query = query.filter(HopStatistic.target == target)
    if hop_number is not None:
        query = query.filter(HopStatistic.hop_number == hop_number)

    rows = query.group_by(
        HopStatistic.target, HopStatistic.hop_number, HopStatistic.hop_ip, HopStatistic.hop_hostname
    ).all()

    results = []
    for row in rows:
        attempts = row.total_attempts or 0
        losses = row.total_losses or 0
        results.append(
            {
                "target": row.target,
                "hop_number": row.hop_number,
                "hop_ip": row.hop_ip,
                "hop_hostname": row.hop_hostname,
                "total_attempts": attempts,
                "total_losses": losses,
                "packet_loss_pct": _loss_pct(attempts, losses),
                "avg_latency": row.weighted / row.samples if row.samples else None,
                "min_latency": row.min_latency,
                "max_latency": row.max_latency,
                "first_seen": row.first_seen,
                "last_seen": row.last_seen,
            }
        )

    results.sort(key=lambda r: (r["packet_loss_pct"], r["total_attempts"]), reverse=True)
    return results


def problem_hop_stats(db: Session, days: float = 30, limit: int = 20) -> List[Dict[str, Any]]:
    """Hops most often blamed for anomaly events."""
    problem_count = func.count(EventHop.id).label("problem_count")
    rows = (
        db.query(
            EventHop.hop_number,
            EventHop.hostname,
            EventHop.ip_address,
            NetworkEvent.target,
            problem_count,
            func.avg(EventHop.latency_ms).label("avg_latency"),
            func.max(EventHop.latency_ms).label("max_latency"),
            func.min(EventHop.latency_ms).label("min_latency"),
        )
        .join(NetworkEvent, EventHop.event_id == NetworkEvent.id)
        .filter(EventHop.is_problematic, NetworkEvent.timestamp > _since(days * 24))
        .group_by(EventHop.hop_number, EventHop.hostname, EventHop.ip_address, NetworkEvent.target)
        .order_by(problem_count.desc())
        .limit(limit)
        .all()
    )

    return [
        {
            "hop_number": row.hop_number,
            "hostname": row.hostname,
            "ip_address": row.ip_address,
            "target": row.target,
            "problem_count": row.problem_count,
            "avg_latency": row.avg_latency,
            "max_latency": row.max_latency,
            "min_latency": row.min_latency,
        }
        for row in rows
    ]


def truncate_timestamp(moment: datetime, interval: str) -> datetime:
    if interval == "day":
        return moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return moment.replace(minute=0, second=0, microsecond=0)


def anomaly_timeline(db: Session, hours: float = 24, interval: str = "hour") -> List[Dict[str, Any]]:
    """
    Count anomaly events per time bucket, issue type and target.

    Unknown intervals fall back to hourly buckets.
    """
    interval = interval if interval in TIMELINE_INTERVALS else "hour"

    events = (
        db.query(NetworkEvent.timestamp, NetworkEvent.issue_type, NetworkEvent.target)
        .filter(NetworkEvent.timestamp > _since(hours))
        .all()
    )

    counts: Dict[Tuple[datetime, str, str], int] = defaultdict(int)
    for timestamp, issue_type, target in events:
        counts[(truncate_timestamp(timestamp, interval), issue_type.value, target)] += 1

    timeline = [
        {"time_bucket": bucket, "issue_type": issue, "target": target, "anomaly_count": count}
        for (bucket, issue, target), count in counts.items()
    ]
    timeline.sort(key=lambda r: (r["time_bucket"], r["issue_type"], r["target"]), reverse=True)
    return timeline


def export_anomalies(db: Session, hours: float = 24, target: Optional[str] = None) -> List[Dict]:
    """Rows for CSV or spreadsheet export, newest first."""
    rows = _anomaly_query(db, hours, target).order_by(NetworkEvent.timestamp.desc()).all()
    return [_anomaly_row(*row) for row in rows]


def _format_float(value: Optional[float]) -> str:
    return f"{value:.2f}" if value is not None else ""


def anomalies_csv(db: Session, hours: float = 24, target: Optional[str] = None) -> str:
    """Render recent anomaly events as CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for row in export_anomalies(db, hours, target):
        writer.writerow(
            [
                row["timestamp"].isoformat(),
                row["target"],
                row["issue_type"],
                row["problematic_hop"] if row["problematic_hop"] is not None else "",
                _format_float(row["avg_latency"]),
                _format_float(row["packet_loss_pct"]),
                row["problem_hop_ip"] or "",
                row["problem_hop_hostname"] or "",
                _format_float(row["problem_hop_latency"]),
            ]
        )

    return buffer.getvalue()


def cleanup_range(db: Session, start: datetime, end: datetime) -> Tuple[int, int]:
    """
    Delete events and hop statistics recorded within [start, end].

    Returns:
        Tuple of (events deleted, hop statistics deleted)
    """
    event_ids = [
        event_id
        for (event_id,) in db.query(NetworkEvent.id).filter(
            NetworkEvent.timestamp >= start, NetworkEvent.timestamp <= end
        )
    ]

    if event_ids:
        # Hop rows go with their events
        db.query(EventHop).filter(EventHop.event_id.in_(event_ids)).delete(
            synchronize_session=False
        )
        db.query(NetworkEvent).filter(NetworkEvent.id.in_(event_ids)).delete(
            synchronize_session=False
        )

    stats_deleted = (
        db.query(HopStatistic)
        .filter(HopStatistic.timestamp_minute >= start, HopStatistic.timestamp_minute <= end)
        .delete(synchronize_session=False)
    )

    db.commit()
    logger.info(f"Deleted {len(event_ids)} events and {stats_deleted} hop statistics records")
    return len(event_ids), stats_deleted


def cleanup_older_than(db: Session, days: int) -> Tuple[int, int]:
    """Delete everything recorded before the retention cut-off."""
    cutoff = datetime.utcnow() - timedelta(days=days)
    return cleanup_range(db, datetime.min, cutoff)
