"""
Traceroute pipeline.
Coordinates parsing, hop statistics aggregation, anomaly classification and
anomaly event persistence for one traceroute run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..config import RuntimeConfig, get_runtime_config
from .aggregation import HopStatsBuffer, get_hop_stats_buffer
from .classifier import Thresholds, classify
from .gateway import EventWriteSummary, record_anomaly_event
from .parser import parse_traceroute_output
from .runner import TracerouteRunner
from .types import AnomalyEvent, Classification, HopObservation, ProbeRun

logger = logging.getLogger(__name__)


class LoggingStatus:
    """What happened to the anomaly event of a run."""

    NOT_ANOMALOUS = "not_anomalous"
    LOGGED = "logged"
    DISABLED = "disabled"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass
class TracerouteResult:
    target: str
    timestamp: datetime
    hops: List[HopObservation]
    classification: Classification
    logging_status: str = LoggingStatus.NOT_ANOMALOUS
    event_id: Optional[int] = None
    hops_logged: int = 0
    hops_skipped: int = 0
    logging_error: Optional[str] = None
    platform: Optional[str] = None

    def to_dict(self) -> dict:
        classification = self.classification
        return {
            "target": self.target,
            "timestamp": self.timestamp,
            "platform": self.platform,
            "hops": [hop.to_dict() for hop in self.hops],
            "anomalies": [finding.to_dict() for finding in classification.findings],
            "reached_destination": classification.reached_destination,
            "avg_latency": classification.stats.avg_latency,
            "packet_loss_pct": classification.stats.packet_loss_pct,
            "problematic_hop": classification.problematic_hop,
            "issue_type": classification.issue_type.value if classification.issue_type else None,
            "logging_status": self.logging_status,
            "event_id": self.event_id,
            "logging_error": self.logging_error,
        }


class TraceroutePipeline:
    """Run one traceroute through parsing, aggregation and classification."""

    def __init__(
        self,
        db: Session,
        runner: Optional[TracerouteRunner] = None,
        buffer: Optional[HopStatsBuffer] = None,
        runtime: Optional[RuntimeConfig] = None,
    ):
        self.db = db
        self.runner = runner or TracerouteRunner()
        self.buffer = buffer if buffer is not None else get_hop_stats_buffer()
        self.runtime = runtime or get_runtime_config()

    def run(self, target: str) -> TracerouteResult:
        """
        Invoke traceroute against a target and process its output.

        Raises:
            InvalidTargetError, TracerouteError: From the runner
        """
        output = self.runner.run(target)
        result = self.process(target, output)
        result.platform = self.runner.system
        return result

    def process(self, target: str, output: str) -> TracerouteResult:
        """
        Process the raw output of one traceroute run.

        Hop statistics are always recorded. An anomaly event is written only
        when the run has findings, event logging is enabled and the database
        is available. A failed write never fails the run.

        Args:
            target: Target the run was made against
            output: Raw traceroute stdout

        Returns:
            TracerouteResult with parsed hops, classification and logging outcome
        """
        run = parse_traceroute_output(output, target=target)
        self.buffer.record(target, run.hops, now=run.observed_at)

        options = self.runtime.snapshot()
        classification = classify(
            run,
            Thresholds(
                high_latency_ms=options.high_latency_threshold_ms,
                packet_loss_pct=options.packet_loss_threshold_pct,
            ),
        )

        result = TracerouteResult(
            target=target,
            timestamp=run.observed_at,
            hops=run.hops,
            classification=classification,
        )

        if not classification.is_anomalous:
            return result

        if not options.logging_enabled:
            result.logging_status = LoggingStatus.DISABLED
            return result

        if not options.persistence_available:
            result.logging_status = LoggingStatus.UNAVAILABLE
            logger.warning(f"Database unavailable, anomaly for {target} not logged")
            return result

        try:
            summary = self._log_anomaly(run, classification)
        except Exception as e:
            result.logging_status = LoggingStatus.FAILED
            result.logging_error = str(e)
            logger.error(f"Failed to log anomaly for {target}: {e}")
            return result

        result.logging_status = LoggingStatus.LOGGED
        result.event_id = summary.event_id
        result.hops_logged = summary.inserted
        result.hops_skipped = summary.skipped
        return result

    def _log_anomaly(self, run: ProbeRun, classification: Classification) -> EventWriteSummary:
        event = AnomalyEvent(
            target=run.target,
            issue_type=classification.issue_type,
            hops=run.hops,
            target_ip=classification.destination_ip,
            problematic_hop=classification.problematic_hop,
            avg_latency=classification.stats.avg_latency,
            packet_loss_pct=classification.stats.packet_loss_pct,
            timestamp=run.observed_at,
        )
        summary = record_anomaly_event(self.db, event)

        logger.info(
            f"Anomaly logged: {event.issue_type.value} for {event.target} "
            f"(Event ID: {summary.event_id}, Hop: {event.problematic_hop})"
        )
        if summary.skipped:
            logger.warning(f"Event {summary.event_id}: skipped {summary.skipped} hop row(s)")
        return summary
