"""
Anomaly classification for parsed traceroute runs.

Classification is pure: it looks only at the hop sequence and the supplied
thresholds, and never touches the database.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..models import IssueType
from .types import (
    AnomalyFinding,
    Classification,
    FindingKind,
    HopObservation,
    HopStats,
    ProbeRun,
)

DEFAULT_HIGH_LATENCY_THRESHOLD_MS = 200.0
DEFAULT_PACKET_LOSS_THRESHOLD_PCT = 3.0


@dataclass(frozen=True)
class Thresholds:
    high_latency_ms: float = DEFAULT_HIGH_LATENCY_THRESHOLD_MS
    packet_loss_pct: float = DEFAULT_PACKET_LOSS_THRESHOLD_PCT


def reached_destination(hops: Sequence[HopObservation]) -> bool:
    """True when the last hop answered with a latency."""
    if not hops:
        return False
    last = hops[-1]
    return last.latency_ms is not None and not last.timed_out


def detect_anomalies(
    hops: Sequence[HopObservation],
    high_latency_threshold_ms: float = DEFAULT_HIGH_LATENCY_THRESHOLD_MS,
) -> List[AnomalyFinding]:
    """
    Find high latency and timeout signals in a run.

    A timeout is only reported for the last hop, when it has an address and
    the destination was not reached. Silent intermediate hops are common and
    a run that got through is not a failure.

    Args:
        hops: Parsed hops in order
        high_latency_threshold_ms: Latency above which a hop is flagged

    Returns:
        List of findings in hop order
    """
    findings = []
    reached = reached_destination(hops)
    last_index = len(hops) - 1

    for index, hop in enumerate(hops):
        if hop.latency_ms is not None and hop.latency_ms > high_latency_threshold_ms:
            findings.append(
                AnomalyFinding(
                    kind=FindingKind.HIGH_LATENCY,
                    hop_number=hop.hop_number,
                    value=hop.latency_ms,
                    threshold=high_latency_threshold_ms,
                )
            )

        if hop.timed_out and not reached and index == last_index and hop.has_address:
            findings.append(AnomalyFinding(kind=FindingKind.TIMEOUT, hop_number=hop.hop_number))

    return findings


def find_problematic_hop(findings: Iterable[AnomalyFinding]) -> Optional[int]:
    """
    Pick the hop most responsible for a run's findings.

    A timeout outranks any high latency finding. Among high latency findings
    the slowest hop wins.

    Returns:
        Hop number, or None if there are no findings
    """
    findings = list(findings)
    for finding in findings:
        if finding.kind == FindingKind.TIMEOUT:
            return finding.hop_number

    high_latency = [f for f in findings if f.kind == FindingKind.HIGH_LATENCY]
    if not high_latency:
        return None

    worst = high_latency[0]
    for finding in high_latency[1:]:
        if finding.value > worst.value:
            worst = finding
    return worst.hop_number


def calculate_stats(hops: Sequence[HopObservation]) -> HopStats:
    """
    Compute mean latency and packet loss for a run.

    Loss only considers hops that reported an address: a hop that never
    identified itself cannot be told apart from a router ignoring probes.
    A hop with an address but neither latency nor timeout is left out of
    both numbers.
    """
    latencies = [h.latency_ms for h in hops if h.latency_ms is not None and not h.timed_out]
    addressed = [h for h in hops if h.has_address and h.has_measurement]
    lost = [h for h in addressed if h.timed_out]

    avg_latency = sum(latencies) / len(latencies) if latencies else None
    packet_loss = len(lost) / len(addressed) * 100 if addressed else 0.0

    return HopStats(avg_latency=avg_latency, packet_loss_pct=packet_loss)


def select_issue_type(
    findings: Sequence[AnomalyFinding],
    stats: HopStats,
    packet_loss_threshold_pct: float = DEFAULT_PACKET_LOSS_THRESHOLD_PCT,
) -> Optional[IssueType]:
    """
    Choose the primary issue of an anomalous run.

    Returns:
        IssueType, or None when there is nothing to report
    """
    if not findings:
        return None
    if any(f.kind == FindingKind.TIMEOUT for f in findings):
        return IssueType.TIMEOUT
    if stats.packet_loss_pct > packet_loss_threshold_pct:
        return IssueType.PACKET_LOSS
    return IssueType.HIGH_LATENCY


def destination_ip(hops: Sequence[HopObservation]) -> Optional[str]:
    if not hops:
        return None
    return hops[-1].address or None


def classify(run: ProbeRun, thresholds: Optional[Thresholds] = None) -> Classification:
    """
    Classify one parsed run.

    Args:
        run: Parsed traceroute run
        thresholds: Detection thresholds, defaults if omitted

    Returns:
        Classification with findings, stats and the chosen issue type
    """
    thresholds = thresholds or Thresholds()
    hops = run.hops

    findings = detect_anomalies(hops, thresholds.high_latency_ms)
    stats = calculate_stats(hops)

    return Classification(
        findings=findings,
        stats=stats,
        problematic_hop=find_problematic_hop(findings),
        issue_type=select_issue_type(findings, stats, thresholds.packet_loss_pct),
        reached_destination=reached_destination(hops),
        destination_ip=destination_ip(hops),
    )
