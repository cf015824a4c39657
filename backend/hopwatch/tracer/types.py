"""
Value types shared by the traceroute parser, classifier and aggregation buffer.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional

from ..models import IssueType

# Label shown for a hop that never identified itself
NO_RESPONSE_LABEL = "Request timed out"


@dataclass(frozen=True)
class HopObservation:
    """One hop line of a single traceroute run.

    latency_ms is only ever set when timed_out is False. A hop without an
    address is not evidence of loss: routers that ignore probes still
    forward traffic.
    """

    hop_number: int
    address: Optional[str] = None
    hostname: Optional[str] = None
    latency_ms: Optional[float] = None
    timed_out: bool = False

    @property
    def has_address(self) -> bool:
        return bool(self.address)

    @property
    def has_measurement(self) -> bool:
        """False for a hop that gave an address but neither a latency nor a no-reply marker."""
        return self.timed_out or self.latency_ms is not None

    @property
    def display_name(self) -> str:
        if self.hostname:
            return self.hostname
        if self.address:
            return self.address
        return NO_RESPONSE_LABEL

    def to_dict(self) -> dict:
        return {
            "hop": self.hop_number,
            "ip": self.address,
            "hostname": self.display_name,
            "latency": self.latency_ms,
            "timeout": self.timed_out,
        }


@dataclass
class ProbeRun:
    """Ordered hops of one traceroute run for one target."""

    hops: List[HopObservation] = field(default_factory=list)
    target: Optional[str] = None
    observed_at: datetime = field(default_factory=datetime.utcnow)

    def __iter__(self) -> Iterator[HopObservation]:
        return iter(self.hops)

    def __len__(self) -> int:
        return len(self.hops)

    def __getitem__(self, index):
        return self.hops[index]

    @property
    def last_hop(self) -> Optional[HopObservation]:
        return self.hops[-1] if self.hops else None


class FindingKind(str, enum.Enum):
    """Kinds of anomaly signal found within a single run."""

    HIGH_LATENCY = "high_latency"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class AnomalyFinding:
    kind: FindingKind
    hop_number: int
    value: Optional[float] = None
    threshold: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "hop": self.hop_number,
            "value": self.value,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class HopStats:
    """Summary statistics of one run."""

    avg_latency: Optional[float]
    packet_loss_pct: float


@dataclass(frozen=True)
class Classification:
    """Everything the classifier concludes about one run."""

    findings: List[AnomalyFinding]
    stats: HopStats
    problematic_hop: Optional[int]
    issue_type: Optional[IssueType]
    reached_destination: bool
    destination_ip: Optional[str]

    @property
    def is_anomalous(self) -> bool:
        return bool(self.findings)


@dataclass
class AnomalyEvent:
    """Write model for one anomalous run, handed to the persistence gateway."""

    target: str
    issue_type: IssueType
    hops: List[HopObservation]
    target_ip: Optional[str] = None
    problematic_hop: Optional[int] = None
    avg_latency: Optional[float] = None
    packet_loss_pct: float = 0.0
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_hops(self) -> int:
        return len(self.hops)
