"""
Pydantic schemas for aggregated hop statistics.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List


class HopPacketLoss(BaseModel):
    """Packet loss of one hop of one target over the look-back window."""

    target: str
    hop_number: int
    hop_ip: Optional[str] = None
    hop_hostname: Optional[str] = None
    total_attempts: int
    total_losses: int
    packet_loss_pct: float
    avg_latency: Optional[float] = None
    min_latency: Optional[float] = None
    max_latency: Optional[float] = None
    first_seen: datetime
    last_seen: datetime


class HopPacketLossResponse(BaseModel):
    hop_statistics: List[HopPacketLoss]
    count: int
    period_hours: float


class CrossTargetHop(BaseModel):
    """A hop seen on the path to one or more targets."""

    hop_ip: str
    hop_hostname: Optional[str] = None
    targets_affected: int
    affected_targets: List[str]
    total_attempts: int
    total_losses: int
    overall_packet_loss_pct: float
    avg_latency: Optional[float] = None
    max_latency: Optional[float] = None
    min_latency: Optional[float] = None
    first_seen: datetime
    last_seen: datetime


class CrossTargetHopResponse(BaseModel):
    cross_target_hops: List[CrossTargetHop]
    count: int
    period_hours: float


class FlushResponse(BaseModel):
    """Outcome of one hop statistics flush."""

    drained: int
    merged: int
    failed: int
    expired: int
    discarded: int
    skipped: bool
