"""
Pydantic schemas for logged anomaly events.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List


class AnomalyResponse(BaseModel):
    """Anomaly event with details of its problematic hop."""

    id: int
    timestamp: datetime
    target: str
    target_ip: Optional[str] = None
    issue_type: str
    total_hops: Optional[int] = None
    problematic_hop: Optional[int] = None
    avg_latency: Optional[float] = None
    packet_loss_pct: Optional[float] = None
    problem_hop_ip: Optional[str] = None
    problem_hop_hostname: Optional[str] = None
    problem_hop_latency: Optional[float] = None


class AnomalyListResponse(BaseModel):
    anomalies: List[AnomalyResponse]
    count: int


class HopPathEntry(BaseModel):
    hop: int
    ip: Optional[str] = None
    hostname: Optional[str] = None
    latency: Optional[float] = None
    timeout: bool
    problematic: bool


class HopPathResponse(BaseModel):
    """Full hop path of one anomaly event."""

    id: int
    timestamp: datetime
    target: str
    issue_type: str
    problematic_hop: Optional[int] = None
    hop_path: List[HopPathEntry]


class TimelineEntry(BaseModel):
    time_bucket: datetime
    issue_type: str
    target: str
    anomaly_count: int


class TimelineResponse(BaseModel):
    timeline: List[TimelineEntry]
    count: int


class ProblemHopStat(BaseModel):
    hop_number: int
    hostname: Optional[str] = None
    ip_address: Optional[str] = None
    target: str
    problem_count: int
    avg_latency: Optional[float] = None
    max_latency: Optional[float] = None
    min_latency: Optional[float] = None


class ProblemHopStatsResponse(BaseModel):
    hop_stats: List[ProblemHopStat]
    count: int
