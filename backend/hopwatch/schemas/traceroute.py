"""
Pydantic schemas for traceroute runs.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List


class HopResponse(BaseModel):
    """One parsed hop."""

    hop: int
    ip: Optional[str] = None
    hostname: str
    latency: Optional[float] = None
    timeout: bool


class FindingResponse(BaseModel):
    """One anomaly finding within a run."""

    type: str
    hop: int
    value: Optional[float] = None
    threshold: Optional[float] = None


class TracerouteResponse(BaseModel):
    """Traceroute run response schema."""

    target: str
    timestamp: datetime
    platform: Optional[str] = None
    hops: List[HopResponse]
    anomalies: List[FindingResponse] = []
    reached_destination: bool
    avg_latency: Optional[float] = None
    packet_loss_pct: float
    problematic_hop: Optional[int] = None
    issue_type: Optional[str] = None
    logging_status: str
    event_id: Optional[int] = None
    logging_error: Optional[str] = None
