"""
Network event model for persisted anomaly records.

This module defines the NetworkEvent model representing one anomalous
traceroute run, together with the IssueType enumeration used to classify it.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..database import Base


class IssueType(str, enum.Enum):
    """Enumeration of persisted anomaly issue types.

    Attributes:
        HIGH_LATENCY: At least one hop answered slower than the latency threshold
        TIMEOUT: The final addressed hop never answered and the target was not reached
        PACKET_LOSS: The share of unanswered addressed hops exceeded the loss threshold
    """

    HIGH_LATENCY = "high_latency"
    TIMEOUT = "timeout"
    PACKET_LOSS = "packet_loss"


class NetworkEvent(Base):
    """SQLAlchemy model for a logged network anomaly.

    Events are written once per anomalous run and never updated afterwards.
    The full hop path of the run is kept in EventHop rows that are deleted
    together with the event.

    Attributes:
        id: Primary key identifier
        timestamp: When the traceroute run was classified (UTC)
        target: Target name or address as requested by the operator
        target_ip: Address of the last hop, if it identified itself
        issue_type: Primary issue of the run (IssueType enum)
        total_hops: Number of hops in the parsed run
        problematic_hop: Hop number judged most responsible, if any
        avg_latency: Mean latency over hops that answered
        packet_loss_pct: Share of addressed hops that timed out
        hops: Relationship to EventHop records

    Example:
        >>> event = NetworkEvent(target="example.com", issue_type=IssueType.TIMEOUT)
        >>> db.add(event)
        >>> db.commit()
    """

    __tablename__ = "network_events"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    target = Column(String(255), nullable=False, index=True)
    target_ip = Column(String(45), nullable=True)
    issue_type = Column(SQLEnum(IssueType), nullable=False)
    total_hops = Column(Integer, nullable=True)
    problematic_hop = Column(Integer, nullable=True)
    avg_latency = Column(Float, nullable=True)
    packet_loss_pct = Column(Float, nullable=True)

    # Relationships
    hops = relationship(
        "EventHop",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventHop.hop_number",
    )

    def __repr__(self):
        return f"<NetworkEvent(id={self.id}, target='{self.target}', issue='{self.issue_type}')>"
