"""
Event hop model for the hop path snapshot of an anomaly event.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class EventHop(Base):
    """One hop of the traceroute run that produced a NetworkEvent."""

    __tablename__ = "event_hops"
    __table_args__ = (UniqueConstraint("event_id", "hop_number", name="uq_event_hop_number"),)

    id = Column(Integer, primary_key=True, index=True)
    hop_number = Column(Integer, nullable=False)  # TTL/hop count
    ip_address = Column(String(45), nullable=True)
    hostname = Column(String(255), nullable=True)
    latency_ms = Column(Float, nullable=True)  # First probe round trip time
    timeout = Column(Boolean, default=False, nullable=False)
    is_problematic = Column(Boolean, default=False, nullable=False)

    # Foreign keys
    event_id = Column(
        Integer, ForeignKey("network_events.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Relationships
    event = relationship("NetworkEvent", back_populates="hops")

    def __repr__(self):
        return f"<EventHop(hop={self.hop_number}, ip='{self.ip_address}')>"
