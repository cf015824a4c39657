"""
Hop statistic model for per-minute aggregated hop behaviour.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, UniqueConstraint

from ..database import Base


class HopStatistic(Base):
    """Rolling per-minute statistics for one hop of one target.

    Rows are keyed by (target, hop_number, hop_ip, timestamp_minute) and are
    merged into by every flush of the in-memory hop statistics buffer.
    latency_samples counts the attempts that produced a latency value, and
    is the weight of avg_latency when two aggregates are merged.
    """

    __tablename__ = "hop_statistics"
    __table_args__ = (
        UniqueConstraint(
            "target", "hop_number", "hop_ip", "timestamp_minute", name="uq_hop_statistic_key"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    timestamp_minute = Column(DateTime, nullable=False, index=True)
    target = Column(String(255), nullable=False, index=True)
    hop_number = Column(Integer, nullable=False, index=True)
    hop_ip = Column(String(45), nullable=True)
    hop_hostname = Column(String(255), nullable=True)
    total_attempts = Column(Integer, nullable=False, default=0)
    total_losses = Column(Integer, nullable=False, default=0)
    latency_samples = Column(Integer, nullable=False, default=0)
    avg_latency = Column(Float, nullable=True)
    min_latency = Column(Float, nullable=True)
    max_latency = Column(Float, nullable=True)

    @property
    def packet_loss_pct(self) -> float:
        if not self.total_attempts:
            return 0.0
        return self.total_losses / self.total_attempts * 100

    def __repr__(self):
        return (
            f"<HopStatistic(target='{self.target}', hop={self.hop_number}, "
            f"ip='{self.hop_ip}', minute={self.timestamp_minute})>"
        )
