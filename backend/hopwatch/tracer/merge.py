"""
Merge arithmetic for hop statistic aggregates.

Attempts and losses add up over all attempts. The mean latency is weighted
by the number of latency samples on each side, not by attempts, so that
timeouts (which carry no latency) do not bias it.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AggregateSnapshot:
    total_attempts: int = 0
    total_losses: int = 0
    latency_samples: int = 0
    avg_latency: Optional[float] = None
    min_latency: Optional[float] = None
    max_latency: Optional[float] = None

    @classmethod
    def from_statistic(cls, row) -> "AggregateSnapshot":
        """Build a snapshot from a persisted HopStatistic row."""
        return cls(
            total_attempts=row.total_attempts or 0,
            total_losses=row.total_losses or 0,
            latency_samples=row.latency_samples or 0,
            avg_latency=row.avg_latency,
            min_latency=row.min_latency,
            max_latency=row.max_latency,
        )


def _pick(fn, a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None:
        return b
    if b is None:
        return a
    return fn(a, b)


def merge_aggregates(persisted: AggregateSnapshot, drained: AggregateSnapshot) -> AggregateSnapshot:
    """
    Fold a drained bucket into a persisted aggregate.

    Args:
        persisted: Aggregate currently stored for the key
        drained: Aggregate computed from one drained buffer bucket

    Returns:
        The merged aggregate
    """
    persisted_samples = persisted.latency_samples if persisted.avg_latency is not None else 0
    drained_samples = drained.latency_samples if drained.avg_latency is not None else 0
    samples = persisted_samples + drained_samples

    avg_latency = None
    if samples:
        weighted = 0.0
        if persisted_samples:
            weighted += persisted.avg_latency * persisted_samples
        if drained_samples:
            weighted += drained.avg_latency * drained_samples
        avg_latency = weighted / samples

    return AggregateSnapshot(
        total_attempts=persisted.total_attempts + drained.total_attempts,
        total_losses=persisted.total_losses + drained.total_losses,
        latency_samples=samples,
        avg_latency=avg_latency,
        min_latency=_pick(min, persisted.min_latency, drained.min_latency),
        max_latency=_pick(max, persisted.max_latency, drained.max_latency),
    )
