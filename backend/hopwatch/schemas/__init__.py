"""
Pydantic schemas package.
"""

from .traceroute import HopResponse, FindingResponse, TracerouteResponse
from .anomaly import (
    AnomalyResponse,
    AnomalyListResponse,
    HopPathEntry,
    HopPathResponse,
    TimelineEntry,
    TimelineResponse,
    ProblemHopStat,
    ProblemHopStatsResponse,
)
from .hop_stats import (
    HopPacketLoss,
    HopPacketLossResponse,
    CrossTargetHop,
    CrossTargetHopResponse,
    FlushResponse,
)
from .database import (
    DatabaseStatusResponse,
    LoggingToggleRequest,
    LoggingToggleResponse,
    CleanupResponse,
)
from .settings import AppSettings, AppSettingsResponse

__all__ = [
    # Traceroute
    "HopResponse",
    "FindingResponse",
    "TracerouteResponse",
    # Anomalies
    "AnomalyResponse",
    "AnomalyListResponse",
    "HopPathEntry",
    "HopPathResponse",
    "TimelineEntry",
    "TimelineResponse",
    "ProblemHopStat",
    "ProblemHopStatsResponse",
    # Hop statistics
    "HopPacketLoss",
    "HopPacketLossResponse",
    "CrossTargetHop",
    "CrossTargetHopResponse",
    "FlushResponse",
    # Database
    "DatabaseStatusResponse",
    "LoggingToggleRequest",
    "LoggingToggleResponse",
    "CleanupResponse",
    # Settings
    "AppSettings",
    "AppSettingsResponse",
]
