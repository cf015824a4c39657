"""
Database models package.
"""

from .event import NetworkEvent, IssueType
from .event_hop import EventHop
from .hop_statistic import HopStatistic
from .settings import Settings, get_setting, set_setting

__all__ = [
    "NetworkEvent",
    "IssueType",
    "EventHop",
    "HopStatistic",
    "Settings",
    "get_setting",
    "set_setting",
]
