"""
Scheduler module for background maintenance jobs.
"""

from .scheduler import MonitorScheduler, get_scheduler

__all__ = ["MonitorScheduler", "get_scheduler"]
