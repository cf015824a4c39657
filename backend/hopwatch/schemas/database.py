"""
Pydantic schemas for database status and maintenance endpoints.
"""

from pydantic import BaseModel, StrictBool
from datetime import datetime
from typing import Optional


class DatabaseStatusResponse(BaseModel):
    connected: bool
    logging_enabled: bool
    timestamp: Optional[datetime] = None
    error: Optional[str] = None


class LoggingToggleRequest(BaseModel):
    """Request to enable or disable anomaly event logging."""

    enabled: StrictBool


class LoggingToggleResponse(BaseModel):
    logging_enabled: bool
    message: str


class CleanupResponse(BaseModel):
    success: bool
    events_deleted: int
    hop_stats_deleted: int
    message: str
