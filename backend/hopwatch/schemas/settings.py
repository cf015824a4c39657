"""
Pydantic schemas for Settings API endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field


class AppSettings(BaseModel):
    """Operator-tunable detection and retention settings."""

    high_latency_threshold_ms: float = Field(
        default=200.0, gt=0, le=10000, description="Latency above which a hop is flagged (ms)"
    )
    packet_loss_threshold_pct: float = Field(
        default=3.0,
        ge=0,
        le=100,
        description="Loss above which an event is classified as packet_loss (%)",
    )
    data_retention_days: int = Field(
        default=30, ge=1, le=365, description="Number of days to retain events and statistics"
    )

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "high_latency_threshold_ms": 200.0,
                "packet_loss_threshold_pct": 3.0,
                "data_retention_days": 30,
            }
        },
    )


class AppSettingsResponse(AppSettings):
    """Response schema for settings."""

    pass
