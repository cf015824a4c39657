"""
FastAPI application for Hopwatch.
Runs traceroutes on demand, logs anomalous runs and serves the aggregated
hop statistics.
"""

import io
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_runtime_config, settings
from .database import SessionLocal, check_connection, get_db, init_db
from .models import IssueType, get_setting, set_setting
from .schemas import (
    AnomalyListResponse,
    CleanupResponse,
    CrossTargetHopResponse,
    DatabaseStatusResponse,
    FlushResponse,
    HopPacketLossResponse,
    HopPathResponse,
    LoggingToggleRequest,
    LoggingToggleResponse,
    ProblemHopStatsResponse,
    TimelineResponse,
    TracerouteResponse,
)
from .schemas.settings import AppSettings, AppSettingsResponse
from .scheduler import get_scheduler
from .tracer import queries
from .tracer.pipeline import TraceroutePipeline
from .tracer.report_gen import generate_anomaly_xlsx
from .tracer.runner import (
    InvalidTargetError,
    TracerouteError,
    TracerouteRunner,
    TracerouteTimeoutError,
)

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def load_persisted_settings(db: Session) -> None:
    """Apply operator settings saved by a previous run to the runtime config."""
    runtime = get_runtime_config()
    runtime.update_thresholds(
        high_latency_threshold_ms=float(
            get_setting(db, "high_latency_threshold_ms", str(settings.high_latency_threshold_ms))
        ),
        packet_loss_threshold_pct=float(
            get_setting(db, "packet_loss_threshold_pct", str(settings.packet_loss_threshold_pct))
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    runtime = get_runtime_config()

    try:
        init_db()
        print("✓ Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    db = SessionLocal()
    try:
        if check_connection(db):
            load_persisted_settings(db)
            print("✓ Settings loaded")
        else:
            runtime.set_persistence_available(False)
            print("  ⚠️  Database unavailable, running without event logging")
    except SQLAlchemyError as e:
        logger.error(f"Failed to load settings: {e}")
    finally:
        db.close()

    # Start scheduler service
    scheduler = get_scheduler()
    scheduler.start()
    print("✓ Scheduler service started")
    print("✓ API docs available at http://localhost:8000/docs")

    yield

    # Shutdown
    scheduler.stop()
    print("✓ Scheduler service stopped")


# Create FastAPI app with lifespan
app = FastAPI(
    title=settings.app_name,
    description="Traceroute anomaly detection and hop statistics API",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_runner() -> TracerouteRunner:
    """Dependency providing the traceroute runner for this platform."""
    return TracerouteRunner()


# ============================================================================
# Traceroute Endpoint
# ============================================================================


@app.get("/api/traceroute/{target}", response_model=TracerouteResponse)
def run_traceroute(
    target: str,
    db: Session = Depends(get_db),
    runner: TracerouteRunner = Depends(get_runner),
):
    """
    Run traceroute against a target.
    Anomalous runs are logged when event logging is enabled.
    """
    pipeline = TraceroutePipeline(db, runner=runner)
    try:
        result = pipeline.run(target)
    except InvalidTargetError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except TracerouteTimeoutError as e:
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
    except TracerouteError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return result.to_dict()


# ============================================================================
# Anomaly Endpoints
# ============================================================================


@app.get("/api/anomalies", response_model=AnomalyListResponse)
async def list_anomalies(
    target: Optional[str] = None,
    issue_type: Optional[IssueType] = None,
    hours: float = Query(24, gt=0),
    limit: int = Query(100, ge=1, le=1000),
    hop: Optional[int] = Query(None, ge=1),
    min_latency: Optional[float] = Query(None, ge=0),
    max_latency: Optional[float] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    """List logged anomaly events, newest first."""
    anomalies = queries.list_anomalies(
        db,
        target=target,
        issue_type=issue_type,
        hours=hours,
        limit=limit,
        hop=hop,
        min_latency=min_latency,
        max_latency=max_latency,
    )
    return {"anomalies": anomalies, "count": len(anomalies)}


@app.get("/api/anomalies/{event_id}/hops", response_model=HopPathResponse)
async def get_anomaly_hops(event_id: int, db: Session = Depends(get_db)):
    """Get the full hop path of one anomaly event."""
    path = queries.get_event_hop_path(db, event_id)
    if path is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return path


@app.get("/api/anomaly-timeline", response_model=TimelineResponse)
async def get_anomaly_timeline(
    hours: float = Query(24, gt=0),
    interval: str = "hour",
    db: Session = Depends(get_db),
):
    """Anomaly counts per time bucket, issue type and target."""
    timeline = queries.anomaly_timeline(db, hours=hours, interval=interval)
    return {"timeline": timeline, "count": len(timeline)}


@app.get("/api/export/anomalies")
async def export_anomalies(
    export_format: str = Query("csv", alias="format"),
    hours: float = Query(24, gt=0),
    target: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Download recent anomaly events as CSV or XLSX.
    """
    stamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")

    if export_format == "csv":
        content = queries.anomalies_csv(db, hours=hours, target=target)
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=anomalies_{stamp}.csv"},
        )

    if export_format == "xlsx":
        output = io.BytesIO()
        generate_anomaly_xlsx(queries.export_anomalies(db, hours=hours, target=target), output)
        return Response(
            content=output.getvalue(),
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f"attachment; filename=anomalies_{stamp}.xlsx"},
        )

    raise HTTPException(status_code=400, detail=f"Invalid export format: {export_format}")


# ============================================================================
# Hop Statistics Endpoints
# ============================================================================


@app.get("/api/hop-stats", response_model=ProblemHopStatsResponse)
async def get_hop_stats(
    days: float = Query(30, gt=0),
    limit: int = Query(20, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Hops most often blamed for anomaly events."""
    stats = queries.problem_hop_stats(db, days=days, limit=limit)
    return {"hop_stats": stats, "count": len(stats)}


@app.get("/api/hop-packet-loss", response_model=HopPacketLossResponse)
async def get_hop_packet_loss(
    target: Optional[str] = None,
    hours: float = Query(24, gt=0),
    hop_number: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    """Per-hop packet loss from the aggregated hop statistics."""
    stats = queries.hop_packet_loss(db, target=target, hours=hours, hop_number=hop_number)
    return {"hop_statistics": stats, "count": len(stats), "period_hours": hours}


@app.get("/api/cross-target-hop-analysis", response_model=CrossTargetHopResponse)
async def get_cross_target_hop_analysis(
    hours: float = Query(24, gt=0),
    min_targets: int = Query(1, ge=1),
    db: Session = Depends(get_db),
):
    """Hops shared across targets, to spot a common upstream problem."""
    hops = queries.cross_target_hop_analysis(db, hours=hours, min_targets=min_targets)
    return {"cross_target_hops": hops, "count": len(hops), "period_hours": hours}


@app.post("/api/hop-stats/flush", response_model=FlushResponse)
def flush_hop_stats():
    """Flush the in-memory hop statistics to the database now."""
    summary = get_scheduler().flush_now()
    return summary.to_dict()


# ============================================================================
# Database Endpoints
# ============================================================================


@app.get("/api/database/status", response_model=DatabaseStatusResponse)
async def database_status(db: Session = Depends(get_db)):
    """Report database connectivity and whether event logging is enabled."""
    runtime = get_runtime_config()
    connected = check_connection(db)
    if runtime.set_persistence_available(connected):
        logger.warning(f"Database availability changed: connected={connected}")

    return DatabaseStatusResponse(
        connected=connected,
        logging_enabled=runtime.logging_enabled,
        timestamp=datetime.utcnow() if connected else None,
        error=None if connected else "Database unreachable",
    )


@app.delete("/api/database/cleanup", response_model=CleanupResponse)
async def cleanup_database(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    """Delete events and hop statistics recorded within a date range."""
    if start_date is None or end_date is None:
        raise HTTPException(status_code=400, detail="start_date and end_date are required")

    try:
        events_deleted, stats_deleted = queries.cleanup_range(db, start_date, end_date)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Cleanup failed: {e}")
        raise HTTPException(status_code=500, detail="Cleanup failed")

    return CleanupResponse(
        success=True,
        events_deleted=events_deleted,
        hop_stats_deleted=stats_deleted,
        message=f"Deleted {events_deleted} events and {stats_deleted} hop statistics records",
    )


@app.post("/api/database/logging", response_model=LoggingToggleResponse)
async def toggle_logging(request: LoggingToggleRequest):
    """Enable or disable anomaly event logging."""
    get_runtime_config().set_logging_enabled(request.enabled)
    state = "enabled" if request.enabled else "disabled"
    logger.info(f"Anomaly event logging {state}")
    return LoggingToggleResponse(
        logging_enabled=request.enabled, message=f"Database logging {state}"
    )


# ============================================================================
# Settings Endpoints
# ============================================================================


@app.get("/api/settings", response_model=AppSettingsResponse)
async def get_settings(db: Session = Depends(get_db)):
    """
    Get application settings.
    Thresholds are the values currently in effect.
    """
    options = get_runtime_config().snapshot()
    return AppSettingsResponse(
        high_latency_threshold_ms=options.high_latency_threshold_ms,
        packet_loss_threshold_pct=options.packet_loss_threshold_pct,
        data_retention_days=int(
            get_setting(db, "data_retention_days", str(settings.data_retention_days))
        ),
    )


@app.put("/api/settings", response_model=AppSettingsResponse)
async def update_settings(settings_data: AppSettings, db: Session = Depends(get_db)):
    """
    Update application settings.
    Changes take effect immediately for new traceroute runs.
    """
    set_setting(db, "high_latency_threshold_ms", str(settings_data.high_latency_threshold_ms))
    set_setting(db, "packet_loss_threshold_pct", str(settings_data.packet_loss_threshold_pct))
    set_setting(db, "data_retention_days", str(settings_data.data_retention_days))
    db.commit()

    # Update runtime config for immediate effect
    get_runtime_config().update_thresholds(
        high_latency_threshold_ms=settings_data.high_latency_threshold_ms,
        packet_loss_threshold_pct=settings_data.packet_loss_threshold_pct,
    )

    return AppSettingsResponse(**settings_data.model_dump())


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "hopwatch-api",
        "version": "1.0.0",
        "persistence_available": get_runtime_config().persistence_available,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
