"""
Pytest configuration and fixtures for hopwatch tests.

This module provides reusable test fixtures including database sessions,
runtime configuration, a mocked traceroute runner and sample traceroute
output.
"""
import pytest
import sys
import os
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from hopwatch.config import RuntimeConfig
from hopwatch.database import Base, enable_sqlite_foreign_keys
# Import all models to ensure tables are created
from hopwatch.models import NetworkEvent, EventHop, HopStatistic, IssueType, Settings
from hopwatch.tracer.aggregation import HopStatsBuffer


def _test_engine(name):
    engine = create_engine(
        f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true",
        connect_args={"check_same_thread": False, "uri": True},
        poolclass=StaticPool,
        echo=False,
    )
    enable_sqlite_foreign_keys(engine)
    return engine


@pytest.fixture(scope="function")
def db_engine():
    """
    Create an in-memory SQLite database engine for testing.

    Yields:
        Engine: SQLAlchemy engine connected to in-memory database
    """
    from unittest.mock import patch

    engine = _test_engine("test_db")
    Base.metadata.create_all(bind=engine)

    # Create a session factory that uses the test engine
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch SessionLocal globally so that the scheduler and the flush use the test database
    with patch('hopwatch.database.SessionLocal', TestSessionLocal), \
         patch('hopwatch.scheduler.scheduler.SessionLocal', TestSessionLocal), \
         patch('hopwatch.tracer.aggregation.SessionLocal', TestSessionLocal):
        yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """
    Create a database session for testing.

    Args:
        db_engine: Database engine fixture

    Yields:
        Session: SQLAlchemy session for database operations
    """
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def runtime():
    """Fresh runtime configuration with default thresholds."""
    return RuntimeConfig(
        high_latency_threshold_ms=200.0,
        packet_loss_threshold_pct=3.0,
        logging_enabled=True,
    )


@pytest.fixture
def hop_buffer():
    """Empty hop statistics buffer."""
    return HopStatsBuffer()


@pytest.fixture
def sample_event(db_session):
    """
    Create a sample anomaly event with three hops.

    Returns:
        NetworkEvent: High latency event blamed on hop 2
    """
    event = NetworkEvent(
        timestamp=datetime.utcnow(),
        target="example.com",
        target_ip="93.184.216.34",
        issue_type=IssueType.HIGH_LATENCY,
        total_hops=3,
        problematic_hop=2,
        avg_latency=120.5,
        packet_loss_pct=0.0,
    )
    db_session.add(event)
    db_session.flush()

    db_session.add_all([
        EventHop(event_id=event.id, hop_number=1, ip_address="192.168.1.1",
                 hostname="gateway", latency_ms=1.2, timeout=False, is_problematic=False),
        EventHop(event_id=event.id, hop_number=2, ip_address="10.0.0.1",
                 hostname="core.isp.net", latency_ms=350.0, timeout=False, is_problematic=True),
        EventHop(event_id=event.id, hop_number=3, ip_address="93.184.216.34",
                 hostname="example.com", latency_ms=10.3, timeout=False, is_problematic=False),
    ])
    db_session.commit()
    db_session.refresh(event)
    return event


@pytest.fixture
def sample_traceroute_output():
    """
    Provide sample Linux traceroute output for parser testing.

    Returns:
        str: Output of a run that reached its destination
    """
    return """traceroute to example.com (93.184.216.34), 15 hops max, 60 byte packets
 1  gateway (192.168.1.1)  1.234 ms  1.100 ms  1.050 ms
 2  core.isp.net (10.0.0.1)  12.500 ms  12.100 ms  11.900 ms
 3  * * *
 4  edge.example.net (203.0.113.9)  20.700 ms  21.000 ms  20.900 ms
 5  example.com (93.184.216.34)  25.100 ms  25.300 ms  25.000 ms
"""


@pytest.fixture
def slow_traceroute_output():
    """
    Provide traceroute output with one hop above the latency threshold.

    Returns:
        str: Output of a run whose second hop is slow
    """
    return """traceroute to example.com (93.184.216.34), 15 hops max, 60 byte packets
 1  gateway (192.168.1.1)  1.234 ms  1.100 ms  1.050 ms
 2  core.isp.net (10.0.0.1)  350.000 ms  340.100 ms  360.900 ms
 3  example.com (93.184.216.34)  25.100 ms  25.300 ms  25.000 ms
"""


@pytest.fixture
def mock_runner(mocker, slow_traceroute_output):
    """
    Create a mocked traceroute runner for testing without touching the network.

    Args:
        mocker: Pytest-mock mocker fixture

    Returns:
        Mock: Mocked TracerouteRunner instance
    """
    from hopwatch.tracer.runner import TracerouteRunner

    mock = mocker.Mock(spec=TracerouteRunner)
    mock.system = "Linux"
    mock.run.return_value = slow_traceroute_output
    return mock


@pytest.fixture
def api_client(mock_runner, mocker):
    """
    Create a test client for API endpoint testing.

    Returns:
        TestClient: FastAPI test client
    """
    from fastapi.testclient import TestClient
    from hopwatch import main
    from hopwatch.database import get_db

    engine = _test_engine("test_api_db")
    Base.metadata.create_all(bind=engine)
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Isolate runtime state, buffer and scheduler from other tests
    runtime = RuntimeConfig()
    buffer = HopStatsBuffer()
    mocker.patch("hopwatch.config._runtime_config", runtime)
    mocker.patch("hopwatch.tracer.aggregation._hop_stats_buffer", buffer)
    mocker.patch("hopwatch.scheduler.scheduler._scheduler_service", None)
    mocker.patch("hopwatch.scheduler.scheduler.SessionLocal", TestSessionLocal)

    def override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[main.get_runner] = lambda: mock_runner

    client = TestClient(main.app)
    client.session_factory = TestSessionLocal
    client.runtime = runtime
    client.buffer = buffer
    try:
        yield client
    finally:
        # Clean up
        main.app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
