"""
Unit tests for the traceroute pipeline and the traceroute runner.

Tests the parse, aggregate, classify and log flow, the logging gates and
how the runner builds and executes commands.
"""
import subprocess

import pytest
from sqlalchemy.exc import OperationalError

from hopwatch.models import EventHop, NetworkEvent
from hopwatch.tracer.pipeline import LoggingStatus, TraceroutePipeline
from hopwatch.tracer.runner import (
    InvalidTargetError,
    TracerouteError,
    TracerouteRunner,
    TracerouteTimeoutError,
    validate_target,
)


class TestTraceroutePipeline:
    """Tests for processing traceroute output."""

    @pytest.fixture
    def pipeline(self, db_session, mock_runner, hop_buffer, runtime):
        return TraceroutePipeline(db_session, runner=mock_runner, buffer=hop_buffer, runtime=runtime)

    def test_clean_run_not_logged(self, pipeline, db_session, hop_buffer, sample_traceroute_output):
        """Test that a healthy run only feeds the hop statistics."""
        result = pipeline.process("example.com", sample_traceroute_output)

        assert result.logging_status == LoggingStatus.NOT_ANOMALOUS
        assert result.event_id is None
        assert len(result.hops) == 5
        assert len(hop_buffer) == 4  # anonymous hop 3 is not aggregated
        assert db_session.query(NetworkEvent).count() == 0

    def test_anomalous_run_logged(self, pipeline, db_session, hop_buffer, slow_traceroute_output):
        result = pipeline.process("example.com", slow_traceroute_output)

        assert result.logging_status == LoggingStatus.LOGGED
        assert result.event_id is not None
        assert result.hops_logged == 3
        assert len(hop_buffer) == 3

        event = db_session.query(NetworkEvent).one()
        assert event.target == "example.com"
        assert event.target_ip == "93.184.216.34"
        assert event.problematic_hop == 2
        assert event.issue_type.value == "high_latency"
        assert db_session.query(EventHop).filter_by(is_problematic=True).one().hop_number == 2

    def test_logging_disabled(self, pipeline, db_session, hop_buffer, runtime, slow_traceroute_output):
        """Test that disabled logging still aggregates hop statistics."""
        runtime.set_logging_enabled(False)

        result = pipeline.process("example.com", slow_traceroute_output)

        assert result.logging_status == LoggingStatus.DISABLED
        assert result.classification.is_anomalous
        assert len(hop_buffer) == 3
        assert db_session.query(NetworkEvent).count() == 0

    def test_persistence_unavailable(self, pipeline, db_session, runtime, slow_traceroute_output):
        runtime.set_persistence_available(False)

        result = pipeline.process("example.com", slow_traceroute_output)

        assert result.logging_status == LoggingStatus.UNAVAILABLE
        assert db_session.query(NetworkEvent).count() == 0

    def test_write_failure_does_not_fail_run(self, pipeline, mocker, slow_traceroute_output):
        """Test that a failed event write is reported, not raised."""
        mocker.patch(
            "hopwatch.tracer.pipeline.record_anomaly_event",
            side_effect=OperationalError("INSERT", {}, Exception("database is locked")),
        )

        result = pipeline.process("example.com", slow_traceroute_output)

        assert result.logging_status == LoggingStatus.FAILED
        assert "database is locked" in result.logging_error
        assert result.event_id is None

    def test_runtime_thresholds_apply(self, pipeline, runtime, slow_traceroute_output):
        runtime.update_thresholds(high_latency_threshold_ms=500.0)

        result = pipeline.process("example.com", slow_traceroute_output)

        assert result.logging_status == LoggingStatus.NOT_ANOMALOUS

    def test_run_sets_platform(self, pipeline, mock_runner):
        result = pipeline.run("example.com")

        mock_runner.run.assert_called_once_with("example.com")
        assert result.platform == "Linux"

    def test_to_dict(self, pipeline, slow_traceroute_output):
        data = pipeline.process("example.com", slow_traceroute_output).to_dict()

        assert data["target"] == "example.com"
        assert data["issue_type"] == "high_latency"
        assert data["problematic_hop"] == 2
        assert data["reached_destination"] is True
        assert data["anomalies"][0] == {
            "type": "high_latency",
            "hop": 2,
            "value": 350.0,
            "threshold": 200.0,
        }
        assert data["hops"][1]["hostname"] == "core.isp.net"


class TestValidateTarget:
    """Tests for target validation."""

    @pytest.mark.parametrize("target", ["example.com", "8.8.8.8", " host-1.example.org "])
    def test_valid_targets(self, target):
        assert validate_target(target) == target.strip()

    @pytest.mark.parametrize(
        "target", ["", "   ", "-n", "example.com; rm -rf /", "a b", "$(reboot)", "x" * 254]
    )
    def test_invalid_targets(self, target):
        with pytest.raises(InvalidTargetError):
            validate_target(target)


class TestTracerouteRunner:
    """Tests for the traceroute command runner."""

    def test_linux_command(self):
        runner = TracerouteRunner(max_hops=15, wait_seconds=2, system="Linux")
        assert runner.build_command("example.com") == [
            "traceroute", "-m", "15", "-w", "2", "example.com"
        ]

    def test_windows_command(self):
        runner = TracerouteRunner(max_hops=10, wait_seconds=3, system="Windows")
        assert runner.build_command("example.com") == [
            "tracert", "-h", "10", "-w", "3000", "example.com"
        ]

    def test_unsupported_platform(self):
        with pytest.raises(TracerouteError):
            TracerouteRunner(system="Plan9").build_command("example.com")

    def test_run_returns_stdout(self, mocker):
        mock_run = mocker.patch("hopwatch.tracer.runner.subprocess.run")
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="out", stderr="")

        output = TracerouteRunner(system="Linux", timeout_seconds=60).run("example.com")

        assert output == "out"
        assert mock_run.call_args.kwargs["timeout"] == 60

    def test_missing_command(self, mocker):
        mocker.patch("hopwatch.tracer.runner.subprocess.run", side_effect=FileNotFoundError())
        with pytest.raises(TracerouteError, match="not found"):
            TracerouteRunner(system="Linux").run("example.com")

    def test_timeout(self, mocker):
        mocker.patch(
            "hopwatch.tracer.runner.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="traceroute", timeout=60),
        )
        with pytest.raises(TracerouteTimeoutError):
            TracerouteRunner(system="Linux").run("example.com")

    def test_stderr_only(self, mocker):
        mock_run = mocker.patch("hopwatch.tracer.runner.subprocess.run")
        mock_run.return_value = subprocess.CompletedProcess(
            [], 2, stdout="", stderr="unknown host\n"
        )
        with pytest.raises(TracerouteError, match="unknown host"):
            TracerouteRunner(system="Linux").run("nope.invalid")

    def test_invalid_target_not_executed(self, mocker):
        mock_run = mocker.patch("hopwatch.tracer.runner.subprocess.run")
        with pytest.raises(InvalidTargetError):
            TracerouteRunner(system="Linux").run("a;b")
        mock_run.assert_not_called()
