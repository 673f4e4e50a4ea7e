"""
Unit tests for queue-based logging.
"""

import logging
from pathlib import Path

from meshlink.telemetry.logger import QUIET_LOGGERS, AsyncLogger, setup_logging


class TestAsyncLogger:
    """Tests for AsyncLogger."""

    def test_writes_through_queue(self, tmp_path: Path) -> None:
        """Test records reach the file once the listener is stopped."""
        log_file = tmp_path / "logs" / "meshlink.log"

        with AsyncLogger("meshlink.test.queue", level=logging.INFO, log_file=log_file) as async_logger:
            assert async_logger.is_running
            async_logger.logger.info("Discovery applied 3 endpoints")
            async_logger.logger.debug("below threshold")

        assert not async_logger.is_running
        content = log_file.read_text()
        assert "| INFO     | -          | meshlink.test.queue | Discovery applied 3 endpoints" in content
        assert "below threshold" not in content

    def test_records_stamped_with_active_endpoint(self, tmp_path: Path) -> None:
        """Test lines name the endpoint that was active when they were logged."""
        log_file = tmp_path / "meshlink.log"

        with AsyncLogger("meshlink.test.stamp", log_file=log_file) as async_logger:
            async_logger.bind_endpoint("osaka")
            async_logger.logger.info("before failover")
            async_logger.bind_endpoint("seoul")
            async_logger.logger.info("after failover")

        lines = log_file.read_text().splitlines()
        assert "| osaka      | meshlink.test.stamp | before failover" in lines[0]
        assert "| seoul      | meshlink.test.stamp | after failover" in lines[1]
        assert async_logger.endpoint_id == "seoul"

    def test_explicit_endpoint_kept(self, tmp_path: Path) -> None:
        """Test a record naming its own endpoint is not overwritten."""
        log_file = tmp_path / "meshlink.log"

        with AsyncLogger("meshlink.test.extra", log_file=log_file) as async_logger:
            async_logger.bind_endpoint("osaka")
            async_logger.logger.warning("health check timed out", extra={"endpoint": "nyc"})

        assert "| nyc        | meshlink.test.extra | health check timed out" in log_file.read_text()

    def test_stop_detaches_handler(self) -> None:
        """Test stop removes the queue handler from the logger."""
        async_logger = AsyncLogger("meshlink.test.detach")
        async_logger.start()
        async_logger.stop()

        assert async_logger.logger.handlers == []


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_quiets_client_loggers(self) -> None:
        """Test the HTTP client and loop loggers are raised to WARNING."""
        async_logger = setup_logging(level="DEBUG")
        try:
            assert async_logger.logger.name == "meshlink"
            assert async_logger.logger.level == logging.DEBUG
            for name in QUIET_LOGGERS:
                assert logging.getLogger(name).level == logging.WARNING
        finally:
            async_logger.stop()
