"""Tests for structured logging."""
from salon_calendar.logging_config import generate_operation_id, get_logger, setup_structured_logging


class TestStructuredLogging:
    """Test structured logging setup and operation ids."""

    def test_setup_configures_structlog(self):
        setup_structured_logging(log_level="INFO")
        logger = get_logger(__name__)

        assert hasattr(logger, 'info')
        assert hasattr(logger, 'error')
        assert hasattr(logger, 'warning')

    def test_logger_methods_work(self):
        setup_structured_logging(log_level="DEBUG")
        logger = get_logger(__name__).bind(operation_id="op-test")

        # These should not raise
        logger.info("appointment_booked", appointment_id=1)
        logger.warning("transition_rejected", status="completed")
        logger.error("commit_failed", error="timeout")

    def test_generate_operation_id_format(self):
        operation_id = generate_operation_id()

        assert operation_id.startswith("op-")
        assert len(operation_id) == 15  # "op-" (3) + 12 hex chars
        int(operation_id[3:], 16)

        assert operation_id != generate_operation_id()
