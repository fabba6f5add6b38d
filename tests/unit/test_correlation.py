"""
Unit tests for correlation module.
"""

import logging
import uuid

import pytest

from src.utils.correlation import (
    CorrelationContext,
    clear_correlation_id,
    correlation_id_filter,
    extract_correlation_id_from_event,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
    setup_correlation_logging,
)


class TestCorrelationIdGeneration:
    """Test correlation ID generation functions."""

    def test_generate_correlation_id_returns_valid_uuid(self):
        """Test that generated correlation ID is a valid UUID."""
        correlation_id = generate_correlation_id()

        assert isinstance(correlation_id, str)
        assert str(uuid.UUID(correlation_id)) == correlation_id

    def test_generate_correlation_id_returns_unique_values(self):
        assert generate_correlation_id() != generate_correlation_id()


class TestCorrelationIdContext:
    """Test correlation ID context management."""

    def test_get_correlation_id_returns_none_when_not_set(self):
        assert get_correlation_id() is None

    def test_set_and_get_correlation_id(self):
        set_correlation_id("export-123")

        assert get_correlation_id() == "export-123"

    @pytest.mark.parametrize("value", ["", None, 12345])
    def test_set_invalid_correlation_id_raises_error(self, value):
        with pytest.raises(ValueError, match="non-empty string"):
            set_correlation_id(value)

    def test_clear_correlation_id(self):
        set_correlation_id("test-id")

        clear_correlation_id()

        assert get_correlation_id() is None


class TestCorrelationContext:
    """Test CorrelationContext context manager."""

    def test_context_creates_new_id(self):
        with CorrelationContext() as correlation_id:
            assert get_correlation_id() == correlation_id

        assert get_correlation_id() is None

    def test_context_restores_previous_id(self):
        set_correlation_id("original-id")

        with CorrelationContext("nested-id"):
            assert get_correlation_id() == "nested-id"

        assert get_correlation_id() == "original-id"

    def test_context_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with CorrelationContext():
                raise RuntimeError("Test exception")

        assert get_correlation_id() is None


class TestEventCorrelation:
    """Test per-event correlation ID derivation."""

    def test_metadata_correlation_id(self):
        event = {"source": "user", "id": "e1", "metadata": {"correlation_id": "corr-1", "event_id": "evt"}}

        assert extract_correlation_id_from_event(event) == "corr-1"

    def test_metadata_event_id(self):
        event = {"source": "user", "id": "e1", "metadata": {"correlation_id": "  ", "event_id": "evt-9"}}

        assert extract_correlation_id_from_event(event) == "evt-9"

    def test_source_and_id_fallback(self):
        event = {"source": "admin", "id": "a1", "metadata": "not a mapping"}

        assert extract_correlation_id_from_event(event) == "admin:a1"


class TestCorrelationLogging:
    """Test logging integration."""

    def test_correlation_id_filter_when_no_id(self):
        record = logging.LogRecord("test", logging.INFO, "test.py", 1, "msg", (), None)

        assert correlation_id_filter(record) is True
        assert record.correlation_id == "N/A"

    def test_correlation_id_filter_inside_context(self):
        record = logging.LogRecord("test", logging.INFO, "test.py", 1, "msg", (), None)

        with CorrelationContext("ctx-1"):
            correlation_id_filter(record)

        assert record.correlation_id == "ctx-1"

    def test_setup_correlation_logging(self):
        logger = logging.getLogger("test_correlation_logger")
        handler = logging.NullHandler()
        logger.addHandler(handler)

        try:
            setup_correlation_logging(logger)
            setup_correlation_logging(logger)

            assert handler.filters == [correlation_id_filter]
            assert logger.filters == []
        finally:
            logger.removeHandler(handler)

    def test_child_logger_records_get_correlation_id(self):
        """Test records propagated from child loggers are tagged."""
        parent = logging.getLogger("test_correlation_parent")
        child = logging.getLogger("test_correlation_parent.child")
        seen = []
        handler = logging.Handler()
        handler.emit = seen.append
        parent.addHandler(handler)
        parent.setLevel(logging.INFO)

        try:
            setup_correlation_logging(parent)
            with CorrelationContext("ctx-child"):
                child.info("loaded rows")
        finally:
            parent.removeHandler(handler)

        assert [record.correlation_id for record in seen] == ["ctx-child"]
