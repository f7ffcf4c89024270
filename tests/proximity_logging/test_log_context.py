"""Tests for logging context managers."""

import logging

import pytest

from proximity_logging import ContextFilter, LogContext, log_context, log_landmark_context


@pytest.fixture
def logger():
    logger = logging.getLogger("test.proximity_context")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def captured_records(logger):
    """Capture log records passed through a ContextFilter."""
    records: list[logging.LogRecord] = []

    class RecordCapture(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    handler = RecordCapture()
    handler.addFilter(ContextFilter())
    logger.addHandler(handler)
    yield records
    logger.removeHandler(handler)


@pytest.mark.unit
class TestLogContext:
    def test_adds_fields_to_records(self, logger, captured_records):
        with log_context(session_id="tour-1"):
            logger.info("inside")

        assert captured_records[0].session_id == "tour-1"

    def test_fields_cleared_on_exit(self, logger, captured_records):
        with log_context(session_id="tour-1"):
            logger.info("inside")
        logger.info("outside")

        assert not hasattr(captured_records[1], "session_id")
        assert LogContext.get() == {}

    def test_nested_blocks_restore_outer_value(self, logger, captured_records):
        with log_context(session_id="outer"):
            with log_context(session_id="inner"):
                logger.info("nested")
            logger.info("after nested")

        assert [r.session_id for r in captured_records] == ["inner", "outer"]

    def test_explicit_extra_wins_over_context(self, logger, captured_records):
        with log_context(session_id="context"):
            logger.info("explicit", extra={"session_id": "explicit"})

        assert captured_records[0].session_id == "explicit"


@pytest.mark.unit
class TestLogLandmarkContext:
    def test_sets_landmark_and_correlation_id(self, logger, captured_records):
        with log_landmark_context("top-zocalo"):
            logger.info("entered")

        record = captured_records[0]
        assert record.landmark_id == "top-zocalo"
        assert record.correlation_id == "top-zocalo"

    def test_custom_correlation_id(self, logger, captured_records):
        with log_landmark_context("top-zocalo", correlation_id="visit-7"):
            logger.info("entered")

        assert captured_records[0].correlation_id == "visit-7"

    def test_keeps_session_context(self, logger, captured_records):
        with log_context(session_id="tour-1"):
            with log_landmark_context("top-zocalo"):
                logger.info("entered")
            logger.info("left")

        assert captured_records[0].session_id == "tour-1"
        assert captured_records[1].session_id == "tour-1"
        assert not hasattr(captured_records[1], "landmark_id")
