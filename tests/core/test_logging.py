"""Tests for structured logging."""

import json
import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from semindex.config.models import LoggingConfig, LogOutputConfig
from semindex.core.logging import configure_logging, get_operation_id, set_operation_id


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestOperationId:
    def test_given_operation_id_when_set_then_can_retrieve(self) -> None:
        result = set_operation_id("index-123")

        assert result == "index-123"
        assert get_operation_id() == "index-123"

    def test_given_no_id_when_set_then_generates_one(self) -> None:
        first = set_operation_id()
        second = set_operation_id()

        assert len(first) == 12
        assert first != second
        assert get_operation_id() == second


class TestConfigureLogging:
    def test_given_file_output_when_log_then_json_lines_written(self, tmp_path: Path) -> None:
        """JSON output carries event, fields, level, timestamp and operation id."""
        log_file = tmp_path / "nested" / "semindex.log"
        configure_logging(
            config=LoggingConfig(outputs=[LogOutputConfig(format="json", destination=str(log_file))])
        )
        set_operation_id("op-1")

        structlog.get_logger().info("index.pass_submitted", files_changed=3)

        data = read_events(log_file)[-1]
        assert data["event"] == "index.pass_submitted"
        assert data["files_changed"] == 3
        assert data["level"] == "info"
        assert data["operation_id"] == "op-1"
        assert "timestamp" in data

    def test_given_multi_output_config_when_configure_then_levels_apply_per_output(
        self, tmp_path: Path
    ) -> None:
        """Each output filters at its own level, inheriting the root level."""
        debug_file = tmp_path / "debug.log"
        info_file = tmp_path / "info.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[
                LogOutputConfig(format="json", destination=str(info_file), level="INFO"),
                LogOutputConfig(format="json", destination=str(debug_file)),
            ],
        )

        configure_logging(config=config)
        logger = structlog.get_logger()
        logger.debug("index.file_committed")
        logger.info("search.completed")

        assert [e["event"] for e in read_events(info_file)] == ["search.completed"]
        assert [e["event"] for e in read_events(debug_file)] == [
            "index.file_committed",
            "search.completed",
        ]

    def test_given_level_override_then_every_output_uses_it(self, tmp_path: Path) -> None:
        log_file = tmp_path / "semindex.log"
        config = LoggingConfig(
            level="WARNING",
            outputs=[LogOutputConfig(format="json", destination=str(log_file), level="ERROR")],
        )

        configure_logging(config=config, level="DEBUG")
        structlog.get_logger().debug("embedding.batch_planned")

        assert [e["event"] for e in read_events(log_file)] == ["embedding.batch_planned"]
        assert config.level == "WARNING"

    def test_given_reconfigure_then_previous_handlers_are_replaced(self, tmp_path: Path) -> None:
        first = tmp_path / "first.log"
        second = tmp_path / "second.log"
        configure_logging(config=LoggingConfig(outputs=[LogOutputConfig(destination=str(first))]))
        configure_logging(config=LoggingConfig(outputs=[LogOutputConfig(destination=str(second))]))

        structlog.get_logger().warning("search.dimension_mismatch")

        assert len(logging.getLogger().handlers) == 1
        assert first.read_text() == ""
        assert "search.dimension_mismatch" in second.read_text()

    def test_given_no_config_then_single_console_handler(self) -> None:
        configure_logging(json_format=True)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert logging.getLogger("fastembed").level == logging.WARNING
