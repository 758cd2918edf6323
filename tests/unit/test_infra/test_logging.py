"""Tests for lazy logging, the JSON formatter and logging setup."""

from __future__ import annotations

from collections.abc import Iterator
import json
import logging
from pathlib import Path
import sys
from unittest.mock import MagicMock

import pytest

from nested_tree.core.settings import LoggingSettings
from nested_tree.infra.logging import JSONFormatter, configure_logging, get_lazy_logger, setup_logging
from nested_tree.infra.logging import config as logging_config


@pytest.fixture
def restore_root_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[logging.Logger]:
    """Undo dictConfig changes to the root logger after the test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    monkeypatch.setattr(logging_config, "_LOGGING_INITIALIZED", False)
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    logging.captureWarnings(False)


def make_record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("nested_tree.repair", logging.INFO, __file__, 10, "Tree %s", ("repaired",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLazyLogger:
    def test_callable_not_evaluated_when_disabled(self) -> None:
        logger = get_lazy_logger("nested_tree.test.lazy_disabled")
        logger.logger.setLevel(logging.INFO)
        message = MagicMock(return_value="expensive")

        logger.debug(message)

        message.assert_not_called()

    def test_callable_evaluated_when_enabled(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_lazy_logger("nested_tree.test.lazy_enabled")

        with caplog.at_level(logging.DEBUG, logger="nested_tree.test.lazy_enabled"):
            logger.debug(lambda: "shift root=1", extra={"delta": 2})

        assert caplog.records[-1].getMessage() == "shift root=1"
        assert caplog.records[-1].delta == 2

    def test_callable_args_are_evaluated(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_lazy_logger("nested_tree.test.lazy_args")

        with caplog.at_level(logging.INFO, logger="nested_tree.test.lazy_args"):
            logger.info("moved %s rows", lambda: 4)

        assert caplog.records[-1].getMessage() == "moved 4 rows"

    def test_bound_context_merges_with_extra(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_lazy_logger("nested_tree.test.lazy_context", table="categories")

        with caplog.at_level(logging.INFO, logger="nested_tree.test.lazy_context"):
            logger.info("Tree repaired", extra={"gaps_closed": 1})

        record = caplog.records[-1]
        assert (record.table, record.gaps_closed) == ("categories", 1)


@pytest.mark.unit
class TestJSONFormatter:
    def test_standard_fields(self) -> None:
        payload = json.loads(JSONFormatter().format(make_record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "nested_tree.repair"
        assert payload["message"] == "Tree repaired"
        assert payload["timestamp"].endswith("Z")

    def test_extras_and_static_fields(self) -> None:
        formatter = JSONFormatter(static={"service": "nested-tree"})

        payload = json.loads(formatter.format(make_record(root=3, gaps_closed=2)))

        assert payload["service"] == "nested-tree"
        assert (payload["root"], payload["gaps_closed"]) == (3, 2)
        assert "args" not in payload

    def test_exception_stays_on_one_line(self) -> None:
        try:
            raise ValueError("broken interval")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        output = JSONFormatter().format(record)

        assert "\n" not in output
        assert "broken interval" in json.loads(output)["exception"]

    def test_non_serializable_extra_uses_str(self) -> None:
        payload = json.loads(JSONFormatter().format(make_record(path=Path("/tmp/tree.log"))))

        assert payload["path"] == "/tmp/tree.log"


@pytest.mark.unit
class TestSetupLogging:
    def test_configure_json_file_logging(self, restore_root_logger: logging.Logger, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "tree.log"

        configure_logging(log_level="debug", json_logs=True, console_enabled=False, file_path=log_file)
        logging.getLogger("nested_tree.test.setup").info("Tree rebuilt", extra={"passes": 2})
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert restore_root_logger.level == logging.DEBUG
        lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        record = next(line for line in lines if line["message"] == "Tree rebuilt")
        assert (record["passes"], record["service"]) == (2, "nested-tree")

    def test_setup_runs_once(self, restore_root_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch) -> None:
        configure = MagicMock()
        monkeypatch.setattr(logging_config, "configure_logging", configure)
        settings = LoggingSettings(level="WARNING", console_enabled=False)

        setup_logging(settings)
        setup_logging(settings)

        configure.assert_called_once()
        assert configure.call_args.kwargs["log_level"] == "WARNING"

    def test_setup_force_and_overrides(
        self, restore_root_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        configure = MagicMock()
        monkeypatch.setattr(logging_config, "configure_logging", configure)
        settings = LoggingSettings(console_enabled=False)

        setup_logging(settings)
        setup_logging(settings, force=True, json_logs=True)

        assert configure.call_count == 2
        assert configure.call_args.kwargs["json_logs"] is True
