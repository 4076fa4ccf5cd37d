"""
Logging configuration tests.

File output is JSON lines; context bound with reconciliation_context() shows
up on every event emitted inside the block.
"""
import json
import logging

import pytest

from yieldsync.app.logging_config import LOG_FILE_NAME, configure_logging, get_logger, reconciliation_context


@pytest.fixture
def log_file(tmp_path):
    configure_logging("DEBUG", log_format="json", enable_file_logging=True, log_dir=str(tmp_path))
    yield tmp_path / LOG_FILE_NAME
    configure_logging("INFO")


def _events(path):
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_file_logging_writes_json(log_file):
    get_logger("yieldsync.test.file").info("Asset created", symbol="AAPL")

    events = _events(log_file)
    assert events[-1]["event"] == "Asset created"
    assert events[-1]["symbol"] == "AAPL"
    assert events[-1]["level"] == "INFO"
    assert events[-1]["logger"] == "yieldsync.test.file"
    assert "timestamp" in events[-1]


def test_reconciliation_context_is_merged(log_file):
    logger = get_logger("yieldsync.test.context", provider="mockprov")

    with reconciliation_context(stable_id="bitcoin", operation="refresh"):
        logger.warning("Symbol collision")
    logger.info("Outside")

    inside, outside = _events(log_file)[-2:]
    assert inside["stable_id"] == "bitcoin"
    assert inside["operation"] == "refresh"
    assert inside["provider"] == "mockprov"
    assert inside["level"] == "WARNING"
    assert "stable_id" not in outside


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
