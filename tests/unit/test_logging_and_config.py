"""Unit tests for logging helpers and settings normalization."""

from __future__ import annotations

import json
import logging

from brandrr.config import Settings
from brandrr.core.logging import JSONExtrasFormatter, get_job_logger


def test_formatter_appends_extras_as_json() -> None:
    record = logging.LogRecord("brandrr.test", logging.INFO, __file__, 1, "Job started", None, None)
    record.job_id = "J1"
    record.input_count = 2

    line = JSONExtrasFormatter().format(record)

    message, _, extras = line.partition("Job started ")
    assert "| INFO" in message
    assert json.loads(extras) == {"job_id": "J1", "input_count": 2}


def test_job_logger_binds_job_id(caplog) -> None:  # type: ignore[no-untyped-def]
    logger = logging.getLogger("brandrr.tests.job")
    job_logger = get_job_logger(logger, "J9")

    with caplog.at_level(logging.INFO, logger="brandrr.tests.job"):
        job_logger.info("Input branded", extra={"input_index": 0})

    record = caplog.records[-1]
    assert record.job_id == "J9"
    assert record.input_index == 0


def test_settings_normalize_urls_and_log_level() -> None:
    configured = Settings(
        emoji_cdn_base_url="https://cdn.example/72x72/",
        log_level="debug",
        brandrr_internal_key="secret",
    )

    assert configured.emoji_cdn_base_url == "https://cdn.example/72x72"
    assert configured.log_level == "DEBUG"
    assert configured.internal_callback_key == "secret"
    assert configured.callback_auth_enabled
