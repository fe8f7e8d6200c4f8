"""Tests for allocator settings and logging setup."""

import pytest

from kohakunet.config import AllocatorConfig
from kohakunet.models.enums import LogLevel
from kohakunet.utils.logger import configure_logging, format_traceback, get_logger


class TestLoadEnv:
    def test_defaults_without_env(self):
        cfg = AllocatorConfig().load_env({})
        assert cfg.LEASE_TTL_SECONDS == 86400
        assert cfg.ACQUIRE_MAX_TRIES == 30
        assert cfg.LOG_LEVEL == LogLevel.INFO

    def test_overrides_are_typed(self):
        cfg = AllocatorConfig().load_env(
            {
                "KOHAKUNET_LEASE_TTL_SECONDS": "120",
                "KOHAKUNET_RENEW_RETRY_SECONDS": "0.5",
                "KOHAKUNET_LOG_LEVEL": "DEBUG",
                "KOHAKUNET_DB_FILE": "/tmp/leases.db",
                "UNRELATED": "1",
            }
        )
        assert cfg.LEASE_TTL_SECONDS == 120
        assert cfg.RENEW_RETRY_SECONDS == 0.5
        assert cfg.LOG_LEVEL == LogLevel.DEBUG
        assert cfg.DB_FILE == "/tmp/leases.db"

    def test_bad_value(self):
        with pytest.raises(ValueError):
            AllocatorConfig().load_env({"KOHAKUNET_ACQUIRE_MAX_TRIES": "many"})


class TestLogging:
    def test_file_sink(self, tmp_path):
        log_file = tmp_path / "kohakunet.log"
        configure_logging(LogLevel.DEBUG, str(log_file))
        try:
            get_logger("tests.settings").debug("lease acquired")
        finally:
            # Flushes the enqueued file sink and restores the default sink
            configure_logging(LogLevel.INFO)

        text = log_file.read_text()
        assert "lease acquired" in text
        assert "tests.settings" in text

    def test_format_traceback(self):
        try:
            raise RuntimeError("registry unavailable")
        except RuntimeError as e:
            text = format_traceback(e)
        assert "RuntimeError: registry unavailable" in text
        assert "Traceback" in text
