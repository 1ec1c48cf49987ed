"""
Tests for configuration and structured logging
"""

import json
import logging
import sys

import pytest

from finance_ledger.config import DEFAULT_JWT_SECRET, LedgerConfig, reload_config
from finance_ledger.logging_config import JSONFormatter, log_action, setup_logging


class TestLedgerConfig:
    """Test environment driven configuration"""

    @pytest.fixture(autouse=True)
    def reset_config(self):
        yield
        reload_config()

    def test_defaults(self, monkeypatch):
        for name in ("LEDGER_DATABASE_URL", "LEDGER_JWT_SECRET", "LEDGER_API_PORT",
                     "LEDGER_AUTH_ENABLED", "LEDGER_INITIAL_BALANCE"):
            monkeypatch.delenv(name, raising=False)

        config = LedgerConfig(_env_file=None)

        assert config.api_port == 5000
        assert config.initial_balance == "1000.00"
        assert config.auth_enabled
        assert config.uses_default_secret

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DATABASE_URL", "memory://")
        monkeypatch.setenv("LEDGER_JWT_SECRET", "from-environment")
        monkeypatch.setenv("LEDGER_AUTH_ENABLED", "false")
        monkeypatch.setenv("LEDGER_ADMIN_EMAILS", " Root@Example.com , ops@example.com,")

        config = reload_config()

        assert config.database_url == "memory://"
        assert config.jwt_secret == "from-environment"
        assert not config.uses_default_secret
        assert not config.auth_enabled
        assert config.admin_email_list == ["root@example.com", "ops@example.com"]

    def test_cors_origin_list(self):
        config = LedgerConfig(cors_origins="https://a.example, https://b.example")
        assert config.cors_origin_list == ["https://a.example", "https://b.example"]

    def test_default_secret_constant(self):
        assert LedgerConfig(jwt_secret=DEFAULT_JWT_SECRET).uses_default_secret


class TestStructuredLogging:
    """Test JSON log output"""

    def test_json_formatter_includes_structured_fields(self):
        record = logging.LogRecord("finance_ledger.test", logging.INFO, __file__, 1,
                                   "Transfer posted", None, None)
        record.user_id = "a@example.com"
        record.action = "transfer"
        record.extra = {"amount": "200.00"}

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Transfer posted"
        assert entry["level"] == "INFO"
        assert entry["user_id"] == "a@example.com"
        assert entry["action"] == "transfer"
        assert entry["extra"] == {"amount": "200.00"}
        assert "resource" not in entry

    def test_log_action_through_handler(self, tmp_path):
        log_file = tmp_path / "ledger.log"
        logger = setup_logging(level="DEBUG", log_file=str(log_file), logger_name="finance_ledger_test")

        log_action(logger, "warning", "Balance overridden", user_id="admin@example.com",
                   action="set_balance", resource="account")
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["level"] == "WARNING"
        assert entry["action"] == "set_balance"
        assert entry["resource"] == "account"

    def test_exception_is_attached(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("finance_ledger.test", logging.ERROR, __file__, 1,
                                       "failed", None, sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]
