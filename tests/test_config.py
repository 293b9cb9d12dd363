"""
CTP Configuration Tests
"""

import logging

from ctp.config import CTPConfig, LogConfig, setup_logging


class TestConfig:
    """Tests for CTPConfig."""

    def test_defaults_valid(self):
        config = CTPConfig()
        assert config.validate() == []
        assert config.transfer.send_amount == 100_000
        assert config.network.name == "chipnet"

    def test_invalid_values(self):
        config = CTPConfig()
        config.network.name = "moonnet"
        config.network.fee_rate = 0
        config.transfer.send_amount = 100
        config.log.level = "LOUD"
        errors = config.validate()
        assert len(errors) == 4

    def test_funding_must_cover_amount(self):
        config = CTPConfig()
        config.transfer.send_amount = 300_000
        assert any("funding_value" in e for e in config.validate())

    def test_missing_template(self, tmp_path):
        config = CTPConfig()
        config.covenant.template_path = str(tmp_path / "missing.json")
        assert any("template" in e for e in config.validate())

    def test_save_load(self, tmp_path):
        path = str(tmp_path / "ctp.json")
        config = CTPConfig()
        config.transfer.send_amount = 42_000
        config.network.fee_rate = 2.5
        config.save(path)
        loaded = CTPConfig.load(path)
        assert loaded.to_dict() == config.to_dict()

    def test_environment_overrides(self):
        config = CTPConfig.from_env({
            "CTP_LOG_LEVEL": "DEBUG",
            "CTP_SEND_AMOUNT": "5000",
            "CTP_FEE_RATE": "1.5",
            "CTP_NETWORK": "regtest",
        })
        assert config.log.level == "DEBUG"
        assert config.transfer.send_amount == 5000
        assert config.network.fee_rate == 1.5
        assert config.network.name == "regtest"

    def test_empty_environment(self):
        assert CTPConfig.from_env({}).to_dict() == CTPConfig().to_dict()

    def test_setup_logging(self, tmp_path):
        log_file = tmp_path / "ctp.log"
        setup_logging(LogConfig(level="DEBUG", file=str(log_file)))
        logging.getLogger("ctp.test").debug("hello")
        assert logging.getLogger().level == logging.DEBUG
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in log_file.read_text()
