"""
CTP Configuration
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from typing import List, Optional

from ctp.constants import DEFAULT_FEE_RATE, DUST_LIMIT, MAX_U32, MAX_U64

logger = logging.getLogger(__name__)

NETWORKS = ("mainnet", "chipnet", "testnet4", "regtest")


@dataclass
class NetworkConfig:
    """Network configuration."""
    name: str = "chipnet"
    fee_rate: float = DEFAULT_FEE_RATE
    dust_limit: int = DUST_LIMIT


@dataclass
class TransferConfig:
    """Defaults for a confidential transfer."""
    send_amount: int = 100_000
    rpa_index: int = 0
    funding_value: int = 200_000
    fee_budget: int = 5_000


@dataclass
class CovenantConfig:
    """Covenant template source. None uses the bundled artifact."""
    template_path: Optional[str] = None


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class CTPConfig:
    """
    Complete configuration.

    All settings for running transfers.
    """
    network: NetworkConfig = field(default_factory=NetworkConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    covenant: CovenantConfig = field(default_factory=CovenantConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.network.name not in NETWORKS:
            errors.append(f"Unknown network: {self.network.name}")
        if self.network.fee_rate <= 0:
            errors.append(f"fee_rate must be positive: {self.network.fee_rate}")
        if self.network.dust_limit <= 0:
            errors.append(f"dust_limit must be positive: {self.network.dust_limit}")

        if not self.network.dust_limit <= self.transfer.send_amount <= MAX_U64:
            errors.append(f"send_amount out of range: {self.transfer.send_amount}")
        if not 0 <= self.transfer.rpa_index <= MAX_U32:
            errors.append(f"rpa_index out of range: {self.transfer.rpa_index}")
        if self.transfer.funding_value < self.transfer.send_amount:
            errors.append("funding_value must cover send_amount")

        if self.covenant.template_path and not os.path.exists(self.covenant.template_path):
            errors.append(f"Covenant template not found: {self.covenant.template_path}")

        if self.log.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Invalid log level: {self.log.level}")

        return errors

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return {
            "network": asdict(self.network),
            "transfer": asdict(self.transfer),
            "covenant": asdict(self.covenant),
            "log": asdict(self.log),
        }

    def save(self, path: str) -> None:
        """Save configuration to file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> "CTPConfig":
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        config = cls()

        if "network" in data:
            config.network = NetworkConfig(**data["network"])

        if "transfer" in data:
            config.transfer = TransferConfig(**data["transfer"])

        if "covenant" in data:
            config.covenant = CovenantConfig(**data["covenant"])

        if "log" in data:
            config.log = LogConfig(**data["log"])

        logger.info(f"Configuration loaded from {path}")
        return config

    def apply_env(self, environ: Optional[dict] = None) -> "CTPConfig":
        """Override fields from CTP_* environment variables."""
        env = os.environ if environ is None else environ

        if env.get("CTP_LOG_LEVEL"):
            self.log.level = env["CTP_LOG_LEVEL"]
        if env.get("CTP_SEND_AMOUNT"):
            self.transfer.send_amount = int(env["CTP_SEND_AMOUNT"])
        if env.get("CTP_FEE_RATE"):
            self.network.fee_rate = float(env["CTP_FEE_RATE"])
        if env.get("CTP_TEMPLATE"):
            self.covenant.template_path = env["CTP_TEMPLATE"]
        if env.get("CTP_NETWORK"):
            self.network.name = env["CTP_NETWORK"]

        return self

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "CTPConfig":
        """Defaults overridden by the environment."""
        return cls().apply_env(environ)


def setup_logging(config: LogConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
        force=True,
    )
