"""
RingCT Wallet Engine Configuration
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from typing import List, Mapping, Optional

from ringct.constants import (
    DEFAULT_FEE_PER_KB,
    DEFAULT_KEY_IMAGE_BATCH_SIZE,
    DEFAULT_NODE_URL,
    DEFAULT_RING_SIZE,
    DEFAULT_RPC_TIMEOUT_SEC,
    MAX_KEY_IMAGE_BATCH_SIZE,
    MAX_RING_SIZE,
    MIN_RING_SIZE,
    WATCH_ONLY_PAGE_SIZE,
)

logger = logging.getLogger(__name__)

ENV_NODE_URL = "VEIL_NODE_URL"
ENV_NODE_USERNAME = "VEIL_NODE_USERNAME"
ENV_NODE_PASSWORD = "VEIL_NODE_PASSWORD"


@dataclass
class RpcConfig:
    """Node RPC connection."""
    url: str = DEFAULT_NODE_URL
    username: str = ""
    password: str = ""
    timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC

    def __repr__(self) -> str:
        return f"RpcConfig(url={self.url!r}, username={self.username!r}, timeout_sec={self.timeout_sec})"


@dataclass
class BuilderConfig:
    """Transaction building defaults."""
    ring_size: int = DEFAULT_RING_SIZE
    fee_per_kb: int = DEFAULT_FEE_PER_KB
    subtract_fee_from_outputs: bool = False


@dataclass
class ScanConfig:
    """Watch-only scanning."""
    page_size: int = WATCH_ONLY_PAGE_SIZE
    key_image_batch_size: int = DEFAULT_KEY_IMAGE_BATCH_SIZE


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class EngineConfig:
    """
    Complete engine configuration.

    Passed explicitly to the RPC client, builder and engine.
    """
    rpc: RpcConfig = field(default_factory=RpcConfig)
    builder: BuilderConfig = field(default_factory=BuilderConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        # RPC
        if not self.rpc.url.startswith(("http://", "https://")):
            errors.append(f"RPC url must be http(s): {self.rpc.url}")
        if self.rpc.timeout_sec <= 0:
            errors.append("timeout_sec must be positive")

        # Builder
        if not MIN_RING_SIZE <= self.builder.ring_size <= MAX_RING_SIZE:
            errors.append(
                f"ring_size must be between {MIN_RING_SIZE} and {MAX_RING_SIZE}, "
                f"got {self.builder.ring_size}"
            )
        if self.builder.fee_per_kb < 0:
            errors.append("fee_per_kb cannot be negative")

        # Scanning
        if self.scan.page_size < 1:
            errors.append("page_size must be at least 1")
        if not 1 <= self.scan.key_image_batch_size <= MAX_KEY_IMAGE_BATCH_SIZE:
            errors.append(
                f"key_image_batch_size must be between 1 and {MAX_KEY_IMAGE_BATCH_SIZE}"
            )

        return errors

    def to_dict(self) -> dict:
        """Export configuration as dictionary. The RPC password is left out."""
        rpc = asdict(self.rpc)
        del rpc["password"]
        return {
            "rpc": rpc,
            "builder": asdict(self.builder),
            "scan": asdict(self.scan),
            "log": asdict(self.log),
        }

    def save(self, path: str) -> None:
        """Save configuration to file. Credentials come from the environment, not the file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> "EngineConfig":
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        config = cls()

        if "rpc" in data:
            config.rpc = RpcConfig(**data["rpc"])

        if "builder" in data:
            config.builder = BuilderConfig(**data["builder"])

        if "scan" in data:
            config.scan = ScanConfig(**data["scan"])

        if "log" in data:
            config.log = LogConfig(**data["log"])

        logger.info(f"Configuration loaded from {path}")
        return config

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Default configuration with node credentials taken from the environment."""
        env = os.environ if environ is None else environ
        config = cls()
        config.rpc.url = env.get(ENV_NODE_URL) or DEFAULT_NODE_URL
        config.rpc.username = env.get(ENV_NODE_USERNAME, "")
        config.rpc.password = env.get(ENV_NODE_PASSWORD, "")
        return config


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
    )
