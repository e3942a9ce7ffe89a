"""
Bifrost Schedule Configuration

Loaded from the config.toml [schedule] section. Environment variables
override TOML values.

Environment variable mapping:
    [schedule] slots_per_epoch → BIFROST_SLOTS_PER_EPOCH
    [schedule] retention       → BIFROST_SCHEDULE_RETENTION
    [schedule] wait_timeout    → BIFROST_WAIT_TIMEOUT
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    DEFAULT_SCHEDULE_RETENTION,
    DEFAULT_SLOTS_PER_EPOCH,
    NUM_CONSECUTIVE_LEADER_SLOTS,
)
from ..exceptions import ConfigurationError


@dataclass
class ScheduleConfig:
    """
    Leader schedule configuration.

    Loaded from config.toml [schedule] section.
    """

    # Slots per epoch (mainnet 432,000; comes from the cluster epoch schedule)
    slots_per_epoch: int = DEFAULT_SLOTS_PER_EPOCH

    # Consecutive slots per leader draw
    leader_slot_span: int = NUM_CONSECUTIVE_LEADER_SLOTS

    # Built epochs retained by the cache
    retention: int = DEFAULT_SCHEDULE_RETENTION

    # Seconds a caller waits on another caller's build (None = no limit)
    wait_timeout: Optional[float] = None

    # Count delinquent vote accounts when deriving stakes
    include_delinquent: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleConfig":
        """Create from dictionary."""
        wait_timeout = data.get("wait_timeout")
        return cls(
            slots_per_epoch=int(data.get("slots_per_epoch", DEFAULT_SLOTS_PER_EPOCH)),
            leader_slot_span=int(data.get("leader_slot_span", NUM_CONSECUTIVE_LEADER_SLOTS)),
            retention=int(data.get("retention", DEFAULT_SCHEDULE_RETENTION)),
            wait_timeout=float(wait_timeout) if wait_timeout is not None else None,
            include_delinquent=bool(data.get("include_delinquent", False)),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "ScheduleConfig":
        """
        Load configuration from TOML file.

        A missing file yields the defaults; environment overrides apply
        either way.

        Args:
            config_path: Path to config.toml

        Returns:
            ScheduleConfig instance
        """
        path = Path(config_path)

        if path.exists():
            try:
                with open(path, "rb") as f:
                    config_data = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e
            config = cls.from_dict(config_data.get("schedule", {}))
        else:
            config = cls()

        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Override from environment variables."""
        try:
            if v := os.environ.get("BIFROST_SLOTS_PER_EPOCH"):
                self.slots_per_epoch = int(v)
            if v := os.environ.get("BIFROST_SCHEDULE_RETENTION"):
                self.retention = int(v)
            if v := os.environ.get("BIFROST_WAIT_TIMEOUT"):
                self.wait_timeout = float(v)
        except ValueError as e:
            raise ConfigurationError(f"Invalid schedule environment override: {e}") from e

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.slots_per_epoch <= 0:
            raise ConfigurationError("slots_per_epoch must be positive")
        if self.leader_slot_span < 1:
            raise ConfigurationError("leader_slot_span must be at least 1")
        if self.leader_slot_span != NUM_CONSECUTIVE_LEADER_SLOTS:
            raise ConfigurationError(
                f"leader_slot_span is fixed at {NUM_CONSECUTIVE_LEADER_SLOTS} by the protocol"
            )
        if self.retention < 1:
            raise ConfigurationError("retention must be at least 1")
        if self.wait_timeout is not None and self.wait_timeout <= 0:
            raise ConfigurationError("wait_timeout must be positive")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "slots_per_epoch": self.slots_per_epoch,
            "leader_slot_span": self.leader_slot_span,
            "retention": self.retention,
            "include_delinquent": self.include_delinquent,
        }
        if self.wait_timeout is not None:
            data["wait_timeout"] = self.wait_timeout
        return data
