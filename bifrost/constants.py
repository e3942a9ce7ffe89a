"""
Bifrost Constants

Protocol constants for leader schedule derivation, plus the handful of
runtime settings read from the process environment or a local `.env` file.
"""
import os
from typing import Optional

from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Read once at import; the process environment takes precedence
_dotenv = dotenv_values(".env")

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def env_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    """Setting from the environment, then `.env`, then the default."""
    value = os.environ.get(key)
    if value is None:
        value = _dotenv.get(key)
    return default if value is None else value


def env_flag(key: str, default: bool) -> bool:
    """
    Boolean setting. Unrecognized values fall back to the default.
    """
    raw = env_setting(key)
    if raw is None:
        return default
    value = raw.strip().casefold()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


BIFROST_CONFIG_PATH = env_setting("BIFROST_CONFIG_PATH", "config.toml")

LOG_LEVEL = env_setting("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LOG_CONSOLE_HIGHLIGHTING = env_flag("LOG_CONSOLE_HIGHLIGHTING", True)
LOG_FILE_OUTPUT = env_flag("LOG_FILE_OUTPUT", False)
LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE PROTOCOL VALUES BELOW ARE NOT MEANT TO BE CHANGED! EVERY PARTICIPANT MUST DERIVE
# THE SAME LEADER SCHEDULE. CHANGING THEM PRODUCES A SCHEDULE NO OTHER NODE WILL AGREE WITH.

# ==================================================================================
# CORE PROTOCOL CONSTANTS
# ==================================================================================
NODE_VERSION = '0.3.0'
ENDIAN = 'little'
VALIDATOR_ID_LENGTH = 32  # Ed25519 public key
U64_MAX = (1 << 64) - 1


# ==================================================================================
# LEADER SCHEDULE PARAMETERS
# ==================================================================================
# Number of consecutive slots a leader keeps after each draw
NUM_CONSECUTIVE_LEADER_SLOTS = 4

# ChaCha20 seed layout: epoch as 8 little-endian bytes, zero padded
RNG_SEED_LENGTH = 32
EPOCH_SEED_BYTES = 8

# Mainnet epoch length
DEFAULT_SLOTS_PER_EPOCH = 432_000

# Epochs kept in the schedule cache (previous, current, next and one spare)
DEFAULT_SCHEDULE_RETENTION = 4


# ==================================================================================
# SLOT TRACKING CONSTANTS
# ==================================================================================
# Slots further ahead of the median estimate than this are treated as outliers
MAX_SLOT_SKIP_DISTANCE = 48

# Number of recent slot events used for the current-slot estimate
RECENT_SLOT_EVENTS_CAPACITY = 48
