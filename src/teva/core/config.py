"""
TEVA Vesting Configuration

Supports testnet and mainnet with separate configurations. All values are
read from environment variables once at import time.

Reference schedule: 10 minute cliff followed by a 600 minute linear window.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    TESTNET = "testnet"
    MAINNET = "mainnet"


class EnvironmentConfigError(Exception):
    """Raised when an environment setting is missing or invalid."""
    pass


def _get_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise EnvironmentConfigError(f"{env_var} must be an integer, got {raw!r}") from exc


def validate_durations(cliff_duration: int, vesting_duration: int) -> None:
    """Reject schedule durations the unlock formula cannot work with."""
    if not isinstance(cliff_duration, int) or cliff_duration < 0:
        raise EnvironmentConfigError("Cliff duration must be a non-negative integer (seconds).")
    if not isinstance(vesting_duration, int) or vesting_duration <= 0:
        raise EnvironmentConfigError("Vesting duration must be a positive integer (seconds).")


# Get network type from environment variable
NETWORK = os.getenv("TEVA_NETWORK", "testnet")  # Default to testnet for safety

try:
    NETWORK_TYPE = NetworkType(NETWORK.lower())
except ValueError as exc:
    raise EnvironmentConfigError(
        f"TEVA_NETWORK must be one of {[n.value for n in NetworkType]}, got {NETWORK!r}"
    ) from exc

# Schedule constants (seconds)
CLIFF_DURATION = _get_int("TEVA_CLIFF_DURATION", 10 * 60)
VESTING_DURATION = _get_int("TEVA_VESTING_DURATION", 600 * 60)
validate_durations(CLIFF_DURATION, VESTING_DURATION)

# Token metadata
TOKEN_NAME = os.getenv("TEVA_TOKEN_NAME", "Teva token")
TOKEN_SYMBOL = os.getenv("TEVA_TOKEN_SYMBOL", "TEVA")
TOKEN_DECIMALS = _get_int("TEVA_TOKEN_DECIMALS", 18)
if not 0 <= TOKEN_DECIMALS <= 18:
    raise EnvironmentConfigError("TEVA_TOKEN_DECIMALS must be between 0 and 18.")

# Persistence
DATA_DIR = os.getenv("TEVA_DATA_DIR", os.path.join(os.getcwd(), "data"))

# Logging
LOG_LEVEL = os.getenv("TEVA_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("TEVA_LOG_FILE", "").strip() or None
LOG_ENVIRONMENT = os.getenv("TEVA_ENVIRONMENT", NETWORK_TYPE.value)

if NETWORK_TYPE is NetworkType.MAINNET and CLIFF_DURATION == 0:
    logger.warning(
        "Mainnet configured without a cliff period",
        extra={"event": "config.no_cliff", "network": NETWORK_TYPE.value},
    )
