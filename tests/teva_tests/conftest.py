import shutil
import sys
import tempfile
from pathlib import Path

import pytest

# Ensure the src directory (for `teva.*`) is on the Python path before collection runs.
project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root / "src"))

from teva.core.contracts import TevaToken, VestingContract  # noqa: E402

START_TIME = 1_700_000_000
CLIFF_TIME = 10 * 60
VESTING_TIME = 600 * 60

OWNER = "0x" + "0a" * 20
USER1 = "0x" + "11" * 20
USER2 = "0x" + "22" * 20
USER3 = "0x" + "33" * 20


class FakeClock:
    """Deterministic time provider for the vesting engine."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now

    def set(self, timestamp: int) -> int:
        self.now = timestamp
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def temp_data_dir():
    """Create a temporary directory for vesting state during tests"""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def token():
    return TevaToken(owner=OWNER)


@pytest.fixture
def vesting(token, clock):
    """Vesting contract authorized to mint on the token."""
    contract = VestingContract(
        token,
        OWNER,
        cliff_duration=CLIFF_TIME,
        vesting_duration=VESTING_TIME,
        time_provider=clock,
    )
    token.add_minter(OWNER, contract.address)
    return contract
