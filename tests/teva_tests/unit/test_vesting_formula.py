"""
Unit tests for the unlock formula and the schedule state machine.
"""

import pytest

from teva.core.contracts import (
    InvestorClass,
    ScheduleConfiguration,
    ScheduleState,
    calculate_unlocked_amount,
)
from teva.core.vesting_exceptions import (
    AlreadyConfiguredError,
    ConfigurationError,
    NotConfiguredError,
    PastTimestampError,
)

START = 1_700_000_000
CLIFF = 600
VESTING = 36_000
ALLOCATION = 100_000


@pytest.fixture
def schedule():
    return ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING, initial_timestamp=START)


def unlocked(schedule, investor_class, at_time, allocation=ALLOCATION):
    return calculate_unlocked_amount(allocation, investor_class, schedule, at_time)


class TestSeedScenario:
    def test_at_start_only_initial_unlock(self, schedule):
        assert unlocked(schedule, InvestorClass.SEED, START) == 10_000

    def test_exactly_at_cliff_end_no_linear_portion(self, schedule):
        assert unlocked(schedule, InvestorClass.SEED, START + CLIFF) == 10_000

    def test_half_vesting(self, schedule):
        assert unlocked(schedule, InvestorClass.SEED, START + CLIFF + 18_000) == 55_000

    def test_fully_vested(self, schedule):
        assert unlocked(schedule, InvestorClass.SEED, START + CLIFF + VESTING) == ALLOCATION
        assert unlocked(schedule, InvestorClass.SEED, START + CLIFF + VESTING * 5) == ALLOCATION


class TestPrivateScenario:
    def test_initial_unlock_is_fifteen_percent(self, schedule):
        assert unlocked(schedule, InvestorClass.PRIVATE, START) == 15_000
        assert unlocked(schedule, InvestorClass.PRIVATE, START + CLIFF - 1) == 15_000

    def test_half_vesting(self, schedule):
        assert unlocked(schedule, InvestorClass.PRIVATE, START + CLIFF + 18_000) == 57_500


def test_before_start_reports_initial_unlock(schedule):
    assert unlocked(schedule, InvestorClass.SEED, START - 1000) == 10_000


def test_linear_term_truncates():
    schedule = ScheduleConfiguration(cliff_duration=0, vesting_duration=3, initial_timestamp=0)
    # remaining = 9, 9 * 1 // 3 = 3; allocation 10 -> initial 1
    assert calculate_unlocked_amount(10, InvestorClass.SEED, schedule, 1) == 4
    # allocation 7 -> initial 0, remaining 7; 7 * 2 // 3 = 4 (not 4.67 rounded up)
    assert calculate_unlocked_amount(7, InvestorClass.SEED, schedule, 2) == 4


def test_boundary_snaps_to_full_allocation():
    allocation = 1_000_006_568_652_684_820_326_232
    schedule = ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING, initial_timestamp=START)
    just_before = calculate_unlocked_amount(allocation, InvestorClass.PRIVATE, schedule, START + CLIFF + VESTING - 1)
    assert just_before < allocation
    assert calculate_unlocked_amount(allocation, InvestorClass.PRIVATE, schedule, START + CLIFF + VESTING) == allocation


def test_initial_unlock_rounds_down():
    schedule = ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING, initial_timestamp=START)
    assert calculate_unlocked_amount(19, InvestorClass.SEED, schedule, START) == 1
    assert calculate_unlocked_amount(19, InvestorClass.PRIVATE, schedule, START) == 2


class TestScheduleConfiguration:
    def test_state_transitions_are_time_derived(self):
        schedule = ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING)
        assert schedule.state(START) is ScheduleState.UNCONFIGURED

        schedule.set_initial_timestamp(START, now=START - 10)
        assert schedule.state(START - 1) is ScheduleState.TIMESTAMP_SET
        assert schedule.state(START) is ScheduleState.VESTING_ACTIVE
        assert schedule.state(START + CLIFF + VESTING - 1) is ScheduleState.VESTING_ACTIVE
        assert schedule.state(START + CLIFF + VESTING) is ScheduleState.VESTING_COMPLETE

    def test_timestamp_set_once(self):
        schedule = ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING)
        schedule.set_initial_timestamp(START, now=START)
        with pytest.raises(AlreadyConfiguredError):
            schedule.set_initial_timestamp(START + 1, now=START)
        assert schedule.initial_timestamp == START

    def test_past_timestamp_rejected(self):
        schedule = ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING)
        with pytest.raises(PastTimestampError):
            schedule.set_initial_timestamp(START - 1, now=START)
        assert not schedule.is_configured

    def test_non_integer_timestamp_rejected(self):
        schedule = ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING)
        with pytest.raises(ConfigurationError):
            schedule.set_initial_timestamp(float(START), now=START)

    def test_boundaries_require_configuration(self):
        schedule = ScheduleConfiguration(cliff_duration=CLIFF, vesting_duration=VESTING)
        with pytest.raises(NotConfiguredError):
            _ = schedule.cliff_end

    @pytest.mark.parametrize("cliff, vesting", [(-1, VESTING), (CLIFF, 0)])
    def test_invalid_durations_rejected(self, cliff, vesting):
        with pytest.raises(ConfigurationError):
            ScheduleConfiguration(cliff_duration=cliff, vesting_duration=vesting)


@pytest.mark.parametrize(
    "value, expected",
    [
        (InvestorClass.SEED, InvestorClass.SEED),
        (0, InvestorClass.SEED),
        (1, InvestorClass.PRIVATE),
        ("private", InvestorClass.PRIVATE),
    ],
)
def test_investor_class_coerce(value, expected):
    assert InvestorClass.coerce(value) is expected


@pytest.mark.parametrize("value", [2, "angel", True, None])
def test_investor_class_coerce_rejects_unknown(value):
    with pytest.raises(ConfigurationError):
        InvestorClass.coerce(value)
