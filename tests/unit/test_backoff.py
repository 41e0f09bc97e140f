"""
Unit tests for BackoffPolicy.
"""

import pytest

from copy_client.errors import ConfigurationError
from table_copy import BackoffPolicy


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def recording_policy(base=64, cap=4096, rnd=0.5):
    sleeps = []

    async def sleep(seconds):
        sleeps.append(seconds)

    return BackoffPolicy(base, cap, rng=FixedRandom(rnd), sleep=sleep), sleeps


@pytest.mark.asyncio
async def test_execute_doubles_until_cap():
    """Delay doubles on every execute and stops at the cap."""
    policy, _ = recording_policy(64, 4096)
    seen = []
    for _ in range(8):
        await policy.execute()
        seen.append(policy.current_delay_ms)
    # 128, 256, ... 4096, 4096
    assert seen == [128, 256, 512, 1024, 2048, 4096, 4096, 4096]


@pytest.mark.asyncio
async def test_skip_halves_until_base():
    """Skip halves the delay and never drops below the base."""
    policy, sleeps = recording_policy(16, 1024)
    for _ in range(3):
        await policy.execute()
    assert policy.current_delay_ms == 128
    for _ in range(5):
        await policy.skip()
    assert policy.current_delay_ms == 16
    assert len(sleeps) == 3


@pytest.mark.asyncio
async def test_wait_is_random_fraction_of_current_delay():
    """The wait is current delay times a random factor, in seconds."""
    policy, sleeps = recording_policy(100, 1000, rnd=0.25)
    await policy.execute()
    assert sleeps == [pytest.approx(0.05)]


@pytest.mark.asyncio
async def test_actions_run_after_adjustment():
    """execute/skip run the given action and return its result."""
    policy, _ = recording_policy(10, 80)
    observed = []

    async def action():
        observed.append(policy.current_delay_ms)
        return "done"

    assert await policy.execute(action) == "done"
    assert await policy.skip(action) == "done"
    assert observed == [20, 10]


@pytest.mark.asyncio
async def test_delay_stays_within_bounds_under_mixed_outcomes():
    policy, _ = recording_policy(64, 4096)
    for i in range(50):
        if i % 3:
            await policy.execute()
        else:
            await policy.skip()
        assert 64 <= policy.current_delay_ms <= 4096


def test_reset_and_presets():
    scan = BackoffPolicy.for_table_scan()
    write = BackoffPolicy.for_table_write()
    assert (scan.base_delay_ms, scan.max_delay_ms) == (64, 4096)
    assert (write.base_delay_ms, write.max_delay_ms) == (16, 1024)
    transfer = BackoffPolicy.for_object_transfer()
    assert (transfer.base_delay_ms, transfer.max_delay_ms) == (64, 4096)
    scan._current = 1024
    scan.reset()
    assert scan.current_delay_ms == 64


def test_invalid_configuration_rejected():
    with pytest.raises(ConfigurationError):
        BackoffPolicy(0, 10)
    with pytest.raises(ConfigurationError):
        BackoffPolicy(100, 10)
