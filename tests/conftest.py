"""
conftest.py - Shared pytest fixtures for vesting claim tests

Provides common fixtures used across unit, conformance and functional tests:
- The reference schedule (5 years from 2023-11-14) and a 50,000 token holder
- Scriptable gateway, provider and clock
- Sessions before and after the first read cycle
"""

import pytest

from vesting import (
    ClaimSession, ProvenBalance, VestingConfig, VestingSchedule,
)

from tests.fake_gateway import (
    FakeClock, FakeGateway, FakeProvider,
    HALFWAY, HOLDER, INITIAL, LEDGER_ADDRESS, PERIOD, START, TOKEN, run,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def schedule():
    """The reference five-year schedule."""
    return VestingSchedule(START, PERIOD)


@pytest.fixture
def config():
    """Default configuration: 18 decimals, no claim cap."""
    return VestingConfig(ledger_address=LEDGER_ADDRESS)


@pytest.fixture
def capped_config():
    """Configuration suggesting at most 10,000 tokens per claim."""
    return VestingConfig(
        ledger_address=LEDGER_ADDRESS,
        default_claim_cap_base_units=10_000 * TOKEN,
    )


@pytest.fixture
def clock():
    """Clock sitting halfway through the schedule."""
    return FakeClock(HALFWAY)


@pytest.fixture
def gateway():
    """Ledger where HOLDER has 50,000 tokens and half has vested."""
    return FakeGateway(
        START, PERIOD,
        balances={HOLDER: ProvenBalance(INITIAL, 0)},
        unclaimed={HOLDER: INITIAL // 2},
    )


@pytest.fixture
def provider():
    """Wallet exposing HOLDER on chain 1."""
    return FakeProvider([HOLDER], chain_id=1)


# =============================================================================
# SESSION FIXTURES
# =============================================================================

@pytest.fixture
def session(config, gateway, provider, clock):
    """Disconnected session."""
    return ClaimSession(config, gateway, provider, clock=clock)


@pytest.fixture
def ready_session(session):
    """Session that completed connect() and its first read cycle."""
    run(session.connect())
    return session
