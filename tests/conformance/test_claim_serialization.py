"""
Claim Serialization Conformance Tests

INVARIANT: At most one claim is in flight per session.

    ∀ claims c1 … cn issued while c1 is unresolved:
        submissions = [c1]
        c2 … cn fail with ClaimInProgress before reaching the ledger

A rejected second claim leaves the first untouched. A mined claim stays in
flight through the re-read that publishes it, and once the first resolves
the session accepts a new claim.
"""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from vesting import (
    ClaimInProgress, ClaimSession, ProvenBalance, SessionStatus,
    TransactionRejected, TransactionReverted, VestingConfig,
)

from tests.fake_gateway import (
    FakeClock, FakeGateway, FakeProvider,
    HALFWAY, HOLDER, INITIAL, LEDGER_ADDRESS, PERIOD, START, TOKEN, run, settle,
)


def _ready_session():
    gateway = FakeGateway(
        START, PERIOD,
        balances={HOLDER: ProvenBalance(INITIAL, 0)},
        unclaimed={HOLDER: INITIAL // 2},
    )
    session = ClaimSession(
        VestingConfig(ledger_address=LEDGER_ADDRESS),
        gateway,
        FakeProvider([HOLDER]),
        clock=FakeClock(HALFWAY),
    )
    run(session.connect())
    return session, gateway


class TestClaimSerializationProperties:
    """Property-based claim serialization tests."""

    @given(st.lists(st.integers(min_value=1, max_value=25_000), min_size=2, max_size=8))
    @settings(max_examples=30, deadline=None)
    def test_only_first_claim_submitted(self, whole_tokens):
        """
        PROPERTY: Claims issued while one is pending never reach the ledger.
        """
        session, gateway = _ready_session()
        amounts = [n * TOKEN for n in whole_tokens]

        async def scenario():
            gateway.wait_gate = asyncio.Event()
            first = asyncio.create_task(session.claim(amounts[0]))
            await settle(lambda: bool(gateway.handles))
            rejected = 0
            for amount in amounts[1:]:
                with pytest.raises(ClaimInProgress):
                    await session.claim(amount)
                rejected += 1
            gateway.wait_gate.set()
            await first
            return rejected

        assert run(scenario()) == len(amounts) - 1
        assert gateway.submissions == [(HOLDER, amounts[0])]
        assert session.status == SessionStatus.READY

    @given(st.sampled_from(["mined", "rejected", "reverted"]))
    @settings(max_examples=10, deadline=None)
    def test_next_claim_accepted_after_resolution(self, outcome):
        """
        PROPERTY: Resolution of the pending claim, however it ends, frees the session.
        """
        session, gateway = _ready_session()
        if outcome == "rejected":
            gateway.submit_error = TransactionRejected("denied")
        elif outcome == "reverted":
            gateway.wait_error = TransactionReverted("Amount exceeds unclaimed balance")

        try:
            run(session.claim(TOKEN))
        except (TransactionRejected, TransactionReverted):
            pass
        assert not session.claim_in_flight

        gateway.submit_error = None
        gateway.wait_error = None
        receipt = run(session.claim(TOKEN))
        assert receipt.amount_base_units == TOKEN

    @given(st.lists(st.integers(min_value=1, max_value=20_000), min_size=1, max_size=5))
    @settings(max_examples=20, deadline=None)
    def test_claim_in_flight_until_reread(self, whole_tokens):
        """
        PROPERTY: A mined claim stays in flight until the snapshot reflects it.
        """
        session, gateway = _ready_session()
        amounts = [n * TOKEN for n in whole_tokens]

        async def scenario():
            gateway.read_gate = asyncio.Event()
            first = asyncio.create_task(session.claim(TOKEN))
            await settle(lambda: gateway.blocked_reads > 0)
            assert gateway.balances[HOLDER].claimed == TOKEN
            assert session.status == SessionStatus.READING
            assert session.claim_in_flight
            for amount in amounts:
                with pytest.raises(ClaimInProgress):
                    await session.claim(amount)
            gateway.read_gate.set()
            return await first

        receipt = run(scenario())
        assert receipt.amount_base_units == TOKEN
        assert gateway.submissions == [(HOLDER, TOKEN)]
        assert session.snapshot.balance.claimed == TOKEN
        assert not session.claim_in_flight
        assert session.status == SessionStatus.READY
