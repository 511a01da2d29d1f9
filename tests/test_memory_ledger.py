"""
test_memory_ledger.py - Tests for the in-process vesting ledger and wallet
"""

import pytest

from vesting import (
    ClaimSession, InMemoryVestingLedger, InMemoryWallet, LedgerGateway,
    ProvenBalance, ProviderDisconnected, TransactionRejected, TransactionReverted,
    UserRejected, VestingConfig, WalletProvider,
)
from vesting.memory_ledger import (
    REVERT_EXCEEDS_UNCLAIMED, REVERT_NO_ALLOCATION, REVERT_ZERO_AMOUNT,
)

from tests.fake_gateway import (
    HALFWAY, HOLDER, INITIAL, LEDGER_ADDRESS, OTHER_HOLDER, PERIOD, START, TOKEN, run,
)


@pytest.fixture
def ledger():
    """Ledger halfway through the reference schedule with one allocation."""
    ledger = InMemoryVestingLedger("anvl", START, PERIOD, initial_time=HALFWAY)
    ledger.allocate(HOLDER, INITIAL)
    return ledger


async def _claim(ledger, holder, amount):
    handle = await ledger.submit_claim(holder, amount)
    await handle.wait()
    return handle


class TestProtocols:
    """The in-process ledger and wallet satisfy the runtime protocols."""

    def test_ledger_is_gateway(self, ledger):
        assert isinstance(ledger, LedgerGateway)

    def test_wallet_is_provider(self):
        assert isinstance(InMemoryWallet([HOLDER]), WalletProvider)


class TestLedgerReads:
    """Tests for the gateway read methods."""

    def test_schedule(self, ledger):
        assert run(ledger.get_vesting_start_timestamp()) == START
        assert run(ledger.get_vesting_period_seconds()) == PERIOD

    def test_balance_and_unclaimed(self, ledger):
        assert run(ledger.get_proven_balance(HOLDER)) == ProvenBalance(INITIAL, 0)
        assert run(ledger.get_proven_unclaimed_balance(HOLDER)) == 25_000 * TOKEN

    def test_unknown_holder_reads_zero(self, ledger):
        assert run(ledger.get_proven_balance(OTHER_HOLDER)) == ProvenBalance(0, 0)
        assert run(ledger.get_proven_unclaimed_balance(OTHER_HOLDER)) == 0

    def test_disconnected_ledger(self, ledger):
        ledger.connected = False
        with pytest.raises(ProviderDisconnected):
            run(ledger.get_proven_balance(HOLDER))


class TestLedgerState:
    """Tests for allocation and the logical clock."""

    def test_duplicate_allocation_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.allocate(HOLDER, TOKEN)

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_allocation_rejected(self, ledger, amount):
        with pytest.raises(ValueError):
            ledger.allocate(OTHER_HOLDER, amount)

    def test_time_moves_forward_only(self, ledger):
        ledger.advance_time(HALFWAY + 1)
        with pytest.raises(ValueError):
            ledger.advance_time(HALFWAY)

    def test_unlock_tracks_time(self, ledger):
        ledger.advance_time(START + PERIOD)
        assert ledger.vested(HOLDER) == INITIAL
        assert ledger.unclaimed(HOLDER) == INITIAL


class TestClaims:
    """Tests for claim submission and mining."""

    def test_claim_mined_on_wait(self, ledger):
        async def scenario():
            handle = await ledger.submit_claim(HOLDER, 10_000 * TOKEN)
            assert ledger.transaction_log == []
            await handle.wait()
            return handle

        handle = run(scenario())
        assert ledger.balances[HOLDER].claimed == 10_000 * TOKEN
        assert ledger.unclaimed(HOLDER) == 15_000 * TOKEN
        assert handle.record.tx_hash == handle.tx_hash
        assert handle.record.timestamp == HALFWAY
        assert ledger.total_claimed() == 10_000 * TOKEN

    def test_reverted_claim_stays_reverted(self, ledger):
        async def scenario():
            handle = await ledger.submit_claim(HOLDER, 30_000 * TOKEN)
            with pytest.raises(TransactionReverted):
                await handle.wait()
            # enough has unlocked by now, but the transaction was already mined as reverted
            ledger.advance_time(START + PERIOD)
            with pytest.raises(TransactionReverted) as excinfo:
                await handle.wait()
            return handle, excinfo.value

        handle, exc = run(scenario())
        assert exc.reason == REVERT_EXCEEDS_UNCLAIMED
        assert handle.record is None
        assert ledger.transaction_log == []
        assert ledger.balances[HOLDER].claimed == 0

    def test_wait_retries_after_outage(self, ledger):
        async def scenario():
            handle = await ledger.submit_claim(HOLDER, TOKEN)
            ledger.connected = False
            with pytest.raises(ProviderDisconnected):
                await handle.wait()
            ledger.connected = True
            await handle.wait()
            return handle

        handle = run(scenario())
        assert handle.record.amount == TOKEN
        assert len(ledger.transaction_log) == 1

    def test_sequence_numbers(self, ledger):
        run(_claim(ledger, HOLDER, TOKEN))
        run(_claim(ledger, HOLDER, TOKEN))
        assert [r.sequence_number for r in ledger.transaction_log] == [0, 1]
        assert ledger.transaction_log[0].tx_hash != ledger.transaction_log[1].tx_hash

    def test_identical_ledgers_produce_identical_hashes(self):
        hashes = []
        for _ in range(2):
            ledger = InMemoryVestingLedger("anvl", START, PERIOD, initial_time=HALFWAY)
            ledger.allocate(HOLDER, INITIAL)
            hashes.append(run(_claim(ledger, HOLDER, TOKEN)).tx_hash)
        assert hashes[0] == hashes[1]

    @pytest.mark.parametrize("holder,amount,reason", [
        (HOLDER, 0, REVERT_ZERO_AMOUNT),
        (OTHER_HOLDER, TOKEN, REVERT_NO_ALLOCATION),
        (HOLDER, 25_000 * TOKEN + 1, REVERT_EXCEEDS_UNCLAIMED),
    ])
    def test_reverts(self, ledger, holder, amount, reason):
        with pytest.raises(TransactionReverted) as excinfo:
            run(_claim(ledger, holder, amount))
        assert excinfo.value.reason == reason
        assert ledger.transaction_log == []
        assert ledger.balances[HOLDER].claimed == 0

    def test_claim_all_unclaimed(self, ledger):
        run(_claim(ledger, HOLDER, 25_000 * TOKEN))
        assert ledger.unclaimed(HOLDER) == 0

    def test_claim_through_signer(self, ledger):
        wallet = InMemoryWallet([HOLDER])
        ledger.signer = wallet
        handle = run(_claim(ledger, HOLDER, TOKEN))
        assert wallet.sent[0]["args"] == (TOKEN,)
        assert handle.tx_hash.startswith("0x")

    def test_signer_refusal(self, ledger):
        ledger.signer = InMemoryWallet([HOLDER], reject_signing=True)
        with pytest.raises(TransactionRejected):
            run(ledger.submit_claim(HOLDER, TOKEN))

    def test_verbose_reports_revert(self, ledger, capsys):
        ledger.verbose = True
        with pytest.raises(TransactionReverted):
            run(_claim(ledger, HOLDER, 0))
        assert "✗ REVERTED" in capsys.readouterr().out


class TestWallet:
    """Tests for InMemoryWallet."""

    def test_accounts(self):
        assert run(InMemoryWallet([HOLDER]).request_accounts()) == [HOLDER]

    def test_reject_access(self):
        with pytest.raises(UserRejected):
            run(InMemoryWallet([HOLDER], reject_access=True).request_accounts())

    def test_chain_id(self):
        assert run(InMemoryWallet([HOLDER], chain_id=11155111).get_chain_id()) == 11155111


class TestSessionOverMemoryLedger:
    """A ClaimSession driven end to end by the in-process ledger."""

    def test_connect_and_claim(self, ledger):
        session = ClaimSession(
            VestingConfig(ledger_address=LEDGER_ADDRESS),
            ledger,
            InMemoryWallet([HOLDER]),
            clock=lambda: ledger.current_time,
        )
        assert run(session.connect()).claimable_now == 25_000 * TOKEN
        run(session.claim_amount("10000.5"))
        assert session.snapshot.balance.claimed == 10000500000000000000000
        assert session.snapshot.ledger_unclaimed == ledger.unclaimed(HOLDER)
