"""
memory_ledger.py - In-Process Vesting Ledger

InMemoryVestingLedger simulates the on-chain vesting contract so that claim
sessions can be exercised without a node. It implements the LedgerGateway
protocol and mirrors the contract's rules:

    - One global schedule (start, period) fixed at construction
    - Per-holder allocations: initial amount and cumulative claims
    - Unclaimed = vested(now) - claimed, computed by the ledger itself
    - claim(amount) reverts unless 0 < amount <= unclaimed

Claims are mined when their handle is awaited, at the ledger's logical time.
Time only moves forward, via advance_time().

InMemoryWallet is a matching WalletProvider with scripted accounts.
"""

from __future__ import annotations
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .calculator import calculate_vested_amount
from .core import (
    ProvenBalance, VestingSchedule, WalletProvider,
    ProviderDisconnected, TransactionRejected, TransactionReverted, UserRejected,
)


# Revert reasons reported by the simulated contract.
REVERT_ZERO_AMOUNT = "Amount must be greater than zero"
REVERT_NO_ALLOCATION = "No proven balance for sender"
REVERT_EXCEEDS_UNCLAIMED = "Amount exceeds unclaimed balance"


@dataclass(frozen=True, slots=True)
class ClaimRecord:
    """
    Executed claim in the ledger's transaction log.

    Attributes:
        tx_hash: Transaction hash of the claim
        holder: Claimant
        amount: Base units transferred to the claimant
        timestamp: Ledger time at which the claim was mined
        sequence_number: Monotonic position within the ledger
    """
    tx_hash: str
    holder: str
    amount: int
    timestamp: int
    sequence_number: int


class InMemoryClaimHandle:
    """A broadcast claim on an InMemoryVestingLedger, mined once on the first wait()."""

    def __init__(self, ledger: InMemoryVestingLedger, tx_hash: str, holder: str, amount: int):
        self.tx_hash = tx_hash
        self._ledger = ledger
        self._holder = holder
        self._amount = amount
        self._record: Optional[ClaimRecord] = None
        self._revert: Optional[TransactionReverted] = None

    async def wait(self) -> None:
        if self._revert is not None:
            raise self._revert
        if self._record is None:
            try:
                self._record = self._ledger._mine_claim(self.tx_hash, self._holder, self._amount)
            except TransactionReverted as exc:
                # a reverted transaction stays reverted
                self._revert = exc
                raise

    @property
    def record(self) -> Optional[ClaimRecord]:
        return self._record


class InMemoryVestingLedger:
    """
    Simulated vesting contract implementing LedgerGateway.

    Example:
        ledger = InMemoryVestingLedger("anvl", start_timestamp=1700000000,
                                       period_seconds=157680000)
        ledger.allocate("0xabc", 50_000 * 10**18)
        ledger.advance_time(1700000000 + 78840000)
        await ledger.get_proven_unclaimed_balance("0xabc")  # 25_000 * 10**18
    """

    def __init__(
        self,
        name: str,
        start_timestamp: int,
        period_seconds: int,
        initial_time: Optional[int] = None,
        signer: Optional[WalletProvider] = None,
        verbose: bool = False,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier, used in transaction hashes
            start_timestamp: Start of the vesting window (unix seconds)
            period_seconds: Length of the vesting window
            initial_time: Starting logical time (default: start_timestamp)
            signer: Wallet that signs submitted claims (default: none, hashes generated)
            verbose: Print executed and reverted claims (default: False)
        """
        self.name = name
        self.schedule = VestingSchedule(start_timestamp, period_seconds)
        self.balances: Dict[str, ProvenBalance] = {}
        self.transaction_log: List[ClaimRecord] = []
        self.signer = signer
        self.connected = True
        self.verbose = verbose
        self._current_time = start_timestamp if initial_time is None else initial_time
        self._next_sequence = 0
        self._submitted = 0

    # ========================================================================
    # LedgerGateway PROTOCOL IMPLEMENTATION
    # ========================================================================

    async def get_vesting_start_timestamp(self) -> int:
        self._check_connected()
        return self.schedule.start_timestamp

    async def get_vesting_period_seconds(self) -> int:
        self._check_connected()
        return self.schedule.period_seconds

    async def get_proven_balance(self, holder: str) -> ProvenBalance:
        self._check_connected()
        return self.balances.get(holder, ProvenBalance(0, 0))

    async def get_proven_unclaimed_balance(self, holder: str) -> int:
        self._check_connected()
        return self.unclaimed(holder)

    async def submit_claim(self, holder: str, amount_base_units: int) -> InMemoryClaimHandle:
        """
        Broadcast a claim. Validation happens when the handle is awaited.

        With a signer attached, the claim is signed and sent through it and the
        signer's hash identifies the transaction.

        Raises:
            ProviderDisconnected: If the ledger is disconnected
            TransactionRejected: If the signer refuses the transaction
        """
        self._check_connected()
        if self.signer is not None:
            tx_hash = await self.signer.sign_and_send({
                "from": holder,
                "to": self.name,
                "function": "claim",
                "args": (amount_base_units,),
            })
        else:
            tx_hash = self._generate_tx_hash(holder, amount_base_units)
        return InMemoryClaimHandle(self, tx_hash, holder, amount_base_units)

    # ========================================================================
    # LEDGER STATE
    # ========================================================================

    @property
    def current_time(self) -> int:
        """Current logical time of the ledger (unix seconds)."""
        return self._current_time

    def advance_time(self, new_time: int) -> None:
        """
        Advance the ledger's logical clock.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def allocate(self, holder: str, initial: int) -> None:
        """
        Record a holder's allocation.

        Raises:
            ValueError: If the holder already has an allocation or initial <= 0
        """
        if not holder or not holder.strip():
            raise ValueError("holder cannot be empty")
        if holder in self.balances:
            raise ValueError(f"Holder {holder} already has an allocation")
        if initial <= 0:
            raise ValueError(f"initial must be positive, got {initial}")
        self.balances[holder] = ProvenBalance(initial=initial, claimed=0)

    def vested(self, holder: str) -> int:
        balance = self.balances.get(holder)
        if balance is None:
            return 0
        return calculate_vested_amount(self.schedule, balance.initial, self._current_time)

    def unclaimed(self, holder: str) -> int:
        """Vested minus claimed at the ledger's current time."""
        balance = self.balances.get(holder)
        if balance is None:
            return 0
        return max(0, self.vested(holder) - balance.claimed)

    def total_claimed(self) -> int:
        return sum(self.balances[h].claimed for h in sorted(self.balances))

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _mine_claim(self, tx_hash: str, holder: str, amount: int) -> ClaimRecord:
        self._check_connected()
        reason = self._validate_claim(holder, amount)
        if reason is not None:
            if self.verbose:
                print(f"✗ REVERTED: {tx_hash[:18]} {reason}")
            raise TransactionReverted(reason)

        balance = self.balances[holder]
        self.balances[holder] = ProvenBalance(initial=balance.initial, claimed=balance.claimed + amount)

        sequence = self._next_sequence
        self._next_sequence += 1
        record = ClaimRecord(
            tx_hash=tx_hash,
            holder=holder,
            amount=amount,
            timestamp=self._current_time,
            sequence_number=sequence,
        )
        self.transaction_log.append(record)
        if self.verbose:
            print(f"✓ MINED: {tx_hash[:18]} {holder} claimed {amount}")
        return record

    def _validate_claim(self, holder: str, amount: int) -> Optional[str]:
        if amount <= 0:
            return REVERT_ZERO_AMOUNT
        if holder not in self.balances:
            return REVERT_NO_ALLOCATION
        if amount > self.unclaimed(holder):
            return REVERT_EXCEEDS_UNCLAIMED
        return None

    def _generate_tx_hash(self, holder: str, amount: int) -> str:
        """
        Deterministic hash of a broadcast claim.

        Content: ledger name, submission counter, holder, amount, ledger time.
        """
        nonce = self._submitted
        self._submitted += 1
        content = f"{self.name}|{nonce}|{holder}|{amount}|{self._current_time}"
        return "0x" + hashlib.sha256(content.encode()).hexdigest()

    def _check_connected(self) -> None:
        if not self.connected:
            raise ProviderDisconnected(f"Ledger {self.name} is unreachable")

    def __repr__(self) -> str:
        return (f"InMemoryVestingLedger({self.name}, {len(self.balances)} holders, "
                f"{len(self.transaction_log)} claims, t={self._current_time})")


class InMemoryWallet:
    """
    WalletProvider with scripted behaviour.

    Args:
        accounts: Accounts exposed on request_accounts()
        chain_id: Network id reported by get_chain_id()
        reject_access: Decline account access (UserRejected)
        reject_signing: Decline signing (TransactionRejected)
    """

    def __init__(
        self,
        accounts: List[str],
        chain_id: int = 1,
        reject_access: bool = False,
        reject_signing: bool = False,
    ):
        self.accounts = list(accounts)
        self.chain_id = chain_id
        self.reject_access = reject_access
        self.reject_signing = reject_signing
        self.sent: List[Dict[str, Any]] = []

    async def request_accounts(self) -> List[str]:
        if self.reject_access:
            raise UserRejected("User rejected the request")
        return list(self.accounts)

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def sign_and_send(self, tx: Dict[str, Any]) -> str:
        if self.reject_signing:
            raise TransactionRejected("User denied transaction signature")
        self.sent.append(dict(tx))
        content = f"{len(self.sent)}|{sorted(tx.items())}"
        return "0x" + hashlib.sha256(content.encode()).hexdigest()
