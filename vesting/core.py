"""
Core types and protocols for the vesting claim client.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerGateway, TransactionHandle and WalletProvider boundaries
2. Immutable data structures: VestingSchedule, ProvenBalance, VestingState,
   ClaimRequest, Session, LedgerSnapshot
3. Exceptions: VestingError and the claim workflow error taxonomy
4. Configuration: VestingConfig
5. Session lifecycle: SessionStatus and Transition records

Token quantities are always Python ints in base units. No float appears in
any quantity held by these types.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from enum import Enum
from typing import (
    Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fractional digits of the vested token unless configured otherwise.
DEFAULT_TOKEN_DECIMALS = 18

SECONDS_PER_DAY = 86400

# Schedule fields are uint32 on the ledger.
UINT32_MAX = 2**32 - 1

# Ledger balances are uint256.
UINT256_MAX = 2**256 - 1

# EIP-1193 error code for "user rejected the request".
USER_REJECTED_CODE = 4001


def _require_uint(name: str, value: Any, maximum: int = UINT256_MAX) -> None:
    # bool is an int subclass but never a quantity
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    if value > maximum:
        raise ValueError(f"{name} exceeds {maximum}, got {value}")


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VestingError(Exception):
    """Base exception for all vesting claim errors."""
    pass


class NoProvider(VestingError):
    """Raised when no wallet provider is available to connect through."""
    pass


class UserRejected(VestingError):
    """Raised when the holder declines account access in the wallet."""
    pass


class WrongNetwork(VestingError):
    """Raised when the wallet is on a different chain than the configured one."""
    pass


class LedgerReadFailed(VestingError):
    """Raised when a read cycle against the ledger cannot produce a consistent snapshot."""
    pass


class InvalidAmount(VestingError):
    """Raised when a user-supplied amount is malformed or not positive."""
    pass


class ClaimInProgress(VestingError):
    """Raised when a claim is requested while another claim is still in flight."""
    pass


class TransactionRejected(VestingError):
    """Raised when the signer refuses to sign or broadcast the claim transaction."""
    pass


class TransactionReverted(VestingError):
    """
    Raised when the claim transaction is reverted by the ledger.

    Attributes:
        reason: Revert reason supplied by the ledger, if it supplied one.
    """

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        super().__init__(reason or "transaction reverted")


class ProviderDisconnected(VestingError):
    """Raised when the wallet provider or RPC endpoint drops the connection."""
    pass


class SessionStateError(VestingError):
    """Raised when an operation is invoked from a state that does not allow it."""
    pass


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class VestingSchedule:
    """
    Global linear unlock window shared by every holder of a ledger.

    Attributes:
        start_timestamp: Unix seconds at which unlocking begins (uint32).
        period_seconds: Length of the unlock window in seconds (uint32).
    """
    start_timestamp: int
    period_seconds: int

    def __post_init__(self):
        _require_uint("start_timestamp", self.start_timestamp, UINT32_MAX)
        _require_uint("period_seconds", self.period_seconds, UINT32_MAX)

    @property
    def end_timestamp(self) -> int:
        """Unix seconds at which the allocation is fully vested."""
        return self.start_timestamp + self.period_seconds


@dataclass(frozen=True, slots=True)
class ProvenBalance:
    """
    A holder's allocation as recorded by the ledger.

    claimed <= initial is enforced by the ledger, not here. A read that
    violates it is a stale same-block read and must be re-fetched.
    """
    initial: int
    claimed: int

    def __post_init__(self):
        _require_uint("initial", self.initial)
        _require_uint("claimed", self.claimed)

    @property
    def is_consistent(self) -> bool:
        return self.claimed <= self.initial


@dataclass(frozen=True, slots=True)
class VestingState:
    """Vested and claimable base units at one observation time."""
    vested_now: int
    claimable_now: int


@dataclass(frozen=True, slots=True)
class ClaimRequest:
    """A validated request to withdraw amount_base_units from the ledger."""
    amount_base_units: int

    def __post_init__(self):
        amount = self.amount_base_units
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount(f"claim amount must be an integer, got {amount!r}")
        if amount <= 0:
            raise InvalidAmount(f"claim amount must be positive, got {amount}")
        if amount > UINT256_MAX:
            raise InvalidAmount(f"claim amount exceeds uint256, got {amount}")


@dataclass(frozen=True, slots=True)
class Session:
    """Wallet connection facts. Replaced on every change, never mutated."""
    address: Optional[str] = None
    chain_id: Optional[int] = None
    connected: bool = False


EMPTY_SESSION = Session()


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """
    Result of one successful read cycle.

    All three reads were joined before this was built, so the fields are
    displayed together or not at all.

    Attributes:
        holder: Address the balances belong to
        schedule: Vesting window read from the ledger
        balance: Proven balance of the holder
        ledger_unclaimed: The ledger's own figure for what the holder may claim
        observed_at: Unix seconds when the cycle completed
    """
    holder: str
    schedule: VestingSchedule
    balance: ProvenBalance
    ledger_unclaimed: int
    observed_at: int


@dataclass(frozen=True, slots=True)
class ClaimAdvice:
    """
    Outcome of the client-side pre-claim check.

    Advisory only: the ledger is the authority on claim limits.
    """
    amount_base_units: int
    claimable_now: int
    ledger_unclaimed: int

    @property
    def within_claimable(self) -> bool:
        return self.amount_base_units <= self.claimable_now

    @property
    def within_ledger_unclaimed(self) -> bool:
        return self.amount_base_units <= self.ledger_unclaimed


@dataclass(frozen=True, slots=True)
class ClaimReceipt:
    """A claim that the ledger finalized."""
    tx_hash: str
    amount_base_units: int


# ============================================================================
# SESSION LIFECYCLE
# ============================================================================

class SessionStatus(Enum):
    """
    States of a claim session.

    DISCONNECTED and READY are the stable states. ERRORED always carries a
    recovery status that is one of them.
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    READING = "reading"
    READY = "ready"
    CLAIMING = "claiming"
    ERRORED = "errored"


STABLE_STATUSES = frozenset({SessionStatus.DISCONNECTED, SessionStatus.READY})


@dataclass(frozen=True, slots=True)
class Transition:
    """One entry of a session's transition log."""
    source: SessionStatus
    target: SessionStatus
    error: Optional[BaseException] = None

    def __repr__(self) -> str:
        text = f"{self.source.value}→{self.target.value}"
        if self.error is not None:
            text += f" ({type(self.error).__name__}: {self.error})"
        return f"Transition({text})"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class VestingConfig:
    """
    Recognized configuration of a claim session.

    Attributes:
        ledger_address: Identifier of the vesting ledger to read
        token_decimals: Fractional digits used to convert amounts
        default_claim_cap_base_units: Cap on the suggested claim amount only;
            never restricts what the holder may enter
        expected_chain_id: When set, connecting on another chain fails
        stale_read_retries: Re-fetches allowed for a read reporting claimed > initial
    """
    ledger_address: str
    token_decimals: int = DEFAULT_TOKEN_DECIMALS
    default_claim_cap_base_units: Optional[int] = None
    expected_chain_id: Optional[int] = None
    stale_read_retries: int = 1

    def __post_init__(self):
        if not self.ledger_address or not self.ledger_address.strip():
            raise ValueError("ledger_address cannot be empty")
        if isinstance(self.token_decimals, bool) or not isinstance(self.token_decimals, int):
            raise ValueError(f"token_decimals must be int, got {self.token_decimals!r}")
        if not 0 <= self.token_decimals <= 77:
            raise ValueError(f"token_decimals must be within 0..77, got {self.token_decimals}")
        if self.default_claim_cap_base_units is not None:
            _require_uint("default_claim_cap_base_units", self.default_claim_cap_base_units)
        if self.expected_chain_id is not None:
            _require_uint("expected_chain_id", self.expected_chain_id)
        _require_uint("stale_read_retries", self.stale_read_retries, 10)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> VestingConfig:
        """
        Build a config from a mapping with camelCase or snake_case keys.

        Example:
            VestingConfig.from_mapping({
                "ledgerAddress": "0xEFd1...",
                "tokenDecimals": 18,
                "defaultClaimCapBaseUnits": 10_000 * 10**18,
            })

        Raises:
            ValueError: If a key is not a recognized option
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in mapping.items():
            name = _snake_case(key)
            if name not in known:
                raise ValueError(f"Unknown configuration option: {key}")
            kwargs[name] = value
        return cls(**kwargs)


def _snake_case(key: str) -> str:
    out = []
    for ch in key:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class TransactionHandle(Protocol):
    """
    A submitted claim transaction.

    wait() suspends until the ledger finalizes the transaction. It returns
    normally on success and raises TransactionReverted on revert.
    """
    tx_hash: str

    async def wait(self) -> None:
        ...


@runtime_checkable
class LedgerGateway(Protocol):
    """
    Read/write boundary of the on-chain vesting ledger.

    The ledger is opaque. Implementations raise LedgerReadFailed for failed
    reads, ProviderDisconnected when the connection drops, and
    TransactionRejected/TransactionReverted for failed submissions.
    """

    async def get_vesting_start_timestamp(self) -> int:
        ...

    async def get_vesting_period_seconds(self) -> int:
        ...

    async def get_proven_balance(self, holder: str) -> ProvenBalance:
        ...

    async def get_proven_unclaimed_balance(self, holder: str) -> int:
        ...

    async def submit_claim(self, holder: str, amount_base_units: int) -> TransactionHandle:
        """Sign and broadcast a claim sent by holder."""
        ...


@runtime_checkable
class WalletProvider(Protocol):
    """
    Capability set of a wallet: account access, network id, signing.

    request_accounts raises UserRejected when the holder declines.
    sign_and_send returns the transaction hash as a 0x-prefixed hex string.
    """

    async def request_accounts(self) -> List[str]:
        ...

    async def get_chain_id(self) -> int:
        ...

    async def sign_and_send(self, tx: Dict[str, Any]) -> str:
        ...
