"""
vesting - Vesting Claim Client

Reads a holder's proven balance and the global vesting schedule from a
vesting ledger, derives what has unlocked, and submits claims.

Usage:
    import asyncio
    from vesting import (
        ClaimSession, VestingConfig, InMemoryVestingLedger, InMemoryWallet,
    )

    ledger = InMemoryVestingLedger("anvl", start_timestamp=1700000000,
                                   period_seconds=157680000)
    ledger.allocate("0xabc", 50_000 * 10**18)
    ledger.advance_time(1700000000 + 78840000)

    session = ClaimSession(
        VestingConfig(ledger_address="anvl"),
        ledger,
        InMemoryWallet(["0xabc"]),
        clock=lambda: ledger.current_time,
    )
    state = asyncio.run(session.connect())
    # state.claimable_now == 25_000 * 10**18
"""

# Core types
from .core import (
    VestingSchedule,
    ProvenBalance,
    VestingState,
    ClaimRequest,
    ClaimAdvice,
    ClaimReceipt,
    Session,
    EMPTY_SESSION,
    LedgerSnapshot,
    SessionStatus,
    STABLE_STATUSES,
    Transition,
    VestingConfig,
    LedgerGateway,
    TransactionHandle,
    WalletProvider,
    VestingError,
    NoProvider,
    UserRejected,
    WrongNetwork,
    LedgerReadFailed,
    InvalidAmount,
    ClaimInProgress,
    TransactionRejected,
    TransactionReverted,
    ProviderDisconnected,
    SessionStateError,
    DEFAULT_TOKEN_DECIMALS,
    SECONDS_PER_DAY,
    UINT32_MAX,
    UINT256_MAX,
)

# Fixed-point conversion
from .units import parse_units, format_units

# Vesting calculations - Pure Function Architecture
from .calculator import (
    calculate_vesting_fraction,
    calculate_vested_amount,
    calculate_vesting_state,
    calculate_vesting_progress,
    calculate_daily_unlock,
    calculate_suggested_claim,
    compute_vesting_state,
)

# Session
from .session import ClaimSession

# In-process ledger
from .memory_ledger import (
    InMemoryVestingLedger,
    InMemoryWallet,
    InMemoryClaimHandle,
    ClaimRecord,
)

# Display
from .view import ClaimView, build_view, display_amount, to_iso

# web3 binding
from .web3_gateway import (
    Web3LedgerGateway,
    Web3WalletProvider,
    Web3TransactionHandle,
    VESTING_ABI,
)

__all__ = [
    # Data structures
    'VestingSchedule', 'ProvenBalance', 'VestingState', 'ClaimRequest',
    'ClaimAdvice', 'ClaimReceipt', 'Session', 'EMPTY_SESSION', 'LedgerSnapshot',
    # Lifecycle
    'SessionStatus', 'STABLE_STATUSES', 'Transition',
    # Configuration
    'VestingConfig', 'DEFAULT_TOKEN_DECIMALS',
    # Protocols
    'LedgerGateway', 'TransactionHandle', 'WalletProvider',
    # Exceptions
    'VestingError', 'NoProvider', 'UserRejected', 'WrongNetwork',
    'LedgerReadFailed', 'InvalidAmount', 'ClaimInProgress',
    'TransactionRejected', 'TransactionReverted', 'ProviderDisconnected',
    'SessionStateError',
    # Constants
    'SECONDS_PER_DAY', 'UINT32_MAX', 'UINT256_MAX',
    # Units
    'parse_units', 'format_units',
    # Calculator
    'calculate_vesting_fraction', 'calculate_vested_amount',
    'calculate_vesting_state', 'calculate_vesting_progress',
    'calculate_daily_unlock', 'calculate_suggested_claim',
    'compute_vesting_state',
    # Session
    'ClaimSession',
    # In-process ledger
    'InMemoryVestingLedger', 'InMemoryWallet', 'InMemoryClaimHandle', 'ClaimRecord',
    # Display
    'ClaimView', 'build_view', 'display_amount', 'to_iso',
    # web3
    'Web3LedgerGateway', 'Web3WalletProvider', 'Web3TransactionHandle', 'VESTING_ABI',
]

__version__ = '1.0.0'
