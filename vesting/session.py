"""
session.py - Claim Session State Machine

ClaimSession coordinates the wallet provider, the ledger gateway and the
vesting calculator. It is the only module that holds mutable session state.

States:
    DISCONNECTED → CONNECTING → CONNECTED → READING → READY
    READY → CLAIMING → READING → READY
    CONNECTING | READING | CLAIMING → ERRORED (recovers to DISCONNECTED or READY)

Key rules:
    - Read cycles are atomic: schedule, balance and unclaimed reads are joined
      and either all land in a new LedgerSnapshot or none do
    - One claim in flight per session; a second claim() fails with
      ClaimInProgress before any await
    - Nothing is retried internally; every failure is raised to the caller
      after the ERRORED transition is recorded
    - disconnect() abandons in-flight work; results that arrive for an
      abandoned epoch are discarded
"""

from __future__ import annotations
import asyncio
import time
from typing import Callable, List, Optional

from .calculator import calculate_suggested_claim, calculate_vesting_state
from .core import (
    # Types
    ClaimAdvice, ClaimReceipt, ClaimRequest, LedgerSnapshot,
    Session, SessionStatus, Transition, VestingConfig, VestingSchedule,
    VestingState, EMPTY_SESSION, STABLE_STATUSES,
    # Protocols
    LedgerGateway, WalletProvider,
    # Exceptions
    ClaimInProgress, LedgerReadFailed, NoProvider, ProviderDisconnected,
    SessionStateError, UserRejected, VestingError, WrongNetwork,
)
from .units import format_units, parse_units


def _wall_clock() -> int:
    return int(time.time())


def _being_cancelled() -> bool:
    """True if the running task itself has a pending cancellation request."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class ClaimSession:
    """
    Wallet session and claim workflow for one holder.

    All ledger interaction is asynchronous. Between suspension points the
    session's status, snapshot and transition log can be observed directly.

    Thread Safety:
        Not thread-safe. Drive each session from a single event loop.

    Example:
        session = ClaimSession(config, gateway, provider)
        await session.connect()
        state = session.vesting_state()
        receipt = await session.claim_amount("10000.5")
    """

    def __init__(
        self,
        config: VestingConfig,
        gateway: LedgerGateway,
        provider: Optional[WalletProvider] = None,
        clock: Optional[Callable[[], int]] = None,
        verbose: bool = False,
    ):
        """
        Create a disconnected session.

        Args:
            config: Session configuration
            gateway: Ledger to read from and submit claims to
            provider: Wallet capability set (None when no wallet is installed)
            clock: Returns the current unix time in seconds (default: wall clock)
            verbose: Print transitions and results (default: False)
        """
        self.config = config
        self.gateway = gateway
        self.provider = provider
        self.verbose = verbose
        self._clock = clock or _wall_clock

        self.session: Session = EMPTY_SESSION
        self.status: SessionStatus = SessionStatus.DISCONNECTED
        self.recovery_status: Optional[SessionStatus] = None
        self.last_error: Optional[BaseException] = None
        self.snapshot: Optional[LedgerSnapshot] = None
        self.last_tx_hash: Optional[str] = None
        self.transitions: List[Transition] = []

        self._stale = False
        self._claim_in_flight = False
        self._read_task: Optional[asyncio.Task] = None
        # Bumped by connect() and disconnect(); work from an older epoch is dropped
        self._epoch = 0

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def stable_status(self) -> SessionStatus:
        """The stable state the session is in or will return to."""
        if self.status == SessionStatus.ERRORED:
            return self.recovery_status
        return self.status

    @property
    def is_stale(self) -> bool:
        """True when the snapshot may no longer match the ledger."""
        return self.snapshot is not None and self._stale

    @property
    def claim_in_flight(self) -> bool:
        return self._claim_in_flight

    def now(self) -> int:
        """Current time from the session clock (unix seconds)."""
        return self._clock()

    def vesting_state(self, now: Optional[int] = None) -> Optional[VestingState]:
        """
        Vesting state of the last snapshot at `now` (default: the clock).

        Recomputed on every call. None before the first successful read.
        """
        if self.snapshot is None:
            return None
        observed = self._clock() if now is None else now
        return calculate_vesting_state(self.snapshot.schedule, self.snapshot.balance, observed)

    def suggested_claim(self, now: Optional[int] = None) -> int:
        """Suggested claim amount in base units, capped by default_claim_cap_base_units."""
        state = self.vesting_state(now)
        if state is None:
            return 0
        return calculate_suggested_claim(
            state.claimable_now, self.config.default_claim_cap_base_units
        )

    def check_claim(self, amount_base_units: int, now: Optional[int] = None) -> ClaimAdvice:
        """
        Compare an amount against the locally derived and ledger-reported limits.

        Advisory only. Passing this check does not mean the ledger will accept
        the claim, and failing it does not stop a submission.

        Raises:
            SessionStateError: If no snapshot has been read yet
        """
        state = self.vesting_state(now)
        if state is None:
            raise SessionStateError("No ledger snapshot to check the claim against")
        return ClaimAdvice(
            amount_base_units=amount_base_units,
            claimable_now=state.claimable_now,
            ledger_unclaimed=self.snapshot.ledger_unclaimed,
        )

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    async def connect(self) -> Optional[VestingState]:
        """
        Request account access and run the first read cycle.

        Valid from DISCONNECTED or ERRORED. Connection failures recover to
        DISCONNECTED; a previous snapshot is kept and flagged stale.

        Returns:
            Vesting state after the read cycle, or None if the session was
            disconnected while connecting

        Raises:
            NoProvider: If no wallet provider is available
            UserRejected: If the holder declines or exposes no account
            WrongNetwork: If the wallet is not on config.expected_chain_id
            ProviderDisconnected: If the provider drops the connection
            LedgerReadFailed: If the first read cycle fails
        """
        if self.status not in (SessionStatus.DISCONNECTED, SessionStatus.ERRORED):
            raise SessionStateError(f"Cannot connect while {self.status.value}")

        self._epoch += 1
        epoch = self._epoch
        self._stale = True
        self._transition(SessionStatus.CONNECTING)

        if self.provider is None:
            raise self._fail(NoProvider("No wallet provider available"), SessionStatus.DISCONNECTED)

        try:
            accounts = await self.provider.request_accounts()
            chain_id = await self.provider.get_chain_id()
        except asyncio.CancelledError:
            if epoch == self._epoch:
                self._settle(SessionStatus.DISCONNECTED)
            raise
        except Exception as exc:
            if epoch != self._epoch:
                raise
            raise self._fail(exc, SessionStatus.DISCONNECTED)

        if epoch != self._epoch:
            return None

        if not accounts:
            raise self._fail(UserRejected("Wallet exposed no accounts"), SessionStatus.DISCONNECTED)
        expected = self.config.expected_chain_id
        if expected is not None and chain_id != expected:
            raise self._fail(
                WrongNetwork(f"Wallet is on chain {chain_id}, expected chain {expected}"),
                SessionStatus.DISCONNECTED,
            )

        address = accounts[0]
        if self.snapshot is not None and self.snapshot.holder != address:
            self.snapshot = None
        self.session = Session(address=address, chain_id=chain_id, connected=True)
        self._transition(SessionStatus.CONNECTED)
        return await self._read_cycle(epoch)

    async def refresh(self) -> Optional[VestingState]:
        """
        Re-read the ledger on explicit request.

        Valid from READY, or from ERRORED when it recovers to READY.

        Raises:
            SessionStateError: If the session is not ready
            LedgerReadFailed: If the read cycle fails
        """
        if self.stable_status != SessionStatus.READY:
            raise SessionStateError(f"Cannot refresh while {self.status.value}")
        return await self._read_cycle(self._epoch)

    async def claim(self, amount_base_units: int) -> Optional[ClaimReceipt]:
        """
        Submit a claim and wait for the ledger to finalize it.

        On finalization the read cycle runs again so the snapshot reflects the
        claim. Returns None if the session was disconnected while waiting.

        Raises:
            ClaimInProgress: If another claim is in flight (nothing is submitted)
            InvalidAmount: If amount_base_units is not positive (nothing is submitted)
            SessionStateError: If the session is not ready
            TransactionRejected: If the signer refuses the transaction
            TransactionReverted: If the ledger reverts it
            LedgerReadFailed: If the post-claim read cycle fails
        """
        if self._claim_in_flight:
            raise ClaimInProgress("A claim is already in flight for this session")
        if self.stable_status != SessionStatus.READY:
            raise SessionStateError(f"Cannot claim while {self.status.value}")
        request = ClaimRequest(amount_base_units)

        advice = self.check_claim(request.amount_base_units)
        if self.verbose and not (advice.within_claimable and advice.within_ledger_unclaimed):
            decimals = self.config.token_decimals
            print(f"⚠️  Claim of {format_units(advice.amount_base_units, decimals)} exceeds "
                  f"claimable {format_units(advice.claimable_now, decimals)} "
                  f"(ledger unclaimed {format_units(advice.ledger_unclaimed, decimals)}); "
                  f"submitting anyway")

        epoch = self._epoch
        holder = self.session.address
        self._claim_in_flight = True
        try:
            receipt = await self._submit_claim(epoch, holder, request)
            if receipt is not None:
                # the claim stays in flight until the snapshot reflects it
                await self._read_cycle(epoch)
            return receipt
        finally:
            if epoch == self._epoch:
                self._claim_in_flight = False

    async def _submit_claim(
        self, epoch: int, holder: str, request: ClaimRequest
    ) -> Optional[ClaimReceipt]:
        self._stale = True
        self._transition(SessionStatus.CLAIMING)
        try:
            handle = await self.gateway.submit_claim(holder, request.amount_base_units)
            if epoch == self._epoch:
                self.last_tx_hash = handle.tx_hash
            await handle.wait()
        except asyncio.CancelledError:
            if epoch == self._epoch:
                self._settle(SessionStatus.READY)
            raise
        except ProviderDisconnected as exc:
            if epoch != self._epoch:
                raise
            raise self._fail(exc, SessionStatus.DISCONNECTED)
        except Exception as exc:
            if epoch != self._epoch:
                raise
            raise self._fail(exc, SessionStatus.READY)

        if epoch != self._epoch:
            return None
        receipt = ClaimReceipt(tx_hash=handle.tx_hash, amount_base_units=request.amount_base_units)
        if self.verbose:
            print(f"✓ CLAIMED: {format_units(receipt.amount_base_units, self.config.token_decimals)} "
                  f"tx={receipt.tx_hash}")
        return receipt

    async def claim_amount(self, text: str) -> Optional[ClaimReceipt]:
        """
        Parse a decimal token amount typed by the holder and claim it.

        Raises:
            InvalidAmount: If the text is not a positive decimal amount
        """
        amount = parse_units(text, self.config.token_decimals, require_positive=True)
        return await self.claim(amount)

    def disconnect(self) -> None:
        """
        Drop the wallet session and its snapshot.

        Cancels an in-flight read cycle and stops waiting on an in-flight claim.
        A broadcast claim transaction cannot be recalled and may still be mined.
        """
        self._epoch += 1
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()
        self._read_task = None
        self._claim_in_flight = False
        self.session = EMPTY_SESSION
        self.snapshot = None
        self._stale = False
        if self.status != SessionStatus.DISCONNECTED:
            self._transition(SessionStatus.DISCONNECTED)

    def acknowledge_error(self) -> SessionStatus:
        """Leave ERRORED for its recovery status and return that status."""
        if self.status != SessionStatus.ERRORED:
            raise SessionStateError(f"No error to acknowledge while {self.status.value}")
        self._settle(self.recovery_status)
        return self.status

    async def watch(self, interval_seconds: float, iterations: Optional[int] = None) -> int:
        """
        Refresh every interval_seconds until disconnected or cancelled.

        Each pass is a normal atomic read cycle. A failed cycle is raised and
        ends the watch; it is not retried. Ticks that find a claim or another
        read in progress are skipped, and reconnecting ends the watch.

        Args:
            interval_seconds: Delay before each refresh
            iterations: Stop after this many refreshes (default: run until cancelled)

        Returns:
            Number of completed refreshes
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        epoch = self._epoch
        completed = 0
        while iterations is None or completed < iterations:
            await asyncio.sleep(interval_seconds)
            if epoch != self._epoch or self.stable_status == SessionStatus.DISCONNECTED:
                break
            if self._claim_in_flight or self.stable_status != SessionStatus.READY:
                # busy reading or claiming; a finalized claim re-reads on its own
                continue
            await self.refresh()
            completed += 1
        return completed

    # ========================================================================
    # READ CYCLE
    # ========================================================================

    async def _read_cycle(self, epoch: int) -> Optional[VestingState]:
        holder = self.session.address
        self._transition(SessionStatus.READING)
        self._read_task = asyncio.ensure_future(self._read_snapshot(holder))
        try:
            snapshot = await self._read_task
        except asyncio.CancelledError:
            if epoch != self._epoch and not _being_cancelled():
                # read cancelled by disconnect(); nothing to publish
                return None
            if epoch == self._epoch:
                self._read_task = None
                self._settle(self._read_recovery())
            raise
        except ProviderDisconnected as exc:
            if epoch != self._epoch:
                return None
            self._read_task = None
            self._stale = True
            raise self._fail(exc, SessionStatus.DISCONNECTED)
        except Exception as exc:
            if epoch != self._epoch:
                return None
            self._read_task = None
            self._stale = True
            raise self._fail(exc, self._read_recovery())

        if epoch != self._epoch:
            return None
        self._read_task = None
        self.snapshot = snapshot
        self._stale = False
        self._transition(SessionStatus.READY)
        if self.verbose:
            decimals = self.config.token_decimals
            print(f"✓ READ: initial={format_units(snapshot.balance.initial, decimals)} "
                  f"claimed={format_units(snapshot.balance.claimed, decimals)} "
                  f"unclaimed={format_units(snapshot.ledger_unclaimed, decimals)}")
        return self.vesting_state()

    async def _read_snapshot(self, holder: str) -> LedgerSnapshot:
        """
        Join all ledger reads into one snapshot.

        A balance reporting claimed > initial is a stale same-block read and is
        fetched again, up to config.stale_read_retries times.
        """
        for attempt in range(self.config.stale_read_retries + 1):
            try:
                schedule, balance, unclaimed = await asyncio.gather(
                    self._read_schedule(),
                    self.gateway.get_proven_balance(holder),
                    self.gateway.get_proven_unclaimed_balance(holder),
                )
            except VestingError:
                raise
            except Exception as exc:
                raise LedgerReadFailed(f"Ledger read failed: {exc}") from exc

            if balance.is_consistent:
                return LedgerSnapshot(
                    holder=holder,
                    schedule=schedule,
                    balance=balance,
                    ledger_unclaimed=unclaimed,
                    observed_at=self._clock(),
                )
            if self.verbose:
                print(f"⚠️  STALE READ for {holder}: claimed {balance.claimed} > "
                      f"initial {balance.initial} (attempt {attempt + 1})")
        raise LedgerReadFailed(
            f"Ledger reported claimed {balance.claimed} above initial {balance.initial} for {holder}"
        )

    async def _read_schedule(self) -> VestingSchedule:
        start, period = await asyncio.gather(
            self.gateway.get_vesting_start_timestamp(),
            self.gateway.get_vesting_period_seconds(),
        )
        return VestingSchedule(start_timestamp=start, period_seconds=period)

    def _read_recovery(self) -> SessionStatus:
        if self.snapshot is not None:
            return SessionStatus.READY
        return SessionStatus.DISCONNECTED

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def _transition(self, target: SessionStatus, error: Optional[BaseException] = None) -> None:
        self.transitions.append(Transition(self.status, target, error))
        if self.verbose:
            suffix = f" ({type(error).__name__}: {error})" if error is not None else ""
            print(f"[SESSION] {self.status.value} → {target.value}{suffix}")
        if target != SessionStatus.ERRORED:
            self.recovery_status = None
        self.status = target

    def _fail(self, error: BaseException, recovery: SessionStatus) -> BaseException:
        """Record ERRORED with its recovery status and return the error for raising."""
        if recovery == SessionStatus.DISCONNECTED:
            self.session = EMPTY_SESSION
        self.last_error = error
        self.recovery_status = recovery
        self._transition(SessionStatus.ERRORED, error)
        if self.verbose:
            print(f"✗ {type(error).__name__}: {error} (recovers to {recovery.value})")
        return error

    def _settle(self, status: SessionStatus) -> None:
        if status not in STABLE_STATUSES:
            raise SessionStateError(f"{status.value} is not a stable state")
        if status == SessionStatus.DISCONNECTED:
            self.session = EMPTY_SESSION
        self._transition(status)
