"""
view.py - Display projection of a claim session

build_view() turns a ClaimSession into display-ready strings. It reads the
session and never changes it. Amounts are formatted from integer base units;
grouping and truncation for display go through Decimal, never float.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Optional

from .calculator import calculate_daily_unlock, calculate_vesting_progress
from .core import SECONDS_PER_DAY, SessionStatus
from .session import ClaimSession
from .units import format_units


# Placeholder shown for unknown values.
MISSING = "—"

# Fraction digits kept when amounts are shown to a person.
DISPLAY_FRACTION_DIGITS = 6


def to_iso(timestamp: Optional[int]) -> str:
    """Unix seconds as an ISO-8601 UTC string, e.g. '2023-11-14T22:13:20Z'."""
    if timestamp is None:
        return MISSING
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def display_amount(
    value: Optional[int],
    decimals: int,
    max_fraction_digits: int = DISPLAY_FRACTION_DIGITS,
) -> str:
    """
    Base units as a grouped figure, truncated to max_fraction_digits.

    Example:
        display_amount(12345678 * 10**17, 18) == "1,234,567.8"
    """
    if value is None:
        return MISSING
    exact = Decimal(format_units(value, decimals))
    with localcontext() as ctx:
        # uint256 quantities need more than the default 28 digits
        ctx.prec = 100
        quantum = Decimal(1).scaleb(-max_fraction_digits)
        shown = exact.quantize(quantum, rounding=ROUND_DOWN).normalize()
        # normalize() turns whole numbers like 1E+3 into exponent form
        if shown == shown.to_integral_value():
            shown = shown.quantize(Decimal(1))
    return f"{shown:,f}"


@dataclass(frozen=True, slots=True)
class ClaimView:
    """
    Everything a claim page shows, as strings.

    Amount fields are exact decimal strings (format_units); *_display fields
    are grouped and truncated for reading.
    """
    status: str
    address: str
    network: str
    initial: str
    claimed: str
    ledger_unclaimed: str
    vested: str
    claimable: str
    claimable_display: str
    vesting_start: str
    vesting_end: str
    period: str
    progress: str
    daily_unlock: str
    suggested_claim: str
    stale: bool
    can_claim: bool
    tx_hash: str
    error: str


def build_view(session: ClaimSession, now: Optional[int] = None) -> ClaimView:
    """
    Project a session into a ClaimView at `now` (default: the session clock).

    Figures from a stale snapshot are still shown; `stale` tells them apart.
    """
    decimals = session.config.token_decimals
    snapshot = session.snapshot
    state = session.vesting_state(now)

    if session.status == SessionStatus.ERRORED and session.last_error is not None:
        error = str(session.last_error) or type(session.last_error).__name__
    else:
        error = MISSING

    network = MISSING
    if session.session.chain_id is not None:
        network = f"chainId {session.session.chain_id}"

    if snapshot is None or state is None:
        return ClaimView(
            status=session.status.value,
            address=session.session.address or MISSING,
            network=network,
            initial=MISSING,
            claimed=MISSING,
            ledger_unclaimed=MISSING,
            vested=MISSING,
            claimable=MISSING,
            claimable_display=MISSING,
            vesting_start=MISSING,
            vesting_end=MISSING,
            period=MISSING,
            progress=MISSING,
            daily_unlock=MISSING,
            suggested_claim=MISSING,
            stale=False,
            can_claim=False,
            tx_hash=session.last_tx_hash or MISSING,
            error=error,
        )

    schedule = snapshot.schedule
    observed = session.now() if now is None else now
    progress = calculate_vesting_progress(schedule, observed) * 100
    daily = calculate_daily_unlock(schedule, snapshot.balance.initial)
    days = Decimal(schedule.period_seconds) / Decimal(SECONDS_PER_DAY)

    return ClaimView(
        status=session.status.value,
        address=session.session.address or MISSING,
        network=network,
        initial=format_units(snapshot.balance.initial, decimals),
        claimed=format_units(snapshot.balance.claimed, decimals),
        ledger_unclaimed=format_units(snapshot.ledger_unclaimed, decimals),
        vested=format_units(state.vested_now, decimals),
        claimable=format_units(state.claimable_now, decimals),
        claimable_display=display_amount(state.claimable_now, decimals),
        vesting_start=to_iso(schedule.start_timestamp),
        vesting_end=to_iso(schedule.end_timestamp),
        period=f"{schedule.period_seconds:,} sec (~{days.quantize(Decimal('0.01'), rounding=ROUND_DOWN)} days)",
        progress=f"{progress.quantize(Decimal('0.01'), rounding=ROUND_DOWN)}%",
        daily_unlock=MISSING if daily is None else f"{display_amount(daily, decimals)} tokens/day",
        suggested_claim=format_units(session.suggested_claim(observed), decimals),
        stale=session.is_stale,
        can_claim=session.stable_status == SessionStatus.READY and not session.claim_in_flight,
        tx_hash=session.last_tx_hash or MISSING,
        error=error,
    )
