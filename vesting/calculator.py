"""
calculator.py - Linear Vesting Calculations

This module computes how much of an allocation has unlocked using a pure
function architecture with explicit inputs.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - VestingSchedule: global unlock window (read once per ledger)
   - ProvenBalance: holder's initial allocation and cumulative claims

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters
   - No gateway, no clock, no hidden state
   - Integer arithmetic only; the vesting fraction is kept as an exact
     numerator/denominator pair and never materialized as a float

3. CONVENIENCE FUNCTIONS (compute_*):
   - Take a LedgerSnapshot and an observation time
   - Internally call calculate_*()

Key Formulas:
    elapsed   = max(0, now - start)
    fraction  = min(elapsed, period) / period       (1 when period == 0 and now >= start)
    vested    = floor(initial * fraction)
    claimable = max(0, vested - claimed)
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN
from typing import Optional, Tuple

from .core import (
    LedgerSnapshot, ProvenBalance, VestingSchedule, VestingState,
    SECONDS_PER_DAY,
)


# Places kept when the fraction is shown as a Decimal (display only).
VESTING_PROGRESS_PLACES = 9


def calculate_vesting_fraction(schedule: VestingSchedule, now: int) -> Tuple[int, int]:
    """
    Return the unlocked fraction of the window as (numerator, denominator).

    Always 0 <= numerator <= denominator and denominator > 0. A zero-length
    window is fully vested from its start onwards.
    """
    if now < schedule.start_timestamp:
        return 0, max(schedule.period_seconds, 1)
    if schedule.period_seconds == 0:
        return 1, 1
    elapsed = now - schedule.start_timestamp
    return min(elapsed, schedule.period_seconds), schedule.period_seconds


def calculate_vested_amount(schedule: VestingSchedule, initial: int, now: int) -> int:
    """
    Base units of `initial` unlocked at `now`.

    floor(initial * num / den) with num <= den, so the result never exceeds
    initial and is exactly initial from the end of the window onwards.
    """
    numerator, denominator = calculate_vesting_fraction(schedule, now)
    return initial * numerator // denominator


def calculate_vesting_state(
    schedule: VestingSchedule,
    balance: ProvenBalance,
    now: int,
) -> VestingState:
    """
    Compute vested and claimable base units at `now`.

    A racy read may report claimed above what has vested; claimable is
    floored at zero in that case rather than going negative.

    Args:
        schedule: Vesting window
        balance: Holder's proven balance
        now: Observation time in unix seconds

    Returns:
        VestingState for the observation time

    Example:
        schedule = VestingSchedule(1700000000, 157680000)
        balance = ProvenBalance(initial=50_000 * 10**18, claimed=0)
        calculate_vesting_state(schedule, balance, 1700000000 + 78840000)
        # VestingState(vested_now=25_000 * 10**18, claimable_now=25_000 * 10**18)
    """
    vested = calculate_vested_amount(schedule, balance.initial, now)
    return VestingState(
        vested_now=vested,
        claimable_now=max(0, vested - balance.claimed),
    )


def calculate_vesting_progress(schedule: VestingSchedule, now: int) -> Decimal:
    """
    Unlocked fraction as a Decimal in [0, 1], truncated to VESTING_PROGRESS_PLACES.

    For display. Amount calculations use calculate_vesting_fraction().
    """
    numerator, denominator = calculate_vesting_fraction(schedule, now)
    scale = 10**VESTING_PROGRESS_PLACES
    scaled = numerator * scale // denominator
    return (Decimal(scaled) / Decimal(scale)).quantize(
        Decimal(1).scaleb(-VESTING_PROGRESS_PLACES), rounding=ROUND_DOWN
    )


def calculate_daily_unlock(schedule: VestingSchedule, initial: int) -> Optional[int]:
    """
    Base units unlocking per day over the window, or None for a zero-length window.
    """
    if schedule.period_seconds == 0:
        return None
    return initial * SECONDS_PER_DAY // schedule.period_seconds


def calculate_suggested_claim(claimable_now: int, cap: Optional[int] = None) -> int:
    """
    Default amount to pre-fill for a claim.

    min(cap, claimable_now) when a cap is configured, else claimable_now.
    Zero when nothing is claimable. The cap shapes the suggestion only;
    it never limits what a holder may submit.
    """
    if claimable_now <= 0:
        return 0
    if cap is None:
        return claimable_now
    return min(cap, claimable_now)


def compute_vesting_state(snapshot: LedgerSnapshot, now: int) -> VestingState:
    """Compute the vesting state of a snapshot's holder at `now`."""
    return calculate_vesting_state(snapshot.schedule, snapshot.balance, now)
