"""
claim_example.py - Vesting Claim Walkthrough

This tutorial drives a ClaimSession against the in-process vesting ledger and
shows what a holder sees at each step of the five-year unlock.

THE CLAIM CYCLE:
================

1. connect()  - request account access, then read the ledger
   - Schedule, proven balance and unclaimed balance are read together
   - The snapshot is published only when all three reads have joined

2. claim()    - submit a claim and wait for it to be mined
   - Only one claim may be in flight per session
   - The local limit check is advisory; the ledger has the final word
   - After mining, the ledger is read again

3. refresh()  - re-read on request, e.g. after time has passed

SCENARIO: Early Contributor Allocation
======================================

A contributor was allocated 50,000 tokens vesting linearly over five years
from 2023-11-14. They check in halfway, claim the suggested 10,000, try to
claim more than has unlocked, and come back at the end for the rest.

Run:
    python claim_example.py
"""

import asyncio

from vesting import (
    ClaimSession, InMemoryVestingLedger, InMemoryWallet, VestingConfig,
    TransactionReverted, build_view, format_units,
)


TOKEN = 10**18
HOLDER = "0x5a0b54d5dc17e0aadc383d2db43b0a0d3e029c4c"
START = 1_700_000_000
PERIOD = 5 * 365 * 86400


def print_view(session: ClaimSession, title: str) -> None:
    view = build_view(session)
    print(f"\n--- {title} ---")
    print(f"  Status:          {view.status}")
    print(f"  Account:         {view.address} ({view.network})")
    print(f"  Vesting:         {view.vesting_start} → {view.vesting_end}")
    print(f"  Period:          {view.period}")
    print(f"  Progress:        {view.progress}")
    print(f"  Allocation:      {view.initial}")
    print(f"  Claimed:         {view.claimed}")
    print(f"  Claimable now:   {view.claimable_display}")
    print(f"  Ledger reports:  {view.ledger_unclaimed}")
    print(f"  Daily unlock:    {view.daily_unlock}")
    print(f"  Suggested claim: {view.suggested_claim}")
    if view.tx_hash != "—":
        print(f"  Last tx:         {view.tx_hash}")
    if view.error != "—":
        print(f"  Error:           {view.error}")


async def walkthrough() -> bool:
    # =========================================================================
    # SETUP
    # =========================================================================
    ledger = InMemoryVestingLedger("anvl", START, PERIOD, initial_time=START - 7 * 86400)
    ledger.allocate(HOLDER, 50_000 * TOKEN)

    config = VestingConfig.from_mapping({
        "ledgerAddress": "0x" + "ef" * 20,
        "tokenDecimals": 18,
        "defaultClaimCapBaseUnits": 10_000 * TOKEN,
    })
    session = ClaimSession(
        config,
        ledger,
        InMemoryWallet([HOLDER], chain_id=1),
        clock=lambda: ledger.current_time,
        verbose=True,
    )

    # =========================================================================
    # STEP 1: Connect a week before the window opens
    # =========================================================================
    await session.connect()
    print_view(session, "One week before unlock")

    # =========================================================================
    # STEP 2: Halfway through, claim the suggested amount
    # =========================================================================
    ledger.advance_time(START + PERIOD // 2)
    await session.refresh()
    print_view(session, "Halfway")

    suggestion = session.suggested_claim()
    receipt = await session.claim(suggestion)
    print(f"\nClaimed {format_units(receipt.amount_base_units, 18)} tokens in {receipt.tx_hash}")
    print_view(session, "After first claim")

    # =========================================================================
    # STEP 3: Ask for more than has unlocked
    # =========================================================================
    too_much = session.vesting_state().claimable_now + TOKEN
    try:
        await session.claim(too_much)
    except TransactionReverted as exc:
        print(f"\nLedger rejected the claim: {exc.reason}")
    print_view(session, "After reverted claim")
    session.acknowledge_error()

    # =========================================================================
    # STEP 4: Come back at the end of the window and drain the allocation
    # =========================================================================
    ledger.advance_time(START + PERIOD)
    await session.refresh()
    remaining = format_units(session.vesting_state().claimable_now, 18)
    await session.claim_amount(remaining)
    print_view(session, "Fully claimed")

    print(f"\nLedger: {ledger}")
    for record in ledger.transaction_log:
        print(f"  #{record.sequence_number} {record.tx_hash[:18]}… "
              f"{format_units(record.amount, 18)} tokens at {record.timestamp}")

    session.disconnect()
    return ledger.total_claimed() == 50_000 * TOKEN


def main() -> bool:
    print("=" * 70)
    print("VESTING CLAIM WALKTHROUGH")
    print("=" * 70)
    ok = asyncio.run(walkthrough())
    print("\n✓ Allocation fully claimed" if ok else "\n✗ Allocation not fully claimed")
    return ok


if __name__ == "__main__":
    success = main()
    exit(0 if success else 1)
