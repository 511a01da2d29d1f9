"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vesting claim client.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_units_round_trip.py - Exact fixed-point conversion
2. test_vesting_invariants.py - Bounds, monotonicity and flooring of vesting
3. test_claim_serialization.py - At most one claim in flight per session
4. test_snapshot_atomicity.py - Read cycles publish all figures or none

These tests use hypothesis for property-based testing.
"""
