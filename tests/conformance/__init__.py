"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the marketplace ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. mint_cap.py - 0 <= sold <= total_mint under any purchase sequence
2. listing_pairing.py - A coupon is LISTED iff exactly one listing references it
3. state_machine.py - Legal coupon transitions only; USED is terminal
4. atomicity.py - Rejected operations change nothing
5. coupon_ids.py - Coupon ids never collide

These tests use hypothesis for property-based testing.
"""
