"""
Listing Pairing Conformance Tests

INVARIANT: A coupon is LISTED iff exactly one open listing references it.

    ∀ coupon C:
        C.status = LISTED ⟺ |{L ∈ listings : L.coupon_id = C.id}| = 1
    ∀ listing L:
        coupon(L).status = LISTED

list() and buy() change the status and the listing book in one call.
"""

from decimal import Decimal

from hypothesis import given, settings

from dealchain import CouponStatus

from tests.conformance.strategies import market, mint_caps, operations
from tests.fakes import run_operation


def assert_paired(ledger):
    listed = {c.id for c in ledger.coupons.list() if c.status is CouponStatus.LISTED}
    referenced = [l.coupon_id for l in ledger.open_listings()]
    assert len(referenced) == len(set(referenced))
    assert listed == set(referenced)


class TestListingPairingProperties:
    """Property-based listing/status pairing tests."""

    @given(mint_caps, operations)
    @settings(max_examples=150)
    def test_pairing_holds_after_every_operation(self, caps, ops):
        """
        PROPERTY: After each operation the LISTED set equals the set of
        listed coupon ids, with no coupon listed twice.
        """
        ledger = market(caps)
        coupon_ids = []
        for op in ops:
            run_operation(ledger, op, coupon_ids)
            assert_paired(ledger)

        assert ledger.verify_invariants()['valid']

    @given(mint_caps, operations)
    @settings(max_examples=50)
    def test_listing_snapshot_is_listed_and_priced(self, caps, ops):
        """
        PROPERTY: Every open listing holds a LISTED snapshot of its coupon,
        was made by the coupon's holder, and has a strictly positive price.
        """
        ledger = market(caps)
        coupon_ids = []
        for op in ops:
            run_operation(ledger, op, coupon_ids)

        for listing in ledger.open_listings():
            coupon = ledger.get_coupon(listing.coupon_id)
            assert listing.coupon.status is CouponStatus.LISTED
            assert listing.coupon.owner == coupon.owner
            assert listing.seller.username == coupon.owner
            assert listing.resale_price > Decimal("0")


class TestListingPairingExamples:

    def test_list_then_buy(self):
        ledger = market([1])
        coupon = ledger.buy_coupon(1, buyer="alice").value

        ledger.list_coupon(coupon.id, Decimal("45"))
        assert_paired(ledger)
        assert ledger.get_coupon(coupon.id).status is CouponStatus.LISTED

        ledger.buy_listing(coupon.id, buyer="bob")
        assert_paired(ledger)
        assert ledger.open_listings() == ()
