"""
Coupon Id Conformance Tests

INVARIANT: No two coupons share an id.

    ∀ coupons C1 ≠ C2: C1.id ≠ C2.id

Ids are `<deal id>-<random base36 suffix>`. Candidates that collide with
an existing id are redrawn, so uniqueness holds even for short suffixes.
"""

import random

from hypothesis import given, settings
from hypothesis import strategies as st

from dealchain import CouponLedger, DealInventory

from tests.conformance.strategies import market
from tests.fakes import deal_data


class TestCouponIdProperties:
    """Property-based coupon id tests."""

    @given(st.integers(min_value=0, max_value=2**32), st.integers(min_value=2, max_value=4))
    @settings(max_examples=30)
    def test_short_ids_still_unique(self, seed, length):
        """
        PROPERTY: With a small id space, redraws keep every id distinct.
        """
        inventory = DealInventory()
        inventory.publish(deal_data(total_mint=200))
        coupons = CouponLedger(inventory, rng=random.Random(seed), id_length=length)

        ids = [coupons.purchase(1, "alice").id for _ in range(200)]

        assert len(set(ids)) == 200
        assert all(i.startswith("1-") and len(i) == 2 + length for i in ids)

    @given(st.integers(min_value=0, max_value=2**32))
    @settings(max_examples=20)
    def test_ids_unique_across_deals(self, seed):
        """
        PROPERTY: Coupons of different deals never share an id.
        """
        ledger = market([5, 5, 5], seed=seed)
        ids = [
            ledger.buy_coupon(deal_id).value.id
            for deal_id in (1, 2, 3) for _ in range(5)
        ]
        assert len(set(ids)) == 15
        for deal_id in (1, 2, 3):
            assert sum(i.startswith(f"{deal_id}-") for i in ids) == 5


class TestCouponIdExamples:

    def test_ten_thousand_purchases_of_one_deal(self):
        inventory = DealInventory()
        inventory.publish(deal_data(total_mint=10_000))
        coupons = CouponLedger(inventory, rng=random.Random(2025))

        ids = [coupons.purchase(1, f"user{i % 97}").id for i in range(10_000)]

        assert len(set(ids)) == 10_000
        assert inventory.get(1).sold == 10_000
        assert len(coupons) == 10_000

    def test_unseeded_ids_unique(self):
        inventory = DealInventory()
        inventory.publish(deal_data(total_mint=1_000))
        coupons = CouponLedger(inventory)
        ids = {coupons.purchase(1, "alice").id for _ in range(1_000)}
        assert len(ids) == 1_000
