"""
test_core_types.py - Unit tests for core records and result types

Tests:
- Deal construction and the sold/total_mint invariant
- Coupon, Listing, Identity, UserProfile validation
- Dict conversion of records as stored by the ledger
- OperationResult semantics
- Error hierarchy
"""

from datetime import datetime
from decimal import Decimal

import pytest

from dealchain import (
    Category, Coupon, CouponStatus, Deal, Identity, Listing, UserProfile,
    OperationResult,
    LedgerError, NotFound, DealNotFound, CouponNotFound, ListingNotFound,
    CapacityExceeded, SoldOut, InvalidPrice, InvalidState,
)

from tests.fakes import deal_data


def _deal(**overrides) -> Deal:
    data = deal_data(**overrides)
    data.setdefault('id', 1)
    return Deal.from_dict(data)


class TestDeal:
    """Tests for Deal records."""

    def test_from_dict_coerces_fields(self):
        deal = _deal()
        assert deal.id == 1
        assert deal.category is Category.RESTAURANTS
        assert deal.price == Decimal("50")
        assert deal.original_price == Decimal("100")
        assert deal.expiry_date == datetime(2025, 12, 31, 23, 59, 59)
        assert deal.sold == 0

    def test_accepts_utc_z_suffix(self):
        deal = _deal(expiry_date="2025-06-01T00:00:00Z")
        assert deal.expiry_date.utcoffset().total_seconds() == 0

    def test_sold_above_total_mint_rejected(self):
        with pytest.raises(ValueError, match="sold"):
            _deal(total_mint=2, sold=3)

    def test_negative_sold_rejected(self):
        with pytest.raises(ValueError, match="sold"):
            _deal(sold=-1)

    def test_zero_mint_is_allowed_and_sold_out(self):
        deal = _deal(total_mint=0)
        assert deal.is_sold_out
        assert deal.remaining == 0

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError, match="Unknown category"):
            _deal(category="Groceries")

    def test_non_numeric_price_rejected(self):
        with pytest.raises(ValueError, match="price"):
            _deal(price="fifty")

    def test_empty_title_rejected(self):
        with pytest.raises(ValueError, match="title"):
            _deal(title="   ")

    def test_non_positive_id_rejected(self):
        with pytest.raises(ValueError, match="id"):
            _deal(id=0)

    def test_deal_is_frozen(self):
        deal = _deal()
        with pytest.raises(AttributeError):
            deal.sold = 5

    def test_to_dict_is_json_friendly(self):
        stored = _deal().to_dict()
        assert stored['category'] == "Restaurants"
        assert stored['price'] == "50"
        assert stored['expiry_date'] == "2025-12-31T23:59:59"
        assert Deal.from_dict(stored) == _deal()


class TestCoupon:
    """Tests for Coupon records."""

    def test_defaults_to_active(self):
        coupon = Coupon("1-abc", _deal(), "alice", datetime(2025, 1, 1))
        assert coupon.status is CouponStatus.ACTIVE
        assert coupon.deal_id == 1

    def test_status_must_be_enum(self):
        with pytest.raises(ValueError, match="status"):
            Coupon("1-abc", _deal(), "alice", datetime(2025, 1, 1), status="active")

    def test_owner_required(self):
        with pytest.raises(ValueError, match="owner"):
            Coupon("1-abc", _deal(), "", datetime(2025, 1, 1))

    def test_with_status_returns_new_record(self):
        coupon = Coupon("1-abc", _deal(), "alice", datetime(2025, 1, 1))
        used = coupon.with_status(CouponStatus.USED)
        assert used.status is CouponStatus.USED
        assert coupon.status is CouponStatus.ACTIVE
        assert used.id == coupon.id

    def test_round_trip_keeps_deal_snapshot(self):
        coupon = Coupon("1-abc", _deal(sold=4), "alice", datetime(2025, 1, 1), CouponStatus.LISTED)
        restored = Coupon.from_dict(coupon.to_dict())
        assert restored == coupon
        assert restored.deal.sold == 4


class TestListingAndIdentity:

    def test_listing_exposes_coupon_id(self):
        coupon = Coupon("1-abc", _deal(), "alice", datetime(2025, 1, 1), CouponStatus.LISTED)
        listing = Listing(coupon, Identity("alice"), Decimal("45"), datetime(2025, 1, 2))
        assert listing.coupon_id == "1-abc"
        assert Listing.from_dict(listing.to_dict()) == listing

    def test_listing_price_must_be_decimal(self):
        coupon = Coupon("1-abc", _deal(), "alice", datetime(2025, 1, 1), CouponStatus.LISTED)
        with pytest.raises(ValueError, match="Decimal"):
            Listing(coupon, Identity("alice"), 45, datetime(2025, 1, 2))

    @pytest.mark.parametrize("price", [Decimal("0"), Decimal("-1")])
    def test_listing_price_must_be_positive(self, price):
        coupon = Coupon("1-abc", _deal(), "alice", datetime(2025, 1, 1), CouponStatus.LISTED)
        with pytest.raises(ValueError, match="positive"):
            Listing(coupon, Identity("alice"), price, datetime(2025, 1, 2))

    def test_stored_listing_with_bad_price_rejected(self):
        coupon = Coupon("1-abc", _deal(), "alice", datetime(2025, 1, 1), CouponStatus.LISTED)
        record = Listing(coupon, Identity("alice"), Decimal("45"), datetime(2025, 1, 2)).to_dict()
        record['resale_price'] = "-1"
        with pytest.raises(ValueError, match="positive"):
            Listing.from_dict(record)

    def test_identity_requires_username(self):
        with pytest.raises(ValueError):
            Identity(" ")


class TestUserProfile:

    def test_default_profile(self):
        profile = UserProfile()
        assert profile.username == "user123"
        assert profile.preferred_category is None

    def test_literal_none_category_means_no_preference(self):
        profile = UserProfile.from_dict({'username': 'bob', 'preferred_category': 'None'})
        assert profile.preferred_category is None

    def test_identity_snapshot(self):
        profile = UserProfile(username="bob", avatar="a.png")
        assert profile.identity == Identity("bob", "a.png")


class TestOperationResult:

    def test_success(self):
        result = OperationResult.success(3)
        assert result.ok
        assert bool(result) is True
        assert result.unwrap() == 3

    def test_failure_unwrap_raises_stored_error(self):
        error = SoldOut("gone")
        result = OperationResult.failure(error)
        assert not result.ok
        assert result.error is error
        with pytest.raises(SoldOut):
            result.unwrap()


class TestErrorHierarchy:

    def test_not_found_family(self):
        for cls in (DealNotFound, CouponNotFound, ListingNotFound):
            assert issubclass(cls, NotFound)
            assert issubclass(cls, LedgerError)

    def test_sold_out_is_capacity_exceeded(self):
        assert issubclass(SoldOut, CapacityExceeded)

    def test_other_errors_are_ledger_errors(self):
        assert issubclass(InvalidState, LedgerError)
        assert issubclass(InvalidPrice, LedgerError)
