"""
listings.py - Marketplace listing book

ListingBook exclusively owns Listing records. Every coupon status change it
needs goes through CouponLedger, so a Listing exists exactly while its
coupon is LISTED:

    list():  CouponLedger.mark_listed()           + insert Listing
    buy():   CouponLedger.transfer_to_new_owner() + remove Listing

Both steps of each pair happen in one call, validated before anything is
mutated.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .core import (
    Coupon, Identity, Listing,
    InvalidPrice, InvalidState, ListingNotFound, CouponStatus,
    to_decimal,
)
from .coupons import CouponLedger


class ListingBook:
    """
    Open resale offers, most recent first, at most one per coupon.

    Args:
        coupons: The CouponLedger that owns the listed coupons
        listings: Listings restored from storage
    """

    def __init__(self, coupons: CouponLedger, listings: Optional[Iterable[Listing]] = None):
        self.coupons = coupons
        self._listings: List[Listing] = []
        for listing in listings or ():
            if self.get(listing.coupon_id) is not None:
                raise ValueError(f"Duplicate listing for coupon {listing.coupon_id}")
            self._listings.append(listing)

    # ========================================================================
    # READ
    # ========================================================================

    def get(self, coupon_id: str) -> Optional[Listing]:
        """Return the open listing for a coupon, or None."""
        for listing in self._listings:
            if listing.coupon_id == coupon_id:
                return listing
        return None

    def list_open(self) -> Tuple[Listing, ...]:
        """All open listings, most recent first."""
        return tuple(self._listings)

    def list_by_seller(self, username: str) -> Tuple[Listing, ...]:
        return tuple(l for l in self._listings if l.seller.username == username)

    def __len__(self) -> int:
        return len(self._listings)

    def __contains__(self, coupon_id: object) -> bool:
        return self.get(coupon_id) is not None

    # ========================================================================
    # MUTATE
    # ========================================================================

    def list(self, coupon_id: str, seller: Identity, resale_price: Decimal) -> Listing:
        """
        Put an ACTIVE coupon up for resale.

        Args:
            coupon_id: Coupon to sell
            seller: Seller identity snapshot
            resale_price: Asking price, must be > 0

        Returns:
            The new Listing

        Raises:
            InvalidPrice: If resale_price <= 0
            CouponNotFound: If the coupon does not exist
            InvalidState: If the coupon is not ACTIVE or the seller does not hold it
        """
        try:
            price = to_decimal(resale_price, 'resale_price')
        except ValueError as e:
            raise InvalidPrice(str(e)) from None
        if price <= 0:
            raise InvalidPrice(f"Resale price must be positive, got {price}")
        if self.get(coupon_id) is not None:
            raise InvalidState(f"Coupon {coupon_id} already has an open listing")
        current = self.coupons.get(coupon_id)
        if current is not None and current.owner != seller.username:
            raise InvalidState(
                f"Coupon {coupon_id} is held by {current.owner}, not {seller.username}"
            )

        listed = self.coupons.mark_listed(coupon_id)
        listing = Listing(
            coupon=listed,
            seller=seller,
            resale_price=price,
            listed_at=self.coupons.clock(),
        )
        self._listings.insert(0, listing)
        return listing

    def buy(self, coupon_id: str, buyer: str) -> Tuple[Coupon, Listing]:
        """
        Buy a listed coupon.

        Returns:
            (coupon, listing): the coupon now ACTIVE and owned by buyer, and
            the removed listing (seller and price paid).

        Raises:
            ListingNotFound: If no open listing references coupon_id
        """
        if not buyer or not buyer.strip():
            raise ValueError("buyer cannot be empty")
        listing = self.get(coupon_id)
        if listing is None:
            raise ListingNotFound(f"No open listing for coupon {coupon_id}")
        current = self.coupons.get(coupon_id)
        if current is None or current.status is not CouponStatus.LISTED:
            # A listing without a LISTED coupon breaks the pairing; refuse
            # rather than transfer.
            raise InvalidState(f"Coupon {coupon_id} is not listed")

        coupon = self.coupons.transfer_to_new_owner(coupon_id, buyer)
        self._listings.remove(listing)
        return coupon, listing

    def drop(self, coupon_id: str) -> Optional[Listing]:
        """Remove a listing without touching its coupon. Reconciliation only."""
        listing = self.get(coupon_id)
        if listing is not None:
            self._listings.remove(listing)
        return listing

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def to_records(self) -> List[Dict[str, Any]]:
        return [listing.to_dict() for listing in self._listings]

    @staticmethod
    def listings_from_records(records: Optional[Iterable[Mapping[str, Any]]]) -> List[Listing]:
        return [Listing.from_dict(r) for r in records or ()]

    def __repr__(self) -> str:
        return f"ListingBook({len(self._listings)} open)"
