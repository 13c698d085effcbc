"""
coupons.py - Coupon records and their status state machine

CouponLedger exclusively owns Coupon records. It reads DealInventory to mint
coupons and mutates a deal only through DealInventory.increment_sold().

State machine (per coupon):

    ACTIVE --redeem-----------------> USED      (terminal)
    ACTIVE --mark_listed------------> LISTED
    LISTED --transfer_to_new_owner--> ACTIVE    (new owner, same id)

Every other transition raises InvalidState and leaves the coupon unchanged.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
import random

from .core import (
    Coupon, CouponStatus,
    CouponNotFound, DealNotFound, InvalidState, CapacityExceeded, SoldOut,
    CouponIdExhausted,
    COUPON_ID_ALPHABET, DEFAULT_COUPON_ID_LENGTH, MAX_COUPON_ID_ATTEMPTS,
)
from .inventory import DealInventory


def generate_coupon_id(
    deal_id: int,
    rng: Optional[random.Random] = None,
    length: int = DEFAULT_COUPON_ID_LENGTH,
) -> str:
    """
    Build a coupon id: the deal id, a dash, and `length` base36 characters.

    Uniqueness is probabilistic only. CouponLedger checks candidates against
    existing ids before using one.
    """
    if length < 1:
        raise ValueError(f"coupon id length must be positive, got {length}")
    source = rng or random
    suffix = "".join(source.choice(COUPON_ID_ALPHABET) for _ in range(length))
    return f"{deal_id}-{suffix}"


class CouponLedger:
    """
    Owner of all coupons, in purchase order.

    Args:
        inventory: The deal catalog coupons are minted from
        coupons: Coupons restored from storage
        clock: Returns the current time (default: datetime.now)
        rng: Random source for coupon ids (seed it for reproducible ids)
        id_length: Length of the random coupon id suffix
    """

    def __init__(
        self,
        inventory: DealInventory,
        coupons: Optional[Iterable[Coupon]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        id_length: int = DEFAULT_COUPON_ID_LENGTH,
    ):
        if id_length < 1:
            raise ValueError(f"id_length must be positive, got {id_length}")
        self.inventory = inventory
        self.clock = clock or datetime.now
        self.rng = rng or random.Random()
        self.id_length = id_length
        self._coupons: Dict[str, Coupon] = {}
        for coupon in coupons or ():
            if coupon.id in self._coupons:
                raise ValueError(f"Duplicate coupon id {coupon.id}")
            self._coupons[coupon.id] = coupon

    # ========================================================================
    # READ
    # ========================================================================

    def get(self, coupon_id: str) -> Optional[Coupon]:
        return self._coupons.get(coupon_id)

    def list(self) -> Tuple[Coupon, ...]:
        return tuple(self._coupons.values())

    def list_by_owner(self, owner: str) -> Tuple[Coupon, ...]:
        return tuple(c for c in self._coupons.values() if c.owner == owner)

    def list_by_owner_and_status(self, owner: str, status: CouponStatus) -> Tuple[Coupon, ...]:
        """Coupons held by owner in the given status, in purchase order."""
        return tuple(
            c for c in self._coupons.values()
            if c.owner == owner and c.status is status
        )

    def count_for_deal(self, deal_id: int) -> int:
        """Number of coupons ever minted from a deal."""
        return sum(1 for c in self._coupons.values() if c.deal.id == deal_id)

    def __len__(self) -> int:
        return len(self._coupons)

    def __contains__(self, coupon_id: object) -> bool:
        return coupon_id in self._coupons

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def purchase(self, deal_id: int, buyer: str) -> Coupon:
        """
        Mint a new ACTIVE coupon for buyer.

        The coupon id is chosen before the inventory is touched, so once
        increment_sold() succeeds nothing else can fail: either sold is
        incremented and the coupon stored, or neither happens.

        Raises:
            DealNotFound: If the deal does not exist
            SoldOut: If the deal has reached its mint cap
        """
        if not buyer or not buyer.strip():
            raise ValueError("buyer cannot be empty")
        deal = self.inventory.get(deal_id)
        if deal is None:
            raise DealNotFound(f"Deal {deal_id} not found")
        if deal.is_sold_out:
            raise SoldOut(f"Deal {deal_id} is sold out ({deal.sold}/{deal.total_mint})")

        coupon_id = self._new_coupon_id(deal_id)
        try:
            minted_from = self.inventory.increment_sold(deal_id)
        except CapacityExceeded as e:
            raise SoldOut(str(e)) from e

        coupon = Coupon(
            id=coupon_id,
            deal=minted_from,
            owner=buyer,
            purchase_date=self.clock(),
            status=CouponStatus.ACTIVE,
        )
        self._coupons[coupon.id] = coupon
        return coupon

    def redeem(self, coupon_id: str) -> Coupon:
        """
        Mark an ACTIVE coupon as USED.

        Raises:
            CouponNotFound: If the id is unknown
            InvalidState: If the coupon is USED or LISTED
        """
        coupon = self._require(coupon_id)
        self._require_status(coupon, CouponStatus.ACTIVE, "redeem")
        return self._store(coupon.with_status(CouponStatus.USED))

    def mark_listed(self, coupon_id: str) -> Coupon:
        """
        Move an ACTIVE coupon to LISTED.

        Only ListingBook.list() calls this, paired with creating the Listing.
        """
        coupon = self._require(coupon_id)
        self._require_status(coupon, CouponStatus.ACTIVE, "list")
        return self._store(coupon.with_status(CouponStatus.LISTED))

    def transfer_to_new_owner(self, coupon_id: str, new_owner: str) -> Coupon:
        """
        Hand a LISTED coupon to its buyer: ACTIVE again, new owner,
        refreshed purchase_date, same id.

        Only ListingBook.buy() calls this, paired with removing the Listing.
        """
        if not new_owner or not new_owner.strip():
            raise ValueError("new_owner cannot be empty")
        coupon = self._require(coupon_id)
        self._require_status(coupon, CouponStatus.LISTED, "transfer")
        return self._store(replace(
            coupon,
            owner=new_owner,
            status=CouponStatus.ACTIVE,
            purchase_date=self.clock(),
        ))

    def revert_listing(self, coupon_id: str) -> Coupon:
        """Return a LISTED coupon whose listing was lost to ACTIVE, same owner."""
        coupon = self._require(coupon_id)
        self._require_status(coupon, CouponStatus.LISTED, "revert")
        return self._store(coupon.with_status(CouponStatus.ACTIVE))

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _require(self, coupon_id: str) -> Coupon:
        coupon = self._coupons.get(coupon_id)
        if coupon is None:
            raise CouponNotFound(f"Coupon {coupon_id} not found")
        return coupon

    @staticmethod
    def _require_status(coupon: Coupon, expected: CouponStatus, action: str) -> None:
        if coupon.status is not expected:
            raise InvalidState(
                f"Cannot {action} coupon {coupon.id}: status is {coupon.status.value}, "
                f"expected {expected.value}"
            )

    def _store(self, coupon: Coupon) -> Coupon:
        self._coupons[coupon.id] = coupon
        return coupon

    def _new_coupon_id(self, deal_id: int) -> str:
        for _ in range(MAX_COUPON_ID_ATTEMPTS):
            candidate = generate_coupon_id(deal_id, self.rng, self.id_length)
            if candidate not in self._coupons:
                return candidate
        raise CouponIdExhausted(
            f"No unused coupon id for deal {deal_id} after {MAX_COUPON_ID_ATTEMPTS} attempts"
        )

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def to_records(self) -> List[Dict[str, Any]]:
        return [coupon.to_dict() for coupon in self._coupons.values()]

    @staticmethod
    def coupons_from_records(records: Optional[Iterable[Mapping[str, Any]]]) -> List[Coupon]:
        return [Coupon.from_dict(r) for r in records or ()]

    def __repr__(self) -> str:
        counts = {status.value: 0 for status in CouponStatus}
        for coupon in self._coupons.values():
            counts[coupon.status.value] += 1
        summary = ", ".join(f"{k}={v}" for k, v in counts.items())
        return f"CouponLedger({len(self._coupons)} coupons: {summary})"
