"""
ledger.py - Session facade over the marketplace ledger

The Ledger class is the explicit session object every caller holds. It owns
the three components and is the only place that persists and notifies.

Key responsibilities:
    - Loads DealInventory, CouponLedger and ListingBook from a DurableStore
      at session start and repairs crash leftovers (reconcile)
    - Runs each compound operation as one method, so both halves of a
      coupled mutation happen together or not at all
    - Persists the touched collections after each applied operation,
      coupons first
    - Emits exactly one notification per completed operation
    - Returns OperationResult instead of raising for user-facing failures
    - Always logs: every operation lands in the session history
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import random

from .core import (
    # Types
    Category, Coupon, CouponStatus, Deal, Identity, Listing, UserProfile,
    OperationRecord, OperationResult, Severity,
    DurableStore, NotificationBus,
    # Constants
    DEALS_KEY, COUPONS_KEY, LISTINGS_KEY, PROFILE_KEY,
    DEFAULT_COUPON_ID_LENGTH,
    # Exceptions
    LedgerError, InvalidState,
)
from .coupons import CouponLedger
from .inventory import DealInventory
from .listings import ListingBook
from .notifications import NotificationCenter
from .storage import MemoryStore


PURCHASE_FAILED_MESSAGE = "Failed to buy coupon. It might be sold out."
PROFILE_FIELDS = frozenset({'username', 'avatar', 'bio', 'preferred_category'})


class Ledger:
    """
    Coupon marketplace session.

    Thread Safety:
        Not thread-safe. Operations are expected to run one at a time from
        user-triggered events.

    Example:
        ledger = Ledger(JsonFileStore("./data"), verbose=False)
        deal = ledger.publish_deal({...}).unwrap()
        coupon = ledger.buy_coupon(deal.id).unwrap()
        ledger.list_coupon(coupon.id, Decimal("45"))
        ledger.close()
    """

    def __init__(
        self,
        store: Optional[DurableStore] = None,
        bus: Optional[NotificationBus] = None,
        profile: Optional[UserProfile] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        coupon_id_length: int = DEFAULT_COUPON_ID_LENGTH,
        verbose: bool = True,
    ):
        """
        Open a session from the store's current snapshots.

        Args:
            store: Durable store (default: a fresh MemoryStore)
            bus: Notification sink (default: a NotificationCenter on this clock)
            profile: Session user; overrides any stored profile
            clock: Returns the current time (default: datetime.now)
            rng: Random source for coupon ids
            coupon_id_length: Length of the random coupon id suffix
            verbose: Print one status line per operation
        """
        self.store = store if store is not None else MemoryStore()
        self.clock = clock or datetime.now
        self.bus = bus if bus is not None else NotificationCenter(clock=self.clock)
        self.verbose = verbose
        self.history: List[OperationRecord] = []
        self._next_sequence = 0

        stored_profile = self.store.load(PROFILE_KEY)
        if profile is not None:
            self.profile = profile
        elif stored_profile:
            self.profile = UserProfile.from_dict(stored_profile)
        else:
            self.profile = UserProfile()

        self.deals = DealInventory.from_records(self.store.load(DEALS_KEY, []))
        self.coupons = CouponLedger(
            self.deals,
            CouponLedger.coupons_from_records(self.store.load(COUPONS_KEY, [])),
            clock=self.clock,
            rng=rng,
            id_length=coupon_id_length,
        )

        listings, duplicates = _dedupe_listings(
            ListingBook.listings_from_records(self.store.load(LISTINGS_KEY, []))
        )
        self.listings = ListingBook(self.coupons, listings)

        self.repairs: List[Dict[str, Any]] = [
            {'repair': 'drop_duplicate_listing', 'coupon_id': l.coupon_id} for l in duplicates
        ]
        self.repairs.extend(self._reconcile())
        if self.repairs:
            if self.verbose:
                for repair in self.repairs:
                    print(f"⚠️  REPAIRED: {repair}")
            self.flush()

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self.clock()

    @property
    def identity(self) -> Identity:
        return self.profile.identity

    def get_deal(self, deal_id: int) -> Optional[Deal]:
        return self.deals.get(deal_id)

    def list_deals(self) -> Tuple[Deal, ...]:
        return self.deals.list()

    def search_deals(
        self,
        term: str = "",
        category: Optional[Category] = None,
        max_price: Optional[Decimal] = None,
        location: Optional[str] = None,
    ) -> Tuple[Deal, ...]:
        return self.deals.search(term, category, max_price, location)

    def get_coupon(self, coupon_id: str) -> Optional[Coupon]:
        return self.coupons.get(coupon_id)

    def my_coupons(self, status: Optional[CouponStatus] = None) -> Tuple[Coupon, ...]:
        """The session user's coupons, optionally filtered by status."""
        if status is None:
            return self.coupons.list_by_owner(self.profile.username)
        return self.coupons.list_by_owner_and_status(self.profile.username, status)

    def open_listings(self) -> Tuple[Listing, ...]:
        return self.listings.list_open()

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def publish_deal(self, deal_data: Mapping[str, Any]) -> OperationResult[Deal]:
        """
        Publish a new deal to the front of the catalog.

        Notifies about a deal in the user's preferred category with the
        preference message, any other deal with a plain confirmation.
        """
        deal = self.deals.publish(deal_data)
        self.store.save(DEALS_KEY, self.deals.to_records())

        preferred = self.profile.preferred_category
        if preferred is not None and deal.category is preferred:
            message = f'New deal in your preferred category: "{deal.title}"'
            severity = Severity.INFO
        else:
            message = f'Deal "{deal.title}" published.'
            severity = Severity.SUCCESS
        return self._applied("publish_deal", str(deal.id), deal, message, severity)

    def buy_coupon(self, deal_id: int, buyer: Optional[str] = None) -> OperationResult[Coupon]:
        """Purchase one coupon of a deal for buyer (default: the session user)."""
        buyer = buyer or self.profile.username
        try:
            coupon = self.coupons.purchase(deal_id, buyer)
        except LedgerError as e:
            return self._rejected("buy_coupon", str(deal_id), e, PURCHASE_FAILED_MESSAGE)

        self.store.save(COUPONS_KEY, self.coupons.to_records())
        self.store.save(DEALS_KEY, self.deals.to_records())
        return self._applied(
            "buy_coupon", str(deal_id), coupon,
            f'Successfully purchased "{coupon.deal.title}"!', Severity.SUCCESS,
        )

    def use_coupon(self, coupon_id: str, holder: Optional[str] = None) -> OperationResult[Coupon]:
        """
        Redeem an ACTIVE coupon held by holder (default: the session user).

        Redeeming twice, or redeeming a coupon someone else holds, is rejected.
        """
        holder = holder or self.profile.username
        current = self.coupons.get(coupon_id)
        if current is not None and current.owner != holder:
            return self._rejected("use_coupon", coupon_id, InvalidState(
                f"Coupon {coupon_id} is held by {current.owner}, not {holder}"
            ))
        try:
            coupon = self.coupons.redeem(coupon_id)
        except LedgerError as e:
            return self._rejected("use_coupon", coupon_id, e)

        self.store.save(COUPONS_KEY, self.coupons.to_records())
        return self._applied("use_coupon", coupon_id, coupon, "Coupon marked as used.", Severity.INFO)

    def list_coupon(
        self,
        coupon_id: str,
        resale_price: Decimal,
        seller: Optional[Identity] = None,
    ) -> OperationResult[Listing]:
        """
        Put an ACTIVE coupon on the marketplace at resale_price.

        seller (default: the session identity) must be the coupon's holder.
        """
        seller = seller or self.identity
        try:
            listing = self.listings.list(coupon_id, seller, resale_price)
        except LedgerError as e:
            return self._rejected("list_coupon", coupon_id, e)

        self.store.save(COUPONS_KEY, self.coupons.to_records())
        self.store.save(LISTINGS_KEY, self.listings.to_records())
        return self._applied(
            "list_coupon", coupon_id, listing,
            f'Your coupon "{listing.coupon.deal.title}" is now listed!', Severity.SUCCESS,
        )

    def buy_listing(
        self,
        coupon_id: str,
        buyer: Optional[str] = None,
    ) -> OperationResult[Tuple[Coupon, Listing]]:
        """
        Buy a listed coupon.

        The value is (coupon, listing): the transferred coupon and the
        removed listing, whose seller and resale_price drive payment.
        """
        buyer = buyer or self.profile.username
        try:
            coupon, listing = self.listings.buy(coupon_id, buyer)
        except LedgerError as e:
            return self._rejected("buy_listing", coupon_id, e)

        self.store.save(COUPONS_KEY, self.coupons.to_records())
        self.store.save(LISTINGS_KEY, self.listings.to_records())
        return self._applied(
            "buy_listing", coupon_id, (coupon, listing),
            f'You bought "{coupon.deal.title}" from {listing.seller.username}!', Severity.SUCCESS,
        )

    def update_profile(self, **changes: Any) -> OperationResult[UserProfile]:
        """
        Merge changes into the session profile.

        Accepted fields: username, avatar, bio, preferred_category.

        Raises:
            ValueError: On unknown fields or invalid values
        """
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")
        merged = {**self.profile.to_dict(), **changes}
        self.profile = UserProfile.from_dict(merged)
        self.store.save(PROFILE_KEY, self.profile.to_dict())
        return self._applied(
            "update_profile", self.profile.username, self.profile,
            "Profile updated successfully!", Severity.SUCCESS,
        )

    # ========================================================================
    # INVARIANTS
    # ========================================================================

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the cross-entity invariants.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every invariant holds
            - 'discrepancies': List[Dict] - one entry per violation, each
              with an 'invariant' name plus the ids involved

        Example:
            result = ledger.verify_invariants()
            assert result['valid'], result['discrepancies']
        """
        discrepancies = []

        for deal in self.deals.list():
            if not 0 <= deal.sold <= deal.total_mint:
                discrepancies.append({
                    'invariant': 'sold_within_mint_cap',
                    'deal_id': deal.id, 'sold': deal.sold, 'total_mint': deal.total_mint,
                })
            minted = self.coupons.count_for_deal(deal.id)
            if minted > deal.sold:
                discrepancies.append({
                    'invariant': 'minted_recorded_in_sold',
                    'deal_id': deal.id, 'sold': deal.sold, 'minted': minted,
                })

        listing_counts: Dict[str, int] = {}
        for listing in self.listings.list_open():
            listing_counts[listing.coupon_id] = listing_counts.get(listing.coupon_id, 0) + 1
            coupon = self.coupons.get(listing.coupon_id)
            if coupon is None or coupon.status is not CouponStatus.LISTED:
                discrepancies.append({
                    'invariant': 'listing_requires_listed_coupon',
                    'coupon_id': listing.coupon_id,
                    'status': coupon.status.value if coupon else None,
                })

        for coupon in self.coupons.list():
            count = listing_counts.get(coupon.id, 0)
            if coupon.status is CouponStatus.LISTED and count != 1:
                discrepancies.append({
                    'invariant': 'listed_coupon_has_one_listing',
                    'coupon_id': coupon.id, 'listings': count,
                })

        return {
            'valid': len(discrepancies) == 0,
            'discrepancies': discrepancies,
        }

    def _reconcile(self) -> List[Dict[str, Any]]:
        """
        Repair what a crash between two key writes can leave behind.

        Writes go coupons first, so the possible leftovers are a LISTED
        coupon without its listing, a listing whose coupon already moved
        on, and minted coupons not yet counted in sold.
        """
        repairs = []

        for listing in self.listings.list_open():
            coupon = self.coupons.get(listing.coupon_id)
            if coupon is None or coupon.status is not CouponStatus.LISTED:
                self.listings.drop(listing.coupon_id)
                repairs.append({'repair': 'drop_orphan_listing', 'coupon_id': listing.coupon_id})

        for coupon in self.coupons.list():
            if coupon.status is CouponStatus.LISTED and coupon.id not in self.listings:
                self.coupons.revert_listing(coupon.id)
                repairs.append({'repair': 'revert_unlisted_coupon', 'coupon_id': coupon.id})

        for deal in self.deals.list():
            minted = self.coupons.count_for_deal(deal.id)
            if minted > deal.sold:
                updated = self.deals.raise_sold_to(deal.id, minted)
                repairs.append({
                    'repair': 'raise_sold', 'deal_id': deal.id,
                    'from': deal.sold, 'to': updated.sold,
                })

        return repairs

    # ========================================================================
    # SESSION
    # ========================================================================

    def flush(self) -> None:
        """Persist every collection, coupons first."""
        self.store.save(COUPONS_KEY, self.coupons.to_records())
        self.store.save(DEALS_KEY, self.deals.to_records())
        self.store.save(LISTINGS_KEY, self.listings.to_records())
        self.store.save(PROFILE_KEY, self.profile.to_dict())

    def close(self) -> None:
        self.flush()

    def __enter__(self) -> Ledger:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ========================================================================
    # OUTCOME REPORTING
    # ========================================================================

    def _record(self, operation: str, subject: str, ok: bool, detail: str = "") -> OperationRecord:
        record = OperationRecord(
            sequence=self._next_sequence,
            operation=operation,
            subject=subject,
            timestamp=self.clock(),
            ok=ok,
            detail=detail,
        )
        self._next_sequence += 1
        self.history.append(record)
        return record

    def _applied(
        self,
        operation: str,
        subject: str,
        value: Any,
        message: str,
        severity: Severity,
    ) -> OperationResult:
        self._record(operation, subject, ok=True)
        self.bus.emit(message, severity)
        if self.verbose:
            print(f"✓ APPLIED: {operation} {subject}")
        return OperationResult.success(value)

    def _rejected(
        self,
        operation: str,
        subject: str,
        error: LedgerError,
        message: Optional[str] = None,
    ) -> OperationResult:
        self._record(operation, subject, ok=False, detail=str(error))
        self.bus.emit(message or str(error), Severity.ERROR)
        if self.verbose:
            print(f"✗ REJECTED: {operation} {subject}: {error}")
        return OperationResult.failure(error)

    def __repr__(self) -> str:
        return (
            f"Ledger({len(self.deals)} deals, {len(self.coupons)} coupons, "
            f"{len(self.listings)} listings, user={self.profile.username})"
        )


def _dedupe_listings(listings: List[Listing]) -> Tuple[List[Listing], List[Listing]]:
    """Keep the first (most recent) listing per coupon; return (kept, dropped)."""
    kept: List[Listing] = []
    dropped: List[Listing] = []
    seen = set()
    for listing in listings:
        if listing.coupon_id in seen:
            dropped.append(listing)
        else:
            seen.add(listing.coupon_id)
            kept.append(listing)
    return kept, dropped
