"""
inventory.py - Deal catalog and mint counters

DealInventory exclusively owns Deal records. Its increment_sold() is the
single choke point that prevents over-minting: CouponLedger calls it
exactly once per successful purchase and never writes `sold` itself.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .core import (
    Deal, Category,
    DealNotFound, CapacityExceeded,
    to_category, to_decimal,
)


class DealInventory:
    """
    Catalog of deals, kept most-recent-first.

    Example:
        inventory = DealInventory()
        deal = inventory.publish({
            'title': 'Sushi Night', 'category': 'Restaurants',
            'price': '25', 'total_mint': 100,
            'expiry_date': '2025-12-31T00:00:00',
        })
        inventory.increment_sold(deal.id)
    """

    def __init__(self, deals: Optional[Iterable[Deal]] = None):
        self._deals: List[Deal] = []
        self._index: Dict[int, int] = {}
        for deal in deals or ():
            if deal.id in self._index:
                raise ValueError(f"Duplicate deal id {deal.id}")
            self._index[deal.id] = len(self._deals)
            self._deals.append(deal)

    # ========================================================================
    # READ
    # ========================================================================

    def get(self, deal_id: int) -> Optional[Deal]:
        """Return the deal with this id, or None."""
        position = self._index.get(deal_id)
        return None if position is None else self._deals[position]

    def list(self) -> Tuple[Deal, ...]:
        """All deals, most recently published first."""
        return tuple(self._deals)

    def __len__(self) -> int:
        return len(self._deals)

    def __contains__(self, deal_id: object) -> bool:
        return deal_id in self._index

    def next_id(self) -> int:
        """Max existing id + 1, or 1 for an empty catalog."""
        return max(self._index, default=0) + 1

    def search(
        self,
        term: str = "",
        category: Optional[Category] = None,
        max_price: Optional[Decimal] = None,
        location: Optional[str] = None,
    ) -> Tuple[Deal, ...]:
        """
        Filter the catalog. All filters are optional and combine with AND.

        Args:
            term: Case-insensitive substring of the title or merchant name
            category: Exact category (None = all)
            max_price: Upper bound on the coupon price, inclusive
            location: Exact location (None = all)

        Returns:
            Matching deals in catalog order
        """
        needle = term.strip().lower()
        wanted_category = to_category(category) if category is not None else None
        ceiling = to_decimal(max_price, 'max_price') if max_price is not None else None

        matches = []
        for deal in self._deals:
            if needle and needle not in deal.title.lower() and needle not in deal.merchant_name.lower():
                continue
            if wanted_category is not None and deal.category is not wanted_category:
                continue
            if ceiling is not None and deal.price > ceiling:
                continue
            if location is not None and deal.location != location:
                continue
            matches.append(deal)
        return tuple(matches)

    def similar(self, deal_id: int, limit: int = 3) -> Tuple[Deal, ...]:
        """Other deals in the same category, in catalog order."""
        deal = self.get(deal_id)
        if deal is None:
            raise DealNotFound(f"Deal {deal_id} not found")
        others = [d for d in self._deals if d.category is deal.category and d.id != deal.id]
        return tuple(others[:limit])

    def locations(self) -> Tuple[str, ...]:
        """Distinct non-empty locations in catalog order."""
        seen: Dict[str, None] = {}
        for deal in self._deals:
            if deal.location:
                seen.setdefault(deal.location, None)
        return tuple(seen)

    # ========================================================================
    # MUTATE
    # ========================================================================

    def publish(self, deal_data: Mapping[str, Any]) -> Deal:
        """
        Add a deal to the front of the catalog.

        Any 'id' or 'sold' in deal_data is ignored: the id is assigned here
        and sold always starts at 0.

        Args:
            deal_data: Deal fields as accepted by Deal.from_dict()

        Returns:
            The stored Deal
        """
        deal = Deal.from_dict({**deal_data, 'id': self.next_id(), 'sold': 0})
        self._deals.insert(0, deal)
        self._reindex()
        return deal

    def increment_sold(self, deal_id: int) -> Deal:
        """
        Record one more coupon sold for a deal.

        Raises:
            DealNotFound: If no deal has this id
            CapacityExceeded: If sold has already reached total_mint
        """
        position = self._index.get(deal_id)
        if position is None:
            raise DealNotFound(f"Deal {deal_id} not found")
        deal = self._deals[position]
        if deal.sold >= deal.total_mint:
            raise CapacityExceeded(
                f"Deal {deal_id} minted {deal.sold} of {deal.total_mint}"
            )
        updated = replace(deal, sold=deal.sold + 1)
        self._deals[position] = updated
        return updated

    def raise_sold_to(self, deal_id: int, minted: int) -> Deal:
        """
        Raise sold to at least `minted`, capped at total_mint.

        Used when reconciling against coupons that survived a crash whose
        catalog write did not. Never lowers sold.
        """
        position = self._index.get(deal_id)
        if position is None:
            raise DealNotFound(f"Deal {deal_id} not found")
        deal = self._deals[position]
        target = min(max(deal.sold, minted), deal.total_mint)
        if target != deal.sold:
            deal = replace(deal, sold=target)
            self._deals[position] = deal
        return deal

    def _reindex(self) -> None:
        self._index = {deal.id: i for i, deal in enumerate(self._deals)}

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def to_records(self) -> List[Dict[str, Any]]:
        return [deal.to_dict() for deal in self._deals]

    @classmethod
    def from_records(cls, records: Optional[Iterable[Mapping[str, Any]]]) -> DealInventory:
        return cls(Deal.from_dict(r) for r in records or ())

    def __repr__(self) -> str:
        return f"DealInventory({len(self._deals)} deals)"
