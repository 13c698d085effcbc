"""
conftest.py - Shared pytest fixtures for marketplace ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- Components wired together (inventory, coupon ledger, listing book)
- A quiet Ledger session over a MemoryStore with a recording bus
- Seeded deals (single-mint, multi-mint)
"""

import random
from datetime import datetime

import pytest

from dealchain import (
    CouponLedger, DealInventory, Identity, Ledger, ListingBook, MemoryStore,
    UserProfile,
)

from tests.fakes import ManualClock, RecordingBus, deal_data


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Clock pinned to 2025-01-01 09:00 until advanced."""
    return ManualClock(datetime(2025, 1, 1, 9, 0))


@pytest.fixture
def inventory():
    """Catalog with one 100-coupon restaurant deal (id 1)."""
    inv = DealInventory()
    inv.publish(deal_data())
    return inv


@pytest.fixture
def coupon_ledger(inventory, clock):
    """CouponLedger over the inventory fixture with seeded ids."""
    return CouponLedger(inventory, clock=clock, rng=random.Random(42))


@pytest.fixture
def listing_book(coupon_ledger):
    return ListingBook(coupon_ledger)


@pytest.fixture
def alice():
    return Identity("alice", "https://i.pravatar.cc/150?u=alice")


# =============================================================================
# SESSION FIXTURES
# =============================================================================

@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ledger(store, bus, clock):
    """Quiet session for user alice over an empty MemoryStore."""
    return Ledger(
        store,
        bus=bus,
        profile=UserProfile(username="alice", avatar="https://i.pravatar.cc/150?u=alice"),
        clock=clock,
        rng=random.Random(7),
        verbose=False,
    )


@pytest.fixture
def single_mint_ledger(ledger, bus):
    """Session with deal 1: total_mint=1, sold=0, price=50. Bus starts empty."""
    ledger.publish_deal(deal_data(total_mint=1, price='50'))
    bus.messages.clear()
    return ledger
