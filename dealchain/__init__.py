"""
dealchain - Coupon Lifecycle & Marketplace Ledger

Bookkeeping for a deals marketplace: deal inventory and mint caps, coupon
ownership and status, and a secondary listing book for resales.

Usage:
    from decimal import Decimal
    from dealchain import Ledger, JsonFileStore, Identity

    with Ledger(JsonFileStore("./data"), verbose=False) as ledger:
        deal = ledger.publish_deal({
            'title': 'Sushi Night', 'category': 'Restaurants',
            'price': '25', 'original_price': '50', 'total_mint': 100,
            'expiry_date': '2025-12-31T00:00:00',
        }).unwrap()

        # Buy a coupon as the session user
        coupon = ledger.buy_coupon(deal.id).unwrap()

        # Resell it; another user buys it
        ledger.list_coupon(coupon.id, Decimal("20"))
        result = ledger.buy_listing(coupon.id, buyer="bob")
        if not result.ok:
            print(result.error)
"""

# Core types
from .core import (
    Category,
    CouponStatus,
    Severity,
    Deal,
    Coupon,
    Identity,
    Listing,
    UserProfile,
    Notification,
    OperationResult,
    OperationRecord,
    DurableStore,
    NotificationBus,
    LedgerError,
    NotFound,
    DealNotFound,
    CouponNotFound,
    ListingNotFound,
    InvalidState,
    CapacityExceeded,
    SoldOut,
    InvalidPrice,
    CouponIdExhausted,
    DEALS_KEY,
    COUPONS_KEY,
    LISTINGS_KEY,
    PROFILE_KEY,
    DEFAULT_COUPON_ID_LENGTH,
    DEFAULT_NOTIFICATION_TTL,
)

# Components
from .inventory import DealInventory
from .coupons import CouponLedger, generate_coupon_id
from .listings import ListingBook

# Collaborators
from .storage import MemoryStore, JsonFileStore
from .notifications import NotificationCenter

# Session facade
from .ledger import Ledger

__all__ = [
    # Core
    'Category', 'CouponStatus', 'Severity',
    'Deal', 'Coupon', 'Identity', 'Listing', 'UserProfile', 'Notification',
    'OperationResult', 'OperationRecord',
    'DurableStore', 'NotificationBus',
    'LedgerError', 'NotFound', 'DealNotFound', 'CouponNotFound', 'ListingNotFound',
    'InvalidState', 'CapacityExceeded', 'SoldOut', 'InvalidPrice', 'CouponIdExhausted',
    'DEALS_KEY', 'COUPONS_KEY', 'LISTINGS_KEY', 'PROFILE_KEY', 'DEFAULT_COUPON_ID_LENGTH',
    'DEFAULT_NOTIFICATION_TTL',
    # Components
    'DealInventory', 'CouponLedger', 'generate_coupon_id', 'ListingBook',
    # Collaborators
    'MemoryStore', 'JsonFileStore', 'NotificationCenter',
    # Facade
    'Ledger',
]

__version__ = '1.0.0'
