"""
Core types for the coupon marketplace ledger.

This module provides the foundational data structures and protocols:
1. Enums: Category, CouponStatus, Severity
2. Immutable records: Deal, Coupon, Listing, Identity, UserProfile, Notification
3. Exceptions: LedgerError and the typed error taxonomy
4. Protocols: DurableStore and NotificationBus collaborators
5. OperationResult: the typed outcome returned by the Ledger facade

Records are frozen. A state transition builds a new record with
dataclasses.replace() and the owning component swaps it in.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import (
    Any, Dict, Generic, Mapping, Optional, Protocol, TypeVar,
    runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Store keys, one per entity collection.
DEALS_KEY = "deals"
COUPONS_KEY = "coupons"
LISTINGS_KEY = "listings"
PROFILE_KEY = "profile"

# Coupon ids are "<deal id>-<suffix>". The suffix is a soft-uniqueness
# heuristic: 36**9 possibilities per deal at the default length.
DEFAULT_COUPON_ID_LENGTH = 9
COUPON_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
MAX_COUPON_ID_ATTEMPTS = 16

DEFAULT_USERNAME = "user123"
DEFAULT_AVATAR = "https://i.pravatar.cc/150?u=wallet"
DEFAULT_BIO = "NFT coupon enthusiast."

# Notifications leave the active set this long after they are emitted.
DEFAULT_NOTIFICATION_TTL = timedelta(seconds=5)


# ============================================================================
# ENUMS
# ============================================================================

class Category(Enum):
    """Deal category. Filters use None to mean every category."""
    RESTAURANTS = "Restaurants"
    TRAVEL = "Travel"
    SHOPPING = "Shopping"
    SERVICES = "Services"


class CouponStatus(Enum):
    """
    Coupon lifecycle status.

    ACTIVE: held by its owner, redeemable or listable.
    USED: redeemed. Terminal.
    LISTED: offered on the marketplace through exactly one Listing.
    """
    ACTIVE = "active"
    USED = "used"
    LISTED = "listed"


class Severity(Enum):
    """Severity of a notification emitted to the NotificationBus."""
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class NotFound(LedgerError):
    """Raised when a referenced deal, coupon or listing does not exist."""
    pass


class DealNotFound(NotFound):
    """Raised when no deal has the requested id."""
    pass


class CouponNotFound(NotFound):
    """Raised when no coupon has the requested id."""
    pass


class ListingNotFound(NotFound):
    """Raised when no open listing references the requested coupon."""
    pass


class InvalidState(LedgerError):
    """Raised when a coupon transition is attempted from a status that forbids it."""
    pass


class CapacityExceeded(LedgerError):
    """Raised when incrementing sold would exceed a deal's mint cap."""
    pass


class SoldOut(CapacityExceeded):
    """Raised to purchasers when a deal has no coupons left to mint."""
    pass


class InvalidPrice(LedgerError):
    """Raised when a resale price is not strictly positive."""
    pass


class CouponIdExhausted(LedgerError):
    """Raised when no unused coupon id could be generated."""
    pass


# ============================================================================
# CONVERSION HELPERS
# ============================================================================

def to_decimal(value: Any, name: str = "value") -> Decimal:
    """Convert a number or numeric string to a finite Decimal."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be numeric, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValueError(f"{name} must be numeric, got {value!r}") from None
    if result.is_nan() or result.is_infinite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return result


def to_datetime(value: Any, name: str = "value") -> datetime:
    """Accept a datetime or an ISO-8601 string ('Z' suffix allowed)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"{name} is not an ISO timestamp: {value!r}") from None
    raise ValueError(f"{name} must be a datetime, got {type(value).__name__}")


def to_category(value: Any) -> Category:
    if isinstance(value, Category):
        return value
    try:
        return Category(value)
    except ValueError:
        raise ValueError(f"Unknown category: {value!r}") from None


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Deal:
    """
    A merchant offer with a capped number of coupons.

    Attributes:
        id: Catalog id, assigned by DealInventory.publish().
        title: Short name shown in listings.
        description: Long description.
        category: One of the Category values.
        discount_value: Display label for the discount (e.g. "50% OFF").
        original_price: Undiscounted price.
        price: Coupon price in the stable-coin unit.
        total_mint: Maximum number of coupons that can ever be purchased.
        sold: Number of coupons purchased so far.
        expiry_date: When the offer expires.
        location: City or region of the merchant.
        merchant_name: Merchant display name.
        merchant_logo: Merchant logo URL.
        image: Deal image URL.
        terms: Terms and conditions text.
        redemption_instructions: How to redeem at the merchant.

    Invariant: 0 <= sold <= total_mint, validated in __post_init__.
    """
    id: int
    title: str
    category: Category
    price: Decimal
    total_mint: int
    expiry_date: datetime
    sold: int = 0
    description: str = ""
    discount_value: str = ""
    original_price: Decimal = Decimal("0")
    location: str = ""
    merchant_name: str = ""
    merchant_logo: str = ""
    image: str = ""
    terms: str = ""
    redemption_instructions: str = ""

    def __post_init__(self):
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id < 1:
            raise ValueError(f"Deal id must be a positive integer, got {self.id!r}")
        if not self.title or not self.title.strip():
            raise ValueError("Deal title cannot be empty")
        if not isinstance(self.category, Category):
            raise ValueError(f"Deal category must be a Category, got {self.category!r}")
        if not isinstance(self.price, Decimal) or self.price < 0:
            raise ValueError(f"Deal price must be a non-negative Decimal, got {self.price!r}")
        if not isinstance(self.original_price, Decimal) or self.original_price < 0:
            raise ValueError(
                f"Deal original_price must be a non-negative Decimal, got {self.original_price!r}"
            )
        if isinstance(self.total_mint, bool) or not isinstance(self.total_mint, int) or self.total_mint < 0:
            raise ValueError(f"Deal total_mint must be a non-negative integer, got {self.total_mint!r}")
        if isinstance(self.sold, bool) or not isinstance(self.sold, int):
            raise ValueError(f"Deal sold must be an integer, got {self.sold!r}")
        if not 0 <= self.sold <= self.total_mint:
            raise ValueError(f"Deal sold must be within [0, {self.total_mint}], got {self.sold}")

    @property
    def remaining(self) -> int:
        """Coupons still available to mint."""
        return self.total_mint - self.sold

    @property
    def is_sold_out(self) -> bool:
        return self.sold >= self.total_mint

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category.value,
            'discount_value': self.discount_value,
            'original_price': str(self.original_price),
            'price': str(self.price),
            'total_mint': self.total_mint,
            'sold': self.sold,
            'expiry_date': self.expiry_date.isoformat(),
            'location': self.location,
            'merchant_name': self.merchant_name,
            'merchant_logo': self.merchant_logo,
            'image': self.image,
            'terms': self.terms,
            'redemption_instructions': self.redemption_instructions,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Deal:
        """
        Build a Deal from a plain mapping.

        Prices may be numbers or strings, category may be the enum or its
        value, and expiry_date may be an ISO string. Unknown keys are ignored.
        """
        return cls(
            id=data['id'],
            title=data['title'],
            category=to_category(data['category']),
            price=to_decimal(data['price'], 'price'),
            total_mint=int(data['total_mint']),
            expiry_date=to_datetime(data['expiry_date'], 'expiry_date'),
            sold=int(data.get('sold', 0)),
            description=data.get('description', ""),
            discount_value=data.get('discount_value', ""),
            original_price=to_decimal(data.get('original_price', 0), 'original_price'),
            location=data.get('location', ""),
            merchant_name=data.get('merchant_name', ""),
            merchant_logo=data.get('merchant_logo', ""),
            image=data.get('image', ""),
            terms=data.get('terms', ""),
            redemption_instructions=data.get('redemption_instructions', ""),
        )


@dataclass(frozen=True, slots=True)
class Coupon:
    """
    One minted instance of a Deal, held by exactly one owner.

    Attributes:
        id: "<deal id>-<suffix>", preserved across resales.
        deal: Snapshot of the deal at purchase time.
        owner: Username of the current holder.
        purchase_date: When the current owner acquired the coupon.
        status: ACTIVE, USED or LISTED.
    """
    id: str
    deal: Deal
    owner: str
    purchase_date: datetime
    status: CouponStatus = CouponStatus.ACTIVE

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("Coupon id cannot be empty")
        if not self.owner or not self.owner.strip():
            raise ValueError("Coupon owner cannot be empty")
        if not isinstance(self.status, CouponStatus):
            raise ValueError(f"Coupon status must be a CouponStatus, got {self.status!r}")

    @property
    def deal_id(self) -> int:
        return self.deal.id

    def with_status(self, status: CouponStatus) -> Coupon:
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'deal': self.deal.to_dict(),
            'owner': self.owner,
            'purchase_date': self.purchase_date.isoformat(),
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Coupon:
        return cls(
            id=data['id'],
            deal=Deal.from_dict(data['deal']),
            owner=data['owner'],
            purchase_date=to_datetime(data['purchase_date'], 'purchase_date'),
            status=CouponStatus(data['status']),
        )


@dataclass(frozen=True, slots=True)
class Identity:
    """Who a party appeared as at the moment of an operation."""
    username: str
    avatar: str = ""

    def __post_init__(self):
        if not self.username or not self.username.strip():
            raise ValueError("Identity username cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {'username': self.username, 'avatar': self.avatar}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Identity:
        return cls(username=data['username'], avatar=data.get('avatar', ""))


@dataclass(frozen=True, slots=True)
class Listing:
    """
    An open resale offer for one LISTED coupon.

    Attributes:
        coupon: Snapshot of the coupon when it was listed.
        seller: Seller identity at listing time.
        resale_price: Asking price, strictly positive.
        listed_at: When the listing was opened.
    """
    coupon: Coupon
    seller: Identity
    resale_price: Decimal
    listed_at: datetime

    def __post_init__(self):
        if not isinstance(self.resale_price, Decimal):
            raise ValueError(f"Listing resale_price must be Decimal, got {type(self.resale_price)}")
        if self.resale_price <= 0:
            raise ValueError(f"Listing resale_price must be positive, got {self.resale_price}")

    @property
    def coupon_id(self) -> str:
        return self.coupon.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'coupon': self.coupon.to_dict(),
            'seller': self.seller.to_dict(),
            'resale_price': str(self.resale_price),
            'listed_at': self.listed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Listing:
        return cls(
            coupon=Coupon.from_dict(data['coupon']),
            seller=Identity.from_dict(data['seller']),
            resale_price=to_decimal(data['resale_price'], 'resale_price'),
            listed_at=to_datetime(data['listed_at'], 'listed_at'),
        )


@dataclass(frozen=True, slots=True)
class UserProfile:
    """The session user's profile. preferred_category None means no preference."""
    username: str = DEFAULT_USERNAME
    avatar: str = DEFAULT_AVATAR
    bio: str = DEFAULT_BIO
    preferred_category: Optional[Category] = None

    def __post_init__(self):
        if not self.username or not self.username.strip():
            raise ValueError("Profile username cannot be empty")
        if self.preferred_category is not None and not isinstance(self.preferred_category, Category):
            raise ValueError(
                f"preferred_category must be a Category or None, got {self.preferred_category!r}"
            )

    @property
    def identity(self) -> Identity:
        return Identity(self.username, self.avatar)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'username': self.username,
            'avatar': self.avatar,
            'bio': self.bio,
            'preferred_category': (
                self.preferred_category.value if self.preferred_category else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserProfile:
        preferred = data.get('preferred_category')
        # Profile forms submit "None" as a literal choice
        if preferred in (None, "", "None"):
            preferred_category = None
        else:
            preferred_category = to_category(preferred)
        return cls(
            username=data.get('username', DEFAULT_USERNAME),
            avatar=data.get('avatar', DEFAULT_AVATAR),
            bio=data.get('bio', DEFAULT_BIO),
            preferred_category=preferred_category,
        )


@dataclass(frozen=True, slots=True)
class Notification:
    """A message delivered to the UI as a toast."""
    id: int
    message: str
    severity: Severity = Severity.INFO
    created_at: Optional[datetime] = None


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class DurableStore(Protocol):
    """
    Key/value persistence used by the Ledger.

    Each entity collection is stored under one key. Implementations must
    make a single save() atomic: after a crash a key holds either the
    previous value or the new one, never a mix.
    """

    def load(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or default when the key is absent."""
        ...

    def save(self, key: str, value: Any) -> None:
        """Replace the value stored under key."""
        ...


@runtime_checkable
class NotificationBus(Protocol):
    """One-way sink for user-facing operation outcomes."""

    def emit(self, message: str, severity: Severity = Severity.INFO) -> Any:
        ...


# ============================================================================
# OPERATION RESULT
# ============================================================================

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Outcome of a Ledger facade operation.

    Exactly one of value and error is meaningful: ok operations carry the
    resulting record, failed operations carry the typed LedgerError that
    caused them. Nothing was mutated when ok is False.
    """
    value: Optional[T] = None
    error: Optional[LedgerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: T) -> OperationResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: LedgerError) -> OperationResult[T]:
        return cls(error=error)

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    Audit entry for one completed facade operation.

    Attributes:
        sequence: Monotonic position within the session history.
        operation: Facade method name (e.g. "buy_coupon").
        subject: Id of the deal or coupon acted on.
        timestamp: Ledger clock time of the operation.
        ok: Whether the operation was applied.
        detail: Error message for rejected operations, empty otherwise.
    """
    sequence: int
    operation: str
    subject: str
    timestamp: datetime
    ok: bool
    detail: str = ""
