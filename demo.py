#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Coupon Marketplace Step by Step

Walks through the marketplace ledger one operation at a time. Each step
builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - Opening a session, publishing deals, buying coupons
  4-6:  Lifecycle    - Sold-out deals, redemption, rejected operations
  7-8:  Marketplace  - Listing a coupon and buying it from another user
  9-10: Durability   - Reopening from disk and repairing an interrupted write

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import sys
import tempfile

from dealchain import (
    Ledger, JsonFileStore, UserProfile, CouponStatus,
    COUPONS_KEY, LISTINGS_KEY,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    seller: str = "alice"
    buyer: str = "bob"

    # Deal parameters
    deal_price: Decimal = Decimal("50")
    original_price: Decimal = Decimal("100")
    deal_mint: int = 1

    # Resale
    resale_price: Decimal = Decimal("45")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def open_session(directory: str, username: str) -> Ledger:
    return Ledger(JsonFileStore(directory), profile=UserProfile(username=username))


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_open_session(directory: str) -> Ledger:
    step_header(1, "Opening a Session",
        "A Ledger is an explicit session object over a durable store.")

    print(f">>> ledger = Ledger(JsonFileStore({directory!r}), profile=UserProfile('{CONFIG.seller}'))")
    ledger = open_session(directory, CONFIG.seller)

    section_header("Initial State")
    print(f"User:      {ledger.profile.username}")
    print(f"Deals:     {len(ledger.list_deals())}")
    print(f"Coupons:   {len(ledger.coupons)}")
    print(f"Listings:  {len(ledger.open_listings())}")
    return ledger


def step_02_publish_deal(ledger: Ledger) -> Ledger:
    step_header(2, "Publishing a Deal",
        "A deal is a coupon template with a hard cap on how many can be minted.")

    result = ledger.publish_deal({
        'title': 'Sushi Night',
        'category': 'Restaurants',
        'price': CONFIG.deal_price,
        'original_price': CONFIG.original_price,
        'discount_value': '50% OFF',
        'total_mint': CONFIG.deal_mint,
        'expiry_date': '2025-12-31T23:59:59',
        'location': 'Lisbon',
        'merchant_name': 'Omakase Bar',
    })
    deal = result.unwrap()
    print(f"Deal {deal.id}: {deal.title}, {deal.sold}/{deal.total_mint} minted")
    return ledger


def step_03_buy_coupon(ledger: Ledger) -> Ledger:
    step_header(3, "Buying a Coupon",
        "A purchase mints one coupon and increments sold in the same call.")

    coupon = ledger.buy_coupon(1).unwrap()
    print(f"Coupon id:  {coupon.id}")
    print(f"Owner:      {coupon.owner}")
    print(f"Status:     {coupon.status.value}")
    print(f"Deal sold:  {ledger.get_deal(1).sold}/{ledger.get_deal(1).total_mint}")
    return ledger


# ============================================================================
# PHASE 2: LIFECYCLE (Steps 4-6)
# ============================================================================

def step_04_sold_out(ledger: Ledger) -> Ledger:
    step_header(4, "Sold Out",
        "Once sold reaches total_mint, purchases fail and nothing changes.")

    result = ledger.buy_coupon(1, buyer=CONFIG.buyer)
    print(f"result.ok:    {result.ok}")
    print(f"result.error: {type(result.error).__name__}: {result.error}")
    print(f"Deal sold:    {ledger.get_deal(1).sold}")
    return ledger


def step_05_rejections(ledger: Ledger) -> Ledger:
    step_header(5, "Rejected Operations",
        "Failures come back as results. State is untouched.")

    coupon = ledger.my_coupons()[0]
    for label, result in [
        ("list at price 0", ledger.list_coupon(coupon.id, Decimal("0"))),
        ("use unknown coupon", ledger.use_coupon("1-doesnotexist")),
        ("buy unlisted coupon", ledger.buy_listing(coupon.id, buyer=CONFIG.buyer)),
    ]:
        print(f"{label:22s} -> {type(result.error).__name__}")
    print(f"\nCoupon status still: {ledger.get_coupon(coupon.id).status.value}")
    return ledger


def step_06_history(ledger: Ledger) -> Ledger:
    step_header(6, "Session History",
        "Every operation, applied or rejected, lands in the history.")

    for record in ledger.history:
        mark = "✓" if record.ok else "✗"
        print(f"  {record.sequence:>2} {mark} {record.operation:14s} {record.subject} {record.detail}")
    return ledger


# ============================================================================
# PHASE 3: MARKETPLACE (Steps 7-8)
# ============================================================================

def step_07_list_coupon(ledger: Ledger) -> Ledger:
    step_header(7, "Listing a Coupon",
        "Listing marks the coupon LISTED and opens exactly one listing.")

    coupon = ledger.my_coupons(CouponStatus.ACTIVE)[0]
    listing = ledger.list_coupon(coupon.id, CONFIG.resale_price).unwrap()
    print(f"Listing:  {listing.coupon_id} by {listing.seller.username} at {listing.resale_price}")
    print(f"Status:   {ledger.get_coupon(coupon.id).status.value}")
    print(f"Invariants: {ledger.verify_invariants()}")
    ledger.close()
    return ledger


def step_08_buy_listing(directory: str, coupon_id: str) -> Ledger:
    step_header(8, "Buying From the Marketplace",
        "The buyer gets the same coupon id, ACTIVE again, under a new owner.")

    print(f">>> Switching session to {CONFIG.buyer}")
    ledger = open_session(directory, CONFIG.buyer)
    coupon, listing = ledger.buy_listing(coupon_id).unwrap()
    print(f"Coupon:   {coupon.id} owned by {coupon.owner}, {coupon.status.value}")
    print(f"Paid:     {listing.resale_price} to {listing.seller.username}")
    print(f"Listings: {len(ledger.open_listings())}")
    ledger.close()
    return ledger


# ============================================================================
# PHASE 4: DURABILITY (Steps 9-10)
# ============================================================================

def step_09_reopen(directory: str, coupon_id: str) -> Ledger:
    step_header(9, "Reopening From Disk",
        "Each collection lives in its own JSON file, replaced atomically.")

    ledger = open_session(directory, CONFIG.buyer)
    print(f"Repairs needed: {ledger.repairs}")
    print(f"Coupon status:  {ledger.get_coupon(coupon_id).status.value}")
    return ledger


def step_10_repair(directory: str, ledger: Ledger) -> Ledger:
    step_header(10, "Repairing an Interrupted Write",
        "A crash between the coupons write and the listings write is fixed on reopen.")

    coupon = ledger.my_coupons(CouponStatus.ACTIVE)[0]
    ledger.list_coupon(coupon.id, CONFIG.resale_price)

    section_header("Simulating a crash")
    print("Removing the listing file contents as if its write never happened")
    JsonFileStore(directory).save(LISTINGS_KEY, [])
    stored = JsonFileStore(directory).load(COUPONS_KEY)
    print(f"Stored status: {stored[0]['status']}")

    section_header("Reopening")
    reopened = open_session(directory, CONFIG.buyer)
    print(f"Coupon status: {reopened.get_coupon(coupon.id).status.value}")
    print(f"Invariants:    {reopened.verify_invariants()}")
    return reopened


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       DEALCHAIN - INTERACTIVE TUTORIAL")
    print("=" * 70)

    with tempfile.TemporaryDirectory(prefix="dealchain-demo-") as directory:
        ledger = step_01_open_session(directory)
        wait_for_enter()

        ledger = step_02_publish_deal(ledger)
        wait_for_enter()

        ledger = step_03_buy_coupon(ledger)
        coupon_id = ledger.my_coupons()[0].id
        wait_for_enter()

        ledger = step_04_sold_out(ledger)
        wait_for_enter()

        ledger = step_05_rejections(ledger)
        wait_for_enter()

        ledger = step_06_history(ledger)
        wait_for_enter()

        ledger = step_07_list_coupon(ledger)
        wait_for_enter()

        step_08_buy_listing(directory, coupon_id)
        wait_for_enter()

        ledger = step_09_reopen(directory, coupon_id)
        wait_for_enter()

        step_10_repair(directory, ledger)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - Purchases never mint past total_mint
      - A coupon is LISTED exactly while one listing references it
      - USED is terminal
      - Rejected operations change nothing
      - Sessions reopen from disk and repair interrupted writes

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
