#!/usr/bin/env python3
"""
Cash voucher booking flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Tokens are minted locally with the shared JWT secret, for user ids that
already exist in the database.

Usage:
    python scripts/flow_book_and_pay.py --listing-id <UUID> --guest-id <UUID> --admin-id <UUID> \
        --start 2026-04-01 --end 2026-04-04

Flow:
    1. Quote the stay
    2. Create booking paid by cash voucher
    3. Show the voucher
    4. Validate the voucher (as admin)
    5. Show the booking and its escrow
"""

import argparse
import json
import sys

import httpx

from rentcore.core.security import create_user_token

BASE_URL = "http://localhost:8000"


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=10.0, follow_redirects=True)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=10.0, follow_redirects=True)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    if fields:
        filtered = {k: result["data"].get(k) for k in fields if k in result["data"]}
        print(json.dumps(filtered, indent=2))
    else:
        print(json.dumps(result["data"], indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Cash voucher booking flow")
    parser.add_argument("--listing-id", required=True, help="Listing UUID")
    parser.add_argument("--guest-id", required=True, help="Guest user UUID")
    parser.add_argument("--admin-id", required=True, help="Admin user UUID")
    parser.add_argument("--start", required=True, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, help="End date (YYYY-MM-DD)")
    parser.add_argument("--adults", type=int, default=2, help="Number of adults")
    parser.add_argument("--agency-code", default="AG-001", help="Agency that took the cash")
    args = parser.parse_args()

    guest_token = create_user_token(args.guest_id, "guest")
    admin_token = create_user_token(args.admin_id, "admin")
    stay = {
        "listing_id": args.listing_id,
        "start_date": args.start,
        "end_date": args.end,
        "adults": args.adults,
    }

    # Step 1: Quote
    print_step(1, "Quote the stay")
    quote_result = api_request(guest_token, "POST", "/api/v1/bookings/quote", stay)
    if not print_result(quote_result):
        sys.exit(1)
    breakdown = quote_result["data"]["price_breakdown"]

    # Step 2: Create booking
    print_step(2, "Create booking (cash voucher)")
    booking_result = api_request(guest_token, "POST", "/api/v1/bookings", {
        **stay,
        "payment_method": "cash_voucher",
    })
    if not print_result(booking_result):
        sys.exit(1)

    booking = booking_result["data"]["booking"]
    voucher = booking_result["data"]["payment"]
    booking_id = booking["id"]
    print(f"\nBooking created: {booking['booking_number']}, voucher {voucher['voucher_number']}")

    # Step 3: Show voucher
    print_step(3, "Show voucher")
    voucher_result = api_request(guest_token, "GET", f"/api/v1/payments/vouchers/{booking_id}")
    if not print_result(voucher_result, ["voucher_number", "amount", "currency", "status", "expires_at"]):
        sys.exit(1)

    # Step 4: Validate voucher
    print_step(4, "Validate voucher (as admin)")
    validate_result = api_request(admin_token, "POST", "/api/v1/payments/vouchers/validate", {
        "booking_id": booking_id,
        "agency_code": args.agency_code,
        "transaction_id": f"TX-{booking['booking_number']}",
    })
    if not print_result(validate_result, ["booking_status", "captured", "already_validated"]):
        sys.exit(1)

    # Step 5: Booking and escrow
    print_step(5, "Booking and escrow")
    final_result = api_request(guest_token, "GET", f"/api/v1/bookings/{booking_id}")
    if not print_result(final_result, ["booking_number", "status", "payment_status", "paid_at"]):
        sys.exit(1)
    escrow_result = api_request(guest_token, "GET", f"/api/v1/escrow/{booking_id}")
    if not print_result(escrow_result, ["status", "held_amount", "release_eligible_at"]):
        sys.exit(1)

    print("\n" + "="*60)
    print("FLOW COMPLETE")
    print("="*60)
    print(f"Total Paid:   {breakdown['total_amount']:,} {breakdown['currency']} (minor units)")
    print(f"Host Payout:  {breakdown['host_payout']:,}")
    print(f"Platform:     {breakdown['platform_revenue']:,}")


if __name__ == "__main__":
    main()
