#!/usr/bin/env python3
"""
Example: Simulate a Paysera server callback for testing.

Signs a callback with the project password the same way Paysera does and
sends it to the running app, without going through the Paysera checkout.

Usage:
    python simulate_callback.py https://shop.example.com/graphql/ TX-001 TX001abc... PROJECT_PASSWORD

Arguments:
    saleor_api_url: Saleor GraphQL API URL the app is installed for
    transaction_id: Saleor transaction ID
    order_id: Paysera order ID returned by transaction-initialize-session
    password: Paysera project password
"""

import argparse
import asyncio
import sys
import os
import secrets
from decimal import Decimal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import aiohttp

from services.request_builder import to_minor_units
from services.signing import encode_ordered_params, encode_url_safe_base64, sign

STATUS_CHOICES = {
    'pending': '0',
    'success': '1',
    'accepted': '2',
    'info': '3',
}


async def simulate_callback(
    api_url: str,
    saleor_api_url: str,
    transaction_id: str,
    order_id: str,
    password: str,
    project_id: str,
    amount: Decimal,
    currency: str,
    status: str
) -> None:
    """Build, sign and send a callback."""
    fields = {
        'projectid': project_id,
        'orderid': order_id,
        'amount': to_minor_units(amount),
        'currency': currency,
        'status': STATUS_CHOICES[status],
        'requestid': f"sim_{secrets.token_hex(8)}",
        'test': '1'
    }
    data = encode_url_safe_base64(encode_ordered_params(fields))

    print(f"Simulating '{status}' callback for order {order_id}")
    print(f"  Amount: {amount} {currency}")
    print(f"  Request ID: {fields['requestid']}")
    print()

    params = {
        'action': 'callback',
        'transactionId': transaction_id,
        'saleorApiUrl': saleor_api_url,
        'data': data,
        'ss1': sign(data, password)
    }

    async with aiohttp.ClientSession() as session:
        async with session.get(f"{api_url}/api/paysera/callback", params=params) as response:
            text = await response.text()

    if response.status == 200 and text == 'OK':
        print("✅ Callback accepted")
    else:
        print(f"❌ Callback rejected ({response.status}): {text}")
        sys.exit(1)


async def main():
    parser = argparse.ArgumentParser(
        description='Simulate a signed Paysera callback'
    )
    parser.add_argument('saleor_api_url', help='Saleor GraphQL API URL')
    parser.add_argument('transaction_id', help='Saleor transaction ID')
    parser.add_argument('order_id', help='Paysera order ID')
    parser.add_argument('password', help='Paysera project password')
    parser.add_argument(
        '--project-id',
        default='12345',
        help='Paysera project ID (default: 12345)'
    )
    parser.add_argument(
        '--amount',
        type=Decimal,
        default=Decimal('10.00'),
        help='Amount in major units (default: 10.00)'
    )
    parser.add_argument(
        '--currency',
        default='EUR',
        help='Currency code (default: EUR)'
    )
    parser.add_argument(
        '--status',
        default='success',
        choices=list(STATUS_CHOICES),
        help='Payment status (default: success)'
    )
    parser.add_argument(
        '--api-url',
        default='http://localhost:8000',
        help='API server URL (default: http://localhost:8000)'
    )

    args = parser.parse_args()

    try:
        await simulate_callback(
            api_url=args.api_url,
            saleor_api_url=args.saleor_api_url,
            transaction_id=args.transaction_id,
            order_id=args.order_id,
            password=args.password,
            project_id=args.project_id,
            amount=args.amount,
            currency=args.currency,
            status=args.status
        )
    except aiohttp.ClientError as e:
        print(f"\n❌ Connection error: {e}")
        print("   Make sure the API server is running.")
        sys.exit(1)


if __name__ == '__main__':
    asyncio.run(main())
