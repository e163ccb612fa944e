#!/usr/bin/env python3
"""
Example: Register an installation and store its Paysera configuration.

Usage:
    python register_app.py https://shop.example.com/graphql/ APP_TOKEN 12345 PROJECT_PASSWORD

    # Production mode (test=0)
    python register_app.py https://shop.example.com/graphql/ APP_TOKEN 12345 PROJECT_PASSWORD --live
"""

import argparse
import asyncio
import json
import sys
import aiohttp


async def register_installation(
    api_url: str,
    saleor_api_url: str,
    auth_token: str
) -> dict:
    """Register the app for a Saleor API URL."""
    async with aiohttp.ClientSession() as session:
        async with session.post(
            f"{api_url}/api/register",
            json={"auth_token": auth_token},
            headers={
                "saleor-api-url": saleor_api_url,
                # Required when re-registering an active installation
                "Authorization": f"Bearer {auth_token}"
            }
        ) as response:
            return await response.json()


async def save_configuration(
    api_url: str,
    saleor_api_url: str,
    auth_token: str,
    project_id: str,
    password: str,
    test_mode: bool
) -> dict:
    """Store the Paysera project credentials."""
    async with aiohttp.ClientSession() as session:
        async with session.post(
            f"{api_url}/api/configuration",
            json={
                "projectId": project_id,
                "password": password,
                "testMode": test_mode
            },
            headers={
                "saleor-api-url": saleor_api_url,
                "Authorization": f"Bearer {auth_token}"
            }
        ) as response:
            return await response.json()


async def main():
    parser = argparse.ArgumentParser(
        description='Register the Paysera app and save its configuration'
    )
    parser.add_argument('saleor_api_url', help='Saleor GraphQL API URL')
    parser.add_argument('auth_token', help='App auth token issued by Saleor')
    parser.add_argument('project_id', help='Paysera project ID')
    parser.add_argument('password', help='Paysera project password')
    parser.add_argument(
        '--live',
        action='store_true',
        help='Send real payments (test=0)'
    )
    parser.add_argument(
        '--api-url',
        default='http://localhost:8000',
        help='API server URL (default: http://localhost:8000)'
    )

    args = parser.parse_args()

    print(f"Registering installation for {args.saleor_api_url}...")

    try:
        result = await register_installation(
            api_url=args.api_url,
            saleor_api_url=args.saleor_api_url,
            auth_token=args.auth_token
        )
        if not result.get('success'):
            print(f"\n❌ Registration failed: {result.get('error')}")
            sys.exit(1)

        print("Saving Paysera configuration...")
        result = await save_configuration(
            api_url=args.api_url,
            saleor_api_url=args.saleor_api_url,
            auth_token=args.auth_token,
            project_id=args.project_id,
            password=args.password,
            test_mode=not args.live
        )

        print("Response:")
        print(json.dumps(result, indent=2))

        if result.get('success'):
            print("\n✅ Paysera configured successfully!")
        else:
            print(f"\n❌ Configuration failed: {result.get('error')}")
            sys.exit(1)

    except aiohttp.ClientError as e:
        print(f"\n❌ Connection error: {e}")
        print("   Make sure the API server is running.")
        sys.exit(1)


if __name__ == '__main__':
    asyncio.run(main())
