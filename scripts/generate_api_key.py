#!/usr/bin/env python3
"""
Script: generate_api_key.py
Description: Generate an operator API key for the queue status endpoint.

Prints a new plaintext key and its PBKDF2 hash. Configure the hash as
STATUS_API_KEY_HASH and hand the plaintext key to the operator.

Usage:
    python scripts/generate_api_key.py [--confirm]

Security Note:
    The plaintext API key is shown only once. Store it securely!
"""

import argparse
import sys

from push_queue.auth.api_key import generate_api_key, hash_api_key


def main():
    """Main script execution."""
    parser = argparse.ArgumentParser(
        description="Generate an operator API key for GET /queue/status",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/generate_api_key.py
  python scripts/generate_api_key.py --confirm

Security Warning:
  The plaintext API key will be displayed only once.
  Store it securely - it cannot be recovered later!
        """
    )

    parser.add_argument(
        '--confirm',
        action='store_true',
        help='Confirm generation (prevents accidental key creation)'
    )

    args = parser.parse_args()

    if not args.confirm:
        print("WARNING: This will generate a new operator API key!")
        print("   The plaintext key will be shown only once.")
        print()
        response = input("Continue? (type 'yes' to confirm): ")
        if response.lower() != 'yes':
            print("Cancelled.")
            sys.exit(0)

    api_key = generate_api_key()
    hashed_key = hash_api_key(api_key)

    print(f"Operator API Key: {api_key}")
    print("   WARNING: Store this key securely! It will not be shown again.")
    print()
    print("Set the hash in the deployment environment:")
    print(f"   STATUS_API_KEY_HASH={hashed_key}")
    print()
    print("Usage:")
    print(f'   curl -H "Authorization: Bearer {api_key}" https://<api-url>/queue/status')


if __name__ == "__main__":
    main()
