#!/usr/bin/env python3
"""
Print a random URL-safe secret for CRON_SECRET.

Usage:
  python scripts/generate_cron_secret.py
  python scripts/generate_cron_secret.py --bytes 48
"""

import argparse
import secrets
import sys


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a CRON_SECRET value.")
    p.add_argument("--bytes", type=int, default=32, help="Random bytes of entropy (default: 32)")
    args = p.parse_args()

    if args.bytes < 16:
        print("[Error] Use at least 16 bytes")
        return 1

    secret = secrets.token_urlsafe(args.bytes)
    print(secret)
    print()
    print("Add this to your .env file:")
    print(f"CRON_SECRET={secret}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
