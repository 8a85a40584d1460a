#!/usr/bin/env python3
"""
Print the argon2 hash of an admin token for ADMIN_TOKEN_HASH.

Usage:
    python scripts/hash_admin_token.py <token>
    python scripts/hash_admin_token.py            # generates a random token
"""

import os
import secrets
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alchemist.services.admin_auth import AdminTokenVerifier


def main() -> int:
    if len(sys.argv) > 1:
        token = sys.argv[1]
    else:
        token = secrets.token_urlsafe(32)
        print(f"Generated admin token: {token}")

    print(f"ADMIN_TOKEN_HASH={AdminTokenVerifier.hash_token(token)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
