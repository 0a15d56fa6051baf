#!/usr/bin/env python3
"""
Generate the shared secret used to verify identity-provider tokens.
Run this and copy the output to the .env files of both services.
"""

import secrets

if __name__ == "__main__":
    print("=" * 60)
    print("PBAC Token Secret Generator")
    print("=" * 60)
    print("\nGenerating a secure random key...\n")

    secret_key = secrets.token_hex(32)

    print(f"JWT_SECRET_KEY={secret_key}")
    print("\n" + "=" * 60)
    print("Use the same value for the identity provider and this API")
    print("=" * 60)
