"""
Register a user against a running smart display service.

Usage:
    API_BASE=http://localhost:8000/api python scripts/create_user.py alice alice@example.com secret123
"""
import os
import sys

import requests

BASE = os.getenv("API_BASE", "http://localhost:8000/api")


def main() -> int:
    if len(sys.argv) != 4:
        print("usage: create_user.py <username> <email> <password>")
        return 2
    username, email, password = sys.argv[1:]
    payload = {"username": username, "email": email, "password": password}

    resp = requests.post(f"{BASE}/auth/register", json=payload, timeout=10)
    print(resp.status_code)
    print(resp.text)
    return 0 if resp.ok else 1


if __name__ == "__main__":
    sys.exit(main())
