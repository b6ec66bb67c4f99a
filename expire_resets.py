#!/usr/bin/env python3
"""Clear password reset tokens whose expiry has passed.

Expired tokens are already unusable; this only tidies the user records.

Usage examples:
  python expire_resets.py             # unsets expired token/expiry pairs
  python expire_resets.py --dry-run   # just reports how many would change
"""

from __future__ import annotations

import argparse
from datetime import datetime
from typing import Optional

from pymongo import MongoClient

from app import load_config
from models import CredentialStore


def expire_resets(db, now: Optional[datetime] = None, dry_run: bool = False) -> int:
    return CredentialStore(db).clear_expired_resets(now or datetime.utcnow(), dry_run=dry_run)


def main() -> None:
    parser = argparse.ArgumentParser(description="Remove expired password reset tokens from user records.")
    parser.add_argument("--dry-run", action="store_true", help="Report actions without writing to MongoDB")
    args = parser.parse_args()

    config = load_config()
    client = MongoClient(config["MONGODB_URI"])
    db = client[config["MONGODB_DB_NAME"]]

    cleared = expire_resets(db, dry_run=args.dry_run)

    print("--- Summary ---")
    print(f"Expired reset tokens: {cleared}")
    if args.dry_run:
        print("Dry-run complete. Re-run without --dry-run to apply changes.")


if __name__ == "__main__":
    main()
