#!/usr/bin/env python3
"""Database management helpers for the Delicious Stores accounts (MongoDB).

Usage: python db_manager.py <command>

Commands:
  list_users    - List all users in the database
  create_user   - Create a new user (interactive)
  help          - Show this message
"""

from __future__ import annotations

import sys
from datetime import datetime
from getpass import getpass

from pymongo import ASCENDING, MongoClient

from app import load_config
from auth import PasswordHasher
from errors import DuplicateAccount
from models import CredentialStore, User
from validation import validate_registration


def get_db():
    config = load_config()
    return MongoClient(config["MONGODB_URI"])[config["MONGODB_DB_NAME"]]


def list_users(db) -> None:
    """List all users with their key attributes."""
    users = list(db.users.find().sort("created_at", ASCENDING))
    if not users:
        print("No users found in MongoDB.")
        return
    print(f"\n{'ID':<25} {'Email':<30} {'Name':<20} {'Reset':<6} {'Created'}")
    print("-" * 95)
    for doc in users:
        created = doc.get("created_at")
        created_str = created.strftime("%Y-%m-%d %H:%M") if isinstance(created, datetime) else "n/a"
        pending = "yes" if User(doc).has_pending_reset() else "no"
        print(
            f"{str(doc.get('_id')):<25} "
            f"{doc.get('email', '-'):<30} "
            f"{doc.get('name', '-'):<20} "
            f"{pending:<6} "
            f"{created_str}"
        )
    print(f"\nTotal users: {len(users)}")


def create_user(db) -> None:
    """Create a new user interactively."""
    print("\n--- Create New User ---")
    fields = {
        "name": input("Name: "),
        "email": input("Email: "),
        "password": getpass("Password: "),
        "password-confirm": getpass("Confirm password: "),
    }
    result = validate_registration(fields)
    if not result.ok:
        for message in result.errors:
            print(f"Error: {message}")
        return

    store = CredentialStore(db)
    try:
        user = store.create_user(
            result.data["name"],
            result.data["email"],
            PasswordHasher().hash(result.data["password"]),
        )
    except DuplicateAccount:
        print(f"Error: user with email {result.data['email']!r} already exists.")
        return

    print(f"Success: created user {user.name!r} with id {user.id}")


def show_help(db=None) -> None:
    print(__doc__)


def main() -> None:
    if len(sys.argv) < 2:
        show_help()
        return
    command = sys.argv[1].lower()
    commands = {
        "list_users": list_users,
        "create_user": create_user,
        "help": show_help,
    }
    handler = commands.get(command)
    if not handler:
        print(f"Unknown command: {command}")
        show_help()
        return
    handler(get_db())


if __name__ == "__main__":
    main()
