#!/usr/bin/env python3
"""
Keystone -- user registry administration from the command line.

Usage:
  python main.py seed
  python main.py create-user --name "Jane Doe" --email jane@example.com --password s3cret
  python main.py create-user --name "Ops" --email ops@example.com --password s3cret --role admin
  python main.py list-users

Environment variables (see core/config.py):
  SECRET_KEY / DEBUG   Required by Settings even though the CLI issues no tokens.
  DATABASE_URL         SQLAlchemy URL of the user store.
  BCRYPT_ROUNDS        Cost factor for new password hashes.
  SEED_ADMIN_PASSWORD  Password given to the seeded admin (default "password").
  SEED_USER_PASSWORD   Password given to the seeded regular user (default "password").
"""

from __future__ import annotations

import argparse
import logging
import sys

from auth.errors import AuthError, Conflict
from auth.hashing import CredentialHasher
from auth.models import Role
from auth.store import UserStore
from core.config import Settings, get_settings

logger = logging.getLogger("keystone.cli")

SEED_USERS = [
    {"name": "Admin User", "email": "admin@example.com", "role": Role.admin},
    {"name": "Regular User", "email": "user@example.com", "role": Role.user},
]


def _open_store(settings: Settings) -> UserStore:
    return UserStore(settings.database_url, CredentialHasher(rounds=settings.bcrypt_rounds))


def seed(store: UserStore, settings: Settings) -> int:
    """Create the default admin and regular user. Existing emails are skipped.

    Returns the number of users created.
    """
    passwords = {Role.admin: settings.seed_admin_password, Role.user: settings.seed_user_password}
    created = 0
    for entry in SEED_USERS:
        try:
            store.create(entry["name"], entry["email"], passwords[entry["role"]], entry["role"])
        except Conflict:
            logger.warning("User already exists: %s", entry["email"])
            continue
        logger.info("Created user: %s", entry["email"])
        created += 1
    logger.info("Seeding completed (%d created)", created)
    return created


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Keystone user registry administration")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Create the default admin and regular user")

    create = sub.add_parser("create-user", help="Create a single user")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--password", required=True)
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.user.value)

    sub.add_parser("list-users", help="Print every user (id, email, role)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    settings = get_settings()
    store = _open_store(settings)
    try:
        if args.command == "seed":
            seed(store, settings)
        elif args.command == "create-user":
            user = store.create(args.name, args.email, args.password, args.role)
            logger.info("Created user id=%s email=%s role=%s", user.id, user.email, user.role.value)
        elif args.command == "list-users":
            for user in store.list_users():
                print(f"{user.id}\t{user.email}\t{user.role.value}\t{user.name}")
    except AuthError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
