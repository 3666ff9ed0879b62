"""CLI script that adds an admin user with a bcrypt-hashed password."""

import argparse
from typing import List, Optional

from pymongo.database import Database

from config import get_settings
from database import connect
from errors import ValidationError
from repositories import UserRepository


def main(argv: Optional[List[str]] = None, database: Optional[Database] = None) -> int:
    parser = argparse.ArgumentParser(description="Create a user for the /login route")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--password", required=True, help="Plain password, stored hashed")
    parser.add_argument("--name", default=None, help="Display name")
    args = parser.parse_args(argv)

    db = database if database is not None else connect(get_settings())
    users = UserRepository(db)

    existing = users.find_by_email(args.email)
    if existing:
        print(f"User {args.email} already exists (id={existing['_id']}).")
        return 1

    data = {"email": args.email, "password": args.password}
    if args.name:
        data["name"] = args.name
    try:
        user_id = users.create(data)
    except ValidationError as exc:
        print(f"Cannot create user {args.email}: {exc.message}")
        return 2
    print(f"Created user {args.email} (id={user_id})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
