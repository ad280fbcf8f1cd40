"""Operator commands: ``taskmanager create-admin`` and ``taskmanager init-db``."""
import argparse
import sys
from typing import Optional, List

from .config.settings import Settings
from .database import connect, ensure_indexes
from .middleware.error_middleware import configure_logging
from .services.auth_service import AuthService
from .utils.errors import AppError
from .utils.validators import Validators


def _database(db=None):
    if db is not None:
        return db
    return connect(Settings.MONGODB_URI, Settings.MONGODB_DB_NAME)


def cmd_create_admin(ns: argparse.Namespace, db=None) -> int:
    email = ns.email.strip().lower()
    if not Validators.validate_email(email):
        print(f"Invalid email '{ns.email}'.", file=sys.stderr)
        return 2
    if not Validators.validate_password(ns.password):
        print("Password must be at least 6 characters and contain a lowercase letter, "
              "an uppercase letter and a number.", file=sys.stderr)
        return 2
    if not Validators.validate_username(ns.username):
        print(f"Invalid username '{ns.username}'.", file=sys.stderr)
        return 2

    service = AuthService(_database(db), Settings.as_dict())
    result = service.create_admin(email, ns.password, name=ns.name, username=ns.username)
    action = "Created" if result["created"] else "Updated"
    print(f"{action} admin user {result['user']['email']} (id {result['user']['_id']})")
    return 0


def cmd_init_db(ns: argparse.Namespace, db=None) -> int:
    database = _database(db)
    ensure_indexes(database)
    print(f"Indexes ensured on database: {database.name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="taskmanager", description="Task manager administration")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("create-admin", help="Create an admin user or promote an existing one")
    sp.add_argument("--email", required=True)
    sp.add_argument("--password", required=True)
    sp.add_argument("--name", default="System Administrator")
    sp.add_argument("--username", default="admin")
    sp.set_defaults(func=cmd_create_admin)

    sp = sub.add_parser("init-db", help="Create database indexes")
    sp.set_defaults(func=cmd_init_db)

    return p


def main(argv: Optional[List[str]] = None, db=None) -> int:
    configure_logging(Settings.LOG_LEVEL)
    parser = build_parser()
    ns = parser.parse_args(argv)
    try:
        return int(ns.func(ns, db=db))
    except AppError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
