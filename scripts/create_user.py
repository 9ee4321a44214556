import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from shaft.database import open_database
from shaft.errors import Conflict, LedgerError
from shaft.identity import IdentityStore
from shaft.sessions import SessionStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a shaft user without going through GitHub login")
    parser.add_argument("external_id", help="External login identifier, e.g. the GitHub login")
    parser.add_argument("display_name", help="Display name for the user")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="SQLite path or postgresql:// URL (defaults to SHAFT_DATABASE or data/shaft.sqlite3)",
    )
    parser.add_argument(
        "--issue-token",
        action="store_true",
        help="Also issue a session token for the new user and print it",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    database = open_database(args.db_path or os.getenv("SHAFT_DATABASE"))
    database.initialize()
    identities = IdentityStore(database)

    try:
        user_id = identities.create_user(args.external_id, args.display_name)
    except Conflict:
        print(f"Error: {args.external_id} is already linked to a user", file=sys.stderr)
        return 1
    except (ValueError, LedgerError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user {user_id}: {args.display_name.strip()}")
    if args.issue_token:
        token = SessionStore(database).create_token(user_id)
        print(f"Session token: {token}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
