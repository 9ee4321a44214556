"""Command-line interface for the shaft service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from shaft.balances import BalanceEngine
from shaft.config import Settings, load_settings, resolve_config_path
from shaft.database import Database, open_database
from shaft.errors import LedgerError
from shaft.ledger import DEFAULT_RECENT_LIMIT, Ledger

logger = logging.getLogger("shaft.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Shaft ledger utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration (default: SHAFT_CONFIG or config/shaft.yaml)",
    )
    parser.add_argument(
        "--database",
        default=None,
        help="SQLite path or postgresql:// URL, overriding the configuration",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the ledger database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port (default from config)")

    subparsers.add_parser("balances", help="Print every user's balance, most indebted first")

    transactions_parser = subparsers.add_parser("transactions", help="Print the most recent transactions")
    transactions_parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_RECENT_LIMIT,
        help=f"Number of transactions to show (default: {DEFAULT_RECENT_LIMIT})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "balances", "transactions"}

    # Global options may precede the subcommand; default to "serve" when none is given.
    if not any(item in known_commands for item in args_list):
        if any(flag in args_list for flag in ("-h", "--help")):
            return parser.parse_args(args_list)
        split = _global_options_end(args_list)
        args_list = [*args_list[:split], "serve", *args_list[split:]]

    return parser.parse_args(args_list)


def _global_options_end(args_list: Sequence[str]) -> int:
    """Return the index just past any leading --config/--database options."""

    global_flags = {"--config", "--database"}
    index = 0
    while index < len(args_list):
        item = args_list[index]
        if item.split("=", 1)[0] not in global_flags:
            break
        index += 1 if "=" in item else 2
    return min(index, len(args_list))


def format_pence(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    pence = abs(amount)
    return f"{sign}£{pence // 100}.{pence % 100:02d}"


def _load_optional_settings(config: Optional[str]) -> Optional[Settings]:
    config_path = resolve_config_path(config or os.getenv("SHAFT_CONFIG"))
    if not config_path.exists():
        logger.info("No configuration file at %s", config_path)
        return None
    return load_settings(config_path)


def _initialise_database(settings: Optional[Settings], override: Optional[str]) -> Database:
    target = override or (settings.database if settings else None) or os.getenv("SHAFT_DATABASE")
    if settings is not None:
        database = open_database(target, pool_size=settings.pool_size, pool_timeout=settings.pool_timeout)
    else:
        database = open_database(target)
    database.initialize()
    logger.info("Database initialised (%s backend)", database.backend)
    return database


def _serve(*, settings: Settings, database: Database, host: str | None, port: int | None) -> None:
    from shaft.application import create_application
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting shaft API on http://%s:%s%s/", bind_host, bind_port, settings.web_root)

    app = create_application(settings, database=database)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=settings.log_level.lower())


def _print_balances(database: Database) -> None:
    users = BalanceEngine(database).all_balances()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{'User':<24}  {'Name':<24}  Balance")
    print("-" * 64)
    for user in users.values():
        print(f"{user.user_id:<24}  {user.display_name:<24}  {format_pence(user.balance):>10}")


def _print_transactions(database: Database, limit: int) -> None:
    transactions = Ledger(database).recent(limit)
    if not transactions:
        print("No transactions have been recorded.")
        return

    for item in transactions:
        stamp = item.occurred_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{stamp}  {item.shafter} -> {item.shaftee}  {format_pence(item.amount):>10}  {item.reason}")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = _load_optional_settings(args.config)
    level = settings.log_level if settings else os.getenv("SHAFT_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")

    if args.command == "serve" and settings is None:
        print("A configuration file with GitHub OAuth settings is required to serve.", file=sys.stderr)
        return 2

    try:
        database = _initialise_database(settings, args.database)
        if args.command == "serve":
            _serve(settings=settings, database=database, host=args.host, port=args.port)
            return 0
        try:
            if args.command == "init-db":
                print("Database initialisation complete.")
            elif args.command == "balances":
                _print_balances(database)
            elif args.command == "transactions":
                _print_transactions(database, args.limit)
        finally:
            database.close()
    except LedgerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
