"""Main CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path

from found_money.config import Settings, get_settings


def main() -> None:
    """Parse args and dispatch to subcommands."""
    parser = argparse.ArgumentParser(prog="found-money", description="Find unclaimed money and prepare claims")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to SQLite database (default: FOUND_MONEY_DATABASE_PATH or found_money.db)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # search
    search_parser = subparsers.add_parser("search", help="Search all sources for a profile")
    search_parser.add_argument(
        "--profile",
        type=Path,
        required=True,
        help="Path to profile YAML",
    )
    search_parser.add_argument(
        "--source",
        default="all",
        choices=["all", "catalog", "property", "email"],
        help="Limit the search to one source",
    )
    search_parser.add_argument(
        "--no-persist",
        action="store_true",
        help="Do not write results to the store",
    )
    search_parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help=(
            "Settlement catalog YAML (default: FOUND_MONEY_CATALOG_PATH or the bundled catalog, "
            "whose deadlines have all passed)"
        ),
    )
    search_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write results JSON to file (default: stdout)",
    )

    # profile
    profile_parser = subparsers.add_parser("profile", help="Save a profile YAML to the store")
    profile_parser.add_argument("--profile", type=Path, required=True, help="Path to profile YAML")

    # records
    records_parser = subparsers.add_parser("records", help="Query or update saved money-found records")
    records_parser.add_argument(
        "action",
        choices=["list", "count", "set-status"],
        help="List records, show count, or move a record's status forward",
    )
    records_parser.add_argument("--user", type=str, required=True, help="User id")
    records_parser.add_argument(
        "--status",
        type=str,
        default=None,
        choices=["unclaimed", "claimed", "received"],
        help="Filter by status (list/count) or the new status (set-status)",
    )
    records_parser.add_argument("--id", type=str, default=None, help="Record id (set-status)")
    records_parser.add_argument("--received-amount", type=str, default=None, help="Amount received (set-status)")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    # token
    token_parser = subparsers.add_parser("token", help="Issue a bearer token for a user (development)")
    token_parser.add_argument("--user", type=str, required=True, help="User id (token subject)")

    args = parser.parse_args()
    settings = get_settings()
    if args.db is not None:
        settings = settings.model_copy(update={"database_path": args.db})
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "search":
        _run_search(args, settings)
    elif args.command == "profile":
        _run_profile(args, settings)
    elif args.command == "records":
        _run_records(args, settings)
    elif args.command == "serve":
        _run_serve(args, settings)
    elif args.command == "token":
        _run_token(args, settings)
    else:
        parser.print_help()


def _run_search(args: argparse.Namespace, settings: Settings) -> None:
    """Run search command."""
    from found_money.models.profile import UserProfile
    from found_money.pipeline import Aggregator
    from found_money.store import ProfileStore

    if args.catalog is not None:
        settings = settings.model_copy(update={"catalog_path": args.catalog})
    profile = UserProfile.from_yaml(args.profile)
    aggregator = Aggregator.from_settings(settings, profile_store=ProfileStore(settings.database_path))
    if args.no_persist:
        aggregator.store = None

    runners = {
        "all": aggregator.search_all,
        "catalog": aggregator.search_catalog,
        "property": aggregator.search_property,
        "email": aggregator.scan_email,
    }
    result = asyncio.run(runners[args.source](profile))

    print(result.summary_message(), file=sys.stderr)
    for error in result.partial_errors:
        print(f"  {error.source.value} ({error.stage}): {error.message}", file=sys.stderr)

    output = json.dumps(result.model_dump(mode="json"), indent=2, default=str)
    if args.output:
        args.output.write_text(output, encoding="utf-8")
        print(f"Wrote {result.total_found} opportunities to {args.output}", file=sys.stderr)
    else:
        print(output)


def _run_profile(args: argparse.Namespace, settings: Settings) -> None:
    """Run profile command."""
    from found_money.models.profile import UserProfile
    from found_money.store import ProfileStore

    profile = ProfileStore(settings.database_path).upsert_profile(UserProfile.from_yaml(args.profile))
    print(f"Saved profile {profile.user_id} ({len(profile.addresses)} addresses)")


def _run_records(args: argparse.Namespace, settings: Settings) -> None:
    """Run records command."""
    from found_money.errors import StatusTransitionError
    from found_money.models.record import RecordStatus
    from found_money.store import MoneyFoundStore

    store = MoneyFoundStore(settings.database_path)
    if args.action == "list":
        records = store.list_for_user(args.user, args.status)
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2, default=str))
    elif args.action == "count":
        print(len(store.list_for_user(args.user, args.status)))
    elif args.action == "set-status":
        if not args.id or not args.status:
            raise SystemExit("set-status requires --id and --status")
        received = Decimal(args.received_amount) if args.received_amount else None
        try:
            record = store.update_status(args.id, args.user, RecordStatus(args.status), received)
        except StatusTransitionError as e:
            raise SystemExit(str(e))
        if record is None:
            raise SystemExit(f"No record {args.id} for user {args.user}")
        print(f"{record.id}: {record.status.value}")


def _run_serve(args: argparse.Namespace, settings: Settings) -> None:
    """Run the API server."""
    import uvicorn

    from found_money.api.main import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)


def _run_token(args: argparse.Namespace, settings: Settings) -> None:
    from found_money.api.auth import create_access_token

    print(create_access_token(args.user, settings))


if __name__ == "__main__":
    main()
