"""
Admin CLI for the clinic record engine.

Usage:
    clinic-admin end-date --start-date <YYYY-MM-DD> --duration <days>
    clinic-admin next-date [--today <YYYY-MM-DD>] [--weekdays TUE,FRI]
    clinic-admin validate --rule-set <name> [--discriminator <value>] (--data <json> | --data-file <path>)
    clinic-admin check-key --rule-set <name> --key <key> [--snapshot <path>] [--exclude-record-id <id>]
    clinic-admin rules [--rule-file <path>]
    clinic-admin renew --record-file <path> --start-date <YYYY-MM-DD> --duration <days> [--submit]

Commands that need existing records read them from a JSON snapshot file
when one is given, and from PostgreSQL otherwise.
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

from clinic_records.core.dates import Weekday, compute_end_date, format_date, next_allowed_date, next_test_date
from clinic_records.core.errors import StoreUnavailableError
from clinic_records.core.lifecycle import RecordLifecycleManager
from clinic_records.core.models import ExternalRecordSnapshot, PersistedRecord, SnapshotEntry
from clinic_records.core.rules import RuleSetLoader, RuleSetRegistry, default_registry
from clinic_records.core.settings import EngineSettings
from clinic_records.core.uniqueness import check_unique
from clinic_records.observability.logger import get_logger
from clinic_records.store.connection import DatabaseConnectionPool
from clinic_records.store.postgres import PostgresRecordStore, PostgresSequenceGenerator

logger = get_logger(__name__)


def load_json_file(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def build_registry(rule_file: str | None) -> RuleSetRegistry:
    """Built-in rule sets, plus the one defined in ``rule_file`` if given."""
    registry = default_registry()
    if rule_file:
        registry.register(RuleSetLoader(rule_file).load())
    return registry


def create_pool(args) -> DatabaseConnectionPool:
    pool = DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )
    pool.open()
    return pool


def load_snapshot(path: str, key_domain: str) -> ExternalRecordSnapshot:
    """
    Read a snapshot file: a JSON list of ``{"record_id": ..., "key": ...}`` objects.
    """
    entries = load_json_file(path)
    return ExternalRecordSnapshot(
        key_domain=key_domain,
        entries=tuple(SnapshotEntry(record_id=str(e["record_id"]), key=str(e["key"])) for e in entries),
    )


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def end_date_command(args) -> int:
    """
    Print the inclusive end date for a start date and duration.

    Args:
        args: Command line arguments
    """
    end = compute_end_date(args.start_date, args.duration)
    if end is None:
        print("\nError: start date must be YYYY-MM-DD and duration at least 1 day")
        return 1
    print(format_date(end))
    return 0


def next_date_command(args) -> int:
    """Print the next allowed weekday on or after today."""
    today = args.today or date.today().isoformat()
    if args.weekdays:
        try:
            weekdays = [Weekday.parse(token) for token in args.weekdays.split(",") if token.strip()]
        except ValueError as e:
            print(f"\nError: {e}")
            return 1
        result = next_allowed_date(today, weekdays)
    else:
        result = next_test_date(today)

    if result is None:
        print("\nError: no matching date (check --today and --weekdays)")
        return 1
    print(format_date(result))
    return 0


def validate_command(args) -> int:
    """
    Evaluate a field mapping against a rule set.

    Exit code is 0 when the data is valid and 2 when it is not.
    """
    registry = build_registry(args.rule_file)
    if args.rule_set not in registry:
        print(f"\nError: unknown rule set '{args.rule_set}'. Available: {', '.join(registry.names())}")
        return 1

    try:
        data = load_json_file(args.data_file) if args.data_file else json.loads(args.data or "{}")
    except (OSError, json.JSONDecodeError) as e:
        print(f"\nError: could not read data: {e}")
        return 1
    if not isinstance(data, dict):
        print("\nError: data must be a JSON object")
        return 1

    result = registry.engine(args.rule_set).evaluate(data, args.discriminator)
    logger.info(
        "Validated data from CLI",
        extra={"rule_set": args.rule_set, "is_valid": result.is_valid, "invalid": len(result.invalid_fields)},
    )

    if args.json:
        print_json(result.model_dump(mode="json"))
        return 0 if result.is_valid else 2

    print(f"\n{'=' * 60}")
    print(f"VALIDATION: {args.rule_set}" + (f" ({args.discriminator})" if args.discriminator else ""))
    print(f"{'=' * 60}\n")
    print(f"Result: {'VALID' if result.is_valid else 'INVALID'}")
    print(f"Required fields: {', '.join(sorted(result.required_fields)) or '-'}")

    if result.invalid_fields:
        print("\nProblems:")
        for field_name, reason in result.invalid_fields.items():
            print(f"  {field_name:<20} {reason}")

    if result.allowed_values:
        print("\nAllowed values:")
        for field_name, values in result.allowed_values.items():
            print(f"  {field_name:<20} {', '.join(values)}")
    print()
    return 0 if result.is_valid else 2


def check_key_command(args) -> int:
    """
    Check a business key against existing records.

    Exit code is 0 for a free key, 2 for a conflict or missing key and 3
    when existing records could not be loaded.
    """
    registry = build_registry(args.rule_file)
    if args.rule_set not in registry:
        print(f"\nError: unknown rule set '{args.rule_set}'")
        return 1
    rule_set = registry.get(args.rule_set)
    key = rule_set.normalize_key(args.key)

    if args.snapshot:
        try:
            snapshot = load_snapshot(args.snapshot, rule_set.name)
        except (OSError, json.JSONDecodeError, KeyError) as e:
            logger.error(f"Could not read snapshot: {e}")
            snapshot = None
    else:
        snapshot = asyncio.run(_fetch_snapshot(args, rule_set.name))

    result = check_unique(key, snapshot, exclude_record_id=args.exclude_record_id)
    print_json(result.model_dump(mode="json"))

    if result.status == "valid":
        return 0
    if result.status == "unknown":
        return 3
    return 2


async def _fetch_snapshot(args, key_domain: str) -> ExternalRecordSnapshot | None:
    pool = create_pool(args)
    try:
        return await PostgresRecordStore(pool).fetch_all(key_domain)
    except StoreUnavailableError as e:
        logger.error(f"Could not load existing records: {e}")
        return None
    finally:
        pool.close()


def rules_command(args) -> int:
    """Print a summary of every registered rule set."""
    registry = build_registry(args.rule_file)

    print(f"\n{'=' * 60}")
    print("RULE SETS")
    print(f"{'=' * 60}\n")

    for name in registry.names():
        summary = registry.engine(name).get_rule_summary()
        rule_set = registry.get(name)
        print(f"{name}")
        if rule_set.description:
            print(f"  {rule_set.description}")
        if summary["discriminator_values"]:
            print(f"  Discriminator: {rule_set.discriminator_field} = {', '.join(summary['discriminator_values'])}")
        print(f"  Always required: {summary['base_required']}")
        print(f"  Rules: {summary['total_rules']}")
        for kind, count in sorted(summary["rules_by_type"].items()):
            print(f"    {kind:<22} {count:>4}")
        print(f"  Autofills: {summary['autofills']}")
        if rule_set.key_field:
            print(f"  Business key: {rule_set.key_field}")
        if rule_set.lookup:
            print(f"  Lookup: {rule_set.lookup.key_field} -> {rule_set.lookup.source} "
                  f"({', '.join(sorted(rule_set.lookup.fill))})")
        print()
    return 0


def renew_command(args) -> int:
    """
    Derive a renewal draft from a persisted record file.

    With ``--submit`` the draft is persisted to PostgreSQL.
    """
    registry = build_registry(args.rule_file)
    try:
        record = PersistedRecord(**load_json_file(args.record_file))
    except (OSError, json.JSONDecodeError, ValueError) as e:
        print(f"\nError: could not read record: {e}")
        return 1
    if record.rule_set not in registry:
        print(f"\nError: unknown rule set '{record.rule_set}'")
        return 1

    overrides = json.loads(args.overrides) if args.overrides else None

    if not args.submit:
        manager = RecordLifecycleManager(_OfflineStore(), registry=registry)
        outcome = manager.renew(record, args.start_date, args.duration, overrides)
        if not outcome.ok:
            print(f"\nError: {outcome.message}")
            return 1
        print_json(outcome.draft.model_dump(mode="json", exclude={"validation"}))
        return 0 if outcome.validation.is_valid else 2

    return asyncio.run(_renew_and_submit(args, registry, record, overrides))


async def _renew_and_submit(args, registry: RuleSetRegistry, record: PersistedRecord, overrides) -> int:
    settings = EngineSettings.from_env()
    pool = create_pool(args)
    try:
        store = PostgresRecordStore(pool)
        manager = RecordLifecycleManager(
            store,
            registry=registry,
            sequence=PostgresSequenceGenerator(pool, record.rule_set, settings.auto_id_prefix, settings.auto_id_width),
            settings=settings,
        )
        outcome, submitted = await manager.renew_and_submit(record, args.start_date, args.duration, overrides)
    finally:
        pool.close()

    if not outcome.ok:
        print(f"\nError: {outcome.message}")
        return 1
    print_json(submitted.model_dump(mode="json", exclude={"validation"}))
    return 0 if submitted.ok else 2


class _OfflineStore:
    """Placeholder store for commands that never touch persisted data."""

    async def fetch_all(self, key_domain: str) -> ExternalRecordSnapshot:
        raise StoreUnavailableError("fetch_all", "no record store configured")

    async def find_by_key(self, key_domain: str, business_key: str) -> dict | None:
        raise StoreUnavailableError("find_by_key", "no record store configured")

    async def create(self, key_domain: str, fields: dict, business_key: str | None = None) -> str:
        raise StoreUnavailableError("create", "no record store configured")

    async def update(self, record_id: str, fields: dict, business_key: str | None = None) -> None:
        raise StoreUnavailableError("update", "no record store configured")


COMMANDS = {
    "end-date": end_date_command,
    "next-date": next_date_command,
    "validate": validate_command,
    "check-key": check_key_command,
    "rules": rules_command,
    "renew": renew_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Admin CLI for the clinic record engine",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    # Global database connection options (fall back to DB_* environment variables)
    parser.add_argument("--db-host", default=None, help="Database host (default: $DB_HOST or localhost)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: $DB_PORT or 5432)")
    parser.add_argument("--db-name", default=None, help="Database name (default: $DB_NAME or clinic)")
    parser.add_argument("--db-user", default=None, help="Database user (default: $DB_USER or clinic)")
    parser.add_argument("--db-password", default=None, help="Database password (default: $DB_PASSWORD)")
    parser.add_argument("--rule-file", help="Extra rule set YAML file to register")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # end-date command
    end_parser = subparsers.add_parser("end-date", help="Compute the inclusive end date of a request")
    end_parser.add_argument("--start-date", required=True, help="First day (YYYY-MM-DD)")
    end_parser.add_argument("--duration", required=True, help="Number of days (at least 1)")

    # next-date command
    next_parser = subparsers.add_parser("next-date", help="Next allowed weekday on or after today")
    next_parser.add_argument("--today", help="Reference date (default: today)")
    next_parser.add_argument(
        "--weekdays",
        help="Comma-separated weekdays, e.g. TUE,FRI (default: blood test days)"
    )

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate field data against a rule set")
    validate_parser.add_argument("--rule-set", required=True, help="Rule set name")
    validate_parser.add_argument("--discriminator", help="Discriminator value")
    data_group = validate_parser.add_mutually_exclusive_group()
    data_group.add_argument("--data", help="Field data as a JSON object")
    data_group.add_argument("--data-file", help="Path to a JSON file with field data")
    validate_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # check-key command
    key_parser = subparsers.add_parser("check-key", help="Check a business key for uniqueness")
    key_parser.add_argument("--rule-set", required=True, help="Rule set (key domain) name")
    key_parser.add_argument("--key", required=True, help="Candidate business key")
    key_parser.add_argument("--snapshot", help="JSON file of existing {record_id, key} entries")
    key_parser.add_argument("--exclude-record-id", help="Record being edited; its own key is not a conflict")

    # rules command
    subparsers.add_parser("rules", help="Summarize registered rule sets")

    # renew command
    renew_parser = subparsers.add_parser("renew", help="Derive a renewal from a persisted record")
    renew_parser.add_argument("--record-file", required=True, help="JSON file with the persisted record")
    renew_parser.add_argument("--start-date", required=True, help="New start date (YYYY-MM-DD)")
    renew_parser.add_argument("--duration", required=True, help="New duration in days")
    renew_parser.add_argument("--overrides", help="JSON object of field values to change")
    renew_parser.add_argument("--submit", action="store_true", help="Persist the renewal to PostgreSQL")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for admin CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"Command {args.command} failed: {e}", exc_info=True)
        print(f"\nError: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
