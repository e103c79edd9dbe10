"""
Airlane CLI — Storage bootstrap and maintenance commands.

Commands:
- airlane init         — Create DB tables, storage root and log directory
- airlane plans        — List configured plan tiers
- airlane recalculate  — Rebuild cached storage usage from version sizes
- airlane usage        — Print a user's usage and limits as JSON
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger("airlane.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="airlane",
        description="Airlane — Storage engine maintenance",
    )
    parser.add_argument(
        "--config", default=None, help="Path to airlane.yaml (default: auto-discover)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # airlane init
    subparsers.add_parser("init", help="Create tables and storage directories")

    # airlane plans
    subparsers.add_parser("plans", help="List configured plan tiers")

    # airlane recalculate
    recalc_parser = subparsers.add_parser("recalculate", help="Rebuild cached usage counters")
    recalc_parser.add_argument("--email", help="Only this user (default: all users)")

    # airlane usage
    usage_parser = subparsers.add_parser("usage", help="Show a user's usage and limits")
    usage_parser.add_argument("email", help="User email")

    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args)
    elif args.command == "plans":
        return cmd_plans(args)
    elif args.command == "recalculate":
        return cmd_recalculate(args)
    elif args.command == "usage":
        return cmd_usage(args)
    else:
        parser.print_help()
        return 0


def _load_config(args: argparse.Namespace):
    from airlane.engine.config import load_platform_config
    from airlane.engine.errors import ConfigError

    try:
        return load_platform_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        for error in e.context.get("validation_errors", []):
            print(f"  - {error}")
        return None


def _open_session(config, create_tables: bool = False):
    from airlane.db.session import init_storage_db
    from airlane.engine.logging import init_logging

    init_logging(log_dir=config.logging.directory, level=config.logging.level)
    factory = init_storage_db(config.database, create_tables=create_tables)
    return factory()


def cmd_init(args: argparse.Namespace) -> int:
    """
    Bootstrap the storage engine:
    1. Load config from airlane.yaml
    2. Create all tables (SQLAlchemy metadata.create_all)
    3. Create the blob storage root and the log directory
    """
    print("=" * 60)
    print("  Airlane Storage Initialization")
    print("=" * 60)

    config = _load_config(args)
    if config is None:
        return 1
    print(f"[OK] Loaded config ({config.environment})")

    from sqlalchemy.exc import SQLAlchemyError

    from airlane.db.session import close_all_sessions, init_storage_db

    try:
        init_storage_db(config.database, create_tables=True)
        print("[OK] Database tables created")
    except SQLAlchemyError as e:
        print(f"[ERROR] Failed to create tables: {e}")
        return 1
    finally:
        close_all_sessions()

    blob_root = Path(config.storage.root) / config.storage.disk
    blob_root.mkdir(parents=True, exist_ok=True)
    print(f"[OK] Storage root: {blob_root}")

    from airlane.engine.logging import init_logging

    file_logger = init_logging(log_dir=config.logging.directory, level=config.logging.level)
    print(f"[OK] Log directory: {file_logger.log_dir}")
    return 0


def cmd_plans(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return 1

    from airlane.storage.plans import PlanCatalog

    catalog = PlanCatalog.from_config(config.storage)
    for tier in catalog:
        marker = "*" if tier.key == catalog.default.key else " "
        print(
            f"{marker} {tier.key:<12} {tier.name:<16} "
            f"quota={tier.storage_limit_bytes} file={tier.max_file_size_bytes} "
            f"versions={tier.version_cap or 'unlimited'}"
        )
    return 0


def cmd_recalculate(args: argparse.Namespace) -> int:
    """Rebuild storage_used_bytes from the version rows of each user."""
    config = _load_config(args)
    if config is None:
        return 1

    from airlane.db.models import User
    from airlane.db.session import close_all_sessions
    from airlane.storage.quota import QuotaLedger

    session = _open_session(config)
    try:
        query = session.query(User).order_by(User.id.asc())
        if args.email:
            query = query.filter(User.email == args.email.strip().lower())
        users = query.all()
        if not users:
            print("[ERROR] No matching users")
            return 1

        ledger = QuotaLedger(session, config.storage.trash_retention_days)
        for user in users:
            previous = user.storage_used_bytes
            total = ledger.recalculate(user)
            print(f"  {user.email}: {previous} -> {total} bytes")
        session.commit()
        print(f"[OK] Recalculated {len(users)} user(s)")
        return 0
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        close_all_sessions()


def cmd_usage(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return 1

    from airlane.db.models import User
    from airlane.db.session import close_all_sessions
    from airlane.storage.service import StorageService

    session = _open_session(config)
    try:
        user = session.query(User).filter(User.email == args.email.strip().lower()).first()
        if user is None:
            print(f"[ERROR] Unknown user: {args.email}")
            return 1
        service = StorageService.from_config(session, config)
        print(json.dumps(service.storage_summary(user), indent=2))
        return 0
    finally:
        session.close()
        close_all_sessions()


if __name__ == "__main__":
    raise SystemExit(main())
