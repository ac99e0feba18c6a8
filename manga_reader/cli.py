"""
Command-line entry point.

Usage:
  manga-reader init-db
  manga-reader reset-stats daily          # run from cron when a window rolls over
  manga-reader create-admin --username admin --email admin@example.com --password ...
  manga-reader serve --port 8080
"""
import argparse
import getpass
import sys
from pathlib import Path
from typing import List, Optional

from manga_reader.core.config import ReaderConfig, load_config
from manga_reader.core.entities import Role, StatsPeriod
from manga_reader.core.errors import AppError
from manga_reader.utils.logger import get_logger, set_level

logger = get_logger("cli")


def _services(config: ReaderConfig):
    from manga_reader.api.server import build_services
    from manga_reader.data.database import engine_from_config, make_session_factory
    from manga_reader.data.kv_store import RedisStore

    return build_services(
        config,
        RedisStore.from_config(config),
        make_session_factory(engine_from_config(config)),
    )


def cmd_init_db(config: ReaderConfig, args: argparse.Namespace) -> int:
    from manga_reader.data.database import create_tables, engine_from_config

    create_tables(engine_from_config(config))
    print("Database tables created")
    return 0


def cmd_reset_stats(config: ReaderConfig, args: argparse.Namespace) -> int:
    services = _services(config)
    removed = services.analytics.reset_stats(args.period)
    print(f"Reset {args.period} statistics ({removed} ranking sets removed)")
    return 0


def cmd_create_admin(config: ReaderConfig, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Admin password: ")
    services = _services(config)
    user = services.users.register(args.username, args.email, password, role=Role.ADMIN)
    print(f"Created admin user {user.username} (id={user.id})")
    return 0


def cmd_serve(config: ReaderConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from manga_reader.api.server import create_app

    uvicorn.run(
        create_app(config),
        host=args.host or config.host,
        port=args.port or config.port,
        log_level=config.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="manga-reader", description="Manga reader backend")
    parser.add_argument("--config", type=Path, default=None, help="Path to YAML config (default: config/default.yaml)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("reset-stats", help="Clear one period's view rankings")
    p.add_argument("period", choices=[period.value for period in StatsPeriod])
    p.set_defaults(func=cmd_reset_stats)

    p = sub.add_parser("create-admin", help="Register a user with the admin role")
    p.add_argument("--username", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--password", default=None, help="Prompted for when omitted")
    p.set_defaults(func=cmd_create_admin)

    p = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2
    set_level(config.log_level)

    try:
        return args.func(config, args)
    except AppError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
