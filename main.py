#!/usr/bin/env python3
"""
Roo Ranking -- administrative command line.

Usage:
  python main.py seed-admin --username admin --password 's3cret!'
  python main.py set-year 2025
  python main.py add-artists --year 2025 lineup.txt

Environment variables:
  AUTH_DB_URL       SQLAlchemy URL of the account store (default: SQLite next to auth/)
  FESTIVAL_DB_URL   SQLAlchemy URL of the lineup store (default: SQLite next to festival/)
  SECRET_KEY        Required unless DEBUG=true
"""

import argparse
import logging
from datetime import datetime, timezone
from typing import Optional

from auth.accounts import create_admin
from auth.store import UserStore
from core.config import get_settings
from core.errors import ValidationError
from festival.lineup import load_lineup_file
from festival.store import ACTIVE_YEAR_KEY, FestivalStore

logger = logging.getLogger("rooranking.cli")


def _open_stores() -> tuple[UserStore, FestivalStore]:
    settings = get_settings()
    user_store = UserStore(settings.auth_db_url) if settings.auth_db_url else UserStore()
    festival = FestivalStore(settings.festival_db_url) if settings.festival_db_url else FestivalStore()
    return user_store, festival


def seed_admin(user_store: UserStore, festival: FestivalStore, username: str, password: str, color: str) -> int:
    """Create the admin account and the active-year setting if either is missing."""
    try:
        user, created = create_admin(user_store, username, password, avatar_color=color)
    except ValidationError as e:
        print(f"  [!] {e}")
        return 1
    if created:
        print(f"  Created admin '{user.username}' (id {user.id}).")
    else:
        print(f"  User '{user.username}' already exists -- left unchanged.")

    if festival.get_setting(ACTIVE_YEAR_KEY) is None:
        year = datetime.now(timezone.utc).year
        festival.set_active_year(year)
        print(f"  Active year set to {year}.")
    return 0


def set_year(festival: FestivalStore, year: int) -> int:
    festival.set_active_year(year)
    print(f"  Active year set to {year}.")
    return 0


def add_artists(festival: FestivalStore, year: int, path: str) -> int:
    """Bulk-load a lineup file (one artist per line, # comments allowed)."""
    try:
        names = load_lineup_file(path)
    except OSError as e:
        print(f"  [!] {e}")
        return 1
    result = festival.add_artists(names, year)
    print(f"  {len(result.added)} added, {len(result.skipped)} skipped for {year}.")
    for name in result.skipped:
        print(f"    skipped: {name}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roo-ranking",
        description="Administer a Roo Ranking installation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed-admin --username admin --password 's3cret!'
  python main.py seed-admin --username admin --password 's3cret!' --color '#f59e0b'
  python main.py set-year 2025
  python main.py add-artists --year 2025 lineup.txt
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed-admin", help="Create the first admin account (idempotent)")
    seed.add_argument("--username", required=True)
    seed.add_argument("--password", required=True)
    seed.add_argument("--color", default="#f59e0b", help="Avatar color (default: #f59e0b)")

    year = sub.add_parser("set-year", help="Set the festival year shown by default")
    year.add_argument("year", type=int)

    artists = sub.add_parser("add-artists", help="Load a lineup text file for a year")
    artists.add_argument("--year", type=int, required=True)
    artists.add_argument("file", metavar="PATH", help="Text file with one artist per line")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = _build_parser().parse_args(argv)
    user_store, festival = _open_stores()
    logger.info("Running %s", args.command)
    try:
        if args.command == "seed-admin":
            return seed_admin(user_store, festival, args.username, args.password, args.color)
        if args.command == "set-year":
            return set_year(festival, args.year)
        return add_artists(festival, args.year, args.file)
    finally:
        user_store.close()
        festival.close()


if __name__ == "__main__":
    raise SystemExit(main())
