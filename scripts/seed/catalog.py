"""Seed the store catalog (reference categories and sample products).

This script is idempotent: categories upsert by slug, products by name.

Usage examples:
  ENV_FILE=.env.dev python -m scripts.seed.catalog

  # Delete every product first (refused without --confirm)
  ENV_FILE=.env.dev python -m scripts.seed.catalog --reset --confirm
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def _load_env_file() -> None:
    project_root = Path(__file__).resolve().parents[2]
    env_file = os.environ.get("ENV_FILE", ".env")
    env_path = (project_root / env_file).resolve()
    if not env_path.exists():
        # In containers, env vars are often injected without mounting the env file.
        if os.environ.get("DATABASE_URL"):
            print(f"Env file not found at {env_path}; using existing environment vars.")
            return
        raise FileNotFoundError(f"Env file not found: {env_path}")
    load_dotenv(env_path, override=True)


async def _main() -> int:
    parser = argparse.ArgumentParser(description="Seed the store catalog.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete all products before seeding.",
    )
    parser.add_argument(
        "--confirm",
        action="store_true",
        help="Required together with --reset.",
    )
    args = parser.parse_args()

    _load_env_file()

    from libs.common.logging import configure_logging
    from libs.db.session import session_scope
    from services.store_service.errors import StoreError
    from services.store_service.seed import clear_catalog, seed_catalog

    configure_logging()

    try:
        async with session_scope() as db:
            if args.reset:
                removed = await clear_catalog(db, confirm=args.confirm)
                print(f"Removed {removed} products.")
            report = await seed_catalog(db)
    except StoreError as exc:
        print(f"\n❌ {type(exc).__name__}: {exc.detail}")
        return 1

    print("Catalog seeded.")
    for table in sorted(set(report.inserted) | set(report.updated) | set(report.skipped)):
        print(
            f"  {table}: inserted={report.inserted.get(table, 0)} "
            f"updated={report.updated.get(table, 0)} "
            f"skipped={report.skipped.get(table, 0)}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(_main()))
