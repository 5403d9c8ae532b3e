"""Reconcile the store schema with the current models.

Safe to re-run: a store that is already current reports zero actions.

Usage examples:
  # Read-only preflight: report key type drift and blocked constraints
  ENV_FILE=.env.prod python -m scripts.db.reconcile --check

  # Apply (aborts on key type drift)
  ENV_FILE=.env.prod python -m scripts.db.reconcile

  # Apply, accepting that drifted key columns are dropped and rebuilt
  ENV_FILE=.env.prod python -m scripts.db.reconcile --accept-data-loss
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


async def _check() -> int:
    from libs.common.config import get_settings
    from libs.db.config import build_engine
    from services.store_service.errors import SchemaIntegrityViolation
    from services.store_service.reconciler import Reconciler

    engine = build_engine(get_settings().DATABASE_URL, sqlite_foreign_keys=False)
    try:
        async with engine.connect() as conn:
            drifts = await conn.run_sync(
                lambda sync_conn: Reconciler(sync_conn, accept_data_loss=True).preflight()
            )
            await conn.rollback()
    except SchemaIntegrityViolation as exc:
        print(f"\n❌ Preflight failed: {exc.detail}")
        return 2
    finally:
        await engine.dispose()

    if not drifts:
        print("No key type drift found.")
        return 0
    print(f"{len(drifts)} key column(s) drifted (need --accept-data-loss):")
    for drift in drifts:
        kind = "primary key" if drift.primary_key else "foreign key"
        print(
            f"  {drift.table}.{drift.column} [{kind}] "
            f"{drift.live_family} -> {drift.target_family}"
        )
    return 1


async def _apply(accept_data_loss: bool) -> int:
    from libs.common.config import get_settings
    from libs.db.config import build_engine
    from services.store_service.errors import SchemaIntegrityViolation
    from services.store_service.reconciler import reconcile

    engine = build_engine(get_settings().DATABASE_URL, sqlite_foreign_keys=False)
    try:
        report = await reconcile(engine, accept_data_loss=accept_data_loss)
    except SchemaIntegrityViolation as exc:
        print(f"\n❌ Reconciliation aborted, nothing was changed: {exc.detail}")
        return 2
    finally:
        await engine.dispose()

    print(f"\nRun {report.run_id} ({report.dialect})")
    if not report.actions:
        print("Schema already current. No structural actions.")
    for action in report.actions:
        marker = "!" if action.destructive else "-"
        print(f"  {marker} [{action.step}] {action.action} {action.table} {action.detail}")
    print(f"Policies applied: {report.policies_applied}")
    return 0


async def _main() -> int:
    parser = argparse.ArgumentParser(
        description="Reconcile the store schema with the current models."
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only run the read-only preflight.",
    )
    parser.add_argument(
        "--accept-data-loss",
        action="store_true",
        help="Allow dropping and rebuilding key columns whose type drifted.",
    )
    args = parser.parse_args()

    _load_env_file()

    from libs.common.logging import configure_logging

    configure_logging()

    if args.check:
        return await _check()
    return await _apply(accept_data_loss=args.accept_data_loss)


if __name__ == "__main__":
    sys.exit(asyncio.run(_main()))
