#!/usr/bin/env python3
"""
Stock ledger management CLI.

Usage:
    python manage.py migrate            Apply pending database migrations
    python manage.py serve              Start the API server
    python manage.py projection SKU     Show a product's live projection
    python manage.py replay SKU         Recompute a projection from the movement log
    python manage.py verify [SKU ...]   Compare live projections with a replay
    python manage.py repair SKU         Overwrite a drifted projection with the replay
"""

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from stock_ledger.config import configure_logging, get_settings
from stock_ledger.core.exceptions import LedgerError


def _run(coro_factory: Callable[[], Awaitable[Any]]) -> Any:
    """Run a coroutine against the global pool, closing it afterwards."""
    from stock_ledger.infrastructure.storage.sqlite import close_pool

    async def runner() -> Any:
        try:
            return await coro_factory()
        finally:
            await close_pool()

    return asyncio.run(runner())


def _print_projection(label: str, projection: Any) -> None:
    whole, loose = projection.split()
    print(
        f"{label}: {projection.stock_pieces} pcs "
        f"({whole} x {projection.pieces_per_base_unit} + {loose}) "
        f"added={projection.total_pieces_added} reduced={projection.total_pieces_reduced} "
        f"movements={projection.movement_count}"
    )


def cmd_migrate(args: argparse.Namespace) -> None:
    from stock_ledger.infrastructure.storage.sqlite.migrations import initialize_database

    results = asyncio.run(initialize_database(args.db_path))
    if not results:
        print("Database is up to date")
    for result in results:
        status = "SUCCESS" if result.success else "FAILED"
        print(f"[{status}] v{result.version}: {result.name} ({result.execution_time_ms}ms)")
        if result.error:
            print(f"         Error: {result.error}")
    if any(not r.success for r in results):
        sys.exit(1)


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "stock_ledger.api.main:app",
        host=args.host or settings.api.host,
        port=args.port or settings.api.port,
        reload=args.reload,
    )


def cmd_projection(args: argparse.Namespace) -> None:
    from stock_ledger.application.services import get_ledger_service

    async def show() -> None:
        service = await get_ledger_service()
        _print_projection(args.product_id, await service.get_projection(args.product_id))

    _run(show)


def cmd_replay(args: argparse.Namespace) -> None:
    from stock_ledger.application.services import get_ledger_service

    async def show() -> None:
        service = await get_ledger_service()
        _print_projection(
            f"{args.product_id} (replayed)",
            await service.replay_from_log(args.product_id),
        )

    _run(show)


def cmd_verify(args: argparse.Namespace) -> None:
    from stock_ledger.application.services import get_ledger_service
    from stock_ledger.infrastructure.storage.sqlite import get_ledger_store

    async def verify() -> int:
        service = await get_ledger_service()
        product_ids = args.product_ids
        if not product_ids:
            store = await get_ledger_store()
            product_ids = [p.id for p in await store.list_products(limit=100_000) if p.is_active]

        drifted = 0
        for product_id in product_ids:
            report = await service.verify_projection(product_id)
            if report.has_drift:
                drifted += 1
                print(f"[DRIFT] {product_id} first_divergent_sequence={report.first_divergent_sequence}")
                _print_projection("    live", report.live)
                _print_projection("    replayed", report.replayed)
            else:
                print(f"[OK] {product_id} ({report.movements_replayed} movements)")
        return drifted

    if _run(verify):
        sys.exit(1)


def cmd_repair(args: argparse.Namespace) -> None:
    from stock_ledger.application.services import get_ledger_service

    async def repair() -> None:
        service = await get_ledger_service()
        report = await service.repair_projection(args.product_id)
        if report.repaired:
            print(f"[REPAIRED] {args.product_id}")
            _print_projection("    before", report.live)
            _print_projection("    after", report.replayed)
        else:
            print(f"[OK] {args.product_id} has no drift")

    _run(repair)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Stock ledger management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # migrate
    p_migrate = sub.add_parser("migrate", help="Apply pending migrations")
    p_migrate.add_argument("--db-path", type=Path, help="Database path (default from settings)")
    p_migrate.set_defaults(func=cmd_migrate)

    # serve
    p_serve = sub.add_parser("serve", help="Start the API server")
    p_serve.add_argument("--host", help="Bind host (default from settings)")
    p_serve.add_argument("--port", type=int, help="Bind port (default from settings)")
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    p_serve.set_defaults(func=cmd_serve)

    # projection
    p_projection = sub.add_parser("projection", help="Show a live projection")
    p_projection.add_argument("product_id")
    p_projection.set_defaults(func=cmd_projection)

    # replay
    p_replay = sub.add_parser("replay", help="Recompute a projection from the log")
    p_replay.add_argument("product_id")
    p_replay.set_defaults(func=cmd_replay)

    # verify
    p_verify = sub.add_parser("verify", help="Detect projection drift (all products by default)")
    p_verify.add_argument("product_ids", nargs="*")
    p_verify.set_defaults(func=cmd_verify)

    # repair
    p_repair = sub.add_parser("repair", help="Repair a drifted projection")
    p_repair.add_argument("product_id")
    p_repair.set_defaults(func=cmd_repair)

    args = parser.parse_args()
    configure_logging()
    try:
        args.func(args)
    except LedgerError as e:
        print(f"[{e.code}] {e.message}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
