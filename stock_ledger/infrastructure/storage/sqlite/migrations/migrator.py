"""
Schema migrations and ledger consistency checks.

Migrations are `vNNN_name.sql` files in this directory, applied in version
order. Each one runs in a single transaction together with its row in
`schema_migrations`, so a failed script leaves no partial schema behind.
A migration whose file changed after it was applied stops startup.
"""

import argparse
import asyncio
import hashlib
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

from stock_ledger.config import get_logger, get_settings
from stock_ledger.core.exceptions import ConfigurationError

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent
MIGRATION_FILE = re.compile(r"v(\d+)_(\w+)\.sql")

REQUIRED_TABLES = ("products", "stock_movements", "schema_migrations")
APPEND_ONLY_TRIGGERS = ("stock_movements_no_update", "stock_movements_no_delete")

# Products whose counters or stock disagree with their own movement log
DRIFTED_PRODUCTS_SQL = """
SELECT p.id
FROM products p
LEFT JOIN (
    SELECT product_id, COUNT(*) AS n, MAX(sequence) AS last_sequence
    FROM stock_movements
    GROUP BY product_id
) m ON m.product_id = p.id
LEFT JOIN stock_movements latest
    ON latest.product_id = p.id AND latest.sequence = m.last_sequence
WHERE p.movement_count != COALESCE(m.n, 0)
   OR p.stock_pieces != COALESCE(latest.resulting_pieces, 0)
   OR p.total_pieces_added - p.total_pieces_reduced != p.stock_pieces
ORDER BY p.id
"""


@dataclass(frozen=True)
class Migration:
    """One migration script on disk."""

    version: str
    name: str
    path: Path
    checksum: str

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        match = MIGRATION_FILE.fullmatch(path.name)
        if not match:
            raise ValueError(f"Invalid migration filename: {path.name}")
        checksum = hashlib.sha256(path.read_bytes()).hexdigest()[:16]
        return cls(
            version=match.group(1), name=match.group(2), path=path, checksum=checksum
        )


@dataclass
class MigrationResult:
    version: str
    name: str
    success: bool
    execution_time_ms: int
    error: str | None = None


def discover_migrations(migrations_dir: Path | None = None) -> list[Migration]:
    """Migration files in version order; misnamed files are skipped."""
    migrations = []
    for path in sorted((migrations_dir or MIGRATIONS_DIR).glob("v*.sql")):
        try:
            migrations.append(Migration.from_file(path))
        except ValueError as e:
            logger.warning("skipping_invalid_migration", path=str(path), error=str(e))
    return migrations


async def applied_checksums(conn: aiosqlite.Connection) -> dict[str, str]:
    """Applied versions mapped to the checksum they were applied with."""
    try:
        cursor = await conn.execute(
            "SELECT version, checksum FROM schema_migrations ORDER BY version"
        )
    except aiosqlite.OperationalError:
        # Fresh database: the table comes with v001
        return {}
    return {row[0]: row[1] for row in await cursor.fetchall()}


async def apply_migration(
    conn: aiosqlite.Connection, migration: Migration
) -> MigrationResult:
    """Run one script and record it, all in one transaction."""
    logger.info("applying_migration", version=migration.version, name=migration.name)
    started = time.monotonic()

    try:
        sql = migration.path.read_text(encoding="utf-8")
        await conn.executescript(f"BEGIN IMMEDIATE;\n{sql}\n")
        elapsed = int((time.monotonic() - started) * 1000)
        await conn.execute(
            """
            INSERT INTO schema_migrations (version, name, checksum, execution_time_ms)
            VALUES (?, ?, ?, ?)
            """,
            (migration.version, migration.name, migration.checksum, elapsed),
        )
        await conn.commit()
    except aiosqlite.Error as e:
        await conn.rollback()
        logger.error(
            "migration_failed",
            version=migration.version,
            name=migration.name,
            error=str(e),
        )
        return MigrationResult(
            version=migration.version,
            name=migration.name,
            success=False,
            execution_time_ms=int((time.monotonic() - started) * 1000),
            error=str(e),
        )

    logger.info(
        "migration_applied",
        version=migration.version,
        name=migration.name,
        execution_time_ms=elapsed,
    )
    return MigrationResult(
        version=migration.version,
        name=migration.name,
        success=True,
        execution_time_ms=elapsed,
    )


async def initialize_database(
    db_path: Path | None = None,
    migrations_dir: Path | None = None,
) -> list[MigrationResult]:
    """
    Apply all pending migrations.

    Stops at the first failed migration. Raises ConfigurationError if an
    applied migration's file no longer matches its recorded checksum.
    """
    db_path = db_path or get_settings().storage.db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("initializing_database", db_path=str(db_path))

    results: list[MigrationResult] = []
    async with aiosqlite.connect(db_path) as conn:
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")

        applied = await applied_checksums(conn)
        for migration in discover_migrations(migrations_dir):
            recorded = applied.get(migration.version)
            if recorded is not None:
                if recorded != migration.checksum:
                    logger.error(
                        "migration_checksum_mismatch",
                        version=migration.version,
                        recorded=recorded,
                        current=migration.checksum,
                    )
                    raise ConfigurationError(
                        f"Migration {migration.version} changed after it was applied",
                        details={"version": migration.version},
                    )
                continue

            result = await apply_migration(conn, migration)
            results.append(result)
            if not result.success:
                break

    return results


# Alias used by the application lifespan
run_migrations = initialize_database


async def get_migration_status(db_path: Path | None = None) -> dict[str, Any]:
    db_path = db_path or get_settings().storage.db_path
    discovered = discover_migrations()

    if not db_path.exists():
        return {
            "exists": False,
            "current_version": None,
            "applied_migrations": [],
            "pending_migrations": [m.version for m in discovered],
        }

    async with aiosqlite.connect(db_path) as conn:
        applied = await applied_checksums(conn)

    return {
        "exists": True,
        "current_version": max(applied, default=None),
        "applied_migrations": list(applied),
        "pending_migrations": [m.version for m in discovered if m.version not in applied],
    }


async def verify_schema_integrity(db_path: Path | None = None) -> list[dict[str, Any]]:
    """
    Check the database file, the schema and every product's projection.

    The projection check compares each product row with its own log:
    movement_count with the number of movements, stock_pieces with the
    resulting_pieces of the latest movement, and added - reduced with stock.
    """
    db_path = db_path or get_settings().storage.db_path
    checks: list[dict[str, Any]] = []

    async with aiosqlite.connect(db_path) as conn:
        cursor = await conn.execute("PRAGMA integrity_check")
        integrity = (await cursor.fetchone())[0]
        checks.append({
            "check": "integrity",
            "status": "PASS" if integrity == "ok" else "FAIL",
            "result": integrity,
        })

        cursor = await conn.execute("PRAGMA foreign_key_check")
        violations = await cursor.fetchall()
        checks.append({
            "check": "foreign_keys",
            "status": "PASS" if not violations else "FAIL",
            "violations": len(violations),
        })

        cursor = await conn.execute(
            "SELECT type, name FROM sqlite_master WHERE type IN ('table', 'trigger')"
        )
        existing = {(row[0], row[1]) for row in await cursor.fetchall()}

        missing_tables = [t for t in REQUIRED_TABLES if ("table", t) not in existing]
        checks.append({
            "check": "required_tables",
            "status": "PASS" if not missing_tables else "FAIL",
            "missing": missing_tables,
        })

        missing_triggers = [t for t in APPEND_ONLY_TRIGGERS if ("trigger", t) not in existing]
        checks.append({
            "check": "append_only_triggers",
            "status": "PASS" if not missing_triggers else "FAIL",
            "missing": missing_triggers,
        })

        if not missing_tables:
            cursor = await conn.execute(DRIFTED_PRODUCTS_SQL)
            drifted = [row[0] for row in await cursor.fetchall()]
            checks.append({
                "check": "projection_matches_log",
                "status": "PASS" if not drifted else "FAIL",
                "drifted_products": drifted,
            })

    return checks


def main() -> None:
    """CLI entry point: migrate, or report status / consistency."""
    parser = argparse.ArgumentParser(description="Stock ledger database migrator")
    parser.add_argument("--db-path", type=Path, help="Database path (default from settings)")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--status", action="store_true", help="Show migration status")
    group.add_argument("--verify", action="store_true", help="Check schema and projections")
    args = parser.parse_args()

    async def run() -> int:
        if args.status:
            status = await get_migration_status(args.db_path)
            print(f"Database exists: {status['exists']}")
            print(f"Current version: {status['current_version']}")
            print(f"Pending migrations: {status['pending_migrations']}")
            return 0

        if args.verify:
            failed = 0
            for check in await verify_schema_integrity(args.db_path):
                print(f"[{check['status']}] {check['check']}")
                if check["status"] != "PASS":
                    failed += 1
                    for key, value in check.items():
                        if key not in ("check", "status"):
                            print(f"       {key}: {value}")
            return 1 if failed else 0

        results = await initialize_database(args.db_path)
        for result in results:
            label = "OK" if result.success else "FAILED"
            print(f"[{label}] v{result.version} {result.name} ({result.execution_time_ms}ms)")
            if result.error:
                print(f"       {result.error}")
        return 0 if all(r.success for r in results) else 1

    raise SystemExit(asyncio.run(run()))


if __name__ == "__main__":
    main()
