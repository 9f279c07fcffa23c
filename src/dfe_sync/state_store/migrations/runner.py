"""
Versioned schema changes on top of the base tables created by StateStore.

Each NNN_name.py module next to this file declares VERSION, NAME,
upgrade(conn) and optionally downgrade(conn). Versions form the sequence
1, 2, 3, ... with no gaps; a broken sequence is a packaging error and
stops the store from opening.
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ...errors import InvalidArgument, PersistenceError

logger = logging.getLogger(__name__)

Step = Callable[[sqlite3.Connection], None]


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    upgrade: Step
    downgrade: Step | None = None

    @property
    def label(self) -> str:
        return f"{self.version:03d}_{self.name}"


def _load(module_name: str) -> Migration:
    module = importlib.import_module(f"{__package__}.{module_name}")
    try:
        return Migration(
            version=int(module.VERSION),
            name=str(module.NAME),
            upgrade=module.upgrade,
            downgrade=getattr(module, "downgrade", None),
        )
    except AttributeError as e:
        raise PersistenceError(f"Migration module {module_name} is incomplete: {e}") from e


def get_all_migrations() -> list[Migration]:
    """Every shipped migration, ordered by version.

    Raises:
        PersistenceError: incomplete module, duplicate version or a gap
    """
    found = [_load(path.stem) for path in Path(__file__).parent.glob("[0-9][0-9][0-9]_*.py")]
    found.sort(key=lambda m: m.version)

    for expected, migration in enumerate(found, start=1):
        if migration.version != expected:
            raise PersistenceError(
                f"Migration sequence broken at {migration.label}: expected version {expected}"
            )
    return found


class MigrationRunner:
    """
    Brings one connection's schema to a given version.

    Applied versions live in the `migrations` table; every step runs in its
    own transaction together with its bookkeeping row.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """
        )
        self.conn.commit()

    def history(self) -> list[dict[str, object]]:
        """Applied migrations, oldest first."""
        rows = self.conn.execute(
            "SELECT version, name, applied_at FROM migrations ORDER BY version"
        ).fetchall()
        return [{"version": row[0], "name": row[1], "applied_at": row[2]} for row in rows]

    def get_applied_versions(self) -> set[int]:
        return {entry["version"] for entry in self.history()}

    def get_current_version(self) -> int:
        """Highest applied version (0 on a fresh database)."""
        return max(self.get_applied_versions(), default=0)

    def pending(self) -> list[Migration]:
        applied = self.get_applied_versions()
        return [m for m in get_all_migrations() if m.version not in applied]

    def run_pending(self) -> list[int]:
        """Apply everything not applied yet. Returns the versions applied."""
        pending = self.pending()
        for migration in pending:
            self._step(migration, upgrade=True)

        if pending:
            logger.info(f"Schema now at version {self.get_current_version()} ({len(pending)} applied)")
        return [m.version for m in pending]

    def migrate_to(self, target_version: int) -> None:
        """Upgrade or roll back until exactly the versions <= target are applied."""
        migrations = get_all_migrations()
        if not 0 <= target_version <= len(migrations):
            raise InvalidArgument(
                f"Unknown schema version {target_version} (available: 0..{len(migrations)})"
            )

        applied = self.get_applied_versions()
        for migration in migrations:
            if migration.version <= target_version and migration.version not in applied:
                self._step(migration, upgrade=True)
        for migration in reversed(migrations):
            if migration.version > target_version and migration.version in applied:
                self._step(migration, upgrade=False)

    def _step(self, migration: Migration, upgrade: bool) -> None:
        if not upgrade and migration.downgrade is None:
            raise PersistenceError(f"Migration {migration.label} cannot be rolled back")

        direction = "Applying" if upgrade else "Rolling back"
        logger.info(f"{direction} migration {migration.label}")
        try:
            if upgrade:
                migration.upgrade(self.conn)
                self.conn.execute(
                    "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                    (
                        migration.version,
                        migration.name,
                        datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                    ),
                )
            else:
                migration.downgrade(self.conn)
                self.conn.execute("DELETE FROM migrations WHERE version = ?", (migration.version,))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"{direction} migration {migration.label} failed: {e}") from e
