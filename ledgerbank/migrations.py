"""
Database Migration System

Simple migration system for managing the ledger schema without external dependencies.
Supports both PostgreSQL and SQLite backends.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import hashlib
import logging

from .errors import StorageError
from .storage import StorageInterface


logger = logging.getLogger(__name__)


SQLITE_MIGRATIONS = [
    (1, "Create customers table", """
        CREATE TABLE customers (
            customer_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL CHECK (length(trim(name)) > 0),
            email TEXT,
            phone TEXT,
            created_at TEXT NOT NULL
        )
    """, "DROP TABLE customers"),
    # Amounts are TEXT so SQLite never coerces them to binary floats
    (2, "Create accounts table", """
        CREATE TABLE accounts (
            account_id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id INTEGER NOT NULL
                REFERENCES customers(customer_id) ON DELETE CASCADE,
            account_type TEXT NOT NULL,
            balance TEXT NOT NULL DEFAULT '0.00' CHECK (CAST(balance AS REAL) >= 0),
            created_at TEXT NOT NULL
        );
        CREATE INDEX idx_accounts_customer ON accounts(customer_id)
    """, "DROP TABLE accounts"),
    (3, "Create transactions table", """
        CREATE TABLE transactions (
            transaction_id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL
                REFERENCES accounts(account_id) ON DELETE CASCADE,
            type TEXT NOT NULL CHECK (type IN ('DEPOSIT', 'WITHDRAW', 'TRANSFER')),
            amount TEXT NOT NULL CHECK (CAST(amount AS REAL) > 0),
            details TEXT,
            created_at TEXT NOT NULL
        );
        CREATE INDEX idx_transactions_account_created
            ON transactions(account_id, created_at)
    """, "DROP TABLE transactions"),
]

POSTGRESQL_MIGRATIONS = [
    (1, "Create customers table", """
        CREATE TABLE customers (
            customer_id SERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL CHECK (length(trim(name)) > 0),
            email VARCHAR(100),
            phone VARCHAR(20),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """, "DROP TABLE customers"),
    (2, "Create accounts table", """
        CREATE TABLE accounts (
            account_id SERIAL PRIMARY KEY,
            customer_id INTEGER NOT NULL
                REFERENCES customers(customer_id) ON DELETE CASCADE,
            account_type VARCHAR(20) NOT NULL,
            balance NUMERIC(15, 2) NOT NULL DEFAULT 0.00 CHECK (balance >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX idx_accounts_customer ON accounts(customer_id)
    """, "DROP TABLE accounts"),
    (3, "Create transactions table", """
        CREATE TABLE transactions (
            transaction_id SERIAL PRIMARY KEY,
            account_id INTEGER NOT NULL
                REFERENCES accounts(account_id) ON DELETE CASCADE,
            type VARCHAR(10) NOT NULL CHECK (type IN ('DEPOSIT', 'WITHDRAW', 'TRANSFER')),
            amount NUMERIC(15, 2) NOT NULL CHECK (amount > 0),
            details VARCHAR(255),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX idx_transactions_account_created
            ON transactions(account_id, created_at)
    """, "DROP TABLE transactions"),
]


class Migration:
    """Represents a single database migration"""

    def __init__(self, version: int, name: str, up_sql: str, down_sql: Optional[str] = None):
        self.version = version
        self.name = name
        self.up_sql = up_sql
        self.down_sql = down_sql
        self.applied_at: Optional[datetime] = None

    def __str__(self) -> str:
        return f"Migration v{self.version:03d}: {self.name}"

    def __repr__(self) -> str:
        return f"Migration(version={self.version}, name='{self.name}')"


class MigrationManager:
    """Manages database migrations"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.migrations: List[Migration] = []
        self._migration_table = "schema_migrations"
        self._init_migrations()
        self._ensure_migration_table()

    def _init_migrations(self) -> None:
        """Initialize built-in migrations for the storage dialect"""
        if self.storage.dialect == "postgresql":
            definitions = POSTGRESQL_MIGRATIONS
        else:
            definitions = SQLITE_MIGRATIONS

        for version, name, up_sql, down_sql in definitions:
            self.add_migration(version, name, up_sql, down_sql)

    def _ensure_migration_table(self) -> None:
        """Ensure the migration tracking table exists"""
        self.storage.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._migration_table} (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL,
                checksum TEXT NOT NULL
            )
        """)

    def add_migration(self, version: int, name: str, up_sql: str, down_sql: Optional[str] = None) -> None:
        """Add a migration to the manager"""
        if any(m.version == version for m in self.migrations):
            raise ValueError(f"Migration v{version:03d} is already defined")
        migration = Migration(version, name, up_sql, down_sql)
        self.migrations.append(migration)
        # Keep migrations sorted by version
        self.migrations.sort(key=lambda m: m.version)

    def get_current_version(self) -> int:
        """Get the current database version"""
        row = self.storage.query_one(
            f"SELECT MAX(version) AS version FROM {self._migration_table}"
        )
        if not row or row["version"] is None:
            return 0
        return int(row["version"])

    def get_pending_migrations(self, target_version: Optional[int] = None) -> List[Migration]:
        """Get list of pending migrations"""
        current_version = self.get_current_version()
        max_version = target_version or max((m.version for m in self.migrations), default=0)

        return [
            m for m in self.migrations
            if current_version < m.version <= max_version
        ]

    def get_applied_migrations(self) -> List[Dict[str, Any]]:
        """Get list of applied migrations"""
        return self.storage.query(
            f"SELECT version, name, applied_at, checksum FROM {self._migration_table} ORDER BY version"
        )

    def migrate_up(self, target_version: Optional[int] = None) -> List[Migration]:
        """Apply pending migrations up to target version"""
        pending = self.get_pending_migrations(target_version)
        applied = []

        if not pending:
            logger.info("No pending migrations to apply")
            return applied

        logger.info(f"Applying {len(pending)} pending migrations")

        for migration in pending:
            try:
                logger.info(f"Applying {migration}")

                with self.storage.atomic():
                    self._execute_sql(migration.up_sql)
                    self.storage.execute(
                        f"INSERT INTO {self._migration_table} (version, name, applied_at, checksum) "
                        "VALUES (?, ?, ?, ?)",
                        (
                            migration.version,
                            migration.name,
                            datetime.now(timezone.utc).isoformat(),
                            self._calculate_checksum(migration.up_sql)
                        )
                    )

                migration.applied_at = datetime.now(timezone.utc)
                applied.append(migration)
                logger.info(f"Successfully applied {migration}")

            except StorageError as e:
                logger.error(f"Failed to apply {migration}: {e}")
                raise RuntimeError(f"Migration failed: {migration}") from e

        logger.info(f"Successfully applied {len(applied)} migrations")
        return applied

    def migrate_down(self, target_version: int) -> List[Migration]:
        """Rollback migrations down to target version"""
        current_version = self.get_current_version()

        if target_version >= current_version:
            logger.info("Target version is not lower than current version")
            return []

        rollback_migrations = [
            m for m in reversed(self.migrations)
            if target_version < m.version <= current_version
        ]

        rolledback = []

        logger.info(f"Rolling back {len(rollback_migrations)} migrations")

        for migration in rollback_migrations:
            if not migration.down_sql:
                logger.warning(f"No rollback SQL for {migration}, stopping")
                break

            try:
                logger.info(f"Rolling back {migration}")

                with self.storage.atomic():
                    self._execute_sql(migration.down_sql)
                    self.storage.execute(
                        f"DELETE FROM {self._migration_table} WHERE version = ?",
                        (migration.version,)
                    )

                rolledback.append(migration)
                logger.info(f"Successfully rolled back {migration}")

            except StorageError as e:
                logger.error(f"Failed to rollback {migration}: {e}")
                raise RuntimeError(f"Rollback failed: {migration}") from e

        logger.info(f"Successfully rolled back {len(rolledback)} migrations")
        return rolledback

    def _execute_sql(self, sql: str) -> None:
        """Execute each statement of a migration script"""
        for statement in sql.split(";"):
            if statement.strip():
                logger.debug(f"Executing SQL: {statement.strip()[:100]}...")
                self.storage.execute(statement)

    def _calculate_checksum(self, sql: str) -> str:
        """Calculate checksum for migration SQL"""
        return hashlib.md5(sql.encode()).hexdigest()

    def validate_migrations(self) -> bool:
        """Validate that applied migrations match expected checksums"""
        for applied_migration in self.get_applied_migrations():
            version = applied_migration["version"]
            stored_checksum = applied_migration.get("checksum", "")

            migration = next((m for m in self.migrations if m.version == version), None)
            if not migration:
                logger.warning(f"Applied migration v{version} not found in definitions")
                continue

            expected_checksum = self._calculate_checksum(migration.up_sql)
            if stored_checksum != expected_checksum:
                logger.error(f"Checksum mismatch for v{version}: expected {expected_checksum}, got {stored_checksum}")
                return False

        logger.info("All applied migrations validated successfully")
        return True

    def get_migration_status(self) -> Dict[str, Any]:
        """Get detailed migration status"""
        current_version = self.get_current_version()
        pending = self.get_pending_migrations()
        applied = self.get_applied_migrations()

        return {
            "current_version": current_version,
            "latest_version": max((m.version for m in self.migrations), default=0),
            "pending_count": len(pending),
            "applied_count": len(applied),
            "pending_migrations": [
                {"version": m.version, "name": m.name} for m in pending
            ],
            "needs_migration": len(pending) > 0
        }
