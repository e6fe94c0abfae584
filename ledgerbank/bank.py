"""
Bank Module

Wires the storage gateway, directory, ledger engine and audit reader
together from configuration.
"""

from typing import Optional

from .audit import AuditReader
from .config import LedgerBankConfig, get_config
from .directory import DirectoryService
from .ledger import LedgerEngine
from .logging_config import get_logger
from .migrations import MigrationManager
from .storage import StorageInterface, create_storage


logger = get_logger("ledgerbank.bank")


class Bank:
    """Ledger system with all components initialized"""

    def __init__(self, storage: StorageInterface, config: Optional[LedgerBankConfig] = None):
        self.config = config or get_config()
        self.storage = storage

        self.directory = DirectoryService(self.storage)
        self.ledger = LedgerEngine(
            self.storage,
            max_conflict_retries=self.config.max_conflict_retries
        )
        self.audit = AuditReader(
            self.storage,
            default_limit=self.config.default_history_limit,
            max_limit=self.config.max_history_limit
        )

    @classmethod
    def from_config(cls, config: Optional[LedgerBankConfig] = None) -> 'Bank':
        """Create storage from the configured database URL and apply migrations"""
        config = config or get_config()
        storage = create_storage(config.database_url, lock_timeout=config.lock_timeout_seconds)

        if config.auto_migrate:
            applied = MigrationManager(storage).migrate_up()
            if applied:
                logger.info(f"Applied {len(applied)} migrations")

        return cls(storage, config)

    def close(self) -> None:
        """Close storage backend"""
        self.storage.close()
