"""
Ledger System Context

Builds the full component graph over one storage backend.
"""

from typing import Optional

from .accounts import AccountManager
from .audit import AuditTrail
from .catalog import seed_catalog
from .config import LedgerConfig, get_config
from .instruments import InstrumentRegistry
from .logging_config import setup_logging
from .owners import OwnerDirectory
from .prices import PriceSource, RandomWalkPriceSource
from .references import ReferenceGenerator
from .storage import StorageInterface, build_storage
from .trading import TradingEngine
from .transfers import TransferEngine
from .wealth import WealthEngine


class LedgerSystem:
    """Retail ledger with all components initialized"""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        storage: Optional[StorageInterface] = None,
        price_source: Optional[PriceSource] = None
    ):
        self.config = config or get_config()
        self.logger = setup_logging(self.config.log_level, log_format=self.config.log_format)

        # Initialize storage
        self.storage = storage or build_storage(self.config.database_url)

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage)
        self.owners = OwnerDirectory(self.storage)
        self.account_manager = AccountManager(self.storage, self.owners, self.audit_trail)
        self.references = ReferenceGenerator(
            self.storage, max_attempts=self.config.reference_max_attempts
        )
        self.transfer_engine = TransferEngine(
            self.storage, self.account_manager, self.references, self.audit_trail
        )
        self.instruments = InstrumentRegistry(self.storage, self.audit_trail)
        self.trading_engine = TradingEngine(
            self.storage, self.account_manager, self.instruments,
            self.references, self.audit_trail
        )
        self.price_source = price_source or RandomWalkPriceSource(
            initial_price=self.config.initial_asset_price,
            volatility=self.config.price_volatility,
            seed=self.config.price_seed
        )
        self.wealth_engine = WealthEngine(
            self.storage, self.account_manager, self.price_source, self.audit_trail
        )

        seed_catalog(self.instruments, enabled=self.config.initialize_instruments)

    def close(self) -> None:
        self.storage.close()

    def __enter__(self) -> "LedgerSystem":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
