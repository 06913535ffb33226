"""
Account System Wiring

Builds the store, registry, engine and scheduler once at process start and
hands them out explicitly; nothing in the package reaches for a global
registry.
"""

from typing import Optional
import logging

from .clock import Clock, default_clock
from .config import AccountCoreConfig, get_config
from .interest import InterestFeeEngine, InterestScheduler
from .registry import AccountRegistry
from .storage import CSVAccountStore, PersistenceStore

logger = logging.getLogger(__name__)


class AccountSystem:
    """Account core with all components initialized"""

    def __init__(
        self,
        config: Optional[AccountCoreConfig] = None,
        store: Optional[PersistenceStore] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_config()
        self.clock = clock or default_clock()

        # Initialize storage
        if store is None:
            store = CSVAccountStore(
                self.config.data_file,
                restored_credit_limit=self.config.restored_credit_limit,
                clock=self.clock
            )
        self.store = store

        # Initialize core components
        self.registry = AccountRegistry(
            self.store,
            clock=self.clock,
            persistence_timeout=self.config.persistence_timeout_seconds
        )
        self.engine = InterestFeeEngine(self.registry, clock=self.clock)
        self.scheduler = InterestScheduler(
            self.engine,
            clock=self.clock,
            period_days=self.config.interest_period_days,
            poll_seconds=self.config.scheduler_poll_seconds
        )

    def start(self, background: bool = True) -> None:
        """Start the interest scheduler"""
        self.scheduler.start(background=background)

    def shutdown(self) -> bool:
        """
        Stop the scheduler and flush accounts to the store

        Returns:
            Outcome of the final save
        """
        self.scheduler.stop()
        saved = self.registry.save()
        logger.info("Account system shut down")
        return saved
