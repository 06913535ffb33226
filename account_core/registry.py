"""
Account Registry Module

Process-wide catalog of accounts. Guarantees account-number uniqueness,
serves lookups and filtered views, and mediates persistence: accounts are
loaded once at construction and flushed back on creation, closure, reopening
and explicit save requests.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union
import logging
import threading

from .accounts import Account, AccountType, create_account, generate_account_number
from .clock import Clock, default_clock
from .exceptions import InvalidAccountError, StorageError
from .logging_config import log_action
from .money import AmountLike
from .storage import PersistenceStore

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Attempts at drawing an unused account number before giving up
MAX_NUMBER_ATTEMPTS = 1000


class AccountRegistry:
    """
    Catalog of all accounts

    Structural changes (add, reload) and reads are serialized by one
    re-entrant lock. Views are returned as tuples, so callers can never
    reorder or drop registered accounts.
    """

    def __init__(
        self,
        store: PersistenceStore,
        clock: Optional[Clock] = None,
        persistence_timeout: float = 10.0
    ):
        self.store = store
        self.clock = clock or default_clock()
        self.persistence_timeout = persistence_timeout
        self._lock = threading.RLock()
        self._accounts: List[Account] = []
        self._index: Dict[str, Account] = {}

        try:
            loaded = self._call_store("load", self.store.load)
        except StorageError as e:
            logger.error(f"Initial account load failed, starting empty: {e}")
            loaded = []

        for account in loaded:
            self.add(account)

        log_action(
            logger, "info", f"Registry initialized with {len(self._accounts)} accounts",
            action="registry_loaded", extra={"count": len(self._accounts)}
        )

    # Structure

    def add(self, account: Account) -> bool:
        """
        Register an account

        Returns:
            True if added, False if the account number was already present
        """
        with self._lock:
            if account.account_number in self._index:
                logger.warning(f"Account {account.account_number} already exists; add ignored")
                return False
            self._accounts.append(account)
            self._index[account.account_number] = account
            return True

    def reload(self) -> bool:
        """
        Replace the in-memory accounts with the persisted set

        The previous state is kept if the store cannot be read.

        Returns:
            True on success
        """
        try:
            loaded = self._call_store("load", self.store.load)
        except StorageError as e:
            logger.error(f"Reload failed, keeping current accounts: {e}")
            return False

        accounts: List[Account] = []
        index: Dict[str, Account] = {}
        for account in loaded:
            if account.account_number in index:
                logger.warning(f"Duplicate account {account.account_number} in store; keeping the first")
                continue
            accounts.append(account)
            index[account.account_number] = account

        with self._lock:
            self._accounts = accounts
            self._index = index

        log_action(
            logger, "info", f"Reloaded {len(accounts)} accounts",
            action="registry_reloaded", extra={"count": len(accounts)}
        )
        return True

    def save(self) -> bool:
        """
        Write every account to the store

        Failures are logged, never raised; in-memory state stays authoritative.

        Returns:
            True if the store accepted the accounts
        """
        accounts = self.all()
        try:
            self._call_store("save", lambda: self.store.save(accounts))
        except StorageError as e:
            logger.error(f"Saving accounts failed: {e}")
            return False

        log_action(
            logger, "info", f"Saved {len(accounts)} accounts",
            action="registry_saved", extra={"count": len(accounts)}
        )
        return True

    # Lookups

    def by_number(self, account_number: str) -> Account:
        """
        Raises:
            InvalidAccountError: If the number is empty or unknown
        """
        if not account_number or not account_number.strip():
            raise InvalidAccountError("Account number cannot be empty")

        with self._lock:
            account = self._index.get(account_number.strip())
        if account is None:
            raise InvalidAccountError.not_found(account_number)
        return account

    def by_holder_name_contains(self, text: str) -> Tuple[Account, ...]:
        """Case-insensitive partial match on the holder name; empty for blank input"""
        if not text or not text.strip():
            return ()
        wanted = text.strip().casefold()
        return tuple(
            account for account in self.all()
            if wanted in account.holder_name.casefold()
        )

    def all(self) -> Tuple[Account, ...]:
        with self._lock:
            return tuple(self._accounts)

    def active(self) -> Tuple[Account, ...]:
        return tuple(account for account in self.all() if account.is_active)

    def closed(self) -> Tuple[Account, ...]:
        return tuple(account for account in self.all() if not account.is_active)

    def by_type(self, variant: Union[AccountType, Type[T]]) -> Tuple[T, ...]:
        """Accounts of one variant, given as an AccountType or an account class"""
        if isinstance(variant, AccountType):
            return tuple(account for account in self.all() if account.account_type is variant)
        return tuple(account for account in self.all() if isinstance(account, variant))

    def exists(self, account_number: str) -> bool:
        with self._lock:
            return account_number in self._index

    def latest_account_number(self) -> Optional[str]:
        """Number of the most recently registered account"""
        with self._lock:
            if not self._accounts:
                return None
            return self._accounts[-1].account_number

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    def __contains__(self, account_number: object) -> bool:
        return isinstance(account_number, str) and self.exists(account_number)

    # Checkpointed operations

    def open_account(
        self,
        account_type: AccountType,
        holder_name: str,
        amount: AmountLike = 0,
        **kwargs
    ) -> Account:
        """
        Create an account with an unused number, register it and save

        Args:
            account_type: Variant to open
            holder_name: Name of the account holder
            amount: Initial deposit, or the credit limit for credit cards
            **kwargs: Passed to the variant constructor (e.g. interest_rate)

        Returns:
            The registered account
        """
        with self._lock:
            account_number = self._unused_account_number(account_type)
            account = create_account(
                account_type, holder_name, amount,
                account_number=account_number, clock=self.clock, **kwargs
            )
            self.add(account)

        log_action(
            logger, "info", f"Opened {account_type.label} for {account.holder_name}",
            action="account_opened", resource=account.account_number,
            extra={"balance": str(account.balance)}
        )
        self.save()
        return account

    def close_account(self, account_number: str) -> Account:
        account = self.by_number(account_number)
        account.close_account()
        log_action(
            logger, "info", f"Closed account {account_number}",
            action="account_closed", resource=account.account_number
        )
        self.save()
        return account

    def reopen_account(self, account_number: str) -> Account:
        account = self.by_number(account_number)
        account.reopen_account()
        log_action(
            logger, "info", f"Reopened account {account_number}",
            action="account_reopened", resource=account.account_number
        )
        self.save()
        return account

    def transfer(self, from_number: str, to_number: str, amount: AmountLike) -> Decimal:
        """
        Transfer between two registered accounts

        Returns:
            Balance of the source account after the transfer
        """
        source = self.by_number(from_number)
        destination = self.by_number(to_number)
        return source.transfer(destination, amount)

    # Internals

    def _unused_account_number(self, account_type: AccountType) -> str:
        for _ in range(MAX_NUMBER_ATTEMPTS):
            candidate = generate_account_number(account_type)
            if candidate not in self._index:
                return candidate
        raise InvalidAccountError(f"No free account number for {account_type.label}")

    def _call_store(self, operation: str, func: Callable[[], T]) -> T:
        """Run a store call bounded by the persistence timeout"""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="account-store")
        try:
            future = executor.submit(func)
            try:
                return future.result(timeout=self.persistence_timeout)
            except FutureTimeoutError:
                future.cancel()
                raise StorageError(
                    f"Store {operation} timed out after {self.persistence_timeout} seconds"
                )
        finally:
            executor.shutdown(wait=False)
