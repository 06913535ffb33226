"""
Interest and Fee Engine Module

The periodic job that walks the registry: credits interest to investment
accounts, charges interest on credit-card debt and resets the per-period
counters of bank and checking accounts. InterestScheduler drives the engine
from a Clock, starting on the first day of the next calendar month and
repeating every fixed number of days.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional
import logging
import threading

from .accounts import (
    Account, AccountType, BankAccount, CheckingAccount, CreditCardAccount, InvestmentAccount
)
from .clock import Clock, default_clock
from .exceptions import InvalidAccountError
from .logging_config import log_action
from .money import ZERO
from .registry import AccountRegistry

logger = logging.getLogger(__name__)


@dataclass
class EngineRunResult:
    """Outcome of one engine scan"""
    started_at: datetime
    finished_at: Optional[datetime] = None
    interest_credited: Dict[str, Decimal] = field(default_factory=dict)
    interest_charged: Dict[str, Decimal] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: bool = False

    @property
    def accounts_updated(self) -> int:
        return len(self.interest_credited) + len(self.interest_charged)

    @property
    def total_credited(self) -> Decimal:
        return sum(self.interest_credited.values(), ZERO)

    @property
    def total_charged(self) -> Decimal:
        return sum(self.interest_charged.values(), ZERO)


class InterestFeeEngine:
    """
    Applies monthly interest across the registry

    A single account's failure is logged and recorded in the run result;
    the scan always continues. Runs never overlap: a run requested while
    another is in progress is skipped.
    """

    def __init__(self, registry: AccountRegistry, clock: Optional[Clock] = None):
        self.registry = registry
        self.clock = clock or registry.clock or default_clock()
        self._run_lock = threading.Lock()

    def run(self) -> EngineRunResult:
        """
        Apply one month of interest to every active interest-bearing account

        Returns:
            EngineRunResult with the amounts applied per account number
        """
        result = EngineRunResult(started_at=self.clock.now())

        if not self._run_lock.acquire(blocking=False):
            logger.warning("Interest run already in progress; skipping")
            result.skipped = True
            result.finished_at = self.clock.now()
            return result

        try:
            for account in self.registry.by_type(AccountType.INVESTMENT):
                if not account.is_active:
                    continue
                try:
                    interest = account.apply_interest()
                    if interest > ZERO:
                        result.interest_credited[account.account_number] = interest
                except Exception as e:
                    logger.exception(f"Interest credit failed for account {account.account_number}")
                    result.failures[account.account_number] = str(e)

            for account in self.registry.by_type(AccountType.CREDIT_CARD):
                if not account.is_active:
                    continue
                try:
                    interest = account.apply_monthly_interest()
                    if interest > ZERO:
                        result.interest_charged[account.account_number] = interest
                except Exception as e:
                    logger.exception(f"Interest charge failed for account {account.account_number}")
                    result.failures[account.account_number] = str(e)
        finally:
            self._run_lock.release()

        result.finished_at = self.clock.now()
        log_action(
            logger, "info",
            f"Interest run finished: {result.accounts_updated} accounts updated, "
            f"{len(result.failures)} failures",
            action="interest_run",
            extra={
                "credited": str(result.total_credited),
                "charged": str(result.total_charged),
                "failures": len(result.failures),
            }
        )
        return result

    def apply_interest_to_account(self, account: Account) -> Decimal:
        """
        Apply one month of interest to a single account

        Raises:
            InvalidAccountError: If the account does not bear interest
        """
        if isinstance(account, InvestmentAccount):
            return account.apply_interest()
        if isinstance(account, CreditCardAccount):
            return account.apply_monthly_interest()
        raise InvalidAccountError(f"{account.type_label} does not bear interest")

    def reset_monthly_transaction_counts(self) -> int:
        """Start a new fee period on every checking account"""
        accounts = self.registry.by_type(CheckingAccount)
        for account in accounts:
            account.reset_monthly_transaction_count()
        logger.info(f"Reset monthly transaction counts on {len(accounts)} checking accounts")
        return len(accounts)

    def reset_daily_withdrawal_amounts(self) -> int:
        """Start a new withdrawal day on every bank account"""
        accounts = self.registry.by_type(BankAccount)
        for account in accounts:
            account.reset_daily_withdrawal_amount()
        logger.info(f"Reset daily withdrawal amounts on {len(accounts)} bank accounts")
        return len(accounts)

    def reset_period_counters(self) -> int:
        return self.reset_monthly_transaction_counts() + self.reset_daily_withdrawal_amounts()


def first_of_next_month(instant: datetime) -> datetime:
    """Midnight UTC on the first day of the month after `instant`"""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    instant = instant.astimezone(timezone.utc)
    if instant.month == 12:
        return datetime(instant.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(instant.year, instant.month + 1, 1, tzinfo=timezone.utc)


class InterestScheduler:
    """
    Periodic driver for InterestFeeEngine.run

    The first run is due on the first day of the next calendar month, later
    runs every `period_days` after the previous due time. Periods missed
    while the scheduler was not checking are run in order on the next check.
    `run_pending` can be called directly with a ManualClock to simulate
    elapsed months; `start(background=True)` runs the checks on a daemon
    thread instead.
    """

    def __init__(
        self,
        engine: InterestFeeEngine,
        clock: Optional[Clock] = None,
        period_days: int = 30,
        poll_seconds: float = 60.0
    ):
        if period_days < 1:
            raise ValueError("period_days must be at least 1")
        if poll_seconds <= 0:
            raise ValueError("poll_seconds must be positive")

        self.engine = engine
        self.clock = clock or engine.clock
        self.period = timedelta(days=period_days)
        self.poll_seconds = poll_seconds

        self._state_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._started = False
        self._next_run_at: Optional[datetime] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._started

    @property
    def next_run_at(self) -> Optional[datetime]:
        with self._state_lock:
            return self._next_run_at

    def start(self, background: bool = True) -> None:
        with self._state_lock:
            if self._started:
                logger.warning("Interest scheduler already started")
                return
            self._started = True
            self._stop_event.clear()
            self._next_run_at = first_of_next_month(self.clock.now())
            next_run_at = self._next_run_at

        log_action(
            logger, "info", f"Interest scheduler started; first run at {next_run_at.isoformat()}",
            action="scheduler_started", extra={"period_days": self.period.days}
        )

        if background:
            thread = threading.Thread(target=self._loop, name="interest-scheduler", daemon=True)
            with self._state_lock:
                self._thread = thread
            thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Prevent future runs

        An in-progress run is not interrupted; this call waits for it.
        """
        with self._state_lock:
            if not self._started:
                return
            self._started = False
            self._next_run_at = None
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        # Wait for a run already under way
        with self._run_lock:
            pass

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        log_action(logger, "info", "Interest scheduler stopped", action="scheduler_stopped")

    def run_pending(self) -> List[EngineRunResult]:
        """
        Run every period that is due at the clock's current instant

        Returns:
            One result per run, oldest period first; empty when nothing is due
            or the scheduler is stopped. A skipped run ends the list and its
            period stays due.
        """
        results = []
        with self._run_lock:
            while True:
                with self._state_lock:
                    if not self._started or self._next_run_at is None:
                        break
                    if self.clock.now() < self._next_run_at:
                        break
                    due = self._next_run_at

                logger.info(f"Running interest period due at {due.isoformat()}")
                result = self.engine.run()
                results.append(result)

                if result.skipped:
                    logger.warning(
                        f"Interest period due at {due.isoformat()} overlapped another run; "
                        f"retrying on the next check"
                    )
                    break

                with self._state_lock:
                    if self._next_run_at == due:
                        self._next_run_at = due + self.period
        return results

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_pending()
            except Exception:
                logger.exception("Scheduled interest run failed")
                self._stop_event.wait(self.poll_seconds)
                continue
            self._stop_event.wait(self._seconds_until_next_check())

    def _seconds_until_next_check(self) -> float:
        next_run_at = self.next_run_at
        if next_run_at is None:
            return self.poll_seconds
        remaining = (next_run_at - self.clock.now()).total_seconds()
        if remaining <= 0:
            # Still due after a check: the run was skipped, retry after a poll
            return self.poll_seconds
        return min(self.poll_seconds, remaining)
