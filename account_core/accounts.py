"""
Account Management Module

The account abstraction and its four variants. Every variant owns a
transaction ledger and enforces its own rules:

- BankAccount: daily withdrawal limit and minimum balance
- CheckingAccount: monthly free-transaction quota, flat fee beyond it
- CreditCardAccount: credit limit, payments capped at current debt, interest on debt
- InvestmentAccount: monthly interest above a balance threshold

All checks run before any state change, so a raised error leaves the
account untouched. Each account carries a re-entrant lock that guards its
balance, activity flag and ledger.
"""

from abc import ABC
from decimal import Decimal, InvalidOperation
from datetime import date
from enum import Enum
from typing import Dict, Optional, Type
import logging
import random
import threading

from .clock import Clock, default_clock
from .exceptions import (
    AccountClosedError, InsufficientFundsError, InvalidAccountError,
    InvalidAmountError, TransactionLimitError
)
from .money import AmountLike, ZERO, format_amount, monthly_rate, quantize, to_amount
from .transactions import Transaction, TransactionLedger, TransactionType

logger = logging.getLogger(__name__)


class AccountType(Enum):
    """Closed set of account variants: persisted label and account-number prefix"""
    BANK = ("Bank Account", 1)
    INVESTMENT = ("Investment Account", 2)
    CHECKING = ("Checking Account", 3)
    CREDIT_CARD = ("Credit Card Account", 4)

    def __init__(self, label: str, prefix: int):
        self.label = label
        self.prefix = prefix

    @classmethod
    def from_label(cls, label: str) -> Optional['AccountType']:
        """Look up a variant by its persisted label; None if unknown"""
        for account_type in cls:
            if account_type.label == label:
                return account_type
        return None


# Account numbers are 9 digits: prefix * 10^8 + a random suffix below 10^6
ACCOUNT_NUMBER_BLOCK = 100_000_000
ACCOUNT_NUMBER_SPAN = 1_000_000

_random = random.Random()


def generate_account_number(account_type: AccountType, rng: Optional[random.Random] = None) -> str:
    """Draw a candidate account number from the variant's range"""
    rng = rng or _random
    return str(account_type.prefix * ACCOUNT_NUMBER_BLOCK + rng.randrange(ACCOUNT_NUMBER_SPAN))


class Account(ABC):
    """
    Base account with the operations common to all variants

    Subclasses set `account_type` and extend the rule checks; they never
    bypass `_log`, so every mutation leaves a ledger entry carrying the
    post-mutation balance.
    """

    account_type: AccountType

    def __init__(
        self,
        holder_name: str,
        initial_deposit: AmountLike = 0,
        *,
        account_number: Optional[str] = None,
        opening_date: Optional[date] = None,
        clock: Optional[Clock] = None
    ):
        amount = to_amount(initial_deposit)
        if amount < ZERO:
            raise InvalidAmountError.for_amount(amount)

        if not holder_name or not holder_name.strip():
            raise InvalidAccountError("Account holder name cannot be empty")

        self._clock = clock or default_clock()
        self._lock = threading.RLock()
        self._holder_name = holder_name.strip()
        self._balance = amount
        self._opening_date = opening_date or self._clock.today()
        self._closing_date: Optional[date] = None
        self._is_active = True
        self._ledger = TransactionLedger(self._clock)
        self._account_number = account_number or generate_account_number(self.account_type)

        if amount > ZERO:
            self._log(TransactionType.INITIAL_DEPOSIT, amount, "Account opening deposit")

    # Read-only state

    @property
    def account_number(self) -> str:
        return self._account_number

    @property
    def holder_name(self) -> str:
        return self._holder_name

    @property
    def balance(self) -> Decimal:
        with self._lock:
            return self._balance

    @property
    def opening_date(self) -> date:
        return self._opening_date

    @property
    def closing_date(self) -> Optional[date]:
        return self._closing_date

    @property
    def is_active(self) -> bool:
        return self._is_active

    @property
    def ledger(self) -> TransactionLedger:
        return self._ledger

    @property
    def transactions(self):
        """Ledger entries, oldest first (a copy)"""
        return self._ledger.history()

    @property
    def lock(self) -> threading.RLock:
        """Exclusive-access lock for this account's mutable state"""
        return self._lock

    @property
    def type_label(self) -> str:
        return self.account_type.label

    # Operations

    def deposit(self, amount: AmountLike) -> Decimal:
        """
        Add funds to the account

        Returns:
            Balance after the deposit

        Raises:
            AccountClosedError: If the account is closed
            InvalidAmountError: If amount is not positive
        """
        with self._lock:
            self._ensure_active()
            value = self._validate_amount(amount, "Deposit")
            self._balance += value
            self._log(TransactionType.DEPOSIT, value, "Cash deposit")
            return self._balance

    def withdraw(self, amount: AmountLike) -> Decimal:
        """
        Remove funds from the account

        Returns:
            Balance after the withdrawal

        Raises:
            AccountClosedError: If the account is closed
            InvalidAmountError: If amount is not positive
            InsufficientFundsError: If amount exceeds the balance
        """
        with self._lock:
            self._ensure_active()
            value = self._validate_amount(amount, "Withdrawal")
            if value > self._balance:
                raise InsufficientFundsError.for_amount(value, self._balance)
            self._balance -= value
            self._log(TransactionType.WITHDRAWAL, value, "Cash withdrawal")
            return self._balance

    def transfer(self, destination: Optional['Account'], amount: AmountLike) -> Decimal:
        """
        Move funds to another account as one atomic operation

        Both accounts are locked in ascending account-number order for the
        whole debit/credit pair. The destination is checked before the debit;
        if the credit step still fails, the debit is reversed with a
        "Transfer Reversed" entry and the error is re-raised.

        Returns:
            Balance of this account after the transfer

        Raises:
            InvalidAccountError: If destination is missing or is this account
            AccountClosedError: If either account is closed
            InvalidAmountError: If amount is not positive
            InsufficientFundsError: If amount exceeds the balance
        """
        if destination is None:
            raise InvalidAccountError("Destination account does not exist")
        if destination is self:
            raise InvalidAccountError("Cannot transfer to the same account")

        first, second = sorted(
            (self, destination),
            key=lambda account: (account.account_number, id(account))
        )
        with first.lock, second.lock:
            self._ensure_active()
            if not destination.is_active:
                raise AccountClosedError("Destination account is closed")

            value = self._validate_amount(amount, "Transfer")
            self._check_transfer(value)
            destination._check_can_receive(value)

            self._balance -= value
            self._log(
                TransactionType.TRANSFER_OUT, value,
                f"Transfer to account {destination.account_number}"
            )

            try:
                destination._receive_transfer(self, value)
            except Exception:
                self._balance += value
                self._log(
                    TransactionType.TRANSFER_REVERSED, value,
                    f"Transfer to account {destination.account_number} reversed"
                )
                logger.error(
                    f"Transfer {self.account_number} -> {destination.account_number} "
                    f"of {format_amount(value)} reversed after credit failure"
                )
                raise

            self._after_transfer(value)
            return self._balance

    def close_account(self) -> None:
        """
        Close the account

        Raises:
            AccountClosedError: If the account is already closed
            InsufficientFundsError: If the balance is negative
        """
        with self._lock:
            if not self._is_active:
                raise AccountClosedError("Account is already closed")
            if self._balance < ZERO:
                raise InsufficientFundsError("Cannot close account with negative balance")

            self._is_active = False
            self._closing_date = self._clock.today()
            self._log(
                TransactionType.ACCOUNT_CLOSED, ZERO,
                f"Account closed with final balance of {format_amount(self._balance)}"
            )

    def reopen_account(self) -> None:
        """
        Reopen a closed account

        Raises:
            AccountClosedError: If the account is already active
        """
        with self._lock:
            if self._is_active:
                raise AccountClosedError("Account is already active")

            self._is_active = True
            self._closing_date = None
            self._log(TransactionType.ACCOUNT_REOPENED, ZERO, "Account reopened")

    def verify_account_details(self) -> bool:
        """Check that the required fields are populated"""
        return bool(self._account_number) and bool(self._holder_name) and self._opening_date is not None

    def describe(self) -> str:
        """Multi-line account summary"""
        with self._lock:
            lines = [
                f"Account Number: {self._account_number}",
                f"Account Holder: {self._holder_name}",
                f"Account Type: {self.type_label}",
                f"Balance: {format_amount(self._balance)}",
                f"Opening Date: {self._opening_date.isoformat()}",
                f"Status: {'Active' if self._is_active else 'Closed'}",
            ]
            if not self._is_active and self._closing_date is not None:
                lines.append(f"Closing Date: {self._closing_date.isoformat()}")
        return "\n".join(lines) + "\n"

    def transaction_history(self) -> str:
        """Printable ledger for this account"""
        return self._ledger.format_history(self._account_number)

    # Hooks used by transfer

    def _check_transfer(self, value: Decimal) -> None:
        if value > self._balance:
            raise InsufficientFundsError.for_amount(value, self._balance)

    def _check_can_receive(self, value: Decimal) -> None:
        """Raise if this account cannot accept an incoming transfer of `value`"""

    def _receive_transfer(self, source: 'Account', value: Decimal) -> None:
        self._balance += value
        self._log(
            TransactionType.TRANSFER_IN, value,
            f"Transfer from account {source.account_number}"
        )

    def _after_transfer(self, value: Decimal) -> None:
        pass

    # Internals

    def _ensure_active(self) -> None:
        if not self._is_active:
            if self._closing_date is not None:
                raise AccountClosedError.closed_on(self._account_number, self._closing_date.isoformat())
            raise AccountClosedError()

    def _validate_amount(self, amount: AmountLike, label: str) -> Decimal:
        value = to_amount(amount)
        if value <= ZERO:
            raise InvalidAmountError(f"{label} amount must be positive")
        return value

    def _log(self, transaction_type: TransactionType, amount: Decimal, description: str) -> Transaction:
        return self._ledger.record(transaction_type, amount, description, self._balance)

    def _check_restored_balance(self, balance: Decimal) -> None:
        if balance < ZERO:
            raise InvalidAmountError(f"{self.type_label} balance cannot be negative")

    def _restore_state(
        self,
        balance: Decimal,
        is_active: bool,
        opening_date: date,
        closing_date: Optional[date]
    ) -> None:
        """Overwrite state with persisted values; used only when loading"""
        balance = to_amount(balance)
        self._check_restored_balance(balance)
        with self._lock:
            self._balance = balance
            self._is_active = is_active
            self._opening_date = opening_date
            self._closing_date = None if is_active else closing_date

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(account_number={self._account_number!r}, "
            f"holder_name={self._holder_name!r}, balance={self._balance}, "
            f"is_active={self._is_active})"
        )


class BankAccount(Account):
    """Standard bank account with a daily withdrawal limit and a minimum balance"""

    account_type = AccountType.BANK

    DAILY_WITHDRAWAL_LIMIT = Decimal('1000.00')
    MINIMUM_BALANCE = Decimal('100.00')

    def __init__(self, holder_name: str, initial_deposit: AmountLike = 0, **kwargs):
        super().__init__(holder_name, initial_deposit, **kwargs)
        self._daily_withdrawal_amount = ZERO

    @property
    def daily_withdrawal_limit(self) -> Decimal:
        return self.DAILY_WITHDRAWAL_LIMIT

    @property
    def minimum_balance(self) -> Decimal:
        return self.MINIMUM_BALANCE

    @property
    def daily_withdrawal_amount(self) -> Decimal:
        return self._daily_withdrawal_amount

    @property
    def remaining_daily_limit(self) -> Decimal:
        return self.DAILY_WITHDRAWAL_LIMIT - self._daily_withdrawal_amount

    def withdraw(self, amount: AmountLike) -> Decimal:
        """
        Withdraw within the daily limit without dropping below the minimum balance

        Raises:
            TransactionLimitError: If the single or cumulative daily limit would
                be exceeded, or the balance would fall below the minimum
        """
        with self._lock:
            self._ensure_active()
            value = self._validate_amount(amount, "Withdrawal")

            if value > self.DAILY_WITHDRAWAL_LIMIT:
                raise TransactionLimitError.for_amount(value, self.DAILY_WITHDRAWAL_LIMIT)

            if self._daily_withdrawal_amount + value > self.DAILY_WITHDRAWAL_LIMIT:
                raise TransactionLimitError(
                    f"Daily withdrawal limit exceeded. Remaining limit: "
                    f"{format_amount(self.remaining_daily_limit)}"
                )

            if self._balance - value < self.MINIMUM_BALANCE:
                raise TransactionLimitError(
                    f"Withdrawal would drop balance below minimum ({format_amount(self.MINIMUM_BALANCE)})"
                )

            balance = super().withdraw(value)
            self._daily_withdrawal_amount += value
            return balance

    def reset_daily_withdrawal_amount(self) -> None:
        """Start a new withdrawal day"""
        with self._lock:
            self._daily_withdrawal_amount = ZERO

    def verify_account_details(self) -> bool:
        return super().verify_account_details() and self._balance >= self.MINIMUM_BALANCE


class CheckingAccount(Account):
    """
    Checking account with a monthly free-transaction quota

    Deposits, withdrawals and outgoing transfers each count against the
    quota; beyond it a flat fee is deducted. When the fee could not be
    covered the operation is refused before anything changes.
    """

    account_type = AccountType.CHECKING

    TRANSACTION_FEE = Decimal('1.50')
    FREE_TRANSACTIONS_PER_MONTH = 5

    def __init__(self, holder_name: str, initial_deposit: AmountLike = 0, **kwargs):
        super().__init__(holder_name, initial_deposit, **kwargs)
        self._transactions_this_month = 0

    @property
    def transaction_fee(self) -> Decimal:
        return self.TRANSACTION_FEE

    @property
    def free_transactions_per_month(self) -> int:
        return self.FREE_TRANSACTIONS_PER_MONTH

    @property
    def transactions_this_month(self) -> int:
        return self._transactions_this_month

    def deposit(self, amount: AmountLike) -> Decimal:
        with self._lock:
            self._ensure_active()
            value = self._validate_amount(amount, "Deposit")
            self._check_fee_coverage(self._balance + value)
            super().deposit(value)
            self._apply_transaction_fee("Deposit")
            return self._balance

    def withdraw(self, amount: AmountLike) -> Decimal:
        with self._lock:
            self._ensure_active()
            value = self._validate_amount(amount, "Withdrawal")
            if value > self._balance:
                raise InsufficientFundsError.for_amount(value, self._balance)
            self._check_fee_coverage(self._balance - value)
            super().withdraw(value)
            self._apply_transaction_fee("Withdrawal")
            return self._balance

    def reset_monthly_transaction_count(self) -> None:
        """Start a new fee period"""
        with self._lock:
            self._transactions_this_month = 0

    def _check_transfer(self, value: Decimal) -> None:
        super()._check_transfer(value)
        self._check_fee_coverage(self._balance - value)

    def _after_transfer(self, value: Decimal) -> None:
        self._apply_transaction_fee("Transfer")

    def _fee_due_next(self) -> bool:
        return self._transactions_this_month + 1 > self.FREE_TRANSACTIONS_PER_MONTH

    def _check_fee_coverage(self, projected_balance: Decimal) -> None:
        if self._fee_due_next() and projected_balance < self.TRANSACTION_FEE:
            raise TransactionLimitError(
                f"Insufficient funds to cover transaction fee of {format_amount(self.TRANSACTION_FEE)}"
            )

    def _apply_transaction_fee(self, operation: str) -> None:
        self._transactions_this_month += 1

        if self._transactions_this_month > self.FREE_TRANSACTIONS_PER_MONTH:
            self._balance -= self.TRANSACTION_FEE
            self._log(
                TransactionType.FEE, self.TRANSACTION_FEE,
                f"Transaction fee for {operation} (transaction #{self._transactions_this_month})"
            )


class InterestBearing:
    """Interest-rate getter/setter shared by the interest-bearing variants"""

    DEFAULT_INTEREST_RATE = Decimal('0')

    _interest_rate: Decimal

    @property
    def interest_rate(self) -> Decimal:
        """Annual rate as a percentage (2.5 means 2.5%)"""
        return self._interest_rate

    @interest_rate.setter
    def interest_rate(self, rate: AmountLike) -> None:
        value = _to_rate(rate)
        with self._lock:
            self._ensure_active()
            self._interest_rate = value
            self._log(
                TransactionType.INTEREST_RATE_CHANGE, ZERO,
                f"Interest rate changed to {value:.2f}%"
            )


class CreditCardAccount(InterestBearing, Account):
    """
    Credit card account

    The balance is zero or negative; its negation is the current debt.
    Purchases draw on the available credit (limit + balance) and payments
    may not exceed the debt.
    """

    account_type = AccountType.CREDIT_CARD

    DEFAULT_INTEREST_RATE = Decimal('18.99')
    MIN_PAYMENT_PERCENTAGE = Decimal('0.02')
    MIN_PAYMENT_FLOOR = Decimal('20.00')

    def __init__(
        self,
        holder_name: str,
        credit_limit: AmountLike,
        *,
        interest_rate: Optional[AmountLike] = None,
        **kwargs
    ):
        limit = to_amount(credit_limit)
        if limit <= ZERO:
            raise InvalidAmountError("Credit limit must be positive")

        # Credit cards start with a zero balance
        super().__init__(holder_name, 0, **kwargs)
        self._credit_limit = limit
        self._interest_rate = (
            _to_rate(interest_rate) if interest_rate is not None else self.DEFAULT_INTEREST_RATE
        )

    @property
    def credit_limit(self) -> Decimal:
        return self._credit_limit

    @property
    def available_credit(self) -> Decimal:
        with self._lock:
            return self._credit_limit + self._balance

    @property
    def current_debt(self) -> Decimal:
        with self._lock:
            return -self._balance

    @property
    def minimum_payment_due(self) -> Decimal:
        """Larger of 2% of the debt and the floor, never more than the debt"""
        debt = self.current_debt
        if debt <= ZERO:
            return ZERO
        due = max(quantize(debt * self.MIN_PAYMENT_PERCENTAGE), self.MIN_PAYMENT_FLOOR)
        return min(due, debt)

    def deposit(self, amount: AmountLike) -> Decimal:
        """A deposit into a credit card is a payment"""
        return self._pay(amount, "Credit card payment received")

    def withdraw(self, amount: AmountLike) -> Decimal:
        """A withdrawal from a credit card is a purchase"""
        return self.make_purchase(amount, "Credit card purchase")

    def make_purchase(self, amount: AmountLike, description: str = "Credit card purchase") -> Decimal:
        """
        Charge the card

        Raises:
            TransactionLimitError: If amount exceeds the available credit
        """
        with self._lock:
            self._ensure_active()
            value = self._validate_amount(amount, "Purchase")
            available = self._credit_limit + self._balance
            if value > available:
                raise TransactionLimitError.for_amount(value, available)

            self._balance -= value
            self._log(TransactionType.PURCHASE, value, description)
            return self._balance

    def make_payment(self, amount: AmountLike) -> Decimal:
        """
        Pay down the debt

        Raises:
            InsufficientFundsError: If amount exceeds the current debt
        """
        return self._pay(amount, "Credit card payment")

    def apply_monthly_interest(self) -> Decimal:
        """
        Charge one month of interest on the outstanding debt

        Returns:
            Interest charged (zero when there is no debt)
        """
        with self._lock:
            self._ensure_active()
            if self._balance >= ZERO:
                return ZERO

            interest = quantize(-self._balance * monthly_rate(self._interest_rate))
            if interest <= ZERO:
                return ZERO

            self._balance -= interest
            self._log(
                TransactionType.INTEREST_CHARGE, interest,
                f"Monthly interest at {self._interest_rate:.2f}%"
            )
            return interest

    def verify_account_details(self) -> bool:
        return (
            super().verify_account_details()
            and self._credit_limit > ZERO
            and self._interest_rate >= ZERO
            and self._balance <= ZERO
        )

    def _pay(self, amount: AmountLike, description: str) -> Decimal:
        with self._lock:
            self._ensure_active()
            value = self._validate_amount(amount, "Payment")
            self._check_can_receive(value)

            self._balance += value
            self._log(TransactionType.PAYMENT, value, description)
            return self._balance

    def _check_can_receive(self, value: Decimal) -> None:
        debt = -self._balance
        if value > debt:
            raise InsufficientFundsError(
                f"Payment of {format_amount(value)} exceeds current debt of {format_amount(debt)}"
            )

    def _check_restored_balance(self, balance: Decimal) -> None:
        if balance > ZERO:
            raise InvalidAmountError("Credit card balance cannot be positive")


class InvestmentAccount(InterestBearing, Account):
    """Investment account earning monthly interest above a balance threshold"""

    account_type = AccountType.INVESTMENT

    DEFAULT_INTEREST_RATE = Decimal('2.5')
    MIN_BALANCE_FOR_INTEREST = Decimal('1000.00')

    def __init__(
        self,
        holder_name: str,
        initial_deposit: AmountLike = 0,
        *,
        interest_rate: Optional[AmountLike] = None,
        **kwargs
    ):
        super().__init__(holder_name, initial_deposit, **kwargs)
        self._interest_rate = (
            _to_rate(interest_rate) if interest_rate is not None else self.DEFAULT_INTEREST_RATE
        )

    @property
    def min_balance_for_interest(self) -> Decimal:
        return self.MIN_BALANCE_FOR_INTEREST

    def apply_interest(self) -> Decimal:
        """
        Credit one month of interest when the balance reaches the threshold

        Returns:
            Interest added (zero below the threshold)
        """
        with self._lock:
            self._ensure_active()
            if self._balance < self.MIN_BALANCE_FOR_INTEREST:
                return ZERO

            interest = quantize(self._balance * monthly_rate(self._interest_rate))
            if interest <= ZERO:
                return ZERO

            self._balance += interest
            self._log(
                TransactionType.INTEREST, interest,
                f"Monthly interest at {self._interest_rate:.2f}%"
            )
            return interest

    def verify_account_details(self) -> bool:
        return super().verify_account_details() and self._interest_rate >= ZERO


ACCOUNT_CLASSES: Dict[AccountType, Type[Account]] = {
    AccountType.BANK: BankAccount,
    AccountType.CHECKING: CheckingAccount,
    AccountType.CREDIT_CARD: CreditCardAccount,
    AccountType.INVESTMENT: InvestmentAccount,
}


def create_account(
    account_type: AccountType,
    holder_name: str,
    amount: AmountLike = 0,
    **kwargs
) -> Account:
    """
    Construct an account of the given variant

    Args:
        account_type: Variant to create
        holder_name: Name of the account holder
        amount: Initial deposit, or the credit limit for credit cards
        **kwargs: account_number, opening_date, clock, interest_rate

    Returns:
        The new account (not yet registered)
    """
    account_class = ACCOUNT_CLASSES[account_type]
    return account_class(holder_name, amount, **kwargs)


def _to_rate(rate: AmountLike) -> Decimal:
    try:
        value = Decimal(str(rate)) if isinstance(rate, float) else Decimal(rate)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Invalid interest rate: {rate!r}")
    if not value.is_finite() or value < ZERO:
        raise InvalidAmountError("Interest rate cannot be negative")
    return value
