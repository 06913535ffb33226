"""
Transaction Ledger Module

Immutable ledger entries and the append-only, insertion-ordered ledger that
every account owns. Entries record the owning account's balance right after
the event they describe; nothing is ever edited or removed.
"""

from decimal import Decimal
from datetime import date, datetime, time, timedelta, timezone
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Union
from enum import Enum
import threading

from .clock import Clock, default_clock
from .money import format_amount, to_amount


class TransactionType(Enum):
    """Ledger entry labels"""
    INITIAL_DEPOSIT = "Initial Deposit"
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    TRANSFER_IN = "Transfer In"
    TRANSFER_OUT = "Transfer Out"
    TRANSFER_REVERSED = "Transfer Reversed"
    FEE = "Fee"
    INTEREST = "Interest"
    INTEREST_CHARGE = "Interest Charge"
    PURCHASE = "Purchase"
    PAYMENT = "Payment"
    ACCOUNT_CLOSED = "Account Closed"
    ACCOUNT_REOPENED = "Account Reopened"
    INTEREST_RATE_CHANGE = "Interest Rate Change"


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Transaction:
    """
    Immutable ledger entry

    `type` is a free-form label; the TransactionType values are the labels
    the account variants write.
    """
    timestamp: datetime
    type: str
    amount: Decimal
    description: str
    balance_after: Decimal

    def __post_init__(self):
        if isinstance(self.type, TransactionType):
            object.__setattr__(self, 'type', self.type.value)
        object.__setattr__(self, 'amount', to_amount(self.amount))
        object.__setattr__(self, 'balance_after', to_amount(self.balance_after))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for presentation layers"""
        return {
            'timestamp': self.timestamp.isoformat(),
            'type': self.type,
            'amount': str(self.amount),
            'description': self.description,
            'balance_after': str(self.balance_after),
        }

    def __str__(self) -> str:
        return (
            f"[{self.timestamp.strftime(TIMESTAMP_FORMAT)}] {self.type}: "
            f"{format_amount(self.amount)} - {self.description} "
            f"(Balance: {format_amount(self.balance_after)})"
        )


class TransactionLedger:
    """
    Append-only transaction history for one account

    Entries are kept in insertion order. Queries return new lists, so callers
    can never reorder or drop entries from the ledger itself.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or default_clock()
        self._entries: List[Transaction] = []
        self._lock = threading.Lock()

    def record(
        self,
        transaction_type: Union[TransactionType, str],
        amount: Decimal,
        description: str,
        balance_after: Decimal
    ) -> Transaction:
        """Append a new entry stamped with the current instant"""
        transaction = Transaction(
            timestamp=self._clock.now(),
            type=transaction_type,
            amount=amount,
            description=description,
            balance_after=balance_after
        )
        with self._lock:
            self._entries.append(transaction)
        return transaction

    def history(self) -> List[Transaction]:
        """Full history, oldest first"""
        with self._lock:
            return list(self._entries)

    def between(self, start_date: date, end_date: date) -> List[Transaction]:
        """
        Entries whose timestamp falls within an inclusive date range

        The end day is extended to its last instant, so an entry stamped late
        on `end_date` is included.
        """
        start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
        end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        return [
            entry for entry in self.history()
            if start <= _as_utc(entry.timestamp) < end
        ]

    def of_type(self, transaction_type: Union[TransactionType, str]) -> List[Transaction]:
        """Entries whose type matches exactly, ignoring case"""
        if isinstance(transaction_type, TransactionType):
            transaction_type = transaction_type.value
        wanted = transaction_type.casefold()
        return [entry for entry in self.history() if entry.type.casefold() == wanted]

    def last(self, count: int) -> List[Transaction]:
        """The most recent `count` entries, oldest first; everything if count >= size"""
        if count < 0:
            raise ValueError("count must not be negative")
        entries = self.history()
        if count >= len(entries):
            return entries
        return entries[len(entries) - count:]

    def format_history(self, account_number: str) -> str:
        """Printable history for one account"""
        lines = [
            f"Transaction History for Account {account_number}",
            "----------------------------------------",
        ]
        entries = self.history()
        if not entries:
            lines.append("No transactions found")
        else:
            lines.extend(str(entry) for entry in entries)
        return "\n".join(lines) + "\n"

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.history())


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)
