"""
Storage Backend Module

Persistence stores for the account registry. Every store speaks the same
seven-column record layout (one row per account, header first):

    Account Number,Account Holder Name,Balance,Account Type,Is Active,Opening Date,Closing Date

Balances are written with two decimals, flags as true/false and dates as
yyyy-MM-dd. Names containing commas are quoted by the csv module. Rows with
an empty or "null" account number are skipped; rows with an unknown account
type or unparsable fields are dropped with a warning.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import date
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union
import csv
import logging
import threading

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .accounts import Account, AccountType, create_account
from .clock import Clock
from .exceptions import AccountError, StorageError
from .money import to_amount

logger = logging.getLogger(__name__)

HEADER = [
    "Account Number",
    "Account Holder Name",
    "Balance",
    "Account Type",
    "Is Active",
    "Opening Date",
    "Closing Date",
]

DEFAULT_RESTORED_CREDIT_LIMIT = Decimal('5000.00')


class AccountRecord(BaseModel):
    """One persisted account row"""

    model_config = ConfigDict(frozen=True)

    account_number: str
    holder_name: str
    balance: Decimal
    account_type: AccountType
    is_active: bool
    opening_date: date
    closing_date: Optional[date] = None

    @field_validator('account_number', 'holder_name', mode='before')
    @classmethod
    def _strip_required(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator('balance', mode='before')
    @classmethod
    def _parse_balance(cls, value: Any) -> Decimal:
        try:
            return to_amount(value)
        except AccountError as e:
            raise ValueError(str(e))

    @field_validator('account_type', mode='before')
    @classmethod
    def _parse_account_type(cls, value: Any) -> AccountType:
        if isinstance(value, AccountType):
            return value
        account_type = AccountType.from_label(str(value).strip())
        if account_type is None:
            raise ValueError(f"unknown account type '{value}'")
        return account_type

    @field_validator('is_active', mode='before')
    @classmethod
    def _parse_flag(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() == "true"

    @field_validator('closing_date', mode='before')
    @classmethod
    def _blank_closing_date(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @classmethod
    def from_row(cls, row: Sequence[str]) -> 'AccountRecord':
        """
        Parse a CSV row

        Rows written without quoting whose name contained commas have more
        than seven cells; the name is rebuilt from the middle cells.
        """
        if len(row) < 6:
            raise ValueError(f"expected at least 6 columns, got {len(row)}")

        if len(row) > len(HEADER):
            name = ",".join(row[1:len(row) - 5])
            tail = list(row[len(row) - 5:])
        else:
            name = row[1]
            tail = list(row[2:]) + [""] * (len(HEADER) - len(row))

        balance, account_type, is_active, opening_date, closing_date = tail
        return cls(
            account_number=row[0],
            holder_name=name,
            balance=balance,
            account_type=account_type,
            is_active=is_active,
            opening_date=opening_date.strip(),
            closing_date=closing_date.strip()
        )

    @classmethod
    def from_account(cls, account: Account) -> 'AccountRecord':
        """Snapshot an account under its lock"""
        with account.lock:
            return cls(
                account_number=account.account_number,
                holder_name=account.holder_name,
                balance=account.balance,
                account_type=account.account_type,
                is_active=account.is_active,
                opening_date=account.opening_date,
                closing_date=account.closing_date
            )

    def to_row(self) -> List[str]:
        return [
            self.account_number,
            self.holder_name,
            f"{self.balance:.2f}",
            self.account_type.label,
            "true" if self.is_active else "false",
            self.opening_date.isoformat(),
            self.closing_date.isoformat() if self.closing_date else "",
        ]

    def to_account(
        self,
        restored_credit_limit: Decimal = DEFAULT_RESTORED_CREDIT_LIMIT,
        clock: Optional[Clock] = None
    ) -> Account:
        """
        Rebuild the account this record describes

        The ledger of a restored account starts empty; the record layout
        does not carry transactions.
        """
        if self.account_type is AccountType.CREDIT_CARD:
            # Never restore a card whose debt already exceeds its limit
            amount = max(restored_credit_limit, -self.balance)
        else:
            amount = 0

        account = create_account(
            self.account_type,
            self.holder_name,
            amount,
            account_number=self.account_number,
            opening_date=self.opening_date,
            clock=clock
        )
        account._restore_state(self.balance, self.is_active, self.opening_date, self.closing_date)
        return account


def _type_label(row: Sequence[str]) -> Optional[str]:
    if len(row) > len(HEADER):
        return row[len(row) - 4].strip()
    if len(row) > 3:
        return row[3].strip()
    return None


class PersistenceStore(ABC):
    """Abstract interface for account persistence"""

    def __init__(
        self,
        restored_credit_limit: Decimal = DEFAULT_RESTORED_CREDIT_LIMIT,
        clock: Optional[Clock] = None
    ):
        self.restored_credit_limit = restored_credit_limit
        self.clock = clock

    @abstractmethod
    def load(self) -> List[Account]:
        """
        Load every persisted account

        Raises:
            StorageError: If the backing data cannot be read
        """
        pass

    @abstractmethod
    def save(self, accounts: Sequence[Account]) -> None:
        """
        Replace the persisted set with `accounts`

        Raises:
            StorageError: If the backing data cannot be written
        """
        pass

    def _accounts_from_rows(self, rows: Sequence[Sequence[str]]) -> List[Account]:
        """Decode data rows (header excluded), dropping the ones that do not parse"""
        accounts = []
        for line_number, row in enumerate(rows, start=2):
            if not row or all(not cell.strip() for cell in row):
                continue

            account_number = row[0].strip()
            if not account_number or account_number == "null":
                logger.debug(f"Skipping row {line_number} without an account number")
                continue

            label = _type_label(row)
            if label is not None and AccountType.from_label(label) is None:
                logger.warning(
                    f"Unknown account type '{label}' for account {account_number}; row {line_number} dropped"
                )
                continue

            try:
                record = AccountRecord.from_row(row)
                account = record.to_account(self.restored_credit_limit, self.clock)
            except (ValidationError, ValueError, AccountError) as e:
                logger.warning(f"Invalid record for account {account_number} on row {line_number}: {e}")
                continue

            accounts.append(account)
        return accounts

    @staticmethod
    def _rows_from_accounts(accounts: Sequence[Account]) -> List[List[str]]:
        return [AccountRecord.from_account(account).to_row() for account in accounts]


class CSVAccountStore(PersistenceStore):
    """CSV file persistence"""

    def __init__(
        self,
        path: Union[str, Path],
        restored_credit_limit: Decimal = DEFAULT_RESTORED_CREDIT_LIMIT,
        clock: Optional[Clock] = None
    ):
        super().__init__(restored_credit_limit, clock)
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> List[Account]:
        with self._lock:
            if not self.path.exists():
                logger.info(f"No account file at {self.path}; starting empty")
                return []

            try:
                with self.path.open("r", newline="", encoding="utf-8") as handle:
                    rows = list(csv.reader(handle))
            except (OSError, csv.Error, UnicodeDecodeError) as e:
                raise StorageError(f"Error loading accounts from {self.path}: {e}") from e

        if not rows:
            return []

        header, data = rows[0], rows[1:]
        if [cell.strip() for cell in header] != HEADER:
            logger.warning(f"Unexpected header in {self.path}: {header}")

        return self._accounts_from_rows(data)

    def save(self, accounts: Sequence[Account]) -> None:
        rows = self._rows_from_accounts(accounts)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("w", newline="", encoding="utf-8") as handle:
                    writer = csv.writer(handle, lineterminator="\n")
                    writer.writerow(HEADER)
                    writer.writerows(rows)
            except (OSError, csv.Error) as e:
                raise StorageError(f"Error saving accounts to {self.path}: {e}") from e


class InMemoryAccountStore(PersistenceStore):
    """In-memory store for testing; keeps the encoded rows, not the objects"""

    def __init__(
        self,
        rows: Optional[Sequence[Sequence[str]]] = None,
        restored_credit_limit: Decimal = DEFAULT_RESTORED_CREDIT_LIMIT,
        clock: Optional[Clock] = None
    ):
        super().__init__(restored_credit_limit, clock)
        self._rows: List[List[str]] = [list(row) for row in rows or []]
        self._lock = threading.RLock()
        self.save_count = 0

    @property
    def rows(self) -> List[List[str]]:
        with self._lock:
            return [list(row) for row in self._rows]

    def load(self) -> List[Account]:
        return self._accounts_from_rows(self.rows)

    def save(self, accounts: Sequence[Account]) -> None:
        rows = self._rows_from_accounts(accounts)
        with self._lock:
            self._rows = rows
            self.save_count += 1
