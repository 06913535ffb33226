"""
Account Error Types

Recoverable business-rule errors raised by account operations and registry
lookups, plus the storage error used between stores and the registry.
"""

from decimal import Decimal
from typing import Optional

from .money import format_amount


class AccountError(Exception):
    """Base exception for all account-related errors"""

    default_message = "Account operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class InvalidAmountError(AccountError):
    """Raised for non-positive or otherwise disallowed amounts"""

    default_message = "Invalid transaction amount"

    @classmethod
    def for_amount(cls, amount: Decimal) -> 'InvalidAmountError':
        return cls(f"Invalid amount: {format_amount(amount)}. Amount must be positive")


class AccountClosedError(AccountError):
    """Raised when mutating a closed account, or reopening an active one"""

    default_message = "This account has been closed and is no longer active"

    @classmethod
    def closed_on(cls, account_number: str, closing_date) -> 'AccountClosedError':
        return cls(f"Account {account_number} was closed on {closing_date} and is no longer active")


class InsufficientFundsError(AccountError):
    """Raised when a withdrawal, transfer, payment or closure exceeds what is available"""

    default_message = "Insufficient funds available for this transaction"

    @classmethod
    def for_amount(cls, amount: Decimal, balance: Decimal) -> 'InsufficientFundsError':
        return cls(
            f"Insufficient funds: Requested {format_amount(amount)} "
            f"but available balance is {format_amount(balance)}"
        )


class TransactionLimitError(AccountError):
    """Raised when a daily, monthly or credit limit would be breached"""

    default_message = "Transaction exceeds the allowed limit for this account"

    @classmethod
    def for_amount(cls, amount: Decimal, limit: Decimal) -> 'TransactionLimitError':
        return cls(
            f"Transaction of {format_amount(amount)} exceeds the limit of {format_amount(limit)}"
        )


class InvalidAccountError(AccountError):
    """Raised for lookup misses and missing account references"""

    default_message = "Invalid account details or account does not exist"

    @classmethod
    def not_found(cls, account_number: str) -> 'InvalidAccountError':
        return cls(f"Invalid account: {account_number} - Account not found")


class StorageError(Exception):
    """Raised by persistence stores when loading or saving fails"""
