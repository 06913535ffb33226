"""
Test suite for the transaction ledger

Ledger entries are immutable and ordered by insertion; queries never modify
the ledger.
"""

import dataclasses
import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from account_core.clock import ManualClock
from account_core.transactions import Transaction, TransactionLedger, TransactionType


class TestTransaction:
    """Test individual ledger entries"""

    def setup_method(self):
        self.entry = Transaction(
            timestamp=datetime(2024, 3, 5, 14, 30, 0, tzinfo=timezone.utc),
            type=TransactionType.DEPOSIT,
            amount=Decimal('250'),
            description="Cash deposit",
            balance_after=Decimal('1250.5')
        )

    def test_normalizes_fields(self):
        """Test that the enum label and 2dp amounts are stored"""
        assert self.entry.type == "Deposit"
        assert self.entry.amount == Decimal('250.00')
        assert self.entry.balance_after == Decimal('1250.50')

    def test_is_immutable(self):
        """Test that entries cannot be edited"""
        with pytest.raises(dataclasses.FrozenInstanceError):
            self.entry.amount = Decimal('1.00')

    def test_str(self):
        """Test the printable form"""
        assert str(self.entry) == (
            "[2024-03-05 14:30:00] Deposit: ₱250.00 - Cash deposit (Balance: ₱1,250.50)"
        )

    def test_to_dict(self):
        """Test dictionary conversion"""
        data = self.entry.to_dict()
        assert data['type'] == "Deposit"
        assert data['amount'] == "250.00"
        assert data['balance_after'] == "1250.50"
        assert data['timestamp'].startswith("2024-03-05T14:30:00")


class TestTransactionLedger:
    """Test ledger queries"""

    def setup_method(self):
        self.clock = ManualClock(datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc))
        self.ledger = TransactionLedger(self.clock)

        self.ledger.record(TransactionType.INITIAL_DEPOSIT, Decimal('500'), "Opening", Decimal('500'))
        self.clock.advance(days=1)
        self.ledger.record(TransactionType.DEPOSIT, Decimal('100'), "Cash", Decimal('600'))
        self.clock.advance(hours=15, minutes=59)  # 2024-01-02 23:59
        self.ledger.record(TransactionType.WITHDRAWAL, Decimal('50'), "ATM", Decimal('550'))
        self.clock.advance(days=2)
        self.ledger.record(TransactionType.DEPOSIT, Decimal('25'), "Cash", Decimal('575'))

    def test_history_is_insertion_ordered(self):
        """Test that history keeps insertion order"""
        types = [entry.type for entry in self.ledger.history()]
        assert types == ["Initial Deposit", "Deposit", "Withdrawal", "Deposit"]
        assert len(self.ledger) == 4

    def test_history_returns_a_copy(self):
        """Test that mutating the returned list does not touch the ledger"""
        history = self.ledger.history()
        history.clear()
        assert len(self.ledger) == 4

    def test_between_is_inclusive_of_whole_end_day(self):
        """Test that an entry late on the end day is included"""
        entries = self.ledger.between(date(2024, 1, 2), date(2024, 1, 2))
        assert [entry.description for entry in entries] == ["Cash", "ATM"]

        everything = self.ledger.between(date(2024, 1, 1), date(2024, 1, 4))
        assert len(everything) == 4

        assert self.ledger.between(date(2024, 2, 1), date(2024, 2, 28)) == []

    def test_of_type_is_case_insensitive_exact_match(self):
        """Test type filtering"""
        assert len(self.ledger.of_type("deposit")) == 2
        assert len(self.ledger.of_type(TransactionType.WITHDRAWAL)) == 1
        # Exact match only: "Deposit" does not match "Initial Deposit"
        assert all(entry.type == "Deposit" for entry in self.ledger.of_type("DEPOSIT"))

    def test_last(self):
        """Test last-N returns the tail, oldest first"""
        tail = self.ledger.last(2)
        assert [entry.amount for entry in tail] == [Decimal('50.00'), Decimal('25.00')]
        assert len(self.ledger.last(10)) == 4
        assert self.ledger.last(0) == []

    def test_last_rejects_negative_count(self):
        """Test that a negative count is an error"""
        with pytest.raises(ValueError):
            self.ledger.last(-1)

    def test_format_history(self):
        """Test the printable history"""
        text = self.ledger.format_history("100000001")
        assert text.startswith("Transaction History for Account 100000001\n")
        assert "Withdrawal: ₱50.00 - ATM (Balance: ₱550.00)" in text

        empty = TransactionLedger(self.clock).format_history("100000002")
        assert "No transactions found" in empty
