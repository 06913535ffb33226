"""
Test suite for account persistence

Tests the seven-column record layout, CSV file handling and the in-memory
store used by the other suites.
"""

import os
import tempfile
import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from account_core.accounts import (
    BankAccount, CheckingAccount, CreditCardAccount, InvestmentAccount
)
from account_core.clock import ManualClock
from account_core.exceptions import StorageError
from account_core.storage import (
    HEADER, AccountRecord, CSVAccountStore, InMemoryAccountStore
)

HEADER_LINE = ",".join(HEADER)


def make_accounts(clock):
    bank = BankAccount("Ana Reyes", 1500, account_number="100000001", clock=clock)
    checking = CheckingAccount("Reyes, Ana", 320.5, account_number="300000001", clock=clock)
    card = CreditCardAccount("Juan Dela Cruz", 2000, account_number="400000001", clock=clock)
    card.make_purchase(250.75)
    investment = InvestmentAccount("Maria Santos", 5000, account_number="200000001", clock=clock)
    investment.close_account()
    return [bank, checking, card, investment]


class TestAccountRecord:
    """Test row encoding and decoding"""

    def setup_method(self):
        self.clock = ManualClock(datetime(2024, 2, 10, 12, 0, tzinfo=timezone.utc))

    def test_to_row(self):
        """Test the persisted field formats"""
        account = InvestmentAccount("Maria Santos", 5000, account_number="200000001", clock=self.clock)
        account.close_account()

        row = AccountRecord.from_account(account).to_row()
        assert row == [
            "200000001", "Maria Santos", "5000.00", "Investment Account",
            "false", "2024-02-10", "2024-02-10"
        ]

    def test_active_account_has_empty_closing_date(self):
        """Test that active accounts write an empty closing date"""
        account = BankAccount("Ana Reyes", 150, account_number="100000001", clock=self.clock)
        row = AccountRecord.from_account(account).to_row()
        assert row[4:] == ["true", "2024-02-10", ""]

    def test_from_row(self):
        """Test parsing a well-formed row"""
        record = AccountRecord.from_row(
            ["300000007", "Juan Dela Cruz", "88.10", "Checking Account", "TRUE", "2023-05-01", ""]
        )
        assert record.balance == Decimal('88.10')
        assert record.is_active is True
        assert record.opening_date == date(2023, 5, 1)
        assert record.closing_date is None

    def test_from_row_rebuilds_unquoted_name(self):
        """Test that an unquoted comma in the name is repaired"""
        record = AccountRecord.from_row(
            ["100000003", "Reyes", " Ana", "150.00", "Bank Account", "true", "2023-05-01", ""]
        )
        assert record.holder_name == "Reyes, Ana"
        assert record.balance == Decimal('150.00')

    def test_from_row_rejects_bad_fields(self):
        """Test that unparsable fields raise"""
        with pytest.raises(ValueError):
            AccountRecord.from_row(["100000003", "Ana", "abc", "Bank Account", "true", "2023-05-01", ""])
        with pytest.raises(ValueError):
            AccountRecord.from_row(["100000003", "Ana", "1.00", "Bank Account", "true", "not-a-date", ""])
        with pytest.raises(ValueError):
            AccountRecord.from_row(["100000003", "Ana"])

    def test_credit_card_restore_limit(self):
        """Test that restored cards get a limit covering their debt"""
        record = AccountRecord.from_row(
            ["400000002", "Ana", "-7500.00", "Credit Card Account", "true", "2023-05-01", ""]
        )
        card = record.to_account(Decimal('5000.00'), self.clock)
        assert card.credit_limit == Decimal('7500.00')
        assert card.balance == Decimal('-7500.00')

        record = AccountRecord.from_row(
            ["400000003", "Ana", "-10.00", "Credit Card Account", "true", "2023-05-01", ""]
        )
        assert record.to_account(Decimal('5000.00'), self.clock).credit_limit == Decimal('5000.00')


class TestCSVAccountStore:
    """Test the CSV file store"""

    def setup_method(self):
        self.clock = ManualClock(datetime(2024, 2, 10, 12, 0, tzinfo=timezone.utc))
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.temp_dir.name, "accounts.csv")
        self.store = CSVAccountStore(self.path, clock=self.clock)

    def teardown_method(self):
        self.temp_dir.cleanup()

    def write(self, *lines):
        with open(self.path, "w", encoding="utf-8", newline="") as handle:
            handle.write("\n".join(lines) + "\n")

    def test_missing_file_loads_empty(self):
        """Test that a missing file is an empty store"""
        assert self.store.load() == []

    def test_round_trip(self):
        """Test that save then load reproduces every persisted field"""
        accounts = make_accounts(self.clock)
        self.store.save(accounts)

        with open(self.path, encoding="utf-8") as handle:
            assert handle.readline().strip() == HEADER_LINE

        loaded = self.store.load()
        assert len(loaded) == len(accounts)
        for original, restored in zip(accounts, loaded):
            assert type(restored) is type(original)
            assert restored.account_number == original.account_number
            assert restored.holder_name == original.holder_name
            assert restored.balance == original.balance
            assert restored.is_active == original.is_active
            assert restored.opening_date == original.opening_date
            assert restored.closing_date == original.closing_date

    def test_name_with_comma_is_quoted(self):
        """Test that embedded commas survive a round trip"""
        self.store.save(make_accounts(self.clock))
        with open(self.path, encoding="utf-8") as handle:
            assert '"Reyes, Ana"' in handle.read()

        names = [account.holder_name for account in self.store.load()]
        assert "Reyes, Ana" in names

    def test_skips_null_and_empty_numbers(self):
        """Test that rows without an account number are skipped"""
        self.write(
            HEADER_LINE,
            "null,Ghost,10.00,Bank Account,true,2024-01-01,",
            ",Nobody,10.00,Bank Account,true,2024-01-01,",
            "100000005,Ana Reyes,150.00,Bank Account,true,2024-01-01,",
        )
        loaded = self.store.load()
        assert [account.account_number for account in loaded] == ["100000005"]

    def test_unknown_type_dropped_with_warning(self, caplog):
        """Test that an unknown account type drops only that row"""
        self.write(
            HEADER_LINE,
            "500000001,Ana Reyes,150.00,Savings Account,true,2024-01-01,",
            "200000005,Juan Dela Cruz,1500.00,Investment Account,true,2024-01-01,",
        )
        with caplog.at_level("WARNING", logger="account_core.storage"):
            loaded = self.store.load()

        assert [account.account_number for account in loaded] == ["200000005"]
        assert "Savings Account" in caplog.text

    def test_malformed_rows_dropped(self):
        """Test that unparsable rows are dropped, the rest loaded"""
        self.write(
            HEADER_LINE,
            "100000006,Ana Reyes,lots,Bank Account,true,2024-01-01,",
            "400000006,Ana Reyes,25.00,Credit Card Account,true,2024-01-01,",
            "300000006,Juan Dela Cruz,75.00,Checking Account,false,2024-01-01,2024-01-31",
        )
        loaded = self.store.load()
        assert [account.account_number for account in loaded] == ["300000006"]
        assert loaded[0].closing_date == date(2024, 1, 31)
        assert not loaded[0].is_active

    def test_restored_ledger_is_empty(self):
        """Test that loading does not invent transactions"""
        self.store.save(make_accounts(self.clock))
        assert all(account.transactions == [] for account in self.store.load())

    def test_unreadable_path_raises_storage_error(self):
        """Test that I/O failures become StorageError"""
        store = CSVAccountStore(self.temp_dir.name)  # a directory, not a file
        with pytest.raises(StorageError):
            store.load()
        with pytest.raises(StorageError):
            store.save([])

    def test_non_utf8_file_raises_storage_error(self):
        """Test that undecodable bytes become StorageError"""
        with open(self.path, "wb") as handle:
            handle.write((HEADER_LINE + "\n").encode("utf-8"))
            handle.write("100000001,José Cruz,150.00,Bank Account,true,2024-01-01,\n".encode("latin-1"))

        with pytest.raises(StorageError):
            self.store.load()


class TestInMemoryAccountStore:
    """Test the in-memory store"""

    def test_round_trip_through_rows(self):
        """Test that accounts are stored as encoded rows"""
        clock = ManualClock()
        store = InMemoryAccountStore(clock=clock)
        accounts = make_accounts(clock)

        store.save(accounts)
        assert store.save_count == 1
        assert store.rows[0][0] == "100000001"

        loaded = store.load()
        assert [account.account_number for account in loaded] == [
            account.account_number for account in accounts
        ]
        # Loaded objects are new instances
        assert loaded[0] is not accounts[0]
