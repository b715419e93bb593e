"""
Test suite for funds transfers

Tests validation order, balance conservation, frozen accounts, rollback and
the transfer history views.
"""

import pytest
import re
from decimal import Decimal

from retail_ledger.storage import InMemoryStorage
from retail_ledger.audit import AuditTrail, AuditEventType
from retail_ledger.owners import OwnerDirectory
from retail_ledger.accounts import AccountManager, AccountType
from retail_ledger.references import ReferenceGenerator
from retail_ledger.transfers import TransferEngine
from retail_ledger.exceptions import (
    ForbiddenError, InvalidArgumentError, NotFoundError, ReferenceCollisionError,
    UnauthorizedError
)


class TestTransferEngine:
    """Test TransferEngine functionality"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.owners = OwnerDirectory(self.storage)
        self.account_manager = AccountManager(self.storage, self.owners, self.audit_trail)
        self.references = ReferenceGenerator(self.storage)
        self.transfer_engine = TransferEngine(
            self.storage, self.account_manager, self.references, self.audit_trail
        )

        alice = self.owners.register_owner("alice@example.com")
        bob = self.owners.register_owner("bob@example.com")
        self.owners.register_owner("carol@example.com")

        self.alice_checking = self.account_manager.open_account(
            alice.id, AccountType.CHECKING, Decimal('500.00')
        )
        self.alice_savings = self.account_manager.open_account(
            alice.id, AccountType.SAVINGS, Decimal('0.00')
        )
        self.bob_checking = self.account_manager.open_account(
            bob.id, AccountType.CHECKING, Decimal('100.00')
        )

    def _balance(self, account):
        return self.account_manager.get_account(account.id).balance

    def test_successful_transfer_conserves_balances(self):
        before_source = self._balance(self.alice_checking)
        before_dest = self._balance(self.bob_checking)

        transaction = self.transfer_engine.transfer(
            self.alice_checking.id, self.bob_checking.id, "125.50", "  Rent  ",
            "alice@example.com"
        )

        assert re.fullmatch(r"TXN-\d{8}-[A-Z0-9]{6}", transaction.reference)
        assert transaction.amount == Decimal('125.50')
        assert transaction.description == "Rent"
        assert transaction.from_account_number == self.alice_checking.account_number
        assert transaction.to_account_number == self.bob_checking.account_number

        after_source = self._balance(self.alice_checking)
        after_dest = self._balance(self.bob_checking)
        assert before_source - Decimal('125.50') == after_source
        assert before_dest + Decimal('125.50') == after_dest
        assert before_source + before_dest == after_source + after_dest

        events = self.audit_trail.get_events_by_type(AuditEventType.TRANSFER_POSTED)
        assert events[0].entity_id == transaction.reference
        assert events[0].user_id == "alice@example.com"

    def test_transfer_between_own_accounts(self):
        self.transfer_engine.transfer(
            self.alice_checking.id, self.alice_savings.id, Decimal('500.00'), "Sweep",
            "alice@example.com"
        )
        assert self._balance(self.alice_checking) == Decimal('0.00')
        assert self._balance(self.alice_savings) == Decimal('500.00')

    def test_validation_order(self):
        """First failing check wins"""
        a, b = self.alice_checking.id, self.bob_checking.id

        with pytest.raises(InvalidArgumentError, match="required"):
            self.transfer_engine.transfer(None, b, "-1", "", "alice@example.com")
        with pytest.raises(InvalidArgumentError, match="same account"):
            self.transfer_engine.transfer(a, a, "-1", "", "alice@example.com")
        with pytest.raises(InvalidArgumentError, match="greater than zero"):
            self.transfer_engine.transfer(a, b, "0", "", "alice@example.com")
        with pytest.raises(InvalidArgumentError, match="Description"):
            self.transfer_engine.transfer(a, b, "10", "   ", "alice@example.com")
        with pytest.raises(NotFoundError):
            self.transfer_engine.transfer(a, "missing", "10", "x", "bob@example.com")
        with pytest.raises(UnauthorizedError):
            self.transfer_engine.transfer(a, b, "10000", "x", "bob@example.com")

        self.account_manager.freeze_account(b, "review")
        with pytest.raises(ForbiddenError, match="Destination"):
            self.transfer_engine.transfer(a, b, "10000", "x", "alice@example.com")

        self.account_manager.freeze_account(a, "review")
        with pytest.raises(ForbiddenError, match="Source"):
            self.transfer_engine.transfer(a, b, "10000", "x", "alice@example.com")

    def test_amount_rounds_before_positive_check(self):
        with pytest.raises(InvalidArgumentError):
            self.transfer_engine.transfer(
                self.alice_checking.id, self.bob_checking.id, "0.004", "tiny",
                "alice@example.com"
            )

    def test_insufficient_funds_has_no_effect(self):
        with pytest.raises(InvalidArgumentError, match="Insufficient funds"):
            self.transfer_engine.transfer(
                self.alice_checking.id, self.bob_checking.id, "500.01", "Too much",
                "alice@example.com"
            )

        assert self._balance(self.alice_checking) == Decimal('500.00')
        assert self._balance(self.bob_checking) == Decimal('100.00')
        assert self.transfer_engine.list_all_transactions() == []

    def test_frozen_source_refused_without_effect(self):
        self.account_manager.freeze_account(self.alice_checking.id, "review")

        with pytest.raises(ForbiddenError):
            self.transfer_engine.transfer(
                self.alice_checking.id, self.bob_checking.id, "10", "x", "alice@example.com"
            )

        assert self._balance(self.alice_checking) == Decimal('500.00')
        assert self._balance(self.bob_checking) == Decimal('100.00')
        assert self.transfer_engine.list_all_transactions() == []

    def test_frozen_destination_refused_without_effect(self):
        self.account_manager.freeze_account(self.bob_checking.id, "review")

        with pytest.raises(ForbiddenError, match="Destination"):
            self.transfer_engine.transfer(
                self.alice_checking.id, self.bob_checking.id, "10", "x", "alice@example.com"
            )

        assert self._balance(self.alice_checking) == Decimal('500.00')
        assert self._balance(self.bob_checking) == Decimal('100.00')
        assert self.transfer_engine.list_all_transactions() == []

    def test_out_of_range_amount_is_invalid_argument(self):
        with pytest.raises(InvalidArgumentError, match="out of range"):
            self.transfer_engine.transfer(
                self.alice_checking.id, self.bob_checking.id, "1e30", "x", "alice@example.com"
            )
        assert self._balance(self.alice_checking) == Decimal('500.00')

    def test_non_string_description_is_invalid_argument(self):
        with pytest.raises(InvalidArgumentError, match="Description"):
            self.transfer_engine.transfer(
                self.alice_checking.id, self.bob_checking.id, "10", 42, "alice@example.com"
            )
        assert self.transfer_engine.list_all_transactions() == []

    def test_failed_log_append_rolls_back_balances(self):
        """A reference collision after the balance moves undoes the whole transfer"""
        engine = TransferEngine(
            self.storage, self.account_manager,
            ReferenceGenerator(self.storage, max_attempts=1), self.audit_trail
        )
        engine.references.generate = lambda prefix: "TXN-20250101-AAAAAA"
        self.storage.insert("transactions", "TXN-20250101-AAAAAA", {"id": "taken"})
        audit_count = self.audit_trail.count_events()

        with pytest.raises(ReferenceCollisionError):
            engine.transfer(
                self.alice_checking.id, self.bob_checking.id, "50", "x", "alice@example.com"
            )

        assert self._balance(self.alice_checking) == Decimal('500.00')
        assert self._balance(self.bob_checking) == Decimal('100.00')
        assert self.audit_trail.count_events() == audit_count

    def test_history_views(self):
        first = self.transfer_engine.transfer(
            self.alice_checking.id, self.bob_checking.id, "10", "one", "alice@example.com"
        )
        second = self.transfer_engine.transfer(
            self.bob_checking.id, self.alice_savings.id, "20", "two", "bob@example.com"
        )

        assert [t.reference for t in self.transfer_engine.get_transactions(self.alice_checking.id)] == [
            first.reference
        ]
        recent = self.transfer_engine.get_recent_transactions_for_owner("alice@example.com")
        assert {t.reference for t in recent} == {first.reference, second.reference}
        assert recent[0].timestamp >= recent[1].timestamp

        limited = self.transfer_engine.get_recent_transactions_for_owner("alice@example.com", limit=1)
        assert len(limited) == 1
        assert len(self.transfer_engine.list_all_transactions(limit=1)) == 1

    def test_lookup_by_reference(self):
        transaction = self.transfer_engine.transfer(
            self.alice_checking.id, self.bob_checking.id, "10", "one", "alice@example.com"
        )

        # Either side of the transfer may view it
        assert self.transfer_engine.get_transaction_by_reference(
            transaction.reference, "alice@example.com"
        ).amount == Decimal('10.00')
        assert self.transfer_engine.get_transaction_by_reference(
            transaction.reference, "bob@example.com"
        ).reference == transaction.reference

        with pytest.raises(UnauthorizedError):
            self.transfer_engine.get_transaction_by_reference(transaction.reference, "carol@example.com")
        with pytest.raises(NotFoundError):
            self.transfer_engine.get_transaction_by_reference("TXN-00000000-XXXXXX", "alice@example.com")
