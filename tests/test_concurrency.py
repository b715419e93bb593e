"""
Concurrency tests

Independent callers race on the same pool and the same balance; the store's
serializable atomic blocks must keep both consistent on every backend.
"""

import pytest
import tempfile
import threading
from decimal import Decimal
from pathlib import Path

from retail_ledger.storage import InMemoryStorage, SQLiteStorage
from retail_ledger.audit import AuditTrail
from retail_ledger.owners import OwnerDirectory
from retail_ledger.accounts import AccountManager, AccountType
from retail_ledger.instruments import InstrumentRegistry
from retail_ledger.references import ReferenceGenerator
from retail_ledger.trading import TradingEngine
from retail_ledger.transfers import TransferEngine
from retail_ledger.exceptions import InvalidArgumentError


def _run_concurrently(target, count):
    outcomes = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def worker(index):
        barrier.wait()
        try:
            target(index)
            result = "ok"
        except InvalidArgumentError:
            result = "refused"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        yield InMemoryStorage()
        return
    with tempfile.TemporaryDirectory() as temp_dir:
        backend = SQLiteStorage(Path(temp_dir) / "concurrency.db")
        yield backend
        backend.close()


class TestConcurrentOperations:
    """Races against shared aggregates"""

    def _build(self, storage):
        self.storage = storage
        self.audit_trail = AuditTrail(storage)
        self.owners = OwnerDirectory(storage)
        self.account_manager = AccountManager(storage, self.owners, self.audit_trail)
        self.registry = InstrumentRegistry(storage, self.audit_trail)
        self.references = ReferenceGenerator(storage)
        self.transfer_engine = TransferEngine(
            storage, self.account_manager, self.references, self.audit_trail
        )
        self.trading_engine = TradingEngine(
            storage, self.account_manager, self.registry, self.references, self.audit_trail
        )

    def test_concurrent_buys_never_oversell(self, storage):
        self._build(storage)
        self.registry.create_instrument("X", "Example Corp", "1.00", 25)

        accounts = []
        for i in range(10):
            owner = self.owners.register_owner(f"trader{i}@example.com")
            accounts.append(self.account_manager.open_account(
                owner.id, AccountType.CHECKING, Decimal('100.00')
            ))

        def buy(index):
            self.trading_engine.buy(accounts[index].id, "X", 5, f"trader{index}@example.com")

        outcomes = _run_concurrently(buy, 10)

        assert outcomes.count("ok") == 5
        assert outcomes.count("refused") == 5
        instrument = self.registry.get_instrument("X")
        assert instrument.available_units == 0
        held = sum(
            self.trading_engine.get_position(a.id, "X").units
            for a in accounts if self.trading_engine.get_position(a.id, "X")
        )
        assert held == 25
        assert len(self.trading_engine.list_all_trades()) == 5
        assert self.audit_trail.verify_integrity()["valid"]

    def test_concurrent_transfers_never_overdraw(self, storage):
        self._build(storage)
        alice = self.owners.register_owner("alice@example.com")
        bob = self.owners.register_owner("bob@example.com")
        source = self.account_manager.open_account(alice.id, AccountType.CHECKING, Decimal('100.00'))
        destination = self.account_manager.open_account(bob.id, AccountType.CHECKING)

        def transfer(index):
            self.transfer_engine.transfer(
                source.id, destination.id, "30.00", f"payment {index}", "alice@example.com"
            )

        outcomes = _run_concurrently(transfer, 8)

        assert outcomes.count("ok") == 3
        assert self.account_manager.get_account(source.id).balance == Decimal('10.00')
        assert self.account_manager.get_account(destination.id).balance == Decimal('90.00')
        assert len(self.transfer_engine.list_all_transactions()) == 3
