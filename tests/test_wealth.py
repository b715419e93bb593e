"""
Test suite for the wealth allocation engine and price sources
"""

import pytest
from decimal import Decimal

from retail_ledger.storage import InMemoryStorage
from retail_ledger.audit import AuditTrail, AuditEventType
from retail_ledger.owners import OwnerDirectory
from retail_ledger.accounts import AccountManager, AccountType
from retail_ledger.prices import AssetClass, FixedPriceSource, PriceSource, RandomWalkPriceSource
from retail_ledger.wealth import WealthEngine
from retail_ledger.exceptions import (
    InvalidArgumentError, InvalidStateError, NotFoundError, UnauthorizedError
)


class CountingPriceSource(PriceSource):
    """Fixed prices that record every read"""

    def __init__(self, stock_price, bond_price):
        self.prices = {AssetClass.STOCK: Decimal(stock_price), AssetClass.BOND: Decimal(bond_price)}
        self.reads = []

    def current_price(self, asset_class):
        self.reads.append(asset_class)
        return self.prices[asset_class]


class TestPriceSources:
    """Test price source implementations"""

    def test_fixed_price_source(self):
        source = FixedPriceSource("20.00", "80.00")
        assert source.current_price(AssetClass.STOCK) == Decimal('20.00')
        assert source.current_price(AssetClass.BOND) == Decimal('80.00')

        source.set_price(AssetClass.STOCK, "25.005")
        assert source.current_price(AssetClass.STOCK) == Decimal('25.01')

        with pytest.raises(InvalidArgumentError):
            source.set_price(AssetClass.BOND, "0")

    def test_random_walk_is_reproducible_with_seed(self):
        first = RandomWalkPriceSource(seed=7)
        second = RandomWalkPriceSource(seed=7)

        walk_one = [first.current_price(AssetClass.STOCK) for _ in range(20)]
        walk_two = [second.current_price(AssetClass.STOCK) for _ in range(20)]

        assert walk_one == walk_two
        for price in walk_one:
            assert price >= Decimal('0.01')
            assert price == price.quantize(Decimal('0.01'))

    def test_random_walk_zero_volatility_is_flat(self):
        source = RandomWalkPriceSource(initial_price="100.00", volatility="0")
        assert source.current_price(AssetClass.BOND) == Decimal('100.00')
        assert source.current_price(AssetClass.BOND) == Decimal('100.00')

    def test_random_walk_validation(self):
        with pytest.raises(InvalidArgumentError):
            RandomWalkPriceSource(initial_price="0")
        with pytest.raises(InvalidArgumentError):
            RandomWalkPriceSource(volatility="-0.01")


class TestWealthEngine:
    """Test WealthEngine functionality"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.owners = OwnerDirectory(self.storage)
        self.account_manager = AccountManager(self.storage, self.owners, self.audit_trail)
        self.prices = FixedPriceSource("100.00", "50.00")
        self.wealth_engine = WealthEngine(
            self.storage, self.account_manager, self.prices, self.audit_trail
        )

        alice = self.owners.register_owner("alice@example.com")
        self.owners.register_owner("bob@example.com")
        self.account = self.account_manager.open_account(
            alice.id, AccountType.SAVINGS, Decimal('1000.00')
        )

    def _balance(self):
        return self.account_manager.get_account(self.account.id).balance

    def test_set_risk_score_creates_portfolio(self):
        portfolio = self.wealth_engine.set_risk_score(self.account.id, 3, "alice@example.com")

        assert portfolio.stock_percentage == Decimal('60')
        assert portfolio.bond_percentage == Decimal('40')
        assert portfolio.stock_units == Decimal('0.0000')
        assert portfolio.bond_units == Decimal('0.0000')

        event = self.audit_trail.get_events_by_type(AuditEventType.WEALTH_ALLOCATION_SET)[0]
        assert event.metadata["created"] is True

    def test_risk_score_bounds(self):
        for score in (0, 6, 2.5, "3", True):
            with pytest.raises(InvalidArgumentError):
                self.wealth_engine.set_risk_score(self.account.id, score)

        assert self.wealth_engine.set_risk_score(self.account.id, 1).stock_percentage == Decimal('20')
        assert self.wealth_engine.set_risk_score(self.account.id, 5).bond_percentage == Decimal('0')

    def test_buy_splits_by_allocation(self):
        self.wealth_engine.set_risk_score(self.account.id, 3)

        portfolio = self.wealth_engine.buy(self.account.id, "500.00", "alice@example.com")

        # 300 / 100 stock, 200 / 50 bond
        assert portfolio.stock_units == Decimal('3.0000')
        assert portfolio.bond_units == Decimal('4.0000')
        assert self._balance() == Decimal('500.00')
        assert self.wealth_engine.get_portfolio_value(self.account.id) == Decimal('500.00')

    def test_buy_rounds_units_half_up(self):
        self.prices.set_price(AssetClass.STOCK, "3.00")
        self.wealth_engine.set_risk_score(self.account.id, 5)

        portfolio = self.wealth_engine.buy(self.account.id, "10.00")

        # 10 / 3 = 3.33333... -> 3.3333
        assert portfolio.stock_units == Decimal('3.3333')
        assert portfolio.bond_units == Decimal('0.0000')

    def test_reads_each_price_once(self):
        source = CountingPriceSource("100.00", "50.00")
        engine = WealthEngine(self.storage, self.account_manager, source, self.audit_trail)
        engine.set_risk_score(self.account.id, 2)

        engine.buy(self.account.id, "100.00")
        assert sorted(a.value for a in source.reads) == ["BOND", "STOCK"]

        source.reads.clear()
        engine.sell(self.account.id, "10.00")
        assert sorted(a.value for a in source.reads) == ["BOND", "STOCK"]

    def test_buy_validation(self):
        with pytest.raises(InvalidArgumentError):
            self.wealth_engine.buy(self.account.id, "0")
        with pytest.raises(InvalidStateError, match="Portfolio not found"):
            self.wealth_engine.buy(self.account.id, "10")

        self.wealth_engine.set_risk_score(self.account.id, 3)
        with pytest.raises(InvalidArgumentError, match="Not enough cash"):
            self.wealth_engine.buy(self.account.id, "1000.01")
        with pytest.raises(NotFoundError):
            self.wealth_engine.buy("missing", "10")
        with pytest.raises(UnauthorizedError):
            self.wealth_engine.buy(self.account.id, "10", "bob@example.com")

        assert self._balance() == Decimal('1000.00')

    def test_frozen_account_refused(self):
        self.wealth_engine.set_risk_score(self.account.id, 3)
        self.wealth_engine.buy(self.account.id, "100")
        self.account_manager.freeze_account(self.account.id, "review")

        with pytest.raises(InvalidStateError):
            self.wealth_engine.buy(self.account.id, "10")
        with pytest.raises(InvalidStateError):
            self.wealth_engine.sell(self.account.id, "10")

    def test_sell_proportionally(self):
        self.wealth_engine.set_risk_score(self.account.id, 3)
        self.wealth_engine.buy(self.account.id, "500.00")

        portfolio = self.wealth_engine.sell(self.account.id, "125.00", "alice@example.com")

        # ratio 0.25 of 500
        assert portfolio.stock_units == Decimal('2.2500')
        assert portfolio.bond_units == Decimal('3.0000')
        assert self._balance() == Decimal('625.00')
        event = self.audit_trail.get_events_by_type(AuditEventType.WEALTH_SOLD)[0]
        assert event.metadata["sell_ratio"] == "0.2500"

    def test_full_sell_goes_to_zero(self):
        self.wealth_engine.set_risk_score(self.account.id, 4)
        self.wealth_engine.buy(self.account.id, "333.33")
        value = self.wealth_engine.get_portfolio_value(self.account.id)

        portfolio = self.wealth_engine.sell(self.account.id, value)

        assert portfolio.stock_units == Decimal('0.0000')
        assert portfolio.bond_units == Decimal('0.0000')
        assert self.wealth_engine.get_portfolio_value(self.account.id) == Decimal('0.00')

    def test_sell_more_than_value(self):
        self.wealth_engine.set_risk_score(self.account.id, 3)
        self.wealth_engine.buy(self.account.id, "100.00")

        with pytest.raises(InvalidArgumentError, match="Not enough assets"):
            self.wealth_engine.sell(self.account.id, "100.01")
        assert self._balance() == Decimal('900.00')

    def test_sell_requires_portfolio(self):
        with pytest.raises(InvalidStateError, match="Portfolio not found"):
            self.wealth_engine.sell(self.account.id, "1")

    def test_sell_uses_fresh_prices(self):
        self.wealth_engine.set_risk_score(self.account.id, 5)
        self.wealth_engine.buy(self.account.id, "100.00")
        self.prices.set_price(AssetClass.STOCK, "200.00")

        assert self.wealth_engine.get_portfolio_value(self.account.id) == Decimal('200.00')
        self.wealth_engine.sell(self.account.id, "150.00")
        assert self._balance() == Decimal('1050.00')
        assert self.wealth_engine.get_portfolio(self.account.id).stock_units == Decimal('0.2500')

    def test_rescore_keeps_units(self):
        """Changing the risk score does not rebalance held units"""
        self.wealth_engine.set_risk_score(self.account.id, 5)
        self.wealth_engine.buy(self.account.id, "100.00")

        portfolio = self.wealth_engine.set_risk_score(self.account.id, 1)

        assert portfolio.stock_percentage == Decimal('20')
        assert portfolio.bond_percentage == Decimal('80')
        assert portfolio.stock_units == Decimal('1.0000')
        assert portfolio.bond_units == Decimal('0.0000')
        event = self.audit_trail.get_events_by_type(AuditEventType.WEALTH_ALLOCATION_SET)[-1]
        assert event.metadata["created"] is False

    def test_value_requires_portfolio(self):
        with pytest.raises(InvalidStateError):
            self.wealth_engine.get_portfolio_value(self.account.id)
        with pytest.raises(InvalidStateError):
            self.wealth_engine.get_portfolio(self.account.id)

    def test_list_portfolios_for_owner(self):
        second = self.account_manager.open_account(self.account.owner_id, AccountType.CHECKING)
        self.wealth_engine.set_risk_score(self.account.id, 2)

        portfolios = self.wealth_engine.list_portfolios_for_owner("alice@example.com")
        assert [p.account_id for p in portfolios] == [self.account.id]

        self.wealth_engine.set_risk_score(second.id, 4, "alice@example.com")
        assert len(self.wealth_engine.list_portfolios_for_owner("alice@example.com")) == 2
        assert self.wealth_engine.list_portfolios_for_owner("bob@example.com") == []

    def test_non_positive_price_refused(self):
        source = CountingPriceSource("0", "50.00")
        engine = WealthEngine(self.storage, self.account_manager, source, self.audit_trail)
        engine.set_risk_score(self.account.id, 3)

        with pytest.raises(InvalidStateError):
            engine.buy(self.account.id, "10")
        assert self._balance() == Decimal('1000.00')
