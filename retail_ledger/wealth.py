"""
Wealth Allocation Module

Two-asset (stock/bond) managed portfolio per account. A risk score of 1-5
sets the target split (score * 20 percent stock, the rest bonds); buys split
cash by that split and convert it to units at current prices; sells
liquidate both holdings proportionally.

Changing the risk score does not rebalance units already held, so a
portfolio can drift from its stated allocation.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .accounts import Account, AccountManager
from .audit import AuditTrail, AuditEventType
from .exceptions import InvalidArgumentError, InvalidStateError
from .logging_config import get_logger, log_action
from .money import HUNDRED, ZERO, UNIT_STEP, require_positive, round_money, round_units, to_money
from .prices import AssetClass, PriceSource
from .storage import LoadResult, StorageInterface, StorageRecord

MIN_RISK_SCORE = 1
MAX_RISK_SCORE = 5
PERCENT_PER_RISK_POINT = 20


@dataclass
class WealthPortfolio(StorageRecord):
    """Per-account allocation and unit holdings, keyed by account id"""
    account_id: str
    stock_percentage: Decimal
    bond_percentage: Decimal
    stock_units: Decimal
    bond_units: Decimal

    decimal_fields = ('stock_percentage', 'bond_percentage', 'stock_units', 'bond_units')

    def market_value(self, stock_price: Decimal, bond_price: Decimal) -> Decimal:
        """Unrounded value of both holdings at the given prices"""
        return self.stock_units * stock_price + self.bond_units * bond_price


class WealthEngine:
    """
    Buys and sells the two-asset portfolio against a price source

    Every operation reads each asset price at most once. When
    requesting_identity is given, the caller must own the account.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        price_source: PriceSource,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.price_source = price_source
        self.audit_trail = audit_trail
        self.table_name = "wealth_portfolios"
        self.logger = get_logger("retail_ledger.wealth")

    def set_risk_score(self, account_id: str, score: int,
                       requesting_identity: Optional[str] = None) -> WealthPortfolio:
        """
        Set the target allocation, creating the portfolio on first use

        Existing unit holdings are left untouched.

        Raises:
            InvalidArgumentError: Score outside 1..5
            NotFoundError: Unknown account
            UnauthorizedError: Requester does not own the account
        """
        if isinstance(score, bool) or not isinstance(score, int) \
                or not MIN_RISK_SCORE <= score <= MAX_RISK_SCORE:
            raise InvalidArgumentError(
                f"Risk score must be an integer between {MIN_RISK_SCORE} and {MAX_RISK_SCORE}"
            )
        stock_pct = Decimal(score * PERCENT_PER_RISK_POINT)
        bond_pct = HUNDRED - stock_pct

        with self.storage.atomic():
            account = self._resolve_account(account_id, requesting_identity)
            loaded = self._load_or_init_portfolio(account.id)
            portfolio = loaded.record
            portfolio.stock_percentage = stock_pct
            portfolio.bond_percentage = bond_pct
            portfolio.touch()
            self._save_portfolio(portfolio)

            self.audit_trail.log_event(
                event_type=AuditEventType.WEALTH_ALLOCATION_SET,
                entity_type="portfolio",
                entity_id=account.id,
                metadata={"risk_score": score, "stock_percentage": stock_pct,
                          "bond_percentage": bond_pct, "created": loaded.created},
                user_id=requesting_identity
            )

        log_action(
            self.logger, "info", f"Risk score {score} set for account {account.account_number}",
            user_id=requesting_identity, action="set_risk_score", resource=f"portfolio:{account.id}",
            extra={"stock_percentage": str(stock_pct), "bond_percentage": str(bond_pct)}
        )
        return portfolio

    def buy(self, account_id: str, amount: Any,
            requesting_identity: Optional[str] = None) -> WealthPortfolio:
        """
        Invest cash according to the current allocation

        Raises:
            InvalidArgumentError: Non-positive amount or insufficient balance
            InvalidStateError: No portfolio yet, or the account is frozen
        """
        amount = require_positive(to_money(amount))

        with self.storage.atomic():
            account = self._resolve_account(account_id, requesting_identity)
            if not account.can_transact():
                raise InvalidStateError("Account is frozen. Please contact support.")
            if account.balance < amount:
                raise InvalidArgumentError("Not enough cash")
            portfolio = self._require_portfolio(account.id)

            prices = self._read_prices()
            stock_amount = amount * portfolio.stock_percentage / HUNDRED
            bond_amount = amount * portfolio.bond_percentage / HUNDRED
            stock_bought = round_units(stock_amount / prices[AssetClass.STOCK])
            bond_bought = round_units(bond_amount / prices[AssetClass.BOND])

            portfolio.stock_units = round_units(portfolio.stock_units + stock_bought)
            portfolio.bond_units = round_units(portfolio.bond_units + bond_bought)
            portfolio.touch()

            self.account_manager.debit(account, amount)
            self._save_portfolio(portfolio)

            self.audit_trail.log_event(
                event_type=AuditEventType.WEALTH_BOUGHT,
                entity_type="portfolio",
                entity_id=account.id,
                metadata={
                    "amount": amount,
                    "stock_price": prices[AssetClass.STOCK],
                    "bond_price": prices[AssetClass.BOND],
                    "stock_units": stock_bought,
                    "bond_units": bond_bought
                },
                user_id=requesting_identity
            )

        log_action(
            self.logger, "info", f"Wealth buy for account {account.account_number}",
            user_id=requesting_identity, action="wealth_buy", resource=f"portfolio:{account.id}",
            extra={"amount": str(amount), "stock_units": str(stock_bought),
                   "bond_units": str(bond_bought)}
        )
        return portfolio

    def sell(self, account_id: str, amount: Any,
             requesting_identity: Optional[str] = None) -> WealthPortfolio:
        """
        Liquidate both holdings proportionally and credit the cash

        sell_ratio = amount / total_value (4 digits); each holding is
        multiplied by (1 - sell_ratio) whichever asset moved.

        Raises:
            InvalidArgumentError: Non-positive amount or more than the portfolio is worth
            InvalidStateError: No portfolio yet, or the account is frozen
        """
        amount = require_positive(to_money(amount))

        with self.storage.atomic():
            account = self._resolve_account(account_id, requesting_identity)
            portfolio = self._require_portfolio(account.id)
            if not account.can_transact():
                raise InvalidStateError("Account is frozen. Please contact support.")

            prices = self._read_prices()
            total_value = portfolio.market_value(prices[AssetClass.STOCK], prices[AssetClass.BOND])
            # Compared at cents, the same figure get_portfolio_value reports
            if total_value <= ZERO or amount > round_money(total_value):
                raise InvalidArgumentError("Not enough assets")

            sell_ratio = min(round_units(amount / total_value), Decimal(1))
            keep_ratio = 1 - sell_ratio
            portfolio.stock_units = round_units(portfolio.stock_units * keep_ratio)
            portfolio.bond_units = round_units(portfolio.bond_units * keep_ratio)
            portfolio.touch()

            self.account_manager.credit(account, amount)
            self._save_portfolio(portfolio)

            self.audit_trail.log_event(
                event_type=AuditEventType.WEALTH_SOLD,
                entity_type="portfolio",
                entity_id=account.id,
                metadata={
                    "amount": amount,
                    "stock_price": prices[AssetClass.STOCK],
                    "bond_price": prices[AssetClass.BOND],
                    "sell_ratio": sell_ratio
                },
                user_id=requesting_identity
            )

        log_action(
            self.logger, "info", f"Wealth sell for account {account.account_number}",
            user_id=requesting_identity, action="wealth_sell", resource=f"portfolio:{account.id}",
            extra={"amount": str(amount), "sell_ratio": str(sell_ratio)}
        )
        return portfolio

    def get_portfolio_value(self, account_id: str,
                            requesting_identity: Optional[str] = None) -> Decimal:
        """Market value at freshly read prices, rounded to cents"""
        account = self._resolve_account(account_id, requesting_identity)
        portfolio = self._require_portfolio(account.id)
        prices = self._read_prices()
        return round_money(portfolio.market_value(prices[AssetClass.STOCK], prices[AssetClass.BOND]))

    def get_portfolio(self, account_id: str,
                      requesting_identity: Optional[str] = None) -> WealthPortfolio:
        account = self._resolve_account(account_id, requesting_identity)
        return self._require_portfolio(account.id)

    def list_portfolios_for_owner(self, owner_identity: str) -> List[WealthPortfolio]:
        """Portfolios of every account the owner holds"""
        portfolios = []
        for account in self.account_manager.list_accounts_for_owner(owner_identity):
            portfolio = self._find_portfolio(account.id)
            if portfolio is not None:
                portfolios.append(portfolio)
        return portfolios

    def _resolve_account(self, account_id: str, requesting_identity: Optional[str]) -> Account:
        if requesting_identity is None:
            return self.account_manager.get_account(account_id)
        return self.account_manager.require_owned_account(
            account_id, requesting_identity,
            "You do not have permission to manage this portfolio"
        )

    def _read_prices(self) -> Dict[AssetClass, Decimal]:
        prices = {}
        for asset_class in (AssetClass.STOCK, AssetClass.BOND):
            price = self.price_source.current_price(asset_class)
            if price <= ZERO:
                raise InvalidStateError(f"Price source returned {price} for {asset_class.value}")
            prices[asset_class] = price
        return prices

    def _find_portfolio(self, account_id: str) -> Optional[WealthPortfolio]:
        data = self.storage.load(self.table_name, account_id)
        return WealthPortfolio.from_dict(data) if data else None

    def _require_portfolio(self, account_id: str) -> WealthPortfolio:
        portfolio = self._find_portfolio(account_id)
        if portfolio is None:
            raise InvalidStateError("Portfolio not found")
        return portfolio

    def _load_or_init_portfolio(self, account_id: str) -> LoadResult:
        portfolio = self._find_portfolio(account_id)
        if portfolio is not None:
            return LoadResult(record=portfolio, created=False)

        now = datetime.now(timezone.utc)
        zero_units = ZERO.quantize(UNIT_STEP)
        portfolio = WealthPortfolio(
            id=account_id,
            created_at=now,
            updated_at=now,
            account_id=account_id,
            stock_percentage=ZERO,
            bond_percentage=ZERO,
            stock_units=zero_units,
            bond_units=zero_units
        )
        return LoadResult(record=portfolio, created=True)

    def _save_portfolio(self, portfolio: WealthPortfolio) -> None:
        self.storage.save(self.table_name, portfolio.account_id, portfolio.to_dict())
