"""
Instrument Trading Module

Buys and sells whole units of instruments against the shared pool, keeps
per-account positions with a weighted average cost basis, and records every
execution as an immutable trade with an STK reference.

Average cost basis is recomputed on every buy:

    new_basis = (basis * units + total_cost) / (units + quantity)

rounded half-up to cents. Sells never change the basis of what remains;
they realize profit_loss = (price - basis) * quantity.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, List, Optional
from enum import Enum

from .accounts import Account, AccountManager
from .audit import AuditTrail, AuditEventType
from .exceptions import InvalidArgumentError, InvalidStateError, NotFoundError, UnauthorizedError
from .instruments import Instrument, InstrumentRegistry, normalize_symbol
from .logging_config import get_logger, log_action
from .money import ZERO, percent_of, round_money
from .references import TRADE_PREFIX, ReferenceGenerator
from .storage import LoadResult, StorageInterface, StorageRecord, newest_first


class TradeSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass
class Position(StorageRecord):
    """
    An account's holding of one instrument

    Unique per (account_id, symbol); deleted when units reach zero.
    """
    account_id: str
    symbol: str
    units: int
    average_cost_basis: Decimal

    decimal_fields = ('average_cost_basis',)

    @staticmethod
    def key(account_id: str, symbol: str) -> str:
        return f"{account_id}:{symbol}"

    @property
    def cost_basis(self) -> Decimal:
        return round_money(self.average_cost_basis * self.units)


@dataclass
class Trade(StorageRecord):
    """
    Immutable instrument execution, keyed by its reference
    """
    reference: str
    account_id: str
    symbol: str
    side: TradeSide
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    profit_loss: Optional[Decimal] = None  # SELL only

    decimal_fields = ('unit_price', 'total_amount', 'profit_loss')
    enum_fields = {'side': TradeSide}

    @property
    def timestamp(self) -> datetime:
        return self.created_at


@dataclass
class PositionView:
    """Read model of a position valued at the instrument's current price"""
    account_id: str
    symbol: str
    name: str
    units: int
    average_cost_basis: Decimal
    current_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal


class TradingEngine:
    """
    Executes buys and sells and serves portfolio and trade history views
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        instruments: InstrumentRegistry,
        reference_generator: ReferenceGenerator,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.instruments = instruments
        self.references = reference_generator
        self.audit_trail = audit_trail
        self.positions_table = "positions"
        self.trades_table = "trades"
        self.logger = get_logger("retail_ledger.trading")

    def buy(self, account_id: str, symbol: str, quantity: int, requesting_identity: str) -> Trade:
        """
        Buy units from the pool

        Args:
            account_id: Trading account, owned by the requester
            symbol: Instrument symbol
            quantity: Positive whole number of units
            requesting_identity: Authenticated owner identity

        Returns:
            The persisted BUY Trade

        Raises:
            InvalidArgumentError: Bad quantity, not enough units in the pool,
                or insufficient funds
            NotFoundError: Unknown account or instrument
            UnauthorizedError: Requester does not own the account
            InvalidStateError: Account is frozen
        """
        quantity = self._validate_quantity(quantity)
        symbol = normalize_symbol(symbol)

        with self.storage.atomic():
            account = self._trading_account(account_id, requesting_identity)
            instrument = self.instruments.get_instrument(symbol)

            if instrument.available_units < quantity:
                raise InvalidArgumentError(
                    f"Not enough shares available. Available: {instrument.available_units}, "
                    f"Requested: {quantity}"
                )

            total_cost = round_money(instrument.current_price * quantity)
            if account.balance < total_cost:
                raise InvalidArgumentError("Insufficient funds in account")

            self.instruments.adjust_available_units(instrument, -quantity)

            position = self._load_or_init_position(account.id, symbol).record
            existing_value = position.average_cost_basis * position.units
            new_units = position.units + quantity
            position.average_cost_basis = round_money((existing_value + total_cost) / new_units)
            position.units = new_units
            position.touch()
            self._save_position(position)

            self.account_manager.debit(account, total_cost)

            trade = self._append_trade(account, instrument, TradeSide.BUY, quantity, total_cost)
            self._audit_trade(trade, requesting_identity)

        self._log_trade(trade, requesting_identity)
        return trade

    def sell(self, account_id: str, symbol: str, quantity: int, requesting_identity: str) -> Trade:
        """
        Sell units back to the pool at the current price

        Returns:
            The persisted SELL Trade with realized profit/loss

        Raises:
            InvalidArgumentError: Bad quantity or more units than held
            NotFoundError: Unknown account, no position, or unknown instrument
            UnauthorizedError: Requester does not own the account
            InvalidStateError: Account is frozen
        """
        quantity = self._validate_quantity(quantity)
        symbol = normalize_symbol(symbol)

        with self.storage.atomic():
            account = self._trading_account(account_id, requesting_identity)

            position = self._find_position(account.id, symbol)
            if position is None:
                raise NotFoundError(f"No position found for {symbol}")
            if position.units < quantity:
                raise InvalidArgumentError(
                    f"Not enough shares. Owned: {position.units}, Requested: {quantity}"
                )

            instrument = self.instruments.get_instrument(symbol)

            proceeds = round_money(instrument.current_price * quantity)
            cost_basis_portion = round_money(position.average_cost_basis * quantity)
            profit_loss = proceeds - cost_basis_portion

            self.instruments.adjust_available_units(instrument, quantity)

            remaining = position.units - quantity
            if remaining == 0:
                self.storage.delete(self.positions_table, Position.key(account.id, symbol))
            else:
                position.units = remaining
                position.touch()
                self._save_position(position)

            self.account_manager.credit(account, proceeds)

            trade = self._append_trade(
                account, instrument, TradeSide.SELL, quantity, proceeds, profit_loss
            )
            self._audit_trade(trade, requesting_identity)

        self._log_trade(trade, requesting_identity)
        return trade

    def get_position(self, account_id: str, symbol: str) -> Optional[Position]:
        """Current position or None"""
        return self._find_position(account_id, normalize_symbol(symbol))

    def get_positions(self, account_id: str) -> List[Position]:
        data = self.storage.find(self.positions_table, {"account_id": account_id})
        return [Position.from_dict(item) for item in data]

    def get_account_portfolio(self, account_id: str, owner_identity: str) -> List[PositionView]:
        """Valued positions of one owned account"""
        account = self.account_manager.require_owned_account(
            account_id, owner_identity,
            "You do not have permission to view this account"
        )
        return [self._to_view(position) for position in self.get_positions(account.id)]

    def get_owner_portfolio(self, owner_identity: str) -> List[PositionView]:
        """Valued positions across all of the owner's accounts"""
        views = []
        for account in self.account_manager.list_accounts_for_owner(owner_identity):
            views.extend(self._to_view(position) for position in self.get_positions(account.id))
        return views

    def get_trade_history_for_owner(self, owner_identity: str, limit: int = 20) -> List[Trade]:
        """Newest trades across the owner's accounts"""
        account_ids = {a.id for a in self.account_manager.list_accounts_for_owner(owner_identity)}
        trades = [t for t in self._load_trades() if t.account_id in account_ids]
        return newest_first(trades)[:limit]

    def get_trade_by_reference(self, reference: str, owner_identity: str) -> Trade:
        """
        Look up a trade by reference

        Raises:
            NotFoundError: Unknown reference
            UnauthorizedError: Requester does not own the trading account
        """
        data = self.storage.load(self.trades_table, reference) if reference else None
        if not data:
            raise NotFoundError(f"Transaction not found: {reference}")
        trade = Trade.from_dict(data)

        if trade.account_id not in self.account_manager.owned_account_ids(owner_identity):
            raise UnauthorizedError("You do not have permission to view this transaction")
        return trade

    def list_all_trades(self, limit: Optional[int] = None) -> List[Trade]:
        """Administrative listing, newest first"""
        trades = newest_first(self._load_trades())
        return trades[:limit] if limit is not None else trades

    def _trading_account(self, account_id: str, requesting_identity: str) -> Account:
        account = self.account_manager.require_owned_account(
            account_id, requesting_identity,
            "You do not have permission to trade from this account"
        )
        if not account.can_transact():
            raise InvalidStateError("Account is frozen. Please contact support.")
        return account

    @staticmethod
    def _validate_quantity(quantity: Any) -> int:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidArgumentError("Quantity must be a whole number of units")
        if quantity <= 0:
            raise InvalidArgumentError("Quantity must be greater than zero")
        return quantity

    def _find_position(self, account_id: str, symbol: str) -> Optional[Position]:
        data = self.storage.load(self.positions_table, Position.key(account_id, symbol))
        return Position.from_dict(data) if data else None

    def _load_or_init_position(self, account_id: str, symbol: str) -> LoadResult:
        """Existing position, or a fresh zero position that is not yet stored"""
        position = self._find_position(account_id, symbol)
        if position is not None:
            return LoadResult(record=position, created=False)

        now = datetime.now(timezone.utc)
        position = Position(
            id=Position.key(account_id, symbol),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            symbol=symbol,
            units=0,
            average_cost_basis=round_money(ZERO)
        )
        return LoadResult(record=position, created=True)

    def _save_position(self, position: Position) -> None:
        self.storage.save(self.positions_table, position.id, position.to_dict())

    def _append_trade(
        self,
        account: Account,
        instrument: Instrument,
        side: TradeSide,
        quantity: int,
        total_amount: Decimal,
        profit_loss: Optional[Decimal] = None
    ) -> Trade:
        def build(reference: str) -> Trade:
            now = datetime.now(timezone.utc)
            return Trade(
                id=reference,
                created_at=now,
                updated_at=now,
                reference=reference,
                account_id=account.id,
                symbol=instrument.symbol,
                side=side,
                quantity=quantity,
                unit_price=instrument.current_price,
                total_amount=total_amount,
                profit_loss=profit_loss
            )

        return self.references.append(self.trades_table, TRADE_PREFIX, build)

    def _audit_trade(self, trade: Trade, requesting_identity: str) -> None:
        self.audit_trail.log_event(
            event_type=AuditEventType.TRADE_EXECUTED,
            entity_type="trade",
            entity_id=trade.reference,
            metadata={
                "account_id": trade.account_id,
                "symbol": trade.symbol,
                "side": trade.side,
                "quantity": trade.quantity,
                "unit_price": trade.unit_price,
                "total_amount": trade.total_amount,
                "profit_loss": trade.profit_loss
            },
            user_id=requesting_identity
        )

    def _log_trade(self, trade: Trade, requesting_identity: str) -> None:
        extra = {
            "symbol": trade.symbol,
            "quantity": trade.quantity,
            "unit_price": str(trade.unit_price),
            "total_amount": str(trade.total_amount)
        }
        if trade.profit_loss is not None:
            extra["profit_loss"] = str(trade.profit_loss)
        log_action(
            self.logger, "info", f"{trade.side.value} executed: {trade.reference}",
            user_id=requesting_identity, action=trade.side.value.lower(),
            resource=f"trade:{trade.reference}", extra=extra
        )

    def _load_trades(self) -> List[Trade]:
        return [Trade.from_dict(data) for data in self.storage.load_all(self.trades_table)]

    def _to_view(self, position: Position) -> PositionView:
        instrument = self.instruments.get_instrument(position.symbol)
        market_value = round_money(instrument.current_price * position.units)
        cost_basis = position.cost_basis
        profit_loss = market_value - cost_basis

        return PositionView(
            account_id=position.account_id,
            symbol=instrument.symbol,
            name=instrument.name,
            units=position.units,
            average_cost_basis=position.average_cost_basis,
            current_price=instrument.current_price,
            market_value=market_value,
            cost_basis=cost_basis,
            profit_loss=profit_loss,
            profit_loss_percent=percent_of(profit_loss, cost_basis)
        )
