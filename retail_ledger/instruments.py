"""
Instrument Registry Module

Administrative side of the share pool: listing, creating, repricing and
deleting instruments. The institution is the counterparty for every trade,
so available_units is the pool buys draw from and sells return to.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, List, Optional

from .audit import AuditTrail, AuditEventType
from .exceptions import InvalidArgumentError, InvalidStateError, NotFoundError
from .logging_config import get_logger, log_action
from .money import require_positive, to_money
from .storage import StorageInterface, StorageRecord


@dataclass
class Instrument(StorageRecord):
    """
    Tradable stock, keyed by its symbol

    Invariant: 0 <= available_units <= total_units
    """
    symbol: str
    name: str
    current_price: Decimal
    total_units: int
    available_units: int
    sector: Optional[str] = None
    description: Optional[str] = None

    decimal_fields = ('current_price',)

    @property
    def held_units(self) -> int:
        """Units currently held by accounts"""
        return self.total_units - self.available_units


def normalize_symbol(symbol: str) -> str:
    if not symbol or not str(symbol).strip():
        raise InvalidArgumentError("Instrument symbol is required")
    return str(symbol).strip().upper()


class InstrumentRegistry:
    """
    Owns instrument records and the only write path for pool availability
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "instruments"
        self.logger = get_logger("retail_ledger.instruments")

    def create_instrument(
        self,
        symbol: str,
        name: str,
        current_price: Any,
        total_units: int,
        sector: Optional[str] = None,
        description: Optional[str] = None
    ) -> Instrument:
        """
        Create an instrument with its whole issue available

        Raises:
            InvalidArgumentError: Duplicate symbol, blank name, non-positive
                price or negative unit count
        """
        symbol = normalize_symbol(symbol)
        if not name or not name.strip():
            raise InvalidArgumentError("Instrument name is required")
        price = require_positive(to_money(current_price, "price"), "price")
        if isinstance(total_units, bool) or not isinstance(total_units, int) or total_units < 0:
            raise InvalidArgumentError("Total units must be a non-negative integer")

        with self.storage.atomic():
            if self.storage.exists(self.table_name, symbol):
                raise InvalidArgumentError(f"Stock with symbol {symbol} already exists")

            now = datetime.now(timezone.utc)
            instrument = Instrument(
                id=symbol,
                created_at=now,
                updated_at=now,
                symbol=symbol,
                name=name.strip(),
                current_price=price,
                total_units=total_units,
                available_units=total_units,
                sector=sector,
                description=description
            )
            self.storage.insert(self.table_name, symbol, instrument.to_dict())

            self.audit_trail.log_event(
                event_type=AuditEventType.INSTRUMENT_CREATED,
                entity_type="instrument",
                entity_id=symbol,
                metadata={"price": price, "total_units": total_units}
            )

        log_action(
            self.logger, "info", f"Instrument created: {symbol}",
            action="create_instrument", resource=f"instrument:{symbol}",
            extra={"price": str(price), "total_units": total_units}
        )
        return instrument

    def get_instrument(self, symbol: str) -> Instrument:
        """Get instrument by symbol"""
        symbol = normalize_symbol(symbol)
        data = self.storage.load(self.table_name, symbol)
        if not data:
            raise NotFoundError(f"Stock not found: {symbol}")
        return Instrument.from_dict(data)

    def update_price(self, symbol: str, new_price: Any) -> Instrument:
        """Administrative repricing, the only way a price changes"""
        price = require_positive(to_money(new_price, "price"), "price")

        with self.storage.atomic():
            instrument = self.get_instrument(symbol)
            old_price = instrument.current_price
            instrument.current_price = price
            instrument.touch()
            self._save_instrument(instrument)

            self.audit_trail.log_event(
                event_type=AuditEventType.INSTRUMENT_REPRICED,
                entity_type="instrument",
                entity_id=instrument.symbol,
                metadata={"old_price": old_price, "new_price": price}
            )

        log_action(
            self.logger, "info", f"Instrument repriced: {instrument.symbol}",
            action="update_price", resource=f"instrument:{instrument.symbol}",
            extra={"old_price": str(old_price), "new_price": str(price)}
        )
        return instrument

    def delete_instrument(self, symbol: str) -> None:
        """
        Delete an instrument nobody holds

        Raises:
            InvalidStateError: If any units are held by accounts
        """
        with self.storage.atomic():
            instrument = self.get_instrument(symbol)
            if instrument.available_units < instrument.total_units:
                raise InvalidStateError("Cannot delete stock with active positions")

            self.storage.delete(self.table_name, instrument.symbol)
            self.audit_trail.log_event(
                event_type=AuditEventType.INSTRUMENT_DELETED,
                entity_type="instrument",
                entity_id=instrument.symbol,
                metadata={}
            )

        log_action(
            self.logger, "info", f"Instrument deleted: {instrument.symbol}",
            action="delete_instrument", resource=f"instrument:{instrument.symbol}"
        )

    def list_instruments(self) -> List[Instrument]:
        """All instruments ordered by name"""
        instruments = [Instrument.from_dict(data) for data in self.storage.load_all(self.table_name)]
        return sorted(instruments, key=lambda i: i.name)

    def list_available_instruments(self) -> List[Instrument]:
        """Instruments that still have units in the pool"""
        return [i for i in self.list_instruments() if i.available_units > 0]

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def adjust_available_units(self, instrument: Instrument, delta: int) -> Instrument:
        """
        Move units between the pool and account holdings

        Negative delta reserves units for a buy, positive returns them on a
        sell. Callers run this inside their own atomic block.

        Raises:
            InvalidStateError: If the pool would leave [0, total_units]
        """
        new_available = instrument.available_units + delta
        if new_available < 0 or new_available > instrument.total_units:
            raise InvalidStateError(
                f"Pool for {instrument.symbol} would hold {new_available} of {instrument.total_units} units"
            )
        instrument.available_units = new_available
        instrument.touch()
        self._save_instrument(instrument)
        return instrument

    def _save_instrument(self, instrument: Instrument) -> None:
        self.storage.save(self.table_name, instrument.symbol, instrument.to_dict())
