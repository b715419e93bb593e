"""
Price Source Module

Unit prices for the two wealth asset classes. The wealth engine treats a
source as stateless: every read may return a different price, so it reads
each asset at most once per operation.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
import random
import threading

from .exceptions import InvalidArgumentError
from .money import CENTS, require_positive, round_money, to_decimal, to_money


class AssetClass(Enum):
    STOCK = "STOCK"
    BOND = "BOND"


class PriceSource(ABC):
    """Provides current unit prices per asset class"""

    @abstractmethod
    def current_price(self, asset_class: AssetClass) -> Decimal:
        """Current unit price, rounded to cents and strictly positive"""
        pass


class RandomWalkPriceSource(PriceSource):
    """
    Simulated prices: each read moves the price by a Gaussian step

    next = price * (1 + N(0, 1) * volatility), rounded to cents and floored
    at one cent. A seed makes the walk reproducible.
    """

    def __init__(
        self,
        initial_price: Any = Decimal('100.00'),
        volatility: Any = Decimal('0.01'),
        seed: Optional[int] = None
    ):
        start = require_positive(to_money(initial_price, "initial price"), "initial price")
        self.volatility = to_decimal(volatility, "volatility")
        if self.volatility < 0:
            raise InvalidArgumentError("volatility cannot be negative")
        self._rng = random.Random(seed)
        self._prices: Dict[AssetClass, Decimal] = {asset: start for asset in AssetClass}
        self._lock = threading.Lock()

    def current_price(self, asset_class: AssetClass) -> Decimal:
        with self._lock:
            step = Decimal(str(self._rng.gauss(0.0, 1.0))) * self.volatility
            price = round_money(self._prices[asset_class] * (1 + step))
            self._prices[asset_class] = max(price, CENTS)
            return self._prices[asset_class]


class FixedPriceSource(PriceSource):
    """Deterministic prices, changed only through set_price"""

    def __init__(self, stock_price: Any = Decimal('100.00'), bond_price: Any = Decimal('100.00')):
        self._prices: Dict[AssetClass, Decimal] = {}
        self.set_price(AssetClass.STOCK, stock_price)
        self.set_price(AssetClass.BOND, bond_price)

    def set_price(self, asset_class: AssetClass, price: Any) -> None:
        self._prices[asset_class] = require_positive(to_money(price, "price"), "price")

    def current_price(self, asset_class: AssetClass) -> Decimal:
        return self._prices[asset_class]
