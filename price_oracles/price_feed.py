from typing import Dict, List, Optional, Tuple
import logging
from collections import deque
from decimal import Decimal, InvalidOperation, ROUND_DOWN

import requests

from flash_lending.constants import PRECISION
from flash_lending.financial.errors import OracleUnavailable

logger = logging.getLogger(__name__)

def to_fixed_point(value, precision: int = PRECISION) -> int:
    """Convert a decimal price ('1.0025', Decimal, int) to a fixed-point integer, rounding down"""
    scaled = Decimal(str(value)).scaleb(precision)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))

def from_fixed_point(value: int, precision: int = PRECISION) -> Decimal:
    """Fixed-point integer back to a Decimal for display"""
    return Decimal(value).scaleb(-precision)

class PriceOracle:
    """Read-only price source: ``price(base, quote)`` is how many quote units
    one base unit is worth, as a fixed-point integer with ``precision`` decimals.
    """

    precision = PRECISION

    @property
    def scale(self) -> int:
        return 10 ** self.precision

    def price(self, base: str, quote: str) -> int:
        raise NotImplementedError

class StaticPriceOracle(PriceOracle):
    """Administratively set reference rates"""

    def __init__(self, prices: Dict[Tuple[str, str], int] = None, precision: int = PRECISION):
        self.precision = precision
        self.prices: Dict[Tuple[str, str], int] = dict(prices or {})

    def set_price(self, base: str, quote: str, rate: int):
        """Set the fixed-point rate for a pair"""
        if rate <= 0:
            raise ValueError("Price must be positive")
        self.prices[(base, quote)] = rate

    def price(self, base: str, quote: str) -> int:
        if base == quote:
            return self.scale
        rate = self.prices.get((base, quote))
        if rate is None:
            raise OracleUnavailable(f"No price for {base}/{quote}")
        return rate

class AMMSpotOracle(PriceOracle):
    """Spot price straight from DEX reserves

    Reads whatever the reserves are at the moment of the call, so a large
    swap earlier in the same execution unit moves the reading.
    """

    def __init__(self, dex, precision: int = PRECISION):
        self.dex = dex
        self.precision = precision

    def price(self, base: str, quote: str) -> int:
        if base == quote:
            return self.scale
        rate = self.dex.get_spot_price(base, quote, self.precision)
        if rate <= 0:
            raise OracleUnavailable(f"No liquidity for {base}/{quote}")
        return rate

class PriceGraphOracle(PriceOracle):
    """Multi-hop price graph

    Each edge (base, quote) is backed by its own source. A lookup always
    walks the graph starting from the base asset, so the first hop of the
    route prices the asset that was asked for, never some fixed reference
    token. Hop rates are composed with floor rounding.
    """

    def __init__(self, precision: int = PRECISION):
        self.precision = precision
        self.edges: Dict[str, Dict[str, PriceOracle]] = {}

    def add_feed(self, base: str, quote: str, source: PriceOracle):
        """Register a direct pair"""
        self.edges.setdefault(base, {})[quote] = source

    def route(self, base: str, quote: str) -> List[Tuple[str, str]]:
        """Shortest chain of hops from base to quote"""
        if base == quote:
            return []

        previous: Dict[str, Optional[str]] = {base: None}
        queue = deque([base])
        while queue:
            node = queue.popleft()
            for neighbour in self.edges.get(node, {}):
                if neighbour in previous:
                    continue
                previous[neighbour] = node
                if neighbour == quote:
                    hops = []
                    current = quote
                    while previous[current] is not None:
                        hops.append((previous[current], current))
                        current = previous[current]
                    return list(reversed(hops))
                queue.append(neighbour)

        raise OracleUnavailable(f"No price route from {base} to {quote}")

    def price(self, base: str, quote: str) -> int:
        rate = self.scale
        for hop_base, hop_quote in self.route(base, quote):
            hop_rate = self.edges[hop_base][hop_quote].price(hop_base, hop_quote)
            rate = rate * hop_rate // self.scale
        return rate

class HttpPriceOracle(PriceOracle):
    """Price service over HTTP

    Expects ``GET {base_url}/price?base=..&quote=..`` to answer
    ``{"price": "<decimal string>"}``.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, precision: int = PRECISION):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.precision = precision

    def price(self, base: str, quote: str) -> int:
        if base == quote:
            return self.scale

        url = f"{self.base_url}/price"
        try:
            response = requests.get(url, params={'base': base, 'quote': quote}, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
            rate = to_fixed_point(payload['price'], self.precision)
        except requests.RequestException as e:
            raise OracleUnavailable(f"Price service unreachable for {base}/{quote}: {e}") from e
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            raise OracleUnavailable(f"Malformed price payload for {base}/{quote}: {e}") from e

        if rate <= 0:
            raise OracleUnavailable(f"Non-positive price for {base}/{quote}")

        logger.debug(f"HTTP price {base}/{quote} = {rate}")
        return rate
