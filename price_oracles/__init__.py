"""Price Oracle Adapters

Read-only price sources for the fee calculator. All of them answer
``price(base, quote)`` with a fixed-point rate and raise
``OracleUnavailable`` when they cannot:

- StaticPriceOracle: administratively set rates
- AMMSpotOracle: current DEX reserves (manipulable within one unit)
- TWAPOracle: time-weighted average of another source
- PriceGraphOracle: multi-hop routes starting from the priced asset
- HttpPriceOracle: external price service over HTTP
"""

from .price_feed import (
    PriceOracle,
    StaticPriceOracle,
    AMMSpotOracle,
    PriceGraphOracle,
    HttpPriceOracle,
    to_fixed_point,
    from_fixed_point
)
from .twap import TWAPOracle

__version__ = "1.0.0"
__all__ = [
    "PriceOracle",
    "StaticPriceOracle",
    "AMMSpotOracle",
    "PriceGraphOracle",
    "HttpPriceOracle",
    "TWAPOracle",
    "to_fixed_point",
    "from_fixed_point"
]
