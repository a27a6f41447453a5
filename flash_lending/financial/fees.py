from typing import Dict, Any
import logging
from dataclasses import dataclass, asdict

from ..constants import PRECISION, DEFAULT_FLASH_LOAN_FEE_RATE
from .errors import OracleUnavailable

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class FeeQuote:
    """Every intermediate of a fee computation, for off-line reproduction"""
    asset: str
    numeraire: str
    principal: int
    price: int
    value: int
    fee_rate: int
    fee: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

class FeeCalculator:
    """Flash-loan fee from an oracle reading

    ``value = principal * price // 10**P`` then ``fee = value * fee_rate // 10**P``,
    flooring at each step. The oracle is asked for the borrowed asset priced in
    ``numeraire``; any oracle failure fails the fee closed, there is no default.

    Only the oracle adapter changes when moving from a spot source to a
    time-weighted one; the call shape here stays ``price(asset, numeraire)``.
    """

    def __init__(self, oracle, numeraire: str,
                 fee_rate: int = DEFAULT_FLASH_LOAN_FEE_RATE, precision: int = PRECISION):
        scale = 10 ** precision
        if fee_rate < 0 or fee_rate > scale:
            raise ValueError(f"Fee rate {fee_rate} outside [0, {scale}]")

        self.oracle = oracle
        self.numeraire = numeraire
        self.fee_rate = fee_rate
        self.precision = precision

    @property
    def scale(self) -> int:
        return 10 ** self.precision

    def quote(self, asset: str, principal: int) -> FeeQuote:
        """Price the borrowed asset and derive the fee, without side effects"""
        try:
            price = self.oracle.price(asset, self.numeraire)
        except OracleUnavailable:
            raise
        except Exception as e:
            raise OracleUnavailable(f"Oracle read failed for {asset}/{self.numeraire}: {e}") from e

        if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
            raise OracleUnavailable(f"Oracle returned unusable price {price!r} for {asset}/{self.numeraire}")

        value = principal * price // self.scale
        fee = value * self.fee_rate // self.scale

        logger.debug(f"Fee quote {asset}: principal={principal} price={price} fee={fee}")

        return FeeQuote(
            asset=asset,
            numeraire=self.numeraire,
            principal=principal,
            price=price,
            value=value,
            fee_rate=self.fee_rate,
            fee=fee
        )

    def compute_fee(self, asset: str, principal: int) -> int:
        return self.quote(asset, principal).fee
