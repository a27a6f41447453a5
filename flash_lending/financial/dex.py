from typing import Dict, Any
import math
from dataclasses import dataclass

from ..constants import PRECISION, BASIS_POINTS_SCALE
from ..engine import SmartContract, VMException

@dataclass
class LiquidityPool:
    """Automated Market Maker liquidity pool"""
    token_a: str
    token_b: str
    reserve_a: int
    reserve_b: int
    total_liquidity: int
    fee_rate: int  # Fee rate in basis points (100 = 1%)
    k_constant: int  # Constant product k = reserve_a * reserve_b
    fees_a: int = 0  # swap fees retained in the reserves, per input token
    fees_b: int = 0

class DecentralizedExchange(SmartContract):
    """Constant-product AMM over deployed tokens

    Reserves are real token balances held by the exchange contract, so a
    swap moves both the reserves and the spot price that
    ``AMMSpotOracle`` reads.
    """

    def __init__(self, owner: str, default_fee_rate: int = 30):  # 0.3% default fee
        super().__init__()

        self.owner = owner
        self.default_fee_rate = default_fee_rate  # In basis points

        self.pools: Dict[str, LiquidityPool] = {}

    @staticmethod
    def pool_id(token_a: str, token_b: str) -> str:
        return f"{token_a}_{token_b}" if token_a < token_b else f"{token_b}_{token_a}"

    def create_liquidity_pool(self, token_a: str, token_b: str,
                              amount_a: int, amount_b: int,
                              fee_rate: int = None) -> str:
        """Create a new AMM liquidity pool funded by the caller"""
        caller = self._get_caller()

        if token_a == token_b or amount_a <= 0 or amount_b <= 0:
            return ""

        pool_id = self.pool_id(token_a, token_b)
        if pool_id in self.pools:
            return ""  # Pool already exists

        # Lock tokens
        if not self._call(token_a, 'transfer_from', caller, self.address, amount_a):
            return ""
        if not self._call(token_b, 'transfer_from', caller, self.address, amount_b):
            raise VMException(f"Could not pull {amount_b} of {token_b} from {caller}")

        # Calculate initial liquidity tokens (geometric mean)
        initial_liquidity = math.isqrt(amount_a * amount_b)

        self.pools[pool_id] = LiquidityPool(
            token_a=token_a,
            token_b=token_b,
            reserve_a=amount_a,
            reserve_b=amount_b,
            total_liquidity=initial_liquidity,
            fee_rate=self.default_fee_rate if fee_rate is None else fee_rate,
            k_constant=amount_a * amount_b
        )

        self._emit_event('PoolCreated', {
            'pool_id': pool_id,
            'creator': caller,
            'token_a': token_a,
            'token_b': token_b,
            'amount_a': amount_a,
            'amount_b': amount_b,
            'liquidity': initial_liquidity
        })

        return pool_id

    def swap_exact_tokens_for_tokens(self, token_in: str, token_out: str,
                                     amount_in: int, min_amount_out: int) -> int:
        """Swap exact input tokens for output tokens using AMM"""
        caller = self._get_caller()

        pool = self.pools.get(self.pool_id(token_in, token_out))
        if pool is None or amount_in <= 0:
            return 0

        amount_out = self.get_amount_out(token_in, token_out, amount_in)
        if amount_out == 0 or amount_out < min_amount_out:
            return 0

        if not self._call(token_in, 'transfer_from', caller, self.address, amount_in):
            return 0

        # Update reserves
        if pool.token_a == token_in:
            pool.reserve_a += amount_in
            pool.reserve_b -= amount_out
        else:
            pool.reserve_b += amount_in
            pool.reserve_a -= amount_out

        pool.k_constant = pool.reserve_a * pool.reserve_b

        if not self._call(token_out, 'transfer', caller, amount_out):
            raise VMException(f"Could not send {amount_out} of {token_out} to {caller}")

        # Collect fees
        fee_amount = amount_in * pool.fee_rate // BASIS_POINTS_SCALE
        if pool.token_a == token_in:
            pool.fees_a += fee_amount
        else:
            pool.fees_b += fee_amount

        self._emit_event('Swap', {
            'trader': caller,
            'token_in': token_in,
            'token_out': token_out,
            'amount_in': amount_in,
            'amount_out': amount_out,
            'fee': fee_amount
        })

        return amount_out

    def get_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Calculate output amount for a given input (quote)"""
        pool = self.pools.get(self.pool_id(token_in, token_out))
        if pool is None:
            return 0

        reserve_in, reserve_out = self._reserves(pool, token_in)

        # Calculate output with fee
        amount_in_with_fee = amount_in * (BASIS_POINTS_SCALE - pool.fee_rate) // BASIS_POINTS_SCALE
        return (amount_in_with_fee * reserve_out) // (reserve_in + amount_in_with_fee)

    def get_spot_price(self, base: str, quote: str, precision: int = PRECISION) -> int:
        """Marginal price of ``base`` in ``quote`` from current reserves, fixed point"""
        pool = self.pools.get(self.pool_id(base, quote))
        if pool is None:
            return 0

        reserve_base, reserve_quote = self._reserves(pool, base)
        if reserve_base == 0:
            return 0
        return reserve_quote * 10 ** precision // reserve_base

    def get_pool_info(self, pool_id: str) -> Dict[str, Any]:
        """Get pool information"""
        if pool_id not in self.pools:
            return {}

        pool = self.pools[pool_id]

        return {
            'token_a': pool.token_a,
            'token_b': pool.token_b,
            'reserve_a': pool.reserve_a,
            'reserve_b': pool.reserve_b,
            'total_liquidity': pool.total_liquidity,
            'fee_rate': pool.fee_rate,
            'fees_a': pool.fees_a,
            'fees_b': pool.fees_b,
            'price_a_in_b': self.get_spot_price(pool.token_a, pool.token_b),
            'price_b_in_a': self.get_spot_price(pool.token_b, pool.token_a),
            'k_constant': pool.k_constant
        }

    @staticmethod
    def _reserves(pool: LiquidityPool, token_in: str):
        if pool.token_a == token_in:
            return pool.reserve_a, pool.reserve_b
        return pool.reserve_b, pool.reserve_a
