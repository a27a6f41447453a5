from typing import Dict, List, Tuple
import logging

from flash_lending.constants import PRECISION, DEFAULT_TWAP_WINDOW, MAX_TWAP_OBSERVATIONS
from flash_lending.engine import SmartContract
from flash_lending.financial.errors import OracleUnavailable

from .price_feed import PriceOracle

logger = logging.getLogger(__name__)

class TWAPOracle(SmartContract, PriceOracle):
    """Time-weighted average over observations of another oracle

    Each observation holds from its block timestamp until the next
    observation, the last one until the current block. An observation made in
    the current block therefore carries no weight yet, and a price pushed
    around inside one execution unit cannot reach the average.
    """

    TRANSIENT_ATTRIBUTES = SmartContract.TRANSIENT_ATTRIBUTES | frozenset({'source'})

    def __init__(self, source: PriceOracle, window: int = DEFAULT_TWAP_WINDOW,
                 precision: int = PRECISION, max_observations: int = MAX_TWAP_OBSERVATIONS):
        super().__init__()

        if window <= 0:
            raise ValueError("TWAP window must be positive")

        self.source = source
        self.window = window
        self.precision = precision
        self.max_observations = max_observations

        # "base/quote" -> [(timestamp, rate), ...] in timestamp order
        self.observations: Dict[str, List[Tuple[int, int]]] = {}

    @staticmethod
    def _pair_key(base: str, quote: str) -> str:
        return f"{base}/{quote}"

    def record_observation(self, base: str, quote: str) -> int:
        """Sample the source at the current block timestamp"""
        rate = self.source.price(base, quote)
        timestamp = self._now()

        history = self.observations.setdefault(self._pair_key(base, quote), [])
        if history and history[-1][0] >= timestamp:
            # One observation per block
            history[-1] = (history[-1][0], rate)
        else:
            history.append((timestamp, rate))

        self._prune(history, timestamp)

        self._emit_event('ObservationRecorded', {
            'base': base,
            'quote': quote,
            'rate': rate,
            'timestamp': timestamp
        })

        logger.debug(f"TWAP observation {base}/{quote} = {rate} at {timestamp}")
        return rate

    def price(self, base: str, quote: str) -> int:
        if base == quote:
            return self.scale

        history = self.observations.get(self._pair_key(base, quote), [])
        now = self._now()
        window_start = now - self.window

        weighted_sum = 0
        total_weight = 0
        for i, (timestamp, rate) in enumerate(history):
            segment_end = history[i + 1][0] if i + 1 < len(history) else now
            start = max(timestamp, window_start)
            end = min(segment_end, now)
            if end > start:
                weighted_sum += rate * (end - start)
                total_weight += end - start

        if total_weight == 0:
            raise OracleUnavailable(f"No time-weighted data for {base}/{quote} in the last {self.window}s")

        return weighted_sum // total_weight

    def get_observations(self, base: str, quote: str) -> List[Tuple[int, int]]:
        return list(self.observations.get(self._pair_key(base, quote), []))

    def _prune(self, history: List[Tuple[int, int]], now: int):
        # Keep the newest observation at or before the window start; it covers the window's head
        window_start = now - self.window
        while len(history) > 1 and history[1][0] <= window_start:
            history.pop(0)
        while len(history) > self.max_observations:
            history.pop(0)
