"""Protocol-wide constants

Components take these as constructor defaults; nothing reads them at call
time, so a deployment can override any of them explicitly.
"""

from .engine.vm import DEFAULT_GAS_LIMIT, MAX_CALL_DEPTH

# Fixed-point precision of exchange rates, prices and fee rates
PRECISION = 18
SCALE = 10 ** PRECISION

BASIS_POINTS_SCALE = 10000

# 30 basis points, expressed at PRECISION
DEFAULT_FLASH_LOAN_FEE_RATE = 30 * SCALE // BASIS_POINTS_SCALE

# Sentinel for "redeem the whole balance"
MAX_AMOUNT = 2 ** 256 - 1

DEFAULT_TWAP_WINDOW = 1800  # seconds
MAX_TWAP_OBSERVATIONS = 64

CONFIG = {
    'precision': PRECISION,
    'scale': SCALE,
    'flash_loan_fee_rate': DEFAULT_FLASH_LOAN_FEE_RATE,
    'max_amount': MAX_AMOUNT,
    'twap_window': DEFAULT_TWAP_WINDOW,
    'max_twap_observations': MAX_TWAP_OBSERVATIONS,
    'gas_limit': DEFAULT_GAS_LIMIT,
    'max_call_depth': MAX_CALL_DEPTH,
    'basis_points_scale': BASIS_POINTS_SCALE,
}
