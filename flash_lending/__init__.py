"""Flash Lending Pool

Pooled-liquidity lending core: depositors receive shares whose exchange
rate rises only from settled flash-loan fees, and every flash loan is
repaid with its fee inside the execution unit that issued it or the whole
unit is rolled back.
"""

from .constants import (
    PRECISION,
    SCALE,
    BASIS_POINTS_SCALE,
    DEFAULT_FLASH_LOAN_FEE_RATE,
    MAX_AMOUNT,
    DEFAULT_TWAP_WINDOW,
    MAX_TWAP_OBSERVATIONS,
    DEFAULT_GAS_LIMIT,
    MAX_CALL_DEPTH,
    CONFIG
)
from .engine import SmartContractEngine, SmartContractVM, SmartContract
from .financial import (
    LendingPool,
    ShareLedger,
    FeeCalculator,
    FlashLoanReceiver,
    ERC20Token,
    DecentralizedExchange
)

__all__ = [
    'SmartContractEngine',
    'SmartContractVM',
    'SmartContract',
    'LendingPool',
    'ShareLedger',
    'FeeCalculator',
    'FlashLoanReceiver',
    'ERC20Token',
    'DecentralizedExchange',
    'create_lending_pool',
    'PRECISION',
    'SCALE',
    'BASIS_POINTS_SCALE',
    'DEFAULT_FLASH_LOAN_FEE_RATE',
    'MAX_AMOUNT',
    'DEFAULT_TWAP_WINDOW',
    'MAX_TWAP_OBSERVATIONS',
    'DEFAULT_GAS_LIMIT',
    'MAX_CALL_DEPTH',
    'CONFIG'
]

__version__ = '1.0.0'

def create_lending_pool(engine, owner, oracle, numeraire, assets=None,
                        fee_rate=DEFAULT_FLASH_LOAN_FEE_RATE):
    """Deploy a lending pool and list its assets

    Args:
        engine (SmartContractEngine): Engine to deploy on
        owner (str): Pool owner, the only account allowed to list assets
        oracle: Price oracle adapter used for fees
        numeraire (str): Unit fees are priced in
        assets (list): Token addresses to allow-list
        fee_rate (int): Flash-loan fee rate at PRECISION

    Returns:
        tuple: (pool address, LendingPool instance)
    """
    calculator = FeeCalculator(oracle, numeraire, fee_rate)
    address, _ = engine.deploy_contract(LendingPool, owner, [owner, calculator])

    for asset in assets or []:
        receipt = engine.call_contract(address, 'add_asset', [asset], owner)
        if not receipt.success:
            raise ValueError(f"Could not list {asset}: {receipt.error}")

    return address, engine.get_contract(address)
