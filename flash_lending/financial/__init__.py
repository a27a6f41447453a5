"""Lending Contracts Module

Share accounting, flash loans and the contracts they run against:

- ShareLedger: per-asset share supply, balances, custody and exchange rate
- FeeCalculator: oracle-priced flash-loan fee
- LendingPool: deposits, redemptions and the flash-loan engine
- ERC20Token and DecentralizedExchange used as assets and as a price venue
"""

from .errors import (
    LendingError,
    AssetNotAllowed,
    AssetAlreadyListed,
    Unauthorized,
    ZeroAmount,
    InsufficientShares,
    InsufficientLiquidity,
    FlashLoanAlreadyOpen,
    FlashLoanNotRepaid,
    NoOpenFlashLoan,
    OracleUnavailable,
    TransferFailed,
    SolvencyViolation,
    StorageLayoutMismatch
)
from .ledger import ShareLedger, LEDGER_STORAGE_VERSION, LEDGER_STORAGE_LAYOUT
from .fees import FeeCalculator, FeeQuote
from .flashloan import FlashLoanEngine, FlashLoanReceiver, FlashLoanRecord, FlashLoanStatus
from .pool import LendingPool
from .token import ERC20Token
from .dex import DecentralizedExchange, LiquidityPool

__all__ = [
    # Errors
    'LendingError',
    'AssetNotAllowed',
    'AssetAlreadyListed',
    'Unauthorized',
    'ZeroAmount',
    'InsufficientShares',
    'InsufficientLiquidity',
    'FlashLoanAlreadyOpen',
    'FlashLoanNotRepaid',
    'NoOpenFlashLoan',
    'OracleUnavailable',
    'TransferFailed',
    'SolvencyViolation',
    'StorageLayoutMismatch',

    # Accounting
    'ShareLedger',
    'LEDGER_STORAGE_VERSION',
    'LEDGER_STORAGE_LAYOUT',
    'FeeCalculator',
    'FeeQuote',

    # Flash loans
    'FlashLoanEngine',
    'FlashLoanReceiver',
    'FlashLoanRecord',
    'FlashLoanStatus',
    'LendingPool',

    # Supporting contracts
    'ERC20Token',
    'DecentralizedExchange',
    'LiquidityPool'
]
