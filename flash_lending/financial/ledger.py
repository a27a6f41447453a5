from typing import Dict, Any, Tuple
from dataclasses import dataclass, field

from ..constants import PRECISION
from .errors import (
    ZeroAmount, InsufficientShares, InsufficientLiquidity, StorageLayoutMismatch
)

# Persisted record layout. Bump the version and add a migration whenever a
# field is added, removed, renamed or changes between stored and constant.
LEDGER_STORAGE_VERSION = 1
LEDGER_STORAGE_LAYOUT: Tuple[str, ...] = (
    'version',
    'asset',
    'precision',
    'exchange_rate',
    'total_supply',
    'custody',
    'balances',
)

@dataclass
class ShareLedger:
    """Share accounting for one allow-listed asset

    Tracks the share supply, each depositor's shares, the underlying held in
    custody and the exchange rate (underlying per share, fixed point with
    ``precision`` decimals). Mint and burn move supply and custody at the
    current rate; only ``settle_fee`` moves the rate.
    """
    asset: str
    precision: int = PRECISION
    exchange_rate: int = 0
    total_supply: int = 0
    custody: int = 0
    balances: Dict[str, int] = field(default_factory=dict)
    version: int = LEDGER_STORAGE_VERSION

    def __post_init__(self):
        if self.exchange_rate == 0:
            self.exchange_rate = self.scale

    @property
    def scale(self) -> int:
        return 10 ** self.precision

    def balance_of(self, depositor: str) -> int:
        """Shares held by a depositor"""
        return self.balances.get(depositor, 0)

    def preview_mint(self, amount_underlying: int) -> int:
        """Shares minted for an amount of underlying, rounded down"""
        return amount_underlying * self.scale // self.exchange_rate

    def preview_burn(self, shares: int) -> int:
        """Underlying paid out for a number of shares, rounded down"""
        return shares * self.exchange_rate // self.scale

    def redeemable(self, depositor: str) -> int:
        """Underlying the depositor's whole balance is worth right now"""
        return self.preview_burn(self.balance_of(depositor))

    def mint(self, depositor: str, amount_underlying: int) -> int:
        """Mint shares for underlying entering custody"""
        if amount_underlying <= 0:
            raise ZeroAmount("Deposit amount must be positive")

        shares = self.preview_mint(amount_underlying)
        if shares == 0:
            raise ZeroAmount(f"Deposit of {amount_underlying} is worth zero shares")

        self.total_supply += shares
        self.balances[depositor] = self.balance_of(depositor) + shares
        self.custody += amount_underlying
        return shares

    def burn(self, depositor: str, shares: int) -> int:
        """Burn shares and release the underlying they are worth"""
        if shares <= 0:
            raise ZeroAmount("Share amount must be positive")

        balance = self.balance_of(depositor)
        if balance < shares:
            raise InsufficientShares(f"{depositor} holds {balance} shares, {shares} requested")

        amount_underlying = self.preview_burn(shares)
        if amount_underlying == 0:
            raise ZeroAmount(f"{shares} shares are worth zero underlying")
        if amount_underlying > self.custody:
            raise InsufficientLiquidity(
                f"Custody holds {self.custody}, redemption needs {amount_underlying}"
            )

        self.total_supply -= shares
        self.balances[depositor] = balance - shares
        if self.balances[depositor] == 0:
            del self.balances[depositor]
        self.custody -= amount_underlying
        return amount_underlying

    def settle_fee(self, fee_amount: int) -> int:
        """Credit realized fee income; the only way the exchange rate moves"""
        if fee_amount < 0:
            raise ValueError("Fee cannot be negative")

        self.custody += fee_amount
        if self.total_supply > 0:
            self.exchange_rate += fee_amount * self.scale // self.total_supply
        return self.exchange_rate

    def lend_out(self, principal: int):
        """Take flash-loan principal out of custody"""
        if principal > self.custody:
            raise InsufficientLiquidity(f"Custody holds {self.custody}, loan needs {principal}")
        self.custody -= principal

    def return_principal(self, principal: int):
        """Put repaid flash-loan principal back into custody"""
        self.custody += principal

    def is_solvent(self) -> bool:
        """Custody covers every outstanding share at the current rate"""
        return self.custody * self.scale >= self.total_supply * self.exchange_rate

    def get_info(self) -> Dict[str, Any]:
        return {
            'asset': self.asset,
            'precision': self.precision,
            'exchange_rate': self.exchange_rate,
            'total_supply': self.total_supply,
            'custody': self.custody,
            'depositors': len(self.balances),
            'solvent': self.is_solvent()
        }

    def export_state(self) -> Dict[str, Any]:
        """Plain, versioned record of the ledger for persistence"""
        return {
            'version': self.version,
            'layout': list(LEDGER_STORAGE_LAYOUT),
            'asset': self.asset,
            'precision': self.precision,
            'exchange_rate': self.exchange_rate,
            'total_supply': self.total_supply,
            'custody': self.custody,
            'balances': dict(self.balances),
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any], precision: int = PRECISION) -> 'ShareLedger':
        """Load a persisted record, refusing anything written with another layout"""
        version = state.get('version')
        if version != LEDGER_STORAGE_VERSION:
            raise StorageLayoutMismatch(
                f"Ledger record version {version} does not match {LEDGER_STORAGE_VERSION}; migrate it first"
            )

        layout = tuple(state.get('layout', ()))
        if layout != LEDGER_STORAGE_LAYOUT:
            raise StorageLayoutMismatch(f"Ledger record layout {layout} does not match {LEDGER_STORAGE_LAYOUT}")

        missing = [name for name in LEDGER_STORAGE_LAYOUT if name not in state]
        if missing:
            raise StorageLayoutMismatch(f"Ledger record is missing fields: {missing}")

        # The stored rate is only meaningful at the precision it was written with
        if state['precision'] != precision:
            raise StorageLayoutMismatch(
                f"Ledger record precision {state['precision']} does not match {precision}"
            )

        ledger = cls(
            asset=state['asset'],
            precision=state['precision'],
            exchange_rate=state['exchange_rate'],
            total_supply=state['total_supply'],
            custody=state['custody'],
            balances=dict(state['balances']),
            version=version
        )
        if sum(ledger.balances.values()) != ledger.total_supply:
            raise StorageLayoutMismatch("Ledger record balances do not add up to total supply")
        return ledger
