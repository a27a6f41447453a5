from typing import Dict, Any, List
import threading
import logging

from ..constants import PRECISION, MAX_AMOUNT
from ..engine import SmartContract, ContractNotFound
from .errors import (
    AssetNotAllowed, AssetAlreadyListed, Unauthorized, ZeroAmount,
    TransferFailed, SolvencyViolation
)
from .fees import FeeCalculator
from .flashloan import FlashLoanEngine
from .ledger import ShareLedger

logger = logging.getLogger(__name__)

class LendingPool(FlashLoanEngine, SmartContract):
    """Pooled liquidity with share accounting and flash loans

    One ``ShareLedger`` per allow-listed asset, keyed by the token contract
    address. Deposits mint shares at the current exchange rate and never
    touch the fee path; the rate only rises when a flash loan settles.
    """

    # Configuration and synchronisation objects are not rolled back with state
    TRANSIENT_ATTRIBUTES = SmartContract.TRANSIENT_ATTRIBUTES | frozenset({
        'fee_calculator', '_asset_locks', '_locks_guard'
    })

    def __init__(self, owner: str, fee_calculator: FeeCalculator, precision: int = PRECISION):
        super().__init__()

        self.owner = owner
        self.fee_calculator = fee_calculator
        self.precision = precision

        self.ledgers: Dict[str, ShareLedger] = {}
        self.fees_collected: Dict[str, int] = {}
        self.loans_settled = 0

        self._open_loans = {}
        self._asset_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # Administration

    def add_asset(self, asset: str) -> Dict[str, Any]:
        """Allow-list a token and create its ledger"""
        caller = self._get_caller()
        if caller != self.owner:
            raise Unauthorized(f"{caller} may not list assets")
        if asset in self.ledgers:
            raise AssetAlreadyListed(f"Asset {asset} is already listed")
        if self._require_vm().get_contract(asset) is None:
            raise ContractNotFound(f"No token deployed at {asset}")

        ledger = ShareLedger(asset=asset, precision=self.precision)
        self.ledgers[asset] = ledger

        self._emit_event('AssetAdded', {
            'asset': asset,
            'owner': caller,
            'exchange_rate': ledger.exchange_rate
        })

        logger.info(f"Asset {asset} listed")
        return ledger.get_info()

    def is_allowed(self, asset: str) -> bool:
        return asset in self.ledgers

    # Deposits and redemptions

    def deposit(self, asset: str, amount: int) -> int:
        """Deposit underlying and receive shares at the current exchange rate"""
        depositor = self._get_caller()

        with self._asset_lock(asset):
            ledger = self._require_listed(asset)
            if amount <= 0:
                raise ZeroAmount("Deposit amount must be positive")
            if ledger.preview_mint(amount) == 0:
                raise ZeroAmount(f"Deposit of {amount} is worth zero shares")

            with self._require_vm().atomic():
                self._pull(asset, depositor, amount)
                shares = ledger.mint(depositor, amount)

                record = self._open_loans.get(asset)
                if record is not None:
                    record.deposited += amount

                self._emit_event('Deposit', {
                    'asset': asset,
                    'depositor': depositor,
                    'amount': amount,
                    'shares': shares,
                    'exchange_rate': ledger.exchange_rate
                })

                self._check_solvency(asset)

        return shares

    def redeem(self, asset: str, shares: int) -> int:
        """Burn shares for underlying; ``MAX_AMOUNT`` redeems the whole balance"""
        redeemer = self._get_caller()

        with self._asset_lock(asset):
            with self._require_vm().atomic():
                ledger = self._require_listed(asset)
                if shares == MAX_AMOUNT:
                    shares = ledger.balance_of(redeemer)

                amount = ledger.burn(redeemer, shares)
                self._push(asset, redeemer, amount)

                record = self._open_loans.get(asset)
                if record is not None:
                    record.redeemed += amount

                self._emit_event('Redeem', {
                    'asset': asset,
                    'redeemer': redeemer,
                    'shares': shares,
                    'amount': amount,
                    'exchange_rate': ledger.exchange_rate
                })

                self._check_solvency(asset)

        return amount

    # Views

    def get_ledger_info(self, asset: str) -> Dict[str, Any]:
        info = self._require_listed(asset).get_info()
        info['fees_collected'] = self.fees_collected.get(asset, 0)
        return info

    def share_balance(self, asset: str, account: str) -> int:
        return self._require_listed(asset).balance_of(account)

    def exchange_rate(self, asset: str) -> int:
        return self._require_listed(asset).exchange_rate

    def preview_redeem(self, asset: str, account: str) -> int:
        """Underlying the account's full share balance would redeem for"""
        return self._require_listed(asset).redeemable(account)

    def list_assets(self) -> List[str]:
        return list(self.ledgers.keys())

    def get_pool_stats(self) -> Dict[str, Any]:
        return {
            'owner': self.owner,
            'total_assets': len(self.ledgers),
            'loans_settled': self.loans_settled,
            'open_loans': len(self._open_loans),
            'fee_rate': self.fee_calculator.fee_rate,
            'numeraire': self.fee_calculator.numeraire,
            'ledgers': {asset: self.get_ledger_info(asset) for asset in self.ledgers}
        }

    # Internal helpers

    def _require_listed(self, asset: str) -> ShareLedger:
        ledger = self.ledgers.get(asset)
        if ledger is None:
            raise AssetNotAllowed(f"Asset {asset} is not allow-listed")
        return ledger

    def _pull(self, asset: str, account: str, amount: int):
        if not self._call(asset, 'transfer_from', account, self.address, amount):
            raise TransferFailed(f"Could not pull {amount} of {asset} from {account}")

    def _push(self, asset: str, account: str, amount: int):
        if not self._call(asset, 'transfer', account, amount):
            raise TransferFailed(f"Could not send {amount} of {asset} to {account}")

    def _token_balance(self, asset: str) -> int:
        return self._call(asset, 'balance_of', self.address)

    def _check_solvency(self, asset: str):
        ledger = self.ledgers[asset]
        record = self._open_loans.get(asset)

        # Principal is legitimately out while a loan is open
        if record is None and not ledger.is_solvent():
            raise SolvencyViolation(
                f"{asset}: custody {ledger.custody} below {ledger.total_supply} shares "
                f"at rate {ledger.exchange_rate}"
            )

        accounted = ledger.custody + (record.repaid if record is not None else 0)
        held = self._token_balance(asset)
        if held < accounted:
            raise SolvencyViolation(f"{asset}: token balance {held} below accounted custody {accounted}")
