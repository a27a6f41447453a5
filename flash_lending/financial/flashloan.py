from typing import Dict, Any
import threading
import logging
from dataclasses import dataclass, asdict
from enum import Enum

from ..engine import SmartContract
from .errors import (
    ZeroAmount, InsufficientLiquidity, FlashLoanAlreadyOpen,
    FlashLoanNotRepaid, NoOpenFlashLoan, Unauthorized
)

logger = logging.getLogger(__name__)

class FlashLoanStatus(Enum):
    PENDING = "PENDING"
    SETTLED = "SETTLED"

@dataclass
class FlashLoanRecord:
    """In-flight flash loan; exists only while the issuing call runs"""
    asset: str
    principal: int
    fee: int
    pre_balance: int
    initiator: str
    receiver: str
    status: FlashLoanStatus = FlashLoanStatus.PENDING
    repaid: int = 0  # through repay_flash_loan only
    deposited: int = 0
    redeemed: int = 0

    @property
    def amount_due(self) -> int:
        return self.principal + self.fee

    @property
    def outstanding(self) -> int:
        return max(self.amount_due - self.repaid, 0)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data

class FlashLoanEngine:
    """Issue, callback and settlement of flash loans

    Mixed into the lending pool, which provides the ledgers, the fee
    calculator and the token plumbing (``_require_listed``, ``_push``,
    ``_pull``, ``_token_balance``, ``_check_solvency``).

    A loan is ``PENDING`` from issuance until the receiver's callback returns
    and the settlement check passes, then ``SETTLED``. Anything else raises
    and the whole execution unit is rolled back. Only one loan per asset can
    be open at a time and the per-asset lock is held for the whole span.
    """

    def _asset_lock(self, asset: str) -> threading.RLock:
        # Locks exist only for listed assets
        self._require_listed(asset)
        with self._locks_guard:
            lock = self._asset_locks.get(asset)
            if lock is None:
                lock = threading.RLock()
                self._asset_locks[asset] = lock
            return lock

    def flash_loan(self, receiver: str, asset: str, principal: int, params: bytes = b"") -> int:
        """Lend ``principal`` to ``receiver`` for the duration of its callback; returns the fee"""
        initiator = self._get_caller()
        vm = self._require_vm()

        with self._asset_lock(asset):
            ledger = self._require_listed(asset)

            if principal <= 0:
                raise ZeroAmount("Flash loan principal must be positive")
            if asset in self._open_loans:
                raise FlashLoanAlreadyOpen(f"A flash loan on {asset} is already open")
            if principal > ledger.custody:
                raise InsufficientLiquidity(f"Custody holds {ledger.custody}, loan needs {principal}")

            fee = self.fee_calculator.compute_fee(asset, principal)

            try:
                with vm.atomic():
                    self._open_loans[asset] = FlashLoanRecord(
                        asset=asset,
                        principal=principal,
                        fee=fee,
                        pre_balance=ledger.custody,
                        initiator=initiator,
                        receiver=receiver
                    )

                    ledger.lend_out(principal)
                    self._push(asset, receiver, principal)

                    self._emit_event('FlashLoanIssued', {
                        'asset': asset,
                        'initiator': initiator,
                        'receiver': receiver,
                        'principal': principal,
                        'fee': fee,
                        'exchange_rate': ledger.exchange_rate
                    })

                    # Control passes to untrusted code here
                    acknowledged = vm.call(receiver, 'on_flash_loan',
                                           [asset, principal, fee, initiator, params], self.address)
                    if acknowledged is not True:
                        raise FlashLoanNotRepaid(f"Receiver {receiver} did not acknowledge the loan")

                    self._settle(asset)

            except Exception as e:
                logger.warning(f"Flash loan of {principal} {asset} to {receiver} rejected: {type(e).__name__}: {e}")
                raise
            finally:
                self._open_loans.pop(asset, None)

        logger.info(f"Flash loan of {principal} {asset} settled with fee {fee}")
        return fee

    def repay_flash_loan(self, asset: str, amount: int) -> int:
        """Repayment channel for the open loan on ``asset``; never mints shares"""
        payer = self._get_caller()

        with self._asset_lock(asset):
            record = self._open_loans.get(asset)
            if record is None:
                raise NoOpenFlashLoan(f"No flash loan open on {asset}")
            if amount <= 0:
                raise ZeroAmount("Repayment must be positive")

            credited = min(amount, record.outstanding)
            if credited == 0:
                return 0

            with self._require_vm().atomic():
                self._pull(asset, payer, credited)
                record.repaid += credited

                self._emit_event('FlashLoanRepaid', {
                    'asset': asset,
                    'payer': payer,
                    'amount': credited,
                    'repaid': record.repaid,
                    'outstanding': record.outstanding,
                    'exchange_rate': self.ledgers[asset].exchange_rate
                })

            return credited

    def get_open_loan(self, asset: str) -> Dict[str, Any]:
        record = self._open_loans.get(asset)
        return record.to_dict() if record else {}

    def _settle(self, asset: str):
        # The callback may have changed anything; read it all again
        record = self._open_loans[asset]
        ledger = self.ledgers[asset]

        held = self._token_balance(asset)
        if held < ledger.custody + record.repaid:
            raise FlashLoanNotRepaid(
                f"Pool holds {held} of {asset}, accounts for {ledger.custody + record.repaid}"
            )

        # Shares minted while the loan was open would share in its fee, and
        # the deposit itself is not repayment
        if record.deposited:
            raise FlashLoanNotRepaid(
                f"{record.deposited} of {asset} was deposited while the flash loan was open"
            )

        post_balance = ledger.custody + record.repaid + record.redeemed
        required = record.pre_balance + record.fee
        if post_balance < required:
            raise FlashLoanNotRepaid(
                f"Settlement balance {post_balance} below required {required} for {asset}"
            )

        ledger.return_principal(record.principal)
        ledger.settle_fee(record.fee)
        record.status = FlashLoanStatus.SETTLED
        del self._open_loans[asset]

        self.loans_settled += 1
        self.fees_collected[asset] = self.fees_collected.get(asset, 0) + record.fee

        self._emit_event('FlashLoanSettled', {
            'asset': asset,
            'initiator': record.initiator,
            'receiver': record.receiver,
            'principal': record.principal,
            'fee': record.fee,
            'exchange_rate': ledger.exchange_rate
        })

        self._check_solvency(asset)

class FlashLoanReceiver(SmartContract):
    """Base contract for flash-loan borrowers

    Subclasses implement ``on_flash_loan`` and pay back through ``_repay``.
    """

    def __init__(self, pool: str):
        super().__init__()
        self.pool = pool

    def on_flash_loan(self, asset: str, principal: int, fee: int,
                      initiator: str, params: bytes) -> bool:
        raise NotImplementedError

    def request_flash_loan(self, asset: str, principal: int, params: bytes = b"") -> int:
        """Borrow from the pool with this contract as both initiator and receiver"""
        return self._call(self.pool, 'flash_loan', self.address, asset, principal, params)

    def _require_pool(self):
        if self._get_caller() != self.pool:
            raise Unauthorized("on_flash_loan may only be called by the pool")

    def _repay(self, asset: str, amount: int) -> int:
        self._call(asset, 'approve', self.pool, amount)
        return self._call(self.pool, 'repay_flash_loan', asset, amount)
