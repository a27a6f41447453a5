"""Shared setup for the pool, flash-loan, oracle and API suites"""

import sys
import os
from decimal import Decimal
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flash_lending import create_lending_pool, DEFAULT_FLASH_LOAN_FEE_RATE, MAX_AMOUNT
from flash_lending.engine import SmartContractEngine, VMException
from flash_lending.financial import ERC20Token, FlashLoanReceiver
from price_oracles import StaticPriceOracle

SCALE = 10 ** 18
GENESIS_TIMESTAMP = 1700000000

OWNER = "0xowner"
MINTER = "0xminter"
LP = "0xlp"
LP2 = "0xlp2"
BORROWER = "0xborrower"

def units(amount) -> int:
    """Whole (or decimal-string) token amount to base units"""
    return int(Decimal(str(amount)) * SCALE)

class PoolFixture:
    """Engine with a DAI/USDC token pair and, once opened, a pool listing DAI"""

    def __init__(self):
        self.engine = SmartContractEngine(max_workers=2)
        self.vm = self.engine.vm
        self.vm.block_timestamp = GENESIS_TIMESTAMP

        self.dai = self.deploy_token("Dai Stablecoin", "DAI")
        self.usdc = self.deploy_token("USD Coin", "USDC")

        self.pool_address = None
        self.pool = None

    def deploy_token(self, name: str, symbol: str) -> str:
        address, _ = self.engine.deploy_contract(ERC20Token, MINTER, [name, symbol, 18, 0, MINTER])
        return address

    def deploy(self, contract_class, deployer: str, args=None) -> str:
        address, _ = self.engine.deploy_contract(contract_class, deployer, args or [])
        return address

    def open_pool(self, oracle=None, fee_rate: int = DEFAULT_FLASH_LOAN_FEE_RATE):
        if oracle is None:
            oracle = StaticPriceOracle()
            oracle.set_price(self.dai, self.usdc, SCALE)
        self.oracle = oracle
        self.pool_address, self.pool = create_lending_pool(
            self.engine, OWNER, oracle, self.usdc, [self.dai], fee_rate
        )
        return self.pool

    def call(self, address: str, function_name: str, args, caller: str):
        return self.engine.call_contract(address, function_name, list(args), caller)

    def token(self, address: str) -> ERC20Token:
        return self.engine.get_contract(address)

    def balance(self, token: str, account: str) -> int:
        return self.token(token).balance_of(account)

    def fund(self, token: str, account: str, amount: int):
        receipt = self.call(token, 'mint', [account, amount], MINTER)
        assert receipt.success and receipt.return_data is True, receipt.error

    def approve(self, token: str, owner: str, spender: str, amount: int):
        receipt = self.call(token, 'approve', [spender, amount], owner)
        assert receipt.success, receipt.error

    def deposit(self, account: str, amount: int, asset: str = None):
        asset = asset or self.dai
        if amount > 0:
            self.fund(asset, account, amount)
        self.approve(asset, account, self.pool_address, amount)
        return self.call(self.pool_address, 'deposit', [asset, amount], account)

    def flash_loan(self, receiver: str, principal: int, caller: str = BORROWER, asset: str = None):
        return self.call(self.pool_address, 'flash_loan', [receiver, asset or self.dai, principal, b""], caller)

    def ledger(self, asset: str = None):
        return self.pool.ledgers[asset or self.dai]

    def pool_events(self, receipt, *names):
        return [log for log in receipt.logs
                if log['contract'] == self.pool_address and (not names or log['event'] in names)]

class RepayingReceiver(FlashLoanReceiver):
    """Pays back principal plus fee, less ``shortfall``"""

    def __init__(self, pool: str, shortfall: int = 0):
        super().__init__(pool)
        self.shortfall = shortfall
        self.calls = 0
        self.last_fee = None

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self._require_pool()
        self.calls += 1
        self.last_fee = fee
        self._repay(asset, principal + fee - self.shortfall)
        return True

class RevertingReceiver(FlashLoanReceiver):
    """Repays in full, then fails"""

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self._repay(asset, principal + fee)
        raise ValueError("strategy failed")

class FalseReturningReceiver(FlashLoanReceiver):
    """Repays in full but reports failure"""

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self._repay(asset, principal + fee)
        return False

class DepositingReceiver(FlashLoanReceiver):
    """Tries to settle by depositing principal plus fee"""

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self._call(asset, 'approve', self.pool, principal + fee)
        self._call(self.pool, 'deposit', asset, principal + fee)
        return True

class DirectTransferReceiver(FlashLoanReceiver):
    """Sends principal plus fee straight to the pool, outside the repayment channel"""

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self._call(asset, 'transfer', self.pool, principal + fee)
        return True

class ReentrantReceiver(FlashLoanReceiver):
    """Opens a second loan on the same asset from inside the callback"""

    def __init__(self, pool: str, swallow: bool = False):
        super().__init__(pool)
        self.swallow = swallow
        self.nested_error = None

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        if self.swallow:
            try:
                self.request_flash_loan(asset, principal)
            except Exception as e:
                self.nested_error = type(e).__name__
        else:
            self.request_flash_loan(asset, principal)

        self._repay(asset, principal + fee)
        return True

class SwapThenBorrow(FlashLoanReceiver):
    """Moves the DEX price, optionally pokes an oracle, then borrows, all in one unit"""

    def __init__(self, pool: str, dex: str, oracle: str = None):
        super().__init__(pool)
        self.dex = dex
        self.oracle = oracle
        self.fee_seen = None

    def attack(self, asset: str, numeraire: str, dump_amount: int, principal: int) -> int:
        if dump_amount:
            self._call(asset, 'approve', self.dex, dump_amount)
            self._call(self.dex, 'swap_exact_tokens_for_tokens', asset, numeraire, dump_amount, 0)
        if self.oracle:
            self._call(self.oracle, 'record_observation', asset, numeraire)
        return self.request_flash_loan(asset, principal)

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self._require_pool()
        self.fee_seen = fee
        self._repay(asset, principal + fee)
        return True

class ProvidingReceiver(FlashLoanReceiver):
    """Receiver that can also hold pool shares of its own"""

    def provide(self, asset: str, amount: int) -> int:
        self._call(asset, 'approve', self.pool, amount)
        return self._call(self.pool, 'deposit', asset, amount)

class RedeemingReceiver(ProvidingReceiver):
    """Redeems its whole share balance inside the callback, then repays"""

    def __init__(self, pool: str):
        super().__init__(pool)
        self.open_loan = None

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self._require_pool()
        self._call(self.pool, 'redeem', asset, MAX_AMOUNT)
        self.open_loan = self._call(self.pool, 'get_open_loan', asset)
        self._repay(asset, principal + fee)
        return True

class StakingReceiver(ProvidingReceiver):
    """Deposits ``stake`` inside the callback, then repays in full"""

    def __init__(self, pool: str, stake: int):
        super().__init__(pool)
        self.stake = stake

    def on_flash_loan(self, asset, principal, fee, initiator, params):
        self.provide(asset, self.stake)
        self._repay(asset, principal + fee)
        return True

class QuietRedeemer(ProvidingReceiver):
    """Redeems everything and records, rather than raises, a failed redemption"""

    def __init__(self, pool: str):
        super().__init__(pool)
        self.error = None

    def redeem_all(self, asset: str) -> int:
        try:
            return self._call(self.pool, 'redeem', asset, MAX_AMOUNT)
        except VMException as e:
            self.error = type(e).__name__
            return 0
