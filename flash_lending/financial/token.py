from typing import Dict

from ..engine import SmartContract

ZERO_ADDRESS = "0x0"

class ERC20Token(SmartContract):
    """Fungible token contract holding the pool's underlying assets

    Balances live here, not in the pool: custody is whatever this contract
    says the pool address owns. Rejected transfers return False and change
    nothing, so callers have to check the result.
    """

    def __init__(self, name: str, symbol: str, decimals: int = 18,
                 initial_supply: int = 0, owner: str = ""):
        super().__init__()

        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.owner = owner

        self.total_supply = 0
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[str, Dict[str, int]] = {}  # holder -> spender -> amount

        if initial_supply > 0 and owner:
            self._credit(owner, initial_supply)
            self.total_supply = initial_supply

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, holder: str, spender: str) -> int:
        return self.allowances.get(holder, {}).get(spender, 0)

    def transfer(self, to: str, amount: int) -> bool:
        return self._move(self._get_caller(), to, amount)

    def transfer_from(self, holder: str, to: str, amount: int) -> bool:
        """Spend ``amount`` of the holder's allowance to the caller"""
        spender = self._get_caller()
        remaining = self.allowance(holder, spender) - amount
        if remaining < 0 or not self._move(holder, to, amount):
            return False

        self.allowances.setdefault(holder, {})[spender] = remaining
        return True

    def approve(self, spender: str, amount: int) -> bool:
        holder = self._get_caller()
        if amount < 0:
            return False

        self.allowances.setdefault(holder, {})[spender] = amount
        self._emit_event('Approval', {'owner': holder, 'spender': spender, 'amount': amount})
        return True

    def mint(self, to: str, amount: int) -> bool:
        """Issue new tokens; owner only"""
        if self._get_caller() != self.owner or amount <= 0 or not to:
            return False

        self._credit(to, amount)
        self.total_supply += amount
        self._emit_event('Transfer', {'from': ZERO_ADDRESS, 'to': to, 'amount': amount})
        return True

    def _credit(self, account: str, amount: int):
        self.balances[account] = self.balance_of(account) + amount

    def _move(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0 or not to or self.balance_of(sender) < amount:
            return False

        self.balances[sender] -= amount
        self._credit(to, amount)
        self._emit_event('Transfer', {'from': sender, 'to': to, 'amount': amount})
        return True
