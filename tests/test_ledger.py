import unittest

# Import ledger components
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flash_lending.financial.ledger import ShareLedger, LEDGER_STORAGE_VERSION, LEDGER_STORAGE_LAYOUT
from flash_lending.financial.errors import (
    ZeroAmount, InsufficientShares, InsufficientLiquidity, StorageLayoutMismatch
)

SCALE = 10 ** 18

class TestShareLedger(unittest.TestCase):
    """Test cases for share accounting"""

    def setUp(self):
        self.ledger = ShareLedger(asset="0xdai")

    def test_genesis_exchange_rate(self):
        self.assertEqual(self.ledger.exchange_rate, SCALE)
        self.assertEqual(self.ledger.total_supply, 0)
        self.assertEqual(self.ledger.custody, 0)

    def test_mint_at_genesis_rate(self):
        shares = self.ledger.mint("0xlp", 1000 * SCALE)

        self.assertEqual(shares, 1000 * SCALE)
        self.assertEqual(self.ledger.balance_of("0xlp"), 1000 * SCALE)
        self.assertEqual(self.ledger.total_supply, 1000 * SCALE)
        self.assertEqual(self.ledger.custody, 1000 * SCALE)
        self.assertEqual(self.ledger.exchange_rate, SCALE)

    def test_mint_never_moves_rate(self):
        self.ledger.mint("0xlp", 1000 * SCALE)
        self.ledger.settle_fee(3 * SCALE // 10)
        rate = self.ledger.exchange_rate

        for amount in (2, 7, 10 ** 9, 123 * SCALE + 17):
            self.ledger.mint("0xlp2", amount)
            self.assertEqual(self.ledger.exchange_rate, rate)

    def test_mint_rejects_zero(self):
        with self.assertRaises(ZeroAmount):
            self.ledger.mint("0xlp", 0)

    def test_mint_rejects_amount_worth_zero_shares(self):
        self.ledger.mint("0xlp", SCALE)
        self.ledger.settle_fee(SCALE)  # rate is now 2.0

        with self.assertRaises(ZeroAmount):
            self.ledger.mint("0xlp2", 1)

    def test_settle_fee_raises_rate(self):
        self.ledger.mint("0xlp", 1000 * SCALE)

        rate = self.ledger.settle_fee(3 * SCALE // 10)

        self.assertEqual(rate, SCALE + 3 * 10 ** 14)
        self.assertEqual(self.ledger.custody, 1000 * SCALE + 3 * SCALE // 10)
        self.assertEqual(self.ledger.redeemable("0xlp"), 1000 * SCALE + 3 * SCALE // 10)

    def test_settle_fee_without_supply_keeps_rate(self):
        self.ledger.settle_fee(5 * SCALE)

        self.assertEqual(self.ledger.exchange_rate, SCALE)
        self.assertEqual(self.ledger.custody, 5 * SCALE)

    def test_settle_fee_rejects_negative(self):
        with self.assertRaises(ValueError):
            self.ledger.settle_fee(-1)

    def test_later_depositor_is_not_diluted(self):
        self.ledger.mint("0xlp", 1000 * SCALE)
        self.ledger.settle_fee(3 * SCALE // 10)

        shares = self.ledger.mint("0xlp2", 1000 * SCALE + 3 * SCALE // 10)

        self.assertEqual(shares, 1000 * SCALE)
        self.assertEqual(self.ledger.redeemable("0xlp2"), 1000 * SCALE + 3 * SCALE // 10)
        self.assertEqual(self.ledger.redeemable("0xlp"), 1000 * SCALE + 3 * SCALE // 10)

    def test_burn(self):
        self.ledger.mint("0xlp", 1000 * SCALE)
        self.ledger.settle_fee(3 * SCALE // 10)

        amount = self.ledger.burn("0xlp", 1000 * SCALE)

        self.assertEqual(amount, 1000 * SCALE + 3 * SCALE // 10)
        self.assertEqual(self.ledger.total_supply, 0)
        self.assertEqual(self.ledger.custody, 0)
        self.assertNotIn("0xlp", self.ledger.balances)

    def test_burn_errors(self):
        self.ledger.mint("0xlp", 10 * SCALE)

        with self.assertRaises(ZeroAmount):
            self.ledger.burn("0xlp", 0)
        with self.assertRaises(InsufficientShares):
            self.ledger.burn("0xlp", 11 * SCALE)
        with self.assertRaises(InsufficientShares):
            self.ledger.burn("0xnobody", 1)

    def test_burn_blocked_while_principal_is_lent(self):
        self.ledger.mint("0xlp", 10 * SCALE)
        self.ledger.lend_out(8 * SCALE)

        with self.assertRaises(InsufficientLiquidity):
            self.ledger.burn("0xlp", 5 * SCALE)
        self.assertEqual(self.ledger.balance_of("0xlp"), 10 * SCALE)

        self.ledger.return_principal(8 * SCALE)
        self.assertEqual(self.ledger.burn("0xlp", 5 * SCALE), 5 * SCALE)

    def test_lend_out_beyond_custody(self):
        self.ledger.mint("0xlp", SCALE)

        with self.assertRaises(InsufficientLiquidity):
            self.ledger.lend_out(SCALE + 1)

    def test_solvency(self):
        self.ledger.mint("0xlp", 10 * SCALE)
        self.assertTrue(self.ledger.is_solvent())

        self.ledger.lend_out(SCALE)
        self.assertFalse(self.ledger.is_solvent())

        self.ledger.return_principal(SCALE)
        self.ledger.settle_fee(7)
        self.assertTrue(self.ledger.is_solvent())

    def test_info(self):
        self.ledger.mint("0xlp", SCALE)
        info = self.ledger.get_info()

        self.assertEqual(info['asset'], "0xdai")
        self.assertEqual(info['depositors'], 1)
        self.assertTrue(info['solvent'])

class TestLedgerStorageLayout(unittest.TestCase):
    """Test cases for persisted ledger records"""

    def setUp(self):
        ledger = ShareLedger(asset="0xdai")
        ledger.mint("0xlp", 1000 * SCALE)
        ledger.settle_fee(3 * SCALE // 10)
        self.ledger = ledger
        self.state = ledger.export_state()

    def test_export_is_tagged(self):
        self.assertEqual(self.state['version'], LEDGER_STORAGE_VERSION)
        self.assertEqual(tuple(self.state['layout']), LEDGER_STORAGE_LAYOUT)

    def test_reload(self):
        restored = ShareLedger.from_state(self.state)

        self.assertEqual(restored, self.ledger)

    def test_rejects_other_version(self):
        self.state['version'] = LEDGER_STORAGE_VERSION + 1

        with self.assertRaises(StorageLayoutMismatch):
            ShareLedger.from_state(self.state)

    def test_rejects_reordered_layout(self):
        layout = list(LEDGER_STORAGE_LAYOUT)
        layout[3], layout[4] = layout[4], layout[3]
        self.state['layout'] = layout

        with self.assertRaises(StorageLayoutMismatch):
            ShareLedger.from_state(self.state)

    def test_rejects_missing_field(self):
        del self.state['custody']

        with self.assertRaises(StorageLayoutMismatch):
            ShareLedger.from_state(self.state)

    def test_rejects_other_precision(self):
        with self.assertRaises(StorageLayoutMismatch):
            ShareLedger.from_state(self.state, precision=6)

    def test_rejects_inconsistent_balances(self):
        self.state['balances']['0xghost'] = 1

        with self.assertRaises(StorageLayoutMismatch):
            ShareLedger.from_state(self.state)

if __name__ == '__main__':
    unittest.main(verbosity=2)
