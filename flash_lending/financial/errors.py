"""Error taxonomy of the lending pool.

Every rejection is raised as a distinct subclass of ``LendingError`` so that
callers (and receipts, through ``error_type``) can tell them apart. Pre-checks
raise before any state is written; ``OracleUnavailable`` and
``FlashLoanNotRepaid`` can surface after a flash loan is under way and rely on
the execution unit rollback.
"""

from ..engine.vm import VMException


class LendingError(VMException):
    """Base class for lending pool errors"""
    pass


class AssetNotAllowed(LendingError):
    pass


class AssetAlreadyListed(LendingError):
    pass


class Unauthorized(LendingError):
    pass


class ZeroAmount(LendingError):
    pass


class InsufficientShares(LendingError):
    pass


class InsufficientLiquidity(LendingError):
    pass


class FlashLoanAlreadyOpen(LendingError):
    """A flash loan on the same asset is already in flight"""
    pass


class FlashLoanNotRepaid(LendingError):
    pass


class NoOpenFlashLoan(LendingError):
    """Repayment sent while no flash loan is open on the asset"""
    pass


class OracleUnavailable(LendingError):
    """The fee could not be priced; issuance fails closed"""
    pass


class TransferFailed(LendingError):
    pass


class SolvencyViolation(LendingError):
    """Custody no longer covers outstanding shares at the current rate"""
    pass


class StorageLayoutMismatch(LendingError):
    """Persisted ledger record does not match the running storage layout"""
    pass
