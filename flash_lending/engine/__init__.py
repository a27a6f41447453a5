"""Contract Execution Engine

In-process host for the lending contracts:

- Virtual machine with nested calls, gas metering and call-depth limits
- Atomic execution units with full rollback of every contract
- Contract deployment, registry and transaction receipts
"""

from .vm import (
    SmartContractVM,
    SmartContract,
    ExecutionContext,
    ExecutionResult,
    VMException,
    OutOfGasException,
    CallDepthExceeded,
    ContractNotFound
)

from .engine import (
    SmartContractEngine,
    ContractRegistry,
    ContractMetadata,
    TransactionReceipt
)

__all__ = [
    # VM classes
    'SmartContractVM',
    'SmartContract',
    'ExecutionContext',
    'ExecutionResult',
    'VMException',
    'OutOfGasException',
    'CallDepthExceeded',
    'ContractNotFound',

    # Engine classes
    'SmartContractEngine',
    'ContractRegistry',
    'ContractMetadata',
    'TransactionReceipt'
]
