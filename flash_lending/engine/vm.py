from typing import Dict, List, Any, Optional, Iterator
import copy
import hashlib
import time
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Gas schedule for execution units
BASE_TRANSACTION_GAS = 21000
CALL_GAS = 700
DEFAULT_GAS_LIMIT = 10000000
MAX_CALL_DEPTH = 1024

@dataclass
class ExecutionContext:
    """Context for smart contract execution"""
    caller: str
    contract_address: str
    value: int = 0
    gas_limit: int = DEFAULT_GAS_LIMIT
    gas_used: int = 0
    block_number: int = 0
    timestamp: int = field(default_factory=lambda: int(time.time()))
    depth: int = 0
    parent: Optional['ExecutionContext'] = None

    def child(self, caller: str, contract_address: str, value: int = 0) -> 'ExecutionContext':
        """Derive a nested call context sharing block data and gas accounting"""
        return ExecutionContext(
            caller=caller,
            contract_address=contract_address,
            value=value,
            gas_limit=self.gas_limit,
            gas_used=self.gas_used,
            block_number=self.block_number,
            timestamp=self.timestamp,
            depth=self.depth + 1,
            parent=self
        )

class ExecutionResult:
    """Result of contract execution"""
    def __init__(self, success: bool, return_data: Any = None,
                 gas_used: int = 0, error: str = None, logs: List[Dict] = None,
                 error_type: str = None):
        self.success = success
        self.return_data = return_data
        self.gas_used = gas_used
        self.error = error
        self.error_type = error_type
        self.logs = logs or []

class VMException(Exception):
    """Virtual Machine Exception"""
    pass

class OutOfGasException(VMException):
    """Out of gas exception"""
    pass

class CallDepthExceeded(VMException):
    """Nested calls went deeper than MAX_CALL_DEPTH"""
    pass

class ContractNotFound(VMException):
    """No contract deployed at the requested address"""
    pass

class SmartContractVM:
    """Smart Contract Virtual Machine

    Holds every deployed contract, the event log and the stack of execution
    contexts. A top-level call (``execute_contract``) is one execution unit:
    its effects on all contracts commit together or are rolled back together.
    """

    def __init__(self, max_call_depth: int = MAX_CALL_DEPTH):
        self.contracts: Dict[str, 'SmartContract'] = {}
        self.logs: List[Dict] = []
        self.context_stack: List[ExecutionContext] = []
        self.max_call_depth = max_call_depth
        self.block_number = 0
        self.block_timestamp: Optional[int] = None

    @property
    def current_context(self) -> Optional[ExecutionContext]:
        """Innermost active execution context"""
        return self.context_stack[-1] if self.context_stack else None

    def now(self) -> int:
        """Timestamp of the block the current execution unit runs in"""
        context = self.current_context
        if context:
            return context.timestamp
        if self.block_timestamp is not None:
            return self.block_timestamp
        return int(time.time())

    def advance_block(self, seconds: int = 15, blocks: int = 1) -> int:
        """Move the chain clock forward (used by simulations and tests)"""
        self.block_number += blocks
        self.block_timestamp = self.now() + seconds
        return self.block_timestamp

    def execute_contract(self, contract_address: str, function_name: str,
                        args: List[Any], context: ExecutionContext) -> ExecutionResult:
        """Execute a contract function as one atomic execution unit"""
        log_start = len(self.logs)
        self.context_stack.append(context)
        try:
            with self.atomic():
                self._consume_gas(context, BASE_TRANSACTION_GAS)
                result = self._execute_function(contract_address, function_name, args, context)

            return ExecutionResult(
                success=True,
                return_data=result,
                gas_used=context.gas_used,
                logs=self.logs[log_start:]
            )

        except OutOfGasException:
            return ExecutionResult(False, error="Out of gas", gas_used=context.gas_limit,
                                   error_type=OutOfGasException.__name__)
        except Exception as e:
            logger.warning(f"Execution unit {contract_address}.{function_name} reverted: {e}")
            return ExecutionResult(False, error=str(e), gas_used=context.gas_used,
                                   error_type=type(e).__name__)
        finally:
            self.context_stack.pop()

    def call(self, contract_address: str, function_name: str, args: List[Any],
             caller: str, value: int = 0) -> Any:
        """Nested call from inside an execution unit; exceptions propagate"""
        parent = self.current_context
        if parent is None:
            context = ExecutionContext(
                caller=caller,
                contract_address=contract_address,
                value=value,
                block_number=self.block_number,
                timestamp=self.now()
            )
        else:
            context = parent.child(caller, contract_address, value)

        if context.depth > self.max_call_depth:
            raise CallDepthExceeded(f"Call depth {context.depth} exceeds {self.max_call_depth}")

        self._consume_gas(context, CALL_GAS)
        self.context_stack.append(context)
        try:
            logger.debug(f"call depth={context.depth} {caller} -> {contract_address}.{function_name}")
            return self._execute_function(contract_address, function_name, args, context)
        finally:
            self.context_stack.pop()
            if parent is not None:
                parent.gas_used = context.gas_used

    def _execute_function(self, contract_address: str, function_name: str,
                         args: List[Any], context: ExecutionContext) -> Any:
        """Execute a specific contract function"""
        contract = self.contracts.get(contract_address)
        if contract is None:
            raise ContractNotFound(f"Contract not found: {contract_address}")

        if function_name.startswith('_') or not hasattr(contract, function_name):
            raise VMException(f"Function {function_name} not found")

        func = getattr(contract, function_name)
        return func(*args)

    def _consume_gas(self, context: ExecutionContext, amount: int):
        """Consume gas and check limits"""
        context.gas_used += amount
        if context.gas_used > context.gas_limit:
            raise OutOfGasException("Gas limit exceeded")

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Snapshot every contract and restore all of them if the block raises"""
        log_length = len(self.logs)
        snapshots = {address: contract.snapshot_state(self._shared_memo())
                     for address, contract in self.contracts.items()}
        try:
            yield
        except BaseException:
            for address, contract in list(self.contracts.items()):
                snapshot = snapshots.get(address)
                if snapshot is None:
                    # deployed inside the failed unit
                    del self.contracts[address]
                    continue
                contract.restore_state(snapshot)
            del self.logs[log_length:]
            raise

    def _shared_memo(self) -> Dict[int, Any]:
        """Deepcopy memo that keeps references to the VM and other contracts intact"""
        memo: Dict[int, Any] = {id(self): self}
        for contract in self.contracts.values():
            memo[id(contract)] = contract
        return memo

    def deploy_contract(self, contract: 'SmartContract', deployer: str) -> str:
        """Deploy a smart contract"""
        contract_address = self._generate_contract_address(contract, deployer)
        self.contracts[contract_address] = contract

        contract.address = contract_address
        contract.vm = self
        contract.deployer = deployer

        return contract_address

    def _generate_contract_address(self, contract: 'SmartContract', deployer: str) -> str:
        """Generate a unique contract address"""
        data = f"{deployer}{contract.__class__.__name__}{len(self.contracts)}{time.time_ns()}"
        return "0x" + hashlib.sha256(data.encode()).hexdigest()[:40]

    def get_contract(self, contract_address: str) -> Optional['SmartContract']:
        """Get a deployed contract"""
        return self.contracts.get(contract_address)

    def get_logs(self, event_name: str = None, contract_address: str = None) -> List[Dict]:
        """Get emitted events with optional filtering"""
        logs = self.logs
        if event_name:
            logs = [log for log in logs if log['event'] == event_name]
        if contract_address:
            logs = [log for log in logs if log['contract'] == contract_address]
        return list(logs)

class SmartContract:
    """Base class for smart contracts"""

    # Attributes that are not contract state: excluded from rollback snapshots
    TRANSIENT_ATTRIBUTES = frozenset({'vm', 'address', 'deployer'})

    def __init__(self):
        self.vm = None  # Will be set by the VM
        self.address = None  # Will be set when deployed
        self.deployer = None

    def snapshot_state(self, memo: Dict[int, Any] = None) -> Dict[str, Any]:
        """Deep copy of the contract's state attributes"""
        state = {key: value for key, value in self.__dict__.items()
                 if key not in self.TRANSIENT_ATTRIBUTES}
        return copy.deepcopy(state, memo if memo is not None else {})

    def restore_state(self, snapshot: Dict[str, Any]):
        """Restore state attributes captured by snapshot_state"""
        transient = {key: value for key, value in self.__dict__.items()
                     if key in self.TRANSIENT_ATTRIBUTES}
        self.__dict__.clear()
        self.__dict__.update(snapshot)
        self.__dict__.update(transient)

    def _emit_event(self, event_name: str, data: Dict[str, Any]):
        """Emit an event"""
        if self.vm:
            self.vm.logs.append({
                'event': event_name,
                'contract': self.address,
                'data': data,
                'block_number': self.vm.block_number,
                'timestamp': self.vm.now()
            })

    def _get_caller(self) -> str:
        """Get the caller address"""
        if self.vm and self.vm.current_context:
            return self.vm.current_context.caller
        return ''

    def _now(self) -> int:
        """Current block timestamp"""
        if self.vm:
            return self.vm.now()
        return int(time.time())

    def _require_vm(self) -> SmartContractVM:
        if self.vm is None:
            raise VMException(f"{self.__class__.__name__} is not deployed")
        return self.vm

    def _call(self, contract_address: str, function_name: str, *args: Any) -> Any:
        """Call another contract with this contract as the caller"""
        return self._require_vm().call(contract_address, function_name, list(args), self.address)
