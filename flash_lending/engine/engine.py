from typing import Dict, List, Any, Optional, Tuple, Type
import hashlib
import time
import threading
import logging
import inspect
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor, Future

from .vm import SmartContractVM, SmartContract, ExecutionContext, ExecutionResult, DEFAULT_GAS_LIMIT

logger = logging.getLogger(__name__)

DEPLOYMENT_GAS = 50000

@dataclass
class ContractMetadata:
    """What the engine knows about a deployed contract"""
    address: str
    name: str
    deployer: str
    deployed_at: int
    entry_points: List[str] = field(default_factory=list)
    gas_limit: int = DEFAULT_GAS_LIMIT
    is_active: bool = True

@dataclass
class TransactionReceipt:
    """Outcome of one execution unit as seen by the caller"""
    transaction_hash: str
    contract_address: str
    function_name: str
    caller: str
    gas_used: int
    success: bool
    return_data: Any
    logs: List[Dict]
    timestamp: int
    block_number: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None

class ContractRegistry:
    """Deployed contract instances and their metadata, keyed by address"""

    def __init__(self):
        self.contracts: Dict[str, ContractMetadata] = {}
        self.contract_instances: Dict[str, SmartContract] = {}
        self.lock = threading.RLock()

    def register_contract(self, metadata: ContractMetadata, instance: SmartContract):
        with self.lock:
            self.contracts[metadata.address] = metadata
            self.contract_instances[metadata.address] = instance
        logger.debug(f"{metadata.name} registered at {metadata.address}")

    def get_contract(self, address: str) -> Optional[SmartContract]:
        return self.contract_instances.get(address)

    def get_metadata(self, address: str) -> Optional[ContractMetadata]:
        return self.contracts.get(address)

    def deactivate_contract(self, address: str) -> bool:
        """Refuse further top-level calls into a contract"""
        with self.lock:
            metadata = self.contracts.get(address)
            if metadata is None:
                return False
            metadata.is_active = False
        logger.info(f"Contract {address} deactivated")
        return True

class SmartContractEngine:
    """Deploys contracts and runs execution units in a global order

    Every call goes through one re-entrant lock, so no execution unit can
    observe another one half-way through, including units submitted from
    worker threads with ``call_contract_async``.
    """

    def __init__(self, max_workers: int = 4, vm: SmartContractVM = None):
        self.vm = vm or SmartContractVM()
        self.registry = ContractRegistry()
        self.executor = ThreadPoolExecutor(max_workers=max_workers)
        self.transaction_history: List[TransactionReceipt] = []
        self.pending_transactions: Dict[str, Future] = {}
        self.lock = threading.RLock()
        self.default_gas_limit = DEFAULT_GAS_LIMIT
        self._nonce = 0

    def deploy_contract(self, contract_class: Type[SmartContract], deployer: str,
                        constructor_args: List[Any] = None,
                        gas_limit: int = None) -> Tuple[str, TransactionReceipt]:
        """Instantiate ``contract_class`` and place it at a fresh address"""
        with self.lock:
            try:
                instance = contract_class(*(constructor_args or []))
            except Exception as e:
                logger.error(f"Constructor of {contract_class.__name__} failed: {e}")
                raise

            address = self.vm.deploy_contract(instance, deployer)
            self.registry.register_contract(ContractMetadata(
                address=address,
                name=contract_class.__name__,
                deployer=deployer,
                deployed_at=self.vm.now(),
                entry_points=self._entry_points(contract_class),
                gas_limit=gas_limit or self.default_gas_limit
            ), instance)

            outcome = ExecutionResult(success=True, return_data=address, gas_used=DEPLOYMENT_GAS)
            receipt = self._record(address, "constructor", deployer, outcome,
                                   self.vm.now(), self.vm.block_number)

        logger.info(f"{contract_class.__name__} deployed at {address} by {deployer}")
        return address, receipt

    def call_contract(self, contract_address: str, function_name: str,
                      args: List[Any], caller: str, value: int = 0,
                      gas_limit: int = None, timestamp: int = None) -> TransactionReceipt:
        """Run a contract function as one execution unit and record its receipt"""
        with self.lock:
            metadata = self.registry.get_metadata(contract_address)
            block_number = self.vm.block_number
            now = timestamp if timestamp is not None else self.vm.now()

            if metadata is not None and not metadata.is_active:
                outcome = ExecutionResult(success=False, error=f"Contract is inactive: {contract_address}",
                                          error_type='VMException')
                return self._record(contract_address, function_name, caller, outcome, now, block_number)

            if gas_limit is None:
                gas_limit = metadata.gas_limit if metadata else self.default_gas_limit

            context = ExecutionContext(
                caller=caller,
                contract_address=contract_address,
                value=value,
                gas_limit=gas_limit,
                block_number=block_number,
                timestamp=now
            )
            outcome = self.vm.execute_contract(contract_address, function_name, args, context)
            return self._record(contract_address, function_name, caller, outcome, now, block_number)

    def call_contract_async(self, contract_address: str, function_name: str,
                            args: List[Any], caller: str, value: int = 0,
                            gas_limit: int = None) -> str:
        """Queue a call on the worker pool; poll with ``get_transaction_result``"""
        ticket = self._transaction_hash(caller, contract_address, function_name)
        self.pending_transactions[ticket] = self.executor.submit(
            self.call_contract, contract_address, function_name, args, caller, value, gas_limit
        )
        return ticket

    def get_transaction_result(self, transaction_hash: str,
                               timeout: float = None) -> Optional[TransactionReceipt]:
        """Receipt of a queued or past call; ``None`` while still pending"""
        future = self.pending_transactions.get(transaction_hash)
        if future is not None:
            if timeout is None and not future.done():
                return None
            receipt = future.result(timeout=timeout)
            del self.pending_transactions[transaction_hash]
            return receipt

        return next((r for r in self.transaction_history if r.transaction_hash == transaction_hash), None)

    def get_contract(self, contract_address: str) -> Optional[SmartContract]:
        return self.registry.get_contract(contract_address)

    def get_events(self, event_name: str = None, contract_address: str = None) -> List[Dict]:
        """Events of committed execution units"""
        return self.vm.get_logs(event_name, contract_address)

    def get_transaction_history(self, address: str = None,
                                contract_address: str = None) -> List[TransactionReceipt]:
        history = self.transaction_history
        if address:
            history = [r for r in history if r.caller == address]
        if contract_address:
            history = [r for r in history if r.contract_address == contract_address]
        return history

    def get_engine_stats(self) -> Dict[str, Any]:
        succeeded = sum(1 for r in self.transaction_history if r.success)
        return {
            "total_contracts": len(self.registry.contracts),
            "active_contracts": sum(1 for m in self.registry.contracts.values() if m.is_active),
            "total_transactions": len(self.transaction_history),
            "pending_transactions": len(self.pending_transactions),
            "successful_transactions": succeeded,
            "failed_transactions": len(self.transaction_history) - succeeded,
            "block_number": self.vm.block_number
        }

    def shutdown(self):
        self.executor.shutdown(wait=True)
        logger.info("Engine stopped")

    def _record(self, contract_address: str, function_name: str, caller: str,
                outcome: ExecutionResult, timestamp: int, block_number: int) -> TransactionReceipt:
        receipt = TransactionReceipt(
            transaction_hash=self._transaction_hash(caller, contract_address, function_name),
            contract_address=contract_address,
            function_name=function_name,
            caller=caller,
            gas_used=outcome.gas_used,
            success=outcome.success,
            return_data=outcome.return_data,
            logs=outcome.logs,
            timestamp=timestamp,
            block_number=block_number,
            error=outcome.error,
            error_type=outcome.error_type
        )
        self.transaction_history.append(receipt)

        if not outcome.success:
            logger.warning(f"{contract_address}.{function_name} by {caller} reverted: "
                           f"{outcome.error_type}: {outcome.error}")
        return receipt

    def _transaction_hash(self, caller: str, contract_address: str, function_name: str = "") -> str:
        with self.lock:
            self._nonce += 1
            nonce = self._nonce
        data = f"{caller}{contract_address}{function_name}{nonce}{time.time_ns()}"
        return "0x" + hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def _entry_points(contract_class: Type[SmartContract]) -> List[str]:
        """Public methods callable from outside the VM"""
        return sorted(name for name, _ in inspect.getmembers(contract_class, predicate=inspect.isfunction)
                      if not name.startswith('_'))
