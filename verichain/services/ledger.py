"""
VeriChain Ledger
In-process chain that executes the protocol contracts.

Reproduces the host-chain semantics the contracts rely on:
- Checksummed addresses, balances and per-sender nonces
- One mined block per transaction, block timestamps and explicit time travel
- Atomic transactions: a revert restores every contract, balance and event
- Cross-contract calls and ABI-encoded low-level calls (for governance)
"""

import copy
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import encode_hex, function_signature_to_4byte_selector, is_address, keccak, to_checksum_address

from verichain.config import config
from verichain.services.access import RoleTable, authorize
from verichain.services.errors import InsufficientBalance, InvalidParameter, Revert, UnknownFunction, Unauthorized

logger = logging.getLogger(__name__)


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2 ** 256 - 1


def checksum(address: str) -> str:
    """Validate an address and return its EIP-55 form."""
    if not isinstance(address, str) or not is_address(address):
        raise InvalidParameter(address)
    return to_checksum_address(address)


def to_jsonable(value: Any) -> Any:
    """Convert contract return values and event args into JSON-friendly data."""
    if isinstance(value, bytes):
        return encode_hex(value)
    if isinstance(value, Enum):
        return value.value if not isinstance(value.value, int) else value.name
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, int) and not isinstance(value, bool) and abs(value) >= 2 ** 53:
        # Out of the range JavaScript clients can represent exactly
        return str(value)
    return value


# ============ ABI helpers ============

def external(signature: str):
    """Mark a contract method as reachable through ABI-encoded calldata."""
    def decorator(fn):
        fn.abi_signature = signature
        return fn
    return decorator


def abi_input_types(signature: str) -> List[str]:
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    return [t.strip() for t in inner.split(",") if t.strip()]


def encode_call(signature: str, *args) -> bytes:
    """
    Build calldata for a low-level call.

    Example:
        encode_call("setRateLimit(uint8,uint256,uint256,uint256)", 0, 5, 3600, 600)
    """
    return function_signature_to_4byte_selector(signature) + encode(abi_input_types(signature), list(args))


# ============ Data types ============

@dataclass(frozen=True)
class Msg:
    """Call context of the currently executing frame."""
    sender: str
    value: int
    timestamp: int
    block_number: int


@dataclass
class Event:
    """A log entry emitted by a contract."""
    address: str
    name: str
    args: Dict[str, Any]
    block_number: int
    tx_hash: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "event": self.name,
            "args": to_jsonable(self.args),
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
        }


@dataclass
class TxReceipt:
    """
    Outcome of a transaction.

    A failed transaction carries the revert condition in ``error`` and no
    events; all of its state changes have been rolled back.
    """
    tx_hash: str
    sender: str
    to: Optional[str]
    method: str
    block_number: int
    timestamp: int
    status: int
    return_value: Any = None
    error: Optional[Revert] = None
    events: List[Event] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == 1

    def unwrap(self) -> Any:
        """Return the call result or raise the revert condition."""
        if self.error is not None:
            raise self.error
        return self.return_value

    def event(self, name: str) -> Optional[Event]:
        for event in self.events:
            if event.name == name:
                return event
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status,
            "sender": self.sender,
            "to": self.to,
            "method": self.method,
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "return_value": to_jsonable(self.return_value),
            "error": self.error.to_dict() if self.error else None,
            "events": [e.to_dict() for e in self.events],
        }


# ============ Contract base ============

class Contract:
    """
    Base class for protocol contracts.

    Subclasses keep all of their state in instance attributes so that the
    ledger can snapshot and restore it around each transaction. Attributes
    listed in ``_transient`` are excluded from snapshots.
    """

    _transient: Tuple[str, ...] = ("ledger",)
    _selectors: Dict[bytes, Tuple[str, List[str]]] = {}
    payable = False

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        selectors = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                signature = getattr(value, "abi_signature", None)
                if signature:
                    selector = function_signature_to_4byte_selector(signature)
                    selectors[selector] = (attr, abi_input_types(signature))
        cls._selectors = selectors

    def __init__(self, ledger: "Ledger", address: str, owner: Optional[str] = None):
        self.ledger = ledger
        self.address = address
        self.owner = checksum(owner) if owner else ledger.msg.sender

    # ---- context ----

    @property
    def msg(self) -> Msg:
        return self.ledger.msg

    @property
    def now(self) -> int:
        return self.ledger.timestamp

    def emit(self, event: str, /, **args) -> None:
        self.ledger.record_event(self.address, event, args)

    def _only_owner(self) -> None:
        if self.msg.sender != self.owner:
            raise Unauthorized(self.msg.sender)

    def _only_owner_or(self, *tables: RoleTable) -> None:
        """The current owner, or a holder of one of the roles."""
        if self.msg.sender != self.owner:
            authorize(self.msg.sender, *tables)

    def _call(self, target: Union[str, "Contract"], method: str, *args, value: int = 0) -> Any:
        """Call another contract with this contract as the sender."""
        return self.ledger.invoke(self.address, target, method, *args, value=value)

    @external("transferOwnership(address)")
    def transfer_ownership(self, new_owner: str) -> None:
        self._only_owner()
        new_owner = checksum(new_owner)
        if new_owner == ZERO_ADDRESS:
            raise InvalidParameter(new_owner)
        previous, self.owner = self.owner, new_owner
        self.emit("OwnershipTransferred", previousOwner=previous, newOwner=new_owner)

    # ---- snapshots ----

    def _snapshot(self) -> Dict[str, Any]:
        return {k: copy.deepcopy(v) for k, v in vars(self).items() if k not in self._transient}

    def _restore(self, state: Dict[str, Any]) -> None:
        kept = {k: v for k, v in vars(self).items() if k in self._transient}
        self.__dict__.clear()
        self.__dict__.update(kept)
        self.__dict__.update(state)


# ============ Ledger ============

class Ledger:
    """In-process chain holding deployed contracts, balances and events."""

    def __init__(
        self,
        chain_id: Optional[int] = None,
        block_time: Optional[int] = None,
        genesis_timestamp: Optional[int] = None,
    ):
        self.chain_id = chain_id if chain_id is not None else config.CHAIN_ID
        self.block_time = block_time if block_time is not None else config.BLOCK_TIME
        self.block_number = 0
        self.timestamp = genesis_timestamp if genesis_timestamp is not None else int(time.time())

        self.contracts: Dict[str, Contract] = {}
        self.balances: Dict[str, int] = {}
        self.nonces: Dict[str, int] = {}
        self.events: List[Event] = []

        self._msg_stack: List[Msg] = []
        self._tx_hash: Optional[str] = None
        self._lock = threading.RLock()

    # ============ Accounts & time ============

    @property
    def msg(self) -> Msg:
        if not self._msg_stack:
            raise RuntimeError("No active call context")
        return self._msg_stack[-1]

    def new_account(self, balance: int = 0) -> LocalAccount:
        """Create a fresh keypair, optionally funded."""
        account = Account.create()
        if balance:
            self.fund(account.address, balance)
        return account

    def fund(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Amount must be non-negative")
        with self._lock:
            address = checksum(address)
            self.balances[address] = self.balances.get(address, 0) + amount

    def balance_of(self, address: str) -> int:
        return self.balances.get(checksum(address), 0)

    def is_contract(self, address: str) -> bool:
        return checksum(address) in self.contracts

    def advance_time(self, seconds: int) -> int:
        """Move block time forward (evm_increaseTime)."""
        if seconds < 0:
            raise ValueError("Cannot move time backwards")
        with self._lock:
            self.timestamp += seconds
            logger.info("Advanced chain time by %ss to %s", seconds, self.timestamp)
            return self.timestamp

    def mine(self) -> None:
        self.block_number += 1
        self.timestamp += self.block_time

    # ============ Events ============

    def record_event(self, address: str, name: str, args: Dict[str, Any]) -> None:
        self.events.append(Event(address, name, args, self.block_number, self._tx_hash))

    def get_events(
        self,
        name: Optional[str] = None,
        address: Optional[str] = None,
        from_block: int = 0,
    ) -> List[Event]:
        """Filter the event log, oldest first."""
        address = checksum(address) if address else None
        return [
            e for e in self.events
            if e.block_number >= from_block
            and (name is None or e.name == name)
            and (address is None or e.address == address)
        ]

    # ============ Execution ============

    def _resolve(self, target: Union[str, Contract]) -> Contract:
        if isinstance(target, Contract):
            return target
        contract = self.contracts.get(checksum(target))
        if contract is None:
            raise ValueError(f"No contract deployed at {target}")
        return contract

    @staticmethod
    def _method(contract: Contract, method: str) -> Callable:
        fn = getattr(contract, method, None)
        if method.startswith("_") or not callable(fn):
            raise AttributeError(f"{type(contract).__name__} has no public method {method!r}")
        return fn

    @contextmanager
    def _frame(self, sender: str, value: int = 0):
        self._msg_stack.append(Msg(sender, value, self.timestamp, self.block_number))
        try:
            yield self._msg_stack[-1]
        finally:
            self._msg_stack.pop()

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "contracts": dict(self.contracts),
            "states": {addr: c._snapshot() for addr, c in self.contracts.items()},
            "balances": dict(self.balances),
            "events": len(self.events),
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        self.contracts = snapshot["contracts"]
        for addr, state in snapshot["states"].items():
            self.contracts[addr]._restore(state)
        self.balances = snapshot["balances"]
        del self.events[snapshot["events"]:]

    def _transfer(self, sender: str, to: str, amount: int) -> None:
        if amount < 0:
            raise InvalidParameter(amount)
        if self.balances.get(sender, 0) < amount:
            raise InsufficientBalance(sender, amount)
        self.balances[sender] -= amount
        self.balances[to] = self.balances.get(to, 0) + amount

    def _run(self, sender: str, to: Optional[str], label: str, body: Callable[[], Any]) -> TxReceipt:
        nonce = self.nonces.get(sender, 0)
        self.nonces[sender] = nonce + 1
        self.mine()

        tx_hash = encode_hex(keccak(text=f"{self.chain_id}:{sender}:{nonce}"))
        snapshot = self._snapshot()
        first_event = len(self.events)
        self._tx_hash = tx_hash

        receipt = TxReceipt(
            tx_hash=tx_hash,
            sender=sender,
            to=to,
            method=label,
            block_number=self.block_number,
            timestamp=self.timestamp,
            status=1,
        )
        try:
            receipt.return_value = body()
        except Revert as e:
            self._restore(snapshot)
            receipt.status = 0
            receipt.error = e
            logger.warning("Transaction %s (%s) reverted: %s", tx_hash, label, e)
            return receipt
        except Exception:
            self._restore(snapshot)
            logger.exception("Transaction %s (%s) failed unexpectedly", tx_hash, label)
            raise
        finally:
            self._tx_hash = None

        receipt.events = self.events[first_event:]
        logger.debug("Transaction %s (%s) mined in block %s", tx_hash, label, self.block_number)
        return receipt

    def deploy(self, contract_cls: Type[Contract], *args, sender: str, **kwargs) -> Contract:
        """
        Deploy a contract and return the instance.

        Raises:
            Revert: if the constructor rejects its arguments
        """
        with self._lock:
            sender = checksum(sender)
            nonce = self.nonces.get(sender, 0)
            digest = keccak(text=f"{sender.lower()}:{nonce}")
            address = to_checksum_address("0x" + digest[-20:].hex())

            def construct():
                with self._frame(sender):
                    contract = contract_cls(self, address, *args, **kwargs)
                self.contracts[address] = contract
                return contract

            receipt = self._run(sender, None, f"deploy {contract_cls.__name__}", construct)
            contract = receipt.unwrap()
            logger.info("Deployed %s at %s", contract_cls.__name__, address)
            return contract

    def transact(
        self,
        sender: str,
        contract: Union[str, Contract],
        method: str,
        *args,
        value: int = 0,
        **kwargs,
    ) -> TxReceipt:
        """Send a state-changing transaction; never raises on revert."""
        with self._lock:
            sender = checksum(sender)
            target = self._resolve(contract)
            fn = self._method(target, method)

            def body():
                if value:
                    if not target.payable:
                        raise InvalidParameter(value)
                    self._transfer(sender, target.address, value)
                with self._frame(sender, value):
                    return fn(*args, **kwargs)

            return self._run(sender, target.address, f"{type(target).__name__}.{method}", body)

    def call(self, contract: Union[str, Contract], method: str, *args, sender: str = ZERO_ADDRESS, **kwargs) -> Any:
        """Run a read-only call against current state (eth_call)."""
        with self._lock:
            target = self._resolve(contract)
            fn = self._method(target, method)
            with self._frame(checksum(sender)):
                return fn(*args, **kwargs)

    def invoke(self, sender: str, target: Union[str, Contract], method: str, *args, value: int = 0) -> Any:
        """Nested call made by a contract while a frame is active."""
        contract = self._resolve(target)
        fn = self._method(contract, method)
        if value:
            self._transfer(sender, contract.address, value)
        with self._frame(sender, value):
            return fn(*args)

    def send(self, sender: str, target: str, data: bytes = b"", value: int = 0) -> Any:
        """
        Low-level call: value transfer plus optional ABI-encoded calldata.

        Calls to accounts without code only move value. Calls to contracts
        dispatch on the 4-byte selector of an ``@external`` method.
        """
        target = checksum(target)
        if value:
            self._transfer(sender, target, value)

        contract = self.contracts.get(target)
        if contract is None:
            return None

        if not data:
            receive = getattr(contract, "receive", None)
            if not contract.payable or receive is None:
                raise UnknownFunction(target, b"")
            with self._frame(sender, value):
                return receive()

        selector = bytes(data[:4])
        entry = contract._selectors.get(selector)
        if entry is None:
            raise UnknownFunction(target, selector)
        method, types = entry
        try:
            args = decode(types, bytes(data[4:]))
        except (DecodingError, ValueError) as e:
            raise InvalidParameter(f"calldata: {e}") from e
        with self._frame(sender, value):
            return getattr(contract, method)(*args)
