"""Tests for the Ledger: blocks, atomic transactions, events and low-level calls."""

import pytest

from verichain.services.errors import InvalidParameter, Unauthorized, UnknownFunction
from verichain.services.ledger import (
    ZERO_ADDRESS,
    Contract,
    Ledger,
    checksum,
    encode_call,
    external,
    to_jsonable,
)

from tests.conftest import GENESIS, assert_reverted


class Counter(Contract):
    """Minimal contract used to exercise the ledger."""

    payable = True

    def __init__(self, ledger, address, limit: int = 10):
        super().__init__(ledger, address)
        self.limit = limit
        self.count = 0
        self.history = []

    @external("increment(uint256)")
    def increment(self, by: int) -> int:
        self.count += by
        self.history.append(by)
        self.emit("Incremented", by=by, sender=self.msg.sender)
        if self.count > self.limit:
            raise InvalidParameter(self.count)
        return self.count

    @external("setLimit(uint256)")
    def set_limit(self, limit: int) -> None:
        self._only_owner()
        self.limit = limit

    def current(self) -> int:
        return self.count

    def relay(self, target: str, by: int) -> int:
        return self._call(target, "increment", by)

    def receive(self) -> None:
        self.emit("Received", value=self.msg.value)

    def label(self, name: str) -> None:
        self.emit("Labelled", name=name, event="label")


@pytest.fixture
def counter(ledger, owner):
    return ledger.deploy(Counter, sender=owner.address)


class TestAccounts:
    def test_checksum_normalises_addresses(self) -> None:
        lower = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
        assert checksum(lower) == "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

    def test_checksum_rejects_garbage(self) -> None:
        with pytest.raises(InvalidParameter):
            checksum("not-an-address")

    def test_new_account_is_funded(self, ledger) -> None:
        account = ledger.new_account(500)
        assert ledger.balance_of(account.address) == 500

    def test_fund_rejects_negative(self, ledger, user1) -> None:
        with pytest.raises(ValueError):
            ledger.fund(user1.address, -1)


class TestBlocks:
    def test_genesis(self, ledger) -> None:
        assert ledger.block_number == 0
        assert ledger.timestamp == GENESIS

    def test_each_transaction_mines_a_block(self, ledger, owner, counter) -> None:
        start_block, start_time = ledger.block_number, ledger.timestamp
        receipt = ledger.transact(owner.address, counter, "increment", 1)
        assert receipt.block_number == start_block + 1
        assert receipt.timestamp == start_time + 1
        assert ledger.block_number == start_block + 1

    def test_call_does_not_mine(self, ledger, counter) -> None:
        block = ledger.block_number
        assert ledger.call(counter, "current") == 0
        assert ledger.block_number == block

    def test_advance_time(self, ledger) -> None:
        assert ledger.advance_time(3600) == GENESIS + 3600

    def test_advance_time_rejects_negative(self, ledger) -> None:
        with pytest.raises(ValueError):
            ledger.advance_time(-5)


class TestDeployment:
    def test_addresses_are_distinct(self, ledger, owner) -> None:
        a = ledger.deploy(Counter, sender=owner.address)
        b = ledger.deploy(Counter, sender=owner.address)
        assert a.address != b.address
        assert ledger.is_contract(a.address)
        assert ledger.is_contract(b.address)

    def test_deployer_becomes_owner(self, counter, owner) -> None:
        assert counter.owner == owner.address

    def test_same_deployer_and_nonce_give_same_address(self, owner) -> None:
        first = Ledger(genesis_timestamp=GENESIS).deploy(Counter, sender=owner.address)
        second = Ledger(genesis_timestamp=GENESIS).deploy(Counter, sender=owner.address)
        assert first.address == second.address


class TestTransactions:
    def test_success_returns_value_and_events(self, ledger, owner, counter) -> None:
        receipt = ledger.transact(owner.address, counter, "increment", 3)
        assert receipt.ok
        assert receipt.return_value == 3
        event = receipt.event("Incremented")
        assert event.args == {"by": 3, "sender": owner.address}
        assert event.tx_hash == receipt.tx_hash

    def test_revert_rolls_back_state_and_events(self, ledger, owner, counter) -> None:
        ledger.transact(owner.address, counter, "increment", 5)
        events_before = len(ledger.events)

        receipt = ledger.transact(owner.address, counter, "increment", 50)

        assert_reverted(receipt, InvalidParameter)
        assert receipt.events == []
        assert counter.count == 5
        assert counter.history == [5]
        assert len(ledger.events) == events_before

    def test_unwrap_reraises(self, ledger, owner, counter) -> None:
        receipt = ledger.transact(owner.address, counter, "increment", 11)
        with pytest.raises(InvalidParameter):
            receipt.unwrap()

    def test_only_owner(self, ledger, user1, counter) -> None:
        assert_reverted(ledger.transact(user1.address, counter, "set_limit", 100), Unauthorized)

    def test_private_methods_are_not_callable(self, ledger, owner, counter) -> None:
        with pytest.raises(AttributeError):
            ledger.transact(owner.address, counter, "_only_owner")

    def test_value_transfer_rolls_back_on_revert(self, ledger, owner, counter) -> None:
        balance = ledger.balance_of(owner.address)
        receipt = ledger.transact(owner.address, counter, "increment", 99, value=1000)
        assert not receipt.ok
        assert ledger.balance_of(owner.address) == balance
        assert ledger.balance_of(counter.address) == 0

    def test_nested_call_sees_contract_as_sender(self, ledger, owner, counter) -> None:
        other = ledger.deploy(Counter, sender=owner.address)
        receipt = ledger.transact(owner.address, counter, "relay", other.address, 2)
        assert receipt.ok
        assert receipt.event("Incremented").args["sender"] == counter.address

    def test_receipt_to_dict_is_json_friendly(self, ledger, owner, counter) -> None:
        receipt = ledger.transact(owner.address, counter, "increment", 11)
        data = receipt.to_dict()
        assert data["status"] == 0
        assert data["error"]["error"] == "InvalidParameter"
        assert data["error"]["kind"] == "invalid_parameter"


class TestLowLevelCalls:
    def test_dispatch_by_selector(self, ledger, owner, counter) -> None:
        data = encode_call("increment(uint256)", 4)
        assert ledger.send(owner.address, counter.address, data) == 4
        assert counter.count == 4

    def test_unknown_selector(self, ledger, owner, counter) -> None:
        with pytest.raises(UnknownFunction):
            ledger.send(owner.address, counter.address, encode_call("nothing(uint256)", 1))

    def test_malformed_calldata(self, ledger, owner, counter) -> None:
        data = encode_call("increment(uint256)", 1)[:10]
        with pytest.raises(InvalidParameter):
            ledger.send(owner.address, counter.address, data)

    def test_plain_transfer_to_account(self, ledger, owner, user1) -> None:
        before = ledger.balance_of(user1.address)
        ledger.send(owner.address, user1.address, b"", 25)
        assert ledger.balance_of(user1.address) == before + 25

    def test_plain_transfer_to_payable_contract(self, ledger, owner, counter) -> None:
        ledger.send(owner.address, counter.address, b"", 7)
        assert ledger.balance_of(counter.address) == 7
        assert ledger.get_events("Received")[-1].args == {"value": 7}


class TestEvents:
    def test_filter_by_name_and_address(self, ledger, owner, counter) -> None:
        other = ledger.deploy(Counter, sender=owner.address)
        ledger.transact(owner.address, counter, "increment", 1)
        ledger.transact(owner.address, other, "increment", 2)

        assert len(ledger.get_events("Incremented")) == 2
        only_other = ledger.get_events("Incremented", address=other.address)
        assert [e.args["by"] for e in only_other] == [2]

    def test_event_args_may_use_any_keyword(self, ledger, owner, counter) -> None:
        receipt = ledger.transact(owner.address, counter, "label", "primary")
        assert receipt.ok
        assert receipt.event("Labelled").args == {"name": "primary", "event": "label"}


def test_to_jsonable_handles_bytes_and_large_ints() -> None:
    assert to_jsonable(b"\x01\x02") == "0x0102"
    assert to_jsonable(2 ** 256 - 1) == str(2 ** 256 - 1)
    assert to_jsonable({"a": (1, ZERO_ADDRESS)}) == {"a": [1, ZERO_ADDRESS]}
