import asyncio
from typing import Any

import pytest
from eth_abi import encode
from eth_account import Account

from userop_builder.account.smart_account import SmartAccount
from userop_builder.user_operation.models import FeeData
from userop_builder.gas.gas_manager import FeeDataSource
from userop_builder.utils import eth_client_utils
from userop_builder.utils.encode import \
    GET_ADDRESS_FOR_COUNTERFACTUAL_ACCOUNT_SELECTOR, NONCE_SELECTOR

# hardhat test account #0
OWNER_PRIVATE_KEY = (
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80")
FACTORY_ADDRESS = "0x000000a56Aaca3e9a4C479ea6b6CD0DbcB6634F5"
ENTRYPOINT_ADDRESS = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
ECDSA_MODULE_ADDRESS = "0x0000001c5b32F37F5beA87BDD5374eB2aC54eA8e"
ACCOUNT_ADDRESS = "0x" + "cc" * 20
DESTINATION_ADDRESS = "0x" + "bb" * 20


class FakeEthNode:
    """In-memory stand-in for the json-rpc node of a single smart account."""

    def __init__(self):
        self.account_address = ACCOUNT_ADDRESS
        self.account_code = ""
        self.account_nonce = 0
        self.call_gas = 55_000
        self.creation_gas = 280_000
        self.chain_id = 1337
        self.gas_price = 1_000_000_000
        self.max_priority_fee_per_gas = 100_000_000
        self.errors: dict[str, dict] = {}
        self.requests: list[tuple[str, Any]] = []

    def deploy(self, nonce: int) -> None:
        self.account_code = "6080604052"
        self.account_nonce = nonce

    def count(self, method: str) -> int:
        return len([r for r in self.requests if r[0] == method])

    async def __call__(
        self,
        nodes_urls,
        method,
        params=None,
        expected_key=None,
        request_error_codes=None,
    ) -> dict:
        # yield to the loop like a real request would
        await asyncio.sleep(0)
        self.requests.append((method, params))
        if method in self.errors:
            return {"jsonrpc": "2.0", "id": 1, "error": self.errors[method]}
        return {"jsonrpc": "2.0", "id": 1, "result": self.handle(method, params)}

    def handle(self, method: str, params: Any) -> str:
        if method == "eth_chainId":
            return hex(self.chain_id)
        if method == "eth_gasPrice":
            return hex(self.gas_price)
        if method == "eth_maxPriorityFeePerGas":
            return hex(self.max_priority_fee_per_gas)
        if method == "eth_getCode":
            if params[0].lower() == self.account_address:
                return "0x" + self.account_code
            return "0x"
        if method == "eth_estimateGas":
            if params[0]["to"].lower() == FACTORY_ADDRESS.lower():
                return hex(self.creation_gas)
            return hex(self.call_gas)
        if method == "eth_call":
            selector = bytes.fromhex(params[0]["data"][2:10])
            if selector == GET_ADDRESS_FOR_COUNTERFACTUAL_ACCOUNT_SELECTOR:
                return "0x" + encode(
                    ["address"], [self.account_address]).hex()
            if selector == NONCE_SELECTOR:
                return "0x" + encode(["uint256"], [self.account_nonce]).hex()
        raise AssertionError(f"unexpected rpc request {method} {params}")


class StaticFeeDataSource(FeeDataSource):

    def __init__(self, fee_data: FeeData):
        self.fee_data = fee_data
        self.chain_ids: list[int] = []

    async def get_fee_data(self, chain_id: int) -> FeeData:
        self.chain_ids.append(chain_id)
        return self.fee_data


@pytest.fixture
def fake_node(monkeypatch) -> FakeEthNode:
    node = FakeEthNode()
    monkeypatch.setattr(
        eth_client_utils, "send_rpc_request_to_eth_client", node)
    return node


@pytest.fixture
def owner():
    return Account.from_key(OWNER_PRIVATE_KEY)


@pytest.fixture
def fee_data_source() -> StaticFeeDataSource:
    return StaticFeeDataSource(FeeData(3_000_000_000, 1_500_000_000))


@pytest.fixture
def build_events() -> list:
    return []


@pytest.fixture
def smart_account(owner, fake_node, fee_data_source, build_events):
    return SmartAccount(
        owner,
        ["http://127.0.0.1:8545"],
        FACTORY_ADDRESS,
        ENTRYPOINT_ADDRESS,
        ECDSA_MODULE_ADDRESS,
        fee_data_source=fee_data_source,
        observer=lambda stage, values: build_events.append((stage, values)),
    )
