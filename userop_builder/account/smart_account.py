import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable

from eth_account import messages
from eth_account.signers.local import LocalAccount
from eth_utils import to_bytes

from userop_builder.account.smart_account_contract import SmartAccountContract
from userop_builder.exceptions import \
    UserOperationBuildException, UserOperationBuildExceptionCode
from userop_builder.gas.gas_manager import \
    FeeDataSource, GasManager, calc_preverification_gas
from userop_builder.typing import Address, UserOperationHash
from userop_builder.user_operation.models import \
    TransactionDetailsForUserOperation
from userop_builder.user_operation.user_operation_v6 import \
    UserOperationV6, get_user_operation_hash
from userop_builder.utils.decode import decode_address_result
from userop_builder.utils.encode import \
    checksum_address, encode_deploy_counterfactual_account_calldata, \
    encode_get_address_for_counterfactual_account_calldata, \
    encode_module_setup_data
from userop_builder.utils.eth_client_utils import \
    estimate_gas, eth_call, get_chain_id, get_code

# static verification allowance for ecdsa ownership module validation,
# creation gas is added on top of it for the first user operation
DEFAULT_VERIFICATION_GAS_LIMIT = 1_500_000

BuildObserver = Callable[[str, dict[str, Any]], None]


def log_build_event(stage: str, values: dict[str, Any]) -> None:
    logging.debug(f"user operation build stage {stage}: {values}")


class SmartAccount:
    """
    Builds unsigned EntryPoint v0.6 user operations for a smart account v2
    owned by an ecdsa ownership module.

    The counterfactual account address is resolved once per instance and
    reused for every operation built through it.
    """
    owner: LocalAccount
    ethereum_node_urls: list[str]
    factory_address: Address
    entrypoint_address: Address
    ecdsa_module_address: Address
    index: int
    fee_data_source: FeeDataSource
    observer: BuildObserver
    _account_address: Address | None
    _account_contract: SmartAccountContract | None
    _account_address_lock: asyncio.Lock

    def __init__(
        self,
        owner: LocalAccount,
        ethereum_node_urls: list[str],
        factory_address: Address,
        entrypoint_address: Address,
        ecdsa_module_address: Address,
        index: int = 0,
        fee_data_source: FeeDataSource | None = None,
        observer: BuildObserver | None = None,
    ):
        self.owner = owner
        self.ethereum_node_urls = ethereum_node_urls
        self.factory_address = checksum_address(factory_address)
        self.entrypoint_address = checksum_address(entrypoint_address)
        self.ecdsa_module_address = checksum_address(ecdsa_module_address)
        self.index = index
        if fee_data_source is None:
            fee_data_source = GasManager(ethereum_node_urls)
        self.fee_data_source = fee_data_source
        if observer is None:
            observer = log_build_event
        self.observer = observer

        self._account_address = None
        self._account_contract = None
        self._account_address_lock = asyncio.Lock()

    def get_module_setup_data(self) -> bytes:
        return encode_module_setup_data(self.owner.address)

    async def get_account_address(self) -> Address:
        if self._account_address is not None:
            return self._account_address

        async with self._account_address_lock:
            # a concurrent caller may have resolved it while we waited
            if self._account_address is None:
                call_data = (
                    encode_get_address_for_counterfactual_account_calldata(
                        self.ecdsa_module_address,
                        self.get_module_setup_data(),
                        self.index,
                    )
                )
                raw_result = await eth_call(
                    self.ethereum_node_urls, self.factory_address, call_data
                )
                self._account_address = decode_address_result(raw_result)
                logging.info(
                    f"Resolved smart account {self._account_address} "
                    f"for owner {self.owner.address} with index {self.index}"
                )
        return self._account_address

    async def get_account_contract(self) -> SmartAccountContract:
        if self._account_contract is None:
            account_address = await self.get_account_address()
            self._account_contract = SmartAccountContract(
                account_address, self.ethereum_node_urls
            )
        return self._account_contract

    async def is_account_deployed(self) -> bool:
        account_address = await self.get_account_address()
        code = await get_code(self.ethereum_node_urls, account_address)
        return len(code) > 0

    async def get_nonce(self) -> int:
        if not await self.is_account_deployed():
            return 0

        account_contract = await self.get_account_contract()
        return await account_contract.get_nonce()

    def create_init_code(self, index: int | None = None) -> bytes:
        if index is None:
            index = self.index
        return to_bytes(hexstr=self.factory_address) + (
            encode_deploy_counterfactual_account_calldata(
                self.ecdsa_module_address,
                self.get_module_setup_data(),
                index,
            )
        )

    async def encode_execute(
        self, to: Address, value: int, data: bytes
    ) -> bytes:
        account_contract = await self.get_account_contract()
        return account_contract.encode_execute(to, value, data)

    async def encode_user_operation_call_data_and_gas_limit(
        self, details: TransactionDetailsForUserOperation
    ) -> tuple[bytes, int]:
        call_data = await self.encode_execute(
            details.to, details.value, details.data)

        call_gas_limit = details.gas_limit or 0
        if call_gas_limit == 0:
            call_gas_limit = await estimate_gas(
                self.ethereum_node_urls,
                await self.get_account_address(),
                call_data,
                from_address=self.entrypoint_address,
            )

        return call_data, call_gas_limit

    async def estimate_creation_gas(self, init_code: bytes) -> int:
        if len(init_code) == 0:
            return 0

        deployer_address = Address("0x" + init_code[:20].hex())
        deployer_call_data = init_code[20:]
        return await estimate_gas(
            self.ethereum_node_urls, deployer_address, deployer_call_data
        )

    def get_verification_gas_limit(self) -> int:
        return DEFAULT_VERIFICATION_GAS_LIMIT

    async def create_unsigned_user_operation(
        self, details_list: list[TransactionDetailsForUserOperation]
    ) -> UserOperationV6:
        if len(details_list) > 1:
            raise UserOperationBuildException(
                UserOperationBuildExceptionCode.InvalidInput,
                "SmartAccount does not support batch transactions",
            )
        if len(details_list) == 0:
            raise UserOperationBuildException(
                UserOperationBuildExceptionCode.InvalidInput,
                "Missing transaction details",
            )
        details = details_list[0]

        (
            call_data,
            call_gas_limit
        ) = await self.encode_user_operation_call_data_and_gas_limit(details)
        self.observer("call_data", {
            "callData": "0x" + call_data.hex(),
            "callGasLimit": call_gas_limit,
        })

        if details.nonce is not None:
            nonce = details.nonce
        else:
            nonce = await self.get_nonce()
        self.observer("nonce", {"nonce": nonce})

        init_code = b""
        if nonce == 0:
            init_code = self.create_init_code()
            self.observer("init_code", {"initCode": "0x" + init_code.hex()})

        creation_gas = await self.estimate_creation_gas(init_code)
        verification_gas_limit = (
            self.get_verification_gas_limit() + creation_gas
        )
        self.observer("verification_gas_limit", {
            "creationGas": creation_gas,
            "verificationGasLimit": verification_gas_limit,
        })

        chain_id = await get_chain_id(self.ethereum_node_urls)
        fee_data = await self.fee_data_source.get_fee_data(chain_id)
        self.observer("fee_data", {
            "chainId": chain_id,
            "maxFeePerGas": fee_data.max_fee_per_gas,
            "maxPriorityFeePerGas": fee_data.max_priority_fee_per_gas,
        })

        partial_user_operation = UserOperationV6(
            sender_address=await self.get_account_address(),
            nonce=nonce,
            init_code=init_code,
            call_data=call_data,
            call_gas_limit=call_gas_limit,
            verification_gas_limit=verification_gas_limit,
            pre_verification_gas=0,
            max_fee_per_gas=fee_data.max_fee_per_gas,
            max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
            paymaster_and_data=b"",
            signature=b"",
        )
        self.observer(
            "partial_user_operation",
            partial_user_operation.get_user_operation_json(),
        )

        pre_verification_gas = calc_preverification_gas(partial_user_operation)
        self.observer(
            "pre_verification_gas",
            {"preVerificationGas": pre_verification_gas},
        )

        return replace(
            partial_user_operation,
            pre_verification_gas=pre_verification_gas,
        )

    async def get_user_operation_hash(
        self, user_operation: UserOperationV6
    ) -> UserOperationHash:
        chain_id = await get_chain_id(self.ethereum_node_urls)
        return get_user_operation_hash(
            user_operation.to_list(), self.entrypoint_address, chain_id
        )

    def sign_user_operation_hash(
        self, user_operation_hash: UserOperationHash
    ) -> bytes:
        signable_message = messages.encode_defunct(
            primitive=to_bytes(hexstr=user_operation_hash)
        )
        signed_message = self.owner.sign_message(signable_message)
        return bytes(signed_message.signature)

    async def sign_user_operation(
        self, user_operation: UserOperationV6
    ) -> UserOperationV6:
        user_operation_hash = await self.get_user_operation_hash(
            user_operation)
        return replace(
            user_operation,
            signature=self.sign_user_operation_hash(user_operation_hash),
        )
