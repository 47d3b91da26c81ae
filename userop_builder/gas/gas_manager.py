from abc import ABC, abstractmethod
import logging
import math
from dataclasses import replace

from userop_builder.user_operation.models import FeeData
from userop_builder.user_operation.user_operation_v6 import \
    UserOperationV6, pack_user_operation
from userop_builder.utils.eth_client_utils import \
    get_gas_price, get_max_priority_fee_per_gas

DUMMY_SIGNATURE = b"\x01" * 65
PREVERIFICATION_GAS_PLACEHOLDER = 21000

# EntryPoint v0.6 handleOps calldata overhead
FIXED_GAS_PER_BUNDLE = 21000
BUNDLE_SIZE = 1
GAS_PER_USER_OPERATION = 18300
GAS_PER_USER_OPERATION_WORD = 4
GAS_PER_ZERO_BYTE = 4
GAS_PER_NON_ZERO_BYTE = 16


class FeeDataSource(ABC):

    @abstractmethod
    async def get_fee_data(self, chain_id: int) -> FeeData:
        pass


class GasManager(FeeDataSource):
    ethereum_node_urls: list[str]
    is_legacy_mode: bool
    max_fee_per_gas_percentage_multiplier: int
    max_priority_fee_per_gas_percentage_multiplier: int

    def __init__(
        self,
        ethereum_node_urls: list[str],
        is_legacy_mode: bool = False,
        max_fee_per_gas_percentage_multiplier: int = 110,
        max_priority_fee_per_gas_percentage_multiplier: int = 110,
    ):
        self.ethereum_node_urls = ethereum_node_urls
        self.is_legacy_mode = is_legacy_mode
        self.max_fee_per_gas_percentage_multiplier = (
            max_fee_per_gas_percentage_multiplier
        )
        self.max_priority_fee_per_gas_percentage_multiplier = (
            max_priority_fee_per_gas_percentage_multiplier
        )

    async def get_fee_data(self, chain_id: int) -> FeeData:
        block_max_fee_per_gas = await get_gas_price(self.ethereum_node_urls)
        max_fee_per_gas = math.ceil(
            block_max_fee_per_gas * (
                self.max_fee_per_gas_percentage_multiplier / 100)
        )

        if self.is_legacy_mode:
            max_priority_fee_per_gas = max_fee_per_gas
        else:
            block_max_priority_fee_per_gas = (
                await get_max_priority_fee_per_gas(self.ethereum_node_urls)
            )
            max_priority_fee_per_gas = math.ceil(
                block_max_priority_fee_per_gas
                * (self.max_priority_fee_per_gas_percentage_multiplier
                   / 100)
            )

            # max priority fee per gas can't be higher than max fee per gas
            if max_priority_fee_per_gas > max_fee_per_gas:
                max_priority_fee_per_gas = max_fee_per_gas

        logging.debug(
            f"fee data for chain {chain_id}: "
            f"max_fee_per_gas {hex(max_fee_per_gas)} "
            f"max_priority_fee_per_gas {hex(max_priority_fee_per_gas)}"
        )
        return FeeData(max_fee_per_gas, max_priority_fee_per_gas)


def calc_preverification_gas(user_operation: UserOperationV6) -> int:
    """
    Calldata cost of the packed user operation plus the fixed per bundle and
    per user operation overhead of an EntryPoint v0.6 handleOps call.
    """
    user_operation = replace(
        user_operation, pre_verification_gas=PREVERIFICATION_GAS_PLACEHOLDER)

    # set a dummy signature only if the user didn't supply any
    if len(user_operation.signature) < 65:
        user_operation = replace(user_operation, signature=DUMMY_SIGNATURE)

    packed = pack_user_operation(user_operation.to_list(), False)
    packed_length = len(packed)
    zero_byte_count = packed.count(b"\x00")
    non_zero_byte_count = packed_length - zero_byte_count
    call_data_cost = (
        zero_byte_count * GAS_PER_ZERO_BYTE
        + non_zero_byte_count * GAS_PER_NON_ZERO_BYTE
    )

    length_in_words = math.ceil((packed_length + 31) / 32)

    pre_verification_gas = (
        call_data_cost
        + (FIXED_GAS_PER_BUNDLE / BUNDLE_SIZE)
        + GAS_PER_USER_OPERATION
        + GAS_PER_USER_OPERATION_WORD * length_in_words
    )

    return math.ceil(pre_verification_gas)
