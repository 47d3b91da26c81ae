from userop_builder.typing import Address
from userop_builder.utils.decode import decode_uint256_result
from userop_builder.utils.encode import \
    encode_execute_calldata, encode_nonce_calldata
from userop_builder.utils.eth_client_utils import eth_call


class SmartAccountContract:
    """Calls into a deployed (or counterfactual) smart account v2."""
    address: Address
    ethereum_node_urls: list[str]

    def __init__(self, address: Address, ethereum_node_urls: list[str]):
        self.address = address
        self.ethereum_node_urls = ethereum_node_urls

    def encode_execute(self, to: Address, value: int, data: bytes) -> bytes:
        return encode_execute_calldata(to, value, data)

    async def get_nonce(self, key: int = 0) -> int:
        raw_result = await eth_call(
            self.ethereum_node_urls,
            self.address,
            encode_nonce_calldata(key),
        )
        return decode_uint256_result(raw_result)
