from dataclasses import dataclass

from eth_abi import encode
from eth_utils import keccak

from userop_builder.typing import Address, UserOperationHash

# init_code, call_data, paymaster_and_data
HASHED_FIELD_INDEXES = (2, 3, 9)

PACKED_FIELD_TYPES = [
    "address",
    "uint256",
    "bytes",
    "bytes",
    "uint256",
    "uint256",
    "uint256",
    "uint256",
    "uint256",
    "bytes",
    "bytes",
]

PACKED_FOR_SIGNATURE_FIELD_TYPES = [
    "bytes32" if index in HASHED_FIELD_INDEXES else abi_type
    for index, abi_type in enumerate(PACKED_FIELD_TYPES[:-1])
]


@dataclass(frozen=True)
class UserOperationV6:
    sender_address: Address
    nonce: int
    init_code: bytes
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: bytes
    signature: bytes

    def get_user_operation_json(self) -> dict[str, Address | str]:
        return {
            "sender": self.sender_address,
            "nonce": hex(self.nonce),
            "initCode": "0x" + self.init_code.hex(),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymasterAndData": "0x" + self.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }

    def to_list(self) -> list[Address | int | bytes]:
        return [
            self.sender_address,
            self.nonce,
            self.init_code,
            self.call_data,
            self.call_gas_limit,
            self.verification_gas_limit,
            self.pre_verification_gas,
            self.max_fee_per_gas,
            self.max_priority_fee_per_gas,
            self.paymaster_and_data,
            self.signature,
        ]


def get_user_operation_hash(
    user_operation_list: list, entrypoint_addr: str, chain_id: int
) -> UserOperationHash:
    packed_user_operation = keccak(
        pack_user_operation(user_operation_list)
    )

    encoded_user_operation_hash = encode(
        ["(bytes32,address,uint256)"],
        [[packed_user_operation, entrypoint_addr, chain_id]],
    )
    return UserOperationHash(
        "0x" + keccak(encoded_user_operation_hash).hex())


def pack_user_operation(
    user_operation_list: list, for_signature: bool = True
) -> bytes:
    """
    ABI encodes the user operation fields in order.

    For the hash the dynamic fields (init code, call data, paymaster and
    data) are replaced by their keccak and the signature is left out.
    """
    if not for_signature:
        return encode(PACKED_FIELD_TYPES, user_operation_list)

    hashed_fields = [
        keccak(field) if index in HASHED_FIELD_INDEXES else field
        for index, field in enumerate(user_operation_list[:-1])
    ]
    return encode(PACKED_FOR_SIGNATURE_FIELD_TYPES, hashed_fields)
