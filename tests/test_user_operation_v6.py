from dataclasses import FrozenInstanceError, replace

import pytest
from eth_abi import encode
from eth_utils import keccak

from userop_builder.user_operation.user_operation_v6 import \
    UserOperationV6, get_user_operation_hash, pack_user_operation

ENTRYPOINT = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"


@pytest.fixture
def user_operation() -> UserOperationV6:
    return UserOperationV6(
        sender_address="0x" + "cc" * 20,
        nonce=3,
        init_code=b"",
        call_data=b"\x00\x00\x18\x9a",
        call_gas_limit=0x1234,
        verification_gas_limit=1_500_000,
        pre_verification_gas=45_000,
        max_fee_per_gas=3_000_000_000,
        max_priority_fee_per_gas=1_500_000_000,
        paymaster_and_data=b"",
        signature=b"",
    )


def test_get_user_operation_json(user_operation):
    assert user_operation.get_user_operation_json() == {
        "sender": "0x" + "cc" * 20,
        "nonce": "0x3",
        "initCode": "0x",
        "callData": "0x0000189a",
        "callGasLimit": "0x1234",
        "verificationGasLimit": "0x16e360",
        "preVerificationGas": "0xafc8",
        "maxFeePerGas": "0xb2d05e00",
        "maxPriorityFeePerGas": "0x59682f00",
        "paymasterAndData": "0x",
        "signature": "0x",
    }


def test_pack_user_operation_without_hashing(user_operation):
    packed = pack_user_operation(user_operation.to_list(), False)

    assert packed == encode(
        [
            "address", "uint256", "bytes", "bytes", "uint256", "uint256",
            "uint256", "uint256", "uint256", "bytes", "bytes",
        ],
        user_operation.to_list(),
    )


def test_user_operation_is_immutable(user_operation):
    with pytest.raises(FrozenInstanceError):
        user_operation.signature = b"\x01"


def test_pack_user_operation_for_signature_hashes_dynamic_fields(
    user_operation
):
    user_operation_list = user_operation.to_list()
    packed = pack_user_operation(user_operation_list)

    assert len(packed) == 10 * 32
    assert packed[64:96] == keccak(b"")
    assert packed[96:128] == keccak(b"\x00\x00\x18\x9a")
    # input list is left untouched
    assert user_operation_list == user_operation.to_list()


def test_get_user_operation_hash(user_operation):
    user_operation_hash = get_user_operation_hash(
        user_operation.to_list(), ENTRYPOINT, 1337)

    expected = keccak(
        encode(
            ["(bytes32,address,uint256)"],
            [[
                keccak(pack_user_operation(user_operation.to_list())),
                ENTRYPOINT,
                1337,
            ]],
        )
    )
    assert user_operation_hash == "0x" + expected.hex()


def test_get_user_operation_hash_ignores_signature(user_operation):
    signed = replace(user_operation, signature=b"\x01" * 65)

    assert get_user_operation_hash(signed.to_list(), ENTRYPOINT, 1) == \
        get_user_operation_hash(user_operation.to_list(), ENTRYPOINT, 1)


def test_get_user_operation_hash_depends_on_chain_and_nonce(user_operation):
    base = get_user_operation_hash(user_operation.to_list(), ENTRYPOINT, 1)

    assert base != get_user_operation_hash(
        user_operation.to_list(), ENTRYPOINT, 10)
    assert base != get_user_operation_hash(
        replace(user_operation, nonce=4).to_list(), ENTRYPOINT, 1)
