from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from userop_builder.exceptions import \
    UserOperationBuildException, UserOperationBuildExceptionCode
from userop_builder.typing import Address


def decode_call_result(types: list[str], raw_result: bytes) -> tuple:
    try:
        return decode(types, raw_result)
    except DecodingError as excp:
        raise UserOperationBuildException(
            UserOperationBuildExceptionCode.EncodingFailure,
            f"Invalid call result 0x{raw_result.hex()} for types {types}: "
            f"{str(excp)}",
        )


def decode_address_result(raw_result: bytes) -> Address:
    return Address(
        to_checksum_address(decode_call_result(["address"], raw_result)[0]))


def decode_uint256_result(raw_result: bytes) -> int:
    return decode_call_result(["uint256"], raw_result)[0]
