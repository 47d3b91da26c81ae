from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from userop_builder.exceptions import \
    UserOperationBuildException, UserOperationBuildExceptionCode
from userop_builder.typing import Address

# smart account v2 (execute_ncC is the gas optimized alias of execute)
EXECUTE_SELECTOR = function_signature_to_4byte_selector(
    "execute_ncC(address,uint256,bytes)")
NONCE_SELECTOR = function_signature_to_4byte_selector("nonce(uint192)")

# smart account factory
DEPLOY_COUNTERFACTUAL_ACCOUNT_SELECTOR = function_signature_to_4byte_selector(
    "deployCounterFactualAccount(address,bytes,uint256)")
GET_ADDRESS_FOR_COUNTERFACTUAL_ACCOUNT_SELECTOR = (
    function_signature_to_4byte_selector(
        "getAddressForCounterFactualAccount(address,bytes,uint256)")
)

# ecdsa ownership module
INIT_FOR_SMART_ACCOUNT_SELECTOR = bytes.fromhex("2ede3bc0")  # initForSmartAccount(address)


def encode_function_call(
    function_selector: bytes, types: list[str], args: list
) -> bytes:
    try:
        return function_selector + encode(types, args)
    except (EncodingError, TypeError, ValueError) as excp:
        raise UserOperationBuildException(
            UserOperationBuildExceptionCode.EncodingFailure,
            f"Invalid arguments {args} for types {types}: {str(excp)}",
        )


def checksum_address(address: str) -> Address:
    try:
        return Address(to_checksum_address(address))
    except (TypeError, ValueError):
        raise UserOperationBuildException(
            UserOperationBuildExceptionCode.EncodingFailure,
            f"Invalid address value : {address}",
        )


def encode_module_setup_data(owner_address: Address) -> bytes:
    return encode_function_call(
        INIT_FOR_SMART_ACCOUNT_SELECTOR,
        ["address"],
        [checksum_address(owner_address)],
    )


def encode_execute_calldata(to: Address, value: int, data: bytes) -> bytes:
    return encode_function_call(
        EXECUTE_SELECTOR,
        ["address", "uint256", "bytes"],
        [checksum_address(to), value, data],
    )


def encode_nonce_calldata(key: int) -> bytes:
    return encode_function_call(NONCE_SELECTOR, ["uint192"], [key])


def encode_deploy_counterfactual_account_calldata(
    module_setup_contract: Address, module_setup_data: bytes, index: int
) -> bytes:
    return encode_function_call(
        DEPLOY_COUNTERFACTUAL_ACCOUNT_SELECTOR,
        ["address", "bytes", "uint256"],
        [checksum_address(module_setup_contract), module_setup_data, index],
    )


def encode_get_address_for_counterfactual_account_calldata(
    module_setup_contract: Address, module_setup_data: bytes, index: int
) -> bytes:
    return encode_function_call(
        GET_ADDRESS_FOR_COUNTERFACTUAL_ACCOUNT_SELECTOR,
        ["address", "bytes", "uint256"],
        [checksum_address(module_setup_contract), module_setup_data, index],
    )
