import logging
import os
import re
import sys
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from dataclasses import dataclass
from importlib.metadata import version

from eth_account.signers.local import LocalAccount

from userop_builder.exceptions import UserOperationBuildException
from userop_builder.utils.eth_client_utils import get_chain_id

from .typing import Address
from .utils.import_key import (import_owner_account,
                               owner_account_from_private_key)

__version__ = version("userop_builder")

# smart account v2 deployment defaults
SMART_ACCOUNT_FACTORY_V2 = "0x000000a56Aaca3e9a4C479ea6b6CD0DbcB6634F5"
ECDSA_OWNERSHIP_MODULE_V1 = "0x0000001c5b32F37F5beA87BDD5374eB2aC54eA8e"
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"


@dataclass()
class InitData:
    ethereum_node_urls: list[str]
    owner: LocalAccount
    chain_id: int
    factory_address: Address
    entrypoint_address: Address
    ecdsa_module_address: Address
    index: int
    to: Address
    value: int
    data: bytes
    gas_limit: int | None
    nonce: int | None
    sign: bool
    is_legacy_mode: bool
    max_fee_per_gas_percentage_multiplier: int
    max_priority_fee_per_gas_percentage_multiplier: int
    client_version: str


def address(ep: str):
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if not isinstance(ep, str) or re.match(address_pattern, ep) is None:
        raise ArgumentTypeError(f"Wrong address format : {ep}")
    return ep


def unsigned_int(value):
    try:
        ivalue = int(value, 0) if isinstance(value, str) else int(value)
    except ValueError:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def hex_bytes(value: str) -> bytes:
    if not isinstance(value, str) or value[:2] != "0x":
        raise ArgumentTypeError(f"Wrong hex bytes format : {value}")
    try:
        return bytes.fromhex(value[2:])
    except ValueError:
        raise ArgumentTypeError(f"Wrong hex bytes format : {value}")


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return the default value.
    Supports single values or lists (for nargs="+" arguments).
    """
    value = os.getenv(env_var, None)
    if value is not None:
        if value_type == list:
            return value.split(",")
        return value_type(value)
    return default


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="userop-builder",
        description=(
            "Build unsigned EIP-4337 user operations for a smart account v2"
        ),
    )

    group = parser.add_mutually_exclusive_group(required=False)

    group.add_argument(
        "--owner_secret",
        type=str,
        help="Smart account owner private key",
        nargs="?",
        default=_get_env_or_default("USEROP_BUILDER_OWNER_SECRET", None, str),
    )

    group.add_argument(
        "--keystore_file_path",
        type=str,
        help=(
            "Owner Keystore file path - "
            "defaults to first file in keystore folder"
        ),
        nargs="?",
        default=_get_env_or_default(
            "USEROP_BUILDER_KEYSTORE_FILE_PATH", None, str),
    )

    parser.add_argument(
        "--keystore_file_password",
        type=str,
        help="Owner Keystore file password - defaults to no password",
        nargs="?",
        const="",
        default=_get_env_or_default(
            "USEROP_BUILDER_KEYSTORE_FILE_PASSWORD", "", str),
    )

    parser.add_argument(
        "--ethereum_node_url",
        type=str,
        help=(
            "Eth Client JSON-RPC Url(s), tried in order - "
            "defaults to http://0.0.0.0:8545"
        ),
        nargs="+",
        default=_get_env_or_default(
            "USEROP_BUILDER_ETHEREUM_NODE_URL", ["http://0.0.0.0:8545"], list),
    )

    parser.add_argument(
        "--chain_id",
        type=unsigned_int,
        help="expected chain id - defaults to the chain id of the node",
        nargs="?",
        default=_get_env_or_default(
            "USEROP_BUILDER_CHAIN_ID", None, unsigned_int),
    )

    parser.add_argument(
        "--factory",
        type=address,
        help=f"smart account factory address - defaults to {SMART_ACCOUNT_FACTORY_V2}",
        nargs="?",
        default=_get_env_or_default(
            "USEROP_BUILDER_FACTORY", SMART_ACCOUNT_FACTORY_V2, address),
    )

    parser.add_argument(
        "--entrypoint",
        type=address,
        help=f"entrypoint address - defaults to {ENTRYPOINT_V06}",
        nargs="?",
        default=_get_env_or_default(
            "USEROP_BUILDER_ENTRYPOINT", ENTRYPOINT_V06, address),
    )

    parser.add_argument(
        "--ecdsa_module",
        type=address,
        help=(
            "ecdsa ownership module address - "
            f"defaults to {ECDSA_OWNERSHIP_MODULE_V1}"
        ),
        nargs="?",
        default=_get_env_or_default(
            "USEROP_BUILDER_ECDSA_MODULE", ECDSA_OWNERSHIP_MODULE_V1, address),
    )

    parser.add_argument(
        "--index",
        type=unsigned_int,
        help="smart account deployment index - defaults to 0",
        nargs="?",
        const=0,
        default=_get_env_or_default("USEROP_BUILDER_INDEX", 0, unsigned_int),
    )

    parser.add_argument(
        "--to",
        type=address,
        help="destination of the call",
        required=True,
    )

    parser.add_argument(
        "--value",
        type=unsigned_int,
        help="value in wei sent with the call - defaults to 0",
        nargs="?",
        const=0,
        default=0,
    )

    parser.add_argument(
        "--data",
        type=hex_bytes,
        help="call data - defaults to 0x",
        nargs="?",
        const=b"",
        default=b"",
    )

    parser.add_argument(
        "--gas_limit",
        type=unsigned_int,
        help="call gas limit - estimated when not set",
        nargs="?",
        default=None,
    )

    parser.add_argument(
        "--nonce",
        type=unsigned_int,
        help="user operation nonce - read from the smart account when not set",
        nargs="?",
        default=None,
    )

    parser.add_argument(
        "--sign",
        help="sign the user operation with the owner key",
        nargs="?",
        const=True,
        default=False,
    )

    parser.add_argument(
        "--legacy_mode",
        help="for networks that doesn't support EIP-1559",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "USEROP_BUILDER_LEGACY_MODE", False, lambda v: v.lower() == "true"),
    )

    parser.add_argument(
        "--max_fee_per_gas_percentage_multiplier",
        type=unsigned_int,
        help=(
            "modify the user operation max_fee_per_gas value as the following formula "
            "[max_fee_per_gas = block_max_fee_per_gas * "
            "max_fee_per_gas_percentage_multiplier /100], defaults to 110"
        ),
        nargs="?",
        const=110,
        default=_get_env_or_default(
            "USEROP_BUILDER_MAX_FEE_PER_GAS_PERCENTAGE_MULTIPLIER", 110, unsigned_int),
    )

    parser.add_argument(
        "--max_priority_fee_per_gas_percentage_multiplier",
        type=unsigned_int,
        help=(
            "modify the user operation max_priority_fee_per_gas value as the following formula "
            "[max_priority_fee_per_gas = block_max_priority_fee_per_gas * "
            "max_priority_fee_per_gas_percentage_multiplier /100], defaults to 110"
        ),
        nargs="?",
        const=110,
        default=_get_env_or_default(
            "USEROP_BUILDER_MAX_PRIORITY_FEE_PER_GAS_PERCENTAGE_MULTIPLIER", 110, unsigned_int),
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "USEROP_BUILDER_VERBOSE", False, lambda v: v.lower() == "true"),
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s " + "version " + __version__,
    )

    return parser


async def parse_args(cmd_args: list[str]) -> InitData:
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)
    if not args.owner_secret and not args.keystore_file_path:
        argument_parser.error("You must specify either --owner_secret or --keystore_file_path, or set USEROP_BUILDER_OWNER_SECRET or USEROP_BUILDER_KEYSTORE_FILE_PATH environment variables.")
    init_data = await get_init_data(args)
    return init_data


def init_logging(args: Namespace):
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )


def init_owner_account(args: Namespace) -> LocalAccount:
    if args.keystore_file_path is not None:
        return import_owner_account(
            args.keystore_file_password, args.keystore_file_path
        )
    return owner_account_from_private_key(args.owner_secret)


async def check_valid_ethereum_rpc_and_get_chain_id(
    ethereum_node_urls: list[str]
) -> int:
    try:
        return await get_chain_id(ethereum_node_urls)
    except UserOperationBuildException as excp:
        logging.critical(
            f"Invalid Eth node {ethereum_node_urls}: {excp.message}")
        sys.exit(1)


async def get_init_data(args: Namespace) -> InitData:
    init_logging(args)

    ethereum_node_chain_id = await check_valid_ethereum_rpc_and_get_chain_id(
        args.ethereum_node_url
    )

    if args.chain_id is not None and args.chain_id != ethereum_node_chain_id:
        logging.critical(
            f"Invalid chain id {args.chain_id} with Eth node {args.ethereum_node_url}"
        )
        sys.exit(1)

    owner = init_owner_account(args)

    ret = InitData(
        args.ethereum_node_url,
        owner,
        ethereum_node_chain_id,
        args.factory,
        args.entrypoint,
        args.ecdsa_module,
        args.index,
        args.to,
        args.value,
        args.data,
        args.gas_limit,
        args.nonce,
        args.sign,
        args.legacy_mode,
        args.max_fee_per_gas_percentage_multiplier,
        args.max_priority_fee_per_gas_percentage_multiplier,
        __version__,
    )

    logging.info(
        f"userop-builder {__version__} for owner {owner.address} "
        f"on chain {ethereum_node_chain_id}"
    )

    return ret
