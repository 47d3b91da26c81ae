import json
import logging
import sys

import uvloop

from userop_builder.account.smart_account import SmartAccount
from userop_builder.exceptions import UserOperationBuildException
from userop_builder.gas.gas_manager import GasManager
from userop_builder.user_operation.models import \
    TransactionDetailsForUserOperation

from .cli_manager import parse_args


async def main(cmd_args=sys.argv[1:]) -> dict:
    init_data = await parse_args(cmd_args)

    smart_account = SmartAccount(
        init_data.owner,
        init_data.ethereum_node_urls,
        init_data.factory_address,
        init_data.entrypoint_address,
        init_data.ecdsa_module_address,
        init_data.index,
        GasManager(
            init_data.ethereum_node_urls,
            init_data.is_legacy_mode,
            init_data.max_fee_per_gas_percentage_multiplier,
            init_data.max_priority_fee_per_gas_percentage_multiplier,
        ),
    )

    details = TransactionDetailsForUserOperation(
        to=init_data.to,
        value=init_data.value,
        data=init_data.data,
        gas_limit=init_data.gas_limit,
        nonce=init_data.nonce,
    )
    user_operation = await smart_account.create_unsigned_user_operation(
        [details])
    if init_data.sign:
        user_operation = await smart_account.sign_user_operation(
            user_operation)
    user_operation_hash = await smart_account.get_user_operation_hash(
        user_operation)

    result = {
        "userOperation": user_operation.get_user_operation_json(),
        "userOperationHash": user_operation_hash,
        "entryPoint": smart_account.entrypoint_address,
        "chainId": hex(init_data.chain_id),
    }
    print(json.dumps(result, indent=2))
    return result


def run() -> None:
    try:
        uvloop.run(main())
    except UserOperationBuildException as excp:
        logging.error(
            f"Building user operation failed with "
            f"{excp.exception_code.name}: {excp.message}"
        )
        sys.exit(1)
