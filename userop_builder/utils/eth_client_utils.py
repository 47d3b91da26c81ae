import asyncio
import json
import logging
from typing import Any

from aiohttp import ClientError, ClientSession

from userop_builder.exceptions import \
    UserOperationBuildException, UserOperationBuildExceptionCode
from userop_builder.typing import Address

# errors the node raises for the request itself (reverts, bad estimates),
# any other error code is treated as a node failure and the next node is tried
# unless the caller accepts every error with request_error_codes=None
REQUEST_ERROR_CODES = (3, -32000, -32603)


async def send_rpc_request_to_eth_client(
    nodes_urls: list[str],
    method: str,
    params=None,
    expected_key: str | None = None,
    request_error_codes: tuple[int, ...] | None = REQUEST_ERROR_CODES,
) -> Any:
    json_request = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": method,
        "params": params,
    }
    headers = {
        "content-type": "application/json",
        "connection": "keep-alive"
    }
    for node_index, chosen_node_url in enumerate(nodes_urls):
        if node_index > 0:
            logging.info(f'retrying with node no: {node_index + 1}.')
        try:
            async with ClientSession() as session:
                async with session.post(
                    chosen_node_url,
                    json=json_request,
                    headers=headers
                ) as response:
                    resp = await response.read()
                    json_result = json.loads(resp)
        except json.decoder.JSONDecodeError:
            logging.error(
                f"Call No. {node_index + 1} to node rpc failed."
                "Invalid json response from eth client."
            )
        except (ClientError, asyncio.TimeoutError) as excp:
            logging.error(
                f"Call No. {node_index + 1} to node rpc failed."
                f"error: {str(excp)}"
            )
        else:
            if not isinstance(json_result, dict):
                logging.error(
                    f"Call No. {node_index + 1} to node rpc failed."
                    f"Unexpected response from eth client: {str(json_result)}"
                )
                continue
            if "error" in json_result:
                error = json_result["error"]
                if not isinstance(error, dict):
                    logging.error(
                        f"Call No. {node_index + 1} to node rpc failed."
                        f"Malformed error from eth client: {str(error)}"
                    )
                    continue
                if (
                    request_error_codes is not None and
                    error.get("code") not in request_error_codes
                ):
                    logging.error(
                        f"Call No. {node_index + 1} to node rpc failed."
                        f"the request: {str(json_request)}"
                        f" with error code: {error.get('code')}"
                        f" and error message: {error.get('message', '')}."
                    )
                    continue
            elif expected_key is not None and expected_key not in json_result:
                logging.error(
                    f"Call No. {node_index + 1} to node rpc failed."
                    f"the request: {str(json_request)}"
                    f"as the key {expected_key} is not in the result: {str(json_result)}"
                )
                continue
            return json_result
    raise UserOperationBuildException(
        UserOperationBuildExceptionCode.NetworkFailure,
        f"Failed rpc request {method} to rpc node client",
    )


def get_rpc_result(
    json_result: dict,
    method: str,
    exception_code=UserOperationBuildExceptionCode.NetworkFailure,
) -> Any:
    if "error" in json_result:
        error = json_result["error"]
        err_message = error.get("message", "")
        if "data" in error:
            err_message += f" data: {error['data']}"
        raise UserOperationBuildException(
            exception_code,
            f"{method} failed: {err_message}",
        )
    return json_result["result"]


async def get_chain_id(ethereum_node_urls: list[str]) -> int:
    raw_res = await send_rpc_request_to_eth_client(
        ethereum_node_urls, "eth_chainId", [], "result"
    )
    return int(get_rpc_result(raw_res, "eth_chainId"), 16)


async def get_code(ethereum_node_urls: list[str], address: Address) -> bytes:
    raw_res = await send_rpc_request_to_eth_client(
        ethereum_node_urls, "eth_getCode", [address, "latest"], "result"
    )
    code_hex = get_rpc_result(raw_res, "eth_getCode")
    return bytes.fromhex(code_hex[2:])


async def eth_call(
    ethereum_node_urls: list[str],
    to: Address,
    call_data: bytes,
) -> bytes:
    params = [
        {
            "to": to,
            "data": "0x" + call_data.hex(),
        },
        "latest",
    ]
    raw_res = await send_rpc_request_to_eth_client(
        ethereum_node_urls, "eth_call", params, "result"
    )
    result_hex = get_rpc_result(raw_res, "eth_call")
    return bytes.fromhex(result_hex[2:])


async def estimate_gas(
    ethereum_node_urls: list[str],
    to: Address,
    call_data: bytes,
    from_address: Address | None = None,
) -> int:
    transaction = {
        "to": to,
        "data": "0x" + call_data.hex(),
    }
    if from_address is not None:
        transaction["from"] = from_address
    raw_res = await send_rpc_request_to_eth_client(
        ethereum_node_urls,
        "eth_estimateGas",
        [transaction],
        "result",
        request_error_codes=None,
    )
    gas_hex = get_rpc_result(
        raw_res,
        "eth_estimateGas",
        UserOperationBuildExceptionCode.EstimationFailure,
    )
    return int(gas_hex, 16)


async def get_gas_price(ethereum_node_urls: list[str]) -> int:
    raw_res = await send_rpc_request_to_eth_client(
        ethereum_node_urls, "eth_gasPrice", None, "result"
    )
    return int(get_rpc_result(raw_res, "eth_gasPrice"), 16)


async def get_max_priority_fee_per_gas(ethereum_node_urls: list[str]) -> int:
    raw_res = await send_rpc_request_to_eth_client(
        ethereum_node_urls, "eth_maxPriorityFeePerGas", None, "result"
    )
    return int(get_rpc_result(raw_res, "eth_maxPriorityFeePerGas"), 16)
