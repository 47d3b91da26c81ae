from dataclasses import dataclass

from userop_builder.typing import Address


@dataclass(frozen=True)
class TransactionDetailsForUserOperation:
    to: Address
    value: int = 0
    data: bytes = b""
    gas_limit: int | None = None
    nonce: int | None = None


@dataclass(frozen=True)
class FeeData:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
