from dataclasses import dataclass
from enum import Enum


class UserOperationBuildExceptionCode(Enum):
    InvalidInput = -32602
    EstimationFailure = -32521
    NetworkFailure = -32603
    EncodingFailure = -32500


@dataclass
class UserOperationBuildException(Exception):
    exception_code: UserOperationBuildExceptionCode
    message: str
