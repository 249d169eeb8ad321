"""jupyter_docker_runtime.execution - Remote execution protocol and cell controller."""

from jupyter_docker_runtime.execution.controller import CellExecutionController
from jupyter_docker_runtime.execution.protocol import (
    RemoteExecutionProtocol,
    decode_result,
    encode_source,
)

__all__ = [
    "CellExecutionController",
    "RemoteExecutionProtocol",
    "decode_result",
    "encode_source",
]
