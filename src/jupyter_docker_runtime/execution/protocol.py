"""Remote execution protocol.

Ships one cell's source to the helper script inside the container and turns
whatever comes back into an ExecutionResult:

    source -> base64 token -> exec [python, helper, token]
           -> raw frames -> demultiplex -> last JSON line -> ExecutionResult

Unparseable output never escapes as an exception; it becomes an error result
carrying the raw text.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any

from jupyter_docker_runtime.config import RuntimeConfig
from jupyter_docker_runtime.container.framing import demultiplex
from jupyter_docker_runtime.container.manager import ContainerLifecycleManager
from jupyter_docker_runtime.container.transport import ExecutionTransport
from jupyter_docker_runtime.errors import (
    ContainerNotRunningError,
    ExecutionTimeoutError,
    ResultParseError,
)
from jupyter_docker_runtime.types import ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)

PARSE_FAILURE_PREFIX = "Failed to parse execution result"


def encode_source(source: str) -> str:
    """Encode source as a single shell-safe argv token."""
    return base64.b64encode(source.encode("utf-8")).decode("ascii")


def decode_result(stdout: bytes) -> ExecutionResult:
    """Decode helper stdout into an ExecutionResult.

    The helper prints its JSON object as the last line; anything printed
    before it (interpreter warnings, pip noise) is ignored.

    Raises:
        ResultParseError: If no line holds a well-formed result object.
    """
    text = stdout.decode("utf-8", errors="replace")
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise ResultParseError(text, "empty output")

    try:
        payload: Any = json.loads(lines[-1])
    except json.JSONDecodeError as e:
        raise ResultParseError(text, f"invalid JSON: {e.msg}") from e

    if not isinstance(payload, dict):
        raise ResultParseError(text, "result is not an object")

    status = payload.get("status")
    output = payload.get("output", "")
    error = payload.get("error", "")
    if status not in ("ok", "error"):
        raise ResultParseError(text, f"unknown status {status!r}")
    if not isinstance(output, str) or not isinstance(error, str):
        raise ResultParseError(text, "output and error must be strings")

    if status == "ok":
        if error:
            # Helper reported success but also an error; trust the error.
            return ExecutionResult.error(error, stdout=output)
        return ExecutionResult.ok(output)
    return ExecutionResult.error(error, stdout=output)


class RemoteExecutionProtocol:
    """Runs cell source in the container through the uploaded helper.

    Usage:
        protocol = RemoteExecutionProtocol(manager)
        result = await protocol.execute(ExecutionRequest("print(1)"))
    """

    def __init__(
        self,
        manager: ContainerLifecycleManager,
        transport: ExecutionTransport | None = None,
        config: RuntimeConfig | None = None,
    ) -> None:
        self._manager = manager
        self._transport = transport
        self._config = config or manager.config

    @property
    def transport(self) -> ExecutionTransport:
        return self._transport or self._manager.transport

    def build_command(self, source: str) -> list[str]:
        """The exec argv for one cell."""
        return [self._config.python_path, self._config.helper_path, encode_source(source)]

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Execute one request in the container.

        Args:
            request: The cell source to run.

        Returns:
            ExecutionResult; parse failures are folded into an error result.

        Raises:
            ContainerNotRunningError: If the manager has no container.
            ExecutionTransportError: If the exec call itself fails.
            ExecutionTimeoutError: If exec_timeout is configured and exceeded.
        """
        handle = self._manager.handle
        if handle is None:
            raise ContainerNotRunningError(self._manager.container_name)

        argv = self.build_command(request.source_code)
        timeout = self._config.exec_timeout
        try:
            raw = await asyncio.wait_for(self.transport.exec(handle, argv), timeout=timeout)
        except TimeoutError as e:
            # The exec keeps running inside the container; only the wait ends.
            raise ExecutionTimeoutError(timeout or 0.0) from e

        return self.parse_response(raw)

    @staticmethod
    def parse_response(raw: bytes) -> ExecutionResult:
        """Strip transport framing and decode the helper's result."""
        stdout, stderr = demultiplex(raw)
        try:
            return decode_result(stdout)
        except ResultParseError as e:
            logger.warning(f"Unparseable helper output ({e.reason})")
            combined = (stdout + stderr).decode("utf-8", errors="replace")
            return ExecutionResult.error(f"{PARSE_FAILURE_PREFIX}: {combined}")
