"""Cell execution controller.

Runs a batch of notebook cells one at a time against the container:

    guard (once per batch) -> for each cell: IDLE -> RUNNING -> SUCCEEDED | FAILED

A lifecycle failure in the guard aborts the whole batch. A failure while
running one cell only fails that cell; later cells still run.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from jupyter_docker_runtime.container.manager import ContainerLifecycleManager
from jupyter_docker_runtime.execution.protocol import RemoteExecutionProtocol
from jupyter_docker_runtime.notebook import Cell
from jupyter_docker_runtime.types import (
    CellExecutionRecord,
    ErrorOutput,
    ExecutionRequest,
    ExecutionResult,
    TextOutput,
)

logger = logging.getLogger(__name__)

DEFAULT_ERROR_KIND = "ExecutionError"

# Last line of a Python traceback, e.g. "ZeroDivisionError: division by zero".
_EXCEPTION_LINE = re.compile(
    r"^([A-Za-z_][\w.]*(?:Error|Exception|Exit|Interrupt|Warning))(?::\s?(.*))?$"
)


def error_output_from_detail(detail: str) -> ErrorOutput:
    """Build an ErrorOutput from a formatted traceback or plain message."""
    lines = detail.rstrip("\n").splitlines()
    match = _EXCEPTION_LINE.match(lines[-1]) if lines else None
    if match:
        return ErrorOutput(kind=match.group(1), message=match.group(2) or "", trace=tuple(lines))
    return ErrorOutput(kind=DEFAULT_ERROR_KIND, message=detail, trace=tuple(lines))


def error_output_from_exception(exc: BaseException) -> ErrorOutput:
    return ErrorOutput(kind=DEFAULT_ERROR_KIND, message=str(exc) or type(exc).__name__)


class CellExecutionController:
    """Drives cells through the execution state machine.

    Batches must not overlap: the manager does no locking of its own.
    """

    def __init__(
        self,
        manager: ContainerLifecycleManager,
        protocol: RemoteExecutionProtocol | None = None,
    ) -> None:
        self._manager = manager
        self._protocol = protocol or RemoteExecutionProtocol(manager)
        self._execution_order = 0

    @property
    def execution_order(self) -> int:
        """Order number handed to the most recently started cell."""
        return self._execution_order

    def reset_execution_order(self) -> None:
        """Restart numbering, e.g. after the container's session was lost."""
        self._execution_order = 0

    async def execute_cells(self, cells: Sequence[Cell]) -> list[CellExecutionRecord]:
        """Run cells strictly in order.

        Args:
            cells: Cells to run. Each cell's outputs and execution_count are
                updated as it finishes.

        Returns:
            One terminal record per cell, in input order.

        Raises:
            DockerRuntimeError: If the container cannot be brought up; no
                cell after the failing guard is run.
        """
        records: list[CellExecutionRecord] = []
        guarded = False

        for cell in cells:
            record = CellExecutionRecord(cell_id=cell.id)

            if not cell.has_runnable_source:
                record.succeed()
                records.append(record)
                continue

            if not guarded:
                await self._ensure_ready()
                guarded = True

            await self._run_cell(cell, record)
            records.append(record)

        return records

    async def _ensure_ready(self) -> None:
        """Batch guard: bring up the container and kernel if needed."""
        if not await self._manager.is_container_running():
            logger.info("Container not running, starting it")
            await self._manager.ensure_container()
            await self._manager.setup_kernel()
            self.reset_execution_order()
            return

        # Running under the canonical name, but possibly a different container
        # than the cached one. Re-resolving clears kernel_ready on an id change.
        previous = self._manager.handle
        current = await self._manager.ensure_container()
        if not self._manager.kernel_ready:
            await self._manager.setup_kernel()
            if previous is not None and previous.container_id != current.container_id:
                logger.info("Container was replaced, session state lost")
                self.reset_execution_order()

    async def _run_cell(self, cell: Cell, record: CellExecutionRecord) -> None:
        self._execution_order += 1
        record.start(execution_order=self._execution_order)
        cell.outputs.clear()

        try:
            result = await self._protocol.execute(ExecutionRequest(source_code=cell.source))
        except Exception as e:
            # Intentionally broad: any failure here fails this cell only.
            logger.warning(f"Cell {cell.id} failed before producing a result: {e}")
            record.fail(error_output_from_exception(e))
        else:
            self._apply_result(record, result)

        cell.outputs.extend(record.outputs)
        cell.execution_count = record.execution_order
        logger.debug(f"Cell {cell.id} finished: {record.state.value}")

    @staticmethod
    def _apply_result(record: CellExecutionRecord, result: ExecutionResult) -> None:
        if result.is_ok:
            if result.stdout:
                record.append_output(TextOutput.plain(result.stdout))
            record.succeed()
        else:
            record.fail(error_output_from_detail(result.error_detail))
