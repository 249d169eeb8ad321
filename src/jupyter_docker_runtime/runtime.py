"""NotebookRuntime - host-facing wiring for the Docker notebook runtime.

Binds a workspace to one lifecycle manager, execution protocol and cell
controller, and exposes the outward commands (run, rebuild, stop, kernels).
Lifecycle failures are reported once through a notifier instead of raising
into the host.

Usage:
    async with NotebookRuntime(workspace=Path("~/project")) as runtime:
        records = await runtime.run_notebook(Path("analysis.ipynb"))
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Literal

from jupyter_docker_runtime.config import RuntimeConfig, load_config, resolve_workspace
from jupyter_docker_runtime.container.manager import ContainerLifecycleManager
from jupyter_docker_runtime.errors import DockerRuntimeError
from jupyter_docker_runtime.execution.controller import CellExecutionController
from jupyter_docker_runtime.execution.protocol import RemoteExecutionProtocol
from jupyter_docker_runtime.notebook import Cell, load_notebook, save_notebook
from jupyter_docker_runtime.types import CellExecutionRecord

logger = logging.getLogger(__name__)

NotifyLevel = Literal["info", "error"]
Notifier = Callable[[NotifyLevel, str], None]


def log_notifier(level: NotifyLevel, message: str) -> None:
    """Default notifier: route user-visible messages to the log."""
    if level == "error":
        logger.error(message)
    else:
        logger.info(message)


class NotebookRuntime:
    """One workspace's Docker-backed notebook runtime."""

    def __init__(
        self,
        workspace: str | Path | None,
        config: RuntimeConfig | None = None,
        docker_client: Any = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize runtime.

        Args:
            workspace: Workspace directory. Required.
            config: Runtime configuration. Loaded from the workspace if None.
            docker_client: Docker SDK client (created from env if None).
            notifier: Receives user-visible messages. Defaults to logging.

        Raises:
            ConfigurationMissingError: If no workspace is bound.
        """
        root = resolve_workspace(workspace)
        self.config = config or load_config(root)
        self.manager = ContainerLifecycleManager(root, self.config, docker_client=docker_client)
        self.protocol = RemoteExecutionProtocol(self.manager)
        self.controller = CellExecutionController(self.manager, self.protocol)
        self._notify = notifier or log_notifier
        self._selected_kernel = self.config.kernel_name

    @property
    def workspace_root(self) -> Path:
        return self.manager.workspace_root

    @property
    def selected_kernel(self) -> str:
        return self._selected_kernel

    async def __aenter__(self) -> NotebookRuntime:
        if self.config.auto_start:
            await self.ensure_running()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.dispose()

    async def ensure_running(self) -> bool:
        """Bring the container and kernel up if needed.

        Returns:
            True if the runtime is ready, False if startup failed (notified).
        """
        try:
            if await self.manager.is_container_running() and self.manager.kernel_ready:
                return True
            await self.manager.ensure_container()
            await self.manager.setup_kernel()
        except DockerRuntimeError as e:
            self._notify("error", f"Failed to start container: {e}")
            return False
        self.controller.reset_execution_order()
        self._notify("info", "Jupyter Docker runtime ready!")
        return True

    async def run_cells(self, cells: Sequence[Cell]) -> list[CellExecutionRecord]:
        """Execute cells in order.

        Returns:
            Terminal records, or an empty list if the batch was aborted
            because the container could not be started (notified).
        """
        try:
            return await self.controller.execute_cells(cells)
        except DockerRuntimeError as e:
            self._notify("error", f"Failed to start container: {e}")
            return []

    async def run_notebook(self, path: Path, save: bool = True) -> list[CellExecutionRecord]:
        """Run every code cell of an .ipynb file, writing outputs back."""
        notebook_path = path if Path(path).is_absolute() else self.workspace_root / path
        document = load_notebook(notebook_path)
        records = await self.run_cells(document.cells)
        if records and save:
            document.set_kernel(self._selected_kernel, self.config.kernel_display_name)
            save_notebook(document, notebook_path)
        return records

    async def rebuild_container(self) -> bool:
        """Rebuild image and container from scratch."""
        try:
            await self.manager.rebuild_container()
        except DockerRuntimeError as e:
            self._notify("error", f"Failed to rebuild container: {e}")
            return False
        self.controller.reset_execution_order()
        self._notify("info", "Container rebuilt successfully")
        return True

    async def stop_container(self) -> None:
        await self.manager.stop_container()
        self.controller.reset_execution_order()
        self._notify("info", "Container stopped")

    async def list_kernels(self) -> list[str]:
        return await self.manager.list_available_kernels()

    async def select_kernel(self, name: str) -> bool:
        """Select a kernel by name for notebooks saved by this runtime."""
        kernels = await self.list_kernels()
        if name not in kernels:
            self._notify("error", f"Unknown kernel: {name}")
            return False
        self._selected_kernel = name
        self._notify("info", f"Selected kernel: {name}")
        return True

    async def status(self) -> dict[str, Any]:
        """Snapshot of the runtime for display."""
        return {
            "workspace": str(self.workspace_root),
            "image": self.manager.image.name,
            "container": self.manager.container_name,
            "running": await self.manager.is_container_running(),
            "kernel_ready": self.manager.kernel_ready,
            "kernel": self._selected_kernel,
        }

    async def dispose(self) -> None:
        await self.manager.dispose()
