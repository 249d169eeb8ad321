"""MCP server exposing the Docker notebook runtime to MCP clients.

Usage:
    # Serve the current directory as the workspace
    jupyter-docker-mcp --workspace .

    # With Claude Code
    claude mcp add jupyter-docker -- jupyter-docker-mcp --workspace ~/project

Cells run inside the workspace's container. Variables persist across
run_code and run_notebook calls until the container is stopped or rebuilt.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

from jupyter_docker_runtime.errors import ConfigurationMissingError
from jupyter_docker_runtime.notebook import Cell
from jupyter_docker_runtime.types import CellExecutionRecord, ErrorOutput, TextOutput

if TYPE_CHECKING:
    from jupyter_docker_runtime.runtime import NotebookRuntime

mcp = FastMCP("jupyter-docker-runtime")

# Global runtime - initialized in main() before mcp.run()
_runtime: NotebookRuntime | None = None


def _record_to_dict(record: CellExecutionRecord) -> dict[str, Any]:
    outputs: list[dict[str, Any]] = []
    for item in record.outputs:
        if isinstance(item, TextOutput):
            outputs.append({"type": "text", "mime": item.mime, "text": item.text})
        elif isinstance(item, ErrorOutput):
            outputs.append(
                {"type": "error", "kind": item.kind, "message": item.message, "trace": list(item.trace)}
            )
    return {
        "cell_id": record.cell_id,
        "state": record.state.value,
        "execution_order": record.execution_order,
        "outputs": outputs,
    }


@mcp.tool
async def run_code(code: str) -> str:
    """Execute Python code inside the workspace container.

    The namespace persists across calls - variables survive between
    run_code invocations until the container is stopped or rebuilt.
    """
    if _runtime is None:
        return "Error: Runtime not initialized"

    records = await _runtime.run_cells([Cell.code(code)])
    if not records:
        return "Error: Container could not be started"

    record = records[0]
    parts: list[str] = []
    for item in record.outputs:
        if isinstance(item, TextOutput):
            parts.append(item.text)
        elif isinstance(item, ErrorOutput):
            parts.append("Error: " + ("\n".join(item.trace) or f"{item.kind}: {item.message}"))
    return "".join(parts) or "(no output)"


@mcp.tool
async def run_notebook(path: str) -> list[dict]:
    """Run every code cell of a notebook (.ipynb) and save the outputs.

    Args:
        path: Notebook path, absolute or relative to the workspace.
    """
    if _runtime is None:
        return []
    records = await _runtime.run_notebook(Path(path))
    return [_record_to_dict(record) for record in records]


@mcp.tool
async def rebuild_container() -> bool:
    """Remove the container and image, then build and start them again."""
    if _runtime is None:
        return False
    return await _runtime.rebuild_container()


@mcp.tool
async def stop_container() -> bool:
    """Stop and remove the workspace container. Session state is lost."""
    if _runtime is None:
        return False
    await _runtime.stop_container()
    return True


@mcp.tool
async def list_kernels() -> list[str]:
    """List kernels installed in the container."""
    if _runtime is None:
        return []
    return await _runtime.list_kernels()


@mcp.tool
async def select_kernel(name: str) -> bool:
    """Select the kernel recorded in notebooks saved by run_notebook.

    Args:
        name: One of the names returned by list_kernels.
    """
    if _runtime is None:
        return False
    return await _runtime.select_kernel(name)


@mcp.tool
async def container_status() -> dict:
    """Report the workspace image, container and kernel state."""
    if _runtime is None:
        return {"error": "Runtime not initialized"}
    return await _runtime.status()


async def create_runtime(args: argparse.Namespace) -> NotebookRuntime:
    """Create runtime based on CLI args."""
    from jupyter_docker_runtime.runtime import NotebookRuntime

    runtime = NotebookRuntime(workspace=Path(args.workspace))
    if args.auto_start or runtime.config.auto_start:
        await runtime.ensure_running()
    return runtime


def main() -> None:
    parser = argparse.ArgumentParser(
        description="MCP server for running notebook cells in a Docker container",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve a workspace
  jupyter-docker-mcp --workspace ~/project

  # Start the container immediately
  jupyter-docker-mcp --workspace ~/project --auto-start
        """,
    )
    parser.add_argument(
        "--workspace",
        default=".",
        help="Workspace directory, mounted at /workspace in the container (default: .)",
    )
    parser.add_argument(
        "--auto-start",
        action="store_true",
        help="Start the container and kernel before serving",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    # stdout belongs to the stdio transport
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    global _runtime
    try:
        _runtime = asyncio.run(create_runtime(args))
    except ConfigurationMissingError as e:
        parser.error(str(e))

    # Run MCP server (stdio transport by default)
    mcp.run()


if __name__ == "__main__":
    main()
