"""Core type definitions for jupyter-docker-runtime."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from jupyter_docker_runtime.errors import InvalidTransitionError

IMAGE_PREFIX = "jupyter-docker-"

_INVALID_IMAGE_CHARS = re.compile(r"[^a-z0-9_.-]+")


@dataclass(frozen=True)
class ImageDescriptor:
    """Image identity for one workspace.

    The name is derived only from the workspace directory, so repeated
    activations on the same workspace always target the same image.
    """

    name: str
    build_context_path: Path

    @classmethod
    def for_workspace(cls, workspace_root: Path, dockerfile_path: str) -> ImageDescriptor:
        """Derive the image descriptor for a workspace.

        Args:
            workspace_root: Host directory of the workspace.
            dockerfile_path: Dockerfile location relative to the workspace.

        Returns:
            ImageDescriptor with a docker-safe lowercase name.
        """
        base = _INVALID_IMAGE_CHARS.sub("-", workspace_root.name.lower()).strip("-._")
        return cls(
            name=f"{IMAGE_PREFIX}{base or 'workspace'}",
            build_context_path=workspace_root / dockerfile_path,
        )


@dataclass(frozen=True)
class ContainerHandle:
    """Name-based reference to a daemon-owned container.

    daemon_ref is a cached docker SDK object that may be stale; the daemon owns
    the container's lifetime, so callers re-resolve by name before trusting it.
    """

    name: str
    daemon_ref: Any = field(default=None, compare=False, repr=False)

    @property
    def container_id(self) -> str | None:
        return getattr(self.daemon_ref, "id", None)


@dataclass(frozen=True)
class ExecutionRequest:
    """One cell's source code, to be run remotely."""

    source_code: str


ResultStatus = Literal["ok", "error"]


@dataclass(frozen=True)
class ExecutionResult:
    """Structured result of one remote execution.

    status == "ok" implies error_detail is empty; status == "error" implies
    error_detail is non-empty.
    """

    status: ResultStatus
    stdout: str = ""
    error_detail: str = ""

    def __post_init__(self) -> None:
        if self.status not in ("ok", "error"):
            raise ValueError(f"Unknown result status: {self.status!r}")
        if self.status == "ok" and self.error_detail:
            raise ValueError("A successful result cannot carry error detail")
        if self.status == "error" and not self.error_detail:
            raise ValueError("A failed result must carry error detail")

    @property
    def is_ok(self) -> bool:
        """True if execution succeeded."""
        return self.status == "ok"

    @classmethod
    def ok(cls, stdout: str = "") -> ExecutionResult:
        return cls(status="ok", stdout=stdout)

    @classmethod
    def error(cls, detail: str, stdout: str = "") -> ExecutionResult:
        return cls(
            status="error",
            stdout=stdout,
            error_detail=detail or "Execution failed without error detail",
        )


# =============================================================================
# Output items
# =============================================================================


@dataclass(frozen=True)
class TextOutput:
    """Output data of a single mime type (text/plain, text/html, image/png...)."""

    mime: str
    data: bytes

    @classmethod
    def plain(cls, text: str) -> TextOutput:
        return cls(mime="text/plain", data=text.encode("utf-8"))

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class ErrorOutput:
    """An error raised by cell code (or by the runtime while running it)."""

    kind: str
    message: str
    trace: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnknownOutput:
    """An interchange output record that could not be recognised.

    The raw record is kept so it survives a load/save cycle unchanged.
    """

    raw: dict[str, Any]


OutputItem = TextOutput | ErrorOutput | UnknownOutput


# =============================================================================
# Cell execution records
# =============================================================================


class CellState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CellState.SUCCEEDED, CellState.FAILED)


@dataclass
class CellExecutionRecord:
    """State of one cell run.

    Lifecycle: IDLE -> RUNNING -> SUCCEEDED | FAILED, or IDLE -> SUCCEEDED
    directly for cells with nothing to run. Terminal states are final; a new
    run needs a new record.
    """

    cell_id: str
    state: CellState = CellState.IDLE
    started_at: float | None = None
    ended_at: float | None = None
    outputs: list[OutputItem] = field(default_factory=list)
    execution_order: int | None = None

    def start(self, execution_order: int | None = None) -> None:
        """Move IDLE -> RUNNING, clearing any outputs."""
        self._require(CellState.IDLE, CellState.RUNNING)
        self.state = CellState.RUNNING
        self.started_at = time.time()
        self.execution_order = execution_order
        self.outputs.clear()

    def append_output(self, item: OutputItem) -> None:
        if self.state is not CellState.RUNNING:
            raise InvalidTransitionError(self.cell_id, self.state.value, "append_output")
        self.outputs.append(item)

    def succeed(self) -> None:
        """Move to SUCCEEDED (from RUNNING, or directly from IDLE for a no-op run)."""
        if self.state is CellState.IDLE:
            self.started_at = time.time()
        elif self.state is not CellState.RUNNING:
            raise InvalidTransitionError(self.cell_id, self.state.value, CellState.SUCCEEDED.value)
        self.state = CellState.SUCCEEDED
        self.ended_at = time.time()

    def fail(self, error: ErrorOutput) -> None:
        """Move RUNNING -> FAILED, recording the error as the cell's output."""
        self._require(CellState.RUNNING, CellState.FAILED)
        self.outputs.append(error)
        self.state = CellState.FAILED
        self.ended_at = time.time()

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    def _require(self, expected: CellState, target: CellState) -> None:
        if self.state is not expected:
            raise InvalidTransitionError(self.cell_id, self.state.value, target.value)
