"""jupyter-docker-runtime: run notebook cells inside a Docker container."""

from jupyter_docker_runtime.config import RuntimeConfig, load_config
from jupyter_docker_runtime.container import ContainerLifecycleManager, DockerExecTransport

# All errors (foundational)
from jupyter_docker_runtime.errors import (
    CommandFailedError,
    ConfigurationMissingError,
    ContainerCreateError,
    ContainerGoneError,
    ContainerNotRunningError,
    DaemonUnreachableError,
    DockerRuntimeError,
    ExecutionTimeoutError,
    ExecutionTransportError,
    ImageBuildError,
    InvalidTransitionError,
    ResultParseError,
)
from jupyter_docker_runtime.execution import CellExecutionController, RemoteExecutionProtocol
from jupyter_docker_runtime.notebook import (
    Cell,
    CellKind,
    NotebookDocument,
    deserialize_notebook,
    load_notebook,
    save_notebook,
    serialize_notebook,
)
from jupyter_docker_runtime.runtime import NotebookRuntime

# Core types (foundational, used everywhere)
from jupyter_docker_runtime.types import (
    CellExecutionRecord,
    CellState,
    ContainerHandle,
    ErrorOutput,
    ExecutionRequest,
    ExecutionResult,
    ImageDescriptor,
    OutputItem,
    TextOutput,
    UnknownOutput,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "NotebookRuntime",
    "RuntimeConfig",
    "load_config",
    "ContainerLifecycleManager",
    "DockerExecTransport",
    "RemoteExecutionProtocol",
    "CellExecutionController",
    # Notebook
    "Cell",
    "CellKind",
    "NotebookDocument",
    "deserialize_notebook",
    "serialize_notebook",
    "load_notebook",
    "save_notebook",
    # Types
    "CellExecutionRecord",
    "CellState",
    "ContainerHandle",
    "ErrorOutput",
    "ExecutionRequest",
    "ExecutionResult",
    "ImageDescriptor",
    "OutputItem",
    "TextOutput",
    "UnknownOutput",
    # Errors
    "DockerRuntimeError",
    "ConfigurationMissingError",
    "DaemonUnreachableError",
    "ImageBuildError",
    "ContainerCreateError",
    "ContainerNotRunningError",
    "ExecutionTransportError",
    "ContainerGoneError",
    "CommandFailedError",
    "ExecutionTimeoutError",
    "ResultParseError",
    "InvalidTransitionError",
]
