"""jupyter_docker_runtime.container - Docker container lifecycle and exec transport."""

from jupyter_docker_runtime.container.framing import STREAM_HEADER_SIZE, demultiplex
from jupyter_docker_runtime.container.manager import ContainerLifecycleManager
from jupyter_docker_runtime.container.transport import DockerExecTransport, ExecutionTransport

__all__ = [
    "ContainerLifecycleManager",
    "DockerExecTransport",
    "ExecutionTransport",
    "STREAM_HEADER_SIZE",
    "demultiplex",
]
