"""Error types for jupyter-docker-runtime.

All errors inherit from DockerRuntimeError for easy catching at the host level.
"""


class DockerRuntimeError(Exception):
    """Base class for all jupyter-docker-runtime errors."""

    pass


class ConfigurationMissingError(DockerRuntimeError):
    """Raised when required configuration is absent (e.g. no workspace bound)."""

    pass


class DaemonUnreachableError(DockerRuntimeError):
    """Raised when the Docker daemon cannot be contacted."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Could not connect to Docker: {reason}")


class ImageBuildError(DockerRuntimeError):
    """Raised when an image cannot be built or replaced."""

    def __init__(self, image: str, reason: str) -> None:
        self.image = image
        self.reason = reason
        super().__init__(f"Failed to build image '{image}': {reason}")


class ContainerCreateError(DockerRuntimeError):
    """Raised when a container cannot be created or started."""

    def __init__(self, container_name: str, reason: str) -> None:
        self.container_name = container_name
        self.reason = reason
        super().__init__(f"Failed to start container '{container_name}': {reason}")


class ContainerNotRunningError(DockerRuntimeError):
    """Raised when an operation needs a running container and there is none."""

    def __init__(self, container_name: str) -> None:
        self.container_name = container_name
        super().__init__(f"Container '{container_name}' is not running")


class ExecutionTransportError(DockerRuntimeError):
    """Raised when an exec call inside the container fails."""

    pass


class ContainerGoneError(ExecutionTransportError):
    """Raised when the exec target no longer exists in the daemon."""

    def __init__(self, container_name: str) -> None:
        self.container_name = container_name
        super().__init__(f"Container '{container_name}' no longer exists")


class CommandFailedError(ExecutionTransportError):
    """Raised when a checked command exits with a non-zero status."""

    def __init__(self, argv: list[str], exit_code: int | None, output: str) -> None:
        self.argv = argv
        self.exit_code = exit_code
        self.output = output
        msg = f"Command {' '.join(argv[:3])} exited with status {exit_code}"
        if output.strip():
            msg += f": {output.strip()[-500:]}"
        super().__init__(msg)


class ExecutionTimeoutError(ExecutionTransportError):
    """Raised when a cell's exec call exceeds the configured timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Execution timed out after {timeout_seconds}s")


class ResultParseError(DockerRuntimeError):
    """Raised when helper output is not a valid execution result."""

    def __init__(self, raw: str, reason: str) -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(f"Failed to parse execution result ({reason})")


class InvalidTransitionError(DockerRuntimeError):
    """Raised when a cell execution record is driven through an illegal transition."""

    def __init__(self, cell_id: str, current: str, target: str) -> None:
        self.cell_id = cell_id
        self.current = current
        self.target = target
        super().__init__(f"Cell '{cell_id}' cannot move from {current} to {target}")
