"""Test fixtures for jupyter-docker-runtime."""

import os
import struct
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from jupyter_docker_runtime.config import RuntimeConfig
from jupyter_docker_runtime.types import ContainerHandle

# Configure DOCKER_HOST for Docker Desktop on macOS/Windows
if not os.environ.get("DOCKER_HOST"):
    _docker_desktop_socket = Path.home() / ".docker" / "run" / "docker.sock"
    if _docker_desktop_socket.exists():
        os.environ["DOCKER_HOST"] = f"unix://{_docker_desktop_socket}"


# =============================================================================
# Docker availability
# =============================================================================


def _docker_available() -> bool:
    """True if a Docker daemon answers a ping."""
    try:
        import docker

        client = docker.from_env()
        client.ping()
        client.close()
        return True
    except Exception:
        # Docker SDK missing, daemon not running, or socket not permitted
        return False


@pytest.fixture(scope="session")
def docker_daemon_check():
    """Session-scoped fixture that skips docker-backed tests without a daemon."""
    if not _docker_available():
        pytest.skip("Docker daemon not available")


def pytest_collection_modifyitems(config, items):  # noqa: ARG001
    """Add docker_daemon_check fixture to all tests in xdist_group('docker')."""
    for item in items:
        for marker in item.iter_markers("xdist_group"):
            if marker.args and marker.args[0] == "docker":
                if "docker_daemon_check" not in item.fixturenames:
                    item.fixturenames.insert(0, "docker_daemon_check")


# =============================================================================
# Framing
# =============================================================================


def frame(stream: int, payload: bytes) -> bytes:
    """Prefix payload with a docker multiplexing header."""
    return struct.pack(">BxxxL", stream, len(payload)) + payload


@pytest.fixture
def make_frame():
    return frame


# =============================================================================
# Workspace and docker doubles
# =============================================================================


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """An empty workspace directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def config() -> RuntimeConfig:
    return RuntimeConfig(container_name="jupyter-runtime-test")


def make_container(
    name: str = "jupyter-runtime-test",
    status: str = "running",
    container_id: str = "abc123",
) -> MagicMock:
    """Create a mock Docker container."""
    container = MagicMock()
    container.name = name
    container.id = container_id
    container.status = status
    container.labels = {}
    container.put_archive.return_value = True
    return container


@pytest.fixture
def mock_docker() -> MagicMock:
    """Docker client with no containers and no images."""
    import docker

    client = MagicMock()
    client.containers.get.side_effect = docker.errors.NotFound("No such container")
    client.containers.list.return_value = []
    client.images.get.side_effect = docker.errors.ImageNotFound("No such image")
    client.images.build.return_value = (MagicMock(), [{"stream": "Step 1/1\n"}])
    return client


class MockTransport:
    """Exec transport that replays canned raw responses.

    Responses are matched on argv prefix; unmatched commands return an empty
    stdout frame.
    """

    def __init__(self) -> None:
        self._responses: list[tuple[list[str], Any]] = []
        self._calls: list[tuple[str, list[str], bool]] = []
        self._detached: list[list[str]] = []

    def respond(self, argv_prefix: list[str], response: Any) -> None:
        """Register raw bytes (or an exception to raise) for an argv prefix."""
        self._responses.append((argv_prefix, response))

    async def exec(
        self,
        handle: ContainerHandle,
        argv: list[str],
        check: bool = False,
    ) -> bytes:
        self._calls.append((handle.name, list(argv), check))
        for prefix, response in self._responses:
            if argv[: len(prefix)] == prefix:
                if isinstance(response, BaseException):
                    raise response
                return response
        return b""

    async def exec_detached(self, handle: ContainerHandle, argv: list[str]) -> None:
        self._detached.append(list(argv))

    @property
    def calls(self) -> list[tuple[str, list[str], bool]]:
        return list(self._calls)

    @property
    def argvs(self) -> list[list[str]]:
        return [argv for _, argv, _ in self._calls]

    @property
    def detached(self) -> list[list[str]]:
        return list(self._detached)


@pytest.fixture
def mock_transport() -> MockTransport:
    return MockTransport()
