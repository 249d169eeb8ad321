"""Tests for ContainerLifecycleManager against a mocked docker SDK."""

import io
import json
import logging
import tarfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import docker
import pytest
import requests
from tests.conftest import MockTransport, frame, make_container

from jupyter_docker_runtime.config import DEFAULT_DOCKERFILE, RuntimeConfig
from jupyter_docker_runtime.container.framing import STDOUT
from jupyter_docker_runtime.container.manager import (
    KEEPALIVE_COMMAND,
    WORKSPACE_LABEL,
    ContainerLifecycleManager,
)
from jupyter_docker_runtime.errors import (
    CommandFailedError,
    ConfigurationMissingError,
    ContainerCreateError,
    ContainerNotRunningError,
    DaemonUnreachableError,
    ExecutionTransportError,
    ImageBuildError,
)
from jupyter_docker_runtime.types import ContainerHandle


def _api_error(status_code: int) -> docker.errors.APIError:
    response = MagicMock()
    response.status_code = status_code
    return docker.errors.APIError("daemon said no", response=response)


def _starts_on_reload(container: MagicMock) -> MagicMock:
    """Make reload() observe the container as running, as after a real start()."""

    def reload() -> None:
        container.status = "running"

    container.reload.side_effect = reload
    return container


def _daemon_creates(mock_docker: MagicMock, container: MagicMock) -> None:
    """containers.create returns container and makes it resolvable by name."""

    def create(**kwargs):
        mock_docker.containers.get.side_effect = None
        mock_docker.containers.get.return_value = container
        return container

    mock_docker.containers.create.side_effect = create


def _daemon_has(mock_docker: MagicMock, container: MagicMock | None) -> None:
    if container is None:
        mock_docker.containers.get.side_effect = docker.errors.NotFound("No such container")
    else:
        mock_docker.containers.get.side_effect = None
        mock_docker.containers.get.return_value = container


@pytest.fixture
def manager(
    workspace: Path,
    config: RuntimeConfig,
    mock_docker: MagicMock,
    mock_transport: MockTransport,
) -> ContainerLifecycleManager:
    return ContainerLifecycleManager(
        workspace, config, docker_client=mock_docker, transport=mock_transport
    )


class TestConstruction:
    def test_requires_workspace(self, config: RuntimeConfig) -> None:
        with pytest.raises(ConfigurationMissingError):
            ContainerLifecycleManager(None, config, docker_client=MagicMock())

    def test_image_named_after_workspace(self, manager: ContainerLifecycleManager) -> None:
        assert manager.image.name == "jupyter-docker-project"
        assert manager.image.build_context_path == manager.workspace_root / "Dockerfile"

    def test_initial_state(self, manager: ContainerLifecycleManager) -> None:
        assert manager.handle is None
        assert manager.kernel_ready is False
        assert manager.container_name == "jupyter-runtime-test"


class TestEnsureContainer:
    @pytest.mark.asyncio
    async def test_builds_and_creates_when_missing(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock, workspace: Path
    ) -> None:
        container = _starts_on_reload(make_container(status="created"))
        _daemon_creates(mock_docker, container)

        handle = await manager.ensure_container()

        assert handle == ContainerHandle(name="jupyter-runtime-test")
        assert handle.container_id == "abc123"
        assert manager.handle is handle

        # Default Dockerfile is written and used as the build context
        assert (workspace / "Dockerfile").read_text() == DEFAULT_DOCKERFILE
        build_kwargs = mock_docker.images.build.call_args.kwargs
        assert build_kwargs["tag"] == "jupyter-docker-project"
        assert build_kwargs["rm"] is True
        assert build_kwargs["fileobj"].read() == DEFAULT_DOCKERFILE.encode()

        create_kwargs = mock_docker.containers.create.call_args.kwargs
        assert create_kwargs["image"] == "jupyter-docker-project"
        assert create_kwargs["name"] == "jupyter-runtime-test"
        assert create_kwargs["command"] == KEEPALIVE_COMMAND
        assert create_kwargs["working_dir"] == "/workspace"
        assert create_kwargs["volumes"] == {
            str(workspace): {"bind": "/workspace", "mode": "rw"}
        }
        assert create_kwargs["labels"] == {WORKSPACE_LABEL: str(workspace)}
        container.start.assert_called_once()

    @pytest.mark.asyncio
    async def test_is_idempotent(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        """A second call finds the running container and changes nothing."""
        container = _starts_on_reload(make_container(status="created"))
        _daemon_creates(mock_docker, container)

        first = await manager.ensure_container()
        second = await manager.ensure_container()

        assert first == second
        assert mock_docker.images.build.call_count == 1
        assert mock_docker.containers.create.call_count == 1
        assert container.start.call_count == 1

    @pytest.mark.asyncio
    async def test_existing_dockerfile_used(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock, workspace: Path
    ) -> None:
        (workspace / "Dockerfile").write_text("FROM python:3.12-slim\n")
        _daemon_creates(mock_docker, _starts_on_reload(make_container(status="created")))

        await manager.ensure_container()

        fileobj = mock_docker.images.build.call_args.kwargs["fileobj"]
        assert fileobj.read() == b"FROM python:3.12-slim\n"

    @pytest.mark.asyncio
    async def test_existing_image_not_rebuilt(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.images.get.side_effect = None
        _daemon_creates(mock_docker, _starts_on_reload(make_container(status="created")))

        await manager.ensure_container()

        mock_docker.images.get.assert_called_with("jupyter-docker-project")
        mock_docker.images.build.assert_not_called()

    @pytest.mark.asyncio
    async def test_running_container_reused(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = make_container()
        _daemon_has(mock_docker, container)

        handle = await manager.ensure_container()

        assert handle.daemon_ref is container
        container.start.assert_not_called()
        mock_docker.containers.create.assert_not_called()
        mock_docker.images.build.assert_not_called()

    @pytest.mark.asyncio
    async def test_stopped_container_started(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = _starts_on_reload(make_container(status="exited"))
        _daemon_has(mock_docker, container)

        await manager.ensure_container()

        container.start.assert_called_once()
        mock_docker.containers.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_handle_recreated(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        mock_transport: MockTransport,
    ) -> None:
        """A container removed outside the runtime is recreated on next ensure."""
        original = make_container(container_id="original")
        _daemon_has(mock_docker, original)
        await manager.ensure_container()
        await manager.setup_kernel()
        assert manager.kernel_ready

        # Removed out-of-band
        _daemon_has(mock_docker, None)
        replacement = _starts_on_reload(make_container(status="created", container_id="new"))
        _daemon_creates(mock_docker, replacement)

        handle = await manager.ensure_container()

        assert handle.container_id == "new"
        mock_docker.containers.create.assert_called_once()
        assert manager.kernel_ready is False

    @pytest.mark.asyncio
    async def test_create_conflict_reuses_existing(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        """409 on create: another caller won the race, use its container."""
        existing = make_container()
        mock_docker.containers.get.side_effect = [
            docker.errors.NotFound("No such container"),
            existing,
        ]
        mock_docker.containers.create.side_effect = _api_error(409)

        handle = await manager.ensure_container()

        assert handle.daemon_ref is existing

    @pytest.mark.asyncio
    async def test_create_failure(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.containers.create.side_effect = _api_error(500)

        with pytest.raises(ContainerCreateError):
            await manager.ensure_container()
        assert manager.handle is None

    @pytest.mark.asyncio
    async def test_start_failure(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        """A container that does not reach running is an error."""
        container = make_container(status="exited")
        _daemon_has(mock_docker, container)

        with pytest.raises(ContainerCreateError, match="exited"):
            await manager.ensure_container()
        assert manager.handle is None

    @pytest.mark.asyncio
    async def test_build_failure(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.images.build.side_effect = docker.errors.BuildError(
            "The command '/bin/sh -c pip install nope' returned a non-zero code: 1",
            [{"stream": "Step 3/5 : RUN pip install nope\n"}],
        )

        with pytest.raises(ImageBuildError, match="non-zero code"):
            await manager.ensure_container()
        mock_docker.containers.create.assert_not_called()
        assert manager.handle is None

    @pytest.mark.asyncio
    async def test_daemon_unreachable(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.containers.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(DaemonUnreachableError):
            await manager.ensure_container()

    @pytest.mark.asyncio
    async def test_daemon_drops_during_image_lookup(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.images.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(DaemonUnreachableError):
            await manager.ensure_container()
        assert manager.handle is None

    @pytest.mark.asyncio
    async def test_build_timeout(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.images.build.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(ImageBuildError, match="read timed out"):
            await manager.ensure_container()
        mock_docker.containers.create.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("raised", "expected"),
        [
            (requests.exceptions.ConnectionError("refused"), DaemonUnreachableError),
            (requests.exceptions.ReadTimeout("read timed out"), ContainerCreateError),
        ],
    )
    async def test_daemon_failure_during_create(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        raised: Exception,
        expected: type[Exception],
    ) -> None:
        mock_docker.containers.create.side_effect = raised

        with pytest.raises(expected):
            await manager.ensure_container()
        assert manager.handle is None

    @pytest.mark.asyncio
    async def test_daemon_drops_during_start(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = make_container(status="exited")
        container.start.side_effect = requests.exceptions.ConnectionError("refused")
        _daemon_has(mock_docker, container)

        with pytest.raises(DaemonUnreachableError):
            await manager.ensure_container()

    @pytest.mark.asyncio
    async def test_paused_container_unpaused(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = _starts_on_reload(make_container(status="paused"))
        _daemon_has(mock_docker, container)

        handle = await manager.ensure_container()

        container.unpause.assert_called_once()
        container.start.assert_not_called()
        assert handle.daemon_ref is container

    @pytest.mark.asyncio
    async def test_running_container_replaced_clears_kernel(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
    ) -> None:
        """Same name, new id: the helper is gone and must be reinstalled."""
        _daemon_has(mock_docker, make_container(container_id="old"))
        await manager.ensure_container()
        await manager.setup_kernel()
        assert manager.kernel_ready

        _daemon_has(mock_docker, make_container(container_id="new"))
        handle = await manager.ensure_container()

        assert handle.container_id == "new"
        assert manager.kernel_ready is False
        mock_docker.containers.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_container_from_other_workspace_warns(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        container = make_container()
        container.labels = {WORKSPACE_LABEL: "/home/someone/elsewhere"}
        _daemon_has(mock_docker, container)

        with caplog.at_level(logging.WARNING, logger="jupyter_docker_runtime.container.manager"):
            handle = await manager.ensure_container()

        assert handle.daemon_ref is container
        assert "/home/someone/elsewhere" in caplog.text

    @pytest.mark.asyncio
    async def test_container_from_same_workspace_is_quiet(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        container = make_container()
        container.labels = {WORKSPACE_LABEL: str(manager.workspace_root)}
        _daemon_has(mock_docker, container)

        with caplog.at_level(logging.WARNING, logger="jupyter_docker_runtime.container.manager"):
            await manager.ensure_container()

        assert caplog.records == []


class TestIsContainerRunning:
    @pytest.mark.asyncio
    async def test_running(self, manager: ContainerLifecycleManager, mock_docker: MagicMock) -> None:
        mock_docker.containers.list.return_value = [make_container()]

        assert await manager.is_container_running() is True
        mock_docker.containers.list.assert_called_once_with(
            filters={"name": "jupyter-runtime-test", "status": "running"}
        )

    @pytest.mark.asyncio
    async def test_name_must_match_exactly(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        """The daemon's name filter matches substrings."""
        mock_docker.containers.list.return_value = [make_container(name="jupyter-runtime-test-2")]

        assert await manager.is_container_running() is False

    @pytest.mark.asyncio
    async def test_query_failure_means_not_running(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.containers.list.side_effect = requests.exceptions.ConnectionError("refused")

        assert await manager.is_container_running() is False


class TestSetupKernel:
    @pytest.mark.asyncio
    async def test_installs_kernel_and_helper(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        mock_transport: MockTransport,
    ) -> None:
        container = make_container()
        _daemon_has(mock_docker, container)
        await manager.ensure_container()

        await manager.setup_kernel()

        assert mock_transport.argvs == [
            ["/usr/local/bin/python3", "-m", "pip", "install", "--quiet", "ipykernel", "jupyter"],
            [
                "/usr/local/bin/python3",
                "-m",
                "ipykernel",
                "install",
                "--user",
                "--name",
                "docker-python",
                "--display-name",
                "Python (Docker)",
            ],
        ]
        assert all(check for _, _, check in mock_transport.calls)
        assert mock_transport.detached == [
            ["/usr/local/bin/python3", "/tmp/kernel_helper.py", "--serve"]
        ]
        assert manager.kernel_ready is True

        path, data = container.put_archive.call_args.args
        assert path == "/tmp"
        with tarfile.open(fileobj=io.BytesIO(data)) as tar:
            assert tar.getnames() == ["kernel_helper.py"]
            source = tar.extractfile("kernel_helper.py").read()
        assert b"def run_remote" in source

    @pytest.mark.asyncio
    async def test_skips_pip_without_packages(
        self, workspace: Path, mock_docker: MagicMock, mock_transport: MockTransport
    ) -> None:
        config = RuntimeConfig(container_name="jupyter-runtime-test", kernel_packages=[])
        manager = ContainerLifecycleManager(
            workspace, config, docker_client=mock_docker, transport=mock_transport
        )
        _daemon_has(mock_docker, make_container())

        await manager.setup_kernel()

        assert [argv[2] for argv in mock_transport.argvs] == ["ipykernel"]

    @pytest.mark.asyncio
    async def test_requires_running_container(
        self, manager: ContainerLifecycleManager, mock_transport: MockTransport
    ) -> None:
        with pytest.raises(ContainerNotRunningError):
            await manager.setup_kernel()
        assert mock_transport.calls == []
        assert manager.kernel_ready is False

    @pytest.mark.asyncio
    async def test_install_failure(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        mock_transport: MockTransport,
    ) -> None:
        _daemon_has(mock_docker, make_container())
        mock_transport.respond(
            ["/usr/local/bin/python3", "-m", "pip"],
            CommandFailedError(["python3", "-m", "pip"], 1, "ERROR: offline"),
        )

        with pytest.raises(CommandFailedError):
            await manager.setup_kernel()
        assert manager.kernel_ready is False
        assert mock_transport.detached == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("raised", "expected"),
        [
            (requests.exceptions.ConnectionError("refused"), DaemonUnreachableError),
            (requests.exceptions.ReadTimeout("read timed out"), ExecutionTransportError),
        ],
    )
    async def test_helper_upload_daemon_failure(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        mock_transport: MockTransport,
        raised: Exception,
        expected: type[Exception],
    ) -> None:
        container = make_container()
        container.put_archive.side_effect = raised
        _daemon_has(mock_docker, container)

        with pytest.raises(expected):
            await manager.setup_kernel()
        assert manager.kernel_ready is False
        assert mock_transport.detached == []


class TestListAvailableKernels:
    @pytest.mark.asyncio
    async def test_lists_kernelspecs(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        mock_transport: MockTransport,
    ) -> None:
        _daemon_has(mock_docker, make_container())
        payload = {"kernelspecs": {"python3": {}, "docker-python": {}}}
        mock_transport.respond(
            ["jupyter", "kernelspec", "list", "--json"],
            frame(STDOUT, json.dumps(payload).encode()),
        )

        assert await manager.list_available_kernels() == ["docker-python", "python3"]

    @pytest.mark.asyncio
    async def test_fallback_without_container(self, manager: ContainerLifecycleManager) -> None:
        assert await manager.list_available_kernels() == ["docker-python"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            frame(STDOUT, b"jupyter: command not found\n"),
            frame(STDOUT, b'{"kernelspecs": {}}'),
            CommandFailedError(["jupyter"], 127, ""),
        ],
    )
    async def test_fallback_on_bad_output(
        self,
        manager: ContainerLifecycleManager,
        mock_docker: MagicMock,
        mock_transport: MockTransport,
        response,
    ) -> None:
        _daemon_has(mock_docker, make_container())
        mock_transport.respond(["jupyter"], response)

        assert await manager.list_available_kernels() == ["docker-python"]


class TestStopContainer:
    @pytest.mark.asyncio
    async def test_stops_and_removes(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = make_container()
        _daemon_has(mock_docker, container)
        await manager.ensure_container()

        await manager.stop_container()

        container.stop.assert_called_once_with(timeout=10)
        container.remove.assert_called_once_with(force=True)
        assert manager.handle is None
        assert manager.kernel_ready is False

    @pytest.mark.asyncio
    async def test_already_gone(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        await manager.stop_container()
        assert manager.handle is None

    @pytest.mark.asyncio
    async def test_stop_failure_still_removes(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = make_container()
        container.stop.side_effect = _api_error(500)
        _daemon_has(mock_docker, container)

        await manager.stop_container()

        container.remove.assert_called_once_with(force=True)

    @pytest.mark.asyncio
    async def test_remove_failure_is_swallowed(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = make_container()
        container.remove.side_effect = _api_error(500)
        _daemon_has(mock_docker, container)
        await manager.ensure_container()

        await manager.stop_container()

        assert manager.handle is None

    @pytest.mark.asyncio
    async def test_daemon_unreachable_is_swallowed(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.containers.get.side_effect = requests.exceptions.ConnectionError("refused")
        await manager.stop_container()


class TestRebuildContainer:
    @pytest.mark.asyncio
    async def test_sequence(self, manager: ContainerLifecycleManager) -> None:
        """Stop, remove image, ensure, set up: strictly in that order."""
        calls: list[str] = []
        handle = ContainerHandle(name="jupyter-runtime-test")

        with (
            patch.object(
                manager, "stop_container", AsyncMock(side_effect=lambda: calls.append("stop"))
            ),
            patch.object(
                manager, "_remove_image_sync", side_effect=lambda: calls.append("remove_image")
            ),
            patch.object(
                manager,
                "ensure_container",
                AsyncMock(side_effect=lambda: calls.append("ensure") or handle),
            ),
            patch.object(
                manager, "setup_kernel", AsyncMock(side_effect=lambda: calls.append("setup"))
            ),
        ):
            result = await manager.rebuild_container()

        assert calls == ["stop", "remove_image", "ensure", "setup"]
        assert result is handle

    @pytest.mark.asyncio
    async def test_rebuild_builds_fresh_image(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        old = make_container(container_id="old")
        _daemon_has(mock_docker, old)
        mock_docker.images.get.side_effect = None
        await manager.ensure_container()

        fresh = _starts_on_reload(make_container(status="created", container_id="fresh"))

        def remove_old(force: bool = False) -> None:
            _daemon_has(mock_docker, None)
            _daemon_creates(mock_docker, fresh)

        def remove_image(name: str) -> None:
            mock_docker.images.get.side_effect = docker.errors.ImageNotFound("gone")

        old.remove.side_effect = remove_old
        mock_docker.images.remove.side_effect = remove_image

        handle = await manager.rebuild_container()

        mock_docker.images.remove.assert_called_once_with("jupyter-docker-project")
        mock_docker.images.build.assert_called_once()
        assert handle.container_id == "fresh"
        assert manager.kernel_ready is True

    @pytest.mark.asyncio
    async def test_missing_image_tolerated(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.images.remove.side_effect = docker.errors.ImageNotFound("gone")
        _daemon_creates(mock_docker, _starts_on_reload(make_container(status="created")))

        await manager.rebuild_container()

        assert manager.kernel_ready is True

    @pytest.mark.asyncio
    async def test_image_in_use(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        mock_docker.images.remove.side_effect = _api_error(409)

        with pytest.raises(ImageBuildError):
            await manager.rebuild_container()
        mock_docker.containers.create.assert_not_called()


class TestDispose:
    @pytest.mark.asyncio
    async def test_leaves_container_running(
        self, manager: ContainerLifecycleManager, mock_docker: MagicMock
    ) -> None:
        container = make_container()
        _daemon_has(mock_docker, container)
        await manager.ensure_container()

        await manager.dispose()

        container.stop.assert_not_called()
        assert manager.handle is None
        mock_docker.close.assert_not_called()  # not owned

    @pytest.mark.asyncio
    async def test_stop_on_dispose(
        self, workspace: Path, mock_docker: MagicMock, mock_transport: MockTransport
    ) -> None:
        config = RuntimeConfig(container_name="jupyter-runtime-test", stop_on_dispose=True)
        manager = ContainerLifecycleManager(
            workspace, config, docker_client=mock_docker, transport=mock_transport
        )
        container = make_container()
        _daemon_has(mock_docker, container)

        await manager.dispose()

        container.remove.assert_called_once_with(force=True)

    @pytest.mark.asyncio
    async def test_closes_owned_client(self, workspace: Path, config: RuntimeConfig) -> None:
        client = MagicMock()
        manager = ContainerLifecycleManager(workspace, config)

        with patch.object(manager, "_create_docker_client", return_value=client):
            assert manager.docker is client
            await manager.dispose()

        client.close.assert_called_once()


class TestDockerClient:
    def test_unreachable_daemon(self, workspace: Path, config: RuntimeConfig) -> None:
        manager = ContainerLifecycleManager(workspace, config)

        with (
            patch("docker.from_env", side_effect=docker.errors.DockerException("no socket")),
            patch("docker.DockerClient", side_effect=docker.errors.DockerException("refused")),
        ):
            with pytest.raises(DaemonUnreachableError, match="no socket|refused"):
                manager._create_docker_client()
