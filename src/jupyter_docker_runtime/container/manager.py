"""Container lifecycle management.

ContainerLifecycleManager owns the *intent* that one named container for the
workspace image exists and runs. The daemon owns the container itself, so
every operation re-resolves the container by name instead of trusting the
cached handle.

Usage:
    manager = ContainerLifecycleManager(Path("~/project"), RuntimeConfig())
    await manager.ensure_container()
    await manager.setup_kernel()
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import tarfile
import time
from importlib import resources
from pathlib import Path
from typing import Any

import docker
import requests
from docker.models.containers import Container

from jupyter_docker_runtime.config import (
    DEFAULT_DOCKERFILE,
    HELPER_FILENAME,
    RuntimeConfig,
    resolve_workspace,
)
from jupyter_docker_runtime.container.framing import demultiplex
from jupyter_docker_runtime.container.transport import DockerExecTransport, ExecutionTransport
from jupyter_docker_runtime.errors import (
    ContainerCreateError,
    ContainerNotRunningError,
    DaemonUnreachableError,
    ExecutionTransportError,
    ImageBuildError,
)
from jupyter_docker_runtime.types import ContainerHandle, ImageDescriptor

logger = logging.getLogger(__name__)

KEEPALIVE_COMMAND = ["tail", "-f", "/dev/null"]
STOP_TIMEOUT = 10
WORKSPACE_LABEL = "jupyter-docker-runtime.workspace"


class ContainerLifecycleManager:
    """Ensures the workspace image and its named container exist and run.

    Holds a single cached ContainerHandle. The handle is a best-effort
    shortcut: the container may be removed out-of-band at any time, and every
    operation falls back to resolving it by name.

    Not safe for concurrent use; callers serialise operations.
    """

    def __init__(
        self,
        workspace_root: str | Path | None,
        config: RuntimeConfig | None = None,
        docker_client: Any = None,
        transport: ExecutionTransport | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            workspace_root: Host workspace directory, mounted into the container.
            config: Runtime configuration. Defaults to RuntimeConfig().
            docker_client: Docker SDK client. Created lazily from the
                environment if None.
            transport: Exec transport. Defaults to DockerExecTransport over
                the docker client.

        Raises:
            ConfigurationMissingError: If no usable workspace is given.
        """
        self.workspace_root = resolve_workspace(workspace_root)
        self.config = config or RuntimeConfig()
        self.image = ImageDescriptor.for_workspace(self.workspace_root, self.config.dockerfile_path)

        self._docker: Any = docker_client
        self._owns_docker = docker_client is None
        self._transport = transport
        self._handle: ContainerHandle | None = None
        self._kernel_ready = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def container_name(self) -> str:
        return self.config.container_name

    @property
    def handle(self) -> ContainerHandle | None:
        """The cached container handle, possibly stale."""
        return self._handle

    @property
    def kernel_ready(self) -> bool:
        """True once setup_kernel() has succeeded for the current container."""
        return self._kernel_ready

    @property
    def docker(self) -> Any:
        if self._docker is None:
            self._docker = self._create_docker_client()
        return self._docker

    @property
    def transport(self) -> ExecutionTransport:
        if self._transport is None:
            self._transport = DockerExecTransport(self.docker)
        return self._transport

    def _create_docker_client(self) -> Any:
        """Create Docker client, trying multiple socket locations if needed."""
        last_error: Exception | None = None

        # Try standard from_env first (respects DOCKER_HOST)
        try:
            client = docker.from_env()
            client.ping()
            return client
        except docker.errors.DockerException as e:
            logger.debug(f"docker.from_env() failed: {e}")
            last_error = e

        socket_paths = [
            Path.home() / ".docker" / "run" / "docker.sock",  # Docker Desktop (macOS/Windows)
            Path("/var/run/docker.sock"),  # Linux default
            Path("/run/docker.sock"),  # Some Linux distros
        ]

        for socket_path in socket_paths:
            if socket_path.exists():
                try:
                    client = docker.DockerClient(base_url=f"unix://{socket_path}")
                    client.ping()
                    return client
                except docker.errors.DockerException as e:
                    logger.debug(f"Failed to connect via {socket_path}: {e}")
                    last_error = e

        reason = "make sure Docker is running (tried DOCKER_HOST and common socket locations)"
        if last_error:
            reason += f"; last error: {last_error}"
        raise DaemonUnreachableError(reason)

    # -------------------------------------------------------------------------
    # Probing
    # -------------------------------------------------------------------------

    async def is_container_running(self) -> bool:
        """Check whether the canonical container is running. Never raises."""
        try:
            return await asyncio.to_thread(self._is_running_sync)
        except Exception as e:
            # Intentionally broad: a failed probe means "not running".
            logger.debug(f"Container status query failed: {e}")
            return False

    def _is_running_sync(self) -> bool:
        # The name filter is a substring match, so compare exactly.
        containers = self.docker.containers.list(
            filters={"name": self.container_name, "status": "running"}
        )
        return any(c.name == self.container_name for c in containers)

    def _find_container(self) -> Container | None:
        """Look the container up by name. None if the daemon has no such container."""
        try:
            return self.docker.containers.get(self.container_name)
        except docker.errors.NotFound:
            return None
        except docker.errors.APIError as e:
            raise ContainerCreateError(self.container_name, f"inspect failed: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise DaemonUnreachableError(str(e)) from e
        except (requests.exceptions.RequestException, docker.errors.DockerException) as e:
            raise ContainerCreateError(self.container_name, f"inspect failed: {e}") from e

    # -------------------------------------------------------------------------
    # Ensure
    # -------------------------------------------------------------------------

    async def ensure_container(self) -> ContainerHandle:
        """Make sure the canonical container exists and is running.

        Resolution order:
            1. Exists and running: cache it, no side effects.
            2. Exists but stopped or paused: start or unpause it.
            3. Missing: ensure the image (building it if needed), create the
               container, start it.

        Returns:
            Handle to the running container.

        Raises:
            DaemonUnreachableError: If Docker cannot be reached.
            ImageBuildError: If the image is missing and cannot be built.
            ContainerCreateError: If the container cannot be created or started.
        """
        try:
            return await asyncio.to_thread(self._ensure_container_sync)
        except Exception:
            self._handle = None
            self._kernel_ready = False
            raise

    def _ensure_container_sync(self) -> ContainerHandle:
        name = self.container_name
        container = self._find_container()

        if container is None:
            if self._handle is not None:
                logger.info(f"Container '{name}' was removed outside the runtime, recreating")
            self._ensure_image_sync()
            container = self._create_container()
        else:
            self._check_workspace_label(container)

        if container.status == "running":
            logger.debug(f"Container '{name}' already running")
        else:
            was_paused = container.status == "paused"
            self._start_container(container)
            if not was_paused:
                # The session process did not survive the stop.
                self._kernel_ready = False

        if self._handle is None or self._handle.container_id != container.id:
            self._kernel_ready = False
        self._handle = ContainerHandle(name=name, daemon_ref=container)
        return self._handle

    def _check_workspace_label(self, container: Container) -> None:
        """Warn when the named container was created for a different workspace.

        The container is still reused: the name is the identity. Its mount
        points at the other workspace, though, so files will not match.
        """
        owner = (container.labels or {}).get(WORKSPACE_LABEL)
        if owner is not None and owner != str(self.workspace_root):
            logger.warning(
                f"Container '{container.name}' belongs to workspace {owner}, "
                f"not {self.workspace_root}; set container_name to use a separate container"
            )

    def _ensure_image_sync(self) -> None:
        """Build the workspace image if it doesn't exist."""
        try:
            self.docker.images.get(self.image.name)
            logger.debug(f"Image '{self.image.name}' already exists")
            return
        except docker.errors.ImageNotFound:
            pass
        except docker.errors.APIError as e:
            raise ImageBuildError(self.image.name, f"inspect failed: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise DaemonUnreachableError(str(e)) from e
        except (requests.exceptions.RequestException, docker.errors.DockerException) as e:
            raise ImageBuildError(self.image.name, f"inspect failed: {e}") from e

        self._build_image_sync()

    def _build_image_sync(self) -> None:
        """Build the image from a context holding only the Dockerfile."""
        dockerfile = self.image.build_context_path
        try:
            if not dockerfile.exists():
                dockerfile.parent.mkdir(parents=True, exist_ok=True)
                dockerfile.write_text(DEFAULT_DOCKERFILE)
                logger.info(f"Created default Dockerfile at {dockerfile}")
            content = dockerfile.read_bytes()
        except OSError as e:
            raise ImageBuildError(self.image.name, f"cannot read {dockerfile}: {e}") from e

        logger.info(f"Building {self.image.name} image...")
        try:
            _, build_logs = self.docker.images.build(
                fileobj=io.BytesIO(content),
                tag=self.image.name,
                rm=True,
            )
        except docker.errors.BuildError as e:
            for entry in e.build_log:
                if "stream" in entry:
                    logger.error(entry["stream"].rstrip())
            raise ImageBuildError(self.image.name, e.msg) from e
        except docker.errors.APIError as e:
            raise ImageBuildError(self.image.name, str(e)) from e
        except requests.exceptions.ConnectionError as e:
            raise DaemonUnreachableError(str(e)) from e
        except (requests.exceptions.RequestException, docker.errors.DockerException) as e:
            raise ImageBuildError(self.image.name, str(e)) from e

        for entry in build_logs:
            if "stream" in entry:
                logger.debug(entry["stream"].rstrip())
        logger.info(f"Successfully built {self.image.name}")

    def _create_container(self) -> Container:
        name = self.container_name
        try:
            container = self.docker.containers.create(
                image=self.image.name,
                name=name,
                command=KEEPALIVE_COMMAND,
                tty=True,
                stdin_open=True,
                working_dir=self.config.workspace_mount,
                volumes={
                    str(self.workspace_root): {
                        "bind": self.config.workspace_mount,
                        "mode": "rw",
                    }
                },
                labels={WORKSPACE_LABEL: str(self.workspace_root)},
                auto_remove=False,
            )
        except docker.errors.APIError as e:
            if e.status_code == 409:
                # Created concurrently (or by an earlier half-finished run).
                existing = self._find_container()
                if existing is not None:
                    logger.info(f"Container '{name}' already exists, reusing it")
                    return existing
            raise ContainerCreateError(name, str(e)) from e
        except requests.exceptions.ConnectionError as e:
            raise DaemonUnreachableError(str(e)) from e
        except (requests.exceptions.RequestException, docker.errors.DockerException) as e:
            raise ContainerCreateError(name, str(e)) from e

        logger.info(f"Created container '{name}' from {self.image.name}")
        return container

    def _start_container(self, container: Container) -> None:
        """Start a stopped (or unpause a paused) container and confirm it is running.

        On failure the container is left in place; the next ensure_container()
        finds it and retries the start.
        """
        name = self.container_name
        try:
            if container.status == "paused":
                container.unpause()
            else:
                container.start()
            container.reload()
        except docker.errors.NotFound as e:
            raise ContainerCreateError(name, "container disappeared while starting") from e
        except docker.errors.APIError as e:
            raise ContainerCreateError(name, str(e)) from e
        except requests.exceptions.ConnectionError as e:
            raise DaemonUnreachableError(str(e)) from e
        except (requests.exceptions.RequestException, docker.errors.DockerException) as e:
            raise ContainerCreateError(name, str(e)) from e

        if container.status != "running":
            raise ContainerCreateError(name, f"status is '{container.status}' after start")
        logger.info(f"Started container '{name}'")

    def _require_running_sync(self) -> ContainerHandle:
        container = self._find_container()
        if container is None or container.status != "running":
            self._handle = None
            self._kernel_ready = False
            raise ContainerNotRunningError(self.container_name)
        if self._handle is None or self._handle.container_id != container.id:
            self._handle = ContainerHandle(name=self.container_name, daemon_ref=container)
        return self._handle

    # -------------------------------------------------------------------------
    # Kernel
    # -------------------------------------------------------------------------

    async def setup_kernel(self) -> None:
        """Install kernel support and the execution helper in the container.

        Raises:
            ContainerNotRunningError: If the container is not running.
            CommandFailedError: If an install step exits non-zero.
            ExecutionTransportError: If the helper cannot be uploaded.
        """
        handle = await asyncio.to_thread(self._require_running_sync)
        config = self.config

        if config.kernel_packages:
            logger.info(f"Installing {' '.join(config.kernel_packages)} in '{handle.name}'")
            await self.transport.exec(
                handle,
                [config.python_path, "-m", "pip", "install", "--quiet", *config.kernel_packages],
                check=True,
            )

        await self.transport.exec(
            handle,
            [
                config.python_path,
                "-m",
                "ipykernel",
                "install",
                "--user",
                "--name",
                config.kernel_name,
                "--display-name",
                config.kernel_display_name,
            ],
            check=True,
        )

        await asyncio.to_thread(self._upload_helper, handle)

        # Warm up the session process so the first cell doesn't pay for it.
        await self.transport.exec_detached(handle, [config.python_path, config.helper_path, "--serve"])

        self._kernel_ready = True
        logger.info("Kernel setup complete")

    def _upload_helper(self, handle: ContainerHandle) -> None:
        source = resources.files("jupyter_docker_runtime.container").joinpath("helper.py").read_bytes()

        archive = io.BytesIO()
        with tarfile.open(fileobj=archive, mode="w") as tar:
            info = tarfile.TarInfo(name=HELPER_FILENAME)
            info.size = len(source)
            info.mode = 0o644
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(source))

        try:
            container = handle.daemon_ref or self.docker.containers.get(handle.name)
            uploaded = container.put_archive(self.config.helper_dir, archive.getvalue())
        except requests.exceptions.ConnectionError as e:
            raise DaemonUnreachableError(str(e)) from e
        except (requests.exceptions.RequestException, docker.errors.DockerException) as e:
            raise ExecutionTransportError(f"Failed to upload helper to '{handle.name}': {e}") from e
        if not uploaded:
            raise ExecutionTransportError(f"Failed to upload helper to '{handle.name}'")
        logger.debug(f"Uploaded helper to {self.config.helper_path}")

    async def list_available_kernels(self) -> list[str]:
        """List kernelspec names installed in the container.

        Falls back to the configured default kernel on any failure so kernel
        pickers always have an entry.
        """
        fallback = [self.config.kernel_name]
        try:
            handle = await asyncio.to_thread(self._require_running_sync)
            raw = await self.transport.exec(
                handle, ["jupyter", "kernelspec", "list", "--json"], check=True
            )
            stdout, _ = demultiplex(raw)
            specs = json.loads(stdout)["kernelspecs"]
            names = sorted(specs) if isinstance(specs, dict) else []
        except Exception as e:
            # Intentionally broad: any failure degrades to the default kernel.
            logger.debug(f"Kernel enumeration failed, using default: {e}")
            return fallback
        return names or fallback

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def stop_container(self) -> None:
        """Stop and remove the container. Never raises."""
        await asyncio.to_thread(self._stop_container_sync)

    def _stop_container_sync(self) -> None:
        name = self.container_name
        try:
            # Re-resolve by name: the cached reference may be stale.
            container = self._find_container()
            if container is None:
                logger.debug(f"Container '{name}' already gone")
                return

            # Try graceful stop first
            try:
                container.stop(timeout=STOP_TIMEOUT)
                logger.debug(f"Stopped container '{name}'")
            except docker.errors.APIError as e:
                # Not fatal - remove(force=True) below handles a running container
                logger.debug(f"Container stop failed (may be already stopped): {e}")

            container.remove(force=True)
            logger.info(f"Removed container '{name}'")
        except docker.errors.NotFound:
            logger.debug(f"Container '{name}' disappeared during removal")
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Failed to remove container '{name}': {e}")
        except (DaemonUnreachableError, ContainerCreateError) as e:
            logger.error(f"Failed to stop container '{name}': {e}")
        finally:
            # Always clear reference to avoid leaving stale handles
            self._handle = None
            self._kernel_ready = False

    async def rebuild_container(self) -> ContainerHandle:
        """Recreate the container from a freshly built image.

        Strictly sequential: the container must be gone before its image can
        be removed.
        """
        await self.stop_container()
        await asyncio.to_thread(self._remove_image_sync)
        handle = await self.ensure_container()
        await self.setup_kernel()
        return handle

    def _remove_image_sync(self) -> None:
        try:
            self.docker.images.remove(self.image.name)
            logger.info(f"Removed image '{self.image.name}'")
        except docker.errors.ImageNotFound:
            logger.debug(f"Image '{self.image.name}' not present, nothing to remove")
        except docker.errors.APIError as e:
            raise ImageBuildError(self.image.name, f"cannot remove existing image: {e}") from e

    async def dispose(self) -> None:
        """Release manager resources.

        The container keeps running unless stop_on_dispose is configured.
        """
        if self.config.stop_on_dispose:
            await self.stop_container()
        self._handle = None
        self._kernel_ready = False
        if self._owns_docker and self._docker is not None:
            self._docker.close()
            self._docker = None
            self._transport = None
