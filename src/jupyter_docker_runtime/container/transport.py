"""Exec transport: run one command inside a running container.

The transport returns the raw bytes the daemon streams back, frame headers
included. Removing the framing is the execution protocol's job.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import docker
import requests
from docker.utils import socket as docker_socket

from jupyter_docker_runtime.container.framing import demultiplex
from jupyter_docker_runtime.errors import (
    CommandFailedError,
    ContainerGoneError,
    DaemonUnreachableError,
    ExecutionTransportError,
)
from jupyter_docker_runtime.types import ContainerHandle

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

T = TypeVar("T")


class ExecutionTransport(Protocol):
    """Runs commands inside a running container."""

    async def exec(
        self,
        handle: ContainerHandle,
        argv: list[str],
        check: bool = False,
    ) -> bytes:
        """Run argv and return raw combined stdout+stderr bytes."""
        ...

    async def exec_detached(self, handle: ContainerHandle, argv: list[str]) -> None:
        """Start argv without waiting for it to finish."""
        ...


class DockerExecTransport:
    """Issues exec calls through the docker SDK's low-level API.

    Output is attached for stdout and stderr; stdin is never attached and no
    tty is allocated, so the daemon multiplexes both streams with 8-byte frame
    headers.
    """

    def __init__(self, docker_client: Any) -> None:
        self._docker = docker_client

    async def exec(
        self,
        handle: ContainerHandle,
        argv: list[str],
        check: bool = False,
    ) -> bytes:
        """Run argv in the container and return its raw combined output.

        Args:
            handle: Target container (resolved by name).
            argv: Command and arguments, passed without a shell.
            check: Raise CommandFailedError on non-zero exit status.

        Returns:
            Raw multiplexed output bytes.

        Raises:
            ContainerGoneError: If the container no longer exists or is stopped.
            DaemonUnreachableError: If the daemon cannot be contacted.
            ExecutionTransportError: For other daemon-side exec failures.
            CommandFailedError: If check is set and the command fails.
        """
        return await asyncio.to_thread(self._exec_sync, handle, argv, check)

    async def exec_detached(self, handle: ContainerHandle, argv: list[str]) -> None:
        """Start argv in the container without waiting for it."""
        await asyncio.to_thread(self._guarded, handle, self._start_detached, handle, argv)

    def _exec_sync(self, handle: ContainerHandle, argv: list[str], check: bool) -> bytes:
        logger.debug(f"exec in {handle.name}: {argv[:2]}")
        exec_id, raw = self._guarded(handle, self._run_attached, handle, argv)
        if not check:
            return raw

        exit_code = self._guarded(handle, self._exit_code, exec_id)
        if exit_code != 0:
            stdout, stderr = demultiplex(raw)
            output = (stdout + stderr).decode("utf-8", errors="replace")
            raise CommandFailedError(list(argv), exit_code, output)
        return raw

    def _run_attached(self, handle: ContainerHandle, argv: list[str]) -> tuple[str, bytes]:
        exec_id = self._docker.api.exec_create(
            handle.name,
            argv,
            stdout=True,
            stderr=True,
            stdin=False,
            tty=False,
        )["Id"]
        sock = self._docker.api.exec_start(exec_id, socket=True)
        try:
            chunks: list[bytes] = []
            while chunk := docker_socket.read(sock, READ_CHUNK_SIZE):
                chunks.append(chunk)
        finally:
            sock.close()
        return exec_id, b"".join(chunks)

    def _start_detached(self, handle: ContainerHandle, argv: list[str]) -> None:
        logger.debug(f"detached exec in {handle.name}: {argv[:2]}")
        exec_id = self._docker.api.exec_create(
            handle.name, argv, stdout=False, stderr=False, stdin=False, tty=False
        )["Id"]
        self._docker.api.exec_start(exec_id, detach=True)

    def _exit_code(self, exec_id: str) -> int | None:
        return self._docker.api.exec_inspect(exec_id).get("ExitCode")

    @staticmethod
    def _guarded(handle: ContainerHandle, func: Callable[..., T], *args: Any) -> T:
        """Call func, mapping docker SDK failures onto transport error kinds."""
        try:
            return func(*args)
        except docker.errors.NotFound as e:
            raise ContainerGoneError(handle.name) from e
        except docker.errors.APIError as e:
            if e.status_code == 409:
                # Container exists but is not running
                raise ContainerGoneError(handle.name) from e
            raise ExecutionTransportError(f"Exec failed in '{handle.name}': {e}") from e
        except (requests.exceptions.ConnectionError, ConnectionError) as e:
            raise DaemonUnreachableError(str(e)) from e
        except (docker.errors.DockerException, OSError) as e:
            raise ExecutionTransportError(f"Exec failed in '{handle.name}': {e}") from e
