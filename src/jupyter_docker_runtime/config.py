"""Configuration for the Docker notebook runtime.

RuntimeConfig is owned by the host: it is loaded from the workspace's
``.jupyter-docker.yaml`` and ``JUPYTER_DOCKER_*`` environment variables, and
the core only reads it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from jupyter_docker_runtime.errors import ConfigurationMissingError

CONFIG_FILENAME = ".jupyter-docker.yaml"
ENV_PREFIX = "JUPYTER_DOCKER_"

DEFAULT_CONTAINER_NAME = "jupyter-runtime"
DEFAULT_KERNEL_NAME = "docker-python"
DEFAULT_KERNEL_DISPLAY_NAME = "Python (Docker)"
DEFAULT_PYTHON_PATH = "/usr/local/bin/python3"
HELPER_FILENAME = "kernel_helper.py"

# Written into the workspace when the configured Dockerfile does not exist.
DEFAULT_DOCKERFILE = f"""\
FROM python:3.11-slim

WORKDIR /workspace

# Install system dependencies
RUN apt-get update && apt-get install -y \\
    build-essential \\
    curl \\
    git \\
    && rm -rf /var/lib/apt/lists/*

# Install Python packages
RUN pip install --no-cache-dir \\
    jupyter \\
    ipykernel \\
    numpy \\
    pandas \\
    matplotlib \\
    scikit-learn

# Create kernel
RUN python3 -m ipykernel install --user --name {DEFAULT_KERNEL_NAME} \\
    --display-name "{DEFAULT_KERNEL_DISPLAY_NAME}"

CMD ["tail", "-f", "/dev/null"]
"""


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class RuntimeConfig:
    """Settings consumed by the lifecycle manager and execution protocol."""

    # Image / container
    dockerfile_path: str = "Dockerfile"
    container_name: str = DEFAULT_CONTAINER_NAME
    workspace_mount: str = "/workspace"

    # Interpreter and kernel inside the container
    python_path: str = DEFAULT_PYTHON_PATH
    kernel_name: str = DEFAULT_KERNEL_NAME
    kernel_display_name: str = DEFAULT_KERNEL_DISPLAY_NAME
    kernel_packages: list[str] = field(default_factory=lambda: ["ipykernel", "jupyter"])
    helper_dir: str = "/tmp"

    # Host behaviour
    auto_start: bool = False
    stop_on_dispose: bool = False

    # None = wait for the daemon indefinitely
    exec_timeout: float | None = None

    @property
    def helper_path(self) -> str:
        """Location of the uploaded helper script inside the container."""
        return f"{self.helper_dir.rstrip('/')}/{HELPER_FILENAME}"

    @classmethod
    def from_yaml(cls, path: Path) -> RuntimeConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
        return cls._from_dict(data)

    @classmethod
    def from_env(cls, base: RuntimeConfig | None = None) -> RuntimeConfig:
        """Return a copy of ``base`` with JUPYTER_DOCKER_* environment overrides applied."""
        config = replace(base) if base is not None else cls()

        if dockerfile := os.environ.get(f"{ENV_PREFIX}DOCKERFILE_PATH"):
            config.dockerfile_path = dockerfile
        if name := os.environ.get(f"{ENV_PREFIX}CONTAINER_NAME"):
            config.container_name = name
        if python_path := os.environ.get(f"{ENV_PREFIX}PYTHON_PATH"):
            config.python_path = python_path
        if kernel := os.environ.get(f"{ENV_PREFIX}KERNEL_NAME"):
            config.kernel_name = kernel
        if packages := os.environ.get(f"{ENV_PREFIX}KERNEL_PACKAGES"):
            config.kernel_packages = packages.split()
        if auto_start := os.environ.get(f"{ENV_PREFIX}AUTO_START"):
            config.auto_start = _parse_bool(auto_start)
        if stop := os.environ.get(f"{ENV_PREFIX}STOP_ON_DISPOSE"):
            config.stop_on_dispose = _parse_bool(stop)
        if timeout := os.environ.get(f"{ENV_PREFIX}EXEC_TIMEOUT"):
            seconds = float(timeout)
            config.exec_timeout = seconds if seconds > 0 else None

        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> RuntimeConfig:
        """Create config from a dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        config = cls(**data)
        if config.exec_timeout is not None:
            config.exec_timeout = float(config.exec_timeout)
            if config.exec_timeout <= 0:
                config.exec_timeout = None
        return config


def resolve_workspace(workspace: str | Path | None) -> Path:
    """Validate the workspace the runtime is bound to.

    Raises:
        ConfigurationMissingError: If no workspace is given or it is not a directory.
    """
    if workspace is None or str(workspace) == "":
        raise ConfigurationMissingError("No workspace folder open")

    root = Path(workspace).expanduser().resolve()
    if not root.is_dir():
        raise ConfigurationMissingError(f"Workspace folder does not exist: {root}")
    return root


def load_config(workspace_root: Path) -> RuntimeConfig:
    """Load workspace configuration: YAML file first, then environment overrides."""
    config_file = workspace_root / CONFIG_FILENAME
    config = RuntimeConfig.from_yaml(config_file) if config_file.exists() else RuntimeConfig()
    return RuntimeConfig.from_env(config)
