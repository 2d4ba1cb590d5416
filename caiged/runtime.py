# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Container runtime adapter.

State queries and detached runs go through the docker SDK. Anything that
needs the operator's terminal (interactive exec, one-shot runs, image
builds with streamed output) shells out to the docker CLI.

Inspect-style calls never raise for a missing container; they return
False/None. Mutating calls raise RuntimeInvocationError.
"""

import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import docker
from docker.models.containers import Container

from caiged.paths import ContainerDefaults
from caiged.utils.exceptions import RuntimeInvocationError
from caiged.utils.logging import get_logger

logger = get_logger(__name__)

DOCKER_BIN = "docker"


@dataclass(frozen=True)
class Mount:
    """Bind mount from the host into the container."""

    source: str
    target: str
    read_only: bool = False

    def to_cli(self) -> str:
        suffix = ":ro" if self.read_only else ""
        return f"{self.source}:{self.target}{suffix}"


@dataclass
class RunSpec:
    """Everything needed to start one container.

    Rendered either as docker SDK kwargs (detached sessions) or as a docker
    CLI argument list (one-shot runs attached to the terminal).
    """

    image: str
    name: Optional[str] = None
    hostname: Optional[str] = None
    working_dir: Optional[str] = None
    network: Optional[str] = None
    mounts: List[Mount] = field(default_factory=list)
    environment: List[str] = field(default_factory=list)  # NAME=value, in order
    env_file: Optional[Path] = None
    ports: Dict[int, int] = field(default_factory=dict)  # container port -> host port
    labels: Dict[str, str] = field(default_factory=dict)
    command: List[str] = field(default_factory=list)
    detach: bool = True
    remove: bool = False

    def resolved_environment(self, environ: Optional[Mapping[str, str]] = None) -> List[str]:
        """Environment with env_file entries first, explicit entries overriding."""
        merged: Dict[str, str] = {}
        if self.env_file is not None:
            merged.update(parse_env_file(self.env_file, environ))
        for item in self.environment:
            key, _, value = item.partition("=")
            merged[key] = value
        return [f"{key}={value}" for key, value in merged.items()]

    def to_sdk_kwargs(self) -> dict:
        kwargs: dict = {
            "image": self.image,
            "detach": self.detach,
            "tty": True,
            "stdin_open": True,
            "auto_remove": self.remove,
        }
        if self.name:
            kwargs["name"] = self.name
        if self.hostname:
            kwargs["hostname"] = self.hostname
        if self.working_dir:
            kwargs["working_dir"] = self.working_dir
        if self.network:
            kwargs["network"] = self.network
        if self.mounts:
            kwargs["volumes"] = {
                m.source: {"bind": m.target, "mode": "ro" if m.read_only else "rw"}
                for m in self.mounts
            }
        environment = self.resolved_environment()
        if environment:
            kwargs["environment"] = environment
        if self.ports:
            kwargs["ports"] = {f"{inner}/tcp": outer for inner, outer in self.ports.items()}
        if self.labels:
            kwargs["labels"] = dict(self.labels)
        if self.command:
            kwargs["command"] = list(self.command)
        return kwargs

    def to_cli_args(self) -> List[str]:
        args = [DOCKER_BIN, "run"]
        if self.detach:
            args.append("-d")
        if self.remove:
            args.append("--rm")
        if not self.detach:
            args.append("-it")
        if self.name:
            args += ["--name", self.name]
        if self.hostname:
            args += ["--hostname", self.hostname]
        if self.network:
            args += ["--network", self.network]
        for inner, outer in self.ports.items():
            args += ["-p", f"{outer}:{inner}"]
        for key, value in self.labels.items():
            args += ["--label", f"{key}={value}"]
        for mount in self.mounts:
            args += ["-v", mount.to_cli()]
        if self.working_dir:
            args += ["-w", self.working_dir]
        if self.env_file is not None:
            args += ["--env-file", str(self.env_file)]
        for item in self.environment:
            args += ["-e", item]
        args.append(self.image)
        args += self.command
        return args


@dataclass
class BuildSpec:
    """One docker build invocation for a multi-stage Dockerfile target."""

    context: Path
    dockerfile: Path
    target: str
    tag: str
    build_args: Dict[str, str] = field(default_factory=dict)

    def to_cli_args(self) -> List[str]:
        args = [DOCKER_BIN, "build", "--target", self.target, "-f", str(self.dockerfile)]
        for key, value in self.build_args.items():
            args += ["--build-arg", f"{key}={value}"]
        args += ["-t", self.tag, str(self.context)]
        return args


@dataclass
class ExecSpec:
    """A command executed inside a running container."""

    container: str
    command: List[str]
    environment: Dict[str, str] = field(default_factory=dict)
    interactive: bool = True

    def to_cli_args(self) -> List[str]:
        args = [DOCKER_BIN, "exec"]
        if self.interactive:
            args.append("-it")
        for key, value in self.environment.items():
            args += ["-e", f"{key}={value}"]
        args.append(self.container)
        args += self.command
        return args

    def to_shell(self) -> str:
        """Single shell-quoted command line (for tmux windows)."""
        return shlex.join(self.to_cli_args())


@dataclass(frozen=True)
class ContainerInfo:
    name: str
    status: str
    port: Optional[int] = None


def parse_env_file(path: Path, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Parse a docker --env-file.

    Follows docker's rules: one NAME=value per line, values taken literally,
    '#' lines and blank lines skipped, a bare NAME copies the host value
    when the host has it set.
    """
    environ = os.environ if environ is None else environ
    env_vars: Dict[str, str] = {}

    try:
        content = path.read_text()
    except OSError as e:
        raise RuntimeInvocationError(f"cannot read env file {path}: {e}") from e

    for line in content.splitlines():
        stripped = line.lstrip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" in stripped:
            key, value = stripped.split("=", 1)
            env_vars[key.strip()] = value
        else:
            key = stripped.strip()
            if key in environ:
                env_vars[key] = environ[key]

    return env_vars


def _published_port(container: Container, container_port: int) -> Optional[int]:
    ports = container.attrs.get("NetworkSettings", {}).get("Ports") or {}
    bindings = ports.get(f"{container_port}/tcp") or []
    for binding in bindings:
        host_port = binding.get("HostPort")
        if host_port and host_port.isdigit():
            return int(host_port)
    return None


class ContainerRuntime:
    """Docker-backed container operations.

    Args:
        client: docker client (defaults to docker.from_env() on first use)
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as e:
                raise RuntimeInvocationError(
                    f"could not connect to Docker: {e}",
                    hint="Is the docker daemon running?",
                ) from e
        return self._client

    # Inspection

    def get(self, name: str) -> Optional[Container]:
        try:
            return self.client.containers.get(name)
        except docker.errors.NotFound:
            return None
        except docker.errors.APIError as e:
            logger.debug(f"Inspect of {name} failed: {e}")
            return None

    def exists(self, name: str) -> bool:
        return self.get(name) is not None

    def is_running(self, name: str) -> bool:
        container = self.get(name)
        return container is not None and container.status == "running"

    def inspect_label(self, name: str, key: str) -> Optional[str]:
        container = self.get(name)
        if container is None:
            return None
        labels = container.attrs.get("Config", {}).get("Labels") or {}
        return labels.get(key)

    def published_port(self, name: str, container_port: int) -> Optional[int]:
        container = self.get(name)
        if container is None:
            return None
        return _published_port(container, container_port)

    def image_exists(self, tag: str) -> bool:
        try:
            self.client.images.get(tag)
            return True
        except docker.errors.ImageNotFound:
            return False
        except docker.errors.APIError as e:
            logger.debug(f"Image inspect of {tag} failed: {e}")
            return False

    def list_containers(self, prefix: str, all_containers: bool = False) -> List[ContainerInfo]:
        """Containers whose name starts with prefix."""
        try:
            containers = self.client.containers.list(all=all_containers, filters={"name": prefix})
        except docker.errors.APIError as e:
            raise RuntimeInvocationError(f"docker ps failed: {e}") from e

        result = []
        for container in containers:
            # The name filter is a substring match
            if not container.name.startswith(prefix):
                continue
            result.append(
                ContainerInfo(
                    name=container.name,
                    status=container.status,
                    port=self._label_port(container),
                )
            )
        return sorted(result, key=lambda info: info.name)

    @staticmethod
    def _label_port(container: Container) -> Optional[int]:
        labels = container.attrs.get("Config", {}).get("Labels") or {}
        value = labels.get(ContainerDefaults.PORT_LABEL, "")
        if value.isdigit():
            return int(value)
        return _published_port(container, ContainerDefaults.SERVER_PORT)

    # Lifecycle

    def _require(self, name: str) -> Container:
        container = self.get(name)
        if container is None:
            raise RuntimeInvocationError(f"container '{name}' does not exist")
        return container

    def run(self, spec: RunSpec) -> str:
        """Start a detached container, returning its id."""
        kwargs = spec.to_sdk_kwargs()
        logger.debug(f"docker run {spec.name or spec.image}: {sorted(kwargs)}")
        try:
            container = self.client.containers.run(**kwargs)
        except docker.errors.ImageNotFound as e:
            raise RuntimeInvocationError(
                f"image {spec.image} not found", hint="Build it with: caiged build <workdir>"
            ) from e
        except docker.errors.APIError as e:
            raise RuntimeInvocationError(f"docker run {spec.name or spec.image}: {e}") from e
        return container.id

    def start(self, name: str) -> None:
        container = self._require(name)
        try:
            container.start()
        except docker.errors.APIError as e:
            raise RuntimeInvocationError(f"docker start {name}: {e}") from e

    def stop(self, name: str) -> None:
        container = self._require(name)
        try:
            container.stop()
        except docker.errors.APIError as e:
            raise RuntimeInvocationError(f"docker stop {name}: {e}") from e

    def remove(self, name: str, force: bool = True) -> None:
        container = self._require(name)
        try:
            container.remove(force=force)
        except docker.errors.NotFound:
            # Gone between inspect and remove (auto-remove containers)
            return
        except docker.errors.APIError as e:
            raise RuntimeInvocationError(f"docker rm {name}: {e}") from e

    def exec_capture(self, name: str, command: List[str]) -> Tuple[int, str]:
        """Run a command in a running container and capture its output."""
        container = self._require(name)
        try:
            result = container.exec_run(command, demux=False)
        except docker.errors.APIError as e:
            raise RuntimeInvocationError(f"docker exec {name}: {e}") from e
        output = result.output.decode("utf-8", errors="replace") if result.output else ""
        return result.exit_code, output

    # Terminal-attached operations

    def _call(self, args: List[str]) -> int:
        logger.debug(f"Running: {shlex.join(args)}")
        try:
            return subprocess.run(args).returncode
        except FileNotFoundError as e:
            raise RuntimeInvocationError(
                f"{args[0]} not found", hint="Install docker and make sure it is on PATH"
            ) from e

    def exec_interactive(self, spec: ExecSpec) -> int:
        return self._call(spec.to_cli_args())

    def run_interactive(self, spec: RunSpec) -> int:
        return self._call(spec.to_cli_args())

    def build(self, spec: BuildSpec) -> None:
        code = self._call(spec.to_cli_args())
        if code != 0:
            raise RuntimeInvocationError(f"docker build {spec.tag} exited with status {code}")
