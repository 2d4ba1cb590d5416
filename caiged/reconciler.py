# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Container reconciliation.

Brings the host's container table in line with a SessionDescriptor using the
smallest action: nothing for a running container, start for a stopped one,
create for a missing one. State is re-observed on every call; a container
removed by hand between the check and the action shows up as a runtime error
and is re-classified on the next invocation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Sequence

from caiged.credentials import allocate_port, derive_credential
from caiged.paths import ContainerDefaults, ContainerPaths, HostPaths, RepoPaths
from caiged.runtime import BuildSpec, Mount, RunSpec
from caiged.utils.logging import get_logger

if TYPE_CHECKING:
    from caiged.host_config import Settings
    from caiged.identity import SessionDescriptor
    from caiged.runtime import ContainerRuntime

logger = get_logger(__name__)

BASE_TARGET = "base"
SPIN_TARGET = "spin"


class ContainerState(Enum):
    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


class ReconcileAction(Enum):
    NONE = "none"
    STARTED = "started"
    CREATED = "created"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of ensure_container."""

    action: ReconcileAction
    port: int
    password: str

    @property
    def created(self) -> bool:
        return self.action is ReconcileAction.CREATED


def observe_state(runtime: "ContainerRuntime", name: str) -> ContainerState:
    """Current state of a container. Inspect failures count as absent."""
    if runtime.is_running(name):
        return ContainerState.RUNNING
    if runtime.exists(name):
        return ContainerState.STOPPED
    return ContainerState.ABSENT


def image_build_specs(descriptor: "SessionDescriptor", settings: "Settings") -> List[BuildSpec]:
    """Base image first, then the spin image that builds on it."""
    build_args = settings.build_args()
    dockerfile = RepoPaths.dockerfile(descriptor.repo_root)
    return [
        BuildSpec(
            context=descriptor.repo_root,
            dockerfile=dockerfile,
            target=BASE_TARGET,
            tag=descriptor.base_image,
            build_args=dict(build_args),
        ),
        BuildSpec(
            context=descriptor.repo_root,
            dockerfile=dockerfile,
            target=SPIN_TARGET,
            tag=descriptor.spin_image,
            build_args={**build_args, "SPIN": descriptor.spin},
        ),
    ]


def build_images(
    descriptor: "SessionDescriptor", runtime: "ContainerRuntime", settings: "Settings"
) -> None:
    """Build base and spin images unconditionally."""
    for spec in image_build_specs(descriptor, settings):
        logger.info(f"Building image {spec.tag}...")
        runtime.build(spec)
        logger.success(f"Built {spec.tag}")


def ensure_images(
    descriptor: "SessionDescriptor", runtime: "ContainerRuntime", settings: "Settings"
) -> None:
    """Make sure both images exist, building when missing or forced.

    A missing base image rebuilds the spin image too since it derives from it.
    Build failures propagate.
    """
    if descriptor.force_build:
        build_images(descriptor, runtime, settings)
        return

    base, spin = image_build_specs(descriptor, settings)
    if not runtime.image_exists(base.tag):
        build_images(descriptor, runtime, settings)
        return
    if not runtime.image_exists(spin.tag):
        logger.info(f"Building image {spin.tag}...")
        runtime.build(spin)
        logger.success(f"Built {spin.tag}")


def _optional_mounts(descriptor: "SessionDescriptor") -> List[Mount]:
    mounts = []
    if not descriptor.disable_docker_sock:
        mounts.append(Mount(HostPaths.DOCKER_SOCKET, HostPaths.DOCKER_SOCKET))
    if descriptor.mount_gh and descriptor.gh_config_path is not None:
        mounts.append(
            Mount(
                str(descriptor.gh_config_path),
                ContainerPaths.GH_CONFIG,
                read_only=not descriptor.mount_gh_rw,
            )
        )
    if descriptor.mount_opencode_auth and descriptor.opencode_auth_path is not None:
        mounts.append(
            Mount(str(descriptor.opencode_auth_path), ContainerPaths.OPENCODE_AUTH, read_only=True)
        )
    return mounts


def build_run_spec(descriptor: "SessionDescriptor", port: int, password: str) -> RunSpec:
    """RunSpec for a persistent, detached session container."""
    environment = [
        f"AGENT_SPIN={descriptor.spin}",
        "AGENT_DAEMON=1",
        f"OPENCODE_SERVER_PASSWORD={password}",
        *descriptor.secret_envs,
    ]
    return RunSpec(
        image=descriptor.spin_image,
        name=descriptor.container_name,
        hostname=ContainerDefaults.hostname(descriptor.container_name),
        working_dir=ContainerPaths.WORKSPACE,
        network=ContainerDefaults.NETWORK,
        mounts=[Mount(str(descriptor.workdir), ContainerPaths.WORKSPACE), *_optional_mounts(descriptor)],
        environment=environment,
        env_file=descriptor.secret_env_file,
        ports={ContainerDefaults.SERVER_PORT: port},
        labels={ContainerDefaults.PORT_LABEL: str(port)},
        detach=True,
        remove=False,
    )


def build_one_shot_spec(descriptor: "SessionDescriptor", command: Sequence[str]) -> RunSpec:
    """RunSpec for a throwaway container that runs command and exits."""
    return RunSpec(
        image=descriptor.spin_image,
        working_dir=ContainerPaths.WORKSPACE,
        network="none" if descriptor.disable_network else ContainerDefaults.NETWORK,
        mounts=[Mount(str(descriptor.workdir), ContainerPaths.WORKSPACE), *_optional_mounts(descriptor)],
        environment=[f"AGENT_SPIN={descriptor.spin}", *descriptor.secret_envs],
        env_file=descriptor.secret_env_file,
        command=list(command),
        detach=False,
        remove=True,
    )


def ensure_container(
    descriptor: "SessionDescriptor",
    runtime: "ContainerRuntime",
    settings: "Settings",
) -> ReconcileResult:
    """Ensure the session container exists and is running.

    Images are checked first; a build failure aborts before any container
    is touched.

    Args:
        descriptor: Resolved session identity
        runtime: Container runtime client
        settings: Host settings (port range, build args)

    Returns:
        ReconcileResult with the action taken, the port and the password

    Raises:
        RuntimeInvocationError: Build, start or create failed
        NoFreePortError: No port available for a new container
    """
    ensure_images(descriptor, runtime, settings)

    name = descriptor.container_name
    password = derive_credential(name)
    if descriptor.disable_network:
        logger.warning("--disable-network only applies to one-shot commands, ignoring")

    state = observe_state(runtime, name)
    logger.debug(f"Container {name} is {state.value}")
    port = allocate_port(descriptor, runtime, settings)

    if state is ContainerState.RUNNING:
        return ReconcileResult(ReconcileAction.NONE, port, password)

    if state is ContainerState.STOPPED:
        logger.info(f"Starting existing container {name}...")
        runtime.start(name)
        return ReconcileResult(ReconcileAction.STARTED, port, password)

    logger.info(f"Creating container {name}...")
    runtime.run(build_run_spec(descriptor, port, password))
    return ReconcileResult(ReconcileAction.CREATED, port, password)


def run_one_shot(
    descriptor: "SessionDescriptor",
    runtime: "ContainerRuntime",
    settings: "Settings",
    command: Sequence[str],
) -> int:
    """Run command in a throwaway container, returning its exit status."""
    ensure_images(descriptor, runtime, settings)
    return runtime.run_interactive(build_one_shot_spec(descriptor, command))
