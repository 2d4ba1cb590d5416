# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Session orchestration.

Sequences identity resolution, reconciliation, the terminal workspace and
the readiness probe into the workflows the CLI exposes. Every collaborator is
passed in, so tests can swap the docker, tmux and OpenCode clients.
"""

import os
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from caiged.core.readiness import find_resumable_session, wait_ready_with_settings
from caiged.core.tmux import TmuxClient
from caiged.core.workspace import attach_workspace, shell_exec_spec
from caiged.credentials import derive_credential
from caiged.host_config import Settings
from caiged.identity import SessionDescriptor, SessionOptions, resolve_descriptor, slugify
from caiged.opencode import OpencodeClient, manual_attach_command
from caiged.paths import ContainerDefaults, ContainerPaths
from caiged.reconciler import (
    ReconcileAction,
    ReconcileResult,
    build_images,
    ensure_container,
    run_one_shot,
)
from caiged.runtime import ContainerRuntime
from caiged.utils.exceptions import (
    CaigedError,
    ContainerNotFoundError,
    RuntimeInvocationError,
    TmuxError,
)
from caiged.utils.logging import get_logger

logger = get_logger(__name__)


class SessionOrchestrator:
    """Top-level workflows: run, attach, connect, list, stop and friends.

    Args:
        settings: Host settings (defaults to Settings())
        runtime: Container runtime client
        tmux: tmux client
        opencode: OpenCode client
        console: Console for command output
        environ: Environment for repo and secret lookup
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        runtime: Optional[ContainerRuntime] = None,
        tmux: Optional[TmuxClient] = None,
        opencode: Optional[OpencodeClient] = None,
        console: Optional[Console] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.settings = settings or Settings()
        self.runtime = runtime or ContainerRuntime()
        self.tmux = tmux or TmuxClient()
        self.opencode = opencode or OpencodeClient()
        self.console = console or Console()
        self.environ = os.environ if environ is None else environ

    @property
    def prefix(self) -> str:
        return f"{self.settings.image_prefix}-"

    def resolve(self, workdir: str, options: Optional[SessionOptions] = None) -> SessionDescriptor:
        return resolve_descriptor(workdir, options, self.settings, self.environ)

    # Run / attach

    def run(
        self,
        workdir: str,
        options: Optional[SessionOptions] = None,
        command: Sequence[str] = (),
        attach: bool = True,
    ) -> int:
        """Run or resume the session for workdir, then attach the OpenCode client.

        With a command, runs it in a throwaway container instead and returns
        its exit status.
        """
        descriptor = self.resolve(workdir, options)

        if command:
            logger.debug(f"One-shot command in {descriptor.spin_image}: {list(command)}")
            return run_one_shot(descriptor, self.runtime, self.settings, command)

        result = ensure_container(descriptor, self.runtime, self.settings)
        self.render_summary(descriptor, result)

        if not attach:
            return 0
        self.connect_to_server(descriptor.container_name, result.port, result.password)
        return 0

    def session(self, workdir: str, options: Optional[SessionOptions] = None) -> int:
        """Run or resume the session, then attach its tmux workspace."""
        descriptor = self.resolve(workdir, options)
        result = ensure_container(descriptor, self.runtime, self.settings)
        self.render_summary(descriptor, result)
        return attach_workspace(self.tmux, self.runtime, descriptor)

    def attach(self, target: str, options: Optional[SessionOptions] = None) -> int:
        """Attach by workdir (run and connect) or by container/session name."""
        if Path(target).is_dir():
            return self.run(target, options, attach=True)

        if self.tmux.available() and self.tmux.has_session(target):
            return self.tmux.attach(target)

        if not self.runtime.is_running(target):
            raise ContainerNotFoundError(
                f"no running container or tmux session named '{target}'",
                hint="caiged containers list",
            )
        return self.runtime.exec_interactive(shell_exec_spec(target, self.settings.container_shell))

    def connect_to_server(self, container: str, port: int, password: str) -> None:
        """Wait for the server, find the newest session and attach to it."""
        url = ContainerDefaults.server_url(port)
        with self.console.status("Waiting for OpenCode server to start..."):
            attempts = wait_ready_with_settings(url, self.settings)
        logger.debug(f"Server ready after {attempts} attempt(s)")
        self.console.print("[green]✓ OpenCode server ready[/green]")

        session_id = find_resumable_session(self.runtime, container)
        if session_id:
            self.console.print(f"[blue]Resuming session: {session_id}[/blue]")
        self.opencode.attach(url, ContainerPaths.WORKSPACE, password, session_id or None)

    def render_summary(self, descriptor: SessionDescriptor, result: ReconcileResult) -> None:
        url = ContainerDefaults.server_url(result.port)
        if result.action is ReconcileAction.NONE:
            title = "CONNECTING TO EXISTING CONTAINER"
        else:
            title = "CONTAINER STARTED"
        content = (
            f"[bold]Project:[/bold]   [magenta]{descriptor.project}[/magenta]\n"
            f"[bold]Container:[/bold] [cyan]{descriptor.container_name}[/cyan]\n"
            f"[bold]Server:[/bold]    {url}\n"
            f"[bold]Password:[/bold]  {result.password}\n\n"
            f"[blue]Reconnect:[/blue]\n  caiged connect {descriptor.project}\n\n"
            f"[blue]Manual connect:[/blue]\n"
            f"  {manual_attach_command(url, ContainerPaths.WORKSPACE, result.password)}"
        )
        self.console.print(Panel(content, title=f"[bold]{title}[/bold]", border_style="green"))

    # Lookup by project

    def find_project_container(self, project: str) -> str:
        """Running container for a project name, preferring the default spin.

        Matches `<prefix>-<slug>` and `<prefix>-<spin>-<slug>`.
        """
        slug = slugify(project)
        running = self.runtime.list_containers(self.prefix, all_containers=False)
        matches = [
            info.name
            for info in running
            if info.name == f"{self.prefix}{slug}" or info.name.endswith(f"-{slug}")
        ]
        if not matches:
            raise ContainerNotFoundError(f"no running container found for project: {project}")

        preferred = f"{self.prefix}{self.settings.default_spin}-"
        for name in matches:
            if name.startswith(preferred):
                return name
        return matches[0]

    def _labelled_port(self, container: str) -> int:
        value = self.runtime.inspect_label(container, ContainerDefaults.PORT_LABEL) or ""
        if not value.strip().isdigit():
            raise ContainerNotFoundError(
                f"no port found for container: {container} "
                "(container may be using legacy configuration)",
                hint=f"caiged restart <workdir> to recreate {container}",
            )
        return int(value.strip())

    def connect(self, project: str) -> int:
        container = self.find_project_container(project)
        port = self._labelled_port(container)
        password = derive_credential(container)
        self.connect_to_server(container, port, password)
        return 0

    def port_info(self, project: str) -> None:
        container = self.find_project_container(project)
        port = self._labelled_port(container)
        password = derive_credential(container)
        url = ContainerDefaults.server_url(port)
        self.console.print(f"Container: {container}")
        self.console.print(f"OpenCode server: {url}")
        self.console.print(
            f"Attach command: {manual_attach_command(url, ContainerPaths.WORKSPACE, password)}",
            highlight=False,
        )

    # Container management

    def list_containers(self) -> None:
        """Containers under the prefix with status, port and a reconnect hint, plus tmux sessions."""
        containers = self.runtime.list_containers(self.prefix, all_containers=True)

        if not containers:
            self.console.print(f"[yellow]No {self.settings.image_prefix} containers found[/yellow]")
        else:
            table = Table(title="Containers")
            table.add_column("Container", style="cyan")
            table.add_column("Status")
            table.add_column("Port", style="blue")
            table.add_column("Reconnect", style="magenta")
            for info in containers:
                status_color = "green" if info.status == "running" else "yellow"
                project = info.name[len(self.prefix):]
                table.add_row(
                    info.name,
                    f"[{status_color}]{info.status}[/{status_color}]",
                    str(info.port) if info.port else "-",
                    f"caiged connect {project}" if info.status == "running" else "-",
                )
            self.console.print(table)

        if not self.tmux.available():
            self.console.print("Tmux sessions: tmux not available")
            return
        try:
            sessions = self.tmux.list_sessions(prefix=self.prefix)
        except TmuxError as e:
            logger.debug(f"Listing tmux sessions failed: {e}")
            sessions = []
        self.console.print("Tmux sessions:")
        for name in sessions:
            self.console.print(f"  {name}")
        if not sessions:
            self.console.print("  (none)")

    def stop(self, name: str, remove: bool = False) -> None:
        if not self.runtime.exists(name):
            raise ContainerNotFoundError(f"container '{name}' does not exist")

        if not self.runtime.is_running(name):
            self.console.print(f"Container '{name}' is already stopped")
        else:
            self.console.print(f"Stopping container '{name}'...")
            self.runtime.stop(name)
            self.console.print(f"[green]✓ Container '{name}' stopped successfully[/green]")

        if remove:
            self.runtime.remove(name, force=True)
            self.console.print(f"[green]✓ Container '{name}' removed[/green]")

    def stop_all(self) -> List[str]:
        """Force-remove every container under the prefix.

        Every container is attempted; failures are reported together afterwards.

        Returns:
            Names of removed containers
        """
        errors = []
        removed = []
        try:
            containers = self.runtime.list_containers(self.prefix, all_containers=True)
        except RuntimeInvocationError as e:
            raise CaigedError(f"stop-all completed with errors: list containers: {e.cause}") from e

        for info in containers:
            try:
                self.runtime.remove(info.name, force=True)
            except RuntimeInvocationError as e:
                errors.append(f"remove container {info.name}: {e.cause}")
                continue
            removed.append(info.name)
            self.console.print(f"[green]✓ Removed {info.name}[/green]")

        if errors:
            raise CaigedError(f"stop-all completed with errors: {'; '.join(errors)}")
        if not removed:
            self.console.print(f"[yellow]No {self.settings.image_prefix} containers found[/yellow]")
        return removed

    def shell(self, name: str) -> int:
        if not self.runtime.is_running(name):
            raise ContainerNotFoundError(f"container '{name}' is not running")
        return self.runtime.exec_interactive(shell_exec_spec(name, self.settings.container_shell))

    # Maintenance

    def reset_session(self, descriptor: SessionDescriptor) -> bool:
        """Kill the tmux workspace for a session. Missing tmux or session is fine."""
        if not self.tmux.available():
            logger.debug("tmux not available, nothing to reset")
            return False
        killed = self.tmux.kill_session(descriptor.session_name)
        if killed:
            logger.success(f"Reset tmux session {descriptor.session_name}")
        else:
            logger.debug(f"No tmux session {descriptor.session_name} to reset")
        return killed

    def restart(
        self, workdir: str, options: Optional[SessionOptions] = None, attach: bool = True
    ) -> int:
        """Reset the tmux workspace, remove the container and run again."""
        descriptor = self.resolve(workdir, options)
        self.reset_session(descriptor)
        if self.runtime.exists(descriptor.container_name):
            logger.info(f"Removing container {descriptor.container_name}...")
            self.runtime.remove(descriptor.container_name, force=True)
        return self.run(workdir, options, attach=attach)

    def build(self, workdir: str, options: Optional[SessionOptions] = None) -> None:
        descriptor = self.resolve(workdir, options)
        build_images(descriptor, self.runtime, self.settings)
