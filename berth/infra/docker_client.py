# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# DOCKER PROVIDER
# -----------------------------------------------------------------------------
# Responsibility: A wrapper around the Docker SDK with connection
# validation and error translation. This is the only module that talks to
# the engine; everything above it sees plain attribute dicts and
# berth errors.
#
# Operations:
# - ensure_image / inspect_image / remove_image
# - create_container / inspect_container / find_container / remove_container
# -----------------------------------------------------------------------------

from typing import Any

import docker
from docker import DockerClient
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from docker.models.images import Image
from rich.console import Console

from berth import config
from berth.errors import BerthError

console = Console()

LOCAL_API_PREFIXES = (
    "http+docker://localhost",
    "http+docker://localnpipe",
    "http://localhost",
    "http://127.0.0.1",
    "https://localhost",
    "https://127.0.0.1",
)
PORT_CONFLICT_MARKERS = ("port is already allocated", "address already in use")


class DockerProviderError(BerthError):
    """Base class for failures reported by the Docker engine."""

    pass


class RuntimeUnreachableError(DockerProviderError):
    """Raised when the engine socket cannot be reached."""

    pass


class RuntimePermissionError(DockerProviderError):
    """Raised when the engine socket exists but this user may not use it."""

    pass


class RuntimeOperationError(DockerProviderError):
    """Raised when the engine rejects an image or container operation."""

    pass


class PortConflictError(DockerProviderError):
    """Raised when a host port requested by a container is already bound."""

    def __init__(self, message: str, port: int | None = None) -> None:
        super().__init__(message)
        self.port = port


class ContainerNameConflictError(DockerProviderError):
    """Raised when a container with the requested name already exists."""

    def __init__(self, message: str, name: str, container_id: str | None = None) -> None:
        super().__init__(message)
        self.name = name
        self.container_id = container_id


def _explain(error: APIError) -> str:
    return str(getattr(error, "explanation", None) or error)


def _is_permission_problem(error: BaseException) -> bool:
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, PermissionError) or "Permission denied" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False


def build_port_bindings(ports: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Convert declared port mappings into the SDK's ports argument.

    {"internal": 80, "external": 8000, "ip": "0.0.0.0", "protocol": "tcp"}
    becomes {"80/tcp": ("0.0.0.0", 8000)}; several mappings of the same
    internal port become a list of bindings.
    """
    bindings: dict[str, Any] = {}
    for port in ports:
        key = f"{port['internal']}/{port.get('protocol', 'tcp')}"
        binding = (port.get("ip", "0.0.0.0"), port.get("external"))
        if key in bindings:
            existing = bindings[key]
            bindings[key] = (existing if isinstance(existing, list) else [existing]) + [binding]
        else:
            bindings[key] = binding
    return bindings


def read_port_bindings(attrs: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Actual host bindings of a container, in declaration form.

    Running containers report NetworkSettings.Ports (with ephemeral ports
    filled in); stopped ones only have HostConfig.PortBindings.
    """
    network = (attrs.get("NetworkSettings") or {}).get("Ports") or {}
    host_config = (attrs.get("HostConfig") or {}).get("PortBindings") or {}
    source = network if any(network.values()) else host_config

    result = []
    for key, bindings in source.items():
        internal, _, protocol = key.partition("/")
        for binding in bindings or []:
            host_ip = binding.get("HostIp") or "0.0.0.0"
            if host_ip == "::":
                continue
            host_port = binding.get("HostPort")
            result.append(
                {
                    "internal": int(internal),
                    "external": int(host_port) if host_port else None,
                    "ip": host_ip,
                    "protocol": protocol or "tcp",
                }
            )
    result.sort(key=lambda p: (p["internal"], p["protocol"], p["ip"], p["external"] or 0))
    return result


class DockerProvider:
    """
    Docker SDK wrapper used by the planner and executor.

    Connection settings come from the provider block (host, timeout), then
    DOCKER_HOST, then the SDK's own environment defaults.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int | None = None,
        client: DockerClient | None = None,
    ) -> None:
        """
        Initialize the Docker provider.

        Args:
            base_url: Engine URL, e.g. unix:///var/run/docker.sock.
            timeout: API timeout in seconds.
            client: An already constructed client (skips connecting).
        """
        self._base_url = base_url or config.DOCKER_HOST
        self._timeout = timeout or config.DOCKER_TIMEOUT
        self._client: DockerClient | None = client

        if self._client is None:
            self._connect()

    def _connect(self) -> None:
        """
        Establish connection to the Docker daemon.

        Raises:
            RuntimePermissionError: If the socket refuses this user.
            RuntimeUnreachableError: If the daemon does not answer.
        """
        target = self._base_url or "default Docker environment"
        try:
            if self._base_url:
                self._client = docker.DockerClient(base_url=self._base_url, timeout=self._timeout)
            else:
                self._client = docker.from_env(timeout=self._timeout)
            self._client.ping()
            console.print(f"[green][DOCKER] Connected to Docker Engine ({target})[/green]")
        except DockerException as e:
            self._client = None
            if _is_permission_problem(e):
                console.print(f"[red][DOCKER] Permission denied on {target}[/red]")
                raise RuntimePermissionError(
                    f"Permission denied while connecting to the Docker engine at {target}. "
                    "Add your user to the 'docker' group or use a rootless socket."
                ) from e
            console.print(f"[red][DOCKER] Engine unreachable at {target}: {e}[/red]")
            raise RuntimeUnreachableError(
                f"Cannot reach the Docker engine at {target}. Is the daemon running?"
            ) from e

    @property
    def client(self) -> DockerClient:
        if self._client is None:
            raise RuntimeUnreachableError("Docker client not initialized")
        return self._client

    def is_connected(self) -> bool:
        """True if Docker is currently reachable."""
        if self._client is None:
            return False
        try:
            self._client.ping()
            return True
        except DockerException:
            return False

    def is_local(self) -> bool:
        """True if the engine runs on this host, so host ports can be checked here."""
        base_url = getattr(getattr(self.client, "api", None), "base_url", "") or ""
        return str(base_url).startswith(LOCAL_API_PREFIXES)

    # -- images ---------------------------------------------------------------

    @staticmethod
    def _image_attributes(image: Image, reference: str) -> dict[str, Any]:
        digests = image.attrs.get("RepoDigests") or []
        return {
            "id": image.id,
            "image_id": image.id,
            "name": reference,
            "repo_digest": digests[0] if digests else "",
        }

    def ensure_image(self, reference: str) -> dict[str, Any]:
        """
        Make sure an image is in the local store, pulling it if necessary.

        Returns:
            Image attributes: id, image_id, name, repo_digest.
        """
        try:
            image = self.client.images.get(reference)
            console.print(f"[cyan][DOCKER] Image ready: {reference}[/cyan]")
        except ImageNotFound:
            console.print(f"[yellow][DOCKER] Pulling: {reference}...[/yellow]")
            try:
                image = self.client.images.pull(reference)
            except (ImageNotFound, NotFound) as e:
                raise RuntimeOperationError(f"Image '{reference}' not found in registry") from e
            except APIError as e:
                raise RuntimeOperationError(f"Pulling '{reference}' failed: {_explain(e)}") from e
            if isinstance(image, list):
                image = image[0]
            console.print(f"[green][DOCKER] Pulled: {reference}[/green]")
        except APIError as e:
            raise RuntimeOperationError(f"Inspecting '{reference}' failed: {_explain(e)}") from e

        return self._image_attributes(image, reference)

    def inspect_image(self, image_id: str) -> dict[str, Any] | None:
        """Image attributes by ID, or None if it is gone."""
        try:
            image = self.client.images.get(image_id)
        except (ImageNotFound, NotFound):
            return None
        except APIError as e:
            raise RuntimeOperationError(f"Inspecting image {image_id} failed: {_explain(e)}") from e
        tags = image.tags or []
        return self._image_attributes(image, tags[0] if tags else image_id)

    def remove_image(self, image_id: str) -> None:
        """Remove an image; an image that is already gone is not an error."""
        try:
            self.client.images.remove(image_id)
            console.print(f"[yellow][DOCKER] Image removed: {image_id[:19]}[/yellow]")
        except (ImageNotFound, NotFound):
            console.print(f"[dim][DOCKER] Image already gone: {image_id[:19]}[/dim]")
        except APIError as e:
            raise RuntimeOperationError(f"Removing image {image_id} failed: {_explain(e)}") from e

    # -- containers -----------------------------------------------------------

    @staticmethod
    def _container_attributes(container: Container) -> dict[str, Any]:
        attrs = container.attrs or {}
        state = attrs.get("State") or {}
        network = attrs.get("NetworkSettings") or {}
        return {
            "id": container.id,
            "name": (attrs.get("Name") or container.name or "").lstrip("/"),
            "image": attrs.get("Image", ""),
            "ip_address": network.get("IPAddress") or "",
            "ports": read_port_bindings(attrs),
            "running": bool(state.get("Running", False)),
        }

    def _translate_create_error(self, error: APIError, name: str, ports: list[dict[str, Any]]) -> DockerProviderError:
        message = _explain(error)
        lowered = message.lower()
        if any(marker in lowered for marker in PORT_CONFLICT_MARKERS):
            external = next((p.get("external") for p in ports if p.get("external") and str(p["external"]) in message), None)
            return PortConflictError(f"Port conflict starting '{name}': {message}", external)
        if error.status_code == 409 and "name" in lowered:
            return ContainerNameConflictError(f"Container name '{name}' is already in use", name)
        if error.status_code == 403 or "permission denied" in lowered:
            return RuntimePermissionError(f"Permission denied creating '{name}': {message}")
        return RuntimeOperationError(f"Creating container '{name}' failed: {message}")

    def create_container(self, spec: dict[str, Any]) -> dict[str, Any]:
        """
        Create and start a container.

        Args:
            spec: Resolved docker_container attributes (name, image, ports,
                env, command, restart).

        Returns:
            Runtime attributes: id, name, image, ip_address, ports, running.

        Raises:
            PortConflictError: A host port is already bound.
            ContainerNameConflictError: The name is taken.
            RuntimeOperationError: Any other engine failure.
        """
        name = spec["name"]
        ports = spec.get("ports") or []
        restart = spec.get("restart", "no")

        kwargs: dict[str, Any] = {
            "name": name,
            "detach": True,
            "ports": build_port_bindings(ports),
            "environment": list(spec.get("env") or []),
        }
        if spec.get("command"):
            kwargs["command"] = list(spec["command"])
        if restart and restart != "no":
            kwargs["restart_policy"] = {"Name": restart}

        console.print(f"[cyan][DOCKER] Creating container: {name}[/cyan]")
        try:
            container = self.client.containers.create(spec["image"], **kwargs)
        except (ImageNotFound, NotFound) as e:
            raise RuntimeOperationError(f"Image {spec['image']} for '{name}' is missing") from e
        except APIError as e:
            raise self._translate_create_error(e, name, ports) from e

        try:
            container.start()
        except APIError as e:
            # A container that never started still holds the name
            try:
                container.remove(force=True)
            except APIError:
                console.print(f"[yellow][DOCKER] Could not clean up failed container {name}[/yellow]")
            raise self._translate_create_error(e, name, ports) from e

        container.reload()
        console.print(f"[green][DOCKER] Container running: {name} ({container.short_id})[/green]")
        return self._container_attributes(container)

    def inspect_container(self, container_id: str) -> dict[str, Any] | None:
        """Container attributes by ID, or None if it is gone."""
        try:
            container = self.client.containers.get(container_id)
        except NotFound:
            return None
        except APIError as e:
            raise RuntimeOperationError(f"Inspecting container {container_id} failed: {_explain(e)}") from e
        return self._container_attributes(container)

    def find_container(self, name: str) -> dict[str, Any] | None:
        """Container attributes by exact name, or None."""
        attrs = self.inspect_container(name)
        if attrs is None or attrs["name"] != name:
            return None
        return attrs

    def remove_container(self, container_id: str) -> None:
        """Stop and remove a container; one that is already gone is not an error."""
        try:
            container = self.client.containers.get(container_id)
            container.remove(force=True)
            console.print(f"[yellow][DOCKER] Container removed: {container_id[:12]}[/yellow]")
        except NotFound:
            console.print(f"[dim][DOCKER] Container already gone: {container_id[:12]}[/dim]")
        except APIError as e:
            raise RuntimeOperationError(f"Removing container {container_id} failed: {_explain(e)}") from e
