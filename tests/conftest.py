"""
Pytest configuration and fixtures for berth tests.
"""

import hashlib
import io
import uuid
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from berth.core.lifecycle import LifecycleDriver
from berth.core.planner import normalize_ports
from berth.infra.docker_client import ContainerNameConflictError

SAMPLE_DECLARATION = """
berth:
  required_providers:
    docker:
      source: docker/docker
      version: ">= 1.0"

variables:
  container_name:
    description: Value of the name for the Docker container
    type: string
    default: tutorial
  external_port:
    type: number
    default: 8000

resources:
  docker_image:
    nginx:
      name: nginx:latest
      keep_locally: false

  docker_container:
    nginx:
      image: ${docker_image.nginx.image_id}
      name: ${var.container_name}
      ports:
        - internal: 80
          external: ${var.external_port}

outputs:
  container_id:
    value: ${docker_container.nginx.id}
  image_id:
    value: ${docker_image.nginx.image_id}
"""


class FakeRuntime:
    """In-memory stand-in for DockerProvider."""

    def __init__(self, local: bool = False):
        self.local = local
        self.images: dict[str, dict] = {}
        self.containers: dict[str, dict] = {}
        self.pulls = 0
        self._next_port = 49153

    def is_local(self):
        return self.local

    def ensure_image(self, reference):
        for attrs in self.images.values():
            if attrs["name"] == reference:
                return dict(attrs)
        digest = hashlib.sha256(reference.encode()).hexdigest()
        image_id = f"sha256:{digest}"
        attrs = {
            "id": image_id,
            "image_id": image_id,
            "name": reference,
            "repo_digest": f"{reference.split(':')[0]}@sha256:{digest}",
        }
        self.images[image_id] = attrs
        self.pulls += 1
        return dict(attrs)

    def inspect_image(self, image_id):
        attrs = self.images.get(image_id)
        return dict(attrs) if attrs else None

    def remove_image(self, image_id):
        self.images.pop(image_id, None)

    def create_container(self, spec):
        if self.find_container(spec["name"]) is not None:
            raise ContainerNameConflictError(f"name {spec['name']} taken", name=spec["name"])
        ports = []
        for port in spec.get("ports") or []:
            external = port.get("external")
            if external is None:
                external = self._next_port
                self._next_port += 1
            ports.append({**port, "external": external})
        attrs = {
            "id": uuid.uuid4().hex + uuid.uuid4().hex,
            "name": spec["name"],
            "image": spec["image"],
            "ip_address": "172.17.0.2",
            "ports": normalize_ports(ports),
            "running": True,
        }
        self.containers[attrs["id"]] = attrs
        return dict(attrs)

    def inspect_container(self, container_id):
        attrs = self.containers.get(container_id)
        return dict(attrs) if attrs else None

    def find_container(self, name):
        for attrs in self.containers.values():
            if attrs["name"] == name:
                return dict(attrs)
        return None

    def remove_container(self, container_id):
        self.containers.pop(container_id, None)

    def add_unmanaged_container(self, name, ports=None):
        container_id = uuid.uuid4().hex
        self.containers[container_id] = {
            "id": container_id,
            "name": name,
            "image": "sha256:other",
            "ip_address": "172.17.0.9",
            "ports": ports or [],
            "running": True,
        }
        return container_id


@pytest.fixture
def mock_docker_client():
    """Mock Docker client for testing."""
    client = MagicMock()
    client.ping.return_value = True
    client.api.base_url = "http+docker://localhost"

    container = MagicMock()
    container.id = "c0ffee" * 10 + "abcd"
    container.short_id = "c0ffeec0ffee"
    container.name = "tutorial"
    container.attrs = {
        "Name": "/tutorial",
        "Image": "sha256:" + "a" * 64,
        "State": {"Running": True},
        "NetworkSettings": {
            "IPAddress": "172.17.0.2",
            "Ports": {"80/tcp": [{"HostIp": "0.0.0.0", "HostPort": "8000"}]},
        },
    }
    client.containers.create.return_value = container
    client.containers.get.return_value = container

    return client


@pytest.fixture
def fake_runtime():
    """In-memory Docker engine."""
    return FakeRuntime()


@pytest.fixture
def quiet_console():
    """Console that renders into a buffer (read it with .file.getvalue())."""
    return Console(file=io.StringIO(), width=200)


@pytest.fixture
def write_declaration(tmp_path):
    """Write berth.yaml into tmp_path and return its path."""

    def _write(text=SAMPLE_DECLARATION, directory=None):
        path = (directory or tmp_path) / "berth.yaml"
        path.write_text(text)
        return path

    return _write


@pytest.fixture
def declaration_path(write_declaration):
    return write_declaration()


@pytest.fixture
def driver(tmp_path, declaration_path, fake_runtime, quiet_console):
    """An initialized LifecycleDriver working on tmp_path against the fake engine."""
    lifecycle = LifecycleDriver(
        tmp_path,
        runtime_factory=lambda declaration: fake_runtime,
        output=quiet_console,
        check_ports=False,
        environ={},
    )
    lifecycle.init()
    return lifecycle
