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
# PROVIDER REGISTRY
# -----------------------------------------------------------------------------
# Responsibility: Resolve the providers a declaration requires to the
# adapters installed with berth, check their versions against the declared
# constraints, and pin the result in .berth/providers.lock.json.
#
# `berth init` writes the lock; every other verb refuses to run until the
# lock matches the declaration.
# -----------------------------------------------------------------------------

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import docker
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console

from berth.core.versions import VersionConstraintError, matches
from berth.domain.models import ProviderConfig, ProviderRequirement, ResourceType
from berth.errors import BerthError
from berth.infra.docker_client import DockerProvider

console = Console()

# Community source names that map to the same adapter
SOURCE_ALIASES = {"kreuzwerker/docker": "docker/docker"}


class ProviderResolutionError(BerthError):
    """Raised when a required provider is unknown or its version does not fit."""

    def __init__(self, message: str, provider: str, details: str = "") -> None:
        super().__init__(message)
        self.provider = provider
        self.details = details


class ProviderNotInitializedError(BerthError):
    """Raised when the provider lock is missing or out of date."""

    pass


@dataclass(frozen=True)
class ProviderPlugin:
    """An installed provider adapter."""

    source: str
    version: Callable[[], str]
    factory: Callable[[ProviderConfig], Any]
    resource_types: tuple[str, ...]


def _docker_factory(provider_config: ProviderConfig) -> DockerProvider:
    return DockerProvider(base_url=provider_config.host, timeout=provider_config.timeout)


REGISTRY: dict[str, ProviderPlugin] = {
    "docker/docker": ProviderPlugin(
        source="docker/docker",
        version=lambda: docker.__version__,
        factory=_docker_factory,
        resource_types=(ResourceType.IMAGE.value, ResourceType.CONTAINER.value),
    ),
}


class LockedProvider(BaseModel):
    """A provider selection pinned by `berth init`."""

    source: str
    version: str
    constraints: str | None = None


class ProviderLock(BaseModel):
    """Contents of providers.lock.json."""

    providers: dict[str, LockedProvider] = Field(default_factory=dict)


def find_plugin(source: str) -> ProviderPlugin | None:
    return REGISTRY.get(SOURCE_ALIASES.get(source, source))


def resolve_providers(requirements: Mapping[str, ProviderRequirement]) -> dict[str, LockedProvider]:
    """
    Match every requirement to an installed adapter.

    Raises:
        ProviderResolutionError: Unknown source or unsatisfied version constraint.
    """
    resolved: dict[str, LockedProvider] = {}
    for name, requirement in requirements.items():
        plugin = find_plugin(requirement.source)
        if plugin is None:
            console.print(f"[red][PROVIDERS] Unknown provider source: {requirement.source}[/red]")
            raise ProviderResolutionError(
                f"Could not resolve provider '{name}': no adapter for source '{requirement.source}'",
                provider=name,
                details=f"Available: {', '.join(sorted(REGISTRY))}",
            )

        installed = plugin.version()
        try:
            fits = matches(installed, requirement.version)
        except VersionConstraintError as e:
            raise ProviderResolutionError(
                f"Could not resolve provider '{name}': {e}", provider=name
            ) from e
        if not fits:
            console.print(
                f"[red][PROVIDERS] {plugin.source} {installed} does not satisfy "
                f"'{requirement.version}'[/red]"
            )
            raise ProviderResolutionError(
                f"Could not resolve provider '{name}': installed version {installed} "
                f"does not satisfy '{requirement.version}'",
                provider=name,
            )

        console.print(f"[green][PROVIDERS] {name}: {plugin.source} v{installed}[/green]")
        resolved[name] = LockedProvider(
            source=plugin.source, version=installed, constraints=requirement.version
        )
    return resolved


def write_lock(path: Path, providers: Mapping[str, LockedProvider]) -> ProviderLock:
    lock = ProviderLock(providers=dict(providers))
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(lock.model_dump(), f, indent=2, sort_keys=True)
        f.write("\n")
    return lock


def read_lock(path: Path) -> ProviderLock | None:
    if not path.exists():
        return None
    try:
        with open(path) as f:
            return ProviderLock(**json.load(f))
    except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
        console.print(f"[yellow][PROVIDERS] Ignoring unreadable lock file {path}: {e}[/yellow]")
        return None


def verify_lock(path: Path, requirements: Mapping[str, ProviderRequirement]) -> ProviderLock:
    """
    Check that the lock file covers the declaration as it is now.

    Raises:
        ProviderNotInitializedError: Missing lock, or anything drifted since init.
    """
    hint = "Run 'berth init' to initialize providers."
    lock = read_lock(path)
    if lock is None:
        raise ProviderNotInitializedError(f"Providers are not initialized. {hint}")

    for name, requirement in requirements.items():
        locked = lock.providers.get(name)
        plugin = find_plugin(requirement.source)
        if locked is None or plugin is None or locked.source != plugin.source:
            raise ProviderNotInitializedError(f"Provider '{name}' is not in the lock file. {hint}")
        if locked.constraints != requirement.version:
            raise ProviderNotInitializedError(
                f"Version constraint for '{name}' changed since init. {hint}"
            )
        if locked.version != plugin.version():
            raise ProviderNotInitializedError(
                f"Installed '{name}' provider is {plugin.version()}, lock has {locked.version}. {hint}"
            )
    return lock
