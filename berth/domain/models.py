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
# DOMAIN MODELS - THE DECLARATION
# -----------------------------------------------------------------------------
# These Pydantic models define what a berth.yaml may contain: provider
# requirements, input variables, the two resource types (docker_image and
# docker_container) and outputs.
#
# Resource blocks are validated after variable substitution. Values that
# still hold a resource reference (${docker_image.nginx.image_id}) are
# only known during apply, so their format checks are deferred.
# -----------------------------------------------------------------------------

import re
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from berth.domain.image_reference import ImageReference, InvalidReferenceError

LABEL_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_-]*$"
CONTAINER_NAME_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$"
ENV_PATTERN = r"^[^=\s]+=.*$"
# Host addresses that bind every interface
WILDCARD_IPS = ("0.0.0.0", "::")


def has_expression(value: Any) -> bool:
    """True if a string still carries an unresolved ${...} expression."""
    return isinstance(value, str) and "${" in value


class ResourceType(str, Enum):
    """Resource types understood by the Docker provider."""

    IMAGE = "docker_image"
    CONTAINER = "docker_container"


class ProviderRequirement(BaseModel):
    """A required_providers entry: where the provider comes from and which versions fit."""

    source: str = Field("docker/docker", min_length=1)
    version: str | None = Field(None, description="Version constraint, e.g. '~> 7.0'")

    class Config:
        extra = "forbid"


class Settings(BaseModel):
    """The top-level 'berth' block."""

    required_providers: dict[str, ProviderRequirement] = Field(default_factory=dict)

    class Config:
        extra = "forbid"


class ProviderConfig(BaseModel):
    """Connection settings for a provider block."""

    host: str | None = Field(None, description="Engine URL, e.g. unix:///var/run/docker.sock")
    timeout: int | None = Field(None, ge=1)

    class Config:
        extra = "forbid"


class VariableSpec(BaseModel):
    """An input variable. A variable without a default must be supplied by the caller."""

    description: str = ""
    type: Literal["string", "number", "bool"] = "string"
    default: Any = None

    class Config:
        extra = "forbid"

    @property
    def required(self) -> bool:
        return "default" not in self.model_fields_set


class OutputSpec(BaseModel):
    """A named value computed from state after apply."""

    value: Any
    description: str = ""
    sensitive: bool = False

    class Config:
        extra = "forbid"


class DeclarationFile(BaseModel):
    """
    Raw shape of berth.yaml.

    Resource bodies stay untyped here; they are validated per type once
    variables have been substituted (see RESOURCE_SCHEMAS).
    """

    berth: Settings = Field(default_factory=Settings)
    provider: dict[str, ProviderConfig] = Field(default_factory=dict)
    variables: dict[str, VariableSpec] = Field(default_factory=dict)
    resources: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=dict)
    outputs: dict[str, OutputSpec] = Field(default_factory=dict)

    class Config:
        extra = "forbid"


class ResourceConfig(BaseModel):
    """Fields shared by every resource body."""

    depends_on: list[str] = Field(default_factory=list)

    class Config:
        extra = "forbid"
        str_strip_whitespace = True


class ImageResource(ResourceConfig):
    """
    docker_image: an image pulled into the local image store.

    keep_locally leaves the image in place when the resource is destroyed.
    """

    name: str = Field(..., min_length=1, description="Image reference, e.g. 'nginx:latest'")
    keep_locally: bool = False

    @field_validator("name")
    @classmethod
    def validate_reference(cls, v: str) -> str:
        if has_expression(v):
            return v
        try:
            ImageReference.parse(v)
        except InvalidReferenceError as e:
            raise ValueError(str(e)) from e
        return v


class PortMapping(BaseModel):
    """One published port. A missing external port lets Docker pick one."""

    internal: int = Field(..., ge=1, le=65535)
    external: int | None = Field(None, ge=1, le=65535)
    ip: str = "0.0.0.0"
    protocol: Literal["tcp", "udp", "sctp"] = "tcp"

    class Config:
        extra = "forbid"

    @field_validator("internal", "external", mode="before")
    @classmethod
    def reject_bool(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("port must be an integer")
        return v

    @property
    def binding_key(self) -> str:
        return f"{self.ip}:{self.external}/{self.protocol}"

    def overlaps(self, other: "PortMapping") -> bool:
        """True if both would claim the same host port. A wildcard address claims every address."""
        if self.external is None or (self.external, self.protocol) != (other.external, other.protocol):
            return False
        return self.ip == other.ip or self.ip in WILDCARD_IPS or other.ip in WILDCARD_IPS


class ContainerResource(ResourceConfig):
    """
    docker_container: a long-running container created from an image.

    Every attribute except must_run forces replacement when it changes.
    """

    name: str = Field(..., min_length=1, max_length=128)
    image: str = Field(..., min_length=1, description="Image ID, usually ${docker_image.<label>.image_id}")
    ports: list[PortMapping] = Field(default_factory=list)
    env: list[str] = Field(default_factory=list)
    command: list[str] | None = None
    restart: Literal["no", "on-failure", "always", "unless-stopped"] = "no"
    must_run: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not has_expression(v) and not re.match(CONTAINER_NAME_PATTERN, v):
            raise ValueError(f"Invalid container name '{v}'")
        return v

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: list[str]) -> list[str]:
        for item in v:
            if not has_expression(item) and not re.match(ENV_PATTERN, item):
                raise ValueError(f"Environment entry '{item}' must look like KEY=VALUE")
        return v


RESOURCE_SCHEMAS: dict[str, type[ResourceConfig]] = {
    ResourceType.IMAGE.value: ImageResource,
    ResourceType.CONTAINER.value: ContainerResource,
}

# Attributes each resource type exposes to expressions
RESOURCE_ATTRIBUTES: dict[str, frozenset[str]] = {
    ResourceType.IMAGE.value: frozenset({"id", "image_id", "name", "repo_digest", "keep_locally"}),
    ResourceType.CONTAINER.value: frozenset(
        {"id", "name", "image", "ip_address", "ports", "env", "command", "restart", "must_run"}
    ),
}
