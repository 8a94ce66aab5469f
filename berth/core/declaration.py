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
# THE DECLARATION LOADER
# -----------------------------------------------------------------------------
# Responsibility: Turns berth.yaml into a validated Declaration. Nothing
# here touches Docker; `berth validate` runs exactly this module.
#
# Steps:
# 1. Parse YAML and check the top-level shape (DeclarationFile)
# 2. Resolve input variables (--var > BERTH_VAR_<name> > default)
# 3. Substitute ${var.*}, validate each resource body against its schema
# 4. Check references and order resources by dependency
# 5. Enforce declaration-wide invariants (unique names, unique ports)
# -----------------------------------------------------------------------------

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from rich.console import Console

from berth import config
from berth.core.expressions import (
    ExpressionError,
    Reference,
    evaluate,
    find_references,
)
from berth.core.graph import CycleError, resolve_order
from berth.domain.models import (
    LABEL_PATTERN,
    RESOURCE_ATTRIBUTES,
    RESOURCE_SCHEMAS,
    ContainerResource,
    DeclarationFile,
    OutputSpec,
    PortMapping,
    ProviderConfig,
    ProviderRequirement,
    ResourceConfig,
    ResourceType,
    VariableSpec,
    has_expression,
)
from berth.errors import BerthError

console = Console()

DEFAULT_PROVIDER = "docker"


class DeclarationError(BerthError):
    """
    Raised when berth.yaml cannot be loaded or is inconsistent.

    Carries the offending location (file or resource address) when known.
    """

    def __init__(self, message: str, location: str | None = None, details: str = "") -> None:
        super().__init__(f"{location}: {message}" if location else message)
        self.location = location
        self.details = details


@dataclass
class Resource:
    """A declared resource after variable substitution."""

    type: str
    label: str
    body: dict[str, Any]
    config: ResourceConfig
    dependencies: list[str] = field(default_factory=list)

    @property
    def address(self) -> str:
        return f"{self.type}.{self.label}"

    @property
    def provider(self) -> str:
        return self.type.split("_", 1)[0]


@dataclass
class Declaration:
    """Everything berth knows about the desired end-state."""

    path: Path
    required_providers: dict[str, ProviderRequirement]
    providers: dict[str, ProviderConfig]
    variables: dict[str, Any]
    resources: dict[str, Resource]
    outputs: dict[str, OutputSpec]

    def get(self, address: str) -> Resource | None:
        return self.resources.get(address)

    def provider_config(self, name: str = DEFAULT_PROVIDER) -> ProviderConfig:
        return self.providers.get(name, ProviderConfig())


def parse_var_assignments(assignments: list[str] | tuple[str, ...]) -> dict[str, str]:
    """
    Parse --var name=value flags.

    Raises:
        DeclarationError: If an assignment has no '='.
    """
    values: dict[str, str] = {}
    for item in assignments:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise DeclarationError(f"Invalid variable assignment '{item}' (expected name=value)")
        values[name.strip()] = value
    return values


def coerce_variable(name: str, spec: VariableSpec, value: Any) -> Any:
    """Convert a raw variable value to the declared type."""
    if spec.type == "string":
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if spec.type == "number":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise DeclarationError(f"Variable '{name}' expects a number, got '{value}'") from None

    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise DeclarationError(f"Variable '{name}' expects a bool, got '{value}'")


def resolve_variables(
    specs: Mapping[str, VariableSpec],
    cli_values: Mapping[str, Any],
    environ: Mapping[str, str],
) -> dict[str, Any]:
    """
    Pick a value for every declared variable.

    Precedence: --var flags, then BERTH_VAR_<name>, then the default.
    """
    undeclared = sorted(set(cli_values) - set(specs))
    if undeclared:
        raise DeclarationError(f"Value given for undeclared variable(s): {', '.join(undeclared)}")

    resolved: dict[str, Any] = {}
    for name, spec in specs.items():
        env_key = f"{config.VARIABLE_ENV_PREFIX}{name}"
        if name in cli_values:
            raw = cli_values[name]
        elif env_key in environ:
            raw = environ[env_key]
        elif not spec.required:
            raw = spec.default
        else:
            raise DeclarationError(
                f"No value for required variable '{name}'",
                details=f"Pass --var {name}=... or set {env_key}",
            )
        resolved[name] = None if raw is None else coerce_variable(name, spec, raw)
    return resolved


def _substitute_variables(value: Any, variables: Mapping[str, Any], location: str) -> Any:
    """Replace ${var.*} expressions; resource references are left in place."""

    def resolve(ref: Reference) -> Any:
        if ref.kind == "var":
            if ref.name not in variables:
                raise DeclarationError(f"Reference to undeclared variable '{ref.name}'", location)
            return variables[ref.name]
        return f"${{{ref}}}"

    try:
        return evaluate(value, resolve)
    except ExpressionError as e:
        raise DeclarationError(str(e), location) from e


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item["loc"]) or "(root)"
        lines.append(f"{loc}: {item['msg']}")
    return "; ".join(lines)


def _check_reference(ref: Reference, resources: Mapping[str, Any], location: str) -> None:
    if ref.kind == "var":
        return
    if ref.address not in resources:
        raise DeclarationError(f"Reference to undeclared resource '{ref.address}'", location)
    if ref.attribute not in RESOURCE_ATTRIBUTES[ref.resource_type]:
        raise DeclarationError(
            f"Resource type '{ref.resource_type}' has no attribute '{ref.attribute}'", location
        )


def _check_invariants(resources: Mapping[str, Resource]) -> None:
    """At most one container per name, and no two containers on the same host port."""
    names: dict[str, str] = {}
    bindings: list[tuple[PortMapping, str]] = []
    for address, resource in resources.items():
        if resource.type != ResourceType.CONTAINER.value:
            continue
        container: ContainerResource = resource.config  # type: ignore[assignment]

        if not has_expression(container.name):
            if container.name in names:
                raise DeclarationError(
                    f"Container name '{container.name}' is also used by {names[container.name]}",
                    address,
                )
            names[container.name] = address

        for port in container.ports:
            if port.external is None:
                continue
            for other, owner in bindings:
                if port.overlaps(other):
                    raise DeclarationError(
                        f"Host port {port.binding_key} overlaps {other.binding_key} published by {owner}",
                        address,
                    )
            bindings.append((port, address))


def read_declaration_file(path: Path) -> DeclarationFile:
    """Parse berth.yaml and check its top-level shape."""
    if not path.exists():
        raise DeclarationError(f"No declaration found at {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DeclarationError(f"Invalid YAML: {e}", str(path)) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DeclarationError("Top level must be a mapping", str(path))

    try:
        return DeclarationFile(**data)
    except ValidationError as e:
        raise DeclarationError(
            "Invalid declaration", str(path), details=_format_validation_error(e)
        ) from e


def _required_providers(raw: DeclarationFile) -> dict[str, ProviderRequirement]:
    """Declared requirements plus an implicit entry for every provider a resource type uses."""
    required = dict(raw.berth.required_providers)
    for resource_type in raw.resources:
        required.setdefault(resource_type.split("_", 1)[0], ProviderRequirement())
    if not required:
        required[DEFAULT_PROVIDER] = ProviderRequirement()
    return required


def load_requirements(path: Path | str) -> dict[str, ProviderRequirement]:
    """
    Provider requirements only, without resolving variables.

    Used by `berth init`, which must work before variable values are known.
    """
    return _required_providers(read_declaration_file(Path(path)))


def load_declaration(
    path: Path | str,
    variables: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Declaration:
    """
    Load and validate a declaration file.

    Args:
        path: Path to berth.yaml.
        variables: Values from --var flags.
        environ: Environment to read BERTH_VAR_* from (defaults to os.environ).

    Returns:
        Declaration with resources in creation order.

    Raises:
        DeclarationError: On any syntax, schema, reference or invariant problem.
    """
    path = Path(path)
    environ = os.environ if environ is None else environ
    raw = read_declaration_file(path)

    values = resolve_variables(raw.variables, variables or {}, environ)

    resources: dict[str, Resource] = {}
    for resource_type, blocks in raw.resources.items():
        schema = RESOURCE_SCHEMAS.get(resource_type)
        if schema is None:
            raise DeclarationError(
                f"Unsupported resource type '{resource_type}'",
                str(path),
                details=f"Supported: {', '.join(sorted(RESOURCE_SCHEMAS))}",
            )
        for label, body in (blocks or {}).items():
            address = f"{resource_type}.{label}"
            if not re.match(LABEL_PATTERN, label):
                raise DeclarationError(f"Invalid resource label '{label}'", address)
            if not isinstance(body, dict):
                raise DeclarationError("Resource body must be a mapping", address)

            substituted = _substitute_variables(body, values, address)
            try:
                resource_config = schema(**substituted)
            except ValidationError as e:
                raise DeclarationError(
                    f"Invalid {resource_type}: {_format_validation_error(e)}", address
                ) from e

            resources[address] = Resource(
                type=resource_type, label=label, body=substituted, config=resource_config
            )

    for address, resource in resources.items():
        deps: list[str] = []
        try:
            refs = find_references(resource.body)
        except ExpressionError as e:
            raise DeclarationError(str(e), address) from e
        for ref in refs:
            if ref.kind != "resource":
                continue
            _check_reference(ref, resources, address)
            if ref.address not in deps:
                deps.append(ref.address)
        for dep in resource.config.depends_on:
            if dep not in resources:
                raise DeclarationError(f"depends_on names undeclared resource '{dep}'", address)
            if dep not in deps:
                deps.append(dep)
        resource.dependencies = deps

    try:
        order = resolve_order(resources, {a: r.dependencies for a, r in resources.items()})
    except CycleError as e:
        raise DeclarationError(str(e), str(path)) from e

    ordered = {address: resources[address] for address in order}
    _check_invariants(ordered)

    outputs: dict[str, OutputSpec] = {}
    for name, spec in raw.outputs.items():
        location = f"output.{name}"
        value = _substitute_variables(spec.value, values, location)
        try:
            refs = find_references(value)
        except ExpressionError as e:
            raise DeclarationError(str(e), location) from e
        for ref in refs:
            _check_reference(ref, ordered, location)
        outputs[name] = spec.model_copy(update={"value": value})

    required = _required_providers(raw)

    console.print(
        f"[cyan][DECLARATION] Loaded {path.name}: {len(ordered)} resource(s), "
        f"{len(outputs)} output(s)[/cyan]"
    )

    return Declaration(
        path=path,
        required_providers=required,
        providers=dict(raw.provider),
        variables=values,
        resources=ordered,
        outputs=outputs,
    )
