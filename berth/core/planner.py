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
# THE PLANNER - REFRESH & DIFF
# -----------------------------------------------------------------------------
# Responsibility: Compare the declaration with the recorded state and the
# live engine, and produce the list of changes apply would make.
#
# 1. Refresh: every recorded object is inspected. Objects that vanished
#    are dropped; stopped containers with must_run are marked for
#    replacement.
# 2. Diff: each declared resource becomes create / update / replace /
#    no-op; recorded resources that are no longer declared become delete.
# 3. Pre-flight: host ports and container names are checked so that a
#    conflict is reported before anything is touched.
#
# The planner never changes the engine or the state file.
# -----------------------------------------------------------------------------

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rich.console import Console

from berth.core.declaration import Declaration, Resource
from berth.core.expressions import UNKNOWN, Reference, contains_unknown, evaluate
from berth.core.graph import destroy_order
from berth.core.state import ResourceState, StateDocument
from berth.domain.models import ContainerResource, ImageResource, ResourceType
from berth.infra.docker_client import ContainerNameConflictError, PortConflictError
from berth.infra.ports import is_port_free

console = Console()

# Attribute changes that require destroying and re-creating the object
REPLACE_KEYS = {
    ResourceType.IMAGE.value: ("name",),
    ResourceType.CONTAINER.value: ("name", "image", "ports", "env", "command", "restart"),
}
# Attribute changes that only touch the state record
UPDATE_KEYS = {
    ResourceType.IMAGE.value: ("keep_locally",),
    ResourceType.CONTAINER.value: ("must_run",),
}
# Attributes only the engine can fill in
COMPUTED_KEYS = {
    ResourceType.IMAGE.value: ("id", "image_id", "repo_digest"),
    ResourceType.CONTAINER.value: ("id", "ip_address"),
}


class Action(str, Enum):
    """What apply will do to one resource."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


@dataclass
class ResourceChange:
    """The planned change for a single resource address."""

    address: str
    type: str
    name: str
    action: Action
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    reasons: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)


@dataclass
class Plan:
    """
    Result of planning.

    `state` is the refreshed state the executor starts from; `changes` is
    in display order, execution_order() in the order apply runs them.
    """

    changes: list[ResourceChange]
    state: StateDocument
    destroy: bool = False
    drifted: list[str] = field(default_factory=list)
    outputs: dict[str, Any] = field(default_factory=dict)
    output_changes: list[str] = field(default_factory=list)

    def get(self, address: str) -> ResourceChange | None:
        for change in self.changes:
            if change.address == address:
                return change
        return None

    def count(self, *actions: Action) -> int:
        return sum(1 for change in self.changes if change.action in actions)

    @property
    def to_add(self) -> int:
        return self.count(Action.CREATE, Action.REPLACE)

    @property
    def to_change(self) -> int:
        return self.count(Action.UPDATE)

    @property
    def to_destroy(self) -> int:
        return self.count(Action.DELETE, Action.REPLACE)

    @property
    def has_changes(self) -> bool:
        return (
            any(change.action != Action.NOOP for change in self.changes)
            or bool(self.drifted)
            or bool(self.output_changes)
        )

    def summary(self) -> str:
        return f"Plan: {self.to_add} to add, {self.to_change} to change, {self.to_destroy} to destroy."

    def execution_order(self) -> list[tuple[str, ResourceChange]]:
        """
        Steps as (phase, change): removals first, dependents before what
        they use, then creations and updates in dependency order.
        """
        removals = {c.address: c for c in self.changes if c.action in (Action.DELETE, Action.REPLACE)}
        deps = {c.address: c.dependencies for c in self.changes}
        steps: list[tuple[str, ResourceChange]] = [
            ("delete", removals[address]) for address in destroy_order(list(removals), deps)
        ]
        for change in self.changes:
            if change.action in (Action.CREATE, Action.REPLACE):
                steps.append(("create", change))
            elif change.action == Action.UPDATE:
                steps.append(("update", change))
        return steps


def normalize_ports(ports: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    normalized = [
        {
            "internal": int(p["internal"]),
            "external": p.get("external"),
            "ip": p.get("ip") or "0.0.0.0",
            "protocol": p.get("protocol") or "tcp",
        }
        for p in ports or []
    ]
    normalized.sort(key=lambda p: (p["internal"], p["protocol"], p["ip"], p["external"] or 0))
    return normalized


def ports_match(desired: list[dict[str, Any]], actual: list[dict[str, Any]] | None) -> bool:
    """Port lists match if every desired mapping has a counterpart; a missing external port matches any."""
    remaining = normalize_ports(actual)
    desired = normalize_ports(desired)
    if len(desired) != len(remaining):
        return False
    for want in desired:
        for index, have in enumerate(remaining):
            if (
                want["internal"] == have["internal"]
                and want["ip"] == have["ip"]
                and want["protocol"] == have["protocol"]
                and (want["external"] is None or want["external"] == have["external"])
            ):
                remaining.pop(index)
                break
        else:
            return False
    return True


def desired_attributes(resource: Resource, resolve: Callable[[Reference], Any]) -> dict[str, Any]:
    """Attribute values a declared resource should end up with."""
    if resource.type == ResourceType.IMAGE.value:
        image: ImageResource = resource.config  # type: ignore[assignment]
        return {"name": evaluate(image.name, resolve), "keep_locally": image.keep_locally}

    container: ContainerResource = resource.config  # type: ignore[assignment]
    return {
        "name": evaluate(container.name, resolve),
        "image": evaluate(container.image, resolve),
        "ports": normalize_ports([p.model_dump() for p in container.ports]),
        "env": evaluate(list(container.env), resolve),
        "command": evaluate(list(container.command), resolve) if container.command else None,
        "restart": container.restart,
        "must_run": container.must_run,
    }


def _values_differ(key: str, desired: Any, recorded: Any) -> bool:
    if contains_unknown(desired):
        return True
    if key == "ports":
        return not ports_match(desired, recorded)
    if key == "env":
        return sorted(desired or []) != sorted(recorded or [])
    return desired != recorded


class Planner:
    """
    Builds a Plan from a declaration, the recorded state and the engine.

    Args:
        runtime: DockerProvider (or anything with the same inspect/find methods).
        check_ports: Check host ports for containers about to be created.
        port_is_free: Function (port, ip, protocol) -> bool telling if a port is free.
    """

    def __init__(
        self,
        runtime: Any,
        check_ports: bool = True,
        port_is_free: Callable[[int, str, str], bool] = is_port_free,
    ) -> None:
        self._runtime = runtime
        self._check_ports = check_ports
        self._port_is_free = port_is_free

    # -- refresh --------------------------------------------------------------

    def refresh(self, state: StateDocument) -> tuple[StateDocument, list[str], dict[str, list[str]]]:
        """
        Re-read every recorded object from the engine.

        Returns:
            (refreshed copy of state, addresses that vanished, replacement
            reasons discovered per address)
        """
        refreshed = state.model_copy(deep=True)
        drifted: list[str] = []
        reasons: dict[str, list[str]] = {}

        for record in list(refreshed.resources):
            console.print(f"[dim][PLANNER] Refreshing {record.address}[/dim]")
            attrs = record.attributes
            if record.type == ResourceType.IMAGE.value:
                live = self._runtime.inspect_image(attrs.get("image_id") or attrs.get("id", ""))
                if live is None:
                    console.print(f"[yellow][PLANNER] {record.address} was removed outside berth[/yellow]")
                    refreshed.remove(record.address)
                    drifted.append(record.address)
                else:
                    attrs["repo_digest"] = live.get("repo_digest", attrs.get("repo_digest", ""))

            elif record.type == ResourceType.CONTAINER.value:
                live = self._runtime.inspect_container(attrs.get("id", ""))
                if live is None:
                    console.print(f"[yellow][PLANNER] {record.address} was removed outside berth[/yellow]")
                    refreshed.remove(record.address)
                    drifted.append(record.address)
                    continue
                attrs["ip_address"] = live.get("ip_address", "")
                if live.get("ports"):
                    attrs["ports"] = live["ports"]
                if not live.get("running", True) and attrs.get("must_run", True):
                    console.print(f"[yellow][PLANNER] {record.address} is not running[/yellow]")
                    reasons.setdefault(record.address, []).append("container is not running")

        return refreshed, drifted, reasons

    # -- diff -----------------------------------------------------------------

    def _diff(
        self,
        resource: Resource,
        desired: dict[str, Any],
        record: ResourceState | None,
        refresh_reasons: list[str],
    ) -> ResourceChange:
        change = ResourceChange(
            address=resource.address,
            type=resource.type,
            name=resource.label,
            action=Action.NOOP,
            before=dict(record.attributes) if record else None,
            dependencies=list(resource.dependencies),
        )
        unknown = {key: UNKNOWN for key in COMPUTED_KEYS[resource.type]}

        if record is None:
            change.action = Action.CREATE
            change.after = {**unknown, **desired}
            return change

        replace = list(refresh_reasons)
        for key in REPLACE_KEYS[resource.type]:
            if _values_differ(key, desired.get(key), record.attributes.get(key)):
                replace.append(key)
        update = [
            key
            for key in UPDATE_KEYS[resource.type]
            if _values_differ(key, desired.get(key), record.attributes.get(key))
        ]

        if replace:
            change.action = Action.REPLACE
            change.reasons = replace
            change.after = {**unknown, **desired}
        elif update:
            change.action = Action.UPDATE
            change.reasons = update
            change.after = {**record.attributes, **desired}
        else:
            change.after = {**desired, **record.attributes}
        return change

    def _check_conflicts(self, changes: list[ResourceChange]) -> None:
        """Fail before apply if a new container would collide with something on the host."""
        freed_ids: set[str] = set()
        freed_ports: set[tuple[str, int, str]] = set()
        for change in changes:
            if change.type != ResourceType.CONTAINER.value or change.before is None:
                continue
            if change.action in (Action.DELETE, Action.REPLACE):
                freed_ids.add(change.before.get("id", ""))
                for port in normalize_ports(change.before.get("ports")):
                    if port["external"]:
                        freed_ports.add((port["ip"], port["external"], port["protocol"]))

        for change in changes:
            if change.type != ResourceType.CONTAINER.value:
                continue
            if change.action not in (Action.CREATE, Action.REPLACE):
                continue
            after = change.after or {}

            name = after.get("name")
            if isinstance(name, str):
                existing = self._runtime.find_container(name)
                if existing is not None and existing.get("id") not in freed_ids:
                    raise ContainerNameConflictError(
                        f"{change.address}: a container named '{name}' already exists "
                        f"({existing.get('id', '')[:12]}) and is not managed by this state",
                        name=name,
                        container_id=existing.get("id"),
                    )

            if not self._check_ports:
                continue
            for port in after.get("ports") or []:
                external = port.get("external")
                if not external:
                    continue
                key = (port["ip"], external, port["protocol"])
                if key in freed_ports:
                    continue
                if not self._port_is_free(external, port["ip"], port["protocol"]):
                    console.print(f"[red][PLANNER] Port {external}/{port['protocol']} is already bound[/red]")
                    raise PortConflictError(
                        f"{change.address}: host port {port['ip']}:{external}/{port['protocol']} "
                        "is already in use",
                        port=external,
                    )

    def plan(self, declaration: Declaration, state: StateDocument, destroy: bool = False) -> Plan:
        """
        Compute the changes needed to reach the declaration (or to remove everything).

        Raises:
            PortConflictError: A new container would publish a bound host port.
            ContainerNameConflictError: An unmanaged container already has the name.
        """
        mode = "destroy" if destroy else "apply"
        console.print(f"[cyan][PLANNER] Planning {mode} for {declaration.path.name}[/cyan]")

        refreshed, drifted, refresh_reasons = self.refresh(state)
        changes: list[ResourceChange] = []

        if destroy:
            for record in refreshed.resources:
                changes.append(
                    ResourceChange(
                        address=record.address,
                        type=record.type,
                        name=record.name,
                        action=Action.DELETE,
                        before=dict(record.attributes),
                        dependencies=list(record.dependencies),
                    )
                )
            return Plan(
                changes=changes,
                state=refreshed,
                destroy=True,
                drifted=drifted,
                output_changes=sorted(refreshed.outputs),
            )

        planned: dict[str, dict[str, Any]] = {}

        def resolve(ref: Reference) -> Any:
            if ref.kind == "var":
                return declaration.variables.get(ref.name)
            return planned.get(ref.address, {}).get(ref.attribute, UNKNOWN)

        for address, resource in declaration.resources.items():
            desired = desired_attributes(resource, resolve)
            change = self._diff(
                resource, desired, refreshed.get(address), refresh_reasons.get(address, [])
            )
            planned[address] = change.after or {}
            changes.append(change)

        for record in refreshed.resources:
            if declaration.get(record.address) is None:
                changes.append(
                    ResourceChange(
                        address=record.address,
                        type=record.type,
                        name=record.name,
                        action=Action.DELETE,
                        before=dict(record.attributes),
                        dependencies=list(record.dependencies),
                    )
                )

        self._check_conflicts(changes)

        # Values that stay unknown with nothing to apply are never recorded
        converging = any(change.action != Action.NOOP for change in changes)
        outputs = {}
        output_changes = []
        for name, spec in declaration.outputs.items():
            outputs[name] = evaluate(spec.value, resolve)
            if contains_unknown(outputs[name]) and not converging:
                continue
            if refreshed.outputs.get(name) != {"value": outputs[name], "sensitive": spec.sensitive}:
                output_changes.append(name)
        output_changes += [name for name in refreshed.outputs if name not in outputs]

        plan = Plan(
            changes=changes,
            state=refreshed,
            drifted=drifted,
            outputs=outputs,
            output_changes=output_changes,
        )
        console.print(f"[cyan][PLANNER] {plan.summary()}[/cyan]")
        return plan
