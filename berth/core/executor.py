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
# THE EXECUTOR - APPLY A PLAN
# -----------------------------------------------------------------------------
# Responsibility: Carry out a Plan against the engine, one resource at a
# time, recording every finished step in the state file.
#
# Safety Features:
# - State is saved after each step, so a failure half-way through never
#   forgets an object that was already created
# - Replacement is destroy-then-create (container names and ports are unique)
# - A container name taken by an unmanaged container stops the run
# -----------------------------------------------------------------------------

from dataclasses import dataclass, field
from typing import Any

from rich.console import Console

from berth.core.declaration import Declaration
from berth.core.expressions import UNKNOWN, Reference, contains_unknown, evaluate
from berth.core.planner import Action, Plan, ResourceChange, desired_attributes
from berth.core.state import ResourceState, StateDocument, StateStore
from berth.domain.models import ResourceType
from berth.errors import BerthError
from berth.infra.docker_client import ContainerNameConflictError

console = Console()


class ApplyError(BerthError):
    """
    Raised when a step of apply fails.

    Everything completed before the failing step is already in state.
    """

    def __init__(self, message: str, address: str) -> None:
        super().__init__(message)
        self.address = address


@dataclass
class ApplyResult:
    """Counts of what apply did, plus the outputs it recorded."""

    added: int = 0
    changed: int = 0
    destroyed: int = 0
    outputs: dict[str, Any] = field(default_factory=dict)

    def summary(self, destroy: bool = False) -> str:
        if destroy:
            return f"Destroy complete! Resources: {self.destroyed} destroyed."
        return (
            f"Apply complete! Resources: {self.added} added, "
            f"{self.changed} changed, {self.destroyed} destroyed."
        )


def state_resolver(state: StateDocument, declaration: Declaration | None = None):
    """Resolve expressions against recorded attributes (after creation)."""

    def resolve(ref: Reference) -> Any:
        if ref.kind == "var":
            return declaration.variables.get(ref.name) if declaration else None
        record = state.get(ref.address)
        if record is None or ref.attribute not in record.attributes:
            return UNKNOWN
        return record.attributes[ref.attribute]

    return resolve


def evaluate_outputs(declaration: Declaration, state: StateDocument) -> dict[str, dict[str, Any]]:
    """Compute output values from state; values that cannot be known are left out."""
    resolve = state_resolver(state, declaration)
    outputs: dict[str, dict[str, Any]] = {}
    for name, spec in declaration.outputs.items():
        value = evaluate(spec.value, resolve)
        if contains_unknown(value):
            continue
        outputs[name] = {"value": value, "sensitive": spec.sensitive}
    return outputs


class Executor:
    """Runs plan steps against the engine and persists state as it goes."""

    def __init__(self, runtime: Any, store: StateStore) -> None:
        self._runtime = runtime
        self._store = store

    def _create(self, change: ResourceChange, declaration: Declaration, state: StateDocument) -> None:
        resource = declaration.get(change.address)
        if resource is None:
            raise ApplyError(f"{change.address} is not declared", change.address)

        desired = desired_attributes(resource, state_resolver(state, declaration))
        missing = [key for key, value in desired.items() if contains_unknown(value)]
        if missing:
            raise ApplyError(
                f"{change.address}: could not resolve {', '.join(missing)}", change.address
            )

        if resource.type == ResourceType.IMAGE.value:
            live = self._runtime.ensure_image(desired["name"])
            attributes = {**live, **desired}
        else:
            existing = self._runtime.find_container(desired["name"])
            if existing is not None:
                raise ContainerNameConflictError(
                    f"A container named '{desired['name']}' already exists ({existing['id'][:12]})",
                    name=desired["name"],
                    container_id=existing["id"],
                )
            live = self._runtime.create_container(desired)
            attributes = {
                **desired,
                "id": live["id"],
                "ip_address": live.get("ip_address", ""),
                "ports": live.get("ports") or desired["ports"],
            }

        state.upsert(
            ResourceState(
                type=resource.type,
                name=resource.label,
                attributes=attributes,
                dependencies=list(resource.dependencies),
            )
        )
        console.print(f"[green][EXECUTOR] {change.address}: Creation complete (id={attributes['id'][:19]})[/green]")

    def _delete(self, change: ResourceChange, state: StateDocument) -> None:
        before = change.before or {}
        if change.type == ResourceType.IMAGE.value:
            if before.get("keep_locally"):
                console.print(f"[cyan][EXECUTOR] {change.address}: keeping image locally[/cyan]")
            else:
                self._runtime.remove_image(before.get("image_id") or before["id"])
        else:
            self._runtime.remove_container(before["id"])
        state.remove(change.address)
        console.print(f"[yellow][EXECUTOR] {change.address}: Destruction complete[/yellow]")

    def _update(self, change: ResourceChange, state: StateDocument) -> None:
        record = state.get(change.address)
        if record is None:
            raise ApplyError(f"{change.address} is not in state", change.address)
        for key in change.reasons:
            record.attributes[key] = (change.after or {}).get(key)
        console.print(f"[green][EXECUTOR] {change.address}: Modifications complete[/green]")

    def execute(self, plan: Plan, declaration: Declaration) -> ApplyResult:
        """
        Apply every step of the plan.

        Args:
            plan: The Plan produced by the Planner (its refreshed state is the starting point).
            declaration: The declaration the plan was made from.

        Returns:
            ApplyResult with counts and recorded outputs.

        Raises:
            ApplyError: A step failed; state up to that step has been saved.
        """
        state = plan.state
        result = ApplyResult()

        if plan.drifted:
            self._store.save(state)

        for phase, change in plan.execution_order():
            verb = {"delete": "Destroying", "create": "Creating", "update": "Modifying"}[phase]
            console.print(f"[cyan][EXECUTOR] {change.address}: {verb}...[/cyan]")
            try:
                if phase == "delete":
                    self._delete(change, state)
                    if change.action == Action.DELETE:
                        result.destroyed += 1
                elif phase == "create":
                    self._create(change, declaration, state)
                    if change.action == Action.REPLACE:
                        result.destroyed += 1
                    result.added += 1
                else:
                    self._update(change, state)
                    result.changed += 1
            except ApplyError:
                self._store.save(state)
                raise
            except BerthError as e:
                console.print(f"[red][EXECUTOR] {change.address}: {e}[/red]")
                self._store.save(state)
                raise ApplyError(f"{change.address}: {e}", change.address) from e
            self._store.save(state)

        state.outputs = {} if plan.destroy else evaluate_outputs(declaration, state)
        self._store.save(state)
        result.outputs = {name: item["value"] for name, item in state.outputs.items()}
        return result
