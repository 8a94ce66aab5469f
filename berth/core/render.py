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
# PLAN & STATE RENDERING
# -----------------------------------------------------------------------------
# Human-readable views of a Plan, of the state file and of outputs:
#
#   # docker_container.nginx must be replaced
#   -/+ resource "docker_container" "nginx" {
#         ~ ports = [...] -> [...] # forces replacement
#       }
#
#   Plan: 1 to add, 0 to change, 1 to destroy.
# -----------------------------------------------------------------------------

import json
from typing import Any

from rich.console import Console
from rich.markup import escape

from berth.core.expressions import UNKNOWN, contains_unknown
from berth.core.planner import Action, Plan, ResourceChange
from berth.core.state import StateDocument

SYMBOLS = {
    Action.CREATE: ("+", "green", "will be created"),
    Action.UPDATE: ("~", "yellow", "will be updated in-place"),
    Action.REPLACE: ("-/+", "red", "must be replaced"),
    Action.DELETE: ("-", "red", "will be destroyed"),
}


def format_value(value: Any) -> str:
    """Render one attribute value the way plans print it."""
    if value is UNKNOWN or contains_unknown(value):
        return "(known after apply)"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value, sort_keys=True)


def _attribute_lines(change: ResourceChange) -> list[str]:
    before = change.before or {}
    after = change.after or {}
    keys = sorted(set(before) | set(after)) if change.action != Action.DELETE else sorted(before)
    width = max((len(key) for key in keys), default=0)
    lines = []

    for key in keys:
        label = key.ljust(width)
        if change.action == Action.CREATE:
            lines.append(f"[green]+[/green] {label} = {escape(format_value(after.get(key)))}")
        elif change.action == Action.DELETE:
            lines.append(f"[red]-[/red] {label} = {escape(format_value(before.get(key)))}")
        else:
            old, new = before.get(key), after.get(key)
            if key not in change.reasons and (new is UNKNOWN or old == new or key not in after):
                continue
            suffix = ""
            if change.action == Action.REPLACE and key in change.reasons:
                suffix = " [red]# forces replacement[/red]"
            lines.append(
                f"[yellow]~[/yellow] {label} = {escape(format_value(old))} -> "
                f"{escape(format_value(new))}{suffix}"
            )
    return lines


def render_change(change: ResourceChange, console: Console) -> None:
    symbol, colour, phrase = SYMBOLS[change.action]
    console.print(f"  [bold]# {change.address}[/bold] {phrase}")
    non_attribute = [r for r in change.reasons if r not in (change.before or {}) and r not in (change.after or {})]
    for reason in non_attribute:
        console.print(f"  [dim]# ({reason})[/dim]")
    console.print(f"[{colour}]{escape(symbol)}[/{colour}] resource \"{change.type}\" \"{change.name}\" {{")
    for line in _attribute_lines(change):
        console.print(f"      {line}")
    console.print("    }")
    console.print()


def render_plan(plan: Plan, console: Console) -> None:
    """Print the full change summary for a plan."""
    for address in plan.drifted:
        console.print(f"[yellow]Note: {address} was deleted outside of berth.[/yellow]")
    if plan.drifted:
        console.print()

    changes = [c for c in plan.changes if c.action != Action.NOOP]
    if not changes and not plan.output_changes:
        console.print("[bold green]No changes.[/bold green] Your infrastructure matches the declaration.")
        return

    if changes:
        console.print("Berth will perform the following actions:")
        console.print()
        for change in changes:
            render_change(change, console)
        console.print(f"[bold]{plan.summary()}[/bold]")
    else:
        console.print(
            "Only output values will change. Apply this plan to save them "
            "without touching any containers or images."
        )

    if plan.output_changes:
        console.print()
        console.print("Changes to Outputs:")
        for name in sorted(plan.output_changes):
            if name in plan.outputs:
                value = plan.outputs[name]
                marker = "[yellow]~[/yellow]" if name in plan.state.outputs else "[green]+[/green]"
                console.print(f"  {marker} {name} = {escape(format_value(value))}")
            else:
                console.print(f"  [red]-[/red] {name} = null")


def render_state(state: StateDocument, console: Console) -> None:
    """Print every recorded resource and output."""
    if not state.resources:
        console.print("The state is empty. No resources are represented.")
        return
    for record in state.resources:
        console.print(f"[bold]# {record.address}:[/bold]")
        console.print(f"resource \"{record.type}\" \"{record.name}\" {{")
        width = max((len(key) for key in record.attributes), default=0)
        for key in sorted(record.attributes):
            console.print(f"    {key.ljust(width)} = {escape(format_value(record.attributes[key]))}")
        console.print("}")
        console.print()
    render_outputs(state, console)


def render_outputs(state: StateDocument, console: Console, name: str | None = None) -> None:
    items = state.outputs if name is None else {name: state.outputs[name]}
    if not items:
        return
    console.print("Outputs:")
    console.print()
    for key in sorted(items):
        item = items[key]
        value = "(sensitive value)" if item.get("sensitive") else format_value(item.get("value"))
        console.print(f"{key} = {escape(value)}")
