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
# BERTH CLI
# -----------------------------------------------------------------------------
# Usage:
#   berth [-C DIR] init
#   berth [-C DIR] validate  [--var NAME=VALUE ...]
#   berth [-C DIR] plan      [--var NAME=VALUE ...] [--destroy]
#   berth [-C DIR] apply     [--var NAME=VALUE ...] [--auto-approve]
#   berth [-C DIR] destroy   [--var NAME=VALUE ...] [--auto-approve]
#   berth [-C DIR] show      [--json]
#   berth [-C DIR] output    [NAME] [--json]
#   berth [-C DIR] force-unlock LOCK_ID [--force]
#
# apply and destroy only proceed when the answer to the prompt is exactly "yes".
# -----------------------------------------------------------------------------

import json
import sys
from collections.abc import Callable
from functools import wraps
from typing import TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from berth import __version__, config
from berth.core.declaration import parse_var_assignments
from berth.core.lifecycle import LifecycleDriver
from berth.core.planner import Plan
from berth.core.render import render_outputs, render_state
from berth.errors import BerthError

console = Console()

R = TypeVar("R")

APPLY_PROMPT = (
    "\n[bold]Do you want to perform these actions?[/bold]\n"
    "  Berth will perform the actions described above.\n"
    "  Only 'yes' will be accepted to approve.\n"
)
DESTROY_PROMPT = (
    "\n[bold]Do you really want to destroy all resources?[/bold]\n"
    "  Berth will destroy all your managed infrastructure, as shown above.\n"
    "  There is no undo. Only 'yes' will be accepted to confirm.\n"
)


def handle_errors(func: Callable[..., R]) -> Callable[..., R]:
    """Decorator that reports BerthError in a panel and exits with status 1."""

    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> R:
        try:
            return func(*args, **kwargs)
        except BerthError as e:
            body = f"[bold red]{escape(str(e))}[/bold red]"
            details = getattr(e, "details", "")
            if details:
                body += f"\n\n{escape(details)}"
            console.print(Panel(body, title=type(e).__name__, border_style="red"))
            sys.exit(1)

    return wrapper


def _confirmation(prompt: str) -> Callable[[Plan], bool]:
    def ask(plan: Plan) -> bool:
        console.print(prompt)
        answer = click.prompt("  Enter a value", default="", show_default=False)
        return answer.strip() == "yes"

    return ask


def _driver(ctx: click.Context, lock_timeout: float | None = None) -> LifecycleDriver:
    return LifecycleDriver(ctx.obj["workdir"], output=console, lock_timeout=lock_timeout)


var_option = click.option(
    "--var", "variables", multiple=True, metavar="NAME=VALUE", help="Set a declaration variable."
)
lock_timeout_option = click.option(
    "--lock-timeout",
    type=float,
    default=None,
    help="Seconds to wait for a held state lock (default: fail immediately).",
)


@click.group()
@click.option(
    "--chdir", "-C", default=".", type=click.Path(file_okay=False), help="Working directory."
)
@click.version_option(__version__, prog_name="berth")
@click.pass_context
def cli(ctx: click.Context, chdir: str) -> None:
    """
    berth - declarative Docker provisioning.

    Describe an image and a container in berth.yaml, then run
    init, plan, apply and destroy against the local Docker engine.
    """
    ctx.ensure_object(dict)
    ctx.obj["workdir"] = chdir
    config.load_settings(chdir)


@cli.command()
@click.pass_context
@handle_errors
def init(ctx: click.Context) -> None:
    """Resolve providers and write the provider lock."""
    _driver(ctx).init()


@cli.command()
@var_option
@click.pass_context
@handle_errors
def validate(ctx: click.Context, variables: tuple[str, ...]) -> None:
    """Check the declaration without contacting Docker."""
    _driver(ctx).validate(parse_var_assignments(variables))


@cli.command()
@var_option
@lock_timeout_option
@click.option("--destroy", is_flag=True, help="Plan the removal of every managed resource.")
@click.pass_context
@handle_errors
def plan(ctx: click.Context, variables: tuple[str, ...], lock_timeout: float | None, destroy: bool) -> None:
    """Show the changes apply would make."""
    _driver(ctx, lock_timeout).plan(parse_var_assignments(variables), destroy=destroy)


@cli.command()
@var_option
@lock_timeout_option
@click.option("--auto-approve", is_flag=True, help="Skip the interactive 'yes' confirmation.")
@click.pass_context
@handle_errors
def apply(ctx: click.Context, variables: tuple[str, ...], lock_timeout: float | None, auto_approve: bool) -> None:
    """Create or update resources to match the declaration."""
    confirm = None if auto_approve else _confirmation(APPLY_PROMPT)
    _driver(ctx, lock_timeout).apply(parse_var_assignments(variables), confirm=confirm)


@cli.command()
@var_option
@lock_timeout_option
@click.option("--auto-approve", is_flag=True, help="Skip the interactive 'yes' confirmation.")
@click.pass_context
@handle_errors
def destroy(ctx: click.Context, variables: tuple[str, ...], lock_timeout: float | None, auto_approve: bool) -> None:
    """Remove every resource recorded in state."""
    confirm = None if auto_approve else _confirmation(DESTROY_PROMPT)
    _driver(ctx, lock_timeout).destroy(parse_var_assignments(variables), confirm=confirm)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw state document.")
@click.pass_context
@handle_errors
def show(ctx: click.Context, as_json: bool) -> None:
    """Show the resources recorded in state."""
    state = _driver(ctx).show()
    if as_json:
        click.echo(json.dumps(state.model_dump(), indent=2))
    else:
        render_state(state, console)


@cli.command()
@click.argument("name", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print outputs as JSON.")
@click.pass_context
@handle_errors
def output(ctx: click.Context, name: str | None, as_json: bool) -> None:
    """Show output values from state."""
    driver = _driver(ctx)
    outputs = driver.outputs(name)
    if as_json:
        if name:
            click.echo(json.dumps(outputs[name]["value"]))
        else:
            click.echo(json.dumps(outputs, indent=2, sort_keys=True))
    elif name:
        value = outputs[name]["value"]
        click.echo(value if isinstance(value, str) else json.dumps(value))
    elif not outputs:
        console.print("[yellow]No outputs found.[/yellow]")
    else:
        render_outputs(driver.show(), console)


@cli.command("force-unlock")
@click.argument("lock_id")
@click.option(
    "--force", is_flag=True, help="Do not ask for confirmation. Also removes a lock file that cannot be read."
)
@click.pass_context
@handle_errors
def force_unlock(ctx: click.Context, lock_id: str, force: bool) -> None:
    """Remove a stale state lock."""
    if not force:
        console.print(
            "[bold]Do you really want to force-unlock?[/bold]\n"
            "  Removing the lock while another berth run is active may corrupt state.\n"
            "  Only 'yes' will be accepted to confirm.\n"
        )
        answer = click.prompt("  Enter a value", default="", show_default=False)
        if answer.strip() != "yes":
            console.print("[yellow]force-unlock cancelled.[/yellow]")
            sys.exit(1)
    info = _driver(ctx).force_unlock(lock_id, force=force)
    if info is None:
        console.print("[green]The unreadable lock file has been removed.[/green]")
        return
    console.print(f"[green]Lock {info.id} ({info.operation} by {info.who}) has been released.[/green]")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
