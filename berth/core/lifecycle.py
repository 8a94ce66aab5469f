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
# THE LIFECYCLE DRIVER - ORCHESTRATOR
# -----------------------------------------------------------------------------
# Responsibility: Implements the verbs. Connects:
# Declaration -> Provider lock -> State lock -> Planner -> Executor
#
#   init      resolve providers, write .berth/providers.lock.json
#   validate  load the declaration only
#   plan      refresh + diff, print the change summary, persist nothing
#   apply     plan, ask for "yes", execute, record outputs
#   destroy   plan removal of everything, ask for "yes", execute
#   show / output / force_unlock   read or repair state
# -----------------------------------------------------------------------------

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from rich.console import Console

from berth import config
from berth.core.declaration import Declaration, load_declaration, load_requirements
from berth.core.executor import ApplyResult, Executor
from berth.core.planner import Plan, Planner
from berth.core.providers import (
    ProviderLock,
    ProviderResolutionError,
    find_plugin,
    resolve_providers,
    verify_lock,
    write_lock,
)
from berth.core.render import render_plan
from berth.core.state import LockInfo, StateDocument, StateLock, StateStore, force_unlock
from berth.errors import BerthError

console = Console()


class ApplyCancelled(BerthError):
    """Raised when the user does not answer 'yes' to the confirmation."""

    pass


class OutputNotFoundError(BerthError):
    """Raised when `berth output NAME` names an output that is not recorded."""

    pass


class LifecycleDriver:
    """
    Runs berth verbs against one working directory.

    Args:
        workdir: Directory holding berth.yaml and the state file.
        runtime_factory: Builds the runtime for a declaration; defaults to
            the provider registry (DockerProvider).
        output: Console used for plans and state listings.
        lock_timeout: Seconds to wait for a held state lock (BERTH_LOCK_TIMEOUT
            when omitted).
        check_ports: Check host ports before creating containers
            (BERTH_CHECK_PORTS when omitted).
    """

    def __init__(
        self,
        workdir: Path | str = ".",
        runtime_factory: Callable[[Declaration], Any] | None = None,
        output: Console | None = None,
        lock_timeout: float | None = None,
        check_ports: bool | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.workdir = Path(workdir)
        self._runtime_factory = runtime_factory or self._runtime_from_registry
        self._output = output or console
        self._lock_timeout = config.LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        self._check_ports = config.CHECK_PORTS if check_ports is None else check_ports
        self._environ = environ

    # -- paths ----------------------------------------------------------------

    @property
    def declaration_path(self) -> Path:
        return self.workdir / config.DECLARATION_FILE

    @property
    def state_path(self) -> Path:
        return self.workdir / config.STATE_FILE

    @property
    def data_dir(self) -> Path:
        return self.workdir / config.DATA_DIR

    @property
    def provider_lock_path(self) -> Path:
        return self.data_dir / config.PROVIDER_LOCK_FILE

    @property
    def store(self) -> StateStore:
        return StateStore(self.state_path)

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _runtime_from_registry(declaration: Declaration) -> Any:
        name, requirement = next(iter(declaration.required_providers.items()))
        plugin = find_plugin(requirement.source)
        if plugin is None:
            raise ProviderResolutionError(f"No adapter for source '{requirement.source}'", provider=name)
        return plugin.factory(declaration.provider_config(name))

    def _load(self, variables: Mapping[str, Any] | None) -> Declaration:
        return load_declaration(self.declaration_path, variables, self._environ)

    def _prepare(self, variables: Mapping[str, Any] | None) -> Declaration:
        declaration = self._load(variables)
        verify_lock(self.provider_lock_path, declaration.required_providers)
        return declaration

    def _planner(self, runtime: Any) -> Planner:
        check_ports = self._check_ports
        if check_ports and hasattr(runtime, "is_local") and not runtime.is_local():
            console.print("[dim][LIFECYCLE] Remote engine: skipping host port check[/dim]")
            check_ports = False
        return Planner(runtime, check_ports=check_ports)

    # -- verbs ----------------------------------------------------------------

    def init(self) -> ProviderLock:
        """
        Resolve providers and write the provider lock.

        Raises:
            DeclarationError: berth.yaml is missing or malformed.
            ProviderResolutionError: A provider is unknown or its version does not fit.
        """
        console.print(f"[cyan][LIFECYCLE] Initializing {self.workdir.resolve()}[/cyan]")
        requirements = load_requirements(self.declaration_path)
        resolved = resolve_providers(requirements)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        lock = write_lock(self.provider_lock_path, resolved)
        for name, locked in lock.providers.items():
            self._output.print(f"- Using {locked.source} v{locked.version} for provider '{name}'")
        self._output.print("[bold green]Berth has been successfully initialized![/bold green]")
        return lock

    def validate(self, variables: Mapping[str, Any] | None = None) -> Declaration:
        declaration = self._load(variables)
        self._output.print("[bold green]Success![/bold green] The declaration is valid.")
        return declaration

    def plan(self, variables: Mapping[str, Any] | None = None, destroy: bool = False) -> Plan:
        """Refresh and diff under the state lock; nothing is persisted."""
        declaration = self._prepare(variables)
        with StateLock(self.state_path, "plan", timeout=self._lock_timeout):
            runtime = self._runtime_factory(declaration)
            state = self.store.load()
            plan = self._planner(runtime).plan(declaration, state, destroy=destroy)
        render_plan(plan, self._output)
        return plan

    def apply(
        self,
        variables: Mapping[str, Any] | None = None,
        destroy: bool = False,
        confirm: Callable[[Plan], bool] | None = None,
    ) -> tuple[Plan, ApplyResult | None]:
        """
        Plan, confirm and execute while holding the state lock.

        Args:
            variables: Values from --var flags.
            destroy: Remove everything instead of converging.
            confirm: Called with the plan; must return True to proceed.
                None means auto-approve.

        Returns:
            (plan, result); result is None if there was nothing to do.

        Raises:
            ApplyCancelled: confirm() returned False.
            ApplyError: A step failed (state up to it is saved).
        """
        operation = "destroy" if destroy else "apply"
        declaration = self._prepare(variables)

        with StateLock(self.state_path, operation, timeout=self._lock_timeout):
            runtime = self._runtime_factory(declaration)
            store = self.store
            state = store.load()
            plan = self._planner(runtime).plan(declaration, state, destroy=destroy)
            render_plan(plan, self._output)

            if not plan.has_changes:
                return plan, None

            if confirm is not None and not confirm(plan):
                console.print(f"[yellow][LIFECYCLE] {operation.capitalize()} cancelled[/yellow]")
                raise ApplyCancelled(f"{operation.capitalize()} cancelled.")

            result = Executor(runtime, store).execute(plan, declaration)

        self._output.print(f"[bold green]{result.summary(destroy=destroy)}[/bold green]")
        return plan, result

    def destroy(
        self,
        variables: Mapping[str, Any] | None = None,
        confirm: Callable[[Plan], bool] | None = None,
    ) -> tuple[Plan, ApplyResult | None]:
        return self.apply(variables, destroy=True, confirm=confirm)

    def show(self) -> StateDocument:
        return self.store.load()

    def outputs(self, name: str | None = None) -> dict[str, dict[str, Any]]:
        state = self.store.load()
        if name is None:
            return dict(state.outputs)
        if name not in state.outputs:
            raise OutputNotFoundError(f"Output '{name}' not found in state. Run 'berth apply' first.")
        return {name: state.outputs[name]}

    def force_unlock(self, lock_id: str, force: bool = False) -> LockInfo | None:
        return force_unlock(self.state_path, lock_id, force=force)
