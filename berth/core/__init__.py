# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The business logic of berth:
# - Declaration: berth.yaml loading, variables, references, ordering
# - Providers: provider resolution and the provider lock
# - State: state file, backups and the state lock
# - Planner: refresh + diff
# - Executor: apply a plan step by step
# - LifecycleDriver: the init / plan / apply / destroy verbs
# -----------------------------------------------------------------------------

from .declaration import Declaration, DeclarationError, load_declaration
from .executor import ApplyError, ApplyResult, Executor
from .lifecycle import ApplyCancelled, LifecycleDriver, OutputNotFoundError
from .planner import Action, Plan, Planner, ResourceChange
from .providers import ProviderNotInitializedError, ProviderResolutionError
from .state import StateDocument, StateError, StateLock, StateLockError, StateStore

__all__ = [
    "Declaration", "DeclarationError", "load_declaration",
    "ApplyError", "ApplyResult", "Executor",
    "ApplyCancelled", "LifecycleDriver", "OutputNotFoundError",
    "Action", "Plan", "Planner", "ResourceChange",
    "ProviderNotInitializedError", "ProviderResolutionError",
    "StateDocument", "StateError", "StateLock", "StateLockError", "StateStore",
]
