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

"""
Dependency ordering for resources: creation order and its reverse for removal.
"""

from collections.abc import Iterable, Mapping

from berth.errors import BerthError


class CycleError(BerthError):
    """Raised when resources depend on each other in a loop."""

    def __init__(self, path: list[str]) -> None:
        super().__init__(f"Dependency cycle: {' -> '.join(path)}")
        self.path = path


def resolve_order(nodes: Iterable[str], dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """
    Order nodes so that every node comes after the nodes it depends on.

    Dependencies on nodes outside `nodes` are ignored (they are checked
    elsewhere). Siblings keep their input order.

    Raises:
        CycleError: If a circular dependency is detected.
    """
    nodes = list(nodes)
    known = set(nodes)
    ordered: list[str] = []
    visited: set[str] = set()
    processing: list[str] = []

    def visit(name: str) -> None:
        if name in processing:
            cycle = processing[processing.index(name) :] + [name]
            raise CycleError(cycle)
        if name in visited:
            return
        processing.append(name)
        for dep in dependencies.get(name, ()):
            if dep in known:
                visit(dep)
        processing.pop()
        visited.add(name)
        ordered.append(name)

    for name in nodes:
        visit(name)

    return ordered


def destroy_order(nodes: Iterable[str], dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """Reverse of resolve_order: dependents are removed before what they use."""
    return list(reversed(resolve_order(nodes, dependencies)))
