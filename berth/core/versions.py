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
Provider version constraints.

Supports comma separated clauses using =, !=, >, >=, <, <= and the
pessimistic operator ~> ("~> 7.0" means >= 7.0 and < 8.0,
"~> 7.0.1" means >= 7.0.1 and < 7.1).
"""

import re

from berth.errors import BerthError

VERSION_PATTERN = re.compile(r"^v?(\d+(?:\.\d+)*)")
CLAUSE_PATTERN = re.compile(r"^(~>|>=|<=|!=|=|>|<)?\s*(v?\d+(?:\.\d+)*)$")


class VersionConstraintError(BerthError):
    """Raised when a version or constraint string cannot be parsed."""

    pass


def parse_version(text: str) -> tuple[int, ...]:
    """Numeric release segment of a version string ('7.1.0rc1' -> (7, 1, 0))."""
    match = VERSION_PATTERN.match(text.strip())
    if not match:
        raise VersionConstraintError(f"Invalid version '{text}'")
    return tuple(int(part) for part in match.group(1).split("."))


def _compare(left: tuple[int, ...], right: tuple[int, ...]) -> int:
    width = max(len(left), len(right))
    left = left + (0,) * (width - len(left))
    right = right + (0,) * (width - len(right))
    return (left > right) - (left < right)


def _pessimistic_upper(bound: tuple[int, ...]) -> tuple[int, ...]:
    if len(bound) == 1:
        return (bound[0] + 1,)
    head = list(bound[:-1])
    head[-1] += 1
    return tuple(head)


def matches(version: str, constraint: str | None) -> bool:
    """
    Check a version against a constraint string.

    An empty or missing constraint matches everything.

    Raises:
        VersionConstraintError: If the constraint is malformed.
    """
    if not constraint or not constraint.strip():
        return True

    current = parse_version(version)
    for clause in constraint.split(","):
        clause = clause.strip()
        match = CLAUSE_PATTERN.match(clause)
        if not match:
            raise VersionConstraintError(f"Invalid version constraint '{clause}'")
        operator = match.group(1) or "="
        bound = parse_version(match.group(2))
        cmp = _compare(current, bound)

        if operator == "~>":
            ok = cmp >= 0 and _compare(current, _pessimistic_upper(bound)) < 0
        elif operator == "=":
            ok = cmp == 0
        elif operator == "!=":
            ok = cmp != 0
        elif operator == ">":
            ok = cmp > 0
        elif operator == ">=":
            ok = cmp >= 0
        elif operator == "<":
            ok = cmp < 0
        else:
            ok = cmp <= 0

        if not ok:
            return False
    return True
