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
# EXPRESSIONS
# -----------------------------------------------------------------------------
# Declarations may embed two kinds of expression inside strings:
#
#   ${var.container_name}               -> an input variable
#   ${docker_image.nginx.image_id}      -> an attribute of another resource
#
# A string that is exactly one expression takes the referenced value as-is
# (so ports stay integers); otherwise values are spliced in as text.
# Resource attributes that do not exist yet evaluate to UNKNOWN.
# -----------------------------------------------------------------------------

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from berth.errors import BerthError

EXPRESSION_PATTERN = re.compile(r"\$\{\s*([^}]*?)\s*\}")
_IDENT = r"[a-zA-Z_][a-zA-Z0-9_-]*"
VARIABLE_REF = re.compile(rf"^var\.({_IDENT})$")
RESOURCE_REF = re.compile(rf"^({_IDENT})\.({_IDENT})\.({_IDENT})$")


class ExpressionError(BerthError):
    """Raised when an expression cannot be parsed."""

    pass


class _Unknown:
    """Placeholder for a value that is only known after apply."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "(known after apply)"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()


@dataclass(frozen=True)
class Reference:
    """A parsed ${...} expression."""

    kind: str  # "var" or "resource"
    name: str
    resource_type: str | None = None
    attribute: str | None = None

    @property
    def address(self) -> str:
        """Resource address (type.label) or var.<name>."""
        if self.kind == "var":
            return f"var.{self.name}"
        return f"{self.resource_type}.{self.name}"

    def __str__(self) -> str:
        if self.kind == "var":
            return self.address
        return f"{self.address}.{self.attribute}"


def parse_reference(text: str) -> Reference:
    """
    Parse the body of a ${...} expression.

    Raises:
        ExpressionError: If the body is neither var.<name> nor <type>.<label>.<attr>.
    """
    match = VARIABLE_REF.match(text)
    if match:
        return Reference(kind="var", name=match.group(1))
    match = RESOURCE_REF.match(text)
    if match:
        return Reference(
            kind="resource",
            resource_type=match.group(1),
            name=match.group(2),
            attribute=match.group(3),
        )
    raise ExpressionError(f"Unsupported expression '${{{text}}}'")


def find_references(value: Any) -> list[Reference]:
    """Collect every reference in a nested structure of dicts, lists and strings."""
    found: list[Reference] = []
    if isinstance(value, str):
        for match in EXPRESSION_PATTERN.finditer(value):
            found.append(parse_reference(match.group(1)))
    elif isinstance(value, dict):
        for item in value.values():
            found.extend(find_references(item))
    elif isinstance(value, (list, tuple)):
        for item in value:
            found.extend(find_references(item))
    return found


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def evaluate(value: Any, resolve: Callable[[Reference], Any]) -> Any:
    """
    Substitute every expression in value using resolve().

    resolve() may return UNKNOWN; a partially unknown string becomes UNKNOWN.
    """
    if isinstance(value, dict):
        return {key: evaluate(item, resolve) for key, item in value.items()}
    if isinstance(value, list):
        return [evaluate(item, resolve) for item in value]
    if not isinstance(value, str):
        return value

    matches = list(EXPRESSION_PATTERN.finditer(value))
    if not matches:
        return value
    if len(matches) == 1 and matches[0].span() == (0, len(value)):
        return resolve(parse_reference(matches[0].group(1)))

    pieces: list[str] = []
    cursor = 0
    for match in matches:
        resolved = resolve(parse_reference(match.group(1)))
        if resolved is UNKNOWN:
            return UNKNOWN
        pieces.append(value[cursor : match.start()])
        pieces.append(_as_text(resolved))
        cursor = match.end()
    pieces.append(value[cursor:])
    return "".join(pieces)


def contains_unknown(value: Any) -> bool:
    """True if UNKNOWN appears anywhere inside value."""
    if value is UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(contains_unknown(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return any(contains_unknown(item) for item in value)
    return False
