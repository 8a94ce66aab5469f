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
Image reference parsing and validation.
Parses Docker image references like 'nginx', 'nginx:1.25' or
'registry.example.com:5000/team/app@sha256:...'.
"""

import re
from dataclasses import dataclass

# Grammar from the distribution/reference package used by the Docker engine
_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|[-]*)[a-z0-9]+)*"
_DOMAIN_PART = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = rf"{_DOMAIN_PART}(?:\.{_DOMAIN_PART})*(?::[0-9]+)?"

REPOSITORY_PATTERN = re.compile(rf"^{_COMPONENT}(?:/{_COMPONENT})*$")
DOMAIN_PATTERN = re.compile(rf"^{_DOMAIN}$")
TAG_PATTERN = re.compile(r"^[\w][\w.-]{0,127}$")
DIGEST_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$")

MAX_NAME_LENGTH = 255


class InvalidReferenceError(ValueError):
    """Raised when an image reference is not well-formed."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Invalid image reference '{reference}': {reason}")
        self.reference = reference
        self.reason = reason


@dataclass(frozen=True)
class ImageReference:
    """
    Parsed Docker image reference.

    Examples:
        - nginx -> docker.io/library/nginx:latest
        - nginx:1.25 -> docker.io/library/nginx:1.25
        - myuser/myimage:v1 -> docker.io/myuser/myimage:v1
        - localhost:5000/app -> localhost:5000/app:latest
        - gcr.io/project/image@sha256:abc... -> gcr.io/project/image@sha256:abc...
    """

    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None

    DEFAULT_REGISTRY = "docker.io"
    DEFAULT_TAG = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse and validate a Docker image reference string.

        Args:
            reference: Image reference string (e.g. 'nginx:latest').

        Returns:
            Parsed ImageReference with the default registry and tag filled in.

        Raises:
            InvalidReferenceError: If any part of the reference is malformed.
        """
        if not reference or reference != reference.strip():
            raise InvalidReferenceError(reference, "empty or padded with whitespace")

        remainder = reference
        digest = None
        if "@" in remainder:
            remainder, digest = remainder.rsplit("@", 1)
            if not DIGEST_PATTERN.match(digest):
                raise InvalidReferenceError(reference, f"bad digest '{digest}'")

        # A colon after the last slash separates the tag; earlier ones are registry ports
        tag = None
        last_colon = remainder.rfind(":")
        if last_colon != -1 and "/" not in remainder[last_colon + 1 :]:
            tag = remainder[last_colon + 1 :]
            remainder = remainder[:last_colon]
            if not TAG_PATTERN.match(tag):
                raise InvalidReferenceError(reference, f"bad tag '{tag}'")

        parts = remainder.split("/")
        first = parts[0]
        if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
            registry = first
            repository = "/".join(parts[1:])
            if not DOMAIN_PATTERN.match(registry):
                raise InvalidReferenceError(reference, f"bad registry '{registry}'")
        else:
            registry = cls.DEFAULT_REGISTRY
            repository = remainder if len(parts) > 1 else f"library/{remainder}"

        if not REPOSITORY_PATTERN.match(repository):
            raise InvalidReferenceError(reference, f"bad repository '{repository}'")
        if len(repository) > MAX_NAME_LENGTH:
            raise InvalidReferenceError(reference, "repository name too long")

        if not tag and not digest:
            tag = cls.DEFAULT_TAG

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @property
    def full_name(self) -> str:
        """Full image name including the registry."""
        name = f"{self.registry}/{self.repository}"
        if self.digest:
            return f"{name}@{self.digest}"
        return f"{name}:{self.tag}"

    @property
    def short_name(self) -> str:
        """Image name as the Docker CLI prints it (no default registry)."""
        if self.registry != self.DEFAULT_REGISTRY:
            return self.full_name
        repo = self.repository
        if repo.startswith("library/"):
            repo = repo[len("library/") :]
        if self.digest:
            return f"{repo}@{self.digest}"
        return f"{repo}:{self.tag}"

    def __str__(self) -> str:
        return self.short_name
