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
# STATE STORE & LOCK
# -----------------------------------------------------------------------------
# Responsibility: The persisted record mapping declared resources to the
# Docker objects that were actually created.
#
# - berth.state.json: resources + outputs, serial bumped on every write
# - berth.state.json.backup: the previous version, kept on every write
# - berth.state.json.lock: exclusive lock held by plan/apply/destroy
#
# Writes go to a temp file first and are renamed into place, so a crash
# mid-write never leaves a truncated state file.
# -----------------------------------------------------------------------------

import json
import os
import socket
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from rich.console import Console

from berth import __version__
from berth.errors import BerthError

console = Console()

STATE_FORMAT_VERSION = 1
LOCK_RETRY_SECONDS = 0.5


class StateError(BerthError):
    """Raised when the state file cannot be read or written."""

    pass


class StateLockError(BerthError):
    """
    Raised when another process holds the state lock.

    Carries the holder's LockInfo so the user can decide whether to force-unlock.
    """

    def __init__(self, message: str, info: "LockInfo | None" = None) -> None:
        super().__init__(message)
        self.info = info


class ResourceState(BaseModel):
    """One created object as recorded after apply."""

    type: str
    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)

    @property
    def address(self) -> str:
        return f"{self.type}.{self.name}"


class StateDocument(BaseModel):
    """The whole state file."""

    version: int = STATE_FORMAT_VERSION
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    berth_version: str = __version__
    resources: list[ResourceState] = Field(default_factory=list)
    outputs: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def get(self, address: str) -> ResourceState | None:
        for resource in self.resources:
            if resource.address == address:
                return resource
        return None

    def addresses(self) -> list[str]:
        return [resource.address for resource in self.resources]

    def upsert(self, resource: ResourceState) -> None:
        """Insert or replace the record for resource.address."""
        for index, existing in enumerate(self.resources):
            if existing.address == resource.address:
                self.resources[index] = resource
                return
        self.resources.append(resource)

    def remove(self, address: str) -> ResourceState | None:
        for index, existing in enumerate(self.resources):
            if existing.address == address:
                return self.resources.pop(index)
        return None


class StateStore:
    """Reads and writes berth.state.json."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".backup")

    def load(self) -> StateDocument:
        """
        Load the state file, or return an empty document if there is none.

        Raises:
            StateError: If the file exists but is not a valid state document.
        """
        if not self.path.exists():
            return StateDocument()

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateError(f"Could not read state file {self.path}: {e}") from e

        try:
            document = StateDocument(**data)
        except (TypeError, ValidationError) as e:
            raise StateError(f"State file {self.path} is malformed: {e}") from e

        if document.version > STATE_FORMAT_VERSION:
            raise StateError(
                f"State file {self.path} uses format version {document.version}; "
                f"this berth understands up to {STATE_FORMAT_VERSION}"
            )
        return document

    def save(self, document: StateDocument) -> None:
        """Bump the serial, back up the previous file and atomically write the new one."""
        document.serial += 1
        document.berth_version = __version__

        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            if self.path.exists():
                self.backup_path.write_bytes(self.path.read_bytes())
            with open(tmp_path, "w") as f:
                json.dump(document.model_dump(), f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StateError(f"Could not write state file {self.path}: {e}") from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        console.print(f"[dim][STATE] Saved {self.path.name} (serial {document.serial})[/dim]")


class LockInfo(BaseModel):
    """What is written into the lock file."""

    id: str
    operation: str
    who: str
    created: str
    path: str


def _who() -> str:
    user = os.getenv("USER") or os.getenv("USERNAME") or "unknown"
    return f"{user}@{socket.gethostname()}"


class StateLock:
    """
    Exclusive lock on a state file, held for the duration of a verb.

    Usage:
        with StateLock(state_path, "apply"):
            ...
    """

    def __init__(self, state_path: Path | str, operation: str, timeout: float = 0) -> None:
        self.state_path = Path(state_path)
        self.operation = operation
        self.timeout = timeout
        self.info: LockInfo | None = None

    @property
    def lock_path(self) -> Path:
        return lock_path_for(self.state_path)

    def acquire(self) -> LockInfo:
        """
        Create the lock file, retrying until the timeout if it is held.

        Raises:
            StateLockError: If the lock is still held when the timeout expires.
        """
        info = LockInfo(
            id=str(uuid.uuid4()),
            operation=self.operation,
            who=_who(),
            created=datetime.now(timezone.utc).isoformat(),
            path=str(self.state_path),
        )
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    holder = read_lock(self.state_path)
                    message = f"State is locked: {self.lock_path}"
                    if holder:
                        message += (
                            f" (ID {holder.id}, {holder.operation} by {holder.who} "
                            f"since {holder.created})"
                        )
                    else:
                        message += " (lock file is unreadable; remove it with force-unlock --force)"
                    console.print(f"[red][STATE] {message}[/red]")
                    raise StateLockError(message, holder) from None
                time.sleep(LOCK_RETRY_SECONDS)
                continue
            except OSError as e:
                raise StateError(f"Could not create lock file {self.lock_path}: {e}") from e

            with os.fdopen(fd, "w") as f:
                json.dump(info.model_dump(), f, indent=2)
            self.info = info
            console.print(f"[dim][STATE] Lock acquired for {self.operation} ({info.id})[/dim]")
            return info

    def release(self) -> None:
        if self.info is None:
            return
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            console.print(f"[yellow][STATE] Lock file already gone: {self.lock_path}[/yellow]")
        self.info = None

    def __enter__(self) -> "StateLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def lock_path_for(state_path: Path | str) -> Path:
    state_path = Path(state_path)
    return state_path.with_name(state_path.name + ".lock")


def read_lock(state_path: Path | str) -> LockInfo | None:
    """Return the current lock holder, or None if unlocked or unreadable."""
    path = lock_path_for(state_path)
    try:
        with open(path) as f:
            return LockInfo(**json.load(f))
    except (OSError, json.JSONDecodeError, TypeError, ValidationError):
        return None


def force_unlock(state_path: Path | str, lock_id: str, force: bool = False) -> LockInfo | None:
    """
    Remove a stale lock whose ID matches lock_id.

    A lock file that cannot be read has no ID to match; it is only removed
    with force, and None is returned.

    Raises:
        StateLockError: If there is no lock, the ID does not match, or the
            lock is unreadable and force is not set.
    """
    path = lock_path_for(state_path)
    if not path.exists():
        raise StateLockError(f"State is not locked: {state_path}")
    holder = read_lock(state_path)
    if holder is None:
        if not force:
            raise StateLockError(
                f"Lock file {path} is unreadable. Use --force to remove it anyway."
            )
        path.unlink()
        console.print(f"[yellow][STATE] Unreadable lock {path.name} removed[/yellow]")
        return None
    if holder.id != lock_id:
        raise StateLockError(f"Lock ID '{lock_id}' does not match the current lock ({holder.id})", holder)
    path.unlink()
    console.print(f"[yellow][STATE] Lock {lock_id} removed[/yellow]")
    return holder
