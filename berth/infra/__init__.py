# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# Contains low-level infrastructure wrappers:
# - DockerProvider: Docker SDK wrapper with error translation
# - is_port_free: host port check used before publishing ports
# -----------------------------------------------------------------------------

from .docker_client import (
    ContainerNameConflictError,
    DockerProvider,
    DockerProviderError,
    PortConflictError,
    RuntimeOperationError,
    RuntimePermissionError,
    RuntimeUnreachableError,
)
from .ports import is_port_free

__all__ = [
    "DockerProvider", "DockerProviderError",
    "ContainerNameConflictError", "PortConflictError",
    "RuntimeOperationError", "RuntimePermissionError", "RuntimeUnreachableError",
    "is_port_free",
]
