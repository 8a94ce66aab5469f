# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# Contains the Pydantic models describing a berth.yaml declaration and the
# image reference parser used to validate docker_image names.
# -----------------------------------------------------------------------------

from .image_reference import ImageReference, InvalidReferenceError
from .models import (
    ContainerResource,
    DeclarationFile,
    ImageResource,
    PortMapping,
    ResourceType,
)

__all__ = [
    "ImageReference", "InvalidReferenceError",
    "ContainerResource", "DeclarationFile", "ImageResource", "PortMapping", "ResourceType",
]
