"""
Containers - declarative specs, the role catalog and single-container operations
"""

from containerflow.containers.operations import ContainerOperations, is_missing_image_error
from containerflow.containers.specs import ContainerSpec

__all__ = ["ContainerOperations", "ContainerSpec", "is_missing_image_error"]
