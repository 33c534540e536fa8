"""
Networks - Docker network operations
"""

from containerflow.networks.operations import NetworkOperations

__all__ = ["NetworkOperations"]
