"""
Configuration module.

Provides the environment settings and the configuration repository consumed by the container.
"""

from .repository import ConfigRepository
from .settings import ContainerSettings, configure_environment, environment_resolver

__all__ = [
    "ConfigRepository",
    "ContainerSettings",
    "configure_environment",
    "environment_resolver",
]
