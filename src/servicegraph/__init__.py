"""
servicegraph: Dependency injection container with contextual bindings and task-local resolution.

Public API exports for the servicegraph package.
"""

# Application exports
from servicegraph.application.container import Container
from servicegraph.application.contextual_binding_builder import ContextualBindingBuilder
from servicegraph.application.rewindable_generator import RewindableGenerator

# Domain exports
from servicegraph.domain.attributes import (
    Bind,
    Config,
    ContainerAttribute,
    ContextualAttribute,
    Give,
    Scoped,
    SelfBuilding,
    Singleton,
    Tag,
)
from servicegraph.domain.enums import Lifetime
from servicegraph.domain.exceptions import (
    AliasError,
    BindingResolutionError,
    CircularDependencyError,
    DIException,
    EntryNotFoundError,
    InvalidCallableError,
    UnresolvablePrimitiveError,
)
from servicegraph.domain.interfaces import IConfigRepository, IContainer

__version__ = "0.1.0"

__all__ = [
    # Container
    "Container",
    "ContextualBindingBuilder",
    "RewindableGenerator",
    # Interfaces
    "IContainer",
    "IConfigRepository",
    # Enums
    "Lifetime",
    # Attributes
    "ContainerAttribute",
    "ContextualAttribute",
    "Bind",
    "Singleton",
    "Scoped",
    "Config",
    "Give",
    "Tag",
    "SelfBuilding",
    # Exceptions
    "DIException",
    "BindingResolutionError",
    "UnresolvablePrimitiveError",
    "CircularDependencyError",
    "EntryNotFoundError",
    "AliasError",
    "InvalidCallableError",
]
