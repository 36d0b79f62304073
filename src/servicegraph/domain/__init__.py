"""
Domain layer - Core models, attributes and errors.

This layer contains the value objects and declarative metadata the container works with.
It has no dependencies on other layers.
"""

from .attributes import (
    Bind,
    Config,
    ContainerAttribute,
    ContextualAttribute,
    Give,
    Scoped,
    SelfBuilding,
    Singleton,
    Tag,
    class_attributes,
)
from .enums import Lifetime
from .exceptions import (
    AliasError,
    BindingResolutionError,
    CircularDependencyError,
    DIException,
    EntryNotFoundError,
    InvalidCallableError,
    UnresolvablePrimitiveError,
    describe,
)
from .interfaces import IConfigRepository, IContainer
from .models import Binding, ClassRecipe, ParameterRecipe

__all__ = [
    # Enums
    "Lifetime",
    # Exceptions
    "DIException",
    "BindingResolutionError",
    "UnresolvablePrimitiveError",
    "CircularDependencyError",
    "EntryNotFoundError",
    "AliasError",
    "InvalidCallableError",
    "describe",
    # Interfaces
    "IContainer",
    "IConfigRepository",
    # Models
    "Binding",
    "ClassRecipe",
    "ParameterRecipe",
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
    "class_attributes",
]
