"""
Application layer - Use cases and orchestration.

This layer contains the container and the resolution machinery that orchestrate domain objects.
It depends only on the Domain layer.
"""

from .binding_registry import BindingRegistry
from .bound_method import BoundMethod
from .callbacks import CallbackPipeline
from .container import Container
from .contextual_binding_builder import ContextualBindingBuilder
from .reflection import ReflectionManager
from .resolution_context import ResolutionContext
from .resolver import ResolutionEngine
from .rewindable_generator import RewindableGenerator

__all__ = [
    "Container",
    "ContextualBindingBuilder",
    "BindingRegistry",
    "BoundMethod",
    "CallbackPipeline",
    "ReflectionManager",
    "ResolutionContext",
    "ResolutionEngine",
    "RewindableGenerator",
]
