"""
FastAPI integration module.

Provides helpers and utilities for integrating servicegraph with FastAPI.
"""

from .integration import (
    ScopedContainerMiddleware,
    create_fastapi_dependency,
    create_scoped_dependency,
    inject_dependencies,
)

__all__ = [
    "create_fastapi_dependency",
    "create_scoped_dependency",
    "inject_dependencies",
    "ScopedContainerMiddleware",
]
