from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Optional, Union

Abstract = Any
Factory = Callable[..., Any]


class IContainer(ABC):
    """Abstract interface for the operations collaborators use on the container."""

    @abstractmethod
    def bind(self, abstract: Abstract, concrete: Optional[Any] = None, shared: bool = False) -> None:
        """Register a binding.

        Args:
            abstract: The identifier to bind (class, string, or a factory whose
                return annotation names the classes to bind).
            concrete: Class, identifier or factory producing the instance.
                Defaults to the abstract itself.
            shared: Whether the resolved instance is cached.
        """

    @abstractmethod
    def singleton(self, abstract: Abstract, concrete: Optional[Any] = None) -> None:
        """Register a shared binding."""

    @abstractmethod
    def instance(self, abstract: Abstract, instance: Any) -> Any:
        """Register an existing instance as shared and return it."""

    @abstractmethod
    def make(self, abstract: Abstract, parameters: Optional[Dict[str, Any]] = None) -> Any:
        """Resolve the given identifier.

        Args:
            abstract: The identifier to resolve.
            parameters: Explicit constructor arguments keyed by parameter name.

        Raises:
            BindingResolutionError: If the instance cannot be produced.
            CircularDependencyError: If the graph contains a cycle.
        """

    @abstractmethod
    def call(
        self,
        callback: Any,
        parameters: Optional[Union[Dict[Any, Any], Iterable[Any]]] = None,
        default_method: Optional[str] = None,
    ) -> Any:
        """Call a callable, injecting its dependencies, and return its result."""

    @abstractmethod
    def bound(self, abstract: Abstract) -> bool:
        """Determine whether the identifier has a binding, an instance or an alias."""

    @abstractmethod
    def has(self, identifier: Abstract) -> bool:
        """Alias of ``bound``, for ``get``-style lookups."""

    @abstractmethod
    def get(self, identifier: Abstract) -> Any:
        """Resolve an identifier, raising ``EntryNotFoundError`` if it is unknown."""

    @abstractmethod
    def tagged(self, tag: str) -> Iterable[Any]:
        """Lazily resolve every service registered under a tag."""

    @abstractmethod
    def flush(self) -> None:
        """Clear all bindings, instances, aliases and caches."""


class IConfigRepository(ABC):
    """Abstract interface for the configuration reader consumed by ``give_config``."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dot-notation key, or ``default`` when missing."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Determine whether a key is present."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Set a value by dot-notation key."""
