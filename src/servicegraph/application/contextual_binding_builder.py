"""Application layer - Fluent contextual binding registration."""

from typing import TYPE_CHECKING, Any, List, Optional

from servicegraph.domain import DIException

if TYPE_CHECKING:
    from servicegraph.application.container import Container

_UNSET = object()


class ContextualBindingBuilder:
    """Builds ``when(consumer).needs(abstract).give(implementation)`` registrations.

    Attributes:
        _container: Container receiving the contextual bindings.
        _concretes: Consumer classes the binding applies to.
        _needs: The abstract (or ``"$parameter"`` name) being overridden.

    Example:
        >>> container.when(PhotoController).needs(Filesystem).give(LocalFilesystem)
        >>> container.when([ReportJob, ExportJob]).needs("$path").give("/tmp/out")
    """

    def __init__(self, container: "Container", concretes: List[Any]) -> None:
        self._container = container
        self._concretes = concretes
        self._needs: Any = _UNSET

    def needs(self, abstract: Any) -> "ContextualBindingBuilder":
        """Define the abstract (or ``"$name"`` primitive parameter) that is overridden."""
        self._needs = abstract
        return self

    def give(self, implementation: Any) -> None:
        """Register the implementation for every consumer.

        Args:
            implementation: A class, a dotted path, an abstract, a factory, a
                plain value, or a list of abstracts for a variadic parameter.

        Raises:
            DIException: If ``needs`` was not called first.
        """
        if self._needs is _UNSET:
            raise DIException("Contextual binding requires needs() to be called before give().")

        for concrete in self._concretes:
            self._container.add_contextual_binding(concrete, self._needs, implementation)

    def give_tagged(self, tag: str) -> None:
        """Give every service registered under ``tag``, resolved lazily as a list."""
        self.give(lambda container: list(container.tagged(tag)))

    def give_config(self, key: str, default: Optional[Any] = None) -> None:
        """Give a value read from the ``"config"`` repository."""
        self.give(lambda container: container.make("config").get(key, default))
