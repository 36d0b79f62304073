from typing import Any, List, Optional


def describe(target: Any) -> str:
    """Return a readable name for an abstract, a concrete or a build-stack entry."""
    if isinstance(target, str):
        return target
    if isinstance(target, type):
        return target.__name__
    name = getattr(target, "__qualname__", None) or getattr(target, "__name__", None)
    if name:
        return name
    return repr(target)


class DIException(Exception):
    """Base exception for DI-related errors."""


class BindingResolutionError(DIException):
    """Raised when the container cannot produce an instance.

    This occurs when:
    - The target is an abstract class or protocol with no binding.
    - The target class does not exist (unknown dotted path).
    - A primitive constructor parameter has no value available.
    - A contextual attribute has no registered handler.
    """


class UnresolvablePrimitiveError(BindingResolutionError):
    """Raised when a non-class parameter has no override, default or contextual value.

    Attributes:
        parameter: Name of the parameter that could not be resolved.
        declaring_class: The class (or callable) declaring the parameter.
    """

    def __init__(self, parameter: str, declaring_class: Any, signature: Optional[str] = None) -> None:
        self.parameter = parameter
        self.declaring_class = declaring_class
        message = f"Unresolvable dependency resolving [{signature or parameter}] in class {describe(declaring_class)}"
        super().__init__(message)


class CircularDependencyError(DIException):
    """Raised when a circular dependency is detected.

    Attributes:
        dependency_chain: Build-stack entries involved in the cycle, ending with
            the entry that closed it.
    """

    def __init__(self, dependency_chain: List[Any]) -> None:
        self.dependency_chain = dependency_chain
        message = f"Circular dependency detected: {' -> '.join(describe(entry) for entry in dependency_chain)}"
        super().__init__(message)


class EntryNotFoundError(DIException, LookupError):
    """Raised by ``Container.get`` when the identifier was never bound or resolvable.

    Attributes:
        identifier: The identifier that was requested.
    """

    def __init__(self, identifier: Any, reason: Optional[str] = None) -> None:
        self.identifier = identifier
        message = f"No entry was found for identifier [{describe(identifier)}]"
        if reason:
            message += f". Reason: {reason}"
        super().__init__(message)


class AliasError(DIException, ValueError):
    """Raised for invalid alias configurations.

    This occurs when:
    - Aliasing a name to itself.
    - Following an alias chain that loops back on itself.
    """


class InvalidCallableError(DIException, ValueError):
    """Raised when ``Container.call`` receives a callable it cannot interpret."""
