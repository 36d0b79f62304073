"""Declarative metadata consumed by the container.

Class-level attributes are applied as class decorators and stored on the
decorated class itself (they are not inherited by subclasses)::

    @Bind(SmtpMailer)
    @Bind(FakeMailer, environments=["testing", "local"])
    class Mailer(ABC): ...

    @Singleton()
    class Clock: ...

Parameter-level attributes are ``typing.Annotated`` extras::

    class Report:
        def __init__(self, title: Annotated[str, Config("report.title")]): ...
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

if TYPE_CHECKING:
    from servicegraph.domain.interfaces import IContainer

T = TypeVar("T")

ATTRIBUTES_KEY = "__container_attributes__"


def class_attributes(target: Any) -> Tuple[Any, ...]:
    """Return the container attributes declared directly on ``target``."""
    if not isinstance(target, type):
        return ()
    return tuple(target.__dict__.get(ATTRIBUTES_KEY, ()))


class ContainerAttribute:
    """Base class for class-level metadata, usable as a class decorator."""

    def __call__(self, target: T) -> T:
        # Decorators apply bottom-up; prepend so the stored order follows the source.
        setattr(target, ATTRIBUTES_KEY, (self,) + class_attributes(target))
        return target

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Bind(ContainerAttribute):
    """Declares the default concrete for an abstract class, optionally per environment.

    Attributes:
        concrete: Class, dotted path or factory to use when the abstract is requested.
        environments: Environment names the binding applies to; ``["*"]`` is the fallback.
    """

    def __init__(self, concrete: Any, environments: Union[str, Sequence[str]] = "*") -> None:
        self.concrete = concrete
        self.environments: List[str] = [environments] if isinstance(environments, str) else list(environments)

    @property
    def is_wildcard(self) -> bool:
        return self.environments == ["*"]

    def __repr__(self) -> str:
        return f"Bind({self.concrete!r}, environments={self.environments!r})"


class Singleton(ContainerAttribute):
    """Marks a class as shared for the lifetime of the container."""


class Scoped(ContainerAttribute):
    """Marks a class as shared within one scope (cleared by ``forget_scoped_instances``)."""


class ContextualAttribute:
    """Base class for ``Annotated`` markers that decide a parameter's value.

    Subclasses implement ``resolve`` unless a handler is registered through
    ``Container.when_has_attribute``. ``after`` runs once the value is resolved.
    """

    def resolve(self, container: "IContainer") -> Any:
        raise NotImplementedError

    def after(self, instance: Any, container: "IContainer") -> None:
        """Hook called with the value resolved for the annotated parameter."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Config(ContextualAttribute):
    """Injects a configuration value read from the ``"config"`` repository."""

    def __init__(self, key: str, default: Any = None) -> None:
        self.key = key
        self.default = default

    def resolve(self, container: "IContainer") -> Any:
        return container.make("config").get(self.key, self.default)

    def __repr__(self) -> str:
        return f"Config({self.key!r})"


class Give(ContextualAttribute):
    """Injects a specific concrete instead of the annotated type."""

    def __init__(self, concrete: Any, parameters: Optional[Dict[str, Any]] = None) -> None:
        self.concrete = concrete
        self.parameters = parameters or {}

    def resolve(self, container: "IContainer") -> Any:
        return container.make(self.concrete, self.parameters)

    def __repr__(self) -> str:
        return f"Give({self.concrete!r})"


class Tag(ContextualAttribute):
    """Injects every service registered under a tag, as a list."""

    def __init__(self, tag: str) -> None:
        self.tag = tag

    def resolve(self, container: "IContainer") -> Any:
        return list(container.tagged(self.tag))

    def __repr__(self) -> str:
        return f"Tag({self.tag!r})"


class SelfBuilding(ABC):
    """Capability for classes that construct themselves.

    The container calls ``new_instance`` (with its parameters injected) instead of
    the constructor, unless the class is already being built further up the stack.
    """

    @classmethod
    @abstractmethod
    def new_instance(cls, *args: Any, **kwargs: Any) -> Any:
        """Build and return an instance of the class."""
