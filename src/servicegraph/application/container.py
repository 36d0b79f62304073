import inspect
import logging
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, TypeVar, Union

from servicegraph.application.binding_registry import BindingRegistry
from servicegraph.application.bound_method import BoundMethod
from servicegraph.application.callbacks import CallbackPipeline
from servicegraph.application.contextual_binding_builder import ContextualBindingBuilder
from servicegraph.application.reflection import ReflectionManager, class_path
from servicegraph.application.resolution_context import ResolutionContext
from servicegraph.application.resolver import ResolutionEngine, is_factory
from servicegraph.application.rewindable_generator import RewindableGenerator
from servicegraph.domain import (
    Binding,
    CircularDependencyError,
    DIException,
    EntryNotFoundError,
    IContainer,
    InvalidCallableError,
    Lifetime,
    describe,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)

EnvironmentResolver = Callable[[List[str]], bool]


class Container(IContainer):
    """Main dependency injection container.

    Registers bindings and resolves fully wired object graphs on demand,
    supporting transient, singleton and scoped lifetimes, contextual bindings,
    aliases, tags, extenders, attribute-driven auto-binding and a callback
    pipeline. Unbound classes are auto-wired from their constructor type hints.

    Resolution state (the build stack, the parameter overrides and the scoped
    instances) is kept per thread and per asyncio task, so one container can be
    shared by concurrent requests.

    Attributes:
        _registry: Storage for bindings, instances, aliases, tags and extenders.
        _reflection: Cache of class and callable introspection.
        _context: Task-local build and parameter-override stacks.
        _callbacks: Resolution hooks.
        _engine: The recursive resolve/build algorithm.
        _invoker: Dependency-injected invocation of callables.
        _environment_resolver: Predicate deciding which ``@Bind`` environments apply.

    Example:
        >>> container = Container()
        >>> container.singleton(Logger, ConsoleLogger)
        >>> service = container.make(UserService)  # Logger injected automatically
    """

    _instance: ClassVar[Optional["Container"]] = None

    def __init__(self) -> None:
        """Initialize the container and register it under ``Container``, ``IContainer`` and ``"container"``."""
        self._registry = BindingRegistry()
        self._reflection = ReflectionManager()
        self._context = ResolutionContext()
        self._callbacks = CallbackPipeline()
        self._engine = ResolutionEngine(self, self._registry, self._callbacks, self._reflection, self._context)
        self._invoker = BoundMethod(self, self._engine, self._reflection)
        self._environment_resolver: Optional[EnvironmentResolver] = None

        self.instance(Container, self)
        self.alias(IContainer, Container)
        self.alias("container", Container)

    # Process-wide default container

    @classmethod
    def get_instance(cls) -> "Container":
        """Get the process-wide default container, creating it on first access."""
        if Container._instance is None:
            Container._instance = cls()
        return Container._instance

    @classmethod
    def set_instance(cls, container: Optional["Container"] = None) -> Optional["Container"]:
        """Replace (or clear, with None) the process-wide default container."""
        Container._instance = container
        return container

    # Registration

    def bind(self, abstract: Any, concrete: Optional[Any] = None, shared: bool = False) -> None:
        """Register a binding.

        Args:
            abstract: The identifier to bind. A factory function given without a
                concrete binds every class named in its return annotation.
            concrete: Class, dotted path, abstract, factory or plain value.
                Defaults to the abstract itself. Only functions, methods and
                partials are factories; other callable objects are bound as values.
            shared: Whether the resolved instance is cached.

        Raises:
            InvalidCallableError: If a factory is bound by return type but declares none.

        Example:
            >>> container.bind(Mailer, SmtpMailer)
            >>> container.bind("clock", lambda c: SystemClock())
        """
        self._bind(abstract, concrete, Lifetime.SINGLETON if shared else Lifetime.TRANSIENT)

    def _bind(self, abstract: Any, concrete: Optional[Any], lifetime: Lifetime) -> None:
        if concrete is None and is_factory(abstract):
            for return_type in self._factory_return_types(abstract):
                self._bind(return_type, abstract, lifetime)
            return

        self._registry.drop_stale_instances(abstract)

        if concrete is None:
            concrete = abstract

        self._registry.set_binding(
            Binding(abstract=abstract, concrete=self._wrap_concrete(abstract, concrete), lifetime=lifetime)
        )
        logger.debug("Bound %s -> %s (%s)", describe(abstract), describe(concrete), lifetime)

        if self.resolved(abstract):
            self._rebound(abstract)

    def _factory_return_types(self, factory: Callable[..., Any]) -> List[type]:
        return_types = self._reflection.closure_return_types(factory)
        if not return_types:
            raise InvalidCallableError(f"Factory [{describe(factory)}] declares no return type to bind.")
        return return_types

    @staticmethod
    def _wrap_concrete(abstract: Any, concrete: Any) -> Callable[..., Any]:
        if is_factory(concrete):
            return concrete

        if inspect.isclass(concrete) or isinstance(concrete, str):

            def factory(container: "Container", parameters: Dict[Any, Any]) -> Any:
                if concrete == abstract:
                    return container.build(concrete)
                return container.resolve(concrete, parameters, raise_events=False)

            return factory

        return lambda: concrete

    def bind_if(self, abstract: Any, concrete: Optional[Any] = None, shared: bool = False) -> None:
        """Register a binding if it hasn't already been registered."""
        if not self.bound(abstract):
            self.bind(abstract, concrete, shared)

    def singleton(self, abstract: Any, concrete: Optional[Any] = None) -> None:
        """Register a shared binding."""
        self._bind(abstract, concrete, Lifetime.SINGLETON)

    def singleton_if(self, abstract: Any, concrete: Optional[Any] = None) -> None:
        if not self.bound(abstract):
            self.singleton(abstract, concrete)

    def scoped(self, abstract: Any, concrete: Optional[Any] = None) -> None:
        """Register a binding shared until ``forget_scoped_instances`` is called.

        Each thread or asyncio task resolves its own scoped instances unless it
        was started inside a scope that is already open.
        """
        if concrete is None and is_factory(abstract):
            for return_type in self._factory_return_types(abstract):
                self._registry.mark_scoped(return_type)
        else:
            self._registry.mark_scoped(abstract)

        self._bind(abstract, concrete, Lifetime.SCOPED)

    def scoped_if(self, abstract: Any, concrete: Optional[Any] = None) -> None:
        if not self.bound(abstract):
            self.scoped(abstract, concrete)

    def instance(self, abstract: Any, instance: T) -> T:
        """Register an existing instance as shared.

        Returns:
            The given instance.
        """
        self._registry.remove_abstract_alias(abstract)

        is_bound = self.bound(abstract)

        self._registry.remove_alias(abstract)
        self._registry.set_instance(abstract, instance)

        if is_bound:
            self._rebound(abstract)

        return instance

    def alias(self, name: Any, target: Any) -> None:
        """Alias ``name`` to ``target``; resolving ``name`` resolves ``target``.

        Raises:
            AliasError: If ``name`` equals ``target``.
        """
        self._registry.add_alias(name, target)

    def tag(self, abstracts: Any, *tags: Union[str, Sequence[str]]) -> None:
        """Assign one or more tags to one or more abstracts.

        Example:
            >>> container.tag([CpuReport, MemoryReport], "reports")
            >>> container.tag(DiskReport, "reports", "storage")
        """
        if not isinstance(abstracts, (list, tuple)):
            abstracts = [abstracts]

        names: List[str] = []
        for tag in tags:
            names.extend([tag] if isinstance(tag, str) else tag)

        self._registry.add_tags(abstracts, names)

    def tagged(self, tag: str) -> RewindableGenerator[Any]:
        """Lazily resolve every abstract registered under ``tag``.

        Each iteration reads the tag again and resolves its current members.
        """
        return RewindableGenerator(
            lambda: (self.make(abstract) for abstract in self._registry.tagged_abstracts(tag)),
            lambda: len(self._registry.tagged_abstracts(tag)),
        )

    def extend(self, abstract: Any, extender: Callable[[Any, "Container"], Any]) -> None:
        """Decorate the instances of an abstract.

        An instance already cached is extended immediately; otherwise the
        extender runs on every fresh instance.
        """
        abstract = self.get_alias(abstract)

        if self._registry.has_instance(abstract):
            self._registry.set_instance(abstract, extender(self._registry.get_instance(abstract), self))
            self._rebound(abstract)
            return

        self._registry.add_extender(abstract, extender)

        if self.resolved(abstract):
            self._rebound(abstract)

    def forget_extenders(self, abstract: Any) -> None:
        self._registry.forget_extenders(self.get_alias(abstract))

    def when(self, concrete: Any) -> ContextualBindingBuilder:
        """Define a contextual binding for one or more consumer classes.

        Example:
            >>> container.when(ReportController).needs(Storage).give(S3Storage)
        """
        concretes = concrete if isinstance(concrete, (list, tuple)) else [concrete]
        return ContextualBindingBuilder(self, [self._consumer_key(item) for item in concretes])

    def _consumer_key(self, concrete: Any) -> Any:
        concrete = self.get_alias(concrete)
        return self._reflection.locate_class(concrete) or concrete

    def add_contextual_binding(self, concrete: Any, abstract: Any, implementation: Any) -> None:
        """Add a contextual binding: when ``concrete`` is built and needs ``abstract``, give ``implementation``."""
        self._registry.add_contextual(self._consumer_key(concrete), self.get_alias(abstract), implementation)

    def when_has_attribute(self, attribute: type, handler: Callable[[Any, "Container"], Any]) -> None:
        """Register the handler resolving parameters annotated with ``attribute``."""
        self._registry.set_attribute_handler(attribute, handler)

    def bind_method(self, method: Any, callback: Callable[[Any, "Container"], Any]) -> None:
        """Bind a custom invoker to a ``(Class, "method")`` pair or a ``"module.Class@method"`` string."""
        self._registry.set_method_binding(self._method_key(method), callback)

    def has_method_binding(self, method: str) -> bool:
        return self._registry.get_method_binding(method) is not None

    def call_method_binding(self, method: str, instance: Any) -> Any:
        return self._registry.get_method_binding(method)(instance, self)

    @staticmethod
    def _method_key(method: Any) -> str:
        if isinstance(method, tuple):
            owner, name = method
            return f"{class_path(owner if inspect.isclass(owner) else type(owner))}@{name}"
        return method

    # Resolution

    def make(self, abstract: Any, parameters: Optional[Dict[Any, Any]] = None) -> Any:
        """Resolve the given abstract from the container.

        Args:
            abstract: Class, string identifier or dotted class path.
            parameters: Explicit constructor arguments keyed by parameter name.

        Returns:
            The resolved instance.

        Raises:
            BindingResolutionError: If the instance cannot be produced.
            CircularDependencyError: If the graph contains a cycle.
        """
        return self.resolve(abstract, parameters)

    def make_with(self, abstract: Any, parameters: Optional[Dict[Any, Any]] = None) -> Any:
        return self.make(abstract, parameters)

    def resolve(self, abstract: Any, parameters: Optional[Dict[Any, Any]] = None, raise_events: bool = True) -> Any:
        return self._engine.resolve(abstract, parameters, raise_events)

    def build(self, concrete: Any) -> Any:
        """Instantiate a concrete class (or call a factory) without consulting bindings."""
        return self._engine.build(concrete)

    def get(self, identifier: Any) -> Any:
        """Resolve an identifier, failing with ``EntryNotFoundError`` when it is unknown.

        Errors for bound identifiers and circular dependencies propagate unchanged.
        """
        try:
            return self.resolve(identifier)
        except DIException as exc:
            if self.has(identifier) or isinstance(exc, CircularDependencyError):
                raise
            raise EntryNotFoundError(identifier, str(exc)) from exc

    def call(
        self,
        callback: Any,
        parameters: Optional[Union[Dict[Any, Any], Iterable[Any]]] = None,
        default_method: Optional[str] = None,
    ) -> Any:
        """Call a callable, injecting its dependencies.

        The callable's class (if any) is on the build stack during the call, so
        contextual bindings declared for it apply.

        Args:
            callback: Function, bound method, ``(obj, "method")`` pair,
                ``"module.Class@method"`` string, invokable object or class.
            parameters: Explicit parameters keyed by name or class, or a list of
                positional values for ``*args``.
            default_method: Method to call when ``callback`` names only a class.

        Returns:
            The callable's return value.
        """
        if parameters is None:
            overrides: Dict[Any, Any] = {}
        elif isinstance(parameters, dict):
            overrides = dict(parameters)
        else:
            overrides = dict(enumerate(parameters))

        callback = self._invoker.prepare(callback)

        cls = BoundMethod.class_for(callback)
        if cls is None or self._context.is_building(cls):
            return self._invoker.call(callback, overrides, default_method)

        with self._context.building(cls):
            return self._invoker.call(callback, overrides, default_method)

    def factory(self, abstract: Any) -> Callable[[], Any]:
        """Get a zero-argument callable resolving ``abstract`` when called."""
        return lambda: self.make(abstract)

    def wrap(self, callback: Any, parameters: Optional[Dict[Any, Any]] = None) -> Callable[[], Any]:
        """Wrap a callable so its dependencies are injected when it is called."""
        return lambda: self.call(callback, parameters)

    def resolve_from_attribute(self, attribute: Any) -> Any:
        return self._engine.resolve_from_attribute(attribute)

    # Queries

    def bound(self, abstract: Any) -> bool:
        return (
            self._registry.has_binding(abstract)
            or self._registry.has_instance(abstract)
            or self._registry.is_alias(abstract)
        )

    def has(self, identifier: Any) -> bool:
        return self.bound(identifier)

    def resolved(self, abstract: Any) -> bool:
        """Determine whether the abstract was resolved (or has a cached instance)."""
        if self.is_alias(abstract):
            abstract = self.get_alias(abstract)
        return self._registry.is_resolved(abstract) or self._registry.has_instance(abstract)

    def is_shared(self, abstract: Any) -> bool:
        """Determine whether resolved instances of the abstract are cached.

        Unbound classes are shared when they carry ``@Singleton()`` or ``@Scoped()``.
        """
        if self._registry.has_instance(abstract):
            return True

        binding = self._registry.get_binding(abstract)
        if binding is not None:
            return binding.shared

        lifetime = self._reflection.lifetime_attribute(abstract)
        if lifetime is Lifetime.SCOPED:
            self._registry.mark_scoped(abstract)
        return lifetime is not None

    def is_alias(self, name: Any) -> bool:
        return self._registry.is_alias(name)

    def get_alias(self, abstract: Any) -> Any:
        """Follow the alias chain of ``abstract`` to its canonical identifier."""
        return self._registry.get_alias(abstract)

    def get_bindings(self) -> Dict[Any, Binding]:
        return self._registry.bindings()

    def currently_resolving(self) -> Optional[Any]:
        """The class (or factory) on top of the current task's build stack."""
        return self._context.current()

    # Callbacks

    def rebinding(self, abstract: Any, callback: Callable[["Container", Any], Any]) -> Optional[Any]:
        """Register a callback fired with the new instance when ``abstract`` is re-bound.

        Returns:
            The current instance when the abstract is already bound, else None.
        """
        abstract = self.get_alias(abstract)
        self._callbacks.add_rebound(abstract, callback)

        if self.bound(abstract):
            return self.make(abstract)
        return None

    def refresh(self, abstract: Any, target: Any, method: str) -> Optional[Any]:
        """Call ``target.method(instance)`` whenever ``abstract`` is re-bound."""
        return self.rebinding(abstract, lambda container, instance: getattr(target, method)(instance))

    def _rebound(self, abstract: Any) -> None:
        callbacks = self._callbacks.rebound_callbacks(abstract)
        if not callbacks:
            return

        instance = self.make(abstract)
        logger.debug("Firing %d rebound callback(s) for %s", len(callbacks), describe(abstract))
        for callback in callbacks:
            callback(self, instance)

    def before_resolving(self, abstract: Any, callback: Optional[Callable[..., Any]] = None) -> None:
        """Register a hook called with ``(abstract, parameters, container)`` before resolution.

        Pass only a callable to register a global hook.
        """
        if callback is None:
            self._callbacks.add_before_resolving(None, abstract)
        else:
            self._callbacks.add_before_resolving(self._hook_key(abstract), callback)

    def resolving(self, abstract: Any, callback: Optional[Callable[..., Any]] = None) -> None:
        """Register a hook called with ``(instance, container)`` when an instance is resolved."""
        if callback is None:
            self._callbacks.add_resolving(None, abstract)
        else:
            self._callbacks.add_resolving(self._hook_key(abstract), callback)

    def after_resolving(self, abstract: Any, callback: Optional[Callable[..., Any]] = None) -> None:
        """Register a hook called with ``(instance, container)`` after the ``resolving`` hooks."""
        if callback is None:
            self._callbacks.add_after_resolving(None, abstract)
        else:
            self._callbacks.add_after_resolving(self._hook_key(abstract), callback)

    def after_resolving_attribute(self, attribute: type, callback: Callable[..., Any]) -> None:
        """Register a hook called with ``(attribute, value, container)`` for values carrying ``attribute``."""
        self._callbacks.add_after_resolving_attribute(attribute, callback)

    def fire_after_resolving_attribute_callbacks(self, attributes: Iterable[Any], instance: Any) -> None:
        self._callbacks.fire_after_resolving_attribute(attributes, instance, self)

    def _hook_key(self, abstract: Any) -> Any:
        return self.get_alias(abstract) if isinstance(abstract, str) else abstract

    # Lifecycle

    def forget_instance(self, abstract: Any) -> None:
        self._registry.forget_instance(abstract)

    def forget_instances(self) -> None:
        self._registry.forget_instances()

    def forget_scoped_instances(self) -> None:
        """Discard the current scope, so the next resolutions start fresh scoped instances.

        Other threads and tasks with a scope of their own are unaffected.
        """
        self._registry.forget_scoped_instances()

    def flush(self) -> None:
        """Clear all bindings, instances, aliases and reflection caches.

        Useful for testing or resetting the container state.
        """
        self._registry.flush()
        self._reflection.clear()
        self._context.clear()

    # Environment

    def resolve_environment_using(self, resolver: Optional[EnvironmentResolver]) -> None:
        """Set the predicate deciding whether a list of environment names matches the current one."""
        self._environment_resolver = resolver

    def current_environment_is(self, environments: Union[str, Sequence[str]]) -> bool:
        if self._environment_resolver is None:
            return False
        if isinstance(environments, str):
            environments = [environments]
        return self._environment_resolver(list(environments))

    # Mapping protocol

    def __getitem__(self, key: Any) -> Any:
        return self.make(key)

    def __setitem__(self, key: Any, value: Any) -> None:
        self.bind(key, value if is_factory(value) else (lambda: value))

    def __contains__(self, key: Any) -> bool:
        return self.bound(key)

    def __delitem__(self, key: Any) -> None:
        self._registry.forget(key)
