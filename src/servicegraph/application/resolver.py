"""Application layer - Recursive resolution and build algorithm."""

import functools
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Tuple

from servicegraph.application.binding_registry import BindingRegistry
from servicegraph.application.callbacks import CallbackPipeline
from servicegraph.application.reflection import ReflectionManager
from servicegraph.application.resolution_context import ResolutionContext
from servicegraph.domain import (
    Bind,
    BindingResolutionError,
    ClassRecipe,
    Lifetime,
    ParameterRecipe,
    UnresolvablePrimitiveError,
    describe,
)
from servicegraph.domain.attributes import ContextualAttribute, class_attributes

if TYPE_CHECKING:
    from servicegraph.application.container import Container

logger = logging.getLogger(__name__)


def is_factory(concrete: Any) -> bool:
    """A factory is a function, lambda, method or partial.

    Other callable objects are ready-made values and are never invoked.
    """
    return (
        inspect.isfunction(concrete)
        or inspect.ismethod(concrete)
        or inspect.isbuiltin(concrete)
        or isinstance(concrete, functools.partial)
    )


class ResolutionEngine:
    """Resolves abstracts into fully wired instances.

    Resolution canonicalizes the abstract, consults contextual overrides and the
    instance cache, then builds the concrete (a factory, a class, or another
    abstract resolved recursively), applies extenders, caches shared instances
    and fires the callback pipeline.

    Attributes:
        _container: Facade used for recursive ``make`` and capability queries.
        _registry: Binding storage.
        _callbacks: Hook pipeline.
        _reflection: Reflection metadata cache.
        _context: Task-local build and parameter stacks.
    """

    def __init__(
        self,
        container: "Container",
        registry: BindingRegistry,
        callbacks: CallbackPipeline,
        reflection: ReflectionManager,
        context: ResolutionContext,
    ) -> None:
        self._container = container
        self._registry = registry
        self._callbacks = callbacks
        self._reflection = reflection
        self._context = context

    def resolve(self, abstract: Any, parameters: Optional[Dict[Any, Any]] = None, raise_events: bool = True) -> Any:
        """Resolve the given abstract.

        Args:
            abstract: Identifier to resolve.
            parameters: Explicit constructor arguments keyed by parameter name.
            raise_events: Whether to fire the callback pipeline.

        Returns:
            The resolved instance.

        Raises:
            BindingResolutionError: If no instance can be produced.
            CircularDependencyError: If the graph contains a cycle.
        """
        parameters = parameters or {}
        abstract = self._registry.get_alias(abstract)

        if raise_events:
            self._callbacks.fire_before_resolving(abstract, parameters, self._container)

        concrete = self.get_contextual_concrete(abstract)
        needs_contextual_build = bool(parameters) or concrete is not None

        if not needs_contextual_build and self._registry.has_instance(abstract):
            return self._registry.get_instance(abstract)

        with self._context.overriding(parameters):
            if concrete is None:
                concrete = self.get_concrete(abstract)

            instance = self._produce(concrete, abstract)

            for extender in self._registry.extenders(abstract):
                instance = extender(instance, self._container)

            if not needs_contextual_build and self._container.is_shared(abstract):
                self._registry.set_instance(abstract, instance)

            if raise_events:
                self._callbacks.fire_resolving(abstract, instance, self._container)

            if not needs_contextual_build:
                self._registry.mark_resolved(abstract)

        return instance

    def _produce(self, concrete: Any, abstract: Any) -> Any:
        if is_factory(concrete) or concrete == abstract:
            return self.build(concrete)
        if inspect.isclass(concrete) or isinstance(concrete, str):
            return self._container.make(concrete)
        # A ready-made value given as a contextual implementation.
        return concrete

    def get_concrete(self, abstract: Any) -> Any:
        """Get the concrete for an abstract: its binding, a ``@Bind`` declaration, or itself."""
        binding = self._registry.get_binding(abstract)
        if binding is not None:
            return binding.concrete

        if self._registry.mark_checked_for_attribute_bindings(abstract):
            return abstract

        return self._concrete_from_attributes(abstract)

    def _concrete_from_attributes(self, abstract: Any) -> Any:
        cls = self._reflection.locate_class(abstract)
        if cls is None:
            return abstract

        concrete = fallback = None
        for attribute in class_attributes(cls):
            if not isinstance(attribute, Bind):
                continue
            if attribute.is_wildcard:
                fallback = attribute.concrete
                continue
            if self._container.current_environment_is(attribute.environments):
                concrete = attribute.concrete
                break

        if concrete is None:
            concrete = fallback
        if concrete is None:
            return abstract

        lifetime = self._reflection.lifetime_attribute(cls)
        logger.debug("Discovered binding %s -> %s (%s)", describe(abstract), describe(concrete), lifetime)
        if lifetime is Lifetime.SCOPED:
            self._container.scoped(abstract, concrete)
        elif lifetime is Lifetime.SINGLETON:
            self._container.singleton(abstract, concrete)
        else:
            self._container.bind(abstract, concrete)

        return self._registry.get_binding(abstract).concrete

    def get_contextual_concrete(self, abstract: Any) -> Optional[Any]:
        """Find the contextual implementation for ``abstract`` under the current consumer.

        Aliases of the abstract are checked too.
        """
        binding = self.find_in_contextual_bindings(abstract)
        if binding is not None:
            return binding

        for alias in self._registry.aliases_of(abstract):
            binding = self.find_in_contextual_bindings(alias)
            if binding is not None:
                return binding

        return None

    def find_in_contextual_bindings(self, abstract: Any) -> Optional[Any]:
        return self._registry.find_contextual(self._context.current(), abstract)

    def build(self, concrete: Any) -> Any:
        """Instantiate a concrete: call a factory, or construct a class with its dependencies injected.

        Raises:
            BindingResolutionError: If the class does not exist or is not instantiable.
            CircularDependencyError: If the class is already being built.
        """
        if is_factory(concrete):
            with self._context.building(concrete):
                return self.call_factory(concrete, self._context.last_parameter_override())

        recipe = self._reflection.class_recipe(concrete)

        if not recipe.exists:
            raise BindingResolutionError(f"Target class [{describe(concrete)}] does not exist.")

        if not recipe.instantiable:
            self._not_instantiable(concrete)

        cls = recipe.target

        if recipe.is_self_building and not self._context.is_building(cls):
            return self._build_self_building(cls, recipe)

        self._context.ensure_not_building(cls)

        if not recipe.has_constructor:
            instance = cls()
            self._callbacks.fire_after_resolving_attribute(recipe.attributes, instance, self._container)
            return instance

        with self._context.building(cls):
            args, kwargs = self.resolve_dependencies(recipe.parameters, self._context.last_parameter_override())

        instance = cls(*args, **kwargs)
        self._callbacks.fire_after_resolving_attribute(recipe.attributes, instance, self._container)
        return instance

    def _build_self_building(self, cls: type, recipe: ClassRecipe) -> Any:
        with self._context.building(cls):
            instance = self._container.call((cls, "new_instance"), self._context.last_parameter_override())

        self._callbacks.fire_after_resolving_attribute(recipe.attributes, instance, self._container)
        return instance

    def call_factory(self, factory: Callable[..., Any], parameters: Dict[Any, Any]) -> Any:
        """Invoke a factory with as many of ``(container, parameters)`` as it accepts."""
        arity = self._reflection.factory_arity(factory)
        if arity == 0:
            return factory()
        if arity == 1:
            return factory(self._container)
        return factory(self._container, dict(parameters))

    def resolve_dependencies(
        self, recipes: Sequence[ParameterRecipe], overrides: Dict[Any, Any]
    ) -> Tuple[List[Any], Dict[str, Any]]:
        """Resolve every parameter, in declaration order.

        Args:
            recipes: Parameter recipes of the constructor or callable.
            overrides: Explicit values keyed by parameter name (or by class).
                Consumed entries are removed.

        Returns:
            Positional and keyword arguments ready for the call.
        """
        args: List[Any] = []
        kwargs: Dict[str, Any] = {}

        for recipe in recipes:
            if recipe.is_var_keyword:
                continue

            if recipe.name in overrides:
                result = overrides.pop(recipe.name)
            elif recipe.class_type is not None and recipe.class_type in overrides:
                result = overrides.pop(recipe.class_type)
            else:
                result = None
                if recipe.contextual_attribute is not None:
                    result = self.resolve_from_attribute(recipe.contextual_attribute)

                # An attribute yielding nothing falls back to regular resolution.
                if result is None:
                    result = self.resolve_primitive(recipe) if recipe.class_type is None else self.resolve_class(recipe)

            self._callbacks.fire_after_resolving_attribute(recipe.attributes, result, self._container)

            if recipe.is_variadic:
                args.extend(_as_list(result))
            elif recipe.is_keyword_only:
                kwargs[recipe.name] = result
            else:
                args.append(result)

        return args, kwargs

    def resolve_primitive(self, recipe: ParameterRecipe) -> Any:
        """Resolve a parameter with no injectable class.

        Raises:
            UnresolvablePrimitiveError: If no contextual value, default or null fallback exists.
        """
        concrete = self.get_contextual_concrete(f"${recipe.name}")
        if concrete is not None:
            return self.unwrap_if_factory(concrete)

        if recipe.has_default:
            return recipe.default

        if recipe.is_variadic:
            return []

        if recipe.has_type and recipe.allows_null:
            return None

        raise UnresolvablePrimitiveError(recipe.name, recipe.declaring_class, str(recipe))

    def resolve_class(self, recipe: ParameterRecipe) -> Any:
        """Resolve a class-typed parameter from the container."""
        cls = recipe.class_type

        # Keep the declared default unless something was explicitly bound for the class.
        if recipe.has_default and not self._container.bound(cls) and self.find_in_contextual_bindings(cls) is None:
            return recipe.default

        if recipe.is_variadic:
            try:
                return self._resolve_variadic_class(cls)
            except BindingResolutionError as exc:
                logger.debug("Variadic %s resolved to an empty list: %s", recipe.name, exc)
                return []

        return self._container.make(cls)

    def _resolve_variadic_class(self, cls: type) -> List[Any]:
        concrete = self.get_contextual_concrete(self._registry.get_alias(cls))

        if not isinstance(concrete, (list, tuple)):
            return _as_list(self._container.make(cls))

        return [self.resolve(abstract) for abstract in concrete]

    def resolve_from_attribute(self, attribute: Any) -> Any:
        """Resolve a value through a contextual attribute's registered handler or its own ``resolve``.

        Raises:
            BindingResolutionError: If the attribute has neither.
        """
        handler = self._registry.attribute_handler(attribute)

        if handler is None and type(attribute).resolve is not ContextualAttribute.resolve:
            return attribute.resolve(self._container)

        if handler is None:
            raise BindingResolutionError(
                f"Contextual binding attribute [{type(attribute).__name__}] has no registered handler."
            )

        return handler(attribute, self._container)

    def unwrap_if_factory(self, value: Any) -> Any:
        if is_factory(value):
            return self.call_factory(value, {})
        return value

    def _not_instantiable(self, concrete: Any) -> None:
        stack = self._context.build_stack
        if stack:
            previous = ", ".join(describe(entry) for entry in stack)
            message = f"Target [{describe(concrete)}] is not instantiable while building [{previous}]."
        else:
            message = f"Target [{describe(concrete)}] is not instantiable."
        raise BindingResolutionError(message)


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
