"""Application layer - Dependency-injected invocation of arbitrary callables."""

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from servicegraph.application.reflection import ReflectionManager, class_path, locate
from servicegraph.application.resolver import ResolutionEngine, is_factory
from servicegraph.domain import InvalidCallableError, ParameterRecipe, describe

if TYPE_CHECKING:
    from servicegraph.application.container import Container

logger = logging.getLogger(__name__)


def defines_call(cls: type) -> bool:
    """Determine whether instances of ``cls`` are callable."""
    return any("__call__" in vars(klass) for klass in cls.__mro__ if klass is not object)


class BoundMethod:
    """Calls functions, methods and invokable objects with their dependencies resolved.

    Accepted callables:
        - functions, lambdas and bound methods;
        - ``(instance_or_class, "method")`` pairs;
        - ``"package.module.Class@method"`` and ``"package.module.Class::method"`` strings;
        - dotted paths to module-level functions;
        - invokable objects, invokable classes and their dotted paths (``__call__``).

    Explicit parameters are matched by parameter name first, then by class.
    Positional parameters (given as a list) are appended to ``*args``.
    """

    def __init__(self, container: "Container", engine: ResolutionEngine, reflection: ReflectionManager) -> None:
        self._container = container
        self._engine = engine
        self._reflection = reflection

    def prepare(self, callback: Any) -> Any:
        """Normalize ``"Class::method"`` strings and ``(Class, "instance_method")`` pairs.

        Pairs naming an instance method on a class get an instance resolved from
        the container in place of the class.

        Raises:
            InvalidCallableError: If a ``"Class::method"`` string names no class.
        """
        if isinstance(callback, str) and "::" in callback:
            owner, method = callback.split("::", 1)
            located = locate(owner)
            if not inspect.isclass(located):
                raise InvalidCallableError(f"Target class [{owner}] does not exist.")
            callback = (located, method)

        if isinstance(callback, tuple) and len(callback) == 2:
            owner, method = callback
            if inspect.isclass(owner) and inspect.isfunction(inspect.getattr_static(owner, method, None)):
                callback = (self._container.make(owner), method)

        return callback

    @staticmethod
    def class_for(callback: Any) -> Optional[type]:
        """The class a prepared method callable or invokable object belongs to, or None for functions and closures."""
        if isinstance(callback, tuple) and len(callback) == 2:
            owner = callback[0]
        elif inspect.ismethod(callback):
            owner = callback.__self__
        elif callable(callback) and not (is_factory(callback) or inspect.isclass(callback)):
            owner = callback
        else:
            return None
        return owner if inspect.isclass(owner) else type(owner)

    def call(self, callback: Any, parameters: Dict[Any, Any], default_method: Optional[str] = None) -> Any:
        """Call the given (prepared) callable, injecting its dependencies.

        Args:
            callback: Any supported callable form.
            parameters: Explicit parameters keyed by name, class or position.
            default_method: Method to call when ``callback`` names only a class.

        Returns:
            The callable's return value.

        Raises:
            InvalidCallableError: If the callable cannot be interpreted.
        """
        if isinstance(callback, str) and default_method is None and "@" not in callback:
            located = locate(callback)
            if inspect.isclass(located) and defines_call(located):
                default_method = "__call__"
            elif callable(located):
                callback = located

        if inspect.isclass(callback) and default_method is None and defines_call(callback):
            default_method = "__call__"

        if (isinstance(callback, str) and "@" in callback) or default_method is not None or inspect.isclass(callback):
            return self._call_class(callback, parameters, default_method)

        if isinstance(callback, tuple):
            return self._call_pair(callback, parameters)

        if not callable(callback):
            raise InvalidCallableError(f"[{describe(callback)}] is not callable.")

        if inspect.isfunction(callback) or inspect.ismethod(callback) or inspect.isbuiltin(callback):
            return self._invoke(callback, self._reflection.callable_recipe(callback), parameters)

        # Invokable instance.
        return self._invoke(callback, self._reflection.method_recipe(type(callback), "__call__"), parameters)

    def _call_class(self, target: Any, parameters: Dict[Any, Any], default_method: Optional[str]) -> Any:
        if isinstance(target, str) and "@" in target:
            target, method = target.split("@", 1)
        else:
            method = default_method

        if not method:
            raise InvalidCallableError("Method not provided.")

        return self._container.call((self._container.make(target), method), parameters)

    def _call_pair(self, pair: Tuple[Any, str], parameters: Dict[Any, Any]) -> Any:
        owner, method = pair
        cls = owner if inspect.isclass(owner) else type(owner)

        key = f"{class_path(cls)}@{method}"
        if self._container.has_method_binding(key):
            return self._container.call_method_binding(key, owner)

        try:
            function = getattr(owner, method)
        except AttributeError as exc:
            raise InvalidCallableError(f"Method [{method}] does not exist on [{describe(cls)}].") from exc

        return self._invoke(function, self._reflection.method_recipe(cls, method), parameters)

    def _invoke(self, function: Callable[..., Any], recipes: Tuple[ParameterRecipe, ...], parameters: Dict[Any, Any]) -> Any:
        overrides = dict(parameters)
        args, kwargs = self._engine.resolve_dependencies(recipes, overrides)

        positional = sorted(key for key in overrides if isinstance(key, int))
        if positional and any(recipe.is_variadic for recipe in recipes):
            args.extend(overrides.pop(key) for key in positional)

        names = [key for key in overrides if isinstance(key, str)]
        if names and any(recipe.is_var_keyword for recipe in recipes):
            kwargs.update((name, overrides.pop(name)) for name in names)

        if overrides:
            logger.debug("Ignoring unused parameters %s for %s", list(overrides), describe(function))

        return function(*args, **kwargs)
