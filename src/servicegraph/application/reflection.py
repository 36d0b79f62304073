"""Application layer - Reflection metadata cache."""

import importlib
import inspect
import logging
import types
import weakref
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    MutableMapping,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from servicegraph.domain import ClassRecipe, ContextualAttribute, Lifetime, ParameterRecipe, Scoped, SelfBuilding, Singleton
from servicegraph.domain.attributes import class_attributes
from servicegraph.domain.exceptions import describe

logger = logging.getLogger(__name__)

_NONE_TYPE = type(None)
_UNION_TYPES: Tuple[Any, ...] = (Union, getattr(types, "UnionType", Union))


def class_path(cls: type) -> str:
    """Return the dotted import path of a class."""
    return f"{cls.__module__}.{cls.__qualname__}"


def locate(path: str) -> Any:
    """Import the object named by a dotted path, or return None.

    Args:
        path: Dotted path such as ``"package.module.ClassName"``.

    Returns:
        The located object, or None when no prefix of the path is importable or an
        attribute along the remaining path is missing.
    """
    parts = path.split(".")
    for index in range(len(parts), 0, -1):
        module_name = ".".join(parts[:index])
        try:
            target: Any = importlib.import_module(module_name)
        except ImportError:
            continue
        for attribute in parts[index:]:
            target = getattr(target, attribute, None)
            if target is None:
                return None
        return target
    return None


def split_annotation(annotation: Any) -> Tuple[Any, Tuple[Any, ...]]:
    """Separate ``Annotated`` metadata from the underlying annotation."""
    if get_origin(annotation) is Annotated:
        arguments = get_args(annotation)
        return arguments[0], tuple(arguments[1:])
    return annotation, ()


def class_from_annotation(annotation: Any) -> Tuple[Optional[type], bool]:
    """Return the injectable class named by an annotation and whether ``None`` is accepted.

    Builtin types (``str``, ``int``, ``list`` ...), generics and unions of several
    classes are primitives: they yield no class.
    """
    if annotation is None or annotation is _NONE_TYPE or annotation is Any:
        return None, True
    if get_origin(annotation) in _UNION_TYPES:
        arguments = get_args(annotation)
        allows_null = _NONE_TYPE in arguments
        members = [argument for argument in arguments if argument is not _NONE_TYPE]
        if len(members) == 1:
            cls, _ = class_from_annotation(split_annotation(members[0])[0])
            return cls, allows_null
        return None, allows_null
    if inspect.isclass(annotation) and annotation.__module__ != "builtins":
        return annotation, False
    return None, False


def _annotation_text(annotation: Any) -> str:
    if annotation is inspect.Parameter.empty:
        return ""
    if inspect.isclass(annotation):
        return annotation.__name__
    return str(annotation).replace("typing.", "")


class ReflectionManager:
    """Memoizes class and callable introspection for the lifetime of the process.

    Class recipes, method recipes, lifetime attributes and factory arities are
    computed once and reused on every resolution. Closures and plain functions
    are reflected on each call since they have no stable key.

    Attributes:
        _class_recipes: Recipes keyed by class object or dotted path.
        _method_recipes: Parameter recipes keyed by (class, method name).
        _lifetimes: Lifetime attribute per class (None when absent).
        _arities: Positional arity of factories, held weakly.
    """

    def __init__(self) -> None:
        """Initialize the reflection manager with empty caches."""
        self._class_recipes: Dict[Any, ClassRecipe] = {}
        self._method_recipes: Dict[Tuple[type, str], Tuple[ParameterRecipe, ...]] = {}
        self._lifetimes: Dict[type, Optional[Lifetime]] = {}
        self._arities: MutableMapping[Any, int] = weakref.WeakKeyDictionary()

    def locate_class(self, target: Any) -> Optional[type]:
        """Return the class behind an abstract, or None if it names no class."""
        if inspect.isclass(target):
            return target
        if isinstance(target, str):
            located = locate(target)
            if inspect.isclass(located):
                return located
        return None

    def class_recipe(self, target: Any) -> ClassRecipe:
        """Get the cached recipe for a class or dotted path, computing it on first access."""
        recipe = self._class_recipes.get(target)
        if recipe is None:
            recipe = self._class_recipes[target] = self._compute_class_recipe(target)
        return recipe

    def _compute_class_recipe(self, target: Any) -> ClassRecipe:
        cls = self.locate_class(target)
        if cls is None:
            return ClassRecipe(type_name=describe(target), exists=False, instantiable=False)

        instantiable = not inspect.isabstract(cls) and not getattr(cls, "_is_protocol", False)
        has_constructor = cls.__init__ is not object.__init__ or cls.__new__ is not object.__new__
        parameters: Tuple[ParameterRecipe, ...] = ()

        if instantiable and has_constructor:
            initializer = cls.__init__ if cls.__init__ is not object.__init__ else cls.__new__
            recipes = self._parameter_recipes(cls, _declaring_class(cls), annotations_from=initializer)
            if recipes is None:
                has_constructor = False
            else:
                parameters = recipes

        return ClassRecipe(
            type_name=cls.__name__,
            target=cls,
            instantiable=instantiable,
            has_constructor=has_constructor,
            is_self_building=issubclass(cls, SelfBuilding),
            attributes=class_attributes(cls),
            parameters=parameters,
        )

    def method_recipe(self, owner: type, method: str) -> Tuple[ParameterRecipe, ...]:
        """Get cached parameter recipes for ``owner.method`` (bound form, ``self`` excluded).

        Raises:
            AttributeError: If the class has no such attribute.
        """
        key = (owner, method)
        recipes = self._method_recipes.get(key)
        if recipes is None:
            function = getattr(owner, method)
            if inspect.isfunction(inspect.getattr_static(owner, method)):
                # Plain instance method looked up on the class: drop ``self``.
                function = types.MethodType(function, owner)
            recipes = self._method_recipes[key] = self._parameter_recipes(function, owner) or ()
        return recipes

    def callable_recipe(self, function: Callable[..., Any]) -> Tuple[ParameterRecipe, ...]:
        """Reflect the parameters of an arbitrary callable, without caching."""
        owner = getattr(function, "__self__", None)
        declaring = owner if inspect.isclass(owner) else type(owner) if owner is not None else function
        return self._parameter_recipes(function, declaring) or ()

    def lifetime_attribute(self, target: Any) -> Optional[Lifetime]:
        """Return the lifetime declared by ``@Singleton()`` / ``@Scoped()`` on a class."""
        cls = self.locate_class(target)
        if cls is None:
            return None
        if cls not in self._lifetimes:
            lifetime = None
            for attribute in class_attributes(cls):
                if isinstance(attribute, Singleton):
                    lifetime = Lifetime.SINGLETON
                    break
                if isinstance(attribute, Scoped):
                    lifetime = Lifetime.SCOPED
                    break
            self._lifetimes[cls] = lifetime
        return self._lifetimes[cls]

    def factory_arity(self, factory: Callable[..., Any]) -> int:
        """Number of positional arguments (0, 1 or 2) a factory accepts.

        Factories receive ``(container, parameters)``; shorter signatures get a prefix.
        """
        try:
            return self._arities[factory]
        except (KeyError, TypeError):
            pass

        try:
            signature = inspect.signature(factory)
        except (TypeError, ValueError):
            arity = 1
        else:
            arity = 0
            for parameter in signature.parameters.values():
                if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
                    arity = 2
                    break
                if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
                    arity += 1
            arity = min(arity, 2)

        try:
            self._arities[factory] = arity
        except TypeError:
            pass  # not weak-referenceable (e.g. builtins)
        return arity

    def closure_return_types(self, factory: Callable[..., Any]) -> List[type]:
        """Classes named by a factory's return annotation."""
        annotation = self._type_hints(factory).get("return")
        if annotation is None:
            return []
        annotation, _ = split_annotation(annotation)
        members = get_args(annotation) if get_origin(annotation) in _UNION_TYPES else (annotation,)
        return [member for member in members if inspect.isclass(member) and member is not _NONE_TYPE]

    def clear(self) -> None:
        """Clear every cache. Used by ``Container.flush`` for test isolation."""
        self._class_recipes.clear()
        self._method_recipes.clear()
        self._lifetimes.clear()
        self._arities = weakref.WeakKeyDictionary()

    def _type_hints(self, function: Any) -> Dict[str, Any]:
        try:
            return get_type_hints(function, include_extras=True)
        except (NameError, TypeError, AttributeError):
            pass

        # Evaluate one annotation at a time so a single broken hint spares the others.
        globalns = getattr(inspect.unwrap(function), "__globals__", None)
        hints: Dict[str, Any] = {}
        for name, annotation in getattr(function, "__annotations__", {}).items():
            holder = types.SimpleNamespace(__annotations__={name: annotation})
            try:
                hints.update(get_type_hints(holder, globalns=globalns, include_extras=True))
            except (NameError, TypeError, AttributeError) as exc:
                logger.warning(
                    "Could not evaluate annotation %r of parameter [%s] of %s (%s); using the raw annotation",
                    annotation,
                    name,
                    describe(function),
                    exc,
                )
        return hints

    def _parameter_recipes(
        self,
        function: Any,
        declaring_class: Any,
        annotations_from: Optional[Any] = None,
    ) -> Optional[Tuple[ParameterRecipe, ...]]:
        try:
            signature = inspect.signature(function)
        except (TypeError, ValueError):
            return None

        hints = self._type_hints(annotations_from if annotations_from is not None else function)
        recipes = []

        for position, (name, parameter) in enumerate(signature.parameters.items()):
            annotation = hints.get(name, parameter.annotation)
            has_type = annotation is not inspect.Parameter.empty
            base, attributes = split_annotation(annotation) if has_type else (annotation, ())
            class_type, allows_null = class_from_annotation(base) if has_type else (None, False)
            has_default = parameter.default is not inspect.Parameter.empty
            is_variadic = parameter.kind is inspect.Parameter.VAR_POSITIONAL
            is_var_keyword = parameter.kind is inspect.Parameter.VAR_KEYWORD

            recipes.append(
                ParameterRecipe(
                    name=name,
                    position=position,
                    declaring_class=declaring_class,
                    class_type=class_type,
                    has_type=has_type,
                    has_default=has_default,
                    default=parameter.default if has_default else None,
                    is_variadic=is_variadic,
                    is_var_keyword=is_var_keyword,
                    is_keyword_only=parameter.kind is inspect.Parameter.KEYWORD_ONLY,
                    is_optional=has_default or is_variadic or is_var_keyword,
                    allows_null=allows_null or (has_default and parameter.default is None),
                    attributes=attributes,
                    contextual_attribute=next(
                        (attribute for attribute in attributes if isinstance(attribute, ContextualAttribute)),
                        None,
                    ),
                    annotation=_annotation_text(base) if has_type else "",
                )
            )

        return tuple(recipes)


def _declaring_class(cls: type) -> type:
    for klass in cls.__mro__:
        if "__init__" in vars(klass) or "__new__" in vars(klass):
            return klass
    return cls
