"""Application layer - Binding registry."""

from contextvars import ContextVar
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from servicegraph.domain import AliasError, Binding, describe

Extender = Callable[[Any, Any], Any]


class BindingRegistry:
    """Stores bindings, instances, aliases, contextual overrides, extenders and tags.

    The registry has no resolution behavior of its own beyond alias
    canonicalization. Scoped instances live in a scope dictionary held by a
    context variable: each thread or asyncio task opens its own scope on first
    use, while tasks and worker threads started inside a scope share it.

    Attributes:
        _bindings: Abstract to binding.
        _instances: Abstract to shared (singleton) instance.
        _scoped_instances: The current scope, mapping scoped abstract to instance.
        _scoped: Abstracts whose instances are scoped.
        _resolved: Abstracts resolved at least once without contextual overrides.
        _aliases: Alias to abstract.
        _abstract_aliases: Abstract to the aliases pointing at it.
        _contextual: Consumer to (needed abstract to implementation).
        _contextual_attributes: Contextual attribute type to handler.
        _extenders: Abstract to decorators applied to fresh instances.
        _tags: Tag to abstracts.
        _method_bindings: ``module.Class@method`` to custom invoker.
        _checked_for_attribute_bindings: Abstracts already inspected for ``@Bind``.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._bindings: Dict[Any, Binding] = {}
        self._instances: Dict[Any, Any] = {}
        self._scoped_instances: ContextVar[Optional[Dict[Any, Any]]] = ContextVar(
            f"scoped_instances_{id(self)}", default=None
        )
        self._scoped: List[Any] = []
        self._resolved: Set[Any] = set()
        self._aliases: Dict[Any, Any] = {}
        self._abstract_aliases: Dict[Any, List[Any]] = {}
        self._contextual: Dict[Any, Dict[Any, Any]] = {}
        self._contextual_attributes: Dict[type, Callable[..., Any]] = {}
        self._extenders: Dict[Any, List[Extender]] = {}
        self._tags: Dict[str, List[Any]] = {}
        self._method_bindings: Dict[str, Callable[..., Any]] = {}
        self._checked_for_attribute_bindings: Set[Any] = set()

    # Bindings

    def get_binding(self, abstract: Any) -> Optional[Binding]:
        return self._bindings.get(abstract)

    def has_binding(self, abstract: Any) -> bool:
        return abstract in self._bindings

    def set_binding(self, binding: Binding) -> None:
        self._bindings[binding.abstract] = binding

    def bindings(self) -> Dict[Any, Binding]:
        """Get a copy of the current bindings."""
        return dict(self._bindings)

    def forget(self, abstract: Any) -> None:
        """Drop the binding, the instance and the resolved flag of an abstract."""
        self._bindings.pop(abstract, None)
        self._resolved.discard(abstract)
        self.forget_instance(abstract)

    # Instances

    def has_instance(self, abstract: Any) -> bool:
        scope = self._scoped_instances.get()
        return (scope is not None and abstract in scope) or abstract in self._instances

    def get_instance(self, abstract: Any) -> Any:
        scope = self._scoped_instances.get()
        if scope is not None and abstract in scope:
            return scope[abstract]
        return self._instances[abstract]

    def set_instance(self, abstract: Any, instance: Any) -> None:
        if abstract in self._scoped:
            self._current_scope()[abstract] = instance
        else:
            self._instances[abstract] = instance

    def _current_scope(self) -> Dict[Any, Any]:
        scope = self._scoped_instances.get()
        if scope is None:
            scope = {}
            self._scoped_instances.set(scope)
        return scope

    def forget_instance(self, abstract: Any) -> None:
        self._instances.pop(abstract, None)
        scope = self._scoped_instances.get()
        if scope is not None:
            scope.pop(abstract, None)

    def forget_instances(self) -> None:
        self._instances.clear()
        self._scoped_instances.set(None)

    def forget_scoped_instances(self) -> None:
        """Leave the current scope and start an empty one.

        Only the current task is affected; tasks and threads started from here
        on share the new scope.
        """
        self._scoped_instances.set({})
        for abstract in self._scoped:
            self._instances.pop(abstract, None)

    def mark_scoped(self, abstract: Any) -> None:
        if abstract not in self._scoped:
            self._scoped.append(abstract)

    def is_scoped(self, abstract: Any) -> bool:
        return abstract in self._scoped

    def drop_stale_instances(self, abstract: Any) -> None:
        self.forget_instance(abstract)
        self._aliases.pop(abstract, None)

    # Resolved flags

    def mark_resolved(self, abstract: Any) -> None:
        self._resolved.add(abstract)

    def is_resolved(self, abstract: Any) -> bool:
        return abstract in self._resolved

    # Aliases

    def is_alias(self, name: Any) -> bool:
        return name in self._aliases

    def get_alias(self, abstract: Any) -> Any:
        """Follow the alias chain to the canonical abstract.

        Raises:
            AliasError: If the chain loops back on itself.
        """
        visited = [abstract]
        while abstract in self._aliases:
            abstract = self._aliases[abstract]
            if abstract in visited:
                chain = " -> ".join(describe(name) for name in visited + [abstract])
                raise AliasError(f"Alias chain forms a cycle: {chain}")
            visited.append(abstract)
        return abstract

    def add_alias(self, name: Any, target: Any) -> None:
        """Register ``name`` as an alias of ``target``.

        Raises:
            AliasError: If ``name`` equals ``target``.
        """
        if name == target:
            raise AliasError(f"[{describe(target)}] is aliased to itself.")
        self.remove_abstract_alias(name)
        self._aliases[name] = target
        self._abstract_aliases.setdefault(target, []).append(name)

    def remove_alias(self, name: Any) -> None:
        self._aliases.pop(name, None)

    def remove_abstract_alias(self, searched: Any) -> None:
        """Remove ``searched`` from the reverse alias index."""
        if searched not in self._aliases:
            return
        for abstract, aliases in self._abstract_aliases.items():
            self._abstract_aliases[abstract] = [alias for alias in aliases if alias != searched]

    def aliases_of(self, abstract: Any) -> List[Any]:
        return list(self._abstract_aliases.get(abstract, ()))

    # Contextual bindings

    def add_contextual(self, consumer: Any, needs: Any, implementation: Any) -> None:
        self._contextual.setdefault(consumer, {})[needs] = implementation

    def find_contextual(self, consumer: Any, needs: Any) -> Optional[Any]:
        if consumer is None:
            return None
        return self._contextual.get(consumer, {}).get(needs)

    def set_attribute_handler(self, attribute: type, handler: Callable[..., Any]) -> None:
        self._contextual_attributes[attribute] = handler

    def attribute_handler(self, attribute: Any) -> Optional[Callable[..., Any]]:
        for klass in type(attribute).__mro__:
            if klass in self._contextual_attributes:
                return self._contextual_attributes[klass]
        return None

    # Extenders

    def add_extender(self, abstract: Any, extender: Extender) -> None:
        self._extenders.setdefault(abstract, []).append(extender)

    def extenders(self, abstract: Any) -> List[Extender]:
        return list(self._extenders.get(abstract, ()))

    def forget_extenders(self, abstract: Any) -> None:
        self._extenders.pop(abstract, None)

    # Tags

    def add_tags(self, abstracts: Iterable[Any], tags: Iterable[str]) -> None:
        abstracts = list(abstracts)
        for tag in tags:
            self._tags.setdefault(tag, []).extend(abstracts)

    def has_tag(self, tag: str) -> bool:
        return tag in self._tags

    def tagged_abstracts(self, tag: str) -> List[Any]:
        return list(self._tags.get(tag, ()))

    # Method bindings

    def set_method_binding(self, method: str, callback: Callable[..., Any]) -> None:
        self._method_bindings[method] = callback

    def get_method_binding(self, method: str) -> Optional[Callable[..., Any]]:
        return self._method_bindings.get(method)

    # Attribute-binding discovery

    def mark_checked_for_attribute_bindings(self, abstract: Any) -> bool:
        """Mark the abstract as inspected; return whether it already was."""
        if abstract in self._checked_for_attribute_bindings:
            return True
        self._checked_for_attribute_bindings.add(abstract)
        return False

    def copy_from(self, other: "BindingRegistry") -> None:
        """Copy another registry's configuration and shared instances.

        Scoped instances and resolved flags stay behind.
        """
        self._bindings = dict(other._bindings)
        self._instances = dict(other._instances)
        self._scoped = list(other._scoped)
        self._aliases = dict(other._aliases)
        self._abstract_aliases = {key: list(value) for key, value in other._abstract_aliases.items()}
        self._contextual = {key: dict(value) for key, value in other._contextual.items()}
        self._contextual_attributes = dict(other._contextual_attributes)
        self._extenders = {key: list(value) for key, value in other._extenders.items()}
        self._tags = {key: list(value) for key, value in other._tags.items()}
        self._method_bindings = dict(other._method_bindings)

    def flush(self) -> None:
        """Clear bindings, instances, aliases, scoped markers and discovery flags."""
        self._bindings.clear()
        self._instances.clear()
        self._scoped_instances.set(None)
        self._scoped.clear()
        self._resolved.clear()
        self._aliases.clear()
        self._abstract_aliases.clear()
        self._checked_for_attribute_bindings.clear()
