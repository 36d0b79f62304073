"""Application layer - Resolution callback pipeline."""

import inspect
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

from servicegraph.domain import ContextualAttribute

if TYPE_CHECKING:
    from servicegraph.domain.interfaces import IContainer

Callback = Callable[..., Any]


class CallbackPipeline:
    """Ordered hooks fired by the resolution engine.

    Hooks are either global or keyed by type. ``before_resolving`` hooks keyed by
    a type match the requested abstract or any subclass of it; ``resolving`` and
    ``after_resolving`` hooks match the abstract or any instance of the type.

    Attributes:
        _global_before: Hooks called before every resolution.
        _global_resolving: Hooks called with every resolved object.
        _global_after: Hooks called after every ``resolving`` hook.
        _before: Type-keyed ``before_resolving`` hooks.
        _resolving: Type-keyed ``resolving`` hooks.
        _after: Type-keyed ``after_resolving`` hooks.
        _after_attribute: Hooks keyed by attribute type.
        _rebound: Hooks called when an abstract is re-registered.
    """

    def __init__(self) -> None:
        self._global_before: List[Callback] = []
        self._global_resolving: List[Callback] = []
        self._global_after: List[Callback] = []
        self._before: Dict[Any, List[Callback]] = {}
        self._resolving: Dict[Any, List[Callback]] = {}
        self._after: Dict[Any, List[Callback]] = {}
        self._after_attribute: Dict[type, List[Callback]] = {}
        self._rebound: Dict[Any, List[Callback]] = {}

    def add_before_resolving(self, abstract: Optional[Any], callback: Callback) -> None:
        if abstract is None:
            self._global_before.append(callback)
        else:
            self._before.setdefault(abstract, []).append(callback)

    def add_resolving(self, abstract: Optional[Any], callback: Callback) -> None:
        if abstract is None:
            self._global_resolving.append(callback)
        else:
            self._resolving.setdefault(abstract, []).append(callback)

    def add_after_resolving(self, abstract: Optional[Any], callback: Callback) -> None:
        if abstract is None:
            self._global_after.append(callback)
        else:
            self._after.setdefault(abstract, []).append(callback)

    def add_after_resolving_attribute(self, attribute: type, callback: Callback) -> None:
        self._after_attribute.setdefault(attribute, []).append(callback)

    def add_rebound(self, abstract: Any, callback: Callback) -> None:
        self._rebound.setdefault(abstract, []).append(callback)

    def rebound_callbacks(self, abstract: Any) -> List[Callback]:
        return list(self._rebound.get(abstract, ()))

    def fire_before_resolving(self, abstract: Any, parameters: Dict[Any, Any], container: "IContainer") -> None:
        """Fire global, then type-matching, ``before_resolving`` hooks."""
        for callback in self._global_before:
            callback(abstract, parameters, container)

        for key, callbacks in list(self._before.items()):
            if key == abstract or _is_subclass(abstract, key):
                for callback in callbacks:
                    callback(abstract, parameters, container)

    def fire_resolving(self, abstract: Any, instance: Any, container: "IContainer") -> None:
        """Fire ``resolving`` hooks, then ``after_resolving`` hooks."""
        self._fire(instance, self._global_resolving, container)
        self._fire(instance, self._callbacks_for_type(abstract, instance, self._resolving), container)
        self.fire_after_resolving(abstract, instance, container)

    def fire_after_resolving(self, abstract: Any, instance: Any, container: "IContainer") -> None:
        self._fire(instance, self._global_after, container)
        self._fire(instance, self._callbacks_for_type(abstract, instance, self._after), container)

    def fire_after_resolving_attribute(self, attributes: Iterable[Any], instance: Any, container: "IContainer") -> None:
        """Fire the hooks registered for each attribute attached to a class or parameter.

        Contextual attributes get their own ``after`` hook first.
        """
        for attribute in attributes:
            if isinstance(attribute, ContextualAttribute):
                attribute.after(instance, container)

            for attribute_type, callbacks in list(self._after_attribute.items()):
                if isinstance(attribute, attribute_type):
                    for callback in callbacks:
                        callback(attribute, instance, container)

    @staticmethod
    def _callbacks_for_type(abstract: Any, instance: Any, callbacks_per_type: Dict[Any, List[Callback]]) -> List[Callback]:
        results: List[Callback] = []
        for key, callbacks in list(callbacks_per_type.items()):
            if key == abstract or (inspect.isclass(key) and isinstance(instance, key)):
                results.extend(callbacks)
        return results

    @staticmethod
    def _fire(instance: Any, callbacks: Iterable[Callback], container: "IContainer") -> None:
        for callback in callbacks:
            callback(instance, container)


def _is_subclass(candidate: Any, parent: Any) -> bool:
    return inspect.isclass(candidate) and inspect.isclass(parent) and issubclass(candidate, parent)
