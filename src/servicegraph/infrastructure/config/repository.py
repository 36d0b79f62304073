from typing import Any, Dict, Mapping, Optional

from servicegraph.domain import IConfigRepository

_MISSING = object()


class ConfigRepository(IConfigRepository):
    """Nested configuration values addressed with dot-notation keys.

    Bind it as ``"config"`` so that ``give_config`` and the ``Config``
    attribute can read from it.

    Attributes:
        _items: The nested configuration mapping.

    Example:
        >>> config = ConfigRepository({"database": {"host": "localhost"}})
        >>> config.get("database.host")
        'localhost'
        >>> container.instance("config", config)
    """

    def __init__(self, items: Optional[Mapping[str, Any]] = None) -> None:
        self._items: Dict[str, Any] = dict(items or {})

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def has(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def set(self, key: str, value: Any) -> None:
        """Set a value, creating intermediate mappings as needed."""
        *parents, last = key.split(".")
        target = self._items
        for segment in parents:
            child = target.get(segment)
            if not isinstance(child, dict):
                child = target[segment] = {}
            target = child
        target[last] = value

    def all(self) -> Dict[str, Any]:
        return self._items

    def _lookup(self, key: str) -> Any:
        if key in self._items:
            return self._items[key]

        value: Any = self._items
        for segment in key.split("."):
            if not isinstance(value, Mapping) or segment not in value:
                return _MISSING
            value = value[segment]
        return value

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return self.has(key)
