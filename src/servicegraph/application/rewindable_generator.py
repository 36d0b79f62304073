from typing import Callable, Generic, Iterable, Iterator, TypeVar, Union

T = TypeVar("T")


class RewindableGenerator(Iterable[T], Generic[T]):
    """Iterable that re-runs its producer on every pass.

    Used by ``Container.tagged`` so each iteration resolves the tag's services
    against the container's current bindings.

    Attributes:
        _generator: Zero-argument callable returning a fresh iterator.
        _count: Number of items, or a callable computing it on first use.

    Example:
        >>> services = RewindableGenerator(lambda: (make(a) for a in abstracts), len(abstracts))
        >>> first_pass = list(services)
        >>> second_pass = list(services)  # resolved again
    """

    def __init__(self, generator: Callable[[], Iterator[T]], count: Union[int, Callable[[], int]]) -> None:
        self._generator = generator
        self._count = count

    def __iter__(self) -> Iterator[T]:
        return iter(self._generator())

    def __len__(self) -> int:
        if callable(self._count):
            self._count = self._count()
        return self._count

    def count(self) -> int:
        """Number of items the producer yields."""
        return len(self)

    def is_empty(self) -> bool:
        return len(self) == 0
