from enum import Enum


class Lifetime(str, Enum):
    """Defines how long a resolved instance lives inside the container.

    Attributes:
        TRANSIENT: New instance built on each resolution.
        SCOPED: Single instance per logical unit of work (e.g., one HTTP request),
            dropped by ``forget_scoped_instances``.
        SINGLETON: Single instance shared for the lifetime of the container.
    """

    TRANSIENT = "transient"
    SCOPED = "scoped"
    SINGLETON = "singleton"

    @property
    def shared(self) -> bool:
        """Whether instances with this lifetime are cached."""
        return self is not Lifetime.TRANSIENT

    def __str__(self) -> str:
        return self.value
