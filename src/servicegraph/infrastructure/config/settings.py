import logging
from fnmatch import fnmatch
from typing import Callable, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from servicegraph.application import Container

logger = logging.getLogger(__name__)


class ContainerSettings(BaseSettings):
    """Container settings loaded from environment variables.

    Attributes:
        environment: Name of the running environment, matched against the
            environments declared by ``@Bind`` attributes.

    Example:
        >>> # SERVICEGRAPH_ENVIRONMENT=testing
        >>> ContainerSettings().environment
        'testing'
    """

    model_config = SettingsConfigDict(env_prefix="SERVICEGRAPH_", env_file=".env", case_sensitive=False, extra="ignore")

    environment: str = Field(default="production", description="Name of the running environment.")


def environment_resolver(settings: ContainerSettings) -> Callable[[List[str]], bool]:
    """Build the predicate used by ``Container.resolve_environment_using``.

    Patterns support shell-style wildcards (``"stag*"``).
    """

    def matches(environments: List[str]) -> bool:
        return any(fnmatch(settings.environment, pattern) for pattern in environments)

    return matches


def configure_environment(container: Container, settings: Optional[ContainerSettings] = None) -> ContainerSettings:
    """Wire environment-based ``@Bind`` selection into the container.

    The settings are also registered as a shared instance.

    Args:
        container: The container to configure.
        settings: Settings to use; read from the environment when omitted.

    Returns:
        The settings in use.
    """
    settings = settings or ContainerSettings()
    container.instance(ContainerSettings, settings)
    container.resolve_environment_using(environment_resolver(settings))
    logger.debug("Container environment set to %s", settings.environment)
    return settings
