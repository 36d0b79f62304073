import functools
import inspect
from typing import Any, Awaitable, Callable, TypeVar

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from servicegraph.application import Container

T = TypeVar("T")


def create_fastapi_dependency(container: Container, abstract: Any) -> Callable[[], Any]:
    """Create a FastAPI Depends() callable that resolves from the container.

    The resolved instance lifetime follows the binding in the container
    (transient, singleton or scoped).

    Args:
        container: The container to resolve dependencies from.
        abstract: The identifier to resolve when the dependency is called.

    Returns:
        A callable that FastAPI can use with Depends().

    Example:
        >>> container = Container()
        >>> container.singleton(UserRepository, SqlUserRepository)
        >>>
        >>> get_user_repo = create_fastapi_dependency(container, UserRepository)
        >>>
        >>> @app.get("/users")
        >>> async def list_users(repo: UserRepository = Depends(get_user_repo)):
        ...     return await repo.get_all()
    """

    def dependency() -> Any:
        """Resolve the dependency from the container."""
        return container.make(abstract)

    return dependency


def create_scoped_dependency(abstract: Any) -> Callable[[Request], Any]:
    """Create a FastAPI dependency that resolves from the request's container.

    Scoped bindings resolve to one instance per request. Requires the
    ScopedContainerMiddleware to be installed.

    Args:
        abstract: The identifier to resolve.

    Returns:
        A callable that resolves from the container attached to the request.

    Raises:
        RuntimeError: If the request carries no container.

    Example:
        >>> app.add_middleware(ScopedContainerMiddleware, container=container)
        >>>
        >>> get_request_context = create_scoped_dependency(RequestContext)
        >>>
        >>> @app.get("/process")
        >>> async def process_request(ctx: RequestContext = Depends(get_request_context)):
        ...     return {"request_id": ctx.request_id}
    """

    def scoped_dependency(request: Request) -> Any:
        """Resolve from the request's container."""
        if not hasattr(request.state, "container"):
            raise RuntimeError(
                "Request does not have a container. Did you forget to add ScopedContainerMiddleware?"
            )
        container: Container = request.state.container
        return container.make(abstract)

    return scoped_dependency


class ScopedContainerMiddleware(BaseHTTPMiddleware):
    """Middleware that gives every request its own scoped instances.

    Each request opens its own scope before reaching the endpoint, so
    concurrent requests never share scoped instances while dependencies of one
    request (including sync ones run in the threadpool) do. After each request,
    including failed ones, the scope is discarded.

    The container is accessible via `request.state.container`.

    Attributes:
        container: The application container.

    Example:
        >>> container = Container()
        >>> container.scoped(RequestContext)
        >>>
        >>> app = FastAPI()
        >>> app.add_middleware(ScopedContainerMiddleware, container=container)
        >>>
        >>> @app.get("/")
        >>> async def root(request: Request):
        ...     ctx = request.state.container.make(RequestContext)
        ...     return {"message": "Hello"}
    """

    def __init__(self, app: FastAPI, container: Container):
        """Initialize the middleware with the application container.

        Args:
            app: The FastAPI/Starlette application.
            container: The container shared by all requests.
        """
        super().__init__(app)
        self.container = container

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """Attach the container to the request and execute the endpoint.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or endpoint handler.

        Returns:
            The response from the endpoint.
        """
        request.state.container = self.container
        # Open an empty scope shared by every task and worker thread serving this request.
        self.container.forget_scoped_instances()

        try:
            response = await call_next(request)
            return response
        finally:
            # Discard the request scope
            self.container.forget_scoped_instances()


def inject_dependencies(container: Container, *abstracts: Any) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator that injects dependencies into an async endpoint function.

    Each abstract is resolved into the parameter at the same position, unless
    the caller already passed that argument.

    Args:
        container: The container to resolve dependencies from.
        *abstracts: Identifiers to resolve and inject.

    Returns:
        A decorator function.

    Example:
        >>> @app.get("/users")
        >>> @inject_dependencies(container, UserService, Logger)
        >>> async def list_users(user_service: UserService, logger: Logger):
        ...     logger.info("Listing users")
        ...     return await user_service.get_all()
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Wrap the function with dependency injection logic."""
        signature = inspect.signature(func)
        param_names = list(signature.parameters.keys())
        dependencies = [
            (name, create_fastapi_dependency(container, abstract)) for name, abstract in zip(param_names, abstracts)
        ]
        injected = {name for name, _ in dependencies}

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            """Resolve dependencies and call the original function."""
            for position, (param_name, dependency) in enumerate(dependencies):
                if param_name not in kwargs and position >= len(args):
                    kwargs[param_name] = dependency()

            return await func(*args, **kwargs)

        # FastAPI must only see the parameters it is expected to fill.
        wrapper.__signature__ = signature.replace(  # type: ignore[attr-defined]
            parameters=[parameter for parameter in signature.parameters.values() if parameter.name not in injected]
        )
        return wrapper

    return decorator
