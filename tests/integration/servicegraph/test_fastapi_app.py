"""Integration tests running a FastAPI application against the container."""

import itertools

import pytest

pytest.importorskip("fastapi")

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from servicegraph import Container, Scoped, Singleton
from servicegraph.infrastructure.fastapi_integration import (
    ScopedContainerMiddleware,
    create_fastapi_dependency,
    create_scoped_dependency,
    inject_dependencies,
)

_serials = itertools.count(1)


@Scoped()
class RequestContext:
    def __init__(self):
        self.serial = next(_serials)


@Singleton()
class Settings:
    def __init__(self):
        self.serial = next(_serials)


class Greeting:
    def __init__(self, context: RequestContext, settings: Settings):
        self.context = context
        self.settings = settings

    def render(self, name: str) -> str:
        return f"hello {name} #{self.context.serial}"


def build_app(container: Container) -> FastAPI:
    app = FastAPI()
    app.add_middleware(ScopedContainerMiddleware, container=container)

    @app.get("/context")
    def read_context(
        context: RequestContext = Depends(create_scoped_dependency(RequestContext)),
        greeting: Greeting = Depends(create_scoped_dependency(Greeting)),
        settings: Settings = Depends(create_fastapi_dependency(container, Settings)),
    ):
        return {
            "context": context.serial,
            "shared_within_request": greeting.context is context,
            "settings": settings.serial,
        }

    @app.get("/greet")
    @inject_dependencies(container, Greeting)
    async def greet(greeting: Greeting, name: str = "world"):
        return {"message": greeting.render(name)}

    return app


@pytest.fixture
def client():
    with TestClient(build_app(Container())) as client:
        yield client


class TestFastAPIApplication:
    """Requests flowing through the middleware and dependencies."""

    def test_scoped_instance_shared_within_request(self, client):
        response = client.get("/context")

        assert response.status_code == 200
        assert response.json()["shared_within_request"] is True

    def test_scoped_instance_differs_between_requests(self, client):
        first = client.get("/context").json()
        second = client.get("/context").json()

        assert first["context"] != second["context"]

    def test_singleton_shared_between_requests(self, client):
        first = client.get("/context").json()
        second = client.get("/context").json()

        assert first["settings"] == second["settings"]

    def test_injected_endpoint(self, client):
        response = client.get("/greet", params={"name": "ada"})

        assert response.status_code == 200
        assert response.json()["message"].startswith("hello ada #")

    def test_injected_parameters_are_not_query_parameters(self, client):
        response = client.get("/greet")

        assert response.status_code == 200
        assert response.json()["message"].startswith("hello world #")
