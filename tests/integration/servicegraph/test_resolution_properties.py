"""Integration tests for the container's resolution guarantees."""

from abc import ABC, abstractmethod

import pytest

from servicegraph import (
    AliasError,
    BindingResolutionError,
    CircularDependencyError,
    Container,
    EntryNotFoundError,
)


class Transport(ABC):
    @abstractmethod
    def send(self, message: str) -> None:
        pass


class SmtpTransport(Transport):
    def send(self, message: str) -> None:
        pass


class QueueTransport(Transport):
    def send(self, message: str) -> None:
        pass


class Notifier:
    def __init__(self, transport: Transport):
        self.transport = transport


class Digest:
    def __init__(self, transport: Transport, title: str = "daily"):
        self.transport = transport
        self.title = title


class Inbox:
    def __init__(self, outbox: "Outbox"):
        self.outbox = outbox


class Outbox:
    def __init__(self, archive: "Archive"):
        self.archive = archive


class Archive:
    def __init__(self, inbox: Inbox):
        self.inbox = inbox


class Broadcaster:
    def __init__(self, *transports: Transport):
        self.transports = transports


class Cache:
    pass


class RedisCache(Cache):
    pass


class MemoryCache(Cache):
    pass


class TestSingletonIdempotence:
    """Shared bindings always yield the same instance."""

    def test_repeated_make_returns_same_instance(self):
        container = Container()
        container.singleton(Transport, SmtpTransport)

        first = container.make(Transport)

        assert container.make(Transport) is first
        assert container.make(Notifier).transport is first

    def test_unrelated_bindings_keep_instance(self):
        container = Container()
        container.singleton(Transport, SmtpTransport)
        first = container.make(Transport)

        container.bind(Cache, RedisCache)
        container.singleton("mailer", lambda: object())
        container.alias("transport", Transport)

        assert container.make(Transport) is first
        assert container.make("transport") is first


class TestContextualPrecedence:
    """Contextual bindings apply only to their consumer."""

    def test_consumer_gets_contextual_implementation(self):
        container = Container()
        container.bind(Transport, SmtpTransport)
        container.when(Notifier).needs(Transport).give(QueueTransport)

        assert isinstance(container.make(Notifier).transport, QueueTransport)
        assert isinstance(container.make(Transport), SmtpTransport)
        assert isinstance(container.make(Digest).transport, SmtpTransport)

    def test_contextual_binding_ignores_shared_instance(self):
        container = Container()
        container.singleton(Transport, SmtpTransport)
        shared = container.make(Transport)
        container.when(Notifier).needs(Transport).give(QueueTransport)

        assert isinstance(container.make(Notifier).transport, QueueTransport)
        assert container.make(Transport) is shared

    def test_several_consumers(self):
        container = Container()
        container.when([Notifier, Digest]).needs(Transport).give(QueueTransport)

        assert isinstance(container.make(Notifier).transport, QueueTransport)
        assert isinstance(container.make(Digest).transport, QueueTransport)


class TestExplicitParameterPrecedence:
    """Explicit parameters beat every other source."""

    def test_named_parameter_beats_contextual_binding(self):
        container = Container()
        container.bind(Transport, SmtpTransport)
        container.when(Notifier).needs(Transport).give(QueueTransport)
        mine = SmtpTransport()

        assert container.make(Notifier, {"transport": mine}).transport is mine

    def test_named_parameter_beats_default(self):
        container = Container()
        container.bind(Transport, SmtpTransport)

        assert container.make(Digest, {"title": "weekly"}).title == "weekly"

    def test_parameters_apply_to_a_single_make(self):
        container = Container()
        container.bind(Transport, SmtpTransport)

        digest = container.make_with(Digest, {"title": "weekly"})

        assert digest.title == "weekly"
        assert container.make(Digest).title == "daily"


class TestCycleDetection:
    """Circular graphs fail fast."""

    def test_three_class_cycle(self):
        container = Container()

        with pytest.raises(CircularDependencyError) as exc_info:
            container.make(Inbox)

        assert exc_info.value.dependency_chain == [Inbox, Outbox, Archive, Inbox]
        assert "Inbox -> Outbox -> Archive -> Inbox" in str(exc_info.value)

    def test_container_usable_after_cycle(self):
        container = Container()
        container.bind(Transport, SmtpTransport)

        with pytest.raises(CircularDependencyError):
            container.make(Inbox)

        assert container.currently_resolving() is None
        assert isinstance(container.make(Notifier).transport, SmtpTransport)

    def test_get_passes_cycle_through(self):
        with pytest.raises(CircularDependencyError):
            Container().get(Inbox)


class TestAliases:
    """Alias chains resolve transitively and never loop."""

    def test_alias_transitivity(self):
        container = Container()
        container.alias("x", "y")
        container.alias("y", "z")
        container.bind("z", SmtpTransport)

        assert isinstance(container.make("x"), SmtpTransport)

    def test_self_alias_fails_at_registration(self):
        with pytest.raises(AliasError):
            Container().alias("x", "x")

    def test_alias_cycle_fails_on_resolution(self):
        container = Container()
        container.alias("x", "y")
        container.alias("y", "x")

        with pytest.raises(AliasError, match="cycle"):
            container.make("x")


class TestVariadicBestEffort:
    """Variadic class parameters degrade to empty, others throw."""

    def test_unresolvable_variadic_is_empty(self):
        assert Container().make(Broadcaster).transports == ()

    def test_unresolvable_single_parameter_throws(self):
        with pytest.raises(BindingResolutionError, match=r"Target \[Transport\] is not instantiable"):
            Container().make(Notifier)

    def test_bound_variadic_is_filled(self):
        container = Container()
        container.when(Broadcaster).needs(Transport).give([SmtpTransport, QueueTransport])

        transports = container.make(Broadcaster).transports

        assert [type(transport) for transport in transports] == [SmtpTransport, QueueTransport]


class TestRebinding:
    """Re-registering a resolved abstract notifies listeners."""

    def test_rebinding_receives_new_instance(self):
        container = Container()
        container.singleton(Cache, RedisCache)
        received = []

        current = container.rebinding(Cache, lambda c, instance: received.append(instance))
        container.singleton(Cache, MemoryCache)

        assert isinstance(current, RedisCache)
        assert len(received) == 1
        assert isinstance(received[0], MemoryCache)
        assert container.make(Cache) is received[0]

    def test_refresh_calls_target_method(self):
        class Consumer:
            def __init__(self):
                self.cache = None

            def set_cache(self, cache):
                self.cache = cache

        container = Container()
        container.singleton(Cache, RedisCache)
        consumer = Consumer()
        container.make(Cache)

        container.refresh(Cache, consumer, "set_cache")
        container.instance(Cache, MemoryCache())

        assert isinstance(consumer.cache, MemoryCache)

    def test_unresolved_abstract_does_not_fire(self):
        container = Container()
        received = []

        assert container.rebinding(Cache, lambda c, instance: received.append(instance)) is None

        container.bind(Cache, MemoryCache)

        assert received == []


class TestFlushIsolation:
    """flush() resets every registration."""

    def test_bindings_are_forgotten(self):
        container = Container()
        container.singleton(Transport, SmtpTransport)
        container.bind("cache", RedisCache)
        container.alias("mailer", Transport)

        container.flush()

        assert not container.bound(Transport)
        assert not container.bound("cache")
        assert not container.bound("mailer")

    def test_singletons_are_rebuilt(self):
        container = Container()
        container.singleton(Cache)
        first = container.make(Cache)

        container.flush()

        assert container.make(Cache) is not first

    def test_get_after_flush_reports_not_found(self):
        container = Container()
        container.bind("redis-cache", RedisCache)
        container.flush()

        with pytest.raises(EntryNotFoundError):
            container.get("redis-cache")
