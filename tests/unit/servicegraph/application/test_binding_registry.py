"""Unit tests for BindingRegistry."""

import asyncio

import pytest

from servicegraph.application.binding_registry import BindingRegistry
from servicegraph.domain import AliasError, Binding, Lifetime


class Mailer:
    pass


class Consumer:
    pass


class TestBindings:
    """Test cases for binding storage."""

    def test_set_and_get_binding(self):
        registry = BindingRegistry()
        binding = Binding(abstract=Mailer, concrete=lambda: Mailer())

        registry.set_binding(binding)

        assert registry.has_binding(Mailer)
        assert registry.get_binding(Mailer) is binding

    def test_bindings_returns_copy(self):
        registry = BindingRegistry()
        registry.set_binding(Binding(abstract="a", concrete=lambda: 1))

        registry.bindings().clear()

        assert registry.has_binding("a")

    def test_forget_drops_binding_instance_and_resolved_flag(self):
        registry = BindingRegistry()
        registry.set_binding(Binding(abstract="a", concrete=lambda: 1, lifetime=Lifetime.SINGLETON))
        registry.set_instance("a", 1)
        registry.mark_resolved("a")

        registry.forget("a")

        assert not registry.has_binding("a")
        assert not registry.has_instance("a")
        assert not registry.is_resolved("a")


class TestInstances:
    """Test cases for shared and scoped instances."""

    def test_singleton_instance(self):
        registry = BindingRegistry()
        mailer = Mailer()

        registry.set_instance(Mailer, mailer)

        assert registry.has_instance(Mailer)
        assert registry.get_instance(Mailer) is mailer

    def test_forget_instance(self):
        registry = BindingRegistry()
        registry.set_instance(Mailer, Mailer())

        registry.forget_instance(Mailer)

        assert not registry.has_instance(Mailer)

    def test_forget_instances_clears_all(self):
        registry = BindingRegistry()
        registry.mark_scoped("request")
        registry.set_instance("request", object())
        registry.set_instance(Mailer, Mailer())

        registry.forget_instances()

        assert not registry.has_instance("request")
        assert not registry.has_instance(Mailer)

    def test_forget_scoped_instances_keeps_singletons(self):
        registry = BindingRegistry()
        registry.mark_scoped("request")
        registry.set_instance("request", object())
        registry.set_instance(Mailer, Mailer())

        registry.forget_scoped_instances()

        assert not registry.has_instance("request")
        assert registry.has_instance(Mailer)

    def test_mark_scoped_is_idempotent(self):
        registry = BindingRegistry()

        registry.mark_scoped("request")
        registry.mark_scoped("request")

        assert registry.is_scoped("request")
        assert registry._scoped == ["request"]

    @pytest.mark.asyncio
    async def test_scoped_instances_are_task_local(self):
        registry = BindingRegistry()
        registry.mark_scoped("request")

        async def store(value):
            registry.set_instance("request", value)
            await asyncio.sleep(0.01)
            return registry.get_instance("request")

        results = await asyncio.gather(store("first"), store("second"))

        assert results == ["first", "second"]
        assert not registry.has_instance("request")

    @pytest.mark.asyncio
    async def test_tasks_started_inside_a_scope_share_it(self):
        registry = BindingRegistry()
        registry.mark_scoped("request")
        registry.forget_scoped_instances()

        async def store():
            registry.set_instance("request", "child")

        await asyncio.gather(store())

        assert registry.get_instance("request") == "child"

    def test_forget_scoped_instances_opens_new_scope(self):
        registry = BindingRegistry()
        registry.mark_scoped("request")
        registry.set_instance("request", "first")

        registry.forget_scoped_instances()

        assert not registry.has_instance("request")

    def test_drop_stale_instances_removes_alias(self):
        registry = BindingRegistry()
        registry.add_alias("mail", Mailer)
        registry.set_instance("mail", Mailer())

        registry.drop_stale_instances("mail")

        assert not registry.has_instance("mail")
        assert not registry.is_alias("mail")


class TestAliases:
    """Test cases for alias canonicalization."""

    def test_alias_chain_is_followed(self):
        registry = BindingRegistry()
        registry.add_alias("x", "y")
        registry.add_alias("y", "z")

        assert registry.get_alias("x") == "z"
        assert registry.get_alias("z") == "z"

    def test_self_alias_raises(self):
        with pytest.raises(AliasError, match=r"\[x\] is aliased to itself."):
            BindingRegistry().add_alias("x", "x")

    def test_alias_cycle_raises(self):
        registry = BindingRegistry()
        registry.add_alias("a", "b")
        registry.add_alias("b", "a")

        with pytest.raises(AliasError, match="cycle"):
            registry.get_alias("a")

    def test_reverse_index(self):
        registry = BindingRegistry()
        registry.add_alias("mail", Mailer)
        registry.add_alias("mailer", Mailer)

        assert registry.aliases_of(Mailer) == ["mail", "mailer"]

    def test_realiasing_updates_reverse_index(self):
        registry = BindingRegistry()
        registry.add_alias("mail", Mailer)
        registry.add_alias("mail", Consumer)

        assert registry.aliases_of(Mailer) == []
        assert registry.aliases_of(Consumer) == ["mail"]

    def test_remove_alias(self):
        registry = BindingRegistry()
        registry.add_alias("mail", Mailer)

        registry.remove_alias("mail")

        assert not registry.is_alias("mail")


class TestContextualBindings:
    """Test cases for contextual overrides."""

    def test_add_and_find(self):
        registry = BindingRegistry()
        registry.add_contextual(Consumer, Mailer, "fake")

        assert registry.find_contextual(Consumer, Mailer) == "fake"
        assert registry.find_contextual(Consumer, "other") is None
        assert registry.find_contextual(Mailer, Mailer) is None

    def test_no_consumer(self):
        registry = BindingRegistry()
        registry.add_contextual(Consumer, Mailer, "fake")

        assert registry.find_contextual(None, Mailer) is None

    def test_attribute_handler_follows_mro(self):
        class Base:
            pass

        class Derived(Base):
            pass

        registry = BindingRegistry()
        handler = lambda attribute, container: None  # noqa: E731
        registry.set_attribute_handler(Base, handler)

        assert registry.attribute_handler(Derived()) is handler
        assert registry.attribute_handler(object()) is None


class TestExtendersAndTags:
    """Test cases for extenders and tags."""

    def test_extenders_in_order(self):
        registry = BindingRegistry()
        first = lambda instance, container: instance  # noqa: E731
        second = lambda instance, container: instance  # noqa: E731

        registry.add_extender(Mailer, first)
        registry.add_extender(Mailer, second)

        assert registry.extenders(Mailer) == [first, second]

        registry.forget_extenders(Mailer)

        assert registry.extenders(Mailer) == []

    def test_tags(self):
        registry = BindingRegistry()
        registry.add_tags([Mailer, Consumer], ["services"])
        registry.add_tags(["db"], ["services", "storage"])

        assert registry.has_tag("services")
        assert registry.tagged_abstracts("services") == [Mailer, Consumer, "db"]
        assert registry.tagged_abstracts("storage") == ["db"]
        assert registry.tagged_abstracts("missing") == []


class TestMethodBindingsAndDiscovery:
    """Test cases for method bindings and attribute-binding discovery flags."""

    def test_method_binding(self):
        registry = BindingRegistry()
        callback = lambda instance, container: "handled"  # noqa: E731

        registry.set_method_binding("module.Job@handle", callback)

        assert registry.get_method_binding("module.Job@handle") is callback
        assert registry.get_method_binding("module.Job@other") is None

    def test_checked_for_attribute_bindings(self):
        registry = BindingRegistry()

        assert registry.mark_checked_for_attribute_bindings(Mailer) is False
        assert registry.mark_checked_for_attribute_bindings(Mailer) is True


class TestCopyAndFlush:
    """Test cases for copying and flushing."""

    def test_copy_from_is_independent(self):
        parent = BindingRegistry()
        parent.set_binding(Binding(abstract="a", concrete=lambda: 1))
        parent.add_alias("alias", "a")
        parent.add_tags(["a"], ["tag"])
        parent.set_instance("shared", 1)
        parent.mark_resolved("a")

        child = BindingRegistry()
        child.copy_from(parent)
        child.add_tags(["b"], ["tag"])

        assert child.has_binding("a")
        assert child.get_alias("alias") == "a"
        assert child.get_instance("shared") == 1
        assert not child.is_resolved("a")
        assert parent.tagged_abstracts("tag") == ["a"]

    def test_flush(self):
        registry = BindingRegistry()
        registry.set_binding(Binding(abstract="a", concrete=lambda: 1))
        registry.set_instance("a", 1)
        registry.add_alias("alias", "a")
        registry.mark_resolved("a")
        registry.mark_scoped("s")
        registry.mark_checked_for_attribute_bindings(Mailer)

        registry.flush()

        assert not registry.has_binding("a")
        assert not registry.has_instance("a")
        assert not registry.is_alias("alias")
        assert not registry.is_resolved("a")
        assert not registry.is_scoped("s")
        assert registry.mark_checked_for_attribute_bindings(Mailer) is False
