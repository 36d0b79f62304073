"""Unit tests for ResolutionContext."""

import asyncio
import threading

import pytest

from servicegraph.application.resolution_context import ResolutionContext
from servicegraph.domain import CircularDependencyError


class ServiceA:
    pass


class ServiceB:
    pass


class TestBuildStack:
    """Test cases for the build stack."""

    def test_initially_empty(self):
        context = ResolutionContext()

        assert context.build_stack == ()
        assert context.current() is None

    def test_building_pushes_and_pops(self):
        context = ResolutionContext()

        with context.building(ServiceA):
            assert context.current() is ServiceA
            with context.building(ServiceB):
                assert context.build_stack == (ServiceA, ServiceB)
            assert context.build_stack == (ServiceA,)

        assert context.build_stack == ()

    def test_building_pops_on_exception(self):
        """Test that a failed build never leaves a stale frame."""
        context = ResolutionContext()

        with pytest.raises(RuntimeError):
            with context.building(ServiceA):
                raise RuntimeError("boom")

        assert context.build_stack == ()

    def test_is_building(self):
        context = ResolutionContext()

        with context.building(ServiceA):
            assert context.is_building(ServiceA)
            assert not context.is_building(ServiceB)

    def test_ensure_not_building_raises_with_chain(self):
        context = ResolutionContext()

        with context.building(ServiceA), context.building(ServiceB):
            with pytest.raises(CircularDependencyError) as exc_info:
                context.ensure_not_building(ServiceA)

        assert exc_info.value.dependency_chain == [ServiceA, ServiceB, ServiceA]

    def test_ensure_not_building_chain_starts_at_first_occurrence(self):
        context = ResolutionContext()

        with context.building("root"), context.building(ServiceA), context.building(ServiceB):
            with pytest.raises(CircularDependencyError) as exc_info:
                context.ensure_not_building(ServiceB)

        assert exc_info.value.dependency_chain == [ServiceB, ServiceB]

    def test_ensure_not_building_passes(self):
        context = ResolutionContext()

        with context.building(ServiceA):
            context.ensure_not_building(ServiceB)

    def test_clear(self):
        context = ResolutionContext()
        context._build_stack.set((ServiceA,))

        context.clear()

        assert context.build_stack == ()


class TestParameterStack:
    """Test cases for the parameter-override stack."""

    def test_no_override_is_empty_mapping(self):
        assert ResolutionContext().last_parameter_override() == {}

    def test_overriding_pushes_a_copy(self):
        context = ResolutionContext()
        parameters = {"name": "x"}

        with context.overriding(parameters) as frame:
            frame.pop("name")
            assert context.last_parameter_override() == {}

        assert parameters == {"name": "x"}

    def test_nested_frames(self):
        context = ResolutionContext()

        with context.overriding({"a": 1}):
            with context.overriding({"b": 2}):
                assert context.last_parameter_override() == {"b": 2}
            assert context.last_parameter_override() == {"a": 1}

        assert context.last_parameter_override() == {}

    def test_frame_popped_on_exception(self):
        context = ResolutionContext()

        with pytest.raises(ValueError):
            with context.overriding({"a": 1}):
                raise ValueError()

        assert context.last_parameter_override() == {}


class TestTaskLocality:
    """Test cases for per-task isolation of the stacks."""

    @pytest.mark.asyncio
    async def test_concurrent_tasks_see_their_own_stack(self):
        context = ResolutionContext()
        observed = {}

        async def build(name, concrete):
            with context.building(concrete):
                await asyncio.sleep(0.01)
                observed[name] = context.build_stack

        await asyncio.gather(build("a", ServiceA), build("b", ServiceB))

        assert observed == {"a": (ServiceA,), "b": (ServiceB,)}
        assert context.build_stack == ()

    def test_threads_see_their_own_stack(self):
        context = ResolutionContext()
        observed = []

        with context.building(ServiceA):
            thread = threading.Thread(target=lambda: observed.append(context.build_stack))
            thread.start()
            thread.join()

        assert observed == [()]
