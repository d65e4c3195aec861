"""Tests for the context carrier.

Tests cover:
- get_context() outside a call
- Access during the synchronous prefix, failure after the first suspension
- Sync handlers keep access for their whole body
- Isolation between concurrently interleaved calls
- Binding released after the call, whatever the outcome
"""

import asyncio

import pytest

from telecall.context import get_context, install, run_in_context
from telecall.errors import ContextAccessError


class TestInstall:
    """Binding and unbinding a context for the current task."""

    def test_no_context_installed(self):
        with pytest.raises(ContextAccessError, match="No context installed"):
            get_context()

    def test_install_exposes_same_object(self):
        ctx = {"user": "ada"}
        with install(ctx):
            assert get_context() is ctx

    def test_none_installs_empty_mapping(self):
        with install(None):
            assert get_context() == {}

    def test_binding_removed_after_block(self):
        with install({"user": "ada"}) as slot:
            pass
        assert slot.expired
        with pytest.raises(ContextAccessError, match="No context installed"):
            get_context()

    def test_nested_install_restores_outer(self):
        outer = {"user": "outer"}
        with install(outer):
            with install({"user": "inner"}):
                assert get_context()["user"] == "inner"
            assert get_context() is outer


class TestSynchronousPrefix:
    """Context is readable until the handler first suspends."""

    @pytest.mark.asyncio
    async def test_read_before_first_await(self):
        ctx = {"user": "ada"}

        async def handler():
            return get_context()

        assert await run_in_context(handler, [], ctx) is ctx

    @pytest.mark.asyncio
    async def test_read_after_suspension_fails(self):
        async def handler():
            get_context()
            await asyncio.sleep(0)
            try:
                get_context()
            except ContextAccessError as e:
                return str(e)
            return "read succeeded"

        message = await run_in_context(handler, [], {"user": "ada"})
        assert "after a suspension point" in message

    @pytest.mark.asyncio
    async def test_read_fails_after_many_suspensions(self):
        async def handler():
            for _ in range(5):
                await asyncio.sleep(0)
            get_context()

        with pytest.raises(ContextAccessError):
            await run_in_context(handler, [], {"user": "ada"})

    @pytest.mark.asyncio
    async def test_captured_value_survives_suspension(self):
        async def handler():
            user = get_context()["user"]
            await asyncio.sleep(0)
            return user

        assert await run_in_context(handler, [], {"user": "ada"}) == "ada"

    @pytest.mark.asyncio
    async def test_helper_called_in_prefix_can_read(self):
        def current_user():
            return get_context()["user"]

        async def handler():
            return current_user()

        assert await run_in_context(handler, [], {"user": "ada"}) == "ada"

    @pytest.mark.asyncio
    async def test_async_handler_without_suspension_keeps_access(self):
        async def handler():
            first = get_context()["user"]
            return first, get_context()["user"]

        assert await run_in_context(handler, [], {"user": "ada"}) == ("ada", "ada")

    @pytest.mark.asyncio
    async def test_sync_handler_keeps_access(self):
        def handler(a, b):
            return get_context()["user"], a + b

        assert await run_in_context(handler, [2, 3], {"user": "ada"}) == ("ada", 5)

    @pytest.mark.asyncio
    async def test_arguments_and_return_value_pass_through(self):
        async def handler(a, b):
            await asyncio.sleep(0)
            return a * b

        assert await run_in_context(handler, [6, 7], None) == 42

    @pytest.mark.asyncio
    async def test_exception_propagates_and_binding_released(self):
        async def handler():
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await run_in_context(handler, [], {"user": "ada"})

        with pytest.raises(ContextAccessError, match="No context installed"):
            get_context()

    @pytest.mark.asyncio
    async def test_cancellation_reaches_handler(self):
        started = asyncio.Event()
        cancelled = []

        async def handler():
            started.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        task = asyncio.create_task(run_in_context(handler, [], None))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert cancelled == [True]


class TestIsolation:
    """Concurrent calls never see each other's context."""

    @pytest.mark.asyncio
    async def test_interleaved_calls_see_own_context(self):
        """Two calls suspended at the same point never see each other's context."""
        gate = asyncio.Event()
        arrived = []

        async def handler(tag):
            seen_before = get_context()["user"]
            arrived.append(tag)
            if len(arrived) == 2:
                gate.set()
            await gate.wait()
            try:
                get_context()
                seen_after = "readable"
            except ContextAccessError:
                seen_after = "expired"
            return tag, seen_before, seen_after

        results = await asyncio.gather(
            run_in_context(handler, ["a"], {"user": "ada"}),
            run_in_context(handler, ["b"], {"user": "bob"}),
        )

        assert sorted(results) == [("a", "ada", "expired"), ("b", "bob", "expired")]

    @pytest.mark.asyncio
    async def test_task_started_in_prefix_cannot_read_later(self):
        """A task spawned during the prefix runs after the suspension and fails."""

        async def background():
            return get_context()

        async def handler():
            task = asyncio.create_task(background())
            await asyncio.sleep(0)
            with pytest.raises(ContextAccessError):
                await task
            return "ok"

        assert await run_in_context(handler, [], {"user": "ada"}) == "ok"
