"""Unit tests for backend selection and per-call fallback."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from app.adapters.rate_limit.base import CounterResult, HealthEvent
from app.adapters.rate_limit.in_memory import InMemoryCounterBackend
from app.adapters.rate_limit.redis_backend import RedisCounterBackend
from app.core.errors import BackendAppError
from app.services.backend_manager import BackendManager


def _shared(outcome=None) -> Mock:
    shared = Mock()
    shared.name = "redis"
    shared.attempt = AsyncMock(return_value=outcome)
    shared.watch_connection = AsyncMock()
    shared.close = AsyncMock()
    return shared


def _redis_backend(*, script_error=None, ping_error=None) -> tuple[RedisCounterBackend, Mock]:
    client = Mock()
    client.register_script.return_value = AsyncMock(side_effect=script_error)
    client.ping = AsyncMock(side_effect=ping_error)
    client.aclose = AsyncMock()
    return RedisCounterBackend(client), client


def _failure() -> BackendAppError:
    return BackendAppError(
        code="shared_backend_unavailable",
        message="Shared counter backend is unreachable",
        details={"backend": "redis", "error_type": "ConnectionError"},
    )


@pytest.fixture
def local() -> InMemoryCounterBackend:
    return InMemoryCounterBackend(clock=Mock(return_value=1000.0))


def _connected_manager(local, shared) -> BackendManager:
    manager = BackendManager(local=local, shared=shared)
    manager.notify(HealthEvent.CONNECTED)
    manager.process_pending_events()
    return manager


class TestHealthEvents:
    """Test health flag updates from lifecycle events."""

    def test_starts_disconnected(self, local) -> None:
        assert BackendManager(local=local, shared=_shared()).connected is False

    def test_subscribes_to_shared_backend(self, local) -> None:
        shared = _shared()
        manager = BackendManager(local=local, shared=shared)

        shared.subscribe.assert_called_once_with(manager.notify)

    def test_events_applied_in_order(self, local) -> None:
        manager = BackendManager(local=local, shared=_shared())

        manager.notify(HealthEvent.CONNECTED)
        assert manager.connected is False  # queued, not yet applied
        assert manager.process_pending_events() == 1
        assert manager.connected is True

        manager.notify(HealthEvent.ERROR)
        manager.process_pending_events()
        assert manager.connected is False

        manager.notify(HealthEvent.CONNECTED)
        manager.notify(HealthEvent.CLOSED)
        manager.process_pending_events()
        assert manager.connected is False


class TestRouting:
    """Test per-call backend selection."""

    @pytest.mark.asyncio
    async def test_uses_shared_when_connected(self, local) -> None:
        shared = _shared(CounterResult(count=7, ttl_seconds=30))
        manager = _connected_manager(local, shared)

        result = await manager.increment("rl:k", 10, 60)

        assert result == CounterResult(count=7, ttl_seconds=30)
        shared.attempt.assert_awaited_once_with("rl:k", 10, 60)
        assert local.size() == 0

    @pytest.mark.asyncio
    async def test_skips_shared_when_disconnected(self, local) -> None:
        shared = _shared(CounterResult(count=7, ttl_seconds=30))
        manager = BackendManager(local=local, shared=shared)

        result = await manager.increment("rl:k", 10, 60)

        assert result == CounterResult(count=1, ttl_seconds=60)
        shared.attempt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_local_only_without_shared_backend(self, local) -> None:
        manager = BackendManager(local=local)
        manager.notify(HealthEvent.CONNECTED)
        manager.process_pending_events()

        result = await manager.increment("rl:k", 10, 60)

        assert result.count == 1

    @pytest.mark.asyncio
    async def test_falls_back_for_failed_call_only(self, local) -> None:
        shared = _shared()
        outcomes = iter([_failure(), CounterResult(count=1, ttl_seconds=60)])
        # Failures are returned as values, not raised
        shared.attempt.side_effect = lambda *args: next(outcomes)
        manager = _connected_manager(local, shared)

        fallback = await manager.increment("rl:k", 10, 60)
        recovered = await manager.increment("rl:k", 10, 60)

        assert fallback == CounterResult(count=1, ttl_seconds=60)
        assert local.get("rl:k").count == 1
        # Shared backend attempted again on the next call
        assert recovered == CounterResult(count=1, ttl_seconds=60)
        assert shared.attempt.await_count == 2
        assert local.get("rl:k").count == 1

    @pytest.mark.asyncio
    async def test_shared_always_failing_behaves_like_local(self, local) -> None:
        """Every call served from memory with normal fixed-window results."""
        shared = _shared(_failure())
        manager = _connected_manager(local, shared)

        results = [await manager.increment("rl:test-user", 5, 10) for _ in range(6)]

        assert [r.count for r in results] == [1, 2, 3, 4, 5, 6]
        assert all(0 <= r.ttl_seconds <= 10 for r in results)
        assert shared.attempt.await_count == 6


    @pytest.mark.asyncio
    async def test_unexpected_redis_error_falls_back(self, local) -> None:
        shared, _ = _redis_backend(script_error=RuntimeError("attached to a different loop"))
        manager = _connected_manager(local, shared)

        result = await manager.increment("rl:k", 5, 10)

        assert result == CounterResult(count=1, ttl_seconds=10)
        assert local.get("rl:k").count == 1


class TestLifecycle:
    """Test background task management."""

    @pytest.mark.asyncio
    async def test_stop_closes_client_after_ping_errors(self, local) -> None:
        shared, client = _redis_backend(ping_error=RuntimeError("boom"))
        manager = BackendManager(local=local, shared=shared)

        await manager.start()
        await asyncio.sleep(0.01)
        await manager.stop()

        client.aclose.assert_awaited_once()
        assert manager.connected is False

    @pytest.mark.asyncio
    async def test_stop_survives_failed_task(self, local) -> None:
        shared = _shared()
        shared.watch_connection.side_effect = RuntimeError("boom")
        manager = BackendManager(local=local, shared=shared)

        await manager.start()
        await asyncio.sleep(0)
        await manager.stop()

        shared.close.assert_awaited_once()
        assert manager._tasks == []

    @pytest.mark.asyncio
    async def test_start_and_stop(self, local) -> None:
        shared = _shared()
        manager = BackendManager(local=local, shared=shared, sweep_interval_seconds=0.01)

        await manager.start()
        await asyncio.sleep(0)
        shared.watch_connection.assert_awaited_once()

        await manager.stop()
        shared.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_loop_applies_events(self, local) -> None:
        manager = BackendManager(local=local, shared=_shared())
        await manager.start()
        try:
            manager.notify(HealthEvent.CONNECTED)
            for _ in range(10):
                await asyncio.sleep(0)
                if manager.connected:
                    break
            assert manager.connected is True
        finally:
            await manager.stop()

    @pytest.mark.asyncio
    async def test_sweep_loop_removes_expired(self) -> None:
        clock = Mock(return_value=1000.0)
        local = InMemoryCounterBackend(clock=clock)
        local.increment_sync("rl:k", 1)
        clock.return_value = 1002.0

        manager = BackendManager(local=local, sweep_interval_seconds=0.01)
        await manager.start()
        try:
            for _ in range(50):
                await asyncio.sleep(0.01)
                if local.size() == 0:
                    break
            assert local.size() == 0
        finally:
            await manager.stop()

    def test_snapshot(self, local) -> None:
        local.increment_sync("rl:a", 60)
        manager = BackendManager(local=local)

        snapshot = manager.snapshot()

        assert snapshot.shared_configured is False
        assert snapshot.connected is False
        assert snapshot.local_store_size == 1
