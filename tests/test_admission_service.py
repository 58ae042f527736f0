"""Unit tests for the admission engine."""

from unittest.mock import AsyncMock, Mock

import pytest

from app.adapters.rate_limit.base import CounterResult
from app.adapters.rate_limit.in_memory import InMemoryCounterBackend
from app.core.errors import ValidationAppError
from app.services.admission_service import AdmissionDecision, AdmissionService


def _stub_backend(count: int, ttl: int) -> Mock:
    backend = Mock()
    backend.increment = AsyncMock(return_value=CounterResult(count=count, ttl_seconds=ttl))
    return backend


@pytest.mark.asyncio
async def test_six_back_to_back_checks() -> None:
    service = AdmissionService(InMemoryCounterBackend(clock=Mock(return_value=1000.0)))

    decisions = [await service.check("test-user", 5, 10) for _ in range(6)]

    assert [d.allowed for d in decisions] == [True] * 5 + [False]
    assert [d.remaining for d in decisions[:5]] == [4, 3, 2, 1, 0]
    assert decisions[5].count == 6
    assert 0 <= decisions[5].retry_after <= 10


@pytest.mark.asyncio
async def test_key_is_namespaced() -> None:
    backend = _stub_backend(1, 60)
    service = AdmissionService(backend)

    await service.check("user-1", 10, 60)

    backend.increment.assert_awaited_once_with("rl:user-1", 10, 60)


@pytest.mark.asyncio
async def test_custom_prefix() -> None:
    backend = _stub_backend(1, 60)
    service = AdmissionService(backend, key_prefix="quota:")

    await service.check("user-1", 10, 60)

    backend.increment.assert_awaited_once_with("quota:user-1", 10, 60)


@pytest.mark.asyncio
async def test_defaults_applied() -> None:
    backend = _stub_backend(1, 60)
    service = AdmissionService(backend)

    decision = await service.check("k")

    backend.increment.assert_awaited_once_with("rl:k", 100, 60)
    assert decision.remaining == 99


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [1, 50, 99, 100])
async def test_allowed_when_count_within_limit(count: int) -> None:
    service = AdmissionService(_stub_backend(count, 30))

    decision = await service.check("k", 100, 60)

    assert decision.allowed is True
    assert decision.remaining == 100 - count
    assert decision.remaining >= 0
    assert decision.retry_after is None


@pytest.mark.asyncio
@pytest.mark.parametrize("count,ttl", [(101, 30), (500, 1), (101, 0)])
async def test_denied_when_count_over_limit(count: int, ttl: int) -> None:
    service = AdmissionService(_stub_backend(count, ttl))

    decision = await service.check("k", 100, 60)

    assert decision.allowed is False
    assert decision.retry_after == ttl
    assert decision.remaining is None


@pytest.mark.asyncio
async def test_negative_ttl_never_reported() -> None:
    service = AdmissionService(_stub_backend(11, -1))

    decision = await service.check("k", 10, 60)

    assert decision.allowed is False
    assert decision.retry_after == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs,code",
    [
        ({"key": ""}, "invalid_key"),
        ({"key": "k", "points": 0}, "invalid_points"),
        ({"key": "k", "points": True}, "invalid_points"),
        ({"key": "k", "points": 2.5}, "invalid_points"),
        ({"key": "k", "duration": -1}, "invalid_duration"),
    ],
)
async def test_rejects_malformed_input(kwargs: dict, code: str) -> None:
    backend = _stub_backend(1, 60)
    service = AdmissionService(backend)

    with pytest.raises(ValidationAppError) as exc_info:
        await service.check(**kwargs)

    assert exc_info.value.code == code
    backend.increment.assert_not_awaited()


def test_decision_constructors() -> None:
    allow = AdmissionDecision.allow(limit=5, count=5)
    deny = AdmissionDecision.deny(limit=5, count=6, ttl=4)

    assert (allow.allowed, allow.remaining) == (True, 0)
    assert (deny.allowed, deny.retry_after) == (False, 4)
