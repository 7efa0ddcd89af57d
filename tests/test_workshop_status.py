"""Tests for the workshop-status read-through cache."""

import asyncio

import pytest

from workshop_alerts.records import ProductionProject
from workshop_alerts.workshop_status import (
    WorkshopStatusCache,
    get_workshop_status_cache,
    set_workshop_status_cache,
)


class ProjectsFetch:
    def __init__(self, projects) -> None:
        self.projects = projects
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        projects = self.projects
        await asyncio.sleep(0.01)
        return projects


@pytest.fixture
def fetch():
    return ProjectsFetch([
        ProductionProject(id="p1", client_name="Ana García", status="IN_PROGRESS"),
        ProductionProject(id="p2", client_name="Luis", status="WAITING"),
        ProductionProject(id="p3", client_name="", status="SCHEDULED"),
    ])


async def test_lookup_is_case_insensitive(fetch, clock):
    cache = WorkshopStatusCache(fetch, clock=clock)
    assert await cache.get("ana garcía") == "IN_PROGRESS"
    assert await cache.get("  LUIS ") == "WAITING"
    assert await cache.get("Nadie") is None
    assert await cache.get("") is None


async def test_concurrent_callers_share_one_fetch(fetch, clock):
    cache = WorkshopStatusCache(fetch, clock=clock)
    results = await asyncio.gather(cache.get("Ana García"), cache.get("Luis"), cache.statuses())
    assert results[0] == "IN_PROGRESS"
    assert results[1] == "WAITING"
    assert fetch.calls == 1


async def test_ttl_expiry_refetches(fetch, clock):
    cache = WorkshopStatusCache(fetch, ttl=60, clock=clock)
    await cache.get("Luis")
    clock.advance(59)
    await cache.get("Luis")
    assert fetch.calls == 1

    clock.advance(2)
    await cache.get("Luis")
    assert fetch.calls == 2


async def test_invalidate_forces_refetch(fetch, clock):
    cache = WorkshopStatusCache(fetch, clock=clock)
    await cache.get("Luis")
    fetch.projects = [ProductionProject(id="p2", client_name="Luis", status="ON_HOLD")]
    cache.invalidate()
    assert await cache.get("Luis") == "ON_HOLD"
    assert fetch.calls == 2


async def test_invalidate_during_fetch_discards_stale_result(fetch, clock):
    cache = WorkshopStatusCache(fetch, clock=clock)
    first = asyncio.create_task(cache.get("Luis"))
    while fetch.calls == 0:
        await asyncio.sleep(0)

    fetch.projects = [ProductionProject(id="p2", client_name="Luis", status="ON_HOLD")]
    cache.invalidate()

    assert await first == "WAITING"
    assert await cache.get("Luis") == "ON_HOLD"
    assert fetch.calls == 2


async def test_fetch_error_is_not_cached(clock):
    calls = 0

    async def flaky():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("backend down")
        return [ProductionProject(id="p1", client_name="Ana", status="WAITING")]

    cache = WorkshopStatusCache(flaky, clock=clock)
    with pytest.raises(RuntimeError):
        await cache.get("Ana")
    assert await cache.get("Ana") == "WAITING"


def test_global_cache(fetch):
    cache = WorkshopStatusCache(fetch)
    set_workshop_status_cache(cache)
    assert get_workshop_status_cache() is cache
