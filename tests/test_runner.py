"""Tests for the periodic alerts runner."""

import asyncio

from workshop_alerts.alerts.runner import AlertsRunner


class FakeService:
    def __init__(self, fail: bool = False) -> None:
        self.calls = 0
        self.fail = fail
        self.called = asyncio.Event()

    async def refresh(self):
        self.calls += 1
        self.called.set()
        if self.fail:
            raise RuntimeError("refresh exploded")


async def test_first_refresh_runs_immediately():
    service = FakeService()
    runner = AlertsRunner(service, interval_minutes=60)
    await runner.start()
    try:
        await asyncio.wait_for(service.called.wait(), timeout=1)
        assert runner.running is True
    finally:
        await runner.stop()
    assert service.calls == 1
    assert runner.running is False


async def test_errors_do_not_stop_the_loop():
    service = FakeService(fail=True)
    runner = AlertsRunner(service, interval_minutes=0.001)
    await runner.start()
    try:
        for _ in range(50):
            if service.calls >= 2:
                break
            await asyncio.sleep(0.02)
    finally:
        await runner.stop()
    assert service.calls >= 2


async def test_start_twice_keeps_one_loop():
    service = FakeService()
    runner = AlertsRunner(service, interval_minutes=60)
    await runner.start()
    await runner.start()
    await asyncio.wait_for(service.called.wait(), timeout=1)
    await runner.stop()
    assert service.calls == 1


async def test_trigger_now():
    service = FakeService()
    runner = AlertsRunner(service)
    await runner.trigger_now()
    assert service.calls == 1
