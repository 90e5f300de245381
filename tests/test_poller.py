"""
Tests for the status poller.
Run with: pytest tests/test_poller.py
"""

import pytest

from conftest import ManualClock
from llamadeck.errors import TransportError
from llamadeck.models import ServiceConfig
from llamadeck.poller import POLL_INTERVAL, StatusPoller


@pytest.fixture
def clock():
    return ManualClock()


async def _start(controller):
    await controller.initialize(ServiceConfig())
    await controller.start()


@pytest.mark.asyncio
async def test_idle_while_stopped(controller, iface, clock):
    poller = StatusPoller(controller, clock=clock)
    await clock.advance(60)
    assert not poller.active
    assert iface.calls.count("get_status") == 0
    await poller.close()


@pytest.mark.asyncio
async def test_polls_every_interval_while_running(controller, iface, clock):
    """Polling starts on the running transition, one refresh per 5s."""
    poller = StatusPoller(controller, clock=clock)
    await _start(controller)
    assert POLL_INTERVAL == 5.0
    assert poller.active
    base = iface.calls.count("get_status")  # the refresh start() does itself

    await clock.advance(4)
    assert iface.calls.count("get_status") == base
    await clock.advance(1)
    assert iface.calls.count("get_status") == base + 1
    await clock.advance(10)
    assert iface.calls.count("get_status") == base + 3
    await poller.close()


@pytest.mark.asyncio
async def test_stops_when_service_goes_down(controller, iface, clock):
    """Remote stop is noticed on the next poll, after which polling ends."""
    poller = StatusPoller(controller, clock=clock)
    await _start(controller)

    iface.running = False
    await clock.advance(5)
    assert not controller.is_running
    assert not poller.active

    count = iface.calls.count("get_status")
    await clock.advance(30)
    assert iface.calls.count("get_status") == count
    assert clock.pending == 0
    await poller.close()


@pytest.mark.asyncio
async def test_stop_cancels_immediately(controller, iface, clock):
    poller = StatusPoller(controller, clock=clock)
    await _start(controller)
    await controller.stop()
    await clock.advance(0)

    assert not poller.active
    count = iface.calls.count("get_status")
    await clock.advance(20)
    assert iface.calls.count("get_status") == count


@pytest.mark.asyncio
async def test_failures_do_not_stop_or_slow_polling(controller, iface, clock):
    poller = StatusPoller(controller, clock=clock)
    await _start(controller)

    iface.status_error = TransportError("timeout")
    await clock.advance(5)
    assert controller.error == "timeout"
    assert poller.active

    await clock.advance(5)
    iface.status_error = None
    await clock.advance(5)
    assert controller.error is None
    assert poller.active
    await poller.close()


@pytest.mark.asyncio
async def test_restarts_on_next_running_transition(controller, iface, clock):
    poller = StatusPoller(controller, clock=clock)
    await _start(controller)
    await controller.stop()
    await controller.start()
    assert poller.active

    count = iface.calls.count("get_status")
    await clock.advance(5)
    assert iface.calls.count("get_status") == count + 1
    await poller.close()


@pytest.mark.asyncio
async def test_close_is_final(controller, iface, clock):
    poller = StatusPoller(controller, clock=clock)
    await _start(controller)
    await poller.close()
    assert not poller.active

    await controller.stop()
    await controller.start()
    assert not poller.active


@pytest.mark.asyncio
async def test_already_running_at_construction(controller, iface, clock):
    await _start(controller)
    poller = StatusPoller(controller, clock=clock)
    assert poller.active
    await poller.close()
