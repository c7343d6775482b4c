from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock


class FakeValve:
    """In-memory valve handle; gates let a test hold reads/writes in flight."""

    def __init__(
        self,
        address: str = "AA:BB:CC",
        *,
        current: float = 21.0,
        target: float = 19.0,
        serial: str = "SN-0001",
    ) -> None:
        self.address = address
        self.serial_number = None
        self.current = current
        self.target = target
        self._serial = serial

        self.write_gate: asyncio.Event | None = None
        self.target_read_gate: asyncio.Event | None = None
        self.disconnected_callback = None

        self.connect = AsyncMock()
        self.disconnect = AsyncMock()
        self.get_serial_number = AsyncMock(side_effect=self._read_serial)
        self.get_current_temperature = AsyncMock(side_effect=lambda: self.current)
        self.get_target_temperature = AsyncMock(side_effect=self._read_target)
        self.set_target_temperature = AsyncMock(side_effect=self._write_target)

    def _read_serial(self) -> str:
        self.serial_number = self._serial
        return self._serial

    async def _read_target(self) -> float:
        value = self.target
        if self.target_read_gate is not None:
            await self.target_read_gate.wait()
        return value

    async def _write_target(self, value: float) -> None:
        if self.write_gate is not None:
            await self.write_gate.wait()
        self.target = value

    def set_disconnected_callback(self, callback) -> None:
        self.disconnected_callback = callback


def mock_hass() -> Mock:
    """Home Assistant stand-in that runs background tasks on the current loop."""
    hass = Mock()
    hass.loop = asyncio.get_running_loop()
    hass.is_stopping = False
    hass.tasks = []

    def create_task(target, name, eager_start=True):
        task = asyncio.ensure_future(target)
        hass.tasks.append(task)
        return task

    hass.async_create_background_task = Mock(side_effect=create_task)
    return hass


async def drain(hass: Mock) -> None:
    """Wait for every background task started so far."""
    while hass.tasks:
        await hass.tasks.pop(0)


class FakeScanner:
    def __init__(self) -> None:
        self.subscribers = []
        self.started = 0
        self.released: list[str] = []
        self.async_disconnect_all = AsyncMock()

    def async_subscribe(self, on_valve):
        self.subscribers.append(on_valve)
        return Mock(name="unsubscribe")

    def async_start(self) -> None:
        self.started += 1

    def async_release(self, address: str) -> None:
        self.released.append(address)

    def emit(self, valve) -> None:
        for on_valve in list(self.subscribers):
            on_valve(valve)


async def wait_until(predicate, *, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
