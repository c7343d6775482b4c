from __future__ import annotations

import asyncio
import logging
import struct
from collections.abc import Callable
from typing import Optional, Protocol, Tuple

from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError
from bleak_retry_connector import BleakClientWithServiceCache, establish_connection

from .const import (
    DEFAULT_PIN,
    GATT_TIMEOUT,
    PIN_CHAR,
    SERIAL_NUMBER_CHAR,
    TEMPERATURE_CHAR,
    TEMPERATURE_PAYLOAD_LEN,
    UNCHANGED,
)

_LOGGER = logging.getLogger(__name__)


class ValveError(Exception):
    """Base error for radiator valve I/O."""


class ValveConnectionError(ValveError):
    """Raised when the valve cannot be reached or the link drops."""


class ValveReadError(ValveError):
    """Raised when reading a characteristic fails or returns garbage."""


class ValveWriteError(ValveError):
    """Raised when writing a characteristic fails."""


class ValveHandle(Protocol):
    """What the hub and coordinators need from a connected valve."""

    @property
    def address(self) -> str: ...

    @property
    def serial_number(self) -> Optional[str]: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def get_serial_number(self) -> str: ...

    async def get_current_temperature(self) -> float: ...

    async def get_target_temperature(self) -> float: ...

    async def set_target_temperature(self, value: float) -> None: ...

    def set_disconnected_callback(
        self, callback: Optional[Callable[["ValveHandle"], None]]
    ) -> None: ...


def parse_temperatures(p: bytes) -> Tuple[Optional[float], Optional[float]]:
    """Return (current, target) from a temperature payload, half-degree units."""
    if len(p) < 2:
        return (None, None)

    current = None if p[0] == UNCHANGED else p[0] / 2.0
    target = None if p[1] == UNCHANGED else p[1] / 2.0
    return (current, target)


def encode_target_temperature(value: float) -> bytes:
    raw = int(round(value * 2))
    if not 0 <= raw < UNCHANGED:
        raise ValueError(f"Target temperature out of range: {value}")
    payload = bytearray([UNCHANGED] * TEMPERATURE_PAYLOAD_LEN)
    payload[1] = raw
    return bytes(payload)


class RadiatorValve:
    """Connected radiator valve on top of bleak.

    Every GATT request goes through one lock: the valve only serves a single
    outstanding request per connection.
    """

    def __init__(self, ble_device: BLEDevice, *, pin: int = DEFAULT_PIN) -> None:
        self._ble_device = ble_device
        self._pin = pin

        self._client: BleakClient | None = None
        self._lock = asyncio.Lock()

        self._serial_number: Optional[str] = None
        self._disconnected_cb: Optional[Callable[[ValveHandle], None]] = None

    def __repr__(self) -> str:
        return f"RadiatorValve({self.address})"

    @property
    def address(self) -> str:
        return self._ble_device.address

    @property
    def serial_number(self) -> Optional[str]:
        return self._serial_number

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def set_disconnected_callback(
        self, callback: Optional[Callable[[ValveHandle], None]]
    ) -> None:
        self._disconnected_cb = callback

    def _on_disconnected(self, _client: BleakClient) -> None:
        _LOGGER.debug("%s disconnected by peer", self.address)
        self._client = None
        if self._disconnected_cb is not None:
            self._disconnected_cb(self)

    async def connect(self) -> None:
        async with self._lock:
            if self.is_connected:
                return
            try:
                self._client = await establish_connection(
                    BleakClientWithServiceCache,
                    self._ble_device,
                    self.address,
                    disconnected_callback=self._on_disconnected,
                    max_attempts=3,
                )
                await self._client.write_gatt_char(
                    PIN_CHAR, struct.pack("<I", self._pin), response=True
                )
            except (BleakError, TimeoutError) as exc:
                await self._disconnect_locked()
                raise ValveConnectionError(
                    f"Could not connect to {self.address}: {exc}"
                ) from exc

        _LOGGER.debug("%s connected", self.address)

    async def disconnect(self) -> None:
        async with self._lock:
            await self._disconnect_locked()

    async def _disconnect_locked(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except BleakError as exc:
            _LOGGER.debug("%s disconnect failed: %s", self.address, exc)

    async def _read(self, char: str) -> bytes:
        async with self._lock:
            if not self.is_connected:
                raise ValveConnectionError(f"{self.address} is not connected")
            assert self._client is not None
            try:
                async with asyncio.timeout(GATT_TIMEOUT):
                    return bytes(await self._client.read_gatt_char(char))
            except (BleakError, TimeoutError) as exc:
                raise ValveReadError(f"Reading {char} failed: {exc}") from exc

    async def _write(self, char: str, data: bytes) -> None:
        async with self._lock:
            if not self.is_connected:
                raise ValveConnectionError(f"{self.address} is not connected")
            assert self._client is not None
            try:
                async with asyncio.timeout(GATT_TIMEOUT):
                    await self._client.write_gatt_char(char, data, response=True)
            except (BleakError, TimeoutError) as exc:
                raise ValveWriteError(f"Writing {char} failed: {exc}") from exc

    async def get_serial_number(self) -> str:
        raw = await self._read(SERIAL_NUMBER_CHAR)
        serial = raw.decode("utf-8", errors="replace").strip("\x00 ")
        if not serial:
            raise ValveReadError(f"{self.address} reported an empty serial number")
        self._serial_number = serial
        return serial

    async def _read_temperatures(self) -> Tuple[Optional[float], Optional[float]]:
        payload = await self._read(TEMPERATURE_CHAR)
        if len(payload) != TEMPERATURE_PAYLOAD_LEN:
            raise ValveReadError(
                f"Unexpected temperature payload length {len(payload)}: {payload.hex()}"
            )
        return parse_temperatures(payload)

    async def get_current_temperature(self) -> float:
        current, _ = await self._read_temperatures()
        if current is None:
            raise ValveReadError(f"{self.address} did not report a current temperature")
        return current

    async def get_target_temperature(self) -> float:
        _, target = await self._read_temperatures()
        if target is None:
            raise ValveReadError(f"{self.address} did not report a target temperature")
        return target

    async def set_target_temperature(self, value: float) -> None:
        try:
            payload = encode_target_temperature(value)
        except ValueError as exc:
            raise ValveWriteError(str(exc)) from exc
        await self._write(TEMPERATURE_CHAR, payload)
