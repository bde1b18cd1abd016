"""
Scan window scheduler.

Every `period` seconds the radio listens for `window` seconds, then goes
quiet to save power. Devices that only advertise while the radio is off are
never seen; that is the price of the duty cycle.

The device memory is swept each time a window closes.
"""
from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional

from device_memory import DeviceMemory

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


async def wait_any(*events: asyncio.Event, timeout: Optional[float] = None) -> None:
    """Return when any event is set or the timeout expires."""
    if not events:
        await asyncio.sleep(timeout or 0)
        return
    waiters = [asyncio.ensure_future(e.wait()) for e in events]
    try:
        await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for w in waiters:
            w.cancel()


class ScanWindowScheduler:
    def __init__(self, radio, memory: DeviceMemory, period: float, window: float,
                 clock: Callable[[], float] = time.monotonic, ready: bool = True):
        if period <= 0 or window <= 0:
            raise ValueError("period and window must be positive")
        if window >= period:
            logger.warning(f"Scan window ({window}s) is not shorter than the period ({period}s); "
                           "the radio will never be idle between windows")
        self.radio = radio
        self.memory = memory
        self.period = period
        self.window = window
        self._clock = clock

        self.state = ScanState.IDLE
        self.windows_opened = 0
        self.last_window_duration: Optional[float] = None
        self._opened_at: Optional[float] = None

        self._ready = asyncio.Event()
        self._not_ready = asyncio.Event()
        self._set_ready_events(ready)

    def _set_ready_events(self, ready: bool) -> None:
        if ready:
            self._not_ready.clear()
            self._ready.set()
        else:
            self._ready.clear()
            self._not_ready.set()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def set_radio_ready(self, ready: bool) -> None:
        """Radio readiness notification; not ready suspends scanning."""
        if ready == self.ready:
            return
        if ready:
            logger.info("Bluetooth adapter ready, resuming scan windows")
        else:
            logger.warning("Bluetooth adapter not ready, scan windows suspended")
        self._set_ready_events(ready)

    async def tick(self) -> bool:
        """Open a scan window. No-op if one is already open or the radio is not ready."""
        if self.state is ScanState.LISTENING:
            logger.debug("Period tick while still listening, skipped")
            return False
        if not self.ready:
            return False

        try:
            await self.radio.start_listening()
        except Exception as e:
            logger.error(f"Could not start BLE scan: {e}")
            self.set_radio_ready(False)
            return False

        self.state = ScanState.LISTENING
        self._opened_at = self._clock()
        self.windows_opened += 1
        logger.info("Starting BLE scan window...")
        return True

    async def close_window(self) -> bool:
        """Stop listening and forget stale devices. No-op when idle."""
        if self.state is not ScanState.LISTENING:
            return False

        try:
            await self.radio.stop_listening()
        except Exception as e:
            logger.warning(f"Error stopping BLE scan: {e}")

        self.state = ScanState.IDLE
        self.last_window_duration = self._clock() - self._opened_at
        self._opened_at = None

        removed = self.memory.sweep()
        logger.info(f"Scan window closed after {self.last_window_duration:.1f}s, "
                    f"forgot {removed} devices, remembering {len(self.memory)}")
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick at start + k*period. At most one window per period, never past its end."""
        period_start = self._clock()
        used_period: Optional[float] = None
        try:
            while not stop_event.is_set():
                if not self.ready:
                    await wait_any(stop_event, self._ready)
                    continue

                now = self._clock()
                if now >= period_start + self.period:
                    # skip missed ticks instead of bursting
                    period_start += ((now - period_start) // self.period) * self.period

                if used_period != period_start and await self.tick():
                    used_period = period_start
                    remaining = period_start + self.period - self._clock()
                    await wait_any(stop_event, self._not_ready, timeout=min(self.window, max(remaining, 0)))
                    await self.close_window()

                delay = period_start + self.period - self._clock()
                await wait_any(stop_event, self._not_ready, timeout=max(delay, 0))
        finally:
            await self.close_window()
