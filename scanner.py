#!/usr/bin/env python3
"""
BLE phone scanner: radio source, sighting pipeline and run loop.

    BleakScanner callback -> asyncio.Queue -> SightingPipeline -> SightingSink

The callback only converts and enqueues. One consumer task processes events
in arrival order: fingerprint, device memory, ignore list, phone classifier,
then the sighting goes to the database writer thread.
"""
import asyncio
import logging
import signal
import subprocess
from datetime import datetime, timezone
from typing import Callable, Optional

from bleak import BleakScanner

import settings
from advertisement import Advertisement, from_bleak
from device_memory import DeviceMemory
from fingerprint import fingerprint
from ignore_list import IgnoreList, load_ignore_list
from phone_classifier import DEFAULT_NAME_PATTERNS, classify
from scan_scheduler import ScanWindowScheduler, wait_any
from storage import SightingRecord, SightingSink, StoreUnavailable, init_db

logger = logging.getLogger(__name__)


def adapter_ready(adapter: Optional[str]) -> bool:
    """True if BlueZ reports the adapter as powered."""
    cmd_input = f"select {adapter}\nshow\nquit\n" if adapter else "show\nquit\n"
    try:
        out = subprocess.check_output(
            ["bluetoothctl"], input=cmd_input.encode(), timeout=5,
            stderr=subprocess.DEVNULL,
        ).decode(errors="ignore")
    except FileNotFoundError:
        # no bluetoothctl (not BlueZ); let scan start errors tell us instead
        return True
    except (subprocess.SubprocessError, OSError):
        return False
    return "Powered: yes" in out


class BleakRadio:
    """Pushes decoded advertisements into a queue while listening."""

    def __init__(self, queue: asyncio.Queue, adapter: Optional[str] = None):
        self.queue = queue
        self.adapter = adapter or None
        self.listening = False
        self.received = 0
        self.dropped = 0

        scanner_kwargs = {}
        if self.adapter:
            scanner_kwargs["adapter"] = self.adapter  # e.g., "hci1"
        self._scanner = BleakScanner(self.detection_callback, **scanner_kwargs)

    def detection_callback(self, device, advertisement_data):
        """Called by bleak on each advertisement."""
        if not self.listening:
            return
        try:
            adv = from_bleak(device, advertisement_data)
        except Exception:
            logger.exception(f"Could not decode advertisement from {getattr(device, 'address', '?')}")
            return

        self.received += 1
        try:
            self.queue.put_nowait(adv)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(f"Event queue full, {self.dropped} advertisements dropped so far")

    async def start_listening(self) -> None:
        # callbacks can fire before start() returns
        self.listening = True
        try:
            await self._scanner.start()
        except BaseException:
            self.listening = False
            raise

    async def stop_listening(self) -> None:
        self.listening = False
        await self._scanner.stop()

    async def watch_readiness(self, scheduler: ScanWindowScheduler, stop_event: asyncio.Event,
                              interval: float) -> None:
        while not stop_event.is_set():
            ready = await asyncio.to_thread(adapter_ready, self.adapter)
            scheduler.set_radio_ready(ready)
            await wait_any(stop_event, timeout=interval)


class SightingPipeline:
    def __init__(self, memory: DeviceMemory, ignore: IgnoreList, sink: SightingSink,
                 name_patterns=DEFAULT_NAME_PATTERNS,
                 wallclock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.memory = memory
        self.ignore = ignore
        self.sink = sink
        self.name_patterns = name_patterns
        self._wallclock = wallclock

        self.processed = 0
        self.suppressed = 0
        self.ignored = 0
        self.phones = 0

    def process(self, adv: Advertisement) -> Optional[SightingRecord]:
        """Run one advertisement through the pipeline; returns the record sent to the sink."""
        self.processed += 1
        digest = fingerprint(adv)

        if not self.memory.should_process(digest, details=adv):
            self.suppressed += 1
            return None

        if self.ignore.is_ignored(adv.address):
            self.ignored += 1
            logger.debug(f"Ignoring device {adv.normalized_address} from ignore list.")
            return None

        result = classify(adv, self.name_patterns)
        if not result.is_phone:
            return None

        record = SightingRecord.from_advertisement(adv, digest, self._wallclock())
        self.phones += 1
        logger.info(
            f"Likely phone found ({result.reason.value}): address={adv.normalized_address} "
            f"type={adv.address_kind.value} name={adv.local_name or 'N/A'} "
            f"tx={adv.tx_power if adv.tx_power is not None else 'N/A'} "
            f"services={record.service_uuids or 'None'} "
            f"manufacturer={record.manufacturer_data or 'N/A'} rssi={adv.rssi} fp={digest}"
        )
        self.sink.submit(record)
        return record

    async def consume(self, queue: asyncio.Queue) -> None:
        while True:
            adv = await queue.get()
            try:
                self.process(adv)
            except Exception:
                logger.exception(f"Error processing advertisement from {getattr(adv, 'address', '?')}")
            finally:
                queue.task_done()


async def run(db_path: str = settings.DB_PATH,
              ignore_list_path: str = settings.IGNORE_LIST_FILE,
              adapter: Optional[str] = settings.BLEAK_DEVICE,
              period: float = settings.SCAN_PERIOD_SECONDS,
              window: float = settings.SCAN_WINDOW_SECONDS,
              horizon: float = settings.MEMORY_HORIZON_SECONDS,
              duration: Optional[float] = None,
              name_patterns=settings.PHONE_NAME_PATTERNS,
              grace: float = settings.SHUTDOWN_GRACE_SECONDS,
              radio_factory=BleakRadio,
              stop_event: Optional[asyncio.Event] = None) -> int:
    """Scan until signalled (or `duration` elapses). Returns the process exit code."""
    try:
        init_db(db_path)
        sink = SightingSink(db_path, max_queue=settings.WRITE_QUEUE_SIZE)
        sink.start()
    except StoreUnavailable as e:
        logger.critical(str(e))
        return 1

    ignore = load_ignore_list(ignore_list_path)
    memory = DeviceMemory(horizon)
    queue: asyncio.Queue = asyncio.Queue(maxsize=settings.EVENT_QUEUE_SIZE)
    radio = radio_factory(queue, adapter)
    scheduler = ScanWindowScheduler(radio, memory, period, window)
    pipeline = SightingPipeline(memory, ignore, sink, name_patterns)

    stop_event = stop_event or asyncio.Event()

    def handle_signal(*_):
        # Trigger graceful stop on Ctrl+C / kill
        if not stop_event.is_set():
            logger.info("Signal received, shutting down.")
            stop_event.set()

    loop = asyncio.get_running_loop()
    installed = []
    for s in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(s, handle_signal)
            installed.append(s)
        except (NotImplementedError, RuntimeError):
            # Windows or not on the main thread
            pass

    consumer = asyncio.create_task(pipeline.consume(queue), name="sighting-pipeline")
    scheduler_task = asyncio.create_task(scheduler.run(stop_event), name="scan-scheduler")
    watcher = None
    if hasattr(radio, "watch_readiness"):
        watcher = asyncio.create_task(
            radio.watch_readiness(scheduler, stop_event, settings.READINESS_POLL_SECONDS),
            name="adapter-readiness",
        )

    logger.info("Scanner initialised. Press Ctrl+C to stop.")
    try:
        if duration and duration > 0:
            await wait_any(stop_event, timeout=duration)
            stop_event.set()
        else:
            await stop_event.wait()
    finally:
        logger.info("Stopping scan and closing database...")
        stop_event.set()
        try:
            await scheduler_task
        except Exception:
            logger.exception("Scan scheduler failed")
        if watcher is not None:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)

        try:
            await asyncio.wait_for(queue.join(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(f"Shutdown: {queue.qsize()} advertisements left unprocessed")
        consumer.cancel()
        await asyncio.gather(consumer, return_exceptions=True)

        await asyncio.to_thread(sink.close, grace)
        for s in installed:
            loop.remove_signal_handler(s)

    logger.info(f"Scanner stopped. {scheduler.windows_opened} windows, {pipeline.processed} advertisements, "
                f"{pipeline.suppressed} suppressed, {pipeline.ignored} ignored, {pipeline.phones} phones")
    return 0
