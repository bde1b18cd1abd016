"""Tests for the bleak radio adapter."""

import asyncio
from types import SimpleNamespace

import pytest

import scanner
from device_memory import DeviceMemory
from scan_scheduler import ScanWindowScheduler
from scanner import BleakRadio


class StubBleakScanner:
    """Stands in for BleakScanner; records the listening flag seen at start."""

    def __init__(self, callback, **kwargs):
        self.callback = callback
        self.kwargs = kwargs
        self.fail_start = False
        self.owner = None
        self.listening_at_start = None

    async def start(self):
        self.listening_at_start = self.owner.listening if self.owner else None
        if self.fail_start:
            raise OSError("org.bluez.Error.NotReady")

    async def stop(self):
        pass


@pytest.fixture
def stub_bleak(monkeypatch):
    monkeypatch.setattr(scanner, "BleakScanner", StubBleakScanner)


def create_detection(address="AA:BB:CC:DD:EE:FF"):
    device = SimpleNamespace(address=address, name=None, details={"props": {}})
    data = SimpleNamespace(local_name="iPhone", manufacturer_data={}, service_uuids=[], tx_power=None, rssi=-60)
    return device, data


class TestDetectionCallback:

    def test_enqueues_while_listening(self, stub_bleak):
        queue = asyncio.Queue()
        radio = BleakRadio(queue)
        radio.listening = True
        radio.detection_callback(*create_detection())
        assert queue.qsize() == 1
        assert queue.get_nowait().local_name == "iPhone"

    def test_ignored_when_not_listening(self, stub_bleak):
        queue = asyncio.Queue()
        radio = BleakRadio(queue)
        radio.detection_callback(*create_detection())
        assert queue.empty()
        assert radio.received == 0

    def test_full_queue_drops(self, stub_bleak):
        queue = asyncio.Queue(maxsize=1)
        radio = BleakRadio(queue)
        radio.listening = True
        radio.detection_callback(*create_detection("aa:00:00:00:00:01"))
        radio.detection_callback(*create_detection("aa:00:00:00:00:02"))
        assert radio.received == 2
        assert radio.dropped == 1
        assert queue.get_nowait().address == "aa:00:00:00:00:01"

    def test_adapter_passed_to_bleak(self, stub_bleak):
        radio = BleakRadio(asyncio.Queue(), adapter="hci1")
        assert radio._scanner.kwargs == {"adapter": "hci1"}


class TestStartListening:

    def test_listening_before_scanner_start(self, stub_bleak):
        radio = BleakRadio(asyncio.Queue())
        radio._scanner.owner = radio
        asyncio.run(radio.start_listening())
        assert radio._scanner.listening_at_start is True
        assert radio.listening

    def test_start_failure_clears_flag(self, stub_bleak):
        radio = BleakRadio(asyncio.Queue())
        radio._scanner.fail_start = True
        with pytest.raises(OSError):
            asyncio.run(radio.start_listening())
        assert radio.listening is False


class TestWatchReadiness:

    def test_suspends_and_resumes_scheduler(self, stub_bleak, monkeypatch):
        states = iter([True, False, False, True])
        monkeypatch.setattr(scanner, "adapter_ready", lambda adapter: next(states, True))

        async def scenario():
            radio = BleakRadio(asyncio.Queue())
            scheduler = ScanWindowScheduler(radio, DeviceMemory(30.0), period=10.0, window=1.0)
            seen = []
            notify = scheduler.set_radio_ready

            def record(ready):
                notify(ready)
                seen.append(scheduler.ready)

            scheduler.set_radio_ready = record
            stop = asyncio.Event()
            task = asyncio.create_task(radio.watch_readiness(scheduler, stop, interval=0.01))
            await asyncio.sleep(0.2)
            stop.set()
            await task
            return seen

        seen = asyncio.run(scenario())
        assert seen[:4] == [True, False, False, True]
        assert seen[-1] is True
