"""Shared fixtures for scanner tests."""

import pytest

from advertisement import Advertisement, AddressKind


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_adv():
    """Factory for advertisements with sensible defaults."""

    def _make(address="AA:BB:CC:DD:EE:FF", rssi=-60, **kwargs):
        kwargs.setdefault("address_kind", AddressKind.PUBLIC)
        if "service_uuids" in kwargs:
            kwargs["service_uuids"] = frozenset(kwargs["service_uuids"])
        return Advertisement(address=address, rssi=rssi, **kwargs)

    return _make
