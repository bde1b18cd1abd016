"""
Decoded BLE advertisement as seen by the scanning pipeline.

bleak hands us a BLEDevice and an AdvertisementData per detection; this
module flattens both into one immutable Advertisement value so the rest of
the pipeline never touches bleak types.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Optional

# Lowest RSSI BlueZ reports; used when the driver gives none
RSSI_UNKNOWN = -127


class AddressKind(str, Enum):
    PUBLIC = "public"
    RANDOM = "random"


@dataclass(frozen=True)
class Advertisement:
    address: str
    rssi: int
    address_kind: AddressKind = AddressKind.PUBLIC
    connectable: bool = False
    local_name: Optional[str] = None
    tx_power: Optional[int] = None
    service_uuids: FrozenSet[str] = field(default_factory=frozenset)
    manufacturer_data: Optional[bytes] = None  # company id (LE) + payload
    source_id: str = ""

    @property
    def normalized_address(self) -> str:
        return self.address.lower()

    @property
    def company_id(self) -> Optional[int]:
        """Vendor ID from the first two bytes of manufacturer data."""
        if self.manufacturer_data is None or len(self.manufacturer_data) < 2:
            return None
        return int.from_bytes(self.manufacturer_data[:2], "little")


def _bluez_props(device: Any) -> dict:
    details = getattr(device, "details", None)
    if isinstance(details, dict):
        props = details.get("props")
        if isinstance(props, dict):
            return props
    return {}


def _source_id(device: Any) -> str:
    details = getattr(device, "details", None)
    if isinstance(details, dict) and details.get("path"):
        return str(details["path"])
    return str(getattr(device, "address", ""))


def _manufacturer_bytes(manufacturer_data: Optional[dict]) -> Optional[bytes]:
    # bleak strips the company id into the dict key; put it back in front
    if not manufacturer_data:
        return None
    company_id, payload = next(iter(manufacturer_data.items()))
    return (company_id & 0xFFFF).to_bytes(2, "little") + bytes(payload)


def from_bleak(device: Any, advertisement_data: Any) -> Advertisement:
    """Build an Advertisement from bleak detection callback arguments.

    BlueZ's Device1 interface has no Connectable property, so on the BlueZ
    backend `connectable` is always False unless the details carry one.
    """
    props = _bluez_props(device)

    kind = str(props.get("AddressType", "public")).lower()
    address_kind = AddressKind.RANDOM if kind == "random" else AddressKind.PUBLIC

    local_name = getattr(advertisement_data, "local_name", None) or getattr(device, "name", None)

    rssi = getattr(advertisement_data, "rssi", None)
    if rssi is None:
        rssi = getattr(device, "rssi", None)
    if rssi is None:
        rssi = RSSI_UNKNOWN

    uuids = getattr(advertisement_data, "service_uuids", None) or []

    return Advertisement(
        address=device.address,
        rssi=int(rssi),
        address_kind=address_kind,
        connectable=bool(props.get("Connectable", False)),
        local_name=local_name or None,
        tx_power=getattr(advertisement_data, "tx_power", None),
        service_uuids=frozenset(u.lower() for u in uuids),
        manufacturer_data=_manufacturer_bytes(getattr(advertisement_data, "manufacturer_data", None)),
        source_id=_source_id(device),
    )
