"""
Heuristic "is this a phone?" check on a single advertisement.

Rules are tried in order and the first match wins, which also fixes the
reported reason:
  1. Apple company id (0x004C) in manufacturer data
  2. Apple Notification Center Service (ANCS) UUID advertised
  3. Advertised name contains a known phone name (e.g. "iPhone", "Pixel")

Phones that advertise none of these are missed, and accessories named
like a phone are counted. Both are accepted.
"""
from __future__ import annotations

from enum import Enum
from typing import Iterable, NamedTuple

from advertisement import Advertisement

APPLE_COMPANY_ID = 0x004C
ANCS_SERVICE_UUID = "7905f431-b5ce-4e99-a40f-4b1e122d00d0"
DEFAULT_NAME_PATTERNS = ("iphone", "pixel")


class Reason(str, Enum):
    VENDOR_ID = "vendor_id"
    SERVICE_UUID = "service_uuid"
    NAME_PATTERN = "name_pattern"
    NO_MATCH = "no_match"


class Classification(NamedTuple):
    is_phone: bool
    reason: Reason


def _uuid_key(uuid: str) -> str:
    # noble reports bare hex, bleak the dashed form
    return uuid.replace("-", "").lower()


_ANCS_KEY = _uuid_key(ANCS_SERVICE_UUID)


def classify(adv: Advertisement, name_patterns: Iterable[str] = DEFAULT_NAME_PATTERNS) -> Classification:
    if adv.company_id == APPLE_COMPANY_ID:
        return Classification(True, Reason.VENDOR_ID)

    if any(_uuid_key(u) == _ANCS_KEY for u in adv.service_uuids):
        return Classification(True, Reason.SERVICE_UUID)

    if adv.local_name:
        name = adv.local_name.lower()
        if any(p.lower() in name for p in name_patterns if p):
            return Classification(True, Reason.NAME_PATTERN)

    return Classification(False, Reason.NO_MATCH)
