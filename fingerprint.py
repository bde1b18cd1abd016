"""
Device fingerprint from advertisement content.

Phones rotate their MAC address, so the address cannot identify a device
across sightings. The fingerprint hashes the fields that tend to stay put
(name, manufacturer data, services, address kind, connectable flag).
It is a weak identity: sparse advertisements collide, and a device that
changes its service list gets a new fingerprint.
"""
from __future__ import annotations

import hashlib

from advertisement import Advertisement

# Stand-in for any absent field
ABSENT = ""


def canonical_fields(adv: Advertisement) -> str:
    return "|".join((
        adv.local_name if adv.local_name is not None else ABSENT,
        adv.manufacturer_data.hex() if adv.manufacturer_data is not None else ABSENT,
        ",".join(sorted(u.lower() for u in adv.service_uuids)),
        adv.address_kind.value,
        "1" if adv.connectable else "0",
    ))


def fingerprint(adv: Advertisement) -> str:
    """128-bit content hash of the canonical fields, as 32 hex chars."""
    return hashlib.md5(canonical_fields(adv).encode("utf-8")).hexdigest()
