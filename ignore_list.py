"""Ignore list: MAC addresses of devices that must never be recorded.

The list is a JSON array of address strings. Colon, dash or bare hex forms
are accepted in any case. Devices using random (rotating) addresses cannot
be matched here; the device memory cache is what keeps them from flooding
the database.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

_HEX12 = re.compile(r"^[0-9a-f]{12}$")


def normalize_address(addr: str) -> Optional[str]:
    """Return 'aa:bb:cc:dd:ee:ff' for any accepted form, None if malformed."""
    if not isinstance(addr, str):
        return None
    bare = addr.strip().lower().replace(":", "").replace("-", "")
    if not _HEX12.match(bare):
        return None
    return ":".join(bare[i:i + 2] for i in range(0, 12, 2))


class IgnoreList:
    def __init__(self, addresses: Iterable[str] = ()):
        self._addresses = set()
        for addr in addresses:
            norm = normalize_address(addr)
            if norm is None:
                logger.warning(f"Ignore list: skipping malformed address {addr!r}")
                continue
            self._addresses.add(norm)

    def is_ignored(self, address: str) -> bool:
        norm = normalize_address(address)
        return norm is not None and norm in self._addresses

    def __contains__(self, address: str) -> bool:
        return self.is_ignored(address)

    def __len__(self) -> int:
        return len(self._addresses)


def load_ignore_list(path) -> IgnoreList:
    """Load the ignore list from a JSON file. Never raises."""
    path = Path(path)
    if not path.exists():
        logger.info(f"Ignore list file ({path}) not found. All devices will be logged.")
        return IgnoreList()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Error reading or parsing {path}: {e}. Ignoring file.")
        return IgnoreList()

    if not isinstance(data, list):
        logger.warning(f"{path} does not contain a JSON array. Ignoring file.")
        return IgnoreList()

    ignore = IgnoreList(data)
    logger.info(f"Loaded {len(ignore)} device addresses from ignore list.")
    return ignore
