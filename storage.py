# file: storage.py
"""
SQLite storage for phone sightings.

The `scans` table is append-only and read by the statistics/reset tools, so
its layout must not change. (timestamp, fingerprint) is the primary key; a
second insert of the same pair is a harmless duplicate.

SightingSink moves writes off the event loop: records go through a queue to
one writer thread, which keeps writes for the same fingerprint in order.
"""
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from queue import Queue, Empty, Full
from typing import Optional

from advertisement import Advertisement

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


class StorageError(Exception):
    pass


class StoreUnavailable(StorageError):
    """Database cannot be opened or created."""


class WriteError(StorageError):
    """A single sighting could not be written."""


def format_timestamp(ts: datetime) -> str:
    # millisecond precision, UTC, readable by SQLite date functions
    return ts.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)[:-3]


@dataclass(frozen=True)
class SightingRecord:
    timestamp: str
    fingerprint: str
    address: str
    address_type: str
    connectable: bool
    local_name: Optional[str]
    tx_power_level: Optional[int]
    service_uuids: str
    manufacturer_data: Optional[str]
    rssi: int

    @classmethod
    def from_advertisement(cls, adv: Advertisement, digest: str,
                           timestamp: Optional[datetime] = None) -> "SightingRecord":
        timestamp = timestamp or datetime.now(timezone.utc)
        return cls(
            timestamp=format_timestamp(timestamp),
            fingerprint=digest,
            address=adv.address,
            address_type=adv.address_kind.value,
            connectable=adv.connectable,
            local_name=adv.local_name,
            tx_power_level=adv.tx_power,
            service_uuids=",".join(sorted(adv.service_uuids)),
            manufacturer_data=adv.manufacturer_data.hex() if adv.manufacturer_data is not None else None,
            rssi=adv.rssi,
        )

    def as_row(self) -> tuple:
        return (self.timestamp, self.fingerprint, self.address, self.address_type,
                int(self.connectable), self.local_name, self.tx_power_level,
                self.service_uuids, self.manufacturer_data, self.rssi)


def _connect(path, **kwargs) -> sqlite3.Connection:
    con = sqlite3.connect(str(path), **kwargs)
    con.execute("PRAGMA journal_mode=WAL;")
    con.execute("PRAGMA synchronous=NORMAL;")
    return con


def init_db(path):
    """Create the database and schema if missing. Raises StoreUnavailable."""
    logger.info(f"Saving to DB on location: {path}")
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        con = _connect(path)
        try:
            con.execute("""
            CREATE TABLE IF NOT EXISTS scans (
                timestamp TEXT NOT NULL,          -- UTC, YYYY-MM-DD HH:MM:SS.fff
                fingerprint TEXT NOT NULL,        -- content hash, see fingerprint.py
                address TEXT NOT NULL,            -- as observed, may be random
                address_type TEXT,
                connectable INTEGER,
                local_name TEXT,
                tx_power_level INTEGER,
                service_uuids TEXT,               -- comma separated
                manufacturer_data TEXT,           -- hex, company id first
                rssi INTEGER NOT NULL,
                PRIMARY KEY (timestamp, fingerprint)
            );
            """)
            con.execute("CREATE INDEX IF NOT EXISTS idx_scans_fingerprint ON scans(fingerprint);")
            con.commit()
        finally:
            con.close()
    except (sqlite3.Error, OSError) as e:
        raise StoreUnavailable(f"Cannot open database {path}: {e}") from e


@contextmanager
def db(path):
    con = sqlite3.connect(str(path), isolation_level=None)
    try:
        yield con
    finally:
        con.close()


def add_sighting(con, record: SightingRecord) -> bool:
    """Insert one sighting. False if (timestamp, fingerprint) already exists."""
    try:
        with con:
            con.execute("""
                INSERT INTO scans(
                    timestamp, fingerprint, address, address_type, connectable,
                    local_name, tx_power_level, service_uuids, manufacturer_data, rssi
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """, record.as_row())
    except sqlite3.IntegrityError as e:
        if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
            return False
        raise WriteError(str(e)) from e
    except sqlite3.Error as e:
        raise WriteError(str(e)) from e
    return True


_STOP = object()


class SightingSink:
    """Background writer for sightings; submit() never blocks."""

    def __init__(self, path, max_queue: int = 1000):
        self.path = path
        self._queue: Queue = Queue(maxsize=max_queue)
        self._thread: Optional[threading.Thread] = None
        self._con: Optional[sqlite3.Connection] = None
        self.written = 0
        self.duplicates = 0
        self.failed = 0
        self.dropped = 0

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        try:
            # opened here so a bad path fails at startup; used only by the writer thread
            self._con = _connect(self.path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open database {self.path}: {e}") from e
        self._thread = threading.Thread(target=self._run, name="sighting-writer", daemon=True)
        self._thread.start()

    def submit(self, record: SightingRecord) -> bool:
        try:
            self._queue.put_nowait(record)
        except Full:
            self.dropped += 1
            logger.warning(f"Write queue full, dropping sighting {record.fingerprint} ({record.address})")
            return False
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    def _run(self) -> None:
        while True:
            record = self._queue.get()
            try:
                if record is _STOP:
                    return
                self._write(record)
            finally:
                self._queue.task_done()

    def _write(self, record: SightingRecord) -> None:
        try:
            if add_sighting(self._con, record):
                self.written += 1
            else:
                self.duplicates += 1
                logger.debug(f"Duplicate sighting {record.timestamp} {record.fingerprint}, skipped")
        except WriteError as e:
            self.failed += 1
            logger.error(f"Error inserting data for {record.address}: {e}")

    def close(self, grace: float = 5.0) -> int:
        """Flush pending writes within `grace` seconds, then close. Returns abandoned count."""
        abandoned = 0
        if self._thread is not None:
            deadline = time.monotonic() + grace
            while self._queue.unfinished_tasks and time.monotonic() < deadline:
                time.sleep(0.05)

            while True:
                try:
                    self._queue.get_nowait()
                except Empty:
                    break
                self._queue.task_done()
                abandoned += 1
            if abandoned:
                logger.warning(f"Shutdown: abandoned {abandoned} pending sightings")

            self._queue.put(_STOP)
            self._thread.join(timeout=max(grace, 1.0))
            if self._thread.is_alive():
                # connection is still in use by the writer; the daemon thread dies with the process
                logger.warning("Writer thread did not stop in time, leaving connection open")
                self._con = None
            self._thread = None

        if self._con is not None:
            self._con.close()
            self._con = None
        logger.info(f"Database closed. Written {self.written}, duplicates {self.duplicates}, "
                    f"failed {self.failed}, dropped {self.dropped}")
        return abandoned
