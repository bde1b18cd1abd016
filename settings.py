import os

# Storage
DB_PATH = os.getenv("BLE_DB_PATH", "ble_scans.db")

# Ignore list (JSON array of MAC addresses, e.g. ["AA:BB:CC:DD:EE:FF"])
IGNORE_LIST_FILE = os.getenv("BLE_IGNORE_LIST", "ignore_list.json")

# Bluetooth adapter, empty = system default
BLEAK_DEVICE = os.getenv("BLE_ADAPTER", "")

# Scan windows: listen for SCAN_WINDOW_SECONDS every SCAN_PERIOD_SECONDS
SCAN_PERIOD_SECONDS = float(os.getenv("BLE_SCAN_PERIOD", "60"))
SCAN_WINDOW_SECONDS = float(os.getenv("BLE_SCAN_WINDOW", "10"))

# A device (fingerprint) seen within this many seconds is not recorded again
MEMORY_HORIZON_SECONDS = float(os.getenv("BLE_MEMORY_HORIZON", "30"))

# Lowercase substrings of the advertised name that mark a phone
PHONE_NAME_PATTERNS = tuple(
    p.strip().lower()
    for p in os.getenv("BLE_PHONE_NAMES", "iphone,pixel").split(",")
    if p.strip()
)

# Queues between radio callback -> pipeline -> database writer
EVENT_QUEUE_SIZE = int(os.getenv("BLE_EVENT_QUEUE_SIZE", "1000"))
WRITE_QUEUE_SIZE = int(os.getenv("BLE_WRITE_QUEUE_SIZE", "1000"))

# Seconds to wait for pending writes on shutdown
SHUTDOWN_GRACE_SECONDS = float(os.getenv("BLE_SHUTDOWN_GRACE", "5"))

# How often adapter power state is checked
READINESS_POLL_SECONDS = float(os.getenv("BLE_READINESS_POLL", "5"))

# Logging
LOG_DIR = os.getenv("BLE_LOG_DIR", "")  # empty = stdout only
LOG_LEVEL = os.getenv("BLE_LOG_LEVEL", "INFO")
