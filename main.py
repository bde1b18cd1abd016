import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import settings
from scanner import run

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(level: str = settings.LOG_LEVEL, log_dir: str = settings.LOG_DIR) -> None:
    root = logging.getLogger()
    root.setLevel(level)

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(sh)

    if log_dir:
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(Path(log_dir) / "scanner.log", maxBytes=5_000_000, backupCount=3)
        except OSError as e:
            root.warning(f"Cannot log to {log_dir}: {e}; logging to stdout only")
        else:
            fh.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(fh)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Scan for BLE advertisements and log likely phones to SQLite.")
    p.add_argument("--db", default=settings.DB_PATH, help="SQLite database file")
    p.add_argument("--ignore-list", default=settings.IGNORE_LIST_FILE,
                   help="JSON array of MAC addresses to ignore")
    p.add_argument("--adapter", default=settings.BLEAK_DEVICE, help="Bluetooth adapter, e.g. hci1")
    p.add_argument("--period", type=float, default=settings.SCAN_PERIOD_SECONDS,
                   help="seconds between scan window starts")
    p.add_argument("--window", type=float, default=settings.SCAN_WINDOW_SECONDS,
                   help="seconds the radio listens per period")
    p.add_argument("--horizon", type=float, default=settings.MEMORY_HORIZON_SECONDS,
                   help="seconds a seen device is not recorded again")
    p.add_argument("--duration", type=float, default=None,
                   help="stop after this many seconds (default: run until signalled)")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = p.parse_args(argv)

    for name in ("period", "window", "horizon"):
        if getattr(args, name) <= 0:
            p.error(f"--{name} must be positive")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging("DEBUG" if args.verbose else settings.LOG_LEVEL)

    logging.getLogger(__name__).info(
        f"Running the scanner! DB: {args.db}, BT device: {args.adapter or 'default'}, "
        f"window {args.window}s every {args.period}s, memory horizon {args.horizon}s"
    )

    try:
        return asyncio.run(run(
            db_path=args.db,
            ignore_list_path=args.ignore_list,
            adapter=args.adapter,
            period=args.period,
            window=args.window,
            horizon=args.horizon,
            duration=args.duration,
        ))
    except KeyboardInterrupt:
        # Fallback (some platforms)
        return 0


if __name__ == "__main__":
    sys.exit(main())
