#!/usr/bin/env python3
"""Run one-time data migrations against the Redis document store.

Usage:
    python scripts/migrate.py backfill-last-proven-target
    python scripts/migrate.py normalize-behavior-names
    python scripts/migrate.py all
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_backend_dir = Path(__file__).resolve().parent.parent
if str(_backend_dir) not in sys.path:
    sys.path.insert(0, str(_backend_dir))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("migrate")


def main(argv: list[str]) -> int:
    from nelson.engine.migrations import MIGRATIONS

    if len(argv) != 1 or (argv[0] != "all" and argv[0] not in MIGRATIONS):
        print(__doc__)
        print("Available:", ", ".join(MIGRATIONS))
        return 2

    names = list(MIGRATIONS) if argv[0] == "all" else [argv[0]]
    for name in names:
        logger.info(f"Running {name}")
        result = MIGRATIONS[name]()
        logger.info(f"{name}: {result['updated']} updated, {result['skipped']} skipped")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
