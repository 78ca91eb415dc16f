#!/usr/bin/env python3
"""Launch the Nelson FastAPI server.

Usage:
    # From the backend/ directory with the venv activated:
    python scripts/run_server.py

    # Or from the repo root:
    python backend/scripts/run_server.py

Host and port come from SERVER_HOST / SERVER_PORT (default 0.0.0.0:8000).
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure backend/ is on sys.path so `from nelson.…` imports work uninstalled
_backend_dir = Path(__file__).resolve().parent.parent
if str(_backend_dir) not in sys.path:
    sys.path.insert(0, str(_backend_dir))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run_server")


def main():
    import uvicorn

    from nelson.config.settings import CRON_SECRET, SERVER_HOST, SERVER_PORT

    if not CRON_SECRET:
        logger.warning("CRON_SECRET is not set; the weekly cron endpoint will answer 500")

    logger.info(f"Starting Nelson on {SERVER_HOST}:{SERVER_PORT}")
    uvicorn.run(
        "nelson.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        log_level="info",
        reload=False,
    )


if __name__ == "__main__":
    main()
