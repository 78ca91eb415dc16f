"""Coach insight log."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis

from nelson.store.documents import add_document, doc_path

logger = logging.getLogger(__name__)


def log_insight(
    email: str,
    note: str,
    context: Optional[dict[str, Any]] = None,
    r: redis.Redis | None = None,
) -> Optional[str]:
    """Store an insight and return its id. Store failures are logged, never raised."""
    try:
        insight_id = add_document(doc_path("users", email, "insights"), {
            "note": note,
            "context": context or {},
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }, r=r)
    except redis.RedisError as exc:
        logger.warning(f"Failed to log coach insight: {exc}")
        return None
    logger.info("Saved new coach insight")
    return insight_id
