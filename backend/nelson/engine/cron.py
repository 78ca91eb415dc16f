"""Weekly coaching cron: generate last week's coaching for every eligible user."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Awaitable, Callable, Optional

import httpx
import redis

from nelson.config.settings import APP_REQUEST_TIMEOUT, APP_URL, CRON_MIN_WEEKLY_CHECKINS
from nelson.engine.checkins import count_checkins_in_range
from nelson.store.documents import list_document_ids
from nelson.utils.dates import get_previous_week_id, week_date_range

logger = logging.getLogger(__name__)

# (email, week_id) -> {"success": bool, "error"?: str}
GenerateFn = Callable[[str, str], Awaitable[dict[str, Any]]]

INSUFFICIENT_ERROR = f"Insufficient check-ins (need {CRON_MIN_WEEKLY_CHECKINS}+)"


async def request_coaching_via_http(email: str, week_id: str) -> dict[str, Any]:
    """POST to the app's own generate-weekly-coaching endpoint."""
    url = f"{APP_URL}/api/generate-weekly-coaching"
    async with httpx.AsyncClient(timeout=APP_REQUEST_TIMEOUT) as client:
        resp = await client.post(url, json={"email": email, "weekId": week_id})
    try:
        body = resp.json()
    except ValueError:
        return {"success": False, "error": f"HTTP {resp.status_code}"}
    if body.get("success"):
        # A skipped summary means the user was not eligible, not that coaching exists
        if (body.get("summary") or {}).get("status") == "skipped":
            return {"success": False, "error": "Not eligible for coaching"}
        return {"success": True}
    return {"success": False, "error": body.get("error") or f"HTTP {resp.status_code}"}


def list_users(r: redis.Redis | None = None) -> list[str]:
    return list_document_ids("users", r)


async def run_weekly_coaching(
    today: Optional[date] = None,
    r: redis.Redis | None = None,
    generate: Optional[GenerateFn] = None,
    min_checkins: int = CRON_MIN_WEEKLY_CHECKINS,
) -> dict[str, Any]:
    """Process every user serially; one user's failure never stops the run."""
    generate = generate or request_coaching_via_http
    started = time.monotonic()

    week_id = get_previous_week_id(today)
    start, end = week_date_range(week_id)
    users = list_users(r)
    logger.info(f"Weekly coaching for {week_id}: {len(users)} users")

    results = []
    for email in users:
        checkins = count_checkins_in_range(email, start, end, r)
        entry: dict[str, Any] = {"email": email, "checkIns": checkins, "generated": False}
        if checkins < min_checkins:
            entry["error"] = INSUFFICIENT_ERROR
            results.append(entry)
            continue
        try:
            outcome = await generate(email, week_id)
        except Exception as exc:
            logger.error(f"Coaching failed for {email}: {exc}")
            entry["error"] = str(exc) or exc.__class__.__name__
            results.append(entry)
            continue
        entry["generated"] = bool(outcome.get("success"))
        if not entry["generated"]:
            entry["error"] = outcome.get("error") or "Unknown error"
        results.append(entry)

    generated = sum(1 for e in results if e["generated"])
    failed = sum(1 for e in results if not e["generated"] and e["checkIns"] >= min_checkins)
    insufficient = sum(1 for e in results if e["checkIns"] < min_checkins)
    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        f"Weekly coaching complete in {duration_ms}ms: "
        f"generated={generated} failed={failed} insufficient={insufficient}"
    )
    return {
        "success": True,
        "weekId": week_id,
        "summary": {
            "totalUsers": len(users),
            "generated": generated,
            "failed": failed,
            "insufficientCheckIns": insufficient,
            "durationMs": duration_ms,
        },
        "results": results,
    }
