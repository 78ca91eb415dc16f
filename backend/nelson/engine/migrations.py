"""One-time data migrations. Each returns {"success", "updated", "skipped"}."""

from __future__ import annotations

import logging
from typing import Any

import redis

from nelson.config.settings import DEFAULT_EXERCISE_TARGET_MINUTES
from nelson.models.behaviors import canonical_behavior_name
from nelson.models.habit import focus_path
from nelson.store.documents import doc_path, get_document, list_document_ids, list_documents, update_document
from nelson.utils.dates import is_date_key

logger = logging.getLogger(__name__)


def backfill_last_proven_target(r: redis.Redis | None = None) -> dict[str, Any]:
    """Set lastProvenTarget = target (or the default) on every focus lacking it."""
    updated = skipped = 0
    for email in list_document_ids("users", r):
        path = focus_path(email)
        focus = get_document(path, r)
        if focus is None or focus.get("lastProvenTarget") is not None:
            skipped += 1
            continue
        value = focus.get("target") or DEFAULT_EXERCISE_TARGET_MINUTES
        update_document(path, {"lastProvenTarget": value}, r=r)
        logger.info(f"{email}: lastProvenTarget = {value}")
        updated += 1
    logger.info(f"Backfill complete: {updated} updated, {skipped} skipped")
    return {"success": True, "updated": updated, "skipped": skipped}


def _normalize_ratings(ratings: dict) -> dict:
    return {canonical_behavior_name(k): v for k, v in ratings.items()}


def normalize_behavior_names(r: redis.Redis | None = None) -> dict[str, Any]:
    """Rewrite legacy behavior names in stored grades and ratings to canonical ids."""
    updated = skipped = 0
    for email in list_document_ids("users", r):
        collection = doc_path("users", email, "momentum")
        for doc_id, data in list_documents(collection, r):
            if not is_date_key(doc_id):
                continue
            grades = data.get("behaviorGrades") or []
            ratings = data.get("behaviorRatings") or {}
            new_grades = [{**g, "name": canonical_behavior_name(g.get("name", ""))} for g in grades]
            new_ratings = _normalize_ratings(ratings)
            if new_grades == grades and new_ratings == ratings:
                skipped += 1
                continue
            update_document(f"{collection}/{doc_id}", {
                "behaviorGrades": new_grades,
                "behaviorRatings": new_ratings,
            }, r=r)
            updated += 1
    logger.info(f"Behavior names normalized: {updated} updated, {skipped} skipped")
    return {"success": True, "updated": updated, "skipped": skipped}


MIGRATIONS = {
    "backfill-last-proven-target": backfill_last_proven_target,
    "normalize-behavior-names": normalize_behavior_names,
}
