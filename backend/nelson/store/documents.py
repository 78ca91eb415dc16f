"""Redis-backed document store.

Mirrors the hosted document database layout the app was built around:

  users/{email}
  users/{email}/momentum/{YYYY-MM-DD | currentFocus}
  users/{email}/sessions/{id}
  users/{email}/habitEvents/{id}
  users/{email}/insights/{autoId}
  users/{email}/weeklySummaries/{weekId}
  users/{email}/weeklyCalibrations/{weekId}

A document at path ``a/b/c/d`` is a Redis hash at ``doc:a/b/c/d`` whose field
values are JSON-encoded. Its id is added to the set ``col:a/b/c`` so the
collection can be listed.
"""

from __future__ import annotations

import json
from typing import Any, Optional
from uuid import uuid4

import redis

from nelson.config.settings import REDIS_URL

DOC_PREFIX = "doc:"
COLLECTION_PREFIX = "col:"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def doc_path(*segments: str) -> str:
    """Join path segments, e.g. doc_path("users", email, "momentum", date)."""
    for seg in segments:
        if not seg or "/" in seg:
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


def _split(path: str) -> tuple[str, str]:
    collection, _, doc_id = path.rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


def _encode(data: dict) -> dict:
    return {k: json.dumps(v) for k, v in data.items()}


def _decode(raw: dict) -> dict:
    decoded = {}
    for k, v in raw.items():
        k = k.decode() if isinstance(k, bytes) else k
        v = v.decode() if isinstance(v, bytes) else v
        decoded[k] = json.loads(v)
    return decoded


def set_document(
    path: str,
    data: dict[str, Any],
    merge: bool = False,
    r: redis.Redis | None = None,
) -> None:
    """Write a document. Without ``merge`` any existing fields are replaced."""
    r = r or _get_redis()
    collection, doc_id = _split(path)
    key = f"{DOC_PREFIX}{path}"
    pipe = r.pipeline()
    if not merge:
        pipe.delete(key)
    if data:
        pipe.hset(key, mapping=_encode(data))
    pipe.sadd(f"{COLLECTION_PREFIX}{collection}", doc_id)
    pipe.execute()


def update_document(path: str, fields: dict[str, Any], r: redis.Redis | None = None) -> None:
    """Update fields of an existing document. Raises KeyError if it is missing."""
    r = r or _get_redis()
    key = f"{DOC_PREFIX}{path}"
    if not r.exists(key):
        raise KeyError(f"No document at {path}")
    if fields:
        r.hset(key, mapping=_encode(fields))


def get_document(path: str, r: redis.Redis | None = None) -> Optional[dict[str, Any]]:
    """Load a document, or None if it does not exist."""
    r = r or _get_redis()
    raw = r.hgetall(f"{DOC_PREFIX}{path}")
    if not raw:
        # A document written with no fields still counts as existing
        collection, doc_id = _split(path)
        if r.sismember(f"{COLLECTION_PREFIX}{collection}", doc_id):
            return {}
        return None
    return _decode(raw)


def add_document(collection: str, data: dict[str, Any], r: redis.Redis | None = None) -> str:
    """Write a document under an auto-generated id and return the id."""
    doc_id = uuid4().hex[:20]
    set_document(f"{collection}/{doc_id}", data, r=r)
    return doc_id


def delete_document(path: str, r: redis.Redis | None = None) -> None:
    r = r or _get_redis()
    collection, doc_id = _split(path)
    r.delete(f"{DOC_PREFIX}{path}")
    r.srem(f"{COLLECTION_PREFIX}{collection}", doc_id)


def list_document_ids(collection: str, r: redis.Redis | None = None) -> list[str]:
    """Ids of all documents in a collection, sorted."""
    r = r or _get_redis()
    ids = r.smembers(f"{COLLECTION_PREFIX}{collection}")
    return sorted(i.decode() if isinstance(i, bytes) else i for i in ids)


def list_documents(collection: str, r: redis.Redis | None = None) -> list[tuple[str, dict[str, Any]]]:
    """All (id, data) pairs in a collection, sorted by id."""
    r = r or _get_redis()
    docs = []
    for doc_id in list_document_ids(collection, r):
        data = get_document(f"{collection}/{doc_id}", r)
        if data is not None:
            docs.append((doc_id, data))
    return docs
