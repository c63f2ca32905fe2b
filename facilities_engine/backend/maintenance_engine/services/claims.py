# backend/maintenance_engine/services/claims.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from ..store import DocumentStore, DuplicateDocument, VersionConflict

COLLECTION = "executionClaims"

RUNNING = "running"
DONE = "done"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def claim_key(recurring_work_order_id: str, scheduled_date: datetime) -> str:
    return f"{recurring_work_order_id}:{scheduled_date.astimezone(timezone.utc).isoformat()}"


def _expired(data: dict, now: datetime) -> bool:
    raw = data.get("expiresAt")
    if not raw:
        return False
    try:
        expires = datetime.fromisoformat(str(raw))
    except ValueError:
        return False
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires <= now


def acquire_claim(
    store: DocumentStore,
    *,
    recurring_work_order_id: str,
    scheduled_date: datetime,
    owner: str,
    ttl_seconds: int,
    now: Optional[datetime] = None,
) -> bool:
    """
    Claim one (definition, scheduled date) cycle.
    - returns True if the claim was created, renewed by its owner, or stolen after expiry
    - returns False if another owner holds it, or the cycle already completed
    """
    now = now or _now()
    key = claim_key(recurring_work_order_id, scheduled_date)
    body = {
        "recurringWorkOrderId": recurring_work_order_id,
        "scheduledDate": scheduled_date.astimezone(timezone.utc).isoformat(),
        "owner": owner,
        "state": RUNNING,
        "claimedAt": now.isoformat(),
        "expiresAt": (now + timedelta(seconds=int(ttl_seconds))).isoformat(),
    }

    try:
        store.create(COLLECTION, key, body)
        return True
    except DuplicateDocument:
        pass

    existing = store.get(COLLECTION, key)
    if existing is None:
        # released between our insert and read; one more try
        try:
            store.create(COLLECTION, key, body)
            return True
        except DuplicateDocument:
            return False

    if existing.data.get("state") == DONE:
        return False

    same_owner = str(existing.data.get("owner") or "") == owner
    if not same_owner and not _expired(existing.data, now):
        return False

    # renew own claim or steal an expired one
    try:
        store.update(COLLECTION, key, body, expected_version=existing.version)
    except VersionConflict:
        return False
    return True


def complete_claim(store: DocumentStore, *, recurring_work_order_id: str, scheduled_date: datetime, execution_id: str) -> None:
    store.update(
        COLLECTION,
        claim_key(recurring_work_order_id, scheduled_date),
        {"state": DONE, "executionId": execution_id, "expiresAt": None},
    )


def release_claim(store: DocumentStore, *, recurring_work_order_id: str, scheduled_date: datetime, owner: str) -> bool:
    key = claim_key(recurring_work_order_id, scheduled_date)
    existing = store.get(COLLECTION, key)
    if existing is None:
        return True
    if str(existing.data.get("owner") or "") != owner:
        # don't release someone else's claim
        return False
    return store.delete(COLLECTION, key)
