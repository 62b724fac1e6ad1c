import hashlib
import json
import logging
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from school_eval.db.base import utcnow
from school_eval.models.idempotency import IdempotencyKey
from school_eval.models.user import User

logger = logging.getLogger(__name__)


def _hash_payload(payload: Any) -> str:
    # same key + different body must be detectable
    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def _find(db: Session, user: User, key: str) -> IdempotencyKey | None:
    return (
        db.query(IdempotencyKey)
        .filter(IdempotencyKey.user_id == user.id, IdempotencyKey.key == key)
        .one_or_none()
    )


def begin_idempotent_request(
    *,
    db: Session,
    user: User,
    key: str,
    method: str,
    route: str,
    payload_for_hash: Any | None = None,
) -> tuple[IdempotencyKey, bool]:
    """
    Returns (row, is_new).
    - existing COMPLETED   -> caller replays row.response_body
    - existing IN_PROGRESS -> 409, the first request is still running
    - existing, other body -> 409
    - existing FAILED      -> re-armed, caller proceeds as a retry
    """
    req_hash = _hash_payload({"route": route, "payload": payload_for_hash})

    existing = _find(db, user, key)
    if existing:
        if existing.request_hash and existing.request_hash != req_hash:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Idempotency-Key reuse with different request",
            )
        if existing.status == "COMPLETED":
            logger.info("replaying %s %s for key %s", method, route, key)
            return existing, False
        if existing.status == "IN_PROGRESS":
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Request with this Idempotency-Key is already in progress",
            )

        existing.status = "IN_PROGRESS"
        db.commit()
        return existing, False

    row = IdempotencyKey(
        user_id=user.id,
        key=key,
        method=method,
        route=route,
        request_hash=req_hash,
        status="IN_PROGRESS",
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # another request inserted the key first
        row = _find(db, user, key)
        if row is not None and row.status == "COMPLETED":
            return row, False
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Idempotency-Key collision (try again)",
        )
    return row, True


def complete_idempotent_request(
    *,
    db: Session,
    row: IdempotencyKey,
    response_code: int,
    response_body: dict | list | None,
):
    row.status = "COMPLETED"
    row.response_code = response_code
    row.response_body = response_body
    row.updated_at = utcnow()


def fail_idempotent_request(db: Session, row: IdempotencyKey):
    # drop the failed request's own writes before persisting the FAILED marker
    db.rollback()
    row.status = "FAILED"
    row.updated_at = utcnow()
    db.commit()


def run_idempotent(
    *,
    db: Session,
    user: User,
    key: str | None,
    method: str,
    route: str,
    payload_for_hash: Any,
    response_code: int,
    model,
    run,
):
    """
    Execute ``run()`` at most once per (user, Idempotency-Key).

    ``run`` returns a pydantic model instance; a completed key replays the
    stored body as ``model``. Without a key this is a plain call.
    """
    if not key:
        return run()

    row, _ = begin_idempotent_request(
        db=db,
        user=user,
        key=key,
        method=method,
        route=route,
        payload_for_hash=payload_for_hash,
    )
    if row.status == "COMPLETED":
        return model(**row.response_body)

    try:
        out = run()
        db.flush()
    except Exception:
        fail_idempotent_request(db, row)
        raise

    complete_idempotent_request(
        db=db,
        row=row,
        response_code=response_code,
        response_body=out.model_dump(mode="json"),
    )
    return out
