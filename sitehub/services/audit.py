"""
Append-only audit trail for inventory, time and user actions.

Entries join the caller's transaction: they are flushed, never committed
here, so an audit row exists exactly when the mutation it describes does.
Each entry carries a SHA-256 of its canonical JSON form keyed with the
JWT secret.
"""
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import AuditLog


def _jsonable(value: Optional[Dict]) -> Optional[Dict]:
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def _naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _canonical(entry: AuditLog) -> str:
    fields: Dict[str, Any] = {
        "entity_type": entry.entity_type,
        "entity_id": str(entry.entity_id),
        "action": entry.action,
        "actor_id": str(entry.actor_id) if entry.actor_id else None,
        "actor_role": entry.actor_role,
        "source": entry.source,
        "timestamp_utc": _naive_utc(entry.timestamp_utc).isoformat(),
        "changes": entry.changes_json,
        "context": entry.context,
    }
    fields = {k: v for k, v in fields.items() if v is not None}
    return json.dumps(fields, sort_keys=True, default=str)


def _digest(entry: AuditLog, secret: str) -> str:
    return hashlib.sha256(f"{_canonical(entry)}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    action: str,
    actor_id=None,
    actor_role: Optional[str] = None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
) -> AuditLog:
    """
    Add an audit entry to the current unit of work.

    entity_type is one of transfer|site_item|time_log|user|site|item and
    action one of CREATE|UPDATE|DELETE|RESTORE|PURGE|TRANSFER|CLOCK_IN|CLOCK_OUT.
    context holds free-form details such as site, item and quantities.
    """
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source or "system",
        changes_json=_jsonable(changes_json),
        timestamp_utc=datetime.utcnow(),
        context=_jsonable(context),
    )
    if settings.jwt_secret:
        entry.integrity_hash = _digest(entry, settings.jwt_secret)

    db.add(entry)
    db.flush()
    return entry


def verify_integrity(entry: AuditLog, secret: Optional[str] = None) -> bool:
    """True when the stored hash still matches the entry's contents."""
    secret = secret if secret is not None else settings.jwt_secret
    if not entry.integrity_hash or not secret:
        return False
    return entry.integrity_hash == _digest(entry, secret)


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Changed fields only, as {field: {"before": ..., "after": ...}}."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in set(before) | set(after)
        if before.get(key) != after.get(key)
    }
