import uuid, json, logging
from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id: str,
              details: dict | None = None, commit: bool = True) -> None:
    """Record an admin action. Best effort: a failed audit write never fails the action itself."""
    try:
        db.add(AuditLog(
            id=str(uuid.uuid4()),
            actor_user_id=actor_user_id or "",
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
        ))
        if commit:
            db.commit()
    except Exception:
        db.rollback()
        logger.exception("Audit write failed for %s %s/%s", action, entity_type, entity_id)
