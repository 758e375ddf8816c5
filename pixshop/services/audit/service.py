"""
Audit trail of operator actions on purchases. Rows are append-only.
"""
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from pixshop.models.audit_log import AuditLog

ACTOR_OPERATOR = "operator"
ENTITY_PURCHASE = "purchase"


class AuditAction(str, Enum):
    PURCHASE_COMPLETE = "purchase_complete"
    PURCHASE_REFUND = "purchase_refund"
    PURCHASE_REDELIVER = "purchase_redeliver"
    PAYMENT_CONFIRM_SIMULATED = "payment_confirm_simulated"


class AuditService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def log(
        self,
        actor_type: str,
        actor_id: str | None,
        action: AuditAction | str,
        entity_type: str,
        entity_id: str | None,
        payload: dict[str, Any] | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor_type=actor_type,
            actor_id=actor_id,
            action=action.value if isinstance(action, AuditAction) else action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload or {},
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def purchase_action(
        self,
        action: AuditAction,
        purchase_id: str,
        payload: dict[str, Any] | None = None,
        operator_id: str | None = None,
    ) -> AuditLog:
        """One operator action on one purchase."""
        return self.log(ACTOR_OPERATOR, operator_id, action, ENTITY_PURCHASE, purchase_id, payload)
