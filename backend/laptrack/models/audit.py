from __future__ import annotations

from ..extensions import db
from laptrack.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only record of lifecycle actions (stage changes, approvals,
    status changes, assignments). Written in the same transaction as the
    change it records; never updated or deleted.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # e.g. shipment.status_updated
    entity_type = db.Column(db.String(32), nullable=False)  # shipment, laptop, reception_report
    entity_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    # JSON document, keep small
    details = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "details": self.details,
        }
