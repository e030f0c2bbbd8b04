from __future__ import annotations

from ..extensions import db
from laptrack.time_utils import to_utc_z


class Shipment(db.Model):
    """
    A journey of one or more laptops through the delivery pipeline.

    VARIANT (shipment_type) is fixed at creation and decides which stages the
    shipment may pass through (see services/shipment_stages.py).

    STATUS is changed only by lifecycle_service.transition_shipment.

    MILESTONES:
    - pickup_scheduled_date, picked_up_at, arrived_warehouse_at,
      released_warehouse_at, delivered_at are stamped when the stage is entered
    - the two in-transit stages have no milestone column
    - eta_to_engineer is the only externally supplied timestamp
    """
    __tablename__ = "shipments"
    __table_args__ = (
        db.Index("ix_shipments_type_status", "shipment_type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    shipment_type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(40), nullable=False, index=True)

    client_company_id = db.Column(db.Integer, db.ForeignKey("client_companies.id"), nullable=False, index=True)
    software_engineer_id = db.Column(db.Integer, db.ForeignKey("software_engineers.id"), nullable=True, index=True)

    laptop_count = db.Column(db.Integer, nullable=False, default=1)
    jira_ticket_number = db.Column(db.String(32), nullable=False, index=True)

    courier_name = db.Column(db.String(64), nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)

    pickup_scheduled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    picked_up_at = db.Column(db.DateTime(timezone=True), nullable=True)
    arrived_warehouse_at = db.Column(db.DateTime(timezone=True), nullable=True)
    released_warehouse_at = db.Column(db.DateTime(timezone=True), nullable=True)
    eta_to_engineer = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client_company = db.relationship("ClientCompany", backref=db.backref("shipments", lazy=True))
    software_engineer = db.relationship("SoftwareEngineer", backref=db.backref("shipments", lazy=True))
    laptop_links = db.relationship(
        "ShipmentLaptop",
        back_populates="shipment",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def laptops(self) -> list:
        return [link.laptop for link in self.laptop_links]

    def __repr__(self) -> str:
        return (
            f"<Shipment id={self.id} type={self.shipment_type!r} "
            f"status={self.status!r} ticket={self.jira_ticket_number!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shipment_type": self.shipment_type,
            "status": self.status,
            "client_company_id": self.client_company_id,
            "software_engineer_id": self.software_engineer_id,
            "laptop_count": self.laptop_count,
            "jira_ticket_number": self.jira_ticket_number,
            "courier_name": self.courier_name,
            "tracking_number": self.tracking_number,
            "pickup_scheduled_date": to_utc_z(self.pickup_scheduled_date),
            "picked_up_at": to_utc_z(self.picked_up_at),
            "arrived_warehouse_at": to_utc_z(self.arrived_warehouse_at),
            "released_warehouse_at": to_utc_z(self.released_warehouse_at),
            "eta_to_engineer": to_utc_z(self.eta_to_engineer),
            "delivered_at": to_utc_z(self.delivered_at),
            "notes": self.notes,
            "laptop_ids": [link.laptop_id for link in self.laptop_links],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ShipmentLaptop(db.Model):
    """Laptops physically travelling in a shipment."""
    __tablename__ = "shipment_laptops"
    __table_args__ = (
        db.UniqueConstraint("shipment_id", "laptop_id", name="uq_shipment_laptops_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shipment_id = db.Column(db.Integer, db.ForeignKey("shipments.id"), nullable=False, index=True)
    laptop_id = db.Column(db.Integer, db.ForeignKey("laptops.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shipment = db.relationship("Shipment", back_populates="laptop_links")
    laptop = db.relationship("Laptop", backref=db.backref("shipment_links", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shipment_id": self.shipment_id,
            "laptop_id": self.laptop_id,
            "created_at": to_utc_z(self.created_at),
        }
