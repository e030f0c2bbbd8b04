from __future__ import annotations

from ..extensions import db
from laptrack.time_utils import to_utc_z


class Laptop(db.Model):
    """
    A physical laptop: the unit of inventory.

    STATUS DESIGN:
    - in_transit_to_warehouse -> at_warehouse -> available -> in_transit_to_engineer -> delivered
    - retired is an administrative side branch from any non-delivered status
    - available is written ONLY by reception_service.approve_reception_report
    - new laptops never start as available (every unit passes the inspection gate)
    """
    __tablename__ = "laptops"
    __table_args__ = (
        db.Index("ix_laptops_company_status", "client_company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    serial_number = db.Column(db.String(128), nullable=False, unique=True)
    sku = db.Column(db.String(64), nullable=True, index=True)
    brand = db.Column(db.String(64), nullable=True)
    model = db.Column(db.String(128), nullable=True)
    cpu = db.Column(db.String(128), nullable=True)
    ram_gb = db.Column(db.String(16), nullable=True)
    ssd_gb = db.Column(db.String(16), nullable=True)

    status = db.Column(db.String(32), nullable=False, index=True)

    client_company_id = db.Column(db.Integer, db.ForeignKey("client_companies.id"), nullable=True, index=True)
    software_engineer_id = db.Column(db.Integer, db.ForeignKey("software_engineers.id"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client_company = db.relationship("ClientCompany", backref=db.backref("laptops", lazy=True))
    software_engineer = db.relationship("SoftwareEngineer", backref=db.backref("laptops", lazy=True))
    reception_report = db.relationship("ReceptionReport", back_populates="laptop", uselist=False)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_description(self) -> str:
        if not self.brand and not self.model:
            return "Unknown"
        desc = " ".join(part for part in (self.brand, self.model) if part)
        if self.cpu:
            desc += f" ({self.cpu})"
        return desc

    def __repr__(self) -> str:
        return f"<Laptop id={self.id} serial={self.serial_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        report = self.reception_report
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "sku": self.sku,
            "brand": self.brand,
            "model": self.model,
            "cpu": self.cpu,
            "ram_gb": self.ram_gb,
            "ssd_gb": self.ssd_gb,
            "status": self.status,
            "client_company_id": self.client_company_id,
            "software_engineer_id": self.software_engineer_id,
            "reception_report_id": report.id if report else None,
            "reception_report_status": report.status if report else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ReceptionReport(db.Model):
    """
    Warehouse inspection record for exactly one laptop.

    LIFECYCLE:
        pending_approval -> approved   (once, never reversed)

    Approval is coupled to the laptop becoming available; both rows change in
    one transaction (reception_service.approve_reception_report).
    """
    __tablename__ = "reception_reports"
    __table_args__ = (
        db.UniqueConstraint("laptop_id", name="uq_reception_reports_laptop"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    laptop_id = db.Column(db.Integer, db.ForeignKey("laptops.id"), nullable=False)
    shipment_id = db.Column(db.Integer, db.ForeignKey("shipments.id"), nullable=True, index=True)
    client_company_id = db.Column(db.Integer, db.ForeignKey("client_companies.id"), nullable=True, index=True)
    tracking_number = db.Column(db.String(128), nullable=True)

    warehouse_user_id = db.Column(db.Integer, nullable=False)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # Three required pieces of photographic evidence
    photo_serial_number = db.Column(db.String(512), nullable=False)
    photo_external_condition = db.Column(db.String(512), nullable=False)
    photo_working_condition = db.Column(db.String(512), nullable=False)

    status = db.Column(db.String(32), nullable=False, default="pending_approval", index=True)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    laptop = db.relationship("Laptop", back_populates="reception_report")
    shipment = db.relationship("Shipment", foreign_keys=[shipment_id])

    def __repr__(self) -> str:
        return f"<ReceptionReport id={self.id} laptop_id={self.laptop_id} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "laptop_id": self.laptop_id,
            "shipment_id": self.shipment_id,
            "client_company_id": self.client_company_id,
            "tracking_number": self.tracking_number,
            "warehouse_user_id": self.warehouse_user_id,
            "received_at": to_utc_z(self.received_at),
            "notes": self.notes,
            "photo_serial_number": self.photo_serial_number,
            "photo_external_condition": self.photo_external_condition,
            "photo_working_condition": self.photo_working_condition,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
