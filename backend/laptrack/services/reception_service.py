# Overview: Service-layer operations for reception reports; the inspection gate in front of "available".

"""
Reception Report Service

WHY: A laptop must never become available without an approved inspection
record. Approval is the only writer of both report "approved" and laptop
"available", and it writes them together or not at all.

LIFECYCLE:
1. PENDING_APPROVAL: Created when a laptop is received at the warehouse
2. APPROVED: Approved once by a warehouse manager (never reversed)

APPROVAL TRANSACTION:
- Report row locked and re-read
- Conditional UPDATE of the report (WHERE status = pending_approval)
- Conditional UPDATE of the laptop (WHERE status = at_warehouse)
- Either write matching zero rows rolls back both (ConcurrencyConflictError)
"""

from __future__ import annotations

import logging
from typing import Optional

from ..extensions import db
from ..models import ReceptionReport, Laptop, Shipment, ShipmentLaptop
from ..validation import (
    ValidationError,
    LifecycleError,
    ConcurrencyConflictError,
    ReceptionReportAlreadyApprovedError,
    NotFoundError,
    is_http_url,
)
from .audit_service import append_audit_event
from .concurrency import lock_for_update, conditional_update
from .laptop_service import LaptopStatus
from laptrack.time_utils import utcnow


logger = logging.getLogger(__name__)


REPORT_STATUS_PENDING = "pending_approval"
REPORT_STATUS_APPROVED = "approved"
REPORT_STATUSES = (REPORT_STATUS_PENDING, REPORT_STATUS_APPROVED)

MAX_NOTES_LENGTH = 1000

PHOTO_FIELDS = (
    "photo_serial_number",
    "photo_external_condition",
    "photo_working_condition",
)


def get_reception_report(report_id: int) -> ReceptionReport:
    report = db.session.query(ReceptionReport).filter_by(id=report_id).first()
    if not report:
        raise NotFoundError(f"Reception report {report_id} not found")
    return report


def get_reception_report_for_laptop(laptop_id: int) -> ReceptionReport:
    report = db.session.query(ReceptionReport).filter_by(laptop_id=laptop_id).first()
    if not report:
        raise NotFoundError(f"No reception report found for laptop {laptop_id}")
    return report


def _latest_shipment_id(laptop_id: int) -> int | None:
    link = (
        db.session.query(ShipmentLaptop)
        .filter_by(laptop_id=laptop_id)
        .order_by(ShipmentLaptop.id.desc())
        .first()
    )
    return link.shipment_id if link else None


def create_reception_report(
    *,
    laptop_id: int,
    warehouse_user_id: int,
    photo_serial_number: str,
    photo_external_condition: str,
    photo_working_condition: str,
    notes: Optional[str] = None,
    shipment_id: int | None = None,
) -> ReceptionReport:
    """
    Record the warehouse inspection of a received laptop.

    Args:
        laptop_id: Laptop being inspected (must be at_warehouse)
        warehouse_user_id: Inspecting user
        photo_*: http(s) references to the three required photos
        notes: Free text, at most 1000 characters
        shipment_id: Inbound shipment; defaults to the laptop's latest shipment

    Returns:
        The created ReceptionReport in pending_approval (committed)

    Raises:
        NotFoundError: Laptop does not exist
        LifecycleError: Laptop is not at the warehouse
        ValidationError: Missing photos, long notes, or a report already exists
    """
    laptop = db.session.query(Laptop).filter_by(id=laptop_id).first()
    if not laptop:
        raise NotFoundError(f"Laptop {laptop_id} not found")

    if laptop.status != LaptopStatus.AT_WAREHOUSE:
        raise LifecycleError(
            f"Laptop {laptop_id} is '{laptop.status}'; only laptops at the warehouse can be received"
        )

    if db.session.query(ReceptionReport).filter_by(laptop_id=laptop_id).first() is not None:
        raise ValidationError(f"Laptop {laptop_id} already has a reception report")

    photos = {
        "photo_serial_number": photo_serial_number,
        "photo_external_condition": photo_external_condition,
        "photo_working_condition": photo_working_condition,
    }
    for field in PHOTO_FIELDS:
        value = (photos[field] or "").strip()
        if not value:
            raise ValidationError(f"{field.replace('_', ' ')} is required")
        if not is_http_url(value):
            raise ValidationError(f"{field.replace('_', ' ')} must be an http(s) URL")
        photos[field] = value

    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"notes must be at most {MAX_NOTES_LENGTH} characters")

    if shipment_id is None:
        shipment_id = _latest_shipment_id(laptop_id)

    tracking_number = None
    if shipment_id is not None:
        shipment = db.session.get(Shipment, shipment_id)
        if shipment is None:
            raise ValidationError(f"Shipment {shipment_id} not found")
        tracking_number = shipment.tracking_number

    report = ReceptionReport(
        laptop_id=laptop_id,
        shipment_id=shipment_id,
        client_company_id=laptop.client_company_id,
        tracking_number=tracking_number,
        warehouse_user_id=warehouse_user_id,
        received_at=utcnow(),
        notes=notes,
        status=REPORT_STATUS_PENDING,
        **photos,
    )
    db.session.add(report)
    db.session.flush()

    append_audit_event(
        action="reception_report.created",
        entity_type="reception_report",
        entity_id=report.id,
        actor_user_id=warehouse_user_id,
        details={"laptop_id": laptop_id, "shipment_id": shipment_id},
    )

    db.session.commit()
    return report


def approve_reception_report(report_id: int, approved_by_user_id: int) -> ReceptionReport:
    """
    Approve a reception report and make its laptop available, atomically.

    Args:
        report_id: Report to approve
        approved_by_user_id: Approving user

    Returns:
        The approved ReceptionReport

    Raises:
        NotFoundError: Report does not exist
        ReceptionReportAlreadyApprovedError: Report was approved before
        ConcurrencyConflictError: Report or laptop changed state since it was read
            (e.g. the laptop was retired); nothing is written
    """
    report = lock_for_update(
        db.session.query(ReceptionReport).filter_by(id=report_id)
    ).first()
    if not report:
        raise NotFoundError(f"Reception report {report_id} not found")

    if report.status == REPORT_STATUS_APPROVED:
        db.session.rollback()
        raise ReceptionReportAlreadyApprovedError(
            f"Reception report {report_id} is already approved"
        )

    laptop_id = report.laptop_id
    now = utcnow()

    report_rows = conditional_update(
        ReceptionReport,
        row_id=report_id,
        expected={"status": REPORT_STATUS_PENDING},
        values={
            "status": REPORT_STATUS_APPROVED,
            "approved_by": approved_by_user_id,
            "approved_at": now,
        },
    )
    laptop_rows = 0
    if report_rows == 1:
        laptop_rows = conditional_update(
            Laptop,
            row_id=laptop_id,
            expected={"status": LaptopStatus.AT_WAREHOUSE.value},
            values={"status": LaptopStatus.AVAILABLE.value},
        )

    if report_rows != 1 or laptop_rows != 1:
        db.session.rollback()
        logger.warning(
            "Approval of reception report %s lost a race (report rows=%s, laptop rows=%s)",
            report_id,
            report_rows,
            laptop_rows,
        )
        if report_rows != 1:
            raise ConcurrencyConflictError(
                f"Reception report {report_id} changed state concurrently"
            )
        raise ConcurrencyConflictError(
            f"Laptop {laptop_id} is no longer at the warehouse; approval of report {report_id} was not applied"
        )

    append_audit_event(
        action="reception_report.approved",
        entity_type="reception_report",
        entity_id=report_id,
        actor_user_id=approved_by_user_id,
        occurred_at=now,
        details={"laptop_id": laptop_id, "laptop_status": LaptopStatus.AVAILABLE.value},
    )

    db.session.commit()
    logger.info("Reception report %s approved; laptop %s is available", report_id, laptop_id)
    return get_reception_report(report_id)


def list_reception_reports(status: str | None = None) -> list[ReceptionReport]:
    """Reports newest first, optionally filtered by status."""
    query = db.session.query(ReceptionReport)
    if status:
        if status not in REPORT_STATUSES:
            raise ValidationError(
                f"Invalid report status '{status}'. Must be one of: {', '.join(REPORT_STATUSES)}"
            )
        query = query.filter(ReceptionReport.status == status)
    return query.order_by(ReceptionReport.received_at.desc(), ReceptionReport.id.desc()).all()
