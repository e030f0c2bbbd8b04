# Overview: Service-layer operations for laptops; inventory status model and guards.

"""
Laptop Status Model

PATH:
    in_transit_to_warehouse -> at_warehouse -> available -> in_transit_to_engineer -> delivered

SIDE BRANCH:
    retired, reachable from any status except delivered (administrative action)

RULES:
1. Forward moves along PATH may skip ahead (a laptop is tracked per unit,
   independently of any one shipment's stage), but never past available:
   a laptop that has not passed inspection cannot head to an engineer.
2. No backward moves, no self-transitions, nothing leaves delivered or retired.
3. Entry into available is NOT allowed here. The only writer of available is
   reception_service.approve_reception_report, which couples it to an approved
   inspection record.
4. New laptops never start as available.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Laptop, ClientCompany, SoftwareEngineer
from ..validation import (
    ValidationError,
    LifecycleError,
    ConcurrencyConflictError,
    NotFoundError,
)
from .audit_service import append_audit_event
from .concurrency import conditional_update


logger = logging.getLogger(__name__)


class LaptopStatus(str, Enum):
    AVAILABLE = "available"
    IN_TRANSIT_TO_WAREHOUSE = "in_transit_to_warehouse"
    AT_WAREHOUSE = "at_warehouse"
    IN_TRANSIT_TO_ENGINEER = "in_transit_to_engineer"
    DELIVERED = "delivered"
    RETIRED = "retired"

    def __str__(self) -> str:
        return self.value


LAPTOP_STATUS_PATH: tuple[LaptopStatus, ...] = (
    LaptopStatus.IN_TRANSIT_TO_WAREHOUSE,
    LaptopStatus.AT_WAREHOUSE,
    LaptopStatus.AVAILABLE,
    LaptopStatus.IN_TRANSIT_TO_ENGINEER,
    LaptopStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({LaptopStatus.DELIVERED, LaptopStatus.RETIRED})

# Before and after the inspection gate; no move crosses from one set to the other
PRE_INSPECTION_STATUSES = frozenset({LaptopStatus.IN_TRANSIT_TO_WAREHOUSE, LaptopStatus.AT_WAREHOUSE})
POST_INSPECTION_STATUSES = frozenset({LaptopStatus.IN_TRANSIT_TO_ENGINEER, LaptopStatus.DELIVERED})

# Statuses a laptop may be registered in
INITIAL_STATUSES = (LaptopStatus.IN_TRANSIT_TO_WAREHOUSE, LaptopStatus.AT_WAREHOUSE)

_DISPLAY_OVERRIDES = {
    LaptopStatus.AVAILABLE: "Available at Warehouse",
    LaptopStatus.AT_WAREHOUSE: "Received at Warehouse",
}


def parse_laptop_status(value: str | LaptopStatus | None) -> LaptopStatus:
    """Raises ValidationError for missing or unknown values."""
    if not value:
        raise ValidationError("status is required")
    try:
        return LaptopStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid laptop status '{value}'. Must be one of: "
            f"{', '.join(s.value for s in LaptopStatus)}"
        )


def status_display_name(status: str | LaptopStatus) -> str:
    """Human label: 'Received at Warehouse', 'In Transit To Engineer', ..."""
    try:
        parsed = LaptopStatus(status)
    except ValueError:
        return str(status)
    if parsed in _DISPLAY_OVERRIDES:
        return _DISPLAY_OVERRIDES[parsed]
    return " ".join(word.capitalize() for word in parsed.value.split("_"))


def laptop_statuses_in_order() -> list[LaptopStatus]:
    return [*LAPTOP_STATUS_PATH, LaptopStatus.RETIRED]


def laptop_statuses_for_new_laptop() -> list[LaptopStatus]:
    """
    Statuses offered when warehouse staff register a laptop by hand.

    Only at_warehouse: every unit must then get a reception report approved
    before it becomes available.
    """
    return [LaptopStatus.AT_WAREHOUSE]


def can_change_to_available(laptop: Laptop, report) -> bool:
    """True iff the laptop is at the warehouse and its reception report is approved."""
    from .reception_service import REPORT_STATUS_APPROVED

    if laptop.status != LaptopStatus.AT_WAREHOUSE:
        return False
    if report is None:
        return False
    return report.status == REPORT_STATUS_APPROVED


def can_change_status(current: str | LaptopStatus, new: str | LaptopStatus) -> bool:
    """
    Check a laptop status change outside the approval path.

    available is never reachable here (see approve_reception_report).
    """
    current = LaptopStatus(current)
    new = LaptopStatus(new)

    if current == new:
        return False
    if current in TERMINAL_STATUSES:
        return False
    if new == LaptopStatus.AVAILABLE:
        return False
    if new == LaptopStatus.RETIRED:
        return True
    if current in PRE_INSPECTION_STATUSES and new in POST_INSPECTION_STATUSES:
        return False

    return LAPTOP_STATUS_PATH.index(new) > LAPTOP_STATUS_PATH.index(current)


def get_laptop(laptop_id: int) -> Laptop:
    laptop = db.session.query(Laptop).filter_by(id=laptop_id).first()
    if not laptop:
        raise NotFoundError(f"Laptop {laptop_id} not found")
    return laptop


def get_laptop_by_serial(serial_number: str) -> Laptop | None:
    return db.session.query(Laptop).filter_by(serial_number=serial_number).first()


def create_laptop(
    *,
    serial_number: str,
    status: str | LaptopStatus = LaptopStatus.AT_WAREHOUSE,
    actor_user_id: int | None = None,
    sku: str | None = None,
    brand: str | None = None,
    model: str | None = None,
    cpu: str | None = None,
    ram_gb: str | None = None,
    ssd_gb: str | None = None,
    client_company_id: int | None = None,
    software_engineer_id: int | None = None,
) -> Laptop:
    """
    Register a laptop.

    Args:
        serial_number: Manufacturer serial (required, unique)
        status: in_transit_to_warehouse or at_warehouse
        actor_user_id: User registering the laptop (audit only)

    Returns:
        The created Laptop (committed)

    Raises:
        ValidationError: Missing/duplicate serial, bad status or references
    """
    serial_number = (serial_number or "").strip()
    if not serial_number:
        raise ValidationError("serial number is required")

    status = parse_laptop_status(status)
    if status == LaptopStatus.AVAILABLE:
        raise ValidationError(
            "Laptops cannot be created as available; "
            "they become available when their reception report is approved"
        )
    if status not in INITIAL_STATUSES:
        raise ValidationError(
            f"New laptops must start as one of: {', '.join(s.value for s in INITIAL_STATUSES)}"
        )

    if get_laptop_by_serial(serial_number) is not None:
        raise ValidationError(f"A laptop with serial number {serial_number} already exists")

    if client_company_id is not None and db.session.get(ClientCompany, client_company_id) is None:
        raise ValidationError(f"Client company {client_company_id} not found")
    if software_engineer_id is not None and db.session.get(SoftwareEngineer, software_engineer_id) is None:
        raise ValidationError(f"Software engineer {software_engineer_id} not found")

    laptop = Laptop(
        serial_number=serial_number,
        sku=sku,
        brand=brand,
        model=model,
        cpu=cpu,
        ram_gb=ram_gb,
        ssd_gb=ssd_gb,
        status=status.value,
        client_company_id=client_company_id,
        software_engineer_id=software_engineer_id,
    )
    db.session.add(laptop)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"A laptop with serial number {serial_number} already exists")

    append_audit_event(
        action="laptop.created",
        entity_type="laptop",
        entity_id=laptop.id,
        actor_user_id=actor_user_id,
        details={"status": status.value, "serial_number": serial_number},
    )

    db.session.commit()
    return laptop


def update_laptop_status(
    laptop_id: int,
    new_status: str | LaptopStatus,
    *,
    actor_user_id: int | None = None,
    note: Optional[str] = None,
) -> Laptop:
    """
    Move a laptop to a new status outside the approval path.

    Raises:
        NotFoundError: Laptop does not exist
        ValidationError: Unknown status
        LifecycleError: Change not allowed (including any attempt at available)
        ConcurrencyConflictError: Laptop changed status while this ran
    """
    new_status = parse_laptop_status(new_status)
    laptop = get_laptop(laptop_id)
    old_status = laptop.status

    if new_status == LaptopStatus.AVAILABLE:
        raise LifecycleError(
            f"Laptop {laptop_id} can only become available through reception report approval"
        )
    if LaptopStatus(old_status) in PRE_INSPECTION_STATUSES and new_status in POST_INSPECTION_STATUSES:
        raise LifecycleError(
            f"Laptop {laptop_id} has not passed inspection; approve its reception report "
            f"before moving it to '{new_status.value}'"
        )
    if not can_change_status(old_status, new_status):
        raise LifecycleError(
            f"Cannot change laptop {laptop_id} from '{old_status}' to '{new_status.value}'"
        )

    affected = conditional_update(
        Laptop,
        row_id=laptop_id,
        expected={"status": old_status},
        values={"status": new_status.value},
    )
    if affected != 1:
        db.session.rollback()
        logger.warning(
            "Laptop %s status changed concurrently (expected %s)", laptop_id, old_status
        )
        raise ConcurrencyConflictError(
            f"Laptop {laptop_id} changed state concurrently; expected '{old_status}'"
        )

    append_audit_event(
        action="laptop.status_updated",
        entity_type="laptop",
        entity_id=laptop_id,
        actor_user_id=actor_user_id,
        details={"old_status": old_status, "new_status": new_status.value, "note": note},
    )

    db.session.commit()
    logger.info("Laptop %s: %s -> %s", laptop_id, old_status, new_status.value)
    return get_laptop(laptop_id)


def retire_laptop(laptop_id: int, *, actor_user_id: int | None = None, reason: Optional[str] = None) -> Laptop:
    """Administrative retirement; allowed from any status except delivered."""
    return update_laptop_status(
        laptop_id,
        LaptopStatus.RETIRED,
        actor_user_id=actor_user_id,
        note=reason,
    )


def list_laptops(
    *,
    status: str | LaptopStatus | None = None,
    client_company_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Laptop], int]:
    """
    List laptops, newest first.

    Returns:
        Tuple of (list of laptops, total count)
    """
    query = db.session.query(Laptop)

    if status:
        query = query.filter(Laptop.status == parse_laptop_status(status).value)
    if client_company_id:
        query = query.filter(Laptop.client_company_id == client_company_id)

    total = query.count()
    query = query.order_by(Laptop.created_at.desc(), Laptop.id.desc())
    return query.offset(offset).limit(limit).all(), total
