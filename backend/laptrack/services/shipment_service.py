# Overview: Service-layer operations for shipments; creation, laptop linkage and engineer assignment.

"""
Shipment Service

WHY: Creation-time and assignment-time checks live here so that the state
machine (lifecycle_service) only ever sees well-formed shipments.

CREATION:
- The variant is fixed for the life of the shipment.
- The shipment starts at its variant's first stage:
  pending_pickup_from_client for single_full_journey and bulk_to_warehouse,
  released_from_warehouse for warehouse_to_engineer (its release is stamped).
- Ticket key format is always checked; existence only with a ticket_validator.

LAPTOP LINKAGE:
- Laptops coming from a client (single, bulk) must be in_transit_to_warehouse.
- A warehouse_to_engineer laptop must be available (inspected and approved);
  linking it moves the laptop to in_transit_to_engineer.
- A laptop rides in at most one undelivered shipment.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from ..extensions import db
from ..models import Shipment, ShipmentLaptop, Laptop, ClientCompany, SoftwareEngineer
from ..validation import ValidationError, LifecycleError, NotFoundError, TicketValidator
from .audit_service import append_audit_event
from .concurrency import lock_for_update, stale_write_guard
from .laptop_service import LaptopStatus, can_change_status
from .lifecycle_service import (
    MILESTONE_FIELDS,
    validate_shipment,
    validate_variant_constraints,
)
from .shipment_stages import (
    ShipmentStage,
    ShipmentVariant,
    initial_stage,
    parse_stage,
    parse_variant,
    terminal_stage,
)
from laptrack.time_utils import utcnow


logger = logging.getLogger(__name__)


# Laptop status required to join a shipment of each variant
LINKABLE_LAPTOP_STATUS = {
    ShipmentVariant.SINGLE_FULL_JOURNEY: LaptopStatus.IN_TRANSIT_TO_WAREHOUSE,
    ShipmentVariant.BULK_TO_WAREHOUSE: LaptopStatus.IN_TRANSIT_TO_WAREHOUSE,
    ShipmentVariant.WAREHOUSE_TO_ENGINEER: LaptopStatus.AVAILABLE,
}


def _require_variant(shipment_type) -> ShipmentVariant:
    variant = parse_variant(shipment_type)
    if variant is None:
        raise ValidationError(
            f"Invalid shipment type '{shipment_type}'. Must be one of: "
            f"{', '.join(v.value for v in ShipmentVariant)}"
        )
    return variant


def _active_shipment_for_laptop(laptop_id: int, *, exclude_shipment_id: int | None = None) -> Shipment | None:
    q = (
        db.session.query(Shipment)
        .join(ShipmentLaptop, ShipmentLaptop.shipment_id == Shipment.id)
        .filter(ShipmentLaptop.laptop_id == laptop_id)
        .filter(Shipment.status != ShipmentStage.DELIVERED.value)
    )
    if exclude_shipment_id is not None:
        q = q.filter(Shipment.id != exclude_shipment_id)
    return q.first()


def _link_laptop(shipment: Shipment, laptop: Laptop, variant: ShipmentVariant) -> None:
    """Validate and link; moves a warehouse_to_engineer laptop out of the available pool."""
    required = LINKABLE_LAPTOP_STATUS[variant]
    if laptop.status != required:
        raise ValidationError(
            f"Laptop {laptop.id} is '{laptop.status}'; {variant.value} shipments "
            f"only accept laptops that are '{required.value}'"
        )

    if (
        laptop.client_company_id is not None
        and laptop.client_company_id != shipment.client_company_id
    ):
        raise ValidationError(
            f"Laptop {laptop.id} belongs to a different client company"
        )

    active = _active_shipment_for_laptop(laptop.id, exclude_shipment_id=shipment.id)
    if active is not None:
        raise ValidationError(
            f"Laptop {laptop.id} is already in active shipment {active.id}"
        )

    if any(link.laptop_id == laptop.id for link in shipment.laptop_links):
        raise ValidationError(f"Laptop {laptop.id} is already in shipment {shipment.id}")

    if len(shipment.laptop_links) >= shipment.laptop_count:
        raise ValidationError(
            f"Shipment {shipment.id} already carries its {shipment.laptop_count} laptop(s)"
        )

    shipment.laptop_links.append(ShipmentLaptop(laptop=laptop))

    if laptop.client_company_id is None:
        laptop.client_company_id = shipment.client_company_id

    if variant == ShipmentVariant.WAREHOUSE_TO_ENGINEER:
        if not can_change_status(laptop.status, LaptopStatus.IN_TRANSIT_TO_ENGINEER):
            raise LifecycleError(f"Laptop {laptop.id} cannot be sent to an engineer")
        laptop.status = LaptopStatus.IN_TRANSIT_TO_ENGINEER.value
        laptop.software_engineer_id = shipment.software_engineer_id
    elif variant == ShipmentVariant.SINGLE_FULL_JOURNEY and shipment.software_engineer_id is not None:
        laptop.software_engineer_id = shipment.software_engineer_id


def create_shipment(
    *,
    shipment_type,
    client_company_id: int,
    jira_ticket_number: str,
    laptop_count: int | None = None,
    software_engineer_id: int | None = None,
    laptop_ids: Optional[Iterable[int]] = None,
    pickup_scheduled_date: Optional[datetime] = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
    ticket_validator: Optional[TicketValidator] = None,
) -> Shipment:
    """
    Create a shipment at its variant's first stage.

    Args:
        shipment_type: single_full_journey, bulk_to_warehouse or warehouse_to_engineer
        client_company_id: Owning client (REQUIRED)
        jira_ticket_number: PROJECT-NUMBER key (REQUIRED)
        laptop_count: Declared number of laptops (defaults to the linked laptops, or 1)
        software_engineer_id: Recipient (forbidden for bulk, required for warehouse_to_engineer)
        laptop_ids: Laptops to link now (required for warehouse_to_engineer)
        pickup_scheduled_date: Pickup date agreed with the client, if known
        ticket_validator: Existence check from the ticketing collaborator; None skips it

    Returns:
        The created Shipment (committed)

    Raises:
        ValidationError: Any validation failure; nothing is written
    """
    variant = _require_variant(shipment_type)
    laptop_ids = list(laptop_ids or [])

    if laptop_count is None:
        laptop_count = len(laptop_ids) or 1

    validate_variant_constraints(variant, laptop_count, software_engineer_id)

    if variant == ShipmentVariant.WAREHOUSE_TO_ENGINEER and len(laptop_ids) != 1:
        raise ValidationError("warehouse-to-engineer shipments must name the laptop being sent")

    if not client_company_id or db.session.get(ClientCompany, client_company_id) is None:
        raise ValidationError(f"Client company {client_company_id} not found")
    if software_engineer_id is not None and db.session.get(SoftwareEngineer, software_engineer_id) is None:
        raise ValidationError(f"Software engineer {software_engineer_id} not found")

    stage = initial_stage(variant)
    shipment = Shipment(
        shipment_type=variant.value,
        status=stage.value,
        client_company_id=client_company_id,
        software_engineer_id=software_engineer_id,
        laptop_count=laptop_count,
        jira_ticket_number=(jira_ticket_number or "").strip(),
        pickup_scheduled_date=pickup_scheduled_date,
        notes=notes,
    )
    validate_shipment(shipment, ticket_validator)

    # A shipment created mid-pipeline has already reached its first milestone
    field = MILESTONE_FIELDS.get(stage)
    if field is not None and getattr(shipment, field) is None:
        setattr(shipment, field, utcnow())

    with stale_write_guard(f"A linked laptop changed concurrently; shipment {shipment.jira_ticket_number} was not created"):
        try:
            db.session.add(shipment)
            for laptop_id in laptop_ids:
                laptop = lock_for_update(db.session.query(Laptop).filter_by(id=laptop_id)).first()
                if laptop is None:
                    raise ValidationError(f"Laptop {laptop_id} not found")
                _link_laptop(shipment, laptop, variant)

            db.session.flush()
        except ValidationError:
            db.session.rollback()
            raise

        append_audit_event(
            action="shipment.created",
            entity_type="shipment",
            entity_id=shipment.id,
            actor_user_id=actor_user_id,
            details={
                "shipment_type": variant.value,
                "status": stage.value,
                "laptop_count": laptop_count,
                "laptop_ids": laptop_ids,
                "jira_ticket_number": shipment.jira_ticket_number,
            },
        )

        db.session.commit()
    logger.info("Created %s shipment %s (%s)", variant.value, shipment.id, shipment.jira_ticket_number)
    return shipment


def add_laptop_to_shipment(shipment_id: int, laptop_id: int, *, actor_user_id: int | None = None) -> Shipment:
    """
    Link an existing laptop to a shipment that has room for it.

    Raises:
        NotFoundError: Shipment does not exist
        ValidationError: Laptop missing or not eligible, shipment full or finished
        ConcurrencyConflictError: Shipment or laptop was written by someone else meanwhile
    """
    shipment = lock_for_update(db.session.query(Shipment).filter_by(id=shipment_id)).first()
    if shipment is None:
        raise NotFoundError(f"Shipment {shipment_id} not found")

    try:
        variant = _require_variant(shipment.shipment_type)
        if shipment.status == terminal_stage(variant):
            raise ValidationError(f"Cannot add laptops to shipment {shipment_id} at '{shipment.status}'")
        if variant == ShipmentVariant.WAREHOUSE_TO_ENGINEER:
            raise ValidationError("warehouse-to-engineer shipments carry the laptop named at creation")

        laptop = lock_for_update(db.session.query(Laptop).filter_by(id=laptop_id)).first()
        if laptop is None:
            raise ValidationError(f"Laptop {laptop_id} not found")

        _link_laptop(shipment, laptop, variant)
        db.session.flush()
    except ValidationError:
        db.session.rollback()
        raise

    with stale_write_guard(f"Shipment {shipment_id} changed concurrently; laptop {laptop_id} was not added"):
        append_audit_event(
            action="shipment.laptop_added",
            entity_type="shipment",
            entity_id=shipment.id,
            actor_user_id=actor_user_id,
            details={"laptop_id": laptop_id},
        )
        db.session.commit()
    return shipment


def assign_engineer(shipment_id: int, software_engineer_id: int, *, actor_user_id: int | None = None) -> Shipment:
    """
    Assign (or reassign) the receiving engineer.

    Single-journey shipments pass the assignment on to their laptop.
    Bulk shipments never have an engineer.
    """
    shipment = lock_for_update(db.session.query(Shipment).filter_by(id=shipment_id)).first()
    if shipment is None:
        raise NotFoundError(f"Shipment {shipment_id} not found")

    try:
        variant = _require_variant(shipment.shipment_type)
        if variant == ShipmentVariant.BULK_TO_WAREHOUSE:
            raise ValidationError("bulk shipments cannot have a software engineer assigned")
        if parse_stage(shipment.status) == ShipmentStage.DELIVERED:
            raise LifecycleError(f"Shipment {shipment_id} is already delivered")
        if db.session.get(SoftwareEngineer, software_engineer_id) is None:
            raise ValidationError(f"Software engineer {software_engineer_id} not found")
    except ValidationError:
        db.session.rollback()
        raise

    previous = shipment.software_engineer_id
    with stale_write_guard(f"Shipment {shipment_id} changed concurrently; engineer was not assigned"):
        shipment.software_engineer_id = software_engineer_id
        if variant == ShipmentVariant.SINGLE_FULL_JOURNEY:
            for laptop in shipment.laptops:
                laptop.software_engineer_id = software_engineer_id

        append_audit_event(
            action="shipment.engineer_assigned",
            entity_type="shipment",
            entity_id=shipment.id,
            actor_user_id=actor_user_id,
            details={"engineer_id": software_engineer_id, "previous_engineer_id": previous},
        )
        db.session.commit()
    return shipment


def list_shipments(
    *,
    status=None,
    shipment_type=None,
    client_company_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Shipment], int]:
    """
    List shipments, newest first.

    Returns:
        Tuple of (list of shipments, total count)
    """
    query = db.session.query(Shipment)

    if status:
        stage = parse_stage(status)
        if stage is None:
            raise ValidationError(f"Invalid status '{status}'")
        query = query.filter(Shipment.status == stage.value)
    if shipment_type:
        query = query.filter(Shipment.shipment_type == _require_variant(shipment_type).value)
    if client_company_id:
        query = query.filter(Shipment.client_company_id == client_company_id)

    total = query.count()
    query = query.order_by(Shipment.created_at.desc(), Shipment.id.desc())
    return query.offset(offset).limit(limit).all(), total
