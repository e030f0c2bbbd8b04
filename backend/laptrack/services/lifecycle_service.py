# Overview: Shipment state machine; stage validation, milestone stamping and the guarded transition entry point.

"""
Shipment Lifecycle Service

================================================================================
PURPOSE: Enforce strictly sequential stage progression per shipment variant
================================================================================

STATE MACHINE:
    Each variant owns a contiguous slice of the global stage order
    (see shipment_stages.py). Within the slice the only legal move is to the
    stage immediately after the current one.

RULES (NON-NEGOTIABLE):
1. Cannot skip stages (pending_pickup -> at_warehouse is forbidden)
2. Cannot reverse stages (at_warehouse -> picked_up is forbidden)
3. Cannot "transition" to the current stage (a no-op write would hide a missed change)
4. Cannot leave the variant's slice (a bulk shipment stops at the warehouse)
5. Entering a milestone stage stamps its timestamp; transit stages have none

ENTRY POINTS:
- next_allowed_stage / can_transition: pure checks
- apply_transition: trusted, NON-validating mutation (internal use)
- transition_shipment: the sanctioned entry point for callers; loads, locks,
  validates, applies, syncs linked laptops, audits and commits

================================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Optional

from ..extensions import db
from ..models import Shipment
from ..validation import (
    ValidationError,
    LifecycleError,
    IllegalTransitionError,
    NotFoundError,
    TicketValidator,
    validate_ticket_key,
)
from .audit_service import append_audit_event
from .concurrency import lock_for_update, stale_write_guard
from .laptop_service import (
    LaptopStatus,
    PRE_INSPECTION_STATUSES,
    POST_INSPECTION_STATUSES,
    can_change_status,
)
from .shipment_stages import (
    ShipmentStage,
    ShipmentVariant,
    parse_stage,
    parse_variant,
    stages_for_variant,
)
from laptrack.time_utils import utcnow, to_naive_utc


logger = logging.getLogger(__name__)


# Stage -> milestone column stamped when the stage is entered
MILESTONE_FIELDS = MappingProxyType({
    ShipmentStage.PICKUP_SCHEDULED: "pickup_scheduled_date",
    ShipmentStage.PICKED_UP_FROM_CLIENT: "picked_up_at",
    ShipmentStage.AT_WAREHOUSE: "arrived_warehouse_at",
    ShipmentStage.RELEASED_FROM_WAREHOUSE: "released_warehouse_at",
    ShipmentStage.DELIVERED: "delivered_at",
})

# Stage -> status the shipment's laptops move to, for variants that carry one laptop
LAPTOP_STATUS_FOR_STAGE = MappingProxyType({
    ShipmentStage.IN_TRANSIT_TO_WAREHOUSE: LaptopStatus.IN_TRANSIT_TO_WAREHOUSE,
    ShipmentStage.AT_WAREHOUSE: LaptopStatus.AT_WAREHOUSE,
    ShipmentStage.IN_TRANSIT_TO_ENGINEER: LaptopStatus.IN_TRANSIT_TO_ENGINEER,
    ShipmentStage.DELIVERED: LaptopStatus.DELIVERED,
})

# Bulk laptops are received one by one at the warehouse, never synced
LAPTOP_SYNC_VARIANTS = frozenset({
    ShipmentVariant.SINGLE_FULL_JOURNEY,
    ShipmentVariant.WAREHOUSE_TO_ENGINEER,
})

# Stages on the engineer leg; a single-journey shipment needs an engineer to enter them
ENGINEER_LEG_STAGES = frozenset({
    ShipmentStage.RELEASED_FROM_WAREHOUSE,
    ShipmentStage.IN_TRANSIT_TO_ENGINEER,
    ShipmentStage.DELIVERED,
})

COURIERS = ("UPS", "FedEx", "DHL")

_TRACKING_URLS = (
    ("ups", "https://www.ups.com/track?tracknum="),
    ("dhl", "http://www.dhl.com/en/express/tracking.html?AWB="),
    ("fedex", "https://www.fedex.com/fedextrack/?tracknumbers="),
)


def next_allowed_stage(shipment) -> Optional[ShipmentStage]:
    """
    The unique stage this shipment may move to next, or None.

    None means either the shipment is at its variant's terminal stage, or its
    stage/variant is not a valid combination. The latter is a data-integrity
    fault and is logged at error level.
    """
    variant = parse_variant(shipment.shipment_type)
    stage = parse_stage(shipment.status)
    if variant is None or stage is None:
        logger.error(
            "Shipment %s has unrecognized variant/stage %r/%r",
            getattr(shipment, "id", None), shipment.shipment_type, shipment.status,
        )
        return None

    allowed = stages_for_variant(variant)
    if stage not in allowed:
        logger.error(
            "Shipment %s is at stage %s which is not part of variant %s",
            getattr(shipment, "id", None), stage.value, variant.value,
        )
        return None

    index = allowed.index(stage)
    if index + 1 >= len(allowed):
        return None
    return allowed[index + 1]


def can_transition(shipment, proposed_stage) -> bool:
    """
    Check if moving the shipment to proposed_stage is legal.

    True iff proposed_stage belongs to the shipment's variant AND is exactly the
    next stage. Self-transitions, skips and reversals are all False.
    """
    proposed = parse_stage(proposed_stage)
    variant = parse_variant(shipment.shipment_type)
    if proposed is None or variant is None:
        return False
    if proposed not in stages_for_variant(variant):
        return False
    return next_allowed_stage(shipment) == proposed


def apply_transition(shipment, new_stage, eta: Optional[datetime] = None) -> None:
    """
    Set the stage and stamp its milestone. Does NOT validate legality.

    Callers outside this module must go through transition_shipment.

    - pickup_from_client_scheduled keeps an already-set scheduled date
    - in_transit_to_engineer stores eta verbatim when supplied
    - every other milestone entered is stamped with utcnow()
    """
    stage = ShipmentStage(new_stage)
    shipment.status = stage.value
    now = utcnow()

    field = MILESTONE_FIELDS.get(stage)
    if field is not None:
        if stage == ShipmentStage.PICKUP_SCHEDULED:
            if getattr(shipment, field) is None:
                setattr(shipment, field, now)
        else:
            setattr(shipment, field, now)

    if stage == ShipmentStage.IN_TRANSIT_TO_ENGINEER and eta is not None:
        shipment.eta_to_engineer = eta


def validate_variant_constraints(
    variant,
    laptop_count: int | None,
    software_engineer_id: int | None,
) -> None:
    """
    Engineer-assignment and laptop-count rules per variant.

    - bulk_to_warehouse: no engineer, at least 2 laptops
    - warehouse_to_engineer: engineer required, exactly 1 laptop
    - single_full_journey: engineer optional, exactly 1 laptop

    Raises:
        ValidationError: rule broken (message says which)
    """
    parsed = parse_variant(variant)
    if parsed is None:
        raise ValidationError(
            f"Invalid shipment type '{variant}'. Must be one of: "
            f"{', '.join(v.value for v in ShipmentVariant)}"
        )

    if laptop_count is None or laptop_count < 1:
        raise ValidationError("laptop count must be at least 1")

    if parsed == ShipmentVariant.BULK_TO_WAREHOUSE:
        if software_engineer_id is not None:
            raise ValidationError("bulk shipments cannot have a software engineer assigned")
        if laptop_count < 2:
            raise ValidationError("bulk shipments must have at least 2 laptops")
    elif parsed == ShipmentVariant.WAREHOUSE_TO_ENGINEER:
        if software_engineer_id is None:
            raise ValidationError("warehouse-to-engineer shipments require a software engineer")
        if laptop_count != 1:
            raise ValidationError("warehouse-to-engineer shipments must have exactly 1 laptop")
    else:
        if laptop_count != 1:
            raise ValidationError("single shipments must have exactly 1 laptop")


def validate_shipment(shipment, ticket_validator: Optional[TicketValidator] = None) -> None:
    """
    Well-formedness check run before persisting a shipment.

    - client company reference present
    - stage is a recognized value and part of the variant
    - ticket key present and PROJECT-NUMBER; existence checked with
      ticket_validator when one is supplied (None skips it)

    Raises:
        ValidationError
    """
    if not shipment.client_company_id:
        raise ValidationError("client company ID is required")

    if not shipment.status:
        raise ValidationError("status is required")
    stage = parse_stage(shipment.status)
    if stage is None:
        raise ValidationError("invalid status")

    variant = parse_variant(shipment.shipment_type)
    if variant is None:
        raise ValidationError(f"invalid shipment type '{shipment.shipment_type}'")
    if stage not in stages_for_variant(variant):
        raise ValidationError(
            f"status '{stage.value}' is not valid for {variant.value} shipments"
        )

    validate_ticket_key(shipment.jira_ticket_number, ticket_validator)


def is_valid_courier(courier_name: str | None) -> bool:
    return courier_name in COURIERS


def tracking_url(shipment) -> str:
    """
    Courier tracking link for the shipment's tracking number.

    Matches the courier by substring so service names such as
    "FedEx Express" or "UPS Next Day Air" resolve. Empty string when unknown.
    """
    if not shipment.courier_name:
        return ""
    courier = shipment.courier_name.strip().lower()
    for needle, base_url in _TRACKING_URLS:
        if needle in courier:
            return base_url + (shipment.tracking_number or "")
    return ""


def _check_stage_entry(
    shipment: Shipment,
    stage: ShipmentStage,
    courier_name: str | None,
    tracking_number: str | None,
) -> None:
    """Preconditions for entering a stage, beyond sequencing."""
    validate_variant_constraints(
        shipment.shipment_type,
        shipment.laptop_count,
        shipment.software_engineer_id,
    )

    if stage == ShipmentStage.PICKUP_SCHEDULED:
        if not (tracking_number or "").strip():
            raise ValidationError("Tracking number is required when scheduling pickup from client")
        if not courier_name:
            raise ValidationError("Courier name is required when scheduling pickup from client")
        if not is_valid_courier(courier_name):
            raise ValidationError(f"Invalid courier name. Must be one of: {', '.join(COURIERS)}")

    if (
        shipment.shipment_type == ShipmentVariant.SINGLE_FULL_JOURNEY
        and stage in ENGINEER_LEG_STAGES
        and shipment.software_engineer_id is None
    ):
        raise ValidationError(
            f"A software engineer must be assigned before moving shipment {shipment.id} "
            f"to '{stage.value}'"
        )


def _plan_laptop_sync(shipment: Shipment, stage: ShipmentStage) -> list[tuple]:
    """
    Linked-laptop status changes implied by entering stage.

    Returns (laptop, target_status) pairs. Raises before anything is written
    if a linked laptop cannot make the move (e.g. it was retired).
    """
    if parse_variant(shipment.shipment_type) not in LAPTOP_SYNC_VARIANTS:
        return []
    target = LAPTOP_STATUS_FOR_STAGE.get(stage)
    if target is None:
        return []

    plan = []
    for laptop in shipment.laptops:
        if laptop.status == target:
            continue
        if LaptopStatus(laptop.status) in PRE_INSPECTION_STATUSES and target in POST_INSPECTION_STATUSES:
            raise LifecycleError(
                f"Laptop {laptop.id} has not passed inspection; approve its reception report "
                f"before moving shipment {shipment.id} to '{stage.value}'"
            )
        if not can_change_status(laptop.status, target):
            raise ValidationError(
                f"Laptop {laptop.id} is '{laptop.status}' and cannot move to "
                f"'{target.value}' with shipment {shipment.id}"
            )
        plan.append((laptop, target))
    return plan


def get_shipment(shipment_id: int) -> Shipment:
    shipment = db.session.query(Shipment).filter_by(id=shipment_id).first()
    if not shipment:
        raise NotFoundError(f"Shipment {shipment_id} not found")
    return shipment


def transition_shipment(
    shipment_id: int,
    new_stage,
    *,
    actor_user_id: int | None = None,
    eta: Optional[datetime] = None,
    courier_name: str | None = None,
    tracking_number: str | None = None,
) -> Shipment:
    """
    Move a shipment to its next stage (the sanctioned entry point).

    Args:
        shipment_id: Shipment to move
        new_stage: Requested stage (enum or stored string value)
        actor_user_id: User making the change (audit trail)
        eta: Expected delivery, only used when entering in_transit_to_engineer
        courier_name, tracking_number: Required when entering pickup_from_client_scheduled

    Returns:
        The updated shipment (committed)

    Raises:
        ValidationError: Unknown stage, failed precondition
        NotFoundError: Shipment does not exist
        IllegalTransitionError: Not the unique next stage; nothing is changed
        ConcurrencyConflictError: The shipment or a linked laptop was written by
            someone else in the meantime; nothing is changed
    """
    stage = parse_stage(new_stage)
    if stage is None:
        raise ValidationError(f"Invalid status '{new_stage}'")

    shipment = lock_for_update(db.session.query(Shipment).filter_by(id=shipment_id)).first()
    if shipment is None:
        raise NotFoundError(f"Shipment {shipment_id} not found")

    old_stage = shipment.status
    try:
        if not can_transition(shipment, stage):
            expected = next_allowed_stage(shipment)
            raise IllegalTransitionError(
                f"'{old_stage}' -> '{stage.value}' is not a valid transition for "
                f"{shipment.shipment_type} shipment {shipment_id}; "
                f"next allowed: {expected.value if expected else 'none'}. "
                "Status updates must be sequential and cannot skip stages or go backwards."
            )

        _check_stage_entry(shipment, stage, courier_name, tracking_number)
        laptop_plan = _plan_laptop_sync(shipment, stage)
    except ValidationError:
        # Release the row lock
        db.session.rollback()
        raise

    if eta is not None:
        eta = to_naive_utc(eta)

    with stale_write_guard(f"Shipment {shipment_id} changed concurrently; '{stage.value}' was not applied"):
        if stage == ShipmentStage.PICKUP_SCHEDULED:
            shipment.courier_name = courier_name
            shipment.tracking_number = tracking_number.strip()

        apply_transition(shipment, stage, eta=eta if stage == ShipmentStage.IN_TRANSIT_TO_ENGINEER else None)

        for laptop, target in laptop_plan:
            laptop.status = target.value

        append_audit_event(
            action="shipment.status_updated",
            entity_type="shipment",
            entity_id=shipment.id,
            actor_user_id=actor_user_id,
            details={
                "old_status": old_stage,
                "new_status": stage.value,
                "eta_to_engineer": eta,
                "laptops_updated": [laptop.id for laptop, _ in laptop_plan],
            },
        )

        db.session.commit()

    logger.info("Shipment %s: %s -> %s", shipment_id, old_stage, stage.value)
    return shipment


def get_shipments_by_status(
    status,
    *,
    shipment_type=None,
    limit: int = 200,
) -> list[Shipment]:
    """
    Shipments currently at a stage, newest first.

    USAGE: "what is waiting at the warehouse":
        get_shipments_by_status(ShipmentStage.AT_WAREHOUSE)
    """
    stage = parse_stage(status)
    if stage is None:
        raise ValidationError(f"Invalid status '{status}'")

    q = Shipment.query.filter_by(status=stage.value)
    if shipment_type is not None:
        variant = parse_variant(shipment_type)
        if variant is None:
            raise ValidationError(f"Invalid shipment type '{shipment_type}'")
        q = q.filter_by(shipment_type=variant.value)

    q = q.order_by(Shipment.created_at.desc(), Shipment.id.desc())
    return q.limit(limit).all()
