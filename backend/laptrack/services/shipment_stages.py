# Overview: Shipment stage vocabulary and the per-variant transition table.

"""
Shipment Stage Vocabulary

STAGES (global order):
    pending_pickup_from_client
    -> pickup_from_client_scheduled
    -> picked_up_from_client
    -> in_transit_to_warehouse
    -> at_warehouse
    -> released_from_warehouse
    -> in_transit_to_engineer
    -> delivered

VARIANTS:
    single_full_journey     all eight stages
    bulk_to_warehouse       first five (ends at the warehouse)
    warehouse_to_engineer   last three (starts at release)

Each variant's stages are a contiguous slice of STAGE_ORDER. Adding or
reordering a stage only touches STAGE_ORDER and the slice bounds below.
Values are persisted as the enum strings, never as ordinals.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType


class ShipmentStage(str, Enum):
    PENDING_PICKUP = "pending_pickup_from_client"
    PICKUP_SCHEDULED = "pickup_from_client_scheduled"
    PICKED_UP_FROM_CLIENT = "picked_up_from_client"
    IN_TRANSIT_TO_WAREHOUSE = "in_transit_to_warehouse"
    AT_WAREHOUSE = "at_warehouse"
    RELEASED_FROM_WAREHOUSE = "released_from_warehouse"
    IN_TRANSIT_TO_ENGINEER = "in_transit_to_engineer"
    DELIVERED = "delivered"

    def __str__(self) -> str:
        return self.value


class ShipmentVariant(str, Enum):
    SINGLE_FULL_JOURNEY = "single_full_journey"
    BULK_TO_WAREHOUSE = "bulk_to_warehouse"
    WAREHOUSE_TO_ENGINEER = "warehouse_to_engineer"

    def __str__(self) -> str:
        return self.value


STAGE_ORDER: tuple[ShipmentStage, ...] = tuple(ShipmentStage)

# Slice bounds into STAGE_ORDER
_VARIANT_BOUNDS = {
    ShipmentVariant.SINGLE_FULL_JOURNEY: (0, len(STAGE_ORDER)),
    ShipmentVariant.BULK_TO_WAREHOUSE: (0, STAGE_ORDER.index(ShipmentStage.AT_WAREHOUSE) + 1),
    ShipmentVariant.WAREHOUSE_TO_ENGINEER: (
        STAGE_ORDER.index(ShipmentStage.RELEASED_FROM_WAREHOUSE),
        len(STAGE_ORDER),
    ),
}

VARIANT_STAGES = MappingProxyType({
    variant: STAGE_ORDER[start:end] for variant, (start, end) in _VARIANT_BOUNDS.items()
})

# Stages with no milestone timestamp: observed only while current
TRANSIT_STAGES = frozenset({
    ShipmentStage.IN_TRANSIT_TO_WAREHOUSE,
    ShipmentStage.IN_TRANSIT_TO_ENGINEER,
})

STAGE_LABELS = MappingProxyType({
    ShipmentStage.PENDING_PICKUP: "Pending Pickup",
    ShipmentStage.PICKUP_SCHEDULED: "Pickup Scheduled",
    ShipmentStage.PICKED_UP_FROM_CLIENT: "Picked Up from Client",
    ShipmentStage.IN_TRANSIT_TO_WAREHOUSE: "In Transit to Warehouse",
    ShipmentStage.AT_WAREHOUSE: "Arrived at Warehouse",
    ShipmentStage.RELEASED_FROM_WAREHOUSE: "Released from Warehouse",
    ShipmentStage.IN_TRANSIT_TO_ENGINEER: "In Transit to Engineer",
    ShipmentStage.DELIVERED: "Delivered Successfully",
})

VARIANT_LABELS = MappingProxyType({
    ShipmentVariant.SINGLE_FULL_JOURNEY: "Single Full Journey",
    ShipmentVariant.BULK_TO_WAREHOUSE: "Bulk to Warehouse",
    ShipmentVariant.WAREHOUSE_TO_ENGINEER: "Warehouse to Engineer",
})


def parse_stage(value: str | ShipmentStage | None) -> ShipmentStage | None:
    """Return the stage for a stored/submitted value, or None if unrecognized."""
    if value is None:
        return None
    try:
        return ShipmentStage(value)
    except ValueError:
        return None


def parse_variant(value: str | ShipmentVariant | None) -> ShipmentVariant | None:
    if value is None:
        return None
    try:
        return ShipmentVariant(value)
    except ValueError:
        return None


def stages_for_variant(variant: str | ShipmentVariant) -> tuple[ShipmentStage, ...]:
    """
    Ordered stages a shipment of this variant may pass through.

    Raises ValueError for an unknown variant.
    """
    return VARIANT_STAGES[ShipmentVariant(variant)]


def initial_stage(variant: str | ShipmentVariant) -> ShipmentStage:
    """Stage a new shipment of this variant is created in."""
    return stages_for_variant(variant)[0]


def terminal_stage(variant: str | ShipmentVariant) -> ShipmentStage:
    return stages_for_variant(variant)[-1]


def stage_label(stage: str | ShipmentStage) -> str:
    parsed = parse_stage(stage)
    if parsed is None:
        return str(stage)
    return STAGE_LABELS[parsed]
