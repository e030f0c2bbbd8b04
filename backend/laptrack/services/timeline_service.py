# Overview: Read-only timeline projection of a shipment's stages for display.

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from types import MappingProxyType
from typing import Optional

from .lifecycle_service import MILESTONE_FIELDS
from .shipment_stages import (
    STAGE_LABELS,
    TRANSIT_STAGES,
    ShipmentStage,
    ShipmentVariant,
    parse_stage,
    parse_variant,
    stages_for_variant,
)
from laptrack.time_utils import to_utc_z


STAGE_ICONS = MappingProxyType({
    ShipmentStage.PENDING_PICKUP: "clock",
    ShipmentStage.PICKUP_SCHEDULED: "calendar",
    ShipmentStage.PICKED_UP_FROM_CLIENT: "check",
    ShipmentStage.IN_TRANSIT_TO_WAREHOUSE: "truck",
    ShipmentStage.AT_WAREHOUSE: "home",
    ShipmentStage.RELEASED_FROM_WAREHOUSE: "truck",
    ShipmentStage.IN_TRANSIT_TO_ENGINEER: "truck",
    ShipmentStage.DELIVERED: "badge",
})


@dataclass
class TimelineItem:
    stage: ShipmentStage
    label: str
    timestamp: Optional[datetime]
    is_completed: bool
    is_current: bool
    is_pending: bool
    is_transit: bool
    icon: str
    tracking_number: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["stage"] = self.stage.value
        data["timestamp"] = to_utc_z(self.timestamp)
        return data


def stage_timestamp(shipment, stage: ShipmentStage) -> Optional[datetime]:
    """Milestone timestamp for a stage; None for pending pickup and transit stages."""
    field = MILESTONE_FIELDS.get(stage)
    if field is None:
        return None
    return getattr(shipment, field)


def build_timeline(shipment) -> list[TimelineItem]:
    """
    One row per stage of the shipment's variant, in order.

    FLAGS (current = index of the shipment's stage in the variant slice):
    - completed: before current, or current with a timestamp
    - current: the shipment's stage
    - pending: after current
    A current stage without a timestamp (pending pickup, the transit stages)
    is current but never completed.

    An unknown variant is shown as the full journey. A stage outside the slice
    leaves no row current and every row pending.

    Does not touch the session or the shipment.
    """
    variant = parse_variant(shipment.shipment_type) or ShipmentVariant.SINGLE_FULL_JOURNEY
    stages = stages_for_variant(variant)

    current = parse_stage(shipment.status)
    current_index = stages.index(current) if current in stages else -1

    timeline = []
    for i, stage in enumerate(stages):
        timestamp = stage_timestamp(shipment, stage)
        is_current = i == current_index

        item = TimelineItem(
            stage=stage,
            label=STAGE_LABELS[stage],
            timestamp=timestamp,
            is_completed=i < current_index or (is_current and timestamp is not None),
            is_current=is_current,
            is_pending=i > current_index,
            is_transit=stage in TRANSIT_STAGES,
            icon=STAGE_ICONS[stage],
        )

        if stage == ShipmentStage.PICKUP_SCHEDULED and shipment.tracking_number:
            item.tracking_number = shipment.tracking_number

        timeline.append(item)

    return timeline
