# Overview: Pytest coverage for the shipment state machine and its guarded entry point.

"""
Shipment Lifecycle Tests

Pure checks (no database) for next_allowed_stage / can_transition /
apply_transition / validation, then service-level tests for
transition_shipment including the bulk end-to-end walk.
"""

import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from laptrack.extensions import db
from laptrack.models import Shipment
from laptrack.services import lifecycle_service
from laptrack.services.audit_service import list_audit_events
from laptrack.services.laptop_service import LaptopStatus, get_laptop, retire_laptop
from laptrack.services.lifecycle_service import (
    MILESTONE_FIELDS,
    apply_transition,
    can_transition,
    get_shipment,
    get_shipments_by_status,
    next_allowed_stage,
    tracking_url,
    transition_shipment,
    validate_shipment,
    validate_variant_constraints,
)
from laptrack.services.reception_service import approve_reception_report
from laptrack.services.shipment_service import assign_engineer
from laptrack.services.shipment_stages import (
    STAGE_ORDER,
    VARIANT_STAGES,
    ShipmentStage,
    ShipmentVariant,
)
from laptrack.validation import (
    ConcurrencyConflictError,
    IllegalTransitionError,
    LifecycleError,
    NotFoundError,
    ValidationError,
)


def _shipment(variant, stage, **kwargs):
    kwargs.setdefault("client_company_id", 1)
    kwargs.setdefault("jira_ticket_number", "SCOP-1001")
    return Shipment(
        shipment_type=ShipmentVariant(variant).value,
        status=ShipmentStage(stage).value,
        **kwargs,
    )


def _walk(shipment_id, *stages):
    for stage in stages:
        kwargs = {}
        if stage == ShipmentStage.PICKUP_SCHEDULED:
            kwargs = {"courier_name": "UPS", "tracking_number": "1Z999AA10123456784"}
        transition_shipment(shipment_id, stage, **kwargs)
    return get_shipment(shipment_id)


class TestNextAllowedStage:
    def test_only_the_next_stage_in_the_slice_is_allowed(self):
        """For every variant and stage, exactly one proposal (the next one) is legal."""
        for variant, stages in VARIANT_STAGES.items():
            for i, current in enumerate(stages):
                shipment = _shipment(variant, current)
                expected = stages[i + 1] if i + 1 < len(stages) else None
                assert next_allowed_stage(shipment) == expected

                for proposed in STAGE_ORDER:
                    assert can_transition(shipment, proposed) == (proposed == expected), (
                        variant, current, proposed
                    )

    def test_self_transition_is_rejected(self):
        shipment = _shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, ShipmentStage.AT_WAREHOUSE)
        assert not can_transition(shipment, ShipmentStage.AT_WAREHOUSE)

    def test_skip_and_reverse_are_rejected(self):
        shipment = _shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, ShipmentStage.PENDING_PICKUP)
        assert not can_transition(shipment, ShipmentStage.AT_WAREHOUSE)

        shipment = _shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, ShipmentStage.AT_WAREHOUSE)
        assert not can_transition(shipment, ShipmentStage.PICKED_UP_FROM_CLIENT)

    def test_bulk_cannot_leave_the_warehouse(self):
        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.AT_WAREHOUSE)
        assert next_allowed_stage(shipment) is None
        assert not can_transition(shipment, ShipmentStage.RELEASED_FROM_WAREHOUSE)

    def test_warehouse_to_engineer_cannot_enter_pickup_stages(self):
        shipment = _shipment(ShipmentVariant.WAREHOUSE_TO_ENGINEER, ShipmentStage.RELEASED_FROM_WAREHOUSE)
        assert not can_transition(shipment, ShipmentStage.PENDING_PICKUP)
        assert not can_transition(shipment, "not_a_stage")

    def test_stage_outside_variant_is_an_integrity_fault(self, caplog):
        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.DELIVERED)
        with caplog.at_level(logging.ERROR, logger="laptrack.services.lifecycle_service"):
            assert next_allowed_stage(shipment) is None
        assert "not part of variant" in caplog.text


class TestApplyTransition:
    @pytest.mark.parametrize("stage", list(MILESTONE_FIELDS))
    def test_milestone_stage_sets_exactly_its_timestamp(self, stage):
        shipment = _shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, ShipmentStage.PENDING_PICKUP)
        apply_transition(shipment, stage)

        assert shipment.status == stage.value
        for other_stage, field in MILESTONE_FIELDS.items():
            if other_stage == stage:
                assert getattr(shipment, field) is not None
            else:
                assert getattr(shipment, field) is None

    @pytest.mark.parametrize("stage", [ShipmentStage.IN_TRANSIT_TO_WAREHOUSE, ShipmentStage.IN_TRANSIT_TO_ENGINEER])
    def test_transit_stage_sets_no_timestamp(self, stage):
        shipment = _shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, ShipmentStage.PENDING_PICKUP)
        apply_transition(shipment, stage)

        assert all(getattr(shipment, field) is None for field in MILESTONE_FIELDS.values())
        assert shipment.eta_to_engineer is None

    def test_eta_stored_verbatim_on_transit_to_engineer(self):
        eta = datetime(2026, 11, 2, 12, 0)
        shipment = _shipment(ShipmentVariant.WAREHOUSE_TO_ENGINEER, ShipmentStage.RELEASED_FROM_WAREHOUSE)
        apply_transition(shipment, ShipmentStage.IN_TRANSIT_TO_ENGINEER, eta=eta)
        assert shipment.eta_to_engineer == eta

    def test_eta_ignored_for_other_stages(self):
        shipment = _shipment(ShipmentVariant.WAREHOUSE_TO_ENGINEER, ShipmentStage.IN_TRANSIT_TO_ENGINEER)
        apply_transition(shipment, ShipmentStage.DELIVERED, eta=datetime(2026, 11, 2))
        assert shipment.eta_to_engineer is None

    def test_scheduled_pickup_date_is_kept(self):
        agreed = datetime(2026, 1, 5, 9, 0)
        shipment = _shipment(
            ShipmentVariant.BULK_TO_WAREHOUSE,
            ShipmentStage.PENDING_PICKUP,
            pickup_scheduled_date=agreed,
        )
        apply_transition(shipment, ShipmentStage.PICKUP_SCHEDULED)
        assert shipment.pickup_scheduled_date == agreed


class TestValidation:
    def test_variant_constraints(self):
        validate_variant_constraints(ShipmentVariant.BULK_TO_WAREHOUSE, 2, None)
        validate_variant_constraints(ShipmentVariant.SINGLE_FULL_JOURNEY, 1, None)
        validate_variant_constraints(ShipmentVariant.WAREHOUSE_TO_ENGINEER, 1, 7)

        with pytest.raises(ValidationError, match="cannot have a software engineer"):
            validate_variant_constraints(ShipmentVariant.BULK_TO_WAREHOUSE, 3, 7)
        with pytest.raises(ValidationError, match="at least 2 laptops"):
            validate_variant_constraints(ShipmentVariant.BULK_TO_WAREHOUSE, 1, None)
        with pytest.raises(ValidationError, match="require a software engineer"):
            validate_variant_constraints(ShipmentVariant.WAREHOUSE_TO_ENGINEER, 1, None)
        with pytest.raises(ValidationError, match="exactly 1 laptop"):
            validate_variant_constraints(ShipmentVariant.WAREHOUSE_TO_ENGINEER, 2, 7)
        with pytest.raises(ValidationError, match="exactly 1 laptop"):
            validate_variant_constraints(ShipmentVariant.SINGLE_FULL_JOURNEY, 2, None)

    @pytest.mark.parametrize("ticket", ["", None, "scop-1", "SCOP1", "SCOP-", "-123", "SCOP-12a", "SC0P-1"])
    def test_malformed_ticket_rejected(self, ticket):
        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.PENDING_PICKUP,
                             jira_ticket_number=ticket)
        with pytest.raises(ValidationError):
            validate_shipment(shipment)

    def test_ticket_validator_is_consulted(self):
        seen = []
        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.PENDING_PICKUP)
        validate_shipment(shipment, ticket_validator=seen.append)
        assert seen == ["SCOP-1001"]

    def test_ticket_validator_rejection_becomes_validation_error(self):
        def missing(key):
            raise LookupError(f"{key} does not exist")

        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.PENDING_PICKUP)
        with pytest.raises(ValidationError, match="could not be verified"):
            validate_shipment(shipment, ticket_validator=missing)

    def test_missing_company_and_bad_status(self):
        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.PENDING_PICKUP,
                             client_company_id=None)
        with pytest.raises(ValidationError, match="client company ID is required"):
            validate_shipment(shipment)

        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.PENDING_PICKUP)
        shipment.status = "teleported"
        with pytest.raises(ValidationError, match="invalid status"):
            validate_shipment(shipment)

        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.DELIVERED)
        with pytest.raises(ValidationError, match="not valid for bulk_to_warehouse"):
            validate_shipment(shipment)

    def test_tracking_url(self):
        shipment = _shipment(ShipmentVariant.BULK_TO_WAREHOUSE, ShipmentStage.PICKUP_SCHEDULED,
                             courier_name="FedEx Express", tracking_number="123")
        assert tracking_url(shipment) == "https://www.fedex.com/fedextrack/?tracknumbers=123"

        shipment.courier_name = "Pigeon Post"
        assert tracking_url(shipment) == ""


class TestTransitionShipment:
    def test_bulk_shipment_walks_to_warehouse_and_stops(self, make_shipment, make_laptop):
        laptops = [make_laptop(status=LaptopStatus.IN_TRANSIT_TO_WAREHOUSE) for _ in range(3)]
        shipment = make_shipment(
            ShipmentVariant.BULK_TO_WAREHOUSE,
            jira_ticket_number="SCOP-1001",
            laptop_count=3,
            laptop_ids=[laptop.id for laptop in laptops],
        )
        assert shipment.status == ShipmentStage.PENDING_PICKUP

        shipment = _walk(
            shipment.id,
            ShipmentStage.PICKUP_SCHEDULED,
            ShipmentStage.PICKED_UP_FROM_CLIENT,
            ShipmentStage.IN_TRANSIT_TO_WAREHOUSE,
            ShipmentStage.AT_WAREHOUSE,
        )

        assert shipment.status == ShipmentStage.AT_WAREHOUSE
        assert shipment.pickup_scheduled_date is not None
        assert shipment.picked_up_at is not None
        assert shipment.arrived_warehouse_at is not None
        assert shipment.released_warehouse_at is None
        assert next_allowed_stage(shipment) is None

        with pytest.raises(IllegalTransitionError, match="not a valid transition"):
            transition_shipment(shipment.id, ShipmentStage.RELEASED_FROM_WAREHOUSE)
        assert get_shipment(shipment.id).status == ShipmentStage.AT_WAREHOUSE

        # Bulk laptops are received one by one, not moved with the shipment
        for laptop in laptops:
            assert get_laptop(laptop.id).status == LaptopStatus.IN_TRANSIT_TO_WAREHOUSE

    def test_skip_is_rejected_and_nothing_changes(self, make_shipment):
        shipment = make_shipment(ShipmentVariant.BULK_TO_WAREHOUSE)

        with pytest.raises(IllegalTransitionError, match="not a valid transition"):
            transition_shipment(shipment.id, ShipmentStage.AT_WAREHOUSE)

        shipment = get_shipment(shipment.id)
        assert shipment.status == ShipmentStage.PENDING_PICKUP
        assert shipment.arrived_warehouse_at is None
        actions = [e.action for e in list_audit_events("shipment", shipment.id)]
        assert actions == ["shipment.created"]

    def test_pickup_requires_courier_and_tracking(self, make_shipment):
        shipment = make_shipment(ShipmentVariant.BULK_TO_WAREHOUSE)

        with pytest.raises(ValidationError, match="Tracking number is required"):
            transition_shipment(shipment.id, ShipmentStage.PICKUP_SCHEDULED, courier_name="UPS")
        with pytest.raises(ValidationError, match="Invalid courier"):
            transition_shipment(shipment.id, ShipmentStage.PICKUP_SCHEDULED,
                                courier_name="Pigeon Post", tracking_number="X1")

        shipment = transition_shipment(shipment.id, ShipmentStage.PICKUP_SCHEDULED,
                                       courier_name="DHL", tracking_number=" 555 ")
        assert shipment.tracking_number == "555"
        assert tracking_url(shipment).endswith("AWB=555")

    def test_single_journey_moves_its_laptop(self, make_shipment, make_laptop, make_report, engineer):
        laptop = make_laptop(status=LaptopStatus.IN_TRANSIT_TO_WAREHOUSE)
        shipment = make_shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, laptop_ids=[laptop.id])

        _walk(
            shipment.id,
            ShipmentStage.PICKUP_SCHEDULED,
            ShipmentStage.PICKED_UP_FROM_CLIENT,
            ShipmentStage.IN_TRANSIT_TO_WAREHOUSE,
            ShipmentStage.AT_WAREHOUSE,
        )
        assert get_laptop(laptop.id).status == LaptopStatus.AT_WAREHOUSE

        with pytest.raises(ValidationError, match="software engineer must be assigned"):
            transition_shipment(shipment.id, ShipmentStage.RELEASED_FROM_WAREHOUSE)

        assign_engineer(shipment.id, engineer.id)
        assert get_laptop(laptop.id).software_engineer_id == engineer.id

        transition_shipment(shipment.id, ShipmentStage.RELEASED_FROM_WAREHOUSE)

        # The laptop only heads to the engineer once its inspection is approved
        with pytest.raises(LifecycleError, match="has not passed inspection"):
            transition_shipment(shipment.id, ShipmentStage.IN_TRANSIT_TO_ENGINEER)
        assert get_shipment(shipment.id).status == ShipmentStage.RELEASED_FROM_WAREHOUSE
        assert get_laptop(laptop.id).status == LaptopStatus.AT_WAREHOUSE

        approve_reception_report(make_report(laptop).id, approved_by_user_id=12)
        assert get_laptop(laptop.id).status == LaptopStatus.AVAILABLE

        eta = datetime(2026, 11, 2, 12, 0, tzinfo=timezone.utc)
        transition_shipment(shipment.id, ShipmentStage.IN_TRANSIT_TO_ENGINEER, eta=eta)
        assert get_laptop(laptop.id).status == LaptopStatus.IN_TRANSIT_TO_ENGINEER

        shipment = transition_shipment(shipment.id, ShipmentStage.DELIVERED)
        assert shipment.eta_to_engineer == datetime(2026, 11, 2, 12, 0)
        assert shipment.delivered_at is not None
        assert get_laptop(laptop.id).status == LaptopStatus.DELIVERED

    def test_retired_laptop_blocks_the_shipment(self, make_shipment, make_laptop):
        laptop = make_laptop(status=LaptopStatus.IN_TRANSIT_TO_WAREHOUSE)
        shipment = make_shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, laptop_ids=[laptop.id])
        _walk(shipment.id, ShipmentStage.PICKUP_SCHEDULED, ShipmentStage.PICKED_UP_FROM_CLIENT)
        retire_laptop(laptop.id, reason="Lost by client")

        with pytest.raises(ValidationError, match="cannot move"):
            transition_shipment(shipment.id, ShipmentStage.IN_TRANSIT_TO_WAREHOUSE)
        assert get_shipment(shipment.id).status == ShipmentStage.PICKED_UP_FROM_CLIENT

    def test_single_journey_sync_never_skips_inspection(self, make_shipment, make_laptop, engineer):
        laptop = make_laptop(status=LaptopStatus.IN_TRANSIT_TO_WAREHOUSE)
        shipment = make_shipment(ShipmentVariant.SINGLE_FULL_JOURNEY, laptop_ids=[laptop.id],
                                 software_engineer_id=engineer.id)
        _walk(
            shipment.id,
            ShipmentStage.PICKUP_SCHEDULED,
            ShipmentStage.PICKED_UP_FROM_CLIENT,
            ShipmentStage.IN_TRANSIT_TO_WAREHOUSE,
            ShipmentStage.AT_WAREHOUSE,
            ShipmentStage.RELEASED_FROM_WAREHOUSE,
        )

        with pytest.raises(LifecycleError, match=f"Laptop {laptop.id} has not passed inspection"):
            transition_shipment(shipment.id, ShipmentStage.IN_TRANSIT_TO_ENGINEER)

        laptop = get_laptop(laptop.id)
        assert laptop.status == LaptopStatus.AT_WAREHOUSE
        assert laptop.reception_report is None
        assert get_shipment(shipment.id).status == ShipmentStage.RELEASED_FROM_WAREHOUSE

    def test_concurrent_write_is_a_conflict(self, make_shipment, monkeypatch):
        shipment = make_shipment(ShipmentVariant.BULK_TO_WAREHOUSE)
        shipment_id = shipment.id
        append = lifecycle_service.append_audit_event

        def append_after_another_writer(**kwargs):
            # Another writer commits a new version between the locked read and our flush
            table = Shipment.__table__
            db.session.connection().execute(
                update(table)
                .where(table.c.id == shipment_id)
                .values(version_id=table.c.version_id + 1)
            )
            return append(**kwargs)

        monkeypatch.setattr(lifecycle_service, "append_audit_event", append_after_another_writer)

        with pytest.raises(ConcurrencyConflictError, match="changed concurrently"):
            transition_shipment(shipment_id, ShipmentStage.PICKUP_SCHEDULED,
                                courier_name="UPS", tracking_number="1Z1")

        assert not db.session.in_transaction()
        monkeypatch.undo()

        shipment = get_shipment(shipment_id)
        assert shipment.status == ShipmentStage.PENDING_PICKUP
        assert shipment.tracking_number is None
        assert [e.action for e in list_audit_events("shipment", shipment_id)] == ["shipment.created"]

        # The session is still usable
        shipment = transition_shipment(shipment_id, ShipmentStage.PICKUP_SCHEDULED,
                                       courier_name="UPS", tracking_number="1Z1")
        assert shipment.status == ShipmentStage.PICKUP_SCHEDULED

    def test_rejected_transition_ends_the_transaction(self, make_shipment):
        shipment = make_shipment(ShipmentVariant.BULK_TO_WAREHOUSE)

        with pytest.raises(IllegalTransitionError):
            transition_shipment(shipment.id, ShipmentStage.AT_WAREHOUSE)
        assert not db.session.in_transaction()

        with pytest.raises(ValidationError, match="Tracking number is required"):
            transition_shipment(shipment.id, ShipmentStage.PICKUP_SCHEDULED, courier_name="UPS")
        assert not db.session.in_transaction()

    def test_transition_is_audited(self, make_shipment):
        shipment = make_shipment(ShipmentVariant.BULK_TO_WAREHOUSE)
        transition_shipment(shipment.id, ShipmentStage.PICKUP_SCHEDULED, actor_user_id=5,
                            courier_name="UPS", tracking_number="1Z1")

        events = list_audit_events("shipment", shipment.id)
        assert [e.action for e in events] == ["shipment.created", "shipment.status_updated"]
        assert events[-1].actor_user_id == 5
        assert '"new_status": "pickup_from_client_scheduled"' in events[-1].details

    def test_unknown_shipment_and_stage(self, db_session):
        with pytest.raises(NotFoundError):
            transition_shipment(999999, ShipmentStage.PICKUP_SCHEDULED)
        with pytest.raises(ValidationError, match="Invalid status"):
            transition_shipment(1, "teleported")

    def test_get_shipments_by_status(self, make_shipment):
        waiting = make_shipment(ShipmentVariant.BULK_TO_WAREHOUSE)
        released = make_shipment(ShipmentVariant.WAREHOUSE_TO_ENGINEER)

        pending_ids = [s.id for s in get_shipments_by_status(ShipmentStage.PENDING_PICKUP)]
        assert pending_ids == [waiting.id]
        released_ids = [s.id for s in get_shipments_by_status(
            "released_from_warehouse", shipment_type=ShipmentVariant.WAREHOUSE_TO_ENGINEER
        )]
        assert released_ids == [released.id]
