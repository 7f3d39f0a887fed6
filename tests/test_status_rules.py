"""Forward-only validator and eligibility deriver."""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from logistics_engine.core.exceptions import (
    BackwardTransition, FrozenEntity, InvalidTransition, UnsupportedSource,
)
from logistics_engine.models.sales_order import SalesOrderStatus, OrderField
from logistics_engine.models.vehicle import VehicleStatus
from logistics_engine.services.status_rules import (
    ORDER_SEQUENCE, VEHICLE_SEQUENCE, assert_forward, auto_advance, can_hold_or_delete,
    can_transition, derive_status, has_value, missing_eligibility_fields,
    order_status_for_vehicle, transition_vehicle,
)


class TestAssertForward:

    @pytest.mark.parametrize("status", list(VEHICLE_SEQUENCE.statuses))
    def test_same_status_is_a_no_op(self, status):
        assert_forward(status, status, VEHICLE_SEQUENCE)

    def test_forward_jump_is_allowed(self):
        assert_forward(SalesOrderStatus.ASSIGN_VEHICLE, SalesOrderStatus.IN_JOURNEY, ORDER_SEQUENCE)

    def test_backward_is_rejected(self):
        with pytest.raises(BackwardTransition) as exc:
            assert_forward(VehicleStatus.GATE_IN, VehicleStatus.ARRIVED, VEHICLE_SEQUENCE)
        assert exc.value.details["current_status"] == "GATE_IN"
        assert exc.value.details["target_status"] == "ARRIVED"

    def test_unknown_target(self):
        with pytest.raises(InvalidTransition):
            assert_forward(VehicleStatus.ASSIGNED.value, "PARKED", VEHICLE_SEQUENCE)

    def test_unknown_source(self):
        with pytest.raises(UnsupportedSource):
            assert_forward("PARKED", VehicleStatus.ARRIVED.value, VEHICLE_SEQUENCE)

    @pytest.mark.parametrize("current,target", [
        (SalesOrderStatus.HOLD, SalesOrderStatus.GATE_IN),
        (SalesOrderStatus.ARRIVED, SalesOrderStatus.DELETED),
        (SalesOrderStatus.HOLD, SalesOrderStatus.HOLD),
    ])
    def test_frozen_side_is_rejected(self, current, target):
        with pytest.raises(FrozenEntity):
            assert_forward(current, target, ORDER_SEQUENCE)

    def test_can_transition_reports_instead_of_raising(self):
        assert can_transition("ARRIVED", "GATE_IN", VEHICLE_SEQUENCE)
        assert not can_transition("GATE_IN", "ARRIVED", VEHICLE_SEQUENCE)
        assert not can_transition("PARKED", "ARRIVED", VEHICLE_SEQUENCE)

    def test_vehicle_is_trip_invoiced_before_gate_out(self):
        assert can_transition("TRIP_INVOICED", "GATE_OUT", VEHICLE_SEQUENCE)
        assert not can_transition("GATE_OUT", "TRIP_INVOICED", VEHICLE_SEQUENCE)


class TestStatusMapping:

    def test_every_vehicle_status_maps_to_an_order_status(self):
        for status in VehicleStatus:
            assert order_status_for_vehicle(status) in ORDER_SEQUENCE.statuses

    def test_assigned_maps_to_vehicle_assigned(self):
        assert order_status_for_vehicle("ASSIGNED") == "VEHICLE_ASSIGNED"

    def test_unknown_vehicle_status(self):
        assert order_status_for_vehicle("PARKED") is None


class TestTransitionVehicle:

    def _vehicle(self, status, **fields):
        values = {
            "check_in_at": None, "gate_in_at": None, "loading_started_at": None,
            "loading_completed_at": None, "gate_out_at": None,
        }
        values.update(fields)
        return SimpleNamespace(status=status, **values)

    def test_stamps_milestone(self):
        vehicle = self._vehicle("ASSIGNED")
        assert transition_vehicle(vehicle, VehicleStatus.GATE_IN) is True
        assert vehicle.status == "GATE_IN"
        assert vehicle.gate_in_at is not None

    def test_keeps_first_stamp(self):
        stamp = object()
        vehicle = self._vehicle("GATE_IN", gate_in_at=stamp)
        assert transition_vehicle(vehicle, "GATE_IN") is False
        assert vehicle.gate_in_at is stamp

    def test_backward_leaves_vehicle_untouched(self):
        vehicle = self._vehicle("GATE_IN")
        with pytest.raises(BackwardTransition):
            transition_vehicle(vehicle, "ARRIVED")
        assert vehicle.status == "GATE_IN"
        assert vehicle.check_in_at is None


class TestEligibility:

    READY = {
        "so_number": "SO-1",
        "so_cases": 10,
        "case_lot": "L1",
        "town_name": "Pune",
        "pin_code": "411001",
        "requested_truck_size": "20FT",
        "requested_truck_type": "OPEN",
    }

    def test_complete_record_is_ready(self):
        assert derive_status(self.READY) == SalesOrderStatus.ASSIGN_VEHICLE
        assert missing_eligibility_fields(self.READY) == []

    def test_only_so_number_lists_six_missing(self):
        missing = missing_eligibility_fields({"so_number": "SO-1"})
        assert len(missing) == 6
        assert OrderField.SO_NUMBER not in missing
        assert derive_status({"so_number": "SO-1"}) == SalesOrderStatus.INFORMATION_NEEDED

    @pytest.mark.parametrize("value,expected", [
        (None, False),
        ("", False),
        ("   ", False),
        ("x", True),
        (0, False),
        (-3, False),
        (5, True),
        (Decimal("0.5"), True),
        (float("nan"), False),
        (float("inf"), False),
        (True, False),
    ])
    def test_has_value(self, value, expected):
        assert has_value(value) is expected

    def test_zero_cases_is_missing(self):
        record = dict(self.READY, so_cases=0)
        assert missing_eligibility_fields(record) == [OrderField.SO_CASES]

    def test_auto_advance_only_from_information_needed(self):
        order = SimpleNamespace(status="INFORMATION_NEEDED", **self.READY)
        assert auto_advance(order) is True
        assert order.status == "ASSIGN_VEHICLE"

        later = SimpleNamespace(status="GATE_IN", **self.READY)
        assert auto_advance(later) is False
        assert later.status == "GATE_IN"

    def test_auto_advance_waits_for_missing_fields(self):
        order = SimpleNamespace(status="INFORMATION_NEEDED", **dict(self.READY, pin_code=" "))
        assert auto_advance(order) is False
        assert order.status == "INFORMATION_NEEDED"


def test_hold_window_ends_at_loading_complete():
    assert can_hold_or_delete("ASSIGN_VEHICLE")
    assert can_hold_or_delete("LOADING_COMPLETE")
    assert not can_hold_or_delete("GATE_OUT")
    assert not can_hold_or_delete("HOLD")
