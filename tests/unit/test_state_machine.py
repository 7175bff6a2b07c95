"""
Unit tests for ride status state machine validations.
"""
import pytest
from unittest.mock import MagicMock

from app.errors import InvalidTransitionError
from app.models.ride import Ride, RideStatusEvent
from app.schemas.schemas import RideStatusEnum
from app.services.lifecycle import STATUS_SEQUENCE, is_valid_transition, transition


class TestRideStateMachine:
    def test_matching_to_enroute(self):
        assert is_valid_transition("MATCHING", "ENROUTE")

    def test_enroute_to_pickup(self):
        assert is_valid_transition("ENROUTE", "PICKUP")

    def test_pickup_to_carrying(self):
        assert is_valid_transition("PICKUP", "CARRYING")

    def test_carrying_to_arrived(self):
        assert is_valid_transition("CARRYING", "ARRIVED")

    def test_arrived_to_completed(self):
        assert is_valid_transition("ARRIVED", "COMPLETED")

    def test_completed_is_terminal(self):
        for status in RideStatusEnum:
            assert not is_valid_transition("COMPLETED", status.value)

    def test_canceled_is_unreachable(self):
        for status in RideStatusEnum:
            assert not is_valid_transition(status.value, "CANCELED")

    def test_invalid_backward(self):
        assert not is_valid_transition("CARRYING", "PICKUP")

    def test_invalid_forward_skip(self):
        # Cannot skip PICKUP
        assert not is_valid_transition("ENROUTE", "CARRYING")

    def test_no_self_loops(self):
        for status in STATUS_SEQUENCE:
            assert not is_valid_transition(status.value, status.value)


class TestTransition:
    def _ride(self, status: str) -> Ride:
        return Ride(
            id="ride-1", user_id="user-1", status=status,
            pickup_latitude=0, pickup_longitude=0,
            destination_latitude=0, destination_longitude=10,
        )

    def test_appends_event_with_new_status(self):
        db = MagicMock()
        ride = self._ride("PICKUP")

        event = transition(db, ride, RideStatusEnum.CARRYING)

        assert ride.status == "CARRYING"
        assert isinstance(event, RideStatusEvent)
        assert event.ride_id == "ride-1"
        assert event.status == "CARRYING"
        assert event.created_at == ride.updated_at
        db.add.assert_called_once_with(event)

    def test_out_of_sequence_leaves_ride_untouched(self):
        db = MagicMock()
        ride = self._ride("ENROUTE")

        with pytest.raises(InvalidTransitionError):
            transition(db, ride, RideStatusEnum.ARRIVED)

        assert ride.status == "ENROUTE"
        db.add.assert_not_called()
