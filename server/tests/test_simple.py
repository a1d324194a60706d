"""Import-level smoke checks."""

from cdc_workflow.main import create_app


def test_app_builds():
    assert create_app().title == "CDC Travel Booking Workflow API"


def test_routes_registered():
    paths = {route.path for route in create_app().routes}

    assert "/v1/bookings" in paths
    assert "/v1/bookings/counts" in paths
    assert "/v1/bookings/{booking_id}/status" in paths
    assert "/v1/bookings/{booking_id}/collaborate" in paths
    assert "/v1/collaborations/{request_id}" in paths
    assert "/v1/collaborations/stats" in paths
    assert "/metrics" in paths
