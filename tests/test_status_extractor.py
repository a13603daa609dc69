"""
Status extraction tests - carrier payload shapes and path priority
"""
from datetime import datetime

import pytest

from reconciler.services.status_extractor import (
    STRATEGIES,
    extract_status,
    legacy_lowercase_status,
    parse_carrier_timestamp,
    root_status_object,
    shipment_status_object,
)
from tests.factories import delhivery_payload


class TestExtractStatus:
    """Path probing and first-match-wins"""

    def test_nested_shipment_status_object(self):
        """Typical Delhivery shape yields status, type, location and timestamp"""
        payload = delhivery_payload("Delivered", location="Mumbai", when="2024-01-15T14:30:00", status_type="DL")

        result = extract_status(payload)

        assert result.raw_status == "Delivered"
        assert result.status_type == "DL"
        assert result.location == "Mumbai"
        assert result.occurred_at == "2024-01-15T14:30:00"
        assert result.matched_path == "ShipmentData[0].Shipment.Status.Status"
        assert not result.has_conflict

    def test_higher_priority_path_wins_and_both_candidates_kept(self):
        """Conflicting statuses: nested shipment status beats root status, both recorded"""
        payload = delhivery_payload("In Transit")
        payload["Status"] = "Delivered"

        result = extract_status(payload)

        assert result.raw_status == "In Transit"
        assert result.matched_path == "ShipmentData[0].Shipment.Status.Status"
        assert result.candidates == [
            ("ShipmentData[0].Shipment.Status.Status", "In Transit"),
            ("Status", "Delivered"),
        ]
        assert result.has_conflict

    def test_string_status_on_shipment(self):
        payload = {"ShipmentData": [{"Shipment": {"Status": "Pending"}}]}
        result = extract_status(payload)
        assert result.raw_status == "Pending"
        assert result.matched_path == "ShipmentData[0].Shipment.Status"

    def test_status_on_shipment_data_element(self):
        payload = {"ShipmentData": [{"Status": {"Status": "Dispatched", "StatusLocation": "Pune"}}]}
        result = extract_status(payload)
        assert result.raw_status == "Dispatched"
        assert result.location == "Pune"
        assert result.matched_path == "ShipmentData[0].Status.Status"

    def test_root_status_object(self):
        payload = {"Status": {"Status": "RTO", "StatusDateTime": "2024-02-01T09:00:00"}}
        result = extract_status(payload)
        assert result.raw_status == "RTO"
        assert result.matched_path == "Status.Status"

    def test_legacy_lowercase_field_is_last_resort(self):
        """Lowercase status is only used when nothing else matches"""
        assert extract_status({"status": "manifested"}).matched_path == "status"

        payload = {"Status": "In Transit", "status": "manifested"}
        result = extract_status(payload)
        assert result.raw_status == "In Transit"
        assert result.candidates[-1] == ("status", "manifested")

    def test_legacy_lowercase_object(self):
        payload = {"status": {"status": "delivered", "status_location": "Delhi"}}
        hit = legacy_lowercase_status(payload)
        assert hit.raw_status == "delivered"
        assert hit.location == "Delhi"

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            "Delivered",
            [],
            {},
            {"ShipmentData": []},
            {"ShipmentData": [{"Shipment": {"Status": {"Status": "   "}}}]},
            {"ShipmentData": [{"Shipment": {"Status": {"StatusType": "UD"}}}]},
            {"Error": "waybill not found"},
        ],
    )
    def test_no_status_found(self, payload):
        """Nothing to extract is a miss, not an error"""
        assert extract_status(payload) is None

    def test_custom_strategy_list(self):
        """Strategies can be narrowed, e.g. to root-only probing"""
        payload = delhivery_payload("Delivered")
        payload["Status"] = {"Status": "In Transit"}
        result = extract_status(payload, strategies=[("Status.Status", root_status_object)])
        assert result.raw_status == "In Transit"

    def test_strategy_order(self):
        assert [path for path, _ in STRATEGIES][0] == "ShipmentData[0].Shipment.Status.Status"
        assert STRATEGIES[0][1] is shipment_status_object
        assert [path for path, _ in STRATEGIES][-1] == "status"


class TestParseCarrierTimestamp:
    """StatusDateTime parsing"""

    def test_naive_iso(self):
        assert parse_carrier_timestamp("2024-01-15T14:30:00") == datetime(2024, 1, 15, 14, 30)

    def test_offset_is_normalised_to_utc(self):
        assert parse_carrier_timestamp("2024-01-15T20:00:00+05:30") == datetime(2024, 1, 15, 14, 30)

    def test_zulu_suffix(self):
        assert parse_carrier_timestamp("2024-01-15T14:30:00Z") == datetime(2024, 1, 15, 14, 30)

    @pytest.mark.parametrize("value", [None, "", "yesterday", "15/01/2024 14:30"])
    def test_unparseable(self, value):
        assert parse_carrier_timestamp(value) is None
