"""
Status mapping tests - exact-key lookup with UNKNOWN as an explicit outcome
"""
import logging

import pytest

from reconciler.models import PaymentStatus, ShipmentStatus
from reconciler.services.status_mapper import (
    UNKNOWN,
    is_final_shipment_status,
    map_payment_status,
    map_shipment_status,
    status_category,
)


class TestShipmentMapping:
    """Carrier vocabulary"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Delivered", ShipmentStatus.DELIVERED),
            ("  DELIVERED ", ShipmentStatus.DELIVERED),
            ("Out  for   Delivery", ShipmentStatus.OUT_FOR_DELIVERY),
            ("Dispatched", ShipmentStatus.OUT_FOR_DELIVERY),
            ("In Transit", ShipmentStatus.IN_TRANSIT),
            ("Pending", ShipmentStatus.IN_TRANSIT),
            ("Manifested", ShipmentStatus.PICKUP_PENDING),
            ("Not Picked", ShipmentStatus.PICKUP_PENDING),
            ("Undelivered", ShipmentStatus.NDR),
            ("RTO", ShipmentStatus.RTO),
            ("Return to Origin", ShipmentStatus.RTO),
            ("Canceled", ShipmentStatus.CANCELLED),
            ("Lost", ShipmentStatus.LOST),
        ],
    )
    def test_known_statuses(self, raw, expected):
        assert map_shipment_status(raw) == expected

    def test_unknown_status(self, caplog):
        """Unmapped strings are UNKNOWN and logged at warning"""
        with caplog.at_level(logging.WARNING):
            result = map_shipment_status("Shipment Teleported")
        assert result is UNKNOWN
        assert "Shipment Teleported" in caplog.text

    def test_no_substring_guessing(self):
        """'Delivered to wrong address' is not 'delivered'"""
        assert map_shipment_status("Delivered to wrong address") is UNKNOWN

    @pytest.mark.parametrize("raw", [None, "", "   ", 42])
    def test_empty_input(self, raw):
        assert map_shipment_status(raw) is UNKNOWN

    def test_unknown_is_falsy_singleton(self):
        assert not UNKNOWN
        assert repr(UNKNOWN) == "UNKNOWN"
        assert type(UNKNOWN)() is UNKNOWN


class TestPaymentMapping:
    """Gateway vocabulary"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("CHARGED", PaymentStatus.COMPLETED),
            ("charged", PaymentStatus.COMPLETED),
            ("COD_INITIATED", PaymentStatus.COMPLETED),
            ("PENDING_VBV", PaymentStatus.PENDING),
            ("AUTHORIZING", PaymentStatus.PENDING),
            ("NEW", PaymentStatus.PENDING),
            ("AUTHORIZATION_FAILED", PaymentStatus.FAILED),
            ("JUSPAY_DECLINED", PaymentStatus.FAILED),
            ("AUTO_REFUNDED", PaymentStatus.FAILED),
        ],
    )
    def test_known_statuses(self, raw, expected):
        assert map_payment_status(raw) == expected

    def test_unknown_status(self):
        assert map_payment_status("PARTIAL_CHARGED") is UNKNOWN


class TestStatusHelpers:
    def test_final_statuses(self):
        assert is_final_shipment_status(ShipmentStatus.DELIVERED)
        assert is_final_shipment_status(ShipmentStatus.RTO)
        assert is_final_shipment_status(ShipmentStatus.CANCELLED)
        assert is_final_shipment_status(ShipmentStatus.LOST)
        assert not is_final_shipment_status(ShipmentStatus.NDR)
        assert not is_final_shipment_status(UNKNOWN)

    def test_categories(self):
        assert status_category(ShipmentStatus.OUT_FOR_DELIVERY) == "IN_TRANSIT"
        assert status_category(ShipmentStatus.PICKUP_PENDING) == "PICKUPS_AND_MANIFESTS"
        assert status_category(UNKNOWN) is None
