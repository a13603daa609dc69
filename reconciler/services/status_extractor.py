"""
Status extraction from Delhivery tracking responses.

The carrier's JSON shape drifts between releases, so nothing here assumes a fixed
schema. Each strategy probes one path and either returns a hit or None; strategies
are tried in priority order and the first hit wins. Every strategy is still
evaluated so that conflicting values at lower-priority paths are kept for audit.

Typical shape:
    { "ShipmentData": [ { "Shipment": { "AWB": "...",
        "Status": { "Status": "Delivered", "StatusType": "DL",
                    "StatusLocation": "Mumbai", "StatusDateTime": "2024-01-15T14:30:00" } } } ] }
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class StatusHit:
    """What a single strategy found."""
    raw_status: str
    status_type: Optional[str] = None
    location: Optional[str] = None
    occurred_at: Optional[str] = None


@dataclass
class ExtractedStatus:
    raw_status: str
    status_type: Optional[str]
    location: Optional[str]
    occurred_at: Optional[str]
    matched_path: str
    candidates: list[tuple[str, str]] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return len({raw for _, raw in self.candidates}) > 1

    def to_dict(self) -> dict:
        return {
            "raw_status": self.raw_status,
            "status_type": self.status_type,
            "location": self.location,
            "occurred_at": self.occurred_at,
            "matched_path": self.matched_path,
            "candidates": [{"path": p, "raw_status": r} for p, r in self.candidates],
        }


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _first_shipment_data(payload: dict) -> Optional[dict]:
    data = payload.get("ShipmentData")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return None


def _hit_from_status_object(obj: Any) -> Optional[StatusHit]:
    if not isinstance(obj, dict):
        return None
    raw = _text(obj.get("Status"))
    if raw is None:
        return None
    return StatusHit(
        raw_status=raw,
        status_type=_text(obj.get("StatusType")),
        location=_text(obj.get("StatusLocation")),
        occurred_at=_text(obj.get("StatusDateTime")),
    )


def _hit_from_string(value: Any) -> Optional[StatusHit]:
    raw = _text(value)
    return StatusHit(raw_status=raw) if raw is not None else None


# Strategies. Each takes the whole payload (already known to be a dict).

def shipment_status_object(payload: dict) -> Optional[StatusHit]:
    sd = _first_shipment_data(payload)
    shipment = sd.get("Shipment") if sd else None
    if not isinstance(shipment, dict):
        return None
    return _hit_from_status_object(shipment.get("Status"))


def shipment_status_string(payload: dict) -> Optional[StatusHit]:
    sd = _first_shipment_data(payload)
    shipment = sd.get("Shipment") if sd else None
    if not isinstance(shipment, dict):
        return None
    return _hit_from_string(shipment.get("Status"))


def shipment_data_status_object(payload: dict) -> Optional[StatusHit]:
    sd = _first_shipment_data(payload)
    return _hit_from_status_object(sd.get("Status")) if sd else None


def shipment_data_status_string(payload: dict) -> Optional[StatusHit]:
    sd = _first_shipment_data(payload)
    return _hit_from_string(sd.get("Status")) if sd else None


def root_status_object(payload: dict) -> Optional[StatusHit]:
    return _hit_from_status_object(payload.get("Status"))


def root_status_string(payload: dict) -> Optional[StatusHit]:
    return _hit_from_string(payload.get("Status"))


def legacy_lowercase_status(payload: dict) -> Optional[StatusHit]:
    value = payload.get("status")
    if isinstance(value, dict):
        raw = _text(value.get("status"))
        if raw is None:
            return None
        return StatusHit(
            raw_status=raw,
            status_type=_text(value.get("status_type")),
            location=_text(value.get("status_location")),
            occurred_at=_text(value.get("status_date_time")),
        )
    return _hit_from_string(value)


Strategy = Callable[[dict], Optional[StatusHit]]

# Priority order. This list is the one place to touch when the carrier changes shape.
STRATEGIES: list[tuple[str, Strategy]] = [
    ("ShipmentData[0].Shipment.Status.Status", shipment_status_object),
    ("ShipmentData[0].Shipment.Status", shipment_status_string),
    ("ShipmentData[0].Status.Status", shipment_data_status_object),
    ("ShipmentData[0].Status", shipment_data_status_string),
    ("Status.Status", root_status_object),
    ("Status", root_status_string),
    ("status", legacy_lowercase_status),
]


def extract_status(payload: Any, strategies: Optional[list[tuple[str, Strategy]]] = None) -> Optional[ExtractedStatus]:
    """
    Return the status found at the highest-priority path, or None when no path
    yields a non-empty status. None means "no new information", not an error.
    """
    if not isinstance(payload, dict):
        logger.debug("Tracking payload is %s, not an object; nothing to extract", type(payload).__name__)
        return None

    winner: Optional[tuple[str, StatusHit]] = None
    candidates: list[tuple[str, str]] = []
    for path, strategy in strategies or STRATEGIES:
        hit = strategy(payload)
        if hit is None:
            continue
        candidates.append((path, hit.raw_status))
        if winner is None:
            winner = (path, hit)

    if winner is None:
        logger.debug("No status found in tracking payload (keys=%s)", sorted(payload.keys()))
        return None

    path, hit = winner
    result = ExtractedStatus(
        raw_status=hit.raw_status,
        status_type=hit.status_type,
        location=hit.location,
        occurred_at=hit.occurred_at,
        matched_path=path,
        candidates=candidates,
    )
    if result.has_conflict:
        logger.info("Conflicting carrier statuses, using %s=%r; candidates=%s", path, hit.raw_status, candidates)
    return result


def parse_carrier_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse the carrier's StatusDateTime. Returns naive UTC, or None when the value
    is missing or not ISO-8601.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable carrier timestamp %r", value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
