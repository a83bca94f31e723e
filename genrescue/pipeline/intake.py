from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from genrescue.internal_core.contracts import REPORT_KINDS, Location
from genrescue.internal_core.errors import IntakeValidationError

LocationInput = Union[Location, Mapping[str, Any], None]


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_report(session_id: Optional[str], report_kind: Optional[str], location: LocationInput) -> Location:
    """Check the fields every report needs; returns the parsed location."""
    if isinstance(location, Location):
        location = location.model_dump()

    errors: list[str] = []
    if not str(session_id or "").strip():
        errors.append("Session ID is required")

    if not report_kind:
        errors.append("SOS type is required")
    elif report_kind not in REPORT_KINDS:
        errors.append(f"Invalid SOS type. Must be one of: {', '.join(REPORT_KINDS)}")

    latitude = longitude = None
    if not isinstance(location, Mapping):
        errors.append("Location data is required")
    else:
        latitude = _as_float(location.get("latitude"))
        longitude = _as_float(location.get("longitude"))
        if latitude is None or longitude is None:
            errors.append("Location data is required")
        if latitude is not None and not -90.0 <= latitude <= 90.0:
            errors.append("Invalid latitude value")
        if longitude is not None and not -180.0 <= longitude <= 180.0:
            errors.append("Invalid longitude value")

    if errors:
        raise IntakeValidationError(errors)

    try:
        return Location.model_validate(
            {
                "latitude": latitude,
                "longitude": longitude,
                "accuracy": location.get("accuracy"),
                "captured_at": location.get("captured_at"),
            }
        )
    except ValidationError as exc:
        raise IntakeValidationError(
            [f"Invalid location field '{'.'.join(str(p) for p in err['loc'])}': {err['msg']}" for err in exc.errors()]
        ) from exc


def validate_text_message(message: Optional[str]) -> str:
    if message is None or not str(message).strip():
        raise IntakeValidationError(["Message text is required"])
    return str(message)
