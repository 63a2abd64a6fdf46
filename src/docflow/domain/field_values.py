from __future__ import annotations

from typing import Any

VALUE_KEYS = (
    "value",
    "content",
    "text",
    "valueString",
    "valueDate",
    "valueNumber",
    "valueInteger",
    "valueData",
    "date",
)


def extract_field_value(field: Any) -> str:
    """
    Read a plain string out of one extracted field, whatever shape the service used.

    Examples:
        >>> extract_field_value({"type": "string", "valueString": "ACME"})
        'ACME'
        >>> extract_field_value({"type": "selectionMark", "valueSelectionMark": "selected"})
        'Yes'
        >>> extract_field_value([{"content": "first"}, {"content": "second"}])
        'first'
    """
    if field is None:
        return ""
    if isinstance(field, bool):
        return "Yes" if field else "No"
    if isinstance(field, (str, int, float)):
        return str(field).strip()
    if isinstance(field, list):
        return extract_field_value(field[0]) if field else ""
    if not isinstance(field, dict):
        return str(field).strip()

    field_type = field.get("type")
    if field_type == "selectionMark":
        state = field.get("valueSelectionMark") or field.get("state") or field.get("value")
        return "Yes" if state == "selected" else "No"
    if field_type == "signature":
        state = field.get("valueSignature") or field.get("value")
        return "Signed" if state == "signed" else "Not Signed"

    for key in VALUE_KEYS:
        if key not in field:
            continue
        candidate = field[key]
        if candidate is None:
            continue
        if isinstance(candidate, (dict, list)):
            nested = extract_field_value(candidate)
            if nested:
                return nested
            continue
        text = str(candidate).strip()
        if text:
            return text
    return ""


def is_empty(field: Any) -> bool:
    return extract_field_value(field) == ""


def flatten_fields(fields: dict[str, Any] | None) -> dict[str, str]:
    """Map every field name to its plain string value."""

    if not fields:
        return {}
    return {name: extract_field_value(raw) for name, raw in fields.items()}
