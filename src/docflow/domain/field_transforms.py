from __future__ import annotations

import re
from typing import Any, Iterable

from .dates import format_date, parse_date
from .field_values import extract_field_value
from .models import FieldConfig, TransformKind

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


def apply_field_transforms(
    fields: dict[str, Any] | None, configs: Iterable[FieldConfig]
) -> dict[str, Any]:
    """Run each enabled config's transformation on its field. Returns a new dict."""

    processed = dict(fields or {})
    for config in configs:
        if not config.enabled or config.field_name not in processed:
            continue
        try:
            kind = TransformKind(config.transformation)
        except ValueError:
            continue
        if kind == TransformKind.NONE:
            continue
        value = extract_field_value(processed[config.field_name])
        if not value:
            continue
        processed[config.field_name] = transform_value(
            value, kind, config.transformation_config or {}
        )
    return processed


def transform_value(value: str, kind: TransformKind, config: dict[str, Any]) -> str:
    if kind == TransformKind.DATE_PARSE:
        return transform_date(value, config)
    if kind == TransformKind.NUMBER_FORMAT:
        return transform_number(value, config)
    if kind == TransformKind.TEXT_REPLACE:
        return transform_text(value, config)
    return value


def transform_date(value: str, config: dict[str, Any]) -> str:
    """
    Re-format a date value; unparseable input is returned unchanged.

    Example:
        >>> transform_date("June 5, 2025", {"output_format": "MM/DD/YYYY"})
        '06/05/2025'
    """
    parsed = parse_date(value)
    if parsed is None:
        return value
    return format_date(parsed, config.get("output_format", "YYYY-MM-DD"))


def transform_number(value: str, config: dict[str, Any]) -> str:
    """
    Example:
        >>> transform_number("USD 1234.5", {"prefix": "$"})
        '$1,234.50'
    """
    try:
        number = float(_NON_NUMERIC_RE.sub("", value))
        decimals = int(config.get("decimals", 2))
        formatted = f"{number:,.{decimals}f}"
    except (TypeError, ValueError):
        return value
    thousands = config.get("thousands_separator", ",")
    decimal_sep = config.get("decimal_separator", ".")
    integer_part, _, fraction = formatted.partition(".")
    integer_part = integer_part.replace(",", thousands)
    result = f"{integer_part}{decimal_sep}{fraction}" if fraction else integer_part
    return f"{config.get('prefix', '')}{result}{config.get('suffix', '')}"


def transform_text(value: str, config: dict[str, Any]) -> str:
    """Trim, replace and re-case text; a replacement with an invalid pattern is skipped."""

    result = value.strip() if config.get("trim", True) else value
    for replacement in config.get("replacements", []):
        source = replacement.get("from", "")
        target = replacement.get("to", "")
        if not source:
            continue
        if replacement.get("regex"):
            try:
                result = re.sub(source, target, result)
            except re.error:
                continue
        else:
            result = result.replace(source, target)
    case = config.get("case", "none")
    if case == "upper":
        result = result.upper()
    elif case == "lower":
        result = result.lower()
    elif case == "title":
        result = result.title()
    return result
