from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from .field_values import is_empty
from .models import DefaultKind, FieldConfig, Owner

UNKNOWN_USER = "Unknown User"
UNKNOWN_ORGANIZATION = "Unknown Organization"


@dataclass
class DefaultContext:
    owner: Owner | None = None
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def apply_field_defaults(
    fields: dict[str, Any] | None,
    configs: Iterable[FieldConfig],
    context: DefaultContext | None = None,
) -> dict[str, Any]:
    """
    Fill missing or empty fields from the enabled field configs.

    Fields that already carry a value are left untouched. Returns a new dict.

    Example:
        >>> apply_field_defaults({}, [FieldConfig("m", "Status", DefaultKind.STATIC, "Open")])
        {'Status': 'Open'}
    """
    context = context or DefaultContext()
    processed = dict(fields or {})
    for config in configs:
        if not config.enabled:
            continue
        if is_empty(processed.get(config.field_name)):
            processed[config.field_name] = default_value(config, context)
    return processed


def default_value(config: FieldConfig, context: DefaultContext) -> str:
    kind = DefaultKind(config.default_kind)
    if kind == DefaultKind.STATIC:
        return config.default_value or ""
    if kind == DefaultKind.TODAY:
        return context.now.date().isoformat()
    if kind == DefaultKind.CURRENT_USER:
        owner = context.owner
        if owner is None:
            return UNKNOWN_USER
        return owner.display_name or owner.email or UNKNOWN_USER
    if kind == DefaultKind.ORGANIZATION:
        if context.owner is not None and context.owner.organization:
            return context.owner.organization
        return UNKNOWN_ORGANIZATION
    if kind == DefaultKind.CALCULATED:
        return evaluate_formula(config.default_value, context)
    return ""


def evaluate_formula(formula: str | None, context: DefaultContext) -> str:
    """
    Replace ``{{TOKEN}}`` placeholders in a calculated default.

    Example:
        >>> ctx = DefaultContext(now=datetime(2025, 6, 5, tzinfo=timezone.utc))
        >>> evaluate_formula("INV-{{CURRENT_YEAR}}{{CURRENT_MONTH}}", ctx)
        'INV-202506'
    """
    if not formula:
        return ""
    owner = context.owner
    tokens = {
        "{{TODAY}}": context.now.date().isoformat(),
        "{{CURRENT_YEAR}}": str(context.now.year),
        "{{CURRENT_MONTH}}": f"{context.now.month:02d}",
        "{{USER_NAME}}": (owner.display_name if owner else "") or "Unknown",
        "{{USER_EMAIL}}": (owner.email if owner else "") or "",
        "{{TIMESTAMP}}": context.now.isoformat(),
    }
    result = formula
    for token, value in tokens.items():
        result = result.replace(token, value)
    return result
