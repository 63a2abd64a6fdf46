from __future__ import annotations

import re
from datetime import date
from typing import Any, Iterable

from .dates import format_date, normalize_date, parse_date
from .field_discovery import COMPANY, DATE, TICKET, DiscoveredFields
from .field_values import extract_field_value
from .models import NamingElement

DEFAULT_TEMPLATE = "{company}_{ticket}_{date}"
DEFAULT_EXTENSION = ".pdf"
MAX_COMPONENT_LENGTH = 50
UNKNOWN_COMPANY = "Unknown"
UNKNOWN_TICKET = "NoTicket"

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9\-_]")
_REPEATED_UNDERSCORE_RE = re.compile(r"_+")
_TEMPLATE_RE = re.compile(r"\{([^{}|]+)(?:\|([^{}]*))?\}")


def sanitize_component(value: str, max_length: int = MAX_COMPONENT_LENGTH) -> str:
    """
    Make a value safe to embed in a filename.

    Examples:
        >>> sanitize_component("ACME Corp.")
        'ACME_Corp'
        >>> sanitize_component("  //  ")
        ''
    """
    cleaned = _UNSAFE_CHARS_RE.sub("_", value)
    cleaned = _REPEATED_UNDERSCORE_RE.sub("_", cleaned).strip("_")
    return cleaned[:max_length]


def parse_template(template: str) -> list[NamingElement]:
    """
    Split a ``{field|transform}`` template into ordered naming elements.

    Example:
        >>> [e.value for e in parse_template("{company}-INV-{ticket|uppercase}")]
        ['company', '-INV-', 'ticket']
    """
    elements: list[NamingElement] = []
    position = 0
    for match in _TEMPLATE_RE.finditer(template):
        if match.start() > position:
            elements.append(NamingElement("text", template[position : match.start()]))
        transform = match.group(2).strip() if match.group(2) else None
        elements.append(NamingElement("field", match.group(1).strip(), transform or None))
        position = match.end()
    if position < len(template):
        elements.append(NamingElement("text", template[position:]))
    return elements


def apply_transform(value: str, transform: str | None) -> str:
    """
    Apply one naming transform: ``uppercase``, ``lowercase``, ``camelcase``,
    ``kebabcase``, ``date:<pattern>``, ``truncate:<n>`` or ``replace:<find>:<with>``.
    Unknown transforms leave the value unchanged.
    """
    if not transform or not value:
        return value
    kind, *params = transform.split(":")
    if kind == "uppercase":
        return value.upper()
    if kind == "lowercase":
        return value.lower()
    if kind == "camelcase":
        return _to_camel_case(value)
    if kind == "kebabcase":
        return _to_kebab_case(value)
    if kind == "date":
        parsed = parse_date(value)
        if parsed is None:
            return value
        return format_date(parsed, params[0] if params and params[0] else "YYYY-MM-DD")
    if kind == "truncate":
        try:
            length = int(params[0]) if params else MAX_COMPONENT_LENGTH
        except ValueError:
            length = MAX_COMPONENT_LENGTH
        return value[: length or MAX_COMPONENT_LENGTH]
    if kind == "replace" and len(params) >= 2:
        return value.replace(params[0], params[1]) if params[0] else value
    return value


def build_filename(
    fields: dict[str, Any] | None,
    discovered: DiscoveredFields,
    elements: Iterable[NamingElement] | None = None,
    today: date | None = None,
    extension: str = DEFAULT_EXTENSION,
) -> str:
    """
    Compose the output filename from the naming elements and the job's fields.

    ``company``, ``ticket`` and ``date`` resolve to the discovered values with
    their fallbacks; any other name is looked up in the raw fields and falls
    back to the name itself when empty.

    Example:
        >>> found = DiscoveredFields(company="ACME Corp", ticket="T-1", date="06/05/2025")
        >>> build_filename({}, found)
        'ACME_Corp_T-1_2025-06-05.pdf'
    """
    element_list = list(elements) if elements else parse_template(DEFAULT_TEMPLATE)
    fields = fields or {}
    parts: list[str] = []
    for element in element_list:
        if not element.is_field:
            parts.append(_UNSAFE_CHARS_RE.sub("_", element.value))
            continue
        raw = _resolve_field(element.value, fields, discovered, today)
        parts.append(sanitize_component(apply_transform(raw, element.transform)))
    stem = _REPEATED_UNDERSCORE_RE.sub("_", "".join(parts)).strip("_")
    return f"{stem or 'document'}{extension}"


def resolve_collision(name: str, used_names: set[str]) -> str:
    """
    Return ``name`` or the first ``_01``, ``_02``... variant not in ``used_names``.

    Example:
        >>> resolve_collision("photo.pdf", {"photo.pdf"})
        'photo_01.pdf'
    """
    if name not in used_names:
        return name
    return _next_available_name(name, used_names)


def _resolve_field(
    name: str,
    fields: dict[str, Any],
    discovered: DiscoveredFields,
    today: date | None,
) -> str:
    if name == COMPANY:
        return sanitize_component(discovered.company) or UNKNOWN_COMPANY
    if name == TICKET:
        return sanitize_component(discovered.ticket) or UNKNOWN_TICKET
    if name == DATE:
        return normalize_date(discovered.date, today=today)
    value = extract_field_value(fields.get(name))
    return value or name


def _to_camel_case(value: str) -> str:
    words = [word for word in re.split(r"[^A-Za-z0-9]+", value) if word]
    if not words:
        return ""
    head, *tail = words
    return head[:1].lower() + head[1:] + "".join(word[:1].upper() + word[1:] for word in tail)


def _to_kebab_case(value: str) -> str:
    dashed = re.sub(r"[^A-Za-z0-9]+", "-", value)
    dashed = re.sub(r"([a-z])([A-Z])", r"\1-\2", dashed)
    return dashed.lower().strip("-")


def _next_available_name(name: str, used_names: set[str]) -> str:
    base, ext = _split_extension(name)
    counter = 1
    while True:
        candidate = f"{base}_{counter:02d}{ext}"
        if candidate not in used_names:
            return candidate
        counter += 1


def _split_extension(name: str) -> tuple[str, str]:
    """
    Split a filename into (base, extension), keeping the dot in the extension.
    """
    base, dot, ext = name.rpartition(".")
    if dot == "":
        return name, ""
    if base == "":
        return "", f".{ext}"
    return base, f".{ext}"
