"""
Heuristic discovery of the company, ticket and date values used for naming.

Rules are an ordered list of synonyms per target. The first synonym with a
non-empty value wins, so a document that carries both ``CustomerName`` and
``VendorName`` is named after the customer. This is a known source of silent
mis-extraction; callers can pass their own rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from .field_values import extract_field_value

COMPANY = "company"
TICKET = "ticket"
DATE = "date"


@dataclass(frozen=True)
class FieldRule:
    target: str
    synonyms: tuple[str, ...]
    substring: str | None = None


@dataclass
class DiscoveredFields:
    company: str = ""
    ticket: str = ""
    date: str = ""

    def as_dict(self) -> dict[str, str]:
        return {COMPANY: self.company, TICKET: self.ticket, DATE: self.date}


DEFAULT_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        target=COMPANY,
        synonyms=(
            "Company Name",
            "CompanyName",
            "Company",
            "Customer Name",
            "CustomerName",
            "VendorName",
        ),
    ),
    FieldRule(
        target=TICKET,
        synonyms=(
            "Ticket #",
            "TicketNumber",
            "Ticket Number",
            "Invoice Number",
            "InvoiceNumber",
            "InvoiceId",
        ),
    ),
    FieldRule(
        target=DATE,
        synonyms=("Date", "InvoiceDate", "Invoice Date", "TransactionDate"),
        substring="date",
    ),
)


def discover_fields(
    fields: dict[str, Any] | None,
    rules: Iterable[FieldRule] = DEFAULT_RULES,
) -> DiscoveredFields:
    """
    Apply the rules in order and collect the first match per target.

    Example:
        >>> discover_fields({"CustomerName": {"valueString": "ACME"}}).company
        'ACME'
    """
    found = DiscoveredFields()
    if not fields:
        return found
    for rule in rules:
        if getattr(found, rule.target, ""):
            continue
        value = match_rule(fields, rule)
        if value:
            setattr(found, rule.target, value)
    return found


def match_rule(fields: dict[str, Any], rule: FieldRule) -> str:
    for synonym in rule.synonyms:
        if synonym in fields:
            value = extract_field_value(fields[synonym])
            if value:
                return value
    if rule.substring:
        needle = rule.substring.lower()
        for name, raw in fields.items():
            if needle in name.lower():
                value = extract_field_value(raw)
                if value:
                    return value
    return ""
