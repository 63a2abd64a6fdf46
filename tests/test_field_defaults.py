from datetime import datetime, timezone

from docflow.domain.field_defaults import DefaultContext, apply_field_defaults, evaluate_formula
from docflow.domain.models import DefaultKind, FieldConfig, Owner

NOW = datetime(2025, 6, 5, 9, 30, tzinfo=timezone.utc)


def _config(name: str, kind: DefaultKind, value: str = "", enabled: bool = True) -> FieldConfig:
    return FieldConfig(
        model_id="model-1",
        field_name=name,
        default_kind=kind,
        default_value=value,
        enabled=enabled,
    )


def test_defaults_fill_only_empty_fields() -> None:
    owner = Owner(owner_id="7", display_name="Dana", email="dana@example.com", organization="Org")
    configs = [
        _config("Status", DefaultKind.STATIC, "Open"),
        _config("Received", DefaultKind.TODAY),
        _config("Reviewer", DefaultKind.CURRENT_USER),
        _config("Org", DefaultKind.ORGANIZATION),
        _config("Customer", DefaultKind.STATIC, "ignored"),
    ]
    fields = {"Customer": {"content": "ACME"}, "Status": {"content": ""}}

    result = apply_field_defaults(fields, configs, DefaultContext(owner=owner, now=NOW))

    assert result == {
        "Customer": {"content": "ACME"},
        "Status": "Open",
        "Received": "2025-06-05",
        "Reviewer": "Dana",
        "Org": "Org",
    }
    assert fields == {"Customer": {"content": "ACME"}, "Status": {"content": ""}}


def test_defaults_for_unknown_owner() -> None:
    configs = [
        _config("Reviewer", DefaultKind.CURRENT_USER),
        _config("Org", DefaultKind.ORGANIZATION),
    ]
    result = apply_field_defaults({}, configs, DefaultContext(owner=None, now=NOW))
    assert result == {"Reviewer": "Unknown User", "Org": "Unknown Organization"}


def test_current_user_falls_back_to_email() -> None:
    owner = Owner(owner_id="7", email="dana@example.com")
    result = apply_field_defaults(
        {}, [_config("Reviewer", DefaultKind.CURRENT_USER)], DefaultContext(owner=owner, now=NOW)
    )
    assert result == {"Reviewer": "dana@example.com"}


def test_disabled_configs_are_skipped() -> None:
    result = apply_field_defaults({}, [_config("Status", DefaultKind.STATIC, "Open", enabled=False)])
    assert result == {}


def test_calculated_default_replaces_tokens() -> None:
    owner = Owner(owner_id="7", display_name="Dana")
    context = DefaultContext(owner=owner, now=NOW)
    assert evaluate_formula("INV-{{CURRENT_YEAR}}{{CURRENT_MONTH}}", context) == "INV-202506"
    assert evaluate_formula("{{USER_NAME}} on {{TODAY}}", context) == "Dana on 2025-06-05"
    result = apply_field_defaults(
        {}, [_config("Ref", DefaultKind.CALCULATED, "R-{{CURRENT_YEAR}}")], context
    )
    assert result == {"Ref": "R-2025"}
