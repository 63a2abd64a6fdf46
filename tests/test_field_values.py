from docflow.domain.field_values import extract_field_value, flatten_fields, is_empty


def test_extract_plain_and_typed_values() -> None:
    assert extract_field_value("  ACME  ") == "ACME"
    assert extract_field_value(12) == "12"
    assert extract_field_value({"type": "string", "valueString": "ACME"}) == "ACME"
    assert extract_field_value({"type": "date", "valueDate": "2025-06-05"}) == "2025-06-05"
    assert extract_field_value({"type": "number", "valueNumber": 12.5}) == "12.5"


def test_extract_prefers_value_then_content() -> None:
    field = {"value": "", "content": "from content", "valueString": "typed"}
    assert extract_field_value(field) == "from content"


def test_extract_selection_marks_and_signatures() -> None:
    assert extract_field_value({"type": "selectionMark", "valueSelectionMark": "selected"}) == "Yes"
    assert extract_field_value({"type": "selectionMark", "valueSelectionMark": "unselected"}) == "No"
    assert extract_field_value({"type": "signature", "valueSignature": "signed"}) == "Signed"
    assert extract_field_value({"type": "signature", "valueSignature": "unsigned"}) == "Not Signed"
    assert extract_field_value(True) == "Yes"


def test_extract_nested_and_list_values() -> None:
    assert extract_field_value({"value": {"content": "inner"}}) == "inner"
    assert extract_field_value([{"content": "first"}, {"content": "second"}]) == "first"
    assert extract_field_value([]) == ""
    assert extract_field_value(None) == ""


def test_is_empty_and_flatten() -> None:
    assert is_empty({"content": "   "})
    assert not is_empty({"content": "x"})
    fields = {"A": {"valueString": "a"}, "B": None}
    assert flatten_fields(fields) == {"A": "a", "B": ""}
    assert flatten_fields(None) == {}
