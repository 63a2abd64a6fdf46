from docflow.domain.field_discovery import FieldRule, discover_fields


def test_discover_uses_synonyms_in_order() -> None:
    fields = {
        "VendorName": {"valueString": "Vendor Co"},
        "CustomerName": {"valueString": "Customer Co"},
        "InvoiceId": {"content": "INV-7"},
        "InvoiceDate": {"valueDate": "2025-06-05"},
    }
    found = discover_fields(fields)
    assert found.company == "Customer Co"
    assert found.ticket == "INV-7"
    assert found.date == "2025-06-05"


def test_discover_skips_empty_synonyms() -> None:
    fields = {"Company Name": {"content": ""}, "VendorName": {"content": "Vendor Co"}}
    assert discover_fields(fields).company == "Vendor Co"


def test_discover_date_by_substring() -> None:
    found = discover_fields({"DueDate": {"content": "06/30/2025"}})
    assert found.date == "06/30/2025"
    assert found.company == ""
    assert found.ticket == ""


def test_discover_with_custom_rules() -> None:
    rules = (FieldRule(target="ticket", synonyms=("PO",)),)
    found = discover_fields({"PO": "4711", "InvoiceId": "INV-1"}, rules)
    assert found.as_dict() == {"company": "", "ticket": "4711", "date": ""}


def test_discover_empty_fields() -> None:
    assert discover_fields(None).as_dict() == {"company": "", "ticket": "", "date": ""}
