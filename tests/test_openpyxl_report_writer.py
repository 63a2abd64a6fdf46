from io import BytesIO

from openpyxl import load_workbook

from docflow.adapters.openpyxl_report_writer import OpenpyxlReportWriter


def test_render_writes_titled_sheet_with_header_and_rows() -> None:
    data = OpenpyxlReportWriter().render(
        "Extraction Report",
        ["File Name", "Total"],
        [["a.pdf", "=1+1"], ["b.pdf", "bad\x00text"]],
    )

    sheet = load_workbook(BytesIO(data)).active

    assert sheet.title == "Extraction Report"
    assert [[cell.value for cell in row] for row in sheet.iter_rows()] == [
        ["File Name", "Total"],
        ["a.pdf", "=1+1"],
        ["b.pdf", "badtext"],
    ]
    assert sheet["B2"].data_type == "s"
    assert sheet.column_dimensions["A"].width == 11


def test_column_width_is_capped() -> None:
    data = OpenpyxlReportWriter().render("Report", ["Notes"], [["x" * 200]])

    sheet = load_workbook(BytesIO(data)).active

    assert sheet.column_dimensions["A"].width == 50
