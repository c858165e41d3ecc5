"""Unit tests for the export schema validator."""

import pytest
from tests.conftest import HEADER, make_csv, make_row

from ig_timeseries.data.files import EXPECTED_COLUMNS
from ig_timeseries.data.parser import read_table
from ig_timeseries.data.schema import (
    IssueCode,
    ValidationConfig,
    ValidationOutcome,
    validate_content,
    validate_file_properties,
    validate_row,
    validate_structure,
    validate_table,
)


def test_valid_table(valid_export_text):
    """Test that a clean export is valid without warnings."""
    report = validate_table(read_table(valid_export_text))
    assert report.outcome is ValidationOutcome.VALID
    assert report.info["valid_rows"] == 2


def test_missing_column_is_named():
    """Test that an eight column export names the missing column."""
    header = ",".join(EXPECTED_COLUMNS[:-1])
    text = make_csv(["alpha,Alpha,1,,10,20,30,"], header=header)
    report = validate_structure(read_table(text))
    assert not report.is_valid
    assert report.errors[0].code is IssueCode.SCHEMA_COLUMNS
    assert "Comment" in report.errors[0].message
    assert "Expected 9 columns, found 8" in report.errors[0].message


def test_renamed_column_reports_position():
    """Test that a misnamed column is reported with its position."""
    header = HEADER.replace("Views", "Impressions")
    report = validate_structure(read_table(make_csv([make_row("a", "1")], header=header)))
    assert not report.is_valid
    assert "column 6" in report.errors[0].message


def test_too_few_and_many_rows():
    """Test the row count thresholds."""
    assert not validate_structure(read_table(HEADER + "\n")).is_valid
    text = make_csv([make_row(f"a{i}", str(i)) for i in range(1, 4)])
    report = validate_structure(read_table(text), ValidationConfig(max_rows=2))
    assert report.is_valid
    assert any("Many rows" in issue.message for issue in report.warnings)


def test_validate_structure_requires_table():
    """Test that passing None is a programmer error."""
    with pytest.raises(TypeError):
        validate_structure(None)


def test_validate_row_warnings_and_errors():
    """Test required identifiers and lenient metric checks."""
    row = {"Account": "alpha", "IG ID": "", "Reach": "abc", "Views": "-5"}
    result = validate_row(row, 3)
    assert not result.is_valid
    assert result.errors[0].row == 3
    assert len(result.warnings) == 2


def test_half_failed_rows_is_fatal():
    """Test that half the rows failing invalidates the file."""
    rows = [
        {"Account": "alpha", "IG ID": "1"},
        {"Account": "bravo", "IG ID": ""},
    ]
    report = validate_content(rows)
    assert report.outcome is ValidationOutcome.INVALID
    assert any("Too many row errors" in issue.message for issue in report.errors)


def test_few_failed_rows_is_warning():
    """Test that a minority of bad rows only warns."""
    rows = [{"Account": f"a{i}", "IG ID": str(i)} for i in range(1, 10)]
    rows.append({"Account": "broken", "IG ID": ""})
    report = validate_content(rows)
    assert report.is_valid
    assert report.outcome is ValidationOutcome.VALID_WITH_WARNINGS
    assert report.info == {"valid_rows": 9, "fully_valid_rows": 9, "error_rows": 1}


def test_low_fully_valid_share_warns():
    """Test the fully-valid ratio warning."""
    rows = [
        {"Account": "a", "IG ID": "1", "Reach": "x"},
        {"Account": "b", "IG ID": "2", "Reach": "y"},
        {"Account": "c", "IG ID": "3"},
    ]
    report = validate_content(rows)
    assert report.is_valid
    assert any("fully valid" in issue.message for issue in report.warnings)


def test_report_to_dict(valid_export_text):
    """Test the JSON-friendly report shape."""
    payload = validate_table(read_table(valid_export_text)).to_dict()
    assert payload["outcome"] == "valid"
    assert payload["errors"] == []


def test_file_properties_empty_and_oversized(valid_export_text):
    """Test that blank text and text above the byte limit are rejected."""
    empty = validate_file_properties("  \n")
    assert empty.errors[0].code is IssueCode.FILE_FORMAT
    assert empty.errors[0].message == "File is empty"

    small = ValidationConfig(max_bytes=16)
    too_large = validate_file_properties(valid_export_text, small)
    assert not too_large.is_valid
    assert too_large.errors[0].details["max_bytes"] == 16
    assert "too large" in too_large.errors[0].message

    assert validate_file_properties(valid_export_text).is_valid
    assert ValidationConfig().max_bytes == 5 * 1024 * 1024
