"""Parsers for monthly export CSV payloads."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Mapping

from attrs import define, field

from ..errors import RowDataError
from ..metrics.registry import METRICS
from .files import ACCOUNT_ID_COLUMN, DISPLAY_NAME_COLUMN, HANDLE_COLUMN
from .models import Account, MonthlyRecord, coerce_numeric
from .periods import Period


@define(slots=True, frozen=True)
class Table:
    """Header plus header-keyed rows, exactly as read from the CSV text."""

    columns: tuple[str, ...] = field(converter=tuple)
    rows: list[dict[str, str]] = field(factory=list)
    parse_errors: tuple[str, ...] = field(converter=tuple, factory=tuple)


def _is_blank_line(cells: list[str]) -> bool:
    return all(cell.strip() == "" for cell in cells)


def read_table(text: str) -> Table:
    """Read comma-separated export text into a :class:`Table`.

    Blank lines are skipped and cells are stripped. Rows with a cell count that
    differs from the header are kept (padded or truncated) and noted in
    ``parse_errors``.
    """
    if text is None:
        raise TypeError("read_table() requires text, got None")
    # Exports saved from spreadsheets often start with a UTF-8 BOM.
    buffer = io.StringIO(text.lstrip("\ufeff"))
    reader = csv.reader(buffer, delimiter=",", quotechar='"')
    columns: list[str] | None = None
    rows: list[dict[str, str]] = []
    errors: list[str] = []
    for cells in reader:
        if not cells or _is_blank_line(cells):
            continue
        if columns is None:
            columns = [cell.strip() for cell in cells]
            continue
        if len(cells) != len(columns):
            errors.append(
                f"Line {reader.line_num}: expected {len(columns)} fields, found {len(cells)}"
            )
            cells = (cells + [""] * len(columns))[: len(columns)]
        rows.append({name: cell.strip() for name, cell in zip(columns, cells)})
    return Table(columns=columns or (), rows=rows, parse_errors=errors)


@define(slots=True, frozen=True)
class ExportRow:
    """One export row mapped onto named fields."""

    handle: str
    account_name: str
    account_id: str
    fb_page: str
    reach: float
    views: float
    followers: float
    status: str
    comment: str

    @classmethod
    def from_table_row(cls, row: Mapping[str, str], row_number: int | None = None) -> ExportRow:
        """Map a header-keyed row onto named fields, coercing metrics leniently."""
        handle = (row.get(HANDLE_COLUMN) or "").strip()
        account_id = (row.get(ACCOUNT_ID_COLUMN) or "").strip()
        if not handle or not account_id:
            raise RowDataError("missing required Account or IG ID", row=row_number)
        metrics = {
            key: coerce_numeric(row.get(definition.csv_column))
            for key, definition in METRICS.items()
        }
        return cls(
            handle=handle,
            account_name=(row.get(DISPLAY_NAME_COLUMN) or "").strip(),
            account_id=account_id,
            fb_page=(row.get("FB Page") or "").strip(),
            reach=metrics["reach"],
            views=metrics["views"],
            followers=metrics["followers"],
            status=(row.get("Status") or "").strip(),
            comment=(row.get("Comment") or "").strip(),
        )

    def account(self) -> Account:
        """Build the :class:`Account` this row describes."""
        return Account(
            account_id=self.account_id,
            handle=self.handle,
            display_name=self.account_name,
        )

    def metrics(self) -> dict[str, float]:
        """Return metric values keyed by registry metric key."""
        return {key: getattr(self, key) for key in METRICS}

    def to_record(self, period: Period) -> MonthlyRecord:
        """Build the :class:`MonthlyRecord` for ``period``."""
        return MonthlyRecord(account=self.account(), period=period, metrics=self.metrics())


def parse_rows(rows: Iterable[Mapping[str, str]]) -> tuple[list[ExportRow], list[RowDataError]]:
    """Convert header-keyed rows into :class:`ExportRow` objects.

    Rows with neither identifier are skipped silently; rows missing only one of
    them are returned as errors.
    """
    parsed: list[ExportRow] = []
    failures: list[RowDataError] = []
    for number, row in enumerate(rows, start=1):
        handle = (row.get(HANDLE_COLUMN) or "").strip()
        if not handle and not (row.get(ACCOUNT_ID_COLUMN) or "").strip():
            continue
        try:
            parsed.append(ExportRow.from_table_row(row, number))
        except RowDataError as exc:
            failures.append(exc)
    return parsed, failures


def parse_records(text: str, period: Period) -> list[MonthlyRecord]:
    """Read export text and return one record per usable row."""
    rows, _ = parse_rows(read_table(text).rows)
    return [row.to_record(period) for row in rows]


__all__ = ["ExportRow", "Table", "parse_records", "parse_rows", "read_table"]
