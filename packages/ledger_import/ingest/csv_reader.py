"""CSV → ``(headers, rows)`` adapter.

Rows are returned as plain lists of strings, positionally aligned with the
header row, which is what :func:`ledger_import.importer.import_rows` expects.
Leading blank lines (common in bank exports) are skipped before the header.
"""

from __future__ import annotations

import csv
from io import StringIO
from os import PathLike
from pathlib import Path
from typing import NamedTuple


class CsvTable(NamedTuple):
    headers: list[str]
    rows: list[list[str]]


def _read(reader) -> CsvTable:
    headers: list[str] | None = None
    rows: list[list[str]] = []
    for record in reader:
        if headers is None:
            if not any(cell.strip() for cell in record):
                continue
            headers = [cell.strip() for cell in record]
            continue
        rows.append(list(record))
    if headers is None:
        raise csv.Error("CSV appears to have no header row")
    return CsvTable(headers=headers, rows=rows)


def read_csv_text(csv_text: str) -> CsvTable:
    # csv handles RFC 4180 quoting and embedded newlines.
    with StringIO(csv_text.lstrip("\ufeff")) as f:
        return _read(csv.reader(f))


def read_csv_file(csv_path: str | PathLike[str]) -> CsvTable:
    """Read a CSV file (UTF-8, optional BOM)."""

    p = Path(csv_path)
    with p.open(encoding="utf-8-sig", newline="") as f:
        try:
            return _read(csv.reader(f))
        except csv.Error as exc:
            raise csv.Error(f"{exc}: {csv_path}") from exc


__all__ = ["CsvTable", "read_csv_text", "read_csv_file"]
