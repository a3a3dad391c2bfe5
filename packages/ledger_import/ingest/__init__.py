"""Readers that turn exported files into a header row plus raw cell rows."""

from .csv_reader import CsvTable, read_csv_file, read_csv_text

__all__ = ["CsvTable", "read_csv_file", "read_csv_text"]
