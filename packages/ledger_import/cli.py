# ruff: noqa: I001
"""CLI for the ``ledger_import`` package.

This module exposes callable command handlers (``cmd_detect_columns``,
``cmd_import_csv``, ``cmd_check_duplicates``) and a Typer-based console
interface. Environment variables (``DATABASE_URL``,
``LEDGER_IMPORT_LOG_LEVEL``, ``LEDGER_IMPORT_DATE_FORMAT``) are loaded from a
local ``.env`` using ``python-dotenv`` before delegating to command logic.
"""

from __future__ import annotations

import csv
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .columns import ColumnMapping, detect_columns, detect_transaction_type_column
from .errors import BatchInputError
from .ingest.csv_reader import CsvTable, read_csv_file
from .logging_setup import configure_logging
from .normalizers import NormalizerConfig, normalize_rows

_DATE_FORMAT_ENV_VAR = "LEDGER_IMPORT_DATE_FORMAT"
_SAMPLE_ROWS = 20


# ---- Small module-level helpers used by CLI commands -------------------------


def _parse_map_options(values: Sequence[str] | None) -> dict[str, int] | None:
    """Parse ``role=index`` pairs into a mapping dict (``None`` when empty)."""

    if not values:
        return None
    out: dict[str, int] = {}
    for item in values:
        role, sep, raw = item.partition("=")
        if not sep or not role.strip() or not raw.strip():
            raise ValueError(f"--map expects role=index, got {item!r}")
        try:
            out[role.strip()] = int(raw.strip())
        except ValueError as exc:
            raise ValueError(f"--map index must be an integer, got {item!r}") from exc
    return out


def _build_mapping(table: CsvTable, map_options: Sequence[str] | None) -> ColumnMapping:
    explicit = _parse_map_options(map_options)
    if explicit is not None:
        return ColumnMapping.from_dict(explicit)
    mapping = detect_columns(table.headers)
    type_col = detect_transaction_type_column(table.headers, table.rows[:_SAMPLE_ROWS])
    if type_col is not None and mapping.is_mapped("amount"):
        mapping.reassign(type_col, "transaction_type")
    return mapping


def _build_config(date_format: str | None, reverse_amounts: bool) -> NormalizerConfig:
    return NormalizerConfig(
        date_format=date_format or os.getenv(_DATE_FORMAT_ENV_VAR) or None,
        reverse_amounts=reverse_amounts,
    )


def _load_table(csv_path: str) -> CsvTable | None:
    try:
        return read_csv_file(csv_path)
    except FileNotFoundError:
        print(f"Error: CSV file not found: {csv_path}", file=sys.stderr)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        print(f"Error: could not read CSV {csv_path}: {e}", file=sys.stderr)
    return None


# ---- Command handlers --------------------------------------------------------


def cmd_detect_columns(csv_path: str) -> int:
    """Print the detected role → column assignment for a CSV header row.

    One ``<role>\\t<index>\\t<header>`` line per mapped role, followed by a
    ``missing: ...`` line when required roles could not be detected.
    """

    table = _load_table(csv_path)
    if table is None:
        return 1
    mapping = _build_mapping(table, None)
    for role, column in mapping.items():
        print(f"{role}\t{column}\t{table.headers[column]}")
    missing = mapping.missing_required()
    if missing:
        print(f"missing: {', '.join(missing)}")
    return 0


def cmd_import_csv(
    csv_path: str,
    *,
    source_id: int,
    map_options: Sequence[str] | None = None,
    apply_rules: bool = False,
    date_format: str | None = None,
    reverse_amounts: bool = False,
    database_url: str | None = None,
) -> int:
    """Import a CSV into the ledger and record an import-log entry.

    Returns ``0`` when the batch status is ``success`` or ``partial`` and
    ``1`` when nothing could be imported or the input itself is unusable.
    """

    from db.client import session_scope
    from .importer import import_rows
    from .storage import SqlRuleStore, SqlTransactionStore

    table = _load_table(csv_path)
    if table is None:
        return 1
    try:
        mapping = _build_mapping(table, map_options)
        config = _build_config(date_format, reverse_amounts)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        with session_scope(database_url=database_url) as session:
            store = SqlTransactionStore(session)
            outcome = import_rows(
                table.headers,
                table.rows,
                source_id=source_id,
                store=store,
                mapping=mapping,
                config=config,
                rule_store=SqlRuleStore(session),
                apply_rules=apply_rules,
            )
            store.log_import(
                outcome,
                source_id=source_id,
                file_name=Path(csv_path).name,
                metadata={"mapping": mapping.as_dict()},
            )
    except BatchInputError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:  # noqa: BLE001
        print(f"Error: import failed: {e}", file=sys.stderr)
        return 1

    print(
        f"imported={outcome.imported} skipped={outcome.skipped} "
        f"errors={len(outcome.errors)} status={outcome.status}"
    )
    for err in outcome.errors:
        print(f"row {err.index}: {err.error}")
    return 1 if outcome.status == "failed" else 0


def cmd_check_duplicates(
    csv_path: str,
    *,
    source_id: int,
    map_options: Sequence[str] | None = None,
    date_format: str | None = None,
    reverse_amounts: bool = False,
    database_url: str | None = None,
) -> int:
    """Report which rows of a CSV are already stored, without importing."""

    from db.client import session_scope
    from .importer import check_duplicates
    from .storage import SqlTransactionStore

    table = _load_table(csv_path)
    if table is None:
        return 1
    try:
        mapping = _build_mapping(table, map_options)
        config = _build_config(date_format, reverse_amounts)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    valid, invalid = normalize_rows(
        table.rows, mapping, source_id=source_id, headers=table.headers, config=config
    )
    try:
        with session_scope(database_url=database_url) as session:
            existing = set(
                check_duplicates((tx.hash for _, tx in valid), store=SqlTransactionStore(session))
            )
    except Exception as e:  # noqa: BLE001
        print(f"Error: duplicate check failed: {e}", file=sys.stderr)
        return 1

    duplicates = [(i, tx) for i, tx in valid if tx.hash in existing]
    print(f"rows={len(valid)} duplicates={len(duplicates)} invalid={len(invalid)}")
    for index, tx in duplicates:
        print(f"row {index}: {tx.hash}\t{tx.date}\t{tx.description}\t{tx.amount}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank/card CSV exports into the ledger with deduplication and "
        "rule-based categorization. Loads DATABASE_URL from a local .env."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_ARGUMENT = typer.Argument(..., help="Path to a CSV export", dir_okay=False)
MAP_OPTION: OptionInfo = typer.Option(
    None,
    "--map",
    help="Explicit column assignment as role=index (repeatable); disables auto-detection.",
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
DATE_FORMAT_OPTION: OptionInfo = typer.Option(
    None,
    "--date-format",
    help=f"strptime format for non-ISO dates (falls back to {_DATE_FORMAT_ENV_VAR}).",
)


@app.command("detect-columns")
def detect_columns_cmd(csv_path: Annotated[Path, CSV_PATH_ARGUMENT]) -> None:
    """Print the auto-detected column roles of a CSV."""

    raise typer.Exit(cmd_detect_columns(str(csv_path)))


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
    *,
    source_id: int = typer.Option(..., "--source-id", help="Ledger source id for every row."),
    map_options: list[str] | None = MAP_OPTION,
    apply_rules: bool = typer.Option(
        False, "--apply-rules", help="Fill unit/category from active rules."
    ),
    date_format: str | None = DATE_FORMAT_OPTION,
    reverse_amounts: bool = typer.Option(
        False, "--reverse-amounts", help="Flip the sign of every amount."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Import a CSV export into the ledger."""

    raise typer.Exit(
        cmd_import_csv(
            str(csv_path),
            source_id=source_id,
            map_options=map_options,
            apply_rules=apply_rules,
            date_format=date_format,
            reverse_amounts=reverse_amounts,
            database_url=database_url,
        )
    )


@app.command("check-duplicates")
def check_duplicates_cmd(
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
    *,
    source_id: int = typer.Option(..., "--source-id", help="Ledger source id for every row."),
    map_options: list[str] | None = MAP_OPTION,
    date_format: str | None = DATE_FORMAT_OPTION,
    reverse_amounts: bool = typer.Option(
        False, "--reverse-amounts", help="Flip the sign of every amount."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """List CSV rows whose fingerprint is already stored."""

    raise typer.Exit(
        cmd_check_duplicates(
            str(csv_path),
            source_id=source_id,
            map_options=map_options,
            date_format=date_format,
            reverse_amounts=reverse_amounts,
            database_url=database_url,
        )
    )


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps already-set environment variables
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return its exit code instead of exiting."""

    try:
        app(args=argv, prog_name="ledger-import")
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m ledger_import.cli`
    app()
