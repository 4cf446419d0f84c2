from __future__ import annotations

import logging
import zipfile

import pandas as pd

from boleto_importer.exceptions import (
    EmptyFileError,
    FileValidationError,
    RowValidationError,
    TooManyRowsError,
    UnsupportedFileError,
)
from boleto_importer.plugins import registry
from boleto_importer.services.row_validator import NormalizedRow, validate_row

logger = logging.getLogger(__name__)


def parse_file(
    file_content: bytes, filename: str, max_rows: int | None = None
) -> list[NormalizedRow]:
    """Parse an uploaded spreadsheet into validated rows.

    Every line is validated before anything is rejected so the caller gets
    the complete list of problems in one ``FileValidationError``.
    """
    parser = registry.find_parser(file_content, filename)
    if parser is None:
        raise UnsupportedFileError(filename)

    try:
        raw_rows = parser.parse(file_content, filename)
    except pd.errors.EmptyDataError as exc:
        raise EmptyFileError(filename) from exc
    except (pd.errors.ParserError, ValueError, zipfile.BadZipFile) as exc:
        logger.warning("Could not read %s with parser %s: %s", filename, parser.name, exc)
        raise UnsupportedFileError(filename) from exc

    if not raw_rows:
        raise EmptyFileError(filename)
    if max_rows is not None and len(raw_rows) > max_rows:
        raise TooManyRowsError(len(raw_rows), max_rows)

    rows: list[NormalizedRow] = []
    row_errors: list[RowValidationError] = []
    for index, raw in enumerate(raw_rows):
        result = validate_row(raw, index + 1)
        if result.ok:
            rows.append(result.row)
        else:
            row_errors.append(RowValidationError(result.row_number, result.errors))

    if row_errors:
        logger.info(
            "Rejected %s: %d of %d rows failed validation",
            filename,
            len(row_errors),
            len(raw_rows),
        )
        raise FileValidationError(row_errors)

    logger.debug("Parsed %d rows from %s using %s", len(rows), filename, parser.name)
    return rows
