from __future__ import annotations

import logging
import uuid

import pandas as pd

from boleto_importer.config import settings
from boleto_importer.models.import_job import Import, ImportStatus
from boleto_importer.models.import_row import RowStatus
from boleto_importer.schemas.import_job import (
    ImportLinks,
    ImportStats,
    ImportStatusResponse,
)
from boleto_importer.services.file_parser import parse_file
from boleto_importer.services.stores import ImportStore, RowStore

logger = logging.getLogger(__name__)

RESULTS_COLUMNS = [
    "row_number",
    "name",
    "document",
    "amount",
    "boleto_url",
    "boleto_code",
    "transaction_id",
]

ERRORS_COLUMNS = [
    "row_number",
    "name",
    "document",
    "amount",
    "error_code",
    "error_message",
]


async def create_import(
    imports: ImportStore,
    filename: str,
    file_content: bytes,
    webhook_url: str | None = None,
) -> Import:
    """Validate an uploaded file and persist it as a queued import.

    Raises the ingestion errors of ``parse_file`` untouched; nothing is
    written unless every line is valid, and the import and its rows are
    committed together. Dispatching the job is left to the caller.
    """
    parsed = parse_file(file_content, filename, max_rows=settings.MAX_IMPORT_ROWS)

    import_ = await imports.create_import(
        parsed,
        original_filename=filename,
        status=ImportStatus.QUEUED,
        total_rows=len(parsed),
        webhook_url=webhook_url or None,
    )

    logger.info("Import %s created from %s with %d rows", import_.id, filename, len(parsed))
    return import_


def get_import_status(import_: Import) -> ImportStatusResponse:
    base_url = settings.API_BASE_URL.rstrip("/")
    return ImportStatusResponse(
        id=import_.id,
        status=import_.status.value,
        filename=import_.original_filename,
        created_at=import_.created_at,
        started_at=import_.started_at,
        finished_at=import_.finished_at,
        stats=ImportStats(
            total=import_.total_rows,
            processed=import_.processed_rows,
            success=import_.success_rows,
            error=import_.error_rows,
        ),
        links=ImportLinks(
            results=f"{base_url}/api/v1/imports/{import_.id}/results.csv",
            errors=f"{base_url}/api/v1/imports/{import_.id}/errors.csv",
        ),
    )


def _major_units(amount: int) -> str:
    return f"{amount / 100:.2f}"


async def generate_results_csv(rows: RowStore, import_id: uuid.UUID) -> str:
    success_rows = await rows.find_by_status(import_id, RowStatus.SUCCESS)
    data = [
        {
            "row_number": row.row_number,
            "name": row.name,
            "document": row.document,
            "amount": _major_units(row.amount),
            "boleto_url": row.transaction.boleto_url if row.transaction else "",
            "boleto_code": row.transaction.boleto_code if row.transaction else "",
            "transaction_id": row.transaction.id_transaction if row.transaction else "",
        }
        for row in success_rows
    ]
    return pd.DataFrame(data, columns=RESULTS_COLUMNS).to_csv(index=False)


async def generate_errors_csv(rows: RowStore, import_id: uuid.UUID) -> str:
    error_rows = await rows.find_by_status(import_id, RowStatus.ERROR)
    data = [
        {
            "row_number": row.row_number,
            "name": row.name,
            "document": row.document,
            "amount": _major_units(row.amount),
            "error_code": row.error_code or "",
            "error_message": row.error_message or "",
        }
        for row in error_rows
    ]
    return pd.DataFrame(data, columns=ERRORS_COLUMNS).to_csv(index=False)
