from __future__ import annotations

from boleto_importer.models.import_job import Import, ImportStatus
from boleto_importer.models.import_row import ImportRow, RowStatus
from boleto_importer.models.transaction import Transaction

__all__ = [
    "Import",
    "ImportRow",
    "ImportStatus",
    "RowStatus",
    "Transaction",
]
