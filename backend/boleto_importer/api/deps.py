from __future__ import annotations

from boleto_importer.database import async_session_factory
from boleto_importer.services.stores import SqlImportStore, SqlRowStore


def get_import_store() -> SqlImportStore:
    return SqlImportStore(async_session_factory)


def get_row_store() -> SqlRowStore:
    return SqlRowStore(async_session_factory)
