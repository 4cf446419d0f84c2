from __future__ import annotations

import asyncio
import logging
import uuid

from boleto_importer.config import settings
from boleto_importer.database import async_session_factory
from boleto_importer.services.import_orchestrator import ImportOrchestrator
from boleto_importer.services.issuer_client import IssuerClient
from boleto_importer.services.stores import (
    SqlImportStore,
    SqlRowStore,
    SqlTransactionStore,
)
from boleto_importer.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

# Worker-wide state: the issuer throttle must outlive a single import so a
# rate-limit hint keeps applying to every later call in this process.
_loop: asyncio.AbstractEventLoop | None = None
_issuer: IssuerClient | None = None


def _get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def _get_issuer() -> IssuerClient:
    global _issuer
    if _issuer is None:
        _issuer = IssuerClient()
    return _issuer


def build_orchestrator() -> ImportOrchestrator:
    return ImportOrchestrator(
        imports=SqlImportStore(async_session_factory),
        rows=SqlRowStore(async_session_factory),
        transactions=SqlTransactionStore(async_session_factory),
        issuer=_get_issuer(),
        max_concurrency=settings.MAX_CONCURRENCY,
        max_retries=settings.MAX_RETRIES,
    )


def shutdown_worker_resources() -> None:
    global _issuer, _loop
    if _loop is None or _loop.is_closed():
        return
    if _issuer is not None:
        _loop.run_until_complete(_issuer.aclose())
        _issuer = None
    _loop.close()
    _loop = None


@celery_app.task(name="boleto_importer.tasks.import_tasks.process_import", bind=True)
def process_import_task(self, import_id: str) -> dict:  # type: ignore[no-untyped-def]
    """Process every pending row of an import.

    The whole import is never retried here: failures are recorded on the
    import by the orchestrator and re-raised for Celery's own bookkeeping.
    """
    logger.info("Import task %s started for import %s", self.request.id, import_id)
    orchestrator = build_orchestrator()
    import_ = _get_loop().run_until_complete(
        orchestrator.process_import(uuid.UUID(import_id))
    )
    return {
        "import_id": import_id,
        "status": import_.status.value,
        "total": import_.total_rows,
        "success": import_.success_rows,
        "error": import_.error_rows,
    }


def enqueue_import(import_id: uuid.UUID) -> str:
    result = process_import_task.delay(str(import_id))
    logger.info("Import %s queued as task %s", import_id, result.id)
    return result.id
