"""Processing of one import job, batch by batch.

Pending rows are split into consecutive batches of ``max_concurrency`` rows.
The rows of a batch are processed concurrently and the whole batch, retries
included, finishes before the next one starts. Import counters are recounted
from the row store after every batch join, so they always describe the last
fully completed batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from boleto_importer.config import settings
from boleto_importer.models.import_job import Import, ImportStatus
from boleto_importer.models.import_row import ImportRow, RowStatus
from boleto_importer.services.row_processor import DocumentIssuer, RowProcessor
from boleto_importer.services.stores import ImportStore, RowStore, TransactionStore
from boleto_importer.services.webhook import send_webhook

logger = logging.getLogger(__name__)

T = TypeVar("T")

Notifier = Callable[[Import], Awaitable[Any]]


def partition(items: Sequence[T], size: int) -> list[Sequence[T]]:
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [items[start : start + size] for start in range(0, len(items), size)]


async def _default_notifier(import_: Import) -> bool:
    return await send_webhook(import_, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)


class ImportOrchestrator:
    def __init__(
        self,
        imports: ImportStore,
        rows: RowStore,
        transactions: TransactionStore,
        issuer: DocumentIssuer,
        *,
        max_concurrency: int | None = None,
        max_retries: int | None = None,
        notifier: Notifier | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.imports = imports
        self.rows = rows
        self.max_concurrency = (
            settings.MAX_CONCURRENCY if max_concurrency is None else max_concurrency
        )
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be positive, got {self.max_concurrency}")
        self.max_retries = settings.MAX_RETRIES if max_retries is None else max_retries
        self.notifier = notifier or _default_notifier
        self.row_processor = RowProcessor(
            rows, transactions, issuer, max_retries=self.max_retries, sleep=sleep
        )
        logger.info(
            "Import orchestrator ready (max_concurrency=%d, max_retries=%d)",
            self.max_concurrency,
            self.max_retries,
        )

    async def process_import(self, import_id: uuid.UUID) -> Import:
        """Run a queued import to ``completed`` or ``failed``.

        An import that is no longer ``queued`` (a redelivered or duplicate
        task) is returned untouched.
        """
        started = time.monotonic()
        claimed = await self.imports.transition_import(
            import_id,
            ImportStatus.QUEUED,
            status=ImportStatus.PROCESSING,
            started_at=datetime.now(UTC),
        )
        if not claimed:
            import_ = await self.imports.get_import(import_id)
            logger.warning(
                "Import %s is %s, not queued; skipping", import_id, import_.status.value
            )
            return import_

        try:
            await self._run_batches(import_id)
            completed = await self.imports.transition_import(
                import_id,
                ImportStatus.PROCESSING,
                status=ImportStatus.COMPLETED,
                finished_at=datetime.now(UTC),
            )
        except Exception:
            logger.exception(
                "Import %s failed after %.1f s", import_id, time.monotonic() - started
            )
            await self._mark_failed(import_id)
            raise

        import_ = await self.imports.get_import(import_id)
        if not completed:
            logger.warning(
                "Import %s was moved to %s while processing; not completing it",
                import_id,
                import_.status.value,
            )
            return import_

        logger.info(
            "Import %s completed in %.1f s: total=%d success=%d error=%d",
            import_id,
            time.monotonic() - started,
            import_.total_rows,
            import_.success_rows,
            import_.error_rows,
        )

        if import_.webhook_url:
            await self.notifier(import_)
        return import_

    async def _run_batches(self, import_id: uuid.UUID) -> None:
        pending = await self.rows.find_pending(import_id)
        batches = partition(pending, self.max_concurrency)
        logger.info(
            "Import %s processing started: %d pending rows in %d batches of up to %d",
            import_id,
            len(pending),
            len(batches),
            self.max_concurrency,
        )

        for index, batch in enumerate(batches, start=1):
            batch_started = time.monotonic()
            await self._run_batch(batch)
            success, errors = await self._record_progress(import_id)
            logger.info(
                "Import %s batch %d/%d done in %.1f s (success=%d, error=%d)",
                import_id,
                index,
                len(batches),
                time.monotonic() - batch_started,
                success,
                errors,
            )

    async def _run_batch(self, batch: Sequence[ImportRow]) -> None:
        # Join the whole batch before surfacing an unexpected failure so no
        # row keeps running once the import is marked failed.
        results = await asyncio.gather(
            *(self.row_processor.process(row) for row in batch),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _record_progress(self, import_id: uuid.UUID) -> tuple[int, int]:
        success = await self.rows.count_by_status(import_id, RowStatus.SUCCESS)
        errors = await self.rows.count_by_status(import_id, RowStatus.ERROR)
        await self.imports.update_import(
            import_id,
            processed_rows=success + errors,
            success_rows=success,
            error_rows=errors,
        )
        return success, errors

    async def _mark_failed(self, import_id: uuid.UUID) -> None:
        try:
            await self.imports.transition_import(
                import_id,
                ImportStatus.PROCESSING,
                status=ImportStatus.FAILED,
                finished_at=datetime.now(UTC),
            )
        except Exception:
            logger.exception("Could not mark import %s as failed", import_id)
