from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from boleto_importer.exceptions import IssuerError
from boleto_importer.models.import_row import ImportRow, RowStatus
from boleto_importer.services.issuer_client import IssuableRow, IssuedDocument
from boleto_importer.services.stores import RowStore, TransactionStore

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_CODE = "UNKNOWN"


class DocumentIssuer(Protocol):
    async def issue(self, row: IssuableRow) -> IssuedDocument: ...


def backoff_seconds(attempt: int) -> float:
    """Delay before retrying after the ``attempt``-th failure (1-based)."""
    return float(2**attempt)


class RowProcessor:
    """Drives one import row to a terminal status.

    A failed call is retried with exponential backoff while the error is
    retryable and fewer than ``max_retries`` retries have been made. The
    persisted ``retry_count`` is the number of retries performed, so a row
    that ends in ``error`` after exhausting its budget was tried
    ``max_retries + 1`` times.

    Any other exception, from the issuer or from persisting the issued
    document, ends the row in ``error`` with code ``UNKNOWN`` without a retry.
    """

    def __init__(
        self,
        rows: RowStore,
        transactions: TransactionStore,
        issuer: DocumentIssuer,
        max_retries: int = 5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.rows = rows
        self.transactions = transactions
        self.issuer = issuer
        self.max_retries = max_retries
        self._sleep = sleep

    async def process(self, row: ImportRow) -> RowStatus:
        attempt = 0
        logger.debug(
            "Processing row %s (import %s, line %d, amount %d)",
            row.id,
            row.import_id,
            row.row_number,
            row.amount,
        )

        while True:
            await self.rows.update_row_status(
                row.id, RowStatus.PROCESSING, retry_count=attempt
            )
            try:
                document = await self.issuer.issue(row)
            except IssuerError as exc:
                attempt += 1
                logger.warning(
                    "Row %s (line %d) failed on attempt %d/%d: %s",
                    row.id,
                    row.row_number,
                    attempt,
                    self.max_retries + 1,
                    exc,
                )
                if not exc.retryable or attempt > self.max_retries:
                    await self.rows.update_row_status(
                        row.id,
                        RowStatus.ERROR,
                        error_code=exc.code,
                        error_message=exc.message[:1000],
                        retry_count=attempt - 1,
                    )
                    logger.error(
                        "Row %s (line %d) failed permanently with %s after %d attempt(s)",
                        row.id,
                        row.row_number,
                        exc.code,
                        attempt,
                    )
                    return RowStatus.ERROR

                delay = backoff_seconds(attempt)
                logger.debug("Retrying row %s in %.0f s", row.id, delay)
                await self._sleep(delay)
                continue
            except Exception as exc:
                return await self._fail_unexpectedly(row, exc, attempt)

            try:
                await self.transactions.create_transaction(row.id, document)
                await self.rows.update_row_status(row.id, RowStatus.SUCCESS)
            except Exception as exc:
                # The document exists upstream; calling the issuer again would
                # issue a second one.
                return await self._fail_unexpectedly(row, exc, attempt)

            logger.debug(
                "Row %s (line %d) issued %s after %d retries",
                row.id,
                row.row_number,
                document.id_transaction,
                attempt,
            )
            return RowStatus.SUCCESS

    async def _fail_unexpectedly(
        self, row: ImportRow, exc: Exception, attempt: int
    ) -> RowStatus:
        """Record a non-issuer failure on the row so the batch can go on.

        If the row store cannot record it either, that error propagates and
        fails the import.
        """
        logger.exception(
            "Row %s (line %d) failed with an unexpected error", row.id, row.row_number
        )
        await self.rows.update_row_status(
            row.id,
            RowStatus.ERROR,
            error_code=UNEXPECTED_ERROR_CODE,
            error_message=f"{type(exc).__name__}: {exc}"[:1000],
            retry_count=attempt,
        )
        return RowStatus.ERROR
