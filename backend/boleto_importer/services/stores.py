from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any, Protocol

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from boleto_importer.exceptions import ImportNotFoundError
from boleto_importer.models.import_job import Import, ImportStatus
from boleto_importer.models.import_row import ImportRow, RowStatus
from boleto_importer.models.transaction import Transaction
from boleto_importer.services.issuer_client import IssuedDocument
from boleto_importer.services.row_validator import NormalizedRow


class ImportStore(Protocol):
    async def create_import(
        self, rows: Sequence[NormalizedRow] = (), **fields: Any
    ) -> Import: ...

    async def get_import(self, import_id: uuid.UUID) -> Import: ...

    async def update_import(self, import_id: uuid.UUID, **fields: Any) -> None: ...

    async def transition_import(
        self, import_id: uuid.UUID, from_status: ImportStatus, **fields: Any
    ) -> bool: ...

    async def list_imports(self, limit: int = 50) -> Sequence[Import]: ...


class RowStore(Protocol):
    async def create_rows(self, import_id: uuid.UUID, rows: Sequence[NormalizedRow]) -> int: ...

    async def find_pending(self, import_id: uuid.UUID) -> Sequence[ImportRow]: ...

    async def find_by_status(
        self, import_id: uuid.UUID, status: RowStatus
    ) -> Sequence[ImportRow]: ...

    async def update_row_status(
        self, row_id: uuid.UUID, status: RowStatus, **fields: Any
    ) -> None: ...

    async def count_by_status(self, import_id: uuid.UUID, status: RowStatus) -> int: ...


class TransactionStore(Protocol):
    async def create_transaction(
        self, row_id: uuid.UUID, document: IssuedDocument
    ) -> Transaction: ...


def _row_values(import_id: uuid.UUID, rows: Sequence[NormalizedRow]) -> list[dict[str, Any]]:
    return [
        {
            "id": uuid.uuid4(),
            "import_id": import_id,
            "status": RowStatus.PENDING,
            "retry_count": 0,
            **row.to_dict(),
        }
        for row in rows
    ]


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
#
# Each call opens its own session: rows of one batch complete concurrently
# and an AsyncSession must never be shared between tasks.
# ---------------------------------------------------------------------------

class SqlImportStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_import(
        self, rows: Sequence[NormalizedRow] = (), **fields: Any
    ) -> Import:
        """Insert an import together with its rows in one transaction."""
        async with self._session_factory() as db:
            import_ = Import(**fields)
            db.add(import_)
            await db.flush()
            if rows:
                await db.execute(insert(ImportRow), _row_values(import_.id, rows))
            await db.commit()
            await db.refresh(import_)
            return import_

    async def get_import(self, import_id: uuid.UUID) -> Import:
        async with self._session_factory() as db:
            import_ = await db.get(Import, import_id)
            if import_ is None:
                raise ImportNotFoundError(import_id)
            return import_

    async def update_import(self, import_id: uuid.UUID, **fields: Any) -> None:
        async with self._session_factory() as db:
            result = await db.execute(
                update(Import).where(Import.id == import_id).values(**fields)
            )
            if result.rowcount == 0:
                raise ImportNotFoundError(import_id)
            await db.commit()

    async def transition_import(
        self, import_id: uuid.UUID, from_status: ImportStatus, **fields: Any
    ) -> bool:
        """Apply ``fields`` only while the import is still in ``from_status``.

        Returns False, changing nothing, when another status is stored.
        """
        async with self._session_factory() as db:
            result = await db.execute(
                update(Import)
                .where(Import.id == import_id, Import.status == from_status)
                .values(**fields)
            )
            if result.rowcount == 0:
                if await db.get(Import, import_id) is None:
                    raise ImportNotFoundError(import_id)
                return False
            await db.commit()
            return True

    async def list_imports(self, limit: int = 50) -> Sequence[Import]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Import).order_by(Import.created_at.desc()).limit(limit)
            )
            return result.scalars().all()


class SqlRowStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_rows(self, import_id: uuid.UUID, rows: Sequence[NormalizedRow]) -> int:
        if not rows:
            return 0
        values = _row_values(import_id, rows)
        async with self._session_factory() as db:
            await db.execute(insert(ImportRow), values)
            await db.commit()
        return len(values)

    async def find_pending(self, import_id: uuid.UUID) -> Sequence[ImportRow]:
        return await self.find_by_status(import_id, RowStatus.PENDING)

    async def find_by_status(
        self, import_id: uuid.UUID, status: RowStatus
    ) -> Sequence[ImportRow]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ImportRow)
                .options(selectinload(ImportRow.transaction))
                .where(ImportRow.import_id == import_id, ImportRow.status == status)
                .order_by(ImportRow.row_number)
            )
            return result.scalars().all()

    async def update_row_status(
        self, row_id: uuid.UUID, status: RowStatus, **fields: Any
    ) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(ImportRow).where(ImportRow.id == row_id).values(status=status, **fields)
            )
            await db.commit()

    async def count_by_status(self, import_id: uuid.UUID, status: RowStatus) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                select(func.count())
                .select_from(ImportRow)
                .where(ImportRow.import_id == import_id, ImportRow.status == status)
            )
            return result.scalar_one()


class SqlTransactionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_transaction(
        self, row_id: uuid.UUID, document: IssuedDocument
    ) -> Transaction:
        async with self._session_factory() as db:
            txn = Transaction(
                import_row_id=row_id,
                id_transaction=document.id_transaction,
                boleto_url=document.boleto_url,
                boleto_code=document.boleto_code,
                pdf=document.pdf,
                due_date=document.due_date,
            )
            db.add(txn)
            await db.commit()
            return txn
