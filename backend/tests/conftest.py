from __future__ import annotations

import asyncio
import pathlib
import uuid
from collections.abc import AsyncGenerator, Callable, Sequence
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from boleto_importer.api.deps import get_import_store, get_row_store
from boleto_importer.database import Base
from boleto_importer.exceptions import ImportNotFoundError, IssuerError
from boleto_importer.main import app
from boleto_importer.models import *  # noqa: F401, F403  register every table on Base.metadata
from boleto_importer.models.import_job import Import, ImportStatus
from boleto_importer.models.import_row import ImportRow, RowStatus
from boleto_importer.models.transaction import Transaction
from boleto_importer.services.issuer_client import IssuedDocument
from boleto_importer.services.row_validator import NormalizedRow
from boleto_importer.services.stores import SqlImportStore, SqlRowStore, SqlTransactionStore

FIXTURES = pathlib.Path(__file__).parent / "fixtures"

VALID_CNPJ = "11222333000181"
OTHER_VALID_CNPJ = "11444777000161"


# ---------------------------------------------------------------------------
# Database-backed fixtures (in-memory SQLite)
# ---------------------------------------------------------------------------

@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture()
def import_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlImportStore:
    return SqlImportStore(session_factory)


@pytest.fixture()
def row_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlRowStore:
    return SqlRowStore(session_factory)


@pytest.fixture()
def transaction_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlTransactionStore:
    return SqlTransactionStore(session_factory)


@pytest.fixture()
async def client(
    import_store: SqlImportStore, row_store: SqlRowStore
) -> AsyncGenerator[httpx.AsyncClient]:
    app.dependency_overrides[get_import_store] = lambda: import_store
    app.dependency_overrides[get_row_store] = lambda: row_store

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def sample_csv() -> bytes:
    return (FIXTURES / "sample_boletos.csv").read_bytes()


# ---------------------------------------------------------------------------
# In-memory collaborators for the processing pipeline
# ---------------------------------------------------------------------------

def make_row(row_number: int, **overrides: Any) -> NormalizedRow:
    fields = {
        "row_number": row_number,
        "name": f"Empresa {row_number} Ltda",
        "document": VALID_CNPJ,
        "address": "Rua das Flores",
        "number": str(100 + row_number),
        "district": "Centro",
        "state": "SP",
        "postal_code": "01310100",
        "amount": 1500 + row_number,
        "due_date": "2024-12-31",
        "phone": "11999990000",
        "email": f"financeiro{row_number}@example.com",
    }
    fields.update(overrides)
    return NormalizedRow(**fields)


class FakeImportStore:
    def __init__(self, row_store: FakeRowStore | None = None) -> None:
        self.row_store = row_store
        self.imports: dict[uuid.UUID, Import] = {}
        self.updates: list[dict[str, Any]] = []

    async def create_import(self, rows: Sequence[NormalizedRow] = (), **fields: Any) -> Import:
        values = {
            "id": uuid.uuid4(),
            "original_filename": "boletos.csv",
            "status": ImportStatus.QUEUED,
            "total_rows": 0,
            "processed_rows": 0,
            "success_rows": 0,
            "error_rows": 0,
            "webhook_url": None,
            "created_at": datetime.now(UTC),
            "started_at": None,
            "finished_at": None,
        }
        values.update(fields)
        import_ = Import(**values)
        self.imports[import_.id] = import_
        if rows and self.row_store is not None:
            await self.row_store.create_rows(import_.id, rows)
        return import_

    async def get_import(self, import_id: uuid.UUID) -> Import:
        if import_id not in self.imports:
            raise ImportNotFoundError(import_id)
        return self.imports[import_id]

    async def update_import(self, import_id: uuid.UUID, **fields: Any) -> None:
        import_ = await self.get_import(import_id)
        for key, value in fields.items():
            setattr(import_, key, value)
        self.updates.append(fields)

    async def transition_import(
        self, import_id: uuid.UUID, from_status: ImportStatus, **fields: Any
    ) -> bool:
        import_ = await self.get_import(import_id)
        if import_.status != from_status:
            return False
        await self.update_import(import_id, **fields)
        return True

    async def list_imports(self, limit: int = 50) -> Sequence[Import]:
        return list(self.imports.values())[:limit]

    def statuses(self) -> list[ImportStatus]:
        return [u["status"] for u in self.updates if "status" in u]


class FakeRowStore:
    def __init__(self) -> None:
        self.rows: dict[uuid.UUID, ImportRow] = {}
        self.transitions: dict[uuid.UUID, list[RowStatus]] = {}

    async def create_rows(self, import_id: uuid.UUID, rows: Sequence[NormalizedRow]) -> int:
        for normalized in rows:
            row = ImportRow(
                id=uuid.uuid4(),
                import_id=import_id,
                status=RowStatus.PENDING,
                retry_count=0,
                error_code=None,
                error_message=None,
                **normalized.to_dict(),
            )
            self.rows[row.id] = row
            self.transitions[row.id] = []
        return len(rows)

    async def find_pending(self, import_id: uuid.UUID) -> Sequence[ImportRow]:
        return await self.find_by_status(import_id, RowStatus.PENDING)

    async def find_by_status(self, import_id: uuid.UUID, status: RowStatus) -> Sequence[ImportRow]:
        return sorted(
            (r for r in self.rows.values() if r.import_id == import_id and r.status == status),
            key=lambda r: r.row_number,
        )

    async def update_row_status(self, row_id: uuid.UUID, status: RowStatus, **fields: Any) -> None:
        row = self.rows[row_id]
        row.status = status
        for key, value in fields.items():
            setattr(row, key, value)
        self.transitions[row_id].append(status)

    async def count_by_status(self, import_id: uuid.UUID, status: RowStatus) -> int:
        return sum(1 for r in self.rows.values() if r.import_id == import_id and r.status == status)

    def by_number(self, row_number: int) -> ImportRow:
        return next(r for r in self.rows.values() if r.row_number == row_number)


class FakeTransactionStore:
    def __init__(self) -> None:
        self.transactions: dict[uuid.UUID, Transaction] = {}

    async def create_transaction(self, row_id: uuid.UUID, document: IssuedDocument) -> Transaction:
        assert row_id not in self.transactions, "transaction created twice for one row"
        txn = Transaction(
            id=uuid.uuid4(),
            import_row_id=row_id,
            id_transaction=document.id_transaction,
            boleto_url=document.boleto_url,
            boleto_code=document.boleto_code,
            pdf=document.pdf,
            due_date=document.due_date,
        )
        self.transactions[row_id] = txn
        return txn


class FakeIssuer:
    """Issuer returning scripted failures per row number, then success."""

    def __init__(self, failures: dict[int, list[IssuerError]] | None = None) -> None:
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.finished: list[int] = []

    async def issue(self, row: ImportRow) -> IssuedDocument:
        self.calls.append(row.row_number)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            pending = self.failures.get(row.row_number)
            if pending:
                raise pending.pop(0)
            return IssuedDocument(
                id_transaction=f"txn-{row.row_number}",
                boleto_url=f"https://boletos.example.com/{row.row_number}",
                boleto_code=f"34191.79001 01043.510047 91020.150008 {row.row_number}",
                pdf="JVBERi0xLjQK",
                due_date=row.due_date,
            )
        finally:
            self.in_flight -= 1
            self.finished.append(row.row_number)

    def calls_for(self, row_number: int) -> int:
        return self.calls.count(row_number)


class FakeClock:
    """Monotonic clock that only advances when something sleeps on it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture()
def fake_imports(fake_rows: FakeRowStore) -> FakeImportStore:
    return FakeImportStore(fake_rows)


@pytest.fixture()
def fake_rows() -> FakeRowStore:
    return FakeRowStore()


@pytest.fixture()
def fake_transactions() -> FakeTransactionStore:
    return FakeTransactionStore()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def row_factory() -> Callable[..., NormalizedRow]:
    return make_row


@pytest.fixture()
def issuer_factory() -> type[FakeIssuer]:
    return FakeIssuer
