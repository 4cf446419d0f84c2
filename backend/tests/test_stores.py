from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from boleto_importer.exceptions import ImportNotFoundError
from boleto_importer.models.import_job import ImportStatus
from boleto_importer.models.import_row import RowStatus
from boleto_importer.services.issuer_client import IssuedDocument


async def _create(import_store, **fields):
    fields.setdefault("original_filename", "boletos.csv")
    fields.setdefault("status", ImportStatus.QUEUED)
    return await import_store.create_import(**fields)


async def test_create_and_get_import(import_store):
    created = await _create(import_store, total_rows=3, webhook_url="https://hooks.example.com/x")

    fetched = await import_store.get_import(created.id)

    assert fetched.id == created.id
    assert fetched.status is ImportStatus.QUEUED
    assert fetched.total_rows == 3
    assert fetched.processed_rows == 0
    assert fetched.webhook_url == "https://hooks.example.com/x"
    assert fetched.created_at is not None
    assert fetched.started_at is None


async def test_get_unknown_import(import_store):
    with pytest.raises(ImportNotFoundError):
        await import_store.get_import(uuid.uuid4())


async def test_update_import(import_store):
    created = await _create(import_store, total_rows=2)

    await import_store.update_import(
        created.id, status=ImportStatus.PROCESSING, processed_rows=1, success_rows=1
    )

    fetched = await import_store.get_import(created.id)
    assert fetched.status is ImportStatus.PROCESSING
    assert fetched.processed_rows == 1
    assert fetched.success_rows == 1


async def test_update_unknown_import(import_store):
    with pytest.raises(ImportNotFoundError):
        await import_store.update_import(uuid.uuid4(), status=ImportStatus.FAILED)


async def test_list_imports_newest_first(import_store):
    now = datetime.now(UTC)
    older = await _create(import_store, original_filename="old.csv", created_at=now - timedelta(hours=1))
    newer = await _create(import_store, original_filename="new.csv", created_at=now)

    listed = await import_store.list_imports()
    assert [i.id for i in listed] == [newer.id, older.id]

    assert len(await import_store.list_imports(limit=1)) == 1


async def test_rows_lifecycle(import_store, row_store, row_factory):
    import_ = await _create(import_store, total_rows=3)
    inserted = await row_store.create_rows(import_.id, [row_factory(n) for n in (3, 1, 2)])
    assert inserted == 3

    pending = await row_store.find_pending(import_.id)
    assert [r.row_number for r in pending] == [1, 2, 3]
    assert all(r.status is RowStatus.PENDING and r.retry_count == 0 for r in pending)
    assert pending[0].name == "Empresa 1 Ltda"
    assert pending[0].amount == 1501

    await row_store.update_row_status(pending[0].id, RowStatus.PROCESSING, retry_count=2)
    await row_store.update_row_status(
        pending[1].id, RowStatus.ERROR, error_code="400", error_message="bad", retry_count=0
    )

    assert [r.row_number for r in await row_store.find_pending(import_.id)] == [3]
    processing = await row_store.find_by_status(import_.id, RowStatus.PROCESSING)
    assert processing[0].retry_count == 2
    errors = await row_store.find_by_status(import_.id, RowStatus.ERROR)
    assert (errors[0].error_code, errors[0].error_message) == ("400", "bad")

    assert await row_store.count_by_status(import_.id, RowStatus.ERROR) == 1
    assert await row_store.count_by_status(import_.id, RowStatus.SUCCESS) == 0


async def test_create_rows_with_nothing(import_store, row_store):
    import_ = await _create(import_store)
    assert await row_store.create_rows(import_.id, []) == 0


async def test_rows_are_scoped_to_their_import(import_store, row_store, row_factory):
    first = await _create(import_store)
    second = await _create(import_store)
    await row_store.create_rows(first.id, [row_factory(1)])
    await row_store.create_rows(second.id, [row_factory(1), row_factory(2)])

    assert await row_store.count_by_status(first.id, RowStatus.PENDING) == 1
    assert await row_store.count_by_status(second.id, RowStatus.PENDING) == 2


async def test_transaction_is_loaded_with_successful_rows(
    import_store, row_store, transaction_store, row_factory
):
    import_ = await _create(import_store)
    await row_store.create_rows(import_.id, [row_factory(1)])
    row = (await row_store.find_pending(import_.id))[0]

    txn = await transaction_store.create_transaction(
        row.id,
        IssuedDocument(
            id_transaction="abc-123",
            boleto_url="https://boletos.example.com/abc-123",
            boleto_code="34191.79001",
            pdf="JVBERi0xLjQK",
            due_date="2024-12-31",
        ),
    )
    await row_store.update_row_status(row.id, RowStatus.SUCCESS)

    assert txn.import_row_id == row.id
    success = await row_store.find_by_status(import_.id, RowStatus.SUCCESS)
    assert success[0].transaction is not None
    assert success[0].transaction.id_transaction == "abc-123"
    assert success[0].transaction.boleto_url == "https://boletos.example.com/abc-123"


async def test_transition_import_applies_only_from_expected_status(import_store):
    created = await _create(import_store)

    assert await import_store.transition_import(
        created.id, ImportStatus.QUEUED, status=ImportStatus.PROCESSING
    )
    assert not await import_store.transition_import(
        created.id, ImportStatus.QUEUED, status=ImportStatus.PROCESSING, total_rows=99
    )

    fetched = await import_store.get_import(created.id)
    assert fetched.status is ImportStatus.PROCESSING
    assert fetched.total_rows == 0


async def test_transition_unknown_import(import_store):
    with pytest.raises(ImportNotFoundError):
        await import_store.transition_import(
            uuid.uuid4(), ImportStatus.QUEUED, status=ImportStatus.PROCESSING
        )


async def test_create_import_with_rows(import_store, row_store, row_factory):
    created = await import_store.create_import(
        [row_factory(1), row_factory(2)], original_filename="boletos.csv", total_rows=2
    )

    assert created.status is ImportStatus.QUEUED
    assert await row_store.count_by_status(created.id, RowStatus.PENDING) == 2
