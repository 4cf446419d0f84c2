"""CLI for creating imports and inspecting or recovering them.

Usage:
    python -m boleto_importer.cli import-file --path boletos.csv [--webhook-url URL] [--no-enqueue]
    python -m boleto_importer.cli list-imports [--limit 20]
    python -m boleto_importer.cli status --import-id <uuid>
    python -m boleto_importer.cli import-errors --import-id <uuid>
    python -m boleto_importer.cli mark-failed --import-id <uuid>
    python -m boleto_importer.cli requeue --import-id <uuid>
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import select, update

from boleto_importer.config import configure_logging
from boleto_importer.database import async_session_factory, sync_session_factory
from boleto_importer.exceptions import BoletoImportError, FileValidationError
from boleto_importer.models import *  # noqa: F401, F403  register every table on Base.metadata
from boleto_importer.models.import_job import Import, ImportStatus
from boleto_importer.models.import_row import ImportRow, RowStatus


def _load_import(db, import_id: str) -> Import:  # type: ignore[no-untyped-def]
    import_ = db.execute(
        select(Import).where(Import.id == uuid.UUID(import_id))
    ).scalar_one_or_none()
    if import_ is None:
        print(f"Error: import '{import_id}' not found")
        sys.exit(1)
    return import_


def import_file(args: argparse.Namespace) -> None:
    from boleto_importer.services.import_service import create_import
    from boleto_importer.services.stores import SqlImportStore

    path = Path(args.path)
    if not path.is_file():
        print(f"Error: file '{path}' does not exist")
        sys.exit(1)

    try:
        import_ = asyncio.run(
            create_import(
                SqlImportStore(async_session_factory),
                path.name,
                path.read_bytes(),
                args.webhook_url,
            )
        )
    except FileValidationError as exc:
        print(f"Error: {len(exc.messages)} invalid row(s) in {path.name}")
        for message in exc.messages:
            print(f"  {message}")
        sys.exit(1)
    except BoletoImportError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(f"Created import {import_.id} with {import_.total_rows} row(s)")
    if args.no_enqueue:
        return

    from boleto_importer.tasks.import_tasks import enqueue_import

    task_id = enqueue_import(import_.id)
    with sync_session_factory() as db:
        db.execute(update(Import).where(Import.id == import_.id).values(celery_task_id=task_id))
        db.commit()
    print(f"Queued as task {task_id}")


def list_imports(args: argparse.Namespace) -> None:
    with sync_session_factory() as db:
        result = db.execute(select(Import).order_by(Import.created_at.desc()).limit(args.limit))
        imports = result.scalars().all()

        if not imports:
            print("No imports found.")
            return

        print(f"{'ID':<38} {'File':<30} {'Status':<12} {'Total':>6} {'OK':>6} {'Error':>6}")
        print("-" * 104)
        for i in imports:
            print(
                f"{str(i.id):<38} {i.original_filename[:30]:<30} {i.status.value:<12} "
                f"{i.total_rows:>6} {i.success_rows:>6} {i.error_rows:>6}"
            )
        print(f"\nTotal: {len(imports)} import(s)")


def status(args: argparse.Namespace) -> None:
    with sync_session_factory() as db:
        import_ = _load_import(db, args.import_id)
        print(f"Import:    {import_.id}")
        print(f"File:      {import_.original_filename}")
        print(f"Status:    {import_.status.value}")
        print(
            f"Rows:      total={import_.total_rows} processed={import_.processed_rows} "
            f"success={import_.success_rows} error={import_.error_rows}"
        )
        print(f"Created:   {import_.created_at}")
        print(f"Started:   {import_.started_at or '-'}")
        print(f"Finished:  {import_.finished_at or '-'}")
        if import_.webhook_url:
            print(f"Webhook:   {import_.webhook_url}")


def import_errors(args: argparse.Namespace) -> None:
    with sync_session_factory() as db:
        import_ = _load_import(db, args.import_id)
        rows = db.execute(
            select(ImportRow)
            .where(ImportRow.import_id == import_.id, ImportRow.status == RowStatus.ERROR)
            .order_by(ImportRow.row_number)
        ).scalars().all()

        if not rows:
            print("No failed rows.")
            return

        for row in rows:
            print(
                f"Line {row.row_number:<5} {row.document}  code={row.error_code}  "
                f"retries={row.retry_count}  {row.error_message}"
            )
        print(f"\nTotal: {len(rows)} failed row(s)")


def mark_failed(args: argparse.Namespace) -> None:
    with sync_session_factory() as db:
        import_ = _load_import(db, args.import_id)
        if import_.status in (ImportStatus.COMPLETED, ImportStatus.FAILED):
            print(f"Error: import is already '{import_.status.value}'")
            sys.exit(1)

        import_.status = ImportStatus.FAILED
        import_.finished_at = datetime.now(UTC)
        db.commit()
        print(f"Import '{import_.id}' marked as failed")


def requeue(args: argparse.Namespace) -> None:
    from boleto_importer.tasks.import_tasks import enqueue_import

    with sync_session_factory() as db:
        import_ = _load_import(db, args.import_id)
        # Queued imports already have a task; terminal ones are final.
        if import_.status != ImportStatus.PROCESSING:
            print(f"Error: only processing imports can be requeued (import is '{import_.status.value}')")
            sys.exit(1)

        # Rows interrupted mid-call go back to the queue; finished rows stay.
        reset = db.execute(
            update(ImportRow)
            .where(ImportRow.import_id == import_.id, ImportRow.status == RowStatus.PROCESSING)
            .values(status=RowStatus.PENDING)
        )
        import_.status = ImportStatus.QUEUED
        db.commit()

        task_id = enqueue_import(import_.id)
        import_.celery_task_id = task_id
        db.commit()
        print(f"Import '{import_.id}' requeued as task {task_id} ({reset.rowcount} row(s) reset)")


def main() -> None:
    configure_logging()

    parser = argparse.ArgumentParser(
        prog="boleto_importer.cli",
        description="Boleto import management CLI",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import-file", help="Validate a spreadsheet and create an import")
    p_import.add_argument("--path", required=True)
    p_import.add_argument("--webhook-url", default=None)
    p_import.add_argument("--no-enqueue", action="store_true", help="Create the import without queueing it")
    p_import.set_defaults(func=import_file)

    p_list = sub.add_parser("list-imports", help="List recent imports")
    p_list.add_argument("--limit", type=int, default=20)
    p_list.set_defaults(func=list_imports)

    p_status = sub.add_parser("status", help="Show an import's status and counters")
    p_status.add_argument("--import-id", required=True)
    p_status.set_defaults(func=status)

    p_errors = sub.add_parser("import-errors", help="Show the failed rows of an import")
    p_errors.add_argument("--import-id", required=True)
    p_errors.set_defaults(func=import_errors)

    p_fail = sub.add_parser("mark-failed", help="Mark an unfinished import as failed")
    p_fail.add_argument("--import-id", required=True)
    p_fail.set_defaults(func=mark_failed)

    p_requeue = sub.add_parser("requeue", help="Queue the remaining rows of an import stuck in processing")
    p_requeue.add_argument("--import-id", required=True)
    p_requeue.set_defaults(func=requeue)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
