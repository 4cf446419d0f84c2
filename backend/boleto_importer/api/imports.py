from __future__ import annotations

import asyncio
import json
import uuid

from fastapi import APIRouter, Depends, Form, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from boleto_importer.api.deps import get_import_store, get_row_store
from boleto_importer.config import settings
from boleto_importer.exceptions import (
    EmptyFileError,
    FileValidationError,
    ImportNotFoundError,
    TooManyRowsError,
    UnsupportedFileError,
)
from boleto_importer.models.import_job import TERMINAL_STATUSES, Import
from boleto_importer.schemas.import_job import (
    CreateImportResponse,
    ImportEvent,
    ImportStats,
    ImportSummary,
)
from boleto_importer.services import import_service
from boleto_importer.services.stores import ImportStore, RowStore
from boleto_importer.tasks.import_tasks import enqueue_import

router = APIRouter(prefix="/imports", tags=["imports"])

EVENT_INTERVAL_SECONDS = 1.0


async def _get_import_or_404(imports: ImportStore, import_id: uuid.UUID) -> Import:
    try:
        return await imports.get_import(import_id)
    except ImportNotFoundError:
        raise HTTPException(status_code=404, detail="Import not found")


@router.post("", response_model=dict, status_code=202)
async def create_import(
    file: UploadFile,
    webhook_url: str | None = Form(None),
    imports: ImportStore = Depends(get_import_store),
) -> dict:
    if file.filename is None:
        raise HTTPException(status_code=400, detail="File is required")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")

    try:
        import_ = await import_service.create_import(
            imports, file.filename, content, webhook_url
        )
    except FileValidationError as exc:
        raise HTTPException(status_code=400, detail={"errors": exc.messages})
    except (UnsupportedFileError, EmptyFileError, TooManyRowsError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    task_id = enqueue_import(import_.id)
    await imports.update_import(import_.id, celery_task_id=task_id)

    response = CreateImportResponse(
        import_id=import_.id,
        status=import_.status.value,
        max_rows=settings.MAX_IMPORT_ROWS,
    )
    return {"data": response}


@router.get("", response_model=dict)
async def list_imports(
    limit: int = 50,
    imports: ImportStore = Depends(get_import_store),
) -> dict:
    items = await imports.list_imports(limit)
    return {
        "data": [ImportSummary.model_validate(i) for i in items],
        "total": len(items),
    }


@router.get("/{import_id}", response_model=dict)
async def get_import(
    import_id: uuid.UUID,
    imports: ImportStore = Depends(get_import_store),
) -> dict:
    import_ = await _get_import_or_404(imports, import_id)
    return {"data": import_service.get_import_status(import_)}


@router.get("/{import_id}/events")
async def import_events(
    import_id: uuid.UUID,
    imports: ImportStore = Depends(get_import_store),
) -> StreamingResponse:
    # Verify existence once
    await _get_import_or_404(imports, import_id)

    async def event_stream():
        while True:
            try:
                import_ = await imports.get_import(import_id)
            except ImportNotFoundError:
                break

            event = ImportEvent(
                status=import_.status.value,
                progress=ImportStats(
                    total=import_.total_rows,
                    processed=import_.processed_rows,
                    success=import_.success_rows,
                    error=import_.error_rows,
                ),
            )
            yield f"data: {json.dumps(event.model_dump(mode='json'))}\n\n"

            if import_.status in TERMINAL_STATUSES:
                break

            await asyncio.sleep(EVENT_INTERVAL_SECONDS)

    return StreamingResponse(event_stream(), media_type="text/event-stream")


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{import_id}/results.csv")
async def results_csv(
    import_id: uuid.UUID,
    imports: ImportStore = Depends(get_import_store),
    rows: RowStore = Depends(get_row_store),
) -> Response:
    await _get_import_or_404(imports, import_id)
    content = await import_service.generate_results_csv(rows, import_id)
    return _csv_response(content, f"results-{import_id}.csv")


@router.get("/{import_id}/errors.csv")
async def errors_csv(
    import_id: uuid.UUID,
    imports: ImportStore = Depends(get_import_store),
    rows: RowStore = Depends(get_row_store),
) -> Response:
    await _get_import_or_404(imports, import_id)
    content = await import_service.generate_errors_csv(rows, import_id)
    return _csv_response(content, f"errors-{import_id}.csv")
