from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

ImportStatusLiteral = Literal["queued", "processing", "completed", "failed"]


class CreateImportResponse(BaseModel):
    import_id: uuid.UUID
    status: ImportStatusLiteral
    max_rows: int


class ImportStats(BaseModel):
    total: int
    processed: int
    success: int
    error: int


class ImportLinks(BaseModel):
    results: str
    errors: str


class ImportStatusResponse(BaseModel):
    id: uuid.UUID
    status: ImportStatusLiteral
    filename: str
    created_at: datetime | None
    started_at: datetime | None
    finished_at: datetime | None
    stats: ImportStats
    links: ImportLinks


class ImportEvent(BaseModel):
    status: ImportStatusLiteral
    progress: ImportStats


class ImportSummary(BaseModel):
    id: uuid.UUID
    original_filename: str
    status: ImportStatusLiteral
    total_rows: int
    processed_rows: int
    success_rows: int
    error_rows: int
    created_at: datetime | None
    finished_at: datetime | None

    model_config = {"from_attributes": True}


class WebhookPayload(BaseModel):
    """Completion notice POSTed to an import's webhook URL (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    import_id: uuid.UUID
    status: ImportStatusLiteral
    total_rows: int
    success_rows: int
    error_rows: int
    started_at: datetime | None
    finished_at: datetime | None
