from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boleto_importer.api import imports
from boleto_importer.config import settings
from boleto_importer.plugins.registry import discover


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    discover()
    yield


app = FastAPI(title="Boleto Importer API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_prefix = "/api/v1"
app.include_router(imports.router, prefix=api_prefix)


@app.get("/api/v1/health")
async def health() -> dict:
    return {"status": "ok"}
