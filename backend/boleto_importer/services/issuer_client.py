"""HTTP client for the boleto issuer API.

All calls made through one :class:`RequestThrottle` share a single request
slot: callers queue on it in arrival order and no two requests start less
than ``min_interval_ms`` apart, whatever the number of concurrent rows.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from boleto_importer.config import settings
from boleto_importer.exceptions import IssuerError, IssuerErrorKind

logger = logging.getLogger(__name__)

BOLETO_PATH = "/v1/boleto/"


class IssuableRow(Protocol):
    amount: int
    name: str
    document: str
    phone: str
    email: str


@dataclass(frozen=True)
class IssuedDocument:
    id_transaction: str
    boleto_url: str
    boleto_code: str
    pdf: str
    due_date: str


class RequestThrottle:
    """Single-slot FIFO gate enforcing a minimum spacing between requests."""

    def __init__(
        self,
        min_interval_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.min_interval_ms = min_interval_ms
        self.last_request_at: float | None = None
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._lock:
            if self.last_request_at is not None:
                elapsed_ms = (self._clock() - self.last_request_at) * 1000
                if elapsed_ms < self.min_interval_ms:
                    await self._sleep((self.min_interval_ms - elapsed_ms) / 1000)
            self.last_request_at = self._clock()
            yield

    def apply_retry_after(self, seconds: int) -> None:
        # Sticky for the lifetime of the throttle; never reset.
        self.min_interval_ms = seconds * 1000
        logger.warning("Issuer rate limit hit, request interval is now %d ms", self.min_interval_ms)


def build_payload(row: IssuableRow) -> dict[str, Any]:
    return {
        "amount": row.amount,
        "client": {
            "name": row.name,
            "document": row.document,
            "telefone": row.phone,
            "email": row.email,
        },
        "utms": {
            "utm_source": "import",
            "utm_medium": "batch",
            "utm_campaign": "bulk",
        },
        "product": {
            "name_product": "Boleto",
            "valor_product": f"{row.amount / 100:.2f}",
        },
        "split": {
            "user": "default",
            "value": "0",
        },
    }


def _parse_retry_after(response: httpx.Response) -> int | None:
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _required_text(data: dict[str, Any], key: str) -> str:
    value = data[key]
    # idTransaction may come back as a number
    if isinstance(value, int) and not isinstance(value, bool) and key == "idTransaction":
        return str(value)
    if not isinstance(value, str) or not value:
        raise TypeError(f"{key} must be a non-empty string, got {value!r}")
    return value


def _parse_document(data: Any) -> IssuedDocument:
    if not isinstance(data, dict):
        raise TypeError(f"expected a JSON object, got {type(data).__name__}")
    return IssuedDocument(
        id_transaction=_required_text(data, "idTransaction"),
        boleto_url=_required_text(data, "boletoUrl"),
        boleto_code=_required_text(data, "boletoCode"),
        pdf=_required_text(data, "pdf"),
        due_date=_required_text(data, "dueDate"),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return f"Issuer API error: {body['message']}"
    return f"Issuer API error: HTTP {response.status_code}"


class IssuerClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        timeout: float | None = None,
        throttle: RequestThrottle | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.throttle = throttle or RequestThrottle(settings.ISSUER_MIN_INTERVAL_MS)
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.ISSUER_BASE_URL,
            headers={
                "Authorization": f"Bearer {token if token is not None else settings.ISSUER_TOKEN}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.ISSUER_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> IssuerClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def issue(self, row: IssuableRow) -> IssuedDocument:
        payload = build_payload(row)

        async with self.throttle.slot():
            try:
                response = await self._client.post(BOLETO_PATH, json=payload)
            except httpx.HTTPError as exc:
                logger.warning("Issuer API request failed: %s", exc)
                raise IssuerError(
                    IssuerErrorKind.NETWORK, f"Issuer API error: {exc}"
                ) from exc

            if response.is_error:
                retry_after = _parse_retry_after(response)
                if response.status_code == 429 and retry_after is not None:
                    self.throttle.apply_retry_after(retry_after)
                error = IssuerError.from_status(
                    response.status_code, _error_message(response), retry_after
                )
                logger.warning(
                    "Issuer API error: status=%s body=%s", response.status_code, response.text[:500]
                )
                raise error

        try:
            return _parse_document(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise IssuerError(
                IssuerErrorKind.INVALID_RESPONSE,
                f"Issuer API returned an unexpected body: {exc}",
            ) from exc
