from __future__ import annotations

import logging
import time

import httpx

from boleto_importer.models.import_job import Import
from boleto_importer.schemas.import_job import WebhookPayload

logger = logging.getLogger(__name__)


def build_webhook_payload(import_: Import) -> dict:
    payload = WebhookPayload(
        import_id=import_.id,
        status=import_.status.value,
        total_rows=import_.total_rows,
        success_rows=import_.success_rows,
        error_rows=import_.error_rows,
        started_at=import_.started_at,
        finished_at=import_.finished_at,
    )
    return payload.model_dump(mode="json", by_alias=True)


async def send_webhook(
    import_: Import,
    timeout: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """POST the import summary to its webhook URL.

    Delivery is best-effort: failures are logged and reported through the
    return value, never raised, and never retried.
    """
    if not import_.webhook_url:
        return False

    started = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(import_.webhook_url, json=build_webhook_payload(import_))
            response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning(
            "Webhook delivery failed for import %s to %s after %.0f ms: %s",
            import_.id,
            import_.webhook_url,
            (time.monotonic() - started) * 1000,
            exc,
        )
        return False

    logger.info(
        "Webhook delivered for import %s to %s (status %d, %.0f ms)",
        import_.id,
        import_.webhook_url,
        response.status_code,
        (time.monotonic() - started) * 1000,
    )
    return True
