from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx

from boleto_importer.models.import_job import ImportStatus
from boleto_importer.services.webhook import build_webhook_payload, send_webhook


async def _completed_import(fake_imports, **fields):
    values = {
        "status": ImportStatus.COMPLETED,
        "total_rows": 3,
        "processed_rows": 3,
        "success_rows": 2,
        "error_rows": 1,
        "webhook_url": "https://hooks.example.com/boletos",
        "started_at": datetime(2024, 12, 1, 12, 0, tzinfo=UTC),
        "finished_at": datetime(2024, 12, 1, 12, 5, tzinfo=UTC),
    }
    values.update(fields)
    return await fake_imports.create_import(**values)


async def test_payload_uses_camel_case(fake_imports):
    import_ = await _completed_import(fake_imports)

    payload = build_webhook_payload(import_)

    assert payload == {
        "importId": str(import_.id),
        "status": "completed",
        "totalRows": 3,
        "successRows": 2,
        "errorRows": 1,
        "startedAt": "2024-12-01T12:00:00Z",
        "finishedAt": "2024-12-01T12:05:00Z",
    }


async def test_send_webhook_posts_summary(fake_imports):
    import_ = await _completed_import(fake_imports)
    received: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(204)

    delivered = await send_webhook(import_, transport=httpx.MockTransport(handler))

    assert delivered is True
    assert len(received) == 1
    assert received[0].method == "POST"
    assert str(received[0].url) == "https://hooks.example.com/boletos"
    assert json.loads(received[0].content)["successRows"] == 2


async def test_send_webhook_swallows_http_errors(fake_imports):
    import_ = await _completed_import(fake_imports)

    delivered = await send_webhook(
        import_, transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )

    assert delivered is False


async def test_send_webhook_swallows_network_errors(fake_imports):
    import_ = await _completed_import(fake_imports)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert await send_webhook(import_, transport=httpx.MockTransport(handler)) is False


async def test_send_webhook_swallows_malformed_url(fake_imports):
    import_ = await _completed_import(fake_imports, webhook_url="not a url")
    assert await send_webhook(import_) is False


async def test_send_webhook_without_url(fake_imports):
    import_ = await _completed_import(fake_imports, webhook_url=None)
    assert await send_webhook(import_) is False
