import base64
import json

import httpx
import pytest

from docflow.adapters.azure_document_intelligence import AzureDocumentIntelligenceAdapter
from docflow.domain.errors import PermanentUpstreamError, TransientUpstreamError
from docflow.domain.models import OperationStatus

ENDPOINT = "https://example.cognitiveservices.azure.com/"
OPERATION_PATH = "prebuilt-invoice/analyzeResults/abc-123"


def _adapter(handler) -> AzureDocumentIntelligenceAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AzureDocumentIntelligenceAdapter(ENDPOINT, "secret", client=client)


@pytest.mark.asyncio
async def test_submit_returns_operation_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            202,
            headers={
                "Operation-Location": (
                    f"{ENDPOINT}documentintelligence/documentModels/{OPERATION_PATH}"
                    "?api-version=2024-11-30"
                )
            },
        )

    adapter = _adapter(handler)
    result = await adapter.submit("https://blob.example/page.pdf?sig=x", "prebuilt-invoice")

    assert result.is_async
    assert result.operation_id == OPERATION_PATH
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/documentintelligence/documentModels/prebuilt-invoice:analyze"
    assert request.url.params["api-version"] == "2024-11-30"
    assert request.headers["Ocp-Apim-Subscription-Key"] == "secret"
    assert json.loads(request.content) == {"urlSource": "https://blob.example/page.pdf?sig=x"}
    await adapter.aclose()


@pytest.mark.asyncio
async def test_submit_inlines_local_files(tmp_path) -> None:
    document = tmp_path / "page.pdf"
    document.write_bytes(b"%PDF-1.4 page")
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            202,
            headers={
                "Operation-Location": f"{ENDPOINT}documentintelligence/documentModels/{OPERATION_PATH}"
            },
        )

    adapter = _adapter(handler)
    await adapter.submit(f"{document.as_uri()}?expires=1", "prebuilt-invoice")

    assert bodies == [{"base64Source": base64.b64encode(b"%PDF-1.4 page").decode("ascii")}]
    await adapter.aclose()


@pytest.mark.asyncio
async def test_submit_without_operation_location_returns_fields() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "analyzeResult": {
                    "documents": [{"fields": {"InvoiceId": {"content": "T-1"}}, "confidence": 0.9}]
                }
            },
        )

    adapter = _adapter(handler)
    result = await adapter.submit("https://blob.example/page.pdf", "prebuilt-invoice")

    assert not result.is_async
    assert result.fields == {"InvoiceId": {"content": "T-1"}}
    assert result.confidence == 0.9
    await adapter.aclose()


@pytest.mark.asyncio
async def test_poll_maps_statuses() -> None:
    responses = [
        httpx.Response(200, json={"status": "running"}, headers={"Retry-After": "3"}),
        httpx.Response(
            200,
            json={
                "status": "succeeded",
                "analyzeResult": {"documents": [{"fields": {"VendorName": {"content": "ACME"}}}]},
            },
        ),
        httpx.Response(200, json={"status": "failed", "error": {"message": "Corrupt file"}}),
    ]
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return responses.pop(0)

    adapter = _adapter(handler)

    running = await adapter.poll(OPERATION_PATH)
    succeeded = await adapter.poll(OPERATION_PATH)
    failed = await adapter.poll(OPERATION_PATH)

    assert (running.status, running.retry_after) == (OperationStatus.RUNNING, 3.0)
    assert succeeded.status == OperationStatus.SUCCEEDED
    assert succeeded.fields == {"VendorName": {"content": "ACME"}}
    assert (failed.status, failed.error) == (OperationStatus.FAILED, "Corrupt file")
    assert paths[0] == f"/documentintelligence/documentModels/{OPERATION_PATH}"
    await adapter.aclose()


@pytest.mark.asyncio
async def test_throttling_is_transient_with_retry_after() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429,
            json={"error": {"message": "Rate limit exceeded"}},
            headers={"Retry-After": "7"},
        )

    adapter = _adapter(handler)
    with pytest.raises(TransientUpstreamError) as excinfo:
        await adapter.poll(OPERATION_PATH)

    assert excinfo.value.retry_after == 7.0
    assert "Rate limit exceeded" in str(excinfo.value)
    await adapter.aclose()


@pytest.mark.asyncio
async def test_client_errors_are_permanent() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Invalid model"}})

    adapter = _adapter(handler)
    with pytest.raises(PermanentUpstreamError, match="400: Invalid model"):
        await adapter.submit("https://blob.example/page.pdf", "missing-model")
    await adapter.aclose()


@pytest.mark.asyncio
async def test_connection_errors_are_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    adapter = _adapter(handler)
    with pytest.raises(TransientUpstreamError):
        await adapter.poll(OPERATION_PATH)
    await adapter.aclose()
