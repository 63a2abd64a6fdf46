from __future__ import annotations

import base64
import logging
from urllib.parse import unquote, urlparse

import aiofiles
import httpx

from docflow.domain.errors import PermanentUpstreamError, TransientUpstreamError
from docflow.domain.models import OperationStatus, PollResult, SubmitResult
from docflow.ports.extraction_port import ExtractionPort

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-11-30"
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
_MODELS_PATH = "/documentintelligence/documentModels/"

_STATUS_MAP = {
    "notstarted": OperationStatus.RUNNING,
    "running": OperationStatus.RUNNING,
    "succeeded": OperationStatus.SUCCEEDED,
    "failed": OperationStatus.FAILED,
    "canceled": OperationStatus.FAILED,
}


class AzureDocumentIntelligenceAdapter(ExtractionPort):
    """
    Document Intelligence REST client.

    ``submit`` starts an analyze operation and returns its operation id, the
    path of the ``Operation-Location`` header below ``documentModels/``.
    ``file://`` document URLs are read locally and sent inline as base64.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._api_version = api_version
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def submit(self, document_url: str, model_id: str) -> SubmitResult:
        url = f"{self._endpoint}{_MODELS_PATH}{model_id}:analyze"
        body = await self._build_source(document_url)
        response = await self._request("POST", url, json=body)
        operation_location = response.headers.get("Operation-Location") or response.headers.get(
            "operation-location"
        )
        if operation_location:
            operation_id = self._operation_id_from_location(operation_location)
            logger.info(
                "Submitted document for analysis",
                extra={"operation_id": operation_id, "model_id": model_id},
            )
            return SubmitResult(operation_id=operation_id)

        payload = _json_or_empty(response)
        fields, confidence = _first_document(payload.get("analyzeResult") or payload)
        return SubmitResult(fields=fields, confidence=confidence)

    async def poll(self, operation_id: str) -> PollResult:
        url = f"{self._endpoint}{_MODELS_PATH}{operation_id}"
        response = await self._request("GET", url)
        payload = _json_or_empty(response)
        raw_status = str(payload.get("status", "")).lower()
        status = _STATUS_MAP.get(raw_status)
        if status is None:
            raise PermanentUpstreamError(f"Unexpected operation status: {raw_status or 'missing'}")
        retry_after = _parse_retry_after(response.headers.get("Retry-After"))
        if status == OperationStatus.SUCCEEDED:
            fields, _ = _first_document(payload.get("analyzeResult") or {})
            return PollResult(status=status, fields=fields)
        if status == OperationStatus.FAILED:
            error = payload.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            return PollResult(status=status, error=message or "Analysis failed")
        return PollResult(status=status, retry_after=retry_after)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, json: dict | None = None) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                url,
                params={"api-version": self._api_version},
                headers={"Ocp-Apim-Subscription-Key": self._api_key},
                json=json,
            )
        except httpx.TransportError as exc:
            raise TransientUpstreamError(f"Extraction service unreachable: {exc}") from exc
        self._raise_for_status(response)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        message = _error_message(response)
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientUpstreamError(
                message, retry_after=_parse_retry_after(response.headers.get("Retry-After"))
            )
        raise PermanentUpstreamError(message)

    async def _build_source(self, document_url: str) -> dict[str, str]:
        parsed = urlparse(document_url)
        if parsed.scheme != "file":
            return {"urlSource": document_url}
        try:
            async with aiofiles.open(unquote(parsed.path), "rb") as handle:
                data = await handle.read()
        except OSError as exc:
            raise PermanentUpstreamError(f"Document not readable: {document_url}") from exc
        return {"base64Source": base64.b64encode(data).decode("ascii")}

    @staticmethod
    def _operation_id_from_location(location: str) -> str:
        path = urlparse(location).path
        marker = path.find(_MODELS_PATH)
        if marker == -1:
            raise PermanentUpstreamError(f"Unrecognized Operation-Location: {location}")
        return path[marker + len(_MODELS_PATH) :]


def _first_document(result: dict) -> tuple[dict, float | None]:
    documents = result.get("documents") or []
    if not documents:
        return {}, None
    document = documents[0]
    return document.get("fields") or {}, document.get("confidence")


def _json_or_empty(response: httpx.Response) -> dict:
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError as exc:
        raise PermanentUpstreamError("Extraction service returned invalid JSON") from exc
    return payload if isinstance(payload, dict) else {}


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"{response.status_code}: {error['message']}"
    return f"{response.status_code}: {response.text[:200] or response.reason_phrase}"


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(seconds, 0.0)
