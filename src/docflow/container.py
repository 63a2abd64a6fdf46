from __future__ import annotations

from datetime import timedelta
from typing import Any

from docflow.adapters.azure_document_intelligence import AzureDocumentIntelligenceAdapter
from docflow.adapters.extraction_mock import MockExtractionAdapter
from docflow.adapters.local_object_store import LocalObjectStore
from docflow.adapters.openpyxl_report_writer import OpenpyxlReportWriter
from docflow.adapters.pypdf_splitter import PypdfSplitter
from docflow.adapters.sqlite_storage import SQLiteStorage
from docflow.ports.extraction_port import ExtractionPort
from docflow.ports.object_store_port import ObjectStorePort
from docflow.settings import (
    ACCESS_URL_TTL_SECONDS,
    AZURE_DOCUMENT_INTELLIGENCE_API_VERSION,
    AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT,
    AZURE_DOCUMENT_INTELLIGENCE_KEY,
    EXPORT_URL_TTL_SECONDS,
    EXTRACTION_MODEL_ID,
    MAX_CONCURRENT_JOBS,
    MAX_POLLING_HOURS,
    MAX_SUBMIT_ATTEMPTS,
    POLL_BACKOFF_SECONDS,
    POLL_MIN_DELAY_SECONDS,
    RATE_LIMIT_MAX_TOKENS,
    RATE_LIMIT_REFILL_RATE,
    SESSION_RETENTION_HOURS,
    STORAGE_ROOT,
    UNIT_COST,
    UNMETERED_OWNER_ID,
)
from docflow.services.dispatcher import JobDispatcher
from docflow.services.export_service import SessionExportService
from docflow.services.operation_tracker import OperationTracker
from docflow.services.post_processing import PostProcessingService
from docflow.services.rate_limiter import BackoffTracker, TokenBucketRateLimiter
from docflow.services.session_lifecycle import SessionLifecycleManager
from docflow.services.session_service import SessionService


def build_extraction() -> ExtractionPort:
    if AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT and AZURE_DOCUMENT_INTELLIGENCE_KEY:
        return AzureDocumentIntelligenceAdapter(
            endpoint=AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT,
            api_key=AZURE_DOCUMENT_INTELLIGENCE_KEY,
            api_version=AZURE_DOCUMENT_INTELLIGENCE_API_VERSION,
        )
    return MockExtractionAdapter()


def build_services(
    sqlite_path: str,
    storage_root: str = STORAGE_ROOT,
    extraction: ExtractionPort | None = None,
    object_store: ObjectStorePort | None = None,
) -> dict[str, Any]:
    storage = SQLiteStorage(sqlite_path)
    object_store = object_store or LocalObjectStore(storage_root)
    extraction = extraction or build_extraction()
    splitter = PypdfSplitter()
    rate_limiter = TokenBucketRateLimiter(
        max_tokens=RATE_LIMIT_MAX_TOKENS, refill_rate=RATE_LIMIT_REFILL_RATE
    )
    backoff = BackoffTracker()
    tracker = OperationTracker(
        storage,
        extraction,
        rate_limiter=rate_limiter,
        min_delay=POLL_MIN_DELAY_SECONDS,
        backoff_schedule=POLL_BACKOFF_SECONDS,
        max_polling=timedelta(hours=MAX_POLLING_HOURS),
    )
    post_processing_service = PostProcessingService(storage, object_store)
    dispatcher = JobDispatcher(
        storage,
        object_store,
        extraction,
        tracker,
        post_processing_service,
        rate_limiter,
        backoff=backoff,
        max_concurrent=MAX_CONCURRENT_JOBS,
        unit_cost=UNIT_COST,
        unmetered_owner_id=UNMETERED_OWNER_ID,
        access_url_ttl_seconds=ACCESS_URL_TTL_SECONDS,
        max_submit_attempts=MAX_SUBMIT_ATTEMPTS,
    )
    lifecycle = SessionLifecycleManager(storage, object_store)
    export_service = SessionExportService(
        storage, object_store, OpenpyxlReportWriter(), url_ttl_seconds=EXPORT_URL_TTL_SECONDS
    )
    session_service = SessionService(
        storage,
        object_store,
        splitter,
        dispatcher,
        tracker,
        lifecycle,
        model_id=EXTRACTION_MODEL_ID,
        retention=timedelta(hours=SESSION_RETENTION_HOURS),
        unit_cost=UNIT_COST,
        unmetered_owner_id=UNMETERED_OWNER_ID,
    )
    return {
        "session_service": session_service,
        "dispatcher": dispatcher,
        "operation_tracker": tracker,
        "post_processing_service": post_processing_service,
        "session_lifecycle": lifecycle,
        "export_service": export_service,
        "rate_limiter": rate_limiter,
        "backoff": backoff,
        "extraction": extraction,
        "object_store": object_store,
        "splitter": splitter,
        "storage": storage,
    }
