from __future__ import annotations

import os

from docflow.domain.tiers import get_tier_config


def _float_list(raw: str) -> tuple[float, ...]:
    return tuple(float(part) for part in raw.split(",") if part.strip())


SQLITE_PATH = os.getenv("SQLITE_PATH", "./docflow.db")
STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage")

SERVICE_TIER = os.getenv("SERVICE_TIER", "FREE")
_TIER = get_tier_config(SERVICE_TIER)
RATE_LIMIT_MAX_TOKENS = int(os.getenv("RATE_LIMIT_MAX_TOKENS", str(_TIER.max_tokens)))
RATE_LIMIT_REFILL_RATE = float(os.getenv("RATE_LIMIT_REFILL_RATE", str(_TIER.refill_rate)))
MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", str(_TIER.max_concurrent)))

AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT = os.getenv("AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT", "")
AZURE_DOCUMENT_INTELLIGENCE_KEY = os.getenv("AZURE_DOCUMENT_INTELLIGENCE_KEY", "")
AZURE_DOCUMENT_INTELLIGENCE_API_VERSION = os.getenv(
    "AZURE_DOCUMENT_INTELLIGENCE_API_VERSION", "2024-11-30"
)
EXTRACTION_MODEL_ID = os.getenv("EXTRACTION_MODEL_ID", "prebuilt-invoice")

SESSION_RETENTION_HOURS = float(os.getenv("SESSION_RETENTION_HOURS", "24"))
POLL_MIN_DELAY_SECONDS = float(os.getenv("POLL_MIN_DELAY_SECONDS", "2"))
POLL_BACKOFF_SECONDS = _float_list(os.getenv("POLL_BACKOFF_SECONDS", "2,5,13,34"))
MAX_POLLING_HOURS = float(os.getenv("MAX_POLLING_HOURS", "24"))

UNIT_COST = int(os.getenv("UNIT_COST", "1"))
UNMETERED_OWNER_ID = os.getenv("UNMETERED_OWNER_ID", "1")
ACCESS_URL_TTL_SECONDS = int(os.getenv("ACCESS_URL_TTL_SECONDS", "3600"))
EXPORT_URL_TTL_SECONDS = int(os.getenv("EXPORT_URL_TTL_SECONDS", "86400"))
MAX_SUBMIT_ATTEMPTS = int(os.getenv("MAX_SUBMIT_ATTEMPTS", "5"))
CLEANUP_SWEEP_INTERVAL_SECONDS = float(os.getenv("CLEANUP_SWEEP_INTERVAL_SECONDS", "3600"))
