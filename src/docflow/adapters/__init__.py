from .azure_document_intelligence import AzureDocumentIntelligenceAdapter
from .extraction_mock import MockExtractionAdapter
from .local_object_store import LocalObjectStore
from .memory_object_store import InMemoryObjectStore
from .openpyxl_report_writer import OpenpyxlReportWriter
from .pypdf_splitter import PypdfSplitter
from .sqlite_storage import SQLiteStorage

__all__ = [
    "AzureDocumentIntelligenceAdapter",
    "InMemoryObjectStore",
    "LocalObjectStore",
    "MockExtractionAdapter",
    "OpenpyxlReportWriter",
    "PypdfSplitter",
    "SQLiteStorage",
]
