from .extraction_port import ExtractionPort
from .object_store_port import ObjectStorePort
from .pdf_splitter_port import PdfSplitterPort
from .report_writer_port import ReportWriterPort
from .storage_port import StoragePort

__all__ = [
    "ExtractionPort",
    "ObjectStorePort",
    "PdfSplitterPort",
    "ReportWriterPort",
    "StoragePort",
]
