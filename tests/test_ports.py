from docflow.adapters.extraction_mock import MockExtractionAdapter
from docflow.adapters.local_object_store import LocalObjectStore
from docflow.adapters.memory_object_store import InMemoryObjectStore
from docflow.ports.extraction_port import ExtractionPort
from docflow.ports.object_store_port import ObjectStorePort


class DummyExtraction:
    async def submit(self, document_url: str, model_id: str):
        return None

    async def poll(self, operation_id: str):
        return None


def test_extraction_port_runtime_checkable() -> None:
    assert isinstance(DummyExtraction(), ExtractionPort)
    assert isinstance(MockExtractionAdapter(), ExtractionPort)


def test_object_store_port_runtime_checkable(tmp_path) -> None:
    assert isinstance(InMemoryObjectStore(), ObjectStorePort)
    assert isinstance(LocalObjectStore(str(tmp_path)), ObjectStorePort)
    assert not isinstance(DummyExtraction(), ObjectStorePort)
