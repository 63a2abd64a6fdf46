import pytest

from docflow.adapters.local_object_store import LocalObjectStore
from docflow.domain.errors import ArtifactNotFoundError, StorageError


@pytest.mark.asyncio
async def test_put_get_list_delete(tmp_path) -> None:
    store = LocalObjectStore(str(tmp_path / "objects"))
    prefix = "users/7/sessions/s-1/"

    ref = await store.put(f"{prefix}pages/a_page_1.pdf", b"page", metadata={"session_id": "s-1"})
    await store.put(f"{prefix}originals/a.pdf", b"original")
    await store.put("users/7/sessions/s-10/pages/b.pdf", b"other")

    assert ref == f"{prefix}pages/a_page_1.pdf"
    assert await store.get(ref) == b"page"
    assert await store.exists(ref)
    assert await store.list_by_prefix(prefix) == [
        f"{prefix}originals/a.pdf",
        f"{prefix}pages/a_page_1.pdf",
    ]

    assert await store.delete(ref)
    assert not await store.delete(ref)
    assert not await store.exists(ref)
    assert not (tmp_path / "objects" / ".meta" / "users/7/sessions/s-1/pages/a_page_1.pdf.json").exists()


@pytest.mark.asyncio
async def test_metadata_sidecars_are_not_listed(tmp_path) -> None:
    store = LocalObjectStore(str(tmp_path))
    await store.put("users/7/a.pdf", b"a", metadata={"job_id": "j-1"})

    assert await store.list_by_prefix("") == ["users/7/a.pdf"]
    assert (tmp_path / ".meta" / "users" / "7" / "a.pdf.json").read_text() == '{"job_id": "j-1"}'


@pytest.mark.asyncio
async def test_access_url_points_at_file(tmp_path) -> None:
    store = LocalObjectStore(str(tmp_path))
    await store.put("users/7/a.pdf", b"a")

    url = await store.generate_access_url("users/7/a.pdf", 60)

    assert url.startswith("file://")
    assert "a.pdf?expires=" in url
    with pytest.raises(ArtifactNotFoundError):
        await store.generate_access_url("users/7/missing.pdf", 60)


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/etc/passwd", "../escape.pdf", ".meta/users/7/a.pdf.json", ""])
async def test_rejects_paths_outside_root(tmp_path, path) -> None:
    store = LocalObjectStore(str(tmp_path))
    with pytest.raises(StorageError):
        await store.put(path, b"x")


@pytest.mark.asyncio
async def test_get_missing_object(tmp_path) -> None:
    store = LocalObjectStore(str(tmp_path))
    with pytest.raises(ArtifactNotFoundError):
        await store.get("users/7/missing.pdf")
