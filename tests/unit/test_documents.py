"""Tests for the document service."""
import pytest

from knowhub import db
from knowhub.cache import DocumentListCache
from knowhub.documents import DocumentService
from knowhub.errors import NotFoundError, ValidationError


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def service(store, coordinator, upload_dir):
    return DocumentService(store, coordinator, upload_dir=upload_dir, cache=DocumentListCache(ttl_seconds=300))


class TestUpload:
    """Tests for uploading documents."""

    async def test_upload_stores_file_and_ingests(self, service, coordinator, upload_dir):
        document = await service.upload("a.txt", "text/plain", b"The sky is blue. Grass is green.")
        await coordinator.drain()

        assert document.display_name == "a.txt"
        assert document.extracted_text == "The sky is blue. Grass is green."
        assert (upload_dir / document.filename).read_bytes() == b"The sky is blue. Grass is green."
        assert db.get_document(document.id) is not None
        assert db.get_chunk_count(document.id) == 1

    async def test_path_components_stripped_from_name(self, service, coordinator):
        document = await service.upload("../../etc/a.txt", "text/plain", b"Hello.")
        await coordinator.drain()

        assert document.original_filename == "a.txt"

    async def test_empty_file_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.upload("a.txt", "text/plain", b"")
        assert db.list_documents() == []

    async def test_unsupported_type_rejected(self, service, upload_dir):
        with pytest.raises(ValidationError):
            await service.upload("a.png", "image/png", b"\x89PNG")

        assert db.list_documents() == []
        assert not upload_dir.exists() or not any(upload_dir.iterdir())


class TestListAndDelete:
    """Tests for listing and deleting documents."""

    async def test_list_is_cached_until_a_write(self, service, coordinator, make_document):
        await service.upload("a.txt", "text/plain", b"First document.")
        assert len(service.list_documents()) == 1

        # Bypasses the service, so the cached listing is still served
        make_document("b.txt")
        assert len(service.list_documents()) == 1

        await service.upload("c.txt", "text/plain", b"Third document.")
        await coordinator.drain()
        names = [d.display_name for d in service.list_documents()]
        assert len(names) == 3
        assert names[0] == "c.txt"

    async def test_delete_removes_rows_chunks_and_file(self, service, coordinator, store, upload_dir):
        document = await service.upload("a.txt", "text/plain", b"The sky is blue.")
        await coordinator.drain()

        await service.delete_document(document.id)

        assert db.get_document(document.id) is None
        assert db.get_chunk_count(document.id) == 0
        assert store.get_stats()["vector_count"] == 0
        assert not (upload_dir / document.filename).exists()
        assert service.list_documents() == []

    async def test_delete_unknown_document(self, service):
        with pytest.raises(NotFoundError):
            await service.delete_document(12345)

    async def test_delete_tolerates_missing_file(self, service, coordinator, upload_dir):
        document = await service.upload("a.txt", "text/plain", b"Text.")
        await coordinator.drain()
        (upload_dir / document.filename).unlink()

        await service.delete_document(document.id)

        assert db.get_document(document.id) is None

    def test_get_document_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.get_document(1)
