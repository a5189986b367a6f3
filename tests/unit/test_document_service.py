"""Unit tests for reqflow/services/document_service.py and storage.py"""

from unittest.mock import MagicMock

import pytest

from reqflow.config import settings
from reqflow.exceptions import (
    NotFound,
    PermissionDenied,
    PersistenceFailure,
    StorageFailure,
    ValidationFailed,
)
from reqflow.schemas.enums import DocumentType, Role, Stage
from reqflow.services.document_service import (
    add_document,
    delete_document,
    detach_document,
    document_key,
    upload_document,
)
from reqflow.services.requisition_repository import RequisitionRepository
from reqflow.services.storage import DocumentStorage
from tests.conftest import make_requisition


def _storage() -> MagicMock:
    storage = MagicMock()
    storage.bucket = "documents"
    storage.upload.side_effect = lambda data, key, content_type: key
    storage.public_url.side_effect = lambda key: f"https://files.example.com/{key}"
    return storage


def test_document_key_keeps_extension():
    assert document_key("abc", "Quote March.PDF") == "abc.pdf"
    assert document_key("abc", "noext") == "abc.bin"


@pytest.mark.asyncio
async def test_upload_attaches_document():
    req = make_requisition(Stage.PROCUREMENT, with_documents=False)
    storage = _storage()

    updated, doc = await upload_document(
        req, Role.PROCUREMENT, Stage.PROCUREMENT, DocumentType.PURCHASE_ORDER,
        "po-77.pdf", "application/pdf", b"%PDF-1.7", storage,
    )

    assert doc.path == f"{doc.id}.pdf"
    assert doc.url == f"https://files.example.com/{doc.id}.pdf"
    assert doc.uploaded_by == Role.PROCUREMENT
    assert doc.file_size == 8
    assert updated.documents == [doc]
    assert req.documents == []
    storage.upload.assert_called_once_with(b"%PDF-1.7", doc.path, "application/pdf")


@pytest.mark.asyncio
async def test_upload_needs_stage_access():
    req = make_requisition(Stage.CEO)
    with pytest.raises(PermissionDenied):
        await upload_document(
            req, Role.RESIDENT, Stage.CEO, DocumentType.OTHER,
            "x.pdf", "application/pdf", b"x", _storage(),
        )


@pytest.mark.asyncio
async def test_upload_rejects_type_not_allowed_for_stage():
    req = make_requisition(Stage.STOREKEEPER)
    with pytest.raises(ValidationFailed):
        await upload_document(
            req, Role.STOREKEEPER, Stage.STOREKEEPER, DocumentType.INVOICE,
            "x.pdf", "application/pdf", b"x", _storage(),
        )


@pytest.mark.asyncio
async def test_upload_rejects_large_files():
    req = make_requisition()
    too_big = b"0" * (settings.MAX_DOCUMENT_SIZE + 1)
    with pytest.raises(ValidationFailed) as exc:
        await upload_document(
            req, Role.RESIDENT, Stage.RESIDENT, DocumentType.SUPPLIER_QUOTE,
            "big.jpg", "image/jpeg", too_big, _storage(),
        )
    assert exc.value.errors == ["File size must be less than 10MB"]


@pytest.mark.asyncio
async def test_storage_error_is_wrapped():
    storage = _storage()
    storage.upload.side_effect = ConnectionError("bucket offline")
    with pytest.raises(StorageFailure):
        await upload_document(
            make_requisition(), Role.RESIDENT, Stage.RESIDENT, DocumentType.OTHER,
            "x.png", "image/png", b"x", storage,
        )


# ---------------------------------------------------------------------------
# detach / add / delete against the repository
# ---------------------------------------------------------------------------


async def _seed(store, requisition):
    return await RequisitionRepository(store).save(requisition)


def test_detach_document_checks_stage_access():
    req = make_requisition()
    doc = next(d for d in req.documents if d.stage == Stage.CEO)
    with pytest.raises(PermissionDenied):
        detach_document(req, Role.STOREKEEPER, doc.id)


def test_detach_unknown_document():
    with pytest.raises(NotFound):
        detach_document(make_requisition(), Role.CEO, "missing")


@pytest.mark.asyncio
async def test_delete_document_saves_then_deletes_object(store):
    req = await _seed(store, make_requisition(Stage.PAYMENT))
    doc = next(d for d in req.documents if d.stage == Stage.PAYMENT)
    storage = _storage()

    saved = await delete_document(
        RequisitionRepository(store), req.id, Role.TREASURY, doc.id, storage
    )

    storage.delete.assert_called_once_with(doc.path)
    assert saved.document(doc.id) is None
    assert doc.id not in store.documents


@pytest.mark.asyncio
async def test_failed_save_keeps_object_and_metadata(store):
    req = await _seed(store, make_requisition(Stage.PAYMENT))
    doc = next(d for d in req.documents if d.stage == Stage.PAYMENT)
    storage = _storage()
    store.fail_on = "upsert_requisition"

    with pytest.raises(PersistenceFailure):
        await delete_document(
            RequisitionRepository(store), req.id, Role.TREASURY, doc.id, storage
        )

    storage.delete.assert_not_called()
    assert doc.id in store.documents


@pytest.mark.asyncio
async def test_delete_after_save_tolerates_storage_error(store):
    req = await _seed(store, make_requisition(Stage.PAYMENT))
    doc = next(d for d in req.documents if d.stage == Stage.PAYMENT)
    storage = _storage()
    storage.delete.side_effect = ConnectionError("bucket offline")

    saved = await delete_document(
        RequisitionRepository(store), req.id, Role.TREASURY, doc.id, storage
    )

    assert saved.document(doc.id) is None
    assert doc.id not in store.documents


@pytest.mark.asyncio
async def test_add_document_persists_metadata(store):
    req = await _seed(store, make_requisition(Stage.PROCUREMENT, with_documents=False))
    storage = _storage()

    saved = await add_document(
        RequisitionRepository(store), req.id, Role.PROCUREMENT, Stage.PROCUREMENT,
        DocumentType.PURCHASE_ORDER, "po.pdf", "application/pdf", b"%PDF", storage,
        actor_name="Pia",
    )

    [doc] = saved.documents
    assert doc.id in store.documents
    storage.delete.assert_not_called()


@pytest.mark.asyncio
async def test_add_document_removes_object_when_save_fails(store):
    req = await _seed(store, make_requisition(Stage.PROCUREMENT, with_documents=False))
    storage = _storage()
    store.fail_on = "upsert_documents"

    with pytest.raises(PersistenceFailure):
        await add_document(
            RequisitionRepository(store), req.id, Role.PROCUREMENT, Stage.PROCUREMENT,
            DocumentType.PURCHASE_ORDER, "po.pdf", "application/pdf", b"%PDF", storage,
        )

    uploaded_key = storage.upload.call_args.args[1]
    storage.delete.assert_called_once_with(uploaded_key)
    assert store.documents == {}


# ---------------------------------------------------------------------------
# DocumentStorage
# ---------------------------------------------------------------------------


def test_storage_public_url_from_base():
    storage = DocumentStorage(
        bucket="docs", public_base_url="https://cdn.example.com/docs/", client=MagicMock()
    )
    assert storage.public_url("a.pdf") == "https://cdn.example.com/docs/a.pdf"


def test_storage_falls_back_to_presigned_url():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://signed"
    storage = DocumentStorage(bucket="docs", client=client)
    storage.public_base_url = None
    assert storage.public_url("a.pdf") == "https://signed"


def test_storage_upload_and_delete():
    client = MagicMock()
    storage = DocumentStorage(bucket="docs", client=client)
    assert storage.upload(b"abc", "k.pdf", "application/pdf") == "k.pdf"
    client.put_object.assert_called_once_with(
        Bucket="docs", Key="k.pdf", Body=b"abc", ContentType="application/pdf"
    )
    storage.delete("k.pdf")
    client.delete_object.assert_called_once_with(Bucket="docs", Key="k.pdf")


def test_storage_upload_retries_connection_errors(monkeypatch):
    from botocore.exceptions import EndpointConnectionError
    from tenacity import wait_none

    from reqflow.services import storage as storage_module

    monkeypatch.setattr(storage_module._put_object.retry, "wait", wait_none())
    client = MagicMock()
    client.put_object.side_effect = [
        EndpointConnectionError(endpoint_url="https://r2.example.com"),
        {"ETag": "abc"},
    ]
    storage = DocumentStorage(bucket="docs", client=client)
    assert storage.upload(b"abc", "k.pdf") == "k.pdf"
    assert client.put_object.call_count == 2
