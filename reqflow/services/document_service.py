# reqflow/services/document_service.py
"""
Stage documents: upload to object storage, attach metadata to the aggregate.

add_document uploads first and removes the object again if the save fails;
delete_document saves first and deletes the object afterwards, so a metadata
row never points at a missing object.

Only presence per stage matters to the workflow (the missing-document
warning); content is never inspected.
"""

import asyncio
import uuid
from typing import Optional

import structlog

from reqflow.config import settings
from reqflow.exceptions import NotFound, PermissionDenied, StorageFailure, ValidationFailed
from reqflow.schemas.enums import STAGE_DOCUMENT_TYPES, DocumentType, Role, Stage
from reqflow.schemas.requisition import Document, Requisition
from reqflow.services.permissions import can_access_stage

logger = structlog.get_logger()


def _max_size_label() -> str:
    return f"{settings.MAX_DOCUMENT_SIZE // (1024 * 1024)}MB"


def document_key(document_id: str, file_name: str) -> str:
    ext = file_name.rsplit(".", 1)[-1] if file_name and "." in file_name else "bin"
    return f"{document_id}.{ext.lower()}"


def allowed_document_types(stage: Stage) -> frozenset[DocumentType]:
    return STAGE_DOCUMENT_TYPES[stage]


async def upload_document(
    requisition: Requisition,
    role: Role,
    stage: Stage,
    document_type: DocumentType,
    file_name: str,
    content_type: Optional[str],
    file_bytes: bytes,
    storage,
) -> tuple[Requisition, Document]:
    """Store the file, return (updated aggregate, new document)."""
    if not can_access_stage(role, stage):
        raise PermissionDenied(role=role.value, action=f"upload:{stage.value}")
    if document_type not in STAGE_DOCUMENT_TYPES[stage]:
        raise ValidationFailed(
            [f"Document type '{document_type.value}' is not allowed for the {stage.value} stage"]
        )
    if not file_bytes:
        raise ValidationFailed(["Please select a file and document type"])
    if len(file_bytes) > settings.MAX_DOCUMENT_SIZE:
        raise ValidationFailed([f"File size must be less than {_max_size_label()}"])

    document_id = str(uuid.uuid4())
    key = document_key(document_id, file_name)
    content_type = content_type or "application/octet-stream"

    try:
        await asyncio.to_thread(storage.upload, file_bytes, key, content_type)
        url = await asyncio.to_thread(storage.public_url, key)
    except Exception as e:
        logger.error("document_upload_failed", key=key, error=str(e))
        raise StorageFailure("upload", cause=e) from e

    document = Document(
        id=document_id,
        requisition_id=requisition.id,
        file_name=file_name,
        file_type=content_type,
        file_size=len(file_bytes),
        uploaded_by=role,
        document_type=document_type,
        stage=stage,
        bucket=storage.bucket,
        path=key,
        url=url,
    )
    updated = requisition.model_copy(deep=True)
    updated.documents.append(document)

    logger.info(
        "document_uploaded",
        requisition_id=requisition.id,
        document_id=document_id,
        stage=stage.value,
        document_type=document_type.value,
        size=len(file_bytes),
    )
    return updated, document


def detach_document(
    requisition: Requisition, role: Role, document_id: str
) -> tuple[Requisition, Document]:
    """Return (aggregate without the document, removed document)."""
    document = requisition.document(document_id)
    if document is None:
        raise NotFound("Document", document_id)
    if not can_access_stage(role, document.stage):
        raise PermissionDenied(role=role.value, action=f"delete_document:{document.stage.value}")

    updated = requisition.model_copy(deep=True)
    updated.documents = [d for d in updated.documents if d.id != document_id]
    return updated, document


async def discard_object(storage, key: str) -> bool:
    """Delete a stored object whose metadata is already gone. Failures leave an orphan."""
    try:
        await asyncio.to_thread(storage.delete, key)
    except Exception as e:
        logger.error("document_object_orphaned", key=key, error=str(e))
        return False
    return True


async def add_document(
    repository,
    requisition_id: str,
    role: Role,
    stage: Stage,
    document_type: DocumentType,
    file_name: str,
    content_type: Optional[str],
    file_bytes: bytes,
    storage,
    actor_name: Optional[str] = None,
) -> Requisition:
    """Upload, then save the metadata. A failed save removes the uploaded object."""
    requisition = await repository.load(requisition_id)
    updated, document = await upload_document(
        requisition, role, stage, document_type,
        file_name, content_type, file_bytes, storage,
    )
    try:
        return await repository.save(updated, actor_name, operation="upload_document")
    except Exception:
        await discard_object(storage, document.path)
        raise


async def delete_document(
    repository,
    requisition_id: str,
    role: Role,
    document_id: str,
    storage,
    actor_name: Optional[str] = None,
) -> Requisition:
    """Save the aggregate without the document, then delete the stored object."""
    requisition = await repository.load(requisition_id)
    updated, document = detach_document(requisition, role, document_id)
    saved = await repository.save(updated, actor_name, operation="delete_document")
    await discard_object(storage, document.path)
    logger.info(
        "document_removed", requisition_id=requisition_id, document_id=document_id
    )
    return saved
