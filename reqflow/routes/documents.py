# reqflow/routes/documents.py
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from reqflow.middleware.auth import get_current_user
from reqflow.schemas.enums import DocumentType, Stage
from reqflow.schemas.requisition import Requisition
from reqflow.services.document_service import add_document, delete_document
from reqflow.services.requisition_repository import (
    RequisitionRepository,
    get_repository,
)
from reqflow.services.storage import get_storage

router = APIRouter()


def get_document_storage():
    return get_storage()


@router.post(
    "/{requisition_id}/documents",
    response_model=Requisition,
    status_code=status.HTTP_201_CREATED,
)
async def upload(
    requisition_id: str,
    stage: Stage = Form(...),
    document_type: DocumentType = Form(..., alias="documentType"),
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
    storage=Depends(get_document_storage),
):
    """Upload a stage document and attach it to the requisition."""
    file_bytes = await file.read()
    return await add_document(
        repository,
        requisition_id,
        current_user["role"],
        stage,
        document_type,
        file_name=file.filename or "upload",
        content_type=file.content_type,
        file_bytes=file_bytes,
        storage=storage,
        actor_name=current_user["name"],
    )


@router.delete("/{requisition_id}/documents/{document_id}", response_model=Requisition)
async def delete(
    requisition_id: str,
    document_id: str,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
    storage=Depends(get_document_storage),
):
    return await delete_document(
        repository,
        requisition_id,
        current_user["role"],
        document_id,
        storage=storage,
        actor_name=current_user["name"],
    )
