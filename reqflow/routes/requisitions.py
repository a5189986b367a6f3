from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
import structlog

from reqflow.exceptions import NotFound, PermissionDenied, ValidationFailed
from reqflow.middleware.auth import get_current_user
from reqflow.middleware.authorization import require_roles
from reqflow.schemas.enums import RequisitionStatus, Role, Stage
from reqflow.schemas.requests import (
    AutosaveRequest,
    CompletionStatusResponse,
    DeliveryRecordCreate,
    DeliveryRecordUpdate,
    DetailsUpdate,
    DocumentWarningResponse,
    ItemFields,
    RequisitionCreate,
    StageCompleteRequest,
    ValidationErrorsResponse,
)
from reqflow.schemas.requisition import DeliveryRecord, Requisition
from reqflow.services.autosave import autosave
from reqflow.services.item_service import (
    add_delivery_record,
    add_item,
    delete_item,
    remove_delivery_record,
    update_delivery_record,
    update_details,
    update_item,
)
from reqflow.services.permissions import CREATOR_ROLES, can_access_stage
from reqflow.services.requisition_repository import (
    RequisitionRepository,
    get_repository,
    get_repository_factory,
)
from reqflow.services.validation_service import active_stage, validation_errors
from reqflow.services.workflow_service import (
    DocumentMissingWarning,
    WorkflowService,
    completion_status,
    new_requisition,
    submit_requisition,
)

logger = structlog.get_logger()
router = APIRouter()


def _role(current_user: dict) -> Role:
    return current_user["role"]


# ---------- LIST / GET / CREATE ----------


@router.get("", response_model=list[Requisition])
async def list_requisitions(
    req_status: Optional[RequisitionStatus] = Query(None, alias="status"),
    stage: Optional[Stage] = Query(None),
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisitions = await repository.load_all()
    if req_status:
        requisitions = [r for r in requisitions if r.status == req_status]
    if stage:
        requisitions = [r for r in requisitions if r.current_stage == stage]
    return requisitions


@router.get("/{requisition_id}", response_model=Requisition)
async def get_requisition(
    requisition_id: str,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    return await repository.load(requisition_id)


@router.post("", response_model=Requisition, status_code=status.HTTP_201_CREATED)
async def create_requisition(
    body: RequisitionCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(*CREATOR_ROLES)),
    repository: RequisitionRepository = Depends(get_repository),
):
    role = _role(current_user)
    requisition = new_requisition(
        role,
        project_name=body.project_name,
        project_id=body.project_id,
        week=body.week,
        created_by=current_user["name"],
    )
    for fields in body.items:
        requisition = add_item(requisition, role, fields.changes())

    saved = await repository.save(
        requisition, current_user["name"], operation="create_requisition"
    )
    logger.info(
        "requisition_created",
        requisition_id=saved.id,
        requisition_number=saved.requisition_number,
        items=len(saved.items),
    )
    return saved


@router.post("/{requisition_id}/submit", response_model=Requisition)
async def submit(
    requisition_id: str,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    updated = submit_requisition(requisition, _role(current_user))
    saved = await repository.save(
        updated, current_user["name"], operation="submit_requisition"
    )
    logger.info("requisition_submitted", requisition_id=saved.id)
    return saved


# ---------- DETAILS / AUTOSAVE ----------


@router.patch("/{requisition_id}", response_model=Requisition)
async def update_requisition_details(
    requisition_id: str,
    body: DetailsUpdate,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    updated = update_details(
        requisition,
        _role(current_user),
        project_name=body.project_name,
        week=body.week,
        comments=body.comments,
    )
    return await repository.save(
        updated, current_user["name"], operation="update_details"
    )


@router.patch("/{requisition_id}/autosave", status_code=status.HTTP_202_ACCEPTED)
async def autosave_field(
    requisition_id: str,
    body: AutosaveRequest,
    current_user: dict = Depends(get_current_user),
    open_repository=Depends(get_repository_factory),
):
    """Debounced free-text write; the last value within the quiet period wins."""
    role = _role(current_user)
    actor_name = current_user["name"]

    if body.field == "comments":
        if body.stage is None:
            raise ValidationFailed(["Stage is required for comments"])
        if not can_access_stage(role, body.stage):
            raise PermissionDenied(role=role.value, action=f"comment:{body.stage.value}")
        key = (requisition_id, f"{body.stage.value}_comments")
        details = {"comments": {body.stage: body.value}}
    else:
        key = (requisition_id, "week")
        details = {"week": body.value or ""}

    async def write():
        async with open_repository() as repository:
            requisition = await repository.load(requisition_id)
            updated = update_details(requisition, role, **details)
            await repository.save(updated, actor_name, operation="autosave")

    autosave.schedule(key, write)
    return {"scheduled": True, "field": key[1], "delay": autosave.delay}


# ---------- STAGE COMPLETION ----------


@router.get(
    "/{requisition_id}/completion-status", response_model=CompletionStatusResponse
)
async def get_completion_status(
    requisition_id: str,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    result = completion_status(requisition, _role(current_user))
    return CompletionStatusResponse(
        stage=result.stage,
        can_access=result.can_access,
        is_open=result.is_open,
        is_complete=result.is_complete,
        requirements_met=result.requirements_met,
        has_documents=result.has_documents,
        can_complete=result.can_complete,
        errors=result.errors,
    )


@router.get(
    "/{requisition_id}/validation-errors", response_model=ValidationErrorsResponse
)
async def get_validation_errors(
    requisition_id: str,
    stage: Optional[Stage] = Query(None),
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    stage = stage or active_stage(requisition)
    return ValidationErrorsResponse(
        stage=stage, errors=validation_errors(requisition, stage)
    )


def _warning_response(warning: DocumentMissingWarning) -> JSONResponse:
    body = DocumentWarningResponse(
        token=warning.token,
        requisition_id=warning.requisition_id,
        stage=warning.stage,
        role=warning.role,
        message=warning.message,
    )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"warning": body.model_dump(mode="json", by_alias=True)},
    )


@router.post(
    "/{requisition_id}/stages/{stage}/complete",
    response_model=Requisition,
    responses={202: {"description": "No document uploaded for the stage; confirm with the token"}},
)
async def complete(
    requisition_id: str,
    stage: Stage,
    body: Optional[StageCompleteRequest] = None,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    service = WorkflowService(repository)
    result = await service.attempt_complete(
        requisition_id,
        _role(current_user),
        stage,
        comments=body.comments if body else None,
        actor_name=current_user["name"],
    )
    if isinstance(result, DocumentMissingWarning):
        return _warning_response(result)
    return result


@router.post(
    "/{requisition_id}/completions/{token}/confirm", response_model=Requisition
)
async def confirm_completion(
    requisition_id: str,
    token: str,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    service = WorkflowService(repository)
    warning = service.pending.peek(token)
    if warning is None or warning.requisition_id != requisition_id:
        raise NotFound("Completion token", token)
    return await service.confirm_complete(
        token, _role(current_user), actor_name=current_user["name"]
    )


# ---------- ITEMS ----------


@router.post(
    "/{requisition_id}/items",
    response_model=Requisition,
    status_code=status.HTTP_201_CREATED,
)
async def create_item(
    requisition_id: str,
    body: ItemFields,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    updated = add_item(requisition, _role(current_user), body.changes())
    return await repository.save(updated, current_user["name"], operation="add_item")


@router.patch("/{requisition_id}/items/{item_id}", response_model=Requisition)
async def patch_item(
    requisition_id: str,
    item_id: str,
    body: ItemFields,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    updated = update_item(requisition, _role(current_user), item_id, body.changes())
    return await repository.save(updated, current_user["name"], operation="update_item")


@router.delete("/{requisition_id}/items/{item_id}", response_model=Requisition)
async def remove_item(
    requisition_id: str,
    item_id: str,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    updated = delete_item(requisition, _role(current_user), item_id)
    return await repository.save(updated, current_user["name"], operation="delete_item")


# ---------- DELIVERY RECORDS ----------


@router.post(
    "/{requisition_id}/items/{item_id}/deliveries",
    response_model=Requisition,
    status_code=status.HTTP_201_CREATED,
)
async def create_delivery(
    requisition_id: str,
    item_id: str,
    body: DeliveryRecordCreate,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    record = DeliveryRecord(item_id=item_id, **body.model_dump())
    updated = add_delivery_record(requisition, _role(current_user), item_id, record)
    return await repository.save(
        updated, current_user["name"], operation="add_delivery_record"
    )


@router.patch(
    "/{requisition_id}/items/{item_id}/deliveries/{record_id}",
    response_model=Requisition,
)
async def patch_delivery(
    requisition_id: str,
    item_id: str,
    record_id: str,
    body: DeliveryRecordUpdate,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    updated = update_delivery_record(
        requisition,
        _role(current_user),
        item_id,
        record_id,
        body.model_dump(exclude_unset=True),
    )
    return await repository.save(
        updated, current_user["name"], operation="update_delivery_record"
    )


@router.delete(
    "/{requisition_id}/items/{item_id}/deliveries/{record_id}",
    response_model=Requisition,
)
async def delete_delivery(
    requisition_id: str,
    item_id: str,
    record_id: str,
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    requisition = await repository.load(requisition_id)
    updated = remove_delivery_record(
        requisition, _role(current_user), item_id, record_id
    )
    return await repository.save(
        updated, current_user["name"], operation="remove_delivery_record"
    )
