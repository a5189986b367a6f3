from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import Field

from reqflow.schemas.enums import (
    ApprovalStatus,
    PaymentStatus,
    QualityCheck,
    Role,
    Stage,
)
from reqflow.schemas.requisition import AggregateModel


class ItemFields(AggregateModel):
    """Editable item fields; only the ones sent are applied."""

    classification: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    amount: Optional[float] = None
    unit: Optional[str] = Field(None, max_length=50)
    supplier: Optional[str] = Field(None, max_length=200)
    supplier_tax_id: Optional[str] = Field(None, max_length=50)
    price_unit: Optional[float] = None
    multiplier: Optional[float] = None
    net_price: Optional[float] = None
    subtotal: Optional[float] = None
    approval_status: Optional[ApprovalStatus] = None
    ceo_comment: Optional[str] = Field(None, max_length=1000)
    payment_status: Optional[PaymentStatus] = None
    payment_date: Optional[date] = None
    payment_amount: Optional[float] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_number: Optional[str] = None
    quality_check: Optional[str] = None
    delivery_notes: Optional[str] = Field(None, max_length=1000)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class RequisitionCreate(AggregateModel):
    project_name: str = Field(..., max_length=200)
    project_id: Optional[str] = None
    week: Optional[str] = None
    items: List[ItemFields] = Field(default_factory=list, max_length=200)


class DetailsUpdate(AggregateModel):
    project_name: Optional[str] = Field(None, max_length=200)
    week: Optional[str] = None
    comments: Optional[Dict[Stage, Optional[str]]] = None


class AutosaveRequest(AggregateModel):
    field: Literal["week", "comments"]
    stage: Optional[Stage] = None
    value: Optional[str] = Field(None, max_length=5000)


class StageCompleteRequest(AggregateModel):
    comments: Optional[str] = Field(None, max_length=5000)


class DeliveryRecordCreate(AggregateModel):
    delivery_date: date
    quantity: float
    quality_check: QualityCheck
    received_by: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)


class DeliveryRecordUpdate(AggregateModel):
    delivery_date: Optional[date] = None
    quantity: Optional[float] = None
    quality_check: Optional[QualityCheck] = None
    received_by: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)


class CompletionStatusResponse(AggregateModel):
    stage: Stage
    can_access: bool
    is_open: bool
    is_complete: bool
    requirements_met: bool
    has_documents: bool
    can_complete: bool
    errors: List[str] = []


class ValidationErrorsResponse(AggregateModel):
    stage: Stage
    errors: List[str] = []


class DocumentWarningResponse(AggregateModel):
    token: str
    requisition_id: str
    stage: Stage
    role: Role
    message: str
