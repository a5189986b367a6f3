"""In-memory requisition aggregate: requisition, items, delivery records, documents.

Attributes are snake_case; JSON bodies use camelCase aliases.
"""

import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from reqflow.schemas.enums import (
    STAGE_ORDER,
    ApprovalStatus,
    DeliveryStatus,
    DocumentType,
    PaymentStatus,
    QualityCheck,
    RequisitionStatus,
    Role,
    Stage,
)

DEFAULT_MULTIPLIER = 1.16


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AggregateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeliveryRecord(AggregateModel):
    id: str = Field(default_factory=_new_id)
    item_id: str = ""
    delivery_date: Optional[date] = None
    quantity: float = 0
    quality_check: Optional[QualityCheck] = None
    received_by: str = ""
    notes: Optional[str] = None


class RequisitionItem(AggregateModel):
    id: str = Field(default_factory=_new_id)
    requisition_id: str = ""

    # resident / procurement
    classification: str = ""
    description: str = ""
    amount: float = 0
    unit: str = ""

    # procurement
    supplier: Optional[str] = None
    supplier_tax_id: Optional[str] = None
    price_unit: float = 0
    multiplier: float = DEFAULT_MULTIPLIER
    net_price: float = 0
    subtotal: float = 0
    total: float = 0

    # ceo
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    ceo_comment: Optional[str] = None

    # treasury / payment
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_date: Optional[date] = None
    payment_amount: Optional[float] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_number: Optional[str] = None

    # storekeeper; delivery_status, quantity_received and delivery_date are
    # derived from delivery_records
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    delivery_date: Optional[date] = None
    quantity_received: float = 0
    quality_check: Optional[str] = None
    delivery_notes: Optional[str] = None
    delivery_records: List[DeliveryRecord] = Field(default_factory=list)

    def delivery_record(self, record_id: str) -> Optional[DeliveryRecord]:
        for record in self.delivery_records:
            if record.id == record_id:
                return record
        return None


class Document(AggregateModel):
    id: str = Field(default_factory=_new_id)
    requisition_id: str = ""
    file_name: str
    file_type: str
    file_size: int
    uploaded_at: datetime = Field(default_factory=_utcnow)
    uploaded_by: Role
    document_type: DocumentType = DocumentType.OTHER
    stage: Stage
    bucket: str = "documents"
    path: str = ""
    url: Optional[str] = None


class StageProgress(AggregateModel):
    complete: bool = False
    comments: Optional[str] = None


class Requisition(AggregateModel):
    id: str = Field(default_factory=_new_id)
    requisition_number: str = ""
    status: RequisitionStatus = RequisitionStatus.DRAFT
    current_stage: Stage = Stage.RESIDENT
    stages: dict[Stage, StageProgress] = Field(default_factory=dict)

    project_name: str = ""
    project_id: Optional[str] = None
    week: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_modified: datetime = Field(default_factory=_utcnow)
    created_by: Optional[str] = None

    items: List[RequisitionItem] = Field(default_factory=list)
    documents: List[Document] = Field(default_factory=list)

    @model_validator(mode="after")
    def _fill_stage_progress(self) -> "Requisition":
        for stage in STAGE_ORDER:
            self.stages.setdefault(stage, StageProgress())
        return self

    def progress(self, stage: Stage) -> StageProgress:
        return self.stages[stage]

    def completed_stages(self) -> list[Stage]:
        return [s for s in STAGE_ORDER if self.stages[s].complete]

    def item(self, item_id: str) -> Optional[RequisitionItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def document(self, document_id: str) -> Optional[Document]:
        for doc in self.documents:
            if doc.id == document_id:
                return doc
        return None
