import copy
from datetime import date
from typing import Optional

import pytest

from reqflow.schemas.enums import (
    STAGE_ORDER,
    ApprovalStatus,
    PaymentStatus,
    QualityCheck,
    RequisitionStatus,
    Role,
    Stage,
)
from reqflow.schemas.requisition import (
    DeliveryRecord,
    Document,
    Requisition,
    RequisitionItem,
)
from reqflow.services.auth_service import create_access_token
from reqflow.services.item_calculations import sync_derived_fields


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_item(**overrides) -> RequisitionItem:
    """An item that passes resident and procurement validation."""
    fields = dict(
        classification="Concrete",
        description="Ready-mix concrete 250 kg/cm2",
        amount=10,
        unit="m3",
        supplier="Cementos del Norte",
        supplier_tax_id="CDN010203AB1",
        price_unit=100,
        multiplier=1.16,
    )
    fields.update(overrides)
    return sync_derived_fields(RequisitionItem(**fields))


def make_record(quantity: float, day: int = 1, **overrides) -> DeliveryRecord:
    fields = dict(
        delivery_date=date(2024, 3, day),
        quantity=quantity,
        quality_check=QualityCheck.PASSED,
        received_by="Juan Perez",
    )
    fields.update(overrides)
    return DeliveryRecord(**fields)


def make_document(stage: Stage, role: Optional[Role] = None) -> Document:
    return Document(
        file_name=f"{stage.value}.pdf",
        file_type="application/pdf",
        file_size=2048,
        uploaded_by=role or Role(stage.value),
        stage=stage,
        path=f"{stage.value}.pdf",
    )


def make_requisition(
    stage: Stage = Stage.RESIDENT,
    items: Optional[list[RequisitionItem]] = None,
    with_documents: bool = True,
    **overrides,
) -> Requisition:
    """Requisition whose earlier stages are complete and ``stage`` is current."""
    fields = dict(
        requisition_number="REQ-2024-03-01-123",
        project_name="Torre Norte",
        project_id="PRJ-001",
        week="2024-03-04",
        status=RequisitionStatus.pending(stage),
        current_stage=stage,
        created_by="Ana Resident",
        items=items if items is not None else [make_item()],
    )
    fields.update(overrides)
    requisition = Requisition(**fields)
    for earlier in STAGE_ORDER[: stage.order]:
        requisition.progress(earlier).complete = True
    for item in requisition.items:
        item.requisition_id = requisition.id
    if with_documents:
        requisition.documents = [
            make_document(s).model_copy(update={"requisition_id": requisition.id})
            for s in STAGE_ORDER
        ]
    return requisition


def approved_paid_item(**overrides) -> RequisitionItem:
    fields = dict(
        approval_status=ApprovalStatus.APPROVED,
        payment_status=PaymentStatus.COMPLETED,
        payment_number="PAY-12345",
    )
    fields.update(overrides)
    return make_item(**fields)


# ---------------------------------------------------------------------------
# In-memory record store
# ---------------------------------------------------------------------------

class FakeStore:
    """RequisitionStore over dicts. ``fail_on`` names a method that raises."""

    def __init__(self, fail_on: Optional[str] = None):
        self.requisitions: dict[str, dict] = {}
        self.items: dict[str, dict] = {}
        self.deliveries: dict[str, dict] = {}
        self.documents: dict[str, dict] = {}
        self.fail_on = fail_on
        self.calls: list[str] = []

    def _call(self, name: str):
        self.calls.append(name)
        if self.fail_on == name:
            raise ConnectionError(f"store unavailable during {name}")

    async def get_requisitions(self):
        self._call("get_requisitions")
        return [copy.deepcopy(r) for r in self.requisitions.values()]

    async def get_requisition(self, requisition_id):
        self._call("get_requisition")
        record = self.requisitions.get(requisition_id)
        return copy.deepcopy(record) if record else None

    async def get_requisition_items(self, requisition_id):
        self._call("get_requisition_items")
        rows = [r for r in self.items.values() if r["requisition_id"] == requisition_id]
        return copy.deepcopy(sorted(rows, key=lambda r: r["position"]))

    async def get_delivery_records(self, item_id):
        self._call("get_delivery_records")
        return copy.deepcopy(
            [r for r in self.deliveries.values() if r["requisition_item_id"] == item_id]
        )

    async def get_documents(self, requisition_id):
        self._call("get_documents")
        return copy.deepcopy(
            [d for d in self.documents.values() if d["requisition_id"] == requisition_id]
        )

    async def upsert_requisition(self, record):
        self._call("upsert_requisition")
        self.requisitions[record["id"]] = copy.deepcopy(record)

    async def upsert_items(self, records):
        self._call("upsert_items")
        for record in records:
            self.items[record["id"]] = copy.deepcopy(record)

    async def delete_items(self, ids):
        self._call("delete_items")
        for item_id in ids:
            self.items.pop(item_id, None)
            for record_id in [
                r["id"] for r in self.deliveries.values()
                if r["requisition_item_id"] == item_id
            ]:
                del self.deliveries[record_id]

    async def upsert_delivery_records(self, records):
        self._call("upsert_delivery_records")
        for record in records:
            self.deliveries[record["id"]] = copy.deepcopy(record)

    async def delete_delivery_records(self, ids):
        self._call("delete_delivery_records")
        for record_id in ids:
            self.deliveries.pop(record_id, None)

    async def upsert_documents(self, records):
        self._call("upsert_documents")
        for record in records:
            self.documents[record["id"]] = copy.deepcopy(record)

    async def delete_documents(self, ids):
        self._call("delete_documents")
        for doc_id in ids:
            self.documents.pop(doc_id, None)


@pytest.fixture
def store():
    return FakeStore()


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def token_for(role: Role, name: Optional[str] = None) -> str:
    return create_access_token(
        user_id=f"user-{role.value}",
        role=role.value,
        name=name or f"{role.value.title()} User",
    )


def headers_for(role: Role) -> dict:
    return {"Authorization": f"Bearer {token_for(role)}"}


@pytest.fixture
def auth_headers():
    return headers_for
