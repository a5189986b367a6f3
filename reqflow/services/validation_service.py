"""
Validation engine: human-readable errors that block stage completion.

Messages are per violated field, per item, 1-indexed:
  "Item 3: Description is required"

The stage being validated defaults to the first stage whose completion flag
is still false (current_stage when every flag is set).
"""

from typing import Iterable, Optional

from reqflow.schemas.enums import (
    STAGE_ORDER,
    ApprovalStatus,
    DeliveryStatus,
    Stage,
)
from reqflow.schemas.requisition import DeliveryRecord, Requisition, RequisitionItem

DELIVERY_EXEMPT_APPROVALS = frozenset({
    ApprovalStatus.SAVE_FOR_LATER,
    ApprovalStatus.REJECTED,
})


def _blank(value) -> bool:
    return not (value and str(value).strip())


def active_stage(requisition: Requisition) -> Stage:
    for stage in STAGE_ORDER:
        if not requisition.progress(stage).complete:
            return stage
    return requisition.current_stage


def _basic_errors(n: int, item: RequisitionItem) -> list[str]:
    errors = []
    if _blank(item.description):
        errors.append(f"Item {n}: Description is required")
    if _blank(item.classification):
        errors.append(f"Item {n}: Classification is required")
    if not item.amount or item.amount <= 0:
        errors.append(f"Item {n}: Amount must be greater than 0")
    if _blank(item.unit):
        errors.append(f"Item {n}: Unit is required")
    return errors


def _procurement_errors(n: int, item: RequisitionItem) -> list[str]:
    errors = _basic_errors(n, item)
    if _blank(item.supplier):
        errors.append(f"Item {n}: Supplier is required")
    if not item.price_unit or item.price_unit <= 0:
        errors.append(f"Item {n}: Price per unit must be greater than 0")
    if not item.total or item.total <= 0:
        errors.append(f"Item {n}: Total must be greater than 0")
    return errors


def _ceo_errors(n: int, item: RequisitionItem) -> list[str]:
    if item.approval_status == ApprovalStatus.PENDING:
        return [f"Item {n}: Approval status must be set"]
    return []


def _payment_errors(n: int, item: RequisitionItem) -> list[str]:
    if (
        item.approval_status == ApprovalStatus.APPROVED
        and not item.payment_status.is_settled
    ):
        return [f"Item {n}: Payment must be completed for approved items"]
    return []


def _storekeeper_errors(n: int, item: RequisitionItem) -> list[str]:
    if item.approval_status in DELIVERY_EXEMPT_APPROVALS:
        return []
    if item.delivery_status != DeliveryStatus.COMPLETE:
        return [
            f"Item {n}: Delivery must be fully completed before this stage can be completed."
        ]
    return []


def _no_errors(n: int, item: RequisitionItem) -> list[str]:
    return []


_ITEM_CHECKS = {
    Stage.RESIDENT: _basic_errors,
    Stage.PROCUREMENT: _procurement_errors,
    Stage.TREASURY: _no_errors,
    Stage.CEO: _ceo_errors,
    Stage.PAYMENT: _payment_errors,
    Stage.STOREKEEPER: _storekeeper_errors,
}


def validation_errors(
    requisition: Requisition, stage: Optional[Stage] = None
) -> list[str]:
    stage = stage or active_stage(requisition)
    check = _ITEM_CHECKS[stage]
    errors: list[str] = []
    for n, item in enumerate(requisition.items, start=1):
        errors.extend(check(n, item))
    return errors


def delivery_record_errors(records: Iterable[DeliveryRecord]) -> list[str]:
    """Mandatory fields of persisted delivery records."""
    errors = []
    for record in records:
        if not record.delivery_date:
            errors.append("Delivery Date is required for all delivery records")
        if not record.quantity or record.quantity <= 0:
            errors.append(
                "Quantity Received must be greater than 0 for all delivery records"
            )
        if not record.quality_check:
            errors.append("Quality Check is required for all delivery records")
        if _blank(record.received_by):
            errors.append("Received By is required for all delivery records")
    return errors


def item_entry_errors(item: RequisitionItem) -> list[str]:
    """Checks applied when an item is added or edited."""
    errors = []
    if _blank(item.description):
        errors.append("Description is required")
    if _blank(item.unit):
        errors.append("Unit is required")
    if not item.amount or item.amount <= 0:
        errors.append("Amount must be greater than 0")
    return errors
