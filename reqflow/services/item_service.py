"""
Item, delivery-record and detail edits on a requisition aggregate.

Every function checks the caller's editable fields, applies the change to a
deep copy, recomputes the derived item fields and returns the copy. Nothing
here touches the store; callers persist through RequisitionRepository.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from reqflow.exceptions import NotFound, PermissionDenied, ValidationFailed
from reqflow.schemas.enums import Role, Stage
from reqflow.schemas.requisition import DeliveryRecord, Requisition, RequisitionItem
from reqflow.services.item_calculations import (
    generate_payment_number,
    sync_derived_fields,
    total_received,
)
from reqflow.services.permissions import (
    RESIDENT_FIELDS,
    can_access_stage,
    can_delete_item,
    require_editable,
)
from reqflow.services.validation_service import item_entry_errors

# Recomputed on every sync and never accepted from a caller; value names the source
DERIVED_ITEM_FIELDS = {
    "net_price": "price per unit",
    "subtotal": "price per unit",
    "total": "price per unit",
    "delivery_status": "delivery records",
    "delivery_date": "delivery records",
    "quantity_received": "delivery records",
    "delivery_records": "delivery records",
}

ITEM_FIELDS = frozenset(RequisitionItem.model_fields) - {"id", "requisition_id"}


def _number(value: float) -> str:
    return f"{value:g}"


def _touch(requisition: Requisition) -> None:
    requisition.last_modified = datetime.now(timezone.utc)


def _get_item(requisition: Requisition, item_id: str) -> RequisitionItem:
    item = requisition.item(item_id)
    if item is None:
        raise NotFound("Item", item_id)
    return item


def _check_fields(changes: dict[str, Any]) -> None:
    unknown = sorted(set(changes) - ITEM_FIELDS)
    if unknown:
        raise ValidationFailed([f"Unknown field: {name}" for name in unknown])
    derived = sorted(set(changes) & set(DERIVED_ITEM_FIELDS))
    if derived:
        raise ValidationFailed([
            f"{name} is derived from {DERIVED_ITEM_FIELDS[name]}" for name in derived
        ])


def _apply(item: RequisitionItem, changes: dict[str, Any]) -> RequisitionItem:
    data = item.model_dump()
    data.update(changes)
    try:
        return RequisitionItem.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        ) from e


def _settle_payment(before: Optional[RequisitionItem], after: RequisitionItem) -> None:
    was_settled = before is not None and before.payment_status.is_settled
    if after.payment_status.is_settled and not was_settled and not after.payment_number:
        after.payment_number = generate_payment_number()


def _check_amount(item: RequisitionItem) -> None:
    received = total_received(item.delivery_records)
    if item.amount < received:
        raise ValidationFailed([
            f"Amount cannot be less than the quantity already received "
            f"({_number(received)} {item.unit})"
        ])


def add_item(
    requisition: Requisition, role: Role, fields: dict[str, Any]
) -> Requisition:
    _check_fields(fields)
    require_editable(role, fields)

    item = _apply(RequisitionItem(requisition_id=requisition.id), fields)
    errors = item_entry_errors(item)
    if errors:
        raise ValidationFailed(errors)
    _settle_payment(None, item)

    updated = requisition.model_copy(deep=True)
    updated.items.append(sync_derived_fields(item))
    _touch(updated)
    return updated


def update_item(
    requisition: Requisition,
    role: Role,
    item_id: str,
    changes: dict[str, Any],
) -> Requisition:
    _check_fields(changes)
    require_editable(role, changes)

    current = _get_item(requisition, item_id)
    item = _apply(current, changes)
    if RESIDENT_FIELDS & set(changes):
        errors = item_entry_errors(item)
        if errors:
            raise ValidationFailed(errors)
    _check_amount(item)
    _settle_payment(current, item)

    updated = requisition.model_copy(deep=True)
    updated.items = [
        sync_derived_fields(item) if i.id == item_id else i for i in updated.items
    ]
    _touch(updated)
    return updated


def delete_item(requisition: Requisition, role: Role, item_id: str) -> Requisition:
    item = _get_item(requisition, item_id)
    if not can_delete_item(role, requisition.current_stage, item.approval_status):
        raise PermissionDenied(role=role.value, action="delete_item")

    updated = requisition.model_copy(deep=True)
    updated.items = [i for i in updated.items if i.id != item_id]
    _touch(updated)
    return updated


# ---------- delivery records ----------


def _check_record(record: DeliveryRecord) -> None:
    if not record.quantity or record.quantity <= 0:
        raise ValidationFailed(
            ["Quantity Received must be greater than 0 for all delivery records"]
        )


def _check_not_over_received(item: RequisitionItem) -> None:
    if total_received(item.delivery_records) > item.amount:
        raise ValidationFailed([
            f"Total received quantity cannot exceed the ordered amount "
            f"({_number(item.amount)} {item.unit})"
        ])


def _replace_records(
    requisition: Requisition,
    item_id: str,
    records: list[DeliveryRecord],
) -> Requisition:
    updated = requisition.model_copy(deep=True)
    item = _get_item(updated, item_id)
    item.delivery_records = records
    _check_not_over_received(item)
    sync_derived_fields(item)
    _touch(updated)
    return updated


def add_delivery_record(
    requisition: Requisition,
    role: Role,
    item_id: str,
    record: DeliveryRecord,
) -> Requisition:
    require_editable(role, ["delivery_records"])
    item = _get_item(requisition, item_id)
    _check_record(record)
    record = record.model_copy(update={"item_id": item_id})
    return _replace_records(
        requisition, item_id, [*item.delivery_records, record]
    )


def update_delivery_record(
    requisition: Requisition,
    role: Role,
    item_id: str,
    record_id: str,
    changes: dict[str, Any],
) -> Requisition:
    require_editable(role, ["delivery_records"])
    item = _get_item(requisition, item_id)
    current = item.delivery_record(record_id)
    if current is None:
        raise NotFound("Delivery record", record_id)

    data = current.model_dump()
    data.update({k: v for k, v in changes.items() if k not in ("id", "item_id")})
    try:
        record = DeliveryRecord.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        ) from e
    _check_record(record)

    records = [record if r.id == record_id else r for r in item.delivery_records]
    return _replace_records(requisition, item_id, records)


def remove_delivery_record(
    requisition: Requisition,
    role: Role,
    item_id: str,
    record_id: str,
) -> Requisition:
    require_editable(role, ["delivery_records"])
    item = _get_item(requisition, item_id)
    if item.delivery_record(record_id) is None:
        raise NotFound("Delivery record", record_id)
    records = [r for r in item.delivery_records if r.id != record_id]
    return _replace_records(requisition, item_id, records)


# ---------- requisition details ----------


def update_details(
    requisition: Requisition,
    role: Role,
    project_name: Optional[str] = None,
    week: Optional[str] = None,
    comments: Optional[dict[Stage, Optional[str]]] = None,
) -> Requisition:
    """Project name, week tag and per-stage comments (the autosaved fields)."""
    for stage in comments or {}:
        if not can_access_stage(role, stage):
            raise PermissionDenied(role=role.value, action=f"comment:{stage.value}")
    if project_name is not None and not project_name.strip():
        raise ValidationFailed(["Project name is required"])

    updated = requisition.model_copy(deep=True)
    if project_name is not None:
        updated.project_name = project_name.strip()
    if week is not None:
        updated.week = week or None
    for stage, text in (comments or {}).items():
        updated.progress(stage).comments = text
    _touch(updated)
    return updated
