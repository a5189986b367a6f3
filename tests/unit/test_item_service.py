"""
Unit tests for reqflow/services/item_service.py

Tests: field-level permission checks, entry validation, derived field
       recomputation, payment numbers, delivery record limits, details edits.
"""

import re
from datetime import date

import pytest

from reqflow.exceptions import NotFound, PermissionDenied, ValidationFailed
from reqflow.schemas.enums import (
    ApprovalStatus,
    DeliveryStatus,
    PaymentStatus,
    Role,
    Stage,
)
from reqflow.services.item_service import (
    add_delivery_record,
    add_item,
    delete_item,
    remove_delivery_record,
    update_delivery_record,
    update_details,
    update_item,
)
from tests.conftest import make_item, make_record, make_requisition


# ---------------------------------------------------------------------------
# add_item / update_item
# ---------------------------------------------------------------------------


def test_resident_adds_item():
    req = make_requisition(items=[])
    updated = add_item(
        req, Role.RESIDENT,
        {"classification": "Steel", "description": "Rebar #4", "amount": 2, "unit": "t"},
    )
    assert len(updated.items) == 1
    assert updated.items[0].requisition_id == req.id
    assert req.items == []


def test_resident_cannot_set_prices():
    req = make_requisition(items=[])
    with pytest.raises(PermissionDenied):
        add_item(req, Role.RESIDENT, {"description": "Rebar", "amount": 2, "unit": "t", "price_unit": 10})


def test_add_item_requires_entry_fields():
    with pytest.raises(ValidationFailed) as exc:
        add_item(make_requisition(items=[]), Role.RESIDENT, {"description": "Rebar"})
    assert exc.value.errors == ["Unit is required", "Amount must be greater than 0"]


def test_unknown_field_rejected():
    with pytest.raises(ValidationFailed):
        update_item(make_requisition(), Role.CEO, "x", {"colour": "red"})


def test_derived_delivery_fields_rejected():
    req = make_requisition()
    with pytest.raises(ValidationFailed):
        update_item(req, Role.STOREKEEPER, req.items[0].id, {"delivery_status": "Complete"})


def test_ceo_cannot_override_pricing():
    req = make_requisition(Stage.CEO)
    item_id = req.items[0].id
    with pytest.raises(ValidationFailed) as exc:
        update_item(req, Role.CEO, item_id, {"net_price": 90, "subtotal": 900})
    assert exc.value.errors == [
        "net_price is derived from price per unit",
        "subtotal is derived from price per unit",
    ]


def test_clearing_price_zeroes_totals():
    req = make_requisition(Stage.PROCUREMENT)
    item_id = req.items[0].id
    updated = update_item(req, Role.PROCUREMENT, item_id, {"price_unit": 0})
    item = updated.item(item_id)
    assert (item.net_price, item.subtotal, item.total) == (0.0, 0.0, 0.0)


def test_procurement_price_change_recomputes_totals():
    req = make_requisition(Stage.PROCUREMENT)
    item_id = req.items[0].id
    updated = update_item(req, Role.PROCUREMENT, item_id, {"price_unit": 50})
    item = updated.item(item_id)
    assert (item.net_price, item.subtotal, item.total) == (58.0, 580.0, 672.8)
    assert req.item(item_id).price_unit == 100


def test_amount_cannot_drop_below_received():
    req = make_requisition(items=[make_item(delivery_records=[make_record(6)])])
    with pytest.raises(ValidationFailed) as exc:
        update_item(req, Role.CEO, req.items[0].id, {"amount": 5})
    assert exc.value.errors == [
        "Amount cannot be less than the quantity already received (6 m3)"
    ]


def test_amount_must_stay_positive():
    req = make_requisition()
    with pytest.raises(ValidationFailed) as exc:
        update_item(req, Role.RESIDENT, req.items[0].id, {"amount": 0})
    assert exc.value.errors == ["Amount must be greater than 0"]


def test_amount_change_rederives_delivery_status():
    req = make_requisition(items=[make_item(delivery_records=[make_record(6)])])
    updated = update_item(req, Role.CEO, req.items[0].id, {"amount": 6})
    assert updated.items[0].delivery_status == DeliveryStatus.COMPLETE


def test_settling_payment_generates_number():
    req = make_requisition(Stage.PAYMENT, items=[make_item(approval_status=ApprovalStatus.APPROVED)])
    updated = update_item(
        req, Role.TREASURY, req.items[0].id,
        {"payment_status": PaymentStatus.PAID, "payment_date": date(2024, 3, 8)},
    )
    assert re.fullmatch(r"PAY-\d{5}", updated.items[0].payment_number)


def test_existing_payment_number_kept():
    req = make_requisition(Stage.PAYMENT)
    updated = update_item(
        req, Role.PAYMENT, req.items[0].id,
        {"payment_status": PaymentStatus.COMPLETED, "payment_number": "PAY-2024-001"},
    )
    assert updated.items[0].payment_number == "PAY-2024-001"


def test_update_missing_item():
    with pytest.raises(NotFound):
        update_item(make_requisition(), Role.CEO, "nope", {"unit": "kg"})


# ---------------------------------------------------------------------------
# delete_item
# ---------------------------------------------------------------------------


def test_resident_deletes_during_resident_stage():
    req = make_requisition()
    assert delete_item(req, Role.RESIDENT, req.items[0].id).items == []


def test_resident_cannot_delete_later():
    req = make_requisition(Stage.PROCUREMENT)
    with pytest.raises(PermissionDenied):
        delete_item(req, Role.RESIDENT, req.items[0].id)


def test_procurement_cannot_delete_approved_item():
    req = make_requisition(Stage.CEO, items=[make_item(approval_status=ApprovalStatus.APPROVED)])
    with pytest.raises(PermissionDenied):
        delete_item(req, Role.PROCUREMENT, req.items[0].id)


# ---------------------------------------------------------------------------
# delivery records
# ---------------------------------------------------------------------------


def test_add_records_until_complete():
    req = make_requisition(Stage.STOREKEEPER)
    item_id = req.items[0].id
    req = add_delivery_record(req, Role.STOREKEEPER, item_id, make_record(4))
    assert req.item(item_id).delivery_status == DeliveryStatus.PARTIAL
    req = add_delivery_record(req, Role.STOREKEEPER, item_id, make_record(6, day=5))
    item = req.item(item_id)
    assert item.delivery_status == DeliveryStatus.COMPLETE
    assert item.quantity_received == 10
    assert item.delivery_date == date(2024, 3, 5)


def test_over_receipt_rejected():
    req = make_requisition(Stage.STOREKEEPER, items=[make_item(delivery_records=[make_record(8)])])
    with pytest.raises(ValidationFailed) as exc:
        add_delivery_record(req, Role.STOREKEEPER, req.items[0].id, make_record(3))
    assert exc.value.errors == [
        "Total received quantity cannot exceed the ordered amount (10 m3)"
    ]
    assert req.items[0].quantity_received == 8


def test_record_quantity_must_be_positive():
    req = make_requisition(Stage.STOREKEEPER)
    with pytest.raises(ValidationFailed):
        add_delivery_record(req, Role.STOREKEEPER, req.items[0].id, make_record(0))


def test_procurement_cannot_record_deliveries():
    req = make_requisition(Stage.STOREKEEPER)
    with pytest.raises(PermissionDenied):
        add_delivery_record(req, Role.PROCUREMENT, req.items[0].id, make_record(1))


def test_update_record_rederives_status():
    record = make_record(10)
    req = make_requisition(items=[make_item(delivery_records=[record])])
    item_id = req.items[0].id
    updated = update_delivery_record(req, Role.STOREKEEPER, item_id, record.id, {"quantity": 7})
    assert updated.item(item_id).delivery_status == DeliveryStatus.PARTIAL
    assert updated.item(item_id).quantity_received == 7


def test_update_record_over_amount_rejected():
    record = make_record(5)
    req = make_requisition(items=[make_item(delivery_records=[record, make_record(5)])])
    with pytest.raises(ValidationFailed):
        update_delivery_record(req, Role.CEO, req.items[0].id, record.id, {"quantity": 6})


def test_remove_record_back_to_pending():
    record = make_record(10)
    req = make_requisition(items=[make_item(delivery_records=[record])])
    updated = remove_delivery_record(req, Role.STOREKEEPER, req.items[0].id, record.id)
    item = updated.items[0]
    assert item.delivery_records == []
    assert item.delivery_status == DeliveryStatus.PENDING
    assert item.quantity_received == 0


def test_remove_unknown_record():
    req = make_requisition()
    with pytest.raises(NotFound):
        remove_delivery_record(req, Role.STOREKEEPER, req.items[0].id, "missing")


# ---------------------------------------------------------------------------
# update_details
# ---------------------------------------------------------------------------


def test_update_details_comments_and_week():
    req = make_requisition(Stage.TREASURY)
    updated = update_details(
        req, Role.TREASURY, week="2024-03-11",
        comments={Stage.TREASURY: "funds reserved", Stage.PAYMENT: "wire on Friday"},
    )
    assert updated.week == "2024-03-11"
    assert updated.progress(Stage.TREASURY).comments == "funds reserved"
    assert updated.progress(Stage.PAYMENT).comments == "wire on Friday"


def test_comments_need_stage_access():
    with pytest.raises(PermissionDenied):
        update_details(make_requisition(), Role.RESIDENT, comments={Stage.CEO: "hi"})


def test_blank_project_name_rejected():
    with pytest.raises(ValidationFailed):
        update_details(make_requisition(), Role.CEO, project_name=" ")
