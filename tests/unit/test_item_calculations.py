"""
Unit tests for reqflow/services/item_calculations.py

Tests: received totals and derived delivery status, latest delivery date,
       pricing chain with half-up rounding, payment numbers, cache sync.
"""

import re
from datetime import date

import pytest

from reqflow.schemas.enums import DeliveryStatus
from reqflow.schemas.requisition import RequisitionItem
from reqflow.services.item_calculations import (
    compute_pricing,
    delivery_status,
    generate_payment_number,
    latest_delivery_date,
    round2,
    sync_derived_fields,
    total_received,
)
from tests.conftest import make_record


# ---------------------------------------------------------------------------
# delivery aggregates
# ---------------------------------------------------------------------------


def test_total_received_of_nothing_is_zero():
    assert total_received(None) == 0
    assert total_received([]) == 0


def test_two_records_fill_the_order():
    records = [make_record(4), make_record(6, day=2)]
    assert total_received(records) == 10
    assert delivery_status(records, 10) == DeliveryStatus.COMPLETE


def test_single_short_record_is_partial():
    records = [make_record(3)]
    assert total_received(records) == 3
    assert delivery_status(records, 10) == DeliveryStatus.PARTIAL


def test_no_records_is_pending():
    assert delivery_status([], 10) == DeliveryStatus.PENDING


def test_over_receipt_still_counts_as_complete():
    assert delivery_status([make_record(12)], 10) == DeliveryStatus.COMPLETE


def test_latest_delivery_date_is_the_max():
    records = [make_record(1, day=9), make_record(1, day=2), make_record(1, day=15)]
    assert latest_delivery_date(records) == date(2024, 3, 15)


def test_latest_delivery_date_empty():
    assert latest_delivery_date([]) is None


# ---------------------------------------------------------------------------
# pricing
# ---------------------------------------------------------------------------


def test_round2_is_half_up():
    assert round2(2.675) == 2.68
    assert round2(1.005) == 1.01
    assert round2(-1.005) == -1.01


def test_pricing_chain():
    pricing = compute_pricing(price_unit=100, multiplier=1.16, amount=10)
    assert pricing.net_price == 116.0
    assert pricing.subtotal == 1160.0
    assert pricing.total == 1345.6


def test_pricing_rounds_each_step():
    pricing = compute_pricing(price_unit=33.33, multiplier=1.16, amount=3)
    assert pricing.net_price == 38.66
    assert pricing.subtotal == 115.98
    assert pricing.total == 134.54


# ---------------------------------------------------------------------------
# payment numbers
# ---------------------------------------------------------------------------


def test_payment_number_format():
    for _ in range(50):
        assert re.fullmatch(r"PAY-[1-9]\d{4}", generate_payment_number())


# ---------------------------------------------------------------------------
# sync_derived_fields
# ---------------------------------------------------------------------------


def test_sync_sets_delivery_cache_and_record_owner():
    item = RequisitionItem(
        description="Rebar", amount=10, unit="t",
        delivery_records=[make_record(4, day=3), make_record(2, day=7)],
    )
    sync_derived_fields(item)
    assert item.quantity_received == 6
    assert item.delivery_status == DeliveryStatus.PARTIAL
    assert item.delivery_date == date(2024, 3, 7)
    assert all(r.item_id == item.id for r in item.delivery_records)


def test_sync_recomputes_pricing_when_inputs_present():
    item = RequisitionItem(amount=2, price_unit=50, multiplier=1.16, total=1)
    sync_derived_fields(item)
    assert (item.net_price, item.subtotal, item.total) == (58.0, 116.0, 134.56)


def test_sync_zeroes_pricing_when_price_cleared():
    item = RequisitionItem(amount=2, price_unit=50, multiplier=1.16)
    sync_derived_fields(item)
    item.price_unit = 0
    sync_derived_fields(item)
    assert (item.net_price, item.subtotal, item.total) == (0.0, 0.0, 0.0)


def test_sync_resets_status_when_records_removed():
    item = RequisitionItem(amount=5, delivery_records=[make_record(5)])
    sync_derived_fields(item)
    assert item.delivery_status == DeliveryStatus.COMPLETE
    item.delivery_records = []
    sync_derived_fields(item)
    assert item.delivery_status == DeliveryStatus.PENDING
    assert item.quantity_received == 0
    assert item.delivery_date is None


@pytest.mark.parametrize("price,mult,amount", [(100, 1.16, 10), (19.99, 1.16, 7), (0.01, 1.0, 1)])
def test_sync_is_idempotent(price, mult, amount):
    item = RequisitionItem(amount=amount, price_unit=price, multiplier=mult)
    once = sync_derived_fields(item).model_copy(deep=True)
    twice = sync_derived_fields(item)
    assert once == twice
