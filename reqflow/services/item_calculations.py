"""
Item sub-state calculators.

Delivery:
  total_received  = Σ record.quantity
  delivery_status = pending  if total_received == 0
                    Complete if total_received >= ordered amount
                    partial  otherwise

Pricing (all values rounded half-up to 2 decimals):
  net_price = price_unit × multiplier
  subtotal  = net_price × amount
  total     = subtotal × multiplier

The derived values are cached on the item; ``sync_derived_fields`` must run
after every mutation so the cache always equals a fresh recomputation.
"""

import random
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from reqflow.schemas.enums import DeliveryStatus
from reqflow.schemas.requisition import DeliveryRecord, RequisitionItem

PAYMENT_NUMBER_PREFIX = "PAY"

_CENT = Decimal("0.01")


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def total_received(records: Optional[Iterable[DeliveryRecord]]) -> float:
    if not records:
        return 0
    return sum(r.quantity or 0 for r in records)


def delivery_status(
    records: Optional[Iterable[DeliveryRecord]], target: float
) -> DeliveryStatus:
    received = total_received(records)
    if received == 0:
        return DeliveryStatus.PENDING
    if received >= target:
        return DeliveryStatus.COMPLETE
    return DeliveryStatus.PARTIAL


def latest_delivery_date(
    records: Optional[Iterable[DeliveryRecord]],
) -> Optional[date]:
    dates = [r.delivery_date for r in records or [] if r.delivery_date]
    return max(dates) if dates else None


@dataclass(frozen=True)
class ItemPricing:
    net_price: float
    subtotal: float
    total: float


def compute_pricing(price_unit: float, multiplier: float, amount: float) -> ItemPricing:
    net_price = round2(price_unit * multiplier)
    subtotal = round2(net_price * amount)
    total = round2(subtotal * multiplier)
    return ItemPricing(net_price=net_price, subtotal=subtotal, total=total)


def generate_payment_number() -> str:
    return f"{PAYMENT_NUMBER_PREFIX}-{random.randint(10000, 99999)}"


def sync_derived_fields(item: RequisitionItem) -> RequisitionItem:
    """Recompute pricing and delivery caches on ``item`` in place."""
    pricing = compute_pricing(item.price_unit, item.multiplier, item.amount)
    item.net_price = pricing.net_price
    item.subtotal = pricing.subtotal
    item.total = pricing.total

    for record in item.delivery_records:
        record.item_id = item.id
    item.quantity_received = total_received(item.delivery_records)
    item.delivery_status = delivery_status(item.delivery_records, item.amount)
    item.delivery_date = latest_delivery_date(item.delivery_records)
    return item
