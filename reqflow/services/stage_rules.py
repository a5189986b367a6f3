"""Stage completion predicates: does the requisition's data allow closing a stage?"""

from typing import Callable

from reqflow.schemas.enums import ApprovalStatus, DeliveryStatus, Stage
from reqflow.schemas.requisition import Requisition, RequisitionItem

StageRule = Callable[[Requisition], bool]


def _filled(value) -> bool:
    return bool(value and str(value).strip())


def has_basic_fields(item: RequisitionItem) -> bool:
    return (
        _filled(item.description)
        and _filled(item.classification)
        and (item.amount or 0) > 0
        and _filled(item.unit)
    )


def has_procurement_fields(item: RequisitionItem) -> bool:
    # procurement may originate items, so the basic fields apply too
    return (
        has_basic_fields(item)
        and _filled(item.supplier)
        and (item.price_unit or 0) > 0
        and (item.total or 0) > 0
    )


def _resident(requisition: Requisition) -> bool:
    return all(has_basic_fields(item) for item in requisition.items)


def _procurement(requisition: Requisition) -> bool:
    return all(has_procurement_fields(item) for item in requisition.items)


def _always(requisition: Requisition) -> bool:
    return True


def _payment(requisition: Requisition) -> bool:
    return all(
        item.approval_status != ApprovalStatus.APPROVED
        or item.payment_status.is_settled
        for item in requisition.items
    )


def _storekeeper(requisition: Requisition) -> bool:
    return all(
        item.delivery_status == DeliveryStatus.COMPLETE for item in requisition.items
    )


STAGE_COMPLETION_RULES: dict[Stage, StageRule] = {
    Stage.RESIDENT: _resident,
    Stage.PROCUREMENT: _procurement,
    Stage.TREASURY: _always,
    Stage.CEO: _always,
    Stage.PAYMENT: _payment,
    Stage.STOREKEEPER: _storekeeper,
}


def stage_requirements_met(requisition: Requisition, stage: Stage) -> bool:
    return STAGE_COMPLETION_RULES[stage](requisition)
