"""
Role & permission model: static lookups, no side effects.

Stage access:
  ceo        → every stage
  treasury   → treasury + payment
  any other  → the stage with its own name
"""

from typing import Optional

from reqflow.exceptions import PermissionDenied
from reqflow.schemas.enums import STAGE_ORDER, ApprovalStatus, Role, Stage

RESIDENT_FIELDS = frozenset({"classification", "description", "amount", "unit"})

PROCUREMENT_FIELDS = RESIDENT_FIELDS | frozenset({
    "supplier",
    "supplier_tax_id",
    "price_unit",
    "multiplier",
})

PAYMENT_FIELDS = frozenset({
    "payment_status",
    "payment_date",
    "payment_amount",
    "payment_method",
    "payment_reference",
    "payment_number",
})

DELIVERY_FIELDS = frozenset({
    "delivery_status",
    "delivery_date",
    "quantity_received",
    "quality_check",
    "delivery_notes",
    "delivery_records",
})

CEO_FIELDS = (
    PROCUREMENT_FIELDS
    | PAYMENT_FIELDS
    | DELIVERY_FIELDS
    | frozenset({"approval_status", "ceo_comment", "net_price", "subtotal"})
)

ROLE_EDITABLE_FIELDS: dict[Role, frozenset[str]] = {
    Role.RESIDENT: RESIDENT_FIELDS,
    Role.PROCUREMENT: PROCUREMENT_FIELDS,
    Role.TREASURY: PAYMENT_FIELDS,
    Role.CEO: CEO_FIELDS,
    Role.PAYMENT: PAYMENT_FIELDS,
    Role.STOREKEEPER: DELIVERY_FIELDS,
}

CREATOR_ROLES = frozenset({Role.RESIDENT, Role.PROCUREMENT, Role.CEO})


def can_access_stage(role: Optional[Role], stage: Stage) -> bool:
    if role is None:
        return False
    if role == Role.CEO:
        return True
    if role == Role.TREASURY:
        return stage in (Stage.TREASURY, Stage.PAYMENT)
    return role.value == stage.value


def editable_fields(role: Optional[Role]) -> frozenset[str]:
    if role is None:
        return frozenset()
    return ROLE_EDITABLE_FIELDS[role]


def can_edit_field(role: Optional[Role], field: str) -> bool:
    return field in editable_fields(role)


def can_delete_item(
    role: Optional[Role],
    current_stage: Stage,
    approval_status: Optional[ApprovalStatus] = None,
) -> bool:
    if role is None:
        return False
    if role == Role.RESIDENT:
        return current_stage == Stage.RESIDENT
    if role == Role.CEO:
        return True
    if role in (Role.PROCUREMENT, Role.TREASURY):
        return approval_status != ApprovalStatus.APPROVED
    return False


def can_create_requisition(role: Optional[Role]) -> bool:
    return role in CREATOR_ROLES


def next_stage(stage: Stage) -> Optional[Stage]:
    position = stage.order
    if position + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[position + 1]
    return None


def require_stage_access(role: Optional[Role], stage: Stage) -> None:
    if not can_access_stage(role, stage):
        raise PermissionDenied(
            role=role.value if role else None, action=f"access:{stage.value}"
        )


def require_editable(role: Optional[Role], fields) -> None:
    """Raise PermissionDenied if any of ``fields`` is outside the role's set."""
    allowed = editable_fields(role)
    denied = sorted(f for f in fields if f not in allowed)
    if denied:
        raise PermissionDenied(
            role=role.value if role else None, action=f"edit:{','.join(denied)}"
        )
