from enum import Enum


class Stage(str, Enum):
    """Workflow stages, declared in the order a requisition passes through them."""

    RESIDENT = "resident"
    PROCUREMENT = "procurement"
    TREASURY = "treasury"
    CEO = "ceo"
    PAYMENT = "payment"
    STOREKEEPER = "storekeeper"

    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)


# Single source of truth for stage ordering.
STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)


class Role(str, Enum):
    RESIDENT = "resident"
    PROCUREMENT = "procurement"
    TREASURY = "treasury"
    CEO = "ceo"
    PAYMENT = "payment"
    STOREKEEPER = "storekeeper"


class RequisitionStatus(str, Enum):
    DRAFT = "draft"
    PENDING_RESIDENT = "pending-resident"
    PENDING_PROCUREMENT = "pending-procurement"
    PENDING_TREASURY = "pending-treasury"
    PENDING_CEO = "pending-ceo"
    PENDING_PAYMENT = "pending-payment"
    PENDING_STOREKEEPER = "pending-storekeeper"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @classmethod
    def pending(cls, stage: Stage) -> "RequisitionStatus":
        return cls(f"pending-{stage.value}")

    @property
    def is_closed(self) -> bool:
        return self in (RequisitionStatus.COMPLETED, RequisitionStatus.REJECTED)


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIAL = "partial"
    SAVE_FOR_LATER = "Save for Later"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def is_settled(self) -> bool:
        # "paid" and "completed" are synonyms for a finished payment
        return self in (PaymentStatus.PAID, PaymentStatus.COMPLETED)


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETE = "Complete"
    REJECTED = "rejected"


class QualityCheck(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"
    PENDING = "pending"


class DocumentType(str, Enum):
    SUPPLIER_QUOTE = "supplier_quote"
    PURCHASE_ORDER = "purchase_order"
    PAYMENT_RECEIPT = "payment_receipt"
    BANK_STATEMENT = "bank_statement"
    DELIVERY_NOTE = "delivery_note"
    QUALITY_CERTIFICATE = "quality_certificate"
    INVOICE = "invoice"
    OTHER = "other"


STAGE_DOCUMENT_TYPES: dict[Stage, frozenset[DocumentType]] = {
    Stage.RESIDENT: frozenset({DocumentType.SUPPLIER_QUOTE, DocumentType.OTHER}),
    Stage.PROCUREMENT: frozenset({
        DocumentType.SUPPLIER_QUOTE,
        DocumentType.PURCHASE_ORDER,
        DocumentType.OTHER,
    }),
    Stage.TREASURY: frozenset({
        DocumentType.INVOICE,
        DocumentType.BANK_STATEMENT,
        DocumentType.OTHER,
    }),
    Stage.CEO: frozenset({
        DocumentType.SUPPLIER_QUOTE,
        DocumentType.PURCHASE_ORDER,
        DocumentType.INVOICE,
        DocumentType.OTHER,
    }),
    Stage.PAYMENT: frozenset({
        DocumentType.PAYMENT_RECEIPT,
        DocumentType.BANK_STATEMENT,
        DocumentType.INVOICE,
        DocumentType.OTHER,
    }),
    Stage.STOREKEEPER: frozenset({
        DocumentType.DELIVERY_NOTE,
        DocumentType.QUALITY_CERTIFICATE,
        DocumentType.OTHER,
    }),
}
