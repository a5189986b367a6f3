from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    Boolean,
    DateTime,
    Date,
    Numeric,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from reqflow.database import Base


class RequisitionRow(Base):
    __tablename__ = "requisitions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    requisition_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="draft")
    current_stage: Mapped[str] = mapped_column(String(20), default="resident")
    project_id: Mapped[Optional[str]] = mapped_column(String(64))
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    week: Mapped[Optional[str]] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    last_modified: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[str]] = mapped_column(String(255))

    resident_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    procurement_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    treasury_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    ceo_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    payment_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    storekeeper_complete: Mapped[bool] = mapped_column(Boolean, default=False)

    resident_comments: Mapped[Optional[str]] = mapped_column(Text)
    procurement_comments: Mapped[Optional[str]] = mapped_column(Text)
    treasury_comments: Mapped[Optional[str]] = mapped_column(Text)
    ceo_comments: Mapped[Optional[str]] = mapped_column(Text)
    payment_comments: Mapped[Optional[str]] = mapped_column(Text)
    storekeeper_comments: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_requisitions_status", "status"),
        Index("idx_requisitions_stage", "current_stage"),
    )


class RequisitionItemRow(Base):
    __tablename__ = "requisition_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    requisition_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    classification: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 3), default=0)
    unit: Mapped[Optional[str]] = mapped_column(String(32))

    supplier: Mapped[Optional[str]] = mapped_column(String(255))
    supplier_tax_id: Mapped[Optional[str]] = mapped_column(String(32))
    price_unit: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 4), default=Decimal("1.16"))
    net_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    subtotal: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    total: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))

    approval_status: Mapped[str] = mapped_column(String(20), default="pending")
    ceo_comment: Mapped[Optional[str]] = mapped_column(Text)

    payment_status: Mapped[str] = mapped_column(String(20), default="pending")
    payment_date: Mapped[Optional[date]] = mapped_column(Date)
    payment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    payment_method: Mapped[Optional[str]] = mapped_column(String(64))
    payment_reference: Mapped[Optional[str]] = mapped_column(String(128))
    payment_number: Mapped[Optional[str]] = mapped_column(String(16))

    delivery_status: Mapped[str] = mapped_column(String(20), default="pending")
    delivery_date: Mapped[Optional[date]] = mapped_column(Date)
    quantity_received: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 3))
    quality_check: Mapped[Optional[str]] = mapped_column(String(20))
    delivery_notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[str]] = mapped_column(String(255))

    __table_args__ = (
        CheckConstraint(
            "approval_status IN ('pending','approved','rejected','partial','Save for Later')",
            name="chk_item_approval_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending','paid','rejected','completed')",
            name="chk_item_payment_status",
        ),
        Index("idx_requisition_items_requisition", "requisition_id"),
    )


class DeliveryRecordRow(Base):
    __tablename__ = "delivery_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    requisition_item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("requisition_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    quality_check: Mapped[str] = mapped_column(String(20), nullable=False)
    received_by: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_delivery_record_qty"),
        CheckConstraint(
            "quality_check IN ('passed','failed','partial','pending')",
            name="chk_delivery_record_quality",
        ),
        Index("idx_delivery_records_item", "requisition_item_id"),
    )


class DocumentRow(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    requisition_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(127), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    stage: Mapped[str] = mapped_column(String(20), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(20), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    bucket_id: Mapped[str] = mapped_column(String(63), default="documents")
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    url: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_documents_requisition", "requisition_id"),
    )
