"""
Requisition persistence adapter.

RequisitionStore        record-level contract against the external store
                        (plain dicts keyed by snake_case column names)
SqlAlchemyRequisitionStore
                        the store on an AsyncSession, upserts via merge()
RequisitionRepository   aggregate load/load_all/save + the mapping layer

save() always rewrites the whole aggregate: requisition row, every item,
every delivery record and document, deleting child rows that are no longer
part of the aggregate. There is no version check, the last writer wins.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Protocol

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from reqflow.database import get_db, session_scope
from reqflow.exceptions import NotFound, PersistenceFailure, ValidationFailed
from reqflow.models.requisition import (
    DeliveryRecordRow,
    DocumentRow,
    RequisitionItemRow,
    RequisitionRow,
)
from reqflow.schemas.enums import Stage
from reqflow.schemas.requisition import (
    DEFAULT_MULTIPLIER,
    DeliveryRecord,
    Document,
    Requisition,
    RequisitionItem,
    StageProgress,
)
from reqflow.services.item_calculations import sync_derived_fields
from reqflow.services.validation_service import delivery_record_errors

logger = structlog.get_logger()

Record = dict[str, Any]

STAGE_COLUMNS: dict[Stage, tuple[str, str]] = {
    Stage.RESIDENT: ("resident_complete", "resident_comments"),
    Stage.PROCUREMENT: ("procurement_complete", "procurement_comments"),
    Stage.TREASURY: ("treasury_complete", "treasury_comments"),
    Stage.CEO: ("ceo_complete", "ceo_comments"),
    Stage.PAYMENT: ("payment_complete", "payment_comments"),
    Stage.STOREKEEPER: ("storekeeper_complete", "storekeeper_comments"),
}

PAYMENT_DETAIL_COLUMNS = (
    "payment_date",
    "payment_amount",
    "payment_method",
    "payment_reference",
    "payment_number",
)


class RequisitionStore(Protocol):
    async def get_requisitions(self) -> list[Record]: ...

    async def get_requisition(self, requisition_id: str) -> Optional[Record]: ...

    async def get_requisition_items(self, requisition_id: str) -> list[Record]: ...

    async def get_delivery_records(self, item_id: str) -> list[Record]: ...

    async def get_documents(self, requisition_id: str) -> list[Record]: ...

    async def upsert_requisition(self, record: Record) -> None: ...

    async def upsert_items(self, records: list[Record]) -> None: ...

    async def delete_items(self, ids: list[str]) -> None: ...

    async def upsert_delivery_records(self, records: list[Record]) -> None: ...

    async def delete_delivery_records(self, ids: list[str]) -> None: ...

    async def upsert_documents(self, records: list[Record]) -> None: ...

    async def delete_documents(self, ids: list[str]) -> None: ...


# ---------- SQLAlchemy store ----------


def _row_to_record(row) -> Record:
    return {c.key: getattr(row, c.key) for c in row.__table__.columns}


class SqlAlchemyRequisitionStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_requisitions(self) -> list[Record]:
        result = await self.session.execute(
            select(RequisitionRow).order_by(RequisitionRow.last_modified.desc())
        )
        return [_row_to_record(r) for r in result.scalars().all()]

    async def get_requisition(self, requisition_id: str) -> Optional[Record]:
        result = await self.session.execute(
            select(RequisitionRow).where(RequisitionRow.id == requisition_id)
        )
        row = result.scalar_one_or_none()
        return _row_to_record(row) if row else None

    async def get_requisition_items(self, requisition_id: str) -> list[Record]:
        result = await self.session.execute(
            select(RequisitionItemRow)
            .where(RequisitionItemRow.requisition_id == requisition_id)
            .order_by(RequisitionItemRow.position)
        )
        return [_row_to_record(r) for r in result.scalars().all()]

    async def get_delivery_records(self, item_id: str) -> list[Record]:
        result = await self.session.execute(
            select(DeliveryRecordRow)
            .where(DeliveryRecordRow.requisition_item_id == item_id)
            .order_by(DeliveryRecordRow.delivery_date)
        )
        return [_row_to_record(r) for r in result.scalars().all()]

    async def get_documents(self, requisition_id: str) -> list[Record]:
        result = await self.session.execute(
            select(DocumentRow)
            .where(DocumentRow.requisition_id == requisition_id)
            .order_by(DocumentRow.uploaded_at)
        )
        return [_row_to_record(r) for r in result.scalars().all()]

    async def upsert_requisition(self, record: Record) -> None:
        await self.session.merge(RequisitionRow(**record))
        await self.session.flush()

    async def upsert_items(self, records: list[Record]) -> None:
        for record in records:
            await self.session.merge(RequisitionItemRow(**record))
        await self.session.flush()

    async def delete_items(self, ids: list[str]) -> None:
        if ids:
            await self.session.execute(
                delete(RequisitionItemRow).where(RequisitionItemRow.id.in_(ids))
            )

    async def upsert_delivery_records(self, records: list[Record]) -> None:
        for record in records:
            await self.session.merge(DeliveryRecordRow(**record))
        await self.session.flush()

    async def delete_delivery_records(self, ids: list[str]) -> None:
        if ids:
            await self.session.execute(
                delete(DeliveryRecordRow).where(DeliveryRecordRow.id.in_(ids))
            )

    async def upsert_documents(self, records: list[Record]) -> None:
        for record in records:
            await self.session.merge(DocumentRow(**record))
        await self.session.flush()

    async def delete_documents(self, ids: list[str]) -> None:
        if ids:
            await self.session.execute(
                delete(DocumentRow).where(DocumentRow.id.in_(ids))
            )


# ---------- mapping layer ----------


def _num(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def requisition_to_record(requisition: Requisition, actor_name: Optional[str]) -> Record:
    record: Record = {
        "id": requisition.id,
        "requisition_number": requisition.requisition_number,
        "status": requisition.status.value,
        "current_stage": requisition.current_stage.value,
        "project_id": requisition.project_id,
        "project_name": requisition.project_name,
        "week": requisition.week,
        "created_at": requisition.created_at,
        "last_modified": requisition.last_modified,
        "created_by": actor_name or requisition.created_by or "Unknown User",
    }
    for stage, (complete_col, comments_col) in STAGE_COLUMNS.items():
        progress = requisition.progress(stage)
        record[complete_col] = progress.complete
        record[comments_col] = progress.comments
    return record


def record_to_requisition(
    record: Record,
    items: list[RequisitionItem],
    documents: list[Document],
) -> Requisition:
    stages = {
        stage: StageProgress(
            complete=bool(record.get(complete_col)),
            comments=record.get(comments_col),
        )
        for stage, (complete_col, comments_col) in STAGE_COLUMNS.items()
    }
    return Requisition(
        id=record["id"],
        requisition_number=record["requisition_number"],
        status=record["status"],
        current_stage=record["current_stage"],
        stages=stages,
        project_name=record["project_name"],
        project_id=record.get("project_id"),
        week=record.get("week"),
        created_at=record["created_at"],
        last_modified=record["last_modified"],
        created_by=record.get("created_by"),
        items=items,
        documents=documents,
    )


def item_to_record(
    item: RequisitionItem,
    requisition_id: str,
    position: int,
    actor_name: Optional[str],
) -> Record:
    record: Record = {
        "id": item.id,
        "requisition_id": requisition_id,
        "position": position,
        "classification": item.classification,
        "description": item.description,
        "amount": item.amount,
        "unit": item.unit,
        "supplier": item.supplier or None,
        "supplier_tax_id": item.supplier_tax_id or None,
        "price_unit": item.price_unit,
        "multiplier": item.multiplier,
        "net_price": item.net_price,
        "subtotal": item.subtotal,
        "total": item.total,
        "approval_status": item.approval_status.value,
        "ceo_comment": item.ceo_comment or None,
        "payment_status": item.payment_status.value,
        "payment_date": item.payment_date,
        "payment_amount": item.payment_amount,
        "payment_method": item.payment_method,
        "payment_reference": item.payment_reference,
        "payment_number": item.payment_number,
        "delivery_status": item.delivery_status.value,
        "delivery_date": item.delivery_date,
        "quantity_received": item.quantity_received or None,
        "quality_check": item.quality_check or None,
        "delivery_notes": item.delivery_notes or None,
        "created_by": actor_name or "Unknown User",
    }
    # payment details are only kept once the payment is settled
    if not item.payment_status.is_settled:
        for column in PAYMENT_DETAIL_COLUMNS:
            record[column] = None
    return record


def record_to_item(record: Record, deliveries: list[DeliveryRecord]) -> RequisitionItem:
    return RequisitionItem(
        id=record["id"],
        requisition_id=record["requisition_id"],
        classification=record.get("classification") or "",
        description=record.get("description") or "",
        amount=_num(record.get("amount")) or 0,
        unit=record.get("unit") or "",
        supplier=record.get("supplier"),
        supplier_tax_id=record.get("supplier_tax_id"),
        price_unit=_num(record.get("price_unit")) or 0,
        multiplier=_num(record.get("multiplier")) or DEFAULT_MULTIPLIER,
        net_price=_num(record.get("net_price")) or 0,
        subtotal=_num(record.get("subtotal")) or 0,
        total=_num(record.get("total")) or 0,
        approval_status=record.get("approval_status") or "pending",
        ceo_comment=record.get("ceo_comment"),
        payment_status=record.get("payment_status") or "pending",
        payment_date=record.get("payment_date"),
        payment_amount=_num(record.get("payment_amount")),
        payment_method=record.get("payment_method"),
        payment_reference=record.get("payment_reference"),
        payment_number=record.get("payment_number"),
        delivery_status=record.get("delivery_status") or "pending",
        delivery_date=record.get("delivery_date"),
        quantity_received=_num(record.get("quantity_received")) or 0,
        quality_check=record.get("quality_check"),
        delivery_notes=record.get("delivery_notes"),
        delivery_records=deliveries,
    )


def delivery_to_record(record: DeliveryRecord, item_id: str) -> Record:
    return {
        "id": record.id,
        "requisition_item_id": item_id,
        "delivery_date": record.delivery_date,
        "quantity": record.quantity,
        "quality_check": record.quality_check.value if record.quality_check else None,
        "received_by": record.received_by,
        "notes": record.notes,
    }


def record_to_delivery(record: Record) -> DeliveryRecord:
    return DeliveryRecord(
        id=record["id"],
        item_id=record["requisition_item_id"],
        delivery_date=record.get("delivery_date"),
        quantity=_num(record.get("quantity")) or 0,
        quality_check=record.get("quality_check"),
        received_by=record.get("received_by") or "",
        notes=record.get("notes"),
    )


def document_to_record(document: Document, requisition_id: str) -> Record:
    return {
        "id": document.id,
        "requisition_id": requisition_id,
        "name": document.file_name,
        "file_type": document.file_type,
        "size": document.file_size,
        "type": document.document_type.value,
        "stage": document.stage.value,
        "uploaded_by": document.uploaded_by.value,
        "uploaded_at": document.uploaded_at,
        "bucket_id": document.bucket,
        "file_path": document.path,
        "url": document.url,
    }


def record_to_document(record: Record) -> Document:
    return Document(
        id=record["id"],
        requisition_id=record["requisition_id"],
        file_name=record["name"],
        file_type=record["file_type"],
        file_size=record["size"],
        document_type=record["type"],
        stage=record["stage"],
        uploaded_by=record["uploaded_by"],
        uploaded_at=record["uploaded_at"],
        bucket=record.get("bucket_id") or "documents",
        path=record.get("file_path") or "",
        url=record.get("url"),
    )


# ---------- aggregate repository ----------


class RequisitionRepository:
    def __init__(self, store: RequisitionStore):
        self.store = store

    async def load(self, requisition_id: str) -> Requisition:
        try:
            record = await self.store.get_requisition(requisition_id)
            if record is None:
                raise NotFound("Requisition", requisition_id)
            return await self._assemble(record)
        except NotFound:
            raise
        except Exception as e:
            logger.error(
                "requisition_load_failed", requisition_id=requisition_id, error=str(e)
            )
            raise PersistenceFailure("load_requisition", cause=e, verb="load") from e

    async def load_all(self) -> list[Requisition]:
        try:
            records = await self.store.get_requisitions()
            return [await self._assemble(r) for r in records]
        except Exception as e:
            logger.error("requisition_list_failed", error=str(e))
            raise PersistenceFailure("load_requisitions", cause=e, verb="load") from e

    async def _assemble(self, record: Record) -> Requisition:
        items = []
        for item_record in await self.store.get_requisition_items(record["id"]):
            deliveries = [
                record_to_delivery(d)
                for d in await self.store.get_delivery_records(item_record["id"])
            ]
            items.append(record_to_item(item_record, deliveries))
        documents = [
            record_to_document(d) for d in await self.store.get_documents(record["id"])
        ]
        return record_to_requisition(record, items, documents)

    async def save(
        self,
        requisition: Requisition,
        actor_name: Optional[str] = None,
        operation: str = "save_requisition",
    ) -> Requisition:
        """Upsert the full aggregate. Returns the persisted copy."""
        persisted = requisition.model_copy(deep=True)
        persisted.last_modified = datetime.now(timezone.utc)
        for item in persisted.items:
            item.requisition_id = persisted.id
            sync_derived_fields(item)

        errors = []
        for item in persisted.items:
            errors.extend(delivery_record_errors(item.delivery_records))
        if errors:
            raise ValidationFailed(sorted(set(errors)))

        try:
            await self._write(persisted, actor_name)
        except Exception as e:
            logger.error(
                "requisition_save_failed",
                requisition_id=persisted.id,
                operation=operation,
                error=str(e),
            )
            raise PersistenceFailure(operation, cause=e) from e

        logger.info(
            "requisition_saved",
            requisition_id=persisted.id,
            operation=operation,
            items=len(persisted.items),
            actor=actor_name,
        )
        return persisted

    async def _write(self, requisition: Requisition, actor_name: Optional[str]) -> None:
        store = self.store
        await store.upsert_requisition(requisition_to_record(requisition, actor_name))

        existing_items = await store.get_requisition_items(requisition.id)
        kept_items = {item.id for item in requisition.items}
        await store.delete_items(
            [r["id"] for r in existing_items if r["id"] not in kept_items]
        )
        await store.upsert_items([
            item_to_record(item, requisition.id, position, actor_name)
            for position, item in enumerate(requisition.items)
        ])

        for item in requisition.items:
            existing = await store.get_delivery_records(item.id)
            kept = {r.id for r in item.delivery_records}
            removed = [r["id"] for r in existing if r["id"] not in kept]
            if removed:
                await store.delete_delivery_records(removed)
            if item.delivery_records:
                await store.upsert_delivery_records(
                    [delivery_to_record(r, item.id) for r in item.delivery_records]
                )

        existing_docs = await store.get_documents(requisition.id)
        kept_docs = {doc.id for doc in requisition.documents}
        removed_docs = [d["id"] for d in existing_docs if d["id"] not in kept_docs]
        if removed_docs:
            await store.delete_documents(removed_docs)
        if requisition.documents:
            await store.upsert_documents(
                [document_to_record(d, requisition.id) for d in requisition.documents]
            )


@asynccontextmanager
async def open_repository():
    """Repository on its own session, committed on exit."""
    async with session_scope() as session:
        yield RequisitionRepository(SqlAlchemyRequisitionStore(session))


# ---------- FastAPI dependencies ----------


async def get_repository(
    db: AsyncSession = Depends(get_db),
) -> RequisitionRepository:
    return RequisitionRepository(SqlAlchemyRequisitionStore(db))


def get_repository_factory():
    """For work that outlives the request (autosave): opens its own session."""
    return open_repository
