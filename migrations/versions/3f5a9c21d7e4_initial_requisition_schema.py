"""initial_requisition_schema

Revision ID: 3f5a9c21d7e4
Revises:
Create Date: 2026-10-18 09:12:44.518203+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f5a9c21d7e4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STAGES = ('resident', 'procurement', 'treasury', 'ceo', 'payment', 'storekeeper')


def upgrade() -> None:
    # 1. requisitions (no FKs)
    op.create_table('requisitions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('requisition_number', sa.String(length=50), nullable=False),
    sa.Column('status', sa.String(length=32), nullable=False, server_default='draft'),
    sa.Column('current_stage', sa.String(length=20), nullable=False, server_default='resident'),
    sa.Column('project_id', sa.String(length=64), nullable=True),
    sa.Column('project_name', sa.String(length=255), nullable=False),
    sa.Column('week', sa.String(length=32), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_modified', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_by', sa.String(length=255), nullable=True),
    *[sa.Column(f'{s}_complete', sa.Boolean(), nullable=False, server_default=sa.false()) for s in STAGES],
    *[sa.Column(f'{s}_comments', sa.Text(), nullable=True) for s in STAGES],
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_requisitions_status', 'requisitions', ['status'], unique=False)
    op.create_index('idx_requisitions_stage', 'requisitions', ['current_stage'], unique=False)

    # 2. requisition_items (FK to requisitions)
    op.create_table('requisition_items',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('requisition_id', sa.String(length=36), nullable=False),
    sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('classification', sa.String(length=255), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('amount', sa.Numeric(precision=14, scale=3), nullable=False, server_default='0'),
    sa.Column('unit', sa.String(length=32), nullable=True),
    sa.Column('supplier', sa.String(length=255), nullable=True),
    sa.Column('supplier_tax_id', sa.String(length=32), nullable=True),
    sa.Column('price_unit', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('multiplier', sa.Numeric(precision=6, scale=4), nullable=False, server_default='1.16'),
    sa.Column('net_price', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('subtotal', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('total', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('approval_status', sa.String(length=20), nullable=False, server_default='pending'),
    sa.Column('ceo_comment', sa.Text(), nullable=True),
    sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending'),
    sa.Column('payment_date', sa.Date(), nullable=True),
    sa.Column('payment_amount', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('payment_method', sa.String(length=64), nullable=True),
    sa.Column('payment_reference', sa.String(length=128), nullable=True),
    sa.Column('payment_number', sa.String(length=16), nullable=True),
    sa.Column('delivery_status', sa.String(length=20), nullable=False, server_default='pending'),
    sa.Column('delivery_date', sa.Date(), nullable=True),
    sa.Column('quantity_received', sa.Numeric(precision=14, scale=3), nullable=True),
    sa.Column('quality_check', sa.String(length=20), nullable=True),
    sa.Column('delivery_notes', sa.Text(), nullable=True),
    sa.Column('created_by', sa.String(length=255), nullable=True),
    sa.CheckConstraint("approval_status IN ('pending','approved','rejected','partial','Save for Later')", name='chk_item_approval_status'),
    sa.CheckConstraint("payment_status IN ('pending','paid','rejected','completed')", name='chk_item_payment_status'),
    sa.ForeignKeyConstraint(['requisition_id'], ['requisitions.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_requisition_items_requisition', 'requisition_items', ['requisition_id'], unique=False)

    # 3. delivery_records (FK to requisition_items)
    op.create_table('delivery_records',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('requisition_item_id', sa.String(length=36), nullable=False),
    sa.Column('delivery_date', sa.Date(), nullable=False),
    sa.Column('quantity', sa.Numeric(precision=14, scale=3), nullable=False),
    sa.Column('quality_check', sa.String(length=20), nullable=False),
    sa.Column('received_by', sa.String(length=255), nullable=False),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.CheckConstraint('quantity > 0', name='chk_delivery_record_qty'),
    sa.CheckConstraint("quality_check IN ('passed','failed','partial','pending')", name='chk_delivery_record_quality'),
    sa.ForeignKeyConstraint(['requisition_item_id'], ['requisition_items.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_delivery_records_item', 'delivery_records', ['requisition_item_id'], unique=False)

    # 4. documents (FK to requisitions)
    op.create_table('documents',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('requisition_id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('file_type', sa.String(length=127), nullable=False),
    sa.Column('size', sa.BigInteger(), nullable=False),
    sa.Column('type', sa.String(length=32), nullable=False),
    sa.Column('stage', sa.String(length=20), nullable=False),
    sa.Column('uploaded_by', sa.String(length=20), nullable=False),
    sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('bucket_id', sa.String(length=63), nullable=False, server_default='documents'),
    sa.Column('file_path', sa.String(length=512), nullable=False),
    sa.Column('url', sa.Text(), nullable=True),
    sa.ForeignKeyConstraint(['requisition_id'], ['requisitions.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_documents_requisition', 'documents', ['requisition_id'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_documents_requisition', table_name='documents')
    op.drop_table('documents')
    op.drop_index('idx_delivery_records_item', table_name='delivery_records')
    op.drop_table('delivery_records')
    op.drop_index('idx_requisition_items_requisition', table_name='requisition_items')
    op.drop_table('requisition_items')
    op.drop_index('idx_requisitions_stage', table_name='requisitions')
    op.drop_index('idx_requisitions_status', table_name='requisitions')
    op.drop_table('requisitions')
