"""Initial ledger schema: products, customers, sales, installments, stock reservations

Revision ID: 20241001_initial
Revises:
Create Date: 2024-10-01

This migration adds:
1. Products with stock / reserved counters (non-negative check constraints)
2. Customers (CPF unique when present)
3. Sales, sale lines (frozen price and cost), installments, installment payments
4. Stock reservations and the append-only stock movement log
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20241001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('cost_price_cents', sa.Integer(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock >= 0', name=op.f('ck_products_stock_non_negative')),
        sa.CheckConstraint('reserved >= 0', name=op.f('ck_products_reserved_non_negative')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_active_name', ['is_active', 'name'], unique=False)

    # ==========================================================================
    # 2. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('cpf', sa.String(length=11), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_customers')),
        sa.UniqueConstraint('cpf', name='uq_customers_cpf'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index('ix_customers_name', ['name'], unique=False)

    # ==========================================================================
    # 3. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('sale_type', sa.String(length=16), nullable=False, server_default='direct'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('entry_payment_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('num_installments', sa.Integer(), nullable=True),
        sa.Column('installment_start_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_sales_customer_id_customers')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sales')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sales_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_status'), ['status'], unique=False)
        batch_op.create_index('ix_sales_status_created', ['status', 'created_at'], unique=False)
        batch_op.create_index('ix_sales_method_payment_status', ['payment_method', 'payment_status'], unique=False)

    # ==========================================================================
    # 4. STOCK RESERVATIONS
    # ==========================================================================
    op.create_table('stock_reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('committed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_stock_reservations_product_id_products')),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name=op.f('fk_stock_reservations_sale_id_sales')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_reservations')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_reservations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_reservations_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_reservations_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index('ix_stock_reservations_product_status', ['product_id', 'status'], unique=False)

    # ==========================================================================
    # 5. SALE LINES
    # ==========================================================================
    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('cost_price_at_time_cents', sa.Integer(), nullable=True),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('reservation_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name=op.f('fk_sale_lines_sale_id_sales')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_sale_lines_product_id_products')),
        sa.ForeignKeyConstraint(['reservation_id'], ['stock_reservations.id'], name=op.f('fk_sale_lines_reservation_id_stock_reservations')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sale_lines')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_lines_sale_id'), ['sale_id'], unique=False)

    # ==========================================================================
    # 6. STOCK MOVEMENTS (append-only)
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('reserved_after', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('reservation_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_stock_movements_product_id_products')),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name=op.f('fk_stock_movements_sale_id_sales')),
        sa.ForeignKeyConstraint(['reservation_id'], ['stock_reservations.id'], name=op.f('fk_stock_movements_reservation_id_stock_reservations')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_movements')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_movements_movement_type'), ['movement_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index('ix_stock_movements_product_occurred', ['product_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 7. INSTALLMENTS
    # ==========================================================================
    op.create_table('installments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('installment_number', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('amount_due_cents', sa.Integer(), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name=op.f('fk_installments_sale_id_sales')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_installments')),
        sa.UniqueConstraint('sale_id', 'installment_number', name='uq_installments_sale_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('installments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_installments_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index('ix_installments_status_due', ['status', 'due_date'], unique=False)

    # ==========================================================================
    # 8. INSTALLMENT PAYMENTS
    # ==========================================================================
    op.create_table('installment_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('installment_id', sa.Integer(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['installment_id'], ['installments.id'], name=op.f('fk_installment_payments_installment_id_installments')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_installment_payments')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('installment_payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_installment_payments_installment_id'), ['installment_id'], unique=False)


def downgrade():
    op.drop_table('installment_payments')
    op.drop_table('installments')
    op.drop_table('stock_movements')
    op.drop_table('sale_lines')
    op.drop_table('stock_reservations')
    op.drop_table('sales')
    op.drop_table('customers')
    op.drop_table('products')
