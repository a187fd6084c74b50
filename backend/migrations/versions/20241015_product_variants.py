"""Product variants: stock per color/size

Revision ID: 20241015_variants
Revises: 20241001_initial
Create Date: 2024-10-15

This migration adds:
1. product_variants with their own stock / reserved counters
2. variant_id on stock reservations, stock movements and sale lines
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20241015_variants'
down_revision = '20241001_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('color', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('size', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock >= 0', name=op.f('ck_product_variants_stock_non_negative')),
        sa.CheckConstraint('reserved >= 0', name=op.f('ck_product_variants_reserved_non_negative')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_product_variants_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_product_variants')),
        sa.UniqueConstraint('product_id', 'color', 'size', name='uq_product_variants_product_color_size'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_variants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_variants_product_id'), ['product_id'], unique=False)

    for table in ('stock_reservations', 'stock_movements', 'sale_lines'):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.add_column(sa.Column('variant_id', sa.Integer(), nullable=True))
            batch_op.create_foreign_key(
                batch_op.f(f'fk_{table}_variant_id_product_variants'),
                'product_variants',
                ['variant_id'],
                ['id'],
            )


def downgrade():
    for table in ('sale_lines', 'stock_movements', 'stock_reservations'):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.drop_constraint(batch_op.f(f'fk_{table}_variant_id_product_variants'), type_='foreignkey')
            batch_op.drop_column('variant_id')

    with op.batch_alter_table('product_variants', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_product_variants_product_id'))

    op.drop_table('product_variants')
