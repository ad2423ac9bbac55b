"""Initial migration: catalog, facets, events and recipient preferences

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create catalog tables with pgvector and full-text search support."""

    # Enable pgvector extension
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    # Create products table
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('vendors.id'), nullable=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.DECIMAL(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('product_url', sa.Text(), nullable=True),
        sa.Column('tags', postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column('attributes', postgresql.JSONB(), nullable=True),
        sa.Column('embedding', Vector(1536), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Create indexes for products table
    op.create_index('idx_products_vendor_id', 'products', ['vendor_id'])
    op.create_index('idx_products_category_id', 'products', ['category_id'])
    op.create_index('idx_products_price', 'products', ['price'])
    op.execute(
        'CREATE INDEX idx_products_embedding ON products USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100)'
    )
    op.execute(
        "CREATE INDEX idx_products_fts ON products USING gin "
        "(to_tsvector('english', title || ' ' || coalesce(description, '')))"
    )

    # Create product_facets table
    op.create_table(
        'product_facets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('product_id', sa.String(length=64),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('facet_key', sa.String(length=50), nullable=False),
        sa.Column('facet_value', sa.Text(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='rules'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'facet_key', 'facet_value', name='uq_product_facet'),
    )
    op.create_index('idx_product_facets_product_id', 'product_facets', ['product_id'])
    op.create_index('idx_product_facets_key_value', 'product_facets', ['facet_key', 'facet_value'])

    # Create events table
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_events_product_id', 'events', ['product_id'])
    op.create_index('idx_events_created_at', 'events', ['created_at'])

    # Create recipient_preferences table
    op.create_table(
        'recipient_preferences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('recipient_id', sa.String(length=255), nullable=False),
        sa.Column('category', sa.Text(), nullable=False),
        sa.Column('weight', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('recipient_id', 'category', name='uq_recipient_category'),
    )
    op.create_index('idx_recipient_preferences_recipient_id', 'recipient_preferences', ['recipient_id'])


def downgrade() -> None:
    """Drop all catalog tables."""
    op.drop_index('idx_recipient_preferences_recipient_id', table_name='recipient_preferences')
    op.drop_table('recipient_preferences')

    op.drop_index('idx_events_created_at', table_name='events')
    op.drop_index('idx_events_product_id', table_name='events')
    op.drop_table('events')

    op.drop_index('idx_product_facets_key_value', table_name='product_facets')
    op.drop_index('idx_product_facets_product_id', table_name='product_facets')
    op.drop_table('product_facets')

    op.execute('DROP INDEX IF EXISTS idx_products_fts')
    op.execute('DROP INDEX IF EXISTS idx_products_embedding')
    op.drop_index('idx_products_price', table_name='products')
    op.drop_index('idx_products_category_id', table_name='products')
    op.drop_index('idx_products_vendor_id', table_name='products')
    op.drop_table('products')

    op.drop_table('categories')
    op.drop_table('vendors')
