"""SQLAlchemy database models."""

from datetime import datetime
from typing import List

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    DECIMAL,
    TIMESTAMP,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from giftmatch.core.embeddings import EMBEDDING_DIMENSIONS


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class Product(Base):
    """Catalog product with an embedding for vector search.

    Embeddings are generated from title + description + category with
    OpenAI text-embedding-3-small (1536 dimensions).
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vendor_id: Mapped[int | None] = mapped_column(ForeignKey("vendors.id"), nullable=True, index=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(DECIMAL(10, 2), nullable=False, default=0, index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[List[str] | None] = mapped_column(ARRAY(Text), nullable=True)
    attributes: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    embedding: Mapped[List[float] | None] = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    vendor: Mapped[Vendor | None] = relationship(lazy="joined")
    category: Mapped[Category | None] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Product(id='{self.id}', title='{self.title}')>"


class ProductFacet(Base):
    """Read-time scoring facet, e.g. (interest, gardening, 0.9, rules)."""

    __tablename__ = "product_facets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    facet_key: Mapped[str] = mapped_column(String(50), nullable=False)
    facet_value: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="rules")

    __table_args__ = (
        UniqueConstraint("product_id", "facet_key", "facet_value", name="uq_product_facet"),
    )


class Event(Base):
    """Product interaction event (product_view, product_click, ...). Feeds trending."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=func.now(), index=True
    )


class RecipientPreference(Base):
    """Category a recipient ("user" or "user:recipient") is known to like."""

    __tablename__ = "recipient_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipient_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("recipient_id", "category", name="uq_recipient_category"),
    )
