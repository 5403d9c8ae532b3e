"""
Historical store shapes, as deployed by the hand-written SQL revisions.

Each builder returns a fresh MetaData that ``create_all`` turns into that
shape. Constraint names follow PostgreSQL defaults, like the real revisions.
"""

from libs.db.base import NAMING_CONVENTION
from services.store_service.models import IdentityRef
from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    Uuid,
)


def _identity_fk() -> str:
    return f"{IdentityRef.__table__.name}.id"


def _roles(metadata: MetaData) -> Table:
    return Table(
        "roles",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", Text, nullable=False, unique=True),
    )


def integer_key_schema() -> MetaData:
    """First revision: integer keys everywhere except profiles."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
    IdentityRef.__table__.to_metadata(metadata)

    Table(
        "profiles",
        metadata,
        Column(
            "id",
            Uuid,
            ForeignKey(_identity_fk(), ondelete="CASCADE"),
            primary_key=True,
        ),
        Column("full_name", Text),
        Column("role", Text),
    )
    Table(
        "categories",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", Text, nullable=False),
        Column("slug", Text, nullable=False, unique=True),
        Column("description", Text),
    )
    Table(
        "products",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
        Column("name", Text, nullable=False),
        Column("description", Text),
        Column("price", Numeric, nullable=False),
        Column("image_url", Text),
        Column("stock", Integer),
        Column("rating", Numeric(2, 1)),
    )
    Table(
        "orders",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("user_id", Uuid, ForeignKey("profiles.id"), nullable=False),
        Column("total_amount", Numeric, nullable=False),
        Column("status", Text, server_default="pending"),
    )
    Table(
        "order_items",
        metadata,
        Column("id", Integer, primary_key=True),
        Column(
            "order_id",
            Integer,
            ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
        Column("quantity", Integer, nullable=False),
        Column("price", Numeric, nullable=False),
    )
    _roles(metadata)
    return metadata


def uuid_key_schema() -> MetaData:
    """Later revision: UUID keys, but free-text category tags, a single
    image_url, nullable defaults, orders pointing at the identity table and
    no product-name uniqueness."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
    IdentityRef.__table__.to_metadata(metadata)

    Table(
        "profiles",
        metadata,
        Column(
            "id",
            Uuid,
            ForeignKey(_identity_fk(), ondelete="CASCADE"),
            primary_key=True,
        ),
        Column("full_name", Text),
        Column("role", Text, server_default="user"),
    )
    Table(
        "categories",
        metadata,
        Column("id", Uuid, primary_key=True),
        Column("name", Text, nullable=False),
        Column("slug", Text, nullable=False, unique=True),
        Column("description", Text),
    )
    Table(
        "products",
        metadata,
        Column("id", Uuid, primary_key=True),
        Column("name", Text, nullable=False),
        Column("description", Text),
        Column("price", Numeric(10, 2), nullable=False),
        Column("category", Text),
        Column("image_url", Text),
        Column("image_urls", JSON),
        Column("stock", Integer, server_default="0"),
        Column("rating", Numeric(2, 1), server_default="0"),
        Column("category_id", Uuid),
    )
    Table(
        "orders",
        metadata,
        Column("id", Uuid, primary_key=True),
        Column("user_id", Uuid, ForeignKey(_identity_fk()), nullable=False),
        Column("total_amount", Numeric(10, 2), nullable=False),
        Column("status", Text, server_default="pending"),
        Column("shipping_address", Text),
    )
    Table(
        "order_items",
        metadata,
        Column("id", Uuid, primary_key=True),
        Column("order_id", Uuid, ForeignKey("orders.id"), nullable=False),
        Column("product_id", Uuid, ForeignKey("products.id"), nullable=False),
        Column("quantity", Integer, nullable=False),
        Column("price", Numeric(10, 2), nullable=False),
    )
    _roles(metadata)
    return metadata
