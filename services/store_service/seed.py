"""Catalog seed loader.

Seeds the reference categories and sample products. Safe to run any number
of times: categories upsert by slug and products by name, so a second run
inserts nothing.

Usage:
    python -m scripts.seed.catalog
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from libs.common.logging import get_logger
from services.store_service.errors import (
    Conflict,
    SchemaIntegrityViolation,
    ValidationFailure,
)
from services.store_service.models import Category, OrderItem, Product
from sqlalchemy import delete, func, inspect, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

PRODUCT_NAME_CONSTRAINT = "products_name_key"


@dataclass(frozen=True)
class CategorySeed:
    name: str
    slug: str
    description: Optional[str] = None
    # Fields overwritten on existing rows; everything else is first-writer-wins
    refresh: tuple[str, ...] = ("description",)


@dataclass(frozen=True)
class ProductSeed:
    name: str
    category_slug: str
    description: str
    price: Decimal
    stock: int
    rating: Decimal
    image_urls: tuple[str, ...] = ()


def _placeholder(color: str, label: str) -> str:
    return f"https://placehold.co/300x300/{color}/ffffff?text={label}"


CATEGORY_SEED: tuple[CategorySeed, ...] = (
    CategorySeed("Tas", "tas", "Koleksi tas anyaman eceng gondok."),
    CategorySeed("Dekorasi", "dekorasi", "Hiasan rumah yang natural dan estetik."),
    CategorySeed("Aksesori Rumah", "aksesori-rumah", "Perlengkapan rumah fungsional."),
    CategorySeed("Premium", "premium", "Koleksi eksklusif dengan detail premium."),
)

PRODUCT_SEED: tuple[ProductSeed, ...] = (
    ProductSeed(
        name="Tas Tote Premium",
        category_slug="tas",
        description="Tas anyaman eceng gondok dengan handle kulit asli.",
        price=Decimal("180000"),
        stock=20,
        rating=Decimal("4.8"),
        image_urls=(_placeholder("8ea071", "Tas+Tote"),),
    ),
    ProductSeed(
        name="Alas Meja Natural",
        category_slug="aksesori-rumah",
        description="Alas meja bundar untuk sentuhan alami di ruang makan.",
        price=Decimal("95000"),
        stock=35,
        rating=Decimal("4.5"),
        image_urls=(_placeholder("b4a47e", "Alas+Meja"),),
    ),
    ProductSeed(
        name="Hiasan Dinding Mandala",
        category_slug="dekorasi",
        description="Hiasan dinding besar dengan pola mandala yang rumit.",
        price=Decimal("125000"),
        stock=15,
        rating=Decimal("4.7"),
        image_urls=(_placeholder("a08d63", "Hiasan+Dinding"),),
    ),
    ProductSeed(
        name="Tempat Pensil Minimalis",
        category_slug="aksesori-rumah",
        description="Tempat pensil elegan untuk meja kerja Anda.",
        price=Decimal("45000"),
        stock=50,
        rating=Decimal("4.3"),
        image_urls=(_placeholder("708158", "Tempat+Pensil"),),
    ),
    ProductSeed(
        name="Keranjang Multifungsi",
        category_slug="aksesori-rumah",
        description="Keranjang serbaguna untuk penyimpanan mainan atau laundry.",
        price=Decimal("110000"),
        stock=25,
        rating=Decimal("4.6"),
        image_urls=(_placeholder("c8bea2", "Keranjang"),),
    ),
    ProductSeed(
        name="Clutch Pesta Elegan",
        category_slug="premium",
        description="Clutch malam yang mewah dan ramah lingkungan.",
        price=Decimal("250000"),
        stock=10,
        rating=Decimal("4.9"),
        image_urls=(_placeholder("f59e0b", "Clutch"),),
    ),
)


@dataclass
class SeedReport:
    inserted: dict[str, int] = field(default_factory=dict)
    updated: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)

    def bump(self, bucket: str, table: str) -> None:
        counts = getattr(self, bucket)
        counts[table] = counts.get(table, 0) + 1


# ============================================================================
# CATEGORIES
# ============================================================================


async def seed_categories(
    db: AsyncSession,
    entries: tuple[CategorySeed, ...] = CATEGORY_SEED,
    report: Optional[SeedReport] = None,
) -> SeedReport:
    """Upsert categories keyed by slug.

    A legacy row with the same name under another slug is adopted: its slug
    is refreshed rather than inserting a duplicate name.
    """
    report = report or SeedReport()
    for entry in entries:
        result = await db.execute(
            select(Category).where(
                or_(Category.slug == entry.slug, Category.name == entry.name)
            )
        )
        matches = result.scalars().all()
        existing = next((c for c in matches if c.slug == entry.slug), None)
        if existing is None and matches:
            existing = matches[0]

        try:
            async with db.begin_nested():
                if existing is None:
                    db.add(
                        Category(
                            name=entry.name,
                            slug=entry.slug,
                            description=entry.description,
                        )
                    )
                    await db.flush()
                    report.bump("inserted", "categories")
                    continue

                refresh = set(entry.refresh)
                if existing.slug != entry.slug:
                    refresh.add("slug")
                changed = False
                for attr in sorted(refresh):
                    value = getattr(entry, attr)
                    if getattr(existing, attr) != value:
                        setattr(existing, attr, value)
                        changed = True
                await db.flush()
                report.bump("updated" if changed else "skipped", "categories")
        except IntegrityError as exc:
            logger.warning("Skipping category %r: %s", entry.slug, exc.orig)
            report.bump("skipped", "categories")
    return report


# ============================================================================
# PRODUCTS
# ============================================================================


async def _unique_names(db: AsyncSession, table_name: str) -> set[str]:
    def _collect(sync_conn) -> set[str]:
        insp = inspect(sync_conn)
        names = {uc["name"] for uc in insp.get_unique_constraints(table_name)}
        names.update(ix["name"] for ix in insp.get_indexes(table_name) if ix["unique"])
        return names

    conn = await db.connection()
    return await conn.run_sync(_collect)


async def seed_products(
    db: AsyncSession,
    entries: tuple[ProductSeed, ...] = PRODUCT_SEED,
    report: Optional[SeedReport] = None,
) -> SeedReport:
    """Insert products that do not exist yet (keyed by name)."""
    report = report or SeedReport()
    if PRODUCT_NAME_CONSTRAINT not in await _unique_names(db, "products"):
        raise SchemaIntegrityViolation(
            f"Unique constraint {PRODUCT_NAME_CONSTRAINT} is missing; "
            "run the schema reconciler before seeding products"
        )

    result = await db.execute(select(Category.slug, Category.id))
    category_ids = dict(result.all())

    for entry in entries:
        exists = await db.execute(select(Product.id).where(Product.name == entry.name))
        if exists.scalar_one_or_none() is not None:
            report.bump("skipped", "products")
            continue

        category_id = category_ids.get(entry.category_slug)
        if category_id is None:
            logger.warning(
                "Product %r references unknown category %r; seeding uncategorised",
                entry.name,
                entry.category_slug,
            )
        try:
            async with db.begin_nested():
                db.add(
                    Product(
                        name=entry.name,
                        category_id=category_id,
                        description=entry.description,
                        price=entry.price,
                        stock=entry.stock,
                        rating=entry.rating,
                        image_urls=list(entry.image_urls),
                    )
                )
                await db.flush()
            report.bump("inserted", "products")
        except IntegrityError as exc:
            logger.warning("Skipping product %r: %s", entry.name, exc.orig)
            report.bump("skipped", "products")
    return report


# ============================================================================
# ENTRY POINTS
# ============================================================================


async def seed_catalog(db: AsyncSession) -> SeedReport:
    """Seed categories, then products, and commit."""
    report = SeedReport()
    await seed_categories(db, report=report)
    await seed_products(db, report=report)
    await db.commit()
    logger.info(
        "Catalog seeded: inserted=%s updated=%s skipped=%s",
        report.inserted,
        report.updated,
        report.skipped,
    )
    return report


async def clear_catalog(db: AsyncSession, confirm: bool = False) -> int:
    """Delete every product. Destructive; requires ``confirm=True``."""
    if not confirm:
        raise ValidationFailure("Refusing to clear the catalog without confirm=True")

    referenced = await db.execute(select(func.count()).select_from(OrderItem))
    if referenced.scalar_one():
        raise Conflict("Products are referenced by order items and cannot be cleared")

    result = await db.execute(delete(Product))
    await db.commit()
    logger.warning("Cleared %d products from the catalog", result.rowcount)
    return result.rowcount
