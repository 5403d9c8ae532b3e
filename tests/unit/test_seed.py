"""Unit tests for the catalog seed loader."""

from decimal import Decimal

import pytest
from libs.db.config import build_sessionmaker
from libs.db.session import session_scope
from services.store_service.errors import (
    Conflict,
    SchemaIntegrityViolation,
    ValidationFailure,
)
from services.store_service.models import AppRole, Category, Product
from services.store_service.seed import (
    CATEGORY_SEED,
    PRODUCT_SEED,
    CategorySeed,
    ProductSeed,
    SeedReport,
    clear_catalog,
    seed_catalog,
    seed_categories,
    seed_products,
)
from sqlalchemy import func, select
from tests.factories import (
    CategoryFactory,
    OrderFactory,
    OrderItemFactory,
    ProductFactory,
)
from tests.legacy_schemas import uuid_key_schema


async def _count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
@pytest.mark.unit
async def test_seed_catalog_is_idempotent(db_session):
    first = await seed_catalog(db_session)

    assert first.inserted == {
        "categories": len(CATEGORY_SEED),
        "products": len(PRODUCT_SEED),
    }
    assert await _count(db_session, Category) == len(CATEGORY_SEED)
    assert await _count(db_session, Product) == len(PRODUCT_SEED)

    second = await seed_catalog(db_session)

    assert second.inserted == {}
    assert second.updated == {}
    assert second.skipped == {
        "categories": len(CATEGORY_SEED),
        "products": len(PRODUCT_SEED),
    }
    assert await _count(db_session, Product) == len(PRODUCT_SEED)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_seeded_products_land_in_their_categories(db_session):
    await seed_catalog(db_session)

    result = await db_session.execute(
        select(Product.name, Category.slug).join(Category, Product.category_id == Category.id)
    )
    placed = dict(result.all())

    for entry in PRODUCT_SEED:
        assert placed[entry.name] == entry.category_slug


@pytest.mark.asyncio
@pytest.mark.unit
async def test_legacy_slug_is_adopted_not_duplicated(db_session):
    db_session.add(CategoryFactory.create(name="Tas", slug="tas-lama", description="Lama"))
    await db_session.commit()

    report = await seed_categories(db_session)
    await db_session.commit()

    assert report.updated["categories"] >= 1
    rows = (
        await db_session.execute(select(Category).where(Category.name == "Tas"))
    ).scalars().all()
    assert len(rows) == 1
    assert rows[0].slug == "tas"
    assert rows[0].description == "Koleksi tas anyaman eceng gondok."


@pytest.mark.asyncio
@pytest.mark.unit
async def test_existing_category_only_refreshes_description(db_session):
    db_session.add(
        CategoryFactory.create(name="Dekorasi", slug="dekorasi", description="Usang")
    )
    await db_session.commit()

    entries = (CategorySeed("Dekorasi Rumah", "dekorasi", "Deskripsi baru."),)
    report = await seed_categories(db_session, entries)
    await db_session.commit()

    assert report.updated == {"categories": 1}
    category = await db_session.scalar(select(Category).where(Category.slug == "dekorasi"))
    # Name is first-writer-wins
    assert category.name == "Dekorasi"
    assert category.description == "Deskripsi baru."


@pytest.mark.asyncio
@pytest.mark.unit
async def test_conflicting_refresh_skips_only_that_row(db_session):
    db_session.add_all(
        [
            CategoryFactory.create(name="Tas", slug="tas"),
            CategoryFactory.create(name="Dekorasi", slug="dekorasi"),
        ]
    )
    await db_session.commit()

    entries = (
        # Renaming "tas" to an existing name violates categories_name_key
        CategorySeed("Dekorasi", "tas", refresh=("name",)),
        CategorySeed("Premium", "premium", "Koleksi eksklusif."),
    )
    report = await seed_categories(db_session, entries)
    await db_session.commit()

    assert report.skipped == {"categories": 1}
    assert report.inserted == {"categories": 1}
    names = set(
        (await db_session.execute(select(Category.slug, Category.name))).all()
    )
    assert names == {("tas", "Tas"), ("dekorasi", "Dekorasi"), ("premium", "Premium")}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_existing_product_is_left_untouched(db_session):
    first = PRODUCT_SEED[0]
    db_session.add(ProductFactory.create(name=first.name, price=Decimal("1.00")))
    await db_session.commit()

    report = await seed_catalog(db_session)

    assert report.skipped["products"] == 1
    assert report.inserted["products"] == len(PRODUCT_SEED) - 1
    product = await db_session.scalar(select(Product).where(Product.name == first.name))
    assert product.price == Decimal("1.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_product_with_unknown_category_is_seeded_uncategorised(db_session):
    entries = (
        ProductSeed(
            name="Produk Tanpa Kategori",
            category_slug="tidak-ada",
            description="Uji.",
            price=Decimal("1000"),
            stock=1,
            rating=Decimal("4.0"),
        ),
    )

    report = await seed_products(db_session, entries, SeedReport())
    await db_session.commit()

    assert report.inserted == {"products": 1}
    product = await db_session.scalar(select(Product))
    assert product.category_id is None
    assert product.image_urls == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_seed_products_requires_name_constraint(reconcile_engine):
    async with reconcile_engine.begin() as conn:
        await conn.run_sync(uuid_key_schema().create_all)

    session = build_sessionmaker(reconcile_engine)()
    try:
        with pytest.raises(SchemaIntegrityViolation, match="products_name_key"):
            await seed_products(session)
    finally:
        await session.close()


# ---------------------------------------------------------------------------
# clear_catalog
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_clear_catalog_requires_confirmation(db_session):
    await seed_catalog(db_session)

    with pytest.raises(ValidationFailure):
        await clear_catalog(db_session)

    assert await _count(db_session, Product) == len(PRODUCT_SEED)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_clear_catalog_refuses_when_products_are_ordered(db_session, make_caller):
    caller = await make_caller(AppRole.USER)
    product = ProductFactory.create()
    order = OrderFactory.create(user_id=caller.identity_id)
    db_session.add_all([product, order])
    await db_session.flush()
    db_session.add(OrderItemFactory.create(order_id=order.id, product_id=product.id))
    await db_session.commit()

    with pytest.raises(Conflict):
        await clear_catalog(db_session, confirm=True)

    assert await _count(db_session, Product) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_clear_catalog_then_reseed(db_session):
    await seed_catalog(db_session)

    removed = await clear_catalog(db_session, confirm=True)

    assert removed == len(PRODUCT_SEED)
    assert await _count(db_session, Product) == 0
    # Categories are reference data and survive
    assert await _count(db_session, Category) == len(CATEGORY_SEED)

    report = await seed_catalog(db_session)
    assert report.inserted == {"products": len(PRODUCT_SEED)}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_script_session_rolls_back_pending_work(test_engine):
    factory = build_sessionmaker(test_engine)

    with pytest.raises(ValidationFailure):
        async with session_scope(factory) as db:
            db.add(CategoryFactory.create(slug="tertunda"))
            await db.flush()
            await clear_catalog(db)

    async with session_scope(factory) as db:
        assert await _count(db, Category) == 0
        report = await seed_catalog(db)
    assert report.inserted["categories"] == len(CATEGORY_SEED)
