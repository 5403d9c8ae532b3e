"""Integration tests for the store HTTP surface."""

import uuid
from decimal import Decimal

import pytest
from libs.auth.models import AuthUser
from services.store_service.models import AppRole
from tests.factories import (
    CategoryFactory,
    OrderFactory,
    OrderItemFactory,
    ProductFactory,
)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "store"}
    assert response.headers.get("X-Request-ID")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_public_catalog(client, db_session):
    category = CategoryFactory.create(name="Tas", slug="tas")
    product = ProductFactory.create(category_id=category.id, name="Tas Tote")
    db_session.add_all([category, product, ProductFactory.create(name="Lainnya")])
    await db_session.commit()

    categories = await client.get("/store/categories")
    assert categories.status_code == 200
    assert [c["slug"] for c in categories.json()] == ["tas"]

    in_category = await client.get("/store/products", params={"category": "tas"})
    assert [p["name"] for p in in_category.json()] == ["Tas Tote"]

    everything = await client.get("/store/products")
    assert len(everything.json()) == 2

    detail = await client.get(f"/store/products/{product.id}")
    assert detail.status_code == 200
    assert detail.json()["category_id"] == str(category.id)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_category_slug_lists_nothing(client, db_session):
    db_session.add(ProductFactory.create())
    await db_session.commit()

    response = await client.get("/store/products", params={"category": "tidak-ada"})

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_product_is_404(client):
    response = await client.get(f"/store/products/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_category_management_is_admin_only(client, make_caller, login):
    payload = {"name": "Premium", "slug": "premium", "description": "Eksklusif."}

    anonymous = await client.post("/admin/store/categories", json=payload)
    assert anonymous.status_code == 401

    login(await make_caller(AppRole.USER))
    user = await client.post("/admin/store/categories", json=payload)
    assert user.status_code == 403
    assert user.json()["error"] == "Forbidden"

    login(await make_caller(AppRole.ADMIN))
    created = await client.post("/admin/store/categories", json=payload)
    assert created.status_code == 201
    assert created.json()["slug"] == "premium"

    duplicate = await client.post("/admin/store/categories", json=payload)
    assert duplicate.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_product_validation(client, make_caller, login):
    login(await make_caller(AppRole.ADMIN))

    response = await client.post(
        "/admin/store/products",
        json={"name": "Tas Aneh", "price": "10000", "rating": "7.5"},
    )
    assert response.status_code == 422

    response = await client.post(
        "/admin/store/products", json={"name": "Tas Murah", "price": "-1"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_null_for_required_product_field_is_422(client, db_session, make_caller, login):
    product = ProductFactory.create()
    db_session.add(product)
    await db_session.commit()

    login(await make_caller(AppRole.ADMIN))
    response = await client.patch(
        f"/admin/store/products/{product.id}", json={"price": None}
    )

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationFailure"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_public_catalog_ignores_unresolvable_token(client, db_session, auth_state):
    db_session.add(ProductFactory.create(name="Tas Tote"))
    await db_session.commit()

    auth_state["user"] = AuthUser(user_id="bukan-uuid")
    garbled = await client.get("/store/products")
    assert garbled.status_code == 200
    assert [p["name"] for p in garbled.json()] == ["Tas Tote"]

    auth_state["user"] = AuthUser(user_id=str(uuid.uuid4()))
    unknown = await client.get("/store/products")
    assert unknown.status_code == 200
    assert len(unknown.json()) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_deleting_ordered_product_conflicts(client, db_session, make_caller, login):
    buyer = await make_caller(AppRole.USER)
    product = ProductFactory.create()
    order = OrderFactory.create(user_id=buyer.identity_id)
    db_session.add_all([product, order])
    await db_session.flush()
    db_session.add(OrderItemFactory.create(order_id=order.id, product_id=product.id))
    await db_session.commit()

    login(await make_caller(AppRole.ADMIN))
    response = await client.delete(f"/admin/store/products/{product.id}")

    assert response.status_code == 409
    assert response.json()["error"] == "Conflict"


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_computes_total(client, db_session, make_caller, login):
    product = ProductFactory.create(price=Decimal("45000.00"))
    db_session.add(product)
    await db_session.commit()

    buyer = await make_caller(AppRole.USER)
    login(buyer)
    response = await client.post(
        "/store/orders",
        json={
            "items": [{"product_id": str(product.id), "quantity": 3}],
            "shipping_address": "Jl. Kaliurang 5",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["user_id"] == str(buyer.identity_id)
    assert body["status"] == "pending"
    assert float(body["total_amount"]) == 135000.0
    assert float(body["items"][0]["price"]) == 45000.0

    mine = await client.get("/store/orders")
    assert [o["id"] for o in mine.json()] == [body["id"]]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_rejects_bad_input(client, make_caller, login):
    login(await make_caller(AppRole.USER))

    empty = await client.post("/store/orders", json={"items": []})
    assert empty.status_code == 422

    zero = await client.post(
        "/store/orders",
        json={"items": [{"product_id": str(uuid.uuid4()), "quantity": 0}]},
    )
    assert zero.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_other_users_order_is_forbidden(client, db_session, make_caller, login):
    owner = await make_caller(AppRole.USER)
    order = OrderFactory.create(user_id=owner.identity_id)
    db_session.add(order)
    await db_session.commit()

    login(await make_caller(AppRole.USER))
    response = await client.get(f"/store/orders/{order.id}")
    assert response.status_code == 403

    login(owner)
    response = await client.get(f"/store/orders/{order.id}")
    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_moves_order_status(client, db_session, make_caller, login):
    owner = await make_caller(AppRole.USER)
    order = OrderFactory.create(user_id=owner.identity_id)
    db_session.add(order)
    await db_session.commit()

    login(await make_caller(AppRole.ADMIN))
    paid = await client.patch(
        f"/admin/store/orders/{order.id}/status", json={"status": "paid"}
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"

    skipped = await client.patch(
        f"/admin/store/orders/{order.id}/status", json={"status": "delivered"}
    )
    assert skipped.status_code == 422
    assert skipped.json()["error"] == "ValidationFailure"


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reviews(client, db_session, make_caller, login):
    product = ProductFactory.create()
    db_session.add(product)
    await db_session.commit()

    author = await make_caller(AppRole.USER)
    login(author)
    invalid = await client.post(
        "/store/reviews", json={"product_id": str(product.id), "rating": 6}
    )
    assert invalid.status_code == 422

    created = await client.post(
        "/store/reviews",
        json={"product_id": str(product.id), "rating": 5, "comment": "Rapi."},
    )
    assert created.status_code == 201
    review_id = created.json()["id"]

    login(None)
    public = await client.get(f"/store/products/{product.id}/reviews")
    assert [r["id"] for r in public.json()] == [review_id]

    login(await make_caller(AppRole.USER))
    other = await client.patch(f"/store/reviews/{review_id}", json={"rating": 1})
    assert other.status_code == 403

    login(author)
    deleted = await client.delete(f"/store/reviews/{review_id}")
    assert deleted.status_code == 204


# ---------------------------------------------------------------------------
# Profiles and auth events
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_me_and_role_change(client, make_caller, login):
    caller = await make_caller(AppRole.USER, full_name="Sari")
    login(caller)

    me = await client.get("/profiles/me")
    assert me.status_code == 200
    assert me.json()["role"] == "user"
    assert me.json()["full_name"] == "Sari"

    renamed = await client.patch("/profiles/me", json={"full_name": "Sari W."})
    assert renamed.status_code == 200
    assert renamed.json()["full_name"] == "Sari W."

    escalate = await client.patch("/profiles/me", json={"role": "admin"})
    assert escalate.status_code == 403

    me = await client.get("/profiles/me")
    assert me.json()["role"] == "user"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_profile_of_another_user(client, make_caller, login):
    other = await make_caller(AppRole.USER)

    login(await make_caller(AppRole.USER))
    response = await client.get(f"/profiles/{other.identity_id}")
    assert response.status_code == 403

    login(await make_caller(AppRole.ADMIN))
    response = await client.get(f"/profiles/{other.identity_id}")
    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.integration
async def test_auth_events(client, make_caller, login):
    caller = await make_caller(AppRole.MITRA)
    login(caller)

    signed_in = await client.post("/auth/events", json={"event": "SignedIn"})
    assert signed_in.status_code == 200
    assert signed_in.json()["role"] == "mitra"

    signed_out = await client.post("/auth/events", json={"event": "SignedOut"})
    assert signed_out.status_code == 200
    assert signed_out.json() is None

    unknown = await client.post("/auth/events", json={"event": "PasswordRecovery"})
    assert unknown.status_code == 422

    login(None)
    anonymous = await client.post("/auth/events", json={"event": "SignedIn"})
    assert anonymous.status_code == 401
