"""Integration tests for the market cart endpoints."""

import uuid

import pytest
from tests.factories import (
    bearer,
    make_producer_user,
    seed_customer,
    seed_producer,
    seed_product,
)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_requires_authentication(client):
    response = await client.get("/market/cart")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_rejects_producer_tokens(client):
    response = await client.get("/market/cart", headers=bearer(make_producer_user()))
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_same_product_twice_gives_one_line(client, db_session):
    customer = await seed_customer(db_session)
    _, shop = await seed_producer(db_session)
    product = await seed_product(db_session, shop, price_cents=350)
    headers = bearer(customer)

    await client.post(
        "/market/cart/items",
        json={"product_id": str(product.id), "quantity": 2},
        headers=headers,
    )
    response = await client.post(
        "/market/cart/items",
        json={"product_id": str(product.id), "quantity": 1},
        headers=headers,
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert len(data["items"]) == 1
    assert data["items"][0]["quantity"] == 3
    assert data["total_cents"] == 1050
    assert data["total"] == "10.50"
    assert data["currency"] == "EUR"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invalid_quantity_is_a_400_with_kind(client, db_session):
    customer = await seed_customer(db_session)
    _, shop = await seed_producer(db_session)
    product = await seed_product(db_session, shop)

    response = await client.post(
        "/market/cart/items",
        json={"product_id": str(product.id), "quantity": 0},
        headers=bearer(customer),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "InvalidQuantityError"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unavailable_product_is_a_409(client, db_session):
    customer = await seed_customer(db_session)

    response = await client.post(
        "/market/cart/items",
        json={"product_id": str(uuid.uuid4()), "quantity": 1},
        headers=bearer(customer),
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "ProductUnavailableError"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_update_remove_and_clear(client, db_session):
    customer = await seed_customer(db_session)
    _, shop = await seed_producer(db_session)
    a = await seed_product(db_session, shop)
    b = await seed_product(db_session, shop)
    headers = bearer(customer)
    for product in (a, b):
        await client.post(
            "/market/cart/items",
            json={"product_id": str(product.id), "quantity": 1},
            headers=headers,
        )

    response = await client.put(
        f"/market/cart/items/{a.id}", json={"quantity": 4}, headers=headers
    )
    assert response.status_code == 200
    assert [i["quantity"] for i in response.json()["items"]] == [4, 1]

    response = await client.put(
        f"/market/cart/items/{a.id}", json={"quantity": 0}, headers=headers
    )
    assert [i["product_id"] for i in response.json()["items"]] == [str(b.id)]

    response = await client.delete(f"/market/cart/items/{a.id}", headers=headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "CartLineNotFoundError"

    response = await client.delete("/market/cart", headers=headers)
    assert response.status_code == 200
    assert response.json()["items"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sync_merges_and_reports_drops(client, db_session):
    customer = await seed_customer(db_session)
    _, shop = await seed_producer(db_session)
    p1 = await seed_product(db_session, shop, stock=20)
    headers = bearer(customer)
    await client.post(
        "/market/cart/items",
        json={"product_id": str(p1.id), "quantity": 3},
        headers=headers,
    )
    ghost = uuid.uuid4()

    body = {
        "items": [
            {"product_id": str(p1.id), "quantity": 2},
            {"product_id": str(ghost), "quantity": 1},
        ],
        "sync_key": "login-abc",
    }
    response = await client.post("/market/cart/sync", json=body, headers=headers)

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["cart"]["items"][0]["quantity"] == 5
    assert data["dropped"] == [
        {"product_id": str(ghost), "quantity": 1, "reason": "unavailable"}
    ]
    assert data["replayed"] is False
    assert data["clear_local_cart"] is True

    retry = await client.post("/market/cart/sync", json=body, headers=headers)
    assert retry.json()["replayed"] is True
    assert retry.json()["cart"]["items"][0]["quantity"] == 5
