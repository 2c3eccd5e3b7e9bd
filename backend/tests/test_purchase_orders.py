"""
Tests per i bons d'achat e le ricezioni merce.
"""

from decimal import Decimal

from conftest import get_stock, line

BASE = "/api/v1/bon-achats"


async def create_order(client, supplier, lines) -> dict:
    response = await client.post(f"{BASE}/", json={"supplier_id": str(supplier.id), "lines": lines})
    assert response.status_code == 201, response.text
    return response.json()["purchase_order"]


async def receive(client, order_id, product, quantity):
    return await client.put(
        f"{BASE}/{order_id}/reception",
        json={"lines": [{"product_id": str(product.id), "quantity": quantity}]},
    )


async def test_create_uses_purchase_price_and_keeps_stock(client, sample_supplier, product_factory):
    product = await product_factory(quantity=10, purchase_price="6")

    order = await create_order(client, sample_supplier, [line(product, 5)])

    assert order["number"] == "BAC0001"
    assert order["status"] == "brouillon"
    assert Decimal(order["total_ht"]) == Decimal("30")
    assert await get_stock(client, product.id) == 10


async def test_partial_then_full_receipt(client, sample_supplier, product_factory):
    product = await product_factory(quantity=10, purchase_price="6")
    order = await create_order(client, sample_supplier, [line(product, 5, unit_price="7")])

    response = await receive(client, order["id"], product, 3)
    assert response.status_code == 200, response.text
    partial = response.json()["purchase_order"]
    assert partial["status"] == "partiellement_reçu"
    assert partial["lines"][0]["received_quantity"] == 3
    assert await get_stock(client, product.id) == 13

    catalogue = (await client.get(f"/api/v1/produits/{product.id}")).json()["product"]
    assert Decimal(catalogue["purchase_price"]) == Decimal("7")

    # Oltre il residuo: rifiutato, magazzino invariato
    response = await receive(client, order["id"], product, 3)
    assert response.status_code == 400
    assert await get_stock(client, product.id) == 13

    response = await receive(client, order["id"], product, 2)
    assert response.json()["purchase_order"]["status"] == "reçu"
    assert await get_stock(client, product.id) == 15

    response = await client.put(f"{BASE}/{order['id']}/paye", json={"payment_method": "virement"})
    assert response.status_code == 200, response.text
    paid = response.json()["purchase_order"]
    assert paid["status"] == "payé"
    assert paid["paid_on"] is not None

    response = await client.put(f"{BASE}/{order['id']}/annuler")
    assert response.status_code == 400


async def test_cannot_pay_before_receipt(client, sample_supplier, product_factory):
    product = await product_factory(quantity=0)
    order = await create_order(client, sample_supplier, [line(product, 2)])

    response = await client.put(f"{BASE}/{order['id']}/paye")

    assert response.status_code == 400


async def test_receipt_of_unordered_product(client, sample_supplier, product_factory):
    ordered = await product_factory(quantity=0)
    other = await product_factory(quantity=0)
    order = await create_order(client, sample_supplier, [line(ordered, 2)])

    response = await receive(client, order["id"], other, 1)

    assert response.status_code == 400
    assert await get_stock(client, other.id) == 0


async def test_cancel_removes_received_goods_without_going_negative(client, sample_supplier, product_factory):
    product = await product_factory(quantity=0)
    order = await create_order(client, sample_supplier, [line(product, 10)])
    await receive(client, order["id"], product, 10)
    assert await get_stock(client, product.id) == 10

    # Parte della merce è già stata venduta
    await client.patch(f"/api/v1/produits/{product.id}/stock", json={"quantity": 6, "operation": "subtract"})

    response = await client.put(f"{BASE}/{order['id']}/annuler")

    assert response.status_code == 200, response.text
    cancelled = response.json()["purchase_order"]
    assert cancelled["status"] == "annulé"
    assert cancelled["lines"][0]["received_quantity"] == 0
    assert await get_stock(client, product.id) == 0


async def test_pending_orders(client, sample_supplier, product_factory):
    product = await product_factory(quantity=0)
    draft = await create_order(client, sample_supplier, [line(product, 1)])
    ordered = await create_order(client, sample_supplier, [line(product, 1)])
    response = await client.patch(f"{BASE}/{ordered['id']}/status", json={"status": "commandé"})
    assert response.status_code == 200, response.text

    response = await client.get(f"{BASE}/en-attente")

    ids = [o["id"] for o in response.json()["purchase_orders"]]
    assert ids == [ordered["id"]]
    assert draft["id"] not in ids


async def test_delete_rules(client, sample_supplier, product_factory):
    product = await product_factory(quantity=0)
    draft = await create_order(client, sample_supplier, [line(product, 1)])
    received = await create_order(client, sample_supplier, [line(product, 1)])
    await receive(client, received["id"], product, 1)

    assert (await client.delete(f"{BASE}/{received['id']}")).status_code == 400
    assert (await client.delete(f"{BASE}/{draft['id']}")).status_code == 200
