"""
Tests per i bons de livraison: magazzino, stati e pagamenti.
"""

from decimal import Decimal

from conftest import get_stock, line

BASE = "/api/v1/bon-livraisons"


async def create_note(client, customer, lines, **extra) -> dict:
    response = await client.post(
        f"{BASE}/",
        json={"client_id": str(customer.id), "lines": lines, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["delivery_note"]


async def set_status(client, note_id, status):
    return await client.patch(f"{BASE}/{note_id}/status", json={"status": status})


# ============================================================
# Ciclo di vita e magazzino
# ============================================================


async def test_create_cancel_delete_keeps_stock_consistent(client, sample_client, product_factory):
    product = await product_factory(quantity=100)

    note = await create_note(client, sample_client, [line(product, 5)])
    assert note["number"] == "BL0001"
    assert note["status"] == "brouillon"
    assert Decimal(note["total_ht"]) == Decimal("50")
    assert Decimal(note["total_ttc"]) == Decimal("50")
    assert await get_stock(client, product.id) == 95

    response = await set_status(client, note["id"], "annulée")
    assert response.status_code == 200, response.text
    assert response.json()["delivery_note"]["status"] == "annulée"
    assert await get_stock(client, product.id) == 100

    response = await client.delete(f"{BASE}/{note['id']}")
    assert response.status_code == 200, response.text
    assert response.json()["success"] is True
    assert await get_stock(client, product.id) == 100

    response = await client.get(f"{BASE}/{note['id']}")
    assert response.status_code == 404
    assert response.json()["error"] == "RESOURCE_NOT_FOUND"


async def test_delete_active_note_restocks(client, sample_client, product_factory):
    product = await product_factory(quantity=10)
    note = await create_note(client, sample_client, [line(product, 4)])

    response = await client.delete(f"{BASE}/{note['id']}")

    assert response.status_code == 200
    assert await get_stock(client, product.id) == 10


async def test_restore_cancelled_note_decrements_again(client, sample_client, product_factory):
    product = await product_factory(quantity=10)
    note = await create_note(client, sample_client, [line(product, 3)])
    await set_status(client, note["id"], "annulée")
    assert await get_stock(client, product.id) == 10

    response = await set_status(client, note["id"], "brouillon")

    assert response.status_code == 200, response.text
    assert await get_stock(client, product.id) == 7


async def test_update_lines_rebalances_stock(client, sample_client, product_factory):
    first = await product_factory(quantity=20)
    second = await product_factory(quantity=20, sale_price="4")
    note = await create_note(client, sample_client, [line(first, 5)])

    response = await client.put(
        f"{BASE}/{note['id']}",
        json={"lines": [line(first, 2), line(second, 3)]},
    )

    assert response.status_code == 200, response.text
    updated = response.json()["delivery_note"]
    assert Decimal(updated["total_ht"]) == Decimal("32")
    assert len(updated["lines"]) == 2
    assert await get_stock(client, first.id) == 18
    assert await get_stock(client, second.id) == 17


async def test_delivered_sets_delivery_date(client, sample_client, product_factory):
    product = await product_factory(quantity=5)
    note = await create_note(client, sample_client, [line(product, 1)])

    response = await set_status(client, note["id"], "livré")

    assert response.status_code == 200
    assert response.json()["delivery_note"]["delivery_date"] is not None


# ============================================================
# Guard ed errori
# ============================================================


async def test_cannot_delete_delivered_or_invoiced(client, sample_client, product_factory):
    product = await product_factory(quantity=30)

    delivered = await create_note(client, sample_client, [line(product, 2)])
    await set_status(client, delivered["id"], "livré")

    invoiced = await create_note(client, sample_client, [line(product, 3)])
    await set_status(client, invoiced["id"], "livré")
    response = await set_status(client, invoiced["id"], "facturé")
    assert response.status_code == 200, response.text

    for note in (delivered, invoiced):
        response = await client.delete(f"{BASE}/{note['id']}")
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "BUSINESS_VALIDATION_ERROR"

    assert await get_stock(client, product.id) == 25


async def test_insufficient_stock_rejected(client, sample_client, product_factory):
    available = await product_factory(quantity=10)
    scarce = await product_factory(quantity=1, designation="Imprimante laser")

    response = await client.post(
        f"{BASE}/",
        json={"client_id": str(sample_client.id), "lines": [line(available, 2), line(scarce, 2)]},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Stock insuffisant pour Imprimante laser. Stock disponible: 1"
    assert await get_stock(client, available.id) == 10
    assert await get_stock(client, scarce.id) == 1

    listing = await client.get(f"{BASE}/")
    assert listing.json()["count"] == 0


async def test_invalid_transition_rejected(client, sample_client, product_factory):
    product = await product_factory(quantity=5)
    note = await create_note(client, sample_client, [line(product, 1)])
    await set_status(client, note["id"], "livré")

    response = await set_status(client, note["id"], "brouillon")

    assert response.status_code == 400
    assert "Transition de statut non autorisée" in response.json()["message"]


async def test_empty_lines_is_a_validation_error(client, sample_client):
    response = await client.post(f"{BASE}/", json={"client_id": str(sample_client.id), "lines": []})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "VALIDATION_ERROR"


async def test_unknown_client(client, product_factory):
    product = await product_factory(quantity=5)
    response = await client.post(
        f"{BASE}/",
        json={"client_id": "00000000-0000-0000-0000-000000000000", "lines": [line(product, 1)]},
    )
    assert response.status_code == 404


# ============================================================
# Pagamenti
# ============================================================


async def test_payment_status_follows_advancements(client, sample_client, product_factory):
    product = await product_factory(quantity=10, sale_price="25")

    note = await create_note(
        client,
        sample_client,
        [line(product, 2)],
        advancements=[{"amount": "20", "payment_method": "espèces"}],
    )
    assert note["status"] == "partiellement_payée"
    assert Decimal(note["total_paid"]) == Decimal("20")
    assert Decimal(note["remaining"]) == Decimal("30")

    advancement_id = note["advancements"][0]["id"]
    response = await client.put(
        f"{BASE}/{note['id']}",
        json={
            "advancements": [
                {"id": advancement_id, "amount": "20", "payment_method": "espèces"},
                {"amount": "30", "payment_method": "virement"},
            ]
        },
    )

    assert response.status_code == 200, response.text
    paid = response.json()["delivery_note"]
    assert paid["status"] == "payé"
    assert paid["is_fully_paid"] is True
    assert len(paid["advancements"]) == 2

    # Rimuovendo gli acconti il BL torna in bozza
    response = await client.put(f"{BASE}/{note['id']}", json={"advancements": []})
    assert response.json()["delivery_note"]["status"] == "brouillon"


async def test_credit_note_method_reserved(client, sample_client, product_factory):
    product = await product_factory(quantity=10)
    response = await client.post(
        f"{BASE}/",
        json={
            "client_id": str(sample_client.id),
            "lines": [line(product, 1)],
            "advancements": [{"amount": "5", "payment_method": "avoir"}],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_list_filters_by_status(client, sample_client, product_factory):
    product = await product_factory(quantity=10)
    kept = await create_note(client, sample_client, [line(product, 1)])
    cancelled = await create_note(client, sample_client, [line(product, 1)])
    await set_status(client, cancelled["id"], "annulée")

    response = await client.get(f"{BASE}/", params={"status": "brouillon"})

    body = response.json()
    assert body["count"] == 1
    assert body["delivery_notes"][0]["id"] == kept["id"]
