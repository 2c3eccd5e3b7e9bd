"""
Tests per i bons d'avoir.
"""

from decimal import Decimal

import pytest

from conftest import get_stock, line

BASE = "/api/v1/bon-avoirs"


@pytest.fixture
async def delivered(client, sample_client, product_factory):
    """Un prodotto con 20 pezzi e un BL che ne consegna 5 (totale 50)."""
    product = await product_factory(quantity=20, sale_price="10")
    response = await client.post(
        "/api/v1/bon-livraisons/",
        json={"client_id": str(sample_client.id), "lines": [line(product, 5)]},
    )
    assert response.status_code == 201, response.text
    return product, response.json()["delivery_note"]


async def create_credit_note(client, note, product, quantity, reason="retour_produit") -> dict:
    response = await client.post(
        f"{BASE}/",
        json={"delivery_note_id": note["id"], "reason": reason, "lines": [line(product, quantity)]},
    )
    assert response.status_code == 201, response.text
    return response.json()["credit_note"]


async def test_create_restocks_and_takes_client_from_note(client, delivered):
    product, note = delivered
    assert await get_stock(client, product.id) == 15

    credit_note = await create_credit_note(client, note, product, 2)

    assert credit_note["number"] == "BAV0001"
    assert credit_note["status"] == "brouillon"
    assert credit_note["client_id"] == note["client_id"]
    assert Decimal(credit_note["total_ttc"]) == Decimal("20")
    assert await get_stock(client, product.id) == 17


async def test_cannot_return_more_than_delivered(client, delivered):
    product, note = delivered

    response = await client.post(
        f"{BASE}/",
        json={"delivery_note_id": note["id"], "reason": "retour_produit", "lines": [line(product, 6)]},
    )

    assert response.status_code == 400
    assert await get_stock(client, product.id) == 15


async def test_client_or_note_required(client, delivered):
    product, _ = delivered
    response = await client.post(
        f"{BASE}/",
        json={"reason": "autre", "lines": [line(product, 1)]},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_validate_and_use_on_delivery_note(client, sample_client, delivered):
    product, note = delivered
    credit_note = await create_credit_note(client, note, product, 2)

    # Un avoir in bozza non è utilizzabile
    response = await client.put(f"{BASE}/{credit_note['id']}/utiliser", json={"delivery_note_id": note["id"]})
    assert response.status_code == 400

    response = await client.put(f"{BASE}/{credit_note['id']}/valider")
    assert response.status_code == 200, response.text
    assert response.json()["credit_note"]["status"] == "valide"

    response = await client.get(f"{BASE}/client/{sample_client.id}/disponibles")
    available = response.json()
    assert available["count"] == 1
    assert Decimal(available["total_available"]) == Decimal("20")

    response = await client.put(f"{BASE}/{credit_note['id']}/utiliser", json={"delivery_note_id": note["id"]})
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["credit_note"]["status"] == "utilise"
    assert body["credit_note"]["used_on_delivery_note_id"] == note["id"]
    assert Decimal(body["applied_amount"]) == Decimal("20")
    assert Decimal(body["new_delivery_note_total"]) == Decimal("30")

    updated_note = (await client.get(f"/api/v1/bon-livraisons/{note['id']}")).json()["delivery_note"]
    assert Decimal(updated_note["total_ttc"]) == Decimal("30")
    assert "BAV0001" in updated_note["notes"]

    available = (await client.get(f"{BASE}/client/{sample_client.id}/disponibles")).json()
    assert available["count"] == 0

    # Un avoir utilizzato non si annulla
    response = await client.put(f"{BASE}/{credit_note['id']}/annuler")
    assert response.status_code == 400


async def test_usage_floors_note_total_at_zero(client, sample_client, product_factory):
    product = await product_factory(quantity=10, sale_price="10")
    big = await client.post(
        "/api/v1/bon-livraisons/",
        json={"client_id": str(sample_client.id), "lines": [line(product, 5)]},
    )
    small = await client.post(
        "/api/v1/bon-livraisons/",
        json={"client_id": str(sample_client.id), "lines": [line(product, 1)]},
    )
    big_note, small_note = big.json()["delivery_note"], small.json()["delivery_note"]
    credit_note = await create_credit_note(client, big_note, product, 3)
    await client.put(f"{BASE}/{credit_note['id']}/valider")

    response = await client.put(
        f"{BASE}/{credit_note['id']}/utiliser", json={"delivery_note_id": small_note["id"]}
    )

    assert response.status_code == 200, response.text
    assert Decimal(response.json()["applied_amount"]) == Decimal("10")
    assert Decimal(response.json()["new_delivery_note_total"]) == Decimal("0")


async def test_cancel_validated_return_takes_stock_back(client, delivered):
    product, note = delivered
    credit_note = await create_credit_note(client, note, product, 2)
    await client.put(f"{BASE}/{credit_note['id']}/valider")
    assert await get_stock(client, product.id) == 17

    response = await client.put(f"{BASE}/{credit_note['id']}/annuler")

    assert response.status_code == 200, response.text
    assert response.json()["credit_note"]["status"] == "annule"
    assert await get_stock(client, product.id) == 15


async def test_only_cancelled_credit_notes_are_deleted(client, delivered):
    product, note = delivered
    credit_note = await create_credit_note(client, note, product, 1, reason="erreur_facturation")

    response = await client.delete(f"{BASE}/{credit_note['id']}")
    assert response.status_code == 400

    await client.put(f"{BASE}/{credit_note['id']}/annuler")
    response = await client.delete(f"{BASE}/{credit_note['id']}")
    assert response.status_code == 200
    # L'eliminazione non tocca il magazzino
    assert await get_stock(client, product.id) == 16
