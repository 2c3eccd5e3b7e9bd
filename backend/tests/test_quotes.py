"""
Tests per i preventivi e le loro conversioni.
"""

from decimal import Decimal

import pytest

from conftest import get_stock, line

BASE = "/api/v1/devis"


@pytest.fixture
async def two_products(product_factory):
    return (
        await product_factory(quantity=50, sale_price="10"),
        await product_factory(quantity=50, sale_price="20"),
    )


async def create_quote(client, customer, lines, **extra) -> dict:
    response = await client.post(
        f"{BASE}/",
        json={"client_id": str(customer.id), "lines": lines, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["quote"]


async def test_quote_does_not_touch_stock(client, sample_client, two_products):
    p1, p2 = two_products

    quote = await create_quote(client, sample_client, [line(p1, 3), line(p2, 2)])

    assert quote["number"] == "DEV0001"
    assert quote["status"] == "brouillon"
    assert Decimal(quote["total_ht"]) == Decimal("70")
    assert Decimal(quote["total_ttc"]) == Decimal("70")
    assert await get_stock(client, p1.id) == 50
    assert await get_stock(client, p2.id) == 50


async def test_convert_to_invoice(client, sample_client, two_products):
    p1, p2 = two_products
    quote = await create_quote(client, sample_client, [line(p1, 3), line(p2, 2)])

    response = await client.post(f"{BASE}/{quote['id']}/convert-to-facture")

    assert response.status_code == 201, response.text
    body = response.json()
    invoice = body["invoice"]
    assert Decimal(invoice["total_ht"]) == Decimal("70")
    assert Decimal(invoice["vat_amount"]) == Decimal("14")
    assert Decimal(invoice["total_ttc"]) == Decimal("84")
    assert invoice["quote_id"] == quote["id"]
    assert body["quote"]["status"] == "transformé_en_facture"
    assert body["quote"]["invoice_id"] == invoice["id"]
    assert await get_stock(client, p1.id) == 47
    assert await get_stock(client, p2.id) == 48

    # Una seconda conversione è rifiutata e non scarica di nuovo
    response = await client.post(f"{BASE}/{quote['id']}/convert-to-facture")
    assert response.status_code == 400
    assert await get_stock(client, p1.id) == 47
    assert await get_stock(client, p2.id) == 48


async def test_quote_vat_rate_wins_over_request(client, sample_client, two_products):
    p1, p2 = two_products
    quote = await create_quote(client, sample_client, [line(p1, 3), line(p2, 2)], vat_rate="10")

    response = await client.post(f"{BASE}/{quote['id']}/convert-to-facture", json={"vat_rate": "5"})

    assert response.status_code == 201, response.text
    assert Decimal(response.json()["invoice"]["total_ttc"]) == Decimal("77")


async def test_convert_to_delivery_note(client, sample_client, two_products):
    p1, p2 = two_products
    quote = await create_quote(client, sample_client, [line(p1, 3), line(p2, 2)], discount="5")

    response = await client.post(f"{BASE}/{quote['id']}/convert-to-bl")

    assert response.status_code == 201, response.text
    body = response.json()
    note = body["delivery_note"]
    assert note["number"] == "BL0001"
    assert note["quote_id"] == quote["id"]
    assert Decimal(note["total_ttc"]) == Decimal("65")
    assert body["quote"]["status"] == "transformé_en_bl"
    assert await get_stock(client, p1.id) == 47
    assert await get_stock(client, p2.id) == 48


async def test_failed_conversion_leaves_quote_open(client, sample_client, product_factory):
    scarce = await product_factory(quantity=1)
    quote = await create_quote(client, sample_client, [line(scarce, 2)])

    response = await client.post(f"{BASE}/{quote['id']}/convert-to-bl")

    assert response.status_code == 400
    assert response.json()["message"].startswith("Stock insuffisant")
    reloaded = (await client.get(f"{BASE}/{quote['id']}")).json()["quote"]
    assert reloaded["status"] == "brouillon"
    assert reloaded["delivery_note_id"] is None
    assert await get_stock(client, scarce.id) == 1


async def test_accepted_quote_cannot_be_deleted(client, sample_client, two_products):
    p1, _ = two_products
    quote = await create_quote(client, sample_client, [line(p1, 1)])

    response = await client.patch(f"{BASE}/{quote['id']}/status", json={"status": "accepté"})
    assert response.status_code == 200
    assert response.json()["quote"]["accepted_on"] is not None

    response = await client.delete(f"{BASE}/{quote['id']}")
    assert response.status_code == 400


async def test_refused_quote_can_be_deleted(client, sample_client, two_products):
    p1, _ = two_products
    quote = await create_quote(client, sample_client, [line(p1, 1)])
    await client.patch(f"{BASE}/{quote['id']}/status", json={"status": "refusé"})

    response = await client.delete(f"{BASE}/{quote['id']}")

    assert response.status_code == 200
    assert (await client.get(f"{BASE}/{quote['id']}")).status_code == 404


async def test_update_recomputes_totals(client, sample_client, two_products):
    p1, p2 = two_products
    quote = await create_quote(client, sample_client, [line(p1, 1)])

    response = await client.put(
        f"{BASE}/{quote['id']}",
        json={"lines": [line(p2, 2, unit_price="15")]},
    )

    assert response.status_code == 200, response.text
    assert Decimal(response.json()["quote"]["total_ht"]) == Decimal("30")
