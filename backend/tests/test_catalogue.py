"""
Tests per anagrafiche e catalogo: clienti, fornitori, prodotti.
"""

from decimal import Decimal

from conftest import get_stock, line


# ============================================================
# Clienti
# ============================================================


class TestClients:

    async def test_crud(self, client):
        response = await client.post(
            "/api/v1/clients/",
            json={"full_name": "Société Nour", "city": "Rabat", "phone": "0537000000"},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["success"] is True
        created = body["client"]

        response = await client.put(f"/api/v1/clients/{created['id']}", json={"city": "Salé"})
        assert response.json()["client"]["city"] == "Salé"

        response = await client.get("/api/v1/clients/search", params={"q": "nour"})
        assert response.json()["count"] == 1

        response = await client.delete(f"/api/v1/clients/{created['id']}")
        assert response.status_code == 200
        assert response.json()["message"] == "Client supprimé avec succès"

        response = await client.get(f"/api/v1/clients/{created['id']}")
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "message": f"Client {created['id']} non trouvé",
            "error": "RESOURCE_NOT_FOUND",
        }

    async def test_full_name_required(self, client):
        response = await client.post("/api/v1/clients/", json={"city": "Fès"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert "full_name" in body["message"]

    async def test_delete_removes_documents_and_reverses_stock(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10, sale_price="10")
        customer = str(sample_client.id)
        note = (
            await client.post(
                "/api/v1/bon-livraisons/",
                json={
                    "client_id": customer,
                    "lines": [line(product, 2)],
                    "advancements": [{"amount": "5", "payment_method": "espèces"}],
                },
            )
        ).json()["delivery_note"]
        await client.post("/api/v1/factures/from-bonlivraison", json={"delivery_note_id": note["id"]})
        invoice = (
            await client.post("/api/v1/factures/", json={"client_id": customer, "lines": [line(product, 3)]})
        ).json()["invoice"]
        await client.patch(
            f"/api/v1/factures/{invoice['id']}/payment",
            json={"amount": "10", "payment_method": "espèces"},
        )
        await client.post("/api/v1/devis/", json={"client_id": customer, "lines": [line(product, 4)]})
        await client.post(
            "/api/v1/bon-avoirs/",
            json={"delivery_note_id": note["id"], "reason": "retour_produit", "lines": [line(product, 1)]},
        )
        assert await get_stock(client, product.id) == 6

        response = await client.delete(f"/api/v1/clients/{customer}")

        assert response.status_code == 200, response.text
        assert await get_stock(client, product.id) == 10
        assert (await client.get(f"/api/v1/bon-livraisons/{note['id']}")).status_code == 404
        assert (await client.get(f"/api/v1/factures/{invoice['id']}")).status_code == 404
        for resource in ("factures", "bon-livraisons", "devis", "bon-avoirs"):
            assert (await client.get(f"/api/v1/{resource}/")).json()["count"] == 0
        # Il prodotto non è più referenziato da alcun documento
        assert (await client.delete(f"/api/v1/produits/{product.id}")).status_code == 200

    async def test_payment_status(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10, sale_price="10")
        await client.post(
            "/api/v1/factures/",
            json={"client_id": str(sample_client.id), "lines": [line(product, 3)]},
        )
        await client.post(
            "/api/v1/bon-livraisons/",
            json={
                "client_id": str(sample_client.id),
                "lines": [line(product, 2)],
                "advancements": [{"amount": "5", "payment_method": "espèces"}],
            },
        )

        response = await client.get(f"/api/v1/clients/{sample_client.id}/payment-status")

        assert response.status_code == 200, response.text
        status = response.json()["payment_status"]
        assert Decimal(status["total_invoiced"]) == Decimal("30")
        assert Decimal(status["total_due"]) == Decimal("30")
        assert Decimal(status["delivery_notes_due"]) == Decimal("15")
        assert len(status["unpaid_invoices"]) == 1
        assert len(status["unpaid_delivery_notes"]) == 1

    async def test_products_by_reference(self, client, sample_client, product_factory):
        keyboard = await product_factory(quantity=20, reference="CLV-01")
        mouse = await product_factory(quantity=20, reference="SOURIS-01")
        customer = str(sample_client.id)
        await client.post("/api/v1/devis/", json={"client_id": customer, "lines": [line(keyboard, 2)]})
        await client.post(
            "/api/v1/bon-livraisons/",
            json={"client_id": customer, "lines": [line(keyboard, 3), line(mouse, 1)]},
        )
        await client.post("/api/v1/factures/", json={"client_id": customer, "lines": [line(keyboard, 1)]})
        url = f"/api/v1/clients/{customer}/products-by-reference"

        response = await client.get(url, params={"reference": "clv"})

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["count"] == 3
        assert {entry["document_type"] for entry in body["history"]} == {"devis", "bon-livraison", "facture"}
        [stats] = body["products"]
        assert stats["product"]["reference"] == "CLV-01"
        assert stats["total_quantity"] == 6
        assert stats["by_document_type"]["bon-livraison"]["total_quantity"] == 3

        response = await client.get(url, params={"reference": "clv", "documentType": "facture"})
        assert response.json()["count"] == 1

        response = await client.get(url, params={"reference": "clv", "exactMatch": "true"})
        assert response.json()["count"] == 0
        response = await client.get(url, params={"reference": "clv-01", "exactMatch": "true"})
        assert response.json()["count"] == 3

        response = await client.get(url, params={"reference": "clv", "limit": 1})
        assert response.json()["count"] == 3
        assert len(response.json()["history"]) == 1

        assert (await client.get(url)).status_code == 400


# ============================================================
# Fornitori
# ============================================================


class TestSuppliers:

    async def test_duplicate_phone_conflict(self, client, sample_supplier):
        response = await client.post(
            "/api/v1/fornisseurs/",
            json={"full_name": "Autre fournisseur", "phone": sample_supplier.phone},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_RESOURCE"

    async def test_duplicate_reference_is_case_insensitive(self, client, sample_supplier):
        response = await client.post(
            "/api/v1/fornisseurs/",
            json={"full_name": "Atlas bis", "phone": "0522999999", "reference": "atl"},
        )
        assert response.status_code == 409

    async def test_phone_required(self, client):
        response = await client.post("/api/v1/fornisseurs/", json={"full_name": "Sans téléphone"})
        assert response.status_code == 400

    async def test_delete_removes_orders_and_received_goods(self, client, sample_supplier, product_factory):
        product = await product_factory(quantity=2)
        received = (
            await client.post(
                "/api/v1/bon-achats/",
                json={"supplier_id": str(sample_supplier.id), "lines": [line(product, 4)]},
            )
        ).json()["purchase_order"]
        await client.put(
            f"/api/v1/bon-achats/{received['id']}/reception",
            json={"lines": [{"product_id": str(product.id), "quantity": 4}]},
        )
        await client.post(
            "/api/v1/bon-achats/",
            json={"supplier_id": str(sample_supplier.id), "lines": [line(product, 1)]},
        )
        assert await get_stock(client, product.id) == 6

        response = await client.delete(f"/api/v1/fornisseurs/{sample_supplier.id}")

        assert response.status_code == 200, response.text
        assert await get_stock(client, product.id) == 2
        assert (await client.get("/api/v1/bon-achats/")).json()["count"] == 0
        assert (await client.get(f"/api/v1/fornisseurs/{sample_supplier.id}")).status_code == 404
        catalogue = (await client.get(f"/api/v1/produits/{product.id}")).json()["product"]
        assert catalogue["supplier_id"] is None

    async def test_recent_orders_and_products_summary(self, client, sample_supplier, product_factory):
        cable = await product_factory(quantity=0, purchase_price="6")
        screen = await product_factory(quantity=0, purchase_price="6")
        supplier = str(sample_supplier.id)

        async def order(lines):
            response = await client.post("/api/v1/bon-achats/", json={"supplier_id": supplier, "lines": lines})
            assert response.status_code == 201, response.text
            return response.json()["purchase_order"]

        first = await order([line(cable, 5, unit_price="7")])
        await client.put(
            f"/api/v1/bon-achats/{first['id']}/reception",
            json={"lines": [{"product_id": str(cable.id), "quantity": 3}]},
        )
        second = await order([line(cable, 2, unit_price="7"), line(screen, 1)])
        cancelled = await order([line(screen, 10)])
        await client.put(f"/api/v1/bon-achats/{cancelled['id']}/annuler")

        response = await client.get(f"/api/v1/fornisseurs/{supplier}/bon-achats/recent", params={"limit": 2})
        assert response.status_code == 200, response.text
        assert [o["number"] for o in response.json()["purchase_orders"]] == [cancelled["number"], second["number"]]

        response = await client.get(f"/api/v1/fornisseurs/{supplier}/products-summary")

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["count"] == 2
        summary = body["summary"]
        assert summary["ordered_quantity"] == 8
        assert summary["received_quantity"] == 3
        assert summary["pending_quantity"] == 5
        assert Decimal(summary["total_amount"]) == Decimal("55")
        top = body["products"][0]
        assert top["product_id"] == str(cable.id)
        assert top["order_count"] == 2
        assert Decimal(top["average_unit_price"]) == Decimal("7")


# ============================================================
# Prodotti e magazzino
# ============================================================


class TestProducts:

    async def test_create_with_initial_stock(self, client, sample_supplier):
        response = await client.post(
            "/api/v1/produits/",
            json={
                "reference": " clv-01 ",
                "designation": "Clavier USB",
                "purchase_price": "80",
                "sale_price": "120",
                "supplier_id": str(sample_supplier.id),
                "quantity": 12,
            },
        )

        assert response.status_code == 201, response.text
        product = response.json()["product"]
        assert product["reference"] == "CLV-01"
        assert product["quantity"] == 12

        response = await client.get(f"/api/v1/produits/{product['id']}/movements")
        movements = response.json()["movements"]
        assert len(movements) == 1
        assert movements[0]["delta"] == 12
        assert movements[0]["notes"] == "Stock initial"

    async def test_duplicate_reference(self, client, product_factory):
        await product_factory(reference="SOURIS-01")

        response = await client.post(
            "/api/v1/produits/",
            json={"reference": "souris-01", "designation": "Souris"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_RESOURCE"

    async def test_negative_price_rejected(self, client):
        response = await client.post(
            "/api/v1/produits/",
            json={"reference": "X-1", "designation": "Produit", "sale_price": "-1"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_stock_adjustments(self, client, product_factory):
        product = await product_factory(quantity=10)
        url = f"/api/v1/produits/{product.id}/stock"

        response = await client.patch(url, json={"quantity": 5, "operation": "add", "notes": "Réassort"})
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["product"]["quantity"] == 15
        assert body["movement"]["delta"] == 5
        assert body["movement"]["quantity_after"] == 15

        response = await client.patch(url, json={"quantity": 3})
        assert response.json()["product"]["quantity"] == 3

        response = await client.patch(url, json={"quantity": 4, "operation": "subtract"})
        assert response.status_code == 400
        assert await get_stock(client, product.id) == 3

    async def test_product_used_in_documents_cannot_be_deleted(self, client, sample_client, product_factory):
        used = await product_factory(quantity=5)
        unused = await product_factory(quantity=5)
        await client.post(
            "/api/v1/devis/",
            json={"client_id": str(sample_client.id), "lines": [line(used, 1)]},
        )

        assert (await client.delete(f"/api/v1/produits/{used.id}")).status_code == 409
        assert (await client.delete(f"/api/v1/produits/{unused.id}")).status_code == 200

    async def test_search_and_list(self, client, product_factory):
        await product_factory(designation="Écran 24 pouces")
        await product_factory(designation="Câble réseau")

        response = await client.get("/api/v1/produits/")
        assert response.json()["count"] == 2

        response = await client.get("/api/v1/produits/search", params={"q": "Câble"})
        assert [p["designation"] for p in response.json()["products"]] == ["Câble réseau"]
