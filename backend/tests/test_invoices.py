"""
Tests per le fatture: dirette, da BL, pagamenti e annullamento.
"""

from decimal import Decimal

from conftest import get_stock, line

BASE = "/api/v1/factures"


async def create_invoice(client, customer, lines, **extra) -> dict:
    response = await client.post(
        f"{BASE}/",
        json={"client_id": str(customer.id), "lines": lines, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["invoice"]


async def pay(client, invoice_id, amount, method="espèces"):
    return await client.patch(
        f"{BASE}/{invoice_id}/payment",
        json={"amount": amount, "payment_method": method},
    )


# ============================================================
# Fatture dirette
# ============================================================


class TestStandaloneInvoice:

    async def test_create_computes_vat_and_decrements(self, client, sample_client, product_factory):
        product = await product_factory(quantity=50)

        invoice = await create_invoice(client, sample_client, [line(product, 4)], vat_rate="20")

        assert invoice["number"] == "FAC0001"
        assert invoice["status"] == "brouillon"
        assert invoice["delivery_note_id"] is None
        assert Decimal(invoice["total_ht"]) == Decimal("40")
        assert Decimal(invoice["vat_amount"]) == Decimal("8")
        assert Decimal(invoice["total_ttc"]) == Decimal("48")
        assert Decimal(invoice["amount_due"]) == Decimal("48")
        assert invoice["due_date"] is not None
        assert await get_stock(client, product.id) == 46

    async def test_default_vat_rate_is_zero(self, client, sample_client, product_factory):
        product = await product_factory(quantity=5)
        invoice = await create_invoice(client, sample_client, [line(product, 1)])
        assert Decimal(invoice["vat_rate"]) == Decimal("0")
        assert Decimal(invoice["total_ttc"]) == Decimal(invoice["total_ht"])

    async def test_cancel_and_restore_round_trip(self, client, sample_client, product_factory):
        product = await product_factory(quantity=50)
        invoice = await create_invoice(client, sample_client, [line(product, 4)])

        response = await client.patch(f"{BASE}/{invoice['id']}/cancel", json={"reason": "Erreur de saisie"})
        assert response.status_code == 200, response.text
        cancelled = response.json()["invoice"]
        assert cancelled["status"] == "annulée"
        assert "Erreur de saisie" in cancelled["notes"]
        assert await get_stock(client, product.id) == 50

        response = await client.patch(f"{BASE}/{invoice['id']}/status", json={"status": "brouillon"})
        assert response.status_code == 200, response.text
        assert response.json()["invoice"]["status"] == "brouillon"
        assert await get_stock(client, product.id) == 46

    async def test_cancel_twice_rejected(self, client, sample_client, product_factory):
        product = await product_factory(quantity=5)
        invoice = await create_invoice(client, sample_client, [line(product, 1)])
        await client.patch(f"{BASE}/{invoice['id']}/cancel")

        response = await client.patch(f"{BASE}/{invoice['id']}/cancel")

        assert response.status_code == 400
        assert await get_stock(client, product.id) == 5

    async def test_delete_draft_restocks(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        invoice = await create_invoice(client, sample_client, [line(product, 6)])

        response = await client.delete(f"{BASE}/{invoice['id']}")

        assert response.status_code == 200
        assert await get_stock(client, product.id) == 10

    async def test_insufficient_stock(self, client, sample_client, product_factory):
        product = await product_factory(quantity=2)
        response = await client.post(
            f"{BASE}/",
            json={"client_id": str(sample_client.id), "lines": [line(product, 3)]},
        )
        assert response.status_code == 400
        assert response.json()["message"].startswith("Stock insuffisant pour")


# ============================================================
# Pagamenti
# ============================================================


class TestPayments:

    async def test_partial_then_full_payment(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        invoice = await create_invoice(client, sample_client, [line(product, 4)], vat_rate="20")

        response = await pay(client, invoice["id"], "20")
        assert response.status_code == 200, response.text
        partial = response.json()["invoice"]
        assert partial["status"] == "partiellement_payée"
        assert Decimal(partial["amount_paid"]) == Decimal("20")
        assert Decimal(partial["amount_due"]) == Decimal("28")

        response = await pay(client, invoice["id"], "28", method="chèque")
        paid = response.json()["invoice"]
        assert paid["status"] == "payée"
        assert Decimal(paid["amount_due"]) == Decimal("0")
        assert paid["is_fully_paid"] is True

    async def test_paid_or_partially_paid_cannot_be_deleted(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        partial = await create_invoice(client, sample_client, [line(product, 1)])
        full = await create_invoice(client, sample_client, [line(product, 1)])
        await pay(client, partial["id"], "4")
        await pay(client, full["id"], "10")

        for invoice in (partial, full):
            response = await client.delete(f"{BASE}/{invoice['id']}")
            assert response.status_code == 400
            assert response.json()["error"] == "BUSINESS_VALIDATION_ERROR"

        assert await get_stock(client, product.id) == 8

    async def test_cancelling_paid_invoice_records_refund(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        invoice = await create_invoice(client, sample_client, [line(product, 3)])
        await pay(client, invoice["id"], "30")

        response = await client.patch(f"{BASE}/{invoice['id']}/cancel")

        cancelled = response.json()["invoice"]
        assert cancelled["status"] == "annulée"
        assert Decimal(cancelled["amount_due"]) == Decimal("0")
        refunds = [a for a in cancelled["advancements"] if a["payment_method"] == "avoir"]
        assert len(refunds) == 1
        assert Decimal(refunds[0]["amount"]) == Decimal("30")

        # Il ripristino elimina il rimborso
        response = await client.patch(f"{BASE}/{invoice['id']}/status", json={"status": "brouillon"})
        restored = response.json()["invoice"]
        assert all(a["payment_method"] != "avoir" for a in restored["advancements"])
        assert restored["status"] == "payée"

    async def test_no_payment_on_cancelled_invoice(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        invoice = await create_invoice(client, sample_client, [line(product, 1)])
        await client.patch(f"{BASE}/{invoice['id']}/cancel")

        response = await pay(client, invoice["id"], "5")

        assert response.status_code == 400

    async def test_payment_status_cannot_be_forced(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        invoice = await create_invoice(client, sample_client, [line(product, 1)])

        response = await client.patch(f"{BASE}/{invoice['id']}/status", json={"status": "payée"})

        assert response.status_code == 400


# ============================================================
# Fatture da BL
# ============================================================


class TestInvoiceFromDeliveryNote:

    async def _note(self, client, customer, product, quantity, **extra) -> dict:
        response = await client.post(
            "/api/v1/bon-livraisons/",
            json={"client_id": str(customer.id), "lines": [line(product, quantity)], **extra},
        )
        assert response.status_code == 201, response.text
        return response.json()["delivery_note"]

    async def test_no_stock_movement_and_advancements_transferred(self, client, sample_client, product_factory):
        product = await product_factory(quantity=100)
        note = await self._note(
            client,
            sample_client,
            product,
            5,
            advancements=[{"amount": "10", "payment_method": "espèces"}],
        )
        assert await get_stock(client, product.id) == 95

        response = await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})

        assert response.status_code == 201, response.text
        invoice = response.json()["invoice"]
        assert invoice["delivery_note_id"] == note["id"]
        assert Decimal(invoice["vat_rate"]) == Decimal("20")
        assert Decimal(invoice["total_ht"]) == Decimal("50")
        assert Decimal(invoice["total_ttc"]) == Decimal("60")
        assert Decimal(invoice["amount_paid"]) == Decimal("10")
        assert invoice["status"] == "partiellement_payée"
        assert await get_stock(client, product.id) == 95

        note_after = (await client.get(f"/api/v1/bon-livraisons/{note['id']}")).json()["delivery_note"]
        assert note_after["is_invoiced"] is True

        # Cancel: il BL torna fatturabile, il magazzino non cambia
        response = await client.patch(f"{BASE}/{invoice['id']}/cancel")
        assert response.status_code == 200
        assert await get_stock(client, product.id) == 95
        note_after = (await client.get(f"/api/v1/bon-livraisons/{note['id']}")).json()["delivery_note"]
        assert note_after["is_invoiced"] is False

    async def test_note_invoiced_only_once(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        note = await self._note(client, sample_client, product, 1)

        first = await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})
        second = await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})

        assert first.status_code == 201
        assert second.status_code == 400
        assert "déjà facturé" in second.json()["message"]

    async def test_cancelled_note_cannot_be_invoiced(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        note = await self._note(client, sample_client, product, 1)
        await client.patch(f"/api/v1/bon-livraisons/{note['id']}/status", json={"status": "annulée"})

        response = await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})

        assert response.status_code == 400

    async def test_invoiced_note_cannot_be_deleted(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        note = await self._note(client, sample_client, product, 2)
        await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})

        response = await client.delete(f"/api/v1/bon-livraisons/{note['id']}")

        assert response.status_code == 400
        assert await get_stock(client, product.id) == 8

    async def test_lines_of_invoice_from_note_are_fixed(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        note = await self._note(client, sample_client, product, 2)
        response = await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})
        invoice = response.json()["invoice"]

        response = await client.put(f"{BASE}/{invoice['id']}", json={"lines": [line(product, 1)]})

        assert response.status_code == 400
        assert await get_stock(client, product.id) == 8

    async def test_reinvoicing_after_cancel_counts_payment_once(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        note = await self._note(
            client,
            sample_client,
            product,
            1,
            advancements=[{"amount": "5", "payment_method": "espèces"}],
        )
        first = (await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})).json()["invoice"]

        response = await client.patch(f"{BASE}/{first['id']}/cancel")
        cancelled = response.json()["invoice"]
        # L'acconto appartiene al BL: nessun rimborso sulla fattura annullata
        assert Decimal(cancelled["amount_paid"]) == Decimal("0")
        assert cancelled["advancements"] == []

        response = await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})
        assert response.status_code == 201, response.text
        second = response.json()["invoice"]
        assert Decimal(second["amount_paid"]) == Decimal("5")
        assert [a["payment_method"] for a in second["advancements"]] == ["espèces"]

        first_after = (await client.get(f"{BASE}/{first['id']}")).json()["invoice"]
        assert Decimal(first_after["amount_paid"]) == Decimal("0")
        assert first_after["advancements"] == []

    async def test_restore_takes_back_note_payments(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        note = await self._note(
            client,
            sample_client,
            product,
            1,
            advancements=[{"amount": "5", "payment_method": "espèces"}],
        )
        invoice = (await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})).json()[
            "invoice"
        ]
        await pay(client, invoice["id"], "2", method="chèque")

        response = await client.patch(f"{BASE}/{invoice['id']}/cancel")
        refunds = [a for a in response.json()["invoice"]["advancements"] if a["payment_method"] == "avoir"]
        assert [Decimal(a["amount"]) for a in refunds] == [Decimal("2")]

        response = await client.patch(f"{BASE}/{invoice['id']}/status", json={"status": "brouillon"})

        assert response.status_code == 200, response.text
        restored = response.json()["invoice"]
        assert Decimal(restored["amount_paid"]) == Decimal("7")
        assert restored["status"] == "partiellement_payée"
        assert sorted(a["payment_method"] for a in restored["advancements"]) == ["chèque", "espèces"]


# ============================================================
# Aggiornamento
# ============================================================


class TestInvoiceUpdate:

    async def test_advancements_reconciled_by_id(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        response = await client.post(
            "/api/v1/bon-livraisons/",
            json={
                "client_id": str(sample_client.id),
                "lines": [line(product, 5)],
                "advancements": [{"amount": "10", "payment_method": "espèces"}],
            },
        )
        note = response.json()["delivery_note"]
        invoice = (await client.post(f"{BASE}/from-bonlivraison", json={"delivery_note_id": note["id"]})).json()[
            "invoice"
        ]
        await pay(client, invoice["id"], "5", method="chèque")
        invoice = (await pay(client, invoice["id"], "3", method="virement")).json()["invoice"]
        by_method = {a["payment_method"]: a for a in invoice["advancements"]}
        assert Decimal(invoice["amount_paid"]) == Decimal("18")

        # chèque aggiornato, virement eliminato, espèces (dal BL) staccato, carte nuova
        response = await client.put(
            f"{BASE}/{invoice['id']}",
            json={
                "advancements": [
                    {"id": by_method["chèque"]["id"], "amount": "8", "payment_method": "chèque"},
                    {"amount": "4", "payment_method": "carte_bancaire"},
                ]
            },
        )

        assert response.status_code == 200, response.text
        updated = response.json()["invoice"]
        assert sorted(a["payment_method"] for a in updated["advancements"]) == ["carte_bancaire", "chèque"]
        cheque = next(a for a in updated["advancements"] if a["payment_method"] == "chèque")
        assert cheque["id"] == by_method["chèque"]["id"]
        assert Decimal(cheque["amount"]) == Decimal("8")
        assert Decimal(updated["amount_paid"]) == Decimal("12")
        assert updated["status"] == "partiellement_payée"

        note_after = (await client.get(f"/api/v1/bon-livraisons/{note['id']}")).json()["delivery_note"]
        assert [a["id"] for a in note_after["advancements"]] == [by_method["espèces"]["id"]]
        assert note_after["advancements"][0]["invoice_id"] is None

    async def test_unknown_advancement_id_rejected(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        invoice = await create_invoice(client, sample_client, [line(product, 1)])

        response = await client.put(
            f"{BASE}/{invoice['id']}",
            json={
                "advancements": [
                    {"id": "00000000-0000-0000-0000-000000000001", "amount": "1", "payment_method": "espèces"}
                ]
            },
        )

        assert response.status_code == 400
        assert response.json()["error"] == "BUSINESS_VALIDATION_ERROR"

    async def test_lines_replaced_with_stock_adjustment(self, client, sample_client, product_factory):
        product = await product_factory(quantity=10)
        invoice = await create_invoice(client, sample_client, [line(product, 3)])

        response = await client.put(f"{BASE}/{invoice['id']}", json={"lines": [line(product, 5)]})

        assert response.status_code == 200, response.text
        assert Decimal(response.json()["invoice"]["total_ht"]) == Decimal("50")
        assert await get_stock(client, product.id) == 5

    async def test_line_update_with_insufficient_stock_rolls_back(self, client, sample_client, product_factory):
        product = await product_factory(quantity=5)
        invoice = await create_invoice(client, sample_client, [line(product, 3)])
        assert await get_stock(client, product.id) == 2

        response = await client.put(f"{BASE}/{invoice['id']}", json={"lines": [line(product, 6)]})

        assert response.status_code == 400
        assert response.json()["message"].startswith("Stock insuffisant pour")
        assert await get_stock(client, product.id) == 2
        unchanged = (await client.get(f"{BASE}/{invoice['id']}")).json()["invoice"]
        assert [item["quantity"] for item in unchanged["lines"]] == [3]
        assert Decimal(unchanged["total_ht"]) == Decimal("30")
