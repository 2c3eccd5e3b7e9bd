"""
Tests per i report: helper di calcolo e endpoint principali.
"""

import datetime
from decimal import Decimal

import pytest

from app.schemas.report import ReportGranularity
from app.services.report_service import aging_bucket, percent_change, period_key, rate, resolve_period
from conftest import line


# ============================================================
# Helper
# ============================================================


class TestHelpers:

    @pytest.mark.parametrize(
        "current, previous, expected",
        [
            (150, 100, 50.0),
            (50, 100, -50.0),
            (10, 0, 100.0),
            (0, 0, 0.0),
        ],
    )
    def test_percent_change(self, current, previous, expected):
        assert percent_change(current, previous) == expected

    def test_period_key(self):
        day = datetime.date(2024, 3, 15)
        assert period_key(day, ReportGranularity.DAY) == "2024-03-15"
        assert period_key(day, ReportGranularity.WEEK) == "2024-W11"
        assert period_key(day, ReportGranularity.MONTH) == "2024-03"
        assert period_key(day, ReportGranularity.YEAR) == "2024"

    @pytest.mark.parametrize("days, bucket", [(0, "0-30"), (30, "0-30"), (31, "31-60"), (75, "61-90"), (91, "90+")])
    def test_aging_bucket(self, days, bucket):
        assert aging_bucket(days) == bucket

    def test_rate(self):
        assert rate(Decimal("25"), Decimal("200")) == 12.5
        assert rate(Decimal("5"), Decimal("0")) == 0.0

    def test_default_period_starts_on_january_first(self):
        start, end = resolve_period(None, None)
        today = datetime.date.today()
        assert start == datetime.date(today.year, 1, 1)
        assert end == today


# ============================================================
# Endpoint
# ============================================================


async def test_dashboard(client, sample_client, product_factory):
    product = await product_factory(quantity=20, sale_price="10")
    invoice = (
        await client.post(
            "/api/v1/factures/",
            json={"client_id": str(sample_client.id), "lines": [line(product, 5)], "vat_rate": "20"},
        )
    ).json()["invoice"]
    await client.patch(
        f"/api/v1/factures/{invoice['id']}/payment",
        json={"amount": "30", "payment_method": "carte_bancaire"},
    )
    await client.post(
        "/api/v1/bon-livraisons/",
        json={"client_id": str(sample_client.id), "lines": [line(product, 2)]},
    )

    response = await client.get("/api/v1/reports/dashboard")

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["period"]["end_date"] == datetime.date.today().isoformat()
    totals = body["report"]["invoices"]["totals"]
    assert totals["count"] == 1
    assert Decimal(totals["total_ttc"]) == Decimal("60")
    assert Decimal(totals["total_paid"]) == Decimal("30")
    assert totals["collection_rate"] == 50.0
    assert body["report"]["delivery_notes"]["totals"]["count"] == 1
    assert body["report"]["top_clients_invoices"][0]["full_name"] == sample_client.full_name


async def test_bl_conversion(client, sample_client, product_factory):
    product = await product_factory(quantity=20)
    notes = []
    for _ in range(2):
        response = await client.post(
            "/api/v1/bon-livraisons/",
            json={"client_id": str(sample_client.id), "lines": [line(product, 1)]},
        )
        notes.append(response.json()["delivery_note"])
    await client.post("/api/v1/factures/from-bonlivraison", json={"delivery_note_id": notes[0]["id"]})

    response = await client.get("/api/v1/reports/bl-conversion")

    summary = response.json()["report"]["summary"]
    assert summary["total"] == 2
    assert summary["converted"] == 1
    assert summary["conversion_rate"] == 50.0
    assert [p["number"] for p in response.json()["report"]["pending"]] == [notes[1]["number"]]


async def test_tva_report(client, sample_client, product_factory):
    product = await product_factory(quantity=20, sale_price="100")
    for vat in ("20", "10"):
        await client.post(
            "/api/v1/factures/",
            json={"client_id": str(sample_client.id), "lines": [line(product, 1)], "vat_rate": vat},
        )

    response = await client.get("/api/v1/reports/tva", params={"granularity": "year"})

    report = response.json()["report"]
    assert report["granularity"] == "year"
    assert [row["vat_rate"] for row in report["by_rate"]] == ["10.00", "20.00"]
    assert Decimal(report["grand_total"]["total_vat"]) == Decimal("30")


async def test_inverted_period_rejected(client):
    response = await client.get(
        "/api/v1/reports/comparison",
        params={"start_date": "2024-06-01", "end_date": "2024-01-01"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "BUSINESS_VALIDATION_ERROR"


async def test_empty_comparison(client):
    response = await client.get(
        "/api/v1/reports/comparison",
        params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
    )

    assert response.status_code == 200
    changes = response.json()["report"]["changes"]
    assert changes["invoices"]["count_change"] == 0.0


def days_ago(days: int) -> str:
    return (datetime.date.today() - datetime.timedelta(days=days)).isoformat()


async def invoice_for(client, customer, lines, **extra) -> dict:
    response = await client.post(
        "/api/v1/factures/",
        json={"client_id": str(customer.id), "lines": lines, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["invoice"]


async def note_for(client, customer, lines, **extra) -> dict:
    response = await client.post(
        "/api/v1/bon-livraisons/",
        json={"client_id": str(customer.id), "lines": lines, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["delivery_note"]


async def pay(client, invoice_id, amount, method="espèces"):
    response = await client.patch(
        f"/api/v1/factures/{invoice_id}/payment",
        json={"amount": amount, "payment_method": method},
    )
    assert response.status_code == 200, response.text


async def test_revenue_over_time_by_day(client, sample_client, product_factory):
    product = await product_factory(quantity=100)
    await invoice_for(client, sample_client, [line(product, 2)], invoice_date=days_ago(40))
    recent = await invoice_for(client, sample_client, [line(product, 1)])
    await pay(client, recent["id"], "10")
    await note_for(
        client,
        sample_client,
        [line(product, 3)],
        advancements=[{"amount": "5", "payment_method": "espèces"}],
    )

    response = await client.get(
        "/api/v1/reports/revenue-over-time",
        params={"granularity": "day", "start_date": days_ago(60)},
    )

    assert response.status_code == 200, response.text
    report = response.json()["report"]
    today = datetime.date.today().isoformat()
    assert report["granularity"] == "day"
    assert [row["period"] for row in report["invoices"]] == [days_ago(40), today]
    assert [Decimal(row["total_ttc"]) for row in report["invoices"]] == [Decimal("20"), Decimal("10")]
    assert [Decimal(row["paid"]) for row in report["invoices"]] == [Decimal("0"), Decimal("10")]
    assert [row["period"] for row in report["delivery_notes"]] == [today]
    assert Decimal(report["delivery_notes"][0]["total_ht"]) == Decimal("30")
    assert [(row["period"], row["count"]) for row in report["payments"]] == [(today, 2)]
    assert Decimal(report["payments"][0]["amount"]) == Decimal("15")


async def test_payment_status_aging(client, sample_client, product_factory):
    product = await product_factory(quantity=100)
    old = await invoice_for(client, sample_client, [line(product, 2)], invoice_date=days_ago(45))
    await pay(client, old["id"], "5", method="chèque")
    unpaid = await invoice_for(client, sample_client, [line(product, 1)])
    settled = await invoice_for(client, sample_client, [line(product, 1)])
    await pay(client, settled["id"], "10")
    note = await note_for(
        client,
        sample_client,
        [line(product, 3)],
        advancements=[{"amount": "5", "payment_method": "espèces"}],
    )

    response = await client.get("/api/v1/reports/payment-status", params={"start_date": days_ago(100)})

    assert response.status_code == 200, response.text
    report = response.json()["report"]
    invoices = {row["bucket"]: row for row in report["invoices"]["aging"]}
    assert list(invoices) == ["0-30", "31-60", "61-90", "90+"]
    assert [item["number"] for item in invoices["31-60"]["items"]] == [old["number"]]
    assert Decimal(invoices["31-60"]["total_remaining"]) == Decimal("15")
    assert [item["number"] for item in invoices["0-30"]["items"]] == [unpaid["number"]]
    assert invoices["61-90"]["count"] == 0
    assert report["invoices"]["count"] == 2
    assert Decimal(report["invoices"]["total_outstanding"]) == Decimal("25")

    notes = {row["bucket"]: row for row in report["delivery_notes"]["aging"]}
    assert [item["number"] for item in notes["0-30"]["items"]] == [note["number"]]
    assert Decimal(notes["0-30"]["items"][0]["remaining"]) == Decimal("25")

    assert report["combined"]["count"] == 3
    assert Decimal(report["combined"]["total_outstanding"]) == Decimal("50")
    methods = report["payment_methods"]
    assert methods["espèces"]["count"] == 2
    assert Decimal(methods["espèces"]["total"]) == Decimal("15")
    assert Decimal(methods["chèque"]["total"]) == Decimal("5")


async def test_clients_ranking(client, sample_client, product_factory):
    product = await product_factory(quantity=100)
    other = (await client.post("/api/v1/clients/", json={"full_name": "Atelier Nord"})).json()["client"]
    top = await invoice_for(client, sample_client, [line(product, 3)])
    await pay(client, top["id"], "15")
    await note_for(client, sample_client, [line(product, 2)])
    response = await client.post(
        "/api/v1/factures/",
        json={"client_id": other["id"], "lines": [line(product, 1)]},
    )
    assert response.status_code == 201, response.text

    response = await client.get("/api/v1/reports/clients")

    assert response.status_code == 200, response.text
    report = response.json()["report"]
    assert report["count"] == 2
    assert [row["full_name"] for row in report["clients"]] == [sample_client.full_name, "Atelier Nord"]
    first = report["clients"][0]
    assert first["invoice_count"] == 1
    assert Decimal(first["total_ttc"]) == Decimal("30")
    assert Decimal(first["total_due"]) == Decimal("15")
    assert first["payment_rate"] == 50.0
    assert first["delivery_note_count"] == 1
    assert Decimal(first["delivery_note_total"]) == Decimal("20")

    response = await client.get("/api/v1/reports/clients", params={"limit": 1})
    assert response.json()["report"]["count"] == 1


async def test_products_ranking(client, sample_client, product_factory):
    cheap = await product_factory(quantity=100, sale_price="10")
    dear = await product_factory(quantity=100, sale_price="25")
    await note_for(client, sample_client, [line(cheap, 4)])
    await note_for(client, sample_client, [line(cheap, 2, unit_price="12"), line(dear, 1)])
    cancelled = await note_for(client, sample_client, [line(dear, 5)])
    response = await client.patch(
        f"/api/v1/bon-livraisons/{cancelled['id']}/status",
        json={"status": "annulée"},
    )
    assert response.status_code == 200, response.text

    response = await client.get("/api/v1/reports/products")

    assert response.status_code == 200, response.text
    report = response.json()["report"]
    assert [row["reference"] for row in report["products"]] == [cheap.reference, dear.reference]
    first, second = report["products"]
    assert first["line_count"] == 2
    assert first["total_quantity"] == 6
    assert Decimal(first["total_revenue"]) == Decimal("64")
    assert Decimal(first["average_unit_price"]) == Decimal("11")
    assert second["total_quantity"] == 1
    assert Decimal(second["total_revenue"]) == Decimal("25")


async def test_comparison_with_previous_period(client, sample_client, product_factory):
    product = await product_factory(quantity=100)
    await invoice_for(client, sample_client, [line(product, 2)], invoice_date=days_ago(15))
    current = await invoice_for(client, sample_client, [line(product, 3)])
    await pay(client, current["id"], "15")

    response = await client.get(
        "/api/v1/reports/comparison",
        params={"start_date": days_ago(9), "end_date": days_ago(0)},
    )

    assert response.status_code == 200, response.text
    report = response.json()["report"]
    assert report["periods"]["previous"] == {"start_date": days_ago(19), "end_date": days_ago(10)}
    assert report["current"]["invoices"]["count"] == 1
    assert report["previous"]["invoices"]["count"] == 1
    assert Decimal(report["previous"]["invoices"]["total_ttc"]) == Decimal("20")
    changes = report["changes"]["invoices"]
    assert changes["count_change"] == 0.0
    assert changes["total_ttc_change"] == 50.0
    assert changes["total_paid_change"] == 100.0
    assert report["changes"]["delivery_notes"]["count_change"] == 0.0
