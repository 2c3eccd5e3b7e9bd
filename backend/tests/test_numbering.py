"""
Tests per la numerazione dei documenti.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import DeliveryNote
from app.services.numbering import DELIVERY_NOTE_PREFIX, INVOICE_PREFIX, generate_number, next_number
from conftest import line


# ============================================================
# Tests for next_number
# ============================================================


class TestNextNumber:

    def test_first_number(self):
        assert next_number("BL", None) == "BL0001"

    def test_increment(self):
        assert next_number("BL", "BL0009") == "BL0010"
        assert next_number("FAC", "FAC0041") == "FAC0042"

    def test_non_numeric_suffix_restarts(self):
        assert next_number("DEV", "DEV-ABCD") == "DEV0001"

    def test_custom_width(self):
        assert next_number("BAV", "BAV000123", width=6) == "BAV000124"

    def test_overflow_keeps_growing(self):
        # Oltre le 4 cifre il progressivo si allarga
        assert next_number("BL", "BL9999") == "BL10000"


# ============================================================
# Tests for generate_number
# ============================================================


class TestGenerateNumber:

    @pytest.fixture
    def mock_db(self):
        db = AsyncMock(spec=AsyncSession)
        db.execute = AsyncMock()
        return db

    async def test_uses_last_number(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = "FAC0007"
        mock_db.execute.return_value = result

        assert await generate_number(mock_db, DeliveryNote, INVOICE_PREFIX) == "FAC0008"
        mock_db.execute.assert_awaited_once()

    async def test_empty_table(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result

        assert await generate_number(mock_db, DeliveryNote, DELIVERY_NOTE_PREFIX) == "BL0001"


# ============================================================
# Numerazione via API
# ============================================================


async def test_delivery_notes_numbered_in_sequence(client, sample_client, product_factory):
    product = await product_factory(quantity=50)

    numbers = []
    for _ in range(3):
        response = await client.post(
            "/api/v1/bon-livraisons/",
            json={"client_id": str(sample_client.id), "lines": [line(product, 1)]},
        )
        assert response.status_code == 201, response.text
        numbers.append(response.json()["delivery_note"]["number"])

    assert numbers == ["BL0001", "BL0002", "BL0003"]
