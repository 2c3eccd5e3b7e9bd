"""
Tests per il ledger di magazzino (StockService).
"""

import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models import StockMovement
from app.schemas.product import StockDocumentType, StockOperation
from app.services.stock_service import aggregate_quantities, stock_service


def test_aggregate_quantities_sums_repeated_products():
    a, b = uuid.uuid4(), uuid.uuid4()
    assert aggregate_quantities([(a, 2), (b, 1), (a, 3)]) == {a: 5, b: 1}


class TestDocumentMovements:

    async def test_decrement_records_movements(self, db, product_factory):
        product = await product_factory(quantity=10)
        document_id = uuid.uuid4()

        await stock_service.decrement_document(
            db, [(product.id, 4)], StockDocumentType.DELIVERY_NOTE, document_id, "BL0001"
        )

        assert product.quantity == 6
        movements = (await db.execute(select(StockMovement))).scalars().all()
        assert len(movements) == 1
        assert movements[0].delta == -4
        assert movements[0].quantity_before == 10
        assert movements[0].quantity_after == 6

    async def test_decrement_is_all_or_nothing(self, db, product_factory):
        """Se una riga non è disponibile nessuna giacenza viene toccata."""
        plenty = await product_factory(quantity=50)
        scarce = await product_factory(quantity=2, designation="Câble HDMI")

        with pytest.raises(BusinessValidationError) as exc_info:
            await stock_service.decrement_document(
                db,
                [(plenty.id, 5), (scarce.id, 3)],
                StockDocumentType.INVOICE,
                uuid.uuid4(),
                "FAC0001",
            )

        assert "Stock insuffisant pour Câble HDMI. Stock disponible: 2" in str(exc_info.value)
        assert plenty.quantity == 50
        assert scarce.quantity == 2

    async def test_repeated_product_lines_are_aggregated(self, db, product_factory):
        product = await product_factory(quantity=5)

        with pytest.raises(BusinessValidationError):
            await stock_service.decrement_document(
                db,
                [(product.id, 3), (product.id, 3)],
                StockDocumentType.DELIVERY_NOTE,
                uuid.uuid4(),
                "BL0001",
            )
        assert product.quantity == 5

    async def test_unknown_product(self, db):
        with pytest.raises(NotFoundError):
            await stock_service.decrement_document(
                db, [(uuid.uuid4(), 1)], StockDocumentType.DELIVERY_NOTE, uuid.uuid4(), "BL0001"
            )

    async def test_reverse_document_restores_net_effect(self, db, product_factory):
        product = await product_factory(quantity=20)
        document_id = uuid.uuid4()

        await stock_service.decrement_document(
            db, [(product.id, 7)], StockDocumentType.DELIVERY_NOTE, document_id, "BL0001"
        )
        applied = await stock_service.reverse_document(
            db, StockDocumentType.DELIVERY_NOTE, document_id, "BL0001", reason="cancel"
        )

        assert applied == {product.id: 7}
        assert product.quantity == 20

        # Un secondo storno non ha più nulla da annullare
        assert await stock_service.reverse_document(
            db, StockDocumentType.DELIVERY_NOTE, document_id, "BL0001", reason="cancel"
        ) == {}
        assert product.quantity == 20

    async def test_reverse_with_clamp_stops_at_zero(self, db, product_factory):
        product = await product_factory(quantity=0)
        document_id = uuid.uuid4()

        await stock_service.increment_document(
            db, [(product.id, 10)], StockDocumentType.PURCHASE_ORDER, document_id, "BAC0001"
        )
        # Nel frattempo 8 pezzi escono dal magazzino
        await stock_service.adjust(db, product.id, StockOperation.SUBTRACT, 8)

        applied = await stock_service.reverse_document(
            db, StockDocumentType.PURCHASE_ORDER, document_id, "BAC0001", reason="cancel", clamp=True
        )

        assert applied == {product.id: -2}
        assert product.quantity == 0

    async def test_reverse_without_clamp_refuses_negative_stock(self, db, product_factory):
        product = await product_factory(quantity=0)
        document_id = uuid.uuid4()

        await stock_service.increment_document(
            db, [(product.id, 3)], StockDocumentType.CREDIT_NOTE, document_id, "BAV0001"
        )
        await stock_service.adjust(db, product.id, StockOperation.SET, 1)

        with pytest.raises(BusinessValidationError):
            await stock_service.reverse_document(
                db, StockDocumentType.CREDIT_NOTE, document_id, "BAV0001", reason="cancel"
            )


class TestManualAdjustments:

    async def test_set(self, db, product_factory):
        product = await product_factory(quantity=10)

        product, movement = await stock_service.adjust(db, product.id, StockOperation.SET, 25)

        assert product.quantity == 25
        assert movement.delta == 15
        assert movement.document_type == StockDocumentType.MANUAL.value
        assert movement.reason == "adjustment_set"

    async def test_add(self, db, product_factory):
        product = await product_factory(quantity=10)
        product, movement = await stock_service.adjust(db, product.id, StockOperation.ADD, 5, notes="Inventaire")
        assert product.quantity == 15
        assert movement.notes == "Inventaire"

    async def test_set_same_value_records_nothing(self, db, product_factory):
        product = await product_factory(quantity=10)
        product, movement = await stock_service.adjust(db, product.id, StockOperation.SET, 10)
        assert product.quantity == 10
        assert movement is None

    async def test_subtract_below_zero_refused(self, db, product_factory):
        product = await product_factory(quantity=3)

        with pytest.raises(BusinessValidationError):
            await stock_service.adjust(db, product.id, StockOperation.SUBTRACT, 4)
        assert product.quantity == 3
