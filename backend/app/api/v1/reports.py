"""
Router per i Report
Progetto: Gestion Commerciale (Back-office)

Endpoints in sola lettura. Ogni report accetta start_date ed end_date;
se omessi il periodo va dal 1 gennaio dell'anno corrente a oggi.
"""

import datetime
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import BusinessValidationError
from app.schemas.report import ReportGranularity, ReportPeriod, ReportResponse
from app.services.report_service import report_service, resolve_period

router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

Period = Tuple[datetime.date, datetime.date]


def get_period(
    start_date: Optional[datetime.date] = Query(None, description="Inizio periodo"),
    end_date: Optional[datetime.date] = Query(None, description="Fine periodo"),
) -> Period:
    """
    Dependency che risolve il periodo del report.

    Raises:
        BusinessValidationError: Se start_date è successiva a end_date
    """
    start, end = resolve_period(start_date, end_date)
    if start > end:
        raise BusinessValidationError("La date de début doit précéder la date de fin")
    return start, end


def _report(period: Period, report: dict) -> ReportResponse:
    start, end = period
    return ReportResponse(period=ReportPeriod(start_date=start, end_date=end), report=report)


@router.get("/dashboard", response_model=ReportResponse, summary="Cruscotto")
async def get_dashboard(
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    """KPI di fatture e BL, tasso di incasso, acconti e migliori clienti."""
    return _report(period, await report_service.dashboard(db, *period))


@router.get("/revenue-over-time", response_model=ReportResponse, summary="Fatturato nel tempo")
async def get_revenue_over_time(
    granularity: ReportGranularity = Query(ReportGranularity.MONTH),
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    return _report(period, await report_service.revenue_over_time(db, *period, granularity=granularity))


@router.get("/payment-status", response_model=ReportResponse, summary="Situazione incassi")
async def get_payment_status(
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    """Crediti aperti per fascia di anzianità e ripartizione per modalità di pagamento."""
    return _report(period, await report_service.payment_status(db, *period))


@router.get("/clients", response_model=ReportResponse, summary="Classifica clienti")
async def get_client_ranking(
    limit: int = Query(10, ge=1, le=100),
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    return _report(period, await report_service.clients(db, *period, limit=limit))


@router.get("/products", response_model=ReportResponse, summary="Classifica prodotti")
async def get_product_ranking(
    limit: int = Query(10, ge=1, le=100),
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    return _report(period, await report_service.products(db, *period, limit=limit))


@router.get("/comparison", response_model=ReportResponse, summary="Confronto con il periodo precedente")
async def get_comparison(
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    return _report(period, await report_service.comparison(db, *period))


@router.get("/tva", response_model=ReportResponse, summary="Report TVA")
async def get_tva_report(
    granularity: ReportGranularity = Query(ReportGranularity.MONTH),
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    return _report(period, await report_service.tva(db, *period, granularity=granularity))


@router.get("/bl-conversion", response_model=ReportResponse, summary="Conversione BL in fatture")
async def get_bl_conversion(
    period: Period = Depends(get_period),
    db: AsyncSession = Depends(get_db),
):
    return _report(period, await report_service.bl_conversion(db, *period))
