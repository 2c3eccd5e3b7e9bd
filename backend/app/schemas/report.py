"""
Schemas Pydantic per i Report
Progetto: Gestion Commerciale (Back-office)
"""

import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from app.schemas.common import ApiResponse


class ReportGranularity(str, Enum):
    """Raggruppamento temporale dei report."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class ReportPeriod(BaseModel):
    start_date: datetime.date
    end_date: datetime.date


class ReportResponse(ApiResponse):
    """Envelope comune: periodo analizzato + dati del report."""
    period: ReportPeriod
    report: dict[str, Any]
