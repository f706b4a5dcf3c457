import datetime as dt
from decimal import Decimal

from app.schemas.common import ORMModel


class DailySpendPointOut(ORMModel):
    date: dt.date
    amount: Decimal
    rolling7: Decimal


class RegimeShiftOut(ORMModel):
    detected: bool
    rising: bool
    shift_start_date: dt.date | None = None
    baseline_avg: Decimal
    recent_avg: Decimal
    change_pct: Decimal


class RegimeDriverOut(ORMModel):
    name: str
    baseline_per_day: Decimal
    recent_per_day: Decimal
    delta_per_day: Decimal


class NewRecurringOut(ORMModel):
    category: str
    comment: str
    recent_count: int
    recent_total: Decimal
    first_seen: dt.date


class RegimeReportOut(ORMModel):
    as_of: dt.date
    daily_spend: list[DailySpendPointOut]
    shift: RegimeShiftOut
    drivers: list[RegimeDriverOut]
    new_recurring: list[NewRecurringOut]
