from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from app.services.ledger import (
    CategoryWindowTotals,
    RecurringCandidate,
    category_window_totals,
    daily_expense_totals,
    recurring_candidates,
)
from app.utils.decimal_math import money, pct


logger = logging.getLogger("fintrack.regime")

CHART_DAYS = 90
BASELINE_DAYS = 56
RECENT_DAYS = 14
ROLLING_WINDOW = 7
SHIFT_SCAN_DAYS = 45
SHIFT_THRESHOLD_PCT = Decimal("25")
DRIVER_MIN_DELTA = Decimal("0.01")
MAX_DRIVERS = 6
RECURRING_RECENT_DAYS = 30
RECURRING_HISTORY_DAYS = 120


@dataclass(frozen=True)
class DailySpendPoint:
    date: date
    amount: Decimal
    rolling7: Decimal


@dataclass(frozen=True)
class RegimeShift:
    detected: bool
    rising: bool
    shift_start_date: date | None
    baseline_avg: Decimal
    recent_avg: Decimal
    change_pct: Decimal


@dataclass(frozen=True)
class RegimeDriver:
    name: str
    baseline_per_day: Decimal
    recent_per_day: Decimal
    delta_per_day: Decimal


@dataclass(frozen=True)
class RegimeReport:
    as_of: date
    daily_spend: list[DailySpendPoint]
    shift: RegimeShift
    drivers: list[RegimeDriver]
    new_recurring: list[RecurringCandidate]


def _mean(values: list[Decimal]) -> Decimal:
    if not values:
        return Decimal("0")
    return sum(values, Decimal("0")) / Decimal(len(values))


def build_daily_series(
    totals: dict[date, Decimal],
    *,
    end: date,
    days: int = CHART_DAYS,
    window: int = ROLLING_WINDOW,
) -> list[DailySpendPoint]:
    """Zero-filled daily expense series ending at ``end`` with a trailing rolling mean.

    The first ``window - 1`` points average over the days available so far.
    """
    start = end - timedelta(days=days - 1)
    amounts = [money(totals.get(start + timedelta(days=offset), 0)) for offset in range(days)]
    points: list[DailySpendPoint] = []
    for index, amount in enumerate(amounts):
        trailing = amounts[max(0, index - window + 1) : index + 1]
        points.append(
            DailySpendPoint(
                date=start + timedelta(days=index),
                amount=amount,
                rolling7=money(_mean(trailing)),
            )
        )
    return points


def detect_regime_shift(
    series: list[DailySpendPoint],
    *,
    baseline_days: int = BASELINE_DAYS,
    recent_days: int = RECENT_DAYS,
    threshold_pct: Decimal = SHIFT_THRESHOLD_PCT,
    scan_days: int = SHIFT_SCAN_DAYS,
) -> RegimeShift:
    size = len(series)
    baseline = series[max(0, size - recent_days - baseline_days) : max(0, size - recent_days)]
    recent = series[max(0, size - recent_days) :]
    baseline_avg = _mean([point.amount for point in baseline])
    recent_avg = _mean([point.amount for point in recent])
    change_pct = (recent_avg - baseline_avg) / baseline_avg * Decimal("100") if baseline_avg > 0 else Decimal("0")

    detected = baseline_avg > 0 and abs(change_pct) >= threshold_pct
    rising = recent_avg >= baseline_avg
    direction = threshold_pct if rising else -threshold_pct
    target = baseline_avg * (Decimal("1") + direction / Decimal("100"))

    shift_start_date: date | None = None
    if detected:
        for point in series[max(0, size - scan_days) :]:
            if (rising and point.rolling7 >= target) or (not rising and point.rolling7 <= target):
                shift_start_date = point.date
                break

    return RegimeShift(
        detected=detected,
        rising=rising,
        shift_start_date=shift_start_date,
        baseline_avg=money(baseline_avg),
        recent_avg=money(recent_avg),
        change_pct=pct(change_pct),
    )


def attribute_drivers(
    rows: list[CategoryWindowTotals],
    *,
    baseline_days: int = BASELINE_DAYS,
    recent_days: int = RECENT_DAYS,
    limit: int = MAX_DRIVERS,
) -> list[RegimeDriver]:
    drivers: list[RegimeDriver] = []
    for row in rows:
        baseline_per_day = row.baseline_total / Decimal(baseline_days)
        recent_per_day = row.recent_total / Decimal(recent_days)
        delta = recent_per_day - baseline_per_day
        if abs(delta) <= DRIVER_MIN_DELTA:
            continue
        drivers.append(
            RegimeDriver(
                name=row.name,
                baseline_per_day=money(baseline_per_day),
                recent_per_day=money(recent_per_day),
                delta_per_day=money(delta),
            )
        )
    drivers.sort(key=lambda driver: abs(driver.delta_per_day), reverse=True)
    return drivers[:limit]


def build_regime_report(db: Session, today: date) -> RegimeReport:
    chart_start = today - timedelta(days=CHART_DAYS - 1)
    series = build_daily_series(daily_expense_totals(db, chart_start, today), end=today)
    shift = detect_regime_shift(series)
    if shift.detected:
        logger.info(
            "Spending regime shift (%s) detected as of %s: baseline %s/day, recent %s/day (%s%%).",
            "rising" if shift.rising else "falling",
            today,
            shift.baseline_avg,
            shift.recent_avg,
            shift.change_pct,
        )

    window_rows = category_window_totals(
        db,
        baseline_start=today - timedelta(days=RECENT_DAYS + BASELINE_DAYS - 1),
        recent_start=today - timedelta(days=RECENT_DAYS - 1),
        end=today,
    )
    new_recurring = recurring_candidates(
        db,
        history_start=today - timedelta(days=RECURRING_HISTORY_DAYS - 1),
        recent_start=today - timedelta(days=RECURRING_RECENT_DAYS - 1),
        end=today,
    )
    return RegimeReport(
        as_of=today,
        daily_spend=series,
        shift=shift,
        drivers=attribute_drivers(window_rows),
        new_recurring=new_recurring,
    )
