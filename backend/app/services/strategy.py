from __future__ import annotations

import calendar
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Literal

from sqlalchemy.orm import Session

from app.core.dna import CategoryRef, FinancialDNA, get_dna
from app.db.session import SessionLocal
from app.services.ledger import (
    CategoryStat,
    category_stats,
    month_expense_rows,
    month_income_and_expenses,
    previous_month_start,
    top_comment_groups,
)
from app.utils.decimal_math import floor_to, money, pct, rounded, safe_ratio


logger = logging.getLogger("fintrack.strategy")

AdaStatus = Literal["optimal", "warning", "crisis"]
Archetype = Literal["Weekend Leak", "Impulse Spike", "Steady", "None"]

IRON_COVERED_RATIO = Decimal("0.9")
MILESTONE_CHUNK = Decimal("500")
RECOVERY_BONUS_RATE = Decimal("0.05")
DEBT_CAPACITY_DAYS = Decimal("30")
SENSITIVITY_STEP = Decimal("100")
WEEKEND_LEAK_MIN_FLEX = Decimal("500")
WEEKEND_LEAK_SHARE = Decimal("0.4")
LIFESTYLE_RATIO_B = Decimal("30")
LIFESTYLE_RATIO_C = Decimal("50")
TOP_LEAKS = 3
EMERGENCY_INCOME = "Emergency Income Needed"
UNLABELED = "Unlabeled"

SWAPS = (
    "Skip the delivery; try that complex recipe you've been eyeing. +40 DH win.",
    "Go for a 30-min run instead of browsing online stores. Dopamine is free.",
    "Organize your wardrobe; you'll find 'new' clothes you forgot you had.",
    "Read 10 pages of a book to kill the scroll-and-shop urge.",
    "Call a friend for 20 mins instead of stress-eating outside.",
)


@dataclass(frozen=True)
class MonthClock:
    month_start: date
    day_of_month: int
    days_in_month: int
    days_remaining: int

    @property
    def label(self) -> str:
        return f"{self.month_start.year:04d}-{self.month_start.month:02d}"


@dataclass(frozen=True)
class Velocity:
    time_pct: Decimal
    money_pct: Decimal
    status: Literal["ahead", "behind"]


@dataclass(frozen=True)
class IronBufferItem:
    id: int | None
    name: str
    budget: Decimal
    spent: Decimal
    is_covered: bool
    remaining: Decimal


@dataclass(frozen=True)
class Theft:
    total: Decimal
    impact_days: int
    impact_narrative: str
    dopamine_swap: str


@dataclass(frozen=True)
class LeakItem:
    comment: str
    count: int
    total: Decimal


@dataclass(frozen=True)
class DebtItem:
    name: str
    budget: Decimal
    paid: Decimal


@dataclass(frozen=True)
class Allocation:
    essential: Decimal
    lifestyle: Decimal
    score: str
    ratio: Decimal
    ada_modifier: bool
    trend: Literal["improving", "worsening", "stable"]


@dataclass(frozen=True)
class Freedom:
    monthly_debt_target: Decimal
    actual_debt_paid: Decimal
    survival_neutral_debt: Decimal
    sustainability_score: Decimal


@dataclass(frozen=True)
class Recovery:
    deficit_carry_over: Decimal
    total_deficit: Decimal
    status: Literal["neutral", "recovering"]
    months_to_recover: Decimal
    sensitivity: Decimal
    recovery_target: Decimal
    recovery_bonus: Decimal


@dataclass(frozen=True)
class Revenue:
    side_hustle_earned: Decimal
    next_boost_value: Decimal


@dataclass(frozen=True)
class GhostBuffer:
    amount: Decimal
    rate: Decimal


@dataclass(frozen=True)
class Liquidity:
    status: Literal["secure", "lockdown"]
    cash_remaining: Decimal
    iron_remaining: Decimal
    coverage_ratio: Decimal
    is_hard_locked: bool
    buffer_rebound_pct: Decimal
    next_milestone: Decimal
    milestone_progress: Decimal


@dataclass(frozen=True)
class Forecast:
    next_month_readiness: Decimal
    status: Literal["secure", "danger"]
    deferred_bills_suggestion: list[str]


@dataclass(frozen=True)
class Behavior:
    archetype: Archetype
    high_risk_days: list[str]


@dataclass(frozen=True)
class StrategicMetrics:
    as_of: datetime
    month: str
    ada: Decimal
    ada_status: AdaStatus
    velocity: Velocity
    iron_buffer: list[IronBufferItem]
    theft: Theft
    unknowns: list[LeakItem]
    debt: list[DebtItem]
    allocation: Allocation
    freedom: Freedom
    recovery: Recovery
    revenue: Revenue
    ghost_buffer: GhostBuffer
    liquidity: Liquidity
    forecast: Forecast
    behavior: Behavior


def month_clock(now: date) -> MonthClock:
    days_in_month = calendar.monthrange(now.year, now.month)[1]
    return MonthClock(
        month_start=now.replace(day=1),
        day_of_month=now.day,
        days_in_month=days_in_month,
        days_remaining=max(1, days_in_month - now.day + 1),
    )


def adjusted_daily_allowance(
    *,
    income: Decimal,
    side_hustle_earned: Decimal,
    fixed_budget: Decimal,
    debt_budget: Decimal,
    volatility_reserve: Decimal,
    deficit_carry_over: Decimal,
    flex_spent: Decimal,
    days_remaining: int,
) -> Decimal:
    """Money safely spendable per remaining day, before any liquidity lock.

    Returned unrounded; only the reported figure is quantized to cents.
    """
    effective_disposable = (
        (income + side_hustle_earned) - fixed_budget - debt_budget - volatility_reserve - deficit_carry_over
    )
    return (effective_disposable - flex_spent) / Decimal(max(1, days_remaining))


def apply_liquidity_lock(ada: Decimal, *, is_hard_locked: bool) -> Decimal:
    if is_hard_locked and ada > 0:
        return Decimal("0")
    return ada


def classify_ada(ada: Decimal, *, is_hard_locked: bool, threshold: Decimal) -> AdaStatus:
    if is_hard_locked or ada < 0:
        return "crisis"
    if ada < threshold:
        return "warning"
    return "optimal"


def projected_overspend(ada: Decimal, days_remaining: int) -> Decimal:
    if ada >= 0:
        return money(0)
    return money(abs(ada * Decimal(days_remaining)))


def months_to_recover(total_deficit: Decimal, recovery_target_income: Decimal) -> Decimal:
    if total_deficit <= 0 or recovery_target_income <= 0:
        return rounded(0, 1)
    return rounded(total_deficit / recovery_target_income, 1)


def recovery_sensitivity(recovery_target_income: Decimal) -> Decimal:
    # Days added to the recovery horizon per 100 DH of discretionary spend.
    if recovery_target_income <= 0:
        return rounded(0, 1)
    return rounded(SENSITIVITY_STEP / recovery_target_income * Decimal("30"), 1)


def suggest_deferrals(shortfall: Decimal, candidates: list[tuple[str, Decimal]]) -> list[str]:
    """Greedily pick the largest bills until the shortfall is covered."""
    needed = abs(shortfall)
    picked: list[str] = []
    for name, budget in sorted(candidates, key=lambda item: item[1], reverse=True):
        if needed <= 0:
            break
        picked.append(name)
        needed -= budget
    if needed > 0:
        picked.append(EMERGENCY_INCOME)
    return picked


def classify_behavior(flex_expenses: list[tuple[date, Decimal]]) -> Behavior:
    buckets = [Decimal("0")] * 7
    for tx_date, amount in flex_expenses:
        # 0 = Sunday .. 6 = Saturday
        buckets[tx_date.isoweekday() % 7] += abs(amount)
    total_flex = sum(buckets, Decimal("0"))
    weekend_spend = buckets[0] + buckets[6]
    if total_flex > WEEKEND_LEAK_MIN_FLEX and weekend_spend / total_flex > WEEKEND_LEAK_SHARE:
        return Behavior(archetype="Weekend Leak", high_risk_days=["Saturday", "Sunday"])
    return Behavior(archetype="None", high_risk_days=[])


def allocation_grade(lifestyle_ratio: Decimal, ada: Decimal) -> str:
    if ada < 0:
        return "F"
    if lifestyle_ratio > LIFESTYLE_RATIO_C:
        return "C"
    if lifestyle_ratio > LIFESTYLE_RATIO_B:
        return "B"
    return "A"


def milestone_ladder(cash_remaining: Decimal, iron_remaining: Decimal) -> tuple[Decimal, Decimal]:
    gap = max(Decimal("0"), iron_remaining - cash_remaining)
    if gap <= 0:
        return money(0), rounded(100, 0)
    remainder = gap % MILESTONE_CHUNK
    progress = (Decimal("1") - remainder / MILESTONE_CHUNK) * Decimal("100")
    return money(floor_to(gap, MILESTONE_CHUNK)), rounded(progress, 0)


def impact_narrative(theft_total: Decimal, day_of_month: int) -> str:
    narratives = [
        f"You could have paid for {int(floor_to(theft_total / Decimal('1150'), Decimal('1')))} months of School.",
        f"This waste is equal to {int(rounded(theft_total / Decimal('45'), 0))} full days of healthy food.",
        f"This could have funded {rounded(theft_total / Decimal('250'), 1)} doctor visits.",
        "You are trading your Future Security for temporary dopamine.",
    ]
    return narratives[day_of_month % len(narratives)]


def dopamine_swap(top_leak_name: str | None, day_of_month: int) -> str:
    if top_leak_name is None:
        return SWAPS[day_of_month % len(SWAPS)]
    if "Food" in top_leak_name:
        return SWAPS[0]
    if "Shopping" in top_leak_name:
        return SWAPS[2]
    return SWAPS[1]


def _as_datetime(now: datetime | date | None) -> datetime:
    if now is None:
        return datetime.now()
    if isinstance(now, datetime):
        return now
    return datetime.combine(now, time.min)


def _stats_loader(db: Session, month_start: date) -> Callable[[CategoryRef], CategoryStat]:
    cache: dict[CategoryRef, CategoryStat] = {}

    def load(category_id: CategoryRef) -> CategoryStat:
        if category_id not in cache:
            cache[category_id] = category_stats(db, category_id, month_start)
        return cache[category_id]

    return load


def _build_metrics(db: Session, as_of: datetime, dna: FinancialDNA) -> StrategicMetrics:
    clock = month_clock(as_of.date())
    days_remaining = clock.days_remaining
    stats = _stats_loader(db, clock.month_start)

    monthly_income = stats(dna.income_category_id).budget
    side_hustle_earned = stats(dna.side_hustle_category_id).earned
    ghost_buffer = money(monthly_income * dna.volatility_reserve_rate)

    iron_buffer: list[IronBufferItem] = []
    fixed_budget = money(0)
    fixed_spent = money(0)
    iron_remaining = money(0)
    for category_id in dna.fixed_category_ids:
        stat = stats(category_id)
        remaining = money(max(Decimal("0"), stat.budget - stat.spent))
        fixed_budget += stat.budget
        fixed_spent += stat.spent
        iron_remaining += remaining
        iron_buffer.append(
            IronBufferItem(
                id=category_id,
                name=stat.name,
                budget=stat.budget,
                spent=stat.spent,
                is_covered=stat.spent >= stat.budget * IRON_COVERED_RATIO,
                remaining=remaining,
            )
        )

    flex_budget = money(0)
    flex_spent = money(0)
    theft_total = money(0)
    leaks: list[LeakItem] = []
    for category_id in dna.flex_category_ids:
        stat = stats(category_id)
        flex_budget += stat.budget
        flex_spent += stat.spent
        if stat.spent > stat.budget:
            excess = money(stat.spent - stat.budget)
            theft_total += excess
            leaks.append(LeakItem(comment=stat.name, count=0, total=excess))
    leaks.sort(key=lambda item: item.total, reverse=True)

    debt_items = [
        DebtItem(name=stat.name, budget=stat.budget, paid=stat.spent)
        for stat in (stats(category_id) for category_id in dna.debt_category_ids)
    ]
    debt_budget = money(sum((item.budget for item in debt_items), Decimal("0")))
    debt_paid = money(sum((item.paid for item in debt_items), Decimal("0")))

    last_income, last_expenses = month_income_and_expenses(db, previous_month_start(clock.month_start))
    last_net = money(last_income - last_expenses)
    deficit_carry_over = money(abs(last_net)) if last_net < 0 else money(0)

    cash_remaining = money((monthly_income + side_hustle_earned) - (fixed_spent + flex_spent + debt_paid))
    is_hard_locked = cash_remaining < iron_remaining

    ada = adjusted_daily_allowance(
        income=monthly_income,
        side_hustle_earned=side_hustle_earned,
        fixed_budget=fixed_budget,
        debt_budget=debt_budget,
        volatility_reserve=ghost_buffer,
        deficit_carry_over=deficit_carry_over,
        flex_spent=flex_spent,
        days_remaining=days_remaining,
    )
    if is_hard_locked:
        logger.info(
            "Hard liquidity lock for %s: cash remaining %s below unmet fixed obligations %s (raw ADA %s).",
            clock.label,
            cash_remaining,
            iron_remaining,
            money(ada),
        )
    ada = apply_liquidity_lock(ada, is_hard_locked=is_hard_locked)
    ada_status = classify_ada(ada, is_hard_locked=is_hard_locked, threshold=dna.ada_threshold)

    overspend = projected_overspend(ada, days_remaining)
    total_deficit = money(deficit_carry_over + overspend)
    trend = "improving" if overspend < deficit_carry_over else "worsening"

    time_pct = pct(Decimal(clock.day_of_month) / Decimal(clock.days_in_month) * Decimal("100"))
    money_pct = pct(safe_ratio(flex_spent, flex_budget) * Decimal("100"))

    coverage_ratio = (
        pct(cash_remaining / iron_remaining * Decimal("100")) if iron_remaining > 0 else pct(100)
    )
    next_milestone, milestone_progress = milestone_ladder(cash_remaining, iron_remaining)

    recovery_bonus = Decimal("0")
    for category_id in dna.lifestyle_category_ids:
        stat = stats(category_id)
        if stat.spent < stat.budget:
            recovery_bonus += (stat.budget - stat.spent) * RECOVERY_BONUS_RATE

    month_expenses = month_expense_rows(db, clock.month_start)
    essential_spent = money(
        sum((row.amount for row in month_expenses if dna.is_essential(row.category_id)), Decimal("0"))
    )
    lifestyle_spent = money(
        sum((row.amount for row in month_expenses if dna.is_lifestyle(row.category_id)), Decimal("0"))
    )
    lifestyle_ratio = pct(safe_ratio(lifestyle_spent, essential_spent + lifestyle_spent) * Decimal("100"))

    resources = monthly_income + side_hustle_earned - ghost_buffer - deficit_carry_over
    survival_neutral_debt = money(max(Decimal("0"), resources - fixed_budget - flex_spent))
    sustainability_score = (
        pct(survival_neutral_debt / debt_paid * Decimal("100")) if debt_paid > 0 else pct(100)
    )

    next_month_readiness = money(monthly_income - total_deficit - fixed_budget)
    deferred: list[str] = []
    if next_month_readiness < 0:
        candidates = [(stats(category_id).name, stats(category_id).budget) for category_id in dna.deferral_candidates]
        deferred = suggest_deferrals(next_month_readiness, candidates)

    debt_capacity = debt_budget / DEBT_CAPACITY_DAYS
    impact_days = int(rounded(theft_total / debt_capacity, 0)) if debt_capacity > 0 else 0

    unknown_groups = top_comment_groups(db, dna.unknown_category_id, clock.month_start, limit=2)
    combined = leaks + [
        LeakItem(comment=group.comment, count=group.count, total=group.total) for group in unknown_groups
    ]
    combined.sort(key=lambda item: item.total, reverse=True)
    unknowns = [
        LeakItem(comment=item.comment or UNLABELED, count=item.count, total=item.total)
        for item in combined[:TOP_LEAKS]
    ]

    behavior = classify_behavior(
        [(row.tx_date, row.amount) for row in month_expenses if dna.is_flex(row.category_id)]
    )

    return StrategicMetrics(
        as_of=as_of,
        month=clock.label,
        ada=money(ada),
        ada_status=ada_status,
        velocity=Velocity(
            time_pct=time_pct,
            money_pct=money_pct,
            status="behind" if money_pct > time_pct else "ahead",
        ),
        iron_buffer=iron_buffer,
        theft=Theft(
            total=theft_total,
            impact_days=impact_days,
            impact_narrative=impact_narrative(theft_total, clock.day_of_month),
            dopamine_swap=dopamine_swap(leaks[0].comment if leaks else None, clock.day_of_month),
        ),
        unknowns=unknowns,
        debt=debt_items,
        allocation=Allocation(
            essential=essential_spent,
            lifestyle=lifestyle_spent,
            score=allocation_grade(lifestyle_ratio, ada),
            ratio=lifestyle_ratio,
            ada_modifier=ada < 0,
            trend=trend,
        ),
        freedom=Freedom(
            monthly_debt_target=debt_budget,
            actual_debt_paid=debt_paid,
            survival_neutral_debt=survival_neutral_debt,
            sustainability_score=sustainability_score,
        ),
        recovery=Recovery(
            deficit_carry_over=deficit_carry_over,
            total_deficit=total_deficit,
            status="recovering" if deficit_carry_over > 0 else "neutral",
            months_to_recover=months_to_recover(total_deficit, dna.recovery_target_income),
            sensitivity=recovery_sensitivity(dna.recovery_target_income),
            recovery_target=dna.recovery_target_income,
            recovery_bonus=rounded(recovery_bonus, 2),
        ),
        revenue=Revenue(
            side_hustle_earned=side_hustle_earned,
            next_boost_value=rounded(Decimal("100") / Decimal(days_remaining), 2),
        ),
        ghost_buffer=GhostBuffer(amount=ghost_buffer, rate=dna.volatility_reserve_rate),
        liquidity=Liquidity(
            status="lockdown" if is_hard_locked else "secure",
            cash_remaining=cash_remaining,
            iron_remaining=iron_remaining,
            coverage_ratio=coverage_ratio,
            is_hard_locked=is_hard_locked,
            buffer_rebound_pct=max(pct(-100), min(pct(100), coverage_ratio)),
            next_milestone=next_milestone,
            milestone_progress=milestone_progress,
        ),
        forecast=Forecast(
            next_month_readiness=next_month_readiness,
            status="danger" if next_month_readiness < 0 else "secure",
            deferred_bills_suggestion=deferred,
        ),
        behavior=behavior,
    )


def compute_strategic_metrics(
    now: datetime | date | None = None,
    *,
    db: Session | None = None,
    dna: FinancialDNA | None = None,
) -> StrategicMetrics:
    manage_session = db is None
    session = db if db is not None else SessionLocal()
    try:
        return _build_metrics(session, _as_datetime(now), dna if dna is not None else get_dna())
    finally:
        if manage_session:
            session.close()
