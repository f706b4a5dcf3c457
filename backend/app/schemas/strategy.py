from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from app.schemas.common import ORMModel


class VelocityOut(ORMModel):
    time_pct: Decimal
    money_pct: Decimal
    status: Literal["ahead", "behind"]


class IronBufferItemOut(ORMModel):
    id: int | None = None
    name: str
    budget: Decimal
    spent: Decimal
    is_covered: bool
    remaining: Decimal


class TheftOut(ORMModel):
    total: Decimal
    impact_days: int
    impact_narrative: str
    dopamine_swap: str


class LeakItemOut(ORMModel):
    comment: str
    count: int
    total: Decimal


class DebtItemOut(ORMModel):
    name: str
    budget: Decimal
    paid: Decimal


class AllocationOut(ORMModel):
    essential: Decimal
    lifestyle: Decimal
    score: str
    ratio: Decimal
    ada_modifier: bool
    trend: Literal["improving", "worsening", "stable"]


class FreedomOut(ORMModel):
    monthly_debt_target: Decimal
    actual_debt_paid: Decimal
    survival_neutral_debt: Decimal
    sustainability_score: Decimal


class RecoveryOut(ORMModel):
    deficit_carry_over: Decimal
    total_deficit: Decimal
    status: Literal["neutral", "recovering"]
    months_to_recover: Decimal
    sensitivity: Decimal
    recovery_target: Decimal
    recovery_bonus: Decimal


class RevenueOut(ORMModel):
    side_hustle_earned: Decimal
    next_boost_value: Decimal


class GhostBufferOut(ORMModel):
    amount: Decimal
    rate: Decimal


class LiquidityOut(ORMModel):
    status: Literal["secure", "lockdown"]
    cash_remaining: Decimal
    iron_remaining: Decimal
    coverage_ratio: Decimal
    is_hard_locked: bool
    buffer_rebound_pct: Decimal
    next_milestone: Decimal
    milestone_progress: Decimal


class ForecastOut(ORMModel):
    next_month_readiness: Decimal
    status: Literal["secure", "danger"]
    deferred_bills_suggestion: list[str]


class BehaviorOut(ORMModel):
    archetype: Literal["Weekend Leak", "Impulse Spike", "Steady", "None"]
    high_risk_days: list[str]


class StrategicMetricsOut(ORMModel):
    as_of: datetime
    month: str
    ada: Decimal
    ada_status: Literal["optimal", "warning", "crisis"]
    velocity: VelocityOut
    iron_buffer: list[IronBufferItemOut]
    theft: TheftOut
    unknowns: list[LeakItemOut]
    debt: list[DebtItemOut]
    allocation: AllocationOut
    freedom: FreedomOut
    recovery: RecoveryOut
    revenue: RevenueOut
    ghost_buffer: GhostBufferOut
    liquidity: LiquidityOut
    forecast: ForecastOut
    behavior: BehaviorOut
