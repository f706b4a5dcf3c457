from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.dna import FinancialDNA
from app.db.base import Base
from app.models.category import Category
from app.models.transaction import Transaction
from app.services.strategy import (
    EMERGENCY_INCOME,
    adjusted_daily_allowance,
    allocation_grade,
    apply_liquidity_lock,
    classify_ada,
    classify_behavior,
    compute_strategic_metrics,
    milestone_ladder,
    month_clock,
    months_to_recover,
    projected_overspend,
    recovery_sensitivity,
    suggest_deferrals,
)
from app.utils.decimal_math import money

# 2026-03-22 is a Sunday; 31 - 22 + 1 = 10 days remain in March.
AS_OF = datetime(2026, 3, 22, 9, 30)

INCOME, RENT, LOAN, DINING, GROCERIES, UNKNOWN, SIDE = 1, 2, 3, 4, 5, 6, 7


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _dna(**overrides) -> FinancialDNA:
    values = dict(
        income_category_id=INCOME,
        fixed_category_ids=[RENT],
        flex_category_ids=[DINING],
        debt_category_ids=[LOAN],
        essential_category_ids=[RENT, GROCERIES],
        lifestyle_category_ids=[DINING],
        side_hustle_category_id=SIDE,
        unknown_category_id=UNKNOWN,
        volatility_reserve_rate=Decimal("0.1"),
        recovery_target_income=Decimal("2000"),
        ada_threshold=Decimal("150"),
    )
    values.update(overrides)
    return FinancialDNA(**values)


def _catalog(db: Session, *, dining_budget: str = "-800") -> None:
    db.add_all(
        [
            Category(id=INCOME, name="Salary", budget=money("-6000"), display_order=0),
            Category(id=RENT, name="Rent", budget=money("-2000"), display_order=1),
            Category(id=LOAN, name="Car Loan", budget=money("-1000"), display_order=2),
            Category(id=DINING, name="Dining", budget=money(dining_budget), display_order=3),
            Category(id=GROCERIES, name="Groceries", budget=money("-1200"), display_order=4),
            Category(id=UNKNOWN, name="Uncategorized", budget=money("0"), display_order=5),
            Category(id=SIDE, name="Freelance", budget=money("0"), display_order=6),
        ]
    )
    db.flush()


def _tx(db: Session, category_id: int, tx_date: date, amount: str, comment: str | None = None) -> None:
    db.add(Transaction(category_id=category_id, tx_date=tx_date, amount=money(amount), comment=comment))


def test_adjusted_daily_allowance_matches_closed_form() -> None:
    ada = adjusted_daily_allowance(
        income=money("6000"),
        side_hustle_earned=money("0"),
        fixed_budget=money("2000"),
        debt_budget=money("1000"),
        volatility_reserve=money("600"),
        deficit_carry_over=money("0"),
        flex_spent=money("500"),
        days_remaining=10,
    )
    assert ada == money("190")
    assert classify_ada(ada, is_hard_locked=False, threshold=Decimal("150")) == "optimal"


def test_liquidity_lock_clamps_only_positive_allowance() -> None:
    assert apply_liquidity_lock(money("190"), is_hard_locked=True) == money("0")
    assert apply_liquidity_lock(money("-12.50"), is_hard_locked=True) == money("-12.50")
    assert apply_liquidity_lock(money("190"), is_hard_locked=False) == money("190")


def test_ada_status_partitions_values() -> None:
    threshold = Decimal("150")
    assert classify_ada(money("0"), is_hard_locked=True, threshold=threshold) == "crisis"
    assert classify_ada(money("-1"), is_hard_locked=False, threshold=threshold) == "crisis"
    assert classify_ada(money("149.99"), is_hard_locked=False, threshold=threshold) == "warning"
    assert classify_ada(money("0"), is_hard_locked=False, threshold=threshold) == "warning"
    assert classify_ada(money("150"), is_hard_locked=False, threshold=threshold) == "optimal"


def test_days_remaining_counts_today_and_never_reaches_zero() -> None:
    assert month_clock(date(2026, 3, 22)).days_remaining == 10
    assert month_clock(date(2026, 3, 31)).days_remaining == 1
    assert month_clock(date(2026, 2, 1)).days_remaining == 28
    assert month_clock(date(2026, 2, 1)).label == "2026-02"


def test_recovery_guards_return_zero() -> None:
    assert months_to_recover(money("0"), Decimal("2000")) == Decimal("0.0")
    assert months_to_recover(money("500"), Decimal("0")) == Decimal("0.0")
    assert months_to_recover(money("-10"), Decimal("-5")) == Decimal("0.0")
    assert months_to_recover(money("3000"), Decimal("2000")) == Decimal("1.5")
    assert recovery_sensitivity(Decimal("0")) == Decimal("0.0")
    assert recovery_sensitivity(Decimal("2000")) == Decimal("1.5")


def test_suggest_deferrals_picks_largest_bills_first() -> None:
    candidates = [("Internet", money("250")), ("School", money("1150")), ("Utilities", money("450"))]
    assert suggest_deferrals(money("-1300"), candidates) == ["School", "Utilities"]
    assert suggest_deferrals(money("-5000"), candidates) == ["School", "Utilities", "Internet", EMERGENCY_INCOME]
    assert suggest_deferrals(money("-100"), []) == [EMERGENCY_INCOME]


def test_weekend_leak_requires_volume_and_concentration() -> None:
    leak = classify_behavior(
        [
            (date(2026, 3, 7), money("250")),
            (date(2026, 3, 8), money("150")),
            (date(2026, 3, 10), money("200")),
        ]
    )
    assert leak.archetype == "Weekend Leak"
    assert leak.high_risk_days == ["Saturday", "Sunday"]

    small = classify_behavior([(date(2026, 3, 7), money("300")), (date(2026, 3, 8), money("200"))])
    assert small.archetype == "None"
    assert small.high_risk_days == []

    weekday_heavy = classify_behavior(
        [(date(2026, 3, 7), money("100")), (date(2026, 3, 9), money("400")), (date(2026, 3, 10), money("300"))]
    )
    assert weekday_heavy.archetype == "None"


def test_allocation_grade_boundaries() -> None:
    assert allocation_grade(Decimal("30"), money("10")) == "A"
    assert allocation_grade(Decimal("30.01"), money("10")) == "B"
    assert allocation_grade(Decimal("50"), money("10")) == "B"
    assert allocation_grade(Decimal("50.5"), money("10")) == "C"
    assert allocation_grade(Decimal("10"), money("-0.01")) == "F"


def test_milestone_ladder() -> None:
    assert milestone_ladder(money("300"), money("1800")) == (money("1500"), Decimal("100"))
    assert milestone_ladder(money("300"), money("1000")) == (money("500"), Decimal("60"))
    assert milestone_ladder(money("900"), money("100")) == (money("0"), Decimal("100"))


def test_compute_strategic_metrics_end_to_end_optimal() -> None:
    db = _session()
    _catalog(db)
    _tx(db, INCOME, date(2026, 3, 1), "6000", "Salary")
    _tx(db, RENT, date(2026, 3, 2), "-2000", "Rent")
    _tx(db, DINING, date(2026, 3, 10), "-300", "Lunch")
    _tx(db, DINING, date(2026, 3, 12), "-200", "Dinner")
    db.flush()

    metrics = compute_strategic_metrics(AS_OF, db=db, dna=_dna())

    assert metrics.month == "2026-03"
    assert metrics.ada == money("190")
    assert metrics.ada_status == "optimal"
    assert metrics.liquidity.is_hard_locked is False
    assert metrics.liquidity.status == "secure"
    assert metrics.ghost_buffer.amount == money("600")
    assert metrics.recovery.deficit_carry_over == money("0")
    assert metrics.recovery.months_to_recover == Decimal("0.0")
    assert metrics.recovery.sensitivity == Decimal("1.5")
    assert metrics.recovery.status == "neutral"
    assert metrics.theft.total == money("0")
    assert metrics.allocation.trend == "worsening"
    assert metrics.forecast.next_month_readiness == money("4000")
    assert metrics.forecast.status == "secure"
    assert metrics.iron_buffer[0].is_covered is True
    assert metrics.iron_buffer[0].remaining == money("0")
    assert metrics.revenue.next_boost_value == Decimal("10.00")


def test_hard_lock_clamps_positive_allowance_to_zero() -> None:
    db = _session()
    _catalog(db)
    _tx(db, RENT, date(2026, 3, 2), "-200", "Rent deposit")
    _tx(db, DINING, date(2026, 3, 10), "-500", "Dinners")
    _tx(db, LOAN, date(2026, 3, 5), "-5000", "Early repayment")
    db.flush()

    metrics = compute_strategic_metrics(AS_OF, db=db, dna=_dna())

    assert metrics.liquidity.cash_remaining == money("300")
    assert metrics.liquidity.iron_remaining == money("1800")
    assert metrics.liquidity.is_hard_locked is True
    assert metrics.liquidity.status == "lockdown"
    assert metrics.ada == money("0")
    assert metrics.ada_status == "crisis"
    assert metrics.liquidity.next_milestone == money("1500")
    assert metrics.liquidity.coverage_ratio == Decimal("16.666667")
    assert metrics.liquidity.buffer_rebound_pct == Decimal("16.666667")
    assert metrics.freedom.actual_debt_paid == money("5000")


def test_flex_overspend_and_unknown_comments_form_top_leaks() -> None:
    db = _session()
    _catalog(db)
    _tx(db, DINING, date(2026, 3, 7), "-600", "Brunch")
    _tx(db, DINING, date(2026, 3, 8), "-350", "Sushi")
    _tx(db, UNKNOWN, date(2026, 3, 3), "-300", "Pharmacy")
    _tx(db, UNKNOWN, date(2026, 3, 4), "-120", "Hardware store")
    _tx(db, UNKNOWN, date(2026, 3, 5), "-500", ".")
    _tx(db, UNKNOWN, date(2026, 3, 6), "-400", "...")
    _tx(db, UNKNOWN, date(2026, 3, 9), "-1000", "ab")
    _tx(db, UNKNOWN, date(2026, 2, 9), "-900", "Last month")
    db.flush()

    metrics = compute_strategic_metrics(AS_OF, db=db, dna=_dna())

    assert metrics.theft.total == money("150")
    assert metrics.theft.impact_days == 5
    assert [(item.comment, item.total) for item in metrics.unknowns] == [
        ("Pharmacy", money("300")),
        ("Dining", money("150")),
        ("Hardware store", money("120")),
    ]
    assert metrics.unknowns[0].count == 1
    assert metrics.behavior.archetype == "Weekend Leak"


def test_prior_month_deficit_feeds_allowance_and_recovery() -> None:
    db = _session()
    _catalog(db)
    _tx(db, INCOME, date(2026, 2, 1), "1000", "Salary")
    _tx(db, GROCERIES, date(2026, 2, 10), "-1500", "Groceries")
    _tx(db, RENT, date(2026, 3, 2), "-2000", "Rent")
    _tx(db, DINING, date(2026, 3, 10), "-500", "Dinners")
    db.flush()

    metrics = compute_strategic_metrics(AS_OF, db=db, dna=_dna())

    assert metrics.recovery.deficit_carry_over == money("500")
    assert metrics.recovery.status == "recovering"
    assert metrics.ada == money("140")
    assert metrics.ada_status == "warning"
    assert metrics.recovery.total_deficit == money("500")
    assert metrics.recovery.months_to_recover == Decimal("0.3")
    assert metrics.allocation.trend == "improving"


def test_negative_allowance_grades_f_and_projects_overspend() -> None:
    db = _session()
    _catalog(db)
    _tx(db, RENT, date(2026, 3, 2), "-2000", "Rent")
    _tx(db, DINING, date(2026, 3, 10), "-3400", "Party")
    db.flush()

    metrics = compute_strategic_metrics(AS_OF, db=db, dna=_dna(deferrable_category_ids=[RENT, LOAN]))

    # (2400 - 3400) / 10
    assert metrics.ada == money("-100")
    assert metrics.ada_status == "crisis"
    assert metrics.allocation.score == "F"
    assert metrics.allocation.ada_modifier is True
    assert metrics.recovery.total_deficit == money("1000")
    assert metrics.forecast.next_month_readiness == money("3000")
    assert metrics.forecast.deferred_bills_suggestion == []

    strained = compute_strategic_metrics(
        AS_OF,
        db=db,
        dna=_dna(deferrable_category_ids=[RENT, LOAN], recovery_target_income=Decimal("0")),
    )
    assert strained.recovery.months_to_recover == Decimal("0.0")
    assert strained.recovery.sensitivity == Decimal("0.0")


def test_forecast_defers_bills_when_readiness_is_negative() -> None:
    db = _session()
    _catalog(db)
    _tx(db, INCOME, date(2026, 2, 1), "500", "Partial salary")
    _tx(db, GROCERIES, date(2026, 2, 10), "-3800", "Move")
    db.flush()

    metrics = compute_strategic_metrics(AS_OF, db=db, dna=_dna(deferrable_category_ids=[LOAN, RENT]))

    # carry-over 3300 plus 900 projected overspend
    assert metrics.recovery.total_deficit == money("4200")
    assert metrics.forecast.next_month_readiness == money("-200")
    assert metrics.forecast.status == "danger"
    assert metrics.forecast.deferred_bills_suggestion == ["Rent"]


def test_missing_and_malformed_categories_degrade_to_zero() -> None:
    db = _session()
    dna = FinancialDNA.model_validate(
        {
            "incomeCategoryId": 404,
            "fixedCategoryIds": [405, "not-an-id"],
            "flexCategoryIds": [None],
            "debtCategoryIds": [],
            "volatilityReserveRate": 0.1,
            "recoveryTargetIncome": 0,
            "adaThreshold": 150,
        }
    )

    metrics = compute_strategic_metrics(date(2026, 3, 22), db=db, dna=dna)

    assert metrics.ada == money("0")
    assert metrics.ada_status == "warning"
    assert [item.name for item in metrics.iron_buffer] == ["Unknown", "Unknown"]
    assert metrics.theft.impact_days == 0
    assert metrics.velocity.money_pct == Decimal("0")
    assert metrics.allocation.ratio == Decimal("0")
    assert metrics.allocation.score == "A"
    assert metrics.liquidity.coverage_ratio == Decimal("100")
    assert metrics.freedom.sustainability_score == Decimal("100")
    assert metrics.behavior.archetype == "None"


def test_allowance_keeps_full_precision_when_division_does_not_terminate() -> None:
    ada = adjusted_daily_allowance(
        income=money("1000"),
        side_hustle_earned=money("0"),
        fixed_budget=money("0"),
        debt_budget=money("0"),
        volatility_reserve=money("0"),
        deficit_carry_over=money("0"),
        flex_spent=money("0"),
        days_remaining=3,
    )

    assert ada == Decimal("1000") / Decimal("3")
    assert money(ada) == money("333.33")
    assert projected_overspend(-ada, 3) == money("1000")


def test_overspend_equal_to_carried_deficit_is_not_an_improvement() -> None:
    db = _session()
    _catalog(db)
    _tx(db, GROCERIES, date(2026, 2, 10), "-100", "Groceries")
    _tx(db, RENT, date(2026, 3, 2), "-2000", "Rent")
    _tx(db, DINING, date(2026, 3, 10), "-2400", "Dinners")
    db.flush()

    # 3 days left; (2300 - 2400) / 3 per day.
    metrics = compute_strategic_metrics(datetime(2026, 3, 29, 8, 0), db=db, dna=_dna())

    assert metrics.ada == money("-33.33")
    assert metrics.recovery.deficit_carry_over == money("100")
    assert metrics.recovery.total_deficit == money("200")
    assert metrics.allocation.trend == "worsening"
    assert metrics.recovery.months_to_recover == Decimal("0.1")
    assert metrics.forecast.next_month_readiness == money("3800")


def test_theft_counts_only_excess_across_flex_categories() -> None:
    db = _session()
    _catalog(db)
    _tx(db, DINING, date(2026, 3, 10), "-950", "Dinners")
    _tx(db, GROCERIES, date(2026, 3, 11), "-300", "Market")
    _tx(db, UNKNOWN, date(2026, 3, 12), "-40", "..")
    db.add(Transaction(category_id=None, tx_date=date(2026, 3, 14), amount=money("-5000"), comment="Orphan"))
    db.flush()

    metrics = compute_strategic_metrics(AS_OF, db=db, dna=_dna(flex_category_ids=[DINING, GROCERIES, "bad"]))

    assert metrics.theft.total == money("150")
    assert [(item.comment, item.total) for item in metrics.unknowns] == [("Dining", money("150"))]
    assert metrics.velocity.money_pct == Decimal("62.5")
    # The uncategorised Saturday expense is not flex spending.
    assert metrics.behavior.archetype == "None"
    assert metrics.allocation.essential == money("300")
    assert metrics.allocation.lifestyle == money("950")
    assert metrics.allocation.score == "C"
