from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session

from app.models.category import Category
from app.models.transaction import Transaction
from app.utils.decimal_math import money


UNKNOWN_CATEGORY_NAME = "Unknown"


@dataclass(frozen=True)
class CategoryStat:
    name: str
    budget: Decimal
    spent: Decimal
    earned: Decimal


@dataclass(frozen=True)
class ExpenseRow:
    category_id: int | None
    tx_date: date
    amount: Decimal


@dataclass(frozen=True)
class CommentGroup:
    comment: str
    count: int
    total: Decimal


@dataclass(frozen=True)
class CategoryWindowTotals:
    name: str
    baseline_total: Decimal
    recent_total: Decimal


@dataclass(frozen=True)
class RecurringCandidate:
    category: str
    comment: str
    recent_count: int
    recent_total: Decimal
    first_seen: date


def _as_money(value: Any) -> Decimal:
    if value is None:
        return money(0)
    return money(value)


def month_start_of(day: date) -> date:
    return day.replace(day=1)


def next_month_start(month_start: date) -> date:
    if month_start.month == 12:
        return date(month_start.year + 1, 1, 1)
    return date(month_start.year, month_start.month + 1, 1)


def previous_month_start(month_start: date) -> date:
    if month_start.month == 1:
        return date(month_start.year - 1, 12, 1)
    return date(month_start.year, month_start.month - 1, 1)


def _in_month(month_start: date):
    return and_(
        Transaction.tx_date >= month_start,
        Transaction.tx_date < next_month_start(month_start),
    )


def category_stats(db: Session, category_id: int | None, month_start: date) -> CategoryStat:
    if category_id is None:
        return CategoryStat(name=UNKNOWN_CATEGORY_NAME, budget=money(0), spent=money(0), earned=money(0))
    category = db.get(Category, category_id)

    spent, earned = db.execute(
        select(
            func.sum(case((Transaction.amount < 0, -Transaction.amount), else_=0)),
            func.sum(case((Transaction.amount > 0, Transaction.amount), else_=0)),
        ).where(Transaction.category_id == category_id, _in_month(month_start))
    ).one()

    return CategoryStat(
        name=category.name if category is not None else UNKNOWN_CATEGORY_NAME,
        budget=money(abs(category.budget)) if category is not None else money(0),
        spent=_as_money(spent),
        earned=_as_money(earned),
    )


def month_income_and_expenses(db: Session, month_start: date) -> tuple[Decimal, Decimal]:
    income, expenses = db.execute(
        select(
            func.sum(case((Transaction.amount > 0, Transaction.amount), else_=0)),
            func.sum(case((Transaction.amount < 0, -Transaction.amount), else_=0)),
        ).where(_in_month(month_start))
    ).one()
    return _as_money(income), _as_money(expenses)


def month_expense_rows(db: Session, month_start: date) -> list[ExpenseRow]:
    rows = db.execute(
        select(Transaction.category_id, Transaction.tx_date, Transaction.amount)
        .where(Transaction.amount < 0, _in_month(month_start))
        .order_by(Transaction.tx_date.asc(), Transaction.id.asc())
    ).all()
    return [
        ExpenseRow(category_id=row.category_id, tx_date=row.tx_date, amount=money(abs(row.amount)))
        for row in rows
    ]


def top_comment_groups(
    db: Session,
    category_id: int | None,
    month_start: date,
    *,
    limit: int = 2,
) -> list[CommentGroup]:
    """Largest labelled comment groups of a category this month.

    Placeholder comments are skipped: two characters or fewer, anything that
    starts with an ellipsis, and a lone period.
    """
    if category_id is None:
        return []
    total = func.sum(func.abs(Transaction.amount)).label("total")
    rows = db.execute(
        select(Transaction.comment, func.count(Transaction.id).label("count"), total)
        .where(
            Transaction.category_id == category_id,
            _in_month(month_start),
            func.length(Transaction.comment) > 2,
            Transaction.comment.not_like("...%"),
            Transaction.comment != ".",
        )
        .group_by(Transaction.comment)
        .order_by(total.desc())
        .limit(limit)
    ).all()
    return [
        CommentGroup(comment=row.comment, count=int(row.count), total=_as_money(row.total))
        for row in rows
    ]


def daily_expense_totals(db: Session, start: date, end: date) -> dict[date, Decimal]:
    rows = db.execute(
        select(Transaction.tx_date, func.sum(Transaction.amount).label("total"))
        .where(
            Transaction.amount < 0,
            Transaction.tx_date >= start,
            Transaction.tx_date <= end,
        )
        .group_by(Transaction.tx_date)
        .order_by(Transaction.tx_date.asc())
    ).all()
    return {row.tx_date: money(abs(_as_money(row.total))) for row in rows}


def category_window_totals(
    db: Session,
    *,
    baseline_start: date,
    recent_start: date,
    end: date,
) -> list[CategoryWindowTotals]:
    baseline = func.sum(
        case((Transaction.tx_date < recent_start, -Transaction.amount), else_=0)
    ).label("baseline_total")
    recent = func.sum(
        case((Transaction.tx_date >= recent_start, -Transaction.amount), else_=0)
    ).label("recent_total")
    rows = db.execute(
        select(Category.name, baseline, recent)
        .select_from(Transaction)
        .join(Category, Category.id == Transaction.category_id)
        .where(
            Transaction.amount < 0,
            Transaction.tx_date >= baseline_start,
            Transaction.tx_date <= end,
        )
        .group_by(Category.name)
    ).all()
    return [
        CategoryWindowTotals(
            name=row.name,
            baseline_total=_as_money(row.baseline_total),
            recent_total=_as_money(row.recent_total),
        )
        for row in rows
    ]


def recurring_candidates(
    db: Session,
    *,
    history_start: date,
    recent_start: date,
    end: date,
    min_recent_count: int = 3,
    limit: int = 6,
) -> list[RecurringCandidate]:
    """(category, trimmed comment) pairs seen only inside the recent window."""
    comment = func.trim(Transaction.comment)
    is_recent = Transaction.tx_date >= recent_start
    recent_count = func.sum(case((is_recent, 1), else_=0)).label("recent_count")
    recent_total = func.sum(case((is_recent, -Transaction.amount), else_=0)).label("recent_total")
    prior_count = func.sum(case((is_recent, 0), else_=1)).label("prior_count")
    rows = db.execute(
        select(
            Category.name.label("category"),
            comment.label("comment"),
            recent_count,
            recent_total,
            func.min(Transaction.tx_date).label("first_seen"),
        )
        .select_from(Transaction)
        .join(Category, Category.id == Transaction.category_id)
        .where(
            Transaction.amount < 0,
            Transaction.comment.is_not(None),
            func.length(comment) > 1,
            Transaction.tx_date >= history_start,
            Transaction.tx_date <= end,
        )
        .group_by(Transaction.category_id, Category.name, comment)
        .having(and_(recent_count >= min_recent_count, prior_count == 0))
        .order_by(recent_total.desc())
        .limit(limit)
    ).all()
    return [
        RecurringCandidate(
            category=row.category,
            comment=row.comment,
            recent_count=int(row.recent_count),
            recent_total=_as_money(row.recent_total),
            first_seen=row.first_seen,
        )
        for row in rows
    ]
