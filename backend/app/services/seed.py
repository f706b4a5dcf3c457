from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.category import Category
from app.models.transaction import Transaction
from app.services.ledger import month_start_of, previous_month_start
from app.utils.decimal_math import money

# Ids line up with backend/data/financial_dna.json.
DEMO_CATALOG: list[tuple[int, str, str]] = [
    (1, "Salary", "9000"),
    (2, "Rent", "-3000"),
    (3, "Utilities", "-450"),
    (4, "Internet & Phone", "-250"),
    (5, "Groceries", "-1500"),
    (6, "Food Delivery", "-600"),
    (7, "Shopping", "-500"),
    (8, "Transport", "-400"),
    (9, "Entertainment", "-300"),
    (10, "Car Loan", "-1200"),
    (11, "Credit Card", "-600"),
    (12, "Freelance", "0"),
    (13, "Uncategorized", "0"),
    (14, "School Fees", "-1150"),
]

MONTHLY_BILLS: list[tuple[int, int, str, str]] = [
    (1, 1, "9000", "Monthly salary"),
    (2, 2, "-3000", "Rent"),
    (14, 3, "-1150", "School"),
    (3, 5, "-450", "Lydec"),
    (4, 6, "-250", "Fibre + mobile"),
    (10, 10, "-1200", "Car loan installment"),
    (11, 12, "-600", "Card repayment"),
    (7, 14, "-420", "Zara"),
    (12, 18, "800", "Logo design"),
    (9, 20, "-150", "Cinema"),
    (13, 9, "-90", "Pharmacy"),
    (13, 22, "-60", "..."),
]


def _ensure_catalog(db: Session) -> bool:
    if db.scalar(select(Category.id).limit(1)) is not None:
        return False
    db.add_all(
        [
            Category(id=category_id, name=name, budget=money(budget), display_order=index)
            for index, (category_id, name, budget) in enumerate(DEMO_CATALOG)
        ]
    )
    db.flush()
    return True


def _month_rows(month_start: date, today: date) -> list[Transaction]:
    days_in_month = calendar.monthrange(month_start.year, month_start.month)[1]
    rows: list[Transaction] = []

    def add(category_id: int, day: int, amount: str, comment: str) -> None:
        if day > days_in_month:
            return
        tx_date = month_start.replace(day=day)
        if tx_date > today:
            return
        rows.append(
            Transaction(category_id=category_id, tx_date=tx_date, amount=money(amount), comment=comment)
        )

    for category_id, day, amount, comment in MONTHLY_BILLS:
        add(category_id, day, amount, comment)
    for day in range(4, days_in_month + 1, 7):
        add(5, day, "-180", "Marjane")
    for day in range(1, days_in_month + 1, 3):
        add(8, day, "-35", "Taxi")
    for day in range(1, days_in_month + 1):
        if month_start.replace(day=day).isoweekday() in (6, 7):
            add(6, day, "-65", "Glovo")
    return rows


def seed_demo_data(db: Session, *, today: date, months: int = 4) -> int:
    """Seed a demo catalog and ``months`` months of ledger history up to ``today``.

    Does nothing when a catalog already exists. Returns the number of
    transactions written.
    """
    if not _ensure_catalog(db):
        return 0

    month_start = month_start_of(today)
    starts = [month_start]
    for _ in range(max(0, months - 1)):
        starts.append(previous_month_start(starts[-1]))

    written = 0
    for start in reversed(starts):
        rows = _month_rows(start, today)
        db.add_all(rows)
        written += len(rows)
    # A subscription that only started within the last few weeks.
    for offset in (2, 9, 16):
        db.add(
            Transaction(
                category_id=9,
                tx_date=today - timedelta(days=offset),
                amount=Decimal("-49.00"),
                comment="Padel club",
            )
        )
        written += 1
    db.commit()
    return written
