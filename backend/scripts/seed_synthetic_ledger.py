from __future__ import annotations

import argparse
from datetime import date

from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.services.seed import seed_demo_data


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a demo category catalog and ledger history.")
    parser.add_argument("--months", type=int, default=4, help="Months of history to write, current month included.")
    parser.add_argument("--today", type=date.fromisoformat, default=date.today(), help="Last ledger day (YYYY-MM-DD).")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        written = seed_demo_data(db, today=args.today, months=args.months)
    if written:
        print(f"Synthetic ledger seeded successfully ({written} transactions).")
    else:
        print("Catalog already present; nothing seeded.")


if __name__ == "__main__":
    main()
