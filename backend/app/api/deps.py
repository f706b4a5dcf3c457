from collections.abc import Generator

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.dna import DNAConfigError, FinancialDNA, get_dna
from app.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_financial_dna() -> FinancialDNA:
    try:
        return get_dna()
    except DNAConfigError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Financial DNA configuration is unavailable.",
        ) from exc
