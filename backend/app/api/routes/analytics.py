from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.regime import RegimeReportOut
from app.services.regime import build_regime_report


router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/regime", response_model=RegimeReportOut)
def get_regime_report(
    as_of: date | None = Query(default=None, description="Last day of the 90-day window; defaults to today."),
    db: Session = Depends(get_db),
) -> RegimeReportOut:
    report = build_regime_report(db, as_of or date.today())
    return RegimeReportOut.model_validate(report)
