from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_financial_dna
from app.core.dna import FinancialDNA
from app.schemas.strategy import StrategicMetricsOut
from app.services.strategy import compute_strategic_metrics


router = APIRouter(prefix="/decision", tags=["decision"])


@router.get("/metrics", response_model=StrategicMetricsOut)
def get_strategic_metrics(
    as_of: datetime | None = Query(default=None, description="Reference timestamp; defaults to now."),
    db: Session = Depends(get_db),
    dna: FinancialDNA = Depends(get_financial_dna),
) -> StrategicMetricsOut:
    metrics = compute_strategic_metrics(as_of or datetime.now(), db=db, dna=dna)
    return StrategicMetricsOut.model_validate(metrics)
