from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends

from app.api.deps import get_analytics, http_error
from app.domain.errors import LostFoundError
from app.models.analytics import (
    CategoryStats, DailyAccuracy, FraudAnalytics, PerformanceMetrics, ThresholdEffectiveness,
)
from app.services.analytics import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/performance", response_model=PerformanceMetrics)
def performance(start: Optional[datetime] = None, end: Optional[datetime] = None,
                svc: AnalyticsService = Depends(get_analytics)):
    try:
        return svc.performance_metrics(start, end)
    except LostFoundError as e:
        raise http_error(e)


@router.get("/accuracy", response_model=List[DailyAccuracy])
def accuracy(start: Optional[datetime] = None, end: Optional[datetime] = None,
             svc: AnalyticsService = Depends(get_analytics)):
    try:
        return svc.accuracy_over_time(start, end)
    except LostFoundError as e:
        raise http_error(e)


@router.get("/fraud", response_model=FraudAnalytics)
def fraud(start: Optional[datetime] = None, end: Optional[datetime] = None,
          svc: AnalyticsService = Depends(get_analytics)):
    try:
        return svc.fraud_analytics(start, end)
    except LostFoundError as e:
        raise http_error(e)


@router.get("/categories", response_model=List[CategoryStats])
def categories(svc: AnalyticsService = Depends(get_analytics)):
    return svc.match_stats_by_category()


@router.get("/thresholds", response_model=ThresholdEffectiveness)
def thresholds(svc: AnalyticsService = Depends(get_analytics)):
    return svc.threshold_effectiveness()
