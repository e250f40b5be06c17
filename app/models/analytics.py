from pydantic import BaseModel, Field
from typing import Dict, List
from datetime import datetime


class Thresholds(BaseModel):
    auto_approve: int
    partial_match: int


class ConfidenceDistribution(BaseModel):
    high: int = 0    # 80-100
    medium: int = 0  # 50-79
    low: int = 0     # 0-49


class PerformanceMetrics(BaseModel):
    total_matches: int
    accepted_matches: int
    rejected_matches: int
    overridden_matches: int
    accuracy_rate: int
    matches_per_day: List[int] = Field(default_factory=list)
    current_thresholds: Thresholds
    confidence_distribution: ConfidenceDistribution
    start_date: datetime
    end_date: datetime


class DailyAccuracy(BaseModel):
    date: str
    total: int
    accepted: int
    rejected: int
    overridden: int
    accuracy_rate: int


class FraudAnalytics(BaseModel):
    total_suspicious_claims: int
    fraud_flags_by_type: Dict[str, int] = Field(default_factory=dict)
    avg_suspicion_score: int
    repeat_offenders: int


class CategoryStats(BaseModel):
    category: str
    total_matches: int
    avg_score: int
    acceptance_rate: int


class BucketStats(BaseModel):
    total: int = 0
    accepted: int = 0
    rejected: int = 0


class ThresholdEffectiveness(BaseModel):
    current_config: Thresholds
    recommendations: List[str] = Field(default_factory=list)
    above_auto_approve: BucketStats = Field(default_factory=BucketStats)
    between_thresholds: BucketStats = Field(default_factory=BucketStats)
    below_partial_match: BucketStats = Field(default_factory=BucketStats)
