"""관리자 화면용 집계 (매칭 레코드 / 클레임 읽기 전용)."""
from __future__ import annotations

from collections import Counter, OrderedDict, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from app.domain.errors import InvalidInputError
from app.models.analytics import (
    BucketStats, CategoryStats, ConfidenceDistribution, DailyAccuracy, FraudAnalytics,
    PerformanceMetrics, ThresholdEffectiveness, Thresholds,
)
from app.models.claims import ClaimStatus
from app.models.matching import MatchStatus
from app.services.claim_evaluator import ClaimScoringConfig
from config import settings

DEFAULT_WINDOW_DAYS = 30
REPEAT_OFFENDER_REJECTIONS = 3
RAISE_BELOW_ACCEPTANCE = 90


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def _day(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d") if dt.tzinfo else dt.strftime("%Y-%m-%d")


class AnalyticsService:
    def __init__(self, matches, claims, auto_approve: Optional[int] = None, partial_match: Optional[int] = None,
                 claim_config: Optional[ClaimScoringConfig] = None):
        self.matches = matches
        self.claims = claims
        self.thresholds = Thresholds(
            auto_approve=settings.MATCH_AUTO_APPROVE if auto_approve is None else auto_approve,
            partial_match=settings.MATCH_PARTIAL if partial_match is None else partial_match,
        )
        self.claim_config = claim_config or ClaimScoringConfig.from_settings()

    @staticmethod
    def _window(start: Optional[datetime], end: Optional[datetime]) -> Tuple[datetime, datetime]:
        end = end or datetime.now(timezone.utc)
        start = start or end - timedelta(days=DEFAULT_WINDOW_DAYS)
        # tz 없는 경계값은 UTC로 간주
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        if start > end:
            raise InvalidInputError("start must be before end", code="invalid_window")
        return start, end

    def performance_metrics(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> PerformanceMetrics:
        start, end = self._window(start, end)
        records = self.matches.in_window(start, end)
        status_counts = Counter(r.status for r in records)

        distribution = ConfidenceDistribution()
        for r in records:
            if r.similarity_score >= 80:
                distribution.high += 1
            elif r.similarity_score >= 50:
                distribution.medium += 1
            else:
                distribution.low += 1

        per_day = Counter(_day(r.generated_at) for r in records)
        days: List[int] = []
        cursor = start
        while cursor <= end:
            days.append(per_day.get(_day(cursor), 0))
            cursor += timedelta(days=1)

        total = len(records)
        return PerformanceMetrics(
            total_matches=total,
            accepted_matches=status_counts[MatchStatus.ACCEPTED],
            rejected_matches=status_counts[MatchStatus.REJECTED],
            overridden_matches=status_counts[MatchStatus.OVERRIDDEN],
            accuracy_rate=_percent(status_counts[MatchStatus.ACCEPTED], total),
            matches_per_day=days,
            current_thresholds=self.thresholds,
            confidence_distribution=distribution,
            start_date=start,
            end_date=end,
        )

    def accuracy_over_time(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[DailyAccuracy]:
        start, end = self._window(start, end)
        buckets: Dict[str, Counter] = defaultdict(Counter)
        for r in self.matches.in_window(start, end):
            bucket = buckets[_day(r.generated_at)]
            bucket["total"] += 1
            bucket[r.status.value] += 1

        rows = []
        for day in sorted(buckets):
            b = buckets[day]
            rows.append(DailyAccuracy(
                date=day,
                total=b["total"],
                accepted=b[MatchStatus.ACCEPTED.value],
                rejected=b[MatchStatus.REJECTED.value],
                overridden=b[MatchStatus.OVERRIDDEN.value],
                accuracy_rate=_percent(b[MatchStatus.ACCEPTED.value], b["total"]),
            ))
        return rows

    def fraud_analytics(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> FraudAnalytics:
        start, end = self._window(start, end)
        scored = [c for c in self.claims.in_window(start, end) if c.fraud_risk.suspicion_score > 0]

        flags_by_type: Counter = Counter()
        for claim in scored:
            flags_by_type.update(f.type.value for f in claim.fraud_risk.flags)

        # 반복 위반자는 기간과 무관하게 전체 클레임 기준
        rejected_by_claimant = Counter(
            c.claimant_id for c in self.claims.all() if c.status == ClaimStatus.REJECTED
        )
        return FraudAnalytics(
            total_suspicious_claims=sum(
                1 for c in scored if c.fraud_risk.suspicion_score >= self.claim_config.suspicious_threshold
            ),
            fraud_flags_by_type=dict(flags_by_type),
            avg_suspicion_score=round(sum(c.fraud_risk.suspicion_score for c in scored) / len(scored)) if scored else 0,
            repeat_offenders=sum(1 for n in rejected_by_claimant.values() if n >= REPEAT_OFFENDER_REJECTIONS),
        )

    def match_stats_by_category(self) -> List[CategoryStats]:
        stats: "OrderedDict[str, dict]" = OrderedDict()
        for r in self.matches.all():
            s = stats.setdefault(r.category or "Unknown", {"total": 0, "score": 0, "accepted": 0})
            s["total"] += 1
            s["score"] += r.similarity_score
            if r.status == MatchStatus.ACCEPTED:
                s["accepted"] += 1
        return [
            CategoryStats(
                category=category,
                total_matches=s["total"],
                avg_score=round(s["score"] / s["total"]) if s["total"] else 0,
                acceptance_rate=_percent(s["accepted"], s["total"]),
            )
            for category, s in stats.items()
        ]

    def threshold_effectiveness(self) -> ThresholdEffectiveness:
        auto_approve = self.thresholds.auto_approve
        partial = self.thresholds.partial_match
        above, between, below = BucketStats(), BucketStats(), BucketStats()

        for r in self.matches.all():
            if r.similarity_score >= auto_approve:
                bucket = above
            elif r.similarity_score >= partial:
                bucket = between
            else:
                bucket = below
            bucket.total += 1
            if r.status == MatchStatus.ACCEPTED:
                bucket.accepted += 1
            elif r.status == MatchStatus.REJECTED:
                bucket.rejected += 1

        recommendations: List[str] = []
        if above.total > 0:
            rate = above.accepted / above.total * 100
            if rate < RAISE_BELOW_ACCEPTANCE:
                recommendations.append(
                    f"Consider raising auto-approve threshold: {round(rate)}% acceptance rate above {auto_approve}%"
                )
        if below.accepted > 0:
            recommendations.append(
                f"{below.accepted} matches below partial threshold were accepted - consider lowering threshold"
            )
        if not recommendations:
            recommendations.append("Current thresholds appear to be well-calibrated")

        return ThresholdEffectiveness(
            current_config=self.thresholds,
            recommendations=recommendations,
            above_auto_approve=above,
            between_thresholds=between,
            below_partial_match=below,
        )
