from datetime import datetime, timezone

import pytest

from app.domain.errors import InvalidInputError
from app.models.claims import ClaimStatus, FraudFlag, FraudFlagType, FraudRisk, FraudSeverity
from app.models.matching import MatchRecord, MatchStatus
from app.services.analytics import AnalyticsService
from app.services.claim_store import InMemoryClaimStore
from app.services.match_store import InMemoryMatchStore
from conftest import make_claim

END = datetime(2024, 3, 10, 23, 0, tzinfo=timezone.utc)
START = datetime(2024, 3, 8, 0, 0, tzinfo=timezone.utc)


def record(rid, score, status=MatchStatus.PENDING, category="Wallets", day=9):
    return MatchRecord(
        id=rid, lost_item_id=f"l-{rid}", found_item_id=f"f-{rid}", category=category,
        similarity_score=score, status=status,
        generated_at=datetime(2024, 3, day, 12, tzinfo=timezone.utc),
    )


@pytest.fixture
def service():
    matches = InMemoryMatchStore([
        record("1", 92, MatchStatus.ACCEPTED, day=8),
        record("2", 88, MatchStatus.REJECTED, day=8),
        record("3", 60, MatchStatus.ACCEPTED, category="Keys", day=9),
        record("4", 40, MatchStatus.ACCEPTED, category="Keys", day=10),
        record("5", 55, MatchStatus.OVERRIDDEN, category="", day=10),
        record("old", 99, MatchStatus.ACCEPTED, day=1),
    ])
    warn = FraudFlag(type=FraudFlagType.VAGUE_PROOF, severity=FraudSeverity.WARNING, description="short")
    crit = FraudFlag(type=FraudFlagType.NO_PROOF, severity=FraudSeverity.CRITICAL, description="none")
    in_window = datetime(2024, 3, 9, tzinfo=timezone.utc)
    claims = InMemoryClaimStore([
        make_claim("i1", "u1", submitted_at=in_window,
                   fraud_risk=FraudRisk(suspicion_score=70, flags=[crit, warn])),
        make_claim("i2", "u2", submitted_at=in_window, fraud_risk=FraudRisk(suspicion_score=20, flags=[warn])),
        make_claim("i3", "u3", submitted_at=in_window),
        *[make_claim(f"r{n}", "repeat", status=ClaimStatus.REJECTED,
                     submitted_at=datetime(2023, 1, 1, tzinfo=timezone.utc)) for n in range(3)],
    ])
    return AnalyticsService(matches, claims, auto_approve=85, partial_match=50)


def test_performance_metrics(service):
    m = service.performance_metrics(START, END)
    assert m.total_matches == 5
    assert (m.accepted_matches, m.rejected_matches, m.overridden_matches) == (3, 1, 1)
    assert m.accuracy_rate == 60
    assert m.matches_per_day == [2, 1, 2]
    assert (m.confidence_distribution.high, m.confidence_distribution.medium,
            m.confidence_distribution.low) == (2, 2, 1)
    assert m.current_thresholds.auto_approve == 85


def test_accuracy_over_time(service):
    rows = service.accuracy_over_time(START, END)
    assert [r.date for r in rows] == ["2024-03-08", "2024-03-09", "2024-03-10"]
    assert (rows[0].total, rows[0].accepted, rows[0].rejected, rows[0].accuracy_rate) == (2, 1, 1, 50)
    assert rows[2].overridden == 1


def test_fraud_analytics(service):
    f = service.fraud_analytics(START, END)
    assert f.total_suspicious_claims == 1
    assert f.fraud_flags_by_type == {"NO_PROOF": 1, "VAGUE_PROOF": 2}
    assert f.avg_suspicion_score == 45
    # counted over all claims, not only the window
    assert f.repeat_offenders == 1


def test_window_validation(service):
    with pytest.raises(InvalidInputError):
        service.performance_metrics(END, START)
    # naive bounds are treated as UTC
    naive = service.performance_metrics(START.replace(tzinfo=None), END.replace(tzinfo=None))
    assert naive.total_matches == 5


def test_match_stats_by_category(service):
    stats = {s.category: s for s in service.match_stats_by_category()}
    assert set(stats) == {"Wallets", "Keys", "Unknown"}
    assert stats["Wallets"].total_matches == 3
    assert stats["Wallets"].avg_score == round((92 + 88 + 99) / 3)
    assert stats["Keys"].acceptance_rate == 100


def test_threshold_effectiveness(service):
    t = service.threshold_effectiveness()
    assert (t.above_auto_approve.total, t.above_auto_approve.accepted, t.above_auto_approve.rejected) == (3, 2, 1)
    assert (t.between_thresholds.total, t.between_thresholds.accepted) == (2, 1)
    assert (t.below_partial_match.total, t.below_partial_match.accepted) == (1, 1)
    assert t.recommendations == [
        "Consider raising auto-approve threshold: 67% acceptance rate above 85%",
        "1 matches below partial threshold were accepted - consider lowering threshold",
    ]


def test_empty_stores_are_well_calibrated():
    svc = AnalyticsService(InMemoryMatchStore(), InMemoryClaimStore(), auto_approve=85, partial_match=50)
    assert svc.threshold_effectiveness().recommendations == ["Current thresholds appear to be well-calibrated"]
    m = svc.performance_metrics(START, END)
    assert m.accuracy_rate == 0 and m.total_matches == 0
    f = svc.fraud_analytics(START, END)
    assert f.avg_suspicion_score == 0 and f.repeat_offenders == 0
