"""소유권 클레임 점수화.

최종 점수:

    final = round(0.4 * confidence + 0.35 * proof_quality + 0.25 * history)

``confidence``: 소유 증빙을 합친 텍스트와 아이템 설명/카테고리/색상/재질의 어휘 유사도.
``proof_quality``: 길고 구체적인 증빙일수록 높음.
``history``: 100에서 시작, 신청자의 거절/의심 클레임 수만큼 감점.
각 검사의 fraud flag는 evaluation에 모으고, 유사 클레임 검사는 flag만 추가.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from app.domain import lexicon
from app.domain.errors import InvalidInputError, NotFoundError
from app.models.claims import (
    Claim, ClaimEvaluation, ClaimStatus, FraudFlag, FraudFlagType, FraudRisk, FraudSeverity,
)
from app.models.items import Item
from app.scripts.logging_config import get_logger, log_fraud_event
from app.services import text_similarity
from config import settings

logger = get_logger("fraud")

CONFIDENCE_WEIGHT = 0.4
PROOF_WEIGHT = 0.35
HISTORY_WEIGHT = 0.25


@dataclass(frozen=True)
class ClaimScoringConfig:
    auto_award_threshold: int = 85
    minimum_confidence_gap: int = 15
    min_proof_length: int = 20
    good_proof_length: int = 100
    max_rejection_penalty: int = 30
    rejections_for_max_penalty: int = 5
    multiple_rejections: int = 3
    repeat_offender_penalty: int = 20
    suspicious_claim_penalty: int = 5
    low_proof_quality: int = 30
    suspicious_threshold: int = 40
    critical_threshold: int = 60
    similar_claims_window_days: int = 30
    repeated_category_claims: int = 3

    @classmethod
    def from_settings(cls) -> "ClaimScoringConfig":
        return cls(
            auto_award_threshold=settings.CLAIM_AUTO_AWARD_THRESHOLD,
            minimum_confidence_gap=settings.CLAIM_MINIMUM_CONFIDENCE_GAP,
            min_proof_length=settings.CLAIM_MIN_PROOF_LENGTH,
            good_proof_length=settings.CLAIM_GOOD_PROOF_LENGTH,
            max_rejection_penalty=settings.CLAIM_MAX_REJECTION_PENALTY,
            rejections_for_max_penalty=settings.CLAIM_REJECTIONS_FOR_MAX_PENALTY,
            suspicious_threshold=settings.CLAIM_SUSPICIOUS_THRESHOLD,
            critical_threshold=settings.CLAIM_CRITICAL_THRESHOLD,
            similar_claims_window_days=settings.CLAIM_SIMILAR_WINDOW_DAYS,
        )


def _flag(flag_type: FraudFlagType, severity: FraudSeverity, description: str) -> FraudFlag:
    return FraudFlag(type=flag_type, severity=severity, description=description)


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def item_text(item: Item) -> str:
    return f"{item.description} {item.category} {item.color or ''} {item.material or ''}"


def claim_confidence(claim: Claim, item: Item) -> int:
    if not claim.ownership_proofs:
        return 0
    return text_similarity.similarity(" ".join(claim.ownership_proofs), item_text(item))


def assess_proof_quality(proofs: List[str], config: ClaimScoringConfig) -> Tuple[int, List[FraudFlag]]:
    if not proofs:
        return 0, [_flag(FraudFlagType.NO_PROOF, FraudSeverity.CRITICAL, "No ownership proof provided")]

    flags: List[FraudFlag] = []
    total = 0
    for proof in proofs:
        text = proof.strip()
        if len(text) < config.min_proof_length:
            points = 10
            flags.append(_flag(FraudFlagType.VAGUE_PROOF, FraudSeverity.WARNING,
                               f"Proof too short ({len(text)} chars)"))
        elif len(text) >= config.good_proof_length:
            points = 40
        else:
            points = 20

        lowered = text.lower()
        keywords = sum(1 for kw in lexicon.STRONG_PROOF_KEYWORDS if kw in lowered)
        points += min(40, keywords * 10)

        # 업로드된 사진 증빙
        if lowered.startswith("http") and any(host in lowered for host in lexicon.MEDIA_HOSTS):
            points += 20

        total += min(100, points)

    score = round(total / len(proofs))
    if score < config.low_proof_quality:
        flags.append(_flag(FraudFlagType.LOW_PROOF_QUALITY, FraudSeverity.WARNING,
                           "Ownership proofs lack specific details"))
    return score, flags


def history_score(history: List[Claim], config: ClaimScoringConfig) -> Tuple[int, List[FraudFlag]]:
    flags: List[FraudFlag] = []
    total = len(history)
    if total == 0:
        return 100, flags

    rejected = sum(1 for c in history if c.status == ClaimStatus.REJECTED)
    suspicious = sum(1 for c in history if c.status == ClaimStatus.SUSPICIOUS)

    score = 100 - round(rejected / total * config.max_rejection_penalty)
    if rejected >= config.rejections_for_max_penalty:
        score -= config.repeat_offender_penalty
        flags.append(_flag(FraudFlagType.REPEAT_OFFENDER, FraudSeverity.CRITICAL,
                           f"User has {rejected} rejected claims"))
    elif rejected >= config.multiple_rejections:
        flags.append(_flag(FraudFlagType.MULTIPLE_REJECTIONS, FraudSeverity.WARNING,
                           f"User has {rejected} rejected claims"))

    if suspicious > 0:
        score -= suspicious * config.suspicious_claim_penalty
        flags.append(_flag(FraudFlagType.PRIOR_SUSPICIOUS, FraudSeverity.WARNING,
                           f"User has {suspicious} prior suspicious claims"))
    return max(0, score), flags


def suspicion_from_evaluation(evaluation: ClaimEvaluation) -> int:
    critical = sum(1 for f in evaluation.flags if f.is_critical)
    warning = len(evaluation.flags) - critical
    score = ((100 - evaluation.proof_quality_score) * 0.3
             + (100 - evaluation.history_score) * 0.4
             + critical * 15
             + warning * 5)
    return min(100, round(score))


class ClaimEvaluator:
    def __init__(self, items, claims, config: Optional[ClaimScoringConfig] = None):
        self.items = items
        self.claims = claims
        self.config = config or ClaimScoringConfig.from_settings()

    def similar_item_claims(self, claim: Claim, item: Item, now: Optional[datetime] = None) -> List[FraudFlag]:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=self.config.similar_claims_window_days)

        same_category = 0
        for other in self.claims.by_claimant(claim.claimant_id):
            if other.id == claim.id or other.item_id == item.id or _utc(other.submitted_at) < since:
                continue
            other_item = self.items.get(other.item_id)
            if other_item is not None and other_item.category == item.category:
                same_category += 1

        if same_category >= self.config.repeated_category_claims:
            return [_flag(FraudFlagType.REPEATED_CATEGORY_CLAIMS, FraudSeverity.CRITICAL,
                          f'User has claimed {same_category} items in "{item.category}" category recently')]
        if same_category >= 1:
            return [_flag(FraudFlagType.SIMILAR_ITEM_CLAIMS, FraudSeverity.WARNING,
                          f"User has claimed {same_category} other items in same category")]
        return []

    def evaluate(self, claim: Claim, item: Item) -> ClaimEvaluation:
        if claim.item_id != item.id:
            raise InvalidInputError(f"claim {claim.id} is not for item {item.id}", code="claim_item_mismatch")

        confidence = claim_confidence(claim, item)
        proof, proof_flags = assess_proof_quality(claim.ownership_proofs, self.config)
        history, history_flags = history_score(self.claims.by_claimant(claim.claimant_id), self.config)
        similar_flags = self.similar_item_claims(claim, item)

        final = round(confidence * CONFIDENCE_WEIGHT + proof * PROOF_WEIGHT + history * HISTORY_WEIGHT)
        return ClaimEvaluation(
            claim_id=claim.id,
            claimant_id=claim.claimant_id,
            confidence_score=confidence,
            proof_quality_score=proof,
            history_score=history,
            final_score=final,
            flags=[*proof_flags, *history_flags, *similar_flags],
        )

    def assess_claim_risk(self, claim_id: str) -> FraudRisk:
        """접수 시점 단건 fraud 평가. 결과는 클레임에 저장."""
        claim = self.claims.get(claim_id)
        if claim is None:
            raise NotFoundError(f"claim not found: {claim_id}", code="claim_not_found")
        item = self.items.get(claim.item_id)
        if item is None:
            raise NotFoundError(f"item not found: {claim.item_id}", code="item_not_found")

        evaluation = self.evaluate(claim, item)
        risk = FraudRisk(
            suspicion_score=suspicion_from_evaluation(evaluation),
            flags=evaluation.flags,
            assessed_at=datetime.now(timezone.utc),
        )
        self.claims.save(claim.model_copy(update={
            "ai_confidence_score": evaluation.final_score,
            "fraud_risk": risk,
        }))
        log_fraud_event("claim_assessed", {
            "claim_id": claim.id,
            "item_id": item.id,
            "final_score": evaluation.final_score,
            "suspicion_score": risk.suspicion_score,
            "flags": [f.type.value for f in risk.flags],
        })
        return risk
