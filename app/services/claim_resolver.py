from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.domain.errors import NotFoundError
from app.models.claims import (
    Claim, ClaimEvaluation, ClaimStatus, CompetingClaimsResult, FraudFlag, FraudFlagType,
    FraudRisk, FraudSeverity, OPEN_CLAIM_STATUSES, ResolutionState,
)
from app.models.items import ItemStatus
from app.scripts.logging_config import get_logger, log_batch_summary, log_fraud_event
from app.services.claim_evaluator import ClaimEvaluator, ClaimScoringConfig
from config import settings

logger = get_logger("fraud")

NO_PENDING = "No pending claims"


class ClaimResolver:
    """아이템의 열린 클레임 중 승자 선정.

    ``preview``는 평가만 한다. ``process``는 검토 없이 승인 가능할 때만 결과를 기록:
    승자 approved, 나머지 rejected/suspicious, 아이템 resolved.
    검토 대상이면 아무것도 쓰지 않음.
    """

    def __init__(self, items, claims, evaluator: Optional[ClaimEvaluator] = None,
                 config: Optional[ClaimScoringConfig] = None):
        self.items = items
        self.claims = claims
        self.config = config or (evaluator.config if evaluator else ClaimScoringConfig.from_settings())
        self.evaluator = evaluator or ClaimEvaluator(items, claims, self.config)

    def preview(self, item_id: str) -> CompetingClaimsResult:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(f"item not found: {item_id}", code="item_not_found")

        open_claims = self.claims.for_item(item_id, statuses=OPEN_CLAIM_STATUSES)
        if not open_claims:
            return CompetingClaimsResult(item_id=item_id, state=ResolutionState.NO_CLAIMS, reason=NO_PENDING)

        evaluations = [self.evaluator.evaluate(c, item) for c in open_claims]
        # 안정 정렬: 동점이면 접수 순서 유지
        evaluations.sort(key=lambda e: e.final_score, reverse=True)
        winner = evaluations[0]
        runner_up = evaluations[1] if len(evaluations) > 1 else None

        reason = None
        cfg = self.config
        if winner.final_score < cfg.auto_award_threshold:
            reason = (f"Winner confidence ({winner.final_score}%) below threshold "
                      f"({cfg.auto_award_threshold}%)")
        elif runner_up is not None and winner.final_score - runner_up.final_score < cfg.minimum_confidence_gap:
            reason = (f"Gap between top claims too small "
                      f"({winner.final_score}% vs {runner_up.final_score}%)")
        elif winner.has_critical_flag:
            reason = "Winner has critical fraud flags"

        needs_review = reason is not None
        return CompetingClaimsResult(
            item_id=item_id,
            state=ResolutionState.NEEDS_REVIEW if needs_review else ResolutionState.AUTO_RESOLVED,
            winner_claim_id=winner.claim_id,
            winner_claimant_id=winner.claimant_id,
            winner_confidence=winner.final_score,
            evaluations=evaluations,
            requires_manual_review=needs_review,
            reason=reason,
        )

    def _loser_outcome(self, evaluation: ClaimEvaluation, winner: ClaimEvaluation):
        gap = winner.final_score - evaluation.final_score
        suspicion = min(100, gap + 10 * len(evaluation.flags))
        flags: List[FraudFlag] = list(evaluation.flags)
        cfg = self.config
        if suspicion >= cfg.critical_threshold:
            flags.append(FraudFlag(
                type=FraudFlagType.LOW_CONFIDENCE, severity=FraudSeverity.CRITICAL,
                description=(f"Confidence {evaluation.final_score}% significantly lower than "
                             f"winner {winner.final_score}%"),
            ))
            return ClaimStatus.SUSPICIOUS, suspicion, flags
        if suspicion >= cfg.suspicious_threshold:
            flags.append(FraudFlag(
                type=FraudFlagType.LOW_CONFIDENCE, severity=FraudSeverity.WARNING,
                description=f"Confidence {evaluation.final_score}% lower than winner {winner.final_score}%",
            ))
            return ClaimStatus.SUSPICIOUS, suspicion, flags
        return ClaimStatus.REJECTED, suspicion, flags

    def _apply(self, result: CompetingClaimsResult) -> List[Claim]:
        """auto_resolved 결과 기록. 기록한 클레임 목록 반환."""
        item_id = result.item_id
        # 아이템당 approved 클레임은 최대 1건
        if self.claims.for_item(item_id, statuses=[ClaimStatus.APPROVED]):
            logger.warning("item %s already has an approved claim; leaving for review", item_id)
            return []

        # 쓰기 전에 평가는 모두 끝난 상태
        now = datetime.now(timezone.utc)
        winner = result.evaluations[0]
        updates: List[Claim] = []
        for evaluation in result.evaluations:
            claim = self.claims.get(evaluation.claim_id)
            if claim is None:
                continue
            if evaluation.claim_id == winner.claim_id:
                updates.append(claim.model_copy(update={
                    "status": ClaimStatus.APPROVED,
                    "ai_confidence_score": evaluation.final_score,
                    "resolved_at": now,
                    "fraud_risk": FraudRisk(suspicion_score=0, flags=[], assessed_at=now),
                }))
                continue
            status, suspicion, flags = self._loser_outcome(evaluation, winner)
            updates.append(claim.model_copy(update={
                "status": status,
                "ai_confidence_score": evaluation.final_score,
                "resolved_at": now,
                "fraud_risk": FraudRisk(suspicion_score=suspicion, flags=flags, assessed_at=now),
            }))

        for claim in updates:
            self.claims.save(claim)
        self.items.update_status(item_id, ItemStatus.RESOLVED)

        log_fraud_event("claims_resolved", {
            "item_id": item_id,
            "winner_claim_id": winner.claim_id,
            "winner_score": winner.final_score,
            "outcomes": {c.id: c.status.value for c in updates},
        })
        return updates

    def process(self, item_id: str) -> CompetingClaimsResult:
        result = self.preview(item_id)
        if result.state != ResolutionState.AUTO_RESOLVED:
            return result
        if not self._apply(result):
            return result.model_copy(update={
                "state": ResolutionState.NEEDS_REVIEW,
                "requires_manual_review": True,
                "reason": "Item already has an approved claim",
            })
        return result

    def process_all(self) -> dict:
        start = time.time()
        summary = {"processed": 0, "claims": 0, "suspicious": 0, "errors": 0}
        for item_id in self.claims.item_ids_with_status(OPEN_CLAIM_STATUSES):
            try:
                result = self.preview(item_id)
                summary["processed"] += 1
                summary["claims"] += len(result.evaluations)
                if result.state == ResolutionState.AUTO_RESOLVED:
                    written = self._apply(result)
                    summary["suspicious"] += sum(1 for c in written if c.status == ClaimStatus.SUSPICIOUS)
            except Exception as e:
                summary["errors"] += 1
                logger.exception("process_all failed item=%s err=%s", item_id, e)
        log_batch_summary("process_all_claims", {**summary, "duration": round(time.time() - start, 3)},
                          logger=logger)
        return summary

    def archive_terminal_claims(self, older_than_days: Optional[int] = None) -> dict:
        days = settings.CLAIM_RETENTION_DAYS if older_than_days is None else older_than_days
        before = datetime.now(timezone.utc) - timedelta(days=days)
        moved = self.claims.archive_terminal(before)
        logger.info("archive_terminal_claims days=%d moved=%d", days, moved)
        return {"archived": moved}
