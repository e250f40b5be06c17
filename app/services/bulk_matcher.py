"""분실/습득 매칭 실행.

``match_all``: 야간 일괄 매칭. 열린 분실물 각각을 같은 카테고리의 열린 습득물과 비교하고
최고 점수 쌍을 분실물에 기록.
나머지는 단건 흐름용 (등록 시 추천, 아이템별 유사 목록, 관리자 매칭 결정).
"""
from __future__ import annotations

import time
import uuid
from collections import defaultdict
from typing import Dict, List, Optional

from app.domain.errors import InvalidInputError, NotFoundError
from app.models.items import Item, ItemStatus, OPEN_STATUSES, SubmissionType
from app.models.matching import (
    BatchResult, MatchingSummary, MatchRecord, MatchStatus, PairMatch, PairScore,
    QuickMatch, SimilarItem, TopMatch, VisualNeighbour,
)
from app.scripts.logging_config import get_logger, log_batch_summary, log_match_event
from app.services import pair_similarity, text_similarity
from app.services.pair_similarity import MatchingWeights
from app.services.vector_index import VectorIndex
from config import settings

logger = get_logger("matching")

TOP_MATCHES = 10
MAX_CANDIDATES = 100
QUICK_CANDIDATES = 50

DECISIONS = (MatchStatus.ACCEPTED, MatchStatus.REJECTED, MatchStatus.OVERRIDDEN)


def _opposite(submission_type: SubmissionType) -> SubmissionType:
    return SubmissionType.FOUND if submission_type == SubmissionType.LOST else SubmissionType.LOST


class BulkMatcher:
    def __init__(self, items, matches, index: Optional[VectorIndex] = None,
                 weights: Optional[MatchingWeights] = None,
                 min_score: Optional[int] = None, partial_threshold: Optional[int] = None):
        self.items = items
        self.matches = matches
        self.index = index
        self.weights = weights or MatchingWeights.from_settings()
        self.min_score = settings.MATCH_MIN_SCORE if min_score is None else min_score
        self.partial_threshold = settings.MATCH_PARTIAL if partial_threshold is None else partial_threshold

    # ------------------------------------------------------------------
    # 유틸
    # ------------------------------------------------------------------
    def _get_item(self, item_id: str) -> Item:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(f"item not found: {item_id}", code="item_not_found")
        return item

    def _open_with_embedding(self, submission_type: SubmissionType) -> List[Item]:
        rows = self.items.find(submission_type=submission_type, statuses=OPEN_STATUSES)
        return [i for i in rows if i.ai_metadata.image_embedding]

    def _best_of(self, lost: Item, candidates: List[Item]):
        best: Optional[Item] = None
        best_score: Optional[PairScore] = None
        for found in candidates:
            ps = pair_similarity.score(lost, found, self.weights)
            if best_score is None or ps.total > best_score.total:
                best, best_score = found, ps
        return best, best_score

    @staticmethod
    def _pair(lost: Item, found: Item, ps: PairScore) -> PairMatch:
        return PairMatch(
            lost_item_id=lost.id,
            lost_tracking_id=lost.tracking_id,
            found_item_id=found.id,
            found_tracking_id=found.tracking_id,
            match_score=ps.total,
            embedding_score=ps.components.embedding,
            text_score=ps.components.text,
            class_score=ps.components.class_,
            category=lost.category,
            impossible=ps.impossible,
        )

    def _record(self, lost: Item, found: Item, ps: PairScore) -> MatchRecord:
        """(lost, found) 대기 중 추천 레코드 upsert."""
        existing = self.matches.find_pair(lost.id, found.id)
        if existing is not None:
            record = existing.model_copy(update={"similarity_score": ps.total, "components": ps.components})
        else:
            record = MatchRecord(
                id=uuid.uuid4().hex,
                lost_item_id=lost.id,
                found_item_id=found.id,
                category=lost.category,
                similarity_score=ps.total,
                components=ps.components,
            )
        self.matches.save(record)
        return record

    # ------------------------------------------------------------------
    # 일괄
    # ------------------------------------------------------------------
    def match_all(self) -> MatchingSummary:
        start = time.time()
        lost_items = self._open_with_embedding(SubmissionType.LOST)
        found_items = self._open_with_embedding(SubmissionType.FOUND)

        by_category: Dict[str, List[Item]] = defaultdict(list)
        for found in found_items:
            by_category[found.category].append(found)

        pairs: List[PairMatch] = []
        errors = 0
        for lost in lost_items:
            try:
                found, ps = self._best_of(lost, by_category.get(lost.category, []))
                if found is None or ps.total < self.min_score:
                    if lost.ai_metadata.best_match_id is not None or not lost.ai_metadata.similarity_checked:
                        self.items.update_ai_metadata(lost.id, {
                            "best_match_id": None,
                            "match_score": None,
                            "similarity_checked": True,
                        })
                    continue
                self.items.update_ai_metadata(lost.id, {
                    "best_match_id": found.id,
                    "match_score": ps.total,
                    "similarity_checked": True,
                })
                self._record(lost, found, ps)
                pairs.append(self._pair(lost, found, ps))
            except Exception as e:
                errors += 1
                logger.exception("match_all failed lost=%s err=%s", lost.id, e)

        pairs.sort(key=lambda p: p.match_score, reverse=True)
        avg = round(sum(p.match_score for p in pairs) / len(pairs)) if pairs else 0
        summary = MatchingSummary(
            total_lost=len(lost_items),
            total_found=len(found_items),
            matched_pairs=len(pairs),
            avg_score=avg,
            errors=errors,
            top_matches=pairs[:TOP_MATCHES],
        )
        log_batch_summary("match_all", {
            "processed": len(lost_items),
            "matched": len(pairs),
            "errors": errors,
            "duration": round(time.time() - start, 3),
        })
        return summary

    def find_best_match(self, lost_item_id: str) -> Optional[PairMatch]:
        lost = self._get_item(lost_item_id)
        if lost.submission_type != SubmissionType.LOST:
            raise InvalidInputError(f"not a lost item: {lost_item_id}", code="not_lost_item")
        candidates = [f for f in self._open_with_embedding(SubmissionType.FOUND) if f.category == lost.category]
        found, ps = self._best_of(lost, candidates)
        if found is None or ps.total < self.min_score:
            return None
        return self._pair(lost, found, ps)

    # ------------------------------------------------------------------
    # 단건
    # ------------------------------------------------------------------
    def find_similar_items(self, item_id: str) -> List[SimilarItem]:
        item = self._get_item(item_id)
        candidates = self.items.find(
            submission_type=_opposite(item.submission_type),
            category=item.category,
            statuses=OPEN_STATUSES,
            limit=MAX_CANDIDATES,
        )

        results: List[SimilarItem] = []
        for candidate in candidates:
            if candidate.id == item.id:
                continue
            ps = pair_similarity.score(item, candidate, self.weights)
            if ps.total < self.min_score:
                continue
            results.append(SimilarItem(
                matched_item_id=candidate.id,
                overall_score=ps.total,
                components=ps.components,
                object_overlap=ps.object_overlap,
                explanation=ps.explanation,
                confidence_level=pair_similarity.confidence_level(ps.total),
            ))
        results.sort(key=lambda r: r.overall_score, reverse=True)

        self.items.update_ai_metadata(item.id, {
            "similarity_checked": True,
            "suggested_matches": [r.matched_item_id for r in results[:TOP_MATCHES]],
        })
        log_match_event("similar_items", {"item_id": item.id, "candidates": len(candidates), "kept": len(results)})
        return results

    def get_top_matches(self, item_id: str, limit: int = TOP_MATCHES) -> List[TopMatch]:
        """저장된 추천 목록 점수화 (없으면 먼저 계산) + 각 쌍의 매칭 레코드 보장."""
        item = self._get_item(item_id)
        suggested = item.ai_metadata.suggested_matches
        if not suggested:
            suggested = [r.matched_item_id for r in self.find_similar_items(item_id)]

        results: List[TopMatch] = []
        for other_id in suggested:
            other = self.items.get(other_id)
            if other is None:
                continue
            lost, found = pair_similarity.orient(item, other)
            ps = pair_similarity.score(lost, found, self.weights)
            record = self._record(lost, found, ps)
            results.append(TopMatch(
                match_id=record.id,
                lost_item_id=lost.id,
                found_item_id=found.id,
                similarity_score=ps.total,
                components=ps.components,
                explanation=ps.explanation,
                confidence_level=pair_similarity.confidence_level(ps.total),
            ))
        results.sort(key=lambda r: r.similarity_score, reverse=True)
        return results[:limit]

    def find_quick_matches(self, category: str, description: str,
                           zone_id: Optional[str] = None, limit: int = 5) -> List[QuickMatch]:
        """신고 작성 중 보여줄 텍스트 기반 추천."""
        if not category:
            raise InvalidInputError("category is required", code="category_required")
        candidates = self.items.find(category=category, statuses=OPEN_STATUSES, zone_id=zone_id,
                                     limit=QUICK_CANDIDATES)
        results = [
            QuickMatch(
                item_id=c.id,
                tracking_id=c.tracking_id,
                description=c.description,
                similarity_score=text_similarity.quick_text_match(description, category, c.description, c.category),
                submitted_at=c.reported_at,
            )
            for c in candidates
        ]
        results.sort(key=lambda r: r.similarity_score, reverse=True)
        return results[:limit]

    def visual_neighbours(self, item_id: str, k: int = 10) -> List[VisualNeighbour]:
        """인메모리 인덱스에서 이미지 임베딩 기준 반대 유형 최근접 아이템."""
        item = self._get_item(item_id)
        if self.index is None or not item.ai_metadata.image_embedding:
            return []
        wanted = _opposite(item.submission_type).value
        # 같은 유형 결과는 아래에서 버리므로 넉넉히 조회
        hits = self.index.search(item.ai_metadata.image_embedding, k=k * 2 + 1)
        out: List[VisualNeighbour] = []
        for hit_id, sim, meta in hits:
            if hit_id == item.id or meta.get("submission_type") != wanted:
                continue
            out.append(VisualNeighbour(item_id=hit_id, similarity=round(sim, 4),
                                       category=meta.get("category", ""), objects=meta.get("objects", [])))
        return out[:k]

    # ------------------------------------------------------------------
    # 배치 / 관리자
    # ------------------------------------------------------------------
    def batch_process_items(self, limit: int = MAX_CANDIDATES) -> BatchResult:
        start = time.time()
        pending = [i for i in self.items.find(statuses=[ItemStatus.SUBMITTED])
                   if not i.ai_metadata.similarity_checked][:limit]
        result = BatchResult()
        for item in pending:
            try:
                similar = self.find_similar_items(item.id)
                result.processed += 1
                result.matched += sum(1 for r in similar if r.overall_score >= self.partial_threshold)
            except Exception as e:
                result.errors += 1
                logger.exception("batch_process_items failed item=%s err=%s", item.id, e)
        log_batch_summary("batch_process_items", {**result.model_dump(), "duration": round(time.time() - start, 3)})
        return result

    def rebuild_index(self) -> dict:
        if self.index is None:
            raise InvalidInputError("vector index not configured", code="index_unavailable")
        indexed = self.index.rebuild(self.items.find())
        return {"indexed": indexed}

    def index_item(self, item: Item) -> None:
        if self.index is None:
            return
        if item.ai_metadata.image_embedding:
            self.index.add(item.id, item.ai_metadata.image_embedding, {
                "objects": list(item.ai_metadata.detected_objects),
                "category": item.category,
                "submission_type": item.submission_type.value,
            })
        else:
            self.index.remove(item.id)

    def process_match_decision(self, match_id: str, decision: str, admin_id: str,
                               reason: Optional[str] = None) -> MatchRecord:
        try:
            status = MatchStatus(decision)
        except ValueError:
            raise InvalidInputError(f"unknown decision: {decision}", code="invalid_decision")
        if status not in DECISIONS:
            raise InvalidInputError(f"unknown decision: {decision}", code="invalid_decision")

        record = self.matches.get(match_id)
        if record is None:
            raise NotFoundError(f"match not found: {match_id}", code="match_not_found")

        self.matches.update_status(match_id, status, decided_by=admin_id)
        if status == MatchStatus.ACCEPTED:
            self.items.update_status(record.lost_item_id, ItemStatus.MATCHED)
            self.items.update_status(record.found_item_id, ItemStatus.MATCHED)

        log_match_event("match_decision", {
            "match_id": match_id, "decision": status.value, "admin_id": admin_id, "reason": reason,
        })
        return record.model_copy(update={"status": status, "decided_by": admin_id})
