"""분실/습득 쌍 점수화.

구성 점수 5개 (각 0..100): 이미지 임베딩, 텍스트, 탐지 클래스, 위치, 시간.
저장되는 총점은 ``MatchingWeights`` 가중합 하나. 기본 가중치에서 위치/시간은 설명 문구에만 쓰임.
좌표가 없으면 위치 점수 0.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from app.domain import lexicon
from app.models.items import Item, SubmissionType
from app.models.matching import PairScore, ScoreComponents
from app.services import text_similarity
from config import settings

EARTH_RADIUS_KM = 6371.0
NO_FACTORS = "No specific matching factors identified."
FOUND_BEFORE_LOST = "Found report is dated before the loss"

TFIDF_WEIGHT = 0.6
SEMANTIC_WEIGHT = 0.4
CATEGORY_EXACT_BONUS = 20
CATEGORY_RELATED_BONUS = 10
COLOR_EXACT_BONUS = 10
COLOR_RELATED_BONUS = 5
MATERIAL_EXACT_BONUS = 10


@dataclass(frozen=True)
class MatchingWeights:
    embedding: float = 0.5
    text: float = 0.3
    class_: float = 0.2
    location: float = 0.0
    time: float = 0.0

    @classmethod
    def from_settings(cls) -> "MatchingWeights":
        return cls(
            embedding=settings.MATCH_WEIGHT_EMBEDDING,
            text=settings.MATCH_WEIGHT_TEXT,
            class_=settings.MATCH_WEIGHT_CLASS,
            location=settings.MATCH_WEIGHT_LOCATION,
            time=settings.MATCH_WEIGHT_TIME,
        )

    def total(self, c: ScoreComponents) -> int:
        return round(
            c.embedding * self.embedding
            + c.text * self.text
            + c.class_ * self.class_
            + c.location * self.location
            + c.time * self.time
        )


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


# ------------------------------------------------------------
# 구성 점수
# ------------------------------------------------------------
def embedding_score(vec1: Sequence[float], vec2: Sequence[float]) -> int:
    if not vec1 or not vec2:
        return 0
    sim = text_similarity.cosine_similarity(vec1, vec2)
    return max(0, min(100, round(sim * 100)))


def semantic_score(vec1: Sequence[float], vec2: Sequence[float]) -> Optional[int]:
    """한쪽이라도 텍스트 임베딩이 없으면 None."""
    if not vec1 or not vec2:
        return None
    sim = text_similarity.cosine_similarity(vec1, vec2)
    return max(0, min(100, round(sim * 100)))


def related_colors(color1: str, color2: str) -> bool:
    if color1 in color2 or color2 in color1:
        return True
    for base, variants in lexicon.COLOR_FAMILIES.items():
        family = [base, *variants]
        has1 = any(c in color1 or color1 in c for c in family)
        has2 = any(c in color2 or color2 in c for c in family)
        if has1 and has2:
            return True
    return False


def attribute_bonus(a: Item, b: Item) -> int:
    bonus = 0
    cat1, cat2 = _norm(a.category), _norm(b.category)
    if cat1 and cat2:
        if cat1 == cat2:
            bonus += CATEGORY_EXACT_BONUS
        elif cat1 in cat2 or cat2 in cat1:
            bonus += CATEGORY_RELATED_BONUS

    col1, col2 = _norm(a.color), _norm(b.color)
    if col1 and col2:
        if col1 == col2:
            bonus += COLOR_EXACT_BONUS
        elif related_colors(col1, col2):
            bonus += COLOR_RELATED_BONUS

    mat1, mat2 = _norm(a.material), _norm(b.material)
    if mat1 and mat2 and mat1 == mat2:
        bonus += MATERIAL_EXACT_BONUS
    return bonus


def text_score(a: Item, b: Item) -> int:
    lexical = text_similarity.similarity(a.combined_text(), b.combined_text())
    semantic = semantic_score(a.ai_metadata.text_embedding, b.ai_metadata.text_embedding)
    if semantic is None:
        base = lexical
    else:
        base = round(lexical * TFIDF_WEIGHT + semantic * SEMANTIC_WEIGHT)
    return min(100, base + attribute_bonus(a, b))


def object_overlap(objects1: Iterable[str], objects2: Iterable[str]) -> float:
    """소문자 라벨 집합의 Jaccard, 0..100."""
    set1 = {o.lower() for o in objects1}
    set2 = {o.lower() for o in objects2}
    if not set1 or not set2:
        return 0.0
    return len(set1 & set2) / len(set1 | set2) * 100


def class_score(a: Item, b: Item) -> int:
    score = 0.0
    p1, p2 = _norm(a.ai_metadata.primary_class), _norm(b.ai_metadata.primary_class)
    if p1 and p1 == p2:
        score += 50
    score += object_overlap(a.ai_metadata.detected_objects, b.ai_metadata.detected_objects) / 100 * 50
    return min(100, round(score))


def haversine_km(coords1: Tuple[float, float], coords2: Tuple[float, float]) -> float:
    """대권 거리 (km). 좌표는 (lon, lat)."""
    lon1, lat1 = coords1
    lon2, lat2 = coords2
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def location_score(coords1: Optional[Tuple[float, float]], coords2: Optional[Tuple[float, float]]) -> int:
    if coords1 is None or coords2 is None:
        return 0
    km = haversine_km(coords1, coords2)
    if km < 0.1:
        return 100
    if km < 0.5:
        return 80
    if km < 1.0:
        return 50
    if km < 5.0:
        return 20
    return 0


def found_before_lost(lost: Item, found: Item) -> bool:
    if lost.submission_type != SubmissionType.LOST or found.submission_type != SubmissionType.FOUND:
        return False
    return _utc(found.lost_or_found_at) < _utc(lost.lost_or_found_at)


def time_score(lost: Item, found: Item) -> int:
    if found_before_lost(lost, found):
        return 0
    hours = abs((_utc(lost.lost_or_found_at) - _utc(found.lost_or_found_at)).total_seconds()) / 3600
    if hours < 24:
        return 100
    if hours < 72:
        return 70
    if hours < 168:
        return 40
    if hours < 720:
        return 20
    return 5


# ------------------------------------------------------------
# 쌍
# ------------------------------------------------------------
def orient(a: Item, b: Item) -> Tuple[Item, Item]:
    """인자 순서와 관계없이 (lost, found) 반환."""
    if a.submission_type == SubmissionType.FOUND and b.submission_type == SubmissionType.LOST:
        return b, a
    return a, b


def explain(lost: Item, found: Item, components: ScoreComponents, overlap: float,
            impossible: bool = False) -> List[str]:
    parts: List[str] = []
    if components.text > 70:
        parts.append(f"Descriptions are {components.text}% similar")
    if _norm(lost.category) and _norm(lost.category) == _norm(found.category):
        parts.append(f'Both are in category "{lost.category}"')
    if components.location > 80:
        parts.append("Found in the same area")
    if components.time > 70:
        parts.append("Found around the same time as reported lost")
    if _norm(lost.color) and _norm(lost.color) == _norm(found.color):
        parts.append(f"Both described as {lost.color}")
    if overlap > 50:
        parts.append(f"Detected similar objects in images ({round(overlap)}% overlap)")
    if components.embedding > 70:
        parts.append(f"Images are visually similar ({components.embedding}%)")
    if impossible:
        parts.append(FOUND_BEFORE_LOST)
    return parts or [NO_FACTORS]


def score(lost: Item, found: Item, weights: Optional[MatchingWeights] = None) -> PairScore:
    weights = weights or MatchingWeights.from_settings()
    lost, found = orient(lost, found)

    components = ScoreComponents(
        embedding=embedding_score(lost.ai_metadata.image_embedding, found.ai_metadata.image_embedding),
        text=text_score(lost, found),
        class_=class_score(lost, found),
        location=location_score(lost.location.coordinates, found.location.coordinates),
        time=time_score(lost, found),
    )
    overlap = object_overlap(lost.ai_metadata.detected_objects, found.ai_metadata.detected_objects)
    impossible = found_before_lost(lost, found)
    return PairScore(
        total=max(0, min(100, weights.total(components))),
        components=components,
        object_overlap=overlap,
        explanation=explain(lost, found, components, overlap, impossible),
        impossible=impossible,
    )


def confidence_level(total: int) -> str:
    if total >= 80:
        return "high"
    if total >= 50:
        return "medium"
    return "low"
