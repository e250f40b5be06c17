"""분실/습득 설명 및 소유 증빙용 TF-IDF 텍스트 유사도.

IDF 정책 2가지:
  - similarity(): 두 문서 smoothed IDF, idf = ln((N+1)/(df+1)) + 1, N=2.
    양쪽 공통 단어 1.0, 한쪽에만 있는 단어 ~1.405.
  - embed(): 코퍼스 없는 휴리스틱 IDF (distinctive 2.5 / common 1.0 / 기본 1.5).
    비교 상대 없이 아이템 벡터를 캐시할 수 있음.

점수는 0..100 정수.
"""
from __future__ import annotations

import math
import re
from collections import Counter
from typing import Dict, List, Sequence

import numpy as np

from app.domain import lexicon
from app.models.items import TextEmbedding

_NON_WORD_RE = re.compile(r"[^\w\s]")


def preprocess(text: str) -> List[str]:
    """소문자 -> 구두점 공백 치환 -> split -> 1글자 토큰/불용어 제거."""
    if not text:
        return []
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 1 and t not in lexicon.STOP_WORDS]


def term_frequency(tokens: Sequence[str]) -> Dict[str, float]:
    total = len(tokens)
    if total == 0:
        return {}
    return {term: count / total for term, count in Counter(tokens).items()}


def pairwise_idf(*documents: Sequence[str]) -> Dict[str, float]:
    n = len(documents)
    df: Counter = Counter()
    for doc in documents:
        df.update(set(doc))
    return {term: math.log((n + 1) / (freq + 1)) + 1 for term, freq in df.items()}


def heuristic_idf(term: str) -> float:
    if term in lexicon.DISTINCTIVE_TERMS:
        return lexicon.DISTINCTIVE_IDF
    if term in lexicon.COMMON_TERMS:
        return lexicon.COMMON_IDF
    return lexicon.DEFAULT_IDF


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """길이가 다르거나 비었거나 norm 0이면 0."""
    a = np.asarray(vec1, dtype="float64").ravel()
    b = np.asarray(vec2, dtype="float64").ravel()
    if a.shape[0] == 0 or a.shape[0] != b.shape[0]:
        return 0.0
    magnitude = float(np.linalg.norm(a) * np.linalg.norm(b))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(a, b) / magnitude)


def _weighted(tf: Dict[str, float], idf: Dict[str, float]) -> Dict[str, float]:
    return {term: value * idf.get(term, 1.0) for term, value in tf.items()}


def similarity(text1: str, text2: str) -> int:
    terms1 = preprocess(text1)
    terms2 = preprocess(text2)
    if not terms1 or not terms2:
        return 0

    idf = pairwise_idf(terms1, terms2)
    vec1 = _weighted(term_frequency(terms1), idf)
    vec2 = _weighted(term_frequency(terms2), idf)

    vocabulary = sorted(set(vec1) | set(vec2))
    score = cosine_similarity(
        [vec1.get(t, 0.0) for t in vocabulary],
        [vec2.get(t, 0.0) for t in vocabulary],
    )
    return max(0, min(100, round(score * 100)))


def embed(text: str, item_id: str = "") -> TextEmbedding:
    terms = preprocess(text)
    if not terms:
        return TextEmbedding(item_id=item_id, description=text or "")

    tf = term_frequency(terms)
    vocabulary = sorted(tf)
    vector = [tf[t] * heuristic_idf(t) for t in vocabulary]
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude > 0:
        vector = [v / magnitude for v in vector]
    return TextEmbedding(item_id=item_id, description=text, vector=vector, vocabulary=vocabulary)


def quick_text_match(query_text: str, query_category: str, candidate_text: str, candidate_category: str) -> int:
    """등록 시 추천 점수: 같은 카테고리 +30, 키워드 겹침 최대 +70."""
    score = 0
    if query_category and candidate_category and query_category.lower() == candidate_category.lower():
        score += 30

    query_terms = preprocess(query_text)
    candidate_terms = set(preprocess(candidate_text))
    if not query_terms or not candidate_terms:
        return score

    matches = sum(1 for t in query_terms if t in candidate_terms)
    score += round(matches / len(query_terms) * 70)
    return min(100, score)
