from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from app.models.items import Item
from app.services.text_similarity import cosine_similarity
from app.scripts.logging_config import get_logger

logger = get_logger("matching")

# (item_id, 유사도, 메타)
SearchHit = Tuple[str, float, dict]


class VectorIndex:
    """인메모리 이미지 임베딩 인덱스 (brute-force cosine 스캔).

    대상은 최대 수천 건이라 dict 선형 스캔으로 충분.
    모든 메서드가 같은 RLock을 잡으므로 search 중에 add/remove가 반쯤 적용된 상태는 보이지 않음.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._entries: Dict[str, Tuple[np.ndarray, dict]] = {}
        self._open = False

    # ------------------------------------------------------------------
    # 수명주기
    # ------------------------------------------------------------------
    def open(self) -> "VectorIndex":
        with self._lock:
            self._open = True
        return self

    def close(self) -> None:
        with self._lock:
            self._entries.clear()
            self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._entries

    # ------------------------------------------------------------------
    # 변경
    # ------------------------------------------------------------------
    def add(self, item_id: str, embedding, metadata: Optional[dict] = None) -> None:
        arr = np.asarray(embedding, dtype="float32").ravel()
        if arr.shape[0] == 0:
            raise ValueError(f"add: empty embedding for {item_id}")
        with self._lock:
            self._entries[item_id] = (arr, dict(metadata or {}))

    def remove(self, item_id: str) -> None:
        with self._lock:
            self._entries.pop(item_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def rebuild(self, items: Iterable[Item]) -> int:
        """clear() 후 image embedding 있는 아이템만 다시 적재."""
        indexed = 0
        with self._lock:
            self._entries.clear()
            for item in items:
                emb = item.ai_metadata.image_embedding
                if not emb:
                    continue
                self.add(item.id, emb, {
                    "objects": list(item.ai_metadata.detected_objects),
                    "category": item.category,
                    "submission_type": item.submission_type.value,
                })
                indexed += 1
        logger.info("vector_index.rebuild indexed=%d", indexed)
        return indexed

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------
    def search(self, query_embedding, k: int = 10) -> List[SearchHit]:
        if k <= 0:
            return []
        with self._lock:
            snapshot = list(self._entries.items())
        hits: List[SearchHit] = [
            (item_id, cosine_similarity(query_embedding, vec), meta)
            for item_id, (vec, meta) in snapshot
        ]
        hits.sort(key=lambda h: h[1], reverse=True)
        return hits[:k]
